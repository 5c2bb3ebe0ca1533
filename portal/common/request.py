from typing import Optional


def get_client_ip(request) -> Optional[str]:
    """Client IP, honouring the first X-Forwarded-For hop behind a proxy."""
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        ip = x_forwarded_for.split(",")[0]
    else:
        ip = request.META.get("REMOTE_ADDR", "")
    return ip.strip() or None


def get_user_agent(request) -> str:
    return request.META.get("HTTP_USER_AGENT", "")[:500]
