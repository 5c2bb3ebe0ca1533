from rest_framework.throttling import SimpleRateThrottle


class LoginRateThrottle(SimpleRateThrottle):
    """Limits sign-in attempts per e-mail address (rate from ``auth_login``)."""

    scope = "auth_login"

    def get_cache_key(self, request, view):
        email = request.data.get("email")
        if not email:
            return None

        return self.cache_format % {
            "scope": self.scope,
            "ident": str(email).strip().lower(),
        }
