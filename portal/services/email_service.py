"""
E-Mail Service for the Exam Portal

Renders HTML templates from ``portal/templates/emails/`` and sends them with
Django's mail framework. Delivery failures raise DependencyFailure; callers
decide whether a failure aborts their transaction (registration) or is only
logged (welcome mail).

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from ..exceptions import DependencyFailure

logger = logging.getLogger(__name__)


class EmailService:
    """Sends templated e-mails."""

    def __init__(self, from_email: Optional[str] = None):
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL

    def send(
        self,
        recipient: str,
        template_name: str,
        template_data: Dict[str, Any],
        subject: str,
    ) -> None:
        """
        Render and send one e-mail.

        Args:
            recipient: Target e-mail address
            template_name: Template file name without extension
            template_data: Template context
            subject: Subject line

        Raises:
            DependencyFailure: If rendering or delivery fails
        """
        context = {"frontend_url": settings.FRONTEND_URL, **template_data}
        try:
            html_message = render_to_string(f"emails/{template_name}.html", context)
            send_mail(
                subject,
                strip_tags(html_message),
                self.from_email,
                [recipient],
                html_message=html_message,
                fail_silently=False,
            )
        except Exception as e:
            logger.error(f"Sending '{template_name}' mail to {recipient} failed: {e}", exc_info=True)
            raise DependencyFailure(
                "Email could not be sent",
                error_code="email_failed",
                details={"template": template_name},
            ) from e

        logger.info(f"Sent '{template_name}' mail to {recipient}")
