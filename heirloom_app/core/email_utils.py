"""Email utilities for sending branded emails.

Question requests and reminders are written in markdown, rendered to HTML
inside the branded base template and sent with a plain-text alternative.
Delivery is fire-and-forget: failures are logged and reported as ``False``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags
import markdown

logger = logging.getLogger(__name__)


def get_platform_branding() -> Dict[str, Any]:
    """Get platform-level branding configuration from settings."""
    return {
        "title": getattr(settings, "BRAND_TITLE", "Heirloom"),
        "icon_url": getattr(settings, "BRAND_ICON_URL", None) or "",
        "font_body": getattr(settings, "BRAND_FONT_BODY", "sans-serif"),
        "primary_color": getattr(settings, "BRAND_PRIMARY_COLOR", "#b45309"),
    }


def markdown_to_html(markdown_text: str) -> str:
    """Convert markdown text to HTML."""
    return markdown.markdown(
        markdown_text,
        extensions=["extra", "nl2br", "sane_lists"],
    )


def send_branded_email(
    to_email: str,
    subject: str,
    markdown_content: str,
    branding: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    from_email: Optional[str] = None,
) -> bool:
    """Render ``markdown_content`` into the branded template and send it.

    ``context`` is merged into the template context; ``branding`` defaults to
    the platform branding. Returns False if rendering or delivery failed.
    """
    branding = branding or get_platform_branding()
    html_content = markdown_to_html(markdown_content)
    email_context = {
        "subject": subject,
        "content": html_content,
        "brand": branding,
        "site_url": getattr(settings, "SITE_URL", "http://localhost:8000"),
        **(context or {}),
    }

    try:
        html_message = render_to_string("emails/base_email.html", email_context)
        email = EmailMultiAlternatives(
            subject=subject,
            body=strip_tags(html_content),
            from_email=from_email or settings.DEFAULT_FROM_EMAIL,
            to=[to_email],
        )
        email.attach_alternative(html_message, "text/html")
        email.send()
    except Exception:
        logger.exception(f"Failed to send email to {to_email}: {subject}")
        return False
    logger.info(f"Email sent to {to_email}: {subject}")
    return True
