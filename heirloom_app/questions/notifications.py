"""Notification emails for question requests.

Emits the two events respondents receive: the initial request and the
reminder. Delivery is fire-and-forget; every function returns whether the
email went out and never raises on delivery failure.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.template.loader import render_to_string

from heirloom_app.core.email_utils import get_platform_branding, send_branded_email
from heirloom_app.core.identity import display_name, user_display_name
from heirloom_app.core.qr_utils import generate_qr_code_data_uri

from .models import EDIT_WINDOW_DAYS

if TYPE_CHECKING:
    from .models import Recipient

logger = logging.getLogger(__name__)


def answer_link(recipient: "Recipient") -> str:
    site_url = getattr(settings, "SITE_URL", "http://localhost:8000")
    return f"{site_url.rstrip('/')}/ask/{recipient.token}/"


def send_question_request_email(recipient: "Recipient", asker, message="") -> bool:
    """Send the initial request with the recipient's personal answer link."""
    if not recipient.email:
        logger.warning(f"Recipient {recipient.pk} has no email; request not sent")
        return False

    branding = get_platform_branding()
    asker_name = user_display_name(asker)
    question_set = recipient.question_set
    link = answer_link(recipient)

    markdown_content = render_to_string(
        "emails/question_request.md",
        {
            "recipient_name": display_name(recipient),
            "asker_name": asker_name,
            "question_count": question_set.questions.count(),
            "set_name": question_set.name,
            "message": message,
            "answer_link": link,
            "edit_window_days": EDIT_WINDOW_DAYS,
            "brand_title": branding["title"],
        },
    )

    return send_branded_email(
        to_email=recipient.email,
        subject=f"{asker_name} has some questions for you",
        markdown_content=markdown_content,
        branding=branding,
        context={"qr_code_data_uri": generate_qr_code_data_uri(link)},
    )


def send_question_reminder_email(recipient: "Recipient", preview: list[str]) -> bool:
    """Send a reminder listing the questions still waiting for an answer."""
    if not recipient.email:
        logger.warning(f"Recipient {recipient.pk} has no email; reminder not sent")
        return False

    branding = get_platform_branding()
    asker_name = user_display_name(recipient.request.creator)

    markdown_content = render_to_string(
        "emails/question_reminder.md",
        {
            "recipient_name": display_name(recipient),
            "asker_name": asker_name,
            "preview": preview,
            "answer_link": answer_link(recipient),
            "brand_title": branding["title"],
        },
    )

    return send_branded_email(
        to_email=recipient.email,
        subject=f"Reminder: {asker_name} is waiting to hear from you",
        markdown_content=markdown_content,
        branding=branding,
    )
