"""SMTP delivery of finished briefs."""

from __future__ import annotations

import asyncio
import logging
import re
import smtplib
from email.message import EmailMessage

from .config import EmailSettings
from .errors import BriefWizardError, ValidationFailure
from .rendering import render_brief_html
from .session import BriefSession
from .synthesis import BriefSynthesizer, extract_title

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TITLE_PREFIX_RE = re.compile(r"^Strategic Brief:\s*", re.IGNORECASE)
DEFAULT_SUBJECT = "Your Generated Strategic Brief"


class EmailDeliveryError(BriefWizardError):
    """Raised when a brief could not be handed to the SMTP server."""


def validate_email_address(address: str) -> str:
    candidate = (address or "").strip()
    if not _EMAIL_RE.match(candidate):
        raise ValidationFailure("Invalid email address format provided.")
    return candidate


def brief_subject(brief_text: str) -> str:
    title = extract_title(brief_text)
    if not title:
        return DEFAULT_SUBJECT
    stripped = _TITLE_PREFIX_RE.sub("", title).strip()
    if not stripped:
        return DEFAULT_SUBJECT
    return f"Your Strategic Brief: {stripped}"


class BriefEmailer:
    """Sends a brief as a plain-text plus HTML email over SMTP."""

    def __init__(self, settings: EmailSettings) -> None:
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    def build_message(self, recipient: str, brief_text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._settings.sender or ""
        message["To"] = validate_email_address(recipient)
        message["Subject"] = brief_subject(brief_text)
        message.set_content(
            f"Here is your generated strategic brief:\n\n{brief_text}"
        )
        message.add_alternative(
            "<p>Here is your generated strategic brief:</p>"
            f"{render_brief_html(brief_text)}",
            subtype="html",
        )
        return message

    def send_brief(self, recipient: str, brief_text: str) -> None:
        if not self.enabled:
            raise EmailDeliveryError(
                "Email sending is not configured on the server."
            )
        message = self.build_message(recipient, brief_text)
        settings = self._settings
        try:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
                if settings.smtp_user and settings.smtp_password:
                    server.starttls()
                    server.login(settings.smtp_user, settings.smtp_password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(
                f"Unable to send brief to {message['To']}: {exc}"
            ) from exc
        logger.info("Brief emailed to %s", message["To"])


async def deliver_brief_in_background(
    *,
    session: BriefSession,
    synthesizer: BriefSynthesizer,
    emailer: BriefEmailer,
    recipient: str,
) -> None:
    """Synthesize (if needed) and email a brief; failures are only logged."""

    try:
        brief_text = session.brief_text
        if brief_text is None:
            document = await synthesizer.synthesize(session)
            brief_text = document.markdown
        await asyncio.to_thread(emailer.send_brief, recipient, brief_text)
    except Exception:  # noqa: BLE001 # pylint: disable=broad-except
        logger.exception(
            "Background brief delivery failed for session %s",
            session.session_id,
        )
