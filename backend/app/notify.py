import logging
import smtplib
from email.message import EmailMessage
from functools import lru_cache

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []

_SUBJECTS = {
    "program.submitted": "{entity_label} {code} v{version} submitted for approval",
    "program.approved": "{entity_label} {code} v{version} approved",
    "program.rejected": "Changes requested for {entity_label} {code} v{version}",
    "program.published": "{entity_label} {code} v{version} is now active",
    "enrollment.submitted": "Enrollment request for {academic_year} semester {semester} awaiting review",
    "enrollment.approved": "Enrollment for {academic_year} semester {semester} approved",
    "enrollment.rejected": "Enrollment for {academic_year} semester {semester} needs changes",
}


def send_email(to_email: str, subject: str, message: str, settings: Settings | None = None):
    settings = settings or get_settings()
    if settings.testing:
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = settings.smtp_server
    if not server:
        return
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.email_from
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(server) as s:
        s.send_message(msg)


class Notifier:
    """Best-effort dispatcher invoked after a state transition has committed."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def notify(self, event: str, payload: dict) -> int:
        """Send ``event`` to every address in ``payload["recipients"]``.

        Delivery failures are logged and swallowed; the return value is the
        number of messages handed to the transport.
        """
        template = _SUBJECTS.get(event)
        if template is None:
            logger.warning("no notification template for event %s", event)
            return 0
        try:
            subject = template.format(**payload)
        except KeyError:
            logger.warning("notification payload for %s is missing fields", event, exc_info=True)
            return 0
        body = payload.get("message") or subject
        sent = 0
        for recipient in payload.get("recipients") or []:
            try:
                send_email(recipient, subject, body, self.settings)
            except (smtplib.SMTPException, OSError):
                logger.warning("failed to deliver %s to %s", event, recipient, exc_info=True)
                continue
            sent += 1
        logger.info("dispatched %s to %d recipient(s)", event, sent)
        return sent


@lru_cache
def get_notifier() -> Notifier:
    return Notifier(get_settings())


def notify_safely(notifier: Notifier | None, event: str, payload: dict) -> None:
    """Dispatch after commit; a broken transport never surfaces to the caller."""
    notifier = notifier or get_notifier()
    try:
        notifier.notify(event, payload)
    except Exception:
        logger.warning("notification %s failed after commit", event, exc_info=True)
