import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NotifyResult(BaseModel):
    success: bool
    message: str


class EmailNotifier:
    """
    Outbound email. This implementation only logs the message and reports
    success; a real mail provider plugs in by overriding ``send``.
    """

    def send(self, recipient: str, subject: str, body: str, total_amount: float = 0.0) -> NotifyResult:
        if not recipient:
            return NotifyResult(success=False, message="No recipient address given.")
        subject = subject or f"Your receipt for Rs.{total_amount:.2f}"
        logger.info("email to %s: %s (%d chars)", recipient, subject, len(body))
        return NotifyResult(success=True, message="Email sent successfully.")


email_notifier = EmailNotifier()
