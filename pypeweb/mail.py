"""
Outgoing mail.

``MAIL_DRIVER=smtp`` delivers through ``smtplib`` (with STARTTLS when
``MAIL_USE_TLS`` is set); ``MAIL_DRIVER=log`` only logs the message, which
is handy in development.
"""

import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import List, Optional, Sequence, Union

from pypeweb.config import MailSettings, load_mail_settings
from pypeweb.errors import MailError
from pypeweb.logging import get_logger

logger = get_logger(__name__)


class Mailer:
    def __init__(self, settings: Optional[MailSettings] = None):
        self.settings = settings or load_mail_settings()

    def build_message(
        self, to: Sequence[str], subject: str, html: str, text: Optional[str] = None
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.settings.from_name, self.settings.from_address))
        message["To"] = ", ".join(to)
        message.set_content(text or "This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    def send(self, to: Union[str, List[str]], subject: str, html: str, text: Optional[str] = None) -> bool:
        """Send one message to one or more recipients."""
        recipients = [to] if isinstance(to, str) else list(to)
        message = self.build_message(recipients, subject, html, text)

        if self.settings.driver == "log":
            logger.info("mail_logged", to=recipients, subject=subject, body_length=len(html))
            return True

        try:
            with smtplib.SMTP(self.settings.host, self.settings.port, timeout=self.settings.timeout) as server:
                if self.settings.use_tls:
                    server.starttls()
                if self.settings.username and self.settings.password:
                    server.login(self.settings.username, self.settings.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("mail_failed", to=recipients, subject=subject, error=str(exc))
            raise MailError(f"Failed to send mail to {', '.join(recipients)}: {exc}") from exc

        logger.info("mail_sent", to=recipients, subject=subject)
        return True
