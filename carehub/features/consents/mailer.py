"""
Outgoing email over SMTP.
"""
import smtplib
from email.message import EmailMessage

from carehub.core.config import MailSettings
from carehub.utils import get_logger

log = get_logger(__name__)


class Mailer:
    """Sends HTML email through the configured SMTP relay."""

    def __init__(self, settings: MailSettings):
        self.settings = settings

    def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        attachments: list[tuple[str, bytes]] | None = None,
    ) -> bool:
        """
        Send one message. Blocking; call it from a worker thread.

        Attachments are (file name, PDF bytes) pairs. Returns False when SMTP
        is not configured or delivery fails.
        """
        if not self.settings.configured:
            log.warning("Email to %s skipped: SMTP not configured.", to)
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.settings.from_address
        msg["To"] = to
        msg.set_content(text_body or "Please view this message in an HTML capable email client.")
        msg.add_alternative(html_body, subtype="html")
        for file_name, data in attachments or ():
            msg.add_attachment(data, maintype="application", subtype="pdf", filename=file_name)

        try:
            with smtplib.SMTP(self.settings.host, self.settings.port, timeout=self.settings.timeout) as server:
                server.ehlo()
                if self.settings.use_tls:
                    server.starttls()
                    server.ehlo()
                if self.settings.user:
                    server.login(self.settings.user, self.settings.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            log.exception("Failed to send email to %s: %s", to, exc)
            return False

        log.info("Email sent to %s", to)
        return True


def get_mailer() -> Mailer:
    return Mailer(MailSettings.from_env())
