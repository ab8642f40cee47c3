"""
PDFSign Backend: Mail Sender
==============================

What:  Sends HTML email through an SMTP relay.
How:   smtplib runs in Starlette's threadpool so the event loop keeps serving
       requests while the relay handshake is in flight.
Who:   DocumentService.email_document().

Failure policy:
    Every smtplib/socket failure becomes MailError (502). Mail is best-effort
    and unrelated to the signing pipeline, so nothing is rolled back.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from html import escape

from starlette.concurrency import run_in_threadpool

from pdfsign.exceptions import MailError

logger = logging.getLogger(__name__)

SIGNED_PDF_SUBJECT = "Signed PDF Document"


def render_signed_pdf_email(file_url: str) -> str:
    """Body of the "your signed document is ready" email."""
    safe_url = escape(file_url, quote=True)
    return (
        "<p>Hello,</p>\n"
        "<p>Your signed document is available:</p>\n"
        f'<p><a href="{safe_url}" target="_blank">{safe_url}</a></p>\n'
    )


class SmtpMailSender:

    def __init__(
        self,
        host: str,
        port: int = 465,
        username: str = "",
        password: str = "",
        use_ssl: bool = True,
        sender: str = "no-reply@pdfsign.local",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.sender = sender
        self.timeout = timeout

    async def send(self, to_address: str, subject: str, body_html: str) -> None:
        """
        Deliver one message.

        Raises:
            MailError: relay not configured, connection refused, auth failed,
                or recipient rejected.
        """
        if not self.host:
            raise MailError(
                message="Email delivery is not configured on this server.",
                context={"reason": "smtp_host_missing"},
            )

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content("Your signed document is available. Open this email in an HTML viewer.")
        message.add_alternative(body_html, subtype="html")

        try:
            await run_in_threadpool(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", to_address, str(e))
            raise MailError(context={"error_type": type(e).__name__})

        logger.info("Email sent to %s (subject=%r)", to_address, subject)

    def _deliver(self, message: EmailMessage) -> None:
        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout,
                context=ssl.create_default_context(),
            )
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with smtp:
            if not self.use_ssl:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls(context=ssl.create_default_context())
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
