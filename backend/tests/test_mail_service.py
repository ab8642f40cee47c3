"""Tests for the SMTP mail sender; smtplib is patched out."""

import smtplib

import pytest
from unittest.mock import patch

from pdfsign.exceptions import MailError
from pdfsign.services.mail_service import SmtpMailSender, render_signed_pdf_email


class TestSmtpMailSender:

    @pytest.mark.asyncio
    async def test_ssl_delivery(self):
        sender = SmtpMailSender(
            host="smtp.example.com", port=465, username="bot", password="pw",
            sender="pdfsign@example.com",
        )
        with patch("pdfsign.services.mail_service.smtplib.SMTP_SSL") as smtp_cls:
            smtp = smtp_cls.return_value

            await sender.send("alice@example.com", "Signed PDF Document", "<p>hi</p>")

        smtp.login.assert_called_once_with("bot", "pw")
        message = smtp.send_message.call_args.args[0]
        assert message["To"] == "alice@example.com"
        assert message["From"] == "pdfsign@example.com"
        assert message["Subject"] == "Signed PDF Document"

    @pytest.mark.asyncio
    async def test_starttls_when_offered(self):
        sender = SmtpMailSender(host="smtp.example.com", port=587, use_ssl=False)
        with patch("pdfsign.services.mail_service.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value
            smtp.has_extn.return_value = True

            await sender.send("alice@example.com", "s", "<p>hi</p>")

        smtp.starttls.assert_called_once()
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    @pytest.mark.asyncio
    async def test_unconfigured_host(self):
        with pytest.raises(MailError, match="not configured"):
            await SmtpMailSender(host="").send("alice@example.com", "s", "b")

    @pytest.mark.asyncio
    async def test_relay_failure_is_mail_error(self):
        sender = SmtpMailSender(host="smtp.example.com")
        with patch("pdfsign.services.mail_service.smtplib.SMTP_SSL") as smtp_cls:
            smtp_cls.side_effect = smtplib.SMTPConnectError(421, b"busy")

            with pytest.raises(MailError):
                await sender.send("alice@example.com", "s", "b")


def test_template_escapes_link():
    body = render_signed_pdf_email('http://test/a.pdf?x="><script>')
    assert "<script>" not in body
    assert "http://test/a.pdf" in body
