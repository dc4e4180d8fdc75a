"""Tests for pypeweb.mail."""

import smtplib
from unittest.mock import patch

import pytest

from pypeweb.config import MailSettings
from pypeweb.errors import MailError
from pypeweb.mail import Mailer


@pytest.fixture
def settings():
    return MailSettings(
        host="smtp.example.com",
        port=2525,
        username="mailer",
        password="hunter2",
        from_address="blog@example.com",
        from_name="Pype Blog",
    )


class TestBuildMessage:
    def test_headers_and_parts(self, settings):
        message = Mailer(settings).build_message(["a@example.com", "b@example.com"], "Hi", "<p>Hi</p>", "Hi")
        assert message["Subject"] == "Hi"
        assert message["From"] == "Pype Blog <blog@example.com>"
        assert message["To"] == "a@example.com, b@example.com"
        assert message.get_body(("plain",)).get_content().strip() == "Hi"
        assert message.get_body(("html",)).get_content().strip() == "<p>Hi</p>"

    def test_default_text_part(self, settings):
        message = Mailer(settings).build_message(["a@example.com"], "Hi", "<p>Hi</p>")
        assert "HTML capable" in message.get_body(("plain",)).get_content()


class TestSend:
    def test_smtp_delivery(self, settings):
        with patch("pypeweb.mail.smtplib.SMTP") as smtp:
            assert Mailer(settings).send("a@example.com", "Hi", "<p>Hi</p>")

        smtp.assert_called_once_with("smtp.example.com", 2525, timeout=10)
        server = smtp.return_value.__enter__.return_value
        server.starttls.assert_called_once_with()
        server.login.assert_called_once_with("mailer", "hunter2")
        sent = server.send_message.call_args[0][0]
        assert sent["To"] == "a@example.com"

    def test_without_tls_or_credentials(self):
        settings = MailSettings(use_tls=False)
        with patch("pypeweb.mail.smtplib.SMTP") as smtp:
            Mailer(settings).send(["a@example.com"], "Hi", "<p>Hi</p>")
        server = smtp.return_value.__enter__.return_value
        server.starttls.assert_not_called()
        server.login.assert_not_called()

    @pytest.mark.parametrize("error", [OSError("connection refused"), smtplib.SMTPAuthenticationError(535, b"nope")])
    def test_failures_raise_mail_error(self, settings, error):
        with patch("pypeweb.mail.smtplib.SMTP", side_effect=error):
            with pytest.raises(MailError, match="Failed to send mail to a@example.com"):
                Mailer(settings).send("a@example.com", "Hi", "<p>Hi</p>")

    def test_log_driver_skips_smtp(self):
        with patch("pypeweb.mail.smtplib.SMTP") as smtp:
            assert Mailer(MailSettings(driver="log")).send("a@example.com", "Hi", "<p>Hi</p>")
        smtp.assert_not_called()


class TestSettings:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("MAIL_HOST", "mail.internal")
        monkeypatch.setenv("MAIL_FROM", "team@example.com")
        monkeypatch.setenv("MAIL_DRIVER", "log")
        mailer = Mailer()
        assert mailer.settings.host == "mail.internal"
        assert mailer.settings.from_address == "team@example.com"
        assert mailer.settings.driver == "log"
