"""Unit tests for :class:`calnews.mail.dispatcher.SmtpDispatcher`.

How:
  Replace :class:`smtplib.SMTP` with :class:`fakes.FakeSmtp` and inspect the
  recorded session.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from calnews.accounts import AccountEntry
from calnews.config.schema import SmtpConfig
from calnews.mail.dispatcher import DispatchFailure, SmtpDispatcher

from fakes import FakeSmtp


@pytest.fixture
def fake_smtp(monkeypatch: pytest.MonkeyPatch):
    FakeSmtp.instances = []
    FakeSmtp.refuse_login = False
    monkeypatch.setattr("calnews.mail.dispatcher.smtplib.SMTP", FakeSmtp)
    return FakeSmtp


@pytest.fixture
def settings(tmp_path: Path) -> SmtpConfig:
    secret = tmp_path / "smtp_password"
    secret.write_text("s3cret\n")
    return SmtpConfig(
        host="smtp.example.org",
        port=587,
        username="newsletter",
        password_file=str(secret),
        sender="newsletter@example.org",
    )


def test_send_uses_starttls_login_and_envelope_recipients(fake_smtp, settings: SmtpConfig) -> None:
    dispatcher = SmtpDispatcher(settings, body="See the calendar.")
    account = AccountEntry(name="editor", email="editor@example.org", calendars=["team"])

    dispatcher.send(["a@example.org", "b@example.org"], "Weekly agenda", account=account)

    (session,) = fake_smtp.instances
    assert (session.host, session.port, session.timeout) == ("smtp.example.org", 587, 30)
    assert session.started_tls
    assert session.logins == [("newsletter", "s3cret")]
    message, to_addrs = session.messages[0]
    assert to_addrs == ["a@example.org", "b@example.org"]
    assert message["Subject"] == "Weekly agenda"
    assert message["From"] == "editor@example.org"
    assert "a@example.org" not in message.as_string()
    assert session.closed


def test_sender_falls_back_to_configured_address(settings: SmtpConfig) -> None:
    message = SmtpDispatcher(settings).build_message("Agenda", account=AccountEntry(name="viewer"))

    assert message["From"] == "newsletter@example.org"
    assert message.get_content().strip() == "Agenda"


def test_empty_recipients_fail_without_connecting(fake_smtp, settings: SmtpConfig) -> None:
    with pytest.raises(DispatchFailure):
        SmtpDispatcher(settings).send(["", ""], "Agenda")

    assert fake_smtp.instances == []


def test_smtp_errors_become_dispatch_failures(fake_smtp, settings: SmtpConfig) -> None:
    fake_smtp.refuse_login = True

    with pytest.raises(DispatchFailure):
        SmtpDispatcher(settings).send(["a@example.org"], "Agenda")


def test_connection_errors_become_dispatch_failures(monkeypatch: pytest.MonkeyPatch, settings: SmtpConfig) -> None:
    def _refuse(*args, **kwargs):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr("calnews.mail.dispatcher.smtplib.SMTP", _refuse)

    with pytest.raises(DispatchFailure):
        SmtpDispatcher(settings).send(["a@example.org"], "Agenda")


def test_unreadable_password_file_fails(fake_smtp, settings: SmtpConfig, tmp_path: Path) -> None:
    broken = settings.model_copy(update={"password_file": str(tmp_path / "missing")})

    with pytest.raises(DispatchFailure):
        SmtpDispatcher(broken).send(["a@example.org"], "Agenda")
