"""Send the newsletter mail over SMTP.

What:
  Define the :class:`Dispatcher` protocol the dispatch gate calls and an SMTP
  implementation that delivers one message to the configured recipients.

Why:
  The gate only needs to know whether a send succeeded. Wrapping every
  transport error in :class:`DispatchFailure` lets it keep the last execution
  time unchanged and retry on the next poll.

How:
  Build an :class:`email.message.EmailMessage` with the schedule's subject and
  the configured body, open an :class:`smtplib.SMTP` session (optionally
  upgraded with STARTTLS and authenticated with a password read from a secret
  file), and send it. ``smtplib`` and socket errors are re-raised as
  :class:`DispatchFailure`.

Interfaces:
  :class:`Dispatcher`, :class:`SmtpDispatcher`, :class:`DispatchFailure`.

Invariants & Safety:
  - Recipients go into ``Bcc`` semantics: they are passed to the SMTP envelope
    only and never written into a header.
  - An empty recipient list is a failure, not a silent no-op.
"""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Optional, Protocol, Sequence

from ..accounts import AccountEntry
from ..config.schema import SmtpConfig


class DispatchFailure(RuntimeError):
    """Raised when the newsletter could not be handed to the mail server."""


class Dispatcher(Protocol):
    """Anything able to send the newsletter."""

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        *,
        account: Optional[AccountEntry] = None,
    ) -> None:
        ...


class SmtpDispatcher:
    """Deliver the newsletter through an SMTP relay.

    What:
      Sends one message per call to every address in ``recipients``.

    How:
      Connects per send; the scheduler sends at most a few mails a day so
      there is no connection to keep warm.
    """

    def __init__(self, settings: SmtpConfig, *, body: str = ""):
        self._settings = settings
        self._body = body

    def _password(self) -> Optional[str]:
        if not self._settings.password_file:
            return None
        try:
            return Path(self._settings.password_file).read_text().strip()
        except OSError as exc:
            raise DispatchFailure(f"Unable to read SMTP password file: {exc}") from exc

    def build_message(self, subject: str, *, account: Optional[AccountEntry] = None) -> EmailMessage:
        """Return the message that :meth:`send` would deliver."""

        sender = (account.email if account and account.email else None) or self._settings.sender
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = sender
        message["To"] = sender
        message.set_content(self._body or subject)
        return message

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        *,
        account: Optional[AccountEntry] = None,
    ) -> None:
        """Send the newsletter.

        Args:
          recipients: Envelope recipients.
          subject: Subject line from the schedule.
          account: Account the newsletter is sent on behalf of; its address
            replaces the configured sender when set.

        Raises:
          DispatchFailure: If there are no recipients or SMTP fails.
        """

        addresses = [address for address in recipients if address]
        if not addresses:
            raise DispatchFailure("Newsletter has no recipients")
        message = self.build_message(subject, account=account)
        settings = self._settings
        password = self._password()
        try:
            with smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout_s) as smtp:
                if settings.starttls:
                    smtp.starttls()
                if settings.username and password is not None:
                    smtp.login(settings.username, password)
                smtp.send_message(message, to_addrs=addresses)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchFailure(f"SMTP delivery failed: {exc}") from exc
