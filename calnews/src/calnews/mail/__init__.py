"""Outgoing mail for calnews: the dispatcher protocol and its SMTP backend."""

from .dispatcher import DispatchFailure, Dispatcher, SmtpDispatcher

__all__ = ["DispatchFailure", "Dispatcher", "SmtpDispatcher"]
