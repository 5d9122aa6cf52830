"""Account lookup for newsletter dispatch.

What:
  Model the ``accounts.yaml`` document and find an account whose visible
  calendars include every calendar the newsletter draws from.

Why:
  The newsletter is sent on behalf of an account that can read the source
  calendars. The lookup is a plain query over configuration; it never switches
  any session or global "current user" state.

How:
  Parse ``accounts.yaml`` with :func:`yaml.safe_load` into strict Pydantic
  models, then scan the accounts in document order and return the first whose
  calendar set is a superset of the required ids.

Interfaces:
  :class:`AccountEntry`, :class:`AccountsDocument`, :class:`AccountLocator`,
  :class:`NoSuitableAccount`, :class:`AccountsUnreadable`,
  :class:`AccountLookupError`, :func:`load_accounts`, :func:`write_accounts`.

Invariants:
  - Scan order is the order of the document, so repeated lookups against an
    unchanged file return the same account.
  - ``accounts.yaml`` is rewritten atomically (temporary file + rename).
"""
from __future__ import annotations

import pathlib
import tempfile
from typing import Iterable, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .utils.logging import JsonLogger, get_logger


class AccountLookupError(LookupError):
    """Raised when the account lookup cannot produce a sender."""


class AccountsUnreadable(AccountLookupError):
    """Raised when ``accounts.yaml`` cannot be read, parsed, or validated."""

    def __init__(self, path: pathlib.Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Unable to load accounts from {path}: {reason}")


class NoSuitableAccount(AccountLookupError):
    """Raised when no account can read every required calendar."""

    def __init__(self, required: Iterable[str]) -> None:
        self.required = sorted(set(required))
        super().__init__(
            "No suitable account found for sending newsletter (calendars: "
            + ", ".join(self.required)
            + ")"
        )


class AccountEntry(BaseModel):
    """Single account entry stored in ``accounts.yaml``.

    Attributes:
      name: Logical account identifier unique within the document.
      email: Address used as the newsletter sender, when set.
      calendars: Calendar ids visible to the account.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    email: Optional[str] = None
    calendars: List[str] = Field(default_factory=list)


class AccountsDocument(BaseModel):
    """Top-level ``accounts.yaml`` document."""

    model_config = ConfigDict(extra="forbid")

    accounts: List[AccountEntry] = Field(default_factory=list)


def load_accounts(path: pathlib.Path) -> AccountsDocument:
    """Load the accounts document, returning an empty one when absent."""

    if not path.exists():
        return AccountsDocument()
    data = yaml.safe_load(path.read_text()) or {}
    return AccountsDocument.model_validate(data)


def write_accounts(path: pathlib.Path, document: AccountsDocument) -> None:
    """Persist the accounts document to disk atomically.

    What:
      Serialise :class:`AccountsDocument` into YAML and replace ``path``.

    How:
      Create parent directories, write to a temporary file in the target
      directory, and rename it into place so readers never see a partial file.
      A failed write removes the temporary file before re-raising.

    Args:
      path: Destination path for ``accounts.yaml``.
      document: Validated accounts document to persist.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    payload = yaml.safe_dump(document.model_dump(mode="json"), sort_keys=True)
    handle = tempfile.NamedTemporaryFile("w", dir=str(path.parent), delete=False)
    temp_path = pathlib.Path(handle.name)
    try:
        with handle:
            handle.write(payload)
        temp_path.replace(path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


class AccountLocator:
    """Capability check over the configured accounts.

    What:
      Answers "which account may send a newsletter built from these
      calendars?" without side effects.

    How:
      Reads ``accounts.yaml`` on each lookup so edits made through
      ``calnews-accountctl`` apply to the next poll.
    """

    def __init__(self, path: pathlib.Path, *, logger: Optional[JsonLogger] = None):
        self._path = pathlib.Path(path)
        self._logger = logger or get_logger("calnews.accounts")

    def find_account_with_calendar_access(self, required: Iterable[str]) -> AccountEntry:
        """Return the first account that can see every calendar in ``required``.

        Args:
          required: Calendar ids the newsletter reads.

        Returns:
          The matching :class:`AccountEntry`.

        Raises:
          AccountsUnreadable: If ``accounts.yaml`` is unreadable or invalid.
          NoSuitableAccount: If no account qualifies.
        """

        wanted = set(required)
        self._logger.info("account_lookup_started", calendars=sorted(wanted))
        try:
            document = load_accounts(self._path)
        except (OSError, yaml.YAMLError, ValidationError) as exc:
            self._logger.error("accounts_unreadable", path=str(self._path), error=str(exc))
            raise AccountsUnreadable(self._path, str(exc)) from exc
        for entry in document.accounts:
            if wanted.issubset(entry.calendars):
                self._logger.info("account_selected", account=entry.name)
                return entry
        raise NoSuitableAccount(wanted)
