"""Module: calnews/accountctl.py

What:
  Provide a non-interactive command-line utility for managing the accounts
  stored in ``accounts.yaml``. Operators can list, inspect, create, update, and
  delete the accounts the scheduler may send newsletters on behalf of.

Why:
  The account locator picks the first account that can see every newsletter
  calendar. Editing the calendar lists by hand invites indentation mistakes
  that silently change which account is selected.

How:
  - Parse ``accounts.yaml`` through :func:`calnews.accounts.load_accounts`.
  - Expose ``list``, ``show``, ``set``, and ``remove`` subcommands through
    ``argparse`` with script-friendly arguments.
  - Write the validated document back with
    :func:`calnews.accounts.write_accounts`.
  - Print JSON so shell scripts can consume the results.

Interfaces:
  - main(argv: Optional[List[str]] = None) -> int

Invariants:
  - Account names are unique; ``set`` replaces an existing entry in place so
    the scan order used by the locator does not change.
"""
from __future__ import annotations

import argparse
import json
import pathlib
from typing import List, Optional

from pydantic import ValidationError

from .accounts import AccountEntry, load_accounts, write_accounts


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``calnews-accountctl`` command-line utility.

    Args:
      argv: Optional list of argument strings; defaults to ``sys.argv[1:]``.

    Returns:
      ``0`` on success and ``1`` on validation or lookup failures.
    """

    parser = _build_parser()
    args = parser.parse_args(argv)

    path = pathlib.Path(args.accounts)
    try:
        if args.command == "list":
            return _cmd_list(path)
        if args.command == "show":
            return _cmd_show(path, args.name)
        if args.command == "set":
            return _cmd_set(path=path, name=args.name, email=args.email, calendars=args.calendar)
        if args.command == "remove":
            return _cmd_remove(path, args.name)
    except ValidationError as exc:
        _print_error("validation_error", exc.errors(include_url=False))
        return 1
    parser.error("Unknown command")
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage calnews sender accounts")
    parser.add_argument(
        "--accounts",
        type=str,
        default="accounts.yaml",
        help="Path to the accounts YAML document (defaults to ./accounts.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List configured account names")

    show_parser = subparsers.add_parser("show", help="Show a single account as JSON")
    show_parser.add_argument("name", help="Account name to inspect")

    set_parser = subparsers.add_parser("set", help="Create or update an account definition")
    set_parser.add_argument("name", help="Logical account name")
    set_parser.add_argument("--email", default=None, help="Sender address for newsletters")
    set_parser.add_argument(
        "--calendar",
        action="append",
        default=[],
        help="Calendar id visible to the account (repeatable)",
    )

    remove_parser = subparsers.add_parser("remove", help="Delete an account definition")
    remove_parser.add_argument("name", help="Account name to delete")

    return parser


def _cmd_list(path: pathlib.Path) -> int:
    """Print account names in scan order, one per line."""

    for entry in load_accounts(path).accounts:
        print(entry.name)
    return 0


def _cmd_show(path: pathlib.Path, name: str) -> int:
    document = load_accounts(path)
    for entry in document.accounts:
        if entry.name == name:
            print(json.dumps(entry.model_dump(mode="json"), indent=2, sort_keys=True))
            return 0
    _print_error("not_found", {"name": name})
    return 1


def _cmd_set(*, path: pathlib.Path, name: str, email: Optional[str], calendars: List[str]) -> int:
    """Create or update an account definition in ``accounts.yaml``.

    What:
      Insert a new entry at the end of the document or replace an existing
      entry with the same name where it stands.

    Args:
      path: Accounts file path.
      name: Logical account identifier.
      email: Sender address, or ``None``.
      calendars: Calendar ids visible to the account.

    Returns:
      ``0`` on success.
    """

    document = load_accounts(path)
    entry = AccountEntry(name=name, email=email, calendars=list(dict.fromkeys(calendars)))
    replaced = False
    updated: List[AccountEntry] = []
    for item in document.accounts:
        if item.name == name:
            updated.append(entry)
            replaced = True
        else:
            updated.append(item)
    if not replaced:
        updated.append(entry)
    document.accounts = updated
    write_accounts(path, document)
    print(json.dumps({"status": "updated", "name": name}))
    return 0


def _cmd_remove(path: pathlib.Path, name: str) -> int:
    document = load_accounts(path)
    remaining = [item for item in document.accounts if item.name != name]
    if len(remaining) == len(document.accounts):
        _print_error("not_found", {"name": name})
        return 1
    document.accounts = remaining
    write_accounts(path, document)
    print(json.dumps({"status": "removed", "name": name}))
    return 0


def _print_error(kind: str, detail: object) -> None:
    """Emit structured JSON errors for CLI consumption."""

    print(json.dumps({"error": kind, "detail": detail}, sort_keys=True, default=str))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
