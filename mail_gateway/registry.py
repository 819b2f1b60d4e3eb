"""
Account registry.

Turns raw account configs into immutable ``Account`` values. The explicit
``kind`` field decides the protocol; names are never inspected for it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import pydantic

from .errors import NotFoundError, ValidationError
from .helpers import mask_sensitive_data
from .state.types import (
  Account,
  AccountKind,
  GmailCredentials,
  ImapCredentials,
  KindFilter,
  SmtpSettings,
)

log = logging.getLogger("mail_gateway.registry")


def derive_smtp_settings(raw: dict[str, Any]) -> dict[str, Any]:
  """SMTP defaults for an IMAP account: same user, imap->smtp host, STARTTLS on 587."""
  host = str(raw.get("host", ""))
  return {
    "host": host.replace("imap", "smtp"),
    "port": 587,
    "secure": False,
    "user": raw.get("user", ""),
    "password": None,
  }


def _build_account(raw: Any) -> Account:
  if not isinstance(raw, dict):
    raise ValidationError(f"Account config must be an object, got {type(raw).__name__}")

  name = raw.get("name")
  if not isinstance(name, str) or not name.strip():
    raise ValidationError("Account config is missing a name")

  try:
    kind = AccountKind(raw.get("kind"))
  except ValueError as e:
    raise ValidationError(
      f"Account {name!r} has unknown kind {raw.get('kind')!r}; expected 'gmail' or 'imap'"
    ) from e

  fields = {k: v for k, v in raw.items() if k not in ("name", "kind")}
  try:
    if kind is AccountKind.GMAIL:
      credentials: GmailCredentials | ImapCredentials = GmailCredentials(**fields)
    else:
      smtp = fields.get("smtp") or derive_smtp_settings(fields)
      credentials = ImapCredentials(**{**fields, "smtp": SmtpSettings(**smtp)})
    return Account(name=name, kind=kind, credential_ref=credentials)
  except pydantic.ValidationError as e:
    problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
    raise ValidationError(f"Invalid config for account {name!r}: {problems}", account_name=name) from e


class AccountRegistry:
  """Immutable set of configured accounts, addressable by name and by kind.

  Expects accounts that went through ``load``; use ``from_configs`` for raw input.
  """

  def __init__(self, accounts: Iterable[Account] = ()) -> None:
    self._accounts = {account.name: account for account in accounts}

  @classmethod
  def from_configs(cls, raw_account_configs: Iterable[Any]) -> AccountRegistry:
    return cls(load(raw_account_configs))

  def get(self, name: str) -> Account:
    account = self._accounts.get(name)
    if account is None:
      raise NotFoundError(f"Account not found: {name}", account_name=name)
    return account

  def all_of_kind(self, kind: AccountKind) -> list[Account]:
    return [a for a in self._accounts.values() if a.kind is kind]

  def select(self, kind_filter: KindFilter = KindFilter.ALL) -> list[Account]:
    if kind_filter is KindFilter.GMAIL_ONLY:
      return self.all_of_kind(AccountKind.GMAIL)
    if kind_filter is KindFilter.IMAP_ONLY:
      return self.all_of_kind(AccountKind.IMAP)
    return list(self._accounts.values())

  def names(self) -> list[str]:
    return list(self._accounts)

  def __contains__(self, name: object) -> bool:
    return name in self._accounts

  def __len__(self) -> int:
    return len(self._accounts)


def load(raw_account_configs: Iterable[Any]) -> list[Account]:
  """Validate raw configs into accounts; duplicate names are rejected."""
  accounts: list[Account] = []
  seen: set[str] = set()
  for raw in raw_account_configs:
    account = _build_account(raw)
    if account.name in seen:
      raise ValidationError(f"Duplicate account name: {account.name}", account_name=account.name)
    seen.add(account.name)
    accounts.append(account)
    log.debug("Registered %s account %s: %s", account.kind.value, account.name, mask_sensitive_data(raw))
  log.info("Loaded %d account(s)", len(accounts))
  return accounts
