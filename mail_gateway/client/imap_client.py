"""
Async IMAP session over aioimaplib.

One session per operation: the connector opens and authenticates, the pool
closes the session on release.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from typing import Any

from aioimaplib import IMAP4, IMAP4_SSL
from aioimaplib.aioimaplib import Abort, CommandTimeout

from ..errors import AuthError, MailConnectionError, MailTimeoutError, NotFoundError, ProtocolError
from ..state.types import Account, AccountKind, ImapCredentials
from ..vault import CredentialVault
from .parsers import (
  FetchedHeaders,
  parse_fetch_headers,
  parse_full_message,
  parse_list_response,
  parse_search_response,
)

log = logging.getLogger("mail_gateway.client.imap")

LOGOUT_TIMEOUT = 5.0

HEADER_FETCH_ITEMS = (
  "(UID FLAGS BODYSTRUCTURE BODY.PEEK[HEADER.FIELDS (FROM TO SUBJECT DATE MESSAGE-ID)] BODY.PEEK[TEXT]<0.1024>)"
)


def quote_mailbox(name: str) -> str:
  """Quote a mailbox name for use as an IMAP astring."""
  escaped = name.replace("\\", "\\\\").replace('"', '\\"')
  return f'"{escaped}"'


def _abort_transport(imap: IMAP4 | IMAP4_SSL) -> None:
  protocol = getattr(imap, "protocol", None)
  transport = getattr(protocol, "transport", None)
  if transport is not None:
    transport.close()


class ImapSession:
  """An authenticated IMAP connection for one account."""

  kind = AccountKind.IMAP
  reusable = False

  def __init__(self, account: Account, imap: IMAP4 | IMAP4_SSL) -> None:
    self.account = account
    self._imap = imap
    self._closed = False
    self.selected: str | None = None

  @property
  def closed(self) -> bool:
    return self._closed

  async def _run(self, what: str, coro: Awaitable[Any]) -> Any:
    """Await an aioimaplib command, mapping its failures into the taxonomy."""
    if self._closed:
      raise MailConnectionError(f"IMAP session for {self.account.name} is closed", account_name=self.account.name)
    try:
      return await coro
    except CommandTimeout as e:
      raise MailTimeoutError(f"IMAP {what} timed out", phase="operation", account_name=self.account.name) from e
    except Abort as e:
      self._closed = True
      raise MailConnectionError(f"IMAP connection lost during {what}: {e}", account_name=self.account.name) from e
    except OSError as e:
      self._closed = True
      raise MailConnectionError(f"IMAP {what} failed: {e}", account_name=self.account.name) from e

  async def select(self, folder: str = "INBOX", readonly: bool = True) -> None:
    """EXAMINE (read-only) or SELECT a folder; a missing folder is NotFound."""
    mailbox = quote_mailbox(folder)
    if readonly:
      response = await self._run("EXAMINE", self._imap.examine(mailbox))
    else:
      response = await self._run("SELECT", self._imap.select(mailbox))
    if response.result != "OK":
      log.debug("Failed to open folder %s: %s", folder, response.lines)
      raise NotFoundError(f"Folder not found: {folder}", account_name=self.account.name)
    self.selected = folder

  async def list_folders(self) -> list[str]:
    response = await self._run("LIST", self._imap.list('""', "*"))
    if response.result != "OK":
      raise ProtocolError(f"LIST failed: {response.lines}", account_name=self.account.name)
    return parse_list_response(response.lines)

  async def uid_search(self, criteria: str = "ALL") -> list[int]:
    """Search the selected folder, return UIDs ascending."""
    response = await self._run("SEARCH", self._imap.uid("search", criteria))
    if response.result != "OK":
      raise ProtocolError(f"SEARCH {criteria} failed: {response.lines}", account_name=self.account.name)
    return parse_search_response(response.lines)

  async def fetch_headers(self, uids: list[int]) -> list[FetchedHeaders]:
    if not uids:
      return []
    uid_set = ",".join(str(u) for u in uids)
    response = await self._run("FETCH", self._imap.uid("fetch", uid_set, HEADER_FETCH_ITEMS))
    if response.result != "OK":
      raise ProtocolError(f"FETCH failed: {response.lines}", account_name=self.account.name)
    return parse_fetch_headers(response.lines)

  async def fetch_message(self, uid: int) -> tuple[bytes, list[str]] | None:
    """Full RFC822 source plus flags, or None when the UID does not exist."""
    response = await self._run("FETCH", self._imap.uid("fetch", str(uid), "(UID FLAGS RFC822)"))
    if response.result != "OK":
      return None
    return parse_full_message(response.lines)

  async def store_flags(self, uid: int, flags: str, action: str = "+FLAGS") -> bool:
    response = await self._run("STORE", self._imap.uid("store", str(uid), action, flags))
    return response.result == "OK"

  async def noop(self) -> bool:
    response = await self._run("NOOP", self._imap.noop())
    return response.result == "OK"

  async def close(self, *, force: bool = False) -> None:
    """LOGOUT, then drop the socket. ``force`` drops it without LOGOUT."""
    if self._closed:
      return
    self._closed = True
    if not force:
      with contextlib.suppress(Exception):
        await asyncio.wait_for(self._imap.logout(), timeout=LOGOUT_TIMEOUT)
    _abort_transport(self._imap)


class ImapConnector:
  """Opens ``ImapSession``s; passwords are decrypted at connect time only."""

  reusable = False

  def __init__(
    self,
    vault: CredentialVault,
    *,
    command_timeout: float = 60.0,
    logger: logging.Logger | None = None,
  ) -> None:
    self._vault = vault
    self._command_timeout = command_timeout
    self.log = logger or log

  async def connect(self, account: Account) -> ImapSession:
    creds = account.credential_ref
    if not isinstance(creds, ImapCredentials):
      raise AuthError(f"Account {account.name} has no IMAP credentials", account_name=account.name)

    password = self._vault.decrypt(creds.password, account_name=account.name)

    if creds.tls:
      imap: IMAP4 | IMAP4_SSL = IMAP4_SSL(host=creds.host, port=creds.port, timeout=self._command_timeout)
    else:
      imap = IMAP4(host=creds.host, port=creds.port, timeout=self._command_timeout)

    try:
      await imap.wait_hello_from_server()
      response = await imap.login(creds.user, password)
    except asyncio.CancelledError:
      # Connect budget expired; do not leave the socket behind.
      _abort_transport(imap)
      raise
    except (Abort, CommandTimeout, OSError) as e:
      _abort_transport(imap)
      raise MailConnectionError(
        f"Cannot connect to IMAP server {creds.host}:{creds.port}: {e}", account_name=account.name
      ) from e

    if response.result != "OK":
      self.log.error("IMAP login failed for %s: %s", account.name, response.lines)
      _abort_transport(imap)
      raise AuthError(f"IMAP login rejected for {account.name}", account_name=account.name)

    self.log.info("IMAP connected to %s as %s", creds.host, creds.user)
    return ImapSession(account, imap)
