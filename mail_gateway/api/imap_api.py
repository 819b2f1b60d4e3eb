"""
IMAP protocol handler.

Servers differ too much in SEARCH TEXT support, so only SINCE/BEFORE go to
the server; free text is matched locally over decoded headers and a body
preview.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..client import smtp_client
from ..client.imap_client import ImapSession
from ..client.parsers import (
  FetchedHeaders,
  parse_header_block,
  parse_raw_email,
  snippet_from_partial_text,
)
from ..errors import AuthError, NotFoundError
from ..state.types import (
  AccountKind,
  ArchiveParams,
  DetailParams,
  EmailDetail,
  EmailMessage,
  ImapCredentials,
  ListParams,
  ProbeParams,
  SearchParams,
  SendParams,
  SendReceipt,
)
from ..vault import CredentialVault
from .base import ProtocolHandler, parse_date_input

ARCHIVE_FOLDER_CANDIDATES = (
  "INBOX",
  "Archive",
  "Archives",
  "INBOX.Archive",
  "[Gmail]/All Mail",
  "All Mail",
)

# Newest messages examined per folder during a search.
SEARCH_SCAN_LIMIT = 200

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def imap_date(value: datetime) -> str:
  """DD-Mon-YYYY, independent of the process locale."""
  return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year}"


def _parse_uid(email_id: str, account_name: str) -> int:
  if not email_id.isdigit() or int(email_id) <= 0:
    raise NotFoundError(f"No message with id {email_id}", account_name=account_name)
  return int(email_id)


class ImapHandler(ProtocolHandler):
  kind = AccountKind.IMAP

  def __init__(
    self,
    vault: CredentialVault,
    *,
    timezone: str = "UTC",
    send_timeout: float | None = None,
    logger: logging.Logger | None = None,
  ) -> None:
    super().__init__(timezone=timezone, logger=logger)
    self._vault = vault
    self._send_timeout = send_timeout

  # -------------------------------------------------------------------------
  # Helpers
  # -------------------------------------------------------------------------

  def search_criteria(self, params: SearchParams) -> str:
    terms = []
    if params.since:
      terms.append(f"SINCE {imap_date(parse_date_input(params.since, self.zone))}")
    if params.before:
      terms.append(f"BEFORE {imap_date(parse_date_input(params.before, self.zone))}")
    return " ".join(terms) or "ALL"

  def to_message(
    self,
    session: ImapSession,
    fetched: FetchedHeaders,
    folder: str,
    headers: dict[str, Any] | None = None,
  ) -> EmailMessage:
    if headers is None:
      headers = parse_header_block(fetched.headers)
    return EmailMessage(
      id=str(fetched.uid),
      account_name=session.account.name,
      account_kind=AccountKind.IMAP,
      folder=folder,
      subject=headers["subject"],
      from_=headers["from"],
      to=headers["to"],
      date=headers["date"],
      snippet=snippet_from_partial_text(fetched.text),
      is_unread=fetched.is_unread,
      has_attachments=fetched.has_attachments,
    )

  async def resolve_search_folders(self, session: ImapSession, params: SearchParams) -> list[str]:
    """Requested folders, or the archive candidates that exist on this server."""
    if params.folders:
      wanted = params.folders
    else:
      available = {name.lower(): name for name in await session.list_folders()}
      wanted = [available[c.lower()] for c in ARCHIVE_FOLDER_CANDIDATES if c.lower() in available]
      if not wanted:
        wanted = ["INBOX"]

    seen: set[str] = set()
    folders = []
    for folder in wanted:
      if folder.lower() not in seen:
        seen.add(folder.lower())
        folders.append(folder)
    return folders

  @staticmethod
  def _matches(message: EmailMessage, needle: str) -> bool:
    if not needle:
      return True
    haystack = f"{message.subject}\n{message.from_}\n{message.snippet}".lower()
    return needle in haystack

  # -------------------------------------------------------------------------
  # Operations
  # -------------------------------------------------------------------------

  async def list_emails(self, session: ImapSession, params: ListParams) -> list[EmailMessage]:
    await session.select(params.folder, readonly=True)
    uids = await session.uid_search("UNSEEN" if params.unread_only else "ALL")
    newest = uids[-params.limit :]
    fetched = await session.fetch_headers(newest)
    messages = [self.to_message(session, f, params.folder) for f in fetched]
    messages.sort(key=lambda m: int(m.id), reverse=True)
    return messages[: params.limit]

  async def search_emails(self, session: ImapSession, params: SearchParams) -> list[EmailMessage]:
    criteria = self.search_criteria(params)
    needle = params.text.strip().lower()
    found: list[EmailMessage] = []
    seen_ids: set[str] = set()

    for folder in await self.resolve_search_folders(session, params):
      try:
        await session.select(folder, readonly=True)
      except NotFoundError:
        self.log.debug("Skipping missing folder %s for %s", folder, session.account.name)
        continue

      uids = await session.uid_search(criteria)
      for fetched in await session.fetch_headers(uids[-SEARCH_SCAN_LIMIT:]):
        headers = parse_header_block(fetched.headers)
        message = self.to_message(session, fetched, folder, headers)
        if not self._matches(message, needle):
          continue
        # The same message can show up in INBOX and an all-mail folder.
        message_id = headers["message_id"] or f"{folder}:{fetched.uid}"
        if message_id in seen_ids:
          continue
        seen_ids.add(message_id)
        found.append(message)

    found.sort(key=lambda m: m.date.timestamp() if m.date else float("-inf"), reverse=True)
    return found[: params.limit]

  async def get_detail(self, session: ImapSession, params: DetailParams) -> EmailDetail:
    uid = _parse_uid(params.email_id, session.account.name)
    await session.select(params.folder, readonly=True)
    fetched = await session.fetch_message(uid)
    if fetched is None:
      raise NotFoundError(f"No message with id {params.email_id} in {params.folder}", account_name=session.account.name)

    raw, flags = fetched
    parsed = parse_raw_email(raw)
    return EmailDetail(
      id=params.email_id,
      account_name=session.account.name,
      account_kind=AccountKind.IMAP,
      folder=params.folder,
      subject=parsed.subject,
      from_=parsed.from_,
      to=parsed.to,
      date=parsed.date,
      snippet=parsed.snippet,
      is_unread="\\Seen" not in flags,
      has_attachments=bool(parsed.attachments),
      body=parsed.body,
      attachments=parsed.attachments,
    )

  async def archive(self, session: ImapSession, params: ArchiveParams) -> bool:
    uid = _parse_uid(params.email_id, session.account.name)
    await session.select(params.folder, readonly=False)
    flags = "(\\Deleted \\Seen)" if params.remove_unread else "(\\Deleted)"
    ok = await session.store_flags(uid, flags, "+FLAGS")
    if ok:
      self.log.info("Archived IMAP message %s for %s", params.email_id, session.account.name)
    else:
      self.log.warning("STORE failed for message %s on %s", params.email_id, session.account.name)
    return ok

  async def send(self, session: ImapSession, params: SendParams) -> SendReceipt:
    account = session.account
    creds = account.credential_ref
    if not isinstance(creds, ImapCredentials):
      raise AuthError(f"Account {account.name} has no SMTP settings", account_name=account.name)
    settings = creds.smtp
    password = self._vault.decrypt(settings.password or creds.password, account_name=account.name)
    message_id = await smtp_client.send_message(
      settings,
      password,
      params,
      account_name=account.name,
      timeout=self._send_timeout,
    )
    return SendReceipt(message_id=message_id)

  async def probe(self, session: ImapSession, params: ProbeParams) -> dict[str, Any]:
    alive = await session.noop()
    await session.select("INBOX", readonly=True)
    return {"status": "ok" if alive else "degraded", "folder": "INBOX"}
