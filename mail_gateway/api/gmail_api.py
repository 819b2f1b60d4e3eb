"""
Gmail protocol handler.

Filtering is delegated to Gmail's own query language; dates become
``after:<epoch>`` / ``before:<epoch>`` tokens.
"""

from __future__ import annotations

import asyncio
import base64
from datetime import UTC, datetime
from typing import Any

from ..client.gmail_client import GmailSession
from ..client.parsers import decode_header_value, make_snippet, parse_date, strip_html
from ..client.smtp_client import build_message
from ..state.types import (
  AccountKind,
  ArchiveParams,
  DetailParams,
  EmailAttachment,
  EmailDetail,
  EmailMessage,
  ListParams,
  ProbeParams,
  SearchParams,
  SendParams,
  SendReceipt,
)
from .base import ProtocolHandler, parse_date_input

METADATA_HEADERS = ["From", "To", "Subject", "Date"]


def _quote_term(value: str) -> str:
  return f'"{value}"' if any(c.isspace() for c in value) else value


def _folder_term(folder: str) -> str:
  if folder.upper() == "INBOX":
    return "in:inbox"
  return f"label:{_quote_term(folder)}"


def _headers(payload: dict[str, Any]) -> dict[str, str]:
  return {h.get("name", "").lower(): h.get("value", "") for h in payload.get("headers", [])}


def _decode_body(data: str | None) -> str:
  if not data:
    return ""
  padded = data + "=" * (-len(data) % 4)
  return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _walk_parts(payload: dict[str, Any]):
  yield payload
  for part in payload.get("parts", []) or []:
    yield from _walk_parts(part)


class GmailHandler(ProtocolHandler):
  kind = AccountKind.GMAIL

  # -------------------------------------------------------------------------
  # Query building
  # -------------------------------------------------------------------------

  def list_query(self, params: ListParams) -> str:
    terms = ["is:unread"] if params.unread_only else []
    if params.folder.upper() != "INBOX" or not params.unread_only:
      terms.append(_folder_term(params.folder))
    return " ".join(terms)

  def search_query(self, params: SearchParams) -> str:
    terms = ["in:anywhere"]
    if params.folders:
      terms.append("{" + " ".join(_folder_term(f) for f in params.folders) + "}")
    if params.since:
      terms.append(f"after:{int(parse_date_input(params.since, self.zone).timestamp())}")
    if params.before:
      terms.append(f"before:{int(parse_date_input(params.before, self.zone).timestamp())}")
    if params.text.strip():
      terms.append(params.text.strip())
    return " ".join(terms)

  # -------------------------------------------------------------------------
  # Normalization
  # -------------------------------------------------------------------------

  def to_message(self, session: GmailSession, raw: dict[str, Any], folder: str | None) -> EmailMessage:
    return EmailMessage(**self._summary_fields(session, raw, folder))

  def _summary_fields(self, session: GmailSession, raw: dict[str, Any], folder: str | None) -> dict[str, Any]:
    payload = raw.get("payload", {}) or {}
    headers = _headers(payload)
    labels = raw.get("labelIds", []) or []

    date: datetime | None = None
    if raw.get("internalDate"):
      date = datetime.fromtimestamp(int(raw["internalDate"]) / 1000, tz=UTC)
    else:
      date = parse_date(headers.get("date"))

    to = [a.strip() for a in decode_header_value(headers.get("to")).split(",") if a.strip()]
    return {
      "id": raw["id"],
      "account_name": session.account.name,
      "account_kind": AccountKind.GMAIL,
      "folder": folder,
      "subject": decode_header_value(headers.get("subject")),
      "from_": decode_header_value(headers.get("from")),
      "to": to,
      "date": date,
      "snippet": raw.get("snippet", ""),
      "is_unread": "UNREAD" in labels,
      "has_attachments": payload.get("mimeType", "") == "multipart/mixed",
    }

  async def _fetch_summaries(
    self, session: GmailSession, refs: list[dict[str, Any]], folder: str | None
  ) -> list[EmailMessage]:
    raws = await asyncio.gather(
      *(session.get_message(ref["id"], "metadata", METADATA_HEADERS) for ref in refs)
    )
    return [self.to_message(session, raw, folder) for raw in raws]

  # -------------------------------------------------------------------------
  # Operations
  # -------------------------------------------------------------------------

  async def list_emails(self, session: GmailSession, params: ListParams) -> list[EmailMessage]:
    refs = await session.list_messages(self.list_query(params), params.limit)
    return await self._fetch_summaries(session, refs[: params.limit], params.folder)

  async def search_emails(self, session: GmailSession, params: SearchParams) -> list[EmailMessage]:
    query = self.search_query(params)
    self.log.debug("Gmail search for %s: %s", session.account.name, query)
    refs = await session.list_messages(query, params.limit)
    return await self._fetch_summaries(session, refs[: params.limit], None)

  async def get_detail(self, session: GmailSession, params: DetailParams) -> EmailDetail:
    raw = await session.get_message(params.email_id, "full")
    payload = raw.get("payload", {}) or {}

    text = ""
    html = ""
    attachments: list[EmailAttachment] = []
    for part in _walk_parts(payload):
      mime = part.get("mimeType", "")
      body = part.get("body", {}) or {}
      if part.get("filename"):
        attachments.append(
          EmailAttachment(filename=part["filename"], content_type=mime, size=body.get("size", 0))
        )
      elif mime == "text/plain" and not text:
        text = _decode_body(body.get("data"))
      elif mime == "text/html" and not html:
        html = _decode_body(body.get("data"))

    fields = self._summary_fields(session, raw, params.folder)
    fields["has_attachments"] = bool(attachments)
    body_text = text or strip_html(html)
    if not fields["snippet"]:
      fields["snippet"] = make_snippet(body_text)
    return EmailDetail(**fields, body=body_text, attachments=attachments)

  async def archive(self, session: GmailSession, params: ArchiveParams) -> bool:
    labels = ["INBOX"]
    if params.remove_unread:
      labels.append("UNREAD")
    await session.modify(params.email_id, labels)
    self.log.info("Archived Gmail message %s for %s", params.email_id, session.account.name)
    return True

  async def send(self, session: GmailSession, params: SendParams) -> SendReceipt:
    from_addr = await session.email_address()
    msg = build_message(params, from_addr)
    result = await session.send_raw(msg.as_bytes())
    return SendReceipt(message_id=result.get("id", ""))

  async def probe(self, session: GmailSession, params: ProbeParams) -> dict[str, Any]:
    profile = await session.get_profile()
    return {
      "status": "ok",
      "emailAddress": profile.get("emailAddress"),
      "messagesTotal": profile.get("messagesTotal"),
    }
