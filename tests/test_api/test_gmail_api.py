"""Tests for GmailHandler: the Gmail API session is mocked."""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from googleapiclient.errors import HttpError

from mail_gateway.api.gmail_api import GmailHandler
from mail_gateway.client.gmail_client import map_http_error
from mail_gateway.errors import AuthError, NotFoundError, ProtocolError, SendError
from mail_gateway.registry import load
from mail_gateway.state.types import (
  AccountKind,
  ArchiveParams,
  DetailParams,
  ListParams,
  ProbeParams,
  SearchParams,
  SendParams,
)


# ── Helpers ────────────────────────────────────────────────────────────────────


def _b64(text: str) -> str:
  return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def _metadata(id: str, subject: str, *, unread: bool = False, millis: int = 1709287200000) -> dict:
  return {
    "id": id,
    "snippet": f"snippet {id}",
    "internalDate": str(millis),
    "labelIds": ["INBOX", "UNREAD"] if unread else ["INBOX"],
    "payload": {
      "mimeType": "text/plain",
      "headers": [
        {"name": "From", "value": "Alice <alice@example.com>"},
        {"name": "To", "value": "me@example.com, bob@example.com"},
        {"name": "Subject", "value": subject},
      ],
    },
  }


def _http_error(status: int) -> HttpError:
  return HttpError(SimpleNamespace(status=status, reason="error"), b"")


@pytest.fixture
def handler() -> GmailHandler:
  return GmailHandler(timezone="UTC")


@pytest.fixture
def session(gmail_raw) -> MagicMock:
  (account,) = load([gmail_raw])
  s = MagicMock()
  s.account = account
  s.kind = AccountKind.GMAIL
  s.list_messages = AsyncMock(return_value=[{"id": "a1"}, {"id": "a2"}])
  s.get_message = AsyncMock(side_effect=lambda id, *a, **kw: _metadata(id, f"Subject {id}", unread=id == "a1"))
  s.modify = AsyncMock(return_value={})
  s.send_raw = AsyncMock(return_value={"id": "sent-1"})
  s.email_address = AsyncMock(return_value="me@gmail.com")
  s.get_profile = AsyncMock(return_value={"emailAddress": "me@gmail.com", "messagesTotal": 12})
  return s


# ── Queries ────────────────────────────────────────────────────────────────────


class TestQueries:
  def test_list_inbox(self, handler: GmailHandler) -> None:
    assert handler.list_query(ListParams()) == "in:inbox"

  def test_list_unread(self, handler: GmailHandler) -> None:
    assert handler.list_query(ListParams(unread_only=True)) == "is:unread"

  def test_list_unread_in_label(self, handler: GmailHandler) -> None:
    assert handler.list_query(ListParams(folder="Work", unread_only=True)) == "is:unread label:Work"

  def test_search_covers_all_mail(self, handler: GmailHandler) -> None:
    assert handler.search_query(SearchParams(text="invoice")) == "in:anywhere invoice"

  def test_search_with_dates_and_folders(self, handler: GmailHandler) -> None:
    params = SearchParams(text="invoice", since="2024-01-01", before="1706745600", folders=["INBOX", "Work Stuff"])
    assert handler.search_query(params) == (
      'in:anywhere {in:inbox label:"Work Stuff"} after:1704067200 before:1706745600 invoice'
    )

  def test_bare_date_uses_handler_zone(self) -> None:
    tokyo = GmailHandler(timezone="Asia/Tokyo")
    # Midnight in Tokyo is 15:00 UTC the previous day.
    assert tokyo.search_query(SearchParams(since="2024-01-01")) == "in:anywhere after:1704034800"


# ── Operations ─────────────────────────────────────────────────────────────────


class TestOperations:
  async def test_list_emails(self, handler: GmailHandler, session: MagicMock) -> None:
    emails = await handler.list_emails(session, ListParams(limit=2))

    session.list_messages.assert_awaited_once_with("in:inbox", 2)
    assert [e.id for e in emails] == ["a1", "a2"]
    first = emails[0]
    assert first.account_name == "personal"
    assert first.account_kind is AccountKind.GMAIL
    assert first.from_ == "Alice <alice@example.com>"
    assert first.to == ["me@example.com", "bob@example.com"]
    assert first.date == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    assert first.is_unread
    assert not emails[1].is_unread

  async def test_search_emails_has_no_folder(self, handler: GmailHandler, session: MagicMock) -> None:
    emails = await handler.search_emails(session, SearchParams(text="report", limit=5))

    session.list_messages.assert_awaited_once_with("in:anywhere report", 5)
    assert all(e.folder is None for e in emails)

  async def test_get_detail_walks_parts(self, handler: GmailHandler, session: MagicMock) -> None:
    raw = _metadata("d1", "Detail")
    raw["snippet"] = ""
    raw["payload"] = {
      "mimeType": "multipart/mixed",
      "headers": raw["payload"]["headers"],
      "parts": [
        {
          "mimeType": "multipart/alternative",
          "parts": [
            {"mimeType": "text/plain", "body": {"data": _b64("Plain body text")}},
            {"mimeType": "text/html", "body": {"data": _b64("<p>Html body</p>")}},
          ],
        },
        {"mimeType": "application/pdf", "filename": "report.pdf", "body": {"attachmentId": "x", "size": 2048}},
      ],
    }
    session.get_message = AsyncMock(return_value=raw)

    detail = await handler.get_detail(session, DetailParams(email_id="d1"))

    session.get_message.assert_awaited_once_with("d1", "full")
    assert detail.body == "Plain body text"
    assert detail.snippet == "Plain body text"
    assert detail.has_attachments
    assert detail.attachments[0].filename == "report.pdf"
    assert detail.attachments[0].size == 2048

  async def test_archive_removes_inbox_label(self, handler: GmailHandler, session: MagicMock) -> None:
    assert await handler.archive(session, ArchiveParams(email_id="a1"))
    session.modify.assert_awaited_once_with("a1", ["INBOX"])

  async def test_archive_can_mark_read(self, handler: GmailHandler, session: MagicMock) -> None:
    await handler.archive(session, ArchiveParams(email_id="a1", remove_unread=True))
    session.modify.assert_awaited_once_with("a1", ["INBOX", "UNREAD"])

  async def test_send(self, handler: GmailHandler, session: MagicMock) -> None:
    receipt = await handler.send(session, SendParams(to=["bob@example.com"], subject="Hi", text="Hello"))

    assert receipt.message_id == "sent-1"
    raw = session.send_raw.await_args.args[0]
    assert b"From: me@gmail.com" in raw
    assert b"Subject: Hi" in raw

  async def test_probe(self, handler: GmailHandler, session: MagicMock) -> None:
    result = await handler.probe(session, ProbeParams())
    assert result == {"status": "ok", "emailAddress": "me@gmail.com", "messagesTotal": 12}


class TestMapHttpError:
  @pytest.mark.parametrize("status", [401, 403])
  def test_auth(self, status: int) -> None:
    assert isinstance(map_http_error(_http_error(status), "list", "personal"), AuthError)

  def test_not_found(self) -> None:
    assert isinstance(map_http_error(_http_error(404), "get", "personal"), NotFoundError)

  def test_bad_id_is_not_found(self) -> None:
    assert isinstance(map_http_error(_http_error(400), "modify", "personal"), NotFoundError)

  def test_rejected_send(self) -> None:
    assert isinstance(map_http_error(_http_error(400), "send", "personal", sending=True), SendError)

  def test_other_statuses(self) -> None:
    error = map_http_error(_http_error(500), "list", "personal")
    assert isinstance(error, ProtocolError)
    assert error.account_name == "personal"
