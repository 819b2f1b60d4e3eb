"""Shared pytest fixtures and in-memory fakes for sessions, connectors and handlers."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any

import pytest

from mail_gateway.api.base import ProtocolHandler
from mail_gateway.config import GatewayConfig, TimeoutConfig
from mail_gateway.dispatcher import Dispatcher
from mail_gateway.errors import NotFoundError
from mail_gateway.gateway import Gateway
from mail_gateway.pool import SessionPool
from mail_gateway.registry import AccountRegistry
from mail_gateway.state.types import (
  Account,
  AccountKind,
  EmailDetail,
  EmailMessage,
  SendReceipt,
)

GMAIL_RAW: dict[str, Any] = {
  "name": "personal",
  "kind": "gmail",
  "client_id": "client-id.apps.googleusercontent.com",
  "client_secret": "gmail-client-secret",
  "refresh_token": "1//refresh-token-value",
}

IMAP_RAW: dict[str, Any] = {
  "name": "work",
  "kind": "imap",
  "host": "imap.example.com",
  "user": "me@example.com",
  "password": "00112233445566778899aabbccddeeff:00112233445566778899aabbccddeeff",
}

BASE_DATE = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


# ── Fakes ──────────────────────────────────────────────────────────────────────


class FakeSession:
  def __init__(self, account: Account, reusable: bool) -> None:
    self.account = account
    self.kind = account.kind
    self.reusable = reusable
    self.close_calls = 0
    self.forced: bool | None = None
    self._closed = False

  @property
  def closed(self) -> bool:
    return self._closed

  async def close(self, *, force: bool = False) -> None:
    self.close_calls += 1
    self.forced = force
    self._closed = True


class FakeConnector:
  def __init__(self, *, reusable: bool = True, delay: float = 0.0, error: BaseException | None = None) -> None:
    self.reusable = reusable
    self.delay = delay
    self.error = error
    self.calls = 0
    self.sessions: list[FakeSession] = []

  async def connect(self, account: Account) -> FakeSession:
    self.calls += 1
    if self.delay:
      await asyncio.sleep(self.delay)
    if self.error is not None:
      raise self.error
    session = FakeSession(account, self.reusable)
    self.sessions.append(session)
    return session


class FakeHandler(ProtocolHandler):
  """Answers every operation from in-memory tables keyed by account name."""

  def __init__(
    self,
    *,
    results: dict[str, list[EmailMessage]] | None = None,
    delays: dict[str, float] | None = None,
    errors: dict[str, BaseException] | None = None,
  ) -> None:
    super().__init__(timezone="UTC")
    self.results = results or {}
    self.delays = delays or {}
    self.errors = errors or {}
    self.calls: list[tuple[str, str, Any]] = []
    self.sessions: list[Any] = []

  async def _behave(self, session: Any, what: str, params: Any) -> None:
    name = session.account.name
    self.calls.append((what, name, params))
    self.sessions.append(session)
    delay = self.delays.get(name)
    if delay:
      await asyncio.sleep(delay)
    error = self.errors.get(name)
    if error is not None:
      raise error

  async def list_emails(self, session, params):
    await self._behave(session, "list", params)
    return list(self.results.get(session.account.name, []))[: params.limit]

  async def search_emails(self, session, params):
    await self._behave(session, "search", params)
    return list(self.results.get(session.account.name, []))[: params.limit]

  async def get_detail(self, session, params):
    await self._behave(session, "detail", params)
    name = session.account.name
    return EmailDetail(
      id=params.email_id,
      account_name=name,
      account_kind=session.kind,
      folder=params.folder,
      subject=f"Detail from {name}",
      body="Full body",
    )

  async def archive(self, session, params):
    await self._behave(session, "archive", params)
    if params.email_id == "missing":
      raise NotFoundError(f"No message with id {params.email_id}")
    return True

  async def send(self, session, params):
    await self._behave(session, "send", params)
    return SendReceipt(message_id=f"<sent-{session.account.name}@example.com>")

  async def probe(self, session, params):
    await self._behave(session, "probe", params)
    return {"status": "ok"}


# ── Helpers ────────────────────────────────────────────────────────────────────


def _make_message(
  account_name: str,
  id: str,
  subject: str = "Test subject",
  hours_ago: float = 0,
  kind: AccountKind = AccountKind.GMAIL,
) -> EmailMessage:
  return EmailMessage(
    id=id,
    account_name=account_name,
    account_kind=kind,
    folder="INBOX",
    subject=subject,
    from_="alice@example.com",
    to=["me@example.com"],
    date=BASE_DATE - timedelta(hours=hours_ago),
    snippet="snippet...",
  )


def _make_stack(
  raw_accounts: list[dict[str, Any]] | None = None,
  *,
  handler: FakeHandler | None = None,
  connectors: dict[AccountKind, FakeConnector] | None = None,
  connect_timeout: float = 1.0,
  operation_timeout: float = 1.0,
) -> SimpleNamespace:
  registry = AccountRegistry.from_configs(raw_accounts if raw_accounts is not None else [GMAIL_RAW, IMAP_RAW])
  if connectors is None:
    connectors = {
      AccountKind.GMAIL: FakeConnector(reusable=True),
      AccountKind.IMAP: FakeConnector(reusable=False),
    }
  handler = handler or FakeHandler()
  pool = SessionPool(registry, connectors, connect_timeout=connect_timeout)
  dispatcher = Dispatcher(
    registry,
    pool,
    {AccountKind.GMAIL: handler, AccountKind.IMAP: handler},
    operation_timeout=operation_timeout,
  )
  return SimpleNamespace(registry=registry, pool=pool, dispatcher=dispatcher, connectors=connectors, handler=handler)


def _make_gateway(
  raw_accounts: list[dict[str, Any]] | None = None,
  *,
  handler: FakeHandler | None = None,
  timeouts: TimeoutConfig | None = None,
) -> Gateway:
  config = GatewayConfig(
    encryption_key="test-encryption-key",
    timezone="UTC",
    timeouts=timeouts or TimeoutConfig(connect_timeout=1, operation_timeout=1, branch_timeout=1, fanout_deadline=2),
    accounts=raw_accounts if raw_accounts is not None else [GMAIL_RAW, IMAP_RAW],
  )
  handler = handler or FakeHandler()
  return Gateway(
    config,
    connectors={
      AccountKind.GMAIL: FakeConnector(reusable=True),
      AccountKind.IMAP: FakeConnector(reusable=False),
    },
    handlers={AccountKind.GMAIL: handler, AccountKind.IMAP: handler},
  )


# ── Fixtures ───────────────────────────────────────────────────────────────────


@pytest.fixture
def gmail_raw() -> dict[str, Any]:
  return dict(GMAIL_RAW)


@pytest.fixture
def imap_raw() -> dict[str, Any]:
  return dict(IMAP_RAW)


@pytest.fixture
def make_message():
  return _make_message


@pytest.fixture
def make_handler():
  return FakeHandler


@pytest.fixture
def make_connector():
  return FakeConnector


@pytest.fixture
def make_stack():
  return _make_stack


@pytest.fixture
def make_gateway():
  return _make_gateway


@pytest.fixture
def registry() -> AccountRegistry:
  return AccountRegistry.from_configs([GMAIL_RAW, IMAP_RAW])
