"""Tests for SessionPool: connectors are in-memory fakes."""

from __future__ import annotations

import asyncio

import pytest

from mail_gateway.errors import (
  AuthError,
  MailConnectionError,
  MailTimeoutError,
  NotFoundError,
)
from mail_gateway.pool import PoolState, SessionPool
from mail_gateway.state.types import AccountKind


@pytest.fixture
def gmail_connector(make_connector):
  return make_connector(reusable=True)


@pytest.fixture
def imap_connector(make_connector):
  return make_connector(reusable=False)


@pytest.fixture
def pool(registry, gmail_connector, imap_connector) -> SessionPool:
  return SessionPool(
    registry,
    {AccountKind.GMAIL: gmail_connector, AccountKind.IMAP: imap_connector},
    connect_timeout=0.5,
  )


# ── Reuse ──────────────────────────────────────────────────────────────────────


class TestReusableSessions:
  async def test_gmail_session_is_reused(self, pool, gmail_connector) -> None:
    first = await pool.acquire("personal")
    await pool.release("personal", first)
    second = await pool.acquire("personal")
    await pool.release("personal", second)

    assert first is second
    assert gmail_connector.calls == 1
    assert pool.total_connects == 1
    assert pool.entry_state("personal") is PoolState.READY

  async def test_closed_session_is_replaced(self, pool, gmail_connector) -> None:
    first = await pool.acquire("personal")
    await pool.release("personal", first)
    await first.close()

    second = await pool.acquire("personal")
    assert second is not first
    assert gmail_connector.calls == 2

  async def test_discard_evicts_entry(self, pool, gmail_connector) -> None:
    session = await pool.acquire("personal")
    await pool.release("personal", session, discard=True)

    assert session.closed
    assert pool.entry_state("personal") is None

    again = await pool.acquire("personal")
    assert again is not session
    assert gmail_connector.calls == 2

  async def test_status_reports_entries(self, pool) -> None:
    session = await pool.acquire("personal")
    await pool.release("personal", session)

    status = pool.status()
    assert status["personal"]["kind"] == "gmail"
    assert status["personal"]["state"] == "ready"
    assert status["personal"]["connectCount"] == 1
    assert status["personal"]["lastUsedAt"] is not None
    assert "work" not in status


class TestOneShotSessions:
  async def test_imap_connects_per_operation(self, pool, imap_connector) -> None:
    first = await pool.acquire("work")
    await pool.release("work", first)
    second = await pool.acquire("work")
    await pool.release("work", second)

    assert imap_connector.calls == 2
    assert first.closed and second.closed
    assert pool.entry_state("work") is PoolState.IDLE

  async def test_operations_on_one_account_are_serialized(self, pool) -> None:
    first = await pool.acquire("work")
    waiter = asyncio.create_task(pool.acquire("work"))
    await asyncio.sleep(0.02)
    assert not waiter.done()

    await pool.release("work", first)
    second = await asyncio.wait_for(waiter, 1)
    assert second is not first
    await pool.release("work", second)

  async def test_release_closes_gracefully_and_discard_forcibly(self, pool) -> None:
    kept = await pool.acquire("work")
    await pool.release("work", kept)
    dropped = await pool.acquire("work")
    await pool.release("work", dropped, discard=True)

    assert kept.forced is False
    assert dropped.forced is True
    assert pool.entry_state("work") is None

  async def test_cancelled_connect_leaves_no_session(self, registry, make_connector) -> None:
    connector = make_connector(reusable=False, delay=0.2)
    pool = SessionPool(registry, {AccountKind.IMAP: connector})

    with pytest.raises(TimeoutError):
      await asyncio.wait_for(pool.acquire("work"), 0.05)
    await asyncio.sleep(0.3)

    assert pool.entry_state("work") is None
    assert connector.sessions == []

    session = await asyncio.wait_for(pool.acquire("work"), 1)
    assert connector.calls == 2
    await pool.release("work", session)


# ── Connect ────────────────────────────────────────────────────────────────────


class TestConnect:
  async def test_concurrent_acquires_share_one_connect(self, registry, make_connector) -> None:
    connector = make_connector(reusable=True, delay=0.05)
    pool = SessionPool(registry, {AccountKind.GMAIL: connector})

    sessions = await asyncio.gather(*(pool.acquire("personal") for _ in range(5)))

    assert connector.calls == 1
    assert all(s is sessions[0] for s in sessions)

  async def test_cancelled_waiter_does_not_cancel_shared_connect(self, registry, make_connector) -> None:
    connector = make_connector(reusable=True, delay=0.05)
    pool = SessionPool(registry, {AccountKind.GMAIL: connector})

    first = asyncio.create_task(pool.acquire("personal"))
    second = asyncio.create_task(pool.acquire("personal"))
    await asyncio.sleep(0.01)
    first.cancel()

    session = await asyncio.wait_for(second, 1)
    assert connector.calls == 1
    assert not session.closed
    assert first.cancelled()

  async def test_connect_timeout_evicts_entry(self, registry, make_connector) -> None:
    connector = make_connector(reusable=True, delay=1.0)
    pool = SessionPool(registry, {AccountKind.GMAIL: connector}, connect_timeout=0.05)

    with pytest.raises(MailTimeoutError) as exc_info:
      await pool.acquire("personal")

    assert exc_info.value.phase == "connect"
    assert exc_info.value.account_name == "personal"
    assert pool.entry_state("personal") is None

  async def test_failed_imap_connect_releases_lease(self, registry, make_connector) -> None:
    connector = make_connector(reusable=False, error=OSError("connection refused"))
    pool = SessionPool(registry, {AccountKind.IMAP: connector})

    with pytest.raises(MailConnectionError):
      await pool.acquire("work")

    connector.error = None
    session = await asyncio.wait_for(pool.acquire("work"), 1)
    assert session.account.name == "work"
    await pool.release("work", session)

  async def test_auth_error_is_kept(self, registry, make_connector) -> None:
    connector = make_connector(reusable=True, error=AuthError("bad token"))
    pool = SessionPool(registry, {AccountKind.GMAIL: connector})

    with pytest.raises(AuthError) as exc_info:
      await pool.acquire("personal")
    assert exc_info.value.account_name == "personal"
    assert pool.entry_state("personal") is None

  async def test_unexpected_error_becomes_connection_error(self, registry, make_connector) -> None:
    connector = make_connector(reusable=True, error=RuntimeError("boom"))
    pool = SessionPool(registry, {AccountKind.GMAIL: connector})

    with pytest.raises(MailConnectionError, match="boom"):
      await pool.acquire("personal")

  async def test_unknown_account(self, pool) -> None:
    with pytest.raises(NotFoundError):
      await pool.acquire("nobody")

  async def test_missing_connector(self, registry, make_connector) -> None:
    pool = SessionPool(registry, {AccountKind.GMAIL: make_connector()})
    with pytest.raises(MailConnectionError, match="No connector"):
      await pool.acquire("work")


class TestCloseAll:
  async def test_close_all_closes_live_sessions(self, pool) -> None:
    session = await pool.acquire("personal")
    await pool.release("personal", session)

    await pool.close_all()

    assert session.closed
    assert pool.status() == {}
