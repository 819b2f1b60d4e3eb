"""
Per-account session pool.

Each account name owns at most one ``PoolEntry``. Entries move through
``idle -> connecting -> ready -> closing -> closed``; a connect attempt is an
``asyncio.Task`` published on the entry before anyone awaits it, so concurrent
acquirers share a single in-flight connect.

Reusable sessions (Gmail) stay ready between operations. One-shot sessions
(IMAP) are closed on release and their operations are serialized per account;
a one-shot connect whose only waiter is cancelled is dropped with it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .errors import (
  ErrorKind,
  MailConnectionError,
  MailTimeoutError,
  classify,
)
from .helpers import log_connection_event
from .registry import AccountRegistry
from .state.types import Account, AccountKind

log = logging.getLogger("mail_gateway.pool")


class Session(Protocol):
  kind: AccountKind
  account: Account
  reusable: bool

  @property
  def closed(self) -> bool: ...

  async def close(self, *, force: bool = False) -> None: ...


class Connector(Protocol):
  """Opens a live, authenticated session for one account."""

  reusable: bool

  async def connect(self, account: Account) -> Session: ...


class PoolState(str, Enum):
  IDLE = "idle"
  CONNECTING = "connecting"
  READY = "ready"
  CLOSING = "closing"
  CLOSED = "closed"


@dataclass
class PoolEntry:
  account: Account
  state: PoolState = PoolState.IDLE
  session: Session | None = None
  attempt: asyncio.Task[Session] | None = None
  last_used_at: float | None = None
  connect_count: int = 0


def _retrieve_result(task: asyncio.Task[Any]) -> None:
  # Waiters may all have been cancelled; mark the outcome as seen.
  if not task.cancelled():
    task.exception()


class SessionPool:
  def __init__(
    self,
    registry: AccountRegistry,
    connectors: Mapping[AccountKind, Connector],
    *,
    connect_timeout: float = 30.0,
    logger: logging.Logger | None = None,
  ) -> None:
    self._registry = registry
    self._connectors = dict(connectors)
    self._connect_timeout = connect_timeout
    self._entries: dict[str, PoolEntry] = {}
    # Never evicted: a lease must outlive the entry it guards.
    self._leases: dict[str, asyncio.Lock] = {}
    self._closers: set[asyncio.Task[None]] = set()
    self._total_connects = 0
    self.log = logger or log

  # -------------------------------------------------------------------------
  # Public API
  # -------------------------------------------------------------------------

  async def acquire(self, account_name: str) -> Session:
    """Return a ready session for ``account_name``, connecting if needed."""
    account = self._registry.get(account_name)
    connector = self._connector_for(account)

    lease: asyncio.Lock | None = None
    if not connector.reusable:
      lease = self._leases.setdefault(account_name, asyncio.Lock())
      await lease.acquire()

    try:
      return await self._obtain(account)
    except BaseException:
      if lease is not None:
        lease.release()
      raise

  async def release(self, account_name: str, session: Session, *, discard: bool = False) -> None:
    """Hand a session back. One-shot and discarded sessions are closed."""
    entry = self._entries.get(account_name)
    try:
      if discard or not session.reusable:
        await self._close_session(account_name, session, entry, evict=discard)
      elif entry is not None and entry.session is session:
        entry.last_used_at = time.time()
    finally:
      if not session.reusable:
        lease = self._leases.get(account_name)
        if lease is not None and lease.locked():
          lease.release()

  async def close_all(self) -> None:
    """Close every live session and forget all entries."""
    entries = list(self._entries.items())
    self._entries.clear()
    for name, entry in entries:
      if entry.attempt is not None and not entry.attempt.done():
        entry.attempt.cancel()
      if entry.session is not None:
        await self._close_session(name, entry.session, entry, evict=False)
    self.log.info("Session pool closed (%d entries)", len(entries))

  def status(self) -> dict[str, dict[str, Any]]:
    """Snapshot of every entry, keyed by account name."""
    return {
      name: {
        "kind": entry.account.kind.value,
        "state": entry.state.value,
        "connectCount": entry.connect_count,
        "lastUsedAt": entry.last_used_at,
      }
      for name, entry in self._entries.items()
    }

  def entry_state(self, account_name: str) -> PoolState | None:
    entry = self._entries.get(account_name)
    return entry.state if entry is not None else None

  @property
  def total_connects(self) -> int:
    return self._total_connects

  # -------------------------------------------------------------------------
  # Internals
  # -------------------------------------------------------------------------

  def _connector_for(self, account: Account) -> Connector:
    try:
      return self._connectors[account.kind]
    except KeyError:
      raise MailConnectionError(
        f"No connector registered for {account.kind.value} accounts",
        account_name=account.name,
      ) from None

  async def _obtain(self, account: Account) -> Session:
    name = account.name
    entry = self._entries.get(name)

    if entry is not None and entry.state is PoolState.READY:
      session = entry.session
      if session is not None and not session.closed:
        entry.last_used_at = time.time()
        log_connection_event(self.log, account.kind.value, "REUSE", name)
        return session
      # Closed underneath us; start over with a fresh entry.
      self._evict(entry)
      entry = None

    if entry is None:
      entry = PoolEntry(account=account)
      self._entries[name] = entry

    if entry.attempt is None:
      entry.state = PoolState.CONNECTING
      entry.attempt = asyncio.create_task(self._connect(entry), name=f"connect:{name}")
      entry.attempt.add_done_callback(_retrieve_result)

    attempt = entry.attempt
    try:
      return await asyncio.shield(attempt)
    except asyncio.CancelledError:
      # A one-shot attempt has exactly one waiter (the lease holder).
      if not self._connector_for(account).reusable:
        self._abandon(entry, attempt)
      raise

  def _abandon(self, entry: PoolEntry, attempt: asyncio.Task[Session]) -> None:
    """Drop a one-shot connect nobody is waiting for, closing what it produced."""
    self._evict(entry)
    if not attempt.done():
      attempt.cancel()
      return
    if attempt.cancelled() or attempt.exception() is not None:
      return
    session = attempt.result()
    closer = asyncio.create_task(
      self._close_session(entry.account.name, session, entry, evict=True),
      name=f"abandon:{entry.account.name}",
    )
    self._closers.add(closer)
    closer.add_done_callback(self._closers.discard)

  async def _connect(self, entry: PoolEntry) -> Session:
    account = entry.account
    name = account.name
    connector = self._connector_for(account)
    log_connection_event(self.log, account.kind.value, "CREATE", name)

    try:
      session = await asyncio.wait_for(connector.connect(account), self._connect_timeout)
    except TimeoutError:
      self._evict(entry)
      log_connection_event(self.log, account.kind.value, "FAILED", name, "connect timeout")
      raise MailTimeoutError(
        f"Connecting to {name} timed out after {self._connect_timeout:g}s",
        phase="connect",
        account_name=name,
      ) from None
    except asyncio.CancelledError:
      self._evict(entry)
      raise
    except Exception as e:
      self._evict(entry)
      error = classify(e, name)
      if error.kind not in (ErrorKind.AUTH, ErrorKind.CONNECTION, ErrorKind.TIMEOUT):
        error = MailConnectionError(f"Connecting to {name} failed: {error.message}", account_name=name)
      log_connection_event(self.log, account.kind.value, "FAILED", name, error.message)
      if error is e:
        raise
      raise error from e

    entry.session = session
    entry.state = PoolState.READY
    entry.attempt = None
    entry.connect_count += 1
    entry.last_used_at = time.time()
    self._total_connects += 1
    self._log_pool_status()
    return session

  async def _close_session(
    self,
    name: str,
    session: Session,
    entry: PoolEntry | None,
    *,
    evict: bool,
  ) -> None:
    owned = entry is not None and entry.session is session
    if owned:
      entry.state = PoolState.CLOSING
    log_connection_event(self.log, session.kind.value, "CLEANUP", name)
    try:
      # Evicted sessions may sit on an unresponsive server; skip the goodbye.
      await session.close(force=evict)
    except Exception:
      self.log.warning("Error closing %s session for %s", session.kind.value, name, exc_info=True)

    if owned:
      entry.state = PoolState.CLOSED
      entry.session = None
      entry.attempt = None
      if evict:
        self._evict(entry)
      else:
        entry.state = PoolState.IDLE
    self._log_pool_status()

  def _evict(self, entry: PoolEntry) -> None:
    # A newer entry may already have replaced this one.
    name = entry.account.name
    if self._entries.get(name) is entry:
      del self._entries[name]

  def _log_pool_status(self) -> None:
    counts: dict[str, int] = {}
    for entry in self._entries.values():
      counts[entry.state.value] = counts.get(entry.state.value, 0) + 1
    self.log.info(
      "[CONNECTION] POOL_STATUS entries=%d ready=%d connecting=%d",
      len(self._entries),
      counts.get(PoolState.READY.value, 0),
      counts.get(PoolState.CONNECTING.value, 0),
    )

