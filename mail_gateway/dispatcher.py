"""
Single-account operation routing.

Resolves the account, acquires a session, runs the kind's handler under the
operation budget and always releases the session afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from .api.base import ProtocolHandler
from .errors import SESSION_FATAL_KINDS, MailTimeoutError, ProtocolError, classify
from .pool import SessionPool
from .registry import AccountRegistry
from .state.types import AccountKind, Operation, OperationKind

log = logging.getLogger("mail_gateway.dispatcher")

HANDLER_METHODS: dict[OperationKind, str] = {
  OperationKind.LIST: "list_emails",
  OperationKind.SEARCH: "search_emails",
  OperationKind.DETAIL: "get_detail",
  OperationKind.ARCHIVE: "archive",
  OperationKind.SEND: "send",
  OperationKind.PROBE: "probe",
}


class Dispatcher:
  def __init__(
    self,
    registry: AccountRegistry,
    pool: SessionPool,
    handlers: Mapping[AccountKind, ProtocolHandler],
    *,
    operation_timeout: float = 60.0,
    logger: logging.Logger | None = None,
  ) -> None:
    self.registry = registry
    self.pool = pool
    self._handlers = dict(handlers)
    self._operation_timeout = operation_timeout
    self.log = logger or log

  async def execute(self, account_name: str, op: Operation) -> Any:
    """Run ``op`` against ``account_name``; failures raise classified GatewayErrors."""
    account = self.registry.get(account_name)
    handler = self._handlers.get(account.kind)
    if handler is None:
      raise ProtocolError(f"No handler for {account.kind.value} accounts", account_name=account_name)
    method = getattr(handler, HANDLER_METHODS[op.kind])

    session = await self.pool.acquire(account_name)
    discard = False
    try:
      try:
        return await asyncio.wait_for(method(session, op.params), self._operation_timeout)
      except TimeoutError:
        raise MailTimeoutError(
          f"{op.kind.value} on {account_name} timed out after {self._operation_timeout:g}s",
          phase="operation",
          account_name=account_name,
        ) from None
    except Exception as e:
      error = classify(e, account_name)
      discard = error.kind in SESSION_FATAL_KINDS
      self.log.warning("%s on %s failed (%s): %s", op.kind.value, account_name, error.kind.value, error.message)
      if error is e:
        raise
      raise error from e
    except asyncio.CancelledError:
      # The session may be mid-command; never hand it out again.
      discard = True
      raise
    finally:
      await self.pool.release(account_name, session, discard=discard)
