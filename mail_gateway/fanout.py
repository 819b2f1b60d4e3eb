"""
Concurrent search across accounts.

Each account is one branch with its own timeout; the whole call has a
deadline. A failed or late branch becomes an entry in ``per_account_errors``
and never fails the call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .dispatcher import Dispatcher
from .errors import GatewayError, MailTimeoutError, classify
from .state.types import (
  EmailMessage,
  FanOutResult,
  KindFilter,
  Operation,
  OperationKind,
  SearchParams,
  SortBy,
)

log = logging.getLogger("mail_gateway.fanout")


def _date_key(message: EmailMessage) -> float:
  return message.date.timestamp() if message.date else float("-inf")


def sort_messages(messages: list[EmailMessage], sort_by: SortBy, query: str = "") -> list[EmailMessage]:
  """Newest first; ``relevance`` puts subject matches ahead, newest first within each group."""
  by_date = sorted(messages, key=_date_key, reverse=True)
  if sort_by != "relevance" or not query.strip():
    return by_date
  needle = query.strip().lower()
  return sorted(by_date, key=lambda m: needle not in m.subject.lower())


def _drain(task: asyncio.Task[Any]) -> None:
  if not task.cancelled():
    task.exception()


class FanOutAggregator:
  def __init__(
    self,
    dispatcher: Dispatcher,
    *,
    branch_timeout: float = 15.0,
    deadline: float = 25.0,
    logger: logging.Logger | None = None,
  ) -> None:
    self.dispatcher = dispatcher
    self._branch_timeout = branch_timeout
    self._deadline = deadline
    self.log = logger or log

  async def _branch(self, account_name: str, params: SearchParams) -> list[EmailMessage]:
    op = Operation(kind=OperationKind.SEARCH, account_name=account_name, params=params)
    try:
      return await asyncio.wait_for(self.dispatcher.execute(account_name, op), self._branch_timeout)
    except TimeoutError:
      raise MailTimeoutError(
        f"Search on {account_name} exceeded {self._branch_timeout:g}s",
        phase="branch",
        account_name=account_name,
      ) from None

  async def search_all(
    self,
    query: str,
    kind_filter: KindFilter = KindFilter.ALL,
    limit: int = 20,
    sort_by: SortBy = "date",
    *,
    since: str | None = None,
    before: str | None = None,
  ) -> FanOutResult:
    """Search every selected account concurrently and merge the results."""
    accounts = self.dispatcher.registry.select(kind_filter)
    result = FanOutResult()
    if not accounts:
      return result

    # Each branch asks for ``limit``; the merged list is truncated afterwards.
    params = SearchParams(text=query, since=since, before=before, limit=limit)

    tasks: dict[asyncio.Task[list[EmailMessage]], str] = {}
    for account in accounts:
      task = asyncio.create_task(self._branch(account.name, params), name=f"fanout:{account.name}")
      tasks[task] = account.name

    done, pending = await asyncio.wait(tasks, timeout=self._deadline)

    for task in pending:
      task.cancel()
      task.add_done_callback(_drain)
      name = tasks[task]
      self._record(
        result,
        name,
        MailTimeoutError(
          f"Search on {name} unfinished at the {self._deadline:g}s deadline",
          phase="deadline",
          account_name=name,
        ),
      )

    merged: list[EmailMessage] = []
    for task in done:
      name = tasks[task]
      if task.cancelled():
        self._record(result, name, MailTimeoutError("Search cancelled", phase="deadline", account_name=name))
        continue
      error = task.exception()
      if error is not None:
        self._record(result, name, classify(error, name))
        continue
      merged.extend(task.result())

    ordered = sort_messages(merged, sort_by, query)
    result.total_found = len(ordered)
    result.messages = ordered[:limit]
    self.log.info(
      "Fan-out search over %d account(s): %d found, %d failed",
      len(accounts),
      result.total_found,
      len(result.per_account_errors),
    )
    return result

  def _record(self, result: FanOutResult, account_name: str, error: GatewayError) -> None:
    self.log.warning("Fan-out branch %s failed (%s): %s", account_name, error.kind.value, error.message)
    result.per_account_errors[account_name] = error.kind
    result.error_details[account_name] = error.message
