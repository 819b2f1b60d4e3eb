"""
Account info, connectivity and cross-account search tool handlers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from ..errors import ValidationError
from ..helpers import ToolResult, to_json_text
from ..pool import PoolState
from ..state.types import AccountKind, KindFilter, Operation, OperationKind, ProbeParams, SortBy
from ..validation import opt_date_range, opt_number, opt_string, req_string

if TYPE_CHECKING:
  from ..gateway import Gateway


async def list_accounts(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  status = gateway.pool.status()
  accounts = [
    {
      "name": account.name,
      "type": account.kind.value,
      "state": status.get(account.name, {}).get("state", PoolState.IDLE.value),
    }
    for account in gateway.registry.select()
  ]
  return ToolResult(content=to_json_text({"accounts": accounts}))


async def test_connection(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  account_name = req_string(args, "account_name")
  account = gateway.registry.get(account_name)
  op = Operation(kind=OperationKind.PROBE, account_name=account_name, params=ProbeParams())
  probe = await gateway.dispatcher.execute(account_name, op)
  payload = {"accountName": account_name, "type": account.kind.value, "connected": True, **probe}
  return ToolResult(content=to_json_text(payload))


async def get_account_stats(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  status = gateway.pool.status()
  accounts = []
  for account in gateway.registry.select():
    entry = status.get(account.name, {})
    accounts.append(
      {
        "name": account.name,
        "type": account.kind.value,
        "configured": True,
        "connected": entry.get("state") == PoolState.READY.value,
        "state": entry.get("state", PoolState.IDLE.value),
        "connectCount": entry.get("connectCount", 0),
        "lastUsedAt": entry.get("lastUsedAt"),
      }
    )

  summary = {
    "totalAccounts": len(accounts),
    "connectedAccounts": sum(1 for a in accounts if a["connected"]),
    "gmailAccounts": len(gateway.registry.all_of_kind(AccountKind.GMAIL)),
    "imapAccounts": len(gateway.registry.all_of_kind(AccountKind.IMAP)),
    "totalConnects": gateway.pool.total_connects,
  }
  return ToolResult(content=to_json_text({"accounts": accounts, "summary": summary}))


async def search_all_emails(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  query = opt_string(args, "query") or opt_string(args, "text")
  if not query:
    raise ValidationError("Missing required parameter: query")

  raw_filter = opt_string(args, "accounts") or KindFilter.ALL.value
  try:
    kind_filter = KindFilter(raw_filter)
  except ValueError:
    raise ValidationError(f"Invalid accounts: {raw_filter} (expected ALL, GMAIL_ONLY or IMAP_ONLY)") from None

  sort_by = opt_string(args, "sortBy") or opt_string(args, "sort_by") or "date"
  if sort_by not in ("date", "relevance"):
    raise ValidationError(f"Invalid sortBy: {sort_by} (expected date or relevance)")

  limit = opt_number(args, "limit", 20)
  if not 1 <= limit <= 100:
    raise ValidationError("Invalid limit: must be between 1 and 100")

  since, before = opt_date_range(args)
  result = await gateway.fanout.search_all(
    query,
    kind_filter,
    limit,
    cast(SortBy, sort_by),
    since=since,
    before=before,
  )
  payload = {
    "emails": [m.to_wire() for m in result.messages],
    "totalFound": result.total_found,
    "accounts": kind_filter.value,
    "query": query,
    "errors": {name: kind.value for name, kind in result.per_account_errors.items()},
    "errorDetails": result.error_details,
  }
  return ToolResult(content=to_json_text(payload))
