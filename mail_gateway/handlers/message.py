"""
Message list/search/detail/archive tool handlers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..errors import GatewayError
from ..helpers import ToolResult, to_json_text
from ..state.types import (
  ArchiveParams,
  DetailParams,
  ListParams,
  Operation,
  OperationKind,
  SearchParams,
)
from ..validation import (
  build_params,
  opt_boolean,
  opt_date_range,
  opt_number,
  opt_string,
  opt_string_list,
  req_string,
  validate_folder,
  validate_id_list,
)

if TYPE_CHECKING:
  from ..gateway import Gateway


async def list_emails(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  account_name = req_string(args, "account_name")
  params = build_params(
    ListParams,
    folder=validate_folder(opt_string(args, "folder") or "INBOX"),
    limit=opt_number(args, "limit", 20),
    unread_only=opt_boolean(args, "unread_only"),
  )
  op = Operation(kind=OperationKind.LIST, account_name=account_name, params=params)
  emails = await gateway.dispatcher.execute(account_name, op)
  return ToolResult(content=to_json_text({"emails": [e.to_wire() for e in emails]}))


async def search_emails(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  account_name = req_string(args, "account_name")
  since, before = opt_date_range(args)
  params = build_params(
    SearchParams,
    text=opt_string(args, "query") or opt_string(args, "text") or "",
    since=since,
    before=before,
    folders=opt_string_list(args, "folders"),
    limit=opt_number(args, "limit", 20),
  )
  op = Operation(kind=OperationKind.SEARCH, account_name=account_name, params=params)
  emails = await gateway.dispatcher.execute(account_name, op)
  return ToolResult(content=to_json_text({"emails": [e.to_wire() for e in emails]}))


async def get_email_detail(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  account_name = req_string(args, "account_name")
  params = build_params(
    DetailParams,
    email_id=validate_id_list(args.get("email_id"), "email_id")[0],
    folder=validate_folder(opt_string(args, "folder") or "INBOX"),
  )
  op = Operation(kind=OperationKind.DETAIL, account_name=account_name, params=params)
  email = await gateway.dispatcher.execute(account_name, op)
  return ToolResult(content=to_json_text({"email": email.to_wire()}))


async def archive_email(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  """Archive one id, or several; with several, per-id failures are reported instead of raised."""
  account_name = req_string(args, "account_name")
  ids = validate_id_list(args.get("email_id"), "email_id")
  folder = validate_folder(opt_string(args, "folder") or "INBOX")
  remove_unread = opt_boolean(args, "remove_unread")

  results: dict[str, bool] = {}
  errors: dict[str, str] = {}
  for email_id in ids:
    params = build_params(ArchiveParams, email_id=email_id, folder=folder, remove_unread=remove_unread)
    op = Operation(kind=OperationKind.ARCHIVE, account_name=account_name, params=params)
    try:
      results[email_id] = bool(await gateway.dispatcher.execute(account_name, op))
    except GatewayError as e:
      if len(ids) == 1:
        raise
      results[email_id] = False
      errors[email_id] = e.message

  payload: dict[str, Any] = {"result": all(results.values()), "results": results}
  if errors:
    payload["errors"] = errors
  return ToolResult(content=to_json_text(payload))
