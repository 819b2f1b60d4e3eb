"""
Send tool handler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..helpers import ToolResult, to_json_text
from ..state.types import Operation, OperationKind, SendParams
from ..validation import (
  build_params,
  opt_string,
  opt_string_list,
  req_string,
  validate_email_address,
  validate_email_list,
)

if TYPE_CHECKING:
  from ..gateway import Gateway


async def send_email(gateway: Gateway, args: dict[str, Any]) -> ToolResult:
  account_name = req_string(args, "account_name")
  reply_to = opt_string(args, "reply_to")
  params = build_params(
    SendParams,
    to=validate_email_list(args.get("to"), "to"),
    subject=req_string(args, "subject"),
    text=opt_string(args, "text") or opt_string(args, "body"),
    html=opt_string(args, "html"),
    cc=validate_email_list(args.get("cc"), "cc", required=False),
    bcc=validate_email_list(args.get("bcc"), "bcc", required=False),
    reply_to=validate_email_address(reply_to, "reply_to") if reply_to else None,
    in_reply_to=opt_string(args, "in_reply_to"),
    references=opt_string_list(args, "references") or [],
  )
  op = Operation(kind=OperationKind.SEND, account_name=account_name, params=params)
  receipt = await gateway.dispatcher.execute(account_name, op)
  return ToolResult(content=to_json_text({"accountName": account_name, **receipt.to_wire()}))
