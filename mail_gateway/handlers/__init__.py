"""
Tool handler dispatcher.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..errors import MethodNotFoundError
from ..helpers import ToolResult
from .account import get_account_stats, list_accounts, search_all_emails, test_connection
from .message import archive_email, get_email_detail, list_emails, search_emails
from .send import send_email

if TYPE_CHECKING:
  from ..gateway import Gateway

HANDLERS: dict[str, Any] = {
  # Account
  "list_accounts": list_accounts,
  "test_connection": test_connection,
  "get_account_stats": get_account_stats,
  "search_all_emails": search_all_emails,
  # Message
  "list_emails": list_emails,
  "search_emails": search_emails,
  "get_email_detail": get_email_detail,
  "archive_email": archive_email,
  # Send
  "send_email": send_email,
}


async def dispatch_tool(gateway: Gateway, tool_name: str, args: dict[str, Any]) -> ToolResult:
  """Dispatch a tool call to the appropriate handler; errors propagate to the server."""
  handler = HANDLERS.get(tool_name)
  if not handler:
    raise MethodNotFoundError(f"Unknown tool: {tool_name}")
  result: ToolResult = await handler(gateway, args)
  return result
