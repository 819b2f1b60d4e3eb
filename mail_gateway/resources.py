"""
Read-only MCP resources.

``email://accounts`` exposes the same account listing as the ``list_accounts`` tool.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mcp.types import Resource, TextResourceContents

from .errors import NotFoundError
from .handlers.account import list_accounts

if TYPE_CHECKING:
  from .gateway import Gateway

ACCOUNTS_URI = "email://accounts"

ALL_RESOURCES: list[Resource] = [
  Resource(
    uri=ACCOUNTS_URI,
    name="Email Accounts",
    description="Configured email accounts and their connection state",
    mimeType="application/json",
  ),
]


async def read_resource(gateway: Gateway, uri: str) -> list[TextResourceContents]:
  if uri != ACCOUNTS_URI:
    raise NotFoundError(f"Resource not found: {uri}")
  listing = await list_accounts(gateway, {})
  return [TextResourceContents(uri=ACCOUNTS_URI, mimeType="application/json", text=listing.content)]
