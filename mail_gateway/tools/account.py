"""
Account and cross-account tools (4 tools).
"""

from __future__ import annotations

from mcp.types import Tool

account_tools: list[Tool] = [
  Tool(
    name="list_accounts",
    description="List all configured email accounts with their kind and session state",
    inputSchema={"type": "object", "properties": {}},
  ),
  Tool(
    name="test_connection",
    description="Open a session to one account and run a lightweight liveness check",
    inputSchema={
      "type": "object",
      "properties": {
        "account_name": {"type": "string", "description": "Name of the account to test"},
      },
      "required": ["account_name"],
    },
  ),
  Tool(
    name="get_account_stats",
    description="Get per-account kind and connection statistics",
    inputSchema={"type": "object", "properties": {}},
  ),
  Tool(
    name="search_all_emails",
    description="Search emails across all Gmail and IMAP accounts concurrently",
    inputSchema={
      "type": "object",
      "properties": {
        "query": {"type": "string", "description": "Search query"},
        "accounts": {
          "type": "string",
          "enum": ["ALL", "GMAIL_ONLY", "IMAP_ONLY"],
          "description": "Which accounts to search",
          "default": "ALL",
        },
        "limit": {
          "type": "number",
          "description": "Maximum number of results",
          "default": 20,
          "minimum": 1,
          "maximum": 100,
        },
        "sortBy": {
          "type": "string",
          "enum": ["date", "relevance"],
          "description": "Sort results by date or relevance",
          "default": "date",
        },
        "date_after": {"type": "string", "description": "Only emails after this date"},
        "date_before": {"type": "string", "description": "Only emails before this date"},
      },
      "required": ["query"],
    },
  ),
]
