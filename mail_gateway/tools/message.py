"""
Single-account message tools (4 tools).
"""

from __future__ import annotations

from mcp.types import Tool

_ACCOUNT_NAME = {"type": "string", "description": "Name of the configured email account"}

message_tools: list[Tool] = [
  Tool(
    name="list_emails",
    description="List emails from a Gmail or IMAP account; the account's kind picks the protocol",
    inputSchema={
      "type": "object",
      "properties": {
        "account_name": _ACCOUNT_NAME,
        "folder": {"type": "string", "description": "Folder to list", "default": "INBOX"},
        "limit": {
          "type": "number",
          "description": "Maximum number of emails to return",
          "default": 20,
          "minimum": 1,
          "maximum": 100,
        },
        "unread_only": {
          "type": "boolean",
          "description": "Only return unread emails",
          "default": False,
        },
      },
      "required": ["account_name"],
    },
  ),
  Tool(
    name="search_emails",
    description="Search emails in one account by text and date range",
    inputSchema={
      "type": "object",
      "properties": {
        "account_name": _ACCOUNT_NAME,
        "query": {"type": "string", "description": "Free-text search query"},
        "text": {"type": "string", "description": "Alias for query"},
        "limit": {
          "type": "number",
          "description": "Maximum number of emails to return",
          "default": 20,
          "minimum": 1,
          "maximum": 100,
        },
        "date_after": {
          "type": "string",
          "description": "Only emails after this date (epoch seconds, ISO-8601 or YYYY-MM-DD)",
        },
        "date_before": {
          "type": "string",
          "description": "Only emails before this date (epoch seconds, ISO-8601 or YYYY-MM-DD)",
        },
        "folders": {
          "type": "array",
          "items": {"type": "string"},
          "description": "Folders to search (IMAP defaults to INBOX and archive folders)",
        },
      },
      "required": ["account_name"],
    },
  ),
  Tool(
    name="get_email_detail",
    description="Get the full body and attachment list of one email",
    inputSchema={
      "type": "object",
      "properties": {
        "account_name": _ACCOUNT_NAME,
        "email_id": {"type": "string", "description": "ID of the email"},
        "folder": {
          "type": "string",
          "description": "Folder holding the email (IMAP ids are per folder)",
          "default": "INBOX",
        },
      },
      "required": ["account_name", "email_id"],
    },
  ),
  Tool(
    name="archive_email",
    description="Archive one or more emails (Gmail removes the INBOX label, IMAP flags them deleted)",
    inputSchema={
      "type": "object",
      "properties": {
        "account_name": _ACCOUNT_NAME,
        "email_id": {
          "oneOf": [
            {"type": "string"},
            {"type": "array", "items": {"type": "string"}},
          ],
          "description": "ID or list of IDs to archive",
        },
        "folder": {"type": "string", "description": "Folder holding the emails", "default": "INBOX"},
        "remove_unread": {
          "type": "boolean",
          "description": "Also mark the emails as read",
          "default": False,
        },
      },
      "required": ["account_name", "email_id"],
    },
  ),
]
