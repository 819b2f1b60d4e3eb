"""
Send tools (1 tool).
"""

from __future__ import annotations

from mcp.types import Tool

send_tools: list[Tool] = [
  Tool(
    name="send_email",
    description="Send an email from a configured account (Gmail API or SMTP)",
    inputSchema={
      "type": "object",
      "properties": {
        "account_name": {"type": "string", "description": "Account to send from"},
        "to": {
          "type": "array",
          "items": {"type": "string"},
          "description": "Recipient email addresses",
        },
        "subject": {"type": "string", "description": "Email subject"},
        "text": {"type": "string", "description": "Plain text body"},
        "html": {"type": "string", "description": "HTML body"},
        "cc": {"type": "array", "items": {"type": "string"}, "description": "CC recipients"},
        "bcc": {"type": "array", "items": {"type": "string"}, "description": "BCC recipients"},
        "reply_to": {"type": "string", "description": "Reply-To address"},
        "in_reply_to": {"type": "string", "description": "Message-ID being replied to"},
        "references": {
          "type": "array",
          "items": {"type": "string"},
          "description": "Message-IDs of the thread",
        },
      },
      "required": ["account_name", "to", "subject"],
    },
  ),
]
