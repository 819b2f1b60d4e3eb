"""
Shared formatting, masking and logging helpers.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

log = logging.getLogger("mail_gateway.helpers")

SENSITIVE_FIELDS = frozenset(
  {
    "password",
    "refresh_token",
    "refreshToken",
    "encryption_key",
    "encryptionKey",
    "client_secret",
    "clientSecret",
  }
)


# ---------------------------------------------------------------------------
# Tool result
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
  content: str
  is_error: bool = False

  def to_wire(self) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": self.content}], "isError": self.is_error}


def to_json_text(payload: Any) -> str:
  """Pretty JSON used as the text of a tool result."""
  return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Masking
# ---------------------------------------------------------------------------


def mask_value(value: str) -> str:
  """Keep the first and last four characters; short values are fully masked."""
  if len(value) <= 8:
    return "*" * len(value)
  return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


def mask_sensitive_data(data: Any) -> Any:
  """Return a copy of ``data`` with credential fields masked, recursing into containers."""
  if isinstance(data, dict):
    masked: dict[Any, Any] = {}
    for key, value in data.items():
      if key in SENSITIVE_FIELDS and isinstance(value, str):
        masked[key] = mask_value(value)
      else:
        masked[key] = mask_sensitive_data(value)
    return masked
  if isinstance(data, list):
    return [mask_sensitive_data(item) for item in data]
  return data


# ---------------------------------------------------------------------------
# Connection lifecycle logging
# ---------------------------------------------------------------------------


def log_connection_event(
  logger: logging.Logger,
  kind: str,
  event: str,
  account_name: str,
  detail: str | None = None,
) -> None:
  """Emit a ``[CONNECTION] <KIND> <EVENT> <account>`` line."""
  if detail:
    logger.info("[CONNECTION] %s %s %s (%s)", kind.upper(), event, account_name, detail)
  else:
    logger.info("[CONNECTION] %s %s %s", kind.upper(), event, account_name)

