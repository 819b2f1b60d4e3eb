"""
Protocol handler contract.

Every account kind implements the same async methods; each takes a live
session from the pool and returns the shared result models.
"""

from __future__ import annotations

import abc
import logging
import re
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import ValidationError
from ..state.types import (
  ArchiveParams,
  DetailParams,
  EmailDetail,
  EmailMessage,
  ListParams,
  ProbeParams,
  SearchParams,
  SendParams,
  SendReceipt,
)

log = logging.getLogger("mail_gateway.api")

_EPOCH_RE = re.compile(r"^\d{9,11}(\.\d+)?$")
_BARE_DATE_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")


def load_zone(name: str) -> ZoneInfo:
  try:
    return ZoneInfo(name)
  except (ZoneInfoNotFoundError, ValueError):
    log.warning("Unknown timezone %r, using UTC", name)
    return ZoneInfo("UTC")


def parse_date_input(value: str | int | float, zone: ZoneInfo) -> datetime:
  """Parse a caller-supplied date into an aware datetime.

  Accepts Unix epoch seconds, ISO-8601 (an explicit offset wins, otherwise
  ``zone`` applies) and bare ``YYYY-MM-DD`` / ``YYYY/MM/DD`` dates, which mean
  local midnight in ``zone``.
  """
  if isinstance(value, (int, float)) and not isinstance(value, bool):
    return datetime.fromtimestamp(value, tz=zone)

  text = str(value).strip()
  if not text:
    raise ValidationError("Empty date value")

  if _EPOCH_RE.match(text):
    return datetime.fromtimestamp(float(text), tz=zone)

  m = _BARE_DATE_RE.match(text)
  if m:
    try:
      return datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), tzinfo=zone)
    except ValueError as e:
      raise ValidationError(f"Invalid date: {text}") from e

  try:
    parsed = datetime.fromisoformat(text)
  except ValueError as e:
    raise ValidationError(
      f"Invalid date {text!r}; use epoch seconds, ISO-8601 or YYYY-MM-DD"
    ) from e
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=zone)
  return parsed


class ProtocolHandler(abc.ABC):
  """Per-kind implementation of the gateway operations."""

  def __init__(self, *, timezone: str = "UTC", logger: logging.Logger | None = None) -> None:
    self.zone = load_zone(timezone)
    self.log = logger or log

  @abc.abstractmethod
  async def list_emails(self, session: Any, params: ListParams) -> list[EmailMessage]: ...

  @abc.abstractmethod
  async def search_emails(self, session: Any, params: SearchParams) -> list[EmailMessage]: ...

  @abc.abstractmethod
  async def get_detail(self, session: Any, params: DetailParams) -> EmailDetail: ...

  @abc.abstractmethod
  async def archive(self, session: Any, params: ArchiveParams) -> bool: ...

  @abc.abstractmethod
  async def send(self, session: Any, params: SendParams) -> SendReceipt: ...

  @abc.abstractmethod
  async def probe(self, session: Any, params: ProbeParams) -> dict[str, Any]: ...
