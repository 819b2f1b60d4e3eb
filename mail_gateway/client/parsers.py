"""
Email MIME parsing utilities.

Uses stdlib email.parser for RFC822 parsing and header decoding. IMAP FETCH
responses arrive as a mix of text lines and ``bytearray`` literals; the text
line that announces a literal says which section it carries.
"""

from __future__ import annotations

import email.policy
import email.utils
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.header import decode_header, make_header
from email.message import Message
from email.parser import BytesParser
from typing import Any

from ..state.types import EmailAttachment

log = logging.getLogger("mail_gateway.client.parsers")

_parser = BytesParser(policy=email.policy.default)

SNIPPET_LENGTH = 200
MAX_HTML_SIZE = 100_000

_FETCH_START_RE = re.compile(r"^\*?\s*\d+\s+FETCH\b", re.IGNORECASE)
_UID_RE = re.compile(r"\bUID\s+(\d+)", re.IGNORECASE)
_FLAGS_RE = re.compile(r"\bFLAGS\s*\(([^)]*)\)", re.IGNORECASE)
_SECTION_RE = re.compile(r"BODY\[([^\]]*)\]", re.IGNORECASE)
_LITERAL_RE = re.compile(r"\{\d+\}\s*$")


@dataclass
class FetchedHeaders:
  """One message from a header-only FETCH."""

  uid: int
  flags: list[str] = field(default_factory=list)
  headers: bytes = b""
  text: bytes = b""
  has_attachments: bool = False

  @property
  def is_unread(self) -> bool:
    return "\\Seen" not in self.flags


@dataclass
class ParsedMessage:
  subject: str = ""
  from_: str = ""
  to: list[str] = field(default_factory=list)
  date: datetime | None = None
  message_id: str = ""
  body_text: str = ""
  body_html: str = ""
  attachments: list[EmailAttachment] = field(default_factory=list)

  @property
  def body(self) -> str:
    return self.body_text or strip_html(self.body_html)

  @property
  def snippet(self) -> str:
    return make_snippet(self.body)


# ---------------------------------------------------------------------------
# Headers and dates
# ---------------------------------------------------------------------------


def decode_header_value(raw: str | None) -> str:
  """Decode RFC 2047 encoded words into text."""
  if not raw:
    return ""
  try:
    return str(make_header(decode_header(raw)))
  except (UnicodeDecodeError, LookupError, ValueError):
    return raw


def parse_date(value: str | None) -> datetime | None:
  """Parse an RFC 5322 date; naive results are taken as UTC."""
  if not value:
    return None
  try:
    parsed = email.utils.parsedate_to_datetime(value)
  except (ValueError, TypeError):
    return None
  if parsed is None:
    return None
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=UTC)
  return parsed


def parse_header_block(raw: bytes) -> dict[str, Any]:
  """Parse a header-only block into subject/from/to/date."""
  msg = _parser.parsebytes(raw, headersonly=True)
  return {
    "subject": decode_header_value(msg.get("Subject")),
    "from": decode_header_value(msg.get("From")),
    "to": _address_list(msg.get("To")),
    "date": parse_date(msg.get("Date")),
    "message_id": str(msg.get("Message-ID", "")).strip(),
  }


def _address_list(raw: Any) -> list[str]:
  if not raw:
    return []
  result = []
  for name, addr in email.utils.getaddresses([str(raw)]):
    if not addr:
      continue
    result.append(email.utils.formataddr((name, addr)) if name else addr)
  return result


# ---------------------------------------------------------------------------
# Bodies
# ---------------------------------------------------------------------------


def strip_html(html: str) -> str:
  """Simple HTML tag stripper for snippets."""
  if not html:
    return ""
  text = re.sub(r"<(script|style)[^>]*>.*?</\1>", " ", html, flags=re.IGNORECASE | re.DOTALL)
  text = re.sub(r"<[^>]+>", " ", text)
  text = re.sub(r"\s+", " ", text)
  return text.strip()


def make_snippet(text: str, length: int = SNIPPET_LENGTH) -> str:
  return re.sub(r"\s+", " ", text).strip()[:length]


def snippet_from_partial_text(raw: bytes) -> str:
  """Best-effort preview from the first bytes of BODY[TEXT].

  The partial body may still hold MIME boundaries and part headers; those
  lines are dropped.
  """
  if not raw:
    return ""
  text = raw.decode("utf-8", errors="replace")
  kept = []
  for line in text.splitlines():
    stripped = line.strip()
    if stripped.startswith("--"):
      continue
    if re.match(r"^content-[\w-]+:", stripped, re.IGNORECASE):
      continue
    kept.append(stripped)
  return make_snippet(strip_html(" ".join(kept)))


def _decode_part(part: Message) -> str:
  payload = part.get_payload(decode=True)
  if not payload or not isinstance(payload, bytes):
    return ""
  charset = part.get_content_charset() or "utf-8"
  try:
    return payload.decode(charset, errors="replace")
  except (LookupError, UnicodeDecodeError):
    return payload.decode("utf-8", errors="replace")


def parse_raw_email(raw: bytes) -> ParsedMessage:
  """Parse a raw RFC822 email."""
  msg = _parser.parsebytes(raw)

  body_text = ""
  body_html = ""
  attachments: list[EmailAttachment] = []

  if msg.is_multipart():
    for part in msg.walk():
      if part.is_multipart():
        continue
      content_type = part.get_content_type()
      disposition = str(part.get("Content-Disposition", "")).lower()

      if "attachment" in disposition or (
        content_type not in ("text/plain", "text/html") and disposition
      ):
        filename = part.get_filename() or f"attachment_{len(attachments)}"
        size = len(part.get_payload(decode=True) or b"")
        attachments.append(
          EmailAttachment(filename=filename, content_type=content_type, size=size)
        )
      elif content_type == "text/plain" and not body_text:
        body_text = _decode_part(part)
      elif content_type == "text/html" and not body_html:
        body_html = _decode_part(part)
  else:
    decoded = _decode_part(msg)
    if msg.get_content_type() == "text/html":
      body_html = decoded
    else:
      body_text = decoded

  if len(body_html) > MAX_HTML_SIZE:
    body_html = body_html[:MAX_HTML_SIZE]

  return ParsedMessage(
    subject=decode_header_value(msg.get("Subject")),
    from_=decode_header_value(msg.get("From")),
    to=_address_list(msg.get("To")),
    date=parse_date(msg.get("Date")),
    message_id=str(msg.get("Message-ID", "")).strip(),
    body_text=body_text,
    body_html=body_html,
    attachments=attachments,
  )


# ---------------------------------------------------------------------------
# IMAP FETCH responses
# ---------------------------------------------------------------------------


def _line_text(line: Any) -> str | None:
  """Text lines as str; ``bytearray`` literals return None."""
  if isinstance(line, bytearray):
    return None
  if isinstance(line, bytes):
    return line.decode("utf-8", errors="replace")
  if isinstance(line, str):
    return line
  return None


def parse_fetch_headers(lines: list[Any]) -> list[FetchedHeaders]:
  """Parse a UID FETCH of FLAGS, BODYSTRUCTURE, header fields and a text prefix."""
  results: list[FetchedHeaders] = []
  current: FetchedHeaders | None = None
  pending_section: str | None = None

  def finish() -> None:
    if current is not None and current.uid:
      results.append(current)

  for line in lines:
    text = _line_text(line)

    if text is None:
      if current is not None and pending_section is not None:
        data = bytes(line)
        if "HEADER" in pending_section.upper():
          current.headers = data
        else:
          current.text = data
      pending_section = None
      continue

    if _FETCH_START_RE.match(text.strip()):
      finish()
      current = FetchedHeaders(uid=0)

    if current is None:
      continue

    m = _UID_RE.search(text)
    if m:
      current.uid = int(m.group(1))
    m = _FLAGS_RE.search(text)
    if m:
      current.flags = m.group(1).split()
    if "BODYSTRUCTURE" in text.upper() and '"ATTACHMENT"' in text.upper():
      current.has_attachments = True

    if _LITERAL_RE.search(text):
      sections = _SECTION_RE.findall(text)
      pending_section = sections[-1] if sections else None

  finish()
  return results


def parse_full_message(lines: list[Any]) -> tuple[bytes, list[str]] | None:
  """Extract the RFC822 literal and flags from a full-message FETCH."""
  raw: bytes | None = None
  flags: list[str] = []
  for line in lines:
    text = _line_text(line)
    if text is None:
      if raw is None:
        raw = bytes(line)
      continue
    m = _FLAGS_RE.search(text)
    if m:
      flags = m.group(1).split()
  if raw is None:
    return None
  return raw, flags


def parse_search_response(lines: list[Any]) -> list[int]:
  """UIDs from a UID SEARCH response; the trailing status line is skipped."""
  uids: list[int] = []
  for line in lines[:-1] if len(lines) > 1 else lines:
    text = _line_text(line)
    if not text:
      continue
    for part in text.split():
      if part.isdigit():
        uids.append(int(part))
  return sorted(set(uids))


def parse_list_response(lines: list[Any]) -> list[str]:
  """Folder names from a LIST response."""
  names = []
  for line in lines:
    text = _line_text(line)
    if not text or not text.strip():
      continue
    m = re.match(r'\(([^)]*)\)\s+("[^"]*"|NIL)\s+(.+)$', text.strip())
    if not m:
      continue
    flags = m.group(1).lower()
    if "\\noselect" in flags or "\\nonexistent" in flags:
      continue
    name = m.group(3).strip()
    if name.startswith('"') and name.endswith('"'):
      name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    names.append(name)
  return names
