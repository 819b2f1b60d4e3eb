"""Tests for MIME and IMAP response parsing."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from mail_gateway.client.parsers import (
  decode_header_value,
  make_snippet,
  parse_date,
  parse_fetch_headers,
  parse_full_message,
  parse_header_block,
  parse_list_response,
  parse_raw_email,
  parse_search_response,
  snippet_from_partial_text,
  strip_html,
)

HEADER_BLOCK = (
  b"From: Alice Example <alice@example.com>\r\n"
  b"To: me@example.com, Bob <bob@example.com>\r\n"
  b"Subject: =?utf-8?b?SGVsbG8gV29ybGQ=?=\r\n"
  b"Date: Fri, 01 Mar 2024 10:00:00 +0100\r\n"
  b"Message-ID: <abc123@example.com>\r\n"
  b"\r\n"
)

MULTIPART = (
  b"From: alice@example.com\r\n"
  b"To: me@example.com\r\n"
  b"Subject: Quarterly report\r\n"
  b"Date: Fri, 01 Mar 2024 10:00:00 +0000\r\n"
  b"Message-ID: <report@example.com>\r\n"
  b"MIME-Version: 1.0\r\n"
  b'Content-Type: multipart/mixed; boundary="XYZ"\r\n'
  b"\r\n"
  b"--XYZ\r\n"
  b'Content-Type: text/plain; charset="utf-8"\r\n'
  b"\r\n"
  b"Numbers are attached.\r\n"
  b"--XYZ\r\n"
  b"Content-Type: application/pdf\r\n"
  b'Content-Disposition: attachment; filename="q1.pdf"\r\n'
  b"Content-Transfer-Encoding: base64\r\n"
  b"\r\n"
  b"JVBERi0xLjQK\r\n"
  b"--XYZ--\r\n"
)


class TestHeaders:
  def test_decode_encoded_word(self) -> None:
    assert decode_header_value("=?utf-8?b?SGVsbG8=?=") == "Hello"

  def test_decode_empty(self) -> None:
    assert decode_header_value(None) == ""

  def test_parse_header_block(self) -> None:
    headers = parse_header_block(HEADER_BLOCK)
    assert headers["subject"] == "Hello World"
    assert headers["from"] == "Alice Example <alice@example.com>"
    assert headers["to"] == ["me@example.com", "Bob <bob@example.com>"]
    assert headers["date"] == datetime(2024, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=1)))
    assert headers["message_id"] == "<abc123@example.com>"

  def test_parse_date_without_zone_is_utc(self) -> None:
    assert parse_date("Fri, 01 Mar 2024 10:00:00 -0000") == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)

  def test_parse_date_garbage(self) -> None:
    assert parse_date("yesterday") is None
    assert parse_date("") is None


class TestBodies:
  def test_strip_html(self) -> None:
    html = "<html><style>p{}</style><body><p>Hi <b>there</b></p><script>x()</script></body></html>"
    assert strip_html(html) == "Hi there"

  def test_make_snippet_collapses_whitespace(self) -> None:
    assert make_snippet("a\n\n  b\tc", length=4) == "a b "

  def test_partial_text_drops_mime_noise(self) -> None:
    raw = b"--XYZ\r\nContent-Type: text/plain\r\n\r\nActual words here\r\n"
    assert snippet_from_partial_text(raw) == "Actual words here"

  def test_parse_raw_email_with_attachment(self) -> None:
    parsed = parse_raw_email(MULTIPART)
    assert parsed.subject == "Quarterly report"
    assert "Numbers are attached." in parsed.body
    assert [a.filename for a in parsed.attachments] == ["q1.pdf"]
    assert parsed.attachments[0].content_type == "application/pdf"
    assert parsed.attachments[0].size > 0
    assert parsed.message_id == "<report@example.com>"

  def test_parse_html_only_email(self) -> None:
    raw = b"Subject: promo\r\nContent-Type: text/html\r\n\r\n<p>Big <i>sale</i></p>\r\n"
    parsed = parse_raw_email(raw)
    assert parsed.body_text == ""
    assert parsed.body == "Big sale"
    assert parsed.snippet == "Big sale"


class TestFetchResponses:
  def test_parse_fetch_headers_with_literals(self) -> None:
    lines = [
      b"1 FETCH (UID 42 FLAGS (\\Seen) BODYSTRUCTURE ((\"text\" \"plain\" NIL NIL NIL \"7bit\" 10 1)"
      b" (\"application\" \"pdf\" NIL NIL NIL \"base64\" 100 NIL (\"attachment\" (\"filename\" \"a.pdf\")) NIL)"
      b" \"mixed\") BODY[HEADER.FIELDS (FROM TO SUBJECT DATE MESSAGE-ID)] {64}",
      bytearray(b"From: alice@example.com\r\nSubject: With attachment\r\n\r\n"),
      b" BODY[TEXT]<0> {11}",
      bytearray(b"Hello world"),
      b")",
      b"2 FETCH (UID 43 FLAGS () BODY[HEADER.FIELDS (FROM TO SUBJECT DATE MESSAGE-ID)] {32}",
      bytearray(b"Subject: Plain\r\n\r\n"),
      b")",
      b"Fetch completed (0.001 + 0.000 secs).",
    ]

    first, second = parse_fetch_headers(lines)

    assert first.uid == 42
    assert first.flags == ["\\Seen"]
    assert not first.is_unread
    assert first.has_attachments
    assert b"With attachment" in first.headers
    assert first.text == b"Hello world"

    assert second.uid == 43
    assert second.is_unread
    assert not second.has_attachments
    assert second.text == b""

  def test_parse_full_message(self) -> None:
    lines = [
      b"1 FETCH (UID 7 FLAGS (\\Seen \\Flagged) RFC822 {20}",
      bytearray(b"Subject: x\r\n\r\nbody\r\n"),
      b")",
      b"Fetch completed.",
    ]
    raw, flags = parse_full_message(lines)
    assert raw.startswith(b"Subject: x")
    assert flags == ["\\Seen", "\\Flagged"]

  def test_parse_full_message_missing_uid(self) -> None:
    assert parse_full_message([b"Fetch completed."]) is None

  def test_parse_search_response(self) -> None:
    assert parse_search_response([b"5 1 3", b"Search completed (0.001 + 0.000 secs)."]) == [1, 3, 5]
    assert parse_search_response([b"", b"Search completed."]) == []

  def test_parse_list_response(self) -> None:
    lines = [
      b'(\\HasNoChildren) "/" "INBOX"',
      b'(\\Noselect \\HasChildren) "/" "[Gmail]"',
      b'(\\HasNoChildren \\All) "/" "[Gmail]/All Mail"',
      b'(\\HasNoChildren) "." Archive',
      b"LIST completed.",
    ]
    assert parse_list_response(lines) == ["INBOX", "[Gmail]/All Mail", "Archive"]
