"""
Async SMTP submission using aiosmtplib.

Connect-per-send pattern: opens connection, sends, disconnects.
"""

from __future__ import annotations

import contextlib
import logging
from email.message import EmailMessage
from email.utils import formatdate, make_msgid, parseaddr

import aiosmtplib

from ..errors import AuthError, MailConnectionError, MailTimeoutError, SendError
from ..state.types import SendParams, SmtpSettings

log = logging.getLogger("mail_gateway.client.smtp")


def build_message(params: SendParams, from_addr: str) -> EmailMessage:
  """Build an RFC 5322 message; text and html become multipart/alternative."""
  msg = EmailMessage()
  msg["From"] = from_addr
  msg["To"] = ", ".join(params.to)
  if params.cc:
    msg["Cc"] = ", ".join(params.cc)
  msg["Subject"] = params.subject
  msg["Date"] = formatdate(localtime=True)
  domain = parseaddr(from_addr)[1].rpartition("@")[2] or None
  msg["Message-ID"] = make_msgid(domain=domain)
  if params.reply_to:
    msg["Reply-To"] = params.reply_to
  if params.in_reply_to:
    msg["In-Reply-To"] = params.in_reply_to
  if params.references:
    msg["References"] = " ".join(params.references)

  if params.text:
    msg.set_content(params.text)
    if params.html:
      msg.add_alternative(params.html, subtype="html")
  else:
    msg.set_content(params.html or "", subtype="html")
  return msg


async def send_message(
  settings: SmtpSettings,
  password: str,
  params: SendParams,
  *,
  account_name: str | None = None,
  timeout: float | None = None,
) -> str:
  """Send ``params`` through ``settings``; returns the Message-ID."""
  msg = build_message(params, settings.user)
  recipients = [*params.to, *params.cc, *params.bcc]

  smtp = aiosmtplib.SMTP(
    hostname=settings.host,
    port=settings.port,
    use_tls=settings.secure,
    start_tls=not settings.secure,
    timeout=timeout,
  )

  try:
    await smtp.connect()
    try:
      await smtp.login(settings.user, password)
      await smtp.send_message(msg, sender=settings.user, recipients=recipients)
    finally:
      with contextlib.suppress(aiosmtplib.SMTPException, OSError):
        await smtp.quit()
  except aiosmtplib.SMTPAuthenticationError as e:
    raise AuthError(f"SMTP authentication failed for {settings.user}", account_name=account_name) from e
  except aiosmtplib.SMTPTimeoutError as e:
    raise MailTimeoutError("SMTP submission timed out", phase="operation", account_name=account_name) from e
  except (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected) as e:
    raise MailConnectionError(
      f"Cannot connect to SMTP server {settings.host}:{settings.port}: {e}", account_name=account_name
    ) from e
  except aiosmtplib.SMTPException as e:
    raise SendError(f"SMTP server rejected the message: {e}", account_name=account_name) from e
  except OSError as e:
    raise MailConnectionError(f"SMTP connection failed: {e}", account_name=account_name) from e

  log.info("Email sent to %s via %s", ", ".join(params.to), settings.host)
  return str(msg["Message-ID"])
