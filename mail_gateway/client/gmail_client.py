"""
Gmail API client.

googleapiclient is synchronous; every request runs in a worker thread so it
stays cancellable from the event loop's point of view. httplib2 is not
thread-safe, so each request gets its own authorized transport instead of the
one the service was built with.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import threading
from typing import Any

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..errors import (
  AuthError,
  GatewayError,
  MailConnectionError,
  NotFoundError,
  ProtocolError,
  SendError,
)
from ..state.types import Account, AccountKind, GmailCredentials

log = logging.getLogger("mail_gateway.client.gmail")

SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]


def map_http_error(e: HttpError, what: str, account_name: str, *, sending: bool = False) -> GatewayError:
  status = getattr(e.resp, "status", 0)
  if status in (401, 403):
    return AuthError(f"Gmail rejected credentials during {what} ({status})", account_name=account_name)
  # Malformed ids come back as 400 "Invalid id value".
  if status == 404 or (status == 400 and what in ("get", "modify")):
    return NotFoundError(f"Gmail {what}: not found", account_name=account_name)
  if sending and status == 400:
    return SendError(f"Gmail refused the message: {e}", account_name=account_name)
  return ProtocolError(f"Gmail {what} failed ({status}): {e}", account_name=account_name)


class GmailSession:
  """Authorized Gmail API handle; safe to reuse across operations."""

  kind = AccountKind.GMAIL
  reusable = True

  def __init__(self, account: Account, service: Any, credentials: Credentials | None = None) -> None:
    self.account = account
    self.service = service
    self.credentials = credentials
    self._closed = False
    self._email_address: str | None = None
    # Guards the service's own transport when there are no credentials to
    # build a per-request one from.
    self._shared_http_lock = threading.Lock()

  @property
  def closed(self) -> bool:
    return self._closed

  def _new_http(self) -> google_auth_httplib2.AuthorizedHttp | None:
    if self.credentials is None:
      return None
    return google_auth_httplib2.AuthorizedHttp(self.credentials, http=httplib2.Http())

  def _run(self, request: Any) -> dict[str, Any]:
    """Execute one request on a worker thread."""
    http = self._new_http()
    if http is not None:
      return request.execute(http=http)
    with self._shared_http_lock:
      return request.execute()

  async def _execute(self, what: str, request: Any, *, sending: bool = False) -> dict[str, Any]:
    name = self.account.name
    try:
      return await asyncio.to_thread(self._run, request)
    except HttpError as e:
      log.error("Gmail %s failed for %s: %s", what, name, e)
      raise map_http_error(e, what, name, sending=sending) from e
    except RefreshError as e:
      raise AuthError(f"Gmail token refresh failed for {name}", account_name=name) from e
    except (TransportError, OSError) as e:
      raise MailConnectionError(f"Gmail {what} failed: {e}", account_name=name) from e

  async def list_messages(self, query: str, max_results: int) -> list[dict[str, Any]]:
    request = self.service.users().messages().list(userId="me", q=query, maxResults=max_results)
    result = await self._execute("list", request)
    return result.get("messages", [])

  async def get_message(
    self,
    message_id: str,
    fmt: str = "metadata",
    metadata_headers: list[str] | None = None,
  ) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"userId": "me", "id": message_id, "format": fmt}
    if metadata_headers:
      kwargs["metadataHeaders"] = metadata_headers
    return await self._execute("get", self.service.users().messages().get(**kwargs))

  async def modify(self, message_id: str, remove_labels: list[str]) -> dict[str, Any]:
    request = (
      self.service.users()
      .messages()
      .modify(userId="me", id=message_id, body={"removeLabelIds": remove_labels})
    )
    return await self._execute("modify", request)

  async def send_raw(self, raw: bytes) -> dict[str, Any]:
    body = {"raw": base64.urlsafe_b64encode(raw).decode("ascii")}
    request = self.service.users().messages().send(userId="me", body=body)
    return await self._execute("send", request, sending=True)

  async def get_profile(self) -> dict[str, Any]:
    return await self._execute("profile", self.service.users().getProfile(userId="me"))

  async def email_address(self) -> str:
    """The mailbox address, fetched once per session."""
    if self._email_address is None:
      profile = await self.get_profile()
      self._email_address = profile.get("emailAddress", "")
    return self._email_address

  async def close(self, *, force: bool = False) -> None:
    if self._closed:
      return
    self._closed = True
    close = getattr(self.service, "close", None)
    if close is not None:
      close()


class GmailConnector:
  """Refreshes the OAuth2 access token and builds the Gmail service."""

  reusable = True

  def __init__(self, *, logger: logging.Logger | None = None) -> None:
    self.log = logger or log

  async def connect(self, account: Account) -> GmailSession:
    creds_ref = account.credential_ref
    if not isinstance(creds_ref, GmailCredentials):
      raise AuthError(f"Account {account.name} has no Gmail credentials", account_name=account.name)

    credentials = Credentials(
      token=None,
      refresh_token=creds_ref.refresh_token,
      client_id=creds_ref.client_id,
      client_secret=creds_ref.client_secret,
      token_uri=creds_ref.token_uri,
      scopes=SCOPES,
    )
    try:
      await asyncio.to_thread(credentials.refresh, Request())
      service = await asyncio.to_thread(
        build, "gmail", "v1", credentials=credentials, cache_discovery=False
      )
    except RefreshError as e:
      self.log.error("Gmail token refresh failed for %s: %s", account.name, e)
      raise AuthError(f"Gmail token refresh failed for {account.name}", account_name=account.name) from e
    except (TransportError, OSError) as e:
      raise MailConnectionError(f"Cannot reach Gmail for {account.name}: {e}", account_name=account.name) from e

    self.log.info("Gmail session ready for %s", account.name)
    return GmailSession(account, service, credentials)
