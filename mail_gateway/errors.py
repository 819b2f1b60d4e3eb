"""
Error taxonomy shared by every layer of the gateway.

Errors are classified by ``kind`` so callers never need to string-match
messages. Protocol handlers raise these; the Dispatcher propagates them; the
FanOutAggregator records them per account; the server maps them to JSON-RPC
error codes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal


class ErrorKind(str, Enum):
  VALIDATION = "validation"
  NOT_FOUND = "not_found"
  AUTH = "auth"
  CONNECTION = "connection"
  TIMEOUT = "timeout"
  PROTOCOL = "protocol"
  SEND = "send"


TimeoutPhase = Literal["connect", "operation", "branch", "deadline"]

# JSON-RPC error codes per kind (application range -32000..-32099).
ERROR_CODES: dict[ErrorKind, int] = {
  ErrorKind.VALIDATION: -32602,
  ErrorKind.NOT_FOUND: -32001,
  ErrorKind.AUTH: -32002,
  ErrorKind.CONNECTION: -32003,
  ErrorKind.TIMEOUT: -32004,
  ErrorKind.PROTOCOL: -32005,
  ErrorKind.SEND: -32006,
}


class GatewayError(Exception):
  """Base class for all classified gateway failures."""

  kind: ErrorKind = ErrorKind.PROTOCOL

  def __init__(self, message: str, *, account_name: str | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.account_name = account_name

  @property
  def code(self) -> int:
    return ERROR_CODES[self.kind]

  def to_data(self) -> dict[str, Any]:
    data: dict[str, Any] = {"kind": self.kind.value}
    if self.account_name:
      data["accountName"] = self.account_name
    return data


class ValidationError(GatewayError):
  kind = ErrorKind.VALIDATION


class NotFoundError(GatewayError):
  kind = ErrorKind.NOT_FOUND


class AuthError(GatewayError):
  kind = ErrorKind.AUTH


class MailConnectionError(GatewayError):
  """Transport-level failure establishing or maintaining a session."""

  kind = ErrorKind.CONNECTION


class MailTimeoutError(GatewayError):
  """A timeout budget expired; ``phase`` tells which one."""

  kind = ErrorKind.TIMEOUT

  def __init__(
    self,
    message: str,
    *,
    phase: TimeoutPhase,
    account_name: str | None = None,
  ) -> None:
    super().__init__(message, account_name=account_name)
    self.phase = phase

  def to_data(self) -> dict[str, Any]:
    data = super().to_data()
    data["phase"] = self.phase
    return data


class ProtocolError(GatewayError):
  kind = ErrorKind.PROTOCOL


class SendError(GatewayError):
  kind = ErrorKind.SEND


# Failures after which a pooled session must not be handed out again.
SESSION_FATAL_KINDS = frozenset({ErrorKind.AUTH, ErrorKind.CONNECTION, ErrorKind.TIMEOUT})


def classify(error: BaseException, account_name: str | None = None) -> GatewayError:
  """Return ``error`` as a GatewayError, wrapping unknown failures as ProtocolError."""
  if isinstance(error, GatewayError):
    if account_name and not error.account_name:
      error.account_name = account_name
    return error
  # TimeoutError is an OSError subclass, so it has to be checked first.
  if isinstance(error, TimeoutError):
    return MailTimeoutError(f"Timed out: {error}", phase="operation", account_name=account_name)
  if isinstance(error, (ConnectionError, OSError)):
    return MailConnectionError(f"Connection failed: {error}", account_name=account_name)
  return ProtocolError(f"{type(error).__name__}: {error}", account_name=account_name)


class MethodNotFoundError(Exception):
  """Unknown JSON-RPC method or tool name."""

  code = -32601
