"""
Gateway data model.

Accounts are immutable after load. Message models serialize with camelCase
aliases so every backend produces the same wire shape.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ..errors import ErrorKind


class AccountKind(str, Enum):
  GMAIL = "gmail"
  IMAP = "imap"


class KindFilter(str, Enum):
  ALL = "ALL"
  GMAIL_ONLY = "GMAIL_ONLY"
  IMAP_ONLY = "IMAP_ONLY"


class _WireModel(BaseModel):
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

  def to_wire(self) -> dict[str, Any]:
    return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class GmailCredentials(BaseModel):
  model_config = ConfigDict(frozen=True)

  client_id: str
  client_secret: str
  refresh_token: str
  token_uri: str = "https://oauth2.googleapis.com/token"


class SmtpSettings(BaseModel):
  model_config = ConfigDict(frozen=True)

  host: str
  port: int = 587
  secure: bool = False
  user: str
  # Encrypted like the IMAP password; None means "reuse the IMAP password".
  password: str | None = None


class ImapCredentials(BaseModel):
  model_config = ConfigDict(frozen=True)

  host: str
  port: int = 993
  tls: bool = True
  user: str
  password: str
  smtp: SmtpSettings


class Account(BaseModel):
  model_config = ConfigDict(frozen=True)

  name: str
  kind: AccountKind
  credential_ref: GmailCredentials | ImapCredentials

  @model_validator(mode="after")
  def _check_credentials(self) -> Account:
    expected = GmailCredentials if self.kind is AccountKind.GMAIL else ImapCredentials
    if not isinstance(self.credential_ref, expected):
      raise ValueError(f"{self.kind.value} account {self.name!r} needs {expected.__name__}")
    return self


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class OperationKind(str, Enum):
  LIST = "list"
  SEARCH = "search"
  DETAIL = "detail"
  ARCHIVE = "archive"
  SEND = "send"
  PROBE = "probe"


class ListParams(BaseModel):
  folder: str = "INBOX"
  limit: int = Field(default=20, ge=1, le=100)
  unread_only: bool = False


class SearchParams(BaseModel):
  text: str = ""
  since: str | None = None
  before: str | None = None
  folders: list[str] | None = None
  limit: int = Field(default=20, ge=1, le=100)


class DetailParams(BaseModel):
  email_id: str
  folder: str = "INBOX"


class ArchiveParams(BaseModel):
  email_id: str
  folder: str = "INBOX"
  remove_unread: bool = False


class SendParams(BaseModel):
  to: list[str]
  subject: str
  text: str | None = None
  html: str | None = None
  cc: list[str] = Field(default_factory=list)
  bcc: list[str] = Field(default_factory=list)
  reply_to: str | None = None
  in_reply_to: str | None = None
  references: list[str] = Field(default_factory=list)

  @model_validator(mode="after")
  def _check_body(self) -> SendParams:
    if not self.text and not self.html:
      raise ValueError("either text or html is required")
    return self


class ProbeParams(BaseModel):
  pass


OperationParams = ListParams | SearchParams | DetailParams | ArchiveParams | SendParams | ProbeParams


class Operation(BaseModel):
  model_config = ConfigDict(frozen=True)

  kind: OperationKind
  account_name: str
  params: OperationParams

  @model_validator(mode="after")
  def _check_params(self) -> Operation:
    expected = PARAMS_BY_KIND[self.kind]
    if type(self.params) is not expected:
      raise ValueError(f"{self.kind.value} operation needs {expected.__name__}")
    return self


PARAMS_BY_KIND: dict[OperationKind, type[BaseModel]] = {
  OperationKind.LIST: ListParams,
  OperationKind.SEARCH: SearchParams,
  OperationKind.DETAIL: DetailParams,
  OperationKind.ARCHIVE: ArchiveParams,
  OperationKind.SEND: SendParams,
  OperationKind.PROBE: ProbeParams,
}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class EmailAttachment(_WireModel):
  filename: str
  content_type: str
  size: int = 0


class EmailMessage(_WireModel):
  id: str
  account_name: str
  account_kind: AccountKind
  folder: str | None = None
  subject: str = ""
  # "from" is reserved; the wire name stays "from".
  from_: str = Field(default="", alias="from")
  to: list[str] = Field(default_factory=list)
  date: datetime | None = None
  snippet: str = ""
  is_unread: bool = False
  has_attachments: bool = False

  @property
  def key(self) -> tuple[str, str]:
    """Ids are only unique per account; this pair is the global identity."""
    return (self.account_name, self.id)


class EmailDetail(EmailMessage):
  body: str = ""
  attachments: list[EmailAttachment] = Field(default_factory=list)


class SendReceipt(_WireModel):
  message_id: str


SortBy = Literal["date", "relevance"]


class FanOutResult(_WireModel):
  messages: list[EmailMessage] = Field(default_factory=list)
  total_found: int = 0
  per_account_errors: dict[str, ErrorKind] = Field(default_factory=dict)
  error_details: dict[str, str] = Field(default_factory=dict)
