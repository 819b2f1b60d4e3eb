"""
Shared data model for the gateway.
"""

from __future__ import annotations

from .types import (
  Account,
  AccountKind,
  ArchiveParams,
  DetailParams,
  EmailAttachment,
  EmailDetail,
  EmailMessage,
  FanOutResult,
  GmailCredentials,
  ImapCredentials,
  KindFilter,
  ListParams,
  Operation,
  OperationKind,
  ProbeParams,
  SearchParams,
  SendParams,
  SendReceipt,
  SmtpSettings,
)

__all__ = [
  "Account",
  "AccountKind",
  "ArchiveParams",
  "DetailParams",
  "EmailAttachment",
  "EmailDetail",
  "EmailMessage",
  "FanOutResult",
  "GmailCredentials",
  "ImapCredentials",
  "KindFilter",
  "ListParams",
  "Operation",
  "OperationKind",
  "ProbeParams",
  "SearchParams",
  "SendParams",
  "SendReceipt",
  "SmtpSettings",
]
