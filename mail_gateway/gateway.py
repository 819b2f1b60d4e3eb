"""
Composition root.

Builds every component from one ``GatewayConfig``; nothing below this module
reads the environment.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from .api.base import ProtocolHandler
from .api.gmail_api import GmailHandler
from .api.imap_api import ImapHandler
from .client.gmail_client import GmailConnector
from .client.imap_client import ImapConnector
from .config import GatewayConfig
from .dispatcher import Dispatcher
from .fanout import FanOutAggregator
from .pool import Connector, SessionPool
from .registry import AccountRegistry
from .state.types import AccountKind
from .vault import CredentialVault

log = logging.getLogger("mail_gateway.gateway")


class Gateway:
  """Owns the registry, pool, dispatcher and fan-out aggregator for one process."""

  def __init__(
    self,
    config: GatewayConfig,
    *,
    connectors: Mapping[AccountKind, Connector] | None = None,
    handlers: Mapping[AccountKind, ProtocolHandler] | None = None,
    logger: logging.Logger | None = None,
  ) -> None:
    self.config = config
    self.log = logger or log
    timeouts = config.timeouts

    self.vault = CredentialVault(config.encryption_key)
    self.registry = AccountRegistry.from_configs(config.accounts)

    if connectors is None:
      connectors = {
        AccountKind.GMAIL: GmailConnector(),
        AccountKind.IMAP: ImapConnector(self.vault, command_timeout=timeouts.operation_timeout),
      }
    if handlers is None:
      handlers = {
        AccountKind.GMAIL: GmailHandler(timezone=config.timezone),
        AccountKind.IMAP: ImapHandler(
          self.vault,
          timezone=config.timezone,
          send_timeout=timeouts.operation_timeout,
        ),
      }

    self.pool = SessionPool(self.registry, connectors, connect_timeout=timeouts.connect_timeout)
    self.dispatcher = Dispatcher(
      self.registry,
      self.pool,
      handlers,
      operation_timeout=timeouts.operation_timeout,
    )
    self.fanout = FanOutAggregator(
      self.dispatcher,
      branch_timeout=timeouts.branch_timeout,
      deadline=timeouts.fanout_deadline,
    )
    self.log.info(
      "Gateway ready: %d account(s), timezone %s",
      len(self.registry),
      config.timezone,
    )

  async def close(self) -> None:
    await self.pool.close_all()
