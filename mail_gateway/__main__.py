"""
Gateway entry points.

``mail-gateway [config.json]`` serves JSON-RPC on stdio.
``mail-gateway-encrypt [password]`` prints the at-rest form of a password.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys

from dotenv import load_dotenv

from .config import load_config
from .errors import GatewayError
from .gateway import Gateway
from .server import JsonRpcServer
from .vault import CredentialVault

log = logging.getLogger("mail_gateway")


def _setup_logging(level: str) -> None:
  logging.basicConfig(
    level=getattr(logging, level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
  )


async def run(config_path: str | None) -> None:
  config = load_config(config_path)
  logging.getLogger().setLevel(config.log_level)
  gateway = Gateway(config)
  await JsonRpcServer(gateway).serve_stdio()


def main(argv: list[str] | None = None) -> int:
  load_dotenv()
  parser = argparse.ArgumentParser(prog="mail-gateway", description="Multi-account email gateway (JSON-RPC over stdio)")
  parser.add_argument("config", nargs="?", help="Path to the JSON config file (default: $MAIL_GATEWAY_CONFIG)")
  args = parser.parse_args(argv)

  _setup_logging(os.environ.get("MAIL_GATEWAY_LOG_LEVEL", "INFO"))
  try:
    asyncio.run(run(args.config))
  except GatewayError as e:
    log.error("Startup failed (%s): %s", e.kind.value, e.message)
    return 1
  except KeyboardInterrupt:
    pass
  return 0


def encrypt_main(argv: list[str] | None = None) -> int:
  load_dotenv()
  parser = argparse.ArgumentParser(
    prog="mail-gateway-encrypt",
    description="Encrypt a password with EMAIL_ENCRYPTION_KEY for use in the config",
  )
  parser.add_argument("password", nargs="?", help="Password to encrypt (prompted when omitted)")
  args = parser.parse_args(argv)

  _setup_logging(os.environ.get("MAIL_GATEWAY_LOG_LEVEL", "WARNING"))
  key = os.environ.get("EMAIL_ENCRYPTION_KEY")
  if not key:
    log.error("EMAIL_ENCRYPTION_KEY is not set")
    return 1

  password = args.password or getpass.getpass("Password: ")
  print(CredentialVault(key).encrypt(password))
  return 0


if __name__ == "__main__":
  sys.exit(main())
