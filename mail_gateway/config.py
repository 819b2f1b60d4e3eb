"""
Gateway configuration.

Built once at startup from a JSON file and the process environment, then
injected into every component. Nothing below the composition root reads the
environment.

JSON file shape::

  {
    "encryption_key": "...",            # optional, else EMAIL_ENCRYPTION_KEY
    "timezone": "Europe/Berlin",        # optional app-level default zone
    "timeouts": {"connect_timeout": 30, "operation_timeout": 60},
    "accounts": [
      {"name": "personal", "kind": "gmail", "client_id": "...",
       "client_secret": "...", "refresh_token": "..."},
      {"name": "work", "kind": "imap", "host": "imap.example.com",
       "user": "me@example.com", "password": "<iv-hex>:<ciphertext-hex>"}
    ]
  }
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .errors import ValidationError
from .helpers import mask_sensitive_data

log = logging.getLogger("mail_gateway.config")

DEFAULT_ENCRYPTION_KEY = "default-key"
FALLBACK_TIMEZONE = "Asia/Tokyo"

_GMAIL_TOKEN_PREFIX = "GMAIL_REFRESH_TOKEN_"
_IMAP_HOST_PREFIX = "IMAP_HOST_"


class TimeoutConfig(BaseModel):
  """All budgets in seconds."""

  connect_timeout: float = Field(default=30.0, gt=0)
  operation_timeout: float = Field(default=60.0, gt=0)
  branch_timeout: float = Field(default=15.0, gt=0)
  fanout_deadline: float = Field(default=25.0, gt=0)


class GatewayConfig(BaseModel):
  encryption_key: str = DEFAULT_ENCRYPTION_KEY
  timezone: str = FALLBACK_TIMEZONE
  timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
  accounts: list[dict[str, Any]] = Field(default_factory=list)
  log_level: str = "INFO"

  @field_validator("log_level")
  @classmethod
  def _upper_level(cls, value: str) -> str:
    return value.upper()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_config(
  path: str | Path | None = None,
  environ: Mapping[str, str] | None = None,
) -> GatewayConfig:
  """Merge the JSON config file (if any) with environment variables."""
  env = os.environ if environ is None else environ
  path = path or env.get("MAIL_GATEWAY_CONFIG")

  data: dict[str, Any] = {}
  if path:
    try:
      data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
      raise ValidationError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
      raise ValidationError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
      raise ValidationError(f"Config file {path} must contain a JSON object")

  accounts = list(data.get("accounts") or [])
  known = {a.get("name") for a in accounts if isinstance(a, dict)}
  for discovered in discover_env_accounts(env):
    if discovered["name"] not in known:
      accounts.append(discovered)

  encryption_key = data.get("encryption_key") or env.get("EMAIL_ENCRYPTION_KEY")
  if not encryption_key:
    log.warning("EMAIL_ENCRYPTION_KEY is not set; falling back to the default key")
    encryption_key = DEFAULT_ENCRYPTION_KEY

  timeouts = TimeoutConfig(**{**_env_timeouts(env), **(data.get("timeouts") or {})})

  config = GatewayConfig(
    encryption_key=encryption_key,
    timezone=resolve_timezone(env, data.get("timezone")),
    timeouts=timeouts,
    accounts=accounts,
    log_level=data.get("log_level") or env.get("MAIL_GATEWAY_LOG_LEVEL", "INFO"),
  )
  log.debug("Loaded config: %s", mask_sensitive_data(config.model_dump()))
  return config


def resolve_timezone(env: Mapping[str, str], app_default: str | None = None) -> str:
  """Zone precedence: TZ > app default (file or EMAIL_DEFAULT_TIMEZONE) > host > fallback."""
  if env.get("TZ"):
    return env["TZ"]
  if app_default:
    return app_default
  if env.get("EMAIL_DEFAULT_TIMEZONE"):
    return env["EMAIL_DEFAULT_TIMEZONE"]
  host_zone = _detect_host_timezone()
  return host_zone or FALLBACK_TIMEZONE


def _detect_host_timezone() -> str | None:
  tzinfo = datetime.now().astimezone().tzinfo
  key = getattr(tzinfo, "key", None)
  if key:
    return key
  # /etc/localtime usually links into the zoneinfo tree.
  localtime = Path("/etc/localtime")
  try:
    target = str(localtime.resolve())
  except OSError:
    return None
  marker = "zoneinfo/"
  if marker in target:
    return target.split(marker, 1)[1]
  return None


def _env_timeouts(env: Mapping[str, str]) -> dict[str, float]:
  names = {
    "IMAP_CONNECTION_TIMEOUT_MS": "connect_timeout",
    "IMAP_OPERATION_TIMEOUT_MS": "operation_timeout",
    "FANOUT_BRANCH_TIMEOUT_MS": "branch_timeout",
    "FANOUT_DEADLINE_MS": "fanout_deadline",
  }
  result: dict[str, float] = {}
  for var, field in names.items():
    raw = env.get(var)
    if not raw:
      continue
    try:
      result[field] = int(raw) / 1000
    except ValueError:
      log.warning("Ignoring non-numeric %s=%r", var, raw)
  return result


# ---------------------------------------------------------------------------
# Environment account discovery
# ---------------------------------------------------------------------------


def _env_port(env: Mapping[str, str], var: str, default: int, account_name: str) -> int:
  raw = env.get(var)
  if not raw:
    return default
  try:
    return int(raw)
  except ValueError:
    raise ValidationError(f"{var} must be a port number, got {raw!r}", account_name=account_name) from None


def discover_env_accounts(env: Mapping[str, str]) -> list[dict[str, Any]]:
  """Build raw account configs from per-account environment variables.

  The variable family decides the kind: ``GMAIL_REFRESH_TOKEN_<NAME>`` makes a
  gmail account, ``IMAP_HOST_<NAME>`` an imap account.
  """
  accounts: list[dict[str, Any]] = []

  for key in sorted(env):
    if key.startswith(_GMAIL_TOKEN_PREFIX):
      name = key[len(_GMAIL_TOKEN_PREFIX) :]
      accounts.append(
        {
          "name": name,
          "kind": "gmail",
          "client_id": env.get("GMAIL_CLIENT_ID", ""),
          "client_secret": env.get("GMAIL_CLIENT_SECRET", ""),
          "refresh_token": env[key],
        }
      )

  for key in sorted(env):
    if key.startswith(_IMAP_HOST_PREFIX):
      name = key[len(_IMAP_HOST_PREFIX) :]
      raw: dict[str, Any] = {
        "name": name,
        "kind": "imap",
        "host": env[key],
        "port": _env_port(env, f"IMAP_PORT_{name}", 993, name),
        "tls": env.get(f"IMAP_TLS_{name}", "true").lower() != "false",
        "user": env.get(f"IMAP_USER_{name}", ""),
        "password": env.get(f"IMAP_PASSWORD_{name}", ""),
      }
      smtp_host = env.get(f"SMTP_HOST_{name}")
      if smtp_host:
        raw["smtp"] = {
          "host": smtp_host,
          "port": _env_port(env, f"SMTP_PORT_{name}", 587, name),
          "secure": env.get(f"SMTP_SECURE_{name}", "false").lower() == "true",
          "user": env.get(f"SMTP_USER_{name}") or raw["user"],
          "password": env.get(f"SMTP_PASSWORD_{name}") or None,
        }
      accounts.append(raw)

  return accounts
