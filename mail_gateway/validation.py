"""
Input validation helpers for tool arguments.

Everything here raises ``mail_gateway.errors.ValidationError`` so the server
maps bad arguments to -32602 before any session is touched.
"""

from __future__ import annotations

import re
from typing import Any

import pydantic

from .errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# Accepts "Name <addr@example.com>" as well as bare addresses.
_ANGLE_RE = re.compile(r"<([^<>]+)>\s*$")


def _bare_address(value: str) -> str:
  m = _ANGLE_RE.search(value)
  return m.group(1).strip() if m else value


def validate_email_address(value: Any, param_name: str) -> str:
  """Validate an email address."""
  if not isinstance(value, str) or not value:
    raise ValidationError(f"Missing required parameter: {param_name}")
  value = value.strip()
  if not _EMAIL_RE.match(_bare_address(value)):
    raise ValidationError(f"Invalid email address for {param_name}: {value}")
  return value


def validate_email_list(value: Any, param_name: str, *, required: bool = True) -> list[str]:
  """Validate a list of email addresses or a comma-separated string."""
  if value is None and not required:
    return []
  if isinstance(value, str):
    parts = [p.strip() for p in value.split(",") if p.strip()]
  elif isinstance(value, list):
    parts = [str(p).strip() for p in value if p]
  else:
    raise ValidationError(f"Invalid {param_name}: must be a list or comma-separated string")

  if not parts:
    if not required:
      return []
    raise ValidationError(f"Missing required parameter: {param_name}")

  for addr in parts:
    if not _EMAIL_RE.match(_bare_address(addr)):
      raise ValidationError(f"Invalid email address in {param_name}: {addr}")
  return parts


def validate_folder(value: Any, param_name: str = "folder") -> str:
  """Validate a folder name."""
  if not isinstance(value, str) or not value.strip():
    raise ValidationError(f"Missing required parameter: {param_name}")
  return value.strip()


def validate_id_list(value: Any, param_name: str = "emailId") -> list[str]:
  """Validate one message id or a list of them. Ids are opaque strings."""
  if isinstance(value, (str, int)) and not isinstance(value, bool):
    items = [value]
  elif isinstance(value, list):
    items = value
  else:
    raise ValidationError(f"Invalid {param_name}: must be a string or list of strings")

  result = []
  for item in items:
    if isinstance(item, bool) or not isinstance(item, (str, int)):
      raise ValidationError(f"Invalid id in {param_name}: {item!r}")
    text = str(item).strip()
    if not text:
      raise ValidationError(f"Invalid id in {param_name}: empty")
    result.append(text)
  if not result:
    raise ValidationError(f"Missing required parameter: {param_name}")
  return result


def build_params(model: type[pydantic.BaseModel], **fields: Any) -> Any:
  """Construct a params model, turning pydantic failures into ValidationError."""
  try:
    return model(**fields)
  except pydantic.ValidationError as e:
    problems = "; ".join(
      f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}" for err in e.errors()
    )
    raise ValidationError(f"Invalid arguments: {problems}") from e


# ---------------------------------------------------------------------------
# Argument accessors
# ---------------------------------------------------------------------------


def opt_number(args: dict[str, Any], key: str, fallback: int) -> int:
  """Read an optional number from args with a fallback."""
  v = args.get(key)
  if v is None:
    return fallback
  if isinstance(v, bool) or not isinstance(v, (int, float)):
    raise ValidationError(f"Invalid {key}: must be a number")
  return int(v)


def opt_string(args: dict[str, Any], key: str) -> str | None:
  """Read an optional string from args."""
  v = args.get(key)
  if v is None:
    return None
  if isinstance(v, (int, float)) and not isinstance(v, bool):
    return str(v)
  if not isinstance(v, str):
    raise ValidationError(f"Invalid {key}: must be a string")
  return v


def req_string(args: dict[str, Any], key: str) -> str:
  """Read a required string from args."""
  v = args.get(key)
  if not isinstance(v, str) or not v:
    raise ValidationError(f"Missing required parameter: {key}")
  return v


def opt_boolean(args: dict[str, Any], key: str, fallback: bool = False) -> bool:
  """Read an optional boolean from args."""
  v = args.get(key)
  return v if isinstance(v, bool) else fallback


def opt_string_list(args: dict[str, Any], key: str) -> list[str] | None:
  """Read an optional list of strings from args."""
  v = args.get(key)
  if v is None:
    return None
  if isinstance(v, str):
    return [p.strip() for p in v.split(",") if p.strip()]
  if isinstance(v, list):
    return [str(p).strip() for p in v if p]
  raise ValidationError(f"Invalid {key}: must be a list or comma-separated string")


def opt_date_range(args: dict[str, Any]) -> tuple[str | None, str | None]:
  """Read ``(since, before)``, accepting ``date_after``/``date_before`` or ``since``/``before``."""
  since = opt_string(args, "date_after") or opt_string(args, "since")
  before = opt_string(args, "date_before") or opt_string(args, "before")
  return since, before
