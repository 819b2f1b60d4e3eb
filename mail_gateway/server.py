"""
JSON-RPC 2.0 server over stdio.

Reads one request per line from stdin, handles each as its own task, and writes
one response per line to stdout. Logging goes to stderr, so stdout carries
only protocol messages.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from . import __version__
from .errors import GatewayError, MethodNotFoundError, ValidationError
from .handlers import dispatch_tool
from .resources import ALL_RESOURCES, read_resource
from .tools import ALL_TOOLS

if TYPE_CHECKING:
  from .gateway import Gateway

log = logging.getLogger("mail_gateway.server")

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "mail-gateway"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
INTERNAL_ERROR = -32603


def _response(msg_id: Any, result: Any) -> dict[str, Any]:
  return {"jsonrpc": "2.0", "id": msg_id, "result": result}


def _error(msg_id: Any, code: int, message: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
  error: dict[str, Any] = {"code": code, "message": message}
  if data:
    error["data"] = data
  return {"jsonrpc": "2.0", "id": msg_id, "error": error}


def _valid_id(value: Any) -> bool:
  return value is None or (isinstance(value, (str, int)) and not isinstance(value, bool))


class JsonRpcServer:
  """Maps JSON-RPC requests onto gateway tool calls."""

  def __init__(self, gateway: Gateway, *, logger: logging.Logger | None = None) -> None:
    self.gateway = gateway
    self.log = logger or log

  # --------------------------------------------------------------------- #
  # Request handling
  # --------------------------------------------------------------------- #

  async def handle_line(self, line: str) -> dict[str, Any] | None:
    try:
      message = json.loads(line)
    except json.JSONDecodeError as e:
      self.log.warning("Failed to parse JSON-RPC message: %s", e)
      return _error(None, PARSE_ERROR, "Parse error")
    return await self.handle_request(message)

  async def handle_request(self, message: Any) -> dict[str, Any] | None:
    """Handle one decoded message; returns the response, or None for notifications."""
    if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
      return _error(None, INVALID_REQUEST, "Invalid Request")

    method = message.get("method")
    if "id" not in message:
      if isinstance(method, str) and method.startswith("notifications/"):
        self.log.debug("Notification %s", method)
        return None
      return _error(None, INVALID_REQUEST, "Invalid Request")

    msg_id = message["id"]
    if not _valid_id(msg_id) or not isinstance(method, str) or not method:
      return _error(None, INVALID_REQUEST, "Invalid Request")

    try:
      result = await self._dispatch(method, message.get("params"))
    except MethodNotFoundError as e:
      return _error(msg_id, e.code, str(e))
    except GatewayError as e:
      return _error(msg_id, e.code, e.message, e.to_data())
    except Exception as e:
      self.log.exception("Unhandled error in %s", method)
      return _error(msg_id, INTERNAL_ERROR, f"Internal error: {e}")
    return _response(msg_id, result)

  async def _dispatch(self, method: str, params: Any) -> Any:
    if method == "initialize":
      return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}, "resources": {}},
        "serverInfo": {"name": SERVER_NAME, "version": __version__},
      }

    if method == "ping":
      return {}

    if method == "tools/list":
      return {"tools": [t.model_dump(mode="json", by_alias=True, exclude_none=True) for t in ALL_TOOLS]}

    if method == "tools/call":
      p = params if isinstance(params, dict) else {}
      name = p.get("name")
      if not isinstance(name, str) or not name:
        raise ValidationError("Missing required parameter: name")
      args = p.get("arguments") or {}
      if not isinstance(args, dict):
        raise ValidationError("Invalid arguments: must be an object")
      self.log.info("[MCP] tools/call %s", name)
      result = await dispatch_tool(self.gateway, name, args)
      return result.to_wire()

    if method == "resources/list":
      return {"resources": [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in ALL_RESOURCES]}

    if method == "resources/read":
      p = params if isinstance(params, dict) else {}
      uri = p.get("uri")
      if not isinstance(uri, str) or not uri:
        raise ValidationError("Missing required parameter: uri")
      contents = await read_resource(self.gateway, uri)
      return {"contents": [c.model_dump(mode="json", by_alias=True, exclude_none=True) for c in contents]}

    raise MethodNotFoundError(f"Method not found: {method}")

  # --------------------------------------------------------------------- #
  # Transport
  # --------------------------------------------------------------------- #

  async def serve(self, reader: asyncio.StreamReader, write: Callable[[str], None]) -> None:
    """Read until EOF, answering each request as its own task."""
    pending: set[asyncio.Task[None]] = set()

    async def answer(text: str) -> None:
      response = await self.handle_line(text)
      if response is not None:
        write(json.dumps(response, ensure_ascii=False) + "\n")

    while True:
      line = await reader.readline()
      if not line:
        break
      text = line.decode("utf-8", errors="replace").strip()
      if not text:
        continue
      task = asyncio.create_task(answer(text))
      pending.add(task)
      task.add_done_callback(pending.discard)

    if pending:
      await asyncio.gather(*pending, return_exceptions=True)

  async def serve_stdio(self) -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    transport, _ = await loop.connect_write_pipe(asyncio.BaseProtocol, sys.stdout)

    def write(data: str) -> None:
      transport.write(data.encode("utf-8"))

    try:
      await self.serve(reader, write)
    finally:
      await self.gateway.close()
      self.log.info("stdin closed; server stopped")
