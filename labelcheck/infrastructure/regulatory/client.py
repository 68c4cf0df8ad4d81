"""
JSON-RPC client for the regulatory tool server
"""
import itertools
import json
import time
from typing import Any, Dict, Union

from labelcheck.core.exceptions import ToolInvocationError, ToolTimeoutError
from labelcheck.core.logging import get_logger
from labelcheck.core.results import Ok, ParseError, TransportError
from labelcheck.infrastructure.regulatory.transport import ToolTransport
from labelcheck.observability.metrics import record_tool_call

logger = get_logger(__name__)

RAW_LIMIT = 500


def _clip(text: str) -> str:
    return text if len(text) <= RAW_LIMIT else text[:RAW_LIMIT] + "..."


def decode_response(line: str, request_id: int) -> Union[Ok[Any], ParseError, TransportError]:
    """
    Decode a JSON-RPC response line

    A JSON-RPC error object or a tool result flagged ``isError`` means the
    capability failed; anything that cannot be read as a response is a
    parse failure.
    """
    try:
        response = json.loads(line)
    except json.JSONDecodeError as e:
        return ParseError(raw=_clip(line), reason=f"Response is not JSON: {e.msg}")
    if not isinstance(response, dict):
        return ParseError(raw=_clip(line), reason="Response is not a JSON object")

    if response.get("id") != request_id:
        return ParseError(
            raw=_clip(line),
            reason=f"Response id {response.get('id')!r} does not match request id {request_id}",
        )

    error = response.get("error")
    if error is not None:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return TransportError(cause=f"Tool server error: {message}")

    result = response.get("result")
    if not isinstance(result, dict):
        return ParseError(raw=_clip(line), reason="Response has no result object")
    return Ok(result)


def decode_tool_content(result: Dict[str, Any], raw: str) -> Union[Ok[Dict[str, Any]], ParseError, TransportError]:
    """Decode the JSON payload carried in ``result.content[0].text``"""
    content = result.get("content")
    if not isinstance(content, list) or not content or not isinstance(content[0], dict):
        return ParseError(raw=_clip(raw), reason="Tool result has no content")
    text = content[0].get("text")
    if not isinstance(text, str):
        return ParseError(raw=_clip(raw), reason="Tool result content has no text")

    if result.get("isError"):
        return TransportError(cause=text)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseError(raw=_clip(text), reason=f"Tool payload is not JSON: {e.msg}")
    if not isinstance(payload, dict):
        return ParseError(raw=_clip(text), reason="Tool payload is not a JSON object")
    return Ok(payload)


class RegulatoryClient:
    """
    Calls tools on the regulatory tool server

    Every call is decoded once into ``Ok``, ``ParseError`` or
    ``TransportError``; nothing is raised.
    """

    def __init__(self, transport: ToolTransport, timeout_s: float = 5.0):
        self.transport = transport
        self.timeout_s = timeout_s
        self._ids = itertools.count(1)

    async def _send(self, method: str, params: Dict[str, Any]):
        request_id = next(self._ids)
        message = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        try:
            line = await self.transport.request(message, self.timeout_s)
        except ToolTimeoutError as e:
            return TransportError(cause=e.message, timed_out=True), ""
        except ToolInvocationError as e:
            return TransportError(cause=e.message), ""
        return decode_response(line, request_id), line

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Union[Ok[Dict[str, Any]], ParseError, TransportError]:
        """
        Call one tool

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Ok with the decoded tool payload, ParseError or TransportError
        """
        start_time = time.time()
        result, line = await self._send("tools/call", {"name": name, "arguments": arguments})
        if isinstance(result, Ok):
            result = decode_tool_content(result.value, line)

        duration = time.time() - start_time
        if isinstance(result, Ok):
            outcome = "success"
        elif isinstance(result, TransportError):
            outcome = "timeout" if result.timed_out else "error"
        else:
            outcome = "parse_error"
        record_tool_call(name, outcome, duration)

        if isinstance(result, Ok):
            logger.debug("Tool call completed", tool=name, duration_ms=int(duration * 1000))
        elif isinstance(result, TransportError):
            logger.warning("Tool call failed", tool=name, cause=result.cause, timed_out=result.timed_out)
        else:
            logger.warning("Tool response could not be parsed", tool=name, reason=result.reason)
        return result

    async def list_tools(self) -> Union[Ok[list], ParseError, TransportError]:
        """Names and schemas of the tools the server exposes"""
        result, line = await self._send("tools/list", {})
        if not isinstance(result, Ok):
            return result
        tools = result.value.get("tools")
        if not isinstance(tools, list):
            return ParseError(raw=_clip(line), reason="tools/list result has no tools")
        return Ok(tools)

    async def close(self) -> None:
        await self.transport.close()
