"""The bidirectional control protocol spoken with the command line tool."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import SDKError
from .hooks import CanUseToolRequest, HookCallbackRequest, HookProcessor

logger = logging.getLogger(__name__)

CONTROL_REQUEST = "control_request"
CONTROL_RESPONSE = "control_response"
CONTROL_CANCEL_REQUEST = "control_cancel_request"

SUBTYPE_INITIALIZE = "initialize"
SUBTYPE_CAN_USE_TOOL = "can_use_tool"
SUBTYPE_HOOK_CALLBACK = "hook_callback"
SUBTYPE_SUCCESS = "success"
SUBTYPE_ERROR = "error"


@dataclass
class _Pending:
    done: threading.Event = field(default_factory=threading.Event)
    response: dict[str, Any] | None = None
    error: SDKError | None = None


def _decode(data: bytes | str, what: str) -> dict[str, Any]:
    try:
        message = json.loads(data)
    except ValueError as exc:
        raise SDKError(f"failed to unmarshal {what}: {exc}") from exc
    if not isinstance(message, dict):
        raise SDKError(f"failed to unmarshal {what}: not a JSON object")
    return message


class ControlProtocol:
    """Sends control requests, matches their responses and answers requests from the tool."""

    def __init__(self, hook_processor: HookProcessor, write: Callable[[bytes], Any]) -> None:
        self._hooks = hook_processor
        self._write = write
        self._lock = threading.Lock()
        self._pending: dict[str, _Pending] = {}
        self._counter = 0
        self._initialized = False
        self._closed = False

    def initialize(self, timeout: float = 60.0) -> dict[str, Any]:
        """Send the initialisation request, with any hook configuration, and wait for the reply."""
        request: dict[str, Any] = {"subtype": SUBTYPE_INITIALIZE}
        config = self._hooks.build_initialize_config()
        if config:
            request["hooks"] = {
                event: [matcher.to_dict() for matcher in matchers]
                for event, matchers in config.items()
            }
        try:
            response = self._send_control_request(request, timeout)
        except SDKError as exc:
            raise SDKError(f"initialize request failed: {exc}") from exc
        with self._lock:
            self._initialized = True
        return response

    def is_initialized(self) -> bool:
        with self._lock:
            return self._initialized

    def handle_incoming_message(self, msg_type: str, data: bytes | str) -> None:
        """Dispatch a control message read from the tool."""
        if msg_type == CONTROL_RESPONSE:
            self._handle_control_response(data)
        elif msg_type == CONTROL_REQUEST:
            request = _decode(data, "control request")
            threading.Thread(
                target=self._process_control_request, args=(request,), daemon=True
            ).start()
        elif msg_type == CONTROL_CANCEL_REQUEST:
            # Cancellation of in-flight requests is not supported; ignore it.
            return
        else:
            raise SDKError(f"unknown control message type: {msg_type}")

    def close(self) -> None:
        """Stop accepting requests and fail every request still waiting for a reply."""
        with self._lock:
            self._closed = True
            pending, self._pending = self._pending, {}
        for entry in pending.values():
            entry.error = SDKError("control protocol closed")
            entry.done.set()

    def _handle_control_response(self, data: bytes | str) -> None:
        message = _decode(data, "control response")
        body = message.get("response")
        if not isinstance(body, dict):
            body = {}
        with self._lock:
            pending = self._pending.pop(str(body.get("request_id", "")), None)
        if pending is None:
            return
        if body.get("subtype") == SUBTYPE_ERROR:
            pending.error = SDKError(f"control request error: {body.get('error', '')}")
        else:
            response = body.get("response")
            pending.response = response if isinstance(response, dict) else {}
        pending.done.set()

    def _process_control_request(self, message: dict[str, Any]) -> None:
        request_id = message.get("request_id", "")
        payload = message.get("request")
        if not isinstance(payload, dict):
            payload = {}
        subtype = payload.get("subtype")
        try:
            if subtype == SUBTYPE_CAN_USE_TOOL:
                result = self._handle_can_use_tool(payload)
            elif subtype == SUBTYPE_HOOK_CALLBACK:
                result = self._handle_hook_callback(payload)
            else:
                raise SDKError(f"unsupported control request subtype: {subtype}")
            body: dict[str, Any] = {
                "subtype": SUBTYPE_SUCCESS,
                "request_id": request_id,
                "response": result,
            }
        except Exception as exc:
            body = {"subtype": SUBTYPE_ERROR, "request_id": request_id, "error": str(exc)}

        try:
            encoded = json.dumps({"type": CONTROL_RESPONSE, "response": body}).encode("utf-8")
            self._write(encoded + b"\n")
        except Exception as exc:
            logger.warning("failed to send control response: %s", exc)

    def _handle_can_use_tool(self, data: dict[str, Any]) -> dict[str, Any]:
        tool_name = data.get("tool_name")
        tool_input = data.get("input")
        suggestions = data.get("permission_suggestions")
        request = CanUseToolRequest(
            tool_name=tool_name if isinstance(tool_name, str) else "",
            input=tool_input if isinstance(tool_input, dict) else {},
            permission_suggestions=suggestions if isinstance(suggestions, list) else [],
        )
        return self._hooks.process_can_use_tool(request).to_dict()

    def _handle_hook_callback(self, data: dict[str, Any]) -> dict[str, Any]:
        callback_id = data.get("callback_id")
        hook_input = data.get("input")
        tool_use_id = data.get("tool_use_id")
        request = HookCallbackRequest(
            callback_id=callback_id if isinstance(callback_id, str) else "",
            input=hook_input if isinstance(hook_input, dict) else {},
            tool_use_id=tool_use_id if isinstance(tool_use_id, str) else None,
        )
        return self._hooks.process_hook_callback(request)

    def _next_request_id(self) -> str:
        with self._lock:
            self._counter += 1
            return f"req_{self._counter}_{time.time_ns()}"

    def _discard(self, request_id: str) -> None:
        with self._lock:
            self._pending.pop(request_id, None)

    def _send_control_request(self, request: dict[str, Any], timeout: float) -> dict[str, Any]:
        subtype = request["subtype"]
        request_id = self._next_request_id()
        pending = _Pending()
        with self._lock:
            if self._closed:
                raise SDKError("control protocol closed")
            self._pending[request_id] = pending

        message = {"type": CONTROL_REQUEST, "request_id": request_id, "request": request}
        try:
            encoded = json.dumps(message).encode("utf-8") + b"\n"
        except (TypeError, ValueError) as exc:
            self._discard(request_id)
            raise SDKError(f"failed to marshal control request: {exc}") from exc
        try:
            self._write(encoded)
        except Exception as exc:
            self._discard(request_id)
            raise SDKError(f"failed to send control request: {exc}") from exc

        if not pending.done.wait(timeout):
            self._discard(request_id)
            raise SDKError(f"control request timeout: {subtype}")
        if pending.error is not None:
            raise pending.error
        return pending.response or {}