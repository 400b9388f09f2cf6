"""Speculative parsing of the line-delimited JSON stream into typed messages."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from .errors import JSONDecodeError, MessageParseError, SDKError

logger = logging.getLogger(__name__)

MAX_BUFFER_SIZE = 1024 * 1024


@dataclass
class TextBlock:
    text: str
    type: ClassVar[str] = "text"


@dataclass
class ThinkingBlock:
    thinking: str
    signature: str = ""
    type: ClassVar[str] = "thinking"


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    type: ClassVar[str] = "tool_use"


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: Any = None
    is_error: bool | None = None
    type: ClassVar[str] = "tool_result"


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]


@dataclass
class UserMessage:
    content: str | list[ContentBlock]
    type: ClassVar[str] = "user"


@dataclass
class AssistantMessage:
    content: list[ContentBlock]
    model: str
    type: ClassVar[str] = "assistant"


@dataclass
class SystemMessage:
    subtype: str
    data: dict[str, Any]
    type: ClassVar[str] = "system"


@dataclass
class ResultMessage:
    subtype: str
    duration_ms: int
    duration_api_ms: int
    is_error: bool
    num_turns: int
    session_id: str
    total_cost_usd: float | None = None
    usage: dict[str, Any] | None = None
    result: str | None = None
    type: ClassVar[str] = "result"


Message = Union[UserMessage, AssistantMessage, SystemMessage, ResultMessage]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


class Parser:
    """Accumulates partial JSON and turns complete objects into messages."""

    def __init__(self, max_buffer_size: int = MAX_BUFFER_SIZE) -> None:
        self.max_buffer_size = max_buffer_size
        self._buffer = ""
        self._lock = threading.Lock()

    def process_line(self, line: str) -> list[Message]:
        """Parse every JSON object found on a (possibly multi-line) input line.

        On error the raised exception's ``messages`` holds what was parsed first.
        """
        with self._lock:
            self._buffer = ""
            line = line.strip()
            if not line:
                return []
            logger.debug("raw line: %s", line)
            messages: list[Message] = []
            for json_line in line.split("\n"):
                json_line = json_line.strip()
                if not json_line:
                    continue
                try:
                    message = self._process_json_line(json_line)
                except SDKError as exc:
                    exc.messages = messages
                    raise
                if message is not None:
                    messages.append(message)
            logger.debug("parsed %d message(s) from line", len(messages))
            return messages

    def process_json_line(self, json_line: str) -> Message | None:
        """Append to the buffer and return a message once the buffer is complete JSON."""
        with self._lock:
            return self._process_json_line(json_line)

    def _process_json_line(self, json_line: str) -> Message | None:
        self._buffer += json_line
        size = len(self._buffer.encode("utf-8"))
        if size > self.max_buffer_size:
            self._buffer = ""
            raise JSONDecodeError(
                "buffer overflow",
                0,
                ValueError(f"buffer size {size} exceeds limit {self.max_buffer_size}"),
            )
        try:
            raw = json.loads(self._buffer, parse_constant=_reject_constant)
        except ValueError as exc:
            logger.debug("incomplete JSON, keep accumulating: %s", exc)
            return None
        if not isinstance(raw, dict):
            return None
        self._buffer = ""
        return self.parse_message(raw)

    def parse_message(self, data: dict[str, Any]) -> Message:
        """Turn a decoded JSON object into the message type named by its ``type`` field."""
        msg_type = data.get("type")
        if not isinstance(msg_type, str):
            raise MessageParseError("missing or invalid type field", data)
        handlers = {
            UserMessage.type: self._parse_user_message,
            AssistantMessage.type: self._parse_assistant_message,
            SystemMessage.type: self._parse_system_message,
            ResultMessage.type: self._parse_result_message,
        }
        handler = handlers.get(msg_type)
        if handler is None:
            raise MessageParseError(f"unknown message type: {msg_type}", data)
        return handler(data)

    def reset(self) -> None:
        """Discard any partially accumulated JSON."""
        with self._lock:
            self._buffer = ""

    def buffer_size(self) -> int:
        """Size in bytes of the partially accumulated JSON."""
        with self._lock:
            return len(self._buffer.encode("utf-8"))

    def _parse_blocks(self, items: list[Any], data: dict[str, Any]) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        for index, item in enumerate(items):
            try:
                blocks.append(self.parse_content_block(item))
            except MessageParseError as exc:
                raise MessageParseError(
                    f"failed to parse content block {index}: {exc}", data
                ) from exc
        return blocks

    def _parse_user_message(self, data: dict[str, Any]) -> UserMessage:
        message = data.get("message")
        if not isinstance(message, dict):
            raise MessageParseError("user message missing message field", data)
        content = message.get("content")
        if content is None:
            raise MessageParseError("user message missing content field", data)
        if isinstance(content, str):
            return UserMessage(content)
        if isinstance(content, list):
            return UserMessage(self._parse_blocks(content, data))
        raise MessageParseError("invalid user message content type", data)

    def _parse_assistant_message(self, data: dict[str, Any]) -> AssistantMessage:
        message = data.get("message")
        if not isinstance(message, dict):
            raise MessageParseError("assistant message missing message field", data)
        content = message.get("content")
        if not isinstance(content, list):
            raise MessageParseError("assistant message content must be array", data)
        model = message.get("model")
        if not isinstance(model, str):
            raise MessageParseError("assistant message missing model field", data)
        return AssistantMessage(self._parse_blocks(content, data), model)

    def _parse_system_message(self, data: dict[str, Any]) -> SystemMessage:
        subtype = data.get("subtype")
        if not isinstance(subtype, str):
            raise MessageParseError("system message missing subtype field", data)
        return SystemMessage(subtype, data)

    def _parse_result_message(self, data: dict[str, Any]) -> ResultMessage:
        subtype = data.get("subtype")
        if not isinstance(subtype, str):
            raise MessageParseError("result message missing subtype field", data)
        numbers = {}
        for key in ("duration_ms", "duration_api_ms"):
            value = data.get(key)
            if not _is_number(value):
                raise MessageParseError(
                    f"result message missing or invalid {key} field", data
                )
            numbers[key] = int(value)
        is_error = data.get("is_error")
        if not isinstance(is_error, bool):
            raise MessageParseError("result message missing or invalid is_error field", data)
        num_turns = data.get("num_turns")
        if not _is_number(num_turns):
            raise MessageParseError("result message missing or invalid num_turns field", data)
        session_id = data.get("session_id")
        if not isinstance(session_id, str):
            raise MessageParseError("result message missing session_id field", data)

        cost = data.get("total_cost_usd")
        usage = data.get("usage")
        result = data.get("result")
        return ResultMessage(
            subtype=subtype,
            duration_ms=numbers["duration_ms"],
            duration_api_ms=numbers["duration_api_ms"],
            is_error=is_error,
            num_turns=int(num_turns),
            session_id=session_id,
            total_cost_usd=float(cost) if _is_number(cost) else None,
            usage=usage if isinstance(usage, dict) else None,
            result=result if isinstance(result, str) else None,
        )

    def parse_content_block(self, block_data: Any) -> ContentBlock:
        """Turn a decoded JSON object into the content block named by its ``type`` field."""
        if not isinstance(block_data, dict):
            raise MessageParseError("content block must be an object", block_data)
        block_type = block_data.get("type")
        if not isinstance(block_type, str):
            raise MessageParseError("content block missing type field", block_data)
        handlers = {
            TextBlock.type: self._parse_text_block,
            ThinkingBlock.type: self._parse_thinking_block,
            ToolUseBlock.type: self._parse_tool_use_block,
            ToolResultBlock.type: self._parse_tool_result_block,
        }
        handler = handlers.get(block_type)
        if handler is None:
            raise MessageParseError(f"unknown content block type: {block_type}", block_data)
        return handler(block_data)

    @staticmethod
    def _parse_text_block(data: dict[str, Any]) -> TextBlock:
        text = data.get("text")
        if not isinstance(text, str):
            raise MessageParseError("text block missing text field", data)
        return TextBlock(text)

    @staticmethod
    def _parse_thinking_block(data: dict[str, Any]) -> ThinkingBlock:
        thinking = data.get("thinking")
        if not isinstance(thinking, str):
            raise MessageParseError("thinking block missing thinking field", data)
        signature = data.get("signature")
        return ThinkingBlock(thinking, signature if isinstance(signature, str) else "")

    @staticmethod
    def _parse_tool_use_block(data: dict[str, Any]) -> ToolUseBlock:
        block_id = data.get("id")
        if not isinstance(block_id, str):
            raise MessageParseError("tool_use block missing id field", data)
        name = data.get("name")
        if not isinstance(name, str):
            raise MessageParseError("tool_use block missing name field", data)
        tool_input = data.get("input")
        return ToolUseBlock(block_id, name, tool_input if isinstance(tool_input, dict) else {})

    @staticmethod
    def _parse_tool_result_block(data: dict[str, Any]) -> ToolResultBlock:
        tool_use_id = data.get("tool_use_id")
        if not isinstance(tool_use_id, str):
            raise MessageParseError("tool_result block missing tool_use_id field", data)
        is_error = data.get("is_error")
        return ToolResultBlock(
            tool_use_id,
            data.get("content"),
            is_error if isinstance(is_error, bool) else None,
        )


def parse_messages(lines: Iterable[str]) -> list[Message]:
    """Parse a sequence of lines with a fresh parser, collecting all messages."""
    parser = Parser()
    collected: list[Message] = []
    for index, line in enumerate(lines):
        try:
            collected.extend(parser.process_line(line))
        except SDKError as exc:
            collected.extend(exc.messages)
            error = SDKError(f"error parsing line {index}: {exc}")
            error.messages = collected
            raise error from exc
    return collected