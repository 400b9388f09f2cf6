"""Hook callbacks and tool-permission callbacks invoked by the command line tool."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .errors import SDKError


class HookEvent(str, Enum):
    """Points in the tool's life cycle at which hooks may run."""

    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    PRE_COMPACT = "PreCompact"


@dataclass
class HookContext:
    """Context handed to a hook callback."""

    signal: Any = None


@dataclass
class PermissionRuleValue:
    tool_name: str
    rule_content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"toolName": self.tool_name, "ruleContent": self.rule_content}


@dataclass
class PermissionUpdate:
    """A change to the tool's permission settings."""

    type: str
    destination: str | None = None
    rules: list[PermissionRuleValue] = field(default_factory=list)
    behavior: str | None = None
    mode: str | None = None
    directories: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.destination is not None:
            data["destination"] = self.destination
        if self.rules:
            data["rules"] = [rule.to_dict() for rule in self.rules]
        if self.behavior is not None:
            data["behavior"] = self.behavior
        if self.mode is not None:
            data["mode"] = self.mode
        if self.directories:
            data["directories"] = list(self.directories)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PermissionUpdate:
        rules = [
            PermissionRuleValue(rule.get("toolName", ""), rule.get("ruleContent"))
            for rule in data.get("rules") or []
            if isinstance(rule, dict)
        ]
        directories = data.get("directories") or []
        return cls(
            type=str(data.get("type", "")),
            destination=data.get("destination"),
            rules=rules,
            behavior=data.get("behavior"),
            mode=data.get("mode"),
            directories=[str(d) for d in directories],
        )


@dataclass
class ToolPermissionContext:
    """Context handed to a tool-permission callback."""

    suggestions: list[PermissionUpdate] = field(default_factory=list)
    signal: Any = None


@dataclass
class PermissionResultAllow:
    updated_input: dict[str, Any] | None = None
    updated_permissions: list[PermissionUpdate] | None = None


@dataclass
class PermissionResultDeny:
    message: str = ""
    interrupt: bool = False


PermissionResult = Union[PermissionResultAllow, PermissionResultDeny]

HookCallback = Callable[[dict[str, Any], Union[str, None], HookContext], dict[str, Any]]
CanUseToolCallback = Callable[[str, dict[str, Any], ToolPermissionContext], PermissionResult]


@dataclass
class HookMatcher:
    """Callbacks that run for tools whose name matches ``matcher``."""

    matcher: str = ""
    hooks: list[HookCallback] = field(default_factory=list)


@dataclass
class HookMatcherConfig:
    """The wire form of a matcher: its pattern and the ids of its callbacks."""

    matcher: str
    hook_callback_ids: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"matcher": self.matcher, "hookCallbackIds": list(self.hook_callback_ids)}


@dataclass
class PermissionResponse:
    """The answer sent back for a tool-permission request."""

    behavior: str
    updated_input: dict[str, Any] | None = None
    updated_permissions: list[dict[str, Any]] | None = None
    message: str = ""
    interrupt: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"behavior": self.behavior}
        if self.updated_input is not None:
            data["updatedInput"] = self.updated_input
        if self.updated_permissions is not None:
            data["updatedPermissions"] = self.updated_permissions
        if self.message:
            data["message"] = self.message
        if self.interrupt:
            data["interrupt"] = self.interrupt
        return data


@dataclass
class HookCallbackRequest:
    callback_id: str
    input: dict[str, Any] = field(default_factory=dict)
    tool_use_id: str | None = None
    subtype: str = "hook_callback"


@dataclass
class CanUseToolRequest:
    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)
    permission_suggestions: list[Any] = field(default_factory=list)
    subtype: str = "can_use_tool"


def _event_key(key: Any) -> str:
    return key.value if isinstance(key, HookEvent) else str(key)


class HookProcessor:
    """Registers hook callbacks under ids and dispatches requests to them."""

    def __init__(self, options: Any = None, can_use_tool: CanUseToolCallback | None = None) -> None:
        self.can_use_tool = can_use_tool
        self._lock = threading.RLock()
        self._callbacks: dict[str, HookCallback] = {}
        self._matchers: dict[str, list[HookMatcherConfig]] = {}
        self._next_id = 0
        hooks = getattr(options, "hooks", None) or {}
        for event, matchers in hooks.items():
            for matcher in matchers:
                if isinstance(matcher, HookMatcher):
                    self._add_matcher(_event_key(event), matcher)

    def _add_matcher(self, event: str, matcher: HookMatcher) -> None:
        ids = [self.register_callback(callback) for callback in matcher.hooks]
        with self._lock:
            self._matchers.setdefault(event, []).append(HookMatcherConfig(matcher.matcher, ids))

    def register_callback(self, callback: HookCallback) -> str:
        """Register a callback and return the id it is called by."""
        with self._lock:
            callback_id = f"hook_{self._next_id}"
            self._next_id += 1
            self._callbacks[callback_id] = callback
            return callback_id

    def build_initialize_config(self) -> dict[str, list[HookMatcherConfig]] | None:
        """The hook configuration to announce at initialisation, or None if there is none."""
        with self._lock:
            config = {
                event: [m for m in matchers if m.hook_callback_ids]
                for event, matchers in self._matchers.items()
            }
        config = {event: matchers for event, matchers in config.items() if matchers}
        return config or None

    def process_hook_callback(self, request: HookCallbackRequest) -> dict[str, Any]:
        """Run the callback named by the request and return its output."""
        with self._lock:
            callback = self._callbacks.get(request.callback_id)
        if callback is None:
            raise SDKError(f"no hook callback found for ID: {request.callback_id}")
        try:
            return callback(request.input, request.tool_use_id, HookContext())
        except Exception as exc:
            raise SDKError(f"hook callback error: {exc}") from exc

    def process_can_use_tool(self, request: CanUseToolRequest) -> PermissionResponse:
        """Ask the permission callback whether the tool may run."""
        with self._lock:
            callback = self.can_use_tool
        if callback is None:
            raise SDKError("canUseTool callback is not provided")
        context = ToolPermissionContext(
            suggestions=[
                PermissionUpdate.from_dict(item)
                for item in request.permission_suggestions
                if isinstance(item, dict)
            ]
        )
        try:
            result = callback(request.tool_name, request.input, context)
        except Exception as exc:
            raise SDKError(f"permission callback error: {exc}") from exc

        if isinstance(result, PermissionResultAllow):
            updated_input = (
                result.updated_input if result.updated_input is not None else request.input
            )
            permissions = (
                [update.to_dict() for update in result.updated_permissions]
                if result.updated_permissions is not None
                else None
            )
            return PermissionResponse("allow", updated_input, permissions)
        if isinstance(result, PermissionResultDeny):
            return PermissionResponse(
                "deny", message=result.message, interrupt=result.interrupt
            )
        raise SDKError(f"invalid permission result type: {type(result).__name__}")


def marshal_hook_output(output: dict[str, Any]) -> bytes:
    """Encode hook output as JSON."""
    return json.dumps(output).encode("utf-8")