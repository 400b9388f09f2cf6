"""Locating the command line tool and building its command lines."""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

from .errors import CLIConnectionError, CLINotFoundError, SDKError

MINIMUM_CLI_VERSION = "2.0.0"
SKIP_VERSION_CHECK_ENV = "CLAUDE_AGENT_SDK_SKIP_VERSION_CHECK"

_IS_WINDOWS = os.name == "nt"

_NODE_MISSING = (
    "Install Node.js from: https://nodejs.org/\n\n"
    "After installing Node.js, install Claude Code:\n"
    "  npm install -g @anthropic-ai/claude-code"
)


class PermissionMode(str, Enum):
    """How the tool asks for permission before acting."""

    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    PLAN = "plan"
    BYPASS_PERMISSIONS = "bypassPermissions"


@dataclass
class McpStdioServerConfig:
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    type: str = "stdio"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "command": self.command}
        if self.args:
            payload["args"] = list(self.args)
        if self.env:
            payload["env"] = dict(self.env)
        return payload


@dataclass
class McpSSEServerConfig:
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    type: str = "sse"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "url": self.url}
        if self.headers:
            payload["headers"] = dict(self.headers)
        return payload


@dataclass
class McpHTTPServerConfig:
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    type: str = "http"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "url": self.url}
        if self.headers:
            payload["headers"] = dict(self.headers)
        return payload


McpServerConfig = Union[McpStdioServerConfig, McpSSEServerConfig, McpHTTPServerConfig]


@dataclass
class AgentDefinition:
    description: str
    prompt: str
    tools: list[str] = field(default_factory=list)
    model: str | None = None


@dataclass
class Options:
    """Configuration passed to the command line tool."""

    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    system_prompt: str | None = None
    append_system_prompt: str | None = None
    model: str | None = None
    max_thinking_tokens: int = 0
    permission_mode: PermissionMode | None = None
    permission_prompt_tool_name: str | None = None
    continue_conversation: bool = False
    resume: str | None = None
    max_turns: int = 0
    settings: str | None = None
    cwd: str | None = None
    add_dirs: list[str] = field(default_factory=list)
    mcp_servers: dict[str, McpServerConfig | None] = field(default_factory=dict)
    include_partial_messages: bool = False
    fork_session: bool = False
    setting_sources: list[str] = field(default_factory=list)
    agents: dict[str, AgentDefinition] = field(default_factory=dict)
    extra_args: dict[str, str | None] = field(default_factory=dict)
    hooks: dict[str, list[Any]] = field(default_factory=dict)


def _home_dir() -> str:
    try:
        return str(Path.home())
    except (RuntimeError, KeyError):
        return "."


def common_cli_locations() -> list[str]:
    """Platform-specific places where the tool is commonly installed."""
    home = _home_dir()
    if _IS_WINDOWS:
        return [
            os.path.join(home, "AppData", "Roaming", "npm", "claude.cmd"),
            os.path.join("C:\\", "Program Files", "nodejs", "claude.cmd"),
            os.path.join(home, ".npm-global", "claude.cmd"),
            os.path.join(home, "node_modules", ".bin", "claude.cmd"),
        ]
    return [
        os.path.join(home, ".npm-global", "bin", "claude"),
        "/usr/local/bin/claude",
        os.path.join(home, ".local", "bin", "claude"),
        os.path.join(home, "node_modules", ".bin", "claude"),
        os.path.join(home, ".yarn", "bin", "claude"),
        "/opt/homebrew/bin/claude",
        "/usr/local/homebrew/bin/claude",
    ]


def _warn_on_old_version(path: str) -> None:
    try:
        check_cli_version(path)
    except SDKError as exc:
        print(f"Warning: {exc}", file=sys.stderr)


def find_cli() -> str:
    """Return the path of the tool, searching PATH and then common locations."""
    found = shutil.which("claude")
    if found:
        _warn_on_old_version(found)
        return found

    for location in common_cli_locations():
        try:
            info = os.stat(location)
        except OSError:
            continue
        if not os.path.isfile(location):
            continue
        if not _IS_WINDOWS and info.st_mode & 0o111 == 0:
            continue
        _warn_on_old_version(location)
        return location

    if shutil.which("node") is None:
        raise CLINotFoundError(
            "Claude Code requires Node.js, which is not installed.\n\n" + _NODE_MISSING
        )

    raise CLINotFoundError(
        "Claude Code not found. Install with:\n"
        "  npm install -g @anthropic-ai/claude-code\n\n"
        "If already installed locally, try:\n"
        '  export PATH="$HOME/node_modules/.bin:$PATH"\n\n'
        "Or specify the path when creating client"
    )


def build_command(
    cli_path: str, options: Options | None = None, close_stdin: bool = False
) -> list[str]:
    """Build the argument list for one-shot (``close_stdin``) or streaming mode."""
    cmd = [cli_path, "--output-format", "stream-json", "--verbose"]
    if close_stdin:
        cmd.append("--print")
    else:
        cmd += ["--input-format", "stream-json"]
    if options is not None:
        cmd += _option_flags(options)
    return cmd


def build_command_with_prompt(
    cli_path: str, options: Options | None, prompt: str
) -> list[str]:
    """Build the argument list for a one-shot query with the prompt as argument."""
    cmd = [cli_path, "--output-format", "stream-json", "--verbose", "--print", prompt]
    if options is not None:
        cmd += _option_flags(options)
    return cmd


def _to_json(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _option_flags(options: Options) -> list[str]:
    flags: list[str] = []

    if options.allowed_tools:
        flags += ["--allowed-tools", ",".join(options.allowed_tools)]
    if options.disallowed_tools:
        flags += ["--disallowed-tools", ",".join(options.disallowed_tools)]

    if options.system_prompt is not None:
        flags += ["--system-prompt", options.system_prompt]
    if options.append_system_prompt is not None:
        flags += ["--append-system-prompt", options.append_system_prompt]
    if options.model is not None:
        flags += ["--model", options.model]

    if options.permission_mode is not None:
        flags += ["--permission-mode", PermissionMode(options.permission_mode).value]
    if options.permission_prompt_tool_name is not None:
        flags += ["--permission-prompt-tool", options.permission_prompt_tool_name]

    if options.continue_conversation:
        flags.append("--continue")
    if options.resume is not None:
        flags += ["--resume", options.resume]
    if options.max_turns > 0:
        flags += ["--max-turns", str(options.max_turns)]
    if options.settings is not None:
        flags += ["--settings", options.settings]

    # The working directory is applied to the process, not passed as a flag.
    for directory in options.add_dirs:
        flags += ["--add-dir", directory]

    servers = {
        name: config.to_payload()
        for name, config in options.mcp_servers.items()
        if isinstance(config, (McpStdioServerConfig, McpSSEServerConfig, McpHTTPServerConfig))
    }
    if servers:
        flags += ["--mcp-config", _to_json({"mcpServers": servers})]

    if options.include_partial_messages:
        flags.append("--include-partial-messages")
    if options.fork_session:
        flags.append("--fork-session")
    if options.setting_sources:
        flags += ["--setting-sources", ",".join(options.setting_sources)]

    if options.agents:
        agents: dict[str, dict[str, Any]] = {}
        for name, agent in options.agents.items():
            entry: dict[str, Any] = {"description": agent.description, "prompt": agent.prompt}
            if agent.tools:
                entry["tools"] = list(agent.tools)
            if agent.model:
                entry["model"] = agent.model
            agents[name] = entry
        flags += ["--agents", _to_json(agents)]

    for flag, value in options.extra_args.items():
        if value is None:
            flags.append(f"--{flag}")
        else:
            flags += [f"--{flag}", value]

    return flags


def validate_nodejs() -> None:
    """Raise CLINotFoundError if Node.js is not on PATH."""
    if shutil.which("node") is None:
        raise CLINotFoundError(
            "Node.js is required for Claude CLI but was not found.\n\n" + _NODE_MISSING,
            "node",
        )


def validate_working_directory(cwd: str | os.PathLike[str] | None) -> None:
    """Raise if ``cwd`` is given but is missing or not a directory."""
    if not cwd:
        return
    try:
        os.stat(cwd)
    except FileNotFoundError as exc:
        raise CLIConnectionError(f"working directory does not exist: {cwd}", exc) from exc
    except OSError as exc:
        raise SDKError(f"failed to check working directory: {exc}") from exc
    if not os.path.isdir(cwd):
        raise CLIConnectionError(f"working directory path is not a directory: {cwd}")


def _run_version(cli_path: str, timeout: float | None, what: str) -> str:
    try:
        completed = subprocess.run(
            [cli_path, "--version"],
            capture_output=True,
            check=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise SDKError(f"failed to {what}: {exc}") from exc
    return completed.stdout.decode("utf-8", errors="replace").strip()


def detect_cli_version(cli_path: str, timeout: float | None = None) -> str:
    """Run the tool with ``--version`` and return its trimmed output."""
    version = _run_version(cli_path, timeout, "get CLI version")
    if "." not in version:
        raise SDKError(f"invalid version format: {version}")
    return version


def check_cli_version(cli_path: str) -> None:
    """Raise SDKError if the tool is older than the minimum supported version."""
    if os.environ.get(SKIP_VERSION_CHECK_ENV):
        return
    version = _run_version(cli_path, None, "check CLI version")
    version = version.removeprefix("claude-code/").removeprefix("v")
    if not is_version_sufficient(version, MINIMUM_CLI_VERSION):
        raise SDKError(
            f"Claude Code CLI version {version} is below minimum required version "
            f"{MINIMUM_CLI_VERSION}. Please update:\n"
            "  npm install -g @anthropic-ai/claude-code"
        )


def is_version_sufficient(current: str, required: str) -> bool:
    """True if ``current`` is at least ``required``."""
    return parse_version(current) >= parse_version(required)


_INT_RE = re.compile(r"[+-]?\d+")


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse ``major.minor.patch``; unparsable or missing parts count as 0."""
    result = [0, 0, 0]
    for index, part in enumerate(version.split(".")[:3]):
        number = part.split("-")[0]
        if _INT_RE.fullmatch(number):
            result[index] = int(number)
    return (result[0], result[1], result[2])