# claude_agent_sdk

Building blocks for programs that drive the Claude Code command-line tool
over its line-delimited stream-JSON protocol. The package has no
third-party dependencies.

## Modules

- `claude_agent_sdk.discovery` finds the CLI and builds its argument lists.
  - `find_cli()` looks for `claude` on `PATH` first. It then tries the usual
    npm, yarn and Homebrew install locations, and on Unix it skips files
    that are not executable. When it finds the CLI, it prints a warning to
    stderr if the version is too old. When it finds nothing, it raises
    `CLINotFoundError` with install guidance. That guidance differs
    depending on whether `node` is on `PATH`.
  - `check_cli_version(path)` runs `path --version`. It raises `SDKError`
    if the version is below `MINIMUM_CLI_VERSION` (`2.0.0`). Set the
    environment variable `CLAUDE_AGENT_SDK_SKIP_VERSION_CHECK` to skip this
    check.
  - `detect_cli_version(path, timeout)` returns the trimmed output of
    `--version`.
  - `is_version_sufficient(current, required)` and `parse_version(version)`
    compare `major.minor.patch` strings.
  - `build_command(cli_path, options, close_stdin)` and
    `build_command_with_prompt(cli_path, options, prompt)` turn an `Options`
    value into CLI arguments.
  - `validate_nodejs()` checks that `node` is on `PATH`.
  - `validate_working_directory(cwd)` checks that `cwd` exists and is a
    directory.
- `claude_agent_sdk.parser` reads the CLI's output.
  - `Parser` accumulates partial JSON. It returns `UserMessage`,
    `AssistantMessage`, `SystemMessage` and `ResultMessage` values. Their
    content is made of `TextBlock`, `ThinkingBlock`, `ToolUseBlock` and
    `ToolResultBlock`.
  - The buffer is limited to 1 MiB (`MAX_BUFFER_SIZE`). If it overflows,
    the parser raises `JSONDecodeError`.
- `claude_agent_sdk.hooks` holds hook callbacks and the tool-permission
  callback.
  - `HookProcessor` holds them and registers every callback under an id
    (`hook_0`, `hook_1`, …).
  - `HookEvent`, `HookMatcher`, `PermissionResultAllow`,
    `PermissionResultDeny` and `PermissionUpdate` describe what those
    callbacks take and return.
- `claude_agent_sdk.control` speaks the control protocol.
  - `ControlProtocol` sends the `initialize` request along with the hook
    configuration.
  - It matches `control_response` messages to the requests that are waiting
    for them.
  - It answers the CLI's `can_use_tool` and `hook_callback` requests on a
    background thread.
- `claude_agent_sdk.errors` holds the exception hierarchy. Everything
  derives from `SDKError`: `CLINotFoundError`, `CLIConnectionError`,
  `JSONDecodeError` and `MessageParseError`.

## Installing

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Building a command

```python
from claude_agent_sdk.discovery import Options, PermissionMode, build_command, find_cli

options = Options(
    allowed_tools=["Read", "Write"],
    model="claude-3-sonnet",
    permission_mode=PermissionMode.ACCEPT_EDITS,
    max_turns=5,
    extra_args={"debug": None, "log-level": "info"},
)
argv = build_command(find_cli(), options, close_stdin=False)
```

With `close_stdin=True`, the command runs in one-shot mode (`--print`).
Otherwise it runs in streaming mode (`--input-format stream-json`).

A few options are not passed as flags:

- `Options.cwd` is meant for the child process's working directory.
- `Options.max_thinking_tokens` is not passed on.

## Parsing output

```python
from claude_agent_sdk.parser import AssistantMessage, Parser, TextBlock

parser = Parser()
for line in output_lines:
    for message in parser.process_line(line):
        if isinstance(message, AssistantMessage):
            for block in message.content:
                if isinstance(block, TextBlock):
                    print(block.text)
```

`process_line` clears the buffer before each call. Use `process_json_line`
to feed one object's JSON in pieces. It returns `None` until the object is
complete.

When a line fails, the raised error's `messages` attribute holds the
messages parsed before the failure.

`parse_messages(lines)` parses a whole list of lines. Its error names the
number of the line that failed.

## Hooks and permissions

```python
from claude_agent_sdk.control import ControlProtocol
from claude_agent_sdk.hooks import (
    HookMatcher, HookProcessor, PermissionResultAllow, PermissionResultDeny,
)

def on_bash(hook_input, tool_use_id, context):
    return {"continue": True}

def can_use_tool(tool_name, tool_input, context):
    if tool_name == "Bash" and "rm -rf" in tool_input.get("command", ""):
        return PermissionResultDeny(message="Dangerous command")
    return PermissionResultAllow()

options.hooks = {"PreToolUse": [HookMatcher(matcher="Bash", hooks=[on_bash])]}
processor = HookProcessor(options, can_use_tool=can_use_tool)

protocol = ControlProtocol(processor, write=process_stdin_write)
# Pass every control message read from the CLI to
# protocol.handle_incoming_message(msg_type, raw_json).
protocol.initialize(timeout=60.0)
```

When a permission callback allows a tool without giving `updated_input`,
the tool's original input is sent back.

## What the package does not do

- It does not start the CLI process or read and write its pipes. You supply
  the `write` function and feed incoming messages yourself.
- There is no one-call query function and no client object.
- Control requests other than `can_use_tool` and `hook_callback` get an
  error reply. This includes MCP messages.
- Cancel requests are ignored.