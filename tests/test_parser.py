import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from claude_agent_sdk.errors import JSONDecodeError, MessageParseError, SDKError
from claude_agent_sdk.parser import (
    MAX_BUFFER_SIZE,
    AssistantMessage,
    Parser,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
    parse_messages,
)


@pytest.fixture
def parser():
    return Parser()


@pytest.mark.parametrize(
    "data, expected_type",
    [
        ({"type": "user", "message": {"content": "Hello world"}}, "user"),
        (
            {
                "type": "user",
                "message": {
                    "content": [
                        {"type": "text", "text": "Hello"},
                        {"type": "tool_use", "id": "t1", "name": "Read"},
                    ]
                },
            },
            "user",
        ),
        (
            {
                "type": "assistant",
                "message": {
                    "content": [{"type": "text", "text": "Hi"}],
                    "model": "claude-3-sonnet",
                },
            },
            "assistant",
        ),
        ({"type": "system", "subtype": "status"}, "system"),
        (
            {
                "type": "result",
                "subtype": "completed",
                "duration_ms": 1500.0,
                "duration_api_ms": 800.0,
                "is_error": False,
                "num_turns": 2.0,
                "session_id": "s123",
            },
            "result",
        ),
    ],
)
def test_parse_valid_messages(parser, data, expected_type):
    message = parser.parse_message(data)
    assert message.type == expected_type


def test_parsed_values(parser):
    assistant = parser.parse_message(
        {
            "type": "assistant",
            "message": {
                "content": [{"type": "text", "text": "Hi"}],
                "model": "claude-3-sonnet",
            },
        }
    )
    assert assistant == AssistantMessage([TextBlock("Hi")], "claude-3-sonnet")

    result = parser.parse_message(
        {
            "type": "result",
            "subtype": "completed",
            "duration_ms": 1500.0,
            "duration_api_ms": 800.0,
            "is_error": False,
            "num_turns": 2.0,
            "session_id": "s123",
        }
    )
    assert isinstance(result, ResultMessage)
    assert result.duration_ms == 1500
    assert result.duration_api_ms == 800
    assert result.num_turns == 2
    assert result.session_id == "s123"
    assert result.total_cost_usd is None


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"message": {"content": "test"}}, "missing or invalid type field"),
        ({"type": "unknown_type", "content": "test"}, "unknown message type: unknown_type"),
        ({"type": "user"}, "user message missing message field"),
        ({"type": "user", "message": {}}, "user message missing content field"),
    ],
)
def test_parse_errors(parser, data, expected):
    with pytest.raises(MessageParseError) as info:
        parser.parse_message(data)
    assert expected in str(info.value)


def test_speculative_json_parsing(parser):
    assert parser.process_json_line('{"type": "user", "message":') is None
    assert parser.buffer_size() > 0

    message = parser.process_json_line(' {"content": [{"type": "text", "text": "Hello"}]}}')
    assert parser.buffer_size() == 0
    assert isinstance(message, UserMessage)
    assert message.content == [TextBlock("Hello")]


def test_buffer_overflow_protection(parser):
    with pytest.raises(JSONDecodeError) as info:
        parser.process_json_line("x" * (MAX_BUFFER_SIZE + 1000))
    assert "buffer overflow" in str(info.value)
    assert parser.buffer_size() == 0


def test_buffer_reset_on_success(parser):
    message = parser.process_json_line('{"type": "system", "subtype": "status"}')
    assert isinstance(message, SystemMessage)
    assert parser.buffer_size() == 0


def test_partial_message_accumulation(parser):
    parts = [
        '{"type": "user",',
        ' "message": {"content":',
        ' [{"type": "text",',
        ' "text": "Complete"}]}}',
    ]
    for part in parts[:-1]:
        assert parser.process_json_line(part) is None
        assert parser.buffer_size() > 0
    final = parser.process_json_line(parts[-1])
    assert parser.buffer_size() == 0
    assert isinstance(final, UserMessage)
    assert final.content[0] == TextBlock("Complete")


def test_explicit_buffer_reset(parser):
    assert parser.process_json_line('{"type": "user", "message":') is None
    assert parser.buffer_size() > 0
    parser.reset()
    assert parser.buffer_size() == 0
    message = parser.process_json_line('{"type": "system", "subtype": "status"}')
    assert isinstance(message, SystemMessage)
    assert parser.buffer_size() == 0


def test_multiple_json_objects(parser):
    obj1 = '{"type": "user", "message": {"content": [{"type": "text", "text": "First"}]}}'
    obj2 = '{"type": "system", "subtype": "status", "message": "ok"}'
    messages = parser.process_line(obj1 + "\n" + obj2)
    assert len(messages) == 2
    assert isinstance(messages[0], UserMessage)
    assert messages[0].content[0] == TextBlock("First")
    assert isinstance(messages[1], SystemMessage)
    assert messages[1].subtype == "status"


def test_unicode_and_escape_handling(parser):
    line = r'{"type": "user", "message": {"content": [{"type": "text", "text": "Hello 🌍\nEscaped\"Quote"}]}}'
    messages = parser.process_line(line)
    assert len(messages) == 1
    assert messages[0].content[0] == TextBlock('Hello 🌍\nEscaped"Quote')


def test_concurrent_access(parser):
    expected = [f"goroutine_{i}_msg_{j}" for i in range(5) for j in range(10)]
    payloads = [json.dumps({"type": "system", "subtype": subtype}) for subtype in expected]

    with ThreadPoolExecutor(max_workers=5) as pool:
        messages = list(pool.map(parser.process_json_line, payloads))

    assert [type(message) for message in messages] == [SystemMessage] * len(expected)
    assert [message.subtype for message in messages] == expected
    assert parser.buffer_size() == 0


def test_large_message_handling(parser):
    large_content = "X" * (950 * 1024)
    large_json = json.dumps(
        {"type": "user", "message": {"content": [{"type": "text", "text": large_content}]}}
    )
    assert len(large_json) < MAX_BUFFER_SIZE
    message = parser.process_json_line(large_json)
    assert isinstance(message, UserMessage)
    block = message.content[0]
    assert isinstance(block, TextBlock)
    assert len(block.text) == len(large_content)
    assert parser.buffer_size() == 0


@pytest.mark.parametrize("line", ["", "   ", "\t\n"])
def test_empty_and_whitespace_handling(parser, line):
    assert parser.process_line(line) == []


def test_parse_messages_success():
    messages = parse_messages(
        [
            '{"type": "user", "message": {"content": "Hello"}}',
            '{"type": "system", "subtype": "status"}',
        ]
    )
    assert len(messages) == 2
    assert messages[0] == UserMessage("Hello")


def test_parse_messages_error_reports_line():
    with pytest.raises(SDKError) as info:
        parse_messages(
            [
                '{"type": "user", "message": {"content": "Valid"}}',
                '{"type": "invalid"}',
            ]
        )
    assert "error parsing line 1" in str(info.value)
    assert info.value.messages == [UserMessage("Valid")]


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"type": "user", "message": {"content": 123}}, "invalid user message content type"),
        (
            {"type": "user", "message": {"content": [{"type": "text"}]}},
            "failed to parse content block 0",
        ),
        ({"type": "assistant"}, "assistant message missing message field"),
        (
            {"type": "assistant", "message": {"content": "not an array", "model": "claude-3"}},
            "assistant message content must be array",
        ),
        (
            {"type": "assistant", "message": {"content": []}},
            "assistant message missing model field",
        ),
        (
            {
                "type": "assistant",
                "message": {"content": [{"type": "unknown_block"}], "model": "claude-3"},
            },
            "failed to parse content block 0",
        ),
        ({"type": "system"}, "system message missing subtype field"),
        ({"type": "system", "subtype": 123}, "system message missing subtype field"),
    ],
)
def test_parse_error_conditions(parser, data, expected):
    with pytest.raises(MessageParseError) as info:
        parser.parse_message(data)
    assert expected in str(info.value)


_RESULT_BASE = {"type": "result", "subtype": "test"}


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"type": "result"}, "result message missing subtype field"),
        ({"type": "result", "subtype": 123}, "result message missing subtype field"),
        (dict(_RESULT_BASE), "result message missing or invalid duration_ms field"),
        (
            {**_RESULT_BASE, "duration_ms": "not a number"},
            "result message missing or invalid duration_ms field",
        ),
        (
            {**_RESULT_BASE, "duration_ms": 100.0},
            "result message missing or invalid duration_api_ms field",
        ),
        (
            {
                **_RESULT_BASE,
                "duration_ms": 100.0,
                "duration_api_ms": 50.0,
                "is_error": "not a boolean",
            },
            "result message missing or invalid is_error field",
        ),
        (
            {
                **_RESULT_BASE,
                "duration_ms": 100.0,
                "duration_api_ms": 50.0,
                "is_error": False,
                "num_turns": "not a number",
            },
            "result message missing or invalid num_turns field",
        ),
        (
            {
                **_RESULT_BASE,
                "duration_ms": 100.0,
                "duration_api_ms": 50.0,
                "is_error": False,
                "num_turns": 1.0,
            },
            "result message missing session_id field",
        ),
    ],
)
def test_result_message_error_conditions(parser, data, expected):
    with pytest.raises(MessageParseError) as info:
        parser.parse_message(data)
    assert expected in str(info.value)


_RESULT_VALID = {
    "type": "result",
    "subtype": "test",
    "duration_ms": 100.0,
    "duration_api_ms": 50.0,
    "is_error": False,
    "num_turns": 1.0,
    "session_id": "s123",
}


def test_result_message_optional_fields(parser):
    message = parser.parse_message(
        {
            **_RESULT_VALID,
            "total_cost_usd": 0.05,
            "usage": {"input_tokens": 100},
            "result": "Task completed successfully",
        }
    )
    assert message.total_cost_usd == 0.05
    assert message.usage == {"input_tokens": 100}
    assert message.result == "Task completed successfully"


def test_result_message_non_string_result_is_dropped(parser):
    message = parser.parse_message({**_RESULT_VALID, "result": {"status": "success"}})
    assert message.result is None
    assert message.session_id == "s123"


@pytest.mark.parametrize(
    "block, expected",
    [
        ("not an object", "content block must be an object"),
        ({"text": "hello"}, "content block missing type field"),
        ({"type": 123}, "content block missing type field"),
        ({"type": "unknown_type"}, "unknown content block type: unknown_type"),
        ({"type": "text"}, "text block missing text field"),
        ({"type": "text", "text": 123}, "text block missing text field"),
        ({"type": "thinking"}, "thinking block missing thinking field"),
        ({"type": "thinking", "thinking": 123}, "thinking block missing thinking field"),
        ({"type": "tool_use", "name": "Read"}, "tool_use block missing id field"),
        ({"type": "tool_use", "id": 123, "name": "Read"}, "tool_use block missing id field"),
        ({"type": "tool_use", "id": "t1"}, "tool_use block missing name field"),
        ({"type": "tool_use", "id": "t1", "name": 123}, "tool_use block missing name field"),
        (
            {"type": "tool_result", "content": "result"},
            "tool_result block missing tool_use_id field",
        ),
        (
            {"type": "tool_result", "tool_use_id": 123, "content": "result"},
            "tool_result block missing tool_use_id field",
        ),
    ],
)
def test_content_block_error_conditions(parser, block, expected):
    with pytest.raises(MessageParseError) as info:
        parser.parse_content_block(block)
    assert expected in str(info.value)


def test_content_block_optional_fields(parser):
    thinking = parser.parse_content_block({"type": "thinking", "thinking": "I need to think..."})
    assert thinking == ThinkingBlock("I need to think...", "")

    tool_use = parser.parse_content_block({"type": "tool_use", "id": "t1", "name": "Read"})
    assert isinstance(tool_use, ToolUseBlock)
    assert tool_use.input == {}

    tool_result = parser.parse_content_block(
        {
            "type": "tool_result",
            "tool_use_id": "t1",
            "content": "result",
            "is_error": "not a boolean",
        }
    )
    assert isinstance(tool_result, ToolResultBlock)
    assert tool_result.is_error is None
    assert tool_result.content == "result"


def test_process_line_edge_cases(parser):
    with pytest.raises(MessageParseError) as info:
        parser.process_line(
            '{"type": "user", "message": {"content": [{"type": "unknown_block"}]}}'
        )
    assert info.value.messages == []

    mixed = '{"type": "system", "subtype": "ok"}' + "\n" + '{"type": "invalid"}'
    with pytest.raises(MessageParseError) as info2:
        parser.process_line(mixed)
    assert len(info2.value.messages) == 1
    assert info2.value.messages[0].subtype == "ok"


def test_process_line_resets_leftover_buffer(parser):
    assert parser.process_json_line('{"type": "user",') is None
    messages = parser.process_line('{"type": "system", "subtype": "status"}')
    assert [m.subtype for m in messages] == ["status"]
    assert parser.buffer_size() == 0