from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from llm_functions.models import FunctionCall, Message, ModelParams, SubFunction
from llm_functions.providers import (
    OpenAIChatProvider,
    from_openai_message,
    openai_provider,
    to_openai_message,
    to_openai_tool,
)


class Lookup(BaseModel):
    key: str


LOOKUP = SubFunction(name="lookup", description="Looks a key up", parameters=Lookup, implementation=str)
PARAMS = ModelParams(model_name="gpt-test", temperature=0.0, max_tokens=None)


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _tool_call(name, arguments, call_id="call_1"):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


# ---------------------------------------------------------------------------
# Wire conversion
# ---------------------------------------------------------------------------


def test_tool_definition():
    tool = to_openai_tool(LOOKUP)
    assert tool["type"] == "function"
    assert tool["function"]["name"] == "lookup"
    assert tool["function"]["parameters"]["required"] == ["key"]


def test_plain_messages():
    assert to_openai_message(Message.user("hi")) == {"role": "user", "content": "hi"}


def test_tool_message():
    message = Message.tool("value", name="lookup", tool_call_id="call_1")
    assert to_openai_message(message) == {"role": "tool", "tool_call_id": "call_1", "content": "value"}


def test_assistant_function_call():
    message = Message(
        role="assistant",
        function_call=FunctionCall(name="lookup", arguments='{"key": "x"}', id="call_1"),
    )
    payload = to_openai_message(message)
    assert payload["content"] is None
    assert payload["tool_calls"] == [
        {
            "id": "call_1",
            "type": "function",
            "function": {"name": "lookup", "arguments": '{"key": "x"}'},
        }
    ]


def test_reply_with_tool_calls_keeps_first():
    reply = from_openai_message(
        SimpleNamespace(
            content=None,
            tool_calls=[_tool_call("lookup", '{"key": "x"}'), _tool_call("print", "{}", "call_2")],
        )
    )
    assert reply.role == "assistant"
    assert reply.content == ""
    assert reply.function_call == FunctionCall(name="lookup", arguments='{"key": "x"}', id="call_1")


def test_reply_without_tool_calls():
    reply = from_openai_message(SimpleNamespace(content="plain text", tool_calls=None))
    assert reply.function_call is None
    assert reply.content == "plain text"


def test_reply_with_empty_arguments():
    reply = from_openai_message(SimpleNamespace(content=None, tool_calls=[_tool_call("print", "")]))
    assert reply.function_call.arguments == "{}"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def test_forced_request():
    request = OpenAIChatProvider(PARAMS, client=MagicMock())._request(
        [Message.user("hi")], [LOOKUP], forced="lookup"
    )
    assert request["model"] == "gpt-test"
    assert request["temperature"] == 0.0
    assert request["tool_choice"] == {"type": "function", "function": {"name": "lookup"}}
    assert request["parallel_tool_calls"] is False
    assert "max_tokens" not in request


def test_auto_request_with_extra_params():
    params = ModelParams(model_name="gpt-test", temperature=0.5, max_tokens=256, seed=7)
    request = OpenAIChatProvider(params, client=MagicMock())._request([Message.user("hi")], [LOOKUP], None)
    assert request["tool_choice"] == "auto"
    assert request["max_tokens"] == 256
    assert request["seed"] == 7


def test_request_without_functions():
    request = OpenAIChatProvider(PARAMS, client=MagicMock())._request([Message.user("hi")], [], None)
    assert "tools" not in request
    assert "tool_choice" not in request


@pytest.mark.asyncio
async def test_complete_calls_chat_completions():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_completion(tool_calls=[_tool_call("lookup", '{"key": "x"}')])
    )
    provider = OpenAIChatProvider(PARAMS, client=client)

    reply = await provider.complete([Message.user("hi")], [LOOKUP], forced="lookup")

    assert reply.function_call.name == "lookup"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["messages"] == [{"role": "user", "content": "hi"}]


def test_client_is_created_lazily():
    with patch("llm_functions.providers.AsyncOpenAI") as client_cls:
        provider = openai_provider(PARAMS)
        client_cls.assert_not_called()
        assert provider.client is client_cls.return_value
        assert provider.client is client_cls.return_value
        client_cls.assert_called_once()
