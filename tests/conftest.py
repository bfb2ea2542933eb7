import json

import pytest
from pydantic import BaseModel

from llm_functions.engine import Runtime
from llm_functions.models import FunctionCall, Message
from llm_functions.providers import ChatProvider


# ---------------------------------------------------------------------------
# Scripted chat provider
# ---------------------------------------------------------------------------


class ScriptedProvider(ChatProvider):
    """Replays canned assistant replies and records every request."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, messages, functions, forced=None):
        self.calls.append(
            {
                "messages": list(messages),
                "functions": [fn.name for fn in functions],
                "forced": forced,
            }
        )
        if not self.replies:
            raise AssertionError("Provider called more often than scripted.")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class Replies:
    @staticmethod
    def call(name, arguments, call_id=None):
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        return Message(
            role="assistant",
            function_call=FunctionCall(name=name, arguments=raw, id=call_id or f"call_{name}"),
        )

    @staticmethod
    def print(argument):
        return Replies.call("print", {"argument": argument})

    @staticmethod
    def text(content):
        return Message(role="assistant", content=content)


class Items(BaseModel):
    items: list[str]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def replies():
    return Replies


@pytest.fixture
def items_model():
    return Items


@pytest.fixture
def scripted():
    """scripted(*replies, **runtime_kwargs) -> (provider, runtime)"""

    def _make(*script, **kwargs):
        provider = ScriptedProvider(script)
        runtime = Runtime(provider_factory=lambda _params: provider, **kwargs)
        return provider, runtime

    return _make
