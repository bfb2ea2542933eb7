# providers.py
# Chat provider contract and the OpenAI-compatible implementation.
#
# The engine only ever sees ChatProvider.complete(): a message list and a
# function catalog go in, one assistant Message comes out. Only the first tool
# call of a reply is honoured, so parallel tool calls are switched off.

from abc import ABC, abstractmethod
from typing import Any

from openai import AsyncOpenAI

from llm_functions import config
from llm_functions.models import FunctionCall, Message, ModelParams, SubFunction


class ChatProvider(ABC):
    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        functions: list[SubFunction],
        forced: str | None = None,
    ) -> Message:
        """
        Send one chat turn.

        `forced` names the only function the model may call; None leaves the
        choice to the model ("auto").
        """


# ---------------------------------------------------------------------------
# Wire conversion
# ---------------------------------------------------------------------------


def to_openai_tool(fn: SubFunction) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": fn.name,
            "description": fn.description,
            "parameters": fn.parameters_schema,
        },
    }


def to_openai_message(message: Message) -> dict[str, Any]:
    if message.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id or message.name or "",
            "content": message.content,
        }

    payload: dict[str, Any] = {"role": message.role, "content": message.content}
    if message.role == "assistant" and message.function_call is not None:
        call = message.function_call
        payload["tool_calls"] = [
            {
                "id": call.id or call.name,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
        ]
        # An empty string alongside tool_calls is rejected by some gateways.
        payload["content"] = message.content or None
    return payload


def from_openai_message(message: Any) -> Message:
    call = None
    if message.tool_calls:
        tool_call = message.tool_calls[0]
        call = FunctionCall(
            id=tool_call.id,
            name=tool_call.function.name,
            arguments=tool_call.function.arguments or "{}",
        )
    return Message(role="assistant", content=message.content or "", function_call=call)


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


class OpenAIChatProvider(ChatProvider):
    """
    Chat completions against any OpenAI-compatible endpoint.

    The client is created on first use so that definitions can be built and
    hashed without credentials in the environment.
    """

    def __init__(self, params: ModelParams, client: AsyncOpenAI | None = None) -> None:
        self._params = params
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=config.api_key(), base_url=config.base_url())
        return self._client

    def _request(
        self,
        messages: list[Message],
        functions: list[SubFunction],
        forced: str | None,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self._params.model_name,
            "temperature": self._params.temperature,
            "messages": [to_openai_message(m) for m in messages],
        }
        if self._params.max_tokens is not None:
            request["max_tokens"] = self._params.max_tokens
        if functions:
            request["tools"] = [to_openai_tool(fn) for fn in functions]
            request["tool_choice"] = (
                {"type": "function", "function": {"name": forced}} if forced else "auto"
            )
            request["parallel_tool_calls"] = False
        request.update(self._params.model_extra or {})
        return request

    async def complete(
        self,
        messages: list[Message],
        functions: list[SubFunction],
        forced: str | None = None,
    ) -> Message:
        response = await self.client.chat.completions.create(
            **self._request(messages, functions, forced)
        )
        return from_openai_message(response.choices[0].message)


def openai_provider(params: ModelParams) -> ChatProvider:
    """Default provider factory."""
    return OpenAIChatProvider(params)
