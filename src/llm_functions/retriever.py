# retriever.py
# Structured Output Retriever.
#
# Drives the chat provider until the model calls the synthesized `print`
# function with arguments that validate against the target schema. Every
# provider round-trip is one `calling-open-ai` action in the trace.
#
# Loop outcomes per turn:
#   no function call        → error, re-prompt with the print schema   (retries += 1)
#   unknown function name   → FunctionNotFoundError, fatal
#   invalid print args      → zod-error, re-prompt                     (retries += 1)
#   invalid sub-fn args     → zod-error, re-prompt                     (function_retries += 1)
#   valid sub-fn call       → run it, feed the result back             (no counter change)
#   valid print call        → success, return `argument`
# A counter above max_retries ends the loop with timeout-error; the validation
# message is returned in place of a result.

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Union

from pydantic import BaseModel, ValidationError, create_model

from llm_functions import config
from llm_functions.errors import FunctionNotFoundError
from llm_functions.models import (
    CallingFunctionAction,
    ChatCallAction,
    ErrorResponse,
    FunctionCallData,
    FunctionCallOutput,
    Message,
    ResponseOutput,
    SchemaErrorResponse,
    SubFunction,
    SuccessResponse,
    TimeoutErrorResponse,
)
from llm_functions.providers import ChatProvider
from llm_functions.trace import TraceRecorder

logger = logging.getLogger(__name__)

PRINT_FUNCTION = "print"
PRINT_DESCRIPTION = (
    "Answer the user prompt using this function. "
    "This is the function you call once you have your final answer"
)


# ---------------------------------------------------------------------------
# Target schemas
# ---------------------------------------------------------------------------


class PrintError(BaseModel):
    """Escape hatch the model may use when it cannot produce the declared output."""

    error: str


def build_print_schema(output: Any = None) -> type[BaseModel]:
    """
    Parameters of the `print` function.

    With a declared output the model answers `{argument: <output> | {error}}`,
    otherwise `{argument: <string>}`.
    """
    if output is None:
        return create_model("PrintArguments", argument=(str, ...))
    return create_model("PrintArguments", argument=(Union[output, PrintError], ...))


def _print_function(schema: type[BaseModel]) -> SubFunction:
    return SubFunction(
        name=PRINT_FUNCTION,
        description=PRINT_DESCRIPTION,
        parameters=schema,
        implementation=lambda _args: "Return",
    )


def _missing_call_message(schema: type[BaseModel]) -> Message:
    return Message.user(
        "Please use the print function to respond. print function has the following scheme:\n"
        f"{json.dumps(schema.model_json_schema())}"
    )


def _validation_error_message(fn_name: str, error: str, tool_call_id: str | None) -> Message:
    return Message.tool(
        f"function '{fn_name}' returned a Validation error\n'{error}\n"
        "Try again with a valid response. You may be forgetting to add key called 'argument'",
        name=fn_name,
        tool_call_id=tool_call_id,
    )


# ---------------------------------------------------------------------------
# Retriever
# ---------------------------------------------------------------------------


@dataclass
class RetryState:
    retries: int = 0
    function_retries: int = 0


class StructuredOutputRetriever:
    def __init__(
        self,
        provider: ChatProvider,
        recorder: TraceRecorder,
        functions: list[SubFunction] | None = None,
        max_retries: int = config.MAX_RETRIES,
    ) -> None:
        self._provider = provider
        self._recorder = recorder
        self._functions = list(functions or [])
        self._max_retries = max_retries

    async def _call_provider(
        self, messages: list[Message], catalog: list[SubFunction], action_id: str
    ) -> Message:
        forced = PRINT_FUNCTION if not self._functions else None
        try:
            return await self._provider.complete(messages, catalog, forced=forced)
        except Exception as exc:
            self._recorder.update_trace(action_id, ErrorResponse(error=str(exc)))
            raise

    async def _invoke(self, fn: SubFunction, arguments: BaseModel) -> str:
        action_id = self._recorder.create_trace(
            CallingFunctionAction(
                input=FunctionCallData(
                    name=fn.name,
                    description=fn.description,
                    parameters=arguments.model_dump(),
                )
            )
        )
        try:
            result = fn.implementation(arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self._recorder.update_trace(action_id, ErrorResponse(error=str(exc)))
            raise
        self._recorder.update_trace(action_id, SuccessResponse(output=result))
        return "" if result is None else str(result)

    def _exhausted(self, action_id: str, count: int) -> bool:
        if count > self._max_retries:
            self._recorder.update_trace(action_id, TimeoutErrorResponse())
            return True
        return False

    async def retrieve(
        self, messages: list[Message], schema: type[BaseModel]
    ) -> tuple[Any, list[Message]]:
        """
        Run the loop for `schema` (a PrintArguments model).

        Returns the value of `argument` and the full conversation. When the
        retry budget runs out the first element is the last error text; the
        trace carries a timeout-error for that attempt.
        """
        messages = list(messages)
        state = RetryState()
        print_fn = _print_function(schema)
        catalog = [*self._functions, print_fn]
        by_name = {fn.name: fn for fn in catalog}

        while True:
            action_id = self._recorder.create_trace(ChatCallAction(messages=list(messages)))
            reply = await self._call_provider(messages, catalog, action_id)
            messages.append(reply)
            call = reply.function_call

            if call is None:
                error = f"No function call found, Got text instead: {reply.content}"
                self._recorder.update_trace(action_id, ErrorResponse(error=error))
                logger.debug("attempt %d: no function call", state.retries)
                if self._exhausted(action_id, state.retries):
                    return error, messages
                messages.append(_missing_call_message(schema))
                state.retries += 1
                continue

            fn = by_name.get(call.name)
            if fn is None:
                raise FunctionNotFoundError(
                    f"Function {call.name} not found in {json.dumps(list(by_name))}"
                )

            try:
                arguments = fn.parameters.model_validate_json(call.arguments)
            except ValidationError as exc:
                error = str(exc)
                self._recorder.update_trace(
                    action_id, SchemaErrorResponse(output=call.arguments, error=error)
                )
                count = state.retries if fn is print_fn else state.function_retries
                logger.debug("attempt %d: %s arguments failed validation", count, fn.name)
                if self._exhausted(action_id, count):
                    logger.warning(
                        "%s arguments still invalid after %d retries", fn.name, self._max_retries
                    )
                    return error, messages
                messages.append(_validation_error_message(fn.name, error, call.id))
                if fn is print_fn:
                    state.retries += 1
                else:
                    state.function_retries += 1
                continue

            if fn is print_fn:
                response = arguments.argument
                self._recorder.update_trace(
                    action_id, SuccessResponse(output=ResponseOutput(data=response))
                )
                messages.append(Message.tool("Success", name=PRINT_FUNCTION, tool_call_id=call.id))
                return response, messages

            self._recorder.update_trace(
                action_id,
                SuccessResponse(
                    output=FunctionCallOutput(
                        data=FunctionCallData(
                            name=fn.name,
                            description=fn.description,
                            parameters=arguments.model_dump(),
                        )
                    )
                ),
            )
            result = await self._invoke(fn, arguments)
            messages.append(Message.tool(result or "No response", name=fn.name, tool_call_id=call.id))
