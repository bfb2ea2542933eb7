# engine.py
# Execution Engine: one invocation of one Definition.
#
# Control flow of run():
#   executing-function → query? → interpolate → documents? → short-circuit?
#   → structured output retrieval → map / sequence steps
#
# The engine owns its TraceRecorder, which holds the in-flight Execution. Never
# share an engine between concurrent invocations; FunctionBuilder and
# run_dataset() create a fresh one per call.

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel

from llm_functions import config
from llm_functions.documents import DocumentSplitter, TextDocumentSplitter
from llm_functions.errors import DatasetMissingError
from llm_functions.models import (
    Definition,
    Document,
    DocumentAction,
    ErrorResponse,
    ExecutingFunctionAction,
    Execution,
    FunctionArgs,
    FunctionStep,
    Message,
    ModelParams,
    QueryAction,
    SuccessResponse,
    TransformStep,
)
from llm_functions.providers import ChatProvider, openai_provider
from llm_functions.retriever import StructuredOutputRetriever, build_print_schema
from llm_functions.templates import interpolate
from llm_functions.trace import Observer, TraceRecorder

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
Use the DOCUMENT to answer user prompts.
Once you have the answer, use the print function. Always call one of the provided functions\
"""


@dataclass(frozen=True)
class Runtime:
    """Collaborators wired into every engine. Not part of a definition's identity."""

    observer: Observer | None = None
    on_created: Callable[[Definition], None] | None = None
    provider_factory: Callable[[ModelParams], ChatProvider] = openai_provider
    document_splitter: DocumentSplitter = field(default_factory=TextDocumentSplitter)
    max_retries: int = config.MAX_RETRIES


def _document_block(text: str) -> str:
    return f'DOCUMENT:"""\n{text}\n"""'


def to_function_args(value: Any) -> FunctionArgs:
    """
    Turn the result of a previous step into arguments for the next function.

    Mappings with FunctionArgs keys are taken as-is, other mappings become
    template values, and anything else is offered as the `input` placeholder.
    """
    if isinstance(value, FunctionArgs):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, dict):
        if value and set(value) <= set(FunctionArgs.model_fields):
            return FunctionArgs.model_validate(value)
        return FunctionArgs(instructions=value)
    return FunctionArgs(instructions={"input": value})


class FunctionEngine:
    def __init__(self, definition: Definition, runtime: Runtime | None = None) -> None:
        self._definition = definition
        self._runtime = runtime or Runtime()
        self._recorder = TraceRecorder(self._runtime.observer)

    @property
    def recorder(self) -> TraceRecorder:
        return self._recorder

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def _query_document(self, args: FunctionArgs) -> str | None:
        binding = self._definition.query
        if binding is None or args.query is None:
            return None

        action_id = self._recorder.create_trace(QueryAction(input=args.query))
        try:
            result = binding.fn(args.query)
            if inspect.isawaitable(result):
                result = await result
            query_doc = json.dumps(result, default=str)
        except Exception as exc:
            self._recorder.update_trace(action_id, ErrorResponse(error=str(exc)))
            raise
        self._recorder.update_trace(action_id, SuccessResponse(output=query_doc))
        return query_doc

    def _user_prompt(self, args: FunctionArgs) -> str:
        template = self._definition.instructions
        if template is not None:
            values = args.instructions if isinstance(args.instructions, dict) else {}
            return interpolate(template, values)
        if isinstance(args.instructions, str):
            return args.instructions
        return ""

    async def _document_contexts(self, args: FunctionArgs, prompt: str) -> list[str]:
        inputs = args.documents or []
        blocks: list[str] = []
        for index, descriptor in enumerate(self._definition.documents):
            document = Document(
                **descriptor.model_dump(),
                input=inputs[index] if index < len(inputs) else None,
            )
            action_id = self._recorder.create_trace(DocumentAction(input=document))
            try:
                context = await self._runtime.document_splitter.split(
                    document, self._recorder.execution.id, prompt
                )
            except Exception as exc:
                self._recorder.update_trace(action_id, ErrorResponse(error=str(exc)))
                raise
            self._recorder.update_trace(action_id, SuccessResponse(output=context.model_dump()))
            blocks.append(_document_block(context.result))
        return blocks

    # ------------------------------------------------------------------
    # Single invocation
    # ------------------------------------------------------------------

    async def _invoke(self, args: FunctionArgs, execution_id: str | None) -> Execution:
        definition = self._definition
        self._recorder.start(definition, args, execution_id)
        self._recorder.create_trace(ExecutingFunctionAction(function_def=definition, input=args))

        query_doc = await self._query_document(args)
        prompt = self._user_prompt(args)
        documents = await self._document_contexts(args, prompt)

        if definition.output is None and definition.instructions is None:
            logger.debug("%s declares no output and no instructions", definition.name or definition.id)
            return self._recorder.resolve(None)

        schema = build_print_schema(definition.output)
        blocks = [
            _document_block(query_doc) if query_doc else "",
            "\n".join(documents),
            prompt,
        ]
        messages = [Message.system(SYSTEM_PROMPT)]
        messages.extend(Message.user(block) for block in blocks if block)

        retriever = StructuredOutputRetriever(
            provider=self._runtime.provider_factory(definition.model),
            recorder=self._recorder,
            functions=definition.functions,
            max_retries=self._runtime.max_retries,
        )
        response, _ = await retriever.retrieve(messages, schema)
        return self._recorder.resolve(response)

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    async def _apply_function(self, step: FunctionStep, value: Any) -> Execution:
        self._recorder.create_trace(
            ExecutingFunctionAction(function_def=step.definition, input=value)
        )
        nested = FunctionEngine(step.definition, self._runtime)
        result = await nested.run(to_function_args(value), self._recorder.execution.id)
        return self._recorder.absorb(result)

    async def _apply_transform(self, step: TransformStep, value: Any, args: FunctionArgs) -> Execution:
        result = step.fn(value, self._recorder.execution, args)
        if inspect.isawaitable(result):
            result = await result
        return self._recorder.resolve(result)

    async def run(self, args: FunctionArgs | dict | None = None, execution_id: str | None = None) -> Execution:
        """
        Invoke the definition once and fold its map and sequence steps.

        Passing `execution_id` records this run into an existing Execution.
        """
        args = FunctionArgs.model_validate(args or {})
        execution = await self._invoke(args, execution_id)

        for step in [*self._definition.map_fns, *self._definition.sequences]:
            if step.kind == "function":
                execution = await self._apply_function(step, execution.final_response)
            else:
                execution = await self._apply_transform(step, execution.final_response, args)
        return execution

    async def run_dataset(self) -> list[Execution]:
        dataset = self._definition.dataset
        if not dataset:
            raise DatasetMissingError("No dataset")
        engines = [FunctionEngine(self._definition, self._runtime) for _ in dataset]
        return list(
            await asyncio.gather(*(engine.run(entry) for engine, entry in zip(engines, dataset)))
        )
