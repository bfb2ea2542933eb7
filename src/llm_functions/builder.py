# builder.py
# Definition Builder: persistent, copy-on-write construction of a Definition.
#
# Every method returns a NEW builder over a new Definition; the receiver is never
# touched, so partially built builders can be shared and branched freely:
#
#     base = llm_function.name("items").output(Items)
#     letters = base.instructions("Generate items starting with {letter}").create()
#     numbers = base.instructions("Generate {count} items").create()
#
# create() assigns the content-addressed id and returns an AIFunction.

import dataclasses
import logging
from typing import Any, Callable, Iterable

from pydantic import TypeAdapter

from llm_functions.engine import FunctionEngine, Runtime
from llm_functions.errors import NotAnAIFunctionError
from llm_functions.hashing import content_hash
from llm_functions.models import (
    Definition,
    DocumentDescriptor,
    Execution,
    FunctionArgs,
    FunctionStep,
    ModelParams,
    QueryBinding,
    SubFunction,
    TransformStep,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# AIFunction
# ---------------------------------------------------------------------------


class AIFunction:
    """A created, content-addressed function. Awaiting a call yields only the final response."""

    def __init__(self, definition: Definition, runtime: Runtime) -> None:
        self._definition = definition
        self._runtime = runtime

    @property
    def definition(self) -> Definition:
        return self._definition

    @property
    def id(self) -> str:
        return self._definition.id

    async def __call__(
        self, args: FunctionArgs | dict | None = None, execution_id: str | None = None
    ) -> Any:
        execution = await self.run(args, execution_id)
        return execution.final_response

    async def run(
        self, args: FunctionArgs | dict | None = None, execution_id: str | None = None
    ) -> Execution:
        return await FunctionEngine(self._definition, self._runtime).run(args, execution_id)

    async def run_dataset(self) -> list[Execution]:
        return await FunctionEngine(self._definition, self._runtime).run_dataset()

    def __repr__(self) -> str:
        return f"AIFunction(name={self._definition.name!r}, id={self._definition.id!r})"


def parse_ai_fn(fn: Any) -> AIFunction:
    if not isinstance(fn, AIFunction):
        raise NotAnAIFunctionError("Not an AI function.")
    return fn


def safe_parse_ai_fn(fn: Any) -> AIFunction | None:
    return fn if isinstance(fn, AIFunction) else None


def _callable_name(fn: Callable[..., Any]) -> str:
    qualname = getattr(fn, "__qualname__", type(fn).__qualname__)
    return f"{getattr(fn, '__module__', '')}.{qualname}"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class FunctionBuilder:
    def __init__(self, definition: Definition | None = None, runtime: Runtime | None = None) -> None:
        self._definition = definition or Definition()
        self._runtime = runtime or Runtime()

    @property
    def definition(self) -> Definition:
        return self._definition

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    def _with(self, **changes: Any) -> "FunctionBuilder":
        return FunctionBuilder(self._definition.model_copy(update=changes), self._runtime)

    def with_runtime(self, **changes: Any) -> "FunctionBuilder":
        """Same definition, different collaborators (observer, provider factory, ...)."""
        return FunctionBuilder(self._definition, dataclasses.replace(self._runtime, **changes))

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def name(self, name: str) -> "FunctionBuilder":
        return self._with(name=name)

    def description(self, description: str) -> "FunctionBuilder":
        return self._with(description=description)

    def instructions(self, template: str) -> "FunctionBuilder":
        """Stored verbatim; placeholders are only resolved at run time."""
        return self._with(instructions=template)

    def output(self, schema: Any) -> "FunctionBuilder":
        """Declare the output type: a pydantic model or anything TypeAdapter accepts."""
        return self._with(output=schema, output_schema=TypeAdapter(schema).json_schema())

    def with_model_params(self, **params: Any) -> "FunctionBuilder":
        merged = {**self._definition.model.model_dump(), **params}
        return self._with(model=ModelParams.model_validate(merged))

    def dataset(self, entries: Iterable[FunctionArgs | dict]) -> "FunctionBuilder":
        return self._with(dataset=[FunctionArgs.model_validate(entry) for entry in entries])

    def verify(self, predicate: Callable[[Execution, FunctionArgs], bool]) -> "FunctionBuilder":
        return self._with(verify=predicate)

    # ------------------------------------------------------------------
    # Appending fields
    # ------------------------------------------------------------------

    def document(self, document: DocumentDescriptor | dict) -> "FunctionBuilder":
        descriptor = DocumentDescriptor.model_validate(document)
        return self._with(documents=[*self._definition.documents, descriptor])

    def query(self, fn: Callable[[Any], Any]) -> "FunctionBuilder":
        return self._with(query=QueryBinding(query_input=True, fn=fn))

    def functions(self, functions: Iterable[SubFunction]) -> "FunctionBuilder":
        return self._with(functions=[*self._definition.functions, *functions])

    def map(self, step: "AIFunction | Callable[..., Any]") -> "FunctionBuilder":
        """
        Append a post-processing step.

        An AIFunction is run with the current result as its input, inside the
        same Execution. Any other callable is called as
        fn(result, execution, args) and its return value becomes the result.
        """
        ai_fn = safe_parse_ai_fn(step)
        if ai_fn is not None:
            entry = FunctionStep(definition=ai_fn.definition)
        else:
            entry = TransformStep(name=_callable_name(step), fn=step)
        return self._with(map_fns=[*self._definition.map_fns, entry])

    def sequence(self, fn: AIFunction) -> "FunctionBuilder":
        ai_fn = parse_ai_fn(fn)
        return self._with(
            sequences=[*self._definition.sequences, FunctionStep(definition=ai_fn.definition)]
        )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def create(self) -> AIFunction:
        definition = self._definition.model_copy(update={"id": content_hash(self._definition)})
        logger.debug("created function %s (%s)", definition.name, definition.id)
        if self._runtime.on_created is not None:
            self._runtime.on_created(definition)
        return AIFunction(definition, self._runtime)

    async def run(
        self, args: FunctionArgs | dict | None = None, execution_id: str | None = None
    ) -> Execution:
        return await FunctionEngine(self._definition, self._runtime).run(args, execution_id)

    async def run_dataset(self) -> list[Execution]:
        return await FunctionEngine(self._definition, self._runtime).run_dataset()


llm_function = FunctionBuilder()
