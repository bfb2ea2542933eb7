# models.py
# Data contracts for AI function definitions, executions and their traces.
# Pure schema and validation, no behaviour.
#
# Callables and Python types attached to a Definition are excluded from
# serialization; their JSON-schema stand-ins (`output_schema`,
# `parameters_schema`) are what gets hashed and logged.

from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from llm_functions import config


# ---------------------------------------------------------------------------
# Definition building blocks
# ---------------------------------------------------------------------------


class ModelParams(BaseModel):
    """Chat model parameters. Unknown keys are forwarded to the provider."""

    model_config = ConfigDict(frozen=True, extra="allow", protected_namespaces=())

    model_name: str = Field(default_factory=lambda: config.DEFAULT_MODEL)
    temperature: float = Field(default_factory=lambda: config.DEFAULT_TEMPERATURE)
    max_tokens: int | None = Field(default_factory=lambda: config.DEFAULT_MAX_TOKENS)


class SubFunction(BaseModel):
    """
    A callable the model may invoke mid-conversation before answering.

    `parameters` and `implementation` are live objects and are not logged. A
    SubFunction loaded back from a log keeps only `parameters_schema`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., description="Unique within one catalog.")
    description: str = ""
    parameters: type[BaseModel] | None = Field(default=None, exclude=True)
    implementation: Callable[..., Any] | None = Field(default=None, exclude=True)
    parameters_schema: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _schema_from_parameters(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("parameters") is not None and "parameters_schema" not in data:
            data = {**data, "parameters_schema": data["parameters"].model_json_schema()}
        return data


class QueryBinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    query_input: bool = True
    fn: Callable[..., Any] | None = Field(default=None, exclude=True)


class DocumentDescriptor(BaseModel):
    """A document slot declared on a definition; the payload arrives per call."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str = "text"
    name: str | None = None
    description: str | None = None


class Document(DocumentDescriptor):
    input: Any = None


class FunctionArgs(BaseModel):
    """Arguments of one invocation."""

    query: Any = None
    instructions: dict[str, Any] | str | None = Field(
        default=None,
        description="Template values, or the raw prompt when no template is declared.",
    )
    documents: list[Any] | None = Field(
        default=None, description="One input per declared document, positional."
    )


# ---------------------------------------------------------------------------
# Post-processing steps
# ---------------------------------------------------------------------------


class TransformStep(BaseModel):
    """fn(result, execution, args) -> new result."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["transform"] = "transform"
    name: str = ""
    fn: Callable[..., Any] | None = Field(default=None, exclude=True)


class FunctionStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["function"] = "function"
    definition: "Definition"


PostStep = Annotated[Union[TransformStep, FunctionStep], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Definition
# ---------------------------------------------------------------------------


class Definition(BaseModel):
    """Immutable description of an AI function. `id` is set by create() only."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str | None = None
    name: str | None = None
    description: str | None = None
    model: ModelParams = Field(default_factory=ModelParams)
    instructions: str | None = None
    output: Any = Field(default=None, exclude=True)
    output_schema: dict[str, Any] | None = None
    functions: list[SubFunction] = Field(default_factory=list)
    documents: list[DocumentDescriptor] = Field(default_factory=list)
    query: QueryBinding | None = None
    dataset: list[FunctionArgs] | None = None
    verify: Callable[..., Any] | None = Field(default=None, exclude=True)
    map_fns: list[PostStep] = Field(default_factory=list)
    sequences: list[FunctionStep] = Field(default_factory=list)


FunctionStep.model_rebuild()
Definition.model_rebuild()


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class FunctionCall(BaseModel):
    name: str
    arguments: str = Field(default="{}", description="Raw JSON string as emitted by the model.")
    id: str | None = None


class Message(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    name: str | None = None
    tool_call_id: str | None = None
    function_call: FunctionCall | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def tool(cls, content: str, name: str, tool_call_id: str | None = None) -> "Message":
        return cls(role="tool", content=content, name=name, tool_call_id=tool_call_id)


# ---------------------------------------------------------------------------
# Trace actions
# ---------------------------------------------------------------------------


class LoadingResponse(BaseModel):
    type: Literal["loading"] = "loading"


class SuccessResponse(BaseModel):
    type: Literal["success"] = "success"
    output: Any = None


class ErrorResponse(BaseModel):
    type: Literal["error"] = "error"
    error: str


class SchemaErrorResponse(BaseModel):
    # Tag kept so previously written logs still load.
    type: Literal["zod-error"] = "zod-error"
    output: Any = None
    error: str


class TimeoutErrorResponse(BaseModel):
    type: Literal["timeout-error"] = "timeout-error"


Response = Annotated[
    Union[
        LoadingResponse,
        SuccessResponse,
        ErrorResponse,
        SchemaErrorResponse,
        TimeoutErrorResponse,
    ],
    Field(discriminator="type"),
]


class FunctionCallData(BaseModel):
    name: str
    description: str = ""
    parameters: Any = None


class FunctionCallOutput(BaseModel):
    type: Literal["functionCall"] = "functionCall"
    data: FunctionCallData


class ResponseOutput(BaseModel):
    type: Literal["response"] = "response"
    data: Any = None


class LogAction(BaseModel):
    id: str = ""
    action: Literal["log"] = "log"
    response: SuccessResponse


class ExecutingFunctionAction(BaseModel):
    id: str = ""
    action: Literal["executing-function"] = "executing-function"
    function_def: Definition
    input: Any = None


class QueryAction(BaseModel):
    id: str = ""
    action: Literal["query"] = "query"
    input: Any = None
    response: Response = Field(default_factory=LoadingResponse)


class CallingFunctionAction(BaseModel):
    id: str = ""
    action: Literal["calling-function"] = "calling-function"
    input: FunctionCallData
    response: Response = Field(default_factory=LoadingResponse)


class ChatCallAction(BaseModel):
    id: str = ""
    action: Literal["calling-open-ai"] = "calling-open-ai"
    input: Any = None
    messages: list[Message] = Field(default_factory=list)
    response: Response = Field(default_factory=LoadingResponse)


class DocumentAction(BaseModel):
    id: str = ""
    action: Literal["get-document"] = "get-document"
    input: Document
    response: Response = Field(default_factory=LoadingResponse)


Action = Annotated[
    Union[
        LogAction,
        ExecutingFunctionAction,
        QueryAction,
        CallingFunctionAction,
        ChatCallAction,
        DocumentAction,
    ],
    Field(discriminator="action"),
]


# ---------------------------------------------------------------------------
# Execution records
# ---------------------------------------------------------------------------


class FunctionExecution(BaseModel):
    """One function invocation inside an Execution."""

    function_execution_id: str
    inputs: FunctionArgs = Field(default_factory=FunctionArgs)
    trace: list[Action] = Field(default_factory=list)
    final_response: Any = None
    function_def: Definition


class Execution(BaseModel):
    """Durable record of a (possibly multi-function) invocation."""

    id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    functions_executed: list[FunctionExecution] = Field(default_factory=list)
    final_response: Any = None
    verified: bool | None = None
