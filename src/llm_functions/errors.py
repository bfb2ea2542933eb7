# errors.py
# Exception taxonomy. Everything here is fatal to the invocation that raised
# it; recoverable schema failures never surface as exceptions, they end up as
# `zod-error` / `timeout-error` trace responses instead.


class LLMFunctionError(Exception):
    """Base class for all llm_functions errors."""


class ExecutionNotActiveError(LLMFunctionError):
    """Raised when a trace mutation is attempted outside of an invocation."""


class TraceStateError(LLMFunctionError):
    """Raised when an action is updated from a state that does not allow it."""


class DefinitionNotFoundError(LLMFunctionError):
    """Raised when a registry lookup names a function id that was never created."""


class DatasetMissingError(LLMFunctionError):
    """Raised when dataset evaluation is requested for a function without a dataset."""


class FunctionNotFoundError(LLMFunctionError):
    """Raised when the model calls a function absent from the catalog. Never retried."""


class TemplateSyntaxError(LLMFunctionError):
    """Raised when an instruction template has unbalanced braces."""


class MissingTemplateValueError(LLMFunctionError, KeyError):
    """Raised when a template placeholder has no supplied value."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Missing value for input {name}")

    def __str__(self) -> str:
        return self.args[0]


class NotAnAIFunctionError(LLMFunctionError, TypeError):
    """Raised when a plain callable is passed where a created AI function is required."""
