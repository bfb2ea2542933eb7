# trace.py
# Trace Recorder: owns the in-flight Execution of ONE invocation.
#
# Every mutation swaps in an updated copy of the Execution and hands it to the
# observer, so observers can keep snapshots without seeing later edits. A
# recorder is not shareable between concurrent invocations; the engine creates
# one per run.

import uuid
from typing import Any, Callable

from llm_functions.errors import ExecutionNotActiveError, TraceStateError
from llm_functions.merge import merge_executions
from llm_functions.models import (
    Definition,
    Execution,
    FunctionArgs,
    FunctionExecution,
    LogAction,
    SuccessResponse,
)

Observer = Callable[[Execution], None]

# Response types an update may start from, and what each may become.
_TRANSITIONS = {
    "loading": {"success", "error", "zod-error", "timeout-error"},
    "error": {"timeout-error"},
    "zod-error": {"timeout-error"},
}


def new_id() -> str:
    return uuid.uuid4().hex


class TraceRecorder:
    def __init__(self, observer: Observer | None = None) -> None:
        self._observer = observer
        self._execution: Execution | None = None
        self._function_execution_id: str | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _require(self) -> Execution:
        if self._execution is None:
            raise ExecutionNotActiveError("Execution not found")
        return self._execution

    @property
    def execution(self) -> Execution:
        return self._require()

    @property
    def function_execution_id(self) -> str:
        self._require()
        return self._function_execution_id

    def start(
        self,
        definition: Definition,
        args: FunctionArgs,
        execution_id: str | None = None,
    ) -> Execution:
        """Open a new Execution with a single, active sub-record."""
        self._function_execution_id = new_id()
        self._execution = Execution(
            id=execution_id or new_id(),
            functions_executed=[
                FunctionExecution(
                    function_execution_id=self._function_execution_id,
                    inputs=args,
                    function_def=definition,
                )
            ],
        )
        return self._execution

    def _active(self, execution: Execution) -> FunctionExecution:
        for record in execution.functions_executed:
            if record.function_execution_id == self._function_execution_id:
                return record
        raise ExecutionNotActiveError(
            f"Function execution {self._function_execution_id} is not part of execution {execution.id}"
        )

    def _replace(
        self,
        change: Callable[[FunctionExecution], FunctionExecution],
        **top_level: Any,
    ) -> Execution:
        execution = self._require()
        records = [
            change(record) if record.function_execution_id == self._function_execution_id else record
            for record in execution.functions_executed
        ]
        self._execution = execution.model_copy(update={"functions_executed": records, **top_level})
        self._notify()
        return self._execution

    def _notify(self) -> None:
        if self._observer is not None and self._execution is not None:
            self._observer(self._execution)

    # ------------------------------------------------------------------
    # Trace operations
    # ------------------------------------------------------------------

    def create_trace(self, action) -> str:
        """Append `action` to the active trace under a fresh id and return the id."""
        self._require()
        action_id = new_id()
        stamped = action.model_copy(update={"id": action_id})
        self._replace(lambda record: record.model_copy(update={"trace": [*record.trace, stamped]}))
        return action_id

    def update_trace(self, action_id: str, response) -> None:
        """Move a pending action to a terminal response."""
        current = next(
            (a for a in self._active(self._require()).trace if a.id == action_id),
            None,
        )
        if current is None:
            raise TraceStateError(f"Action {action_id} is not in the active trace")

        previous = getattr(current, "response", None)
        allowed = _TRANSITIONS.get(previous.type, set()) if previous is not None else set()
        if response.type not in allowed:
            raise TraceStateError(
                f"Action {action_id} ({current.action}) cannot move from "
                f"{previous.type if previous else 'no response'} to {response.type}"
            )

        updated = current.model_copy(update={"response": response})
        self._replace(
            lambda record: record.model_copy(
                update={"trace": [updated if a.id == action_id else a for a in record.trace]}
            )
        )

    def log(self, message: str) -> str:
        return self.create_trace(LogAction(response=SuccessResponse(output=message)))

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, final_response: Any) -> Execution:
        """Set the final response of the active sub-record and of the Execution."""
        return self._replace(
            lambda record: record.model_copy(update={"final_response": final_response}),
            final_response=final_response,
        )

    def absorb(self, other: Execution) -> Execution:
        """Merge a nested Execution that was recorded under the same id."""
        self._execution = merge_executions(self._require(), other)
        self._notify()
        return self._execution
