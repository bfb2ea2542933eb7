import pytest

from llm_functions.errors import ExecutionNotActiveError, TraceStateError
from llm_functions.models import (
    ChatCallAction,
    Definition,
    ErrorResponse,
    Execution,
    FunctionArgs,
    FunctionExecution,
    SchemaErrorResponse,
    SuccessResponse,
    TimeoutErrorResponse,
)
from llm_functions.trace import TraceRecorder


def _started(observer=None, execution_id=None):
    recorder = TraceRecorder(observer)
    recorder.start(Definition(name="fn"), FunctionArgs(), execution_id)
    return recorder


def _trace(recorder):
    return recorder.execution.functions_executed[0].trace


# ---------------------------------------------------------------------------
# Outside an invocation
# ---------------------------------------------------------------------------


def test_create_trace_requires_execution():
    with pytest.raises(ExecutionNotActiveError, match="Execution not found"):
        TraceRecorder().create_trace(ChatCallAction())


def test_update_trace_requires_execution():
    with pytest.raises(ExecutionNotActiveError):
        TraceRecorder().update_trace("missing", SuccessResponse())


def test_log_and_resolve_require_execution():
    recorder = TraceRecorder()
    with pytest.raises(ExecutionNotActiveError):
        recorder.log("hello")
    with pytest.raises(ExecutionNotActiveError):
        recorder.resolve("done")


# ---------------------------------------------------------------------------
# Trace steps
# ---------------------------------------------------------------------------


def test_start_opens_single_record():
    recorder = _started(execution_id="exec-1")
    execution = recorder.execution
    assert execution.id == "exec-1"
    assert len(execution.functions_executed) == 1
    assert execution.functions_executed[0].function_execution_id == recorder.function_execution_id


def test_create_trace_stamps_unique_ids():
    recorder = _started()
    first = recorder.create_trace(ChatCallAction())
    second = recorder.create_trace(ChatCallAction())
    assert first != second
    assert [a.id for a in _trace(recorder)] == [first, second]
    assert _trace(recorder)[0].response.type == "loading"


def test_update_trace_to_terminal():
    recorder = _started()
    action_id = recorder.create_trace(ChatCallAction())
    recorder.update_trace(action_id, SuccessResponse(output="ok"))
    assert _trace(recorder)[0].response == SuccessResponse(output="ok")


def test_terminal_responses_are_final():
    recorder = _started()
    action_id = recorder.create_trace(ChatCallAction())
    recorder.update_trace(action_id, SuccessResponse(output="ok"))
    with pytest.raises(TraceStateError):
        recorder.update_trace(action_id, ErrorResponse(error="late"))


@pytest.mark.parametrize(
    "failure", [SchemaErrorResponse(error="bad"), ErrorResponse(error="no call")]
)
def test_failed_attempt_can_time_out(failure):
    recorder = _started()
    action_id = recorder.create_trace(ChatCallAction())
    recorder.update_trace(action_id, failure)
    recorder.update_trace(action_id, TimeoutErrorResponse())
    assert _trace(recorder)[0].response.type == "timeout-error"


def test_update_unknown_action():
    recorder = _started()
    with pytest.raises(TraceStateError):
        recorder.update_trace("missing", SuccessResponse())


def test_log_is_created_successful():
    recorder = _started()
    action_id = recorder.log("checkpoint")
    action = _trace(recorder)[0]
    assert action.action == "log"
    assert action.response.output == "checkpoint"
    with pytest.raises(TraceStateError):
        recorder.update_trace(action_id, SuccessResponse(output="again"))


# ---------------------------------------------------------------------------
# Observers and snapshots
# ---------------------------------------------------------------------------


def test_observer_receives_independent_snapshots():
    snapshots = []
    recorder = _started(observer=snapshots.append)
    action_id = recorder.create_trace(ChatCallAction())
    recorder.update_trace(action_id, SuccessResponse(output="ok"))

    assert len(snapshots) == 2
    assert snapshots[0].functions_executed[0].trace[0].response.type == "loading"
    assert snapshots[1].functions_executed[0].trace[0].response.type == "success"


def test_resolve_sets_both_final_responses():
    recorder = _started()
    execution = recorder.resolve({"answer": 42})
    assert execution.final_response == {"answer": 42}
    assert execution.functions_executed[0].final_response == {"answer": 42}


def test_absorb_merges_nested_record():
    recorder = _started(execution_id="shared")
    nested = Execution(
        id="shared",
        functions_executed=[
            FunctionExecution(
                function_execution_id="nested",
                function_def=Definition(name="inner"),
                final_response="inner result",
            )
        ],
        final_response="inner result",
    )
    execution = recorder.absorb(nested)
    assert [f.function_execution_id for f in execution.functions_executed] == [
        recorder.function_execution_id,
        "nested",
    ]
    assert execution.final_response == "inner result"
