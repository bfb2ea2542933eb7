# merge.py
# Reconciliation of partial execution histories that share an execution id.
#
# Observers see a fresh snapshot after every trace step, nested functions write
# their own Execution under the parent's id, and the same record can be replayed
# from storage. Merging must therefore be idempotent: merge(merge(A, B), B) ==
# merge(A, B). Pure functions only, no storage side effects.

from typing import Callable, TypeVar

from llm_functions.models import Execution, FunctionExecution

T = TypeVar("T")

# Higher rank = more settled. A snapshot never moves an action backwards.
_RESPONSE_RANK = {
    "loading": 0,
    "zod-error": 1,
    "success": 2,
    "error": 1,
    "timeout-error": 2,
}


def merge_or_update(
    existing: list[T],
    incoming: list[T],
    key: Callable[[T], str],
    combine: Callable[[T, T], T] = lambda old, new: new,
) -> list[T]:
    """
    Merge two keyed lists.

    Order follows `existing`; matched entries are combined, entries only in
    `incoming` are appended in their own order.
    """
    pending = {key(item): item for item in incoming}
    merged = [
        combine(item, pending.pop(key(item))) if key(item) in pending else item
        for item in existing
    ]
    merged.extend(pending.values())
    return merged


def _rank(action) -> int:
    response = getattr(action, "response", None)
    if response is None:
        return 2
    return _RESPONSE_RANK.get(response.type, 2)


def _merge_action(existing, incoming):
    if _rank(incoming) < _rank(existing):
        return existing
    return incoming


def merge_function_execution(
    existing: FunctionExecution, incoming: FunctionExecution
) -> FunctionExecution:
    final_response = incoming.final_response
    if final_response is None:
        final_response = existing.final_response
    return incoming.model_copy(
        update={
            "trace": merge_or_update(
                existing.trace, incoming.trace, key=lambda a: a.id, combine=_merge_action
            ),
            "final_response": final_response,
        }
    )


def merge_executions(existing: Execution, incoming: Execution) -> Execution:
    """
    Overlay `incoming` onto `existing`.

    Top-level fields are taken from `incoming` unless they are None there;
    `created_at` stays with the first record seen.
    """
    update = {
        "functions_executed": merge_or_update(
            existing.functions_executed,
            incoming.functions_executed,
            key=lambda f: f.function_execution_id,
            combine=merge_function_execution,
        )
    }
    if incoming.final_response is not None:
        update["final_response"] = incoming.final_response
    if incoming.verified is not None:
        update["verified"] = incoming.verified
    return existing.model_copy(update=update)
