# registry.py
# Log Registry: process-wide history of Executions and created functions.
#
# Executions stream in through log_handler() (wired as the observer of every
# engine the registry's builder creates). Records sharing an id are merged with
# merge_executions(), so a replay of the same snapshot is a no-op and partial
# snapshots converge on the finished record. Durable storage is delegated to a
# LogStore; the merge is the only consistency mechanism, stores need no
# transactions.

import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import Callable

from llm_functions.builder import FunctionBuilder
from llm_functions.engine import FunctionEngine, Runtime
from llm_functions.errors import DefinitionNotFoundError
from llm_functions.merge import merge_executions
from llm_functions.models import Definition, Execution, FunctionArgs

logger = logging.getLogger(__name__)

Callback = Callable[[Execution], None]


# ---------------------------------------------------------------------------
# Log stores
# ---------------------------------------------------------------------------


class LogStore(ABC):
    @abstractmethod
    async def get_logs(self) -> list[Execution]:
        """All persisted executions."""

    @abstractmethod
    def save_log(self, execution: Execution) -> None:
        """Insert or replace the record with `execution.id`."""


class InMemoryLogStore(LogStore):
    def __init__(self, logs: list[Execution] | None = None) -> None:
        self._logs: dict[str, Execution] = {log.id: log for log in logs or []}

    async def get_logs(self) -> list[Execution]:
        return list(self._logs.values())

    def save_log(self, execution: Execution) -> None:
        self._logs[execution.id] = execution


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class LogRegistry:
    def __init__(self, log_store: LogStore | None = None, runtime: Runtime | None = None) -> None:
        self._log_store = log_store
        self._execution_logs: list[Execution] = []
        self._function_defs: list[Definition] = []
        self._hydrated = False
        self._runtime = dataclasses.replace(
            runtime or Runtime(),
            observer=self.log_handler,
            on_created=self._on_created,
        )
        self.llm_function = FunctionBuilder(runtime=self._runtime)

    @property
    def execution_logs(self) -> list[Execution]:
        return list(self._execution_logs)

    @property
    def log_store(self) -> LogStore | None:
        return self._log_store

    async def initialize(self) -> "LogRegistry":
        """
        Load persisted executions once.

        A record already logged under a stored id is merged onto the stored
        one, so its fields win and the stored sub-records are kept.
        """
        if self._hydrated or self._log_store is None:
            self._hydrated = True
            return self
        stored = await self._log_store.get_logs()
        pending = {log.id: log for log in self._execution_logs}
        hydrated = []
        for log in stored:
            if log.id in pending:
                log = merge_executions(log, pending.pop(log.id))
                self._save(log)
            hydrated.append(log)
        self._execution_logs = hydrated + list(pending.values())
        self._hydrated = True
        logger.debug("hydrated %d executions", len(stored))
        return self

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def find_log(self, execution_id: str) -> Execution | None:
        return next((log for log in self._execution_logs if log.id == execution_id), None)

    def log_handler(self, execution: Execution) -> Execution:
        existing = self.find_log(execution.id)
        if existing is None:
            self._execution_logs.append(execution)
            self._save(execution)
            return execution

        merged = merge_executions(existing, execution)
        self._execution_logs = [merged if log.id == merged.id else log for log in self._execution_logs]
        self._save(merged)
        return merged

    def _save(self, execution: Execution) -> None:
        if self._log_store is not None:
            self._log_store.save_log(execution)

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def _on_created(self, definition: Definition) -> None:
        self._function_defs.append(definition)

    def get_function_defs(self) -> list[Definition]:
        return list(self._function_defs)

    def _find_definition(self, fn_id: str) -> Definition:
        for definition in self._function_defs:
            if definition.id == fn_id:
                return definition
        raise DefinitionNotFoundError("Function not found")

    def _runtime_with(self, callback: Callback | None) -> Runtime:
        def observer(execution: Execution) -> None:
            merged = self.log_handler(execution)
            if callback is not None:
                callback(merged)

        return dataclasses.replace(self._runtime, observer=observer)

    async def evaluate_fn(
        self,
        fn_id: str,
        args: FunctionArgs | dict | None = None,
        callback: Callback | None = None,
    ) -> Execution:
        """Run a registered function once and record whether it passes its verify predicate."""
        definition = self._find_definition(fn_id)
        args = FunctionArgs.model_validate(args or {})

        execution = await FunctionEngine(definition, self._runtime_with(callback)).run(args)
        logged = self.log_handler(execution)

        if definition.verify is not None:
            verified = bool(definition.verify(logged, args))
            logged = self.log_handler(logged.model_copy(update={"verified": verified}))

        if callback is not None:
            callback(logged)
        return self.find_log(logged.id) or logged

    async def evaluate_dataset(
        self, fn_id: str, callback: Callback | None = None
    ) -> list[Execution]:
        definition = self._find_definition(fn_id)
        return await FunctionEngine(definition, self._runtime_with(callback)).run_dataset()


async def init_llm_function(
    log_store: LogStore | None = None, runtime: Runtime | None = None
) -> LogRegistry:
    """Create a registry and hydrate it from `log_store`."""
    return await LogRegistry(log_store, runtime).initialize()
