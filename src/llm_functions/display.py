# display.py
# All terminal output for llm_functions.
#
# The engine never prints. Progress reaches the terminal through an observer
# (ConsoleObserver) and diagnostics through stdlib logging routed to rich by
# configure_logging(). Replacing this module replaces the UI.
#
# Colour language:
#   cyan: function boundaries
#   blue: model calls
#   magenta: sub-function calls, queries, documents
#   yellow: pending / schema retries
#   green: success
#   red: errors and retry exhaustion

import json
import logging
from typing import Any

from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text
from rich.tree import Tree

from llm_functions.models import Definition, Execution

console = Console()

_ACTION_COLORS = {
    "executing-function": "cyan",
    "calling-open-ai": "blue",
    "calling-function": "magenta",
    "query": "magenta",
    "get-document": "magenta",
    "log": "white",
}

_STATUS_STYLES = {
    "loading": ("…", "yellow"),
    "success": ("✓", "green"),
    "error": ("✗", "red"),
    "zod-error": ("↻", "yellow"),
    "timeout-error": ("✗", "bold red"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = value.replace("\n", " ")
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _render_value(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _describe(action) -> str:
    kind = action.action
    if kind == "executing-function":
        return f"executing {action.function_def.name or action.function_def.id or 'function'}"
    if kind == "calling-open-ai":
        return f"chat call ({len(action.messages)} messages)"
    if kind == "calling-function":
        return f"{action.input.name}({_mono(_render_value(action.input.parameters), 60)})"
    if kind == "query":
        return f"query {_mono(_render_value(action.input), 60)}"
    if kind == "get-document":
        return f"document {action.input.name or action.input.type}"
    return _mono(_render_value(action.response.output))


def _status(action) -> tuple[str, str, str]:
    """(symbol, style, detail) for an action's current response."""
    response = getattr(action, "response", None)
    if response is None:
        return "•", _ACTION_COLORS.get(action.action, "white"), ""
    symbol, style = _STATUS_STYLES[response.type]
    detail = ""
    if response.type in ("error", "zod-error"):
        detail = _mono(response.error, 100)
    elif response.type == "success" and action.action == "calling-open-ai":
        detail = _mono(_render_value(getattr(response.output, "data", response.output)), 100)
    return symbol, style, detail


def action_line(action) -> Text:
    symbol, style, detail = _status(action)
    line = Text()
    line.append(f"{symbol} ", style=style)
    line.append(_describe(action), style=_ACTION_COLORS.get(action.action, "white"))
    if detail:
        line.append(f"  {detail}", style="dim")
    return line


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(level: int | str = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


# ---------------------------------------------------------------------------
# Live progress
# ---------------------------------------------------------------------------


class ConsoleObserver:
    """
    Observer printing each trace step once per state it reaches.

    Meant for one evaluation run. Only the latest step states of each
    execution are kept, and forget() drops an execution once it is reported.
    """

    def __init__(self, target: Console | None = None) -> None:
        self._console = target or console
        self._seen: dict[str, dict[str, str]] = {}

    def __call__(self, execution: Execution) -> None:
        previous = self._seen.get(execution.id, {})
        current: dict[str, str] = {}
        for record in execution.functions_executed:
            for action in record.trace:
                response = getattr(action, "response", None)
                state = response.type if response is not None else "done"
                current[action.id] = state
                if previous.get(action.id) != state:
                    self._console.print(Text("  ").append_text(action_line(action)))
        self._seen[execution.id] = current

    def forget(self, execution_id: str) -> None:
        self._seen.pop(execution_id, None)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def banner(definition: Definition) -> None:
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]{escape(definition.name or 'AI function')}[/bold cyan]\n"
            f"[dim]{escape(definition.description or '')}[/dim]\n\n"
            f"[dim]Id    :[/dim] [white]{definition.id or '(not created)'}[/white]\n"
            f"[dim]Model :[/dim] [white]{definition.model.model_name}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def trace_tree(execution: Execution) -> Tree:
    tree = Tree(f"[bold]Execution[/bold] [dim]{execution.id}[/dim]")
    for record in execution.functions_executed:
        definition = record.function_def
        node = tree.add(
            f"[bold cyan]{escape(definition.name or 'function')}[/bold cyan] "
            f"[dim]{record.function_execution_id}[/dim]"
        )
        for action in record.trace:
            node.add(action_line(action))
        if record.final_response is not None:
            node.add(f"[green]→ {escape(_mono(_render_value(record.final_response)))}[/green]")
    if execution.verified is not None:
        verdict = "[bold green]verified ✓[/bold green]" if execution.verified else "[bold red]not verified ✗[/bold red]"
        tree.add(verdict)
    return tree


def execution_summary(execution: Execution) -> None:
    console.print()
    console.print(
        Panel(
            trace_tree(execution),
            title="[dim]EXECUTION SUMMARY[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def final_result(result: Any) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(_render_value(result))}[/white]",
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
