# templates.py
# f-string style instruction templates: "Generate items starting with {letter}".
# Parsing is delegated to string.Formatter; `{{` and `}}` are literal braces.
# Format specs and conversions (`{a:>5}`, `{a!r}`) are rejected.

import string
from typing import Any, Literal, NamedTuple

from llm_functions.errors import MissingTemplateValueError, TemplateSyntaxError

_FORMATTER = string.Formatter()


class TemplateNode(NamedTuple):
    type: Literal["literal", "variable"]
    text: str


def parse_template(template: str) -> list[TemplateNode]:
    """Split a template into literal and variable nodes, in order."""
    nodes: list[TemplateNode] = []
    try:
        for literal, field, spec, conversion in _FORMATTER.parse(template):
            if literal:
                nodes.append(TemplateNode("literal", literal))
            if field is None:
                continue
            if spec or conversion:
                raise TemplateSyntaxError(
                    f"Invalid template {template!r}: placeholder {field!r} may not carry "
                    "a format spec or conversion"
                )
            nodes.append(TemplateNode("variable", field))
    except ValueError as exc:
        raise TemplateSyntaxError(f"Invalid template {template!r}: {exc}") from exc
    return nodes


def template_variables(template: str) -> list[str]:
    """Distinct placeholder names in order of first appearance."""
    seen: dict[str, None] = {}
    for node in parse_template(template):
        if node.type == "variable":
            seen.setdefault(node.text, None)
    return list(seen)


def interpolate(template: str, values: dict[str, Any] | None) -> str:
    """
    Substitute every placeholder with its value.

    Raises MissingTemplateValueError for the first placeholder without a value.
    Values are inserted with str(); no format specs are applied.
    """
    values = values or {}
    parts: list[str] = []
    for node in parse_template(template):
        if node.type == "literal":
            parts.append(node.text)
        elif node.text in values:
            parts.append(str(values[node.text]))
        else:
            raise MissingTemplateValueError(node.text)
    return "".join(parts)
