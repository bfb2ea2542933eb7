import pytest

from llm_functions.errors import MissingTemplateValueError, TemplateSyntaxError
from llm_functions.templates import TemplateNode, interpolate, parse_template, template_variables


def test_interpolate_replaces_placeholder():
    result = interpolate("Generate items starting with {letter}", {"letter": "A"})
    assert result == "Generate items starting with A"
    assert "{letter}" not in result


def test_interpolate_repeated_and_non_string_values():
    assert interpolate("{n} and {n} make {total}", {"n": 1, "total": 2}) == "1 and 1 make 2"


def test_escaped_braces_are_literal():
    assert interpolate("JSON looks like {{\"a\": {value}}}", {"value": 1}) == 'JSON looks like {"a": 1}'


def test_missing_value_raises():
    with pytest.raises(MissingTemplateValueError, match="Missing value for input letter"):
        interpolate("Generate items starting with {letter}", {})


def test_missing_value_is_a_key_error():
    with pytest.raises(KeyError):
        interpolate("{a}{b}", {"a": "x"})


def test_template_without_placeholders():
    assert interpolate("Tell me a joke", None) == "Tell me a joke"


def test_parse_template_nodes():
    assert parse_template("Hi {name}!") == [
        TemplateNode("literal", "Hi "),
        TemplateNode("variable", "name"),
        TemplateNode("literal", "!"),
    ]


def test_template_variables_in_order_without_duplicates():
    assert template_variables("{b} {a} {b}") == ["b", "a"]


@pytest.mark.parametrize("template", ["Unclosed {brace", "Single } brace"])
def test_unbalanced_braces_raise(template):
    with pytest.raises(TemplateSyntaxError):
        parse_template(template)


@pytest.mark.parametrize("template", ["Describe {key: value}", "Quote {name!r}", "Pad {n:>5}"])
def test_format_specs_and_conversions_are_rejected(template):
    with pytest.raises(TemplateSyntaxError, match="format spec or conversion"):
        interpolate(template, {"key": "k", "name": "n", "n": 1})
