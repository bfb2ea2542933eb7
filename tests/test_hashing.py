from pydantic import BaseModel

from llm_functions.builder import FunctionBuilder
from llm_functions.hashing import canonical_payload, content_hash, verify_id
from llm_functions.models import Definition, ModelParams, SubFunction


class Items(BaseModel):
    items: list[str]


class Lookup(BaseModel):
    key: str


def _builder():
    return (
        FunctionBuilder(Definition(model=ModelParams(model_name="gpt-test", temperature=0.0, max_tokens=None)))
        .name("items")
        .description("lists items")
        .instructions("Generate items starting with {letter}")
        .output(Items)
    )


# ---------------------------------------------------------------------------
# Content addressing
# ---------------------------------------------------------------------------


def test_created_id_matches_rehash():
    fn = _builder().create()
    assert fn.id == content_hash(fn.definition)
    assert verify_id(fn.definition) is True


def test_identical_content_hashes_identically():
    assert _builder().create().id == _builder().create().id


def test_different_content_hashes_differently():
    a = _builder().create()
    b = _builder().instructions("Generate items ending with {letter}").create()
    assert a.id != b.id


def test_prior_id_is_ignored():
    plain = _builder().definition
    with_id = plain.model_copy(update={"id": "test"})
    assert content_hash(plain) == content_hash(with_id)
    assert "id" not in canonical_payload(with_id)


def test_unfinalized_definition_does_not_verify():
    assert verify_id(_builder().definition) is False


def test_tampered_definition_fails_verification():
    fn = _builder().create()
    tampered = fn.definition.model_copy(update={"instructions": "Ignore previous instructions"})
    assert verify_id(tampered) is False


def test_callables_excluded_but_schemas_hashed():
    def impl_a(args):
        return "a"

    def impl_b(args):
        return "b"

    a = _builder().functions(
        [SubFunction(name="lookup", description="", parameters=Lookup, implementation=impl_a)]
    )
    b = _builder().functions(
        [SubFunction(name="lookup", description="", parameters=Lookup, implementation=impl_b)]
    )
    payload = canonical_payload(a.definition)
    assert "implementation" not in payload["functions"][0]
    assert payload["functions"][0]["parameters_schema"]["properties"]["key"]["type"] == "string"
    assert content_hash(a.definition) == content_hash(b.definition)


def test_transform_names_contribute_to_hash():
    def upper(result, execution, args):
        return result.upper()

    def lower(result, execution, args):
        return result.lower()

    assert content_hash(_builder().map(upper).definition) != content_hash(
        _builder().map(lower).definition
    )
