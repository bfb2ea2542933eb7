# hashing.py
# Content addressing for function definitions.
#
# A Definition's id is SHA-256 over its canonical JSON form. Two definitions
# declaring the same content get the same id, on any platform; this is the only
# identity mechanism, there is no counter or registry-issued id.
#
# Callables are excluded from the dump. Transforms still contribute their
# qualified name, sub-functions their parameter schema.

import hashlib
import json
from typing import Any

from llm_functions.models import Definition


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _sha256(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _serialize(payload: dict[str, Any]) -> str:
    """Deterministic serialization. sort_keys is non-negotiable."""
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def canonical_payload(definition: Definition) -> dict[str, Any]:
    """Serializable content of `definition`, without its own id."""
    return definition.model_dump(exclude={"id"})


def content_hash(definition: Definition) -> str:
    """Hex-encoded SHA-256 of the canonical serialization of `definition`."""
    return _sha256(_serialize(canonical_payload(definition)))


def verify_id(definition: Definition) -> bool:
    """
    Recompute the hash and compare it against the assigned id.

    Returns False for definitions that were never finalized.
    """
    if definition.id is None:
        return False
    return content_hash(definition) == definition.id
