"""Last-applied spec snapshots.

The snapshot lives in an annotation on the desired-state object itself, so its
text format is a durable contract: compact JSON of the camelCase spec, keys
sorted, unset optional fields omitted. This is format version 1; a different
format needs a different annotation key.
"""
from __future__ import annotations

import json

from pydantic import ValidationError

from .errors import MalformedSnapshot
from .resources import AppSpec


def encode(spec: AppSpec) -> str:
    return json.dumps(spec.to_wire(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def decode(text: str | None) -> AppSpec:
    if text is None or not text.strip():
        raise MalformedSnapshot("snapshot annotation is missing or empty")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedSnapshot(f"snapshot is not valid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedSnapshot(f"snapshot must be a JSON object, got {type(data).__name__}")
    try:
        return AppSpec.model_validate(data)
    except ValidationError as e:
        raise MalformedSnapshot(f"snapshot does not describe a spec: {e.errors()[0]['msg']}") from e
