"""Normalizer extensions: turn auxiliary payloads into named schemas."""

from collections.abc import Mapping
from typing import Any, Protocol

from ..parser.base import Schema
from ..parser.schema import convert, infer_from_example


class NormalizerExtension(Protocol):
    name: str

    def normalize(self, payload: Any) -> Schema | None: ...


class JsonSchemaExtension:
    """Reads a JSON Schema fragment."""

    name = "json-schema"

    def normalize(self, payload: Any) -> Schema | None:
        if not isinstance(payload, Mapping):
            return None
        return convert(payload)


class ExampleExtension:
    """Infers a schema from an example value."""

    name = "example"

    def normalize(self, payload: Any) -> Schema | None:
        if payload is None:
            return None
        return infer_from_example(payload)


BUILTIN_EXTENSIONS = {
    JsonSchemaExtension.name: JsonSchemaExtension,
    ExampleExtension.name: ExampleExtension,
}


def resolve_extension(value: Any) -> NormalizerExtension:
    """Instantiate built-in extensions referenced by name; pass objects through."""
    if isinstance(value, str):
        try:
            return BUILTIN_EXTENSIONS[value]()
        except KeyError:
            raise ValueError(f"Unknown normalizer extension {value!r}") from None
    return value
