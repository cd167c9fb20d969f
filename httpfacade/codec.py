"""JSON encoding and typed decoding built on pydantic."""

from functools import lru_cache
from typing import Any, Protocol

import pydantic_core
from pydantic import TypeAdapter


class JsonCodec(Protocol):
    """Serialize objects to JSON text and decode JSON text into a target type."""

    def encode(self, data: Any) -> str: ...

    def decode(self, text: str, target: Any) -> Any: ...


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def type_name(target: Any) -> str:
    """Readable name of a decode target, including parametrized generics."""
    name = getattr(target, "__qualname__", None)
    if name and not getattr(target, "__args__", None):
        return name
    return repr(target).replace("typing.", "")


class PydanticJsonCodec:
    """
    Default codec.

    Encoding understands pydantic models, dataclasses, and the usual builtins.
    Decoding validates against any type pydantic can build a TypeAdapter for, and
    raises ``pydantic.ValidationError`` on malformed or incompatible input.
    An empty body decodes to ``None`` only when ``None`` is a valid value of the
    target type.
    """

    def encode(self, data: Any) -> str:
        return pydantic_core.to_json(data).decode("utf-8")

    def decode(self, text: str, target: Any) -> Any:
        try:
            adapter = _adapter(target)
        except TypeError:
            # unhashable target, e.g. Annotated with list metadata
            adapter = TypeAdapter(target)
        if not text.strip():
            return adapter.validate_python(None)
        return adapter.validate_json(text)
