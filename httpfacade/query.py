"""
Projection of request models onto URL query strings.

Fields are enumerated in declaration order:

* pydantic models: ``model_fields`` order, using the field alias when one is set
* dataclasses: ``dataclasses.fields`` order
* mappings: insertion order
* any other object: the public entries of its instance ``__dict__``

Attributes whose name starts with an underscore are never projected.
"""

import dataclasses
import datetime as dt
from collections.abc import Iterator, Mapping, Sequence
from collections.abc import Set as AbstractSet
from decimal import Decimal
from enum import Enum
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel


def _escape(value: str) -> str:
    # Only RFC 3986 unreserved characters are left as-is.
    return quote(value, safe="")


def _iter_fields(model: Any) -> Iterator[tuple[str, Any]]:
    if isinstance(model, BaseModel):
        for name, info in type(model).model_fields.items():
            yield info.alias or name, getattr(model, name)
    elif dataclasses.is_dataclass(model) and not isinstance(model, type):
        for f in dataclasses.fields(model):
            if not f.name.startswith("_"):
                yield f.name, getattr(model, f.name)
    elif isinstance(model, Mapping):
        for key, value in model.items():
            yield str(key), value
    else:
        try:
            attributes = vars(model)
        except TypeError as exc:
            raise TypeError(
                f"Cannot project {type(model).__name__} onto a query string; "
                "use a pydantic model, a dataclass, a mapping or a plain object."
            ) from exc
        for name, value in attributes.items():
            if not name.startswith("_"):
                yield name, value


def format_query_value(value: Any) -> str:
    """Stringify a scalar independently of locale."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(
                "Binary query values must be UTF-8 text; encode them (e.g. base64) before projecting."
            ) from exc
    return str(value)


def _is_sequence(value: Any) -> bool:
    # Only real collections; models and one-shot iterators go through the scalar path.
    return isinstance(value, (Sequence, AbstractSet)) and not isinstance(value, (str, bytes, bytearray))


def to_query_string(model: Any) -> str:
    """
    Convert a request model's readable fields into ``key=value`` pairs joined by ``&``.

    ``None`` fields are skipped. Sequences are joined with ``,`` after dropping
    ``None`` items (sets are sorted first) and encoded once as a single value; an
    empty sequence is skipped. Other iterables, nested models included, are scalars.
    Keys and values are percent-encoded exactly once.
    """
    if model is None:
        return ""

    pairs: list[str] = []
    for name, value in _iter_fields(model):
        if value is None:
            continue
        if _is_sequence(value):
            items = [format_query_value(item) for item in value if item is not None]
            if isinstance(value, AbstractSet):
                items.sort()
            if not items:
                continue
            raw = ",".join(items)
        else:
            raw = format_query_value(value)
        pairs.append(f"{_escape(name)}={_escape(raw)}")
    return "&".join(pairs)


def _join(url: str, query: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


def append_query_string(url: str, model: Any) -> str:
    """Return ``url`` extended with the model's query string, or unchanged when it is empty."""
    query = to_query_string(model)
    if not query.strip():
        return url
    return _join(url, query)


def append_single_query(url: str, key: str, value: Any) -> str:
    """Append one encoded ``key=value`` pair; a blank key leaves the URL unchanged."""
    if not key or not key.strip():
        return url
    raw = "" if value is None else format_query_value(value)
    return _join(url, f"{_escape(key)}={_escape(raw)}")
