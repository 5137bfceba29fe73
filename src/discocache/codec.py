"""Byte encoding of discovery documents for the on-disk cache.

Every cache file holds exactly one document serialised as indented JSON.
Pydantic documents are written with the server's camelCase field names and
keep their ``kind``/``apiVersion`` envelope, which :func:`decode` checks so a
file written for one key is never mistaken for another document type.  The
OpenAPI schema is stored as an opaque JSON object, and the preferred-resource
operations store a JSON array of resource lists.
"""

from __future__ import annotations

import json
from typing import Any, Union

from pydantic import BaseModel, TypeAdapter

from discocache.exceptions import DecodeError

Document = Union[BaseModel, list[BaseModel], dict[str, Any]]


def encode(document: Document) -> bytes:
    """Serialise *document* to UTF-8 JSON bytes.

    Raises:
        TypeError: If *document* is not a model, a list of models, or a
            JSON-compatible dict.
    """
    if isinstance(document, BaseModel):
        text = document.model_dump_json(by_alias=True, indent=2)
    elif isinstance(document, list):
        items = []
        for item in document:
            if not isinstance(item, BaseModel):
                raise TypeError(f"cannot encode list item of type {type(item).__name__}")
            items.append(item.model_dump(mode="json", by_alias=True))
        text = json.dumps(items, indent=2)
    elif isinstance(document, dict):
        text = json.dumps(document, indent=2, sort_keys=True)
    else:
        raise TypeError(f"cannot encode {type(document).__name__} as a discovery document")
    return (text + "\n").encode("utf-8")


def decode(data: bytes, document_type: Any) -> Any:
    """Deserialise *data* into an instance of *document_type*.

    Args:
        data: Raw bytes previously produced by :func:`encode`, or a response
            body fetched from the server.
        document_type: A discovery model class, ``dict`` for opaque
            documents such as the OpenAPI schema, or a generic alias such
            as ``list[APIResourceList]``.

    Returns:
        The decoded document.

    Raises:
        DecodeError: If the bytes are not valid JSON, fail validation, or
            carry a ``kind`` other than the one *document_type* declares.
    """
    if document_type is dict:
        try:
            document = json.loads(data)
        except ValueError as exc:
            raise DecodeError(f"invalid JSON document: {exc}") from exc
        if not isinstance(document, dict):
            raise DecodeError(f"expected a JSON object, got {type(document).__name__}")
        return document

    if isinstance(document_type, type) and issubclass(document_type, BaseModel):
        try:
            document = document_type.model_validate_json(data)
        except ValueError as exc:
            raise DecodeError(f"invalid {document_type.__name__} document: {exc}") from exc
        expected_kind = _declared_kind(document_type)
        actual_kind = getattr(document, "kind", expected_kind)
        if expected_kind and actual_kind != expected_kind:
            raise DecodeError(f"expected kind {expected_kind!r}, got {actual_kind!r}")
        return document

    try:
        return TypeAdapter(document_type).validate_json(data)
    except ValueError as exc:
        raise DecodeError(f"invalid {document_type} document: {exc}") from exc


def _declared_kind(document_type: type[BaseModel]) -> str:
    """Return the default ``kind`` a model declares, or an empty string."""
    field = document_type.model_fields.get("kind")
    if field is None or not isinstance(field.default, str):
        return ""
    return field.default
