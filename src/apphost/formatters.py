"""Response body formatters, keyed by content type.

A formatter receives the request, the mutable response headers and the body
and returns the serialized text. It is responsible for any header that
depends on the serialized output, such as Content-Length.
"""

from __future__ import annotations

import base64
import dataclasses
import json
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel
from starlette.datastructures import MutableHeaders
from starlette.requests import Request

from .errors import is_app_error, unwrap_app_error

JSON_CONTENT_TYPE = "application/json"

Formatter = Callable[[Request | None, MutableHeaders, Any], str | bytes]


def _to_jsonable(value: Any) -> Any:
    """``default`` hook for json.dumps."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, BaseException):
        return {"message": str(value)}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def json_formatter(request: Request | None, headers: MutableHeaders, body: Any) -> str:
    """Serialize a body as JSON and set an exact Content-Length.

    Application errors are replaced by their underlying cause, raw bytes are
    sent as base64 text.
    """
    if is_app_error(body):
        body = unwrap_app_error(body)
    elif isinstance(body, (bytes, bytearray, memoryview)):
        body = base64.b64encode(bytes(body)).decode("ascii")

    data = json.dumps(body, separators=(",", ":"), ensure_ascii=False, default=_to_jsonable)
    headers["Content-Length"] = str(len(data.encode("utf-8")))

    return data


def text_formatter(request: Request | None, headers: MutableHeaders, body: Any) -> str:
    """Plain text formatter."""
    if isinstance(body, (bytes, bytearray, memoryview)):
        data = bytes(body).decode("utf-8", errors="replace")
    else:
        data = "" if body is None else str(body)
    headers["Content-Length"] = str(len(data.encode("utf-8")))
    return data


def build_formatters(formatters: dict[str, Formatter] | None = None) -> dict[str, Formatter]:
    """Copy caller formatters and install the mandatory JSON override."""
    result: dict[str, Formatter] = dict(formatters or {})
    result.setdefault("text/plain", text_formatter)
    result[JSON_CONTENT_TYPE] = json_formatter
    return result
