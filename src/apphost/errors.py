"""Error types for the application host.

Two families live here:

- ``AppError``: application-level errors that routes raise and that the JSON
  formatter renders. They carry ``kind = "AppError"`` and an
  ``underlying_cause``; only the cause is ever serialized to clients.
- Core failures (``BindError``, ``ExtensionConfigError``,
  ``ServerStateError``) raised by the lifecycle and extension machinery.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

APP_ERROR_KIND = "AppError"


class AppError(Exception):
    """Application error wrapper.

    Example:
        raise AppError("Order not found", status_code=404, code="not_found")
    """

    kind = APP_ERROR_KIND

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str | None = None,
        cause: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.cause = cause

    @property
    def underlying_cause(self) -> Any:
        """The value clients see in place of this wrapper."""
        if self.cause is not None:
            return self.cause
        return self.to_dict()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message}
        if self.code:
            data["code"] = self.code
        return data


def is_app_error(body: Any) -> bool:
    """Check whether a response body is an application error payload.

    Works by capability rather than type identity: any object (or mapping)
    tagged with ``kind == "AppError"`` that exposes an underlying cause
    qualifies.
    """
    if isinstance(body, Mapping):
        return body.get("kind") == APP_ERROR_KIND and "underlyingCause" in body
    return getattr(body, "kind", None) == APP_ERROR_KIND and hasattr(body, "underlying_cause")


def unwrap_app_error(body: Any) -> Any:
    """Return the underlying cause of an application error payload."""
    if isinstance(body, Mapping):
        return body["underlyingCause"]
    return body.underlying_cause


class BindError(OSError):
    """The server could not bind its listening socket."""

    def __init__(self, host: str, port: int, reason: OSError) -> None:
        message = f"Cannot bind {host}:{port}: {reason.strerror or reason}"
        if reason.errno is None:
            super().__init__(message)
        else:
            super().__init__(reason.errno, message)
        self.host = host
        self.port = port
        self.reason = reason


class ExtensionConfigError(ValueError):
    """An extension received configuration it cannot apply."""

    def __init__(self, extension: str, message: str) -> None:
        super().__init__(f"{extension}: {message}")
        self.extension = extension


class ServerStateError(RuntimeError):
    """Operation not allowed in the server's current state."""

    pass
