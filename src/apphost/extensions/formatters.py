"""Register custom content-type formatters."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..errors import ExtensionConfigError
from ..formatters import JSON_CONTENT_TYPE
from .base import Extension


class CustomFormattersExtension(Extension):
    """Add formatters for content types other than JSON.

    The JSON formatter is owned by the application and cannot be replaced.
    """

    name = "formatters"

    def execute(self, config: Mapping[str, Any] | None = None) -> list[str]:
        formatters = dict(config or {})

        if JSON_CONTENT_TYPE in formatters:
            raise ExtensionConfigError(self.name, f"{JSON_CONTENT_TYPE} formatter is reserved")

        for content_type, formatter in formatters.items():
            if not callable(formatter):
                raise ExtensionConfigError(self.name, f"Formatter for {content_type} is not callable")

        for content_type, formatter in formatters.items():
            self.server.add_formatter(content_type, formatter)

        return sorted(formatters)
