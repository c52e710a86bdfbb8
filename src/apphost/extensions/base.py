"""Base class for application extensions.

Extensions extend the server's request pipeline without modifying core
application code. Each activation builds a fresh extension bound to the
application and its server, runs ``execute`` once, then discards it.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from ..errors import ExtensionConfigError

if TYPE_CHECKING:
    from ..application import Application
    from ..server import HttpServer

logger = logging.getLogger(__name__)


def merge_defaults(config: Mapping[str, Any] | None, defaults: Mapping[str, Any]) -> dict[str, Any]:
    """Fill in missing config values from defaults, recursively.

    Caller values win at every nesting level. Nested mappings are merged,
    lists and other values are taken as a whole. Neither input is mutated.

    Args:
        config: Caller-supplied configuration (may be None)
        defaults: Default values

    Returns:
        New merged dict
    """
    merged: dict[str, Any] = copy.deepcopy(dict(config or {}))

    for key, default in defaults.items():
        if key not in merged or merged[key] is None:
            merged[key] = copy.deepcopy(default)
        elif isinstance(merged[key], Mapping) and isinstance(default, Mapping):
            merged[key] = merge_defaults(merged[key], default)

    return merged


class Extension(ABC):
    """Base class for all extensions.

    Extensions hold a back-reference to the application and to its server;
    they never own the server, they only attach to its pipeline.
    """

    name: str = "base_extension"

    def __init__(self, app: Application) -> None:
        self.app = app
        self.server: HttpServer = app.get_server()

    @abstractmethod
    def execute(self, config: Mapping[str, Any] | None = None) -> Any:
        """Apply the extension to the server.

        Calling it again with another config adds another layer; it does not
        replace what an earlier call attached.

        Args:
            config: Extension-specific configuration

        Returns:
            Value recorded in the application's extension registry
        """

    def parse_config(self, model: type[BaseModel], config: Mapping[str, Any]) -> Any:
        """Validate merged config against a pydantic model.

        Raises:
            ExtensionConfigError: If validation fails
        """
        try:
            return model.model_validate(config)
        except ValidationError as e:
            logger.error(f"Invalid configuration for extension {self.name}: {e}")
            raise ExtensionConfigError(self.name, str(e)) from e
