"""Settings and construction options.

Settings describe the runtime environment (mode, host, port). They are set
once during bootstrap and read many times afterwards.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .formatters import Formatter

ENV_DEV = "DEV"
ENV_PROD = "PROD"
ENV_TEST = "TEST"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


class Settings(BaseModel):
    """Boot settings for the application.

    Extra keys are kept so bootstrap code can carry its own values along.
    """

    model_config = ConfigDict(extra="allow")

    env: str = ENV_DEV
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls, **overrides: Any) -> Settings:
        """Load settings from APPHOST_* environment variables.

        Keyword overrides that are not None take precedence.
        """
        values: dict[str, Any] = {}
        if env_value := os.getenv("APPHOST_ENV"):
            values["env"] = env_value.upper()
        if host := os.getenv("APPHOST_HOST"):
            values["host"] = host
        if port := os.getenv("APPHOST_PORT"):
            values["port"] = int(port)

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


class ApplicationOptions(BaseModel):
    """Options used to construct the application singleton."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = "apphost"
    formatters: dict[str, Formatter] = Field(default_factory=dict)
