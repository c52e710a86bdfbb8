"""Extension system for the application host."""

from .base import Extension, merge_defaults
from .cors import CorsConfig, CorsExtension, CorsOptions, build_cors_options
from .formatters import CustomFormattersExtension
from .health import HealthStatusExtension

__all__ = [
    "Extension",
    "merge_defaults",
    "CorsConfig",
    "CorsExtension",
    "CorsOptions",
    "build_cors_options",
    "CustomFormattersExtension",
    "HealthStatusExtension",
]
