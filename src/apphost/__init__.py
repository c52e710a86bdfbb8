"""apphost - singleton application host for Starlette services."""

from .application import Application, get_application, reset_application
from .config import ApplicationOptions, Settings
from .errors import AppError, BindError, ExtensionConfigError, ServerStateError
from .exit_hook import ExitHook, exit_hook
from .extensions import Extension
from .server import HttpServer, ServerAddress
from .shutdown import SHUTDOWN_EVENT, ShutdownBarrier, graceful_shutdown

__all__ = [
    "Application",
    "get_application",
    "reset_application",
    "ApplicationOptions",
    "Settings",
    "AppError",
    "BindError",
    "ExtensionConfigError",
    "ServerStateError",
    "ExitHook",
    "exit_hook",
    "Extension",
    "HttpServer",
    "ServerAddress",
    "SHUTDOWN_EVENT",
    "ShutdownBarrier",
    "graceful_shutdown",
]
