"""Middleware building blocks for the server pipeline."""

from .cors import ActualCORSMiddleware, CorsPair, PreflightCORSMiddleware, cors_middleware

__all__ = [
    "ActualCORSMiddleware",
    "CorsPair",
    "PreflightCORSMiddleware",
    "cors_middleware",
]
