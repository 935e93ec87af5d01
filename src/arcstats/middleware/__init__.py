# src/arcstats/middleware/__init__.py

"""Middleware components for arcstats API."""

from .logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
