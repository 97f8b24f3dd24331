"""API Services Package."""

from api.services.runtime import Runtime, build_runtime, get_runtime, shutdown_runtime

__all__ = [
    "Runtime",
    "build_runtime",
    "get_runtime",
    "shutdown_runtime",
]
