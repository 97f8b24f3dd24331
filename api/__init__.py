"""API Package.

FastAPI server exposing the SoftOne sync operations.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
