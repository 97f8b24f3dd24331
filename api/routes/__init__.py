"""API Routes Package."""

from api.routes import connection, health, imports, orders

__all__ = [
    "connection",
    "health",
    "imports",
    "orders",
]
