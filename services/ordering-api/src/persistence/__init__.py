"""Persistence primitives for the ordering API."""

from persistence.database import (
    DB_URL_ENV_VAR,
    SessionLocal,
    create_ordering_engine,
    get_database_url,
    get_session,
    init_db,
)
from persistence.models import Base, ClientRequest, Order, OrderItem

__all__ = [
    "Base",
    "ClientRequest",
    "DB_URL_ENV_VAR",
    "Order",
    "OrderItem",
    "SessionLocal",
    "create_ordering_engine",
    "get_database_url",
    "get_session",
    "init_db",
]
