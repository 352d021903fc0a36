"""
Database package - engine, sessions and the Redis client.

Exports:
    - Base: Declarative base for the models
    - engine: Async SQLAlchemy engine
    - get_db: Session dependency
    - async_session_factory: Session factory used by the background sweep
"""

from lms.db.session import Base, engine, get_db, async_session_factory
from lms.db.redis import get_redis_client, init_redis, close_redis

__all__ = [
    "Base",
    "engine",
    "get_db",
    "async_session_factory",
    "get_redis_client",
    "init_redis",
    "close_redis",
]
