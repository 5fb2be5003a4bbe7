"""
Dependency injection for the API service.
Provides the database manager, the optional Redis connection and the
notification dispatcher to route handlers.
"""
from __future__ import annotations

from typing import Optional

from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from api.notifications import NotificationDispatcher

# Module-level singletons, initialized at startup
_db: DatabaseManager | None = None
_redis: RedisManager | None = None
_notifier: NotificationDispatcher | None = None


def init_dependencies(
    db: DatabaseManager,
    redis: Optional[RedisManager] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _db, _redis, _notifier
    _db = db
    _redis = redis
    _notifier = notifier or NotificationDispatcher(db, redis)


def get_db() -> DatabaseManager:
    """FastAPI dependency: returns the shared DatabaseManager."""
    if _db is None:
        raise RuntimeError("DatabaseManager not initialized — call init_dependencies first")
    return _db


def get_redis() -> Optional[RedisManager]:
    """FastAPI dependency: returns the shared RedisManager, or None when Redis is disabled."""
    return _redis


def get_notifier() -> NotificationDispatcher:
    """FastAPI dependency: returns the notification dispatcher."""
    if _notifier is None:
        raise RuntimeError("NotificationDispatcher not initialized — call init_dependencies first")
    return _notifier
