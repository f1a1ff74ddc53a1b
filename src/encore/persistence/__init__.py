"""PostgreSQL persistence for the records the real-time core touches."""

from encore.persistence.db import (
    close_db,
    get_session,
    get_session_factory,
    health_check,
    init_db,
    session_context,
)
from encore.persistence.repositories import (
    BookingRepository,
    ChatRepository,
    NotificationRepository,
    UserRepository,
)

__all__ = [
    "get_session",
    "get_session_factory",
    "session_context",
    "init_db",
    "close_db",
    "health_check",
    "UserRepository",
    "ChatRepository",
    "NotificationRepository",
    "BookingRepository",
]
