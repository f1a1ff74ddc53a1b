"""HTTP and WebSocket routers for the Encore API."""

from encore.api.routers import (
    admin,
    bookings,
    chat,
    health,
    metrics,
    notifications,
    realtime,
    search,
    users,
)

__all__ = [
    "admin",
    "bookings",
    "chat",
    "health",
    "metrics",
    "notifications",
    "realtime",
    "search",
    "users",
]
