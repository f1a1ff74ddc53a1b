"""Write paths that persist, commit and then publish."""

from encore.services.chat import ChatService, SessionMessageStore
from encore.services.notifications import NotificationService

__all__ = ["ChatService", "SessionMessageStore", "NotificationService"]
