"""Chat message write path.

Messages arrive over HTTP (POST /api/chats/{id}/messages) or over the
WebSocket ("send_message"). Both paths persist first, commit, and only then
publish a MESSAGE envelope; neither emits to sockets directly. The gateway's
bus subscriber does the delivery, so both paths fan out the same way.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from encore.core.errors import ChatNotFoundError, NotParticipantError
from encore.events.bus import EventBus
from encore.events.publisher import publish_message
from encore.persistence.db import session_context
from encore.persistence.repositories import ChatRepository

logger = logging.getLogger(__name__)


class ChatService:
    """Persists chat messages and announces them on the bus."""

    def __init__(self, session: AsyncSession, bus: EventBus | None = None):
        self.session = session
        self.bus = bus
        self.chats = ChatRepository(session)

    async def persist_message(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        receiver_id: str | None = None,
    ) -> tuple[dict[str, Any], str | None]:
        """Store and commit a message.

        The receiver is the suggested receiver_id when it is another
        participant of the chat, otherwise the first participant who is not
        the sender.

        Returns:
            (message record, receiver id or None for a single-member chat)

        Raises:
            ChatNotFoundError: If the chat does not exist
            NotParticipantError: If the sender is not in the chat
        """
        participants = await self.chats.participant_ids(chat_id)
        if participants is None:
            raise ChatNotFoundError(chat_id)
        if sender_id not in participants:
            raise NotParticipantError(f"{sender_id} is not in chat {chat_id}")

        others = [p for p in participants if p != sender_id]
        if receiver_id not in others:
            receiver_id = others[0] if others else None

        record = await self.chats.create_message(chat_id, sender_id, content)
        await self.session.commit()
        return record, receiver_id

    async def send_message(self, chat_id: str, sender_id: str, content: str) -> dict[str, Any]:
        """Persist a message, then publish it for delivery."""
        record, receiver_id = await self.persist_message(chat_id, sender_id, content)
        if self.bus is not None and receiver_id is not None:
            await publish_message(self.bus, record, chat_id=chat_id, receiver_id=receiver_id)
        return record


class SessionMessageStore:
    """Message store for the gateway, opening one session per operation."""

    def __init__(
        self,
        session_scope: Callable[[], AbstractAsyncContextManager[AsyncSession]] = session_context,
    ):
        self.session_scope = session_scope

    async def persist_message(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        receiver_id: str | None = None,
    ) -> tuple[dict[str, Any], str | None]:
        async with self.session_scope() as session:
            return await ChatService(session).persist_message(
                chat_id, sender_id, content, receiver_id
            )

    async def is_participant(self, chat_id: str, user_id: str) -> bool:
        async with self.session_scope() as session:
            return await ChatRepository(session).is_participant(chat_id, user_id)
