"""Chat HTTP endpoints.

Sending over HTTP goes through the same persist -> commit -> publish path as
the WebSocket "send_message" event.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response
from pydantic import BaseModel, ConfigDict, Field

from encore.api.deps import BusDep, SessionDep, UserDep
from encore.api.errors import ForbiddenError, NotFoundError
from encore.core.errors import ChatNotFoundError, NotParticipantError
from encore.persistence.repositories import ChatRepository
from encore.services.chat import ChatService

router = APIRouter(prefix="/api/chats", tags=["chats"])


class ChatCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_user_id: str = Field(alias="targetUserId", min_length=1)


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)


@router.get("")
async def list_chats(user: UserDep, session: SessionDep) -> list[dict[str, Any]]:
    """The caller's chats, most recently active first."""
    return await ChatRepository(session).list_for_user(user.id)


@router.post("")
async def create_or_get_chat(
    body: ChatCreate, user: UserDep, session: SessionDep, response: Response
) -> dict[str, Any]:
    """Return the chat with the target user, creating it (201) if needed."""
    chat, created = await ChatRepository(session).find_or_create(user.id, body.target_user_id)
    if created:
        await session.commit()
        response.status_code = 201
    return chat


@router.get("/{chat_id}/messages")
async def list_messages(chat_id: str, user: UserDep, session: SessionDep) -> list[dict[str, Any]]:
    """Messages of a chat, oldest first. Participants and admins only."""
    chats = ChatRepository(session)
    if not user.is_admin and not await chats.is_participant(chat_id, user.id):
        raise ForbiddenError()
    return await chats.list_messages(chat_id)


@router.post("/{chat_id}/messages", status_code=201)
async def send_message(
    chat_id: str, body: MessageCreate, user: UserDep, session: SessionDep, bus: BusDep
) -> dict[str, Any]:
    try:
        return await ChatService(session, bus).send_message(chat_id, user.id, body.content)
    except ChatNotFoundError as e:
        raise NotFoundError("Chat", chat_id) from e
    except NotParticipantError as e:
        raise ForbiddenError() from e
