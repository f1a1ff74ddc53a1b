"""Notification history for the current user."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from encore.api.deps import SessionDep, UserDep
from encore.api.errors import NotFoundError
from encore.persistence.repositories import NotificationRepository

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(user: UserDep, session: SessionDep) -> list[dict[str, Any]]:
    return await NotificationRepository(session).list_for_user(user.id)


# Declared before "/{notification_id}/read" so "read-all" is not taken as an id
@router.patch("/read-all")
async def mark_all_read(user: UserDep, session: SessionDep) -> dict[str, Any]:
    updated = await NotificationRepository(session).mark_all_read(user.id)
    await session.commit()
    return {"success": True, "updated": updated}


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, user: UserDep, session: SessionDep) -> dict[str, Any]:
    if not await NotificationRepository(session).mark_read(notification_id, user.id):
        raise NotFoundError("Notification", notification_id)
    await session.commit()
    return {"success": True}
