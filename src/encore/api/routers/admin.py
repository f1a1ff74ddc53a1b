"""Administrator endpoints that mutate cached or notified state."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from encore.api.deps import AdminDep, InvalidatorDep, NotificationsDep, SessionDep
from encore.api.errors import BadRequestError, NotFoundError
from encore.api.routers.search import SEARCH_RESOURCE
from encore.api.routers.users import LISTING_RESOURCE
from encore.persistence.repositories import BookingRepository, UserRepository
from encore.persistence.tables import BookingStatus, ModerationStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class ModerationUpdate(BaseModel):
    moderation_status: str


class BookingStatusUpdate(BaseModel):
    status: str


@router.patch("/users/{user_id}/moderation")
async def update_moderation_status(
    user_id: str,
    body: ModerationUpdate,
    admin: AdminDep,
    session: SessionDep,
    invalidator: InvalidatorDep,
) -> dict[str, Any]:
    """Approve, reject or re-queue a profile.

    Every cached performer listing page and search result is dropped after
    the change commits, so the next read reflects the new visibility.
    """
    try:
        status = ModerationStatus(body.moderation_status)
    except ValueError as e:
        raise BadRequestError("Invalid moderation status") from e

    updated = await UserRepository(session).set_moderation_status(user_id, status.value)
    if updated is None:
        raise NotFoundError("User", user_id)
    await session.commit()

    await invalidator.invalidate_listing(LISTING_RESOURCE, "performers")
    await invalidator.invalidate_resource(SEARCH_RESOURCE)

    logger.info(f"Admin {admin.id} set moderation of {user_id} to {status.value}")
    return {"message": "Moderation status updated successfully", "data": updated}


@router.patch("/bookings/{booking_id}/status")
async def update_booking_status(
    booking_id: str,
    body: BookingStatusUpdate,
    admin: AdminDep,
    session: SessionDep,
    notifications: NotificationsDep,
) -> dict[str, Any]:
    """Force a booking into any status; both parties are notified."""
    try:
        status = BookingStatus(body.status)
    except ValueError as e:
        raise BadRequestError("Invalid status") from e

    updated = await BookingRepository(session).update_status(booking_id, status.value)
    if updated is None:
        raise NotFoundError("Booking", booking_id)

    message = f"Booking status changed by administrator to {status.value}"
    data = {"bookingId": booking_id, "status": status.value}
    recipients = (updated["customerId"], updated["performerId"])
    for recipient in recipients:
        await notifications.record(session, recipient, "BOOKING_UPDATE", message, data)
    await session.commit()

    for recipient in recipients:
        await notifications.announce(recipient, "BOOKING_UPDATE", message, data)

    logger.info(f"Admin {admin.id} set booking {booking_id} to {status.value}")
    return updated
