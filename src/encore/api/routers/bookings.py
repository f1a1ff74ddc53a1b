"""Booking requests between customers and performers.

Each state change writes the booking and a notification row in one
transaction, commits, and then announces the notification on the bus.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from encore.api.deps import NotificationsDep, SessionDep, UserDep
from encore.api.errors import ConflictError, ForbiddenError, NotFoundError
from encore.persistence.repositories import BookingRepository, UserRepository
from encore.persistence.tables import BookingStatus
from encore.security.auth import CurrentUser
from encore.services.notifications import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


class BookingCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    performer_id: str = Field(alias="performerId", min_length=1)
    date: datetime
    details: dict[str, Any] | None = None


@router.post("", status_code=201)
async def create_booking(
    body: BookingCreate,
    user: UserDep,
    session: SessionDep,
    notifications: NotificationsDep,
) -> dict[str, Any]:
    """Request a booking; the performer is notified."""
    users = UserRepository(session)
    bookings = BookingRepository(session)

    if not await users.exists(body.performer_id):
        raise NotFoundError("Performer", body.performer_id)
    if await bookings.find_confirmed(body.performer_id, body.date) is not None:
        raise ConflictError("Performer is not available on this date")

    customer = await users.get(user.id)
    customer_name = customer["name"] if customer else "a customer"
    booking = await bookings.create(user.id, body.performer_id, body.date, body.details)

    message = f"New booking request from {customer_name}"
    await notifications.record(
        session, body.performer_id, "BOOKING_REQUEST", message, {"bookingId": booking["id"]}
    )
    await session.commit()
    logger.info(f"Booking {booking['id']} requested by {user.id} for {body.performer_id}")

    await notifications.announce(
        body.performer_id,
        "BOOKING_REQUEST",
        message,
        {"bookingId": booking["id"], "date": booking["date"]},
    )
    return booking


async def _respond(
    booking_id: str,
    status: BookingStatus,
    notification_type: str,
    verb: str,
    user: CurrentUser,
    session: AsyncSession,
    notifications: NotificationService,
) -> dict[str, Any]:
    bookings = BookingRepository(session)
    booking = await bookings.get(booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    if booking["performerId"] != user.id:
        raise ForbiddenError("Only the booked performer can respond to this request")

    updated = await bookings.update_status(booking_id, status.value)
    assert updated is not None
    performer = await UserRepository(session).get(user.id)
    performer_name = performer["name"] if performer else "The performer"

    message = f"{performer_name} {verb} your booking request"
    await notifications.record(
        session,
        updated["customerId"],
        "BOOKING_UPDATE",
        message,
        {"bookingId": booking_id, "status": status.value},
    )
    await session.commit()

    await notifications.announce(
        updated["customerId"], notification_type, message, {"bookingId": booking_id}
    )
    return updated


@router.patch("/{booking_id}/accept")
async def accept_booking(
    booking_id: str,
    user: UserDep,
    session: SessionDep,
    notifications: NotificationsDep,
) -> dict[str, Any]:
    return await _respond(
        booking_id,
        BookingStatus.CONFIRMED,
        "BOOKING_ACCEPTED",
        "accepted",
        user,
        session,
        notifications,
    )


@router.patch("/{booking_id}/reject")
async def reject_booking(
    booking_id: str,
    user: UserDep,
    session: SessionDep,
    notifications: NotificationsDep,
) -> dict[str, Any]:
    return await _respond(
        booking_id,
        BookingStatus.REJECTED,
        "BOOKING_REJECTED",
        "declined",
        user,
        session,
        notifications,
    )
