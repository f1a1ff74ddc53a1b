"""Repositories for the records the real-time core reads and writes.

Every method returns plain dict records (JSON-compatible once passed through
orjson) so results can be cached and published without further mapping.
Repositories only flush; committing is the caller's job so that events and
cache invalidation happen after the write is durable.

SQLAlchemy failures are translated into PersistenceError at this boundary.
"""

from __future__ import annotations

import functools
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from encore.core.errors import PersistenceError
from encore.persistence.tables import (
    BookingStatus,
    BookingTable,
    ChatTable,
    MessageTable,
    ModerationStatus,
    NotificationTable,
    UserTable,
    chat_participants,
)

P = ParamSpec("P")
R = TypeVar("R")

# Roles that never appear in performer search results
NON_PERFORMER_ROLES = ("customer", "administrator", "admin")


def translate_errors(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Re-raise SQLAlchemy failures as PersistenceError."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as e:
            raise PersistenceError(f"{fn.__qualname__} failed: {e}") from e

    return wrapper


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def user_summary(user: UserTable) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "profile_picture": user.profile_picture,
        "role": user.role,
    }


def user_record(user: UserTable) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "role": user.role,
        "city": user.city,
        "profile_picture": user.profile_picture,
        "description": user.description,
        "roles": list(user.roles or []),
        "price_range": user.price_range,
        "account_type": user.account_type,
        "details": user.details or {},
        "booked_dates": list(user.booked_dates or []),
        "moderation_status": user.moderation_status,
        "created_at": _iso(user.created_at),
    }


def message_record(message: MessageTable) -> dict[str, Any]:
    return {
        "id": message.id,
        "chatId": message.chat_id,
        "senderId": message.sender_id,
        "content": message.content,
        "createdAt": _iso(message.created_at),
        "sender": {
            "id": message.sender.id,
            "name": message.sender.name,
            "profile_picture": message.sender.profile_picture,
        },
    }


def notification_record(notification: NotificationTable) -> dict[str, Any]:
    return {
        "id": notification.id,
        "userId": notification.user_id,
        "type": notification.type,
        "message": notification.message,
        "data": notification.data or {},
        "isRead": notification.is_read,
        "createdAt": _iso(notification.created_at),
    }


def booking_record(booking: BookingTable) -> dict[str, Any]:
    return {
        "id": booking.id,
        "customerId": booking.customer_id,
        "performerId": booking.performer_id,
        "date": _iso(booking.date),
        "details": booking.details,
        "status": booking.status,
        "createdAt": _iso(booking.created_at),
        "updatedAt": _iso(booking.updated_at),
    }


class BaseRepository:
    def __init__(self, session: AsyncSession):
        self.session = session


class UserRepository(BaseRepository):
    """Read access to accounts plus the moderation write."""

    @translate_errors
    async def get(self, user_id: str) -> dict[str, Any] | None:
        user = await self.session.get(UserTable, user_id)
        return user_record(user) if user is not None else None

    @translate_errors
    async def exists(self, user_id: str) -> bool:
        result = await self.session.execute(select(UserTable.id).where(UserTable.id == user_id))
        return result.scalar_one_or_none() is not None

    @translate_errors
    async def list_by_role(
        self, role: str, page: int = 1, limit: int = 10, search: str = ""
    ) -> dict[str, Any]:
        """One page of accounts with a role, newest first.

        The search term matches name, email or phone case-insensitively.

        Returns:
            {"data": [...], "meta": {"total", "page", "limit", "totalPages"}}
        """
        conditions = [UserTable.role == role]
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    UserTable.name.ilike(pattern),
                    UserTable.email.ilike(pattern),
                    UserTable.phone.ilike(pattern),
                )
            )
        where = and_(*conditions)

        total = await self.session.scalar(select(func.count()).select_from(UserTable).where(where))
        result = await self.session.execute(
            select(UserTable)
            .where(where)
            .order_by(UserTable.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total = int(total or 0)
        return {
            "data": [user_record(user) for user in result.scalars()],
            "meta": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": math.ceil(total / limit) if limit else 0,
            },
        }

    @translate_errors
    async def search_performers(self, filters: dict[str, str]) -> list[dict[str, Any]]:
        """Approved, non-customer accounts matching the search filters.

        Supported filters: city (substring), category (one of the account's
        roles, "_all_" for any), accountType ("all" for any), date (excluded
        when already booked), priceMin/priceMax (overlap with price_range),
        and per-category detail filters subType, capacity, cuisine, budget,
        artistLevel, artistFormat.
        """
        stmt = select(UserTable).where(
            UserTable.moderation_status == ModerationStatus.APPROVED.value,
            UserTable.role.not_in(NON_PERFORMER_ROLES),
        )

        if city := filters.get("city"):
            stmt = stmt.where(UserTable.city.ilike(f"%{city}%"))

        category = filters.get("category")
        if category and category != "_all_":
            stmt = stmt.where(UserTable.roles.contains([category]))

        account_type = filters.get("accountType")
        if account_type and account_type != "all":
            stmt = stmt.where(UserTable.account_type == account_type)

        if date := filters.get("date"):
            stmt = stmt.where(~UserTable.booked_dates.contains([date]))

        if category:
            detail_fields = {
                "subType": "genre" if category == "Артисты" else "type",
                "capacity": "capacity",
                "cuisine": "specialization",
                "budget": "budget",
                "artistLevel": "skillLevel",
                "artistFormat": "performanceFormat",
            }
            for param, field_name in detail_fields.items():
                if value := filters.get(param):
                    stmt = stmt.where(UserTable.details[(category, field_name)].astext == value)

        result = await self.session.execute(stmt)
        performers = [user_record(user) for user in result.scalars()]

        price_min, price_max = filters.get("priceMin"), filters.get("priceMax")
        if price_min and price_max:
            low, high = float(price_min), float(price_max)
            performers = [p for p in performers if _price_overlaps(p["price_range"], low, high)]
        return performers

    @translate_errors
    async def set_moderation_status(self, user_id: str, status: str) -> dict[str, Any] | None:
        user = await self.session.get(UserTable, user_id)
        if user is None:
            return None
        user.moderation_status = status
        await self.session.flush()
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "moderation_status": user.moderation_status,
        }


def _price_overlaps(price_range: list[int] | None, low: float, high: float) -> bool:
    # Accounts without a usable range stay in the results
    if not price_range or len(price_range) < 2:
        return True
    return price_range[1] >= low and price_range[0] <= high


class ChatRepository(BaseRepository):
    """Conversations and their messages."""

    async def _load_chat(self, chat_id: str) -> ChatTable | None:
        result = await self.session.execute(
            select(ChatTable)
            .where(ChatTable.id == chat_id)
            .options(selectinload(ChatTable.participants))
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _chat_record(chat: ChatTable) -> dict[str, Any]:
        return {
            "id": chat.id,
            "createdAt": _iso(chat.created_at),
            "updatedAt": _iso(chat.updated_at),
            "participants": [user_summary(p) for p in chat.participants],
        }

    @translate_errors
    async def find_or_create(self, user_id: str, target_user_id: str) -> tuple[dict[str, Any], bool]:
        """Return the chat between two users, creating it if needed.

        Returns:
            (chat record, created)
        """
        mine = select(chat_participants.c.chat_id).where(chat_participants.c.user_id == user_id)
        theirs = select(chat_participants.c.chat_id).where(
            chat_participants.c.user_id == target_user_id
        )
        result = await self.session.execute(
            select(ChatTable)
            .where(ChatTable.id.in_(mine), ChatTable.id.in_(theirs))
            .options(selectinload(ChatTable.participants))
            .limit(1)
        )
        chat = result.scalar_one_or_none()
        if chat is not None:
            return self._chat_record(chat), False

        users = await self.session.execute(
            select(UserTable).where(UserTable.id.in_([user_id, target_user_id]))
        )
        chat = ChatTable(participants=list(users.scalars()))
        self.session.add(chat)
        await self.session.flush()
        await self.session.refresh(chat, attribute_names=["created_at", "updated_at"])
        return self._chat_record(chat), True

    @translate_errors
    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """The user's chats, most recently active first, with a last-message preview."""
        mine = select(chat_participants.c.chat_id).where(chat_participants.c.user_id == user_id)
        result = await self.session.execute(
            select(ChatTable)
            .where(ChatTable.id.in_(mine))
            .options(selectinload(ChatTable.participants))
            .order_by(ChatTable.updated_at.desc())
        )
        chats = list(result.scalars())

        records = []
        for chat in chats:
            last = await self.session.execute(
                select(MessageTable)
                .where(MessageTable.chat_id == chat.id)
                .order_by(MessageTable.created_at.desc())
                .limit(1)
            )
            last_message = last.scalar_one_or_none()
            other = next((p for p in chat.participants if p.id != user_id), None)
            records.append(
                {
                    "id": chat.id,
                    "name": other.name if other else "Unknown User",
                    "profile_picture": other.profile_picture if other else None,
                    "role": other.role if other else None,
                    "lastMessage": last_message.content if last_message else "No messages yet",
                    "lastMessageTime": _iso(
                        last_message.created_at if last_message else chat.created_at
                    ),
                    "participants": [user_summary(p) for p in chat.participants],
                }
            )
        return records

    @translate_errors
    async def participant_ids(self, chat_id: str) -> list[str] | None:
        """Participant ids of a chat, or None when the chat does not exist."""
        chat = await self._load_chat(chat_id)
        if chat is None:
            return None
        return [p.id for p in chat.participants]

    async def is_participant(self, chat_id: str, user_id: str) -> bool:
        participants = await self.participant_ids(chat_id)
        return participants is not None and user_id in participants

    @translate_errors
    async def list_messages(self, chat_id: str) -> list[dict[str, Any]]:
        """Messages of a chat, oldest first."""
        result = await self.session.execute(
            select(MessageTable)
            .where(MessageTable.chat_id == chat_id)
            .options(selectinload(MessageTable.sender))
            .order_by(MessageTable.created_at.asc())
        )
        return [message_record(m) for m in result.scalars()]

    @translate_errors
    async def create_message(self, chat_id: str, sender_id: str, content: str) -> dict[str, Any]:
        """Insert a message and bump the chat's updated_at."""
        message = MessageTable(chat_id=chat_id, sender_id=sender_id, content=content)
        self.session.add(message)
        await self.session.flush()
        await self.session.refresh(message, attribute_names=["created_at", "sender"])

        await self.session.execute(
            update(ChatTable).where(ChatTable.id == chat_id).values(updated_at=func.now())
        )
        return message_record(message)


class NotificationRepository(BaseRepository):
    """Durable notification history."""

    @translate_errors
    async def create(
        self, user_id: str, type: str, message: str, data: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        notification = NotificationTable(
            user_id=user_id, type=type, message=message, data=data or {}, is_read=False
        )
        self.session.add(notification)
        await self.session.flush()
        await self.session.refresh(notification, attribute_names=["created_at"])
        return notification_record(notification)

    @translate_errors
    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        result = await self.session.execute(
            select(NotificationTable)
            .where(NotificationTable.user_id == user_id)
            .order_by(NotificationTable.created_at.desc())
        )
        return [notification_record(n) for n in result.scalars()]

    @translate_errors
    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """Mark one of the user's notifications read. Returns False if not found."""
        result = await self.session.execute(
            update(NotificationTable)
            .where(NotificationTable.id == notification_id, NotificationTable.user_id == user_id)
            .values(is_read=True)
        )
        return bool(result.rowcount)

    @translate_errors
    async def mark_all_read(self, user_id: str) -> int:
        result = await self.session.execute(
            update(NotificationTable)
            .where(NotificationTable.user_id == user_id, NotificationTable.is_read.is_(False))
            .values(is_read=True)
        )
        return int(result.rowcount or 0)


class BookingRepository(BaseRepository):
    """Booking requests between customers and performers."""

    @translate_errors
    async def get(self, booking_id: str) -> dict[str, Any] | None:
        booking = await self.session.get(BookingTable, booking_id)
        return booking_record(booking) if booking is not None else None

    @translate_errors
    async def find_confirmed(self, performer_id: str, date: datetime) -> dict[str, Any] | None:
        result = await self.session.execute(
            select(BookingTable)
            .where(
                BookingTable.performer_id == performer_id,
                BookingTable.date == date,
                BookingTable.status == BookingStatus.CONFIRMED.value,
            )
            .limit(1)
        )
        booking = result.scalar_one_or_none()
        return booking_record(booking) if booking is not None else None

    @translate_errors
    async def create(
        self,
        customer_id: str,
        performer_id: str,
        date: datetime,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        booking = BookingTable(
            customer_id=customer_id,
            performer_id=performer_id,
            date=date,
            details=details,
            status=BookingStatus.PENDING.value,
        )
        self.session.add(booking)
        await self.session.flush()
        await self.session.refresh(booking, attribute_names=["created_at", "updated_at"])
        return booking_record(booking)

    @translate_errors
    async def update_status(self, booking_id: str, status: str) -> dict[str, Any] | None:
        booking = await self.session.get(BookingTable, booking_id)
        if booking is None:
            return None
        booking.status = status
        await self.session.flush()
        await self.session.refresh(booking, attribute_names=["updated_at"])
        return booking_record(booking)
