"""Room availability search for hotel customers."""

from datetime import date, timedelta
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings
from voicedesk.database.models import (
    Reservation,
    ReservationStatus,
    RoomAvailability,
    RoomType,
)

logger = structlog.get_logger()

# Reservations holding inventory
BLOCKING_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)


class AvailabilityQuery(BaseModel):
    """Arguments of ``check_availability``. Accepts camelCase or snake_case keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    check_in: date = Field(..., alias="checkIn")
    check_out: date = Field(..., alias="checkOut")
    guests: int = Field(1, ge=1)
    room_type: Optional[str] = Field(None, alias="roomType")

    @model_validator(mode="after")
    def check_dates(self) -> "AvailabilityQuery":
        if self.check_out <= self.check_in:
            raise ValueError("checkOut must be after checkIn")
        return self

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


class AvailabilityService:
    """Answer availability questions against a tenant's room inventory."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.logger = logger.bind(service="availability")

    async def _candidate_rooms(
        self,
        organization_id: UUID,
        customer_id: Optional[UUID],
        guests: int,
        room_type: Optional[str],
    ) -> list[RoomType]:
        query = select(RoomType).where(
            RoomType.organization_id == organization_id,
            RoomType.is_active.is_(True),
            RoomType.max_guests >= guests,
        )
        if customer_id is not None:
            query = query.where(RoomType.customer_id == customer_id)
        if room_type:
            query = query.where(func.lower(RoomType.name).contains(room_type.lower()))
        result = await self.db.execute(query.order_by(RoomType.price_per_night, RoomType.name))
        return list(result.scalars().all())

    async def _free_count(self, room: RoomType, check_in: date, check_out: date) -> int:
        """Rooms of this type free for every night in ``[check_in, check_out)``."""
        blocked = await self.db.execute(
            select(func.count(RoomAvailability.id)).where(
                RoomAvailability.room_type_id == room.id,
                RoomAvailability.is_blocked.is_(True),
                RoomAvailability.date >= check_in,
                RoomAvailability.date < check_out,
            )
        )
        if blocked.scalar_one():
            return 0

        booked = await self.db.execute(
            select(func.count(Reservation.id)).where(
                Reservation.room_type_id == room.id,
                Reservation.status.in_(BLOCKING_STATUSES),
                Reservation.check_in < check_out,
                Reservation.check_out > check_in,
            )
        )
        return max(room.total_rooms - booked.scalar_one(), 0)

    async def available_rooms(
        self,
        rooms: list[RoomType],
        check_in: date,
        check_out: date,
    ) -> list[dict[str, Any]]:
        available = []
        for room in rooms:
            count = await self._free_count(room, check_in, check_out)
            if count > 0:
                available.append(
                    {
                        "name": room.name,
                        "price": room.price_per_night,
                        "availableCount": count,
                        "description": room.description,
                    }
                )
        return available

    async def alternatives(
        self,
        rooms: list[RoomType],
        query: AvailabilityQuery,
        today: date,
    ) -> list[dict[str, Any]]:
        """Same-length stays shifted by up to N days, nearest first, never in the past."""
        probe = self.settings.availability_probe_days
        limit = self.settings.availability_max_alternatives
        stay = timedelta(days=query.nights)

        offsets = sorted(
            (offset for offset in range(-probe, probe + 1) if offset != 0),
            key=lambda offset: (abs(offset), offset),
        )

        found: list[dict[str, Any]] = []
        for offset in offsets:
            if len(found) >= limit:
                break
            start = query.check_in + timedelta(days=offset)
            if start < today:
                continue
            end = start + stay
            offers = await self.available_rooms(rooms, start, end)
            if offers:
                found.append({"checkIn": start.isoformat(), "checkOut": end.isoformat(), "rooms": offers})
        return found

    async def check(
        self,
        organization_id: UUID,
        query: AvailabilityQuery,
        customer_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> dict[str, Any]:
        today = today or date.today()
        rooms = await self._candidate_rooms(organization_id, customer_id, query.guests, query.room_type)

        if not rooms:
            return {
                "available": False,
                "message": "Sorry, we have no rooms matching that guest count or room type.",
                "alternatives": [],
            }

        offers = await self.available_rooms(rooms, query.check_in, query.check_out)
        if offers:
            lowest = min(offer["price"] for offer in offers)
            self.logger.info(
                "Availability found",
                organization_id=str(organization_id),
                check_in=query.check_in.isoformat(),
                room_types=len(offers),
            )
            return {
                "available": True,
                "rooms": offers,
                "lowestPrice": lowest,
                "message": (
                    f"Yes, we have {len(offers)} room type(s) available from "
                    f"{query.check_in.isoformat()}. Prices start at {lowest:g} per night."
                ),
            }

        alternatives = await self.alternatives(rooms, query, today)
        self.logger.info(
            "No availability",
            organization_id=str(organization_id),
            check_in=query.check_in.isoformat(),
            alternatives=len(alternatives),
        )
        message = (
            f"Unfortunately we are fully booked from {query.check_in.isoformat()} "
            f"to {query.check_out.isoformat()}."
        )
        if alternatives:
            message += " Nearby dates are available."
        return {"available": False, "message": message, "alternatives": alternatives}
