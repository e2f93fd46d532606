"""Tools executed locally during a live call.

Every lookup is scoped to the customer who owns the call and to that
customer's organization. Short confirmation numbers are the trailing
characters of a record id.
"""

from datetime import date, timezone
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.config import Settings
from voicedesk.database.models import (
    Call,
    CustomerType,
    Order,
    OrderStatus,
    Reservation,
    ReservationStatus,
    RoomType,
    User,
    utcnow,
)
from voicedesk.tools.availability import AvailabilityQuery, AvailabilityService

logger = structlog.get_logger()

CONFIRMATION_LENGTH = 8
MIN_SUFFIX_LENGTH = 4


def confirmation_number(record_id: UUID) -> str:
    return str(record_id).replace("-", "")[-CONFIRMATION_LENGTH:].upper()


def _missing(arguments: dict[str, Any], *fields: str) -> list[str]:
    return [field for field in fields if arguments.get(field) in (None, "", [])]


def _error(message: str) -> dict[str, Any]:
    return {"error": True, "message": message}


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return str(value)


def _parse_date(value: Any) -> Optional[date]:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


class BuiltinTools:
    """Run one built-in tool on behalf of ``call``."""

    def __init__(self, db: AsyncSession, settings: Settings, call: Call):
        self.db = db
        self.settings = settings
        self.call = call
        self.logger = logger.bind(service="builtin_tools", call_id=str(call.id))
        self.handlers = {
            "check_availability": self.check_availability,
            "create_order": self.create_order,
            "check_order_status": self.check_order_status,
            "create_reservation": self.create_reservation,
            "check_reservation_status": self.check_reservation_status,
            "get_call_info": self.get_call_info,
        }

    async def execute(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        handler = self.handlers.get(name)
        if handler is None:
            return _error(f"Tool '{name}' has no local implementation")
        self.logger.info("Executing built-in tool", tool=name)
        return await handler(arguments)

    async def _customer(self) -> Optional[User]:
        """The call's owning customer, if it belongs to the call's organization."""
        if not self.call.initiated_by_id:
            return None
        user = await self.db.get(User, self.call.initiated_by_id)
        if user is None or user.organization_id != self.call.organization_id:
            return None
        return user

    async def _find_scoped(self, model, customer: User, reference: str):
        """Resolve a full id or a confirmation-number suffix within the customer's records."""
        reference = reference.strip().lower()
        query = (
            select(model)
            .join(User, User.id == model.customer_id)
            .where(
                model.customer_id == customer.id,
                User.organization_id == customer.organization_id,
            )
        )
        try:
            record_id = UUID(reference)
        except ValueError:
            record_id = None

        if record_id is not None:
            result = await self.db.execute(query.where(model.id == record_id))
            return result.scalar_one_or_none()

        suffix = reference.replace("-", "")
        if len(suffix) < MIN_SUFFIX_LENGTH:
            return None

        result = await self.db.execute(query.order_by(model.created_at.desc()))
        for record in result.scalars():
            if str(record.id).replace("-", "").lower().endswith(suffix):
                return record
        return None

    # =====================
    # Hotel
    # =====================

    async def check_availability(self, arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            query = AvailabilityQuery.model_validate(arguments)
        except PydanticValidationError:
            return _error("Please provide valid check-in and check-out dates in YYYY-MM-DD format.")

        customer = await self._customer()
        customer_id = customer.id if customer and customer.customer_type == CustomerType.HOTEL else None
        return await AvailabilityService(self.db, self.settings).check(
            self.call.organization_id, query, customer_id=customer_id
        )

    async def create_reservation(self, arguments: dict[str, Any]) -> dict[str, Any]:
        missing = _missing(arguments, "guest_name", "check_in", "check_out")
        if missing:
            return _error(f"Missing required fields: {', '.join(missing)}")

        check_in = _parse_date(arguments["check_in"])
        check_out = _parse_date(arguments["check_out"])
        if check_in is None or check_out is None:
            return _error("Dates must be in YYYY-MM-DD format")
        if check_out <= check_in:
            return _error("Check-out must be after check-in")

        customer = await self._customer()
        if customer is None:
            return _error("No customer is associated with this call")

        room_type_name = _text(arguments.get("room_type"))
        room_type_id = None
        if room_type_name:
            result = await self.db.execute(
                select(RoomType.id)
                .where(RoomType.organization_id == customer.organization_id)
                .where(RoomType.name.ilike(room_type_name))
                .limit(1)
            )
            room_type_id = result.scalar_one_or_none()

        try:
            guests = max(int(arguments.get("number_of_guests") or 1), 1)
        except (TypeError, ValueError):
            guests = 1

        reservation = Reservation(
            customer_id=customer.id,
            call_id=await self._free_call_slot(Reservation),
            room_type_id=room_type_id,
            guest_name=_text(arguments["guest_name"]),
            guest_phone=_text(arguments.get("guest_phone")) or self.call.from_number,
            guest_email=_text(arguments.get("guest_email")),
            check_in=check_in,
            check_out=check_out,
            room_type=room_type_name,
            number_of_guests=guests,
            special_requests=_text(arguments.get("special_requests")),
            status=ReservationStatus.PENDING,
        )
        self.db.add(reservation)
        await self.db.commit()

        number = confirmation_number(reservation.id)
        self.logger.info("Reservation created", reservation_id=str(reservation.id))
        return {
            "success": True,
            "reservation_id": str(reservation.id),
            "confirmation_number": number,
            "message": (
                f"Reservation received for {reservation.guest_name} from {check_in.isoformat()} "
                f"to {check_out.isoformat()}. Your confirmation number is {number}."
            ),
        }

    async def check_reservation_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        reference = _text(arguments.get("reservation_id"))
        if not reference:
            return _error("Missing required fields: reservation_id")

        customer = await self._customer()
        reservation = await self._find_scoped(Reservation, customer, reference) if customer else None
        if reservation is None:
            return {"found": False, "message": "I could not find a reservation with that number."}

        return {
            "found": True,
            "confirmation_number": confirmation_number(reservation.id),
            "status": reservation.status.value,
            "guest_name": reservation.guest_name,
            "check_in": reservation.check_in.isoformat(),
            "check_out": reservation.check_out.isoformat(),
            "room_type": reservation.room_type,
            "message": f"The reservation is {reservation.status.value.lower().replace('_', ' ')}.",
        }

    # =====================
    # Restaurant
    # =====================

    async def create_order(self, arguments: dict[str, Any]) -> dict[str, Any]:
        missing = _missing(arguments, "customer_name", "items")
        if missing:
            return _error(f"Missing required fields: {', '.join(missing)}")

        customer = await self._customer()
        if customer is None:
            return _error("No customer is associated with this call")

        try:
            total = float(arguments["total_amount"]) if arguments.get("total_amount") is not None else None
        except (TypeError, ValueError):
            total = None

        order = Order(
            customer_id=customer.id,
            call_id=await self._free_call_slot(Order),
            customer_name=_text(arguments["customer_name"]),
            customer_phone=_text(arguments.get("customer_phone")) or self.call.from_number,
            items=_text(arguments["items"]),
            total_amount=total,
            delivery_address=_text(arguments.get("delivery_address")),
            notes=_text(arguments.get("notes")),
            status=OrderStatus.PENDING,
        )
        self.db.add(order)
        await self.db.commit()

        number = confirmation_number(order.id)
        self.logger.info("Order created", order_id=str(order.id))
        return {
            "success": True,
            "order_id": str(order.id),
            "confirmation_number": number,
            "message": f"Order placed for {order.customer_name}. Your confirmation number is {number}.",
        }

    async def check_order_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        reference = _text(arguments.get("order_id"))
        if not reference:
            return _error("Missing required fields: order_id")

        customer = await self._customer()
        order = await self._find_scoped(Order, customer, reference) if customer else None
        if order is None:
            return {"found": False, "message": "I could not find an order with that number."}

        return {
            "found": True,
            "confirmation_number": confirmation_number(order.id),
            "status": order.status.value,
            "items": order.items,
            "total_amount": order.total_amount,
            "message": f"The order is {order.status.value.lower()}.",
        }

    # =====================
    # Generic
    # =====================

    async def get_call_info(self, arguments: dict[str, Any]) -> dict[str, Any]:
        duration_seconds = None
        if self.call.duration_ms is not None:
            duration_seconds = round(self.call.duration_ms / 1000)
        elif self.call.started_at is not None:
            started_at = self.call.started_at
            if started_at.tzinfo is None:
                started_at = started_at.replace(tzinfo=timezone.utc)
            duration_seconds = int((utcnow() - started_at).total_seconds())
        return {
            "call_id": str(self.call.id),
            "status": self.call.status.value,
            "duration": duration_seconds,
            "from_number": self.call.from_number,
            "to_number": self.call.to_number,
        }

    async def _free_call_slot(self, model) -> Optional[UUID]:
        """The call id if no record of ``model`` is linked to this call yet."""
        result = await self.db.execute(select(model.id).where(model.call_id == self.call.id))
        return None if result.scalar_one_or_none() else self.call.id
