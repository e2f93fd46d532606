"""Read and status APIs for orders and reservations captured from calls."""

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext
from voicedesk.database.models import (
    Order,
    OrderStatus,
    Reservation,
    ReservationStatus,
    User,
)
from voicedesk.errors import EntityNotFound

logger = structlog.get_logger()


def customer_records(model, user: UserContext):
    """Records of ``model`` owned by the caller's organization, or by the caller alone."""
    query = (
        select(model)
        .join(User, User.id == model.customer_id)
        .where(User.organization_id == user.organization_id)
    )
    if not user.is_admin:
        query = query.where(model.customer_id == user.user_id)
    return query


class BookingService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.logger = logger.bind(service="booking")

    async def list_orders(self, user: UserContext, status: Optional[OrderStatus] = None) -> list[Order]:
        query = customer_records(Order, user)
        if status is not None:
            query = query.where(Order.status == status)
        result = await self.db.execute(query.order_by(Order.created_at.desc()))
        return list(result.scalars().all())

    async def list_reservations(
        self, user: UserContext, status: Optional[ReservationStatus] = None
    ) -> list[Reservation]:
        query = customer_records(Reservation, user)
        if status is not None:
            query = query.where(Reservation.status == status)
        result = await self.db.execute(query.order_by(Reservation.check_in, Reservation.created_at))
        return list(result.scalars().all())

    async def _scoped(self, model, user: UserContext, record_id: UUID, entity: str):
        result = await self.db.execute(customer_records(model, user).where(model.id == record_id))
        record = result.scalar_one_or_none()
        if not record:
            raise EntityNotFound(entity, record_id)
        return record

    async def set_order_status(self, user: UserContext, order_id: UUID, status: OrderStatus) -> Order:
        order = await self._scoped(Order, user, order_id, "Order")
        previous = order.status
        order.status = status
        await self.db.commit()
        await self.db.refresh(order)
        self.logger.info(
            "Order status changed",
            order_id=str(order.id),
            previous=previous.value,
            status=status.value,
        )
        return order

    async def set_reservation_status(
        self, user: UserContext, reservation_id: UUID, status: ReservationStatus
    ) -> Reservation:
        reservation = await self._scoped(Reservation, user, reservation_id, "Reservation")
        previous = reservation.status
        reservation.status = status
        await self.db.commit()
        await self.db.refresh(reservation)
        self.logger.info(
            "Reservation status changed",
            reservation_id=str(reservation.id),
            previous=previous.value,
            status=status.value,
        )
        return reservation
