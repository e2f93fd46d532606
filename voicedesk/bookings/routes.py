"""Order and reservation routes."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.auth.dependencies import UserContext, get_current_user
from voicedesk.bookings.schemas import (
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    ReservationListResponse,
    ReservationResponse,
    ReservationStatusUpdate,
)
from voicedesk.bookings.service import BookingService
from voicedesk.database.models import CustomerType, OrderStatus, ReservationStatus
from voicedesk.database.session import get_db

router = APIRouter(tags=["bookings"])


async def require_hotel_access(
    user: UserContext = Depends(get_current_user),
) -> UserContext:
    """Admins and hotel customers only."""
    if not user.is_admin and user.customer_type != CustomerType.HOTEL:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Reservations are only available to hotel customers",
        )
    return user


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    orders = await BookingService(db).list_orders(user, status=status_filter)
    return OrderListResponse(orders=[OrderResponse.model_validate(o) for o in orders], total=len(orders))


@router.patch("/orders/{order_id}", response_model=OrderResponse)
async def update_order_status(
    order_id: UUID,
    data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(get_current_user),
):
    order = await BookingService(db).set_order_status(user, order_id, data.status)
    return OrderResponse.model_validate(order)


@router.get("/reservations", response_model=ReservationListResponse)
async def list_reservations(
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(require_hotel_access),
):
    reservations = await BookingService(db).list_reservations(user, status=status_filter)
    return ReservationListResponse(
        reservations=[ReservationResponse.model_validate(r) for r in reservations],
        total=len(reservations),
    )


@router.patch("/reservations/{reservation_id}", response_model=ReservationResponse)
async def update_reservation_status(
    reservation_id: UUID,
    data: ReservationStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserContext = Depends(require_hotel_access),
):
    reservation = await BookingService(db).set_reservation_status(user, reservation_id, data.status)
    return ReservationResponse.model_validate(reservation)
