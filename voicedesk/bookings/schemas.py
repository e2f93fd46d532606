"""Order and reservation models."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from voicedesk.database.models import OrderStatus, ReservationStatus


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    call_id: Optional[UUID] = None
    customer_name: str
    customer_phone: Optional[str] = None
    items: str
    total_amount: Optional[float] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    status: OrderStatus
    created_at: Optional[datetime] = None


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    call_id: Optional[UUID] = None
    room_type_id: Optional[UUID] = None
    guest_name: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    check_in: date
    check_out: date
    room_type: Optional[str] = None
    number_of_guests: int
    special_requests: Optional[str] = None
    status: ReservationStatus
    created_at: Optional[datetime] = None


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]
    total: int


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus
