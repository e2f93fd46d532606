"""Call lifecycle state machine driven by platform webhooks.

``PENDING -> IN_PROGRESS -> ENDED -> ANALYZED``

Each accepted event updates the call and appends a ``WebhookLog`` row in one
transaction. Rejected events (missing tenant, unknown call, malformed body)
still get an audit row with ``processed=False`` before the error is raised.

Mutations are written as SQL ``UPDATE`` statements against the call row
rather than read-modify-write on a loaded object, so redelivered or
reordered events overwrite instead of merging stale state. The only
additive effect, the organization's minutes counter, is applied once per
call: it is tied to the ``ended_at IS NULL -> set`` transition.
"""

import json
import math
from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.database.models import (
    Call,
    CallAnalytics,
    CallStatus,
    CustomerType,
    Order,
    OrderStatus,
    Organization,
    Reservation,
    ReservationStatus,
    RoomType,
    User,
    WebhookEventType,
    WebhookLog,
    utcnow,
)
from voicedesk.errors import EntityNotFound, ValidationError
from voicedesk.webhooks.schemas import CallAnalysisPayload, CallPayload, LifecycleEvent

logger = structlog.get_logger()

EVENT_TYPES = {
    "call_started": WebhookEventType.CALL_STARTED,
    "call_ended": WebhookEventType.CALL_ENDED,
    "call_analyzed": WebhookEventType.CALL_ANALYZED,
}

# Analytics column prefix -> latency key in the payload
LATENCY_CHANNELS = {
    "e2e": "e2e_latency",
    "llm": "llm_latency",
    "asr": "asr_latency",
    "tts": "tts_latency",
    "kb": "knowledge_base_latency",
    "network": "llm_websocket_network_rtt_latency",
}

PERCENTILES = ("p50", "p90", "p95", "p99")


def event_type_for(event: Optional[str]) -> WebhookEventType:
    return EVENT_TYPES.get((event or "").strip().lower(), WebhookEventType.UNKNOWN)


def ms_to_datetime(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def normalize_transcript(value: Any) -> Optional[str]:
    """Transcripts arrive as a string or a structured object; store a string."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def usage_minutes(duration_ms: Optional[int]) -> int:
    """Billable minutes: duration rounded up to the next whole minute."""
    if not duration_ms or duration_ms <= 0:
        return 0
    return math.ceil(duration_ms / 60000)


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return json.dumps(value)


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _as_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _success_evaluation(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CallLifecycleProcessor:
    """Apply one lifecycle event to the local call record."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="call_lifecycle")

    # =====================
    # Audit
    # =====================

    def _audit(
        self,
        payload: Any,
        event_type: WebhookEventType,
        organization_ref: Optional[str],
        call_id: Optional[UUID] = None,
        processed: bool = True,
        error: Optional[str] = None,
    ) -> None:
        self.db.add(
            WebhookLog(
                call_id=call_id,
                organization_id=organization_ref,
                event_type=event_type,
                payload=payload,
                processed=processed,
                error=error,
            )
        )

    async def reject(
        self,
        payload: Any,
        reason: str,
        event_type: WebhookEventType = WebhookEventType.UNKNOWN,
        organization_ref: Optional[str] = None,
        call_id: Optional[UUID] = None,
    ) -> None:
        """Record a rejected event. Committed on its own."""
        self._audit(
            payload,
            event_type,
            organization_ref,
            call_id=call_id,
            processed=False,
            error=reason,
        )
        await self.db.commit()
        self.logger.warning(
            "Webhook rejected",
            reason=reason,
            event_type=event_type.value,
            organization_id=organization_ref,
        )

    # =====================
    # Entry point
    # =====================

    async def process(self, payload: Any) -> WebhookEventType:
        """Validate and apply ``payload``.

        Raises ``ValidationError`` for malformed events or metadata and
        ``EntityNotFound`` when the call is unknown; both after auditing.
        """
        try:
            event = LifecycleEvent.model_validate(payload)
        except PydanticValidationError as e:
            await self.reject(payload, f"Malformed event payload: {e.error_count()} errors")
            raise ValidationError("Invalid payload") from e

        event_type = event_type_for(event.event)
        data = event.call

        organization_ref = data.organization_id
        if not organization_ref:
            await self.reject(payload, "No organizationId in metadata", event_type)
            raise ValidationError("Invalid metadata")

        try:
            organization_id = UUID(organization_ref)
        except ValueError:
            await self.reject(payload, "Invalid organizationId in metadata", event_type, organization_ref)
            raise ValidationError("Invalid metadata")

        if not data.call_id:
            await self.reject(payload, "No call_id in payload", event_type, organization_ref)
            raise ValidationError("Invalid payload")

        result = await self.db.execute(
            select(Call).where(
                Call.retell_call_id == data.call_id,
                Call.organization_id == organization_id,
            )
        )
        call = result.scalar_one_or_none()
        if not call:
            await self.reject(payload, "Call not found in database", event_type, organization_ref)
            raise EntityNotFound("Call", data.call_id)

        call_pk = call.id

        if event_type == WebhookEventType.UNKNOWN:
            await self.reject(
                payload,
                f"Unknown event type: {event.event}",
                event_type,
                organization_ref,
                call_id=call_pk,
            )
            return event_type

        handlers = {
            WebhookEventType.CALL_STARTED: self._started,
            WebhookEventType.CALL_ENDED: self._ended,
            WebhookEventType.CALL_ANALYZED: self._analyzed,
        }

        try:
            await handlers[event_type](call, data)
            self._audit(payload, event_type, organization_ref, call_id=call_pk)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            await self.reject(
                payload,
                f"Processing failed: {e}",
                event_type,
                organization_ref,
                call_id=call_pk,
            )
            raise

        return event_type

    # =====================
    # Transitions
    # =====================

    async def _update_call(self, call_id: UUID, *conditions, **values) -> int:
        statement = (
            update(Call)
            .where(Call.id == call_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(statement)
        return result.rowcount

    @staticmethod
    def _detail_fields(data: CallPayload) -> dict[str, Any]:
        """Fields refreshed by both ``ended`` and ``analyzed``."""
        transfer = None
        if not data.opt_out_sensitive_data_storage and data.call_transfer:
            transfer = data.call_transfer.get("to_number")
        return {
            "transcript_object": data.transcript_object,
            "transcript_with_tool_calls": data.transcript_with_tool_calls,
            "recording_multi_channel_url": data.recording_multi_channel_url,
            "scrubbed_recording_url": data.scrubbed_recording_url,
            "public_log_url": data.public_log_url,
            "knowledge_base_url": data.knowledge_base_url,
            "disconnection_reason": data.disconnection_reason,
            "transfer_destination": transfer,
            "llm_token_usage": data.llm_token_count or data.llm_token_usage,
            "call_cost": data.call_cost,
        }

    async def _started(self, call: Call, data: CallPayload) -> None:
        started_at = ms_to_datetime(data.start_timestamp) or utcnow()
        await self._update_call(call.id, started_at=started_at)
        await self._update_call(
            call.id,
            Call.status == CallStatus.PENDING,
            status=CallStatus.IN_PROGRESS,
        )
        self.logger.info("Call started", call_id=str(call.id), retell_call_id=call.retell_call_id)

    async def _ended(self, call: Call, data: CallPayload) -> None:
        ended_at = ms_to_datetime(data.end_timestamp) or utcnow()
        duration_ms = None
        if data.start_timestamp is not None and data.end_timestamp is not None:
            duration_ms = int(data.end_timestamp - data.start_timestamp)

        # First end for this call, usage is counted here only
        first_end = await self._update_call(
            call.id,
            Call.ended_at.is_(None),
            ended_at=ended_at,
        ) == 1

        await self._update_call(
            call.id,
            ended_at=ended_at,
            duration_ms=duration_ms,
            transcript=normalize_transcript(data.transcript),
            recording_url=data.recording_url,
            **self._detail_fields(data),
        )
        await self._update_call(
            call.id,
            Call.status.in_([CallStatus.PENDING, CallStatus.IN_PROGRESS]),
            status=CallStatus.ENDED,
        )

        minutes = usage_minutes(duration_ms) if first_end else 0
        if minutes:
            await self.db.execute(
                update(Organization)
                .where(Organization.id == call.organization_id)
                .values(monthly_call_minutes=Organization.monthly_call_minutes + minutes)
                .execution_options(synchronize_session=False)
            )

        self.logger.info(
            "Call ended",
            call_id=str(call.id),
            duration_ms=duration_ms,
            minutes_added=minutes,
            first_end=first_end,
        )

    async def _analyzed(self, call: Call, data: CallPayload) -> None:
        values: dict[str, Any] = {"status": CallStatus.ANALYZED, **self._detail_fields(data)}
        transcript = normalize_transcript(data.transcript)
        if transcript:
            values["transcript"] = transcript
        if data.recording_url:
            values["recording_url"] = data.recording_url
        await self._update_call(call.id, **values)

        analysis = data.call_analysis or CallAnalysisPayload()
        await self._upsert_analytics(call.id, analysis, data.latency or {})
        await self._derive_record(call, data, analysis, transcript)

        self.logger.info(
            "Call analyzed",
            call_id=str(call.id),
            sentiment=analysis.user_sentiment or analysis.sentiment,
        )

    # =====================
    # Analytics
    # =====================

    @staticmethod
    def _analytics_values(analysis: CallAnalysisPayload, latency: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {
            "summary": analysis.call_summary,
            "sentiment": analysis.user_sentiment or analysis.sentiment,
            "success_evaluation": _success_evaluation(analysis.call_successful),
            "custom_analysis": analysis.custom_analysis_data,
        }
        for prefix, key in LATENCY_CHANNELS.items():
            stats = latency.get(key)
            for percentile in PERCENTILES:
                values[f"{prefix}_latency_{percentile}"] = getattr(stats, percentile, None) if stats else None
        return values

    async def _upsert_analytics(
        self, call_id: UUID, analysis: CallAnalysisPayload, latency: dict[str, Any]
    ) -> None:
        values = self._analytics_values(analysis, latency)
        dialect = self.db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            statement = insert(CallAnalytics).values(call_id=call_id, **values)
            statement = statement.on_conflict_do_update(
                index_elements=[CallAnalytics.call_id],
                set_={**{name: statement.excluded[name] for name in values}, "updated_at": func.now()},
            )
            await self.db.execute(statement)
            return

        result = await self.db.execute(select(CallAnalytics).where(CallAnalytics.call_id == call_id))
        analytics = result.scalar_one_or_none()
        if analytics is None:
            self.db.add(CallAnalytics(call_id=call_id, **values))
        else:
            for name, value in values.items():
                setattr(analytics, name, value)
        await self.db.flush()

    # =====================
    # Derived records
    # =====================

    async def _derive_record(
        self,
        call: Call,
        data: CallPayload,
        analysis: CallAnalysisPayload,
        transcript: Optional[str],
    ) -> None:
        custom = analysis.custom_analysis_data or {}
        if not custom or not call.initiated_by_id:
            return

        customer = await self.db.get(User, call.initiated_by_id)
        if customer is None:
            return

        if customer.customer_type == CustomerType.RESTAURANT and isinstance(custom.get("order"), dict):
            record = self._build_order(call, data, custom["order"], transcript)
        elif customer.customer_type == CustomerType.HOTEL and isinstance(custom.get("reservation"), dict):
            record = await self._build_reservation(call, data, custom["reservation"])
        else:
            return

        if record is None:
            return

        model = type(record)
        existing = await self.db.execute(select(model.id).where(model.call_id == call.id))
        if existing.scalar_one_or_none():
            self.logger.info("Derived record already exists", call_id=str(call.id), kind=model.__tablename__)
            return

        # A concurrent delivery racing past the check hits the unique call_id
        # and fails as a whole; the platform's retry then takes the branch above.
        self.db.add(record)
        await self.db.flush()

        self.logger.info("Derived record created", call_id=str(call.id), kind=model.__tablename__)

    def _build_order(
        self, call: Call, data: CallPayload, order: dict[str, Any], transcript: Optional[str]
    ) -> Order:
        return Order(
            customer_id=call.initiated_by_id,
            call_id=call.id,
            customer_name=_as_text(order.get("customer_name")) or "Unknown",
            customer_phone=data.from_number or call.from_number,
            items=_as_text(order.get("items")) or transcript or "No items specified",
            total_amount=_as_float(order.get("total_amount")),
            delivery_address=_as_text(order.get("delivery_address")),
            notes=_as_text(order.get("notes")),
            status=OrderStatus.PENDING,
        )

    async def _build_reservation(
        self, call: Call, data: CallPayload, reservation: dict[str, Any]
    ) -> Optional[Reservation]:
        check_in = _as_date(reservation.get("check_in"))
        check_out = _as_date(reservation.get("check_out"))
        if check_in is None or check_out is None or check_out <= check_in:
            self.logger.warning(
                "Reservation analysis without usable dates",
                call_id=str(call.id),
                check_in=reservation.get("check_in"),
                check_out=reservation.get("check_out"),
            )
            return None

        room_type_name = _as_text(reservation.get("room_type"))
        room_type_id = None
        if room_type_name:
            result = await self.db.execute(
                select(RoomType.id)
                .where(
                    RoomType.organization_id == call.organization_id,
                    func.lower(RoomType.name) == room_type_name.lower(),
                )
                .limit(1)
            )
            room_type_id = result.scalar_one_or_none()

        try:
            guests = int(reservation.get("number_of_guests") or 1)
        except (TypeError, ValueError):
            guests = 1

        return Reservation(
            customer_id=call.initiated_by_id,
            call_id=call.id,
            room_type_id=room_type_id,
            guest_name=_as_text(reservation.get("guest_name")) or "Unknown",
            guest_phone=data.from_number or call.from_number,
            guest_email=_as_text(reservation.get("guest_email")),
            check_in=check_in,
            check_out=check_out,
            room_type=room_type_name,
            number_of_guests=max(guests, 1),
            special_requests=_as_text(reservation.get("special_requests")),
            status=ReservationStatus.PENDING,
        )
