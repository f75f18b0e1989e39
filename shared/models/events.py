"""Notifier payloads: what the engine hands to a Notifier and what it gets back."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from shared.models.engagement import DeliveryStatus, new_id, utc_now


class EventKind(str, Enum):
    SIGNATURE_REQUESTED = "SIGNATURE_REQUESTED"
    SIGNATURE_COMPLETED = "SIGNATURE_COMPLETED"
    SIGNATURE_REMINDER = "SIGNATURE_REMINDER"
    SIGNATURE_EXPIRATION_WARNING = "SIGNATURE_EXPIRATION_WARNING"
    SIGNATURE_EXPIRED = "SIGNATURE_EXPIRED"
    SCHEDULED_UPDATE_DUE = "SCHEDULED_UPDATE_DUE"


class EngagementEvent(BaseModel):
    """
    A single notification event. The notifier formats and delivers it; the engine never does.

    Attributes:
        kind:          What happened.
        recipient_id:  Who should be told.
        subject_id:    The request or schedule the event is about.
        context:       Identity fields the notifier needs to format the message
                       (e.g. document_id, project_id, notification_id, hours_remaining).
    """
    id: str = Field(default_factory=new_id)
    kind: EventKind
    recipient_id: str
    subject_id: str
    created_at: datetime = Field(default_factory=utc_now)
    context: dict[str, str | int | float | bool | None] = {}


class DeliveryResult(BaseModel):
    success: bool
    status: DeliveryStatus
    provider_reference: str | None = None
    error: str | None = None


class SweepReport(BaseModel):
    """Counters collected over one sweep."""
    started_at: datetime
    finished_at: datetime | None = None
    requests_scanned: int = 0
    schedules_scanned: int = 0
    reminders: int = 0
    expiration_warnings: int = 0
    expirations: int = 0
    scheduled_sends: int = 0
    errors: int = 0
    events: list[EngagementEvent] = []
