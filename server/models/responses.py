from pydantic import BaseModel

from shared.models.engagement import DeliveryStatus
from shared.models.events import SweepReport


class ReminderResponse(BaseModel):
    request_id: str
    reminder_recorded: bool


class SweepResponse(BaseModel):
    status: str  # "completed" | "skipped"
    report: SweepReport | None = None


class DeliveryWebhookResponse(BaseModel):
    status: str
    notification_id: str
    delivery_status: DeliveryStatus
    updated: bool


class ErrorResponse(BaseModel):
    detail: str
    current_status: str | None = None
