from datetime import datetime

from pydantic import BaseModel

from shared.models.engagement import DeliveryStatus, DocumentType, GeoLocation, UpdateFrequency


class CreateSignatureRequest(BaseModel):
    """Omitting expires_in_days uses the configured default; an explicit null never expires."""
    document_id: str
    document_type: DocumentType
    requested_by: str
    requested_from: str
    message: str | None = None
    expires_in_days: int | None = None


class CompleteSignatureRequest(BaseModel):
    signature_image_ref: str
    signed_by: str
    ip_address: str | None = None
    device_info: str | None = None
    geo_location: GeoLocation | None = None


class DeclineSignatureRequest(BaseModel):
    reason: str | None = None


class InvalidateSignatureRequest(BaseModel):
    reason: str


class CloneTemplateRequest(BaseModel):
    title: str
    created_by: str


class CreateScheduleRequest(BaseModel):
    project_id: str
    frequency: UpdateFrequency
    day_of_week: int | None = None
    day_of_month: int | None = None
    time: str | None = None
    recipient_ids: list[str] = []
    include_photos: bool = True
    include_milestones: bool = True


class SweepRequest(BaseModel):
    now: datetime | None = None


class DeliveryWebhookRequest(BaseModel):
    notification_id: str
    status: DeliveryStatus
    provider_reference: str | None = None
