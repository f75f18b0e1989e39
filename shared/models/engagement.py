"""Entity models for the client engagement engine.

Hierarchy:
  SignableDocument / SignatureField  : documents and their field layout.
  SignatureRequest / DigitalSignature: the signature lifecycle.
  ScheduledUpdate                    : recurrence rule for progress update sends.
  ProgressUpdate / MilestoneUpdate   : project progress shared with clients.
  UpdateNotification                 : delivery record of one update to one recipient.

Timestamps are timezone-aware UTC datetimes. Ids are UUID4 strings.
"""

import uuid
from datetime import datetime
from enum import Enum

import pytz
from pydantic import BaseModel, Field


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


##########################################
################# ENUMS ##################
##########################################

class DocumentType(str, Enum):
    ESTIMATE = "ESTIMATE"
    CONTRACT = "CONTRACT"
    CHANGE_ORDER = "CHANGE_ORDER"
    INVOICE = "INVOICE"
    WAIVER = "WAIVER"
    COMPLETION_CERTIFICATE = "COMPLETION_CERTIFICATE"
    OTHER = "OTHER"


class SignatureFieldType(str, Enum):
    SIGNATURE = "SIGNATURE"
    INITIAL = "INITIAL"
    DATE = "DATE"
    TEXT = "TEXT"
    CHECKBOX = "CHECKBOX"


class SignatureRequestStatus(str, Enum):
    """Lifecycle states of a signature request. PENDING is initial."""

    PENDING = "PENDING"
    VIEWED = "VIEWED"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    SignatureRequestStatus.COMPLETED,
    SignatureRequestStatus.DECLINED,
    SignatureRequestStatus.EXPIRED,
    SignatureRequestStatus.CANCELLED,
})
OPEN_STATUSES = frozenset({SignatureRequestStatus.PENDING, SignatureRequestStatus.VIEWED})


class UpdateFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BI_WEEKLY = "BI_WEEKLY"
    MONTHLY = "MONTHLY"
    MILESTONE_BASED = "MILESTONE_BASED"


class NotificationType(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    IN_APP = "IN_APP"


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"


##########################################
############### DOCUMENTS ################
##########################################

class SignatureField(BaseModel):
    """
    A single field a signer must complete. Position and size are normalized
    page-relative coordinates.
    """
    id: str = Field(default_factory=new_id)
    document_id: str
    field_type: SignatureFieldType
    page_number: int = 1
    x: float
    y: float
    width: float
    height: float
    is_required: bool = True
    label: str | None = None
    assigned_to: str | None = None


class SignableDocument(BaseModel):
    """
    A content reference plus the layout of fields a signer must complete.

    signature_fields is attached on read; the stored document record never embeds them,
    so a field list always belongs to exactly one document through SignatureField.document_id.
    """
    id: str = Field(default_factory=new_id)
    title: str
    description: str | None = None
    content_ref: str
    document_type: DocumentType
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    signature_fields: list[SignatureField] = []
    is_template: bool = False


##########################################
############### SIGNATURES ###############
##########################################

class GeoLocation(BaseModel):
    latitude: float
    longitude: float
    accuracy: float | None = None
    location_name: str | None = None


class SignatureRequest(BaseModel):
    """
    A request for one signer to sign one document. Owns the lifecycle state.
    """
    id: str = Field(default_factory=new_id)
    document_id: str
    document_type: DocumentType
    requested_by: str
    requested_from: str
    requested_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None
    status: SignatureRequestStatus = SignatureRequestStatus.PENDING
    completed_at: datetime | None = None
    signature_id: str | None = None
    message: str | None = None
    reminders_sent: int = 0
    last_reminder_sent: datetime | None = None

    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class DigitalSignature(BaseModel):
    """
    The signature captured when a request completes.

    is_valid is independent of the owning request's status and can be revoked out of band.
    """
    id: str = Field(default_factory=new_id)
    signature_image_ref: str
    signed_by: str
    signed_at: datetime = Field(default_factory=utc_now)
    ip_address: str | None = None
    device_info: str | None = None
    geo_location: GeoLocation | None = None
    document_id: str
    document_type: DocumentType
    is_valid: bool = True
    invalidated_at: datetime | None = None
    invalidation_reason: str | None = None


##########################################
############ PROGRESS UPDATES ############
##########################################

class ScheduledUpdate(BaseModel):
    """
    Recurrence rule for automated progress update sends.

    next_scheduled_at is derived and recomputed whenever the rule or last_sent_at changes.
    """
    id: str = Field(default_factory=new_id)
    project_id: str
    frequency: UpdateFrequency
    day_of_week: int | None = None  # 1-7, Monday=1
    day_of_month: int | None = None  # 1-31
    time: str | None = None  # "HH:MM"
    is_active: bool = True
    last_sent_at: datetime | None = None
    next_scheduled_at: datetime | None = None
    recipient_ids: list[str] = []
    include_photos: bool = True
    include_milestones: bool = True


class ProgressUpdate(BaseModel):
    id: str = Field(default_factory=new_id)
    project_id: str
    title: str
    description: str
    completion_percentage: float = Field(ge=0, le=100)
    photo_refs: list[str] = []
    is_shared_with_client: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    created_by: str


class MilestoneUpdate(BaseModel):
    id: str = Field(default_factory=new_id)
    progress_update_id: str
    milestone_name: str
    is_completed: bool = False
    completed_at: datetime | None = None
    notes: str | None = None


class UpdateNotification(BaseModel):
    id: str = Field(default_factory=new_id)
    progress_update_id: str
    recipient_id: str
    notification_type: NotificationType
    sent_at: datetime = Field(default_factory=utc_now)
    read_at: datetime | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
