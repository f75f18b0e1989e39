import logging
from datetime import datetime, timedelta

import pytest
import pytz

from services.document_template.DocumentTemplateService import DocumentTemplateService
from services.engagement_sweep.EngagementSweepService import EngagementSweepService
from services.notification_dispatch.EventDispatcher import EventDispatcher
from services.progress_updates.ProgressUpdateService import ProgressUpdateService
from services.signature_lifecycle.SignatureLifecycleService import SignatureLifecycleService
from shared.clients.notifier.NotifierClientInterface import NotifierClientInterface
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.engagement import (
    DeliveryStatus,
    DocumentType,
    SignableDocument,
    SignatureField,
    SignatureFieldType,
)
from shared.models.events import DeliveryResult, EngagementEvent

# Monday
T0 = datetime(2024, 3, 4, 10, 0, tzinfo=pytz.utc)

ENGAGEMENT_ENV_KEYS = [
    "SWEEP_REMINDER_INTERVAL_HOURS",
    "SWEEP_EXPIRATION_WARNING_HOURS",
    "SWEEP_POLL_INTERVAL_SECONDS",
    "SIGNATURE_DEFAULT_EXPIRES_DAYS",
    "SCHEDULE_TIMEZONE",
    "SCHEDULE_DEFAULT_TIME",
    "NOTIFIER_DEFAULT_CHANNEL",
    "NOTIFIER_ENGINE",
    "STORE_ENGINE",
    "SWEEP_RUN_IN_API",
]


class FixedClock:
    """Callable clock the services read instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier(NotifierClientInterface):
    """Notifier that keeps every event instead of delivering it."""

    def __init__(self, helper_config: HelperConfig, fail: bool = False):
        super().__init__(helper_config=helper_config)
        self.events: list[EngagementEvent] = []
        self.fail = fail

    def _get_engine_name(self) -> str:
        return "Recording"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    async def boot(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def do_healthcheck(self) -> bool:
        return True

    async def do_deliver(self, event: EngagementEvent) -> DeliveryResult:
        self.events.append(event)
        if self.fail:
            return DeliveryResult(success=False, status=DeliveryStatus.FAILED, error="gateway down")
        return DeliveryResult(success=True, status=DeliveryStatus.SENT, provider_reference=f"ref-{event.id}")

    def kinds(self) -> list[str]:
        return [event.kind.value for event in self.events]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENGAGEMENT_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=logging.getLogger("engagement.tests"))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def store(helper_config) -> StoreClientMemory:
    return StoreClientMemory(helper_config=helper_config)


@pytest.fixture
def notifier(helper_config) -> RecordingNotifier:
    return RecordingNotifier(helper_config=helper_config)


@pytest.fixture
def progress_service(helper_config, store, clock) -> ProgressUpdateService:
    return ProgressUpdateService(helper_config=helper_config, store=store, clock=clock)


@pytest.fixture
def dispatcher(helper_config, notifier, progress_service) -> EventDispatcher:
    return EventDispatcher(helper_config=helper_config, notifier=notifier, progress_service=progress_service)


@pytest.fixture
def lifecycle(helper_config, store, dispatcher, clock) -> SignatureLifecycleService:
    return SignatureLifecycleService(helper_config=helper_config, store=store, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def template_service(helper_config, store, clock) -> DocumentTemplateService:
    return DocumentTemplateService(helper_config=helper_config, store=store, clock=clock)


@pytest.fixture
def sweep_service(helper_config, lifecycle, progress_service, dispatcher, clock) -> EngagementSweepService:
    return EngagementSweepService(
        helper_config=helper_config,
        lifecycle=lifecycle,
        progress_service=progress_service,
        dispatcher=dispatcher,
        clock=clock,
    )


def make_field(document_id: str, page_number: int = 1, field_type=SignatureFieldType.SIGNATURE) -> SignatureField:
    return SignatureField(
        document_id=document_id,
        field_type=field_type,
        page_number=page_number,
        x=0.1,
        y=0.8,
        width=0.3,
        height=0.05,
    )


@pytest.fixture
async def contract(template_service) -> SignableDocument:
    document = SignableDocument(
        title="Kitchen remodel contract",
        content_ref="files/contract-1.pdf",
        document_type=DocumentType.CONTRACT,
        created_by="contractor-1",
    )
    return await template_service.create_document(document)


@pytest.fixture
async def template(template_service) -> SignableDocument:
    document = SignableDocument(
        title="Standard estimate",
        content_ref="templates/estimate.pdf",
        document_type=DocumentType.ESTIMATE,
        created_by="contractor-1",
        is_template=True,
    )
    document.signature_fields = [
        make_field(document.id, page_number=1),
        make_field(document.id, page_number=2, field_type=SignatureFieldType.INITIAL),
        make_field(document.id, page_number=3, field_type=SignatureFieldType.DATE),
    ]
    return await template_service.create_document(document)
