from datetime import datetime, timedelta

import pytest
import pytz

from services.notification_dispatch.EventDispatcher import EventDispatcher
from services.progress_updates.ProgressUpdateService import ProgressUpdateService
from shared.exceptions.EngagementErrors import InvalidStateError, NotFoundError, ValidationError
from shared.models.engagement import (
    DeliveryStatus,
    MilestoneUpdate,
    NotificationType,
    ProgressUpdate,
    ScheduledUpdate,
    UpdateFrequency,
)
from shared.models.events import EngagementEvent, EventKind
from tests.conftest import T0, RecordingNotifier


def weekly(**kwargs) -> ScheduledUpdate:
    return ScheduledUpdate(project_id="project-1", frequency=UpdateFrequency.WEEKLY, day_of_week=3, **kwargs)


def progress(**kwargs) -> ProgressUpdate:
    return ProgressUpdate(
        project_id="project-1",
        title="Framing done",
        description="Walls are up.",
        completion_percentage=40,
        created_by="pm-1",
        **kwargs,
    )


##########################################
############### SCHEDULES ################
##########################################

async def test_save_schedule_computes_next_send(progress_service):
    schedule = await progress_service.save_schedule(weekly(recipient_ids=["client-1"]))
    assert schedule.next_scheduled_at == datetime(2024, 3, 6, 9, 0, tzinfo=pytz.utc)
    stored = await progress_service.schedules.require(schedule.id)
    assert stored.next_scheduled_at == schedule.next_scheduled_at


async def test_save_schedule_rejects_bad_anchor(progress_service):
    with pytest.raises(ValidationError):
        await progress_service.save_schedule(weekly(day_of_month=32))


async def test_schedule_timezone_is_configurable(monkeypatch, helper_config, store, clock):
    monkeypatch.setenv("SCHEDULE_TIMEZONE", "America/New_York")
    monkeypatch.setenv("SCHEDULE_DEFAULT_TIME", "08:00")
    service = ProgressUpdateService(helper_config=helper_config, store=store, clock=clock)
    schedule = await service.save_schedule(weekly())
    # 08:00 EST is 13:00 UTC
    assert schedule.next_scheduled_at == datetime(2024, 3, 6, 13, 0, tzinfo=pytz.utc)


async def test_unknown_timezone_is_a_config_error(monkeypatch, helper_config, store):
    monkeypatch.setenv("SCHEDULE_TIMEZONE", "Mars/Olympus")
    with pytest.raises(ValueError):
        ProgressUpdateService(helper_config=helper_config, store=store)


async def test_record_sent_advances_schedule(progress_service):
    schedule = await progress_service.save_schedule(weekly())
    sent_at = datetime(2024, 3, 6, 9, 0, 5, tzinfo=pytz.utc)
    updated = await progress_service.record_sent(schedule.id, sent_at)
    assert updated.last_sent_at == sent_at
    assert updated.next_scheduled_at == datetime(2024, 3, 13, 9, 0, tzinfo=pytz.utc)


async def test_record_sent_on_inactive_schedule(progress_service):
    schedule = await progress_service.save_schedule(weekly())
    await progress_service.deactivate_schedule(schedule.id)
    with pytest.raises(InvalidStateError):
        await progress_service.record_sent(schedule.id)


async def test_record_sent_on_missing_schedule(progress_service):
    with pytest.raises(NotFoundError):
        await progress_service.record_sent("missing")


async def test_due_schedules(progress_service):
    due = await progress_service.save_schedule(weekly())
    inactive = await progress_service.save_schedule(weekly())
    await progress_service.deactivate_schedule(inactive.id)
    await progress_service.save_schedule(ScheduledUpdate(project_id="project-1", frequency=UpdateFrequency.MILESTONE_BASED))

    assert await progress_service.list_due_schedules(T0) == []
    listed = await progress_service.list_due_schedules(datetime(2024, 3, 6, 9, 0, tzinfo=pytz.utc))
    assert [s.id for s in listed] == [due.id]
    assert len(await progress_service.list_schedules("project-1")) == 3


async def test_update_schedule_recomputes(progress_service):
    schedule = await progress_service.save_schedule(weekly())
    changed = await progress_service.update_schedule(schedule.model_copy(update={"frequency": UpdateFrequency.DAILY}))
    assert changed.next_scheduled_at == datetime(2024, 3, 5, 9, 0, tzinfo=pytz.utc)


##########################################
############ PROGRESS UPDATES ############
##########################################

def test_completion_percentage_is_bounded():
    with pytest.raises(ValueError):
        ProgressUpdate(project_id="p", title="t", description="d", completion_percentage=101, created_by="u")


async def test_latest_shared_update(progress_service, clock):
    assert await progress_service.latest_shared_update("project-1") is None
    older = await progress_service.create_progress_update(progress())
    newer = await progress_service.create_progress_update(progress())
    await progress_service.create_progress_update(progress())  # never shared

    await progress_service.share_with_client(older.id)
    clock.advance(hours=1)
    await progress_service.share_with_client(newer.id)

    latest = await progress_service.latest_shared_update("project-1")
    assert latest.id == newer.id
    assert len(await progress_service.list_client_shared_updates("project-1")) == 2


async def test_milestones(progress_service, clock):
    update = await progress_service.create_progress_update(progress())
    milestone = await progress_service.add_milestone(MilestoneUpdate(progress_update_id=update.id, milestone_name="Roof"))
    done = await progress_service.complete_milestone(milestone.id, notes="Shingles on")
    assert done.is_completed is True
    assert done.completed_at == T0
    assert done.notes == "Shingles on"
    assert (await progress_service.complete_milestone(milestone.id)).completed_at == T0

    with pytest.raises(NotFoundError):
        await progress_service.add_milestone(MilestoneUpdate(progress_update_id="missing", milestone_name="Roof"))


async def test_delete_progress_update_cascades(progress_service):
    update = await progress_service.create_progress_update(progress())
    await progress_service.add_milestone(MilestoneUpdate(progress_update_id=update.id, milestone_name="Roof"))
    await progress_service.record_notification(update.id, "client-1", NotificationType.EMAIL)

    assert await progress_service.delete_progress_update(update.id) is True
    assert await progress_service.list_milestones(update.id) == []
    assert await progress_service.list_notifications(update.id) == []


##########################################
############# NOTIFICATIONS ##############
##########################################

async def test_delivery_status_and_read_at(progress_service, clock):
    update = await progress_service.create_progress_update(progress())
    notification = await progress_service.record_notification(update.id, "client-1", NotificationType.PUSH)
    assert notification.delivery_status == DeliveryStatus.PENDING

    assert await progress_service.update_delivery_status(notification.id, DeliveryStatus.DELIVERED) is True
    read_time = clock.advance(minutes=5)
    assert await progress_service.update_delivery_status(notification.id, DeliveryStatus.READ) is True

    stored = (await progress_service.list_notifications_for_recipient("client-1"))[0]
    assert stored.delivery_status == DeliveryStatus.READ
    assert stored.read_at == read_time


async def test_delivery_status_only_from(progress_service):
    update = await progress_service.create_progress_update(progress())
    notification = await progress_service.record_notification(update.id, "client-1", NotificationType.PUSH)
    await progress_service.update_delivery_status(notification.id, DeliveryStatus.DELIVERED)

    written = await progress_service.update_delivery_status(
        notification.id, DeliveryStatus.SENT, only_from=DeliveryStatus.PENDING
    )
    assert written is False
    assert (await progress_service.list_notifications(update.id))[0].delivery_status == DeliveryStatus.DELIVERED


async def test_delivery_status_missing_notification(progress_service):
    with pytest.raises(NotFoundError):
        await progress_service.update_delivery_status("missing", DeliveryStatus.READ)


##########################################
############### DISPATCHER ###############
##########################################

async def test_dispatcher_writes_delivery_outcome(helper_config, progress_service):
    update = await progress_service.create_progress_update(progress())
    notification = await progress_service.record_notification(update.id, "client-1", NotificationType.PUSH)

    failing = RecordingNotifier(helper_config=helper_config, fail=True)
    dispatcher = EventDispatcher(helper_config=helper_config, notifier=failing, progress_service=progress_service)
    dispatcher.dispatch(EngagementEvent(
        kind=EventKind.SCHEDULED_UPDATE_DUE,
        recipient_id="client-1",
        subject_id="schedule-1",
        context={"notification_id": notification.id},
    ))
    assert dispatcher.pending() == 1
    await dispatcher.drain()

    assert dispatcher.pending() == 0
    assert len(failing.events) == 1
    stored = (await progress_service.list_notifications(update.id))[0]
    assert stored.delivery_status == DeliveryStatus.FAILED


async def test_dispatcher_without_notifier_drops_events(helper_config, progress_service):
    dispatcher = EventDispatcher(helper_config=helper_config, notifier=None, progress_service=progress_service)
    dispatcher.dispatch(EngagementEvent(kind=EventKind.SIGNATURE_REMINDER, recipient_id="c", subject_id="r"))
    assert dispatcher.pending() == 0


async def test_dispatcher_survives_raising_notifier(helper_config, progress_service, monkeypatch):
    broken = RecordingNotifier(helper_config=helper_config)

    async def explode(event):
        raise RuntimeError("boom")

    monkeypatch.setattr(broken, "do_deliver", explode)
    dispatcher = EventDispatcher(helper_config=helper_config, notifier=broken, progress_service=progress_service)
    dispatcher.dispatch(EngagementEvent(kind=EventKind.SIGNATURE_REMINDER, recipient_id="c", subject_id="r"))
    await dispatcher.drain()
    assert dispatcher.pending() == 0
