"""Progress update service.

Owns scheduled update definitions (keeping next_scheduled_at in sync with the
recurrence rule), the progress updates shared with clients, their milestones,
and the per-recipient delivery records.
"""

from datetime import datetime
from typing import Callable

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.StoreRepository import (
    MILESTONE_UPDATES,
    PROGRESS_UPDATES,
    SCHEDULED_UPDATES,
    UPDATE_NOTIFICATIONS,
    StoreRepository,
)
from shared.exceptions.EngagementErrors import InvalidStateError, NotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.models.engagement import (
    DeliveryStatus,
    MilestoneUpdate,
    NotificationType,
    ProgressUpdate,
    ScheduledUpdate,
    UpdateNotification,
    utc_now,
)
from services.progress_updates.ScheduleCalculator import DEFAULT_TIME, with_next_occurrence


class ProgressUpdateService:
    """Bookkeeping for recurring progress updates and their deliveries."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store: StoreClientInterface,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._clock = clock
        self._tz = helper_config.get_timezone_val("SCHEDULE_TIMEZONE", default="UTC")
        self._default_time = helper_config.get_string_val("SCHEDULE_DEFAULT_TIME", default=DEFAULT_TIME)

        self.schedules = StoreRepository(store, SCHEDULED_UPDATES, ScheduledUpdate)
        self.progress_updates = StoreRepository(store, PROGRESS_UPDATES, ProgressUpdate)
        self.milestones = StoreRepository(store, MILESTONE_UPDATES, MilestoneUpdate)
        self.notifications = StoreRepository(store, UPDATE_NOTIFICATIONS, UpdateNotification)

    ##########################################
    ############### SCHEDULES ################
    ##########################################

    def _recompute(self, schedule: ScheduledUpdate, now: datetime) -> ScheduledUpdate:
        return with_next_occurrence(schedule, anchor=now, tz=self._tz, default_time=self._default_time)

    async def save_schedule(self, schedule: ScheduledUpdate, now: datetime | None = None) -> ScheduledUpdate:
        """Persist a new schedule definition with its first next_scheduled_at.

        Raises:
            ValidationError: If the day anchors are out of range.
        """
        schedule = self._recompute(schedule, now or self._clock())
        await self.schedules.insert(schedule)
        self.logging.info(
            "Saved %s schedule %s for project %s, next send at %s",
            schedule.frequency.value, schedule.id, schedule.project_id, schedule.next_scheduled_at,
        )
        return schedule

    async def update_schedule(self, schedule: ScheduledUpdate, now: datetime | None = None) -> ScheduledUpdate:
        """Replace a schedule definition and recompute its next occurrence.

        Raises:
            NotFoundError: If the schedule does not exist.
            ValidationError: If the day anchors are out of range.
        """
        schedule = self._recompute(schedule, now or self._clock())
        if not await self.schedules.replace(schedule):
            raise NotFoundError("ScheduledUpdate", schedule.id)
        return schedule

    async def record_sent(self, schedule_id: str, now: datetime | None = None) -> ScheduledUpdate:
        """Stamp last_sent_at and advance next_scheduled_at in a single write.

        Raises:
            NotFoundError: If the schedule does not exist.
            InvalidStateError: If the schedule is inactive or was deactivated concurrently.
        """
        now = now or self._clock()
        current = await self.schedules.require(schedule_id)
        if not current.is_active:
            raise InvalidStateError(f"Schedule {schedule_id} is not active.")

        updated = self._recompute(current.model_copy(update={"last_sent_at": now}), now)
        if not await self.schedules.replace(updated, expected={"is_active": True}):
            raise InvalidStateError(f"Schedule {schedule_id} changed while recording a send.")
        self.logging.debug("Schedule %s sent at %s, next send at %s", schedule_id, now, updated.next_scheduled_at)
        return updated

    async def deactivate_schedule(self, schedule_id: str) -> ScheduledUpdate:
        current = await self.schedules.require(schedule_id)
        updated = current.model_copy(update={"is_active": False})
        if not await self.schedules.replace(updated):
            raise NotFoundError("ScheduledUpdate", schedule_id)
        return updated

    async def list_schedules(self, project_id: str) -> list[ScheduledUpdate]:
        return await self.schedules.list(lambda s: s.project_id == project_id)

    async def list_due_schedules(self, now: datetime) -> list[ScheduledUpdate]:
        """Active schedules whose next_scheduled_at is at or before now."""
        return await self.schedules.list(
            lambda s: s.is_active and s.next_scheduled_at is not None and s.next_scheduled_at <= now
        )

    ##########################################
    ############ PROGRESS UPDATES ############
    ##########################################

    async def create_progress_update(self, update: ProgressUpdate) -> ProgressUpdate:
        return await self.progress_updates.insert(update)

    async def share_with_client(self, progress_update_id: str) -> ProgressUpdate:
        current = await self.progress_updates.require(progress_update_id)
        updated = current.model_copy(update={"is_shared_with_client": True, "updated_at": self._clock()})
        if not await self.progress_updates.replace(updated):
            raise NotFoundError("ProgressUpdate", progress_update_id)
        return updated

    async def list_client_shared_updates(self, project_id: str) -> list[ProgressUpdate]:
        return await self.progress_updates.list(lambda u: u.project_id == project_id and u.is_shared_with_client)

    async def latest_shared_update(self, project_id: str) -> ProgressUpdate | None:
        shared = await self.list_client_shared_updates(project_id)
        return max(shared, key=lambda u: u.updated_at, default=None)

    async def delete_progress_update(self, progress_update_id: str) -> bool:
        """Delete a progress update together with its milestones and notifications."""
        removed = await self.progress_updates.delete(progress_update_id)
        if removed:
            for milestone in await self.list_milestones(progress_update_id):
                await self.milestones.delete(milestone.id)
            for notification in await self.list_notifications(progress_update_id):
                await self.notifications.delete(notification.id)
        return removed

    ##########################################
    ############### MILESTONES ###############
    ##########################################

    async def add_milestone(self, milestone: MilestoneUpdate) -> MilestoneUpdate:
        await self.progress_updates.require(milestone.progress_update_id)
        return await self.milestones.insert(milestone)

    async def list_milestones(self, progress_update_id: str) -> list[MilestoneUpdate]:
        return await self.milestones.list(lambda m: m.progress_update_id == progress_update_id)

    async def complete_milestone(self, milestone_id: str, notes: str | None = None) -> MilestoneUpdate:
        current = await self.milestones.require(milestone_id)
        if current.is_completed:
            return current
        changes = {"is_completed": True, "completed_at": self._clock()}
        if notes is not None:
            changes["notes"] = notes
        updated = current.model_copy(update=changes)
        if not await self.milestones.replace(updated, expected={"is_completed": False}):
            raise InvalidStateError(f"Milestone {milestone_id} changed while completing it.")
        return updated

    ##########################################
    ############# NOTIFICATIONS ##############
    ##########################################

    async def record_notification(
        self,
        progress_update_id: str,
        recipient_id: str,
        notification_type: NotificationType,
    ) -> UpdateNotification:
        """Create a PENDING delivery record; the outcome is filled in asynchronously."""
        notification = UpdateNotification(
            progress_update_id=progress_update_id,
            recipient_id=recipient_id,
            notification_type=notification_type,
            sent_at=self._clock(),
        )
        return await self.notifications.insert(notification)

    async def update_delivery_status(
        self,
        notification_id: str,
        status: DeliveryStatus,
        only_from: DeliveryStatus | None = None,
    ) -> bool:
        """Set a notification's delivery status, stamping read_at on READ.

        Args:
            notification_id (str): The notification to update.
            status (DeliveryStatus): The new status.
            only_from (DeliveryStatus | None): Only write if the stored status still equals this value.

        Returns:
            bool: False if only_from was given and the stored status no longer matched.

        Raises:
            NotFoundError: If the notification does not exist.
        """
        current = await self.notifications.require(notification_id)
        if only_from is not None and current.delivery_status != only_from:
            return False
        changes: dict = {"delivery_status": status}
        if status == DeliveryStatus.READ and current.read_at is None:
            changes["read_at"] = self._clock()
        updated = current.model_copy(update=changes)
        expected = {"delivery_status": only_from} if only_from is not None else None
        return await self.notifications.replace(updated, expected=expected)

    async def delete_notification(self, notification_id: str) -> bool:
        return await self.notifications.delete(notification_id)

    async def list_notifications(self, progress_update_id: str) -> list[UpdateNotification]:
        return await self.notifications.list(lambda n: n.progress_update_id == progress_update_id)

    async def list_notifications_for_recipient(self, recipient_id: str) -> list[UpdateNotification]:
        return await self.notifications.list(lambda n: n.recipient_id == recipient_id)
