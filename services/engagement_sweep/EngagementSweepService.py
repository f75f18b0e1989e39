"""Engagement sweep service.

One sweep scans every open signature request and every due scheduled update and
decides what the notifier has to be told:

  - expiration sweep    open request past expires_at          -> EXPIRED
  - expiration warning  open request expiring within the window -> warning event
  - reminder            no reminder for longer than the interval -> reminder event
  - recurring send      active schedule with next_scheduled_at <= now -> record_sent, update events

Sweeps never overlap: a sweep requested while one is running is skipped.
A failure on one entity is logged and counted; the sweep moves on.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Callable

from shared.exceptions.EngagementErrors import PersistenceError
from shared.helper.HelperConfig import HelperConfig
from shared.models.engagement import NotificationType, ScheduledUpdate, SignatureRequest, utc_now
from shared.models.events import EngagementEvent, EventKind, SweepReport
from services.notification_dispatch.EventDispatcher import EventDispatcher
from services.progress_updates.ProgressUpdateService import ProgressUpdateService
from services.signature_lifecycle.SignatureLifecycleService import SignatureLifecycleService


class EngagementSweepService:
    """Periodic scanner that turns due reminders, warnings, expiries and schedules into events."""

    def __init__(
        self,
        helper_config: HelperConfig,
        lifecycle: SignatureLifecycleService,
        progress_service: ProgressUpdateService,
        dispatcher: EventDispatcher,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._lifecycle = lifecycle
        self._progress_service = progress_service
        self._dispatcher = dispatcher
        self._clock = clock

        self.reminder_interval = timedelta(hours=helper_config.get_number_val("SWEEP_REMINDER_INTERVAL_HOURS", default=72))
        self.warning_window = timedelta(hours=helper_config.get_number_val("SWEEP_EXPIRATION_WARNING_HOURS", default=24))
        self.poll_interval = helper_config.get_number_val("SWEEP_POLL_INTERVAL_SECONDS", default=900)
        channel = helper_config.get_string_val("NOTIFIER_DEFAULT_CHANNEL", default="PUSH").upper()
        try:
            self.notification_type = NotificationType(channel)
        except ValueError:
            raise ValueError(f"Environment variable 'NOTIFIER_DEFAULT_CHANNEL' is not a notification type: '{channel}'.")

        self._lock = asyncio.Lock()
        self._running = False

    ##########################################
    ################ SWEEP ###################
    ##########################################

    def is_sweeping(self) -> bool:
        return self._lock.locked()

    async def do_sweep(self, now: datetime | None = None) -> SweepReport | None:
        """Run one sweep over open requests and due schedules.

        Args:
            now (datetime | None): Reference time of the sweep, defaults to the clock.

        Returns:
            SweepReport | None: Counters and emitted events, or None if a sweep was already running.
        """
        if self._lock.locked():
            self.logging.warning("Sweep requested while the previous sweep is still running. Skipping.")
            return None

        async with self._lock:
            now = now or self._clock()
            sweep_id = uuid.uuid4().hex[:8]
            log_extra = {"extra": {"sweep_id": sweep_id}}
            report = SweepReport(started_at=now)
            self.logging.info("Starting engagement sweep at %s", now.isoformat(), **log_extra)

            await self._sweep_requests(now, report, log_extra)
            await self._sweep_schedules(now, report, log_extra)

            report.finished_at = self._clock()
            self.logging.info(
                "Sweep complete: %d requests, %d schedules scanned; %d reminders, %d warnings, "
                "%d expirations, %d scheduled sends, %d errors.",
                report.requests_scanned, report.schedules_scanned, report.reminders,
                report.expiration_warnings, report.expirations, report.scheduled_sends, report.errors,
                **log_extra,
            )
            return report

    async def _sweep_requests(self, now: datetime, report: SweepReport, log_extra: dict) -> None:
        try:
            requests = await self._lifecycle.list_open_requests()
        except Exception as exc:
            self.logging.error("Could not list open signature requests: %s", exc, **log_extra)
            report.errors += 1
            return

        for request in requests:
            report.requests_scanned += 1
            try:
                await self._process_request(request, now, report)
            except Exception as exc:
                self.logging.error("Processing signature request %s failed: %s", request.id, exc, **log_extra)
                report.errors += 1

    async def _sweep_schedules(self, now: datetime, report: SweepReport, log_extra: dict) -> None:
        try:
            schedules = await self._progress_service.list_due_schedules(now)
        except Exception as exc:
            self.logging.error("Could not list due schedules: %s", exc, **log_extra)
            report.errors += 1
            return

        for schedule in schedules:
            report.schedules_scanned += 1
            try:
                await self._process_schedule(schedule, now, report)
            except Exception as exc:
                self.logging.error("Processing schedule %s failed: %s", schedule.id, exc, **log_extra)
                report.errors += 1

    ##########################################
    ############### POLICIES #################
    ##########################################

    async def _process_request(self, request: SignatureRequest, now: datetime, report: SweepReport) -> None:
        remaining = request.expires_at - now if request.expires_at is not None else None

        if remaining is not None and remaining <= timedelta(0):
            expired = await self._lifecycle.expire(request.id, now)
            report.expirations += 1
            self._emit(report, EventKind.SIGNATURE_EXPIRED, expired.requested_by, expired)
            return

        if remaining is not None and remaining <= self.warning_window:
            report.expiration_warnings += 1
            self._emit(
                report, EventKind.SIGNATURE_EXPIRATION_WARNING, request.requested_from, request,
                hours_remaining=int(remaining.total_seconds() // 3600),
                expires_at=request.expires_at.isoformat(),
            )

        last_contact = request.last_reminder_sent or request.requested_at
        if now - last_contact > self.reminder_interval:
            if await self._lifecycle.send_reminder(request.id, now):
                report.reminders += 1
                self._emit(
                    report, EventKind.SIGNATURE_REMINDER, request.requested_from, request,
                    reminder_number=request.reminders_sent + 1,
                )

    async def _process_schedule(self, schedule: ScheduledUpdate, now: datetime, report: SweepReport) -> None:
        """Record the occurrence for every recipient, advance the schedule, then dispatch.

        Nothing is dispatched until record_sent went through. If any write fails, the
        notifications created so far are removed again, so the retry on the next sweep
        starts from a clean occurrence.
        """
        latest = await self._progress_service.latest_shared_update(schedule.project_id)
        notification_ids: list[str] = []
        events: list[EngagementEvent] = []

        try:
            for recipient_id in schedule.recipient_ids:
                context = {
                    "schedule_id": schedule.id,
                    "project_id": schedule.project_id,
                    "include_photos": schedule.include_photos,
                    "include_milestones": schedule.include_milestones,
                    "progress_update_id": latest.id if latest else None,
                }
                if latest is not None:
                    notification = await self._progress_service.record_notification(
                        latest.id, recipient_id, self.notification_type
                    )
                    notification_ids.append(notification.id)
                    context["notification_id"] = notification.id
                events.append(EngagementEvent(
                    kind=EventKind.SCHEDULED_UPDATE_DUE,
                    recipient_id=recipient_id,
                    subject_id=schedule.id,
                    context=context,
                ))
            await self._progress_service.record_sent(schedule.id, now)
        except BaseException:
            await self._discard_notifications(schedule.id, notification_ids)
            raise

        report.scheduled_sends += 1
        for event in events:
            report.events.append(event)
            self._dispatcher.dispatch(event)

    async def _discard_notifications(self, schedule_id: str, notification_ids: list[str]) -> None:
        for notification_id in notification_ids:
            try:
                await self._progress_service.delete_notification(notification_id)
            except PersistenceError as exc:
                self.logging.error(
                    "Could not remove notification %s of unsent schedule %s: %s", notification_id, schedule_id, exc
                )

    def _emit(self, report: SweepReport, kind: EventKind, recipient_id: str, request: SignatureRequest, **context) -> None:
        event = EngagementEvent(
            kind=kind,
            recipient_id=recipient_id,
            subject_id=request.id,
            context={
                "request_id": request.id,
                "document_id": request.document_id,
                "document_type": request.document_type.value,
                **context,
            },
        )
        report.events.append(event)
        self._dispatcher.dispatch(event)

    ##########################################
    ################ LOOP ####################
    ##########################################

    async def run_forever(self, poll_interval: float | None = None) -> None:
        """Sweep every poll_interval seconds until stop() is called."""
        interval = poll_interval if poll_interval is not None else self.poll_interval
        self._running = True
        self.logging.info("Engagement sweep loop started, polling every %s seconds", interval)
        while self._running:
            try:
                await self.do_sweep()
            except Exception as exc:
                self.logging.error("Engagement sweep failed: %s", exc)
            await asyncio.sleep(interval)
        self.logging.info("Engagement sweep loop stopped")

    def stop(self) -> None:
        self._running = False

    async def drain_deliveries(self) -> None:
        """Wait until every event emitted so far has been handed to the notifier."""
        await self._dispatcher.drain()
