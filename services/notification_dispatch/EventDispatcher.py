"""Fire-and-forget hand-over of engagement events to the notifier.

Delivery runs in background tasks so no workflow step ever waits for a push
gateway. When an event carries a notification_id, the delivery outcome is
written back to that UpdateNotification record.
"""

import asyncio

from shared.clients.notifier.NotifierClientInterface import NotifierClientInterface
from shared.exceptions.EngagementErrors import EngagementError
from shared.helper.HelperConfig import HelperConfig
from shared.models.engagement import DeliveryStatus
from shared.models.events import EngagementEvent
from services.progress_updates.ProgressUpdateService import ProgressUpdateService


class EventDispatcher:

    def __init__(
        self,
        helper_config: HelperConfig,
        notifier: NotifierClientInterface | None,
        progress_service: ProgressUpdateService,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._notifier = notifier
        self._progress_service = progress_service
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, event: EngagementEvent) -> None:
        """Schedule delivery of an event and return immediately."""
        if self._notifier is None:
            self.logging.debug("No notifier configured, dropping %s event %s", event.kind.value, event.id)
            return
        task = asyncio.create_task(self._deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every outstanding delivery task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def pending(self) -> int:
        return len(self._tasks)

    async def _deliver(self, event: EngagementEvent) -> None:
        try:
            result = await self._notifier.do_deliver(event)
        except Exception as exc:
            self.logging.error("Notifier raised while delivering event %s (%s): %s", event.id, event.kind.value, exc)
            result = None

        status = result.status if result is not None else DeliveryStatus.FAILED
        if result is not None and result.success:
            self.logging.debug("Delivered %s event %s to %s", event.kind.value, event.id, event.recipient_id)

        notification_id = event.context.get("notification_id")
        if not notification_id:
            return
        try:
            # the delivery service may already have reported DELIVERED/READ through the webhook
            await self._progress_service.update_delivery_status(
                str(notification_id), status, only_from=DeliveryStatus.PENDING
            )
        except EngagementError as exc:
            self.logging.error("Could not record delivery status for notification %s: %s", notification_id, exc)
