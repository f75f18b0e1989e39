"""Engagement sweep runner entry point.

Scans open signature requests and due progress-update schedules and hands the
resulting reminders, warnings, expirations and update sends to the notifier.
Runs a single sweep by default, or loops every SWEEP_POLL_INTERVAL_SECONDS
when SWEEP_RUN_FOREVER is set.

Usage:
    python -m services.engagement_sweep.engagement_sweep
"""

import asyncio

from shared.clients.notifier.NotifierClientInterface import NotifierClientInterface
from shared.clients.notifier.NotifierClientManager import NotifierClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from services.engagement_sweep.EngagementSweepService import EngagementSweepService
from services.notification_dispatch.EventDispatcher import EventDispatcher
from services.progress_updates.ProgressUpdateService import ProgressUpdateService
from services.signature_lifecycle.SignatureLifecycleService import SignatureLifecycleService
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging


async def main() -> None:
    """Boot the clients and run the sweep."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    store_client = StoreClientManager(helper_config=config).get_client()
    notifier_client: NotifierClientInterface | None = None
    if config.get_string_val("NOTIFIER_ENGINE", default=""):
        notifier_client = NotifierClientManager(helper_config=config).get_client()
    else:
        logger.warning("No NOTIFIER_ENGINE configured. Events will be computed but not delivered.")

    try:
        # the store is required, without it there is nothing to sweep
        try:
            await store_client.boot()
            if not await store_client.do_healthcheck():
                logger.error("Store client %s is not healthy. Aborting.", store_client.get_engine_name())
                return
        except Exception as e:
            logger.error(f"Error booting store client {store_client.get_engine_name()}: {e}. Aborting.")
            return

        # a broken notifier only costs deliveries, the state changes still happen
        if notifier_client is not None:
            try:
                await notifier_client.boot()
                if not await notifier_client.do_healthcheck():
                    logger.warning("Notifier client %s is not healthy. Deliveries may fail.", notifier_client.get_engine_name())
            except Exception as e:
                logger.error(f"Error booting notifier client {notifier_client.get_engine_name()}: {e}. Continuing without deliveries.")
                await notifier_client.close()
                notifier_client = None

        progress_service = ProgressUpdateService(helper_config=config, store=store_client)
        dispatcher = EventDispatcher(helper_config=config, notifier=notifier_client, progress_service=progress_service)
        lifecycle = SignatureLifecycleService(helper_config=config, store=store_client, dispatcher=dispatcher)
        sweep_service = EngagementSweepService(
            helper_config=config,
            lifecycle=lifecycle,
            progress_service=progress_service,
            dispatcher=dispatcher,
        )

        if config.get_bool_val("SWEEP_RUN_FOREVER", default=False):
            await sweep_service.run_forever()
        else:
            await sweep_service.do_sweep()
        await sweep_service.drain_deliveries()
    finally:
        await store_client.close()
        if notifier_client is not None:
            await notifier_client.close()


if __name__ == "__main__":
    asyncio.run(main())
