"""FastAPI application entry point for the client engagement API."""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from server.api.routers.ScheduleRouter import router as schedule_router
from server.api.routers.SignatureRouter import router as signature_router
from server.api.routers.TemplateRouter import router as template_router
from server.api.routers.WebhookRouter import router as webhook_router
from server.models.responses import ErrorResponse
from services.document_template.DocumentTemplateService import DocumentTemplateService
from services.engagement_sweep.EngagementSweepService import EngagementSweepService
from services.notification_dispatch.EventDispatcher import EventDispatcher
from services.progress_updates.ProgressUpdateService import ProgressUpdateService
from services.signature_lifecycle.SignatureLifecycleService import SignatureLifecycleService
from shared.clients.notifier.NotifierClientInterface import NotifierClientInterface
from shared.clients.notifier.NotifierClientManager import NotifierClientManager
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.exceptions.EngagementErrors import (
    EngagementError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    store_client = StoreClientManager(helper_config=app.state.helper_config).get_client()
    notifier_client: NotifierClientInterface | None = None
    if app.state.helper_config.get_string_val("NOTIFIER_ENGINE", default=""):
        notifier_client = NotifierClientManager(helper_config=app.state.helper_config).get_client()
    clients = [c for c in (store_client, notifier_client) if c is not None]

    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    await check_connections(store_client, notifier_client)

    app.state.store_client = store_client
    app.state.notifier_client = notifier_client

    app.state.progress_service = ProgressUpdateService(helper_config=app.state.helper_config, store=store_client)
    app.state.dispatcher = EventDispatcher(
        helper_config=app.state.helper_config,
        notifier=notifier_client,
        progress_service=app.state.progress_service,
    )
    app.state.lifecycle_service = SignatureLifecycleService(
        helper_config=app.state.helper_config,
        store=store_client,
        dispatcher=app.state.dispatcher,
    )
    app.state.template_service = DocumentTemplateService(helper_config=app.state.helper_config, store=store_client)
    app.state.sweep_service = EngagementSweepService(
        helper_config=app.state.helper_config,
        lifecycle=app.state.lifecycle_service,
        progress_service=app.state.progress_service,
        dispatcher=app.state.dispatcher,
    )

    sweep_task: asyncio.Task | None = None
    if app.state.helper_config.get_bool_val("SWEEP_RUN_IN_API", default=False):
        sweep_task = asyncio.create_task(app.state.sweep_service.run_forever())

    # while the app is running...
    yield

    # when the app shuts down, stop the sweep, flush deliveries and close all client connections
    logging.info("Shutting down, closing all clients...")
    app.state.sweep_service.stop()
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    await app.state.sweep_service.drain_deliveries()
    for client in clients:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="engagement_engine",
    description=(
        "Client engagement workflow engine for construction projects: "
        "signature requests and their lifecycle, document templates, "
        "recurring progress update schedules and the notification sweep."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(signature_router)
app.include_router(template_router)
app.include_router(schedule_router)
app.include_router(webhook_router)


_ERROR_STATUS: list[tuple[type[EngagementError], int]] = [
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ValidationError, 422),
    (PersistenceError, 503),
]


@app.exception_handler(EngagementError)
async def handle_engagement_error(request: Request, exc: EngagementError) -> JSONResponse:
    """Translate engine errors into HTTP responses."""
    status_code = next((code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type)), 500)
    if status_code >= 500:
        logging.error("%s %s failed: %s", request.method, request.url.path, exc)
    body = ErrorResponse(detail=str(exc), current_status=getattr(exc, "current_status", None))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def check_connections(
    store_client: StoreClientInterface,
    notifier_client: NotifierClientInterface | None,
) -> None:
    """Check connectivity to all configured backends on startup.

    Notifier failures are non-fatal (deliveries will be recorded as FAILED).
    Store failures are fatal, nothing can be served without it.

    Raises:
        Exception: If the entity store is not reachable.
    """
    if not await store_client.do_healthcheck():
        raise Exception(f"Store client '{store_client.__class__.__name__}' is not reachable. Cannot serve requests.")

    if notifier_client is not None and not await notifier_client.do_healthcheck():
        logging.warning(
            "Notifier client '%s' is not reachable. Event delivery may fail.",
            notifier_client.__class__.__name__,
        )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting engagement API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
