"""Webhook router for delivery-status callbacks.

The delivery backend calls POST /webhook/delivery whenever the state of a
notification changes (delivered, read, failed). The handler writes the new
status into the matching UpdateNotification record.
"""

from fastapi import APIRouter, Request

from server.models.requests import DeliveryWebhookRequest
from server.models.responses import DeliveryWebhookResponse

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/delivery")
async def handle_delivery_webhook(request: Request, body: DeliveryWebhookRequest) -> DeliveryWebhookResponse:
    """Record an asynchronous delivery outcome.

    Args:
        request (Request): FastAPI request (provides app.state.progress_service).
        body (DeliveryWebhookRequest): Notification id and its new delivery status.

    Returns:
        DeliveryWebhookResponse: Acknowledgement with the recorded status.
    """
    request.app.state.logging.info(
        "Delivery webhook for notification_id=%r: %s (ref=%r)",
        body.notification_id, body.status.value, body.provider_reference,
    )
    progress_service = request.app.state.progress_service
    updated = await progress_service.update_delivery_status(body.notification_id, body.status)
    return DeliveryWebhookResponse(
        status="accepted",
        notification_id=body.notification_id,
        delivery_status=body.status,
        updated=updated,
    )
