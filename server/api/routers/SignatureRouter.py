from fastapi import APIRouter, Request

from server.models.requests import (
    CompleteSignatureRequest,
    CreateSignatureRequest,
    DeclineSignatureRequest,
    InvalidateSignatureRequest,
)
from server.models.responses import ReminderResponse
from shared.models.engagement import DigitalSignature, SignatureRequest

router = APIRouter(tags=["signatures"])


@router.post("/signature-requests", status_code=201)
async def create_signature_request(request: Request, body: CreateSignatureRequest) -> SignatureRequest:
    """Open a PENDING signature request for a signable document.

    Args:
        request (Request): FastAPI request (provides app.state.lifecycle_service).
        body (CreateSignatureRequest): Document, requester, signer and optional expiry.

    Returns:
        SignatureRequest: The created request.
    """
    lifecycle = request.app.state.lifecycle_service
    kwargs = {}
    if "expires_in_days" in body.model_fields_set:
        kwargs["expires_in_days"] = body.expires_in_days
    return await lifecycle.create_request(
        document_id=body.document_id,
        document_type=body.document_type,
        requested_by=body.requested_by,
        requested_from=body.requested_from,
        message=body.message,
        **kwargs,
    )


@router.get("/signature-requests/{request_id}")
async def get_signature_request(request: Request, request_id: str) -> SignatureRequest:
    return await request.app.state.lifecycle_service.get_request(request_id)


@router.post("/signature-requests/{request_id}/view")
async def view_signature_request(request: Request, request_id: str) -> SignatureRequest:
    return await request.app.state.lifecycle_service.record_view(request_id)


@router.post("/signature-requests/{request_id}/complete")
async def complete_signature_request(
    request: Request,
    request_id: str,
    body: CompleteSignatureRequest,
) -> SignatureRequest:
    """Attach the captured signature and move the request to COMPLETED.

    The signature's document id and type are taken from the request itself.
    """
    lifecycle = request.app.state.lifecycle_service
    current = await lifecycle.get_request(request_id)
    signature = DigitalSignature(
        document_id=current.document_id,
        document_type=current.document_type,
        **body.model_dump(),
    )
    return await lifecycle.complete_request(request_id, signature)


@router.post("/signature-requests/{request_id}/decline")
async def decline_signature_request(
    request: Request,
    request_id: str,
    body: DeclineSignatureRequest | None = None,
) -> SignatureRequest:
    reason = body.reason if body else None
    return await request.app.state.lifecycle_service.decline_request(request_id, reason=reason)


@router.post("/signature-requests/{request_id}/cancel")
async def cancel_signature_request(request: Request, request_id: str) -> SignatureRequest:
    return await request.app.state.lifecycle_service.cancel_request(request_id)


@router.post("/signature-requests/{request_id}/remind")
async def remind_signature_request(request: Request, request_id: str) -> ReminderResponse:
    """Count a manual reminder. reminder_recorded is False for terminal requests."""
    recorded = await request.app.state.lifecycle_service.send_reminder(request_id)
    return ReminderResponse(request_id=request_id, reminder_recorded=recorded)


@router.post("/signatures/{signature_id}/invalidate")
async def invalidate_signature(
    request: Request,
    signature_id: str,
    body: InvalidateSignatureRequest,
) -> DigitalSignature:
    return await request.app.state.lifecycle_service.invalidate(signature_id, body.reason)
