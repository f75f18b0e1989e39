"""Signature lifecycle service.

Drives a SignatureRequest through its state machine:

    PENDING ──► VIEWED ──► COMPLETED | DECLINED | EXPIRED | CANCELLED
       └──────────────────► COMPLETED | DECLINED | EXPIRED | CANCELLED

Every transition reads the current status, checks it against ALLOWED_TRANSITIONS
and writes the new state conditionally on the status it read. If another writer
changed the request in between, the write is refused and InvalidStateError is
raised instead of silently overwriting the other change.
"""

from datetime import datetime, timedelta
from typing import Callable

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.StoreRepository import (
    DIGITAL_SIGNATURES,
    SIGNABLE_DOCUMENTS,
    SIGNATURE_REQUESTS,
    StoreRepository,
)
from shared.exceptions.EngagementErrors import InvalidStateError, NotFoundError, PersistenceError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.engagement import (
    OPEN_STATUSES,
    DigitalSignature,
    DocumentType,
    SignableDocument,
    SignatureRequest,
    SignatureRequestStatus,
    utc_now,
)
from shared.models.events import EngagementEvent, EventKind
from services.notification_dispatch.EventDispatcher import EventDispatcher

S = SignatureRequestStatus

ALLOWED_TRANSITIONS: dict[SignatureRequestStatus, frozenset[SignatureRequestStatus]] = {
    S.PENDING: frozenset({S.VIEWED, S.COMPLETED, S.DECLINED, S.EXPIRED, S.CANCELLED}),
    S.VIEWED: frozenset({S.COMPLETED, S.DECLINED, S.EXPIRED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.DECLINED: frozenset(),
    S.EXPIRED: frozenset(),
    S.CANCELLED: frozenset(),
}

_UNSET = object()


def can_transition(source: SignatureRequestStatus, target: SignatureRequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[source]


class SignatureLifecycleService:
    """Owns the state machine of signature requests and the signatures they produce."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store: StoreClientInterface,
        dispatcher: EventDispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._dispatcher = dispatcher
        self._clock = clock
        self.default_expires_in_days = helper_config.get_number_val("SIGNATURE_DEFAULT_EXPIRES_DAYS", default=14)

        self.documents = StoreRepository(store, SIGNABLE_DOCUMENTS, SignableDocument, exclude={"signature_fields"})
        self.requests = StoreRepository(store, SIGNATURE_REQUESTS, SignatureRequest)
        self.signatures = StoreRepository(store, DIGITAL_SIGNATURES, DigitalSignature)

    ##########################################
    ############## TRANSITIONS ###############
    ##########################################

    async def _transition(self, request_id: str, target: SignatureRequestStatus, **changes) -> SignatureRequest:
        """Move a request to target with a conditional write on its current status.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If target is not reachable from the current status,
                or the status changed between read and write.
        """
        current = await self.requests.require(request_id)
        if not can_transition(current.status, target):
            raise InvalidStateError(
                f"Signature request {request_id} cannot move from {current.status.value} to {target.value}.",
                current_status=current.status.value,
            )
        updated = current.model_copy(update={"status": target, **changes})
        await self._conditional_write(current, updated)
        self.logging.info("Signature request %s: %s -> %s", request_id, current.status.value, target.value)
        return updated

    async def _conditional_write(self, current: SignatureRequest, updated: SignatureRequest) -> None:
        expected = {"status": current.status, "reminders_sent": current.reminders_sent}
        if await self.requests.replace(updated, expected=expected):
            return
        latest = await self.requests.get(current.id)
        if latest is None:
            raise NotFoundError("SignatureRequest", current.id)
        raise InvalidStateError(
            f"Signature request {current.id} changed concurrently (now {latest.status.value}).",
            current_status=latest.status.value,
        )

    ##########################################
    ############### OPERATIONS ###############
    ##########################################

    async def create_request(
        self,
        document_id: str,
        document_type: DocumentType,
        requested_by: str,
        requested_from: str,
        message: str | None = None,
        expires_in_days: int | None | object = _UNSET,
    ) -> SignatureRequest:
        """Open a new PENDING signature request.

        Args:
            document_id (str): The document to be signed.
            document_type (DocumentType): Type of the document.
            requested_by (str): User asking for the signature.
            requested_from (str): User who has to sign.
            message (str | None): Optional note shown to the signer.
            expires_in_days (int | None): Days until the request expires. None means it never
                expires; omitted means SIGNATURE_DEFAULT_EXPIRES_DAYS (14).

        Raises:
            NotFoundError: If the document does not exist.
            ValidationError: If the document is a template or expires_in_days is not positive.
        """
        if expires_in_days is _UNSET:
            expires_in_days = self.default_expires_in_days
        if expires_in_days is not None and expires_in_days <= 0:
            raise ValidationError(f"expires_in_days must be positive, got {expires_in_days}.")

        document = await self.documents.require(document_id)
        if document.is_template:
            raise ValidationError(f"Document {document_id} is a template and cannot be signed.")

        now = self._clock()
        request = SignatureRequest(
            document_id=document_id,
            document_type=document_type,
            requested_by=requested_by,
            requested_from=requested_from,
            requested_at=now,
            expires_at=now + timedelta(days=expires_in_days) if expires_in_days is not None else None,
            message=message,
        )
        await self.requests.insert(request)
        self.logging.info(
            "Created signature request %s for document %s, signer %s, expires %s",
            request.id, document_id, requested_from, request.expires_at,
        )
        self._emit(EventKind.SIGNATURE_REQUESTED, request.requested_from, request, title=document.title)
        return request

    async def record_view(self, request_id: str) -> SignatureRequest:
        """Mark a request as VIEWED. Repeated calls on a VIEWED request are no-ops.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is already in a terminal state.
        """
        current = await self.requests.require(request_id)
        if current.status == S.VIEWED:
            return current
        return await self._transition(request_id, S.VIEWED)

    async def complete_request(self, request_id: str, signature: DigitalSignature) -> SignatureRequest:
        """Attach a signature and move the request to COMPLETED.

        The signature record is inserted first and removed again whenever the status
        write does not go through, so one request never owns two signature records.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is terminal or changed concurrently.
            PersistenceError: If the store fails.
        """
        current = await self.requests.require(request_id)
        if not can_transition(current.status, S.COMPLETED):
            raise InvalidStateError(
                f"Signature request {request_id} is already {current.status.value}.",
                current_status=current.status.value,
            )

        now = self._clock()
        signature = signature.model_copy(update={
            "document_id": current.document_id,
            "document_type": current.document_type,
        })
        await self.signatures.insert(signature)

        updated = current.model_copy(update={"status": S.COMPLETED, "completed_at": now, "signature_id": signature.id})
        try:
            await self._conditional_write(current, updated)
        except BaseException:
            await self._discard_signature(signature.id, request_id)
            raise

        self.logging.info("Signature request %s completed with signature %s", request_id, signature.id)
        self._emit(EventKind.SIGNATURE_COMPLETED, updated.requested_by, updated, signature_id=signature.id)
        return updated

    async def _discard_signature(self, signature_id: str, request_id: str) -> None:
        try:
            await self.signatures.delete(signature_id)
        except PersistenceError as exc:
            self.logging.error(
                "Could not remove signature %s of unfinished request %s: %s", signature_id, request_id, exc
            )

    async def decline_request(self, request_id: str, reason: str | None = None) -> SignatureRequest:
        """Signer refuses to sign.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is already terminal.
        """
        updated = await self._transition(request_id, S.DECLINED, completed_at=self._clock())
        if reason:
            self.logging.info("Signature request %s declined: %s", request_id, reason)
        return updated

    async def cancel_request(self, request_id: str) -> SignatureRequest:
        """Requester withdraws the request.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is already terminal.
        """
        return await self._transition(request_id, S.CANCELLED, completed_at=self._clock())

    async def send_reminder(self, request_id: str, now: datetime | None = None) -> bool:
        """Count a reminder against an open request.

        reminders_sent and last_reminder_sent are written together in one conditional write.

        Returns:
            bool: False if the request is terminal or changed concurrently, True otherwise.

        Raises:
            NotFoundError: If the request does not exist.
        """
        current = await self.requests.require(request_id)
        if current.status not in OPEN_STATUSES:
            self.logging.debug("Skipping reminder for %s request %s", current.status.value, request_id)
            return False
        updated = current.model_copy(update={
            "reminders_sent": current.reminders_sent + 1,
            "last_reminder_sent": now or self._clock(),
        })
        try:
            await self._conditional_write(current, updated)
        except InvalidStateError as exc:
            self.logging.warning("Reminder for request %s not recorded: %s", request_id, exc)
            return False
        return True

    async def expire(self, request_id: str, now: datetime | None = None) -> SignatureRequest:
        """System-driven expiry of an open request whose expires_at has been reached.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is terminal, has no expiry, or is not yet due.
        """
        now = now or self._clock()
        current = await self.requests.require(request_id)
        if current.expires_at is None or now < current.expires_at:
            raise InvalidStateError(
                f"Signature request {request_id} is not due to expire (expires_at={current.expires_at}).",
                current_status=current.status.value,
            )
        return await self._transition(request_id, S.EXPIRED, completed_at=now)

    ##########################################
    ########## SIGNATURE VALIDITY ############
    ##########################################

    async def invalidate(self, signature_id: str, reason: str) -> DigitalSignature:
        """Revoke a signature after the fact. The owning request keeps its status.

        Raises:
            NotFoundError: If the signature does not exist.
        """
        current = await self.signatures.require(signature_id)
        updated = current.model_copy(update={
            "is_valid": False,
            "invalidated_at": self._clock(),
            "invalidation_reason": reason,
        })
        if not await self.signatures.replace(updated):
            raise NotFoundError("DigitalSignature", signature_id)
        self.logging.warning("Signature %s invalidated: %s", signature_id, reason)
        return updated

    async def verify(self, signature_id: str) -> DigitalSignature:
        """Mark a signature as valid again, clearing any previous invalidation.

        Raises:
            NotFoundError: If the signature does not exist.
        """
        current = await self.signatures.require(signature_id)
        if current.is_valid:
            return current
        updated = current.model_copy(update={"is_valid": True, "invalidated_at": None, "invalidation_reason": None})
        if not await self.signatures.replace(updated):
            raise NotFoundError("DigitalSignature", signature_id)
        return updated

    ##########################################
    ################ QUERIES #################
    ##########################################

    async def get_request(self, request_id: str) -> SignatureRequest:
        return await self.requests.require(request_id)

    async def list_requests_for_document(self, document_id: str) -> list[SignatureRequest]:
        return await self.requests.list(lambda r: r.document_id == document_id)

    async def list_requests_for_recipient(self, recipient_id: str) -> list[SignatureRequest]:
        return await self.requests.list(lambda r: r.requested_from == recipient_id)

    async def list_open_requests(self) -> list[SignatureRequest]:
        return await self.requests.list(lambda r: r.status in OPEN_STATUSES)

    async def list_signatures_for_document(self, document_id: str) -> list[DigitalSignature]:
        return await self.signatures.list(lambda s: s.document_id == document_id)

    async def list_signatures_by_signer(self, signer_id: str) -> list[DigitalSignature]:
        return await self.signatures.list(lambda s: s.signed_by == signer_id)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _emit(self, kind: EventKind, recipient_id: str, request: SignatureRequest, **context) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.dispatch(EngagementEvent(
            kind=kind,
            recipient_id=recipient_id,
            subject_id=request.id,
            context={"document_id": request.document_id, "document_type": request.document_type.value, **context},
        ))
