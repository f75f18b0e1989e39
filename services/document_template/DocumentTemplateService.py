"""Document template service.

Manages signable documents and their field layouts, and turns reusable templates
into signable document instances. Cloning is all-or-nothing: a failure while
copying fields removes everything written so far.
"""

from datetime import datetime
from typing import Callable

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.StoreRepository import SIGNABLE_DOCUMENTS, SIGNATURE_FIELDS, StoreRepository
from shared.exceptions.EngagementErrors import NotFoundError, PersistenceError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.engagement import DocumentType, SignableDocument, SignatureField, new_id, utc_now


def validate_field(field: SignatureField) -> None:
    """
    Raises:
        ValidationError: If the page number is below 1 or any coordinate/size is negative.
    """
    if field.page_number < 1:
        raise ValidationError(f"page_number must be at least 1, got {field.page_number}.")
    for name in ("x", "y", "width", "height"):
        if getattr(field, name) < 0:
            raise ValidationError(f"Signature field {name} must not be negative, got {getattr(field, name)}.")


class DocumentTemplateService:

    def __init__(
        self,
        helper_config: HelperConfig,
        store: StoreClientInterface,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._clock = clock
        self.documents = StoreRepository(store, SIGNABLE_DOCUMENTS, SignableDocument, exclude={"signature_fields"})
        self.fields = StoreRepository(store, SIGNATURE_FIELDS, SignatureField)

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    async def create_document(self, document: SignableDocument) -> SignableDocument:
        """Store a document and any fields it carries.

        Fields are re-pointed at the document's id before they are written.

        Raises:
            ValidationError: If a field has an invalid position or size.
        """
        fields = [f.model_copy(update={"document_id": document.id}) for f in document.signature_fields]
        for field in fields:
            validate_field(field)
        await self.documents.insert(document)
        for field in fields:
            await self.fields.insert(field)
        return document.model_copy(update={"signature_fields": fields})

    async def get_document(self, document_id: str) -> SignableDocument:
        """
        Raises:
            NotFoundError: If the document does not exist.
        """
        document = await self.documents.require(document_id)
        return document.model_copy(update={"signature_fields": await self.get_fields(document_id)})

    async def list_templates(self) -> list[SignableDocument]:
        return await self.documents.list(lambda d: d.is_template)

    async def list_documents_by_type(self, document_type: DocumentType) -> list[SignableDocument]:
        return await self.documents.list(lambda d: d.document_type == document_type)

    async def update_document_metadata(
        self,
        document_id: str,
        title: str | None = None,
        description: str | None = None,
    ) -> SignableDocument:
        """Edit title/description. Content and field layout are not touched here."""
        current = await self.documents.require(document_id)
        changes: dict = {"updated_at": self._clock()}
        if title is not None:
            changes["title"] = title
        if description is not None:
            changes["description"] = description
        updated = current.model_copy(update=changes)
        if not await self.documents.replace(updated):
            raise NotFoundError("SignableDocument", document_id)
        return updated

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and cascade to its fields."""
        removed = await self.documents.delete(document_id)
        if removed:
            for field in await self.get_fields(document_id):
                await self.fields.delete(field.id)
        return removed

    ##########################################
    ################ FIELDS ##################
    ##########################################

    async def add_field(self, field: SignatureField) -> SignatureField:
        """
        Raises:
            NotFoundError: If the field's document does not exist.
            ValidationError: If the field has an invalid position or size.
        """
        validate_field(field)
        await self.documents.require(field.document_id)
        return await self.fields.insert(field)

    async def get_fields(self, document_id: str) -> list[SignatureField]:
        return await self.fields.list(lambda f: f.document_id == document_id)

    async def update_field(self, field: SignatureField) -> SignatureField:
        validate_field(field)
        if not await self.fields.replace(field):
            raise NotFoundError("SignatureField", field.id)
        return field

    async def delete_field(self, field_id: str) -> bool:
        return await self.fields.delete(field_id)

    ##########################################
    ################ CLONING #################
    ##########################################

    async def clone_from_template(self, template_id: str, title: str, created_by: str) -> SignableDocument:
        """Create a signable document from a template, deep-copying its field layout.

        Args:
            template_id (str): Id of a document with is_template=True.
            title (str): Title of the new document.
            created_by (str): User creating the document.

        Returns:
            SignableDocument: The new document with its copied fields attached.

        Raises:
            NotFoundError: If template_id does not resolve to a template.
            PersistenceError: If any write fails. Partial writes are rolled back first, also
                when the clone is cancelled.
        """
        template = await self.documents.get(template_id)
        if template is None or not template.is_template:
            raise NotFoundError("Template", template_id)
        template_fields = await self.get_fields(template_id)

        now = self._clock()
        document = template.model_copy(update={
            "id": new_id(),
            "title": title,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
            "is_template": False,
            "signature_fields": [],
        })
        copied: list[SignatureField] = []

        try:
            await self.documents.insert(document)
            for field in template_fields:
                field_copy = field.model_copy(update={"id": new_id(), "document_id": document.id})
                await self.fields.insert(field_copy)
                copied.append(field_copy)
        except BaseException as exc:
            self.logging.error(
                "Cloning template %s failed after %d of %d fields, rolling back: %s",
                template_id, len(copied), len(template_fields), exc,
            )
            await self._rollback_clone(document.id, copied)
            raise

        self.logging.info(
            "Cloned template %s into document %s with %d fields", template_id, document.id, len(copied)
        )
        return document.model_copy(update={"signature_fields": copied})

    async def _rollback_clone(self, document_id: str, copied: list[SignatureField]) -> None:
        for field in copied:
            try:
                await self.fields.delete(field.id)
            except PersistenceError as exc:
                self.logging.error("Rollback could not delete field %s: %s", field.id, exc)
        try:
            await self.documents.delete(document_id)
        except PersistenceError as exc:
            self.logging.error("Rollback could not delete document %s: %s", document_id, exc)
