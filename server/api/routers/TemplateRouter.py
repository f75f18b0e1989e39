from fastapi import APIRouter, Request

from server.models.requests import CloneTemplateRequest
from shared.models.engagement import SignableDocument

router = APIRouter(prefix="/templates", tags=["templates"])


@router.post("/{template_id}/clone", status_code=201)
async def clone_template(request: Request, template_id: str, body: CloneTemplateRequest) -> SignableDocument:
    """Create a signable document from a template, including a copy of every signature field.

    Args:
        request (Request): FastAPI request (provides app.state.template_service).
        template_id (str): Id of the template document.
        body (CloneTemplateRequest): Title and creator of the new document.

    Returns:
        SignableDocument: The new document with its copied fields.
    """
    template_service = request.app.state.template_service
    return await template_service.clone_from_template(template_id, title=body.title, created_by=body.created_by)
