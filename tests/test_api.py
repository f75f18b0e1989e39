from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from server.api.api_app import app
from shared.models.engagement import DocumentType, SignableDocument, SignatureFieldType
from tests.conftest import make_field


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("ROOT_DIR", str(tmp_path))
    with TestClient(app) as test_client:
        yield test_client


def seed(client: TestClient, document: SignableDocument) -> SignableDocument:
    return client.portal.call(client.app.state.template_service.create_document, document)


@pytest.fixture
def contract(client) -> SignableDocument:
    return seed(client, SignableDocument(
        title="Deck contract",
        content_ref="files/deck.pdf",
        document_type=DocumentType.CONTRACT,
        created_by="contractor-1",
    ))


def create_request(client, contract, **extra) -> dict:
    body = {
        "document_id": contract.id,
        "document_type": "CONTRACT",
        "requested_by": "contractor-1",
        "requested_from": "client-1",
        **extra,
    }
    response = client.post("/signature-requests", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_signature_request_flow(client, contract):
    request = create_request(client, contract, message="Please sign today")
    assert request["status"] == "PENDING"
    assert request["expires_at"] is not None

    assert client.post(f"/signature-requests/{request['id']}/view").json()["status"] == "VIEWED"

    response = client.post(
        f"/signature-requests/{request['id']}/complete",
        json={"signature_image_ref": "sig.png", "signed_by": "client-1", "ip_address": "10.0.0.8"},
    )
    assert response.status_code == 200
    completed = response.json()
    assert completed["status"] == "COMPLETED"
    assert completed["signature_id"]

    again = client.post(
        f"/signature-requests/{request['id']}/complete",
        json={"signature_image_ref": "sig.png", "signed_by": "client-1"},
    )
    assert again.status_code == 409
    assert again.json()["current_status"] == "COMPLETED"

    invalidated = client.post(f"/signatures/{completed['signature_id']}/invalidate", json={"reason": "wrong signer"})
    assert invalidated.json()["is_valid"] is False
    assert client.get(f"/signature-requests/{request['id']}").json()["status"] == "COMPLETED"


def test_explicit_null_expiry_never_expires(client, contract):
    assert create_request(client, contract, expires_in_days=None)["expires_at"] is None


def test_decline_cancel_and_remind(client, contract):
    declined = create_request(client, contract)
    assert client.post(f"/signature-requests/{declined['id']}/decline", json={"reason": "too pricey"}).json()["status"] == "DECLINED"
    reminder = client.post(f"/signature-requests/{declined['id']}/remind").json()
    assert reminder == {"request_id": declined["id"], "reminder_recorded": False}

    cancelled = create_request(client, contract)
    assert client.post(f"/signature-requests/{cancelled['id']}/cancel").json()["status"] == "CANCELLED"


def test_error_mapping(client, contract):
    assert client.get("/signature-requests/missing").status_code == 404
    assert client.post("/signature-requests/missing/view").status_code == 404
    response = client.post(
        "/signature-requests",
        json={
            "document_id": contract.id,
            "document_type": "CONTRACT",
            "requested_by": "contractor-1",
            "requested_from": "client-1",
            "expires_in_days": 0,
        },
    )
    assert response.status_code == 422
    assert client.post("/templates/missing/clone", json={"title": "x", "created_by": "y"}).status_code == 404


def test_clone_template(client):
    template = SignableDocument(
        title="Estimate template",
        content_ref="templates/estimate.pdf",
        document_type=DocumentType.ESTIMATE,
        created_by="contractor-1",
        is_template=True,
    )
    template.signature_fields = [make_field(template.id), make_field(template.id, 2, SignatureFieldType.DATE)]
    template = seed(client, template)

    response = client.post(f"/templates/{template.id}/clone", json={"title": "Estimate #7", "created_by": "pm-1"})
    assert response.status_code == 201
    document = response.json()
    assert document["is_template"] is False
    assert len(document["signature_fields"]) == 2
    assert {f["document_id"] for f in document["signature_fields"]} == {document["id"]}


def test_schedule_and_sweep(client):
    response = client.post(
        "/schedules",
        json={"project_id": "project-1", "frequency": "WEEKLY", "day_of_week": 3, "recipient_ids": ["client-1"]},
    )
    assert response.status_code == 201
    schedule = response.json()
    next_send = datetime.fromisoformat(schedule["next_scheduled_at"].replace("Z", "+00:00"))
    assert next_send.isoweekday() == 3
    assert (next_send.hour, next_send.minute) == (9, 0)

    assert client.post("/schedules", json={"project_id": "p", "frequency": "MONTHLY", "day_of_month": 40}).status_code == 422

    sweep = client.post("/sweep", json={"now": schedule["next_scheduled_at"]}).json()
    assert sweep["status"] == "completed"
    assert sweep["report"]["scheduled_sends"] == 1

    sent = client.post(f"/schedules/{schedule['id']}/sent").json()
    assert sent["last_sent_at"] is not None


def test_delivery_webhook(client):
    from shared.models.engagement import NotificationType, ProgressUpdate

    progress_service = client.app.state.progress_service
    update = client.portal.call(progress_service.create_progress_update, ProgressUpdate(
        project_id="project-1", title="Roof", description="Done", completion_percentage=90, created_by="pm-1",
    ))
    notification = client.portal.call(
        progress_service.record_notification, update.id, "client-1", NotificationType.EMAIL
    )

    response = client.post("/webhook/delivery", json={"notification_id": notification.id, "status": "READ"})
    assert response.status_code == 200
    assert response.json()["updated"] is True

    stored = client.portal.call(progress_service.list_notifications, update.id)[0]
    assert stored.delivery_status.value == "READ"
    assert stored.read_at is not None

    missing = client.post("/webhook/delivery", json={"notification_id": "missing", "status": "READ"})
    assert missing.status_code == 404
