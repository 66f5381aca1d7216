"""HTTP surface: authentication, structured denials and an end-to-end training run."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import PASSWORD
from ctms.auth.middleware import hash_api_key
from ctms.database import get_db
from ctms.main import app
from ctms.models.enums import NotificationType
from ctms.services.notifications import InAppNotifier

ADMIN_KEY = "admin-test-key"
EMPLOYEE_KEY = "employee-test-key"


@pytest.fixture
async def client(services, session_factory, db, admin_user, employee_user):
    admin_user.api_key_hash = hash_api_key(ADMIN_KEY)
    employee_user.api_key_hash = hash_api_key(EMPLOYEE_KEY)
    await db.commit()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    previous = app.state.services
    app.state.services = services
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    app.state.services = previous


def _auth(key):
    return {"Authorization": f"Bearer {key}"}


async def test_health(client):
    """Health endpoint needs no credentials."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_key_rejected(client):
    """Requests without a Bearer key get 401."""
    response = await client.get("/v1/training-records")
    assert response.status_code == 401


async def test_unknown_key_rejected(client):
    """An unknown API key gets 403."""
    response = await client.get("/v1/training-records", headers=_auth("nope"))
    assert response.status_code == 403


async def test_denial_body_is_structured(client):
    """Service denials come back as error, reason and action."""
    response = await client.post(
        "/v1/training-records/assign",
        headers=_auth(EMPLOYEE_KEY),
        json={"training_id": "t-1", "due_date": "2030-01-01T00:00:00Z", "user_ids": []},
    )
    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "access_denied"
    assert body["reason"] == "ROLE_NOT_PERMITTED"
    assert body["action"] == "ASSIGN_TRAINING"


async def test_audit_log_requires_privilege(client, workflow, employee_user):
    """Role denials on admin-only routes are structured and audited."""
    response = await client.get("/v1/audit-logs", headers=_auth(EMPLOYEE_KEY))
    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "access_denied"
    assert body["reason"] == "ROLE_NOT_PERMITTED"
    assert body["action"] == "GET_AUDIT_LOGS"

    rejected = await workflow.audit("REJECTED_TRANSITION")
    assert len(rejected) == 1
    assert rejected[0].actor_id == employee_user.id
    assert rejected[0].metadata_json["action"] == "GET_AUDIT_LOGS"
    assert rejected[0].metadata_json["detail"]["path"] == "/v1/audit-logs"


async def test_sweep_requires_privilege(client, workflow):
    """Running a sweep as an employee is denied before the sweep starts."""
    response = await client.post("/v1/admin/sweeps/overdue", headers=_auth(EMPLOYEE_KEY))
    assert response.status_code == 403
    assert response.json()["reason"] == "ROLE_NOT_PERMITTED"
    assert len(await workflow.audit("REJECTED_TRANSITION")) == 1


async def test_training_run_over_http(client, clock, employee_user):
    """Master, revision, assessment, assignment and a passing submission end to end."""
    admin = _auth(ADMIN_KEY)
    employee = _auth(EMPLOYEE_KEY)

    master = await client.post(
        "/v1/training-masters",
        headers=admin,
        json={
            "training_code": "sop-qa-001",
            "title": "Document control",
            "training_type": "Document-driven",
            "validity_period": 1,
            "validity_unit": "years",
        },
    )
    assert master.status_code == 200
    assert master.json()["training_code"] == "SOP-QA-001"

    created = await client.post(
        "/v1/trainings",
        headers=admin,
        json={"code": "SOP-QA-001", "title": "Document control", "master_id": master.json()["id"]},
    )
    training_id = created.json()["training"]["id"]

    assessment = await client.post(
        "/v1/assessments",
        headers=admin,
        json={
            "training_id": training_id,
            "pass_percentage": 80,
            "max_attempts": 3,
            "questions": [
                {
                    "question_text": "Who approves SOPs?",
                    "options": ["QA", "HR", "IT", "Sales"],
                    "correct_answer": "QA",
                },
                {
                    "question_text": "Retention period?",
                    "options": ["1y", "5y", "10y", "never"],
                    "correct_answer": "10y",
                },
            ],
        },
    )
    assert assessment.status_code == 200

    assigned = await client.post(
        "/v1/training-records/assign",
        headers=admin,
        json={
            "training_id": training_id,
            "due_date": (clock() + timedelta(days=10)).isoformat(),
            "user_ids": [employee_user.id],
        },
    )
    assert assigned.json()["created_count"] == 1

    blocked = await client.get(f"/v1/trainings/{training_id}/assessment", headers=employee)
    assert blocked.status_code == 403
    assert blocked.json()["reason"] == "DOC_NOT_ACKNOWLEDGED"

    ack = await client.post(f"/v1/trainings/{training_id}/document/acknowledge", headers=employee)
    assert ack.json()["document_acknowledged"] is True

    view = await client.get(f"/v1/trainings/{training_id}/assessment", headers=employee)
    questions = view.json()["questions"]
    assert all(q["correct_answer"] is None for q in questions)

    answers = {questions[0]["id"]: "QA", questions[1]["id"]: "10y"}
    submitted = await client.post(
        "/v1/assessments/submit",
        headers=employee,
        json={"training_id": training_id, "answers": answers},
    )
    result = submitted.json()
    assert result["passed"] is True
    assert result["status"] == "COMPLETED"
    assert result["grade"] == "EXCELLENT"

    cert = await client.get(f"/v1/certificates/{result['certificate_id']}", headers=employee)
    assert cert.status_code == 200
    assert cert.json()["record_id"] == result["record_id"]

    patched = await client.patch(
        f"/v1/training-records/{result['record_id']}",
        headers=admin,
        json={"expiry_date": "2099-01-01T00:00:00Z"},
    )
    assert patched.status_code == 403
    assert patched.json()["reason"] == "MANUAL_EDIT_EXPIRY_DATE"

    logs = await client.get(
        "/v1/audit-logs", headers=admin, params={"training_record_id": result["record_id"]}
    )
    events = {entry["event_type"] for entry in logs.json()}
    assert {"ASSIGN_TRAINING", "ASSESSMENT_SUBMITTED", "CERTIFICATE_GENERATED"} <= events
    assert all("metadata" in entry for entry in logs.json())


async def test_governance_over_http(client):
    """Governance changes need a signature over HTTP as well."""
    admin = _auth(ADMIN_KEY)
    unsigned = await client.post(
        "/v1/governance", headers=admin, json={"name": "Baseline", "config": {"pass_threshold": 35}}
    )
    assert unsigned.status_code == 401
    assert unsigned.json()["reason"] == "SIGNATURE_REQUIRED"

    signed = await client.post(
        "/v1/governance",
        headers=admin,
        json={
            "name": "Baseline",
            "config": {"pass_threshold": 35},
            "signature_password": PASSWORD,
            "signature_reason": "Initial configuration",
        },
    )
    assert signed.status_code == 200
    current = await client.get("/v1/governance/current", headers=admin)
    assert current.json()["version"] == 1


async def test_unknown_sweep_name(client):
    """Unknown sweep names fail request validation."""
    response = await client.post("/v1/admin/sweeps/weekly", headers=_auth(ADMIN_KEY))
    assert response.status_code == 422


async def test_notifications_mark_read(client, session_factory, clock, employee_user):
    """Employees can list their notifications and mark one read."""
    notifier = InAppNotifier(session_factory, clock)
    await notifier.notify(
        employee_user.id,
        NotificationType.TRAINING_DUE_SOON,
        {"training_code": "SOP-001", "due_date": "2026-03-09"},
    )

    listed = await client.get("/v1/notifications", headers=_auth(EMPLOYEE_KEY))
    [notification] = listed.json()
    assert notification["read"] is False

    url = f"/v1/notifications/{notification['id']}/read"
    marked = await client.post(url, headers=_auth(EMPLOYEE_KEY))
    assert marked.json()["read"] is True
    unread = await client.get(
        "/v1/notifications", headers=_auth(EMPLOYEE_KEY), params={"unread_only": True}
    )
    assert unread.json() == []

    foreign = await client.post(url, headers=_auth(ADMIN_KEY))
    assert foreign.status_code == 404


async def test_analytics_dashboard_over_http(client):
    """Admins get the dashboard; employees get a structured denial."""
    response = await client.get(
        "/v1/analytics/dashboard", params={"department": "All Departments"}, headers=_auth(ADMIN_KEY)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["metrics"]["total_assigned"] == 0
    assert body["department"] == "All Departments"

    denied = await client.get("/v1/analytics/dashboard", headers=_auth(EMPLOYEE_KEY))
    assert denied.status_code == 403
    assert denied.json()["action"] == "VIEW_ANALYTICS"
