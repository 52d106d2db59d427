# tests/domains/test_maint_n.py

"""
'maint' 도메인 (정비 작업 워크플로, 증빙, 요약/일정) 관련 API 엔드포인트에 대한 통합 테스트 모듈입니다.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database_base import utcnow
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.ntf import models as ntf_models
from yachtpms.domains.shared import models as shared_models
from yachtpms.domains.usr import models as usr_models


async def _alert(db: AsyncSession, dedupe_key: str):
    return (await db.execute(
        select(shared_models.Alert).where(shared_models.Alert.dedupe_key == dedupe_key)
    )).scalars().first()


async def _in_app_keys(db: AsyncSession, user_id: int):
    rows = (await db.execute(
        select(ntf_models.NotificationEvent).where(
            ntf_models.NotificationEvent.user_id == user_id,
            ntf_models.NotificationEvent.channel == "in_app",
        )
    )).scalars().all()
    return [row.dedupe_key for row in rows]


def _task_payload(yacht_id: int, **overrides):
    payload = {
        "yacht_id": yacht_id,
        "title": "Replace raw water impeller",
        "priority": "High",
        "due_date": (utcnow() + timedelta(days=10)).isoformat(),
    }
    payload.update(overrides)
    return payload


# =============================================================================
# 1. 생성 / 조회 / 수정
# =============================================================================
@pytest.mark.asyncio
async def test_create_task_creates_due_alert_and_assignment_notice(
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_engineer: usr_models.User,
):
    """작업 생성 시 마감 경보가 생기고, 담당자에게 배정 알림이 갑니다."""
    response = await captain_client.post(
        "/api/v1/maint/tasks",
        json=_task_payload(test_yacht.id, assigned_to_user_id=test_engineer.id),
    )
    assert response.status_code == 201
    task = response.json()
    assert task["status"] == "Draft"
    assert task["evidences"] == []

    alert = await _alert(db_session, f"maintenance-task-{task['id']}-due")
    assert alert is not None
    assert alert.severity == "warn"
    assert alert.assigned_to == test_engineer.id

    keys = await _in_app_keys(db_session, test_engineer.id)
    assert f"maintenance-task-{task['id']}-assigned-{test_engineer.id}" in keys


@pytest.mark.asyncio
async def test_create_task_permissions(
    crew_client: AsyncClient,
    captain_client: AsyncClient,
    test_yacht: fleet_models.Yacht,
    other_yacht: fleet_models.Yacht,
):
    crew_attempt = await crew_client.post("/api/v1/maint/tasks", json=_task_payload(test_yacht.id))
    assert crew_attempt.status_code == 403

    out_of_scope = await captain_client.post("/api/v1/maint/tasks", json=_task_payload(other_yacht.id))
    assert out_of_scope.status_code == 403
    assert out_of_scope.json()["detail"] == "Yacht scope violation"


@pytest.mark.asyncio
async def test_list_tasks_requires_yacht_id(captain_client: AsyncClient):
    response = await captain_client.get("/api/v1/maint/tasks")
    assert response.status_code == 400
    assert response.json()["detail"] == "yachtId is required for this endpoint"


@pytest.mark.asyncio
async def test_list_tasks_filters(captain_client: AsyncClient, test_yacht: fleet_models.Yacht, test_engineer):
    await captain_client.post("/api/v1/maint/tasks", json=_task_payload(test_yacht.id, title="A"))
    await captain_client.post(
        "/api/v1/maint/tasks", json=_task_payload(test_yacht.id, title="B", assigned_to_user_id=test_engineer.id)
    )

    all_tasks = await captain_client.get("/api/v1/maint/tasks", params={"yacht_id": test_yacht.id})
    assert len(all_tasks.json()) == 2

    assigned = await captain_client.get(
        "/api/v1/maint/tasks", params={"yacht_id": test_yacht.id, "assigned_to": test_engineer.id}
    )
    assert [t["title"] for t in assigned.json()] == ["B"]


@pytest.mark.asyncio
async def test_update_task_reassignment_and_validation(
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
):
    created = (await captain_client.post("/api/v1/maint/tasks", json=_task_payload(test_yacht.id))).json()

    empty = await captain_client.patch(f"/api/v1/maint/tasks/{created['id']}", json={})
    assert empty.status_code == 400
    assert empty.json()["detail"] == "No maintenance fields to update"

    response = await captain_client.patch(
        f"/api/v1/maint/tasks/{created['id']}",
        json={"assigned_to_user_id": test_crew.id, "description": "  "},
    )
    assert response.status_code == 200
    assert response.json()["assigned_to_user_id"] == test_crew.id
    assert response.json()["description"] is None

    keys = await _in_app_keys(db_session, test_crew.id)
    assert f"maintenance-task-{created['id']}-reassigned-{test_crew.id}" in keys


# =============================================================================
# 2. 워크플로 (제출 / 승인 / 반려 / 완료)
# =============================================================================
@pytest.mark.asyncio
async def test_full_workflow_submit_approve_complete(
    authorized_client_factory,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
    test_engineer: usr_models.User,
    test_crew: usr_models.User,
):
    async with authorized_client_factory(test_captain) as captain, \
            authorized_client_factory(test_engineer) as engineer, \
            authorized_client_factory(test_crew) as crew:
        task = (await captain.post("/api/v1/maint/tasks", json=_task_payload(test_yacht.id))).json()
        task_id = task["id"]

        submitted = await captain.post(f"/api/v1/maint/tasks/{task_id}/submit")
        assert submitted.status_code == 200
        assert submitted.json()["status"] == "Submitted"
        assert submitted.json()["submitted_at"] is not None

        approval_alert = await _alert(db_session, f"maintenance-task-{task_id}-approval")
        assert approval_alert is not None and approval_alert.resolved_at is None
        # 제출자를 제외한 검토자에게 알림이 갑니다.
        assert f"maintenance-task-{task_id}-submitted-{test_engineer.id}" in await _in_app_keys(db_session, test_engineer.id)
        assert not any(key.endswith("submitted-%s" % test_captain.id) for key in await _in_app_keys(db_session, test_captain.id))

        early_complete = await crew.post(f"/api/v1/maint/tasks/{task_id}/complete")
        assert early_complete.status_code == 400

        approved = await engineer.post(f"/api/v1/maint/tasks/{task_id}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "Approved"
        assert approved.json()["reviewed_by"] == test_engineer.id
        assert (await _alert(db_session, f"maintenance-task-{task_id}-approval")).resolved_at is not None

        completed = await crew.post(
            f"/api/v1/maint/tasks/{task_id}/complete", json={"work_hours": 2.5, "notes": " Impeller replaced "}
        )
        assert completed.status_code == 200
        body = completed.json()
        assert body["status"] == "Completed"
        assert body["work_hours"] == 2.5
        assert body["notes"] == "Impeller replaced"
        assert (await _alert(db_session, f"maintenance-task-{task_id}-due")).resolved_at is not None

        locked = await captain.patch(f"/api/v1/maint/tasks/{task_id}", json={"title": "Too late"})
        assert locked.status_code == 400
        assert locked.json()["detail"] == "Task cannot be edited in final state"

    actions = (await db_session.execute(
        select(shared_models.AuditEvent.action)
        .where(shared_models.AuditEvent.entity_type == "MaintenanceTask", shared_models.AuditEvent.entity_id == str(task_id))
        .order_by(shared_models.AuditEvent.id.asc())
    )).scalars().all()
    assert actions == ["create_task", "submit_task", "approve_task", "complete_task"]


@pytest.mark.asyncio
async def test_reject_and_resubmit(captain_client: AsyncClient, test_yacht: fleet_models.Yacht):
    task_id = (await captain_client.post("/api/v1/maint/tasks", json=_task_payload(test_yacht.id))).json()["id"]

    not_submitted = await captain_client.post(f"/api/v1/maint/tasks/{task_id}/approve")
    assert not_submitted.status_code == 400
    assert not_submitted.json()["detail"] == "Only Submitted tasks can be approved"

    await captain_client.post(f"/api/v1/maint/tasks/{task_id}/submit")
    rejected = await captain_client.post(f"/api/v1/maint/tasks/{task_id}/reject", json={"reason": "Missing parts list"})
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "Rejected"
    assert rejected.json()["rejection_reason"] == "Missing parts list"

    resubmitted = await captain_client.post(f"/api/v1/maint/tasks/{task_id}/submit")
    assert resubmitted.status_code == 200
    assert resubmitted.json()["status"] == "Submitted"
    assert resubmitted.json()["rejection_reason"] is None


@pytest.mark.asyncio
async def test_crew_cannot_approve(
    captain_client: AsyncClient, crew_client: AsyncClient, test_yacht: fleet_models.Yacht
):
    task_id = (await captain_client.post("/api/v1/maint/tasks", json=_task_payload(test_yacht.id))).json()["id"]
    await captain_client.post(f"/api/v1/maint/tasks/{task_id}/submit")

    response = await crew_client.post(f"/api/v1/maint/tasks/{task_id}/approve")
    assert response.status_code == 403


# =============================================================================
# 3. 증빙 / 요약 / 일정
# =============================================================================
@pytest.mark.asyncio
async def test_add_evidence(captain_client: AsyncClient, test_yacht: fleet_models.Yacht, test_captain):
    task_id = (await captain_client.post("/api/v1/maint/tasks", json=_task_payload(test_yacht.id))).json()["id"]

    response = await captain_client.post(
        f"/api/v1/maint/tasks/{task_id}/evidences",
        json={"file_url": "https://files.example.com/impeller.jpg", "comment": "Before"},
    )
    assert response.status_code == 201
    assert response.json()["uploaded_by"] == test_captain.id

    detail = await captain_client.get(f"/api/v1/maint/tasks/{task_id}")
    assert [e["comment"] for e in detail.json()["evidences"]] == ["Before"]


@pytest.mark.asyncio
async def test_summary_and_calendar(captain_client: AsyncClient, test_yacht: fleet_models.Yacht):
    await captain_client.post("/api/v1/maint/tasks", json=_task_payload(
        test_yacht.id, title="Overdue", due_date=(utcnow() - timedelta(days=1)).isoformat()
    ))
    await captain_client.post("/api/v1/maint/tasks", json=_task_payload(
        test_yacht.id, title="Soon", due_date=(utcnow() + timedelta(days=5)).isoformat()
    ))
    await captain_client.post("/api/v1/maint/tasks", json=_task_payload(
        test_yacht.id, title="Far", due_date=(utcnow() + timedelta(days=60)).isoformat()
    ))

    summary = (await captain_client.get(f"/api/v1/maint/summary/{test_yacht.id}")).json()
    assert summary["total"] == 3
    assert summary["draft"] == 3
    assert summary["overdue"] == 1

    calendar = (await captain_client.get(f"/api/v1/maint/calendar/{test_yacht.id}")).json()
    assert [item["title"] for item in calendar] == ["Soon"]

    wide = (await captain_client.get(f"/api/v1/maint/calendar/{test_yacht.id}", params={"window_days": 90})).json()
    assert [item["title"] for item in wide] == ["Soon", "Far"]


@pytest.mark.asyncio
async def test_overdue_task_alert_is_critical(
    captain_client: AsyncClient, db_session: AsyncSession, test_yacht: fleet_models.Yacht
):
    task_id = (await captain_client.post("/api/v1/maint/tasks", json=_task_payload(
        test_yacht.id, priority="Low", due_date=(utcnow() - timedelta(hours=2)).isoformat()
    ))).json()["id"]

    alert = await _alert(db_session, f"maintenance-task-{task_id}-due")
    assert alert.severity == "critical"
