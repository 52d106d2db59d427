# tests/domains/test_hrm_n.py

"""
'hrm' 도메인 (근무 일정, 휴식시간, 휴가, 급여 대장) 관련 API 엔드포인트에 대한 통합 테스트 모듈입니다.
"""

import pytest
from pydantic import ValidationError
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.hrm.crud import notification_severity, summarize_rest
from yachtpms.domains.hrm import schemas as hrm_schemas
from yachtpms.domains.ntf import models as ntf_models
from yachtpms.domains.shared import models as shared_models
from yachtpms.domains.usr import models as usr_models


async def _in_app_keys(db: AsyncSession, user_id: int):
    return (await db.execute(
        select(ntf_models.NotificationEvent.dedupe_key).where(
            ntf_models.NotificationEvent.user_id == user_id,
            ntf_models.NotificationEvent.channel == "in_app",
        )
    )).scalars().all()


# =============================================================================
# 1. 순수 헬퍼
# =============================================================================
def test_hrm_helpers():
    assert summarize_rest([])["compliance_rate"] == 100
    assert notification_severity("hrm.rest_non_compliance") == "critical"
    assert notification_severity("hrm.leave_rejected") == "critical"
    assert notification_severity("hrm.leave_pending_approval") == "warn"
    assert notification_severity("hrm.payroll_published") == "info"


def test_schedule_and_period_formats():
    base = {"yacht_id": 1, "user_id": 1, "work_date": "2026-03-02T00:00:00Z"}
    created = hrm_schemas.ScheduleCreate(**base, start_time="00:00", end_time="23:59")
    assert (created.start_time, created.end_time) == ("00:00", "23:59")

    for bad in ("24:00", "7:30", "07:60", "0730"):
        with pytest.raises(ValidationError):
            hrm_schemas.ScheduleCreate(**base, start_time="08:00", end_time=bad)

    assert hrm_schemas.ScheduleUpdate(notes="x").start_time is None
    with pytest.raises(ValidationError):
        hrm_schemas.ScheduleUpdate(start_time="25:00")

    assert hrm_schemas.PayrollGenerate(yacht_id=1, period="2026-12").period == "2026-12"
    for bad in ("2026-3", "2026-13", "2026-00", "202603"):
        with pytest.raises(ValidationError):
            hrm_schemas.PayrollGenerate(yacht_id=1, period=bad)


# =============================================================================
# 2. 승무원 선택 목록 / 근무 일정
# =============================================================================
@pytest.mark.asyncio
async def test_crew_options_exclude_inactive(
    captain_client: AsyncClient,
    user_factory,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
):
    await user_factory("former@example.com", usr_models.UserRole.CREW_MEMBER, yacht=test_yacht, is_active=False)

    response = await captain_client.get("/api/v1/hrm/crew-options", params={"yacht_id": test_yacht.id})
    assert response.status_code == 200
    assert sorted(option["name"] for option in response.json()) == ["Carl Captain", "Cory Crew"]

    missing = await captain_client.get("/api/v1/hrm/crew-options")
    assert missing.status_code == 400


@pytest.mark.asyncio
async def test_schedule_create_notifies_crew_member(
    hod_client: AsyncClient,
    crew_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
):
    payload = {
        "yacht_id": test_yacht.id,
        "user_id": test_crew.id,
        "work_date": "2026-04-02T00:00:00Z",
        "start_time": "08:00",
        "end_time": "17:30",
        "rest_hours": 11,
        "notes": " Deck wash ",
    }
    response = await hod_client.post("/api/v1/hrm/schedules", json=payload)
    assert response.status_code == 201
    schedule = response.json()
    assert schedule["notes"] == "Deck wash"
    assert f"hrm-schedule-{schedule['id']}-created-{test_crew.id}" in await _in_app_keys(db_session, test_crew.id)

    crew_attempt = await crew_client.post("/api/v1/hrm/schedules", json=payload)
    assert crew_attempt.status_code == 403

    bad_time = await hod_client.post("/api/v1/hrm/schedules", json={**payload, "end_time": "24:00"})
    assert bad_time.status_code == 422

    listed = await crew_client.get(
        "/api/v1/hrm/schedules",
        params={"yacht_id": test_yacht.id, "from": "2026-04-01T00:00:00Z", "to": "2026-04-03T00:00:00Z"},
    )
    assert [item["id"] for item in listed.json()] == [schedule["id"]]


@pytest.mark.asyncio
async def test_schedule_update(hod_client: AsyncClient, test_yacht: fleet_models.Yacht, test_hod: usr_models.User):
    schedule_id = (await hod_client.post("/api/v1/hrm/schedules", json={
        "yacht_id": test_yacht.id,
        "user_id": test_hod.id,
        "work_date": "2026-04-05T00:00:00Z",
        "start_time": "06:00",
        "end_time": "12:00",
    })).json()["id"]

    empty = await hod_client.patch(f"/api/v1/hrm/schedules/{schedule_id}", json={})
    assert empty.status_code == 400
    assert empty.json()["detail"] == "No schedule fields to update"

    updated = await hod_client.patch(
        f"/api/v1/hrm/schedules/{schedule_id}", json={"end_time": "14:00", "notes": "  "}
    )
    assert updated.status_code == 200
    assert updated.json()["end_time"] == "14:00"
    assert updated.json()["notes"] is None

    missing = await hod_client.patch("/api/v1/hrm/schedules/9999", json={"end_time": "14:00"})
    assert missing.status_code == 404


# =============================================================================
# 3. 휴식시간 신고
# =============================================================================
@pytest.mark.asyncio
async def test_rest_declaration_non_compliance_alert(
    crew_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
    test_captain: usr_models.User,
):
    """휴식시간 10시간 미만 신고는 경보를 만들고 감독자에게 알립니다."""
    short_rest = await crew_client.post("/api/v1/hrm/rest-hours/declarations", json={
        "yacht_id": test_yacht.id,
        "user_id": test_crew.id,
        "work_date": "2026-04-10T00:00:00Z",
        "worked_hours": 15,
        "rest_hours": 8,
    })
    assert short_rest.status_code == 201
    assert short_rest.json()["compliant"] is False

    dedupe_key = f"hrm-rest-noncompliant-{test_crew.id}-2026-04-10"
    alert = (await db_session.execute(
        select(shared_models.Alert).where(shared_models.Alert.dedupe_key == dedupe_key)
    )).scalars().first()
    assert alert.severity == "warn"
    assert alert.assigned_to == test_captain.id
    assert f"{dedupe_key}-{test_captain.id}" in await _in_app_keys(db_session, test_captain.id)

    enough_rest = await crew_client.post("/api/v1/hrm/rest-hours/declarations", json={
        "yacht_id": test_yacht.id,
        "user_id": test_crew.id,
        "work_date": "2026-04-11T00:00:00Z",
        "worked_hours": 12.5,
        "rest_hours": 11.5,
    })
    assert enough_rest.json()["compliant"] is True

    report = (await crew_client.get(
        "/api/v1/hrm/rest-hours/report", params={"yacht_id": test_yacht.id, "user_id": test_crew.id}
    )).json()
    assert report["summary"] == {
        "total": 2,
        "compliant": 1,
        "non_compliant": 1,
        "compliance_rate": 50,
        "total_worked_hours": 27.5,
        "total_rest_hours": 19.5,
    }
    assert [item["rest_hours"] for item in report["items"]] == [8, 11.5]


# =============================================================================
# 4. 휴가
# =============================================================================
@pytest.mark.asyncio
async def test_leave_approval_flow(
    crew_client: AsyncClient,
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
    test_captain: usr_models.User,
):
    payload = {
        "yacht_id": test_yacht.id,
        "user_id": test_crew.id,
        "type": "Annual",
        "start_date": "2026-05-01T00:00:00Z",
        "end_date": "2026-05-10T00:00:00Z",
    }
    backwards = await crew_client.post("/api/v1/hrm/leaves", json={**payload, "end_date": "2026-04-20T00:00:00Z"})
    assert backwards.status_code == 400
    assert backwards.json()["detail"] == "end_date cannot be earlier than start_date"

    leave = (await crew_client.post("/api/v1/hrm/leaves", json=payload)).json()
    assert leave["status"] == "Pending"
    assert f"hrm-leave-{leave['id']}-pending-{test_captain.id}" in await _in_app_keys(db_session, test_captain.id)

    crew_attempt = await crew_client.post(f"/api/v1/hrm/leaves/{leave['id']}/approve")
    assert crew_attempt.status_code == 403

    approved = await captain_client.post(f"/api/v1/hrm/leaves/{leave['id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["status"] == "Approved"
    assert approved.json()["reviewed_by"] == test_captain.id
    assert f"hrm-leave-{leave['id']}-approved-{test_crew.id}" in await _in_app_keys(db_session, test_crew.id)

    again = await captain_client.post(f"/api/v1/hrm/leaves/{leave['id']}/reject")
    assert again.status_code == 409
    assert again.json()["detail"] == "Only pending leave requests can be rejected"


@pytest.mark.asyncio
async def test_leave_reject_and_list(
    crew_client: AsyncClient,
    captain_client: AsyncClient,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
):
    base = {"yacht_id": test_yacht.id, "user_id": test_crew.id, "type": "Medical"}
    first = (await crew_client.post("/api/v1/hrm/leaves", json={
        **base, "start_date": "2026-06-01T00:00:00Z", "end_date": "2026-06-02T00:00:00Z",
    })).json()
    await crew_client.post("/api/v1/hrm/leaves", json={
        **base, "start_date": "2026-07-01T00:00:00Z", "end_date": "2026-07-03T00:00:00Z",
    })

    rejected = await captain_client.post(
        f"/api/v1/hrm/leaves/{first['id']}/reject", json={"reason": " Crew change in Palma "}
    )
    assert rejected.json()["status"] == "Rejected"
    assert rejected.json()["rejection_reason"] == "Crew change in Palma"

    pending = (await captain_client.get(
        "/api/v1/hrm/leaves", params={"yacht_id": test_yacht.id, "status": "Pending"}
    )).json()
    assert [item["start_date"][:10] for item in pending] == ["2026-07-01"]


# =============================================================================
# 5. 급여 대장
# =============================================================================
@pytest.mark.asyncio
async def test_payroll_generate_and_publish(
    management_client: AsyncClient,
    crew_client: AsyncClient,
    db_session: AsyncSession,
    user_factory,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
    test_management: usr_models.User,
):
    """활성 승무원마다 급여 라인이 만들어지고, 발행은 한 번만 적용됩니다."""
    await user_factory("gone@example.com", usr_models.UserRole.CREW_MEMBER, yacht=test_yacht, is_active=False)

    generated = await management_client.post(
        "/api/v1/hrm/payrolls/generate", json={"yacht_id": test_yacht.id, "period": "2026-03", "currency": "eur"}
    )
    assert generated.status_code == 201
    payroll = generated.json()
    assert payroll["currency"] == "EUR"
    assert payroll["status"] == "Draft"
    assert sorted(line["user_id"] for line in payroll["lines"]) == sorted([test_crew.id, test_management.id])
    assert all(line["net_amount"] == 0 for line in payroll["lines"])

    duplicate = await management_client.post(
        "/api/v1/hrm/payrolls/generate", json={"yacht_id": test_yacht.id, "period": "2026-03"}
    )
    assert duplicate.status_code == 409

    bad_period = await management_client.post(
        "/api/v1/hrm/payrolls/generate", json={"yacht_id": test_yacht.id, "period": "2026-3"}
    )
    assert bad_period.status_code == 422

    crew_attempt = await crew_client.get(f"/api/v1/hrm/payrolls/{payroll['id']}")
    assert crew_attempt.status_code == 403

    detail = (await management_client.get(f"/api/v1/hrm/payrolls/{payroll['id']}")).json()
    assert sorted(line["user_name"] for line in detail["lines"]) == ["Cory Crew", "Olga Office"]

    published = await management_client.post(f"/api/v1/hrm/payrolls/{payroll['id']}/publish")
    assert published.status_code == 200
    assert published.json()["status"] == "Published"
    assert f"hrm-payroll-{payroll['id']}-published-{test_crew.id}" in await _in_app_keys(db_session, test_crew.id)

    republished = await management_client.post(f"/api/v1/hrm/payrolls/{payroll['id']}/publish")
    assert republished.json()["published_at"] == published.json()["published_at"]

    actions = (await db_session.execute(
        select(shared_models.AuditEvent.action).where(
            shared_models.AuditEvent.entity_type == "HrmPayroll",
            shared_models.AuditEvent.entity_id == str(payroll["id"]),
        )
    )).scalars().all()
    assert sorted(actions) == ["generate_payroll", "publish_payroll"]

    listed = (await management_client.get(
        "/api/v1/hrm/payrolls", params={"yacht_id": test_yacht.id, "period": "2026-03"}
    )).json()
    assert [item["id"] for item in listed] == [payroll["id"]]
