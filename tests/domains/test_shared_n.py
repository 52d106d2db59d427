# tests/domains/test_shared_n.py

"""
'shared' 도메인 (경보, 감사 이력) 관련 CRUD 및 API 엔드포인트에 대한 통합 테스트 모듈입니다.

- 경보 upsert / resolve 동작과 미해결 경보 정렬 검증.
- 감사 이력 기록과 수행자 이름이 붙은 trail 검증.
- 요트 범위와 관리자 권한 검증.
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database_base import utcnow
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.shared import crud as shared_crud
from yachtpms.domains.usr import models as usr_models


async def _upsert(db: AsyncSession, yacht_id: int, dedupe_key: str, **overrides):
    values = {
        "yacht_id": yacht_id,
        "module": "maintenance",
        "alert_type": "maintenance_due",
        "severity": "warn",
        "dedupe_key": dedupe_key,
    }
    values.update(overrides)
    return await shared_crud.alert.upsert(db, **values)


# =============================================================================
# 1. 경보 (Alert) CRUD
# =============================================================================
@pytest.mark.asyncio
async def test_alert_upsert_updates_existing_row(db_session: AsyncSession, test_yacht: fleet_models.Yacht):
    """같은 dedupe_key로 다시 upsert하면 새 행을 만들지 않고 심각도만 갱신합니다."""
    first = await _upsert(db_session, test_yacht.id, "maintenance-task-1-due", entity_id="1")
    second = await _upsert(db_session, test_yacht.id, "maintenance-task-1-due", severity="critical")
    await db_session.commit()

    assert first.id == second.id
    assert second.severity == "critical"
    assert second.entity_id == "1"
    assert await shared_crud.alert.count_open(db_session, yacht_id=test_yacht.id) == 1


@pytest.mark.asyncio
async def test_alert_resolve(db_session: AsyncSession, test_yacht: fleet_models.Yacht):
    await _upsert(db_session, test_yacht.id, "document-7-expiry", module="documents", alert_type="document_expiry")
    await db_session.commit()

    assert await shared_crud.alert.resolve(db_session, dedupe_key="document-7-expiry") == 1
    assert await shared_crud.alert.resolve(db_session, dedupe_key="document-7-expiry") == 0
    assert await shared_crud.alert.resolve(db_session, dedupe_key="unknown-key") == 0
    await db_session.commit()

    assert await shared_crud.alert.count_open(db_session, yacht_id=test_yacht.id) == 0


@pytest.mark.asyncio
async def test_read_open_alerts_sorted_by_due_date(
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    other_yacht: fleet_models.Yacht,
):
    now = utcnow()
    await _upsert(db_session, test_yacht.id, "no-due")
    await _upsert(db_session, test_yacht.id, "late", due_at=now + timedelta(days=9))
    await _upsert(db_session, test_yacht.id, "early", due_at=now + timedelta(days=1))
    await _upsert(db_session, test_yacht.id, "closed", due_at=now)
    await _upsert(db_session, other_yacht.id, "other-yacht", due_at=now)
    await shared_crud.alert.resolve(db_session, dedupe_key="closed")
    await db_session.commit()

    response = await captain_client.get("/api/v1/shared/alerts", params={"yacht_id": test_yacht.id})
    assert response.status_code == 200
    assert [item["dedupe_key"] for item in response.json()] == ["early", "late", "no-due"]


@pytest.mark.asyncio
async def test_read_open_alerts_scope(captain_client: AsyncClient, other_yacht: fleet_models.Yacht):
    response = await captain_client.get("/api/v1/shared/alerts", params={"yacht_id": other_yacht.id})
    assert response.status_code == 403
    assert response.json()["detail"] == "Yacht scope violation"


@pytest.mark.asyncio
async def test_read_open_alerts_requires_login(client: AsyncClient, test_yacht: fleet_models.Yacht):
    response = await client.get("/api/v1/shared/alerts", params={"yacht_id": test_yacht.id})
    assert response.status_code == 401


# =============================================================================
# 2. 감사 이력 (AuditEvent)
# =============================================================================
@pytest.mark.asyncio
async def test_audit_trail_includes_actor_name(
    db_session: AsyncSession, test_yacht: fleet_models.Yacht, test_captain: usr_models.User
):
    await shared_crud.audit.record(
        db_session, module="fleet", entity_type="Yacht", entity_id=test_yacht.id,
        action="create_yacht", actor_id=test_captain.id, before=None, after=test_yacht,
    )
    await shared_crud.audit.record(
        db_session, module="fleet", entity_type="Yacht", entity_id=test_yacht.id,
        action="update_yacht", actor_id=None, before={"flag": "MT"}, after={"flag": "KY"},
        source="worker",
    )
    await db_session.commit()

    trail = await shared_crud.audit.trail(db_session, entity_type="Yacht", entity_id=test_yacht.id)
    assert [item["action"] for item in trail] == ["update_yacht", "create_yacht"]
    assert trail[0]["actor_name"] is None
    assert trail[0]["source"] == "worker"
    assert trail[1]["actor_name"] == "Carl Captain"
    assert trail[1]["after_json"]["name"] == "M/Y Aurora"


@pytest.mark.asyncio
async def test_read_audit_endpoint_is_admin_only(
    admin_client: AsyncClient,
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
):
    await shared_crud.audit.record(
        db_session, module="fleet", entity_type="Yacht", entity_id=test_yacht.id,
        action="create_yacht", actor_id=None,
    )
    await db_session.commit()

    params = {"entity_type": "Yacht", "entity_id": str(test_yacht.id)}
    forbidden = await captain_client.get("/api/v1/shared/audit", params=params)
    assert forbidden.status_code == 403

    response = await admin_client.get("/api/v1/shared/audit", params=params)
    assert response.status_code == 200
    events = response.json()
    assert len(events) == 1
    assert events[0]["action"] == "create_yacht"
    assert events[0]["source"] == "api"
