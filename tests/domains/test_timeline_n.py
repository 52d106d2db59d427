# tests/domains/test_timeline_n.py

"""
'timeline' 도메인 (요트별 / 선단 일정) 관련 API 엔드포인트에 대한 통합 테스트 모듈입니다.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database_base import utcnow
from yachtpms.domains.docs import models as docs_models
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.logbook import models as logbook_models
from yachtpms.domains.maint import models as maint_models
from yachtpms.domains.ntf import models as ntf_models
from yachtpms.domains.po import models as po_models
from yachtpms.domains.shared import models as shared_models
from yachtpms.domains.timeline.services import parse_date_range
from yachtpms.domains.usr import models as usr_models


def _yacht_url(yacht_id: int) -> str:
    return f"/api/v1/timeline/yachts/{yacht_id}"


FLEET_URL = "/api/v1/timeline/fleet"


async def _seed_agenda(db: AsyncSession, yacht: fleet_models.Yacht, prefix: str = "A") -> None:
    """기간 안의 항목 여섯 개와 제외되어야 할 항목 다섯 개를 만듭니다."""
    now = utcnow()
    db.add_all([
        shared_models.Alert(
            yacht_id=yacht.id, module="hrm", alert_type="CERT_EXPIRING", severity="warn",
            due_at=now + timedelta(days=6), dedupe_key=f"{prefix}-alert-open", entity_id="1",
        ),
        shared_models.Alert(
            yacht_id=yacht.id, module="hrm", alert_type="CERT_EXPIRING", severity="warn",
            due_at=now + timedelta(days=6), dedupe_key=f"{prefix}-alert-resolved", entity_id="2",
            resolved_at=now,
        ),
        docs_models.Document(
            yacht_id=yacht.id, title="Safety Management Certificate", doc_type="CERTIFICATE",
            expiry_date=now + timedelta(days=5),
        ),
        docs_models.Document(
            yacht_id=yacht.id, title="Old Registry", doc_type="CERTIFICATE",
            expiry_date=now + timedelta(days=5), status=docs_models.DocumentStatus.ARCHIVED,
        ),
        maint_models.MaintenanceTask(
            yacht_id=yacht.id, title="Replace fuel filters", due_date=now - timedelta(days=1),
            status=maint_models.MaintenanceStatus.APPROVED,
        ),
        maint_models.MaintenanceTask(
            yacht_id=yacht.id, title="Finished task", due_date=now + timedelta(days=1),
            status=maint_models.MaintenanceStatus.COMPLETED,
        ),
        po_models.PurchaseOrder(
            yacht_id=yacht.id, po_number=f"{prefix}-PO-0001", vendor_name="Marine Supply",
            status=po_models.PurchaseOrderStatus.ORDERED, expected_delivery_at=now + timedelta(days=10),
        ),
        po_models.PurchaseOrder(
            yacht_id=yacht.id, po_number=f"{prefix}-PO-0002", vendor_name="Marine Supply",
            status=po_models.PurchaseOrderStatus.RECEIVED, expected_delivery_at=now + timedelta(days=2),
        ),
        ntf_models.JobDefinition(
            title="Weekly bilge check", module="maintenance", yacht_id=yacht.id,
            instructions_template="Check bilges", schedule_type="interval_days", interval_days=7,
            status="active", next_run_at=now + timedelta(days=3),
        ),
        ntf_models.JobDefinition(
            title="Paused job", module="maintenance", yacht_id=yacht.id,
            instructions_template="Paused", schedule_type="interval_days", interval_days=7,
            status="paused", next_run_at=now + timedelta(days=3),
        ),
        logbook_models.LogBookEntry(
            yacht_id=yacht.id, entry_date=now - timedelta(days=2), watch_period="00-04",
        ),
    ])
    await db.commit()


# =============================================================================
# 1. 기간 계산
# =============================================================================
def test_parse_date_range():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    start, end = parse_date_range(14, None, None, now)
    assert start == datetime(2026, 2, 24, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 24, 23, 59, 59, 999999, tzinfo=timezone.utc)

    start, end = parse_date_range(500, None, None, now)
    assert start == datetime(2025, 12, 10, tzinfo=timezone.utc)
    start, end = parse_date_range(-3, None, None, now)
    assert start == datetime(2026, 3, 9, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 11, 23, 59, 59, 999999, tzinfo=timezone.utc)

    start, end = parse_date_range(
        14, datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc), datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc), now
    )
    assert start == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 2, 23, 59, 59, 999999, tzinfo=timezone.utc)

    # from만 주면 to는 오늘
    start, end = parse_date_range(14, datetime(2026, 3, 8, tzinfo=timezone.utc), None, now)
    assert (start.day, end.day) == (8, 10)

    # from이 to보다 늦으면 기본 기간
    start, end = parse_date_range(
        2, datetime(2026, 4, 1, tzinfo=timezone.utc), datetime(2026, 3, 1, tzinfo=timezone.utc), now
    )
    assert start == datetime(2026, 3, 8, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 12, 23, 59, 59, 999999, tzinfo=timezone.utc)


# =============================================================================
# 2. 요트별 일정
# =============================================================================
@pytest.mark.asyncio
async def test_yacht_agenda_merges_sources(
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    other_yacht: fleet_models.Yacht,
):
    await _seed_agenda(db_session, test_yacht)
    await _seed_agenda(db_session, other_yacht, prefix="B")

    response = await captain_client.get(_yacht_url(test_yacht.id))
    assert response.status_code == 200
    items = response.json()["items"]

    assert sorted(item["source"] for item in items) == [
        "alerts", "documents", "jobs", "logbook", "maintenance", "purchase_orders",
    ]
    assert {item["yacht_id"] for item in items} == {test_yacht.id}
    assert {item["yacht_name"] for item in items} == {"M/Y Aurora"}

    # 발생 시각 내림차순
    assert [item["source"] for item in items] == [
        "purchase_orders", "alerts", "documents", "jobs", "maintenance", "logbook",
    ]

    by_source = {item["source"]: item for item in items}
    doc = by_source["documents"]
    assert doc["type"] == "DOC_EXPIRING"
    assert doc["severity"] == "critical"
    assert doc["title"] == "Document expiring"
    assert doc["description"] == "Safety Management Certificate (5 day(s))"
    assert doc["dedupe_key"].endswith("-agenda")

    task = by_source["maintenance"]
    assert task["type"] == "TASK_OVERDUE"
    assert task["severity"] == "critical"
    assert task["status"] == "Approved"

    order = by_source["purchase_orders"]
    assert order["type"] == "PO_EXPECTED_DELIVERY"
    assert order["severity"] == "info"
    assert order["description"] == "A-PO-0001 | Marine Supply (ordered)"

    assert by_source["jobs"]["type"] == "JOB_SCHEDULED"
    assert by_source["alerts"]["description"] == "hrm - CERT_EXPIRING"


@pytest.mark.asyncio
async def test_yacht_agenda_date_range_and_scope(
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    other_yacht: fleet_models.Yacht,
):
    await _seed_agenda(db_session, test_yacht)
    now = utcnow()

    # 6~7일 뒤만 조회하면 경보만 남습니다.
    params = {
        "from": (now + timedelta(days=6)).isoformat(),
        "to": (now + timedelta(days=6)).isoformat(),
    }
    response = await captain_client.get(_yacht_url(test_yacht.id), params=params)
    assert response.status_code == 200
    assert [item["source"] for item in response.json()["items"]] == ["alerts"]

    # 1일 창은 어제 마감된 정비만 포함합니다.
    response = await captain_client.get(_yacht_url(test_yacht.id), params={"window_days": 1})
    assert [item["source"] for item in response.json()["items"]] == ["maintenance"]

    response = await captain_client.get(_yacht_url(other_yacht.id))
    assert response.status_code == 403
    assert response.json()["detail"] == "Yacht scope violation"

    response = await captain_client.get(_yacht_url(test_yacht.id), params={"from": "not-a-date"})
    assert response.status_code == 422


# =============================================================================
# 3. 선단 일정
# =============================================================================
@pytest.mark.asyncio
async def test_fleet_agenda_is_limited_to_accessible_yachts(
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    other_yacht: fleet_models.Yacht,
):
    await _seed_agenda(db_session, test_yacht)
    await _seed_agenda(db_session, other_yacht, prefix="B")

    response = await captain_client.get(FLEET_URL)
    assert response.status_code == 200
    items = response.json()["items"]
    assert {item["yacht_id"] for item in items} == {test_yacht.id}
    # 선단 일정에는 항해일지가 없습니다.
    assert "logbook" not in {item["source"] for item in items}
    assert all(
        item["dedupe_key"].endswith("-fleet-agenda") for item in items if item["source"] != "alerts"
    )

    response = await captain_client.get(FLEET_URL, params={"yacht_id": other_yacht.id})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_fleet_agenda_for_system_admin(
    system_admin_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    other_yacht: fleet_models.Yacht,
):
    await _seed_agenda(db_session, test_yacht)
    await _seed_agenda(db_session, other_yacht, prefix="B")

    response = await system_admin_client.get(FLEET_URL)
    items = response.json()["items"]
    assert {item["yacht_id"] for item in items} == {test_yacht.id, other_yacht.id}
    assert len(items) == 10

    response = await system_admin_client.get(FLEET_URL, params={"yacht_id": other_yacht.id})
    items = response.json()["items"]
    assert {item["yacht_name"] for item in items} == {"M/Y Borealis"}
    assert len(items) == 5


@pytest.mark.asyncio
async def test_fleet_agenda_without_yacht_access(
    authorized_client_factory: Callable,
    user_factory: Callable,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
):
    await _seed_agenda(db_session, test_yacht)
    drifter = await user_factory("drifter@example.com", usr_models.UserRole.CAPTAIN)

    async with authorized_client_factory(drifter) as drifter_client:
        response = await drifter_client.get(FLEET_URL)
    assert response.status_code == 200
    assert response.json()["items"] == []


@pytest.mark.asyncio
async def test_agenda_requires_authentication(client: AsyncClient, test_yacht: fleet_models.Yacht):
    response = await client.get(_yacht_url(test_yacht.id))
    assert response.status_code == 401
