# tests/domains/test_ntf_rule_engine_n.py

"""
매시 운영 점검(rule engine)에 대한 테스트 모듈입니다.

- 문서 만료 체크포인트(30/14/7/3/1일)와 만료 문서 경보.
- 3일 이내 마감 / 마감 경과 정비 작업 경보.
- 책임자 in_app 알림 중복 방지와 알림 규칙 배포.
"""
from datetime import timedelta

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database_base import utcnow
from yachtpms.domains.docs import models as docs_models
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.maint import models as maint_models
from yachtpms.domains.ntf import models as ntf_models
from yachtpms.domains.ntf import rule_engine
from yachtpms.domains.shared import models as shared_models
from yachtpms.domains.usr import models as usr_models


async def _document(db: AsyncSession, yacht_id: int, title: str, expiry_in: timedelta, **values) -> int:
    doc = docs_models.Document(
        yacht_id=yacht_id, title=title, doc_type="CERTIFICATE", expiry_date=utcnow() + expiry_in, **values
    )
    db.add(doc)
    await db.commit()
    return doc.id


async def _task(db: AsyncSession, yacht_id: int, title: str, due_in: timedelta, **values) -> int:
    task = maint_models.MaintenanceTask(yacht_id=yacht_id, title=title, due_date=utcnow() + due_in, **values)
    db.add(task)
    await db.commit()
    return task.id


async def _alerts(db: AsyncSession):
    rows = (await db.execute(select(shared_models.Alert))).scalars().all()
    return {row.dedupe_key: row for row in rows}


async def _events(db: AsyncSession, user_id: int, channel: str = "in_app"):
    return (await db.execute(
        select(ntf_models.NotificationEvent)
        .where(ntf_models.NotificationEvent.user_id == user_id, ntf_models.NotificationEvent.channel == channel)
        .order_by(ntf_models.NotificationEvent.id.asc())
    )).scalars().all()


# =============================================================================
# 1. 순수 헬퍼
# =============================================================================
def test_days_until_and_buckets():
    now = utcnow()
    assert rule_engine.days_until(now + timedelta(days=2, hours=12), now) == 3
    assert rule_engine.days_until(now - timedelta(hours=12), now) == 0
    assert rule_engine.days_until(now - timedelta(days=1, hours=1), now) == -1

    assert rule_engine.document_bucket(45) is None
    assert rule_engine.document_bucket(30) == 30
    assert rule_engine.document_bucket(20) == 30
    assert rule_engine.document_bucket(10) == 14
    assert rule_engine.document_bucket(2) == 3
    assert rule_engine.document_bucket(0) == 1
    assert [rule_engine.document_bucket(days) for days in (31, 15, 14, 8, 7, 4, 3, 1, -1)] == [
        None, 30, 14, 14, 7, 7, 3, 1, 1,
    ]


# =============================================================================
# 2. 문서 만료 점검
# =============================================================================
@pytest.mark.asyncio
async def test_detect_expiring_documents(
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
    test_engineer: usr_models.User,
):
    expiring = await _document(db_session, test_yacht.id, "Safety equipment certificate", timedelta(days=9, hours=12))
    urgent = await _document(
        db_session, test_yacht.id, "Radio licence", timedelta(days=1, hours=12), assigned_to_user_id=test_engineer.id
    )
    expired = await _document(db_session, test_yacht.id, "Load line certificate", -timedelta(days=1))
    await _document(db_session, test_yacht.id, "Hull insurance", timedelta(days=90))
    await _document(
        db_session, test_yacht.id, "Old MARPOL certificate", -timedelta(days=10),
        status=docs_models.DocumentStatus.ARCHIVED,
    )

    count = await rule_engine.detect_expiring_documents(db_session)
    await db_session.commit()
    assert count == 3

    alerts = await _alerts(db_session)
    assert set(alerts) == {
        f"document-{expiring}-expiring-14",
        f"document-{urgent}-expiring-3",
        f"document-{expired}-expired",
    }
    assert alerts[f"document-{expiring}-expiring-14"].severity == "warn"
    assert alerts[f"document-{expiring}-expiring-14"].assigned_to == test_captain.id
    assert alerts[f"document-{urgent}-expiring-3"].severity == "critical"
    assert alerts[f"document-{urgent}-expiring-3"].assigned_to == test_engineer.id
    assert alerts[f"document-{expired}-expired"].alert_type == "DOC_EXPIRED"

    captain_keys = {event.dedupe_key for event in await _events(db_session, test_captain.id)}
    assert captain_keys == {f"document-{expiring}-expiring-14", f"document-{expired}-expired"}

    # critical 항목은 이메일도 시도하며, 기본 수신 설정에서는 skipped로 남습니다.
    engineer_emails = await _events(db_session, test_engineer.id, channel="email")
    assert [(event.dedupe_key, event.status, event.error) for event in engineer_emails] == [
        (f"document-{urgent}-expiring-3", "skipped", "channel_disabled_email"),
    ]
    captain_emails = await _events(db_session, test_captain.id, channel="email")
    assert [event.dedupe_key for event in captain_emails] == [f"document-{expired}-expired"]


@pytest.mark.asyncio
async def test_repeated_scan_does_not_duplicate(
    db_session: AsyncSession, test_yacht: fleet_models.Yacht, test_captain: usr_models.User
):
    doc_id = await _document(db_session, test_yacht.id, "Safety equipment certificate", timedelta(days=5))

    await rule_engine.run_hourly(db_session)
    await rule_engine.run_hourly(db_session)

    alerts = await _alerts(db_session)
    assert list(alerts) == [f"document-{doc_id}-expiring-7"]
    assert len(await _events(db_session, test_captain.id)) == 1


@pytest.mark.asyncio
async def test_document_scan_dispatches_rules_by_bucket(
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
    test_management: usr_models.User,
):
    rule = ntf_models.NotificationRule(
        name="Two week certificate notice",
        module="documents",
        event_type="documents.expiring",
        scope_type="yacht",
        yacht_id=test_yacht.id,
        conditions={"bucket": "14"},
        channels=["in_app"],
        template_title="Document {{ document_id }} expires in {{ days_left }} days",
        template_message="Checkpoint {{ bucket }}",
        recipient_mode="users",
        recipient_user_ids=[test_management.id],
    )
    db_session.add(rule)
    await db_session.commit()

    two_weeks = await _document(db_session, test_yacht.id, "Safety equipment certificate", timedelta(days=10))
    await _document(db_session, test_yacht.id, "Radio licence", timedelta(days=2))

    await rule_engine.run_hourly(db_session)

    events = await _events(db_session, test_management.id)
    assert [event.dedupe_key for event in events] == [
        f"rule:{rule.id}:event:documents.expiring:scope:{two_weeks}:bucket:14:user:{test_management.id}",
    ]
    assert events[0].payload["title"] == f"Document {two_weeks} expires in 10 days"
    assert events[0].payload["message"] == "Checkpoint 14"

    alerts = await _alerts(db_session)
    assert f"rule-alert:rule:{rule.id}:event:documents.expiring:scope:{two_weeks}:bucket:14" in alerts


# =============================================================================
# 3. 정비 마감 점검
# =============================================================================
@pytest.mark.asyncio
async def test_detect_maintenance_due_overdue(
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
    test_engineer: usr_models.User,
):
    overdue = await _task(db_session, test_yacht.id, "Replace impeller", -timedelta(days=1))
    due_soon = await _task(
        db_session, test_yacht.id, "Service watermaker", timedelta(days=2), assigned_to_user_id=test_engineer.id
    )
    critical_soon = await _task(
        db_session, test_yacht.id, "Fire pump test", timedelta(days=1), priority=maint_models.MaintenancePriority.CRITICAL
    )
    await _task(db_session, test_yacht.id, "Antifouling", timedelta(days=40))
    await _task(
        db_session, test_yacht.id, "Old oil change", -timedelta(days=3), status=maint_models.MaintenanceStatus.COMPLETED
    )

    count = await rule_engine.detect_maintenance_due_overdue(db_session)
    await db_session.commit()
    assert count == 3

    alerts = await _alerts(db_session)
    assert alerts[f"maintenance-{overdue}-overdue"].severity == "critical"
    assert alerts[f"maintenance-{overdue}-overdue"].alert_type == "TASK_OVERDUE"
    assert alerts[f"maintenance-{overdue}-overdue"].assigned_to == test_captain.id
    assert alerts[f"maintenance-{due_soon}-due"].severity == "warn"
    assert alerts[f"maintenance-{due_soon}-due"].assigned_to == test_engineer.id
    assert alerts[f"maintenance-{critical_soon}-due"].severity == "critical"
    assert len(alerts) == 3

    engineer_events = await _events(db_session, test_engineer.id)
    assert [event.type for event in engineer_events] == ["maintenance.due_soon"]
    assert engineer_events[0].payload["title"] == "Service watermaker"


@pytest.mark.asyncio
async def test_run_hourly_summary(db_session: AsyncSession, test_yacht: fleet_models.Yacht, test_captain):
    await _document(db_session, test_yacht.id, "Safety equipment certificate", timedelta(days=20))
    await _task(db_session, test_yacht.id, "Replace impeller", -timedelta(hours=3))

    result = await rule_engine.run_hourly(db_session)
    assert result["status"] == "ok"
    assert result["documents"] == 1
    assert result["maintenance"] == 1
    assert result["ran_at"]
