# yachtpms/domains/ntf/rule_engine.py

"""
매시 실행되는 운영 점검(rule engine) 모듈입니다.

- 만료 예정/만료 문서: 체크포인트 [30, 14, 7, 3, 1]일
- 3일 이내 마감 또는 마감이 지난 정비 작업

각 항목마다 경보(Alert)를 갱신하고, 책임자에게 in_app 알림(24시간 중복 방지)과
필요 시 이메일을 보낸 뒤, 후보 이벤트를 모아 알림 규칙으로 배포합니다.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.docs import models as docs_models
from yachtpms.domains.maint import models as maint_models
from yachtpms.domains.shared import crud as shared_crud

from .rules import RuleCandidate
from .services import notification, notification_rule, resolve_responsible_user_id

logger = logging.getLogger(__name__)

DOCUMENT_CHECKPOINTS = (30, 14, 7, 3, 1)
MAINTENANCE_LOOKAHEAD = timedelta(days=3)


def days_until(target: datetime, now: datetime) -> int:
    """남은 일수 (올림)"""
    return math.ceil((as_utc(target) - as_utc(now)).total_seconds() / 86400)


def document_bucket(days_left: int) -> Optional[int]:
    """남은 일수 이상인 가장 가까운 체크포인트 (30일 초과면 None)"""
    for checkpoint in sorted(DOCUMENT_CHECKPOINTS):
        if days_left <= checkpoint:
            return checkpoint
    return None


async def _notify_responsible(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    yacht_id: int,
    event_type: str,
    dedupe_key: str,
    severity: str,
    payload: Dict[str, Any],
    send_email: bool,
) -> None:
    if user_id is None:
        return
    await notification.create_in_app_once(
        db, user_id=user_id, yacht_id=yacht_id, type=event_type, dedupe_key=dedupe_key, payload=payload
    )
    if send_email:
        await notification.maybe_send_email(
            db, user_id=user_id, yacht_id=yacht_id, type=event_type,
            dedupe_key=dedupe_key, severity=severity, payload=payload,
        )


# =============================================================================
# 1. 문서 만료 점검
# =============================================================================
async def detect_expiring_documents(db: AsyncSession, now: Optional[datetime] = None) -> int:
    current = as_utc(now) or utcnow()
    Document = docs_models.Document
    statement = select(Document).where(
        Document.expiry_date.is_not(None),
        Document.status.not_in([docs_models.DocumentStatus.ARCHIVED, docs_models.DocumentStatus.RENEWED]),
    )
    documents = (await db.execute(statement)).scalars().all()

    candidates: List[RuleCandidate] = []
    for doc in documents:
        days_left = days_until(doc.expiry_date, current)
        responsible_id = await resolve_responsible_user_id(
            db, doc.yacht_id, doc.assigned_to_user_id, doc.created_by
        )

        if days_left < 0:
            dedupe_key = f"document-{doc.id}-expired"
            await shared_crud.alert.upsert(
                db, yacht_id=doc.yacht_id, module="documents", alert_type="DOC_EXPIRED",
                severity="critical", due_at=doc.expiry_date, dedupe_key=dedupe_key,
                entity_id=str(doc.id), assigned_to=responsible_id,
            )
            await _notify_responsible(
                db, user_id=responsible_id, yacht_id=doc.yacht_id, event_type="documents.expired",
                dedupe_key=dedupe_key, severity="critical",
                payload={"document_id": doc.id, "title": doc.title, "days_left": days_left},
                send_email=True,
            )
            candidates.append(RuleCandidate(
                type="documents.expired",
                module="documents",
                yacht_id=doc.yacht_id,
                entity_type="Document",
                entity_id=str(doc.id),
                severity="critical",
                payload={"document_id": doc.id, "days_left": days_left, "bucket": "expired"},
                assignee_user_id=responsible_id,
                occurred_at=current,
            ))
            continue

        bucket = document_bucket(days_left)
        if bucket is None:
            continue

        severity = "critical" if bucket <= 3 else "warn"
        dedupe_key = f"document-{doc.id}-expiring-{bucket}"
        payload = {"document_id": doc.id, "title": doc.title, "bucket": bucket, "days_left": days_left}
        await shared_crud.alert.upsert(
            db, yacht_id=doc.yacht_id, module="documents", alert_type="DOC_EXPIRING",
            severity=severity, due_at=doc.expiry_date, dedupe_key=dedupe_key,
            entity_id=str(doc.id), assigned_to=responsible_id,
        )
        await _notify_responsible(
            db, user_id=responsible_id, yacht_id=doc.yacht_id, event_type="documents.expiring",
            dedupe_key=dedupe_key, severity=severity, payload=payload,
            send_email=severity == "critical",
        )
        candidates.append(RuleCandidate(
            type="documents.expiring",
            module="documents",
            yacht_id=doc.yacht_id,
            entity_type="Document",
            entity_id=str(doc.id),
            severity=severity,
            # 규칙 중복 키의 bucket은 문자열만 사용합니다.
            payload={"document_id": doc.id, "bucket": str(bucket), "days_left": days_left},
            assignee_user_id=responsible_id,
            occurred_at=current,
        ))

    if candidates:
        await notification_rule.dispatch_candidates(db, candidates, now=current)
    return len(candidates)


# =============================================================================
# 2. 정비 마감 점검
# =============================================================================
async def detect_maintenance_due_overdue(db: AsyncSession, now: Optional[datetime] = None) -> int:
    current = as_utc(now) or utcnow()
    Task = maint_models.MaintenanceTask
    statement = (
        select(Task)
        .where(Task.due_date <= current + MAINTENANCE_LOOKAHEAD, Task.status.in_(maint_models.OPEN_STATUSES))
        .order_by(Task.due_date.asc())
    )
    tasks = (await db.execute(statement)).scalars().all()

    candidates: List[RuleCandidate] = []
    for task in tasks:
        due_date = as_utc(task.due_date)
        overdue = due_date < current
        severity = "critical" if overdue or task.priority == maint_models.MaintenancePriority.CRITICAL else "warn"
        responsible_id = await resolve_responsible_user_id(
            db, task.yacht_id, task.assigned_to_user_id, task.created_by
        )
        event_type = "maintenance.overdue" if overdue else "maintenance.due_soon"
        dedupe_key = f"maintenance-{task.id}-{'overdue' if overdue else 'due'}"
        payload = {"task_id": task.id, "title": task.title, "due_date": due_date.isoformat()}

        await shared_crud.alert.upsert(
            db, yacht_id=task.yacht_id, module="maintenance",
            alert_type="TASK_OVERDUE" if overdue else "TASK_DUE_SOON",
            severity=severity, due_at=due_date, dedupe_key=dedupe_key,
            entity_id=str(task.id), assigned_to=responsible_id,
        )
        await _notify_responsible(
            db, user_id=responsible_id, yacht_id=task.yacht_id, event_type=event_type,
            dedupe_key=dedupe_key, severity=severity, payload=payload,
            send_email=severity == "critical",
        )
        priority = task.priority.value if hasattr(task.priority, "value") else task.priority
        candidates.append(RuleCandidate(
            type=event_type,
            module="maintenance",
            yacht_id=task.yacht_id,
            entity_type="MaintenanceTask",
            entity_id=str(task.id),
            severity=severity,
            payload={**payload, "priority": priority, "overdue": overdue},
            assignee_user_id=responsible_id,
            occurred_at=current,
        ))

    if candidates:
        await notification_rule.dispatch_candidates(db, candidates, now=current)
    return len(candidates)


async def run_hourly(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """문서/정비 점검을 차례로 실행하고 커밋합니다."""
    current = as_utc(now) or utcnow()
    documents = await detect_expiring_documents(db, current)
    maintenance = await detect_maintenance_due_overdue(db, current)
    await db.commit()
    logger.info("Hourly rule scan: documents=%s maintenance=%s", documents, maintenance)
    return {
        "ran_at": current.isoformat(),
        "status": "ok",
        "documents": documents,
        "maintenance": maintenance,
    }
