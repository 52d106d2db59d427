# yachtpms/domains/timeline/services.py

"""
요트별 / 선단 전체 일정(agenda)을 조립하는 모듈입니다.

기간은 window_days(기본 14일, 1~90일)만큼 오늘 앞뒤로 잡거나,
from/to가 주어지면 그 날짜의 UTC 00:00:00 ~ 23:59:59.999999 로 잡습니다.
from이 to보다 늦으면 window_days 기준 기간으로 되돌아갑니다.
항목은 발생 시각(없으면 생성 시각)의 내림차순으로 정렬합니다.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import datetime, time, timedelta

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.docs import models as docs_models
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.logbook import models as logbook_models
from yachtpms.domains.maint import models as maint_models
from yachtpms.domains.ntf import models as ntf_models
from yachtpms.domains.ntf.rule_engine import days_until
from yachtpms.domains.po import models as po_models
from yachtpms.domains.shared import models as shared_models

DEFAULT_WINDOW_DAYS = 14
MAX_WINDOW_DAYS = 90
YACHT_ROW_LIMIT = 200
FLEET_ROW_LIMIT = 300
LOGBOOK_ROW_LIMIT = 400

OPEN_PO_STATUSES = (
    po_models.PurchaseOrderStatus.DRAFT,
    po_models.PurchaseOrderStatus.SUBMITTED,
    po_models.PurchaseOrderStatus.APPROVED,
    po_models.PurchaseOrderStatus.ORDERED,
    po_models.PurchaseOrderStatus.PARTIALLY_RECEIVED,
)
PO_STATUS_LABELS = {
    "draft": "draft",
    "submitted": "pending approval",
    "approved": "approved",
    "ordered": "ordered",
    "partially_received": "partially received",
}


# =============================================================================
# 1. 기간 계산
# =============================================================================
def start_of_day(value: datetime) -> datetime:
    return datetime.combine(as_utc(value).date(), time.min, tzinfo=as_utc(value).tzinfo)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(as_utc(value).date(), time.max, tzinfo=as_utc(value).tzinfo)


def parse_date_range(
    window_days: Optional[int] = DEFAULT_WINDOW_DAYS,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    current = as_utc(now) or utcnow()
    days = min(max(int(window_days or DEFAULT_WINDOW_DAYS), 1), MAX_WINDOW_DAYS)

    if date_from or date_to:
        start = start_of_day(date_from or current)
        end = end_of_day(date_to or current)
        if start <= end:
            return start, end

    return start_of_day(current - timedelta(days=days)), end_of_day(current + timedelta(days=days))


def _iso_key(item: Dict[str, Any]) -> datetime:
    return item["occurred_at"] or item["created_at"] or datetime.min.replace(tzinfo=utcnow().tzinfo)


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


# =============================================================================
# 2. 항목 변환
# =============================================================================
def alert_item(alert: shared_models.Alert) -> Dict[str, Any]:
    return {
        "id": f"alert:{alert.id}",
        "yacht_id": alert.yacht_id,
        "when": alert.due_at,
        "module": alert.module,
        "type": alert.alert_type,
        "severity": alert.severity,
        "dedupe_key": alert.dedupe_key,
        "source": "alerts",
        "title": alert.alert_type,
        "description": f"{alert.module} - {alert.alert_type}",
        "status": None,
        "entity_id": alert.entity_id,
        "link": "/timeline",
        "occurred_at": alert.due_at,
        "created_at": alert.created_at,
    }


def document_item(doc: docs_models.Document, now: datetime, suffix: str) -> Dict[str, Any]:
    """7일 이내(또는 만료)는 critical, 그 외는 warn"""
    days_left = days_until(doc.expiry_date, now)
    base = (doc.title or "").strip() or doc.doc_type
    return {
        "id": f"document:{doc.id}",
        "yacht_id": doc.yacht_id,
        "when": doc.expiry_date,
        "module": "documents",
        "type": "DOC_EXPIRED" if days_left < 0 else "DOC_EXPIRING",
        "severity": "critical" if days_left <= 7 else "warn",
        "dedupe_key": f"document-{doc.id}-{suffix}",
        "source": "documents",
        "title": "Document expired" if days_left < 0 else "Document expiring",
        "description": base if days_left < 0 else f"{base} ({days_left} day(s))",
        "status": None,
        "entity_id": str(doc.id),
        "link": f"/yachts/{doc.yacht_id}/documents?documentId={doc.id}",
        "occurred_at": doc.expiry_date,
        "created_at": doc.updated_at,
    }


def maintenance_item(task: maint_models.MaintenanceTask, now: datetime, suffix: str) -> Dict[str, Any]:
    due_date = as_utc(task.due_date)
    overdue = due_date < now
    if overdue or task.priority == maint_models.MaintenancePriority.CRITICAL:
        severity = "critical"
    elif due_date <= now + timedelta(days=3):
        severity = "warn"
    else:
        severity = "info"
    return {
        "id": f"maintenance:{task.id}",
        "yacht_id": task.yacht_id,
        "when": due_date,
        "module": "maintenance",
        "type": "TASK_OVERDUE" if overdue else "TASK_DUE",
        "severity": severity,
        "dedupe_key": f"maintenance-{task.id}-{suffix}",
        "source": "maintenance",
        "title": "Maintenance overdue" if overdue else "Maintenance due",
        "description": task.title,
        "status": _enum_value(task.status),
        "entity_id": str(task.id),
        "link": f"/yachts/{task.yacht_id}/maintenance?taskId={task.id}",
        "occurred_at": due_date,
        "created_at": task.updated_at,
    }


def purchase_order_item(order: po_models.PurchaseOrder, now: datetime, suffix: str) -> Dict[str, Any]:
    """입고 예정 2일 이내는 warn, 그 외는 info"""
    days_left = days_until(order.expected_delivery_at, now)
    status_value = _enum_value(order.status)
    return {
        "id": f"purchase_order:{order.id}",
        "yacht_id": order.yacht_id,
        "when": order.expected_delivery_at,
        "module": "purchase_orders",
        "type": "PO_EXPECTED_DELIVERY",
        "severity": "warn" if days_left <= 2 else "info",
        "dedupe_key": f"purchase-order-{order.id}-{suffix}",
        "source": "purchase_orders",
        "title": "Purchase order delivery expected",
        "description": f"{order.po_number} | {order.vendor_name} ({PO_STATUS_LABELS.get(status_value, status_value)})",
        "status": status_value,
        "entity_id": str(order.id),
        "link": f"/yachts/{order.yacht_id}/purchase-orders?poId={order.id}",
        "occurred_at": order.expected_delivery_at,
        "created_at": order.updated_at,
    }


def job_item(job: ntf_models.JobDefinition, suffix: str) -> Dict[str, Any]:
    return {
        "id": f"job:{job.id}",
        "yacht_id": job.yacht_id,
        "when": job.next_run_at,
        "module": "jobs",
        "type": "JOB_SCHEDULED",
        "severity": "info",
        "dedupe_key": f"job-{job.id}-{suffix}",
        "source": "jobs",
        "title": "Scheduled job",
        "description": f"{job.title} ({job.module})",
        "status": job.status,
        "entity_id": str(job.id),
        "link": f"/jobs?jobId={job.id}",
        "occurred_at": job.next_run_at,
        "created_at": job.updated_at,
    }


def logbook_item(entry: logbook_models.LogBookEntry) -> Dict[str, Any]:
    return {
        "id": f"logbook:{entry.id}",
        "yacht_id": entry.yacht_id,
        "when": entry.entry_date,
        "module": "logbook",
        "type": "LOGBOOK_ENTRY",
        "severity": "info",
        "dedupe_key": f"logbook-{entry.id}-agenda",
        "source": "logbook",
        "title": f"Logbook {entry.watch_period}",
        "description": f"{entry.watch_period} watch ({_enum_value(entry.status)})",
        "status": _enum_value(entry.status),
        "entity_id": str(entry.id),
        "link": f"/yachts/{entry.yacht_id}/logbook?entryId={entry.id}",
        "occurred_at": entry.entry_date,
        "created_at": entry.created_at,
    }


# =============================================================================
# 3. 조회
# =============================================================================
def _in_yachts(column, yacht_ids: Optional[List[int]]):
    return [] if yacht_ids is None else [column.in_(yacht_ids)]


async def collect_items(
    db: AsyncSession,
    *,
    yacht_ids: Optional[List[int]],
    start: datetime,
    end: datetime,
    now: datetime,
    row_limit: int,
    suffix: str,
    include_logbook: bool,
) -> List[Dict[str, Any]]:
    """yacht_ids가 None이면 모든 요트를 대상으로 합니다."""
    items: List[Dict[str, Any]] = []

    Alert = shared_models.Alert
    alerts = (await db.execute(
        select(Alert)
        .where(
            *_in_yachts(Alert.yacht_id, yacht_ids),
            Alert.resolved_at.is_(None),
            Alert.due_at >= start,
            Alert.due_at <= end,
        )
        .order_by(Alert.due_at.asc(), Alert.created_at.desc())
    )).scalars().all()
    items.extend(alert_item(alert) for alert in alerts)

    Document = docs_models.Document
    documents = (await db.execute(
        select(Document)
        .where(
            *_in_yachts(Document.yacht_id, yacht_ids),
            Document.expiry_date >= start,
            Document.expiry_date <= end,
            Document.status != docs_models.DocumentStatus.ARCHIVED,
            Document.workflow_status != docs_models.DocumentWorkflowStatus.ARCHIVED,
        )
        .order_by(Document.expiry_date.asc(), Document.updated_at.desc())
        .limit(row_limit)
    )).scalars().all()
    items.extend(document_item(doc, now, suffix) for doc in documents)

    Task = maint_models.MaintenanceTask
    tasks = (await db.execute(
        select(Task)
        .where(
            *_in_yachts(Task.yacht_id, yacht_ids),
            Task.due_date >= start,
            Task.due_date <= end,
            Task.status.in_(maint_models.OPEN_STATUSES),
        )
        .order_by(Task.due_date.asc(), Task.id.asc())
        .limit(row_limit)
    )).scalars().all()
    items.extend(maintenance_item(task, now, suffix) for task in tasks)

    Order = po_models.PurchaseOrder
    orders = (await db.execute(
        select(Order)
        .where(
            *_in_yachts(Order.yacht_id, yacht_ids),
            Order.expected_delivery_at >= start,
            Order.expected_delivery_at <= end,
            Order.status.in_(OPEN_PO_STATUSES),
        )
        .order_by(Order.expected_delivery_at.asc(), Order.updated_at.desc())
        .limit(row_limit)
    )).scalars().all()
    items.extend(purchase_order_item(order, now, suffix) for order in orders)

    Job = ntf_models.JobDefinition
    jobs = (await db.execute(
        select(Job)
        .where(
            *_in_yachts(Job.yacht_id, yacht_ids),
            Job.yacht_id.is_not(None),
            Job.status == "active",
            Job.next_run_at >= start,
            Job.next_run_at <= end,
        )
        .order_by(Job.next_run_at.asc())
        .limit(row_limit)
    )).scalars().all()
    items.extend(job_item(job, suffix) for job in jobs)

    if include_logbook:
        Entry = logbook_models.LogBookEntry
        entries = (await db.execute(
            select(Entry)
            .where(
                *_in_yachts(Entry.yacht_id, yacht_ids),
                Entry.entry_date >= start,
                Entry.entry_date <= end,
            )
            .order_by(Entry.entry_date.desc(), Entry.created_at.desc())
            .limit(LOGBOOK_ROW_LIMIT)
        )).scalars().all()
        items.extend(logbook_item(entry) for entry in entries)

    for item in items:
        item["occurred_at"] = as_utc(item["occurred_at"])
        item["created_at"] = as_utc(item["created_at"])
    items.sort(key=_iso_key, reverse=True)
    return items


async def attach_yacht_names(db: AsyncSession, items: Iterable[Dict[str, Any]]) -> None:
    items = list(items)
    yacht_ids = {item["yacht_id"] for item in items}
    if not yacht_ids:
        return
    rows = (await db.execute(
        select(fleet_models.Yacht.id, fleet_models.Yacht.name).where(fleet_models.Yacht.id.in_(yacht_ids))
    )).all()
    names = {row[0]: row[1] for row in rows}
    for item in items:
        item["yacht_name"] = names.get(item["yacht_id"])


async def get_agenda(
    db: AsyncSession,
    *,
    yacht_id: int,
    actor: rbac.ActorContext,
    window_days: Optional[int] = DEFAULT_WINDOW_DAYS,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Dict[str, Any]:
    """요트 한 척의 일정 (항해일지 포함)"""
    rbac.assert_yacht_scope(yacht_id, actor)
    now = utcnow()
    start, end = parse_date_range(window_days, date_from, date_to, now)
    items = await collect_items(
        db, yacht_ids=[yacht_id], start=start, end=end, now=now,
        row_limit=YACHT_ROW_LIMIT, suffix="agenda", include_logbook=True,
    )
    await attach_yacht_names(db, items)
    return {"start": start, "end": end, "items": items}


async def get_fleet_agenda(
    db: AsyncSession,
    *,
    actor: rbac.ActorContext,
    yacht_id: Optional[int] = None,
    window_days: Optional[int] = DEFAULT_WINDOW_DAYS,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    접근 가능한 모든 요트의 일정입니다. SystemAdmin은 전체 선단을 봅니다.
    yacht_id를 주면 그 요트로 좁히며, 접근 권한이 없으면 403입니다.
    """
    now = utcnow()
    start, end = parse_date_range(window_days, date_from, date_to, now)

    if yacht_id is not None:
        rbac.assert_yacht_scope(yacht_id, actor)
        yacht_ids: Optional[List[int]] = [yacht_id]
    elif actor.is_system_admin:
        yacht_ids = None
    else:
        yacht_ids = actor.yacht_ids
        if not yacht_ids:
            return {"start": start, "end": end, "items": []}

    items = await collect_items(
        db, yacht_ids=yacht_ids, start=start, end=end, now=now,
        row_limit=FLEET_ROW_LIMIT, suffix="fleet-agenda", include_logbook=False,
    )
    await attach_yacht_names(db, items)
    return {"start": start, "end": end, "items": items}
