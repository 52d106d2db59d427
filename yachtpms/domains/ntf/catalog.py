# yachtpms/domains/ntf/catalog.py

"""
알림 이벤트 카탈로그와 채널/심각도 상수를 정의하는 모듈입니다.

규칙(NotificationRule)은 여기에 등록된 (모듈, 이벤트) 조합만 사용할 수 있습니다.
"""

from typing import Dict, List, Optional


MODULES = ("inventory", "maintenance", "documents", "jobs", "hrm", "purchase_orders", "logbook")
CHANNELS = ("in_app", "email", "push")
SEVERITIES = ("info", "warn", "critical")

SEVERITY_RANK: Dict[str, int] = {"info": 1, "warn": 2, "critical": 3}

SCOPE_TYPES = ("fleet", "yacht", "entity")
CADENCE_MODES = ("once", "hourly", "daily", "every_n_hours", "every_n_days")
RECIPIENT_MODES = ("roles", "users", "assignee", "role_then_escalate")
CONDITION_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "in", "not_in", "contains")

JOB_SCHEDULE_TYPES = ("interval_hours", "interval_days", "cron")
JOB_ASSIGNMENT_MODES = ("roles", "users", "entity_owner", "yacht_captain")
JOB_STATUSES = ("active", "paused", "archived")


EVENT_CATALOG: Dict[str, List[str]] = {
    "inventory": [
        "inventory.item_created",
        "inventory.item_updated",
        "inventory.movement_created",
        "inventory.adjustment",
        "inventory.low_stock",
        "inventory.stockout",
        "inventory.reorder_point_crossed",
    ],
    "maintenance": [
        "maintenance.task_assigned",
        "maintenance.task_reassigned",
        "maintenance.task_submitted",
        "maintenance.task_approved",
        "maintenance.task_rejected",
        "maintenance.task_completed",
        "maintenance.evidence_added",
        "maintenance.due_soon",
        "maintenance.overdue",
    ],
    "documents": [
        "documents.created",
        "documents.updated",
        "documents.version_uploaded",
        "documents.submitted",
        "documents.approved",
        "documents.rejected",
        "documents.archived",
        "documents.deleted",
        "documents.expiring",
        "documents.expired",
        "documents.pending_approval",
    ],
    "jobs": [
        "jobs.created",
        "jobs.assignment_changed",
        "jobs.reminder_due",
        "jobs.overdue",
        "jobs.completed",
        "jobs.skipped",
    ],
    "hrm": [
        "hrm.schedule_created",
        "hrm.rest_non_compliance",
        "hrm.leave_pending_approval",
        "hrm.leave_approved",
        "hrm.leave_rejected",
        "hrm.payroll_generated",
        "hrm.payroll_published",
    ],
    "purchase_orders": [
        "po.created",
        "po.updated",
        "po.submitted",
        "po.approved",
        "po.ordered",
        "po.received",
        "po.cancelled",
    ],
    "logbook": [
        "logbook.submitted",
        "logbook.locked",
    ],
}


def is_known_event(module: str, event_type: str) -> bool:
    return event_type in EVENT_CATALOG.get(module, [])


def severity_rank(severity: Optional[str]) -> int:
    """알 수 없는 심각도는 info와 같은 순위로 취급합니다."""
    return SEVERITY_RANK.get((severity or "").lower(), 1)


def module_from_type(event_type: Optional[str]) -> str:
    """'documents.expiring' -> 'documents', 'po.created' -> 'purchase_orders'"""
    prefix = (event_type or "").split(".", 1)[0]
    if prefix == "po":
        return "purchase_orders"
    return prefix or "general"
