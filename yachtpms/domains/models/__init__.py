# yachtpms/domains/models/__init__.py

"""
이 파일은 모든 도메인의 SQLModel 모델들을 한 곳에서 중앙 관리하여,
다른 모듈에서 쉽게 임포트할 수 있도록 하는 역할을 합니다.
SQLModel.metadata가 모든 테이블을 인식하도록 보장합니다.
"""

# usr (User, UserRole)
from yachtpms.domains.usr.models import User, UserRole

# fleet (Yacht, UserYachtAccess, Engine, EngineCounter)
from yachtpms.domains.fleet.models import Yacht, UserYachtAccess, Engine, EngineCounter

# shared (Alert, AuditEvent)
from yachtpms.domains.shared.models import Alert, AuditEvent

# logbook
from yachtpms.domains.logbook.models import LogBookEntry, LogBookEngineReading, LogBookObservation

# maint
from yachtpms.domains.maint.models import MaintenanceTask, MaintenanceEvidence

# docs
from yachtpms.domains.docs.models import Document, DocumentVersion

# hrm
from yachtpms.domains.hrm.models import (
    WorkSchedule, RestDeclaration, LeaveRequest, Payroll, PayrollLine
)

# inv
from yachtpms.domains.inv.models import InventoryItem, InventoryMovement

# po
from yachtpms.domains.po.models import (
    PurchaseOrder, PurchaseOrderLine, PurchaseOrderReceipt, PurchaseOrderReceiptLine
)

# ntf
from yachtpms.domains.ntf.models import (
    NotificationEvent, NotificationPreference, NotificationRule, JobDefinition, JobRun
)


#  `from yachtpms.domains.models import *` 구문으로 임포트될 모델 목록 정의
__all__ = [
    # usr
    "User", "UserRole",
    # fleet
    "Yacht", "UserYachtAccess", "Engine", "EngineCounter",
    # shared
    "Alert", "AuditEvent",
    # logbook
    "LogBookEntry", "LogBookEngineReading", "LogBookObservation",
    # maint
    "MaintenanceTask", "MaintenanceEvidence",
    # docs
    "Document", "DocumentVersion",
    # hrm
    "WorkSchedule", "RestDeclaration", "LeaveRequest", "Payroll", "PayrollLine",
    # inv
    "InventoryItem", "InventoryMovement",
    # po
    "PurchaseOrder", "PurchaseOrderLine", "PurchaseOrderReceipt", "PurchaseOrderReceiptLine",
    # ntf
    "NotificationEvent", "NotificationPreference", "NotificationRule", "JobDefinition", "JobRun",
]
