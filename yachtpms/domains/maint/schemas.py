# yachtpms/domains/maint/schemas.py

"""
'maint' 도메인 (정비 작업)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import datetime

from sqlmodel import SQLModel, Field

from . import models as maint_models


# =============================================================================
# 1. 정비 작업 (MaintenanceTask) 스키마
# =============================================================================
class MaintenanceTaskCreate(maint_models.MaintenanceTaskBase):
    yacht_id: int
    due_date: datetime


class MaintenanceTaskUpdate(SQLModel):
    """전달된 항목만 갱신합니다. 빈 문자열은 해당 값을 비웁니다."""
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    engine_id: Optional[int] = None
    system_tag: Optional[str] = Field(None, max_length=80)
    priority: Optional[maint_models.MaintenancePriority] = None
    due_date: Optional[datetime] = None
    assigned_to_user_id: Optional[int] = None


class MaintenanceTaskReject(SQLModel):
    reason: str = Field(..., min_length=1, max_length=500)


class MaintenanceTaskComplete(SQLModel):
    completed_at: Optional[datetime] = None
    work_hours: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class MaintenanceEvidenceCreate(SQLModel):
    file_url: str = Field(..., min_length=1, max_length=2000)
    comment: Optional[str] = Field(None, max_length=500)


class MaintenanceEvidenceRead(SQLModel):
    id: int
    task_id: int
    file_url: str
    comment: Optional[str] = None
    uploaded_by: Optional[int] = None
    created_at: datetime


class MaintenanceTaskRead(maint_models.MaintenanceTaskBase):
    id: int
    yacht_id: int
    due_date: datetime
    status: maint_models.MaintenanceStatus
    rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    work_hours: Optional[float] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    evidences: List[MaintenanceEvidenceRead] = []


# =============================================================================
# 2. 집계 / 일정 스키마
# =============================================================================
class MaintenanceSummary(SQLModel):
    total: int
    draft: int
    submitted: int
    approved: int
    in_progress: int
    completed: int
    rejected: int
    overdue: int


class CalendarItem(SQLModel):
    id: int
    when: datetime
    module: str = "maintenance"
    type: maint_models.MaintenanceStatus
    priority: maint_models.MaintenancePriority
    title: str
    assigned_to_user_id: Optional[int] = None
