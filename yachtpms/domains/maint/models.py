# yachtpms/domains/maint/models.py

"""
'maint' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- maintenance_tasks: 정비 작업과 승인 워크플로 상태
- maintenance_evidences: 작업 증빙 파일
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlmodel import Field, Relationship, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, updated_at_column, utcnow,
)


class MaintenancePriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class MaintenanceStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    IN_PROGRESS = "InProgress"
    REJECTED = "Rejected"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# 마감 경보를 유지하는 상태
OPEN_STATUSES = (
    MaintenanceStatus.DRAFT,
    MaintenanceStatus.SUBMITTED,
    MaintenanceStatus.APPROVED,
    MaintenanceStatus.IN_PROGRESS,
    MaintenanceStatus.REJECTED,
)
# 엔진 상태 계산 및 일정 조회에 쓰이는 진행 중 상태
ACTIVE_STATUSES = (
    MaintenanceStatus.DRAFT,
    MaintenanceStatus.SUBMITTED,
    MaintenanceStatus.APPROVED,
    MaintenanceStatus.IN_PROGRESS,
)
FINAL_STATUSES = (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED)


# =============================================================================
# 1. maintenance_tasks 테이블 모델
# =============================================================================
class MaintenanceTaskBase(SQLModel):
    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    engine_id: Optional[int] = Field(default=None, foreign_key="engines.id")
    system_tag: Optional[str] = Field(default=None, max_length=80, description="시스템 분류 태그")
    priority: MaintenancePriority = Field(default=MaintenancePriority.MEDIUM)
    assigned_to_user_id: Optional[int] = Field(default=None, foreign_key="users.id")


class MaintenanceTask(MaintenanceTaskBase, table=True):
    __tablename__ = "maintenance_tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    due_date: datetime = Field(sa_column=datetime_column(nullable=False, index=True))
    status: MaintenanceStatus = Field(default=MaintenanceStatus.DRAFT, index=True)
    rejection_reason: Optional[str] = Field(default=None, max_length=500)
    submitted_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    reviewed_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    reviewed_by: Optional[int] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    work_hours: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_by: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())

    evidences: List["MaintenanceEvidence"] = Relationship(
        back_populates="task",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


# =============================================================================
# 2. maintenance_evidences 테이블 모델
# =============================================================================
class MaintenanceEvidence(SQLModel, table=True):
    __tablename__ = "maintenance_evidences"

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(
        sa_column=Column(Integer, ForeignKey("maintenance_tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    file_url: str = Field(max_length=2000)
    comment: Optional[str] = Field(default=None, max_length=500)
    uploaded_by: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())

    task: Optional[MaintenanceTask] = Relationship(back_populates="evidences")
