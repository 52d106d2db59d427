# yachtpms/domains/hrm/models.py

"""
'hrm' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- hrm_schedules: 승무원 근무 일정
- hrm_rest_declarations: 일일 휴식시간 신고 (10시간 이상이면 준수)
- hrm_leave_requests: 휴가 신청과 승인 상태
- hrm_payrolls / hrm_payroll_lines: 요트·기간(YYYY-MM)별 급여 대장
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, updated_at_column, utcnow,
)


class LeaveStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class PayrollStatus(str, Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"


# 휴식시간 준수 기준 (시간)
MIN_REST_HOURS = 10


def _yacht_fk() -> Column:
    return Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)


def _user_fk() -> Column:
    return Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


# =============================================================================
# 1. 근무 일정 / 휴식 신고
# =============================================================================
class WorkSchedule(SQLModel, table=True):
    __tablename__ = "hrm_schedules"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(sa_column=_yacht_fk())
    user_id: int = Field(sa_column=_user_fk())
    work_date: datetime = Field(sa_column=datetime_column(nullable=False, index=True))
    start_time: str = Field(max_length=5, description="HH:MM")
    end_time: str = Field(max_length=5, description="HH:MM")
    rest_hours: float = Field(default=0, ge=0, le=24)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_by: Optional[int] = Field(default=None)
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())


class RestDeclaration(SQLModel, table=True):
    __tablename__ = "hrm_rest_declarations"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(sa_column=_yacht_fk())
    user_id: int = Field(sa_column=_user_fk())
    work_date: datetime = Field(sa_column=datetime_column(nullable=False, index=True))
    worked_hours: float = Field(ge=0, le=24)
    rest_hours: float = Field(ge=0, le=24)
    compliant: bool = Field(default=True)
    comment: Optional[str] = Field(default=None, max_length=500)
    created_by: Optional[int] = Field(default=None)
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())


# =============================================================================
# 2. 휴가 신청
# =============================================================================
class LeaveRequest(SQLModel, table=True):
    __tablename__ = "hrm_leave_requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(sa_column=_yacht_fk())
    user_id: int = Field(sa_column=_user_fk())
    type: str = Field(max_length=50, description="휴가 종류")
    start_date: datetime = Field(sa_column=datetime_column(nullable=False, index=True))
    end_date: datetime = Field(sa_column=datetime_column(nullable=False))
    status: LeaveStatus = Field(default=LeaveStatus.PENDING)
    comment: Optional[str] = Field(default=None, max_length=500)
    rejection_reason: Optional[str] = Field(default=None, max_length=500)
    reviewed_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    reviewed_by: Optional[int] = Field(default=None)
    created_by: Optional[int] = Field(default=None)
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())


# =============================================================================
# 3. 급여 대장
# =============================================================================
class Payroll(SQLModel, table=True):
    __tablename__ = "hrm_payrolls"
    __table_args__ = (UniqueConstraint("yacht_id", "period", name="uq_payroll_yacht_period"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(sa_column=_yacht_fk())
    period: str = Field(max_length=7, description="YYYY-MM")
    currency: str = Field(default="USD", max_length=3)
    status: PayrollStatus = Field(default=PayrollStatus.DRAFT)
    generated_by: Optional[int] = Field(default=None)
    generated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    published_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())

    lines: List["PayrollLine"] = Relationship(
        back_populates="payroll",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class PayrollLine(SQLModel, table=True):
    __tablename__ = "hrm_payroll_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    payroll_id: int = Field(
        sa_column=Column(Integer, ForeignKey("hrm_payrolls.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    user_id: int = Field(foreign_key="users.id")
    base_amount: float = Field(default=0)
    bonus_amount: float = Field(default=0)
    deductions_amount: float = Field(default=0)
    net_amount: float = Field(default=0)

    payroll: Optional[Payroll] = Relationship(back_populates="lines")
