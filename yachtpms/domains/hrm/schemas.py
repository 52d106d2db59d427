# yachtpms/domains/hrm/schemas.py

"""
'hrm' 도메인 (승무원 인사)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Annotated, List, Optional
from datetime import datetime

from pydantic import StringConstraints
from sqlmodel import SQLModel, Field

from . import models as hrm_models


HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

# 비-테이블 스키마 문자열 형식 제약
HHMMStr = Annotated[str, StringConstraints(pattern=HHMM_PATTERN)]
PeriodStr = Annotated[str, StringConstraints(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")]


# =============================================================================
# 1. 승무원 선택 목록
# =============================================================================
class CrewOption(SQLModel):
    user_id: int
    name: str
    email: str


# =============================================================================
# 2. 근무 일정 (WorkSchedule) 스키마
# =============================================================================
class ScheduleCreate(SQLModel):
    yacht_id: int
    user_id: int
    work_date: datetime
    start_time: HHMMStr
    end_time: HHMMStr
    rest_hours: Optional[float] = Field(None, ge=0, le=24)
    notes: Optional[str] = Field(None, max_length=500)


class ScheduleUpdate(SQLModel):
    start_time: Optional[HHMMStr] = None
    end_time: Optional[HHMMStr] = None
    rest_hours: Optional[float] = Field(None, ge=0, le=24)
    notes: Optional[str] = Field(None, max_length=500)


class ScheduleRead(SQLModel):
    id: int
    yacht_id: int
    user_id: int
    work_date: datetime
    start_time: str
    end_time: str
    rest_hours: float
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# 3. 휴식시간 신고 (RestDeclaration) 스키마
# =============================================================================
class RestDeclarationCreate(SQLModel):
    yacht_id: int
    user_id: int
    work_date: datetime
    worked_hours: float = Field(..., ge=0, le=24)
    rest_hours: float = Field(..., ge=0, le=24)
    comment: Optional[str] = Field(None, max_length=500)


class RestDeclarationRead(SQLModel):
    id: int
    yacht_id: int
    user_id: int
    work_date: datetime
    worked_hours: float
    rest_hours: float
    compliant: bool
    comment: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime


class RestHoursSummary(SQLModel):
    total: int
    compliant: int
    non_compliant: int
    compliance_rate: int
    total_worked_hours: float
    total_rest_hours: float


class RestHoursReport(SQLModel):
    items: List[RestDeclarationRead]
    summary: RestHoursSummary


# =============================================================================
# 4. 휴가 신청 (LeaveRequest) 스키마
# =============================================================================
class LeaveRequestCreate(SQLModel):
    yacht_id: int
    user_id: int
    type: str = Field(..., min_length=1, max_length=50)
    start_date: datetime
    end_date: datetime
    comment: Optional[str] = Field(None, max_length=500)


class LeaveReview(SQLModel):
    reason: Optional[str] = Field(None, max_length=500)


class LeaveRequestRead(SQLModel):
    id: int
    yacht_id: int
    user_id: int
    type: str
    start_date: datetime
    end_date: datetime
    status: hrm_models.LeaveStatus
    comment: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    created_by: Optional[int] = None
    created_at: datetime


# =============================================================================
# 5. 급여 대장 (Payroll) 스키마
# =============================================================================
class PayrollGenerate(SQLModel):
    yacht_id: int
    period: PeriodStr = Field(..., description="YYYY-MM")
    currency: Optional[str] = Field(None, max_length=3)


class PayrollLineRead(SQLModel):
    id: int
    payroll_id: int
    user_id: int
    user_name: Optional[str] = None
    base_amount: float
    bonus_amount: float
    deductions_amount: float
    net_amount: float


class PayrollRead(SQLModel):
    id: int
    yacht_id: int
    period: str
    currency: str
    status: hrm_models.PayrollStatus
    generated_by: Optional[int] = None
    generated_at: datetime
    published_at: Optional[datetime] = None
    lines: List[PayrollLineRead] = []
