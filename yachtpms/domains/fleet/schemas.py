# yachtpms/domains/fleet/schemas.py

"""
'fleet' 도메인 (요트, 요트 접근 권한, 엔진)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Literal, Optional
from datetime import datetime

from sqlmodel import SQLModel, Field


# =============================================================================
# 1. 요트 (Yacht) 스키마
# =============================================================================
class YachtCreate(SQLModel):
    name: str = Field(..., min_length=2, max_length=120)
    flag: str = Field(..., min_length=2, max_length=10)
    is_active: Optional[bool] = None
    imo_optional: Optional[str] = Field(None, max_length=20)


class YachtUpdate(SQLModel):
    name: Optional[str] = Field(None, min_length=2, max_length=120)
    flag: Optional[str] = Field(None, min_length=2, max_length=10)
    is_active: Optional[bool] = None
    imo_optional: Optional[str] = Field(None, max_length=20)


class YachtRead(SQLModel):
    id: int
    name: str
    flag: str
    imo_optional: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class YachtSummary(SQLModel):
    """요트 대시보드 집계"""
    yacht_id: int
    maintenance_open: int
    maintenance_overdue: int
    documents_expiring_30d: int
    documents_pending_approval: int
    purchase_orders_pending_approval: int
    purchase_orders_open: int
    alerts_open: int
    logbook_drafts: int
    logbook_pending_review: int
    crew_onboard: int


# =============================================================================
# 2. 요트 접근 권한 (UserYachtAccess) 스키마
# =============================================================================
class AccessGrant(SQLModel):
    user_id: int
    role_name_override: Optional[str] = None


class AccessUpdate(SQLModel):
    role_name_override: Optional[str] = None


class AccessUser(SQLModel):
    id: int
    email: str
    full_name: str
    is_active: bool


class YachtAccessRead(SQLModel):
    id: int
    user_id: int
    yacht_id: int
    role_name_override: Optional[str] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[int] = None
    created_at: datetime
    user: Optional[AccessUser] = None


class SuccessResponse(SQLModel):
    success: bool = True


# =============================================================================
# 3. 엔진 (Engine) 스키마
# =============================================================================
class EngineCreate(SQLModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., min_length=1, max_length=50)
    serial_no: str = Field(..., min_length=1, max_length=100)


class EngineUpdate(SQLModel):
    name: Optional[str] = Field(None, max_length=100)
    type: Optional[str] = Field(None, max_length=50)
    serial_no: Optional[str] = Field(None, max_length=100)


class EngineRead(SQLModel):
    id: int
    yacht_id: int
    name: str
    type: str
    serial_no: str
    created_at: datetime


class EngineHealthRead(SQLModel):
    id: int
    yacht_id: int
    name: str
    type: str
    serial_no: str
    health_status: Literal["OK", "Check", "Maintenance"]
    last_reading_at: Optional[datetime] = None
