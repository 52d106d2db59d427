# yachtpms/domains/usr/schemas.py

"""
'usr' 도메인 (사용자, 인증, 요트 접근 지정)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Optional, List
from datetime import datetime

from sqlmodel import SQLModel, Field
from pydantic import BaseModel, EmailStr

from . import models as usr_models


# =============================================================================
# 1. 사용자 (User) 스키마
# =============================================================================
class UserCreate(SQLModel):
    """사용자 생성을 위한 스키마 (역할 이름은 문자열로 받아 검증합니다)"""
    email: EmailStr
    full_name: str = Field(..., min_length=2, max_length=120)
    password: str = Field(..., min_length=8)
    role_name: str = Field(..., description="역할 이름 (예: Captain)")


class UserStatusUpdate(SQLModel):
    is_active: bool


class UserRead(SQLModel):
    """
    사용자 정보 조회를 위한 기본 스키마.
    비밀번호 해시값 등 민감한 정보는 제외됩니다.
    """
    id: int
    email: str
    full_name: str
    role: usr_models.UserRole
    is_active: bool
    created_at: datetime


class UserListItem(UserRead):
    """관리 화면용 사용자 목록 항목 (활성 요트 수 포함)"""
    active_yacht_count: int = 0


# =============================================================================
# 2. 요트 접근 지정 (Assignments) 스키마
# =============================================================================
class UserAssignment(SQLModel):
    yacht_id: int
    role_name_override: Optional[str] = None


class UserAccessesSet(SQLModel):
    assignments: List[UserAssignment] = Field(default_factory=list)


class AccessYacht(SQLModel):
    id: int
    name: str
    flag: str


class UserAccessRead(SQLModel):
    id: int
    yacht_id: int
    role_name_override: Optional[str] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[int] = None
    created_at: datetime
    yacht: Optional[AccessYacht] = None


class UserAccessesRead(SQLModel):
    user: UserRead
    accesses: List[UserAccessRead]


# =============================================================================
# 3. 인증 토큰 (Token) 스키마
# =============================================================================
class Token(BaseModel):
    """JWT 토큰 응답 스키마"""
    access_token: str
    token_type: str
