# yachtpms/domains/usr/models.py

"""
'usr' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

사용자 계정(users)과 역할(UserRole)을 포함합니다.
요트별 접근 권한(UserYachtAccess)은 'fleet' 도메인에 정의되어 있습니다.
"""

from typing import Optional
from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from yachtpms.core.database_base import created_at_column, updated_at_column, utcnow


# =============================================================================
# 사용자 역할(RBAC) Enum
# =============================================================================
class UserRole(str, Enum):
    """
    사용자 역할을 정의하는 문자열 Enum 클래스입니다.
    DB에는 역할 이름이 그대로 저장됩니다.
    """
    SYSTEM_ADMIN = "SystemAdmin"                # 전체 함대 관리자 (요트 범위 제한 없음)
    ADMIN = "Admin"                             # 관리자
    CAPTAIN = "Captain"                         # 선장
    CHIEF_ENGINEER = "Chief Engineer"           # 기관장
    HOD = "HoD"                                 # 부서장 (Head of Department)
    MANAGEMENT = "Management/Office"            # 육상 관리 사무소
    CREW_MEMBER = "Crew Member"                 # 일반 승무원


# 과거 역할 이름을 현재 역할로 매핑합니다.
LEGACY_ROLE_ALIASES = {
    "Engineer": UserRole.CHIEF_ENGINEER.value,
    "Steward": UserRole.CREW_MEMBER.value,
}


# =============================================================================
# users 테이블 모델
# =============================================================================
class UserBase(SQLModel):
    """
    users 테이블의 기본 속성을 정의하는 SQLModel Base 클래스입니다.
    """
    email: str = Field(max_length=255, sa_column_kwargs={"unique": True}, index=True, description="로그인 이메일 (소문자)")
    full_name: str = Field(max_length=120, description="사용자 이름")
    role: UserRole = Field(default=UserRole.CREW_MEMBER, description="전역 역할")
    is_active: bool = Field(default=True, description="계정 활성 여부")


class User(UserBase, table=True):
    """
    users 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True, description="사용자 고유 ID")
    password_hash: str = Field(max_length=255, description="해싱된 비밀번호")

    created_at: Optional[datetime] = Field(
        default_factory=utcnow,
        sa_column=created_at_column(),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=utcnow,
        sa_column=updated_at_column(),
        description="레코드 마지막 업데이트 일시"
    )
