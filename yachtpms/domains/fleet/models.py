# yachtpms/domains/fleet/models.py

"""
'fleet' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- yachts: 함대에 속한 요트
- user_yacht_accesses: 사용자별 요트 접근 권한 (요트 단위 역할 재지정 포함)
- engines / engine_counters: 요트 엔진과 누적 운전시간 기록
"""

from typing import Optional, List
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, updated_at_column, utcnow,
)


# =============================================================================
# 1. yachts 테이블 모델
# =============================================================================
class YachtBase(SQLModel):
    name: str = Field(max_length=120, description="요트 이름")
    flag: str = Field(max_length=10, description="선적 국가 코드 (대문자)")
    imo_optional: Optional[str] = Field(default=None, max_length=20, description="IMO 번호 (선택)")
    is_active: bool = Field(default=True, description="운항 여부")


class Yacht(YachtBase, table=True):
    """
    yachts 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "yachts"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())

    engines: List["Engine"] = Relationship(
        back_populates="yacht",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


# =============================================================================
# 2. user_yacht_accesses 테이블 모델
# =============================================================================
class UserYachtAccess(SQLModel, table=True):
    """
    사용자가 접근할 수 있는 요트 목록입니다.
    revoked_at이 채워진 행은 회수된 권한으로 간주합니다.
    """
    __tablename__ = "user_yacht_accesses"
    __table_args__ = (UniqueConstraint("user_id", "yacht_id", name="uq_user_yacht_access"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        description="사용자 ID (FK)"
    )
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True),
        description="요트 ID (FK)"
    )
    role_name_override: Optional[str] = Field(default=None, max_length=50, description="이 요트에서만 적용되는 역할")
    revoked_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    revoked_by: Optional[int] = Field(default=None, description="권한을 회수한 사용자 ID")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())


# =============================================================================
# 3. engines / engine_counters 테이블 모델
# =============================================================================
class EngineBase(SQLModel):
    name: str = Field(max_length=100, description="엔진 이름 (예: Port Main)")
    type: str = Field(max_length=50, description="엔진 종류")
    serial_no: str = Field(max_length=100, description="제조 번호")


class Engine(EngineBase, table=True):
    __tablename__ = "engines"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())

    yacht: Optional[Yacht] = Relationship(back_populates="engines")
    counters: List["EngineCounter"] = Relationship(
        back_populates="engine",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class EngineCounter(SQLModel, table=True):
    """
    항해일지 제출 시 기록되는 엔진 누적 운전시간입니다.
    """
    __tablename__ = "engine_counters"

    id: Optional[int] = Field(default=None, primary_key=True)
    engine_id: int = Field(
        sa_column=Column(Integer, ForeignKey("engines.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    reading_hours: float = Field(ge=0, description="누적 운전시간")
    reading_date: datetime = Field(sa_column=datetime_column(nullable=False))
    source_logbook_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("logbook_entries.id", ondelete="SET NULL"), nullable=True),
        description="계측값을 생성한 항해일지 ID"
    )
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())

    engine: Optional[Engine] = Relationship(back_populates="counters")
