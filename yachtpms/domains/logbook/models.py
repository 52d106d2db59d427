# yachtpms/domains/logbook/models.py

"""
'logbook' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- logbook_entries: 요트별 일자 항해일지 (요트+일자 유일)
- logbook_engine_readings: 일지에 기록된 엔진 운전시간
- logbook_observations: 일지 관찰 사항
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, updated_at_column, utcnow,
)


class LogBookStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    LOCKED = "Locked"
    CORRECTED = "Corrected"


# 편집/제출이 가능한 상태
EDITABLE_STATUSES = (LogBookStatus.DRAFT, LogBookStatus.CORRECTED)


# =============================================================================
# 1. logbook_entries 테이블 모델
# =============================================================================
class LogBookEntry(SQLModel, table=True):
    __tablename__ = "logbook_entries"
    __table_args__ = (UniqueConstraint("yacht_id", "entry_date", name="uq_logbook_yacht_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    entry_date: datetime = Field(sa_column=datetime_column(nullable=False, index=True), description="일지 일자")
    watch_period: str = Field(max_length=50, description="당직 구분")
    status: LogBookStatus = Field(default=LogBookStatus.DRAFT)
    created_by: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())

    engine_readings: List["LogBookEngineReading"] = Relationship(
        back_populates="entry",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    observations: List["LogBookObservation"] = Relationship(
        back_populates="entry",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


# =============================================================================
# 2. 일지 하위 테이블 모델
# =============================================================================
class LogBookEngineReading(SQLModel, table=True):
    __tablename__ = "logbook_engine_readings"

    id: Optional[int] = Field(default=None, primary_key=True)
    entry_id: int = Field(
        sa_column=Column(Integer, ForeignKey("logbook_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    engine_id: int = Field(
        sa_column=Column(Integer, ForeignKey("engines.id", ondelete="CASCADE"), nullable=False)
    )
    hours: float = Field(ge=0)

    entry: Optional[LogBookEntry] = Relationship(back_populates="engine_readings")


class LogBookObservation(SQLModel, table=True):
    __tablename__ = "logbook_observations"

    id: Optional[int] = Field(default=None, primary_key=True)
    entry_id: int = Field(
        sa_column=Column(Integer, ForeignKey("logbook_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    category: str = Field(max_length=50)
    text: str = Field(max_length=500)

    entry: Optional[LogBookEntry] = Relationship(back_populates="observations")
