# yachtpms/core/database_base.py

"""
모든 도메인 모델이 공유하는 컬럼 타입과 컬럼 팩토리입니다.

- UTCDateTime: 항상 UTC로 저장하고, 조회 시 tz-aware datetime을 돌려줍니다.
  (SQLite는 타임존을 보관하지 않으므로 읽을 때 UTC를 다시 붙입니다.)
- created_at_column / updated_at_column: SQLModel Field(sa_column=...)에
  모델마다 새 Column 인스턴스를 넘기기 위한 팩토리입니다.
"""

from datetime import datetime, UTC
from typing import Optional

from sqlalchemy import Column, JSON
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP, TypeDecorator


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """naive datetime은 UTC로 간주하고, aware datetime은 UTC로 변환합니다."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UTCDateTime(TypeDecorator):
    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = as_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        return as_utc(value)


def datetime_column(nullable: bool = True, index: bool = False) -> Column:
    return Column(UTCDateTime(), nullable=nullable, index=index)


def created_at_column() -> Column:
    return Column(UTCDateTime(), server_default=func.now(), nullable=False)


def updated_at_column() -> Column:
    # onupdate는 파이썬 측 값으로 채워서 flush 이후에도 속성이 만료되지 않게 합니다.
    return Column(UTCDateTime(), server_default=func.now(), onupdate=utcnow, nullable=False)


def json_column(nullable: bool = True) -> Column:
    return Column(JSON, nullable=nullable)
