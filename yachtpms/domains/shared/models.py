# yachtpms/domains/shared/models.py

"""
'shared' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- alerts: 요트 단위 운영 경보 (dedupe_key로 중복 없이 갱신)
- audit_events: 모든 변경 작업의 감사 이력
"""

from typing import Optional, Any, Dict
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

from yachtpms.core.database_base import created_at_column, datetime_column, json_column, utcnow


# =============================================================================
# 1. alerts 테이블 모델
# =============================================================================
class Alert(SQLModel, table=True):
    """
    요트 경보 테이블입니다. resolved_at이 비어 있으면 미해결 경보입니다.
    """
    __tablename__ = "alerts"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    module: str = Field(max_length=50, description="경보를 만든 모듈 (documents, maintenance, hrm 등)")
    alert_type: str = Field(max_length=80, description="경보 종류 (예: DOC_EXPIRING)")
    severity: str = Field(default="info", max_length=10, description="info | warn | critical")
    due_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    dedupe_key: str = Field(sa_column=Column(String(255), unique=True, nullable=False))
    entity_id: Optional[str] = Field(default=None, max_length=64)
    assigned_to: Optional[int] = Field(default=None, description="담당 사용자 ID")
    resolved_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())


# =============================================================================
# 2. audit_events 테이블 모델
# =============================================================================
class AuditEvent(SQLModel, table=True):
    __tablename__ = "audit_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    module: str = Field(max_length=50)
    entity_type: str = Field(max_length=80, index=True)
    entity_id: str = Field(max_length=64, index=True)
    action: str = Field(max_length=50)
    actor_id: Optional[int] = Field(default=None, description="작업 수행자 ID (시스템 작업은 None)")
    before_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=json_column())
    after_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=json_column())
    source: str = Field(default="api", max_length=20)
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
