# yachtpms/domains/ntf/models.py

"""
'ntf' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- notification_events: 사용자별 채널 발송 이력 (in_app 수신함 포함)
- notification_preferences: 사용자 알림 수신 설정
- notification_rules: 이벤트 기반 알림 규칙
- job_definitions / job_runs: 주기 작업 정의와 실행 이력
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlmodel import Field, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, json_column, updated_at_column, utcnow,
)


# =============================================================================
# 1. notification_events 테이블 모델
# =============================================================================
class NotificationEvent(SQLModel, table=True):
    """
    status: sent | read | skipped | failed
    skipped/failed 행의 error에는 차단 사유 또는 공급자 오류가 들어갑니다.
    """
    __tablename__ = "notification_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    yacht_id: Optional[int] = Field(default=None, foreign_key="yachts.id")
    channel: str = Field(max_length=20, index=True)
    type: str = Field(max_length=80)
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=json_column(nullable=False))
    status: str = Field(default="sent", max_length=20)
    dedupe_key: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    error: Optional[str] = Field(default=None, sa_column=Column(Text))
    sent_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    read_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())


# =============================================================================
# 2. notification_preferences 테이블 모델
# =============================================================================
class NotificationPreferenceBase(SQLModel):
    timezone: str = Field(default="UTC", max_length=64)
    in_app_enabled: bool = Field(default=True)
    email_enabled: bool = Field(default=False)
    push_enabled: bool = Field(default=False)
    window_start: str = Field(default="00:00", max_length=5)
    window_end: str = Field(default="23:59", max_length=5)
    min_severity: str = Field(default="info", max_length=10)
    yachts_scope: List[int] = Field(default_factory=list, sa_column=json_column(nullable=False))


class NotificationPreference(NotificationPreferenceBase, table=True):
    __tablename__ = "notification_preferences"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    )
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())


# =============================================================================
# 3. notification_rules 테이블 모델
# =============================================================================
class NotificationRule(SQLModel, table=True):
    __tablename__ = "notification_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=120)
    module: str = Field(max_length=30, index=True)
    event_type: str = Field(max_length=80, index=True)
    scope_type: str = Field(default="fleet", max_length=10, description="fleet | yacht | entity")
    yacht_id: Optional[int] = Field(default=None, foreign_key="yachts.id")
    entity_type: Optional[str] = Field(default=None, max_length=80)
    entity_id: Optional[str] = Field(default=None, max_length=64)
    conditions: Dict[str, Any] = Field(default_factory=dict, sa_column=json_column(nullable=False))
    cadence_mode: str = Field(default="daily", max_length=20)
    cadence_value: Optional[int] = Field(default=None)
    channels: List[str] = Field(default_factory=list, sa_column=json_column(nullable=False))
    min_severity: str = Field(default="info", max_length=10)
    template_title: str = Field(max_length=200)
    template_message: str = Field(sa_column=Column(Text, nullable=False))
    recipient_mode: str = Field(default="roles", max_length=30)
    recipient_roles: List[str] = Field(default_factory=list, sa_column=json_column(nullable=False))
    recipient_user_ids: List[int] = Field(default_factory=list, sa_column=json_column(nullable=False))
    escalation_roles: List[str] = Field(default_factory=list, sa_column=json_column(nullable=False))
    dedupe_window_hours: int = Field(default=24, ge=1, le=168)
    is_active: bool = Field(default=True)
    last_triggered_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    created_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())


# =============================================================================
# 4. job_definitions / job_runs 테이블 모델
# =============================================================================
class JobDefinition(SQLModel, table=True):
    __tablename__ = "job_definitions"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=160)
    module: str = Field(max_length=30)
    yacht_id: Optional[int] = Field(default=None, foreign_key="yachts.id", index=True)
    instructions_template: str = Field(sa_column=Column(Text, nullable=False))
    schedule_type: str = Field(max_length=20, description="interval_hours | interval_days | cron")
    cron_expression: Optional[str] = Field(default=None, max_length=60)
    interval_hours: Optional[int] = Field(default=None)
    interval_days: Optional[int] = Field(default=None)
    timezone: str = Field(default="UTC", max_length=64)
    assignment_mode: str = Field(default="roles", max_length=20)
    assignment_roles: List[str] = Field(default_factory=list, sa_column=json_column(nullable=False))
    assignment_user_ids: List[int] = Field(default_factory=list, sa_column=json_column(nullable=False))
    reminders: List[Dict[str, Any]] = Field(default_factory=list, sa_column=json_column(nullable=False))
    status: str = Field(default="active", max_length=10, index=True)
    next_run_at: Optional[datetime] = Field(default=None, sa_column=datetime_column(index=True))
    last_run_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    created_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())


class JobRun(SQLModel, table=True):
    __tablename__ = "job_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_definition_id: int = Field(
        sa_column=Column(Integer, ForeignKey("job_definitions.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    scheduled_at: datetime = Field(sa_column=datetime_column(nullable=False))
    started_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    finished_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    status: str = Field(default="pending", max_length=20, description="pending | running | completed | failed | cancelled")
    dedupe_key: str = Field(max_length=255)
    summary: Optional[Dict[str, Any]] = Field(default=None, sa_column=json_column())
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
