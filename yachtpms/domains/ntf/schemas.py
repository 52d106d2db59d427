# yachtpms/domains/ntf/schemas.py

"""
'ntf' 도메인 (수신함, 수신 설정, 알림 규칙, 주기 작업)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from sqlmodel import SQLModel, Field


ModuleName = Literal["inventory", "maintenance", "documents", "jobs", "hrm", "purchase_orders", "logbook"]
ChannelName = Literal["in_app", "email", "push"]
SeverityName = Literal["info", "warn", "critical"]


# =============================================================================
# 1. 수신함 / 수신 설정 스키마
# =============================================================================
class NotificationRead(SQLModel):
    id: int
    user_id: int
    yacht_id: Optional[int] = None
    channel: str
    type: str
    payload: Dict[str, Any] = {}
    status: str
    dedupe_key: str
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: datetime


class PreferenceUpsert(SQLModel):
    timezone: str = Field("UTC", max_length=64)
    in_app_enabled: bool = True
    email_enabled: bool = False
    push_enabled: bool = False
    window_start: str = Field("00:00", max_length=5)
    window_end: str = Field("23:59", max_length=5)
    min_severity: SeverityName = "info"
    yachts_scope: List[int] = Field(default_factory=list)


class PreferenceRead(PreferenceUpsert):
    user_id: int


class EmailRecipientRead(SQLModel):
    user_id: int
    full_name: str
    email: str
    role: str


class EmailLogRead(SQLModel):
    id: int
    type: str
    status: str
    yacht_id: Optional[int] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    module: Optional[str] = None
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime


# =============================================================================
# 2. 알림 규칙 (NotificationRule) 스키마
# =============================================================================
class RuleScope(SQLModel):
    type: Literal["fleet", "yacht", "entity"]
    yacht_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


class RuleCadence(SQLModel):
    mode: Literal["once", "hourly", "daily", "every_n_hours", "every_n_days"]
    value: Optional[int] = Field(None, ge=1, le=365)


class RuleTemplate(SQLModel):
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class RuleRecipientPolicy(SQLModel):
    mode: Literal["roles", "users", "assignee", "role_then_escalate"]
    roles: Optional[List[str]] = None
    user_ids: Optional[List[int]] = None
    escalation_roles: Optional[List[str]] = None


class RuleCreate(SQLModel):
    name: str = Field(..., min_length=1, max_length=120)
    module: ModuleName
    event_type: str = Field(..., min_length=1, max_length=80)
    scope: RuleScope
    conditions: Optional[Dict[str, Any]] = None
    cadence: Optional[RuleCadence] = None
    channels: List[ChannelName]
    min_severity: Optional[SeverityName] = None
    template: RuleTemplate
    recipient_policy: RuleRecipientPolicy
    active: Optional[bool] = None
    dedupe_window_hours: Optional[int] = Field(None, ge=1, le=168)


class RuleUpdate(SQLModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    scope: Optional[RuleScope] = None
    conditions: Optional[Dict[str, Any]] = None
    cadence: Optional[RuleCadence] = None
    channels: Optional[List[ChannelName]] = None
    min_severity: Optional[SeverityName] = None
    template: Optional[RuleTemplate] = None
    recipient_policy: Optional[RuleRecipientPolicy] = None
    active: Optional[bool] = None
    dedupe_window_hours: Optional[int] = Field(None, ge=1, le=168)


class RuleRead(SQLModel):
    id: int
    name: str
    module: str
    event_type: str
    scope_type: str
    yacht_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    conditions: Dict[str, Any] = {}
    cadence_mode: str
    cadence_value: Optional[int] = None
    channels: List[str] = []
    min_severity: str
    template_title: str
    template_message: str
    recipient_mode: str
    recipient_roles: List[str] = []
    recipient_user_ids: List[int] = []
    escalation_roles: List[str] = []
    dedupe_window_hours: int
    is_active: bool
    last_triggered_at: Optional[datetime] = None
    created_by_user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class RuleTestContext(SQLModel):
    yacht_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    assignee_user_id: Optional[int] = None


class RuleTestRequest(SQLModel):
    sample_payload: Dict[str, Any]
    context: Optional[RuleTestContext] = None


class RenderedMessage(SQLModel):
    title: str
    message: str


class RuleTestResult(SQLModel):
    rendered: RenderedMessage
    recipients: List[int]
    condition_match: bool


class QueuedScanRead(SQLModel):
    """ARQ 큐에 등록된 점검 작업 정보"""
    job_id: Optional[str] = None
    name: str
    status: str


# =============================================================================
# 3. 주기 작업 (JobDefinition / JobRun) 스키마
# =============================================================================
class JobSchedule(SQLModel):
    type: Literal["interval_hours", "interval_days", "cron"]
    expression: Optional[str] = None
    every_hours: Optional[int] = Field(None, ge=1, le=24 * 30)
    every_days: Optional[int] = Field(None, ge=1, le=365)
    timezone: Optional[str] = None


class JobAssignmentPolicy(SQLModel):
    mode: Literal["roles", "users", "entity_owner", "yacht_captain"]
    roles: Optional[List[str]] = None
    user_ids: Optional[List[int]] = None


class JobReminder(SQLModel):
    offset_hours: int = Field(..., ge=1, le=24 * 60)
    channels: List[ChannelName]


class JobCreate(SQLModel):
    title: str = Field(..., min_length=1, max_length=160)
    module: ModuleName
    yacht_id: Optional[int] = None
    instructions_template: str = Field(..., min_length=1)
    schedule: JobSchedule
    assignment_policy: JobAssignmentPolicy
    reminders: Optional[List[JobReminder]] = None
    status: Optional[Literal["active", "paused", "archived"]] = None


class JobUpdate(SQLModel):
    title: Optional[str] = Field(None, min_length=1, max_length=160)
    instructions_template: Optional[str] = Field(None, min_length=1)
    schedule: Optional[JobSchedule] = None
    assignment_policy: Optional[JobAssignmentPolicy] = None
    reminders: Optional[List[JobReminder]] = None
    status: Optional[Literal["active", "paused", "archived"]] = None


class JobRead(SQLModel):
    id: int
    title: str
    module: str
    yacht_id: Optional[int] = None
    instructions_template: str
    status: str
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    created_by_user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    schedule: JobSchedule
    assignment_policy: JobAssignmentPolicy
    reminders: List[JobReminder] = []


class JobList(SQLModel):
    items: List[JobRead]
    total: int


class JobRunNowRequest(SQLModel):
    payload: Optional[Dict[str, Any]] = None


class JobRunRead(SQLModel):
    id: int
    job_definition_id: int
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    status: str
    dedupe_key: str
    summary: Optional[Dict[str, Any]] = None
    created_at: datetime


class JobRunList(SQLModel):
    items: List[JobRunRead]
    total: int


class JobExecutionResult(SQLModel):
    run: JobRunRead
    job: JobRead
    delivered: int


class CatalogRead(SQLModel):
    modules: List[str]
    channels: List[str]
    severities: List[str]
    events: Dict[str, List[str]]
