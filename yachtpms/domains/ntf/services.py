# yachtpms/domains/ntf/services.py

"""
알림 파이프라인의 DB 작업을 담당하는 서비스 모듈입니다.

- 채널별 전송 (in_app / email / push): 사용자 수신 설정에 따른 차단, 중복 방지 창
- 수신함 조회와 읽음 처리, 수신 설정 조회/저장
- 알림 규칙 관리와 후보 이벤트 배포 (dispatch_candidates)
- 역할 기반 수신자 조회 헬퍼

maybe_send_* 와 dispatch_candidates는 flush만 하고 커밋하지 않습니다.
호출한 도메인 서비스가 자신의 트랜잭션과 함께 커밋합니다.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.shared import crud as shared_crud
from yachtpms.domains.usr import models as usr_models

from . import catalog
from . import models as ntf_models
from . import rules as rule_eval
from . import schemas as ntf_schemas
from .channels import EmailProvider, PushProvider

logger = logging.getLogger(__name__)

PRIVILEGED_ROLES = ("SystemAdmin", "Admin", "Management/Office")

DEFAULT_PREFERENCE: Dict[str, Any] = {
    "timezone": "UTC",
    "in_app_enabled": True,
    "email_enabled": False,
    "push_enabled": False,
    "window_start": "00:00",
    "window_end": "23:59",
    "min_severity": "info",
    "yachts_scope": [],
}

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")

EMAIL_LOG_STATUSES = ("sent", "failed", "skipped", "read")

# 알림 유형별 기본 제목과 화면 경로
PRESENTATION: Dict[str, tuple] = {
    "documents.created": ("Document created", "documents"),
    "documents.updated": ("Document updated", "documents"),
    "documents.version_uploaded": ("New document version", "documents"),
    "documents.submitted": ("Document submitted for approval", "documents"),
    "documents.approved": ("Document approved", "documents"),
    "documents.rejected": ("Document rejected", "documents"),
    "documents.archived": ("Document archived", "documents"),
    "documents.deleted": ("Document deleted", "documents"),
    "documents.expiring": ("Document expiring soon", "documents"),
    "documents.expired": ("Document expired", "documents"),
    "maintenance.task_assigned": ("Maintenance task assigned", "maintenance"),
    "maintenance.task_reassigned": ("Maintenance task reassigned", "maintenance"),
    "maintenance.task_submitted": ("Maintenance task submitted", "maintenance"),
    "maintenance.task_approved": ("Maintenance task approved", "maintenance"),
    "maintenance.task_rejected": ("Maintenance task rejected", "maintenance"),
    "maintenance.task_completed": ("Maintenance task completed", "maintenance"),
    "maintenance.evidence_added": ("Maintenance evidence added", "maintenance"),
    "maintenance.due_soon": ("Maintenance due soon", "maintenance"),
    "maintenance.overdue": ("Maintenance overdue", "maintenance"),
    "jobs.reminder_due": ("Scheduled job reminder", "jobs"),
    "jobs.overdue": ("Scheduled job overdue", "jobs"),
    "hrm.schedule_created": ("Work schedule assigned", "hrm"),
    "hrm.rest_non_compliance": ("Rest hours non-compliance", "hrm"),
    "hrm.leave_pending_approval": ("Leave request pending approval", "hrm"),
    "hrm.leave_approved": ("Leave request approved", "hrm"),
    "hrm.leave_rejected": ("Leave request rejected", "hrm"),
    "hrm.payroll_generated": ("Payroll generated", "hrm"),
    "hrm.payroll_published": ("Payroll published", "hrm"),
    "po.created": ("Purchase order created", "purchase-orders"),
    "po.updated": ("Purchase order updated", "purchase-orders"),
    "po.submitted": ("Purchase order submitted", "purchase-orders"),
    "po.approved": ("Purchase order approved", "purchase-orders"),
    "po.ordered": ("Purchase order ordered", "purchase-orders"),
    "po.received": ("Purchase order received", "purchase-orders"),
    "po.cancelled": ("Purchase order cancelled", "purchase-orders"),
    "logbook.submitted": ("Log Book entry submitted", "logbook"),
    "logbook.locked": ("Log Book entry locked", "logbook"),
}


# =============================================================================
# 1. 순수 헬퍼 (수신 설정 / 표시 정보)
# =============================================================================
def pick_text(source: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def build_presentation(event_type: str, payload: Dict[str, Any], yacht_id: Optional[int]) -> Dict[str, Any]:
    module = catalog.module_from_type(event_type)
    title, section = PRESENTATION.get(event_type, (f"{module.upper()} notification", None))
    message = pick_text(payload, ["reason"]) or "A platform update was recorded."
    presentation: Dict[str, Any] = {"module": module, "title": title, "message": message}
    if section and yacht_id is not None:
        presentation["action_url"] = f"/yachts/{yacht_id}/{section}"
    return presentation


def normalize_in_app_payload(event_type: str, payload: Any, yacht_id: Optional[int]) -> Dict[str, Any]:
    """수신함 표시에 필요한 title/message/description/module/action_url을 채웁니다."""
    data = dict(payload) if isinstance(payload, dict) else {}
    defaults = build_presentation(event_type, data, yacht_id)

    message = pick_text(data, ["message", "detail", "status_text"]) or defaults["message"]
    merged = {
        **data,
        "title": pick_text(data, ["title"]) or defaults["title"],
        "message": message,
        "description": pick_text(data, ["description"]) or message,
    }
    if not pick_text(data, ["module"]):
        merged["module"] = defaults["module"]
    if not pick_text(data, ["action_url"]) and defaults.get("action_url"):
        merged["action_url"] = defaults["action_url"]
    return merged


def parse_time_to_minutes(value: Any) -> Optional[int]:
    if not isinstance(value, str):
        return None
    match = TIME_PATTERN.match(value.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def now_in_timezone(timezone: Optional[str], now: Optional[datetime] = None) -> datetime:
    """사용자 시간대의 현재 시각. 알 수 없는 시간대는 UTC로 대체합니다."""
    current = as_utc(now) or utcnow()
    try:
        return current.astimezone(ZoneInfo(timezone or "UTC"))
    except (ZoneInfoNotFoundError, ValueError):
        return current


def is_within_delivery_window(
    timezone: Optional[str], window_start: Any, window_end: Any, now: Optional[datetime] = None
) -> bool:
    local = now_in_timezone(timezone, now)
    current = local.hour * 60 + local.minute
    start = parse_time_to_minutes(window_start)
    end = parse_time_to_minutes(window_end)

    if start is None or end is None or start == end:
        return True
    if start < end:
        return start <= current <= end
    # 자정을 넘는 창 (예: 22:00 ~ 06:00)
    return current >= start or current <= end


def channel_block_reason(
    preference: Dict[str, Any],
    severity: str,
    yacht_id: Optional[int],
    channel: str,
    now: Optional[datetime] = None,
) -> Optional[str]:
    if channel == "in_app" and not preference["in_app_enabled"]:
        return "channel_disabled_in_app"
    if channel == "email" and not preference["email_enabled"]:
        return "channel_disabled_email"
    if channel == "push" and not preference["push_enabled"]:
        return "channel_disabled_push"

    if not rule_eval.meets_min_severity(severity, preference["min_severity"]):
        return "severity_below_preference"

    scope = preference.get("yachts_scope") or []
    if scope and yacht_id is not None and yacht_id not in scope:
        return "yacht_out_of_scope"

    if not is_within_delivery_window(preference["timezone"], preference["window_start"], preference["window_end"], now):
        return "outside_delivery_window"

    return None


def assert_user_access(actor: rbac.ActorContext, target_user_id: int) -> None:
    if actor.user_id == target_user_id or actor.role in PRIVILEGED_ROLES:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden user scope")


# =============================================================================
# 2. 역할 기반 수신자 조회
# =============================================================================
async def resolve_users_by_roles(
    db: AsyncSession, roles: Optional[Sequence[str]], yacht_id: Optional[int] = None
) -> List[int]:
    """
    역할에 해당하는 활성 사용자 ID 목록입니다.
    요트가 주어지면 회수되지 않은 접근 권한 중
    role_name_override 또는 전역 역할이 일치하는 사용자를 찾습니다.
    """
    users = await list_users_by_roles(db, roles, yacht_id)
    return [user.id for user in users]


async def list_users_by_roles(
    db: AsyncSession, roles: Optional[Sequence[str]], yacht_id: Optional[int] = None
) -> List[usr_models.User]:
    names = {rbac.normalize_role(role) for role in roles or [] if role}
    if not names:
        return []

    if yacht_id is None:
        members = rbac.role_enums(names)
        if not members:
            return []
        statement = (
            select(usr_models.User)
            .where(usr_models.User.is_active == True, usr_models.User.role.in_(members))  # noqa: E712
            .order_by(usr_models.User.id.asc())
        )
        return list((await db.execute(statement)).scalars().all())

    Access = fleet_models.UserYachtAccess
    statement = (
        select(Access, usr_models.User)
        .join(usr_models.User, usr_models.User.id == Access.user_id)
        .where(Access.yacht_id == yacht_id, Access.revoked_at.is_(None), usr_models.User.is_active == True)  # noqa: E712
        .order_by(Access.created_at.asc(), Access.id.asc())
    )
    users: List[usr_models.User] = []
    for access, user in (await db.execute(statement)).all():
        override = rbac.normalize_role(access.role_name_override)
        if override in names or rbac.normalize_role(user.role) in names:
            if all(existing.id != user.id for existing in users):
                users.append(user)
    return users


async def resolve_responsible_user_id(
    db: AsyncSession,
    yacht_id: int,
    assignee_id: Optional[int] = None,
    creator_id: Optional[int] = None,
) -> Optional[int]:
    """담당자 -> 요트의 첫 Captain -> 첫 Management/Office -> 작성자 순으로 책임자를 정합니다."""
    if assignee_id:
        return assignee_id
    for role in ("Captain", "Management/Office"):
        candidates = await resolve_users_by_roles(db, [role], yacht_id)
        if candidates:
            return candidates[0]
    return creator_id


# =============================================================================
# 3. notification_events (채널 전송, 수신함)
# =============================================================================
class CRUDNotificationEvent(CRUDBase[ntf_models.NotificationEvent, ntf_models.NotificationEvent, ntf_models.NotificationEvent]):
    def __init__(self):
        super().__init__(model=ntf_models.NotificationEvent)
        self.email_provider = EmailProvider()
        self.push_provider = PushProvider()

    async def create_in_app(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        yacht_id: Optional[int],
        type: str,
        dedupe_key: str,
        payload: Dict[str, Any],
    ) -> ntf_models.NotificationEvent:
        """설정/중복 검사 없이 in_app 알림을 바로 기록합니다."""
        event = self.model(
            user_id=user_id,
            yacht_id=yacht_id,
            channel="in_app",
            type=type,
            payload=normalize_in_app_payload(type, payload, yacht_id),
            status="sent",
            dedupe_key=dedupe_key,
            sent_at=utcnow(),
        )
        db.add(event)
        await db.flush()
        return event

    async def create_in_app_once(
        self, db: AsyncSession, *, window_hours: int = 24, **kwargs: Any
    ) -> Optional[ntf_models.NotificationEvent]:
        """같은 dedupe_key의 in_app 알림이 창 안에 이미 있으면 만들지 않습니다."""
        if await self._exists_within(
            db, user_id=kwargs["user_id"], channel="in_app", dedupe_key=kwargs["dedupe_key"],
            hours=window_hours, statuses=("sent", "read"),
        ):
            return None
        return await self.create_in_app(db, **kwargs)

    async def _create_skipped(
        self, db: AsyncSession, *, user_id: int, yacht_id: Optional[int], channel: str,
        type: str, dedupe_key: str, payload: Dict[str, Any], reason: str,
    ) -> ntf_models.NotificationEvent:
        event = self.model(
            user_id=user_id, yacht_id=yacht_id, channel=channel, type=type,
            payload=payload, status="skipped", dedupe_key=dedupe_key, error=reason,
        )
        db.add(event)
        await db.flush()
        return event

    async def _exists_within(
        self, db: AsyncSession, *, user_id: int, channel: str, dedupe_key: str,
        hours: int, statuses: Sequence[str],
    ) -> bool:
        since = utcnow() - timedelta(hours=hours)
        statement = (
            select(self.model.id)
            .where(
                self.model.user_id == user_id,
                self.model.channel == channel,
                self.model.dedupe_key == dedupe_key,
                self.model.created_at >= since,
                self.model.status.in_(list(statuses)),
            )
            .limit(1)
        )
        return (await db.execute(statement)).first() is not None

    async def _record_provider_result(
        self, db: AsyncSession, *, user_id: int, yacht_id: Optional[int], channel: str,
        type: str, dedupe_key: str, payload: Dict[str, Any], result: Dict[str, Any],
    ) -> ntf_models.NotificationEvent:
        result_status = result.get("status")
        if result_status not in ("sent", "failed", "skipped"):
            result = {"status": "failed", "error": f"unknown_status:{result_status}"}
            result_status = "failed"
        if result_status == "failed":
            error = str(result.get("error") or "unknown_error")
        elif result_status == "skipped":
            error = result.get("reason")
        else:
            error = None

        event = self.model(
            user_id=user_id, yacht_id=yacht_id, channel=channel, type=type, payload=payload,
            status=result_status, dedupe_key=dedupe_key, error=error,
            sent_at=utcnow() if result_status == "sent" else None,
        )
        db.add(event)
        await db.flush()
        return event

    async def maybe_send_in_app(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        yacht_id: Optional[int],
        type: str,
        dedupe_key: str,
        severity: str,
        payload: Dict[str, Any],
        dedupe_window_hours: Optional[int] = None,
    ) -> Any:
        """
        수신 설정에 막히면 skipped 행을 기록하고,
        중복 창 안에 같은 dedupe_key의 sent/read 행이 있으면
        {"status": "skipped", "reason": "dedupe_window"}를 반환합니다.
        """
        preference = await preference_crud.resolve(db, user_id=user_id)
        reason = channel_block_reason(preference, severity, yacht_id, "in_app")
        if reason:
            return await self._create_skipped(
                db, user_id=user_id, yacht_id=yacht_id, channel="in_app",
                type=type, dedupe_key=dedupe_key, payload=payload, reason=reason,
            )

        window = max(1, min(dedupe_window_hours or 24, 24 * 7))
        if await self._exists_within(
            db, user_id=user_id, channel="in_app", dedupe_key=dedupe_key, hours=window, statuses=("sent", "read")
        ):
            return {"status": "skipped", "reason": "dedupe_window"}

        return await self.create_in_app(
            db, user_id=user_id, yacht_id=yacht_id, type=type, dedupe_key=dedupe_key, payload=payload
        )

    async def maybe_send_email(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        yacht_id: Optional[int],
        type: str,
        dedupe_key: str,
        severity: str,
        payload: Dict[str, Any],
    ) -> Any:
        preference = await preference_crud.resolve(db, user_id=user_id)
        reason = channel_block_reason(preference, severity, yacht_id, "email")
        if reason:
            return await self._create_skipped(
                db, user_id=user_id, yacht_id=yacht_id, channel="email",
                type=type, dedupe_key=dedupe_key, payload=payload, reason=reason,
            )

        if await self._exists_within(
            db, user_id=user_id, channel="email", dedupe_key=dedupe_key, hours=24, statuses=("sent",)
        ):
            return {"status": "skipped", "reason": "dedupe_window"}

        user = await db.get(usr_models.User, user_id)
        result = await self.email_provider.send(
            to_email=user.email if user else "",
            subject=pick_text(payload, ["title"]) or type,
            text=pick_text(payload, ["message", "description"]) or "",
            event_type=type,
        )
        return await self._record_provider_result(
            db, user_id=user_id, yacht_id=yacht_id, channel="email",
            type=type, dedupe_key=dedupe_key, payload=payload, result=result,
        )

    async def maybe_send_push(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        yacht_id: Optional[int],
        type: str,
        dedupe_key: str,
        severity: str,
        payload: Dict[str, Any],
    ) -> Any:
        preference = await preference_crud.resolve(db, user_id=user_id)
        reason = channel_block_reason(preference, severity, yacht_id, "push")
        if reason:
            return await self._create_skipped(
                db, user_id=user_id, yacht_id=yacht_id, channel="push",
                type=type, dedupe_key=dedupe_key, payload=payload, reason=reason,
            )

        if await self._exists_within(
            db, user_id=user_id, channel="push", dedupe_key=dedupe_key, hours=12, statuses=("sent",)
        ):
            return {"status": "skipped", "reason": "dedupe_window"}

        result = await self.push_provider.send(
            user_id=user_id,
            title=pick_text(payload, ["title"]) or type,
            body=pick_text(payload, ["message"]) or "",
            event_type=type,
        )
        return await self._record_provider_result(
            db, user_id=user_id, yacht_id=yacht_id, channel="push",
            type=type, dedupe_key=dedupe_key, payload=payload, result=result,
        )

    async def send(self, db: AsyncSession, *, channel: str, dedupe_window_hours: Optional[int] = None, **kwargs: Any) -> Any:
        """채널 이름으로 maybe_send_* 를 고릅니다."""
        if channel == "in_app":
            return await self.maybe_send_in_app(db, dedupe_window_hours=dedupe_window_hours, **kwargs)
        if channel == "email":
            return await self.maybe_send_email(db, **kwargs)
        if channel == "push":
            return await self.maybe_send_push(db, **kwargs)
        return None

    # --- 수신함 ---
    async def list_in_app(
        self, db: AsyncSession, *, actor: rbac.ActorContext, target_user_id: int, limit: Optional[int] = 20
    ) -> List[Dict[str, Any]]:
        assert_user_access(actor, target_user_id)
        safe_limit = min(max(limit or 20, 1), 200)
        statement = (
            select(self.model)
            .where(self.model.user_id == target_user_id, self.model.channel == "in_app")
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(safe_limit)
        )
        rows = (await db.execute(statement)).scalars().all()
        return [
            {**row.model_dump(), "payload": normalize_in_app_payload(row.type, row.payload, row.yacht_id)}
            for row in rows
        ]

    async def mark_read(
        self, db: AsyncSession, *, actor: rbac.ActorContext, notification_id: int
    ) -> ntf_models.NotificationEvent:
        event = await self.get(db, notification_id)
        if not event:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
        if event.user_id != actor.user_id and actor.role not in PRIVILEGED_ROLES:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden notification scope")

        event.status = "read"
        event.read_at = utcnow()
        db.add(event)
        await db.commit()
        await db.refresh(event)
        return event

    # --- 이메일 수신자 / 발송 이력 ---
    async def list_email_recipients(self, db: AsyncSession, *, yacht_id: Optional[int] = None) -> List[Dict[str, Any]]:
        if yacht_id is None:
            statement = (
                select(usr_models.User)
                .where(usr_models.User.is_active == True)  # noqa: E712
                .order_by(usr_models.User.full_name.asc())
            )
            users = (await db.execute(statement)).scalars().all()
            return [
                {"user_id": u.id, "full_name": u.full_name, "email": u.email, "role": rbac.normalize_role(u.role)}
                for u in users
            ]

        Access = fleet_models.UserYachtAccess
        statement = (
            select(Access, usr_models.User)
            .join(usr_models.User, usr_models.User.id == Access.user_id)
            .where(Access.yacht_id == yacht_id, Access.revoked_at.is_(None), usr_models.User.is_active == True)  # noqa: E712
            .order_by(Access.created_at.asc())
        )
        unique: Dict[int, Dict[str, Any]] = {}
        for access, user in (await db.execute(statement)).all():
            if user.id not in unique:
                unique[user.id] = {
                    "user_id": user.id,
                    "full_name": user.full_name,
                    "email": user.email,
                    "role": rbac.normalize_role(access.role_name_override) or rbac.normalize_role(user.role),
                }
        return sorted(unique.values(), key=lambda item: item["full_name"].lower())

    async def list_email_logs(
        self,
        db: AsyncSession,
        *,
        limit: Optional[int] = 40,
        status_filter: Optional[str] = None,
        yacht_id: Optional[int] = None,
        recipient: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        safe_limit = min(max(limit or 40, 1), 200)
        normalized_status = (status_filter or "").strip().lower()
        if normalized_status and normalized_status not in EMAIL_LOG_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email status")

        statement = (
            select(self.model, usr_models.User)
            .join(usr_models.User, usr_models.User.id == self.model.user_id)
            .where(self.model.channel == "email")
        )
        if normalized_status:
            statement = statement.where(self.model.status == normalized_status)
        if yacht_id is not None:
            statement = statement.where(self.model.yacht_id == yacht_id)
        term = (recipient or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            statement = statement.where(
                (func.lower(usr_models.User.email).like(pattern)) | (func.lower(usr_models.User.full_name).like(pattern))
            )
        statement = statement.order_by(self.model.created_at.desc(), self.model.id.desc()).limit(safe_limit)

        items = []
        for event, user in (await db.execute(statement)).all():
            payload = event.payload or {}
            items.append({
                "id": event.id,
                "type": event.type,
                "status": event.status,
                "yacht_id": event.yacht_id,
                "recipient_email": user.email,
                "recipient_name": user.full_name,
                "subject": pick_text(payload, ["subject", "title"]),
                "message": pick_text(payload, ["message", "description", "detail"]),
                "module": pick_text(payload, ["module"]) or catalog.module_from_type(event.type),
                "error": event.error,
                "sent_at": event.sent_at,
                "created_at": event.created_at,
            })
        return items


notification = CRUDNotificationEvent()


# =============================================================================
# 4. notification_preferences
# =============================================================================
class CRUDNotificationPreference(CRUDBase[ntf_models.NotificationPreference, ntf_schemas.PreferenceUpsert, ntf_schemas.PreferenceUpsert]):
    def __init__(self):
        super().__init__(model=ntf_models.NotificationPreference)

    async def get_by_user(self, db: AsyncSession, *, user_id: int) -> Optional[ntf_models.NotificationPreference]:
        return await self.get_by_attribute(db, attribute="user_id", value=user_id)

    async def resolve(self, db: AsyncSession, *, user_id: int) -> Dict[str, Any]:
        """저장된 설정이 없으면 기본값을 돌려줍니다."""
        preference = await self.get_by_user(db, user_id=user_id)
        if preference is None:
            return {**DEFAULT_PREFERENCE, "yachts_scope": []}
        return {
            "timezone": preference.timezone or "UTC",
            "in_app_enabled": preference.in_app_enabled,
            "email_enabled": preference.email_enabled,
            "push_enabled": preference.push_enabled,
            "window_start": preference.window_start or "00:00",
            "window_end": preference.window_end or "23:59",
            "min_severity": rule_eval.normalize_severity(preference.min_severity),
            "yachts_scope": list(preference.yachts_scope or []),
        }

    async def get_for_actor(self, db: AsyncSession, *, actor: rbac.ActorContext, target_user_id: int) -> Dict[str, Any]:
        assert_user_access(actor, target_user_id)
        return {"user_id": target_user_id, **(await self.resolve(db, user_id=target_user_id))}

    async def upsert_for_actor(
        self,
        db: AsyncSession,
        *,
        actor: rbac.ActorContext,
        target_user_id: int,
        obj_in: ntf_schemas.PreferenceUpsert,
    ) -> Dict[str, Any]:
        assert_user_access(actor, target_user_id)
        data = obj_in.model_dump()
        data["timezone"] = (data.get("timezone") or "UTC").strip() or "UTC"

        preference = await self.get_by_user(db, user_id=target_user_id)
        if preference is None:
            preference = self.model(user_id=target_user_id, **data)
        else:
            for key, value in data.items():
                setattr(preference, key, value)
        db.add(preference)
        await db.commit()
        return {"user_id": target_user_id, **(await self.resolve(db, user_id=target_user_id))}


preference_crud = CRUDNotificationPreference()


# =============================================================================
# 5. notification_rules (규칙 관리, 후보 이벤트 배포)
# =============================================================================
class CRUDNotificationRule(CRUDBase[ntf_models.NotificationRule, ntf_schemas.RuleCreate, ntf_schemas.RuleUpdate]):
    def __init__(self):
        super().__init__(model=ntf_models.NotificationRule)

    async def list_rules(
        self,
        db: AsyncSession,
        *,
        module: Optional[str] = None,
        yacht_id: Optional[int] = None,
        status_filter: Optional[str] = None,
    ) -> List[ntf_models.NotificationRule]:
        statement = select(self.model)
        if module:
            statement = statement.where(self.model.module == module)
        if yacht_id is not None:
            statement = statement.where(self.model.yacht_id == yacht_id)
        if status_filter == "active":
            statement = statement.where(self.model.is_active == True)  # noqa: E712
        elif status_filter == "paused":
            statement = statement.where(self.model.is_active == False)  # noqa: E712
        statement = statement.order_by(self.model.is_active.desc(), self.model.updated_at.desc())
        return list((await db.execute(statement)).scalars().all())

    async def create_rule(
        self, db: AsyncSession, *, obj_in: ntf_schemas.RuleCreate, actor_id: int
    ) -> ntf_models.NotificationRule:
        event_type = obj_in.event_type.strip()
        if not catalog.is_known_event(obj_in.module, event_type):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown event type for module")

        policy = obj_in.recipient_policy
        rule = self.model(
            name=obj_in.name.strip(),
            module=obj_in.module,
            event_type=event_type,
            scope_type=obj_in.scope.type,
            yacht_id=obj_in.scope.yacht_id,
            entity_type=obj_in.scope.entity_type,
            entity_id=obj_in.scope.entity_id,
            conditions=obj_in.conditions or {},
            cadence_mode=obj_in.cadence.mode if obj_in.cadence else "daily",
            cadence_value=obj_in.cadence.value if obj_in.cadence else None,
            channels=list(obj_in.channels),
            min_severity=obj_in.min_severity or "info",
            template_title=obj_in.template.title.strip(),
            template_message=obj_in.template.message.strip(),
            recipient_mode=policy.mode,
            recipient_roles=policy.roles or [],
            recipient_user_ids=policy.user_ids or [],
            escalation_roles=policy.escalation_roles or [],
            dedupe_window_hours=obj_in.dedupe_window_hours or 24,
            is_active=True if obj_in.active is None else obj_in.active,
            created_by_user_id=actor_id,
        )
        db.add(rule)
        await db.commit()
        await db.refresh(rule)
        return rule

    async def update_rule(
        self, db: AsyncSession, *, rule_id: int, obj_in: ntf_schemas.RuleUpdate
    ) -> ntf_models.NotificationRule:
        """전달된 항목만 갱신합니다."""
        rule = await self.get(db, rule_id)
        if not rule:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification rule not found")

        if obj_in.name is not None:
            rule.name = obj_in.name.strip()
        if obj_in.scope is not None:
            rule.scope_type = obj_in.scope.type
            rule.yacht_id = obj_in.scope.yacht_id
            rule.entity_type = obj_in.scope.entity_type
            rule.entity_id = obj_in.scope.entity_id
        if obj_in.conditions is not None:
            rule.conditions = obj_in.conditions
        if obj_in.cadence is not None:
            rule.cadence_mode = obj_in.cadence.mode
            rule.cadence_value = obj_in.cadence.value
        if obj_in.channels is not None:
            rule.channels = list(obj_in.channels)
        if obj_in.min_severity is not None:
            rule.min_severity = obj_in.min_severity
        if obj_in.template is not None:
            rule.template_title = obj_in.template.title.strip()
            rule.template_message = obj_in.template.message.strip()
        if obj_in.recipient_policy is not None:
            policy = obj_in.recipient_policy
            rule.recipient_mode = policy.mode
            if policy.roles is not None:
                rule.recipient_roles = policy.roles
            if policy.user_ids is not None:
                rule.recipient_user_ids = policy.user_ids
            if policy.escalation_roles is not None:
                rule.escalation_roles = policy.escalation_roles
        if obj_in.dedupe_window_hours is not None:
            rule.dedupe_window_hours = obj_in.dedupe_window_hours
        if obj_in.active is not None:
            rule.is_active = obj_in.active

        db.add(rule)
        await db.commit()
        await db.refresh(rule)
        return rule

    async def resolve_recipients(
        self, db: AsyncSession, rule: ntf_models.NotificationRule, candidate: rule_eval.RuleCandidate
    ) -> List[int]:
        if rule.recipient_mode == "users":
            ids = list(rule.recipient_user_ids or [])
            if not ids:
                return []
            statement = (
                select(usr_models.User.id)
                .where(usr_models.User.id.in_(ids), usr_models.User.is_active == True)  # noqa: E712
                .order_by(usr_models.User.id.asc())
            )
            return list((await db.execute(statement)).scalars().all())

        if rule.recipient_mode == "assignee":
            if candidate.assignee_user_id:
                user = await db.get(usr_models.User, candidate.assignee_user_id)
                if user and user.is_active:
                    return [user.id]
            return await resolve_users_by_roles(db, ["Captain", "Management/Office"], candidate.yacht_id)

        if rule.recipient_mode == "role_then_escalate":
            primary = [candidate.assignee_user_id] if candidate.assignee_user_id else []
            role_users = await resolve_users_by_roles(db, rule.recipient_roles, candidate.yacht_id)
            escalation = await resolve_users_by_roles(db, rule.escalation_roles, candidate.yacht_id)
            return rule_eval.unique_ids(primary + role_users + escalation)

        return await resolve_users_by_roles(db, rule.recipient_roles, candidate.yacht_id)

    async def test_rule(
        self, db: AsyncSession, *, rule_id: int, obj_in: ntf_schemas.RuleTestRequest
    ) -> Dict[str, Any]:
        rule = await self.get(db, rule_id)
        if not rule:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification rule not found")

        context = obj_in.context or ntf_schemas.RuleTestContext()
        sample = obj_in.sample_payload or {}
        candidate = rule_eval.RuleCandidate(
            type=rule.event_type,
            module=rule.module,
            yacht_id=context.yacht_id if context.yacht_id is not None else rule.yacht_id,
            entity_type=context.entity_type or rule.entity_type,
            entity_id=context.entity_id or rule.entity_id,
            severity=rule_eval.normalize_severity(pick_text(sample, ["severity"]) or rule.min_severity),
            payload=sample,
            assignee_user_id=context.assignee_user_id,
            occurred_at=utcnow(),
        )
        recipients = await self.resolve_recipients(db, rule, candidate)
        variables = rule_eval.build_template_variables(candidate)
        return {
            "rendered": {
                "title": rule_eval.render_template(rule.template_title, variables),
                "message": rule_eval.render_template(rule.template_message, variables),
            },
            "recipients": recipients,
            "condition_match": rule_eval.matches_conditions(rule.conditions, candidate.payload),
        }

    async def last_sent_at(self, db: AsyncSession, *, rule_key: str) -> Optional[datetime]:
        """이 중복 범위(rule_key)로 수신자 중 누구에게든 마지막으로 전송된 시각"""
        Event = ntf_models.NotificationEvent
        statement = select(func.max(Event.sent_at)).where(
            Event.dedupe_key.startswith(f"{rule_key}:user:", autoescape=True),
            Event.status.in_(("sent", "read")),
        )
        return as_utc((await db.execute(statement)).scalar())

    async def dispatch_candidates(
        self,
        db: AsyncSession,
        candidates: Sequence[rule_eval.RuleCandidate],
        now: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """
        후보 이벤트에 맞는 활성 규칙을 찾아 수신자별/채널별로 전송합니다.
        범위가 맞는 규칙마다 processed가 1 증가하고,
        실제로 전송된(sent) 건수가 dispatched에 더해집니다.
        """
        if not candidates:
            return {"processed": 0, "dispatched": 0}

        current = as_utc(now) or utcnow()
        event_types = sorted({candidate.type for candidate in candidates})
        statement = (
            select(self.model)
            .where(self.model.is_active == True, self.model.event_type.in_(event_types))  # noqa: E712
            .order_by(self.model.updated_at.desc())
        )
        rules = list((await db.execute(statement)).scalars().all())

        processed = 0
        dispatched = 0
        for candidate in candidates:
            candidate.severity = rule_eval.normalize_severity(candidate.severity)
            for rule in rules:
                if rule.event_type != candidate.type or not rule_eval.matches_scope(rule, candidate):
                    continue
                processed += 1

                rule_key = rule_eval.build_dedupe_key(rule.id, candidate)
                last_sent_at = await self.last_sent_at(db, rule_key=rule_key)
                if not rule_eval.cadence_allows(rule, current, last_sent_at):
                    continue
                if not rule_eval.matches_conditions(rule.conditions, candidate.payload):
                    continue
                if not rule_eval.meets_min_severity(candidate.severity, rule.min_severity):
                    continue

                recipients = await self.resolve_recipients(db, rule, candidate)
                if not recipients:
                    continue

                variables = rule_eval.build_template_variables(candidate)
                base_payload = {
                    **(candidate.payload or {}),
                    "title": rule_eval.render_template(rule.template_title, variables),
                    "message": rule_eval.render_template(rule.template_message, variables),
                    "module": rule.module,
                    "event_type": candidate.type,
                }

                sent = 0
                for user_id in recipients:
                    for channel in rule.channels or []:
                        result = await notification.send(
                            db,
                            channel=channel,
                            dedupe_window_hours=rule.dedupe_window_hours,
                            user_id=user_id,
                            yacht_id=candidate.yacht_id,
                            type=candidate.type,
                            dedupe_key=f"{rule_key}:user:{user_id}",
                            severity=candidate.severity,
                            payload=base_payload,
                        )
                        if _status_of(result) == "sent":
                            sent += 1

                if not sent:
                    continue

                dispatched += sent
                rule.last_triggered_at = current
                db.add(rule)

                if candidate.yacht_id is not None and catalog.severity_rank(candidate.severity) >= catalog.severity_rank("warn"):
                    await shared_crud.alert.upsert(
                        db,
                        yacht_id=candidate.yacht_id,
                        module=rule.module,
                        alert_type=candidate.type,
                        severity=candidate.severity,
                        dedupe_key=f"rule-alert:{rule_key}",
                        due_at=candidate.occurred_at,
                        entity_id=candidate.entity_id,
                        assigned_to=recipients[0],
                    )

        await db.flush()
        if dispatched:
            logger.info("Rule dispatch: processed=%s dispatched=%s", processed, dispatched)
        return {"processed": processed, "dispatched": dispatched}


def _status_of(result: Any) -> Optional[str]:
    if result is None:
        return None
    if isinstance(result, dict):
        return result.get("status")
    return getattr(result, "status", None)


notification_rule = CRUDNotificationRule()


# =============================================================================
# 6. 도메인 워크플로 알림
# =============================================================================
async def notify_users(
    db: AsyncSession,
    *,
    user_ids: Iterable[Optional[int]],
    yacht_id: int,
    type: str,
    dedupe_base: str,
    payload: Dict[str, Any],
    module: str,
    entity_type: str,
    entity_id: Any,
    severity: str = "info",
) -> int:
    """
    수신자마다 in_app 알림을 기록하고(`{dedupe_base}-{user_id}`),
    같은 이벤트를 알림 규칙 후보로 한 번 배포합니다.
    수신자가 없으면 아무것도 하지 않습니다. 커밋은 호출한 쪽에서 합니다.
    """
    recipients = rule_eval.unique_ids(list(user_ids))
    if not recipients:
        return 0

    for user_id in recipients:
        await notification.create_in_app(
            db, user_id=user_id, yacht_id=yacht_id, type=type,
            dedupe_key=f"{dedupe_base}-{user_id}", payload=payload,
        )

    await notification_rule.dispatch_candidates(db, [
        rule_eval.RuleCandidate(
            type=type,
            module=module,
            yacht_id=yacht_id,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            severity=severity,
            payload=dict(payload),
            assignee_user_id=recipients[0],
            occurred_at=utcnow(),
        )
    ])
    return len(recipients)
