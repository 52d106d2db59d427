# yachtpms/domains/ntf/jobs.py

"""
주기 작업(JobDefinition)과 실행 이력(JobRun)을 관리하는 서비스 모듈입니다.

- 일정: interval_hours / interval_days / 단순 cron (`m h * * *`, `m h * * d`, UTC 기준)
- 담당자 정책: roles / users / entity_owner / yacht_captain
- 리마인더: 다음 실행 offset_hours 전에 채널별로 알림 (중복 방지 키 사용)
- tick(): 실행 시각이 지난 작업 실행 + 리마인더 발송 (ARQ cron에서 5분마다 호출)
"""

import json
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.usr import models as usr_models

from . import models as ntf_models
from . import schemas as ntf_schemas
from .rules import RuleCandidate, as_number
from .services import notification, notification_rule, resolve_users_by_roles

logger = logging.getLogger(__name__)

FLAT_TEMPLATE_PATTERN = re.compile(r"\{\{\s*([a-zA-Z0-9_.-]+)\s*\}\}")

DUE_JOBS_BATCH = 50
REMINDER_JOBS_BATCH = 100
REMINDER_LOOKAHEAD = timedelta(days=7)
OVERDUE_GRACE = timedelta(minutes=30)


# =============================================================================
# 1. 일정 / 리마인더 순수 함수
# =============================================================================
def parse_simple_cron(expression: Optional[str]) -> Optional[Dict[str, Optional[int]]]:
    """
    `분 시 * * 요일` 형태만 지원합니다. 요일은 0(일요일)~6 또는 '*'.
    지원하지 않는 식이면 None을 반환합니다.
    """
    parts = (expression or "").strip().split()
    if len(parts) != 5:
        return None
    minute_part, hour_part, dom_part, month_part, dow_part = parts
    if dom_part != "*" or month_part != "*":
        return None

    minute = _to_int(minute_part)
    hour = _to_int(hour_part)
    if minute is None or not 0 <= minute <= 59:
        return None
    if hour is None or not 0 <= hour <= 23:
        return None

    if dow_part == "*":
        return {"minute": minute, "hour": hour, "day_of_week": None}

    day_of_week = _to_int(dow_part)
    if day_of_week is None or not 0 <= day_of_week <= 6:
        return None
    return {"minute": minute, "hour": hour, "day_of_week": day_of_week}


def _to_int(value: str) -> Optional[int]:
    number = as_number(value)
    if number is None or not float(number).is_integer():
        return None
    return int(number)


def compute_next_cron_run(expression: str, from_date: datetime) -> datetime:
    parsed = parse_simple_cron(expression)
    if not parsed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported cron expression")

    base = as_utc(from_date)
    candidate = base.replace(hour=parsed["hour"], minute=parsed["minute"], second=0, microsecond=0)

    if parsed["day_of_week"] is None:
        if candidate <= base:
            candidate += timedelta(days=1)
        return candidate

    # cron 요일: 일요일=0
    current_dow = (candidate.weekday() + 1) % 7
    delta = (parsed["day_of_week"] - current_dow + 7) % 7
    if delta == 0 and candidate <= base:
        delta = 7
    return candidate + timedelta(days=delta)


def compute_next_run_at(schedule: Dict[str, Any], from_date: datetime) -> Optional[datetime]:
    base = as_utc(from_date)
    if schedule["type"] == "interval_hours" and schedule.get("interval_hours"):
        return base + timedelta(hours=schedule["interval_hours"])
    if schedule["type"] == "interval_days" and schedule.get("interval_days"):
        return base + timedelta(days=schedule["interval_days"])
    if schedule["type"] == "cron" and schedule.get("cron_expression"):
        return compute_next_cron_run(schedule["cron_expression"], base)
    return None


def normalize_schedule(schedule: Optional[ntf_schemas.JobSchedule]) -> Dict[str, Any]:
    if schedule is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="schedule is required")

    timezone = (schedule.timezone or "UTC").strip() or "UTC"
    if schedule.type == "interval_hours":
        if not schedule.every_hours or schedule.every_hours < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="schedule.everyHours must be >= 1")
        return {"type": "interval_hours", "interval_hours": schedule.every_hours,
                "interval_days": None, "cron_expression": None, "timezone": timezone}

    if schedule.type == "interval_days":
        if not schedule.every_days or schedule.every_days < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="schedule.everyDays must be >= 1")
        return {"type": "interval_days", "interval_hours": None,
                "interval_days": schedule.every_days, "cron_expression": None, "timezone": timezone}

    expression = (schedule.expression or "").strip()
    if not parse_simple_cron(expression):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="cron expression must be `m h * * *` or `m h * * d`",
        )
    return {"type": "cron", "interval_hours": None, "interval_days": None,
            "cron_expression": expression, "timezone": timezone}


def normalize_reminders(reminders: Optional[List[ntf_schemas.JobReminder]]) -> List[Dict[str, Any]]:
    """중복 offset_hours는 400, 결과는 offset_hours 내림차순입니다."""
    seen = set()
    normalized = []
    for reminder in reminders or []:
        if reminder.offset_hours in seen:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"duplicate reminder offsetHours: {reminder.offset_hours}",
            )
        seen.add(reminder.offset_hours)
        normalized.append({"offset_hours": reminder.offset_hours, "channels": list(dict.fromkeys(reminder.channels))})
    return sorted(normalized, key=lambda item: item["offset_hours"], reverse=True)


def parse_reminders(value: Any) -> List[Dict[str, Any]]:
    """저장된 리마인더 JSON에서 유효한 항목만 골라냅니다."""
    if not isinstance(value, list):
        return []
    parsed = []
    for item in value:
        if not isinstance(item, dict):
            continue
        offset = item.get("offset_hours")
        channels = item.get("channels")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 1 or not isinstance(channels, list):
            continue
        valid_channels = [c for c in channels if c in ("in_app", "email", "push")]
        if valid_channels:
            parsed.append({"offset_hours": offset, "channels": valid_channels})
    return parsed


def schedule_of(job: ntf_models.JobDefinition) -> Dict[str, Any]:
    return {
        "type": job.schedule_type,
        "interval_hours": job.interval_hours,
        "interval_days": job.interval_days,
        "cron_expression": job.cron_expression,
        "timezone": job.timezone or "UTC",
    }


def render_flat_template(template: str, variables: Dict[str, Any]) -> str:
    """작업 지시문 템플릿은 점 경로 없이 키 이름 그대로 치환합니다."""
    def _replace(match: re.Match) -> str:
        value = variables.get(match.group(1))
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str, separators=(",", ":"))
        return str(value)

    return FLAT_TEMPLATE_PATTERN.sub(_replace, template or "")


def to_job_response(job: ntf_models.JobDefinition) -> Dict[str, Any]:
    data = job.model_dump(exclude={
        "schedule_type", "cron_expression", "interval_hours", "interval_days", "timezone",
        "assignment_mode", "assignment_roles", "assignment_user_ids", "reminders",
    })
    data["schedule"] = {
        "type": job.schedule_type,
        "expression": job.cron_expression,
        "every_hours": job.interval_hours,
        "every_days": job.interval_days,
        "timezone": job.timezone,
    }
    data["assignment_policy"] = {
        "mode": job.assignment_mode,
        "roles": list(job.assignment_roles or []),
        "user_ids": list(job.assignment_user_ids or []),
    }
    data["reminders"] = parse_reminders(job.reminders)
    return data


# =============================================================================
# 2. job_definitions / job_runs 서비스
# =============================================================================
class CRUDJobDefinition(CRUDBase[ntf_models.JobDefinition, ntf_schemas.JobCreate, ntf_schemas.JobUpdate]):
    def __init__(self):
        super().__init__(model=ntf_models.JobDefinition)

    async def get_or_404(self, db: AsyncSession, job_id: int) -> ntf_models.JobDefinition:
        job = await self.get(db, job_id)
        if not job:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
        return job

    async def list_jobs(
        self, db: AsyncSession, *, yacht_id: Optional[int] = None, status_filter: Optional[str] = None
    ) -> Dict[str, Any]:
        statement = select(self.model)
        if yacht_id is not None:
            statement = statement.where(self.model.yacht_id == yacht_id)
        if status_filter:
            statement = statement.where(self.model.status == status_filter)
        statement = statement.order_by(self.model.status.asc(), self.model.updated_at.desc())
        items = (await db.execute(statement)).scalars().all()
        return {"items": [to_job_response(item) for item in items], "total": len(items)}

    async def create_job(
        self, db: AsyncSession, *, obj_in: ntf_schemas.JobCreate, actor_id: int
    ) -> Dict[str, Any]:
        schedule = normalize_schedule(obj_in.schedule)
        reminders = normalize_reminders(obj_in.reminders)
        job_status = obj_in.status or "active"
        next_run_at = None if job_status in ("paused", "archived") else compute_next_run_at(schedule, utcnow())

        job = self.model(
            title=obj_in.title.strip(),
            module=obj_in.module,
            yacht_id=obj_in.yacht_id,
            instructions_template=obj_in.instructions_template.strip(),
            schedule_type=schedule["type"],
            cron_expression=schedule["cron_expression"],
            interval_hours=schedule["interval_hours"],
            interval_days=schedule["interval_days"],
            timezone=schedule["timezone"],
            assignment_mode=obj_in.assignment_policy.mode,
            assignment_roles=obj_in.assignment_policy.roles or [],
            assignment_user_ids=obj_in.assignment_policy.user_ids or [],
            reminders=reminders,
            status=job_status,
            next_run_at=next_run_at,
            created_by_user_id=actor_id,
        )
        db.add(job)
        await db.flush()

        await notification_rule.dispatch_candidates(db, [
            RuleCandidate(
                type="jobs.created",
                module="jobs",
                yacht_id=job.yacht_id,
                entity_type="JobDefinition",
                entity_id=str(job.id),
                severity="info",
                payload={
                    "job_definition_id": job.id,
                    "title": job.title,
                    "module": job.module,
                    "next_run_at": job.next_run_at.isoformat() if job.next_run_at else None,
                },
            )
        ])
        await db.commit()
        await db.refresh(job)
        return to_job_response(job)

    async def update_job(
        self, db: AsyncSession, *, job_id: int, obj_in: ntf_schemas.JobUpdate
    ) -> Dict[str, Any]:
        job = await self.get_or_404(db, job_id)

        schedule = normalize_schedule(obj_in.schedule) if obj_in.schedule else schedule_of(job)
        reminders = normalize_reminders(obj_in.reminders) if obj_in.reminders is not None else parse_reminders(job.reminders)
        next_status = obj_in.status or job.status

        if next_status != "active":
            next_run_at = None
        elif job.next_run_at:
            next_run_at = job.next_run_at
        else:
            next_run_at = compute_next_run_at(schedule, utcnow())

        if obj_in.title is not None:
            job.title = obj_in.title.strip()
        if obj_in.instructions_template is not None:
            job.instructions_template = obj_in.instructions_template.strip()
        job.schedule_type = schedule["type"]
        job.cron_expression = schedule["cron_expression"]
        job.interval_hours = schedule["interval_hours"]
        job.interval_days = schedule["interval_days"]
        job.timezone = schedule["timezone"]
        if obj_in.assignment_policy is not None:
            job.assignment_mode = obj_in.assignment_policy.mode
            job.assignment_roles = obj_in.assignment_policy.roles or []
            job.assignment_user_ids = obj_in.assignment_policy.user_ids or []
        job.reminders = reminders
        job.status = next_status
        job.next_run_at = next_run_at
        db.add(job)
        await db.flush()

        await notification_rule.dispatch_candidates(db, [
            RuleCandidate(
                type="jobs.assignment_changed",
                module="jobs",
                yacht_id=job.yacht_id,
                entity_type="JobDefinition",
                entity_id=str(job.id),
                severity="info",
                payload={
                    "job_definition_id": job.id,
                    "title": job.title,
                    "status": job.status,
                    "next_run_at": job.next_run_at.isoformat() if job.next_run_at else None,
                },
            )
        ])
        await db.commit()
        await db.refresh(job)
        return to_job_response(job)

    async def resolve_assignees(self, db: AsyncSession, job: ntf_models.JobDefinition) -> List[int]:
        if job.assignment_mode == "users":
            ids = list(job.assignment_user_ids or [])
            if not ids:
                return []
            statement = (
                select(usr_models.User.id)
                .where(usr_models.User.id.in_(ids), usr_models.User.is_active == True)  # noqa: E712
                .order_by(usr_models.User.id.asc())
            )
            return list((await db.execute(statement)).scalars().all())

        if job.assignment_mode == "yacht_captain":
            captains = await resolve_users_by_roles(db, ["Captain"], job.yacht_id)
            if captains:
                return captains
            return await resolve_users_by_roles(db, ["Management/Office", "Admin"], job.yacht_id)

        if job.assignment_mode == "entity_owner":
            explicit = await resolve_users_by_roles(db, job.assignment_roles, job.yacht_id)
            if explicit:
                return explicit
            return await resolve_users_by_roles(db, ["Captain", "Chief Engineer"], job.yacht_id)

        return await resolve_users_by_roles(db, job.assignment_roles, job.yacht_id)

    # --- 실행 ---
    async def execute_job_run(
        self,
        db: AsyncSession,
        job: ntf_models.JobDefinition,
        *,
        scheduled_at: datetime,
        trigger: str,
        payload: Optional[Dict[str, Any]] = None,
        actor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        실행 이력을 pending -> running -> completed로 기록하고,
        담당자에게 in_app 알림을 보낸 뒤 다음 실행 시각을 계산합니다.
        오류가 나면 실행 이력을 failed로 남기고 예외를 다시 발생시킵니다.
        """
        payload = payload or {}
        scheduled_at = as_utc(scheduled_at)
        scheduled_iso = scheduled_at.isoformat()
        job_id = job.id

        run = ntf_models.JobRun(
            job_definition_id=job_id,
            scheduled_at=scheduled_at,
            status="pending",
            dedupe_key=f"job-run:{job_id}:{scheduled_iso}",
        )
        db.add(run)
        await db.commit()
        run_id = run.id

        try:
            run.status = "running"
            run.started_at = utcnow()
            db.add(run)
            await db.flush()

            now = utcnow()
            severity = "critical" if scheduled_at < now - OVERDUE_GRACE else "info"
            event_type = "jobs.overdue" if severity == "critical" else "jobs.reminder_due"

            assignees = await self.resolve_assignees(db, job)
            instructions = render_flat_template(job.instructions_template, {
                **payload,
                "title": job.title,
                "module": job.module,
                "scheduledAt": scheduled_iso,
                "scheduled_at": scheduled_iso,
                "trigger": trigger,
            })

            delivered = 0
            for user_id in assignees:
                result = await notification.maybe_send_in_app(
                    db,
                    user_id=user_id,
                    yacht_id=job.yacht_id,
                    type=event_type,
                    dedupe_key=f"job-run:{job_id}:{scheduled_iso}:user:{user_id}",
                    severity=severity,
                    payload={
                        **payload,
                        "job_definition_id": job_id,
                        "job_run_id": run_id,
                        "title": job.title,
                        "module": job.module,
                        "instructions": instructions,
                        "scheduled_at": scheduled_iso,
                        "trigger": trigger,
                        "actor_user_id": actor_id,
                    },
                    dedupe_window_hours=24,
                )
                if getattr(result, "status", None) == "sent":
                    delivered += 1

            await notification_rule.dispatch_candidates(db, [
                RuleCandidate(
                    type=event_type,
                    module="jobs",
                    yacht_id=job.yacht_id,
                    entity_type="JobDefinition",
                    entity_id=str(job_id),
                    severity=severity,
                    payload={
                        "job_definition_id": job_id,
                        "job_run_id": run_id,
                        "title": job.title,
                        "module": job.module,
                        "scheduled_at": scheduled_iso,
                        "delivered": delivered,
                        "assignee_user_ids": assignees,
                        "trigger": trigger,
                        "ran_at": now.isoformat(),
                    },
                    occurred_at=now,
                )
            ])

            next_run_at = compute_next_run_at(schedule_of(job), scheduled_at)
            run.status = "completed"
            run.finished_at = utcnow()
            run.summary = {
                "delivered": delivered,
                "assignees": assignees,
                "trigger": trigger,
                "rendered_instructions": instructions,
            }
            job.last_run_at = now
            job.next_run_at = next_run_at
            db.add(run)
            db.add(job)
            await db.commit()
            await db.refresh(run)
            await db.refresh(job)
            return {"run": run, "job": to_job_response(job), "delivered": delivered}
        except Exception as exc:
            await db.rollback()
            failed = await db.get(ntf_models.JobRun, run_id)
            if failed is not None:
                failed.status = "failed"
                failed.finished_at = utcnow()
                failed.summary = {"error": str(exc) or exc.__class__.__name__}
                db.add(failed)
                await db.commit()
            logger.error("Job run %s for job %s failed: %s", run_id, job_id, exc)
            raise

    async def run_now(
        self, db: AsyncSession, *, job_id: int, actor_id: int, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        job = await self.get_or_404(db, job_id)
        return await self.execute_job_run(
            db, job, scheduled_at=utcnow(), trigger="manual", payload=payload or {}, actor_id=actor_id
        )

    async def list_runs(self, db: AsyncSession, *, job_id: int, limit: Optional[int] = 20) -> Dict[str, Any]:
        await self.get_or_404(db, job_id)
        safe_limit = min(max(limit or 20, 1), 200)
        statement = (
            select(ntf_models.JobRun)
            .where(ntf_models.JobRun.job_definition_id == job_id)
            .order_by(ntf_models.JobRun.scheduled_at.desc(), ntf_models.JobRun.id.desc())
            .limit(safe_limit)
        )
        items = (await db.execute(statement)).scalars().all()
        total = (await db.execute(
            select(func.count(ntf_models.JobRun.id)).where(ntf_models.JobRun.job_definition_id == job_id)
        )).scalar_one()
        return {"items": items, "total": total}

    # --- tick ---
    async def tick(self, db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
        current = as_utc(now) or utcnow()
        due_runs = await self.process_due_jobs(db, current)
        reminders = await self.process_reminders(db, current)
        return {"at": current.isoformat(), "due_runs": due_runs, "reminders": reminders}

    async def process_due_jobs(self, db: AsyncSession, now: datetime) -> Dict[str, int]:
        statement = (
            select(self.model.id)
            .where(self.model.status == "active", self.model.next_run_at <= now)
            .order_by(self.model.next_run_at.asc())
            .limit(DUE_JOBS_BATCH)
        )
        due_ids = list((await db.execute(statement)).scalars().all())

        executed = 0
        failed = 0
        for job_id in due_ids:
            # 실패한 실행이 롤백되면 세션 객체가 만료되므로 매번 다시 읽습니다.
            job = await self.get(db, job_id)
            if job is None:
                continue
            try:
                await self.execute_job_run(db, job, scheduled_at=job.next_run_at or now, trigger="scheduler")
                executed += 1
            except Exception as exc:
                failed += 1
                logger.warning("Scheduled job %s failed during tick: %s", job_id, exc)
        return {"executed": executed, "failed": failed, "total": len(due_ids)}

    async def process_reminders(self, db: AsyncSession, now: datetime) -> Dict[str, int]:
        statement = (
            select(self.model)
            .where(
                self.model.status == "active",
                self.model.next_run_at >= now,
                self.model.next_run_at <= now + REMINDER_LOOKAHEAD,
            )
            .order_by(self.model.next_run_at.asc())
            .limit(REMINDER_JOBS_BATCH)
        )
        jobs = list((await db.execute(statement)).scalars().all())

        sent = 0
        for job in jobs:
            reminders = parse_reminders(job.reminders)
            if not reminders or not job.next_run_at:
                continue
            assignees = await self.resolve_assignees(db, job)
            if not assignees:
                continue

            next_run_at = as_utc(job.next_run_at)
            next_iso = next_run_at.isoformat()
            for reminder in reminders:
                offset = reminder["offset_hours"]
                if next_run_at - timedelta(hours=offset) > now:
                    continue

                payload = {
                    "job_definition_id": job.id,
                    "title": job.title,
                    "module": job.module,
                    "next_run_at": next_iso,
                    "reminder_offset_hours": offset,
                    "instructions_template": job.instructions_template,
                }
                for user_id in assignees:
                    for channel in reminder["channels"]:
                        result = await notification.send(
                            db,
                            channel=channel,
                            dedupe_window_hours=24,
                            user_id=user_id,
                            yacht_id=job.yacht_id,
                            type="jobs.reminder_due",
                            dedupe_key=(
                                f"job-reminder:{job.id}:{next_iso}:offset:{offset}"
                                f":user:{user_id}:channel:{channel}"
                            ),
                            severity="warn",
                            payload=payload,
                        )
                        if getattr(result, "status", None) == "sent":
                            sent += 1

                await notification_rule.dispatch_candidates(db, [
                    RuleCandidate(
                        type="jobs.reminder_due",
                        module="jobs",
                        yacht_id=job.yacht_id,
                        entity_type="JobDefinition",
                        entity_id=str(job.id),
                        severity="warn",
                        payload={
                            "job_definition_id": job.id,
                            "title": job.title,
                            "module": job.module,
                            "next_run_at": next_iso,
                            "reminder_offset_hours": offset,
                        },
                        occurred_at=now,
                    )
                ])
            await db.commit()
        return {"sent": sent}


job_definition = CRUDJobDefinition()
