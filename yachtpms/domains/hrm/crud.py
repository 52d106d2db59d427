# yachtpms/domains/hrm/crud.py

"""
'hrm' 도메인의 CRUD 작업을 담당하는 모듈입니다.

- 근무 일정, 휴식시간 신고(미준수 시 경보), 휴가 승인, 급여 대장 생성/발행
모든 변경은 감사 이력을 남기고 관련 사용자에게 알림을 보냅니다.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.ntf.services import notify_users, resolve_users_by_roles
from yachtpms.domains.shared import crud as shared_crud
from yachtpms.domains.usr import models as usr_models
from . import models as hrm_models
from . import schemas as hrm_schemas


SUPERVISOR_ROLES = ("Captain", "Chief Engineer", "Management/Office", "Admin", "SystemAdmin")
LEAVE_APPROVER_ROLES = ("Captain", "HoD", "Management/Office", "Admin", "SystemAdmin")
PAYROLL_MANAGER_ROLES = ("Captain", "Management/Office", "Admin", "SystemAdmin")


def notification_severity(event_type: str) -> str:
    if "non_compliance" in event_type or "rejected" in event_type:
        return "critical"
    if "pending" in event_type or "rest_" in event_type:
        return "warn"
    return "info"


def is_compliant(rest_hours: float) -> bool:
    return rest_hours >= hrm_models.MIN_REST_HOURS


def summarize_rest(declarations: List[hrm_models.RestDeclaration]) -> Dict[str, Any]:
    total = len(declarations)
    compliant = sum(1 for item in declarations if item.compliant)
    return {
        "total": total,
        "compliant": compliant,
        "non_compliant": total - compliant,
        "compliance_rate": 100 if total == 0 else round(compliant / total * 100),
        "total_worked_hours": round(sum(item.worked_hours for item in declarations), 2),
        "total_rest_hours": round(sum(item.rest_hours for item in declarations), 2),
    }


async def _audit(
    db: AsyncSession, *, actor_id: int, action: str, entity_type: str, entity_id: int, before: Any, after: Any
) -> None:
    await shared_crud.audit.record(
        db, module="hrm", entity_type=entity_type, entity_id=entity_id,
        action=action, actor_id=actor_id, before=before, after=after,
    )


async def _notify(
    db: AsyncSession,
    *,
    user_ids: List[Optional[int]],
    yacht_id: int,
    event_type: str,
    dedupe_base: str,
    entity_id: Optional[int],
    payload: Dict[str, Any],
) -> None:
    await notify_users(
        db,
        user_ids=user_ids,
        yacht_id=yacht_id,
        type=event_type,
        dedupe_base=dedupe_base,
        payload=payload,
        module="hrm",
        entity_type="Hrm",
        entity_id=entity_id,
        severity=notification_severity(event_type),
    )


async def list_crew_options(db: AsyncSession, *, yacht_id: int) -> List[Dict[str, Any]]:
    """요트에 접근 권한이 있는 활성 사용자 목록 (권한 부여 순)"""
    statement = (
        select(usr_models.User)
        .join(fleet_models.UserYachtAccess, fleet_models.UserYachtAccess.user_id == usr_models.User.id)
        .where(
            fleet_models.UserYachtAccess.yacht_id == yacht_id,
            fleet_models.UserYachtAccess.revoked_at.is_(None),
            usr_models.User.is_active == True,  # noqa: E712
        )
        .order_by(fleet_models.UserYachtAccess.created_at.asc())
    )
    users = (await db.execute(statement)).scalars().all()
    return [{"user_id": user.id, "name": user.full_name or user.email, "email": user.email} for user in users]


# =============================================================================
# 1. 근무 일정 CRUD
# =============================================================================
class CRUDWorkSchedule(CRUDBase[hrm_models.WorkSchedule, hrm_schemas.ScheduleCreate, hrm_schemas.ScheduleUpdate]):
    def __init__(self):
        super().__init__(model=hrm_models.WorkSchedule)

    async def list_schedules(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        user_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[hrm_models.WorkSchedule]:
        statement = select(self.model).where(self.model.yacht_id == yacht_id)
        if user_id is not None:
            statement = statement.where(self.model.user_id == user_id)
        if date_from:
            statement = statement.where(self.model.work_date >= date_from)
        if date_to:
            statement = statement.where(self.model.work_date <= date_to)
        statement = statement.order_by(self.model.work_date.asc(), self.model.created_at.desc())
        return list((await db.execute(statement)).scalars().all())

    async def get_scoped(
        self, db: AsyncSession, *, schedule_id: int, actor: rbac.ActorContext
    ) -> hrm_models.WorkSchedule:
        db_schedule = await self.get(db, id=schedule_id)
        if not db_schedule:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
        rbac.assert_yacht_scope(db_schedule.yacht_id, actor)
        return db_schedule

    async def create_schedule(
        self, db: AsyncSession, *, obj_in: hrm_schemas.ScheduleCreate, actor_id: int
    ) -> hrm_models.WorkSchedule:
        db_schedule = self.model(
            yacht_id=obj_in.yacht_id,
            user_id=obj_in.user_id,
            work_date=obj_in.work_date,
            start_time=obj_in.start_time,
            end_time=obj_in.end_time,
            rest_hours=obj_in.rest_hours or 0,
            notes=obj_in.notes.strip() if obj_in.notes else None,
            created_by=actor_id,
        )
        db.add(db_schedule)
        await db.flush()
        await _audit(
            db, actor_id=actor_id, action="create_schedule", entity_type="HrmSchedule",
            entity_id=db_schedule.id, before=None, after=db_schedule,
        )
        if db_schedule.user_id != actor_id:
            await _notify(
                db,
                user_ids=[db_schedule.user_id],
                yacht_id=db_schedule.yacht_id,
                event_type="hrm.schedule_created",
                dedupe_base=f"hrm-schedule-{db_schedule.id}-created",
                entity_id=db_schedule.id,
                payload={
                    "schedule_id": db_schedule.id,
                    "user_id": db_schedule.user_id,
                    "work_date": as_utc(db_schedule.work_date).isoformat(),
                },
            )
        await db.commit()
        await db.refresh(db_schedule)
        return db_schedule

    async def update_schedule(
        self,
        db: AsyncSession,
        *,
        db_schedule: hrm_models.WorkSchedule,
        obj_in: hrm_schemas.ScheduleUpdate,
        actor_id: int,
    ) -> hrm_models.WorkSchedule:
        data = obj_in.model_dump(exclude_unset=True)
        patch: Dict[str, Any] = {}
        for key in ("start_time", "end_time", "rest_hours"):
            if data.get(key) is not None:
                patch[key] = data[key]
        if "notes" in data:
            patch["notes"] = (data["notes"] or "").strip() or None
        if not patch:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No schedule fields to update")

        before = shared_crud.snapshot(db_schedule)
        for key, value in patch.items():
            setattr(db_schedule, key, value)
        db.add(db_schedule)
        await db.flush()
        await _audit(
            db, actor_id=actor_id, action="update_schedule", entity_type="HrmSchedule",
            entity_id=db_schedule.id, before=before, after=db_schedule,
        )
        await db.commit()
        await db.refresh(db_schedule)
        return db_schedule


schedule = CRUDWorkSchedule()


# =============================================================================
# 2. 휴식시간 신고 CRUD
# =============================================================================
class CRUDRestDeclaration(CRUDBase[hrm_models.RestDeclaration, hrm_schemas.RestDeclarationCreate, hrm_schemas.RestDeclarationCreate]):
    def __init__(self):
        super().__init__(model=hrm_models.RestDeclaration)

    async def report(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        user_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        statement = select(self.model).where(self.model.yacht_id == yacht_id)
        if user_id is not None:
            statement = statement.where(self.model.user_id == user_id)
        if date_from:
            statement = statement.where(self.model.work_date >= date_from)
        if date_to:
            statement = statement.where(self.model.work_date <= date_to)
        declarations = list((await db.execute(statement.order_by(self.model.work_date.asc()))).scalars().all())
        return {"items": declarations, "summary": summarize_rest(declarations)}

    async def create_declaration(
        self, db: AsyncSession, *, obj_in: hrm_schemas.RestDeclarationCreate, actor_id: int
    ) -> hrm_models.RestDeclaration:
        """
        휴식시간이 10시간 미만이면 `hrm-rest-noncompliant-{user}-{YYYY-MM-DD}` 경보를
        첫 번째 감독자에게 배정하고 감독자 전원에게 알립니다.
        """
        declaration = self.model(
            yacht_id=obj_in.yacht_id,
            user_id=obj_in.user_id,
            work_date=obj_in.work_date,
            worked_hours=obj_in.worked_hours,
            rest_hours=obj_in.rest_hours,
            compliant=is_compliant(obj_in.rest_hours),
            comment=obj_in.comment.strip() if obj_in.comment else None,
            created_by=actor_id,
        )
        db.add(declaration)
        await db.flush()
        await _audit(
            db, actor_id=actor_id, action="create_rest_declaration", entity_type="HrmRestDeclaration",
            entity_id=declaration.id, before=None, after=declaration,
        )

        if not declaration.compliant:
            supervisors = await resolve_users_by_roles(db, SUPERVISOR_ROLES, declaration.yacht_id)
            dedupe_key = (
                f"hrm-rest-noncompliant-{declaration.user_id}-"
                f"{as_utc(declaration.work_date).date().isoformat()}"
            )
            await shared_crud.alert.upsert(
                db,
                yacht_id=declaration.yacht_id,
                module="hrm",
                alert_type="rest_non_compliance",
                severity="warn",
                due_at=declaration.work_date,
                dedupe_key=dedupe_key,
                entity_id=str(declaration.id),
                assigned_to=supervisors[0] if supervisors else None,
            )
            await _notify(
                db,
                user_ids=supervisors,
                yacht_id=declaration.yacht_id,
                event_type="hrm.rest_non_compliance",
                dedupe_base=dedupe_key,
                entity_id=declaration.id,
                payload={
                    "declaration_id": declaration.id,
                    "user_id": declaration.user_id,
                    "rest_hours": declaration.rest_hours,
                    "worked_hours": declaration.worked_hours,
                },
            )
        await db.commit()
        await db.refresh(declaration)
        return declaration


rest_declaration = CRUDRestDeclaration()


# =============================================================================
# 3. 휴가 신청 CRUD
# =============================================================================
class CRUDLeaveRequest(CRUDBase[hrm_models.LeaveRequest, hrm_schemas.LeaveRequestCreate, hrm_schemas.LeaveReview]):
    def __init__(self):
        super().__init__(model=hrm_models.LeaveRequest)

    async def list_leaves(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        status_filter: Optional[hrm_models.LeaveStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[hrm_models.LeaveRequest]:
        statement = select(self.model).where(self.model.yacht_id == yacht_id)
        if status_filter:
            statement = statement.where(self.model.status == status_filter)
        if date_from:
            statement = statement.where(self.model.start_date >= date_from)
        if date_to:
            statement = statement.where(self.model.start_date <= date_to)
        statement = statement.order_by(
            self.model.status.asc(), self.model.start_date.asc(), self.model.created_at.desc()
        )
        return list((await db.execute(statement)).scalars().all())

    async def get_scoped(
        self, db: AsyncSession, *, leave_id: int, actor: rbac.ActorContext
    ) -> hrm_models.LeaveRequest:
        leave = await self.get(db, id=leave_id)
        if not leave:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leave request not found")
        rbac.assert_yacht_scope(leave.yacht_id, actor)
        return leave

    async def create_leave(
        self, db: AsyncSession, *, obj_in: hrm_schemas.LeaveRequestCreate, actor_id: int
    ) -> hrm_models.LeaveRequest:
        if as_utc(obj_in.end_date) < as_utc(obj_in.start_date):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date cannot be earlier than start_date")

        leave = self.model(
            yacht_id=obj_in.yacht_id,
            user_id=obj_in.user_id,
            type=obj_in.type.strip(),
            start_date=obj_in.start_date,
            end_date=obj_in.end_date,
            comment=obj_in.comment.strip() if obj_in.comment else None,
            created_by=actor_id,
        )
        db.add(leave)
        await db.flush()
        await _audit(
            db, actor_id=actor_id, action="create_leave", entity_type="HrmLeaveRequest",
            entity_id=leave.id, before=None, after=leave,
        )
        approvers = await resolve_users_by_roles(db, LEAVE_APPROVER_ROLES, leave.yacht_id)
        await _notify(
            db,
            user_ids=[user_id for user_id in approvers if user_id != actor_id],
            yacht_id=leave.yacht_id,
            event_type="hrm.leave_pending_approval",
            dedupe_base=f"hrm-leave-{leave.id}-pending",
            entity_id=leave.id,
            payload={
                "leave_id": leave.id,
                "user_id": leave.user_id,
                "start_date": as_utc(leave.start_date).isoformat(),
                "end_date": as_utc(leave.end_date).isoformat(),
                "leave_type": leave.type,
            },
        )
        await db.commit()
        await db.refresh(leave)
        return leave

    async def review_leave(
        self,
        db: AsyncSession,
        *,
        leave: hrm_models.LeaveRequest,
        approve: bool,
        actor_id: int,
        reason: Optional[str] = None,
    ) -> hrm_models.LeaveRequest:
        """대기 중(Pending)인 신청만 승인/반려할 수 있습니다."""
        verb = "approved" if approve else "rejected"
        if leave.status != hrm_models.LeaveStatus.PENDING:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Only pending leave requests can be {verb}",
            )

        before = shared_crud.snapshot(leave)
        leave.status = hrm_models.LeaveStatus.APPROVED if approve else hrm_models.LeaveStatus.REJECTED
        leave.reviewed_at = utcnow()
        leave.reviewed_by = actor_id
        leave.rejection_reason = None if approve else ((reason or "").strip() or None)
        db.add(leave)
        await db.flush()
        await _audit(
            db, actor_id=actor_id, action="approve_leave" if approve else "reject_leave",
            entity_type="HrmLeaveRequest", entity_id=leave.id, before=before, after=leave,
        )

        payload: Dict[str, Any] = {"leave_id": leave.id}
        if approve:
            payload.update(
                start_date=as_utc(leave.start_date).isoformat(),
                end_date=as_utc(leave.end_date).isoformat(),
            )
        else:
            payload["reason"] = leave.rejection_reason or ""
        await _notify(
            db,
            user_ids=[leave.user_id],
            yacht_id=leave.yacht_id,
            event_type=f"hrm.leave_{verb}",
            dedupe_base=f"hrm-leave-{leave.id}-{verb}",
            entity_id=leave.id,
            payload=payload,
        )
        await db.commit()
        await db.refresh(leave)
        return leave


leave = CRUDLeaveRequest()


# =============================================================================
# 4. 급여 대장 CRUD
# =============================================================================
class CRUDPayroll(CRUDBase[hrm_models.Payroll, hrm_schemas.PayrollGenerate, hrm_schemas.PayrollGenerate]):
    def __init__(self):
        super().__init__(model=hrm_models.Payroll)

    async def get_with_lines(self, db: AsyncSession, payroll_id: int) -> Optional[hrm_models.Payroll]:
        statement = (
            select(self.model)
            .options(selectinload(self.model.lines))
            .where(self.model.id == payroll_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(statement)).scalars().first()

    async def get_scoped(
        self, db: AsyncSession, *, payroll_id: int, actor: rbac.ActorContext
    ) -> hrm_models.Payroll:
        payroll = await self.get_with_lines(db, payroll_id)
        if not payroll:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payroll not found")
        rbac.assert_yacht_scope(payroll.yacht_id, actor)
        return payroll

    async def list_payrolls(
        self, db: AsyncSession, *, yacht_id: int, period: Optional[str] = None
    ) -> List[hrm_models.Payroll]:
        statement = (
            select(self.model)
            .options(selectinload(self.model.lines))
            .where(self.model.yacht_id == yacht_id)
        )
        if period:
            statement = statement.where(self.model.period == period)
        statement = statement.order_by(self.model.period.desc(), self.model.generated_at.desc())
        return list((await db.execute(statement)).scalars().all())

    async def to_detail(self, db: AsyncSession, payroll: hrm_models.Payroll) -> Dict[str, Any]:
        """급여 라인마다 사용자 이름을 붙입니다."""
        user_ids = {line.user_id for line in payroll.lines}
        names: Dict[int, str] = {}
        if user_ids:
            users = (await db.execute(
                select(usr_models.User).where(usr_models.User.id.in_(user_ids))
            )).scalars().all()
            names = {user.id: user.full_name or user.email for user in users}
        return {
            **payroll.model_dump(),
            "lines": [
                {**line.model_dump(), "user_name": names.get(line.user_id, str(line.user_id))}
                for line in payroll.lines
            ],
        }

    async def generate(
        self, db: AsyncSession, *, obj_in: hrm_schemas.PayrollGenerate, actor_id: int
    ) -> hrm_models.Payroll:
        """요트의 활성 승무원마다 0원 급여 라인을 만듭니다."""
        existing = await db.execute(
            select(self.model.id).where(self.model.yacht_id == obj_in.yacht_id, self.model.period == obj_in.period)
        )
        if existing.scalars().first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Payroll already exists for this yacht and period",
            )

        crew = await list_crew_options(db, yacht_id=obj_in.yacht_id)
        payroll = self.model(
            yacht_id=obj_in.yacht_id,
            period=obj_in.period,
            currency=(obj_in.currency or "").strip().upper() or "USD",
            generated_by=actor_id,
            lines=[hrm_models.PayrollLine(user_id=member["user_id"]) for member in crew],
        )
        db.add(payroll)
        await db.flush()
        await _audit(
            db, actor_id=actor_id, action="generate_payroll", entity_type="HrmPayroll",
            entity_id=payroll.id, before=None,
            after={**payroll.model_dump(), "lines": len(crew)},
        )
        managers = await resolve_users_by_roles(db, PAYROLL_MANAGER_ROLES, payroll.yacht_id)
        await _notify(
            db,
            user_ids=[user_id for user_id in managers if user_id != actor_id],
            yacht_id=payroll.yacht_id,
            event_type="hrm.payroll_generated",
            dedupe_base=f"hrm-payroll-{payroll.id}-generated",
            entity_id=payroll.id,
            payload={"payroll_id": payroll.id, "period": payroll.period, "currency": payroll.currency},
        )
        await db.commit()
        return await self.get_with_lines(db, payroll.id)

    async def publish(
        self, db: AsyncSession, *, payroll: hrm_models.Payroll, actor_id: int
    ) -> hrm_models.Payroll:
        """이미 발행된 급여 대장은 변경 없이 그대로 반환합니다."""
        if payroll.status == hrm_models.PayrollStatus.PUBLISHED:
            return payroll

        before = shared_crud.snapshot(payroll)
        payroll.status = hrm_models.PayrollStatus.PUBLISHED
        payroll.published_at = utcnow()
        db.add(payroll)
        await db.flush()
        await _audit(
            db, actor_id=actor_id, action="publish_payroll", entity_type="HrmPayroll",
            entity_id=payroll.id, before=before, after=payroll,
        )
        await _notify(
            db,
            user_ids=[line.user_id for line in payroll.lines],
            yacht_id=payroll.yacht_id,
            event_type="hrm.payroll_published",
            dedupe_base=f"hrm-payroll-{payroll.id}-published",
            entity_id=payroll.id,
            payload={"payroll_id": payroll.id, "period": payroll.period, "currency": payroll.currency},
        )
        await db.commit()
        return await self.get_with_lines(db, payroll.id)


payroll = CRUDPayroll()
