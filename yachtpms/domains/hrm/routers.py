# yachtpms/domains/hrm/routers.py

"""
'hrm' 도메인 (승무원 인사)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as hrm_crud
from . import models as hrm_models
from . import schemas as hrm_schemas


router = APIRouter(
    tags=["HRM (승무원 인사)"],
    responses={404: {"description": "Not found"}},
)

CREW_ROLES = ("Chief Engineer", "Captain", "HoD", "Management/Office", "Crew Member", "Admin")
SCHEDULERS = ("Chief Engineer", "Captain", "HoD", "Management/Office", "Admin")
LEAVE_REVIEWERS = ("Captain", "HoD", "Management/Office", "Admin")
PAYROLL_ROLES = ("Captain", "Management/Office", "Admin")


@router.get("/crew-options", response_model=List[hrm_schemas.CrewOption], summary="요트 승무원 선택 목록")
async def read_crew_options(
    yacht_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*CREW_ROLES)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await hrm_crud.list_crew_options(db, yacht_id=yacht_id)


# =============================================================================
# 1. 근무 일정
# =============================================================================
@router.get("/schedules", response_model=List[hrm_schemas.ScheduleRead], summary="근무 일정 목록")
async def read_schedules(
    yacht_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*CREW_ROLES)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await hrm_crud.schedule.list_schedules(
        db, yacht_id=yacht_id, user_id=user_id, date_from=date_from, date_to=date_to
    )


@router.post(
    "/schedules",
    response_model=hrm_schemas.ScheduleRead,
    status_code=status.HTTP_201_CREATED,
    summary="근무 일정 등록",
)
async def create_schedule(
    schedule_in: hrm_schemas.ScheduleCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*SCHEDULERS)),
):
    rbac.assert_yacht_scope(schedule_in.yacht_id, actor)
    return await hrm_crud.schedule.create_schedule(db, obj_in=schedule_in, actor_id=actor.user_id)


@router.patch("/schedules/{schedule_id}", response_model=hrm_schemas.ScheduleRead, summary="근무 일정 수정")
async def update_schedule(
    schedule_id: int,
    schedule_in: hrm_schemas.ScheduleUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*SCHEDULERS)),
):
    db_schedule = await hrm_crud.schedule.get_scoped(db, schedule_id=schedule_id, actor=actor)
    return await hrm_crud.schedule.update_schedule(
        db, db_schedule=db_schedule, obj_in=schedule_in, actor_id=actor.user_id
    )


# =============================================================================
# 2. 휴식시간
# =============================================================================
@router.get("/rest-hours/report", response_model=hrm_schemas.RestHoursReport, summary="휴식시간 준수 보고서")
async def read_rest_hours_report(
    yacht_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*CREW_ROLES)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await hrm_crud.rest_declaration.report(
        db, yacht_id=yacht_id, user_id=user_id, date_from=date_from, date_to=date_to
    )


@router.post(
    "/rest-hours/declarations",
    response_model=hrm_schemas.RestDeclarationRead,
    status_code=status.HTTP_201_CREATED,
    summary="휴식시간 신고",
)
async def create_rest_declaration(
    declaration_in: hrm_schemas.RestDeclarationCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*CREW_ROLES)),
):
    rbac.assert_yacht_scope(declaration_in.yacht_id, actor)
    return await hrm_crud.rest_declaration.create_declaration(db, obj_in=declaration_in, actor_id=actor.user_id)


# =============================================================================
# 3. 휴가
# =============================================================================
@router.get("/leaves", response_model=List[hrm_schemas.LeaveRequestRead], summary="휴가 신청 목록")
async def read_leaves(
    yacht_id: Optional[int] = Query(None),
    status_filter: Optional[hrm_models.LeaveStatus] = Query(None, alias="status"),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*CREW_ROLES)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await hrm_crud.leave.list_leaves(
        db, yacht_id=yacht_id, status_filter=status_filter, date_from=date_from, date_to=date_to
    )


@router.post(
    "/leaves",
    response_model=hrm_schemas.LeaveRequestRead,
    status_code=status.HTTP_201_CREATED,
    summary="휴가 신청",
)
async def create_leave(
    leave_in: hrm_schemas.LeaveRequestCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*CREW_ROLES)),
):
    rbac.assert_yacht_scope(leave_in.yacht_id, actor)
    return await hrm_crud.leave.create_leave(db, obj_in=leave_in, actor_id=actor.user_id)


@router.post("/leaves/{leave_id}/approve", response_model=hrm_schemas.LeaveRequestRead, summary="휴가 승인")
async def approve_leave(
    leave_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*LEAVE_REVIEWERS)),
):
    db_leave = await hrm_crud.leave.get_scoped(db, leave_id=leave_id, actor=actor)
    return await hrm_crud.leave.review_leave(db, leave=db_leave, approve=True, actor_id=actor.user_id)


@router.post("/leaves/{leave_id}/reject", response_model=hrm_schemas.LeaveRequestRead, summary="휴가 반려")
async def reject_leave(
    leave_id: int,
    review_in: Optional[hrm_schemas.LeaveReview] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*LEAVE_REVIEWERS)),
):
    db_leave = await hrm_crud.leave.get_scoped(db, leave_id=leave_id, actor=actor)
    return await hrm_crud.leave.review_leave(
        db, leave=db_leave, approve=False, actor_id=actor.user_id,
        reason=review_in.reason if review_in else None,
    )


# =============================================================================
# 4. 급여 대장
# =============================================================================
@router.get("/payrolls", response_model=List[hrm_schemas.PayrollRead], summary="급여 대장 목록")
async def read_payrolls(
    yacht_id: Optional[int] = Query(None),
    period: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*PAYROLL_ROLES)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await hrm_crud.payroll.list_payrolls(db, yacht_id=yacht_id, period=period)


@router.post(
    "/payrolls/generate",
    response_model=hrm_schemas.PayrollRead,
    status_code=status.HTTP_201_CREATED,
    summary="급여 대장 생성",
)
async def generate_payroll(
    payroll_in: hrm_schemas.PayrollGenerate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*PAYROLL_ROLES)),
):
    rbac.assert_yacht_scope(payroll_in.yacht_id, actor)
    return await hrm_crud.payroll.generate(db, obj_in=payroll_in, actor_id=actor.user_id)


@router.get("/payrolls/{payroll_id}", response_model=hrm_schemas.PayrollRead, summary="급여 대장 상세")
async def read_payroll(
    payroll_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*PAYROLL_ROLES)),
):
    db_payroll = await hrm_crud.payroll.get_scoped(db, payroll_id=payroll_id, actor=actor)
    return await hrm_crud.payroll.to_detail(db, db_payroll)


@router.post("/payrolls/{payroll_id}/publish", response_model=hrm_schemas.PayrollRead, summary="급여 대장 발행")
async def publish_payroll(
    payroll_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*PAYROLL_ROLES)),
):
    db_payroll = await hrm_crud.payroll.get_scoped(db, payroll_id=payroll_id, actor=actor)
    return await hrm_crud.payroll.publish(db, payroll=db_payroll, actor_id=actor.user_id)
