# yachtpms/domains/maint/routers.py

"""
'maint' 도메인 (정비 작업)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as maint_crud
from . import models as maint_models
from . import schemas as maint_schemas


router = APIRouter(
    tags=["Maintenance (정비 관리)"],
    responses={404: {"description": "Not found"}},
)

READERS = ("Chief Engineer", "Captain", "HoD", "Management/Office", "Crew Member", "Admin")
EDITORS = ("Chief Engineer", "Captain", "Management/Office", "Admin")
APPROVERS = ("Captain", "Chief Engineer", "Admin")
EXECUTORS = ("Chief Engineer", "Captain", "Management/Office", "Crew Member", "Admin")


# =============================================================================
# 1. 정비 작업 조회 / 생성 / 수정
# =============================================================================
@router.get("/tasks", response_model=List[maint_schemas.MaintenanceTaskRead], summary="정비 작업 목록")
async def read_tasks(
    yacht_id: Optional[int] = Query(None),
    status_filter: Optional[maint_models.MaintenanceStatus] = Query(None, alias="status"),
    due_from: Optional[datetime] = Query(None),
    due_to: Optional[datetime] = Query(None),
    assigned_to: Optional[int] = Query(None),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await maint_crud.task.list_tasks(
        db, yacht_id=yacht_id, status_filter=status_filter,
        due_from=due_from, due_to=due_to, assigned_to=assigned_to,
    )


@router.post(
    "/tasks",
    response_model=maint_schemas.MaintenanceTaskRead,
    status_code=status.HTTP_201_CREATED,
    summary="정비 작업 생성",
)
async def create_task(
    task_in: maint_schemas.MaintenanceTaskCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EDITORS)),
):
    rbac.assert_yacht_scope(task_in.yacht_id, actor)
    return await maint_crud.task.create_task(db, obj_in=task_in, actor_id=actor.user_id)


@router.get("/tasks/{task_id}", response_model=maint_schemas.MaintenanceTaskRead, summary="정비 작업 상세")
async def read_task(
    task_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    return await maint_crud.task.get_scoped(db, task_id=task_id, actor=actor)


@router.patch("/tasks/{task_id}", response_model=maint_schemas.MaintenanceTaskRead, summary="정비 작업 수정")
async def update_task(
    task_id: int,
    task_in: maint_schemas.MaintenanceTaskUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EDITORS)),
):
    db_task = await maint_crud.task.get_scoped(db, task_id=task_id, actor=actor)
    return await maint_crud.task.update_task(db, task=db_task, obj_in=task_in, actor_id=actor.user_id)


# =============================================================================
# 2. 워크플로 (제출 / 승인 / 반려 / 완료)
# =============================================================================
@router.post("/tasks/{task_id}/submit", response_model=maint_schemas.MaintenanceTaskRead, summary="정비 작업 제출")
async def submit_task(
    task_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EDITORS)),
):
    db_task = await maint_crud.task.get_scoped(db, task_id=task_id, actor=actor)
    return await maint_crud.task.submit_task(db, task=db_task, actor_id=actor.user_id)


@router.post("/tasks/{task_id}/approve", response_model=maint_schemas.MaintenanceTaskRead, summary="정비 작업 승인")
async def approve_task(
    task_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*APPROVERS)),
):
    db_task = await maint_crud.task.get_scoped(db, task_id=task_id, actor=actor)
    return await maint_crud.task.approve_task(db, task=db_task, actor_id=actor.user_id)


@router.post("/tasks/{task_id}/reject", response_model=maint_schemas.MaintenanceTaskRead, summary="정비 작업 반려")
async def reject_task(
    task_id: int,
    reject_in: maint_schemas.MaintenanceTaskReject,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*APPROVERS)),
):
    db_task = await maint_crud.task.get_scoped(db, task_id=task_id, actor=actor)
    return await maint_crud.task.reject_task(db, task=db_task, reason=reject_in.reason, actor_id=actor.user_id)


@router.post("/tasks/{task_id}/complete", response_model=maint_schemas.MaintenanceTaskRead, summary="정비 작업 완료")
async def complete_task(
    task_id: int,
    complete_in: Optional[maint_schemas.MaintenanceTaskComplete] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EXECUTORS)),
):
    db_task = await maint_crud.task.get_scoped(db, task_id=task_id, actor=actor)
    return await maint_crud.task.complete_task(
        db, task=db_task, obj_in=complete_in or maint_schemas.MaintenanceTaskComplete(), actor_id=actor.user_id
    )


@router.post(
    "/tasks/{task_id}/evidences",
    response_model=maint_schemas.MaintenanceEvidenceRead,
    status_code=status.HTTP_201_CREATED,
    summary="정비 증빙 등록",
)
async def add_evidence(
    task_id: int,
    evidence_in: maint_schemas.MaintenanceEvidenceCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EXECUTORS)),
):
    db_task = await maint_crud.task.get_scoped(db, task_id=task_id, actor=actor)
    return await maint_crud.task.add_evidence(db, task=db_task, obj_in=evidence_in, actor_id=actor.user_id)


# =============================================================================
# 3. 집계 / 일정
# =============================================================================
@router.get("/summary/{yacht_id}", response_model=maint_schemas.MaintenanceSummary, summary="정비 현황 요약")
async def read_summary(
    yacht_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await maint_crud.task.get_summary(db, yacht_id=yacht_id)


@router.get("/calendar/{yacht_id}", response_model=List[maint_schemas.CalendarItem], summary="정비 일정")
async def read_calendar(
    yacht_id: int,
    window_days: Optional[int] = Query(30),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await maint_crud.task.get_calendar(db, yacht_id=yacht_id, window_days=window_days)
