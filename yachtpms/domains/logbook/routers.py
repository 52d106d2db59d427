# yachtpms/domains/logbook/routers.py

"""
'logbook' 도메인 (항해일지)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as logbook_crud
from . import models as logbook_models
from . import schemas as logbook_schemas


router = APIRouter(
    tags=["Log Book (항해일지)"],
    responses={404: {"description": "Not found"}},
)

READERS = ("Chief Engineer", "Captain", "HoD", "Management/Office", "Crew Member", "Admin")
WRITERS = ("Chief Engineer", "Crew Member", "Admin")
CREATORS = ("Chief Engineer", "Crew Member")


@router.get("/entries", response_model=List[logbook_schemas.LogBookEntryRead], summary="항해일지 목록")
async def read_entries(
    yacht_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    status_filter: Optional[logbook_models.LogBookStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await logbook_crud.entry.list_entries(
        db, yacht_id=yacht_id, date_from=date_from, date_to=date_to, status_filter=status_filter
    )


@router.post(
    "/entries",
    response_model=logbook_schemas.LogBookEntryRead,
    status_code=status.HTTP_201_CREATED,
    summary="항해일지 작성",
)
async def create_entry(
    entry_in: logbook_schemas.LogBookEntryCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*CREATORS)),
):
    rbac.assert_yacht_scope(entry_in.yacht_id, actor)
    return await logbook_crud.entry.create_entry(db, obj_in=entry_in, actor_id=actor.user_id)


@router.get("/entries/{entry_id}", response_model=logbook_schemas.LogBookEntryRead, summary="항해일지 상세")
async def read_entry(
    entry_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    return await logbook_crud.entry.get_scoped(db, entry_id=entry_id, actor=actor)


@router.patch("/entries/{entry_id}", response_model=logbook_schemas.LogBookEntryRead, summary="항해일지 수정")
async def update_entry(
    entry_id: int,
    entry_in: logbook_schemas.LogBookEntryUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*WRITERS)),
):
    db_entry = await logbook_crud.entry.get_scoped(db, entry_id=entry_id, actor=actor)
    return await logbook_crud.entry.update_entry(db, entry=db_entry, obj_in=entry_in, actor_id=actor.user_id)


@router.post("/entries/{entry_id}/submit", response_model=logbook_schemas.LogBookEntryRead, summary="항해일지 제출")
async def submit_entry(
    entry_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*WRITERS)),
):
    """읽기값마다 엔진 누적 운전시간이 기록됩니다."""
    db_entry = await logbook_crud.entry.get_scoped(db, entry_id=entry_id, actor=actor)
    return await logbook_crud.entry.submit_entry(db, entry=db_entry, actor_id=actor.user_id)


@router.post("/entries/{entry_id}/lock", response_model=logbook_schemas.LogBookEntryRead, summary="항해일지 잠금")
async def lock_entry(
    entry_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    db_entry = await logbook_crud.entry.get_scoped(db, entry_id=entry_id, actor=actor)
    return await logbook_crud.entry.lock_entry(db, entry=db_entry, actor=actor)
