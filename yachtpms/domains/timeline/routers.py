# yachtpms/domains/timeline/routers.py

"""
'timeline' 도메인 (일정)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import schemas as timeline_schemas
from . import services as timeline_services


router = APIRouter(
    tags=["Timeline (일정)"],
    responses={404: {"description": "Not found"}},
)


@router.get("/fleet", response_model=timeline_schemas.AgendaRead, summary="선단 전체 일정")
async def read_fleet_agenda(
    window_days: int = Query(timeline_services.DEFAULT_WINDOW_DAYS),
    yacht_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await timeline_services.get_fleet_agenda(
        db,
        actor=actor,
        yacht_id=yacht_id,
        window_days=window_days,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/yachts/{yacht_id}", response_model=timeline_schemas.AgendaRead, summary="요트별 일정")
async def read_yacht_agenda(
    yacht_id: int,
    window_days: int = Query(timeline_services.DEFAULT_WINDOW_DAYS),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await timeline_services.get_agenda(
        db,
        yacht_id=yacht_id,
        actor=actor,
        window_days=window_days,
        date_from=date_from,
        date_to=date_to,
    )
