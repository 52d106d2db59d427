# yachtpms/domains/fleet/routers.py

"""
'fleet' 도메인 (요트, 요트 접근 권한, 엔진)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as fleet_crud
from . import schemas as fleet_schemas


router = APIRouter(
    tags=["Fleet (요트 및 엔진)"],
    responses={404: {"description": "Not found"}},
)

ALL_ROLES = ("Chief Engineer", "Captain", "HoD", "Management/Office", "Crew Member", "Admin")
ACCESS_MANAGERS = ("Admin", "Management/Office", "SystemAdmin")
ENGINE_EDITORS = ("Chief Engineer", "Captain", "Admin")


# =============================================================================
# 1. 요트 (Yacht) 엔드포인트
# =============================================================================
@router.post("/yachts", response_model=fleet_schemas.YachtRead, status_code=status.HTTP_201_CREATED, summary="요트 생성")
async def create_yacht(
    yacht_in: fleet_schemas.YachtCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    """SystemAdmin 전용입니다."""
    return await fleet_crud.yacht.create_yacht(db, obj_in=yacht_in, actor=actor)


@router.get("/yachts", response_model=List[fleet_schemas.YachtRead], summary="접근 가능한 요트 목록")
async def read_yachts(
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await fleet_crud.yacht.list_visible(db, actor=actor)


@router.get("/yachts/{yacht_id}", response_model=fleet_schemas.YachtRead, summary="요트 상세 조회")
async def read_yacht(
    yacht_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await fleet_crud.yacht.get_visible(db, yacht_id=yacht_id, actor=actor)


@router.patch("/yachts/{yacht_id}", response_model=fleet_schemas.YachtRead, summary="요트 정보 수정")
async def update_yacht(
    yacht_id: int,
    yacht_in: fleet_schemas.YachtUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await fleet_crud.yacht.update_yacht(db, yacht_id=yacht_id, obj_in=yacht_in, actor=actor)


@router.get("/yachts/{yacht_id}/summary", response_model=fleet_schemas.YachtSummary, summary="요트 대시보드 집계")
async def read_yacht_summary(
    yacht_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await fleet_crud.yacht.get_summary(db, yacht_id=yacht_id, actor=actor)


# =============================================================================
# 2. 요트 접근 권한 엔드포인트
# =============================================================================
@router.post(
    "/yachts/{yacht_id}/access",
    response_model=fleet_schemas.YachtAccessRead,
    status_code=status.HTTP_201_CREATED,
    summary="요트 접근 권한 부여",
)
async def grant_yacht_access(
    yacht_id: int,
    grant_in: fleet_schemas.AccessGrant,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ACCESS_MANAGERS)),
):
    return await fleet_crud.yacht_access.grant(db, yacht_id=yacht_id, obj_in=grant_in, actor=actor)


@router.get("/yachts/{yacht_id}/access", response_model=List[fleet_schemas.YachtAccessRead], summary="요트 접근 권한 목록")
async def read_yacht_access(
    yacht_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ACCESS_MANAGERS)),
):
    return await fleet_crud.yacht_access.list_for_yacht(db, yacht_id=yacht_id, actor=actor)


@router.patch(
    "/yachts/{yacht_id}/access/{user_id}",
    response_model=fleet_schemas.YachtAccessRead,
    summary="요트 단위 역할 재지정",
)
async def update_yacht_access(
    yacht_id: int,
    user_id: int,
    access_in: fleet_schemas.AccessUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ACCESS_MANAGERS)),
):
    return await fleet_crud.yacht_access.update_override(
        db, yacht_id=yacht_id, user_id=user_id, obj_in=access_in, actor=actor
    )


@router.delete(
    "/yachts/{yacht_id}/access/{user_id}",
    response_model=fleet_schemas.SuccessResponse,
    summary="요트 접근 권한 회수",
)
async def revoke_yacht_access(
    yacht_id: int,
    user_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ACCESS_MANAGERS)),
):
    return await fleet_crud.yacht_access.revoke(db, yacht_id=yacht_id, user_id=user_id, actor=actor)


# =============================================================================
# 3. 엔진 (Engine) 엔드포인트
# =============================================================================
@router.get("/yachts/{yacht_id}/engines", response_model=List[fleet_schemas.EngineHealthRead], summary="엔진 목록 (상태 포함)")
async def read_engines(
    yacht_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ALL_ROLES)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await fleet_crud.engine.list_with_health(db, yacht_id=yacht_id)


@router.post(
    "/yachts/{yacht_id}/engines",
    response_model=fleet_schemas.EngineRead,
    status_code=status.HTTP_201_CREATED,
    summary="엔진 등록",
)
async def create_engine(
    yacht_id: int,
    engine_in: fleet_schemas.EngineCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ENGINE_EDITORS)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await fleet_crud.engine.create_engine(db, yacht_id=yacht_id, obj_in=engine_in)


@router.patch("/engines/{engine_id}", response_model=fleet_schemas.EngineRead, summary="엔진 정보 수정")
async def update_engine(
    engine_id: int,
    engine_in: fleet_schemas.EngineUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ENGINE_EDITORS)),
):
    db_engine = await fleet_crud.engine.get_or_404(db, engine_id)
    rbac.assert_yacht_scope(db_engine.yacht_id, actor)
    return await fleet_crud.engine.update_engine(db, engine=db_engine, obj_in=engine_in)


@router.delete("/engines/{engine_id}", status_code=status.HTTP_204_NO_CONTENT, summary="엔진 삭제")
async def delete_engine(
    engine_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*ENGINE_EDITORS)),
):
    db_engine = await fleet_crud.engine.get_or_404(db, engine_id)
    rbac.assert_yacht_scope(db_engine.yacht_id, actor)
    await fleet_crud.engine.delete(db, id=engine_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
