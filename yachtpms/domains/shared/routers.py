# yachtpms/domains/shared/routers.py

"""
'shared' 도메인 (경보, 감사 이력)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as shared_crud
from . import schemas as shared_schemas


router = APIRouter(
    tags=["Shared (경보, 감사 이력)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 경보 (Alert) 엔드포인트
# =============================================================================
@router.get("/alerts", response_model=List[shared_schemas.AlertRead], summary="요트의 미해결 경보 목록")
async def read_open_alerts(
    yacht_id: int = Query(...),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    """due_at 오름차순, created_at 내림차순으로 미해결 경보를 반환합니다."""
    rbac.assert_yacht_scope(yacht_id, actor)
    return await shared_crud.alert.list_open_by_yacht(db, yacht_id=yacht_id)


# =============================================================================
# 2. 감사 이력 (Audit) 엔드포인트
# =============================================================================
@router.get("/audit", response_model=List[shared_schemas.AuditEventRead], summary="엔티티 감사 이력 조회")
async def read_audit_trail(
    entity_type: str = Query(...),
    entity_id: str = Query(...),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user=Depends(deps.get_current_admin_user),
):
    return await shared_crud.audit.list_for_entity(
        db, entity_type=entity_type, entity_id=entity_id, limit=limit
    )

