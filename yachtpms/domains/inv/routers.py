# yachtpms/domains/inv/routers.py

"""
'inv' 도메인 (재고 관리)과 관련된 API 엔드포인트를 정의하는 모듈입니다.

역할 검사는 요트별 유효 역할을 기준으로 CRUD 계층에서 수행합니다.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as inv_crud
from . import models as inv_models
from . import schemas as inv_schemas


router = APIRouter(
    tags=["Inventory (재고 관리)"],
    responses={404: {"description": "Not found"}},
)


@router.get("/status", response_model=inv_schemas.InventoryStatus, summary="재고 모듈 상태")
async def read_inventory_status(actor: rbac.ActorContext = Depends(deps.get_actor)):
    return {"module": "inventory", "ready": True}


# =============================================================================
# 1. 재고 품목
# =============================================================================
@router.get(
    "/yachts/{yacht_id}/items",
    response_model=inv_schemas.InventoryItemPage,
    summary="요트별 재고 품목 목록",
)
async def read_inventory_items(
    yacht_id: int,
    search: Optional[str] = Query(None, max_length=120),
    category: Optional[inv_models.InventoryCategory] = Query(None),
    low_stock: bool = Query(False, description="최소 수량 이하 품목만"),
    page: int = Query(1, ge=1),
    page_size: int = Query(inv_crud.DEFAULT_PAGE_SIZE, ge=1, le=inv_crud.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await inv_crud.inventory_item.list_items(
        db,
        yacht_id=yacht_id,
        actor=actor,
        search=search,
        category=category,
        low_stock=low_stock,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/yachts/{yacht_id}/items",
    response_model=inv_schemas.InventoryItemRead,
    status_code=status.HTTP_201_CREATED,
    summary="재고 품목 등록",
)
async def create_inventory_item(
    yacht_id: int,
    item_in: inv_schemas.InventoryItemCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await inv_crud.inventory_item.create_item(db, yacht_id=yacht_id, obj_in=item_in, actor=actor)


@router.get(
    "/items/{item_id}",
    response_model=inv_schemas.InventoryItemDetail,
    summary="재고 품목 상세 (최근 입출고 포함)",
)
async def read_inventory_item(
    item_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await inv_crud.inventory_item.get_detail(db, item_id=item_id, actor=actor)


@router.patch("/items/{item_id}", response_model=inv_schemas.InventoryItemRead, summary="재고 품목 수정")
async def update_inventory_item(
    item_id: int,
    item_in: inv_schemas.InventoryItemUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_item = await inv_crud.inventory_item.get_scoped(db, item_id=item_id, actor=actor)
    return await inv_crud.inventory_item.update_item(db, item=db_item, obj_in=item_in, actor=actor)


# =============================================================================
# 2. 입출고
# =============================================================================
@router.post(
    "/items/{item_id}/movements",
    response_model=inv_schemas.InventoryMovementRead,
    status_code=status.HTTP_201_CREATED,
    summary="입출고 등록",
)
async def create_inventory_movement(
    item_id: int,
    movement_in: inv_schemas.InventoryMovementCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_item = await inv_crud.inventory_item.get_scoped(db, item_id=item_id, actor=actor)
    return await inv_crud.inventory_movement.create_movement(db, item=db_item, obj_in=movement_in, actor=actor)


@router.get(
    "/yachts/{yacht_id}/movements",
    response_model=inv_schemas.InventoryMovementPage,
    summary="요트별 입출고 이력",
)
async def read_inventory_movements(
    yacht_id: int,
    item_id: Optional[int] = Query(None),
    movement_type: Optional[inv_models.MovementType] = Query(None, alias="type"),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    page_size: int = Query(inv_crud.DEFAULT_PAGE_SIZE, ge=1, le=inv_crud.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await inv_crud.inventory_movement.list_movements(
        db,
        yacht_id=yacht_id,
        actor=actor,
        item_id=item_id,
        movement_type=movement_type,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
