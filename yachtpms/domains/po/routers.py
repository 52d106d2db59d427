# yachtpms/domains/po/routers.py

"""
'po' 도메인 (발주 관리)과 관련된 API 엔드포인트를 정의하는 모듈입니다.

역할 검사는 요트별 유효 역할을 기준으로 CRUD 계층에서 수행합니다.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as po_crud
from . import models as po_models
from . import schemas as po_schemas


router = APIRouter(
    tags=["Purchase Orders (발주 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 조회 / 생성
# =============================================================================
@router.get(
    "/yachts/{yacht_id}/purchase-orders",
    response_model=po_schemas.PurchaseOrderPage,
    summary="요트별 발주서 목록",
)
async def read_purchase_orders(
    yacht_id: int,
    status_filter: Optional[po_models.PurchaseOrderStatus] = Query(None, alias="status"),
    vendor: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    page_size: int = Query(po_crud.DEFAULT_PAGE_SIZE, ge=1, le=po_crud.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await po_crud.purchase_order.list_orders(
        db,
        yacht_id=yacht_id,
        actor=actor,
        status_filter=status_filter,
        vendor=vendor,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/yachts/{yacht_id}/purchase-orders",
    response_model=po_schemas.PurchaseOrderDetail,
    status_code=status.HTTP_201_CREATED,
    summary="발주서 작성",
)
async def create_purchase_order(
    yacht_id: int,
    order_in: po_schemas.PurchaseOrderCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    return await po_crud.purchase_order.create_order(db, yacht_id=yacht_id, obj_in=order_in, actor=actor)


@router.get(
    "/purchase-orders/{order_id}",
    response_model=po_schemas.PurchaseOrderDetail,
    summary="발주서 상세 (감사 이력 포함)",
)
async def read_purchase_order(
    order_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_order = await po_crud.purchase_order.get_scoped(db, order_id=order_id, actor=actor)
    return await po_crud.purchase_order.to_detail(db, db_order.id)


@router.patch("/purchase-orders/{order_id}", response_model=po_schemas.PurchaseOrderDetail, summary="발주서 수정")
async def update_purchase_order(
    order_id: int,
    order_in: po_schemas.PurchaseOrderUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_order = await po_crud.purchase_order.get_scoped(db, order_id=order_id, actor=actor)
    return await po_crud.purchase_order.update_order(db, order=db_order, obj_in=order_in, actor=actor)


# =============================================================================
# 2. 워크플로
# =============================================================================
@router.post("/purchase-orders/{order_id}/submit", response_model=po_schemas.PurchaseOrderDetail, summary="승인 요청")
async def submit_purchase_order(
    order_id: int,
    reason_in: po_schemas.PurchaseOrderActionReason,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_order = await po_crud.purchase_order.get_scoped(db, order_id=order_id, actor=actor)
    return await po_crud.purchase_order.submit_order(db, order=db_order, reason=reason_in.reason, actor=actor)


@router.post("/purchase-orders/{order_id}/approve", response_model=po_schemas.PurchaseOrderDetail, summary="발주 승인")
async def approve_purchase_order(
    order_id: int,
    reason_in: po_schemas.PurchaseOrderActionReason,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_order = await po_crud.purchase_order.get_scoped(db, order_id=order_id, actor=actor)
    return await po_crud.purchase_order.approve_order(db, order=db_order, reason=reason_in.reason, actor=actor)


@router.post(
    "/purchase-orders/{order_id}/mark-ordered",
    response_model=po_schemas.PurchaseOrderDetail,
    summary="발주 완료 처리",
)
async def mark_purchase_order_ordered(
    order_id: int,
    reason_in: po_schemas.PurchaseOrderActionReason,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_order = await po_crud.purchase_order.get_scoped(db, order_id=order_id, actor=actor)
    return await po_crud.purchase_order.mark_ordered(db, order=db_order, reason=reason_in.reason, actor=actor)


@router.post("/purchase-orders/{order_id}/receive", response_model=po_schemas.PurchaseOrderDetail, summary="입고 처리")
async def receive_purchase_order(
    order_id: int,
    receive_in: po_schemas.PurchaseOrderReceive,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_order = await po_crud.purchase_order.get_scoped(db, order_id=order_id, actor=actor)
    return await po_crud.purchase_order.receive_order(db, order=db_order, obj_in=receive_in, actor=actor)


@router.post("/purchase-orders/{order_id}/cancel", response_model=po_schemas.PurchaseOrderDetail, summary="발주 취소")
async def cancel_purchase_order(
    order_id: int,
    reason_in: po_schemas.PurchaseOrderActionReason,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.get_actor),
):
    db_order = await po_crud.purchase_order.get_scoped(db, order_id=order_id, actor=actor)
    return await po_crud.purchase_order.cancel_order(db, order=db_order, reason=reason_in.reason, actor=actor)
