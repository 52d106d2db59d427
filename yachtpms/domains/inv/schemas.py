# yachtpms/domains/inv/schemas.py

"""
'inv' 도메인 (재고 관리)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import List, Literal, Optional
from datetime import datetime

from sqlmodel import SQLModel, Field

from . import models as inv_models

ReferenceType = Literal["po", "maintenance", "manual", "logbook", "other"]
StockState = Literal["ok", "low", "out"]


# =============================================================================
# 1. 재고 품목 (Item)
# =============================================================================
class InventoryItemCreate(SQLModel):
    sku: Optional[str] = Field(None, max_length=80)
    name: str = Field(..., min_length=2, max_length=180)
    description: Optional[str] = Field(None, max_length=1200)
    category: inv_models.InventoryCategory
    unit: str = Field(..., min_length=1, max_length=30)
    location: Optional[str] = Field(None, max_length=120)
    min_stock: Optional[float] = Field(0, ge=0)
    current_stock: Optional[float] = Field(0, ge=0)
    engine_id: Optional[int] = None
    is_active: Optional[bool] = True


class InventoryItemUpdate(SQLModel):
    """현재 수량은 입출고(movement)로만 바뀝니다."""
    sku: Optional[str] = Field(None, max_length=80)
    name: Optional[str] = Field(None, min_length=2, max_length=180)
    description: Optional[str] = Field(None, max_length=1200)
    category: Optional[inv_models.InventoryCategory] = None
    unit: Optional[str] = Field(None, min_length=1, max_length=30)
    location: Optional[str] = Field(None, max_length=120)
    min_stock: Optional[float] = Field(None, ge=0)
    engine_id: Optional[int] = None
    is_active: Optional[bool] = None


class InventoryItemRead(SQLModel):
    id: int
    yacht_id: int
    sku: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: inv_models.InventoryCategory
    unit: str
    location: Optional[str] = None
    min_stock: float
    current_stock: float
    stock_state: StockState
    engine_id: Optional[int] = None
    is_active: bool
    created_by_user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class InventoryItemPage(SQLModel):
    items: List[InventoryItemRead]
    page: int
    page_size: int
    total: int
    total_pages: int


# =============================================================================
# 2. 입출고 (Movement)
# =============================================================================
class InventoryMovementCreate(SQLModel):
    type: inv_models.MovementType
    quantity: float = Field(..., ge=0.0001)
    reason: str = Field(..., min_length=3, max_length=300)
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[str] = Field(None, max_length=120)
    maintenance_task_id: Optional[int] = None
    engine_id: Optional[int] = None
    direction: Optional[Literal["increase", "decrease"]] = Field(None, description="adjustment 전용")
    occurred_at: Optional[datetime] = None


class InventoryMovementItem(SQLModel):
    id: int
    name: str
    sku: Optional[str] = None
    unit: str
    min_stock: float
    current_stock: float


class InventoryMovementRead(SQLModel):
    id: int
    yacht_id: int
    item_id: int
    type: inv_models.MovementType
    quantity: float
    reason: str
    reference_type: str
    reference_id: Optional[str] = None
    maintenance_task_id: Optional[int] = None
    engine_id: Optional[int] = None
    purchase_order_id: Optional[int] = None
    performed_by_user_id: Optional[int] = None
    occurred_at: datetime
    before_qty: float
    after_qty: float
    created_at: datetime
    item: Optional[InventoryMovementItem] = None


class InventoryItemDetail(InventoryItemRead):
    movements: List[InventoryMovementRead] = []


class InventoryMovementPage(SQLModel):
    items: List[InventoryMovementRead]
    page: int
    page_size: int
    total: int
    total_pages: int


class InventoryStatus(SQLModel):
    module: str
    ready: bool
