# yachtpms/domains/inv/models.py

"""
'inv' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- inventory_items: 재고 품목 (현재 수량, 최소 수량)
- inventory_movements: 입고/출고/조정/이동 이력 (전후 수량 기록)
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlmodel import Field, Relationship, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, updated_at_column, utcnow,
)


class InventoryCategory(str, Enum):
    ENGINEERING = "engineering"
    DECK = "deck"
    SAFETY = "safety"
    HOUSEKEEPING = "housekeeping"
    GALLEY = "galley"
    ADMIN = "admin"
    OTHER = "other"


class MovementType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"


# =============================================================================
# 1. inventory_items 테이블 모델
# =============================================================================
class InventoryItem(SQLModel, table=True):
    __tablename__ = "inventory_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    sku: Optional[str] = Field(default=None, max_length=80)
    name: str = Field(max_length=180)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    category: InventoryCategory = Field(default=InventoryCategory.OTHER, index=True)
    unit: str = Field(max_length=30)
    location: Optional[str] = Field(default=None, max_length=120)
    min_stock: float = Field(default=0, ge=0)
    current_stock: float = Field(default=0, ge=0)
    engine_id: Optional[int] = Field(default=None, foreign_key="engines.id")
    is_active: bool = Field(default=True)
    created_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())

    movements: List["InventoryMovement"] = Relationship(
        back_populates="item",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


# =============================================================================
# 2. inventory_movements 테이블 모델
# =============================================================================
class InventoryMovement(SQLModel, table=True):
    __tablename__ = "inventory_movements"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(foreign_key="yachts.id", index=True)
    item_id: int = Field(
        sa_column=Column(Integer, ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    type: MovementType = Field(index=True)
    quantity: float = Field(gt=0)
    reason: str = Field(max_length=300)
    reference_type: str = Field(default="manual", max_length=20)
    reference_id: Optional[str] = Field(default=None, max_length=120)
    maintenance_task_id: Optional[int] = Field(default=None, foreign_key="maintenance_tasks.id")
    engine_id: Optional[int] = Field(default=None, foreign_key="engines.id")
    purchase_order_id: Optional[int] = Field(default=None, foreign_key="purchase_orders.id")
    performed_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    occurred_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column(nullable=False))
    before_qty: float
    after_qty: float
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())

    item: Optional[InventoryItem] = Relationship(back_populates="movements")
