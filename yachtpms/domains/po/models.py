# yachtpms/domains/po/models.py

"""
'po' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- purchase_orders: 발주서 (번호 형식 PO-{연도}-{6자리 순번}, 요트별 순번)
- purchase_order_lines: 발주 품목
- purchase_order_receipts / purchase_order_receipt_lines: 입고 기록
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, updated_at_column, utcnow,
)


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


# =============================================================================
# 1. purchase_orders 테이블 모델
# =============================================================================
class PurchaseOrder(SQLModel, table=True):
    __tablename__ = "purchase_orders"
    __table_args__ = (UniqueConstraint("yacht_id", "po_number", name="uq_po_yacht_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    po_number: str = Field(max_length=20)
    status: PurchaseOrderStatus = Field(default=PurchaseOrderStatus.DRAFT, index=True)
    vendor_name: str = Field(max_length=160)
    vendor_email: Optional[str] = Field(default=None, max_length=180)
    vendor_phone: Optional[str] = Field(default=None, max_length=40)
    expected_delivery_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    notes: Optional[str] = Field(default=None, sa_column=Column(Text))
    subtotal: float = Field(default=0)
    tax: float = Field(default=0)
    total: float = Field(default=0)
    requested_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    approved_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    approved_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    locked_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())

    lines: List["PurchaseOrderLine"] = Relationship(
        back_populates="purchase_order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "PurchaseOrderLine.id"},
    )
    receipts: List["PurchaseOrderReceipt"] = Relationship(
        back_populates="purchase_order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class PurchaseOrderLine(SQLModel, table=True):
    __tablename__ = "purchase_order_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    purchase_order_id: int = Field(
        sa_column=Column(Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    free_text_name: str = Field(max_length=180)
    quantity_ordered: float = Field(gt=0)
    unit_price: float = Field(ge=0)
    tax_rate: float = Field(default=0, ge=0, description="세율 (%)")
    quantity_received: float = Field(default=0, ge=0)
    required_by_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    notes: Optional[str] = Field(default=None, max_length=600)

    purchase_order: Optional[PurchaseOrder] = Relationship(back_populates="lines")


# =============================================================================
# 2. 입고 (Receipt) 테이블 모델
# =============================================================================
class PurchaseOrderReceipt(SQLModel, table=True):
    __tablename__ = "purchase_order_receipts"

    id: Optional[int] = Field(default=None, primary_key=True)
    purchase_order_id: int = Field(
        sa_column=Column(Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    yacht_id: int = Field(foreign_key="yachts.id")
    received_at: datetime = Field(sa_column=datetime_column(nullable=False))
    received_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    reason: str = Field(max_length=400)

    purchase_order: Optional[PurchaseOrder] = Relationship(back_populates="receipts")
    lines: List["PurchaseOrderReceiptLine"] = Relationship(
        back_populates="receipt",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class PurchaseOrderReceiptLine(SQLModel, table=True):
    __tablename__ = "purchase_order_receipt_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    receipt_id: int = Field(
        sa_column=Column(Integer, ForeignKey("purchase_order_receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    purchase_order_line_id: int = Field(foreign_key="purchase_order_lines.id")
    quantity_received: float = Field(gt=0)

    receipt: Optional[PurchaseOrderReceipt] = Relationship(back_populates="lines")
