# yachtpms/domains/po/schemas.py

"""
'po' 도메인 (발주 관리)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import datetime

from sqlmodel import SQLModel, Field

from yachtpms.domains.shared import schemas as shared_schemas
from . import models as po_models


# =============================================================================
# 1. 입력 스키마
# =============================================================================
class PurchaseOrderLineInput(SQLModel):
    free_text_name: str = Field(..., min_length=1, max_length=180)
    quantity_ordered: float = Field(..., ge=0.0001)
    unit_price: float = Field(..., ge=0)
    tax_rate: Optional[float] = Field(0, ge=0, description="세율 (%)")
    required_by_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=600)


class PurchaseOrderCreate(SQLModel):
    vendor_name: str = Field(..., min_length=2, max_length=160)
    vendor_email: Optional[str] = Field(None, max_length=180)
    vendor_phone: Optional[str] = Field(None, max_length=40)
    expected_delivery_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1200)
    lines: List[PurchaseOrderLineInput] = Field(..., min_length=1)


class PurchaseOrderUpdate(SQLModel):
    """lines가 전달되면 품목 전체를 교체하고 금액을 다시 계산합니다."""
    vendor_name: Optional[str] = Field(None, min_length=2, max_length=160)
    vendor_email: Optional[str] = Field(None, max_length=180)
    vendor_phone: Optional[str] = Field(None, max_length=40)
    expected_delivery_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1200)
    lines: Optional[List[PurchaseOrderLineInput]] = Field(None, min_length=1)


class PurchaseOrderActionReason(SQLModel):
    reason: str = Field(..., min_length=3, max_length=400)


class ReceiveLineInput(SQLModel):
    purchase_order_line_id: int
    quantity_received: float = Field(..., ge=0.0001)


class PurchaseOrderReceive(SQLModel):
    received_at: Optional[datetime] = None
    reason: str = Field(..., min_length=3, max_length=400)
    lines: List[ReceiveLineInput] = Field(..., min_length=1)


# =============================================================================
# 2. 응답 스키마
# =============================================================================
class PurchaseOrderLineRead(SQLModel):
    id: int
    purchase_order_id: int
    free_text_name: str
    quantity_ordered: float
    unit_price: float
    tax_rate: float
    quantity_received: float
    required_by_at: Optional[datetime] = None
    notes: Optional[str] = None


class ReceiptLineRead(SQLModel):
    id: int
    purchase_order_line_id: int
    quantity_received: float


class ReceiptRead(SQLModel):
    id: int
    received_at: datetime
    received_by_user_id: Optional[int] = None
    reason: str
    lines: List[ReceiptLineRead] = []


class PurchaseOrderRead(SQLModel):
    id: int
    yacht_id: int
    po_number: str
    status: po_models.PurchaseOrderStatus
    vendor_name: str
    vendor_email: Optional[str] = None
    vendor_phone: Optional[str] = None
    expected_delivery_at: Optional[datetime] = None
    notes: Optional[str] = None
    subtotal: float
    tax: float
    total: float
    requested_by_user_id: Optional[int] = None
    approved_by_user_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    lines: List[PurchaseOrderLineRead] = []
    receipts: List[ReceiptRead] = []


class PurchaseOrderDetail(PurchaseOrderRead):
    audit_trail: List[shared_schemas.AuditTrailItem] = []


class PurchaseOrderPage(SQLModel):
    items: List[PurchaseOrderRead]
    page: int
    page_size: int
    total: int
    total_pages: int
