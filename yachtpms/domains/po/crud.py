# yachtpms/domains/po/crud.py

"""
'po' 도메인 (발주 관리)의 CRUD 작업을 담당하는 모듈입니다.

발주 워크플로:
    draft -> submitted -> approved (locked) -> ordered -> partially_received -> received
    received/cancelled를 제외한 모든 상태에서 cancelled로 전이할 수 있습니다.
금액은 품목별로 소수 둘째 자리에서 반올림한 뒤 합산합니다.
"""

import math
from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import utcnow
from yachtpms.domains.ntf.services import notify_users, resolve_users_by_roles
from yachtpms.domains.shared import crud as shared_crud
from . import models as po_models
from . import schemas as po_schemas


VIEWER_ROLES = ("Crew Member", "Chief Engineer", "Captain", "HoD", "Management/Office", "Admin", "SystemAdmin")
CREATOR_ROLES = ("Crew Member", "Chief Engineer", "Captain", "Management/Office", "Admin", "SystemAdmin")
APPROVER_ROLES = ("Captain", "Admin", "SystemAdmin")
ORDER_ROLES = ("Chief Engineer", "Captain", "Management/Office", "Admin", "SystemAdmin")
RECEIVE_ROLES = ("Chief Engineer", "Captain", "Admin", "SystemAdmin")
ADMIN_ROLES = ("Admin", "SystemAdmin")
ENGINEER_ROLES = ("Chief Engineer",)

AUDIT_TRAIL_LIMIT = 120
RECEIVE_EPSILON = 1e-6
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

POStatus = po_models.PurchaseOrderStatus


# =============================================================================
# 순수 헬퍼
# =============================================================================
def round2(value: float) -> float:
    return round(float(value or 0), 2)


def line_amounts(quantity: float, unit_price: float, tax_rate: float) -> Dict[str, float]:
    subtotal = round2(quantity * unit_price)
    tax = round2(subtotal * (tax_rate or 0) / 100)
    return {"subtotal": subtotal, "tax": tax, "total": round2(subtotal + tax)}


def compute_totals(lines: List[po_schemas.PurchaseOrderLineInput]) -> Dict[str, float]:
    subtotal = 0.0
    tax = 0.0
    for line in lines:
        amounts = line_amounts(line.quantity_ordered, line.unit_price, line.tax_rate or 0)
        subtotal += amounts["subtotal"]
        tax += amounts["tax"]
    return {"subtotal": round2(subtotal), "tax": round2(tax), "total": round2(subtotal + tax)}


def validate_lines(lines: Optional[List[po_schemas.PurchaseOrderLineInput]]) -> List[po_schemas.PurchaseOrderLineInput]:
    if not lines:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Purchase order requires at least one line")
    for index, line in enumerate(lines, start=1):
        if not (line.free_text_name or "").strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Line {index} requires free_text_name")
    return lines


def next_po_number(last_number: Optional[str], year: int) -> str:
    """'PO-2026-000041' 다음 번호는 'PO-2026-000042' 입니다."""
    sequence = 0
    if last_number:
        try:
            sequence = int(last_number.rsplit("-", 1)[-1])
        except ValueError:
            sequence = 0
    return f"PO-{year}-{sequence + 1:06d}"


def notification_severity(event_type: str) -> str:
    if event_type.endswith("cancelled"):
        return "critical"
    if event_type.endswith("submitted"):
        return "warn"
    return "info"


def build_lines(lines: List[po_schemas.PurchaseOrderLineInput]) -> List[po_models.PurchaseOrderLine]:
    return [
        po_models.PurchaseOrderLine(
            free_text_name=line.free_text_name.strip(),
            quantity_ordered=line.quantity_ordered,
            unit_price=line.unit_price,
            tax_rate=line.tax_rate or 0,
            required_by_at=line.required_by_at,
            notes=(line.notes or "").strip() or None,
        )
        for line in lines
    ]


def to_read(order: po_models.PurchaseOrder) -> Dict[str, Any]:
    return {
        **order.model_dump(),
        "lines": [line.model_dump() for line in order.lines],
        "receipts": [
            {**receipt.model_dump(), "lines": [line.model_dump() for line in receipt.lines]}
            for receipt in sorted(order.receipts, key=lambda item: item.id, reverse=True)
        ],
    }


class CRUDPurchaseOrder(CRUDBase[po_models.PurchaseOrder, po_schemas.PurchaseOrderCreate, po_schemas.PurchaseOrderUpdate]):
    def __init__(self):
        super().__init__(model=po_models.PurchaseOrder)

    # --- 내부 헬퍼 ---
    def _load_options(self):
        return (
            selectinload(self.model.lines),
            selectinload(self.model.receipts).selectinload(po_models.PurchaseOrderReceipt.lines),
        )

    async def get_with_lines(self, db: AsyncSession, order_id: int) -> Optional[po_models.PurchaseOrder]:
        statement = (
            select(self.model)
            .options(*self._load_options())
            .where(self.model.id == order_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(statement)).scalars().first()

    async def get_scoped(
        self, db: AsyncSession, *, order_id: int, actor: rbac.ActorContext
    ) -> po_models.PurchaseOrder:
        order = await self.get_with_lines(db, order_id)
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Purchase order not found")
        rbac.assert_yacht_scope(order.yacht_id, actor)
        rbac.assert_roles(actor, VIEWER_ROLES, "Role is not allowed to view purchase orders", order.yacht_id)
        return order

    async def _generate_po_number(self, db: AsyncSession, yacht_id: int) -> str:
        year = utcnow().year
        last_number = (await db.execute(
            select(self.model.po_number)
            .where(self.model.yacht_id == yacht_id, self.model.po_number.like(f"PO-{year}-%"))
            .order_by(self.model.po_number.desc())
            .limit(1)
        )).scalar_one_or_none()
        return next_po_number(last_number, year)

    async def _audit(
        self, db: AsyncSession, *, actor_id: int, action: str, order_id: int, before: Any, after: Any
    ) -> None:
        await shared_crud.audit.record(
            db, module="purchase_orders", entity_type="PurchaseOrder", entity_id=order_id,
            action=action, actor_id=actor_id, before=before, after=after,
        )

    async def _notify(
        self,
        db: AsyncSession,
        order: po_models.PurchaseOrder,
        *,
        event_type: str,
        dedupe_base: str,
        include_approvers: bool = False,
        include_engineers: bool = False,
        extra: Optional[List[int]] = None,
        reason: Optional[str] = None,
    ) -> None:
        user_ids: List[Optional[int]] = [*(extra or []), order.requested_by_user_id, order.approved_by_user_id]
        if include_approvers:
            user_ids.extend(await resolve_users_by_roles(db, APPROVER_ROLES, order.yacht_id))
        if include_engineers:
            user_ids.extend(await resolve_users_by_roles(db, ENGINEER_ROLES, order.yacht_id))
        await notify_users(
            db,
            user_ids=user_ids,
            yacht_id=order.yacht_id,
            type=event_type,
            dedupe_base=dedupe_base,
            payload={
                "purchase_order_id": order.id,
                "po_number": order.po_number,
                "status": order.status.value,
                "vendor_name": order.vendor_name,
                "total": order.total,
                "reason": reason,
            },
            module="purchase_orders",
            entity_type="PurchaseOrder",
            entity_id=order.id,
            severity=notification_severity(event_type),
        )

    async def to_detail(self, db: AsyncSession, order_id: int) -> Dict[str, Any]:
        order = await self.get_with_lines(db, order_id)
        trail = await shared_crud.audit.trail(db, entity_type="PurchaseOrder", entity_id=order_id, limit=AUDIT_TRAIL_LIMIT)
        return {**to_read(order), "audit_trail": trail}

    # --- 조회 ---
    async def list_orders(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        actor: rbac.ActorContext,
        status_filter: Optional[POStatus] = None,
        vendor: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        rbac.assert_yacht_scope(yacht_id, actor)
        rbac.assert_roles(actor, VIEWER_ROLES, "Role is not allowed to view purchase orders", yacht_id)

        page = page if page and page > 0 else 1
        page_size = min(page_size if page_size and page_size > 0 else DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)

        conditions = [self.model.yacht_id == yacht_id]
        if status_filter:
            conditions.append(self.model.status == status_filter)
        if vendor and vendor.strip():
            conditions.append(self.model.vendor_name.ilike(f"%{vendor.strip()}%"))
        if date_from:
            conditions.append(self.model.created_at >= date_from)
        if date_to:
            conditions.append(self.model.created_at <= date_to)

        total = (await db.execute(select(func.count(self.model.id)).where(*conditions))).scalar_one()
        statement = (
            select(self.model)
            .options(*self._load_options())
            .where(*conditions)
            .order_by(self.model.updated_at.desc(), self.model.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        orders = (await db.execute(statement)).scalars().all()
        return {
            "items": [to_read(order) for order in orders],
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": max(1, math.ceil(total / page_size)),
        }

    # --- 생성 / 수정 ---
    async def create_order(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        obj_in: po_schemas.PurchaseOrderCreate,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        rbac.assert_yacht_scope(yacht_id, actor)
        rbac.assert_roles(actor, CREATOR_ROLES, "Role is not allowed to create purchase orders", yacht_id)
        lines = validate_lines(obj_in.lines)

        order = self.model(
            yacht_id=yacht_id,
            po_number=await self._generate_po_number(db, yacht_id),
            status=POStatus.DRAFT,
            vendor_name=obj_in.vendor_name.strip(),
            vendor_email=(obj_in.vendor_email or "").strip() or None,
            vendor_phone=(obj_in.vendor_phone or "").strip() or None,
            expected_delivery_at=obj_in.expected_delivery_at,
            notes=(obj_in.notes or "").strip() or None,
            requested_by_user_id=actor.user_id,
            lines=build_lines(lines),
            **compute_totals(lines),
        )
        db.add(order)
        await db.flush()

        await self._audit(db, actor_id=actor.user_id, action="po_created", order_id=order.id, before=None, after=order)
        await self._notify(
            db, order,
            event_type="po.created",
            dedupe_base=f"po-created-{order.id}",
            include_approvers=True,
        )
        await db.commit()
        return await self.to_detail(db, order.id)

    async def update_order(
        self,
        db: AsyncSession,
        *,
        order: po_models.PurchaseOrder,
        obj_in: po_schemas.PurchaseOrderUpdate,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        rbac.assert_roles(actor, CREATOR_ROLES, "Role is not allowed to edit purchase orders", order.yacht_id)
        if order.status not in (POStatus.DRAFT, POStatus.SUBMITTED) and not actor.has_role(ADMIN_ROLES, order.yacht_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Only draft/submitted purchase orders can be edited",
            )

        data = obj_in.model_dump(exclude_unset=True, exclude={"lines"})
        before = to_read(order)

        if "vendor_name" in data and data["vendor_name"] is not None:
            order.vendor_name = data["vendor_name"].strip()
        for key in ("vendor_email", "vendor_phone", "notes"):
            if key in data:
                setattr(order, key, (data[key] or "").strip() or None)
        if "expected_delivery_at" in data:
            order.expected_delivery_at = data["expected_delivery_at"]

        if obj_in.lines is not None:
            lines = validate_lines(obj_in.lines)
            if any(line.quantity_received > 0 for line in order.lines):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Cannot replace lines after receiving quantities",
                )
            order.lines = build_lines(lines)
            for key, value in compute_totals(lines).items():
                setattr(order, key, value)

        order.updated_at = utcnow()
        db.add(order)
        await db.flush()

        await self._audit(db, actor_id=actor.user_id, action="po_updated", order_id=order.id, before=before, after=to_read(order))
        await self._notify(
            db, order,
            event_type="po.updated",
            dedupe_base=f"po-updated-{order.id}",
            include_approvers=order.status == POStatus.SUBMITTED,
        )
        await db.commit()
        return await self.to_detail(db, order.id)

    # --- 워크플로 ---
    async def _transition(
        self,
        db: AsyncSession,
        *,
        order: po_models.PurchaseOrder,
        actor: rbac.ActorContext,
        new_status: POStatus,
        action: str,
        event_type: str,
        reason: str,
        include_approvers: bool = False,
        include_engineers: bool = False,
    ) -> Dict[str, Any]:
        before = shared_crud.snapshot(order)
        order.status = new_status
        order.updated_at = utcnow()
        if new_status == POStatus.APPROVED:
            order.approved_by_user_id = actor.user_id
            order.approved_at = order.updated_at
            order.locked_at = order.updated_at
        db.add(order)
        await db.flush()

        await self._audit(
            db, actor_id=actor.user_id, action=action, order_id=order.id,
            before=before, after={**shared_crud.snapshot(order), "reason": reason},
        )
        await self._notify(
            db, order,
            event_type=event_type,
            dedupe_base=f"po-{new_status.value}-{order.id}",
            include_approvers=include_approvers,
            include_engineers=include_engineers,
            reason=reason,
        )
        await db.commit()
        return await self.to_detail(db, order.id)

    async def submit_order(
        self, db: AsyncSession, *, order: po_models.PurchaseOrder, reason: str, actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        rbac.assert_roles(actor, CREATOR_ROLES, "Role is not allowed to submit purchase orders", order.yacht_id)
        if order.status != POStatus.DRAFT:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only draft purchase orders can be submitted")
        return await self._transition(
            db, order=order, actor=actor, new_status=POStatus.SUBMITTED,
            action="po_submitted", event_type="po.submitted", reason=reason, include_approvers=True,
        )

    async def approve_order(
        self, db: AsyncSession, *, order: po_models.PurchaseOrder, reason: str, actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        rbac.assert_roles(actor, APPROVER_ROLES, "Only Captain/Admin/SystemAdmin can approve purchase orders", order.yacht_id)
        if order.status != POStatus.SUBMITTED:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only submitted purchase orders can be approved")
        return await self._transition(
            db, order=order, actor=actor, new_status=POStatus.APPROVED,
            action="po_approved", event_type="po.approved", reason=reason, include_engineers=True,
        )

    async def mark_ordered(
        self, db: AsyncSession, *, order: po_models.PurchaseOrder, reason: str, actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        rbac.assert_roles(actor, ORDER_ROLES, "Role is not allowed to mark purchase orders as ordered", order.yacht_id)
        if order.status != POStatus.APPROVED:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only approved purchase orders can move to ordered")
        return await self._transition(
            db, order=order, actor=actor, new_status=POStatus.ORDERED,
            action="po_ordered", event_type="po.ordered", reason=reason, include_engineers=True,
        )

    async def receive_order(
        self,
        db: AsyncSession,
        *,
        order: po_models.PurchaseOrder,
        obj_in: po_schemas.PurchaseOrderReceive,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        """
        입고 수량을 기록합니다. 남은 수량을 넘는 입고는 거부되며,
        모든 품목이 완납되면 received, 아니면 partially_received가 됩니다.
        """
        rbac.assert_roles(actor, RECEIVE_ROLES, "Role is not allowed to receive purchase orders", order.yacht_id)
        if order.status not in (POStatus.ORDERED, POStatus.PARTIALLY_RECEIVED):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Only ordered/partially_received purchase orders can be received",
            )
        if not obj_in.lines:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Receipt requires at least one line")

        lines_by_id = {line.id: line for line in order.lines}
        requested: Dict[int, float] = {}
        for item in obj_in.lines:
            if item.purchase_order_line_id not in lines_by_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Invalid purchase_order_line_id: {item.purchase_order_line_id}",
                )
            requested[item.purchase_order_line_id] = requested.get(item.purchase_order_line_id, 0) + item.quantity_received

        for line_id, quantity in requested.items():
            line = lines_by_id[line_id]
            remaining = line.quantity_ordered - line.quantity_received
            if quantity > remaining + RECEIVE_EPSILON:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Line {line_id} exceeds remaining quantity",
                )

        before = to_read(order)
        receipt = po_models.PurchaseOrderReceipt(
            purchase_order_id=order.id,
            yacht_id=order.yacht_id,
            received_at=obj_in.received_at or utcnow(),
            received_by_user_id=actor.user_id,
            reason=obj_in.reason.strip(),
            lines=[
                po_models.PurchaseOrderReceiptLine(
                    purchase_order_line_id=item.purchase_order_line_id,
                    quantity_received=item.quantity_received,
                )
                for item in obj_in.lines
            ],
        )
        db.add(receipt)
        for line_id, quantity in requested.items():
            line = lines_by_id[line_id]
            line.quantity_received = round(line.quantity_received + quantity, 6)
            db.add(line)

        fully_received = all(
            line.quantity_received + RECEIVE_EPSILON >= line.quantity_ordered for line in order.lines
        )
        order.status = POStatus.RECEIVED if fully_received else POStatus.PARTIALLY_RECEIVED
        order.updated_at = utcnow()
        db.add(order)
        await db.flush()

        await self._audit(
            db, actor_id=actor.user_id, action="po_received", order_id=order.id,
            before=before, after={**to_read(order), "receipt_id": receipt.id, "reason": receipt.reason},
        )
        await self._notify(
            db, order,
            event_type="po.received",
            dedupe_base=f"po-received-{order.id}-{receipt.id}",
            include_engineers=True,
            extra=[actor.user_id],
            reason=receipt.reason,
        )
        await db.commit()
        return await self.to_detail(db, order.id)

    async def cancel_order(
        self, db: AsyncSession, *, order: po_models.PurchaseOrder, reason: str, actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        rbac.assert_roles(actor, ORDER_ROLES, "Role is not allowed to cancel purchase orders", order.yacht_id)
        if order.status in (POStatus.RECEIVED, POStatus.CANCELLED):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Purchase order cannot be cancelled in this state")
        return await self._transition(
            db, order=order, actor=actor, new_status=POStatus.CANCELLED,
            action="po_cancelled", event_type="po.cancelled", reason=reason,
            include_approvers=True, include_engineers=True,
        )


purchase_order = CRUDPurchaseOrder()
