# yachtpms/domains/inv/crud.py

"""
'inv' 도메인 (재고 관리)의 CRUD 작업을 담당하는 모듈입니다.

재고 상태:
    out  (현재 수량 <= 0)
    low  (현재 수량 <= 최소 수량)
    ok   (그 외)
상태가 바뀔 때마다 경보를 갱신/해결하고, low 또는 out으로 바뀌면 담당자에게 알립니다.
"""

import math
from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import utcnow
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.ntf.services import notify_users, resolve_users_by_roles
from yachtpms.domains.shared import crud as shared_crud
from . import models as inv_models
from . import schemas as inv_schemas


VIEWER_ROLES = ("Crew Member", "HoD", "Chief Engineer", "Captain", "Management/Office", "Admin", "SystemAdmin")
MANAGER_ROLES = ("Chief Engineer", "Captain", "Management/Office", "Admin", "SystemAdmin")
ADJUSTMENT_ROLES = ("Chief Engineer", "Captain", "Admin", "SystemAdmin")
RECIPIENT_ROLES = ("Captain", "Chief Engineer", "Management/Office", "Admin", "SystemAdmin")

DETAIL_MOVEMENT_LIMIT = 120
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

MovementType = inv_models.MovementType


# =============================================================================
# 순수 헬퍼
# =============================================================================
def stock_state(current_stock: float, min_stock: float) -> str:
    if current_stock <= 0:
        return "out"
    if current_stock <= min_stock:
        return "low"
    return "ok"


def movement_delta(movement_type: MovementType, quantity: float, direction: Optional[str] = None) -> float:
    """입출고 유형에 따른 재고 증감량. adjustment는 direction이 필요합니다."""
    if movement_type in (MovementType.IN, MovementType.TRANSFER_IN):
        return quantity
    if movement_type in (MovementType.OUT, MovementType.TRANSFER_OUT):
        return -quantity
    if not direction:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="direction is required for adjustment movement",
        )
    return quantity if direction == "increase" else -quantity


def clean_text(value: Optional[str], max_length: int) -> Optional[str]:
    text = (value or "").strip()
    return text[:max_length] if text else None


def to_item_read(item: inv_models.InventoryItem) -> Dict[str, Any]:
    return {**item.model_dump(), "stock_state": stock_state(item.current_stock, item.min_stock)}


def to_movement_read(
    movement: inv_models.InventoryMovement, item: Optional[inv_models.InventoryItem] = None
) -> Dict[str, Any]:
    data = movement.model_dump()
    if item is not None:
        data["item"] = {
            "id": item.id,
            "name": item.name,
            "sku": item.sku,
            "unit": item.unit,
            "min_stock": item.min_stock,
            "current_stock": item.current_stock,
        }
    return data


def _page_bounds(page: int, page_size: int):
    page = page if page and page > 0 else 1
    page_size = min(page_size if page_size and page_size > 0 else DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    return page, page_size


# =============================================================================
# 1. 재고 품목 CRUD
# =============================================================================
class CRUDInventoryItem(CRUDBase[inv_models.InventoryItem, inv_schemas.InventoryItemCreate, inv_schemas.InventoryItemUpdate]):
    def __init__(self):
        super().__init__(model=inv_models.InventoryItem)

    # --- 내부 헬퍼 ---
    async def get_scoped(
        self, db: AsyncSession, *, item_id: int, actor: rbac.ActorContext
    ) -> inv_models.InventoryItem:
        item = await self.get(db, item_id)
        if not item:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inventory item not found")
        rbac.assert_yacht_scope(item.yacht_id, actor)
        return item

    async def _validate_engine(self, db: AsyncSession, engine_id: Optional[int], yacht_id: int) -> None:
        if engine_id is None:
            return
        engine = await db.get(fleet_models.Engine, engine_id)
        if not engine or engine.yacht_id != yacht_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="engine_id does not belong to this yacht")

    async def recipients(self, db: AsyncSession, yacht_id: int, actor_id: Optional[int]) -> List[int]:
        return [*await resolve_users_by_roles(db, RECIPIENT_ROLES, yacht_id), actor_id]

    async def _notify(
        self,
        db: AsyncSession,
        item: inv_models.InventoryItem,
        *,
        event_type: str,
        dedupe_base: str,
        actor_id: Optional[int],
        severity: str = "info",
    ) -> None:
        await notify_users(
            db,
            user_ids=await self.recipients(db, item.yacht_id, actor_id),
            yacht_id=item.yacht_id,
            type=event_type,
            dedupe_base=dedupe_base,
            payload={
                "item_id": item.id,
                "item_name": item.name,
                "current_stock": item.current_stock,
                "min_stock": item.min_stock,
                "action_url": f"/yachts/{item.yacht_id}/inventory?itemId={item.id}",
            },
            module="inventory",
            entity_type="InventoryItem",
            entity_id=item.id,
            severity=severity,
        )

    async def _open_alert(
        self, db: AsyncSession, item: inv_models.InventoryItem, *, alert_type: str, severity: str, dedupe_key: str
    ) -> None:
        alert = await shared_crud.alert.upsert(
            db, yacht_id=item.yacht_id, module="inventory", alert_type=alert_type,
            severity=severity, dedupe_key=dedupe_key, due_at=utcnow(), entity_id=str(item.id),
        )
        # 재고가 회복됐다가 다시 부족해지면 해결된 경보를 다시 엽니다.
        if alert.resolved_at is not None:
            alert.resolved_at = None
            db.add(alert)
            await db.flush()

    async def sync_stock_alerts(
        self,
        db: AsyncSession,
        item: inv_models.InventoryItem,
        *,
        actor_id: Optional[int],
        previous_state: Optional[str],
    ) -> str:
        """
        재고 상태에 맞게 INV_LOW_STOCK / INV_STOCKOUT 경보를 갱신하거나 해결합니다.
        상태가 low 또는 out으로 바뀐 경우에만 알림을 보냅니다.
        """
        low_key = f"inventory-item-{item.id}-low-stock"
        out_key = f"inventory-item-{item.id}-stockout"
        next_state = stock_state(item.current_stock, item.min_stock)

        if next_state == "out":
            await shared_crud.alert.resolve(db, dedupe_key=low_key)
            await self._open_alert(db, item, alert_type="INV_STOCKOUT", severity="critical", dedupe_key=out_key)
        elif next_state == "low":
            await shared_crud.alert.resolve(db, dedupe_key=out_key)
            await self._open_alert(db, item, alert_type="INV_LOW_STOCK", severity="warn", dedupe_key=low_key)
        else:
            await shared_crud.alert.resolve(db, dedupe_key=low_key)
            await shared_crud.alert.resolve(db, dedupe_key=out_key)

        if previous_state == next_state or next_state == "ok":
            return next_state

        stamp = int(utcnow().timestamp() * 1000)
        if next_state == "low":
            await self._notify(
                db, item, event_type="inventory.low_stock",
                dedupe_base=f"inventory-low-{item.id}-{stamp}", actor_id=actor_id, severity="warn",
            )
        else:
            await self._notify(
                db, item, event_type="inventory.stockout",
                dedupe_base=f"inventory-out-{item.id}-{stamp}", actor_id=actor_id, severity="critical",
            )
        return next_state

    # --- 조회 ---
    async def list_items(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        actor: rbac.ActorContext,
        search: Optional[str] = None,
        category: Optional[inv_models.InventoryCategory] = None,
        low_stock: bool = False,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        rbac.assert_yacht_scope(yacht_id, actor)
        rbac.assert_roles(actor, VIEWER_ROLES, "Role is not allowed to access inventory", yacht_id)
        page, page_size = _page_bounds(page, page_size)

        conditions = [self.model.yacht_id == yacht_id]
        if category:
            conditions.append(self.model.category == category)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(or_(
                self.model.name.ilike(pattern),
                self.model.sku.ilike(pattern),
                self.model.description.ilike(pattern),
            ))
        if low_stock:
            conditions.append(self.model.current_stock <= self.model.min_stock)

        total = (await db.execute(select(func.count(self.model.id)).where(*conditions))).scalar_one()
        statement = (
            select(self.model)
            .where(*conditions)
            .order_by(self.model.updated_at.desc(), self.model.name.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = (await db.execute(statement)).scalars().all()
        return {
            "items": [to_item_read(item) for item in items],
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": max(1, math.ceil(total / page_size)),
        }

    async def get_detail(self, db: AsyncSession, *, item_id: int, actor: rbac.ActorContext) -> Dict[str, Any]:
        """품목과 최근 입출고 이력(최대 120건)을 함께 반환합니다."""
        item = await self.get_scoped(db, item_id=item_id, actor=actor)
        rbac.assert_roles(actor, VIEWER_ROLES, "Role is not allowed to access inventory", item.yacht_id)

        Movement = inv_models.InventoryMovement
        statement = (
            select(Movement)
            .where(Movement.item_id == item.id)
            .order_by(Movement.occurred_at.desc(), Movement.id.desc())
            .limit(DETAIL_MOVEMENT_LIMIT)
        )
        movements = (await db.execute(statement)).scalars().all()
        return {**to_item_read(item), "movements": [to_movement_read(movement) for movement in movements]}

    # --- 생성 / 수정 ---
    async def create_item(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        obj_in: inv_schemas.InventoryItemCreate,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        rbac.assert_yacht_scope(yacht_id, actor)
        rbac.assert_roles(actor, MANAGER_ROLES, "Role is not allowed to manage inventory items", yacht_id)
        await self._validate_engine(db, obj_in.engine_id, yacht_id)

        item = self.model(
            yacht_id=yacht_id,
            sku=clean_text(obj_in.sku, 80),
            name=obj_in.name.strip(),
            description=clean_text(obj_in.description, 1200),
            category=obj_in.category,
            unit=obj_in.unit.strip(),
            location=clean_text(obj_in.location, 120),
            min_stock=obj_in.min_stock or 0,
            current_stock=obj_in.current_stock or 0,
            engine_id=obj_in.engine_id,
            is_active=True if obj_in.is_active is None else obj_in.is_active,
            created_by_user_id=actor.user_id,
        )
        db.add(item)
        await db.flush()

        await shared_crud.audit.record(
            db, module="inventory", entity_type="InventoryItem", entity_id=item.id,
            action="item_created", actor_id=actor.user_id, before=None, after=item,
        )
        await self._notify(
            db, item, event_type="inventory.item_created",
            dedupe_base=f"inventory-item-created-{item.id}", actor_id=actor.user_id,
        )
        await self.sync_stock_alerts(db, item, actor_id=actor.user_id, previous_state=None)
        await db.commit()
        return to_item_read(item)

    async def update_item(
        self,
        db: AsyncSession,
        *,
        item: inv_models.InventoryItem,
        obj_in: inv_schemas.InventoryItemUpdate,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        rbac.assert_roles(actor, MANAGER_ROLES, "Role is not allowed to manage inventory items", item.yacht_id)
        data = obj_in.model_dump(exclude_unset=True)
        if not data:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No inventory fields to update")
        if data.get("engine_id") is not None:
            await self._validate_engine(db, data["engine_id"], item.yacht_id)

        before = shared_crud.snapshot(item)
        previous_state = stock_state(item.current_stock, item.min_stock)

        for key, max_length in (("sku", 80), ("description", 1200), ("location", 120)):
            if key in data:
                setattr(item, key, clean_text(data[key], max_length))
        for key in ("name", "unit"):
            if data.get(key) is not None:
                setattr(item, key, data[key].strip())
        for key in ("category", "min_stock", "is_active"):
            if data.get(key) is not None:
                setattr(item, key, data[key])
        if "engine_id" in data:
            item.engine_id = data["engine_id"]

        item.updated_at = utcnow()
        db.add(item)
        await db.flush()

        await shared_crud.audit.record(
            db, module="inventory", entity_type="InventoryItem", entity_id=item.id,
            action="item_updated", actor_id=actor.user_id, before=before, after=item,
        )
        await self._notify(
            db, item, event_type="inventory.item_updated",
            dedupe_base=f"inventory-item-updated-{item.id}-{int(utcnow().timestamp() * 1000)}",
            actor_id=actor.user_id,
        )
        await self.sync_stock_alerts(db, item, actor_id=actor.user_id, previous_state=previous_state)
        await db.commit()
        return to_item_read(item)


inventory_item = CRUDInventoryItem()


# =============================================================================
# 2. 입출고 CRUD
# =============================================================================
class CRUDInventoryMovement(CRUDBase[inv_models.InventoryMovement, inv_schemas.InventoryMovementCreate, inv_schemas.InventoryMovementCreate]):
    def __init__(self):
        super().__init__(model=inv_models.InventoryMovement)

    async def create_movement(
        self,
        db: AsyncSession,
        *,
        item: inv_models.InventoryItem,
        obj_in: inv_schemas.InventoryMovementCreate,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        """
        입출고를 기록하고 품목의 현재 수량을 갱신합니다.
        재고가 음수가 되는 이동은 거부되며, adjustment는 책임자 역할만 등록할 수 있습니다.
        """
        rbac.assert_roles(actor, VIEWER_ROLES, "Role is not allowed to register inventory movements", item.yacht_id)
        if obj_in.type == MovementType.ADJUSTMENT:
            rbac.assert_roles(
                actor, ADJUSTMENT_ROLES, "Only Chief Engineer/Captain/Admin/SystemAdmin can adjust stock", item.yacht_id
            )
        if not item.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot move stock for inactive item")

        delta = movement_delta(obj_in.type, obj_in.quantity, obj_in.direction)
        before_qty = item.current_stock
        after_qty = round(before_qty + delta, 6)
        if after_qty < 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Stock cannot become negative")

        reference_type = obj_in.reference_type or "manual"
        purchase_order_id = None
        if reference_type == "po" and obj_in.reference_id and obj_in.reference_id.strip().isdigit():
            purchase_order_id = int(obj_in.reference_id.strip())

        item.current_stock = after_qty
        item.updated_at = utcnow()
        movement = self.model(
            yacht_id=item.yacht_id,
            item_id=item.id,
            type=obj_in.type,
            quantity=obj_in.quantity,
            reason=obj_in.reason.strip(),
            reference_type=reference_type,
            reference_id=clean_text(obj_in.reference_id, 120),
            maintenance_task_id=obj_in.maintenance_task_id,
            engine_id=obj_in.engine_id or item.engine_id,
            purchase_order_id=purchase_order_id,
            performed_by_user_id=actor.user_id,
            occurred_at=obj_in.occurred_at or utcnow(),
            before_qty=before_qty,
            after_qty=after_qty,
        )
        db.add(item)
        db.add(movement)
        await db.flush()

        await shared_crud.audit.record(
            db, module="inventory", entity_type="InventoryMovement", entity_id=movement.id,
            action="movement_created", actor_id=actor.user_id, before=None,
            after={**shared_crud.snapshot(movement), "item_id": item.id},
        )

        recipients = await inventory_item.recipients(db, item.yacht_id, actor.user_id)
        movement_payload = {
            "movement_id": movement.id,
            "item_id": item.id,
            "item_name": item.name,
            "type": obj_in.type.value,
            "quantity": obj_in.quantity,
            "before_qty": before_qty,
            "after_qty": after_qty,
            "reason": movement.reason,
            "action_url": f"/yachts/{item.yacht_id}/inventory?itemId={item.id}",
        }
        await notify_users(
            db, user_ids=recipients, yacht_id=item.yacht_id, type="inventory.movement_created",
            dedupe_base=f"inventory-movement-{movement.id}", payload=movement_payload,
            module="inventory", entity_type="InventoryItem", entity_id=item.id,
        )
        if obj_in.type == MovementType.ADJUSTMENT:
            await notify_users(
                db, user_ids=recipients, yacht_id=item.yacht_id, type="inventory.adjustment",
                dedupe_base=f"inventory-adjustment-{movement.id}",
                payload={**movement_payload, "direction": obj_in.direction},
                module="inventory", entity_type="InventoryItem", entity_id=item.id, severity="warn",
            )

        await inventory_item.sync_stock_alerts(
            db, item, actor_id=actor.user_id, previous_state=stock_state(before_qty, item.min_stock)
        )
        await db.commit()
        return to_movement_read(movement, item)

    async def list_movements(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        actor: rbac.ActorContext,
        item_id: Optional[int] = None,
        movement_type: Optional[MovementType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        rbac.assert_yacht_scope(yacht_id, actor)
        rbac.assert_roles(actor, VIEWER_ROLES, "Role is not allowed to access inventory", yacht_id)
        page, page_size = _page_bounds(page, page_size)

        conditions = [self.model.yacht_id == yacht_id]
        if item_id:
            conditions.append(self.model.item_id == item_id)
        if movement_type:
            conditions.append(self.model.type == movement_type)
        if date_from:
            conditions.append(self.model.occurred_at >= date_from)
        if date_to:
            conditions.append(self.model.occurred_at <= date_to)

        total = (await db.execute(select(func.count(self.model.id)).where(*conditions))).scalar_one()
        statement = (
            select(self.model)
            .options(selectinload(self.model.item))
            .where(*conditions)
            .order_by(self.model.occurred_at.desc(), self.model.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        movements = (await db.execute(statement)).scalars().all()
        return {
            "items": [to_movement_read(movement, movement.item) for movement in movements],
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": max(1, math.ceil(total / page_size)),
        }


inventory_movement = CRUDInventoryMovement()
