# yachtpms/domains/fleet/crud.py

"""
'fleet' 도메인의 CRUD 작업을 담당하는 모듈입니다.
요트 생성/수정과 대시보드 집계, 요트 접근 권한 관리, 엔진 관리 및 엔진 상태 계산을 포함합니다.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.docs import models as docs_models
from yachtpms.domains.logbook import models as logbook_models
from yachtpms.domains.maint import models as maint_models
from yachtpms.domains.po import models as po_models
from yachtpms.domains.shared import crud as shared_crud
from yachtpms.domains.usr import models as usr_models
from . import models as fleet_models
from . import schemas as fleet_schemas


ACCESS_MANAGERS = ("Admin", "Management/Office", "SystemAdmin")
ENGINE_CHECK_WINDOW = timedelta(days=7)
ENGINE_STALE_AFTER = timedelta(days=30)


async def _count(db: AsyncSession, statement) -> int:
    return (await db.execute(statement)).scalar_one()


# =============================================================================
# 1. yachts 테이블 CRUD
# =============================================================================
class CRUDYacht(CRUDBase[fleet_models.Yacht, fleet_schemas.YachtCreate, fleet_schemas.YachtUpdate]):
    def __init__(self):
        super().__init__(model=fleet_models.Yacht)

    async def create_yacht(
        self, db: AsyncSession, *, obj_in: fleet_schemas.YachtCreate, actor: rbac.ActorContext
    ) -> fleet_models.Yacht:
        if not actor.is_system_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only SystemAdmin can create yachts")

        yacht = self.model(
            name=obj_in.name.strip(),
            flag=obj_in.flag.strip().upper(),
            is_active=True if obj_in.is_active is None else obj_in.is_active,
            imo_optional=obj_in.imo_optional,
        )
        db.add(yacht)
        await db.flush()
        await shared_crud.audit.record(
            db, module="yachts", entity_type="Yacht", entity_id=yacht.id,
            action="create", actor_id=actor.user_id, after=yacht,
        )
        await db.commit()
        await db.refresh(yacht)
        return yacht

    async def list_visible(self, db: AsyncSession, *, actor: rbac.ActorContext) -> List[fleet_models.Yacht]:
        """SystemAdmin은 전체, 그 외 사용자는 접근 가능한 운항 중 요트만 조회합니다."""
        statement = select(self.model)
        if not actor.is_system_admin:
            if not actor.yacht_ids:
                return []
            statement = statement.where(self.model.id.in_(actor.yacht_ids), self.model.is_active == True)  # noqa: E712
        statement = statement.order_by(self.model.name.asc())
        return list((await db.execute(statement)).scalars().all())

    async def get_visible(self, db: AsyncSession, *, yacht_id: int, actor: rbac.ActorContext) -> fleet_models.Yacht:
        yacht = await self.get(db, yacht_id)
        if not yacht or (not actor.is_system_admin and (not actor.can_access(yacht_id) or not yacht.is_active)):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Yacht not found")
        return yacht

    async def update_yacht(
        self, db: AsyncSession, *, yacht_id: int, obj_in: fleet_schemas.YachtUpdate, actor: rbac.ActorContext
    ) -> fleet_models.Yacht:
        if not actor.is_system_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only SystemAdmin can update yachts")

        yacht = await self.get(db, yacht_id)
        if not yacht:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Yacht not found")

        patch: Dict[str, Any] = {}
        data = obj_in.model_dump(exclude_unset=True)
        if data.get("name") is not None:
            patch["name"] = data["name"].strip()
        if data.get("flag") is not None:
            patch["flag"] = data["flag"].strip().upper()
        if data.get("is_active") is not None:
            patch["is_active"] = data["is_active"]
        if "imo_optional" in data:
            patch["imo_optional"] = data["imo_optional"]
        if not patch:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No yacht fields to update")

        before = shared_crud.snapshot(yacht)
        for key, value in patch.items():
            setattr(yacht, key, value)
        db.add(yacht)
        await db.flush()
        await shared_crud.audit.record(
            db, module="yachts", entity_type="Yacht", entity_id=yacht.id,
            action="update", actor_id=actor.user_id, before=before, after=yacht,
        )
        await db.commit()
        await db.refresh(yacht)
        return yacht

    async def get_summary(self, db: AsyncSession, *, yacht_id: int, actor: rbac.ActorContext) -> Dict[str, Any]:
        await self.get_visible(db, yacht_id=yacht_id, actor=actor)
        now = utcnow()

        Task = maint_models.MaintenanceTask
        Document = docs_models.Document
        Order = po_models.PurchaseOrder
        Entry = logbook_models.LogBookEntry
        Access = fleet_models.UserYachtAccess

        return {
            "yacht_id": yacht_id,
            "maintenance_open": await _count(db, select(func.count(Task.id)).where(
                Task.yacht_id == yacht_id, Task.status.in_(maint_models.OPEN_STATUSES)
            )),
            "maintenance_overdue": await _count(db, select(func.count(Task.id)).where(
                Task.yacht_id == yacht_id, Task.status.in_(maint_models.OPEN_STATUSES), Task.due_date < now
            )),
            "documents_expiring_30d": await _count(db, select(func.count(Document.id)).where(
                Document.yacht_id == yacht_id,
                Document.expiry_date >= now,
                Document.expiry_date <= now + timedelta(days=30),
                Document.status != docs_models.DocumentStatus.ARCHIVED,
                Document.workflow_status != docs_models.DocumentWorkflowStatus.ARCHIVED,
            )),
            "documents_pending_approval": await _count(db, select(func.count(Document.id)).where(
                Document.yacht_id == yacht_id,
                Document.workflow_status == docs_models.DocumentWorkflowStatus.SUBMITTED,
            )),
            "purchase_orders_pending_approval": await _count(db, select(func.count(Order.id)).where(
                Order.yacht_id == yacht_id, Order.status == po_models.PurchaseOrderStatus.SUBMITTED
            )),
            "purchase_orders_open": await _count(db, select(func.count(Order.id)).where(
                Order.yacht_id == yacht_id,
                Order.status.in_([po_models.PurchaseOrderStatus.ORDERED, po_models.PurchaseOrderStatus.PARTIALLY_RECEIVED]),
            )),
            "alerts_open": await shared_crud.alert.count_open(db, yacht_id=yacht_id),
            "logbook_drafts": await _count(db, select(func.count(Entry.id)).where(
                Entry.yacht_id == yacht_id, Entry.status.in_(logbook_models.EDITABLE_STATUSES)
            )),
            "logbook_pending_review": await _count(db, select(func.count(Entry.id)).where(
                Entry.yacht_id == yacht_id, Entry.status == logbook_models.LogBookStatus.SUBMITTED
            )),
            "crew_onboard": await _count(db, select(func.count(Access.id))
                .join(usr_models.User, usr_models.User.id == Access.user_id)
                .where(Access.yacht_id == yacht_id, Access.revoked_at.is_(None), usr_models.User.is_active == True)  # noqa: E712
            ),
        }


yacht = CRUDYacht()


# =============================================================================
# 2. user_yacht_accesses (요트 기준 접근 권한 관리)
# =============================================================================
class CRUDYachtAccess(CRUDBase[fleet_models.UserYachtAccess, fleet_schemas.AccessGrant, fleet_schemas.AccessUpdate]):
    def __init__(self):
        super().__init__(model=fleet_models.UserYachtAccess)

    @staticmethod
    def _assert_manager(actor: rbac.ActorContext, detail: str) -> None:
        if not actor.has_role(ACCESS_MANAGERS):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    async def _get_pair(self, db: AsyncSession, *, yacht_id: int, user_id: int) -> fleet_models.UserYachtAccess:
        statement = select(self.model).where(self.model.yacht_id == yacht_id, self.model.user_id == user_id)
        access = (await db.execute(statement)).scalars().first()
        if not access:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Access record not found")
        return access

    @staticmethod
    def _normalize_override(value: Optional[str]) -> Optional[str]:
        name = (value or "").strip()
        if not name:
            return None
        if not rbac.is_valid_role(name):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
        return rbac.normalize_role(name)

    async def grant(
        self, db: AsyncSession, *, yacht_id: int, obj_in: fleet_schemas.AccessGrant, actor: rbac.ActorContext
    ) -> fleet_models.UserYachtAccess:
        self._assert_manager(actor, "Only Admin/Management can grant yacht access")
        if not await db.get(fleet_models.Yacht, yacht_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Yacht not found")
        target = await db.get(usr_models.User, obj_in.user_id)
        if not target:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        if not target.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot grant yacht access to an inactive user")

        override = self._normalize_override(obj_in.role_name_override)
        statement = select(self.model).where(self.model.yacht_id == yacht_id, self.model.user_id == obj_in.user_id)
        access = (await db.execute(statement)).scalars().first()
        if access is None:
            access = self.model(user_id=obj_in.user_id, yacht_id=yacht_id, role_name_override=override)
        else:
            access.role_name_override = override
            access.revoked_at = None
            access.revoked_by = None
        db.add(access)
        await db.flush()
        await shared_crud.audit.record(
            db, module="yachts", entity_type="UserYachtAccess", entity_id=access.id,
            action="grant_access", actor_id=actor.user_id, after=access,
        )
        await db.commit()
        await db.refresh(access)
        return access

    async def list_for_yacht(
        self, db: AsyncSession, *, yacht_id: int, actor: rbac.ActorContext
    ) -> List[Dict[str, Any]]:
        self._assert_manager(actor, "Only Admin/Management can list yacht access")
        statement = (
            select(self.model, usr_models.User)
            .join(usr_models.User, usr_models.User.id == self.model.user_id)
            .where(self.model.yacht_id == yacht_id, self.model.revoked_at.is_(None))
            .order_by(self.model.created_at.desc())
        )
        rows = (await db.execute(statement)).all()
        return [
            {
                **access.model_dump(),
                "user": {"id": user.id, "email": user.email, "full_name": user.full_name, "is_active": user.is_active},
            }
            for access, user in rows
        ]

    async def update_override(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        user_id: int,
        obj_in: fleet_schemas.AccessUpdate,
        actor: rbac.ActorContext,
    ) -> fleet_models.UserYachtAccess:
        self._assert_manager(actor, "Only Admin/Management can update yacht access")
        access = await self._get_pair(db, yacht_id=yacht_id, user_id=user_id)
        if access.revoked_at:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Access record is revoked")

        before = shared_crud.snapshot(access)
        access.role_name_override = self._normalize_override(obj_in.role_name_override)
        db.add(access)
        await db.flush()
        await shared_crud.audit.record(
            db, module="yachts", entity_type="UserYachtAccess", entity_id=access.id,
            action="update_access", actor_id=actor.user_id, before=before, after=access,
        )
        await db.commit()
        await db.refresh(access)
        return access

    async def revoke(
        self, db: AsyncSession, *, yacht_id: int, user_id: int, actor: rbac.ActorContext
    ) -> Dict[str, bool]:
        self._assert_manager(actor, "Only Admin/Management can remove yacht access")
        access = await self._get_pair(db, yacht_id=yacht_id, user_id=user_id)
        if access.revoked_at:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Access record already revoked")

        before = shared_crud.snapshot(access)
        access.revoked_at = utcnow()
        access.revoked_by = actor.user_id
        db.add(access)
        await db.flush()
        await shared_crud.audit.record(
            db, module="yachts", entity_type="UserYachtAccess", entity_id=access.id,
            action="remove_access", actor_id=actor.user_id, before=before, after=access,
        )
        await db.commit()
        return {"success": True}


yacht_access = CRUDYachtAccess()


# =============================================================================
# 3. engines 테이블 CRUD (엔진 상태 포함)
# =============================================================================
def compute_engine_health(
    *, overdue: bool, due_soon: bool, last_reading_at: Optional[datetime], now: datetime
) -> str:
    """
    엔진 상태를 계산합니다.
    - Maintenance: 마감이 지난 진행 중 정비 작업이 있음
    - Check: 7일 이내 마감 작업이 있거나, 계측 기록이 없거나, 마지막 계측이 30일보다 오래됨
    - OK: 그 외
    """
    if overdue:
        return "Maintenance"
    if due_soon or last_reading_at is None:
        return "Check"
    if as_utc(now) - as_utc(last_reading_at) > ENGINE_STALE_AFTER:
        return "Check"
    return "OK"


class CRUDEngine(CRUDBase[fleet_models.Engine, fleet_schemas.EngineCreate, fleet_schemas.EngineUpdate]):
    def __init__(self):
        super().__init__(model=fleet_models.Engine)

    async def get_or_404(self, db: AsyncSession, engine_id: int) -> fleet_models.Engine:
        engine = await self.get(db, engine_id)
        if not engine:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Engine not found")
        return engine

    async def create_engine(
        self, db: AsyncSession, *, yacht_id: int, obj_in: fleet_schemas.EngineCreate
    ) -> fleet_models.Engine:
        if not await db.get(fleet_models.Yacht, yacht_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Yacht not found")
        engine = self.model(
            yacht_id=yacht_id,
            name=obj_in.name.strip(),
            type=obj_in.type.strip(),
            serial_no=obj_in.serial_no.strip(),
        )
        db.add(engine)
        await db.commit()
        await db.refresh(engine)
        return engine

    async def list_with_health(
        self, db: AsyncSession, *, yacht_id: int, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        current = as_utc(now) or utcnow()
        engines = (await db.execute(
            select(self.model).where(self.model.yacht_id == yacht_id).order_by(self.model.name.asc())
        )).scalars().all()

        last_readings = dict((await db.execute(
            select(fleet_models.EngineCounter.engine_id, func.max(fleet_models.EngineCounter.reading_date))
            .join(self.model, self.model.id == fleet_models.EngineCounter.engine_id)
            .where(self.model.yacht_id == yacht_id)
            .group_by(fleet_models.EngineCounter.engine_id)
        )).all())

        Task = maint_models.MaintenanceTask
        pending = (await db.execute(
            select(Task.engine_id, Task.due_date).where(
                Task.yacht_id == yacht_id,
                Task.engine_id.is_not(None),
                Task.status.in_(maint_models.ACTIVE_STATUSES),
                Task.due_date <= current + ENGINE_CHECK_WINDOW,
            )
        )).all()

        overdue_ids = set()
        review_ids = set()
        for engine_id, due_date in pending:
            if as_utc(due_date) < current:
                overdue_ids.add(engine_id)
            else:
                review_ids.add(engine_id)

        items = []
        for engine in engines:
            last_reading_at = as_utc(last_readings.get(engine.id))
            items.append({
                "id": engine.id,
                "yacht_id": engine.yacht_id,
                "name": engine.name,
                "type": engine.type,
                "serial_no": engine.serial_no,
                "health_status": compute_engine_health(
                    overdue=engine.id in overdue_ids,
                    due_soon=engine.id in review_ids,
                    last_reading_at=last_reading_at,
                    now=current,
                ),
                "last_reading_at": last_reading_at,
            })
        return items

    async def update_engine(
        self, db: AsyncSession, *, engine: fleet_models.Engine, obj_in: fleet_schemas.EngineUpdate
    ) -> fleet_models.Engine:
        data = obj_in.model_dump(exclude_unset=True)
        patch: Dict[str, str] = {}
        for field in ("name", "type", "serial_no"):
            if data.get(field) is None:
                continue
            value = data[field].strip()
            if not value:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} cannot be empty")
            patch[field] = value
        if not patch:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one field is required")

        for key, value in patch.items():
            setattr(engine, key, value)
        db.add(engine)
        await db.commit()
        await db.refresh(engine)
        return engine


engine = CRUDEngine()
