# yachtpms/domains/shared/crud.py

"""
'shared' 도메인의 CRUD 작업을 담당하는 모듈입니다.

경보(Alert)와 감사 이력(AuditEvent)은 여러 도메인의 서비스에서 호출되므로,
여기의 메서드는 커밋하지 않고 세션에 추가(flush)만 합니다.
호출한 쪽에서 트랜잭션을 커밋합니다.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi.encoders import jsonable_encoder
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import utcnow
from yachtpms.domains.usr import models as usr_models
from . import models as shared_models


def snapshot(obj: Any) -> Optional[dict]:
    """감사 이력에 저장할 JSON 스냅샷을 만듭니다."""
    if obj is None:
        return None
    if isinstance(obj, SQLModel):
        obj = obj.model_dump()
    return jsonable_encoder(obj)


# =============================================================================
# 1. alerts 테이블 CRUD
# =============================================================================
class CRUDAlert(CRUDBase[shared_models.Alert, shared_models.Alert, shared_models.Alert]):
    def __init__(self):
        super().__init__(model=shared_models.Alert)

    async def get_by_dedupe_key(self, db: AsyncSession, *, dedupe_key: str) -> Optional[shared_models.Alert]:
        return await self.get_by_attribute(db, attribute="dedupe_key", value=dedupe_key)

    async def upsert(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        module: str,
        alert_type: str,
        severity: str,
        dedupe_key: str,
        due_at: Optional[datetime] = None,
        entity_id: Optional[str] = None,
        assigned_to: Optional[int] = None,
    ) -> shared_models.Alert:
        """
        dedupe_key가 같은 경보가 있으면 severity, due_at, assigned_to만 갱신하고,
        없으면 새로 만듭니다.
        """
        alert = await self.get_by_dedupe_key(db, dedupe_key=dedupe_key)
        if alert:
            alert.severity = severity
            alert.due_at = due_at
            alert.assigned_to = assigned_to
        else:
            alert = shared_models.Alert(
                yacht_id=yacht_id,
                module=module,
                alert_type=alert_type,
                severity=severity,
                due_at=due_at,
                dedupe_key=dedupe_key,
                entity_id=entity_id,
                assigned_to=assigned_to,
            )
        db.add(alert)
        await db.flush()
        return alert

    async def resolve(self, db: AsyncSession, *, dedupe_key: str) -> int:
        """미해결 경보를 해결 처리하고 처리 건수를 반환합니다."""
        statement = select(self.model).where(
            self.model.dedupe_key == dedupe_key,
            self.model.resolved_at.is_(None),
        )
        result = await db.execute(statement)
        alerts = result.scalars().all()
        now = utcnow()
        for alert in alerts:
            alert.resolved_at = now
            db.add(alert)
        if alerts:
            await db.flush()
        return len(alerts)

    async def list_open_by_yacht(self, db: AsyncSession, *, yacht_id: int) -> List[shared_models.Alert]:
        statement = (
            select(self.model)
            .where(self.model.yacht_id == yacht_id, self.model.resolved_at.is_(None))
            .order_by(self.model.due_at.asc().nulls_last(), self.model.created_at.desc())
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def count_open(self, db: AsyncSession, *, yacht_id: int) -> int:
        return len(await self.list_open_by_yacht(db, yacht_id=yacht_id))


alert = CRUDAlert()


# =============================================================================
# 2. audit_events 테이블 CRUD
# =============================================================================
class CRUDAuditEvent(CRUDBase[shared_models.AuditEvent, shared_models.AuditEvent, shared_models.AuditEvent]):
    def __init__(self):
        super().__init__(model=shared_models.AuditEvent)

    async def record(
        self,
        db: AsyncSession,
        *,
        module: str,
        entity_type: str,
        entity_id: Any,
        action: str,
        actor_id: Optional[int],
        before: Any = None,
        after: Any = None,
        source: str = "api",
    ) -> shared_models.AuditEvent:
        event = shared_models.AuditEvent(
            module=module,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_id=actor_id,
            before_json=snapshot(before),
            after_json=snapshot(after),
            source=source,
        )
        db.add(event)
        await db.flush()
        return event

    async def list_for_entity(
        self, db: AsyncSession, *, entity_type: str, entity_id: str, limit: int = 100
    ) -> List[shared_models.AuditEvent]:
        statement = (
            select(self.model)
            .where(self.model.entity_type == entity_type, self.model.entity_id == str(entity_id))
            .order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(limit)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def trail(
        self, db: AsyncSession, *, entity_type: str, entity_id: Any, limit: int = 120
    ) -> List[Dict[str, Any]]:
        """엔티티 감사 이력에 수행자 이름(full_name 또는 email)을 붙여 반환합니다."""
        rows = await self.list_for_entity(db, entity_type=entity_type, entity_id=str(entity_id), limit=limit)
        actor_ids = {row.actor_id for row in rows if row.actor_id}
        names: Dict[int, str] = {}
        if actor_ids:
            users = (await db.execute(
                select(usr_models.User).where(usr_models.User.id.in_(actor_ids))
            )).scalars().all()
            names = {user.id: user.full_name or user.email for user in users}
        return [
            {
                "id": row.id,
                "action": row.action,
                "actor_id": row.actor_id,
                "actor_name": names.get(row.actor_id) or (str(row.actor_id) if row.actor_id else None),
                "timestamp": row.created_at,
                "before_json": row.before_json,
                "after_json": row.after_json,
                "source": row.source,
            }
            for row in rows
        ]


audit = CRUDAuditEvent()
