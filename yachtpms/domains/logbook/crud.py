# yachtpms/domains/logbook/crud.py

"""
'logbook' 도메인의 CRUD 작업을 담당하는 모듈입니다.

- 일지 생성/수정 (Draft, Corrected 상태만 수정 가능)
- 제출 시 엔진별 누적 운전시간(EngineCounter) 기록
- 잠금 (Submitted 상태만 가능)
제출과 잠금은 감사 이력을 남기고 알림 규칙 후보 이벤트를 배포합니다.
"""

from typing import List, Optional
from datetime import date, datetime, time, UTC

from fastapi import HTTPException, status
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.ntf.rules import RuleCandidate
from yachtpms.domains.ntf.services import notification_rule
from yachtpms.domains.shared import crud as shared_crud
from . import models as logbook_models
from . import schemas as logbook_schemas


LOCK_ROLES = ("Captain", "Chief Engineer", "Admin")


def to_entry_datetime(value: date) -> datetime:
    """일지 일자는 해당 날짜 00:00 UTC로 저장합니다."""
    return datetime.combine(value, time.min, tzinfo=UTC)


class CRUDLogBookEntry(CRUDBase[logbook_models.LogBookEntry, logbook_schemas.LogBookEntryCreate, logbook_schemas.LogBookEntryUpdate]):
    def __init__(self):
        super().__init__(model=logbook_models.LogBookEntry)

    def _with_children(self):
        return select(self.model).options(
            selectinload(self.model.engine_readings),
            selectinload(self.model.observations),
        )

    async def get_with_children(self, db: AsyncSession, entry_id: int) -> Optional[logbook_models.LogBookEntry]:
        statement = self._with_children().where(self.model.id == entry_id).execution_options(populate_existing=True)
        return (await db.execute(statement)).scalars().first()

    async def get_scoped(
        self, db: AsyncSession, *, entry_id: int, actor: rbac.ActorContext
    ) -> logbook_models.LogBookEntry:
        entry = await self.get_with_children(db, entry_id)
        if not entry:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Log Book entry not found")
        rbac.assert_yacht_scope(entry.yacht_id, actor)
        return entry

    async def _assert_engines_belong(self, db: AsyncSession, yacht_id: int, engine_ids: List[int]) -> None:
        if not engine_ids:
            return
        statement = select(fleet_models.Engine.id).where(
            fleet_models.Engine.id.in_(engine_ids), fleet_models.Engine.yacht_id == yacht_id
        )
        owned = set((await db.execute(statement)).scalars().all())
        if any(engine_id not in owned for engine_id in engine_ids):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Engine does not belong to yacht")

    async def list_entries(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status_filter: Optional[logbook_models.LogBookStatus] = None,
    ) -> List[logbook_models.LogBookEntry]:
        statement = self._with_children().where(self.model.yacht_id == yacht_id)
        if date_from:
            statement = statement.where(self.model.entry_date >= to_entry_datetime(date_from))
        if date_to:
            statement = statement.where(self.model.entry_date <= to_entry_datetime(date_to))
        if status_filter:
            statement = statement.where(self.model.status == status_filter)
        statement = statement.order_by(self.model.entry_date.desc())
        return list((await db.execute(statement)).scalars().all())

    async def create_entry(
        self, db: AsyncSession, *, obj_in: logbook_schemas.LogBookEntryCreate, actor_id: int
    ) -> logbook_models.LogBookEntry:
        entry_date = to_entry_datetime(obj_in.entry_date)
        exists = await db.execute(
            select(self.model.id).where(self.model.yacht_id == obj_in.yacht_id, self.model.entry_date == entry_date)
        )
        if exists.scalars().first() is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Log Book entry already exists for yacht and date",
            )
        await self._assert_engines_belong(db, obj_in.yacht_id, [r.engine_id for r in obj_in.engine_readings])

        entry = self.model(
            yacht_id=obj_in.yacht_id,
            entry_date=entry_date,
            watch_period=obj_in.watch_period.strip(),
            status=logbook_models.LogBookStatus.DRAFT,
            created_by=actor_id,
            engine_readings=[
                logbook_models.LogBookEngineReading(engine_id=r.engine_id, hours=r.hours)
                for r in obj_in.engine_readings
            ],
            observations=[
                logbook_models.LogBookObservation(category=o.category, text=o.text)
                for o in obj_in.observations
            ],
        )
        db.add(entry)
        await db.flush()
        await shared_crud.audit.record(
            db, module="logbook", entity_type="LogBookEntry", entity_id=entry.id,
            action="create", actor_id=actor_id,
            after={"yacht_id": entry.yacht_id, "entry_date": entry.entry_date, "status": entry.status},
        )
        await db.commit()
        return await self.get_with_children(db, entry.id)

    async def update_entry(
        self,
        db: AsyncSession,
        *,
        entry: logbook_models.LogBookEntry,
        obj_in: logbook_schemas.LogBookEntryUpdate,
        actor_id: int,
    ) -> logbook_models.LogBookEntry:
        """읽기값과 관찰 사항은 전달된 경우 통째로 교체합니다."""
        if entry.status not in logbook_models.EDITABLE_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only Draft or Corrected entries can be edited")

        if obj_in.watch_period is not None:
            entry.watch_period = obj_in.watch_period.strip()
        if obj_in.engine_readings is not None:
            await self._assert_engines_belong(db, entry.yacht_id, [r.engine_id for r in obj_in.engine_readings])
            entry.engine_readings = [
                logbook_models.LogBookEngineReading(engine_id=r.engine_id, hours=r.hours)
                for r in obj_in.engine_readings
            ]
        if obj_in.observations is not None:
            entry.observations = [
                logbook_models.LogBookObservation(category=o.category, text=o.text)
                for o in obj_in.observations
            ]
        db.add(entry)
        await db.flush()
        await shared_crud.audit.record(
            db, module="logbook", entity_type="LogBookEntry", entity_id=entry.id,
            action="update", actor_id=actor_id,
            after={"watch_period": entry.watch_period, "status": entry.status},
        )
        await db.commit()
        return await self.get_with_children(db, entry.id)

    async def submit_entry(
        self, db: AsyncSession, *, entry: logbook_models.LogBookEntry, actor_id: int
    ) -> logbook_models.LogBookEntry:
        if entry.status not in logbook_models.EDITABLE_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only Draft/Corrected entries can be submitted")

        before = {"status": entry.status}
        for reading in entry.engine_readings:
            db.add(fleet_models.EngineCounter(
                engine_id=reading.engine_id,
                reading_hours=reading.hours,
                reading_date=entry.entry_date,
                source_logbook_id=entry.id,
            ))
        entry.status = logbook_models.LogBookStatus.SUBMITTED
        db.add(entry)
        await db.flush()

        await shared_crud.audit.record(
            db, module="logbook", entity_type="LogBookEntry", entity_id=entry.id,
            action="submit", actor_id=actor_id, before=before, after={"status": entry.status},
        )
        await notification_rule.dispatch_candidates(db, [
            RuleCandidate(
                type="logbook.submitted",
                module="logbook",
                yacht_id=entry.yacht_id,
                entity_type="LogBookEntry",
                entity_id=str(entry.id),
                severity="info",
                payload={
                    "entry_id": entry.id,
                    "entry_date": entry.entry_date.date().isoformat(),
                    "watch_period": entry.watch_period,
                    "readings": len(entry.engine_readings),
                },
                assignee_user_id=entry.created_by,
            )
        ])
        await db.commit()
        return await self.get_with_children(db, entry.id)

    async def lock_entry(
        self, db: AsyncSession, *, entry: logbook_models.LogBookEntry, actor: rbac.ActorContext
    ) -> logbook_models.LogBookEntry:
        if not actor.has_role(LOCK_ROLES, entry.yacht_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only Captain, Chief Engineer or Admin can lock entries",
            )
        if entry.status != logbook_models.LogBookStatus.SUBMITTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only Submitted entries can be locked")

        entry.status = logbook_models.LogBookStatus.LOCKED
        db.add(entry)
        await db.flush()
        await shared_crud.audit.record(
            db, module="logbook", entity_type="LogBookEntry", entity_id=entry.id,
            action="lock", actor_id=actor.user_id,
            before={"status": logbook_models.LogBookStatus.SUBMITTED}, after={"status": entry.status},
        )
        await notification_rule.dispatch_candidates(db, [
            RuleCandidate(
                type="logbook.locked",
                module="logbook",
                yacht_id=entry.yacht_id,
                entity_type="LogBookEntry",
                entity_id=str(entry.id),
                severity="info",
                payload={
                    "entry_id": entry.id,
                    "entry_date": entry.entry_date.date().isoformat(),
                    "locked_by": actor.user_id,
                },
                assignee_user_id=entry.created_by,
            )
        ])
        await db.commit()
        return await self.get_with_children(db, entry.id)


entry = CRUDLogBookEntry()
