# yachtpms/domains/maint/crud.py

"""
'maint' 도메인의 CRUD 작업을 담당하는 모듈입니다.

정비 작업 워크플로:
    Draft/Rejected --submit--> Submitted --approve--> Approved --complete--> Completed
                                         --reject---> Rejected
워크플로가 바뀔 때마다 감사 이력을 남기고, 마감 경보(`maintenance-task-{id}-due`)와
승인 대기 경보(`maintenance-task-{id}-approval`)를 갱신/해결하며 관련 사용자에게 알립니다.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.ntf.services import notify_users, resolve_users_by_roles
from yachtpms.domains.shared import crud as shared_crud
from . import models as maint_models
from . import schemas as maint_schemas


REVIEWER_ROLES = ("Captain", "Chief Engineer", "Management/Office", "Admin", "SystemAdmin")
Status = maint_models.MaintenanceStatus


def notification_severity(event_type: str, priority: Optional[str]) -> str:
    if "overdue" in event_type or priority == maint_models.MaintenancePriority.CRITICAL.value:
        return "critical"
    if "due_soon" in event_type or "rejected" in event_type:
        return "warn"
    return "info"


def due_alert_severity(priority: maint_models.MaintenancePriority, due_date: datetime) -> str:
    if priority == maint_models.MaintenancePriority.CRITICAL:
        return "critical"
    if as_utc(due_date) < utcnow():
        return "critical"
    return "warn"


class CRUDMaintenanceTask(CRUDBase[maint_models.MaintenanceTask, maint_schemas.MaintenanceTaskCreate, maint_schemas.MaintenanceTaskUpdate]):
    def __init__(self):
        super().__init__(model=maint_models.MaintenanceTask)

    # --- 내부 헬퍼 ---
    async def get_with_evidences(self, db: AsyncSession, task_id: int) -> Optional[maint_models.MaintenanceTask]:
        statement = (
            select(self.model)
            .options(selectinload(self.model.evidences))
            .where(self.model.id == task_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(statement)).scalars().first()

    async def get_scoped(
        self, db: AsyncSession, *, task_id: int, actor: rbac.ActorContext
    ) -> maint_models.MaintenanceTask:
        task = await self.get_with_evidences(db, task_id)
        if not task:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Maintenance task not found")
        rbac.assert_yacht_scope(task.yacht_id, actor)
        return task

    async def _audit(
        self, db: AsyncSession, *, actor_id: int, action: str, task: maint_models.MaintenanceTask, before: Any
    ) -> None:
        await shared_crud.audit.record(
            db, module="maintenance", entity_type="MaintenanceTask", entity_id=task.id,
            action=action, actor_id=actor_id, before=before, after=task,
        )

    async def _sync_due_alert(self, db: AsyncSession, task: maint_models.MaintenanceTask) -> None:
        dedupe_key = f"maintenance-task-{task.id}-due"
        if task.status not in maint_models.OPEN_STATUSES:
            await shared_crud.alert.resolve(db, dedupe_key=dedupe_key)
            return
        await shared_crud.alert.upsert(
            db,
            yacht_id=task.yacht_id,
            module="maintenance",
            alert_type="due_or_overdue",
            severity=due_alert_severity(task.priority, task.due_date),
            due_at=task.due_date,
            dedupe_key=dedupe_key,
            entity_id=str(task.id),
            assigned_to=task.assigned_to_user_id,
        )

    async def _notify(
        self,
        db: AsyncSession,
        task: maint_models.MaintenanceTask,
        *,
        user_ids: List[Optional[int]],
        event_type: str,
        suffix: str,
        payload: Dict[str, Any],
    ) -> None:
        priority = task.priority.value if hasattr(task.priority, "value") else task.priority
        await notify_users(
            db,
            user_ids=user_ids,
            yacht_id=task.yacht_id,
            type=event_type,
            dedupe_base=f"maintenance-task-{task.id}-{suffix}",
            payload=payload,
            module="maintenance",
            entity_type="MaintenanceTask",
            entity_id=task.id,
            severity=notification_severity(event_type, priority),
        )

    @staticmethod
    def _base_payload(task: maint_models.MaintenanceTask) -> Dict[str, Any]:
        return {
            "task_id": task.id,
            "title": task.title,
            "status": task.status.value if hasattr(task.status, "value") else task.status,
        }

    # --- 조회 ---
    async def list_tasks(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        status_filter: Optional[maint_models.MaintenanceStatus] = None,
        due_from: Optional[datetime] = None,
        due_to: Optional[datetime] = None,
        assigned_to: Optional[int] = None,
    ) -> List[maint_models.MaintenanceTask]:
        statement = (
            select(self.model)
            .options(selectinload(self.model.evidences))
            .where(self.model.yacht_id == yacht_id)
        )
        if status_filter:
            statement = statement.where(self.model.status == status_filter)
        if assigned_to is not None:
            statement = statement.where(self.model.assigned_to_user_id == assigned_to)
        if due_from:
            statement = statement.where(self.model.due_date >= due_from)
        if due_to:
            statement = statement.where(self.model.due_date <= due_to)
        statement = statement.order_by(self.model.due_date.asc(), self.model.created_at.desc())
        return list((await db.execute(statement)).scalars().all())

    async def get_summary(self, db: AsyncSession, *, yacht_id: int) -> Dict[str, int]:
        rows = (await db.execute(
            select(self.model.status, func.count(self.model.id))
            .where(self.model.yacht_id == yacht_id)
            .group_by(self.model.status)
        )).all()
        counts = {row[0]: row[1] for row in rows}
        overdue = (await db.execute(
            select(func.count(self.model.id)).where(
                self.model.yacht_id == yacht_id,
                self.model.due_date < utcnow(),
                self.model.status.in_(maint_models.OPEN_STATUSES),
            )
        )).scalar_one()
        return {
            "total": sum(counts.values()),
            "draft": counts.get(Status.DRAFT, 0),
            "submitted": counts.get(Status.SUBMITTED, 0),
            "approved": counts.get(Status.APPROVED, 0),
            "in_progress": counts.get(Status.IN_PROGRESS, 0),
            "completed": counts.get(Status.COMPLETED, 0),
            "rejected": counts.get(Status.REJECTED, 0),
            "overdue": overdue,
        }

    async def get_calendar(self, db: AsyncSession, *, yacht_id: int, window_days: Optional[int] = 30) -> List[Dict[str, Any]]:
        """오늘부터 window_days(1..90) 이내 마감인 진행 중 작업입니다."""
        safe_window = min(max(int(window_days or 30), 1), 90)
        now = utcnow()
        statement = (
            select(self.model)
            .where(
                self.model.yacht_id == yacht_id,
                self.model.due_date >= now,
                self.model.due_date <= now + timedelta(days=safe_window),
                self.model.status.in_(maint_models.OPEN_STATUSES),
            )
            .order_by(self.model.due_date.asc())
        )
        tasks = (await db.execute(statement)).scalars().all()
        return [
            {
                "id": task.id,
                "when": task.due_date,
                "module": "maintenance",
                "type": task.status,
                "priority": task.priority,
                "title": task.title,
                "assigned_to_user_id": task.assigned_to_user_id,
            }
            for task in tasks
        ]

    # --- 생성 / 수정 ---
    async def create_task(
        self, db: AsyncSession, *, obj_in: maint_schemas.MaintenanceTaskCreate, actor_id: int
    ) -> maint_models.MaintenanceTask:
        task = self.model(
            yacht_id=obj_in.yacht_id,
            title=obj_in.title.strip(),
            description=obj_in.description.strip() if obj_in.description else None,
            engine_id=obj_in.engine_id,
            system_tag=obj_in.system_tag.strip() if obj_in.system_tag else None,
            priority=obj_in.priority or maint_models.MaintenancePriority.MEDIUM,
            due_date=obj_in.due_date,
            assigned_to_user_id=obj_in.assigned_to_user_id,
            created_by=actor_id,
        )
        db.add(task)
        await db.flush()
        await self._audit(db, actor_id=actor_id, action="create_task", task=task, before=None)
        await self._sync_due_alert(db, task)

        if task.assigned_to_user_id and task.assigned_to_user_id != actor_id:
            await self._notify(
                db, task,
                user_ids=[task.assigned_to_user_id],
                event_type="maintenance.task_assigned",
                suffix="assigned",
                payload={**self._base_payload(task), "due_date": as_utc(task.due_date).isoformat()},
            )
        await db.commit()
        return await self.get_with_evidences(db, task.id)

    async def update_task(
        self,
        db: AsyncSession,
        *,
        task: maint_models.MaintenanceTask,
        obj_in: maint_schemas.MaintenanceTaskUpdate,
        actor_id: int,
    ) -> maint_models.MaintenanceTask:
        if task.status in maint_models.FINAL_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task cannot be edited in final state")

        data = obj_in.model_dump(exclude_unset=True)
        patch: Dict[str, Any] = {}
        if data.get("title") is not None:
            patch["title"] = data["title"].strip()
        if "description" in data:
            patch["description"] = (data["description"] or "").strip() or None
        if "system_tag" in data:
            patch["system_tag"] = (data["system_tag"] or "").strip() or None
        if "engine_id" in data:
            patch["engine_id"] = data["engine_id"]
        if "assigned_to_user_id" in data:
            patch["assigned_to_user_id"] = data["assigned_to_user_id"]
        if data.get("priority") is not None:
            patch["priority"] = data["priority"]
        if data.get("due_date") is not None:
            patch["due_date"] = data["due_date"]
        if not patch:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No maintenance fields to update")

        before = shared_crud.snapshot(task)
        previous_assignee = task.assigned_to_user_id
        for key, value in patch.items():
            setattr(task, key, value)
        db.add(task)
        await db.flush()
        await self._audit(db, actor_id=actor_id, action="update_task", task=task, before=before)
        await self._sync_due_alert(db, task)

        if task.assigned_to_user_id and task.assigned_to_user_id != previous_assignee:
            await self._notify(
                db, task,
                user_ids=[task.assigned_to_user_id],
                event_type="maintenance.task_reassigned",
                suffix="reassigned",
                payload={**self._base_payload(task), "due_date": as_utc(task.due_date).isoformat()},
            )
        await db.commit()
        return await self.get_with_evidences(db, task.id)

    # --- 워크플로 ---
    async def submit_task(
        self, db: AsyncSession, *, task: maint_models.MaintenanceTask, actor_id: int
    ) -> maint_models.MaintenanceTask:
        if task.status not in (Status.DRAFT, Status.REJECTED):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only Draft/Rejected tasks can be submitted")

        before = shared_crud.snapshot(task)
        task.status = Status.SUBMITTED
        task.submitted_at = utcnow()
        task.rejection_reason = None
        db.add(task)
        await db.flush()
        await self._audit(db, actor_id=actor_id, action="submit_task", task=task, before=before)
        await self._sync_due_alert(db, task)

        reviewers = await resolve_users_by_roles(db, REVIEWER_ROLES, task.yacht_id)
        others = [user_id for user_id in reviewers if user_id != actor_id]
        await shared_crud.alert.upsert(
            db,
            yacht_id=task.yacht_id,
            module="maintenance",
            alert_type="pending_approval",
            severity="warn",
            due_at=task.due_date,
            dedupe_key=f"maintenance-task-{task.id}-approval",
            entity_id=str(task.id),
            assigned_to=others[0] if others else task.assigned_to_user_id,
        )
        await self._notify(
            db, task,
            user_ids=others,
            event_type="maintenance.task_submitted",
            suffix="submitted",
            payload=self._base_payload(task),
        )
        await db.commit()
        return await self.get_with_evidences(db, task.id)

    async def approve_task(
        self, db: AsyncSession, *, task: maint_models.MaintenanceTask, actor_id: int
    ) -> maint_models.MaintenanceTask:
        if task.status != Status.SUBMITTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only Submitted tasks can be approved")

        before = shared_crud.snapshot(task)
        task.status = Status.APPROVED
        task.reviewed_at = utcnow()
        task.reviewed_by = actor_id
        task.rejection_reason = None
        db.add(task)
        await db.flush()
        await self._audit(db, actor_id=actor_id, action="approve_task", task=task, before=before)
        await shared_crud.alert.resolve(db, dedupe_key=f"maintenance-task-{task.id}-approval")
        await self._sync_due_alert(db, task)
        await self._notify(
            db, task,
            user_ids=[task.created_by, task.assigned_to_user_id],
            event_type="maintenance.task_approved",
            suffix="approved",
            payload=self._base_payload(task),
        )
        await db.commit()
        return await self.get_with_evidences(db, task.id)

    async def reject_task(
        self, db: AsyncSession, *, task: maint_models.MaintenanceTask, reason: str, actor_id: int
    ) -> maint_models.MaintenanceTask:
        if task.status != Status.SUBMITTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only Submitted tasks can be rejected")

        before = shared_crud.snapshot(task)
        task.status = Status.REJECTED
        task.reviewed_at = utcnow()
        task.reviewed_by = actor_id
        task.rejection_reason = reason.strip()
        db.add(task)
        await db.flush()
        await self._audit(db, actor_id=actor_id, action="reject_task", task=task, before=before)
        await shared_crud.alert.resolve(db, dedupe_key=f"maintenance-task-{task.id}-approval")
        await self._sync_due_alert(db, task)
        await self._notify(
            db, task,
            user_ids=[task.created_by, task.assigned_to_user_id],
            event_type="maintenance.task_rejected",
            suffix="rejected",
            payload={**self._base_payload(task), "reason": task.rejection_reason or ""},
        )
        await db.commit()
        return await self.get_with_evidences(db, task.id)

    async def complete_task(
        self,
        db: AsyncSession,
        *,
        task: maint_models.MaintenanceTask,
        obj_in: maint_schemas.MaintenanceTaskComplete,
        actor_id: int,
    ) -> maint_models.MaintenanceTask:
        if task.status not in (Status.APPROVED, Status.IN_PROGRESS):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only Approved/InProgress tasks can be completed")

        before = shared_crud.snapshot(task)
        task.status = Status.COMPLETED
        task.completed_at = obj_in.completed_at or utcnow()
        task.work_hours = obj_in.work_hours
        task.notes = obj_in.notes.strip() if obj_in.notes else None
        db.add(task)
        await db.flush()
        await self._audit(db, actor_id=actor_id, action="complete_task", task=task, before=before)
        await shared_crud.alert.resolve(db, dedupe_key=f"maintenance-task-{task.id}-approval")
        await shared_crud.alert.resolve(db, dedupe_key=f"maintenance-task-{task.id}-due")
        await self._notify(
            db, task,
            user_ids=[task.created_by, task.assigned_to_user_id],
            event_type="maintenance.task_completed",
            suffix="completed",
            payload=self._base_payload(task),
        )
        await db.commit()
        return await self.get_with_evidences(db, task.id)

    async def add_evidence(
        self,
        db: AsyncSession,
        *,
        task: maint_models.MaintenanceTask,
        obj_in: maint_schemas.MaintenanceEvidenceCreate,
        actor_id: int,
    ) -> maint_models.MaintenanceEvidence:
        evidence = maint_models.MaintenanceEvidence(
            task_id=task.id,
            file_url=obj_in.file_url.strip(),
            comment=obj_in.comment.strip() if obj_in.comment else None,
            uploaded_by=actor_id,
        )
        db.add(evidence)
        await db.flush()
        await shared_crud.audit.record(
            db, module="maintenance", entity_type="MaintenanceTask", entity_id=task.id,
            action="add_evidence", actor_id=actor_id,
            before=task, after={"evidence_id": evidence.id},
        )
        await self._notify(
            db, task,
            user_ids=[uid for uid in (task.created_by, task.assigned_to_user_id) if uid != actor_id],
            event_type="maintenance.evidence_added",
            suffix=f"evidence-{evidence.id}",
            payload={"task_id": task.id, "evidence_id": evidence.id, "title": task.title},
        )
        await db.commit()
        await db.refresh(evidence)
        return evidence


task = CRUDMaintenanceTask()
