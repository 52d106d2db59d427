# yachtpms/domains/docs/crud.py

"""
'docs' 도메인의 CRUD 작업을 담당하는 모듈입니다.

문서 워크플로:
    draft --submit--> submitted --approve--> approved (locked)
                                --reject---> rejected
    (any) --archive--> archived (locked)
승인/보관된 문서와 잠긴 문서는 Admin/SystemAdmin만 수정할 수 있습니다.
새 버전을 올리면 워크플로가 draft로 돌아가고 잠금이 풀립니다.
"""

import math
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import selectinload
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import rbac
from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import as_utc, utcnow
from yachtpms.domains.ntf.services import notify_users, resolve_users_by_roles
from yachtpms.domains.shared import crud as shared_crud
from . import models as docs_models
from . import schemas as docs_schemas


ADMIN_ROLES = ("Admin", "SystemAdmin")
APPROVAL_ROLES = ("Captain", "Admin", "SystemAdmin")
AUDIT_TRAIL_LIMIT = 120

DocStatus = docs_models.DocumentStatus
Workflow = docs_models.DocumentWorkflowStatus


# =============================================================================
# 순수 헬퍼
# =============================================================================
def normalize_doc_type(doc_type: Optional[str]) -> str:
    """'port clearance' -> 'PORT_CLEARANCE'"""
    return "_".join((doc_type or "OTHER").strip().upper().split()) or "OTHER"


def sanitize_tags(tags: Optional[List[str]]) -> List[str]:
    result: List[str] = []
    for tag in tags or []:
        value = str(tag or "").strip()[:40]
        if value and value not in result:
            result.append(value)
    return result


def compute_status(expiry_date: Optional[datetime], now: Optional[datetime] = None) -> DocStatus:
    if expiry_date is None:
        return DocStatus.ACTIVE
    current = now or utcnow()
    expiry = as_utc(expiry_date)
    if expiry < current:
        return DocStatus.EXPIRED
    if math.floor((expiry - current).total_seconds() / 86400) <= 30:
        return DocStatus.EXPIRING_SOON
    return DocStatus.ACTIVE


def assert_expiry_policy(doc_type: str, expiry_date: Optional[datetime]) -> None:
    if doc_type in docs_models.EXPIRING_DOC_TYPES and expiry_date is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"expiry_date is required for document type {doc_type}",
        )


def pick_reason(reason: Optional[str], fallback: str) -> str:
    value = (reason or "").strip()
    return value if len(value) >= 3 else fallback


def is_edit_blocked(document: docs_models.Document) -> bool:
    return document.workflow_status in (Workflow.APPROVED, Workflow.ARCHIVED) or document.locked_at is not None


def is_archived(document: docs_models.Document) -> bool:
    return document.workflow_status == Workflow.ARCHIVED or document.status == DocStatus.ARCHIVED


def to_read(document: docs_models.Document) -> Dict[str, Any]:
    """버전 목록(최신순)의 첫 항목을 current_version으로 붙입니다."""
    versions = [version.model_dump() for version in document.versions]
    return {
        **document.model_dump(),
        "versions": versions,
        "current_version": versions[0] if versions else None,
    }


class CRUDDocument(CRUDBase[docs_models.Document, docs_schemas.DocumentCreate, docs_schemas.DocumentUpdate]):
    def __init__(self):
        super().__init__(model=docs_models.Document)

    # --- 내부 헬퍼 ---
    async def get_with_versions(self, db: AsyncSession, document_id: int) -> Optional[docs_models.Document]:
        statement = (
            select(self.model)
            .options(selectinload(self.model.versions))
            .where(self.model.id == document_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(statement)).scalars().first()

    async def get_scoped(
        self, db: AsyncSession, *, document_id: int, actor: rbac.ActorContext
    ) -> docs_models.Document:
        document = await self.get_with_versions(db, document_id)
        if not document:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
        rbac.assert_yacht_scope(document.yacht_id, actor)
        return document

    def _assert_can_edit(self, document: docs_models.Document, actor: rbac.ActorContext) -> None:
        if not is_edit_blocked(document):
            return
        if actor.has_role(ADMIN_ROLES, document.yacht_id):
            return
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Document is locked and cannot be edited")

    async def _recipients(
        self,
        db: AsyncSession,
        document: docs_models.Document,
        *,
        include_approvers: bool = False,
        extra: Optional[List[int]] = None,
    ) -> List[Optional[int]]:
        approvers = await resolve_users_by_roles(db, APPROVAL_ROLES, document.yacht_id) if include_approvers else []
        return [*(extra or []), document.assigned_to_user_id, document.created_by, *approvers]

    async def _audit(
        self, db: AsyncSession, *, actor_id: int, action: str, document_id: int, before: Any, after: Any
    ) -> None:
        await shared_crud.audit.record(
            db, module="documents", entity_type="Document", entity_id=document_id,
            action=action, actor_id=actor_id, before=before, after=after,
        )

    async def _notify(
        self,
        db: AsyncSession,
        document: docs_models.Document,
        *,
        user_ids: List[Optional[int]],
        event_type: str,
        dedupe_base: str,
        extra_payload: Optional[Dict[str, Any]] = None,
        severity: str = "info",
    ) -> None:
        await notify_users(
            db,
            user_ids=user_ids,
            yacht_id=document.yacht_id,
            type=event_type,
            dedupe_base=dedupe_base,
            payload={"document_id": document.id, "title": document.title, **(extra_payload or {})},
            module="documents",
            entity_type="Document",
            entity_id=document.id,
            severity=severity,
        )

    async def _next_version_no(self, db: AsyncSession, document_id: int) -> int:
        current_max = (await db.execute(
            select(func.max(docs_models.DocumentVersion.version_no))
            .where(docs_models.DocumentVersion.document_id == document_id)
        )).scalar_one_or_none()
        return (current_max or 0) + 1

    async def _add_version(
        self, db: AsyncSession, *, document_id: int, obj_in: docs_schemas.DocumentVersionCreate, actor_id: int
    ) -> docs_models.DocumentVersion:
        version = docs_models.DocumentVersion(
            document_id=document_id,
            version_no=await self._next_version_no(db, document_id),
            file_url=obj_in.file_url.strip(),
            file_name=obj_in.file_name.strip(),
            mime_type=obj_in.mime_type.strip(),
            size_bytes=obj_in.size_bytes,
            checksum_sha256=obj_in.checksum_sha256.strip() if obj_in.checksum_sha256 else None,
            note=obj_in.note.strip() if obj_in.note else None,
            uploaded_by=actor_id,
        )
        db.add(version)
        await db.flush()
        return version

    async def sync_expiry_alert(self, db: AsyncSession, document: docs_models.Document) -> None:
        """
        만료 30일 이내의 활성 문서에 대해 `document-{id}-expiry` 경보를 유지합니다.
        7일 이내(또는 만료)는 critical, 그 외는 warn입니다.
        보관/갱신 완료/만료일 없음/30일 초과는 경보를 해결합니다.
        """
        dedupe_key = f"document-{document.id}-expiry"
        if (
            document.status in (DocStatus.ARCHIVED, DocStatus.RENEWED)
            or document.workflow_status == Workflow.ARCHIVED
            or document.expiry_date is None
        ):
            await shared_crud.alert.resolve(db, dedupe_key=dedupe_key)
            return

        days_left = math.ceil((as_utc(document.expiry_date) - utcnow()).total_seconds() / 86400)
        if days_left > 30:
            await shared_crud.alert.resolve(db, dedupe_key=dedupe_key)
            return

        severity = "critical" if days_left <= 7 else "warn"
        await shared_crud.alert.upsert(
            db,
            yacht_id=document.yacht_id,
            module="documents",
            alert_type="DOC_EXPIRING",
            severity=severity,
            due_at=document.expiry_date,
            dedupe_key=dedupe_key,
            entity_id=str(document.id),
            assigned_to=document.assigned_to_user_id or document.created_by,
        )
        await self._notify(
            db, document,
            user_ids=[document.assigned_to_user_id, document.created_by],
            event_type="documents.expired" if days_left < 0 else "documents.expiring",
            dedupe_base=f"document-{document.id}-expiring-{max(days_left, 0)}",
            extra_payload={"days_left": days_left},
            severity=severity,
        )

    async def to_detail(self, db: AsyncSession, document_id: int) -> Dict[str, Any]:
        document = await self.get_with_versions(db, document_id)
        trail = await shared_crud.audit.trail(db, entity_type="Document", entity_id=document_id, limit=AUDIT_TRAIL_LIMIT)
        return {**to_read(document), "audit_trail": trail}

    # --- 조회 ---
    async def list_documents(
        self,
        db: AsyncSession,
        *,
        yacht_id: int,
        status_filter: Optional[DocStatus] = None,
        workflow_status: Optional[Workflow] = None,
        doc_type: Optional[str] = None,
        search: Optional[str] = None,
        expiring_in_days: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        page = page if page and page > 0 else 1
        page_size = page_size if page_size and page_size > 0 else 20

        conditions = [self.model.yacht_id == yacht_id]
        if status_filter:
            conditions.append(self.model.status == status_filter)
        if workflow_status:
            conditions.append(self.model.workflow_status == workflow_status)
        if doc_type and doc_type.strip():
            conditions.append(self.model.doc_type.ilike(f"%{doc_type.strip()}%"))
        term = (search or "").strip()
        if term:
            pattern = f"%{term}%"
            conditions.append(or_(
                self.model.title.ilike(pattern),
                self.model.doc_type.ilike(pattern),
                self.model.doc_sub_type.ilike(pattern),
                self.model.identifier.ilike(pattern),
                self.model.notes.ilike(pattern),
            ))
        if expiring_in_days:
            now = utcnow()
            conditions.extend([
                self.model.expiry_date >= now,
                self.model.expiry_date <= now + timedelta(days=expiring_in_days),
                self.model.status != DocStatus.ARCHIVED,
                self.model.workflow_status != Workflow.ARCHIVED,
            ])

        total = (await db.execute(select(func.count(self.model.id)).where(*conditions))).scalar_one()
        statement = (
            select(self.model)
            .options(selectinload(self.model.versions))
            .where(*conditions)
            .order_by(
                self.model.expiry_date.asc().nulls_last(),
                self.model.updated_at.desc(),
                self.model.created_at.desc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        documents = (await db.execute(statement)).scalars().all()
        return {
            "items": [to_read(document) for document in documents],
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": max(1, math.ceil(total / page_size)),
        }

    async def get_summary(self, db: AsyncSession, *, yacht_id: int) -> Dict[str, int]:
        by_status = dict((await db.execute(
            select(self.model.status, func.count(self.model.id))
            .where(self.model.yacht_id == yacht_id)
            .group_by(self.model.status)
        )).all())
        by_workflow = dict((await db.execute(
            select(self.model.workflow_status, func.count(self.model.id))
            .where(self.model.yacht_id == yacht_id)
            .group_by(self.model.workflow_status)
        )).all())

        now = utcnow()

        async def expiring_within(days: int) -> int:
            return (await db.execute(
                select(func.count(self.model.id)).where(
                    self.model.yacht_id == yacht_id,
                    self.model.expiry_date >= now,
                    self.model.expiry_date <= now + timedelta(days=days),
                    self.model.status != DocStatus.ARCHIVED,
                    self.model.workflow_status != Workflow.ARCHIVED,
                )
            )).scalar_one()

        return {
            "total": sum(by_status.values()),
            "active": by_status.get(DocStatus.ACTIVE, 0),
            "expiring_soon": by_status.get(DocStatus.EXPIRING_SOON, 0),
            "expired": by_status.get(DocStatus.EXPIRED, 0),
            "renewal_in_progress": by_status.get(DocStatus.RENEWAL_IN_PROGRESS, 0),
            "renewed": by_status.get(DocStatus.RENEWED, 0),
            "archived": by_status.get(DocStatus.ARCHIVED, 0),
            "expiring_in_30": await expiring_within(30),
            "expiring_in_7": await expiring_within(7),
            "pending_approval": by_workflow.get(Workflow.SUBMITTED, 0),
            "drafts": by_workflow.get(Workflow.DRAFT, 0),
        }

    async def list_expiring(self, db: AsyncSession, *, yacht_id: int, days: Optional[int] = 30) -> List[Dict[str, Any]]:
        window_days = min(max(int(days or 30), 1), 365)
        now = utcnow()
        statement = (
            select(self.model)
            .options(selectinload(self.model.versions))
            .where(
                self.model.yacht_id == yacht_id,
                self.model.expiry_date >= now,
                self.model.expiry_date <= now + timedelta(days=window_days),
                self.model.status != DocStatus.ARCHIVED,
                self.model.workflow_status != Workflow.ARCHIVED,
            )
            .order_by(self.model.expiry_date.asc())
        )
        return [to_read(document) for document in (await db.execute(statement)).scalars().all()]

    # --- 생성 / 수정 ---
    async def create_document(
        self, db: AsyncSession, *, obj_in: docs_schemas.DocumentCreate, actor_id: int
    ) -> Dict[str, Any]:
        title = (obj_in.title or "").strip()
        if len(title) < 3:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
        doc_type = normalize_doc_type(obj_in.doc_type)
        assert_expiry_policy(doc_type, obj_in.expiry_date)

        document = self.model(
            yacht_id=obj_in.yacht_id,
            title=title,
            doc_type=doc_type,
            doc_sub_type=(obj_in.doc_sub_type or "").strip() or None,
            confidentiality=obj_in.confidentiality or docs_models.DocumentConfidentiality.CREW_ONLY,
            tags=sanitize_tags(obj_in.tags),
            identifier=(obj_in.identifier or "").strip() or None,
            issued_at=obj_in.issued_at,
            expiry_date=obj_in.expiry_date,
            notes=(obj_in.notes or "").strip() or None,
            status=compute_status(obj_in.expiry_date),
            workflow_status=Workflow.DRAFT,
            workflow_reason="Document created",
            assigned_to_user_id=obj_in.assigned_to_user_id,
            created_by=actor_id,
        )
        db.add(document)
        await db.flush()
        if obj_in.initial_version:
            await self._add_version(db, document_id=document.id, obj_in=obj_in.initial_version, actor_id=actor_id)

        await self._audit(db, actor_id=actor_id, action="create_document", document_id=document.id, before=None, after=document)
        await self.sync_expiry_alert(db, document)
        await self._notify(
            db, document,
            user_ids=await self._recipients(db, document, include_approvers=True),
            event_type="documents.created",
            dedupe_base=f"document-{document.id}-created",
            extra_payload={"doc_type": document.doc_type, "status": document.workflow_status.value},
        )
        await db.commit()
        return await self.to_detail(db, document.id)

    async def update_document(
        self,
        db: AsyncSession,
        *,
        document: docs_models.Document,
        obj_in: docs_schemas.DocumentUpdate,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        self._assert_can_edit(document, actor)
        data = obj_in.model_dump(exclude_unset=True)

        patch: Dict[str, Any] = {}
        if "title" in data and data["title"] is not None:
            title = data["title"].strip()
            if len(title) < 3:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title must contain at least 3 chars")
            patch["title"] = title
        doc_type = document.doc_type
        if data.get("doc_type") is not None:
            doc_type = normalize_doc_type(data["doc_type"])
            patch["doc_type"] = doc_type
        for key in ("doc_sub_type", "identifier", "notes"):
            if key in data:
                patch[key] = (data[key] or "").strip() or None
        if "tags" in data:
            patch["tags"] = sanitize_tags(data["tags"])
        if data.get("confidentiality") is not None:
            patch["confidentiality"] = data["confidentiality"]
        if "assigned_to_user_id" in data:
            patch["assigned_to_user_id"] = data["assigned_to_user_id"]
        if "issued_at" in data:
            patch["issued_at"] = data["issued_at"]
        expiry_date = document.expiry_date
        if "expiry_date" in data:
            expiry_date = data["expiry_date"]
            patch["expiry_date"] = expiry_date
        assert_expiry_policy(doc_type, expiry_date)

        if data.get("status") is not None:
            patch["status"] = data["status"]
        elif "expiry_date" in data or "doc_type" in patch:
            patch["status"] = compute_status(expiry_date)

        if not patch:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No document fields to update")

        before = shared_crud.snapshot(document)
        for key, value in patch.items():
            setattr(document, key, value)
        db.add(document)
        await db.flush()
        await self._audit(db, actor_id=actor.user_id, action="update_document", document_id=document.id, before=before, after=document)
        await self.sync_expiry_alert(db, document)
        await self._notify(
            db, document,
            user_ids=await self._recipients(db, document),
            event_type="documents.updated",
            dedupe_base=f"document-{document.id}-updated",
            extra_payload={"doc_type": document.doc_type, "status": document.workflow_status.value},
        )
        await db.commit()
        return await self.to_detail(db, document.id)

    async def add_version(
        self,
        db: AsyncSession,
        *,
        document: docs_models.Document,
        obj_in: docs_schemas.DocumentVersionCreate,
        actor: rbac.ActorContext,
    ) -> Dict[str, Any]:
        if is_archived(document):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Archived documents cannot receive new versions")
        self._assert_can_edit(document, actor)

        before = shared_crud.snapshot(document)
        await self._add_version(db, document_id=document.id, obj_in=obj_in, actor_id=actor.user_id)
        document.workflow_status = Workflow.DRAFT
        document.workflow_reason = (obj_in.note or "").strip() or "New version uploaded"
        document.locked_at = None
        document.approved_by_user_id = None
        document.approved_at = None
        document.status = compute_status(document.expiry_date)
        db.add(document)
        await db.flush()

        await self._audit(db, actor_id=actor.user_id, action="upload_version", document_id=document.id, before=before, after=document)
        await self.sync_expiry_alert(db, document)
        await self._notify(
            db, document,
            user_ids=await self._recipients(db, document, include_approvers=True),
            event_type="documents.version_uploaded",
            dedupe_base=f"document-{document.id}-version",
            extra_payload={"status": document.workflow_status.value},
        )
        await db.commit()
        return await self.to_detail(db, document.id)

    # --- 워크플로 ---
    async def submit_document(
        self, db: AsyncSession, *, document: docs_models.Document, reason: Optional[str], actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        if document.workflow_status == Workflow.ARCHIVED:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Archived document cannot be submitted")
        if document.workflow_status == Workflow.APPROVED and not actor.has_role(ADMIN_ROLES, document.yacht_id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Approved document cannot be re-submitted")
        if not document.versions:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Document requires at least one version before submit",
            )

        before = shared_crud.snapshot(document)
        document.workflow_status = Workflow.SUBMITTED
        document.workflow_reason = pick_reason(reason, "Submitted for approval")
        document.locked_at = None
        db.add(document)
        await db.flush()

        await self._audit(db, actor_id=actor.user_id, action="submit_document", document_id=document.id, before=before, after=document)
        await self._notify(
            db, document,
            user_ids=await self._recipients(db, document, include_approvers=True),
            event_type="documents.submitted",
            dedupe_base=f"document-{document.id}-submitted",
            extra_payload={"reason": document.workflow_reason, "status": document.workflow_status.value},
        )
        await db.commit()
        return await self.to_detail(db, document.id)

    async def approve_document(
        self, db: AsyncSession, *, document: docs_models.Document, reason: Optional[str], actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        if not actor.has_role(APPROVAL_ROLES, document.yacht_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only Captain/Admin/SystemAdmin can approve documents")
        if document.workflow_status != Workflow.SUBMITTED:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only submitted documents can be approved")

        before = shared_crud.snapshot(document)
        approved_at = utcnow()
        document.workflow_status = Workflow.APPROVED
        document.workflow_reason = pick_reason(reason, "Document approved")
        document.approved_by_user_id = actor.user_id
        document.approved_at = approved_at
        document.locked_at = approved_at
        document.status = compute_status(document.expiry_date)
        db.add(document)
        await db.flush()

        await self._audit(db, actor_id=actor.user_id, action="approve_document", document_id=document.id, before=before, after=document)
        await self.sync_expiry_alert(db, document)
        await self._notify(
            db, document,
            user_ids=await self._recipients(db, document, include_approvers=True),
            event_type="documents.approved",
            dedupe_base=f"document-{document.id}-approved",
            extra_payload={"reason": document.workflow_reason, "status": document.workflow_status.value},
        )
        await db.commit()
        return await self.to_detail(db, document.id)

    async def reject_document(
        self, db: AsyncSession, *, document: docs_models.Document, reason: Optional[str], actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        if not actor.has_role(APPROVAL_ROLES, document.yacht_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only Captain/Admin/SystemAdmin can reject documents")
        if document.workflow_status != Workflow.SUBMITTED:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only submitted documents can be rejected")

        before = shared_crud.snapshot(document)
        document.workflow_status = Workflow.REJECTED
        document.workflow_reason = pick_reason(reason, "Document rejected")
        document.locked_at = None
        document.approved_at = None
        document.approved_by_user_id = None
        db.add(document)
        await db.flush()

        await self._audit(db, actor_id=actor.user_id, action="reject_document", document_id=document.id, before=before, after=document)
        await self._notify(
            db, document,
            user_ids=await self._recipients(db, document, include_approvers=True),
            event_type="documents.rejected",
            dedupe_base=f"document-{document.id}-rejected",
            extra_payload={"reason": document.workflow_reason, "status": document.workflow_status.value},
            severity="warn",
        )
        await db.commit()
        return await self.to_detail(db, document.id)

    async def archive_document(
        self, db: AsyncSession, *, document: docs_models.Document, actor: rbac.ActorContext
    ) -> Dict[str, Any]:
        """이미 보관된 문서는 그대로 반환합니다."""
        if is_archived(document):
            return await self.to_detail(db, document.id)
        if not actor.has_role(APPROVAL_ROLES, document.yacht_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only Captain/Admin/SystemAdmin can archive documents")

        before = shared_crud.snapshot(document)
        document.workflow_status = Workflow.ARCHIVED
        document.workflow_reason = "Archived manually"
        document.status = DocStatus.ARCHIVED
        document.locked_at = utcnow()
        db.add(document)
        await db.flush()

        await self._audit(db, actor_id=actor.user_id, action="archive_document", document_id=document.id, before=before, after=document)
        await shared_crud.alert.resolve(db, dedupe_key=f"document-{document.id}-expiry")
        await self._notify(
            db, document,
            user_ids=await self._recipients(db, document, include_approvers=True),
            event_type="documents.archived",
            dedupe_base=f"document-{document.id}-archived",
            extra_payload={"status": document.workflow_status.value},
        )
        await db.commit()
        return await self.to_detail(db, document.id)

    async def delete_document(
        self, db: AsyncSession, *, document: docs_models.Document, actor: rbac.ActorContext
    ) -> Dict[str, bool]:
        if not actor.has_role(ADMIN_ROLES, document.yacht_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only Admin/SystemAdmin can delete documents")
        if document.workflow_status in (Workflow.APPROVED, Workflow.SUBMITTED):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cannot delete submitted/approved documents")

        document_id = document.id
        before = to_read(document)
        recipients = await self._recipients(db, document, include_approvers=True)
        await self._audit(db, actor_id=actor.user_id, action="delete_document", document_id=document_id, before=before, after=None)
        await shared_crud.alert.resolve(db, dedupe_key=f"document-{document_id}-expiry")
        await self._notify(
            db, document,
            user_ids=recipients,
            event_type="documents.deleted",
            dedupe_base=f"document-{document_id}-deleted",
        )
        await db.delete(document)
        await db.commit()
        return {"success": True}


document = CRUDDocument()
