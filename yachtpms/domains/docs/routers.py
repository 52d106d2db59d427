# yachtpms/domains/docs/routers.py

"""
'docs' 도메인 (요트 문서)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as docs_crud
from . import models as docs_models
from . import schemas as docs_schemas


router = APIRouter(
    tags=["Documents (문서 관리)"],
    responses={404: {"description": "Not found"}},
)

READERS = ("Chief Engineer", "Captain", "HoD", "Management/Office", "Crew Member", "Admin")
EDITORS = ("Chief Engineer", "Captain", "Management/Office", "Admin")
UPLOADERS = ("Chief Engineer", "Captain", "Management/Office", "Crew Member", "Admin")
APPROVERS = ("Captain", "Admin")


# =============================================================================
# 1. 조회
# =============================================================================
@router.get("/documents", response_model=docs_schemas.DocumentPage, summary="문서 목록 (페이지)")
async def read_documents(
    yacht_id: Optional[int] = Query(None),
    status_filter: Optional[docs_models.DocumentStatus] = Query(None, alias="status"),
    workflow_status: Optional[docs_models.DocumentWorkflowStatus] = Query(None),
    doc_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    expiring_in_days: Optional[int] = Query(None, ge=1, le=365),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await docs_crud.document.list_documents(
        db,
        yacht_id=yacht_id,
        status_filter=status_filter,
        workflow_status=workflow_status,
        doc_type=doc_type,
        search=search,
        expiring_in_days=expiring_in_days,
        page=page,
        page_size=page_size,
    )


@router.get("/documents/summary/{yacht_id}", response_model=docs_schemas.DocumentSummary, summary="문서 현황 요약")
async def read_summary(
    yacht_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    rbac.assert_yacht_scope(yacht_id, actor)
    return await docs_crud.document.get_summary(db, yacht_id=yacht_id)


@router.get("/documents/expiring/{yacht_id}", response_model=List[docs_schemas.DocumentRead], summary="만료 예정 문서")
async def read_expiring(
    yacht_id: int,
    days: Optional[int] = Query(30),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    """조회 기간은 1..365일로 제한됩니다."""
    rbac.assert_yacht_scope(yacht_id, actor)
    return await docs_crud.document.list_expiring(db, yacht_id=yacht_id, days=days)


@router.get("/documents/{document_id}", response_model=docs_schemas.DocumentDetail, summary="문서 상세 (감사 이력 포함)")
async def read_document(
    document_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*READERS)),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.to_detail(db, db_document.id)


# =============================================================================
# 2. 생성 / 수정 / 버전
# =============================================================================
@router.post(
    "/documents",
    response_model=docs_schemas.DocumentDetail,
    status_code=status.HTTP_201_CREATED,
    summary="문서 등록",
)
async def create_document(
    document_in: docs_schemas.DocumentCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EDITORS)),
):
    rbac.assert_yacht_scope(document_in.yacht_id, actor)
    return await docs_crud.document.create_document(db, obj_in=document_in, actor_id=actor.user_id)


@router.patch("/documents/{document_id}", response_model=docs_schemas.DocumentDetail, summary="문서 수정")
async def update_document(
    document_id: int,
    document_in: docs_schemas.DocumentUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EDITORS)),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.update_document(db, document=db_document, obj_in=document_in, actor=actor)


@router.post(
    "/documents/{document_id}/versions",
    response_model=docs_schemas.DocumentDetail,
    status_code=status.HTTP_201_CREATED,
    summary="문서 새 버전 업로드",
)
async def add_version(
    document_id: int,
    version_in: docs_schemas.DocumentVersionCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*UPLOADERS)),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.add_version(db, document=db_document, obj_in=version_in, actor=actor)


# =============================================================================
# 3. 워크플로
# =============================================================================
@router.post("/documents/{document_id}/submit", response_model=docs_schemas.DocumentDetail, summary="문서 승인 요청")
async def submit_document(
    document_id: int,
    reason_in: Optional[docs_schemas.DocumentWorkflowReason] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*UPLOADERS)),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.submit_document(
        db, document=db_document, reason=reason_in.reason if reason_in else None, actor=actor
    )


@router.post("/documents/{document_id}/approve", response_model=docs_schemas.DocumentDetail, summary="문서 승인")
async def approve_document(
    document_id: int,
    reason_in: Optional[docs_schemas.DocumentWorkflowReason] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*APPROVERS)),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.approve_document(
        db, document=db_document, reason=reason_in.reason if reason_in else None, actor=actor
    )


@router.post("/documents/{document_id}/reject", response_model=docs_schemas.DocumentDetail, summary="문서 반려")
async def reject_document(
    document_id: int,
    reason_in: Optional[docs_schemas.DocumentWorkflowReason] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*APPROVERS)),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.reject_document(
        db, document=db_document, reason=reason_in.reason if reason_in else None, actor=actor
    )


@router.post("/documents/{document_id}/archive", response_model=docs_schemas.DocumentDetail, summary="문서 보관")
async def archive_document(
    document_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EDITORS)),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.archive_document(db, document=db_document, actor=actor)


@router.delete("/documents/{document_id}", response_model=docs_schemas.SuccessResponse, summary="문서 삭제")
async def delete_document(
    document_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles("Admin")),
):
    db_document = await docs_crud.document.get_scoped(db, document_id=document_id, actor=actor)
    return await docs_crud.document.delete_document(db, document=db_document, actor=actor)
