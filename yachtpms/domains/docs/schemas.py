# yachtpms/domains/docs/schemas.py

"""
'docs' 도메인 (요트 문서)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import datetime

from sqlmodel import SQLModel, Field

from yachtpms.domains.shared import schemas as shared_schemas
from . import models as docs_models


# =============================================================================
# 1. 문서 버전 (DocumentVersion) 스키마
# =============================================================================
class DocumentVersionCreate(SQLModel):
    file_url: str = Field(..., min_length=1, max_length=2000)
    file_name: str = Field(..., min_length=1, max_length=180)
    mime_type: str = Field(..., min_length=1, max_length=120)
    size_bytes: Optional[int] = Field(None, ge=1)
    checksum_sha256: Optional[str] = Field(None, max_length=64)
    note: Optional[str] = Field(None, max_length=300)


class DocumentVersionRead(SQLModel):
    id: int
    document_id: int
    version_no: int
    file_url: str
    file_name: str
    mime_type: str
    size_bytes: Optional[int] = None
    checksum_sha256: Optional[str] = None
    note: Optional[str] = None
    uploaded_by: Optional[int] = None
    uploaded_at: datetime


# =============================================================================
# 2. 문서 (Document) 스키마
# =============================================================================
class DocumentCreate(SQLModel):
    yacht_id: int
    title: str = Field(..., max_length=180)
    doc_type: str = Field("OTHER", max_length=80)
    doc_sub_type: Optional[str] = Field(None, max_length=80)
    confidentiality: Optional[docs_models.DocumentConfidentiality] = None
    tags: List[str] = Field(default_factory=list)
    identifier: Optional[str] = Field(None, max_length=80)
    issued_at: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None
    assigned_to_user_id: Optional[int] = None
    initial_version: Optional[DocumentVersionCreate] = None


class DocumentUpdate(SQLModel):
    """전달된 항목만 갱신합니다. status를 생략하면 만료일로 다시 계산합니다."""
    title: Optional[str] = Field(None, max_length=180)
    doc_type: Optional[str] = Field(None, max_length=80)
    doc_sub_type: Optional[str] = Field(None, max_length=80)
    confidentiality: Optional[docs_models.DocumentConfidentiality] = None
    tags: Optional[List[str]] = None
    identifier: Optional[str] = Field(None, max_length=80)
    issued_at: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None
    assigned_to_user_id: Optional[int] = None
    status: Optional[docs_models.DocumentStatus] = None


class DocumentWorkflowReason(SQLModel):
    reason: Optional[str] = Field(None, max_length=300)


class DocumentRead(SQLModel):
    id: int
    yacht_id: int
    title: str
    doc_type: str
    doc_sub_type: Optional[str] = None
    confidentiality: docs_models.DocumentConfidentiality
    tags: List[str] = []
    identifier: Optional[str] = None
    issued_at: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: docs_models.DocumentStatus
    workflow_status: docs_models.DocumentWorkflowStatus
    workflow_reason: Optional[str] = None
    assigned_to_user_id: Optional[int] = None
    approved_by_user_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    current_version: Optional[DocumentVersionRead] = None
    versions: List[DocumentVersionRead] = []


class DocumentDetail(DocumentRead):
    audit_trail: List[shared_schemas.AuditTrailItem] = []


class DocumentPage(SQLModel):
    items: List[DocumentRead]
    page: int
    page_size: int
    total: int
    total_pages: int


# =============================================================================
# 3. 집계 스키마
# =============================================================================
class DocumentSummary(SQLModel):
    total: int
    active: int
    expiring_soon: int
    expired: int
    renewal_in_progress: int
    renewed: int
    archived: int
    expiring_in_30: int
    expiring_in_7: int
    pending_approval: int
    drafts: int


class SuccessResponse(SQLModel):
    success: bool = True
