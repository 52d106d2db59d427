# yachtpms/domains/docs/models.py

"""
'docs' 도메인의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- documents: 요트 증서/보험/허가 문서와 승인 워크플로
- document_versions: 문서 파일 버전 이력 (version_no는 문서 단위로 1부터 증가)
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlmodel import Field, Relationship, SQLModel

from yachtpms.core.database_base import (
    created_at_column, datetime_column, json_column, updated_at_column, utcnow,
)


class DocumentStatus(str, Enum):
    ACTIVE = "Active"
    EXPIRING_SOON = "Expiring Soon"
    EXPIRED = "Expired"
    RENEWAL_IN_PROGRESS = "Renewal In Progress"
    RENEWED = "Renewed"
    ARCHIVED = "Archived"


class DocumentWorkflowStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class DocumentConfidentiality(str, Enum):
    PUBLIC = "public"
    CREW_ONLY = "crew_only"
    OFFICERS_ONLY = "officers_only"
    MANAGEMENT_ONLY = "management_only"


# 만료일이 반드시 있어야 하는 문서 종류 (정규화된 이름)
EXPIRING_DOC_TYPES = frozenset({"CERTIFICATE", "INSURANCE", "PORT_CLEARANCE"})


# =============================================================================
# 1. documents 테이블 모델
# =============================================================================
class Document(SQLModel, table=True):
    __tablename__ = "documents"

    id: Optional[int] = Field(default=None, primary_key=True)
    yacht_id: int = Field(
        sa_column=Column(Integer, ForeignKey("yachts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    title: str = Field(max_length=180)
    doc_type: str = Field(max_length=80, description="정규화된 문서 종류 (예: CERTIFICATE)")
    doc_sub_type: Optional[str] = Field(default=None, max_length=80)
    confidentiality: DocumentConfidentiality = Field(default=DocumentConfidentiality.CREW_ONLY)
    tags: List[str] = Field(default_factory=list, sa_column=json_column(nullable=False))
    identifier: Optional[str] = Field(default=None, max_length=80, description="증서 번호 등 식별자")
    issued_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    expiry_date: Optional[datetime] = Field(default=None, sa_column=datetime_column(index=True))
    notes: Optional[str] = Field(default=None, sa_column=Column(Text))
    status: DocumentStatus = Field(default=DocumentStatus.ACTIVE)
    workflow_status: DocumentWorkflowStatus = Field(default=DocumentWorkflowStatus.DRAFT)
    workflow_reason: Optional[str] = Field(default=None, max_length=300)
    assigned_to_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    approved_by_user_id: Optional[int] = Field(default=None, foreign_key="users.id")
    approved_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    locked_at: Optional[datetime] = Field(default=None, sa_column=datetime_column())
    created_by: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())
    updated_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=updated_at_column())

    versions: List["DocumentVersion"] = Relationship(
        back_populates="document",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "DocumentVersion.version_no.desc()",
        },
    )


# =============================================================================
# 2. document_versions 테이블 모델
# =============================================================================
class DocumentVersion(SQLModel, table=True):
    __tablename__ = "document_versions"

    id: Optional[int] = Field(default=None, primary_key=True)
    document_id: int = Field(
        sa_column=Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    version_no: int = Field(ge=1)
    file_url: str = Field(max_length=2000)
    file_name: str = Field(max_length=180)
    mime_type: str = Field(max_length=120)
    size_bytes: Optional[int] = Field(default=None, ge=1)
    checksum_sha256: Optional[str] = Field(default=None, max_length=64)
    note: Optional[str] = Field(default=None, max_length=300)
    uploaded_by: Optional[int] = Field(default=None, foreign_key="users.id")
    uploaded_at: Optional[datetime] = Field(default_factory=utcnow, sa_column=created_at_column())

    document: Optional[Document] = Relationship(back_populates="versions")
