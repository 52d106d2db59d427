# yachtpms/domains/shared/schemas.py

"""
'shared' 도메인의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Any, Dict, Optional
from datetime import datetime

from sqlmodel import SQLModel


class AlertRead(SQLModel):
    id: int
    yacht_id: int
    module: str
    alert_type: str
    severity: str
    due_at: Optional[datetime] = None
    dedupe_key: str
    entity_id: Optional[str] = None
    assigned_to: Optional[int] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime


class AuditEventRead(SQLModel):
    id: int
    module: str
    entity_type: str
    entity_id: str
    action: str
    actor_id: Optional[int] = None
    before_json: Optional[Dict[str, Any]] = None
    after_json: Optional[Dict[str, Any]] = None
    source: str
    created_at: datetime


class AuditTrailItem(SQLModel):
    """문서/발주서 상세에 포함되는 감사 이력 항목"""
    id: int
    action: str
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    timestamp: datetime
    before_json: Optional[Dict[str, Any]] = None
    after_json: Optional[Dict[str, Any]] = None
    source: str

