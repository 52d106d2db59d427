# yachtpms/domains/timeline/schemas.py

"""
'timeline' 도메인의 응답 스키마입니다.
"""

from typing import List, Optional
from datetime import datetime

from sqlmodel import SQLModel


class AgendaItem(SQLModel):
    id: str
    yacht_id: int
    yacht_name: Optional[str] = None
    when: Optional[datetime] = None
    module: str
    type: str
    severity: str
    dedupe_key: str
    source: str
    title: str
    description: str
    status: Optional[str] = None
    entity_id: Optional[str] = None
    link: str
    occurred_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AgendaRead(SQLModel):
    start: datetime
    end: datetime
    items: List[AgendaItem]
