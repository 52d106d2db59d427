# yachtpms/domains/logbook/schemas.py

"""
'logbook' 도메인 (항해일지)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import date, datetime

from sqlmodel import SQLModel, Field

from . import models as logbook_models


class EngineReadingInput(SQLModel):
    engine_id: int
    hours: float = Field(..., ge=0)


class ObservationInput(SQLModel):
    category: str = Field(..., max_length=50)
    text: str = Field(..., max_length=500)


class LogBookEntryCreate(SQLModel):
    yacht_id: int
    entry_date: date
    watch_period: str = Field(..., min_length=1, max_length=50)
    engine_readings: List[EngineReadingInput] = Field(..., min_length=1)
    observations: List[ObservationInput] = Field(default_factory=list)


class LogBookEntryUpdate(SQLModel):
    watch_period: Optional[str] = Field(None, min_length=1, max_length=50)
    engine_readings: Optional[List[EngineReadingInput]] = None
    observations: Optional[List[ObservationInput]] = None


class EngineReadingRead(SQLModel):
    id: int
    engine_id: int
    hours: float


class ObservationRead(SQLModel):
    id: int
    category: str
    text: str


class LogBookEntryRead(SQLModel):
    id: int
    yacht_id: int
    entry_date: datetime
    watch_period: str
    status: logbook_models.LogBookStatus
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    engine_readings: List[EngineReadingRead] = []
    observations: List[ObservationRead] = []
