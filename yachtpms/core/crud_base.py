# yachtpms/core/crud_base.py

"""
도메인 CRUD 클래스들이 상속하는 공통 기본 클래스 모듈입니다.

생성/수정은 감사 이력, 알림, 상태 전이 규칙이 도메인마다 달라
각 도메인 crud.py에서 직접 구현합니다. 여기에는 단건 조회와 삭제만 둡니다.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, db: AsyncSession, id: Any) -> Optional[ModelType]:
        """기본 키로 단일 레코드를 조회합니다."""
        return await db.get(self.model, id)

    async def get_by_attribute(self, db: AsyncSession, *, attribute: str, value: Any) -> Optional[ModelType]:
        """단일 컬럼 값으로 첫 번째 레코드를 조회합니다. (email, dedupe_key 등 유일 컬럼용)"""
        statement = select(self.model).where(getattr(self.model, attribute) == value)
        result = await db.execute(statement)
        return result.scalars().first()

    async def delete(self, db: AsyncSession, *, id: Any) -> Optional[ModelType]:
        """기본 키로 레코드를 삭제하고 커밋합니다. 없으면 None."""
        db_obj = await db.get(self.model, id)
        if db_obj is not None:
            await db.delete(db_obj)
            await db.commit()
        return db_obj
