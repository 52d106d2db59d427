# yachtpms/domains/usr/crud.py

"""
'usr' 도메인의 CRUD 작업을 담당하는 모듈입니다.
사용자 생성/상태 변경, 인증, 요트 접근 지정(assignments) 교체를 포함합니다.
"""

from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import HTTPException, status

from yachtpms.core.crud_base import CRUDBase
from yachtpms.core.database_base import utcnow
from yachtpms.core.rbac import is_valid_role, normalize_role
from yachtpms.core.security import get_password_hash, verify_password
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.shared import crud as shared_crud
from . import models as usr_models
from . import schemas as usr_schemas


class CRUDUser(CRUDBase[usr_models.User, usr_schemas.UserCreate, usr_schemas.UserStatusUpdate]):
    def __init__(self):
        super().__init__(model=usr_models.User)

    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[usr_models.User]:
        """이메일(대소문자 무시)로 사용자를 조회합니다."""
        return await self.get_by_attribute(db, attribute="email", value=email.strip().lower())

    async def authenticate(self, db: AsyncSession, *, email: str, password: str) -> Optional[usr_models.User]:
        """이메일과 비밀번호를 사용하여 사용자를 인증합니다."""
        user = await self.get_by_email(db, email=email)
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    async def list_with_access_count(
        self, db: AsyncSession, *, q: Optional[str] = None, limit: int = 300
    ) -> List[dict]:
        """이메일/이름 검색과 활성 요트 수를 포함한 사용자 목록입니다."""
        statement = select(self.model)
        term = (q or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            statement = statement.where(
                or_(func.lower(self.model.email).like(pattern), func.lower(self.model.full_name).like(pattern))
            )
        statement = statement.order_by(self.model.email.asc()).limit(limit)
        users = (await db.execute(statement)).scalars().all()

        counts_stmt = (
            select(fleet_models.UserYachtAccess.user_id, func.count(fleet_models.UserYachtAccess.id))
            .where(fleet_models.UserYachtAccess.revoked_at.is_(None))
            .group_by(fleet_models.UserYachtAccess.user_id)
        )
        counts = {row[0]: row[1] for row in (await db.execute(counts_stmt)).all()}
        return [{**user.model_dump(), "active_yacht_count": counts.get(user.id, 0)} for user in users]

    async def create(
        self, db: AsyncSession, *, obj_in: usr_schemas.UserCreate, actor_id: Optional[int] = None
    ) -> usr_models.User:
        """새로운 사용자를 생성하며 비밀번호를 해싱하고 중복을 검사합니다."""
        email = obj_in.email.strip().lower()
        if await self.get_by_email(db, email=email):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
        if not is_valid_role(obj_in.role_name):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")

        db_user = usr_models.User(
            email=email,
            full_name=obj_in.full_name.strip(),
            role=usr_models.UserRole(normalize_role(obj_in.role_name)),
            password_hash=get_password_hash(obj_in.password),
            is_active=True,
        )
        db.add(db_user)
        await db.flush()
        await shared_crud.audit.record(
            db, module="users", entity_type="User", entity_id=db_user.id,
            action="create", actor_id=actor_id,
            after=db_user.model_dump(exclude={"password_hash"}),
        )
        await db.commit()
        await db.refresh(db_user)
        return db_user

    async def update_status(
        self, db: AsyncSession, *, user_id: int, is_active: bool, actor_id: int
    ) -> usr_models.User:
        current = await self.get(db, user_id)
        if not current:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        if current.id == actor_id and not is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate your own user")

        before = {"id": current.id, "email": current.email, "is_active": current.is_active}
        current.is_active = is_active
        db.add(current)
        await shared_crud.audit.record(
            db, module="users", entity_type="User", entity_id=current.id,
            action="status_update", actor_id=actor_id,
            before=before, after={"id": current.id, "email": current.email, "is_active": is_active},
        )
        await db.commit()
        await db.refresh(current)
        return current


user = CRUDUser()


# =============================================================================
# 요트 접근 지정 (UserYachtAccess)
# =============================================================================
class CRUDUserAccess(CRUDBase[fleet_models.UserYachtAccess, usr_schemas.UserAssignment, usr_schemas.UserAssignment]):
    def __init__(self):
        super().__init__(model=fleet_models.UserYachtAccess)

    async def list_for_user(
        self, db: AsyncSession, *, user_id: int, include_revoked: bool = False
    ) -> List[Tuple[fleet_models.UserYachtAccess, fleet_models.Yacht]]:
        statement = (
            select(self.model, fleet_models.Yacht)
            .join(fleet_models.Yacht, fleet_models.Yacht.id == self.model.yacht_id)
            .where(self.model.user_id == user_id)
        )
        if not include_revoked:
            statement = statement.where(self.model.revoked_at.is_(None))
        # 활성 권한 먼저, 그 다음 최근 생성 순
        statement = statement.order_by(self.model.revoked_at.asc().nulls_first(), self.model.created_at.desc())
        result = await db.execute(statement)
        return result.all()

    async def get_user_accesses(self, db: AsyncSession, *, user_id: int, include_revoked: bool) -> dict:
        target = await user.get(db, user_id)
        if not target:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        rows = await self.list_for_user(db, user_id=user_id, include_revoked=include_revoked)
        accesses = []
        for access, yacht in rows:
            accesses.append({
                **access.model_dump(),
                "yacht": {"id": yacht.id, "name": yacht.name, "flag": yacht.flag},
            })
        return {"user": target, "accesses": accesses}

    async def set_user_accesses(
        self, db: AsyncSession, *, user_id: int, obj_in: usr_schemas.UserAccessesSet, actor_id: int
    ) -> dict:
        """
        사용자의 활성 요트 접근 목록을 요청한 목록으로 교체합니다.
        - 목록에 있는 요트: 생성하거나 회수 상태를 해제(재활성화)
        - 목록에 없는 기존 활성 요트: 회수 처리
        """
        target = await user.get(db, user_id)
        if not target:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        desired: Dict[int, Optional[str]] = {}
        for assignment in obj_in.assignments:
            desired[assignment.yacht_id] = assignment.role_name_override

        yacht_ids = list(desired.keys())
        if yacht_ids:
            existing = await db.execute(select(fleet_models.Yacht.id).where(fleet_models.Yacht.id.in_(yacht_ids)))
            existing_ids = set(existing.scalars().all())
            missing = [str(yid) for yid in yacht_ids if yid not in existing_ids]
            if missing:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid yachtIds: {', '.join(missing)}")

        requested_overrides = []
        for value in desired.values():
            name = (value or "").strip()
            if name and name not in requested_overrides:
                requested_overrides.append(name)
        invalid = [name for name in requested_overrides if not is_valid_role(name)]
        if invalid:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid role overrides: {', '.join(invalid)}")

        before_rows = (await db.execute(select(self.model).where(self.model.user_id == user_id))).scalars().all()
        before = [shared_crud.snapshot(row) for row in before_rows]
        by_yacht = {row.yacht_id: row for row in before_rows}

        for yacht_id, override in desired.items():
            override = (override or "").strip() or None
            row = by_yacht.get(yacht_id)
            if row is None:
                row = self.model(user_id=user_id, yacht_id=yacht_id, role_name_override=override)
            else:
                row.role_name_override = override
                row.revoked_at = None
                row.revoked_by = None
            db.add(row)

        now = utcnow()
        for row in before_rows:
            if row.revoked_at is None and row.yacht_id not in desired:
                row.revoked_at = now
                row.revoked_by = actor_id
                db.add(row)
        await db.flush()

        after = await self.get_user_accesses(db, user_id=user_id, include_revoked=True)
        await shared_crud.audit.record(
            db, module="users", entity_type="UserYachtAccess", entity_id=user_id,
            action="set_accesses", actor_id=actor_id,
            before={"accesses": before}, after={"accesses": after["accesses"]},
        )
        await db.commit()
        return after


access = CRUDUserAccess()
