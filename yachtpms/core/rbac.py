# yachtpms/core/rbac.py

"""
요트 범위(yacht scope) 및 역할 기반 접근 제어 헬퍼 모듈입니다.

- SystemAdmin은 모든 요트에 접근할 수 있습니다.
- 그 외 사용자는 회수되지 않은 UserYachtAccess 행의 요트만 접근할 수 있습니다.
- 요트별 유효 역할은 role_name_override가 있으면 그 값을, 없으면 전역 역할을 사용합니다.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from fastapi import HTTPException, status
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.domains.usr.models import LEGACY_ROLE_ALIASES, User, UserRole
from yachtpms.domains.fleet.models import UserYachtAccess


SYSTEM_ADMIN = UserRole.SYSTEM_ADMIN.value
VALID_ROLE_NAMES = {role.value for role in UserRole}


def normalize_role(role: Optional[str]) -> str:
    """역할 이름을 정규화합니다. (Engineer -> Chief Engineer, Steward -> Crew Member)"""
    if role is None:
        return ""
    value = role.value if isinstance(role, UserRole) else str(role)
    value = value.strip()
    return LEGACY_ROLE_ALIASES.get(value, value)


def is_valid_role(role: Optional[str]) -> bool:
    return normalize_role(role) in VALID_ROLE_NAMES


@dataclass
class ActorContext:
    """요청을 수행하는 사용자와 접근 가능한 요트 정보를 묶은 컨텍스트입니다."""
    user_id: int
    role: str
    yacht_roles: Dict[int, str] = field(default_factory=dict)

    @property
    def is_system_admin(self) -> bool:
        return self.role == SYSTEM_ADMIN

    @property
    def yacht_ids(self) -> List[int]:
        return list(self.yacht_roles.keys())

    def can_access(self, yacht_id: Optional[int]) -> bool:
        if yacht_id is None:
            return False
        return self.is_system_admin or yacht_id in self.yacht_roles

    def role_for(self, yacht_id: Optional[int] = None) -> str:
        """요트 단위 유효 역할을 반환합니다. 요트가 없으면 전역 역할입니다."""
        if self.is_system_admin or yacht_id is None:
            return self.role
        return self.yacht_roles.get(yacht_id) or self.role

    def has_role(self, roles: Iterable[str], yacht_id: Optional[int] = None) -> bool:
        if self.is_system_admin:
            return True
        return self.role_for(yacht_id) in {normalize_role(r) for r in roles}


async def build_actor(db: AsyncSession, user: User) -> ActorContext:
    """사용자의 회수되지 않은 요트 접근 권한을 읽어 ActorContext를 만듭니다."""
    role = normalize_role(user.role)
    statement = select(UserYachtAccess).where(
        UserYachtAccess.user_id == user.id,
        UserYachtAccess.revoked_at.is_(None),
    )
    result = await db.execute(statement)
    yacht_roles: Dict[int, str] = {}
    for access in result.scalars().all():
        yacht_roles[access.yacht_id] = normalize_role(access.role_name_override) or role
    return ActorContext(user_id=user.id, role=role, yacht_roles=yacht_roles)


def assert_yacht_scope(yacht_id: Optional[int], actor: ActorContext) -> None:
    """
    요트 범위를 검사합니다.
    요트 ID가 없으면 400, 접근 권한이 없으면 403을 발생시킵니다.
    """
    if yacht_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="yachtId is required for this endpoint")
    if not actor.can_access(yacht_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Yacht scope violation")


def assert_roles(actor: ActorContext, roles: Iterable[str], detail: str, yacht_id: Optional[int] = None) -> None:
    if not actor.has_role(roles, yacht_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def role_enums(roles: Iterable[str]) -> List[UserRole]:
    """역할 이름 목록을 UserRole 멤버 목록으로 바꿉니다. 알 수 없는 이름은 버립니다."""
    members: List[UserRole] = []
    for role in roles or []:
        name = normalize_role(role)
        if name in VALID_ROLE_NAMES and UserRole(name) not in members:
            members.append(UserRole(name))
    return members
