# yachtpms/core/dependencies.py

"""
FastAPI 애플리케이션의 의존성 주입(Dependency Injection)을 정의하는 모듈입니다.

- 데이터베이스 세션 관리 (get_db_session).
- 현재 인증된 사용자 정보 획득 (get_current_active_user, get_current_admin_user).
- 요트 범위를 포함한 요청자 컨텍스트 (get_actor) 및 역할 검사 (require_roles).
"""

from typing import AsyncGenerator, Callable

from fastapi import Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database import get_session as get_main_app_session
from yachtpms.core import rbac

# flake8: noqa
from yachtpms.core.security import (
    create_access_token,
    get_password_hash,
    verify_password,
    oauth2_scheme,
    get_current_user_from_token,
    get_current_active_user,
    get_current_admin_user,
)
from yachtpms.domains.usr.models import User as UsrUser


# --- 데이터베이스 세션 의존성 주입 ---
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입을 위한 비동기 데이터베이스 세션 제너레이터입니다.
    yachtpms.core.database.get_session을 래핑하여 사용합니다.
    """
    async for session in get_main_app_session():
        yield session


# --- 요트 범위 컨텍스트 ---
async def get_actor(
    db: AsyncSession = Depends(get_db_session),
    current_user: UsrUser = Depends(get_current_active_user),
) -> rbac.ActorContext:
    """현재 사용자와 접근 가능한 요트, 요트별 역할을 담은 컨텍스트를 반환합니다."""
    return await rbac.build_actor(db, current_user)


def require_roles(*roles: str) -> Callable:
    """
    지정된 전역 역할 중 하나를 가진 사용자만 통과시키는 의존성을 만듭니다.
    SystemAdmin은 항상 통과합니다.
    """
    allowed = {rbac.normalize_role(role) for role in roles}

    async def _checker(actor: rbac.ActorContext = Depends(get_actor)) -> rbac.ActorContext:
        if actor.is_system_admin or actor.role in allowed:
            return actor
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")

    return _checker
