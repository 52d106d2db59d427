# yachtpms/domains/usr/routers.py

"""
'usr' 도메인 (인증, 사용자 관리, 요트 접근 지정)과 관련된 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.config import settings
from yachtpms.core.database import get_session
from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import crud as usr_crud
from . import models as usr_models
from . import schemas as usr_schemas


router = APIRouter(
    tags=["User Management (사용자 관리)"],
    responses={404: {"description": "Not found"}},
)

USER_MANAGERS = ("Admin", "Management/Office", "SystemAdmin")


# =============================================================================
# 1. 인증 (Authentication) 엔드포인트
# =============================================================================
@router.post("/auth/token", response_model=usr_schemas.Token, summary="Access Token 획득")
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
):
    """폼의 username 필드에는 사용자 이메일을 넣습니다."""
    user = await usr_crud.user.authenticate(db, email=form_data.username, password=form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = deps.create_access_token(data={"sub": user.email}, expires_delta=access_token_expires)
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/auth/me", response_model=usr_schemas.UserRead, summary="현재 사용자 정보 조회")
async def read_users_me(current_user: usr_models.User = Depends(deps.get_current_active_user)):
    return current_user


# =============================================================================
# 2. 사용자 (User) 관리 엔드포인트
# =============================================================================
@router.get("/users", response_model=List[usr_schemas.UserListItem], summary="사용자 목록 조회")
async def read_users(
    q: Optional[str] = Query(None, description="이메일/이름 검색어"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*USER_MANAGERS)),
):
    return await usr_crud.user.list_with_access_count(db, q=q)


@router.post("/users", response_model=usr_schemas.UserRead, status_code=status.HTTP_201_CREATED, summary="새 사용자 생성")
async def create_user(
    user_in: usr_schemas.UserCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles("SystemAdmin")),
):
    return await usr_crud.user.create(db, obj_in=user_in, actor_id=actor.user_id)


@router.patch("/users/{user_id}/status", response_model=usr_schemas.UserRead, summary="사용자 활성 상태 변경")
async def update_user_status(
    user_id: int,
    status_in: usr_schemas.UserStatusUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles("SystemAdmin")),
):
    return await usr_crud.user.update_status(
        db, user_id=user_id, is_active=status_in.is_active, actor_id=actor.user_id
    )


# =============================================================================
# 3. 요트 접근 지정 엔드포인트
# =============================================================================
@router.get("/users/{user_id}/accesses", response_model=usr_schemas.UserAccessesRead, summary="사용자의 요트 접근 목록")
async def read_user_accesses(
    user_id: int,
    include_revoked: bool = Query(False),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*USER_MANAGERS)),
):
    return await usr_crud.access.get_user_accesses(db, user_id=user_id, include_revoked=include_revoked)


@router.put("/users/{user_id}/accesses", response_model=usr_schemas.UserAccessesRead, summary="사용자의 요트 접근 목록 교체")
async def replace_user_accesses(
    user_id: int,
    accesses_in: usr_schemas.UserAccessesSet,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles("SystemAdmin")),
):
    return await usr_crud.access.set_user_accesses(
        db, user_id=user_id, obj_in=accesses_in, actor_id=actor.user_id
    )
