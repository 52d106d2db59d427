# flake8: noqa
# scripts/create_admin.py

import asyncio
import typer
from fastapi import HTTPException
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database import AsyncSessionLocal
from yachtpms.domains import models  # noqa: F401  (모든 테이블을 metadata에 등록)
from yachtpms.domains.usr import crud as usr_crud
from yachtpms.domains.usr import schemas as usr_schemas
from yachtpms.domains.usr.models import UserRole

cli = typer.Typer()


async def create_admin_user(
    db: AsyncSession,
    user_in: usr_schemas.UserCreate
) -> None:
    """
    데이터베이스에 관리자 사용자를 생성하는 비동기 함수
    """
    db_user_by_email = await usr_crud.user.get_by_email(db, email=user_in.email)
    if db_user_by_email:
        print(f"오류: 이미 존재하는 이메일입니다: {user_in.email}")
        return

    try:
        await usr_crud.user.create(db, obj_in=user_in)
    except HTTPException as e:
        print(f"오류: {e.detail}")
        return
    print(f"관리자 계정이 성공적으로 생성되었습니다: {user_in.email} ({user_in.role_name})")


@cli.command()
def main(
    email: str = typer.Option(
        ..., '--email', '-e',
        prompt="관리자 이메일을 입력하세요",
        help="생성할 관리자 계정의 이메일 주소입니다."
    ),
    password: str = typer.Option(
        ..., '--password', '-p',
        prompt="관리자 비밀번호를 입력하세요",
        hide_input=True,
        confirmation_prompt=True,
        help="생성할 관리자 계정의 비밀번호입니다. (최소 8자 이상)"
    ),
    full_name: str = typer.Option(
        "System Admin", '--name', '-n',
        prompt="관리자 이름을 입력하세요",
        help="관리자의 이름입니다."
    ),
    fleet_admin: bool = typer.Option(
        True, '--system-admin/--admin',
        help="SystemAdmin(전체 함대) 또는 Admin 역할로 생성합니다."
    ),
):
    """
    Yacht PMS 애플리케이션을 위한 새로운 관리자(SystemAdmin/Admin)를 생성합니다.
    """
    if len(password) < 8:
        print("오류: 비밀번호는 최소 8자 이상이어야 합니다.")
        raise typer.Abort()

    print("관리자 계정 생성을 시작합니다...")

    role = UserRole.SYSTEM_ADMIN if fleet_admin else UserRole.ADMIN
    user_data = usr_schemas.UserCreate(
        email=email,
        password=password,
        full_name=full_name,
        role_name=role.value,
    )

    async def run_creation():
        async with AsyncSessionLocal() as db:
            await create_admin_user(db=db, user_in=user_data)

    asyncio.run(run_creation())


if __name__ == "__main__":
    cli()
