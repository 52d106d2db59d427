# flake8: noqa
# scripts/change_admin_password.py

import asyncio
import typer

from yachtpms.core.database import AsyncSessionLocal
from yachtpms.core.security import get_password_hash
from yachtpms.domains import models  # noqa: F401  (모든 테이블을 metadata에 등록)
from yachtpms.domains.shared import crud as shared_crud
from yachtpms.domains.usr import crud as usr_crud

cli = typer.Typer()


async def change_password(email: str, new_password: str) -> bool:
    """이메일로 사용자를 찾아 비밀번호 해시를 교체합니다."""
    async with AsyncSessionLocal() as db:
        db_user = await usr_crud.user.get_by_email(db, email=email)
        if not db_user:
            print(f"오류: 사용자를 찾을 수 없습니다: {email}")
            return False

        db_user.password_hash = get_password_hash(new_password)
        db.add(db_user)
        await shared_crud.audit.record(
            db, module="users", entity_type="User", entity_id=db_user.id,
            action="password_reset", actor_id=None,
            after={"id": db_user.id, "email": db_user.email}, source="cli",
        )
        await db.commit()
        print(f"비밀번호가 변경되었습니다: {db_user.email} ({db_user.role.value})")
        return True


@cli.command()
def main(
    email: str = typer.Option(
        ..., '--email', '-e',
        prompt="비밀번호를 변경할 계정의 이메일을 입력하세요",
    ),
    password: str = typer.Option(
        ..., '--password', '-p',
        prompt="새 비밀번호를 입력하세요",
        hide_input=True,
        confirmation_prompt=True,
        help="새 비밀번호 (최소 8자 이상)"
    ),
):
    """기존 계정(주로 SystemAdmin)의 비밀번호를 재설정합니다."""
    if len(password) < 8:
        print("오류: 비밀번호는 최소 8자 이상이어야 합니다.")
        raise typer.Abort()

    if not asyncio.run(change_password(email.strip().lower(), password)):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    cli()
