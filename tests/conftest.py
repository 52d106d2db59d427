# tests/conftest.py

import os
import sys
from typing import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

# --- 테스트 환경 변수 설정 ---
# yachtpms.core.config의 Settings는 임포트 시점에 환경 변수를 읽으므로 앱 임포트 전에 설정합니다.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-yachtpms")
os.environ.setdefault("APP_ENV", "testing")

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402

from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

from yachtpms.main import app as main_app  # noqa: E402
from yachtpms.core import dependencies as deps  # noqa: E402
from yachtpms.core.database import get_session  # noqa: E402
from yachtpms.core.security import get_password_hash  # noqa: E402

# --- 모든 모델 임포트 ---
#  SQLModel.metadata.create_all()이 모든 테이블을 인식하려면 모든 모델 클래스가 임포트되어야 합니다.
from yachtpms.domains import models  # noqa: F401, E402
from yachtpms.domains.usr import models as usr_models  # noqa: E402
from yachtpms.domains.fleet import models as fleet_models  # noqa: E402


# --- 테스트용 데이터베이스 설정 ---
# 테스트마다 새로운 인메모리 SQLite 데이터베이스를 사용합니다.
# StaticPool로 하나의 연결을 공유해야 같은 인메모리 DB를 계속 볼 수 있습니다.
TEST_DATABASE_URL = "sqlite+aiosqlite://"

TEST_PASSWORD = "testpass123"
# bcrypt 해싱은 느리므로 모든 테스트 사용자가 같은 해시를 공유합니다.
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


# --- 데이터베이스 픽스처 ---
@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """
    테스트 함수마다 새 인메모리 엔진을 만들고 모든 테이블을 생성합니다.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    테스트 함수마다 독립된 비동기 데이터베이스 세션을 제공합니다.
    """
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with TestingSessionLocal() as session:
        yield session


# --- 요트 픽스처 ---
@pytest_asyncio.fixture(scope="function")
def yacht_factory(db_session: AsyncSession) -> Callable[..., Awaitable[fleet_models.Yacht]]:
    async def _create_yacht(name: str, flag: str = "MT", **kwargs) -> fleet_models.Yacht:
        yacht = fleet_models.Yacht(name=name, flag=flag, **kwargs)
        db_session.add(yacht)
        await db_session.commit()
        await db_session.refresh(yacht)
        return yacht
    return _create_yacht


@pytest_asyncio.fixture(scope="function")
async def test_yacht(yacht_factory: Callable) -> fleet_models.Yacht:
    """테스트 사용자 모두가 접근 권한을 가진 요트입니다."""
    return await yacht_factory("M/Y Aurora")


@pytest_asyncio.fixture(scope="function")
async def other_yacht(yacht_factory: Callable) -> fleet_models.Yacht:
    """SystemAdmin 외에는 접근 권한이 없는 요트입니다."""
    return await yacht_factory("M/Y Borealis", flag="KY")


# --- 역할별 사용자 픽스처 ---
# user_factory는 사용자를 만들고, yacht가 주어지면 해당 요트 접근 권한도 함께 부여합니다.
@pytest_asyncio.fixture(scope="function")
def user_factory(db_session: AsyncSession) -> Callable[..., Awaitable[usr_models.User]]:
    async def _create_user(
        email: str,
        role: usr_models.UserRole,
        full_name: str = None,
        yacht: fleet_models.Yacht = None,
        role_name_override: str = None,
        is_active: bool = True,
    ) -> usr_models.User:
        user = usr_models.User(
            email=email,
            full_name=full_name or email.split("@")[0],
            role=role,
            password_hash=TEST_PASSWORD_HASH,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        if yacht is not None:
            db_session.add(fleet_models.UserYachtAccess(
                user_id=user.id, yacht_id=yacht.id, role_name_override=role_name_override,
            ))
            await db_session.commit()
        return user
    return _create_user


@pytest_asyncio.fixture(scope="function")
async def test_system_admin(user_factory: Callable) -> usr_models.User:
    """전체 함대 관리자(SystemAdmin)입니다. 요트 접근 지정 없이 모든 요트에 접근합니다."""
    return await user_factory("root@example.com", usr_models.UserRole.SYSTEM_ADMIN, full_name="Root Admin")


@pytest_asyncio.fixture(scope="function")
async def test_admin(user_factory: Callable, test_yacht: fleet_models.Yacht) -> usr_models.User:
    return await user_factory("admin@example.com", usr_models.UserRole.ADMIN, full_name="Ada Admin", yacht=test_yacht)


@pytest_asyncio.fixture(scope="function")
async def test_captain(user_factory: Callable, test_yacht: fleet_models.Yacht) -> usr_models.User:
    return await user_factory("captain@example.com", usr_models.UserRole.CAPTAIN, full_name="Carl Captain", yacht=test_yacht)


@pytest_asyncio.fixture(scope="function")
async def test_engineer(user_factory: Callable, test_yacht: fleet_models.Yacht) -> usr_models.User:
    return await user_factory(
        "engineer@example.com", usr_models.UserRole.CHIEF_ENGINEER, full_name="Erin Engineer", yacht=test_yacht
    )


@pytest_asyncio.fixture(scope="function")
async def test_hod(user_factory: Callable, test_yacht: fleet_models.Yacht) -> usr_models.User:
    return await user_factory("hod@example.com", usr_models.UserRole.HOD, full_name="Hana Hod", yacht=test_yacht)


@pytest_asyncio.fixture(scope="function")
async def test_management(user_factory: Callable, test_yacht: fleet_models.Yacht) -> usr_models.User:
    return await user_factory(
        "office@example.com", usr_models.UserRole.MANAGEMENT, full_name="Olga Office", yacht=test_yacht
    )


@pytest_asyncio.fixture(scope="function")
async def test_crew(user_factory: Callable, test_yacht: fleet_models.Yacht) -> usr_models.User:
    return await user_factory("crew@example.com", usr_models.UserRole.CREW_MEMBER, full_name="Cory Crew", yacht=test_yacht)


# --- 역할별 인증 클라이언트 픽스처 ---
# authorized_client_factory는 /api/v1/usr/auth/token 로그인 API를 실제로 호출하고,
# 받은 access_token을 Authorization 헤더에 넣은 AsyncClient를 반환합니다.
# 인증 의존성은 오버라이드하지 않으므로 JWT 검증 경로가 그대로 실행됩니다.
@pytest_asyncio.fixture(scope="function")
def authorized_client_factory(
    db_session: AsyncSession,
) -> Callable[[usr_models.User], AsyncGenerator[AsyncClient, None]]:
    """
    특정 사용자로 로그인된 AsyncClient를 만드는 비동기 컨텍스트 매니저 팩토리를 반환합니다.
    """
    @asynccontextmanager
    async def _create_client_context(
        user: usr_models.User, password: str = TEST_PASSWORD
    ) -> AsyncGenerator[AsyncClient, None]:
        def override_get_session():
            yield db_session

        original_overrides = main_app.dependency_overrides.copy()

        try:
            main_app.dependency_overrides.update({
                get_session: override_get_session,
                deps.get_db_session: override_get_session,
            })

            transport = ASGITransport(app=main_app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                login_data = {"username": user.email, "password": password}
                res = await client.post("/api/v1/usr/auth/token", data=login_data)

                if res.status_code != 200:
                    pytest.fail(f"Login failed for {user.email}: {res.text}")

                token = res.json()["access_token"]
                client.headers["Authorization"] = f"Bearer {token}"
                yield client

        finally:
            main_app.dependency_overrides.clear()
            main_app.dependency_overrides.update(original_overrides)

    return _create_client_context


@pytest_asyncio.fixture(scope="function")
async def system_admin_client(authorized_client_factory: Callable, test_system_admin: usr_models.User):
    async with authorized_client_factory(test_system_admin) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def admin_client(authorized_client_factory: Callable, test_admin: usr_models.User):
    async with authorized_client_factory(test_admin) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def captain_client(authorized_client_factory: Callable, test_captain: usr_models.User):
    """선장(Captain)으로 인증된 클라이언트를 반환합니다."""
    async with authorized_client_factory(test_captain) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def engineer_client(authorized_client_factory: Callable, test_engineer: usr_models.User):
    async with authorized_client_factory(test_engineer) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def hod_client(authorized_client_factory: Callable, test_hod: usr_models.User):
    async with authorized_client_factory(test_hod) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def management_client(authorized_client_factory: Callable, test_management: usr_models.User):
    async with authorized_client_factory(test_management) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def crew_client(authorized_client_factory: Callable, test_crew: usr_models.User):
    """일반 승무원(Crew Member)으로 인증된 클라이언트를 반환합니다."""
    async with authorized_client_factory(test_crew) as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    인증되지 않은 사용자를 위한 AsyncClient 인스턴스를 생성하고,
    테스트용 비동기 DB 세션을 주입합니다.
    """
    def override_get_session_and_dependency():
        yield db_session

    original_overrides = main_app.dependency_overrides.copy()

    try:
        main_app.dependency_overrides[get_session] = override_get_session_and_dependency
        main_app.dependency_overrides[deps.get_db_session] = override_get_session_and_dependency

        async with AsyncClient(transport=ASGITransport(app=main_app), base_url="http://test") as async_client:
            yield async_client

    finally:
        main_app.dependency_overrides.clear()
        main_app.dependency_overrides.update(original_overrides)
