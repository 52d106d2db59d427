# yachtpms/core/database.py

"""
애플리케이션의 데이터베이스 연결 및 세션 관리를 담당하는 모듈입니다.

- SQLModel의 비동기 엔진을 설정합니다.
- 요청 단위 세션 의존성과 ARQ 태스크용 세션 컨텍스트를 제공합니다.
- 개발 환경에서 테이블을 생성하는 함수를 포함합니다 (운영은 Alembic 사용).
"""

from typing import AsyncGenerator, Any, Dict
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import configure_mappers, sessionmaker

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.DEBUG_MODE, "future": True}
    if url.startswith("sqlite"):
        # SQLite(aiosqlite)는 연결 풀 크기 옵션을 사용하지 않습니다.
        options["connect_args"] = {"check_same_thread": False}
        return options
    options.update(
        pool_recycle=3600,  # 1시간마다 연결 재활용
        pool_size=10,       # 최소 10개의 연결 유지
        max_overflow=20,    # 최대 20개의 추가 연결 허용 (총 30개)
    )
    return options


DATABASE_URL = settings.DATABASE_URL.get_secret_value()

engine: AsyncEngine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# 비동기 세션을 생성하는 '세션 공장'을 정의합니다.
AsyncSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

metadata = SQLModel.metadata

_mappers_configured = False


# =============================================================================
# 데이터베이스 초기화 및 테이블 생성 함수
# =============================================================================
async def create_db_and_tables() -> None:
    """
    모든 테이블을 생성합니다. 개발 환경 전용이며 기존 테이블은 삭제하지 않습니다.
    """
    global _mappers_configured
    # 모든 모델이 metadata에 등록되도록 집계 모듈을 임포트합니다.
    from yachtpms.domains import models  # noqa: F401

    print("DEBUG: 데이터베이스 테이블 생성을 시도합니다...")
    async with engine.begin() as conn:
        if not _mappers_configured:
            configure_mappers()
            _mappers_configured = True
        await conn.run_sync(SQLModel.metadata.create_all)
    print("DEBUG: 데이터베이스 테이블 생성이 완료되었습니다 (또는 이미 존재).")


# =============================================================================
# 비동기 데이터베이스 세션 의존성 주입
# =============================================================================
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입을 위한 비동기 데이터베이스 세션 제너레이터입니다.
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_async_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    ARQ Task 등 요청 밖에서 사용할 독립적인 비동기 DB 세션 컨텍스트 관리자입니다.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
