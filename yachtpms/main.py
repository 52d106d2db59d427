# yachtpms/main.py

from typing import AsyncGenerator
from contextlib import asynccontextmanager
from arq.connections import create_pool, RedisSettings
from arq.cron import cron
from arq.worker import func

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

# 핵심 설정 및 데이터베이스 모듈 임포트
from yachtpms.core.config import settings
from yachtpms.core.database import engine, get_session
from yachtpms import API_PREFIX

# 태스크 모듈 임포트
from yachtpms.core import tasks as core_tasks
from yachtpms.domains.ntf import tasks as ntf_tasks

# 도메인 라우터 임포트
from yachtpms.domains.shared.routers import router as shared_router
from yachtpms.domains.usr.routers import router as usr_router
from yachtpms.domains.fleet.routers import router as fleet_router
from yachtpms.domains.logbook.routers import router as logbook_router
from yachtpms.domains.maint.routers import router as maint_router
from yachtpms.domains.docs.routers import router as docs_router
from yachtpms.domains.hrm.routers import router as hrm_router
from yachtpms.domains.inv.routers import router as inv_router
from yachtpms.domains.po.routers import router as po_router
from yachtpms.domains.ntf.routers import router as ntf_router
from yachtpms.domains.timeline.routers import router as timeline_router

# ARQ 워커가 실행할 태스크 함수 목록
worker_functions = [
    core_tasks.health_check_database_task,
    # 수동 점검(POST /ntf/scan)은 결과를 보관하지 않아 완료 직후 다시 등록할 수 있습니다.
    func(ntf_tasks.hourly_rule_scan, timeout=600, keep_result=0),
    ntf_tasks.jobs_tick,
]


# ARQ 워커 설정 클래스
class ArqWorkerSettings:
    redis_settings = RedisSettings(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    functions = worker_functions
    cron_jobs = [
        # 매시 정각: 문서 만료 / 정비 마감 점검
        cron(ntf_tasks.hourly_rule_scan, minute=0, timeout=600, keep_result=3600),
        # 5분마다: 도래한 주기 작업 실행
        cron(ntf_tasks.jobs_tick, minute=set(range(0, 60, 5)), timeout=300, keep_result=600),
        cron(core_tasks.health_check_database_task, hour=0, minute=0, timeout=300, keep_result=600),
    ]


# -- 애플리케이션 수명 주기 이벤트 핸들러 --
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI 애플리케이션의 수명 주기 이벤트(데이터베이스, ARQ Redis)를 함께 처리합니다.
    """
    print("FastAPI 애플리케이션 시작 중...")
    try:
        print("데이터베이스 초기화/마이그레이션 확인 완료. (Alembic 사용 권장)")

        print("ARQ Redis 커넥션 풀을 생성합니다...")
        app.state.redis = await create_pool(ArqWorkerSettings.redis_settings)
        print("ARQ Redis 커넥션 풀 생성 완료.")

    except Exception as e:
        print(f"애플리케이션 시작 중 오류 발생: {e}")
        raise

    yield  # 애플리케이션 실행

    print("FastAPI 애플리케이션 종료 중...")
    try:
        if app.state.redis:
            await app.state.redis.close()
            print("ARQ Redis 연결 풀 종료 완료.")

        await engine.dispose()
        print("데이터베이스 연결 풀 종료 완료.")

    except Exception as e:
        print(f"애플리케이션 종료 중 오류 발생: {e}")


# -- FastAPI 애플리케이션 인스턴스 생성 --
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# -- CORS 미들웨어 설정 --
# 운영 환경에서는 CORS_ORIGINS를 실제 프론트엔드 도메인으로 제한해야 합니다.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- 도메인 라우터 포함 --
app.include_router(shared_router, prefix=f"{API_PREFIX}/shared", tags=["Shared (경보 및 감사 이력)"])
app.include_router(usr_router, prefix=f"{API_PREFIX}/usr", tags=["Users & Auth (사용자 및 인증)"])
app.include_router(fleet_router, prefix=f"{API_PREFIX}/fleet", tags=["Fleet (요트 및 엔진)"])
app.include_router(logbook_router, prefix=f"{API_PREFIX}/logbook", tags=["Logbook (항해일지)"])
app.include_router(maint_router, prefix=f"{API_PREFIX}/maint", tags=["Maintenance (정비 관리)"])
app.include_router(docs_router, prefix=f"{API_PREFIX}/docs", tags=["Documents (문서 관리)"])
app.include_router(hrm_router, prefix=f"{API_PREFIX}/hrm", tags=["Crew & HR (승무원 관리)"])
app.include_router(inv_router, prefix=f"{API_PREFIX}/inv", tags=["Inventory (재고 관리)"])
app.include_router(po_router, prefix=f"{API_PREFIX}/po", tags=["Purchase Orders (발주 관리)"])
app.include_router(ntf_router, prefix=f"{API_PREFIX}/ntf", tags=["Notifications (알림)"])
app.include_router(timeline_router, prefix=f"{API_PREFIX}/timeline", tags=["Timeline (일정)"])


# -- 루트 엔드포인트 --
@app.get("/", summary="API Root", response_description="Welcome message and documentation link.")
async def read_root():
    """
    Yacht PMS API의 루트 엔드포인트입니다.
    """
    return {"message": "Welcome to Yacht PMS API. Visit /docs for interactive API documentation."}


# -- 헬스 체크 엔드포인트 --
@app.get("/health-check", summary="Health Check", response_description="Status of the application and database connection.")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    데이터베이스 연결을 테스트하여 서비스의 정상 작동 여부를 확인합니다.
    """
    try:
        result = await session.exec(select(1))
        if result.first():
            return {"status": "ok", "database_connection": "successful"}
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database health check failed: No result from test query"
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database connection error during health check: {e}"
        )


# -- Uvicorn 서버 직접 실행 (개발용) --
# if __name__ == "__main__":
#     import uvicorn
#     uvicorn.run("yachtpms.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
