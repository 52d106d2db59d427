# yachtpms/core/tasks.py

"""
ARQ 워커가 실행하는 공용 태스크입니다.
"""

import logging

from sqlmodel import select

from yachtpms.core.database import get_async_session_context

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def health_check_database_task(ctx):
    """
    데이터베이스 연결 상태를 확인하는 주기 태스크입니다.
    """
    logger.info("ARQ 태스크: 데이터베이스 헬스 체크 실행")
    try:
        async with get_async_session_context() as db:
            result = await db.execute(select(1))
            if result.scalar_one_or_none() == 1:
                return {"status": "success", "message": "Database connection successful."}
            return {"status": "failed", "message": "Database health check failed: No result from test query."}
    except Exception as e:
        logger.error("데이터베이스 헬스 체크 실패: %s", e)
        return {"status": "failed", "message": f"데이터베이스 연결 오류: {e}"}
