# yachtpms/domains/ntf/tasks.py

"""
'ntf' 도메인의 ARQ 주기 태스크입니다.

- hourly_rule_scan: 매시 정각에 문서 만료 / 정비 마감 점검 실행
- jobs_tick: 5분마다 도래한 주기 작업 실행 및 리마인더 발송
"""

import logging

from yachtpms.core.database import get_async_session_context
from . import rule_engine
from .jobs import job_definition

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def hourly_rule_scan(ctx):
    logger.info("ARQ 태스크: 운영 점검(rule engine) 실행")
    async with get_async_session_context() as db:
        return await rule_engine.run_hourly(db)


async def jobs_tick(ctx):
    logger.info("ARQ 태스크: 주기 작업 tick 실행")
    async with get_async_session_context() as db:
        result = await job_definition.tick(db)
    logger.info("주기 작업 tick 결과: %s", result)
    return result
