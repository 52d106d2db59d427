# yachtpms/domains/ntf/routers.py

"""
'ntf' 도메인 (수신함, 수신 설정, 이벤트 카탈로그, 알림 규칙, 주기 작업)의 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core import dependencies as deps
from yachtpms.core import rbac

from . import catalog
from . import schemas as ntf_schemas
from .jobs import job_definition
from .services import notification, notification_rule, preference_crud


router = APIRouter(
    tags=["Notifications (알림 및 주기 작업)"],
    responses={404: {"description": "Not found"}},
)

INBOX_ROLES = ("Chief Engineer", "Captain", "HoD", "Management/Office", "Crew Member", "Admin")
MANAGEMENT_ROLES = ("Captain", "Chief Engineer", "Management/Office", "Admin")
EMAIL_VIEW_ROLES = ("Captain", "Management/Office", "Admin")
# 수동 점검은 같은 job id로 큐에 넣어, 대기/실행 중인 점검이 있으면 중복 등록되지 않습니다.
RULE_SCAN_JOB_ID = "ntf-hourly-rule-scan"


# =============================================================================
# 1. 수신함 (in_app)
# =============================================================================
@router.get("/in-app", response_model=List[ntf_schemas.NotificationRead], summary="내 in_app 알림 목록")
async def read_my_notifications(
    limit: int = Query(20),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*INBOX_ROLES)),
):
    return await notification.list_in_app(db, actor=actor, target_user_id=actor.user_id, limit=limit)


@router.get("/in-app/{user_id}", response_model=List[ntf_schemas.NotificationRead], summary="사용자 in_app 알림 목록")
async def read_user_notifications(
    user_id: int,
    limit: int = Query(20),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*INBOX_ROLES)),
):
    """본인 외의 수신함은 Admin, Management/Office, SystemAdmin만 조회할 수 있습니다."""
    return await notification.list_in_app(db, actor=actor, target_user_id=user_id, limit=limit)


@router.patch("/{notification_id}/read", response_model=ntf_schemas.NotificationRead, summary="알림 읽음 처리")
async def mark_notification_read(
    notification_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*INBOX_ROLES)),
):
    return await notification.mark_read(db, actor=actor, notification_id=notification_id)


# =============================================================================
# 2. 수신 설정 (preference)
# =============================================================================
@router.get("/settings", response_model=ntf_schemas.PreferenceRead, summary="내 알림 수신 설정")
async def read_my_preference(
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*INBOX_ROLES)),
):
    return await preference_crud.get_for_actor(db, actor=actor, target_user_id=actor.user_id)


@router.get("/settings/{user_id}", response_model=ntf_schemas.PreferenceRead, summary="사용자 알림 수신 설정")
async def read_user_preference(
    user_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*INBOX_ROLES)),
):
    return await preference_crud.get_for_actor(db, actor=actor, target_user_id=user_id)


@router.post("/settings", response_model=ntf_schemas.PreferenceRead, summary="내 알림 수신 설정 저장")
async def upsert_my_preference(
    preference_in: ntf_schemas.PreferenceUpsert,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*INBOX_ROLES)),
):
    return await preference_crud.upsert_for_actor(
        db, actor=actor, target_user_id=actor.user_id, obj_in=preference_in
    )


@router.post("/settings/{user_id}", response_model=ntf_schemas.PreferenceRead, summary="사용자 알림 수신 설정 저장")
async def upsert_user_preference(
    user_id: int,
    preference_in: ntf_schemas.PreferenceUpsert,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*INBOX_ROLES)),
):
    return await preference_crud.upsert_for_actor(db, actor=actor, target_user_id=user_id, obj_in=preference_in)


# =============================================================================
# 3. 이벤트 카탈로그 / 이메일 수신자 및 발송 이력
# =============================================================================
@router.get("/catalog", response_model=ntf_schemas.CatalogRead, summary="모듈별 이벤트 카탈로그")
async def read_event_catalog(current_user=Depends(deps.get_current_active_user)):
    return {
        "modules": list(catalog.MODULES),
        "channels": list(catalog.CHANNELS),
        "severities": list(catalog.SEVERITIES),
        "events": {module: list(events) for module, events in catalog.EVENT_CATALOG.items()},
    }


@router.get("/email/recipients", response_model=List[ntf_schemas.EmailRecipientRead], summary="이메일 수신 가능 사용자")
async def read_email_recipients(
    yacht_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EMAIL_VIEW_ROLES)),
):
    if yacht_id is not None:
        rbac.assert_yacht_scope(yacht_id, actor)
    return await notification.list_email_recipients(db, yacht_id=yacht_id)


@router.get("/email/logs", response_model=List[ntf_schemas.EmailLogRead], summary="이메일 발송 이력")
async def read_email_logs(
    limit: int = Query(40),
    status_filter: Optional[str] = Query(None, alias="status"),
    yacht_id: Optional[int] = Query(None),
    recipient: Optional[str] = Query(None),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*EMAIL_VIEW_ROLES)),
):
    if yacht_id is not None:
        rbac.assert_yacht_scope(yacht_id, actor)
    return await notification.list_email_logs(
        db, limit=limit, status_filter=status_filter, yacht_id=yacht_id, recipient=recipient
    )


# =============================================================================
# 4. 알림 규칙 (NotificationRule)
# =============================================================================
@router.get("/rules", response_model=List[ntf_schemas.RuleRead], summary="알림 규칙 목록")
async def read_rules(
    module: Optional[str] = Query(None),
    yacht_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|paused)$"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    return await notification_rule.list_rules(db, module=module, yacht_id=yacht_id, status_filter=status_filter)


@router.post(
    "/rules",
    response_model=ntf_schemas.RuleRead,
    status_code=status.HTTP_201_CREATED,
    summary="알림 규칙 생성",
)
async def create_rule(
    rule_in: ntf_schemas.RuleCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    return await notification_rule.create_rule(db, obj_in=rule_in, actor_id=actor.user_id)


@router.patch("/rules/{rule_id}", response_model=ntf_schemas.RuleRead, summary="알림 규칙 수정")
async def update_rule(
    rule_id: int,
    rule_in: ntf_schemas.RuleUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    return await notification_rule.update_rule(db, rule_id=rule_id, obj_in=rule_in)


@router.post("/rules/{rule_id}/test", response_model=ntf_schemas.RuleTestResult, summary="알림 규칙 미리보기")
async def test_rule(
    rule_id: int,
    test_in: ntf_schemas.RuleTestRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    """템플릿 렌더링 결과, 수신자, 조건 일치 여부를 반환합니다. 알림은 보내지 않습니다."""
    return await notification_rule.test_rule(db, rule_id=rule_id, obj_in=test_in)


# =============================================================================
# 5. 주기 작업 (JobDefinition / JobRun)
# =============================================================================
@router.get("/jobs", response_model=ntf_schemas.JobList, summary="주기 작업 목록")
async def read_jobs(
    yacht_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|paused|archived)$"),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    return await job_definition.list_jobs(db, yacht_id=yacht_id, status_filter=status_filter)


@router.post(
    "/jobs",
    response_model=ntf_schemas.JobRead,
    status_code=status.HTTP_201_CREATED,
    summary="주기 작업 생성",
)
async def create_job(
    job_in: ntf_schemas.JobCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    if job_in.yacht_id is not None:
        rbac.assert_yacht_scope(job_in.yacht_id, actor)
    return await job_definition.create_job(db, obj_in=job_in, actor_id=actor.user_id)


@router.patch("/jobs/{job_id}", response_model=ntf_schemas.JobRead, summary="주기 작업 수정")
async def update_job(
    job_id: int,
    job_in: ntf_schemas.JobUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    return await job_definition.update_job(db, job_id=job_id, obj_in=job_in)


@router.post("/jobs/{job_id}/run-now", response_model=ntf_schemas.JobExecutionResult, summary="주기 작업 즉시 실행")
async def run_job_now(
    job_id: int,
    run_in: Optional[ntf_schemas.JobRunNowRequest] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    payload = run_in.payload if run_in else None
    return await job_definition.run_now(db, job_id=job_id, actor_id=actor.user_id, payload=payload)


@router.get("/jobs/{job_id}/runs", response_model=ntf_schemas.JobRunList, summary="주기 작업 실행 이력")
async def read_job_runs(
    job_id: int,
    limit: int = Query(20),
    db: AsyncSession = Depends(deps.get_db_session),
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    return await job_definition.list_runs(db, job_id=job_id, limit=limit)


# =============================================================================
# 6. 점검 큐 등록 (ARQ)
# =============================================================================
@router.post(
    "/scan",
    response_model=ntf_schemas.QueuedScanRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="문서 만료 / 정비 마감 점검을 ARQ 큐에 등록",
)
async def enqueue_rule_scan(
    request: Request,
    actor: rbac.ActorContext = Depends(deps.require_roles(*MANAGEMENT_ROLES)),
):
    """다음 정각을 기다리지 않고 hourly_rule_scan 태스크를 워커 큐에 넣습니다."""
    redis = request.app.state.redis
    job = await redis.enqueue_job("hourly_rule_scan", _job_id=RULE_SCAN_JOB_ID)
    return {
        "job_id": job.job_id if job else None,
        "name": "hourly_rule_scan",
        "status": "queued" if job else "duplicate",
    }
