# tests/domains/test_ntf_delivery_n.py

"""
'ntf' 도메인의 채널 전송, 수신함, 수신 설정, 이메일 발송 이력에 대한 테스트 모듈입니다.

- 수신 설정에 따른 차단 사유와 채널별 중복 방지 창 검증.
- 수신함 조회 / 읽음 처리 / 수신 설정 API의 사용자 범위 검증.
- 이메일 수신자와 발송 이력 필터 검증.
"""
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.ntf import models as ntf_models
from yachtpms.domains.ntf import services as ntf_services
from yachtpms.domains.ntf.services import notification, preference_crud
from yachtpms.domains.usr import models as usr_models


def _preference(**overrides):
    return {**ntf_services.DEFAULT_PREFERENCE, **overrides}


async def _save_preference(db: AsyncSession, user_id: int, **values) -> None:
    db.add(ntf_models.NotificationPreference(user_id=user_id, **values))
    await db.commit()


async def _send(db: AsyncSession, channel: str, user_id: int, yacht_id: int, dedupe_key: str = "doc-1-expiry", **extra):
    kwargs = {
        "user_id": user_id,
        "yacht_id": yacht_id,
        "type": "documents.expiring",
        "dedupe_key": dedupe_key,
        "severity": "warn",
        "payload": {"title": "Safety certificate expiring", "message": "Expires in 12 days"},
    }
    kwargs.update(extra)
    result = await notification.send(db, channel=channel, **kwargs)
    await db.commit()
    return result


# =============================================================================
# 1. 순수 헬퍼
# =============================================================================
def test_parse_time_and_delivery_window():
    assert ntf_services.parse_time_to_minutes("7:05") == 425
    assert ntf_services.parse_time_to_minutes("24:00") is None
    assert ntf_services.parse_time_to_minutes(None) is None

    late_evening = datetime(2026, 5, 1, 23, 30, tzinfo=timezone.utc)
    noon = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert ntf_services.is_within_delivery_window("UTC", "22:00", "06:00", late_evening) is True
    assert ntf_services.is_within_delivery_window("UTC", "22:00", "06:00", noon) is False
    assert ntf_services.is_within_delivery_window("UTC", "08:00", "08:00", noon) is True
    # 14:30 Europe/Monaco (CEST, UTC+2)
    assert ntf_services.is_within_delivery_window("Europe/Monaco", "14:00", "15:00", noon.replace(minute=30)) is True
    assert ntf_services.now_in_timezone("Not/AZone", noon) == noon


def test_channel_block_reason_order():
    noon = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert ntf_services.channel_block_reason(_preference(), "info", 1, "in_app", noon) is None
    assert ntf_services.channel_block_reason(
        _preference(in_app_enabled=False, min_severity="critical"), "info", 1, "in_app", noon
    ) == "channel_disabled_in_app"
    assert ntf_services.channel_block_reason(_preference(), "critical", 1, "email", noon) == "channel_disabled_email"
    assert ntf_services.channel_block_reason(_preference(), "critical", 1, "push", noon) == "channel_disabled_push"
    assert ntf_services.channel_block_reason(
        _preference(min_severity="warn"), "info", 1, "in_app", noon
    ) == "severity_below_preference"
    assert ntf_services.channel_block_reason(
        _preference(yachts_scope=[2, 3]), "info", 1, "in_app", noon
    ) == "yacht_out_of_scope"
    assert ntf_services.channel_block_reason(
        _preference(window_start="18:00", window_end="20:00"), "info", 1, "in_app", noon
    ) == "outside_delivery_window"


def test_normalize_in_app_payload_fills_presentation():
    payload = ntf_services.normalize_in_app_payload("po.created", {"reason": "Spares"}, 3)
    assert payload["title"] == "Purchase order created"
    assert payload["message"] == "Spares"
    assert payload["description"] == "Spares"
    assert payload["module"] == "purchase_orders"
    assert payload["action_url"] == "/yachts/3/purchase-orders"

    fallback = ntf_services.normalize_in_app_payload("custom.event", None, None)
    assert fallback["title"] == "CUSTOM notification"
    assert fallback["message"] == "A platform update was recorded."
    assert "action_url" not in fallback


# =============================================================================
# 2. 채널 전송
# =============================================================================
@pytest.mark.asyncio
async def test_in_app_dedupe_window(
    db_session: AsyncSession, test_yacht: fleet_models.Yacht, test_captain: usr_models.User
):
    first = await _send(db_session, "in_app", test_captain.id, test_yacht.id)
    assert first.status == "sent"
    assert first.payload["module"] == "documents"

    second = await _send(db_session, "in_app", test_captain.id, test_yacht.id)
    assert second == {"status": "skipped", "reason": "dedupe_window"}

    other_key = await _send(db_session, "in_app", test_captain.id, test_yacht.id, dedupe_key="doc-2-expiry")
    assert other_key.status == "sent"


@pytest.mark.asyncio
async def test_blocked_channel_records_skipped_row(
    db_session: AsyncSession, test_yacht: fleet_models.Yacht, test_captain: usr_models.User
):
    await _save_preference(db_session, test_captain.id, in_app_enabled=False)

    result = await _send(db_session, "in_app", test_captain.id, test_yacht.id)
    assert result.status == "skipped"
    assert result.error == "channel_disabled_in_app"

    email = await _send(db_session, "email", test_captain.id, test_yacht.id)
    assert email.status == "skipped"
    assert email.error == "channel_disabled_email"


@pytest.mark.asyncio
async def test_email_and_push_delivery(
    db_session: AsyncSession, test_yacht: fleet_models.Yacht, test_captain: usr_models.User
):
    await _save_preference(db_session, test_captain.id, email_enabled=True, push_enabled=True)

    email = await _send(db_session, "email", test_captain.id, test_yacht.id)
    assert email.status == "sent"
    assert email.sent_at is not None
    assert await _send(db_session, "email", test_captain.id, test_yacht.id) == {
        "status": "skipped", "reason": "dedupe_window",
    }

    push = await _send(db_session, "push", test_captain.id, test_yacht.id)
    assert push.status == "skipped"
    assert push.error == "push_disabled"

    assert await _send(db_session, "sms", test_captain.id, test_yacht.id) is None


# =============================================================================
# 3. 수신함 API
# =============================================================================
@pytest.mark.asyncio
async def test_inbox_lists_newest_first(
    captain_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
):
    await _send(db_session, "in_app", test_captain.id, test_yacht.id, dedupe_key="a")
    await _send(db_session, "in_app", test_captain.id, test_yacht.id, dedupe_key="b")
    await _send(db_session, "in_app", test_captain.id, test_yacht.id, dedupe_key="c")

    response = await captain_client.get("/api/v1/ntf/in-app", params={"limit": 2})
    assert response.status_code == 200
    assert [item["dedupe_key"] for item in response.json()] == ["c", "b"]
    assert response.json()[0]["payload"]["action_url"] == f"/yachts/{test_yacht.id}/documents"


@pytest.mark.asyncio
async def test_inbox_user_scope(
    crew_client: AsyncClient,
    management_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
):
    await _send(db_session, "in_app", test_captain.id, test_yacht.id)

    forbidden = await crew_client.get(f"/api/v1/ntf/in-app/{test_captain.id}")
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "Forbidden user scope"

    allowed = await management_client.get(f"/api/v1/ntf/in-app/{test_captain.id}")
    assert allowed.status_code == 200
    assert len(allowed.json()) == 1


@pytest.mark.asyncio
async def test_mark_read(
    captain_client: AsyncClient,
    crew_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
):
    event = await _send(db_session, "in_app", test_captain.id, test_yacht.id)

    not_mine = await crew_client.patch(f"/api/v1/ntf/{event.id}/read")
    assert not_mine.status_code == 403
    assert not_mine.json()["detail"] == "Forbidden notification scope"

    missing = await captain_client.patch("/api/v1/ntf/9999/read")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Notification not found"

    response = await captain_client.patch(f"/api/v1/ntf/{event.id}/read")
    assert response.status_code == 200
    assert response.json()["status"] == "read"
    assert response.json()["read_at"] is not None

    # 읽은 알림도 중복 방지 창에 포함됩니다.
    again = await _send(db_session, "in_app", test_captain.id, test_yacht.id)
    assert again == {"status": "skipped", "reason": "dedupe_window"}


# =============================================================================
# 4. 수신 설정 API
# =============================================================================
@pytest.mark.asyncio
async def test_preference_defaults_and_upsert(crew_client: AsyncClient, test_crew: usr_models.User):
    default = await crew_client.get("/api/v1/ntf/settings")
    assert default.status_code == 200
    assert default.json() == {"user_id": test_crew.id, **ntf_services.DEFAULT_PREFERENCE}

    saved = await crew_client.post("/api/v1/ntf/settings", json={
        "timezone": "  ",
        "email_enabled": True,
        "window_start": "07:00",
        "window_end": "22:00",
        "min_severity": "warn",
        "yachts_scope": [1],
    })
    assert saved.status_code == 200
    body = saved.json()
    assert body["timezone"] == "UTC"
    assert body["email_enabled"] is True
    assert body["min_severity"] == "warn"

    updated = await crew_client.post("/api/v1/ntf/settings", json={"min_severity": "critical"})
    assert updated.json()["min_severity"] == "critical"
    assert updated.json()["email_enabled"] is False


@pytest.mark.asyncio
async def test_preference_user_scope(
    crew_client: AsyncClient,
    management_client: AsyncClient,
    db_session: AsyncSession,
    test_captain: usr_models.User,
):
    forbidden = await crew_client.post(f"/api/v1/ntf/settings/{test_captain.id}", json={"in_app_enabled": False})
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "Forbidden user scope"

    allowed = await management_client.post(f"/api/v1/ntf/settings/{test_captain.id}", json={"in_app_enabled": False})
    assert allowed.status_code == 200

    resolved = await preference_crud.resolve(db_session, user_id=test_captain.id)
    assert resolved["in_app_enabled"] is False

    readable = await management_client.get(f"/api/v1/ntf/settings/{test_captain.id}")
    assert readable.json()["in_app_enabled"] is False


# =============================================================================
# 5. 이메일 수신자 / 발송 이력
# =============================================================================
@pytest.mark.asyncio
async def test_email_recipients_for_yacht(
    captain_client: AsyncClient,
    user_factory,
    test_yacht: fleet_models.Yacht,
    test_crew: usr_models.User,
):
    await user_factory(
        "bosun@example.com", usr_models.UserRole.CREW_MEMBER, full_name="Ben Bosun",
        yacht=test_yacht, role_name_override="HoD",
    )

    response = await captain_client.get("/api/v1/ntf/email/recipients", params={"yacht_id": test_yacht.id})
    assert response.status_code == 200
    assert [(item["full_name"], item["role"]) for item in response.json()] == [
        ("Ben Bosun", "HoD"), ("Carl Captain", "Captain"), ("Cory Crew", "Crew Member"),
    ]


@pytest.mark.asyncio
async def test_email_logs_filters(
    captain_client: AsyncClient,
    crew_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
    test_crew: usr_models.User,
):
    await _save_preference(db_session, test_captain.id, email_enabled=True)
    await _send(db_session, "email", test_captain.id, test_yacht.id)
    await _send(db_session, "email", test_crew.id, test_yacht.id)

    invalid = await captain_client.get("/api/v1/ntf/email/logs", params={"status": "bounced"})
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid email status"

    sent = (await captain_client.get("/api/v1/ntf/email/logs", params={"status": "SENT"})).json()
    assert [(item["recipient_email"], item["subject"]) for item in sent] == [
        ("captain@example.com", "Safety certificate expiring"),
    ]

    by_recipient = (await captain_client.get("/api/v1/ntf/email/logs", params={"recipient": "cory"})).json()
    assert [(item["status"], item["error"], item["module"]) for item in by_recipient] == [
        ("skipped", "channel_disabled_email", "documents"),
    ]

    forbidden = await crew_client.get("/api/v1/ntf/email/logs")
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "Insufficient role"

    rows = (await db_session.execute(
        select(ntf_models.NotificationEvent).where(ntf_models.NotificationEvent.channel == "email")
    )).scalars().all()
    assert len(rows) == 2
