# tests/domains/test_usr_n.py

"""
'usr' 도메인 (인증, 사용자 관리, 요트 접근 지정) 관련 API 엔드포인트에 대한 통합 테스트 모듈입니다.
"""

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.domains.usr import models as usr_models
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.shared import models as shared_models


# =============================================================================
# 1. 인증 (Authentication) 엔드포인트 테스트
# =============================================================================
@pytest.mark.asyncio
async def test_login_success_and_me(client: AsyncClient, test_captain: usr_models.User):
    """이메일/비밀번호로 토큰을 발급받고 /auth/me로 본인 정보를 조회합니다."""
    response = await client.post(
        "/api/v1/usr/auth/token",
        data={"username": "CAPTAIN@example.com", "password": "testpass123"},
    )
    assert response.status_code == 200
    token = response.json()
    assert token["token_type"] == "bearer"

    me = await client.get("/api/v1/usr/auth/me", headers={"Authorization": f"Bearer {token['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "captain@example.com"
    assert me.json()["role"] == "Captain"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_captain: usr_models.User):
    response = await client.post(
        "/api/v1/usr/auth/token",
        data={"username": "captain@example.com", "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect username or password"


@pytest.mark.asyncio
async def test_login_inactive_user(client: AsyncClient, user_factory):
    """비활성 계정은 로그인할 수 없습니다."""
    await user_factory("sleepy@example.com", usr_models.UserRole.CREW_MEMBER, is_active=False)
    response = await client.post(
        "/api/v1/usr/auth/token",
        data={"username": "sleepy@example.com", "password": "testpass123"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Inactive user"


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    response = await client.get("/api/v1/usr/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


# =============================================================================
# 2. 사용자 (User) 관리 엔드포인트 테스트
# =============================================================================
@pytest.mark.asyncio
async def test_create_user_system_admin(system_admin_client: AsyncClient, db_session: AsyncSession):
    """SystemAdmin은 사용자를 생성할 수 있으며, 이메일은 소문자로 저장되고 감사 이력이 남습니다."""
    payload = {
        "email": "New.Deckhand@Example.com",
        "full_name": "New Deckhand",
        "password": "deckhand123",
        "role_name": "Steward",
    }
    response = await system_admin_client.post("/api/v1/usr/users", json=payload)
    assert response.status_code == 201
    created = response.json()
    assert created["email"] == "new.deckhand@example.com"
    # 과거 역할 이름은 현재 역할로 정규화됩니다.
    assert created["role"] == "Crew Member"
    assert "password_hash" not in created

    events = (await db_session.execute(
        select(shared_models.AuditEvent).where(
            shared_models.AuditEvent.entity_type == "User",
            shared_models.AuditEvent.entity_id == str(created["id"]),
        )
    )).scalars().all()
    assert [event.action for event in events] == ["create"]
    assert "password_hash" not in (events[0].after_json or {})


@pytest.mark.asyncio
async def test_create_user_duplicate_and_invalid_role(system_admin_client: AsyncClient, test_captain):
    duplicate = await system_admin_client.post("/api/v1/usr/users", json={
        "email": "captain@example.com", "full_name": "Dup", "password": "password123", "role_name": "Captain",
    })
    assert duplicate.status_code == 409

    invalid = await system_admin_client.post("/api/v1/usr/users", json={
        "email": "pilot@example.com", "full_name": "Pilot", "password": "password123", "role_name": "Pilot",
    })
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid role"


@pytest.mark.asyncio
async def test_create_user_forbidden_for_admin(admin_client: AsyncClient):
    """사용자 생성은 SystemAdmin 전용입니다."""
    response = await admin_client.post("/api/v1/usr/users", json={
        "email": "nope@example.com", "full_name": "Nope", "password": "password123", "role_name": "Crew Member",
    })
    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient role"


@pytest.mark.asyncio
async def test_list_users_with_search(management_client: AsyncClient, test_captain, test_crew):
    response = await management_client.get("/api/v1/usr/users", params={"q": "carl"})
    assert response.status_code == 200
    users = response.json()
    assert [u["email"] for u in users] == ["captain@example.com"]
    assert users[0]["active_yacht_count"] == 1


@pytest.mark.asyncio
async def test_list_users_forbidden_for_crew(crew_client: AsyncClient):
    response = await crew_client.get("/api/v1/usr/users")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_user_status(system_admin_client: AsyncClient, test_system_admin, test_crew):
    """사용자를 비활성화할 수 있지만 본인 계정은 비활성화할 수 없습니다."""
    response = await system_admin_client.patch(
        f"/api/v1/usr/users/{test_crew.id}/status", json={"is_active": False}
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    self_response = await system_admin_client.patch(
        f"/api/v1/usr/users/{test_system_admin.id}/status", json={"is_active": False}
    )
    assert self_response.status_code == 400
    assert self_response.json()["detail"] == "You cannot deactivate your own user"


# =============================================================================
# 3. 요트 접근 지정 (Assignments) 테스트
# =============================================================================
@pytest.mark.asyncio
async def test_replace_user_accesses(
    system_admin_client: AsyncClient,
    db_session: AsyncSession,
    test_crew: usr_models.User,
    test_yacht: fleet_models.Yacht,
    other_yacht: fleet_models.Yacht,
):
    """
    접근 목록 교체 시 목록에 없는 기존 요트는 회수되고, 새 요트는 생성됩니다.
    """
    response = await system_admin_client.put(
        f"/api/v1/usr/users/{test_crew.id}/accesses",
        json={"assignments": [{"yacht_id": other_yacht.id, "role_name_override": "HoD"}]},
    )
    assert response.status_code == 200
    body = response.json()
    by_yacht = {row["yacht_id"]: row for row in body["accesses"]}
    assert by_yacht[other_yacht.id]["revoked_at"] is None
    assert by_yacht[other_yacht.id]["role_name_override"] == "HoD"
    assert by_yacht[test_yacht.id]["revoked_at"] is not None

    active = await system_admin_client.get(f"/api/v1/usr/users/{test_crew.id}/accesses")
    assert [row["yacht_id"] for row in active.json()["accesses"]] == [other_yacht.id]

    # 다시 원래 요트를 지정하면 회수된 행이 재활성화됩니다.
    response = await system_admin_client.put(
        f"/api/v1/usr/users/{test_crew.id}/accesses",
        json={"assignments": [{"yacht_id": test_yacht.id}]},
    )
    assert response.status_code == 200
    rows = (await db_session.execute(
        select(fleet_models.UserYachtAccess).where(fleet_models.UserYachtAccess.user_id == test_crew.id)
    )).scalars().all()
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_replace_user_accesses_validation(system_admin_client: AsyncClient, test_crew, test_yacht):
    unknown = await system_admin_client.put(
        f"/api/v1/usr/users/{test_crew.id}/accesses",
        json={"assignments": [{"yacht_id": 9999}]},
    )
    assert unknown.status_code == 400
    assert unknown.json()["detail"] == "Invalid yachtIds: 9999"

    bad_role = await system_admin_client.put(
        f"/api/v1/usr/users/{test_crew.id}/accesses",
        json={"assignments": [{"yacht_id": test_yacht.id, "role_name_override": "Bosun"}]},
    )
    assert bad_role.status_code == 400
    assert bad_role.json()["detail"] == "Invalid role overrides: Bosun"

    missing_user = await system_admin_client.put("/api/v1/usr/users/9999/accesses", json={"assignments": []})
    assert missing_user.status_code == 404
