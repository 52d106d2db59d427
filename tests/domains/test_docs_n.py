# tests/domains/test_docs_n.py

"""
'docs' 도메인 (요트 문서, 버전, 승인 워크플로) 관련 API 엔드포인트에 대한 통합 테스트 모듈입니다.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from yachtpms.core.database_base import utcnow
from yachtpms.domains.docs import models as docs_models
from yachtpms.domains.docs.crud import compute_status, normalize_doc_type, sanitize_tags
from yachtpms.domains.fleet import models as fleet_models
from yachtpms.domains.ntf import models as ntf_models
from yachtpms.domains.shared import models as shared_models
from yachtpms.domains.usr import models as usr_models


BASE = "/api/v1/docs/documents"

VERSION = {
    "file_url": "https://files.example.com/safety-cert-v1.pdf",
    "file_name": "safety-cert-v1.pdf",
    "mime_type": "application/pdf",
    "size_bytes": 120400,
}


def _doc_payload(yacht_id: int, **overrides):
    payload = {
        "yacht_id": yacht_id,
        "title": "Safety Management Certificate",
        "doc_type": "certificate",
        "expiry_date": (utcnow() + timedelta(days=200)).isoformat(),
        "tags": ["ISM", " ISM ", "Flag"],
    }
    payload.update(overrides)
    return payload


async def _alert(db: AsyncSession, dedupe_key: str):
    return (await db.execute(
        select(shared_models.Alert).where(shared_models.Alert.dedupe_key == dedupe_key)
    )).scalars().first()


# =============================================================================
# 1. 순수 헬퍼
# =============================================================================
def test_document_helpers():
    now = utcnow()
    assert normalize_doc_type(" port  clearance ") == "PORT_CLEARANCE"
    assert normalize_doc_type(None) == "OTHER"
    assert sanitize_tags(["ISM", " ISM ", "", "Flag"]) == ["ISM", "Flag"]

    assert compute_status(None, now) == "Active"
    assert compute_status(now - timedelta(hours=1), now) == "Expired"
    assert compute_status(now + timedelta(days=30), now) == "Expiring Soon"
    assert compute_status(now + timedelta(days=31), now) == "Active"


# =============================================================================
# 2. 생성 / 조회
# =============================================================================
@pytest.mark.asyncio
async def test_create_document_with_initial_version(
    engineer_client: AsyncClient,
    db_session: AsyncSession,
    test_yacht: fleet_models.Yacht,
    test_engineer: usr_models.User,
    test_captain: usr_models.User,
):
    """초기 버전과 함께 문서를 등록하면 종류가 정규화되고 승인권자에게 알림이 갑니다."""
    response = await engineer_client.post(BASE, json=_doc_payload(test_yacht.id, initial_version=VERSION))
    assert response.status_code == 201
    document = response.json()
    assert document["doc_type"] == "CERTIFICATE"
    assert document["tags"] == ["ISM", "Flag"]
    assert document["status"] == "Active"
    assert document["workflow_status"] == "draft"
    assert document["confidentiality"] == "crew_only"
    assert document["current_version"]["version_no"] == 1
    assert document["current_version"]["uploaded_by"] == test_engineer.id
    assert [item["action"] for item in document["audit_trail"]] == ["create_document"]
    assert document["audit_trail"][0]["actor_name"] == "Erin Engineer"

    captain_keys = (await db_session.execute(
        select(ntf_models.NotificationEvent.dedupe_key).where(ntf_models.NotificationEvent.user_id == test_captain.id)
    )).scalars().all()
    assert f"document-{document['id']}-created-{test_captain.id}" in captain_keys


@pytest.mark.asyncio
async def test_create_document_validation(engineer_client: AsyncClient, crew_client: AsyncClient, test_yacht):
    missing_expiry = await engineer_client.post(BASE, json=_doc_payload(test_yacht.id, expiry_date=None))
    assert missing_expiry.status_code == 400
    assert missing_expiry.json()["detail"] == "expiry_date is required for document type CERTIFICATE"

    short_title = await engineer_client.post(BASE, json=_doc_payload(test_yacht.id, title=" ab "))
    assert short_title.status_code == 400
    assert short_title.json()["detail"] == "title is required"

    # 만료일이 필요 없는 종류는 그대로 등록됩니다.
    manual = await engineer_client.post(
        BASE, json=_doc_payload(test_yacht.id, title="Engine manual", doc_type="Manual", expiry_date=None)
    )
    assert manual.status_code == 201
    assert manual.json()["status"] == "Active"

    crew_attempt = await crew_client.post(BASE, json=_doc_payload(test_yacht.id))
    assert crew_attempt.status_code == 403


@pytest.mark.asyncio
async def test_expiry_alert_severity(
    engineer_client: AsyncClient, db_session: AsyncSession, test_yacht: fleet_models.Yacht
):
    """30일 이내 만료는 warn, 7일 이내 만료는 critical 경보를 만듭니다."""
    soon = (await engineer_client.post(BASE, json=_doc_payload(
        test_yacht.id, title="Hull insurance", doc_type="INSURANCE",
        expiry_date=(utcnow() + timedelta(days=20)).isoformat(),
    ))).json()
    assert soon["status"] == "Expiring Soon"
    assert (await _alert(db_session, f"document-{soon['id']}-expiry")).severity == "warn"

    urgent = (await engineer_client.post(BASE, json=_doc_payload(
        test_yacht.id, title="Port clearance Antibes", doc_type="port clearance",
        expiry_date=(utcnow() + timedelta(days=3)).isoformat(),
    ))).json()
    assert urgent["doc_type"] == "PORT_CLEARANCE"
    assert (await _alert(db_session, f"document-{urgent['id']}-expiry")).severity == "critical"

    far = (await engineer_client.post(BASE, json=_doc_payload(test_yacht.id))).json()
    assert await _alert(db_session, f"document-{far['id']}-expiry") is None

    # 만료일을 멀리 옮기면 경보가 해결됩니다.
    await engineer_client.patch(
        f"{BASE}/{soon['id']}", json={"expiry_date": (utcnow() + timedelta(days=300)).isoformat()}
    )
    assert (await _alert(db_session, f"document-{soon['id']}-expiry")).resolved_at is not None


@pytest.mark.asyncio
async def test_list_documents_filters_and_paging(
    engineer_client: AsyncClient, test_yacht: fleet_models.Yacht
):
    await engineer_client.post(BASE, json=_doc_payload(
        test_yacht.id, title="Radio licence", doc_type="LICENCE", expiry_date=None, identifier="RL-77"
    ))
    await engineer_client.post(BASE, json=_doc_payload(
        test_yacht.id, title="P&I insurance", doc_type="INSURANCE",
        expiry_date=(utcnow() + timedelta(days=12)).isoformat(),
    ))
    await engineer_client.post(BASE, json=_doc_payload(test_yacht.id))

    missing_yacht = await engineer_client.get(BASE)
    assert missing_yacht.status_code == 400

    page = (await engineer_client.get(BASE, params={"yacht_id": test_yacht.id, "page_size": 2})).json()
    assert page["total"] == 3
    assert page["total_pages"] == 2
    # 만료일 오름차순, 만료일 없는 문서는 마지막
    assert [item["title"] for item in page["items"]] == ["P&I insurance", "Safety Management Certificate"]

    search = (await engineer_client.get(BASE, params={"yacht_id": test_yacht.id, "search": "rl-77"})).json()
    assert [item["title"] for item in search["items"]] == ["Radio licence"]

    expiring = (await engineer_client.get(
        BASE, params={"yacht_id": test_yacht.id, "expiring_in_days": 30}
    )).json()
    assert [item["title"] for item in expiring["items"]] == ["P&I insurance"]

    summary = (await engineer_client.get(f"{BASE}/summary/{test_yacht.id}")).json()
    assert summary["total"] == 3
    assert summary["active"] == 2
    assert summary["expiring_soon"] == 1
    assert summary["expiring_in_30"] == 1
    assert summary["expiring_in_7"] == 0
    assert summary["drafts"] == 3

    window = (await engineer_client.get(f"{BASE}/expiring/{test_yacht.id}", params={"days": 9999})).json()
    assert [item["title"] for item in window] == ["P&I insurance", "Safety Management Certificate"]


@pytest.mark.asyncio
async def test_document_out_of_scope(captain_client: AsyncClient, db_session: AsyncSession, other_yacht):
    foreign = docs_models.Document(yacht_id=other_yacht.id, title="Foreign cert", doc_type="OTHER")
    db_session.add(foreign)
    await db_session.commit()

    response = await captain_client.get(f"{BASE}/{foreign.id}")
    assert response.status_code == 403
    assert response.json()["detail"] == "Yacht scope violation"

    missing = await captain_client.get(f"{BASE}/9999")
    assert missing.status_code == 404


# =============================================================================
# 3. 워크플로 (제출 / 승인 / 반려 / 보관 / 삭제)
# =============================================================================
@pytest.mark.asyncio
async def test_submit_requires_version(engineer_client: AsyncClient, test_yacht: fleet_models.Yacht):
    document = (await engineer_client.post(BASE, json=_doc_payload(test_yacht.id))).json()
    response = await engineer_client.post(f"{BASE}/{document['id']}/submit")
    assert response.status_code == 409
    assert response.json()["detail"] == "Document requires at least one version before submit"


@pytest.mark.asyncio
async def test_approval_locks_document(
    engineer_client: AsyncClient,
    captain_client: AsyncClient,
    admin_client: AsyncClient,
    test_yacht: fleet_models.Yacht,
    test_captain: usr_models.User,
):
    """승인된 문서는 잠기고, Admin만 수정하거나 새 버전을 올릴 수 있습니다."""
    doc_id = (await engineer_client.post(
        BASE, json=_doc_payload(test_yacht.id, initial_version=VERSION)
    )).json()["id"]

    submitted = await engineer_client.post(f"{BASE}/{doc_id}/submit", json={"reason": "Renewed by flag"})
    assert submitted.status_code == 200
    assert submitted.json()["workflow_status"] == "submitted"
    assert submitted.json()["workflow_reason"] == "Renewed by flag"

    engineer_approve = await engineer_client.post(f"{BASE}/{doc_id}/approve")
    assert engineer_approve.status_code == 403

    approved = await captain_client.post(f"{BASE}/{doc_id}/approve")
    assert approved.status_code == 200
    body = approved.json()
    assert body["workflow_status"] == "approved"
    assert body["workflow_reason"] == "Document approved"
    assert body["approved_by_user_id"] == test_captain.id
    assert body["locked_at"] is not None

    blocked = await engineer_client.patch(f"{BASE}/{doc_id}", json={"notes": "typo"})
    assert blocked.status_code == 409
    assert blocked.json()["detail"] == "Document is locked and cannot be edited"

    blocked_version = await engineer_client.post(f"{BASE}/{doc_id}/versions", json=VERSION)
    assert blocked_version.status_code == 409

    resubmit = await engineer_client.post(f"{BASE}/{doc_id}/submit")
    assert resubmit.status_code == 409
    assert resubmit.json()["detail"] == "Approved document cannot be re-submitted"

    new_version = await admin_client.post(
        f"{BASE}/{doc_id}/versions", json={**VERSION, "file_name": "safety-cert-v2.pdf", "note": "Annual endorsement"}
    )
    assert new_version.status_code == 201
    body = new_version.json()
    assert body["workflow_status"] == "draft"
    assert body["workflow_reason"] == "Annual endorsement"
    assert body["locked_at"] is None
    assert body["approved_at"] is None
    assert [v["version_no"] for v in body["versions"]] == [2, 1]
    assert body["current_version"]["file_name"] == "safety-cert-v2.pdf"
    assert [item["action"] for item in body["audit_trail"]][:2] == ["upload_version", "approve_document"]


@pytest.mark.asyncio
async def test_reject_uses_fallback_reason(
    engineer_client: AsyncClient, captain_client: AsyncClient, test_yacht: fleet_models.Yacht
):
    doc_id = (await engineer_client.post(
        BASE, json=_doc_payload(test_yacht.id, initial_version=VERSION)
    )).json()["id"]

    not_submitted = await captain_client.post(f"{BASE}/{doc_id}/reject", json={"reason": "Wrong scan"})
    assert not_submitted.status_code == 409

    await engineer_client.post(f"{BASE}/{doc_id}/submit")
    rejected = await captain_client.post(f"{BASE}/{doc_id}/reject", json={"reason": "no"})
    assert rejected.status_code == 200
    assert rejected.json()["workflow_status"] == "rejected"
    assert rejected.json()["workflow_reason"] == "Document rejected"


@pytest.mark.asyncio
async def test_archive_resolves_alert_and_blocks_versions(
    captain_client: AsyncClient, db_session: AsyncSession, test_yacht: fleet_models.Yacht
):
    doc_id = (await captain_client.post(BASE, json=_doc_payload(
        test_yacht.id, expiry_date=(utcnow() + timedelta(days=10)).isoformat()
    ))).json()["id"]
    assert (await _alert(db_session, f"document-{doc_id}-expiry")).resolved_at is None

    archived = await captain_client.post(f"{BASE}/{doc_id}/archive")
    assert archived.status_code == 200
    assert archived.json()["status"] == "Archived"
    assert archived.json()["workflow_status"] == "archived"
    assert (await _alert(db_session, f"document-{doc_id}-expiry")).resolved_at is not None

    # 이미 보관된 문서는 그대로 반환합니다.
    again = await captain_client.post(f"{BASE}/{doc_id}/archive")
    assert again.status_code == 200
    assert [item["action"] for item in again.json()["audit_trail"]].count("archive_document") == 1

    version = await captain_client.post(f"{BASE}/{doc_id}/versions", json=VERSION)
    assert version.status_code == 409
    assert version.json()["detail"] == "Archived documents cannot receive new versions"


@pytest.mark.asyncio
async def test_delete_document_rules(
    admin_client: AsyncClient, captain_client: AsyncClient, test_yacht: fleet_models.Yacht
):
    draft_id = (await admin_client.post(BASE, json=_doc_payload(test_yacht.id))).json()["id"]
    submitted_id = (await admin_client.post(
        BASE, json=_doc_payload(test_yacht.id, title="Crew list", initial_version=VERSION)
    )).json()["id"]
    await admin_client.post(f"{BASE}/{submitted_id}/submit")

    captain_attempt = await captain_client.delete(f"{BASE}/{draft_id}")
    assert captain_attempt.status_code == 403

    locked = await admin_client.delete(f"{BASE}/{submitted_id}")
    assert locked.status_code == 409
    assert locked.json()["detail"] == "Cannot delete submitted/approved documents"

    deleted = await admin_client.delete(f"{BASE}/{draft_id}")
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True}
    assert (await admin_client.get(f"{BASE}/{draft_id}")).status_code == 404
