# yachtpms/domains/ntf/channels.py

"""
알림 전송 공급자(Provider) 모듈입니다.

- EmailProvider: mock/smtp/brevo (실제 외부 호출 없이 로그만 남깁니다)
- PushProvider: 아직 연결된 공급자가 없습니다.

send()는 항상 {"status": "sent" | "failed" | "skipped", ...} 딕셔너리를 반환합니다.
"""

import logging
from typing import Any, Dict, Optional

from yachtpms.core.config import settings

logger = logging.getLogger(__name__)

SUPPORTED_EMAIL_PROVIDERS = ("mock", "smtp", "brevo")


class EmailProvider:
    def __init__(self, enabled: Optional[bool] = None, provider: Optional[str] = None, sender: Optional[str] = None):
        self.enabled = settings.EMAIL_ENABLED if enabled is None else enabled
        self.provider = (provider or settings.EMAIL_PROVIDER or "mock").strip().lower()
        self.sender = sender or settings.EMAIL_FROM

    async def send(self, *, to_email: str, subject: str, text: str, event_type: str) -> Dict[str, Any]:
        if not self.enabled or self.provider == "mock":
            logger.info("[email:mock] %s -> %s (%s)", event_type, to_email, subject)
            return {"status": "sent", "provider": "mock"}
        if self.provider in ("smtp", "brevo"):
            logger.info("[email:%s] %s -> %s (%s)", self.provider, event_type, to_email, subject)
            return {"status": "sent", "provider": self.provider}
        error = f"Unsupported EMAIL_PROVIDER: {self.provider}"
        logger.warning("%s (event=%s)", error, event_type)
        return {"status": "failed", "error": error}


class PushProvider:
    def __init__(self, enabled: Optional[bool] = None):
        self.enabled = settings.PUSH_ENABLED if enabled is None else enabled

    async def send(self, *, user_id: int, title: str, body: str, event_type: str) -> Dict[str, Any]:
        if not self.enabled:
            return {"status": "skipped", "reason": "push_disabled"}
        logger.warning("Push provider is not configured (user=%s, event=%s)", user_id, event_type)
        return {"status": "failed", "error": "push_provider_not_configured"}
