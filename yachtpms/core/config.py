# yachtpms/core/config.py

from typing import Any, List
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
import os

# 프로젝트의 루트 디렉토리 경로를 계산합니다.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Settings(BaseSettings):
    """
    애플리케이션의 모든 설정을 정의하는 Pydantic BaseSettings 모델입니다.
    환경 변수 및 .env 파일에서 값을 자동으로 로드합니다.
    """

    # --- Pydantic Settings 설정 ---
    model_config = SettingsConfigDict(
        env_file=os.path.join(BASE_DIR, '.env'),  # 프로젝트 루트의 .env 파일
        env_file_encoding='utf-8',
        extra='ignore',                      # 모델에 없는 변수는 무시
        case_sensitive=True                  # 환경 변수 이름 대소문자 구분
    )

    # --- 애플리케이션 기본 설정 ---
    APP_NAME: str = "Yacht PMS API"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Yacht fleet Planned Maintenance System (PMS) API"
    APP_ENV: str = Field("development", description="Application environment (development, production, testing)")
    DEBUG_MODE: bool = Field(False, description="Enable debug mode for detailed logging and error messages")

    # --- 데이터베이스 설정 ---
    # 운영: postgresql+asyncpg://..., 테스트/로컬: sqlite+aiosqlite://...
    DATABASE_URL: SecretStr = Field(..., description="Async database connection URL")

    # --- JWT (JSON Web Token) 설정 ---
    SECRET_KEY: SecretStr = Field(..., description="Secret key for JWT token signing. Keep this highly secure!")
    ALGORITHM: str = Field("HS256", description="Algorithm used for JWT signing (e.g., HS256)")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(30, description="Access token expiration time in minutes")

    # --- ARQ (Redis) 설정 ---
    REDIS_HOST: str = Field("localhost", description="Redis host for the ARQ worker pool")
    REDIS_PORT: int = Field(6379, description="Redis port for the ARQ worker pool")

    # --- 알림 채널 설정 ---
    EMAIL_ENABLED: bool = Field(False, description="Deliver e-mail notifications through EMAIL_PROVIDER")
    EMAIL_PROVIDER: str = Field("mock", description="E-mail provider: mock, smtp or brevo")
    EMAIL_FROM: str = Field("no-reply@yachtpms.local", description="Sender address for e-mail notifications")
    PUSH_ENABLED: bool = Field(False, description="Deliver push notifications (no provider is wired yet)")

    # --- CORS ---
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    def model_post_init(self, __context: Any) -> None:  # noqa: ANN001
        # 공급자 이름은 소문자로 통일합니다.
        self.EMAIL_PROVIDER = (self.EMAIL_PROVIDER or "mock").strip().lower()


settings = Settings()
