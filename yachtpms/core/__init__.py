# yachtpms/core/__init__.py

"""
FastAPI 애플리케이션의 핵심 구성 요소 패키지입니다.

- `config.py`: 환경 변수 기반 설정 (Pydantic Settings).
- `database.py`: 비동기 엔진과 세션 관리 (SQLModel + AsyncSQLAlchemy).
- `database_base.py`: 모델 공통 컬럼 타입 (UTC 타임스탬프, JSON).
- `security.py`: 비밀번호 해싱, JWT, 현재 사용자 획득.
- `rbac.py`: 역할 정규화와 요트 범위(scope) 검사.
- `dependencies.py`: 라우터에서 사용하는 공통 의존성.
- `crud_base.py`: 공통 CRUD 기본 클래스.
- `tasks.py`: ARQ 워커 공통 태스크.
"""

__title__ = "Yacht PMS Core"
__version__ = "0.1.0"
__all__ = []
