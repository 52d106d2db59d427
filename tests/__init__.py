# tests/__init__.py

"""
Yacht PMS API 테스트 스위트 패키지입니다.

- `conftest.py`: 요트/사용자/로그인 클라이언트 등 공용 fixture와 테스트용 sqlite 엔진.
- `test_main.py`: 루트 및 헬스 체크 엔드포인트.
- `domains/`: 업무 도메인별 통합 테스트 (`test_<도메인>_n.py`).
"""

__title__ = "Yacht PMS API Tests"
__description__ = "Test suite for the Yacht PMS FastAPI application."
__version__ = "0.1.0"
__all__ = []
