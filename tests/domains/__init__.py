# tests/domains/__init__.py

"""
Yacht PMS 도메인별 테스트 스위트 패키지입니다.

- `test_usr_n.py`: 인증, 사용자, 요트 접근 지정
- `test_fleet_n.py`: 요트, 요트 접근 권한, 엔진 상태
- `test_logbook_n.py`: 항해일지 작성/제출/검토
- `test_maint_n.py`: 정비 작업과 증빙
- `test_docs_n.py`: 선박 문서와 승인 흐름
- `test_hrm_n.py`: 승무원 명부와 급여 기록
- `test_po_n.py`: 발주서 흐름
- `test_shared_n.py`: 경보 및 감사 이력
- `test_ntf_*.py`: 알림 발송, 규칙, 주기 작업, 만료/마감 스캔
"""

__title__ = "Yacht PMS Domain Tests"
__all__ = []
