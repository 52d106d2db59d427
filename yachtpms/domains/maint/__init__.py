# yachtpms/domains/maint/__init__.py

"""
'maint' 도메인 패키지입니다.

정비 작업의 생성, 승인 흐름, 완료 처리와 증빙 자료를 관리합니다.

주요 서브모듈:
- `models.py`: maintenance_tasks, maintenance_evidences 테이블.
- `schemas.py`: 요청/응답 스키마.
- `crud.py`: 작업 흐름, 경보 동기화, 알림 발송.
- `routers.py`: /maint 하위 API 엔드포인트.
"""
