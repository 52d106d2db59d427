# yachtpms/domains/inv/__init__.py

"""
'inv' 도메인 패키지입니다.

요트별 소모품/예비품 재고와 입출고 이력을 관리하고,
재고가 최소 수량 이하로 내려가면 경보와 알림을 보냅니다.

주요 서브모듈:
- `models.py`: inventory_items, inventory_movements 테이블.
- `schemas.py`: 요청/응답 스키마.
- `crud.py`: 재고 계산, 경보 동기화, 알림 발송.
- `routers.py`: /inv 하위 API 엔드포인트.
"""
