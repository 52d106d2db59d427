# yachtpms/domains/usr/__init__.py

"""
'usr' 도메인 패키지입니다.

시스템 사용자, 로그인(JWT 발급), 사용자별 요트 접근 지정을 관리합니다.

주요 서브모듈:
- `models.py`: users 테이블과 UserRole Enum.
- `schemas.py`: 요청/응답 스키마 및 토큰 스키마.
- `crud.py`: 사용자 생성/인증/상태 변경, 요트 접근 목록 교체.
- `routers.py`: /usr 하위 API 엔드포인트.
"""
