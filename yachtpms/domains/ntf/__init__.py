# yachtpms/domains/ntf/__init__.py

"""
'ntf' 도메인 패키지입니다. 알림 파이프라인의 핵심입니다.

주요 서브모듈:
- `catalog.py`: 모듈별 이벤트 카탈로그와 심각도 순위.
- `channels.py`: 이메일/푸시 전송 공급자.
- `rules.py`: 규칙 평가용 순수 함수 (범위, 조건, 템플릿, 중복 키, 주기).
- `services.py`: 채널 전송, 수신 설정, 수신함, 규칙 관리와 후보 이벤트 배포.
- `jobs.py`: 주기 작업 정의, 실행, 리마인더.
- `rule_engine.py`: 매시 문서 만료/정비 기한 점검.
- `tasks.py`: ARQ 워커 작업 함수.
- `routers.py`: /ntf 하위 API 엔드포인트.
"""
