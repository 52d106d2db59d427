# yachtpms/domains/__init__.py

"""
비즈니스 도메인 패키지 모음입니다.

- usr: 사용자, 인증, 요트 접근 권한 지정
- fleet: 요트, 요트 접근 권한, 엔진 및 엔진 카운터
- logbook: 일일 항해일지와 엔진 계측값
- maint: 정비 작업
- docs: 선박 문서 및 버전
- hrm: 근무 일정, 휴식 시간 신고, 휴가, 급여
- po: 구매 주문
- ntf: 알림 규칙, 채널 전송, 예약 작업
- shared: 경보(Alert), 감사 이력(Audit)
"""
