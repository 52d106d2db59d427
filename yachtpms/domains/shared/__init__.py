# yachtpms/domains/shared/__init__.py

"""
'shared' 도메인 패키지입니다.

여러 도메인이 함께 사용하는 경보(Alert), 감사 이력(AuditEvent), 큐 엔드포인트를 포함합니다.
"""
