# yachtpms/domains/fleet/__init__.py

"""
'fleet' 도메인 패키지입니다.

요트, 사용자별 요트 접근 권한, 엔진과 엔진 누적 운전시간을 관리합니다.
"""
