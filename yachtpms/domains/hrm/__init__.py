# yachtpms/domains/hrm/__init__.py

"""
'hrm' 도메인 패키지입니다.

승무원 근무 일정, 휴식 시간 신고(MLC 기준 10시간), 휴가 신청과 급여 대장을 관리합니다.
"""
