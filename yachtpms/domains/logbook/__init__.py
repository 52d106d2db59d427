# yachtpms/domains/logbook/__init__.py

"""
'logbook' 도메인 패키지입니다.

일일 항해일지(Log Book) 작성, 제출, 잠금과 엔진 계측값 기록을 담당합니다.
"""
