# yachtpms/domains/timeline/__init__.py

"""
'timeline' 도메인 패키지입니다.

경보, 문서 만료, 정비 마감, 발주 입고 예정, 주기 작업, 항해일지를
하나의 일정(agenda) 목록으로 모아 요트별/선단 전체로 보여줍니다.
테이블은 없고 다른 도메인의 모델을 읽기만 합니다.
"""
