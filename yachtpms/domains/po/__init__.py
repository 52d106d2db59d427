# yachtpms/domains/po/__init__.py

"""
'po' 도메인 패키지입니다.

구매 주문(Purchase Order)의 작성, 승인, 발주, 입고 흐름을 관리합니다.
"""
