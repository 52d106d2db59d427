# yachtpms/domains/docs/__init__.py

"""
'docs' 도메인 패키지입니다.

선박 증서/보험 등 문서, 파일 버전, 승인 흐름과 만료 경보를 관리합니다.
"""
