# yachtpms/__init__.py

"""
요트 선단 계획정비시스템(PMS) FastAPI 애플리케이션의 메인 패키지입니다.

이 패키지는 애플리케이션 진입점(main.py), 공통 설정/DB/보안을 담는 core
서브패키지, 그리고 각 업무 도메인(usr, fleet, logbook, maint, docs, hrm, po,
ntf, shared)을 담는 domains 서브패키지로 구성됩니다.
"""

APP_NAME = "Yacht PMS API"
APP_VERSION = "0.1.0"
API_PREFIX = "/api/v1"  # API 라우트의 공통 접두사 (main.py에서 적용)

__version__ = APP_VERSION
__title__ = APP_NAME
__description__ = "Yacht fleet Planned Maintenance System (PMS) API backend."
__license__ = "MIT"
__all__ = []
