# pqms/__init__.py

"""
PQMS(Pharmaceutical Quality Management System) FastAPI 애플리케이션의 메인 패키지입니다.

입고/생산된 로트가 QC 시험을 거쳐 QA 판정(Release / Reject / Hold)을 받기까지의
파이프라인을 구현합니다. 공통 설정, 데이터베이스, 서비스 간 게이트웨이를 담는 core 서브패키지,
각 도메인(qc, qa, inv)을 대표하는 domains 서브패키지, 그리고 서비스 조립을 담당하는
services 서브패키지로 구성됩니다.
"""

APP_NAME = "PQMS FastAPI API"
APP_VERSION = "0.1.0"
API_PREFIX = "/api/v1"  # API 라우트의 공통 접두사 (main.py에서 적용)

__version__ = APP_VERSION
__title__ = APP_NAME
__description__ = "Pharmaceutical QC to QA release pipeline backend."
__all__ = []
