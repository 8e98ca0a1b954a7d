# tests/domains/__init__.py

"""
PQMS 도메인별 테스트 스위트 패키지입니다.

각 모듈은 하나의 도메인(qc, qa, inv)의 모델, CRUD, 서비스 동작을 검증합니다.
"""
