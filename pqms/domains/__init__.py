# pqms/domains/__init__.py

"""
PQMS 도메인 패키지입니다.

- qc: 시험 카탈로그, 시료 수명주기, 결과 판정 (PostgreSQL 'qc' 스키마)
- qa: QA 릴리스와 최종 판정 (PostgreSQL 'qa' 스키마)
- inv: 판정 이벤트를 받아 로트 재고 상태를 반영 (PostgreSQL 'inv' 스키마)
"""
