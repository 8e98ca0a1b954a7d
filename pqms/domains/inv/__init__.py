# pqms/domains/inv/__init__.py

"""
'inv' 도메인 패키지입니다.

QA 판정 이벤트를 받아 입고 품목/배치의 재고 상태(처분)를 기록합니다.
"""
