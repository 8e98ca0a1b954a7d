# pqms/domains/qa/__init__.py

"""
'qa' 도메인 패키지입니다.

완료된 시료를 릴리스(Release)로 받아 체크리스트 검토 후 최종 판정을 내리고,
판정 이벤트를 재고/배치 도메인으로 전달합니다.
"""
