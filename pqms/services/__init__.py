# pqms/services/__init__.py

"""
여러 도메인 서비스를 조립하고 서비스 간 메시지 패턴을 노출하는 패키지입니다.
"""
