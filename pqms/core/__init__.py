# pqms/core/__init__.py

"""
애플리케이션 전반에서 사용되는 핵심 구성 요소 패키지입니다.

- `config.py`: 설정 및 환경 변수 관리 (Pydantic Settings).
- `database.py`: 비동기 엔진, 세션 팩토리, 트랜잭션 범위 헬퍼.
- `crud_base.py`: 공통 비동기 CRUD 기본 클래스.
- `exceptions.py`: 도메인 오류 분류 (validation / not_found / conflict / gateway).
- `gateway.py`: 서비스 간 동기 요청/응답 게이트웨이.
- `dependencies.py`: FastAPI 의존성 주입 함수.
"""

__all__ = []
