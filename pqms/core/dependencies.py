# pqms/core/dependencies.py

"""
FastAPI 애플리케이션의 의존성 주입(Dependency Injection)을 정의하는 모듈입니다.

- 서비스 컨테이너 (get_services): 애플리케이션 전체에서 하나만 생성됩니다.
  테스트에서는 `app.dependency_overrides[get_services]`로 교체합니다.
- 데이터베이스 세션은 pqms.core.database.get_session을 직접 사용합니다. (헬스 체크)
"""

from functools import lru_cache
from typing import TYPE_CHECKING

from pqms.core.config import settings
from pqms.core.database import AsyncSessionLocal

if TYPE_CHECKING:
    from pqms.services.container import ServiceContainer


@lru_cache
def get_services() -> "ServiceContainer":
    """기본 세션 팩토리와 설정으로 조립된 서비스 컨테이너를 반환합니다."""
    from pqms.services.container import ServiceContainer

    return ServiceContainer(AsyncSessionLocal, settings)
