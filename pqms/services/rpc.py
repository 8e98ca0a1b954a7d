# pqms/services/rpc.py

"""
서비스 간 메시지 패턴 엔드포인트 (`POST /rpc/{pattern}`) 모듈입니다.

HttpGateway가 원격 서비스의 작업을 호출할 때 사용하는 경로입니다.
오류는 애플리케이션 예외 핸들러가 {"kind", "detail", "retryable"} 형태로 직렬화합니다.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from pqms.core import dependencies as deps
from pqms.services.container import ServiceContainer

router = APIRouter(tags=["RPC (서비스 간 메시지)"])


@router.get("", summary="등록된 메시지 패턴 목록")
async def list_patterns(services: ServiceContainer = Depends(deps.get_services)) -> Dict[str, str]:
    return services.registry.patterns


@router.post("/{pattern}", summary="메시지 패턴 실행")
async def dispatch(
    pattern: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    services: ServiceContainer = Depends(deps.get_services),
) -> Any:
    return await services.registry.dispatch(pattern, payload or {})
