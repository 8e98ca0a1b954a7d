# pqms/core/gateway.py

"""
서비스 간 동기 요청/응답 게이트웨이 모듈입니다.

각 도메인은 자신이 소유한 작업을 메시지 패턴(예: 'sample.receive')으로
`MessageRegistry`에 등록하고, 다른 도메인은 `ServiceGateway.call()`로만 호출합니다.

- LocalGateway: 같은 프로세스 안에서 레지스트리로 직접 디스패치합니다.
- HttpGateway: httpx로 대상 서비스의 `/rpc/{pattern}` 엔드포인트를 호출합니다.

두 구현 모두 페이로드와 응답을 JSON 호환 dict로 주고받으며,
제한 시간 초과는 GatewayTimeoutError(결과 불명), 원격 오류는 RemoteError로 전달됩니다.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from pqms.core.exceptions import (
    GatewayTimeoutError,
    QmsError,
    RemoteError,
    ValidationError,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]

# 게이트웨이 대상 서비스 이름
CATALOG = "catalog"
SAMPLES = "samples"
RESULTS = "results"
RELEASES = "releases"
INVENTORY = "inventory"


# =============================================================================
# 1. 메시지 레지스트리
# =============================================================================
@dataclass
class Registration:
    target: str
    pattern: str
    handler: Handler
    payload_model: Optional[Type[BaseModel]] = None


class MessageRegistry:
    """메시지 패턴 -> (소유 서비스, 핸들러, 페이로드 스키마) 매핑"""

    def __init__(self):
        self._routes: Dict[str, Registration] = {}

    def register(
        self,
        target: str,
        pattern: str,
        handler: Handler,
        payload_model: Optional[Type[BaseModel]] = None,
    ) -> None:
        if pattern in self._routes:
            raise ValueError(f"Message pattern '{pattern}' is already registered.")
        self._routes[pattern] = Registration(target, pattern, handler, payload_model)

    def lookup(self, pattern: str) -> Optional[Registration]:
        return self._routes.get(pattern)

    @property
    def patterns(self) -> Dict[str, str]:
        return {pattern: reg.target for pattern, reg in self._routes.items()}

    async def dispatch(self, pattern: str, payload: Dict[str, Any]) -> Any:
        """
        패턴에 해당하는 핸들러를 실행하고 JSON 호환 응답을 반환합니다.
        페이로드 스키마 검증 실패는 ValidationError로 변환됩니다.
        """
        registration = self._routes.get(pattern)
        if registration is None:
            raise ValidationError(f"Unknown message pattern '{pattern}'.")

        message: Any = payload
        if registration.payload_model is not None:
            try:
                message = registration.payload_model.model_validate(payload or {})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid payload for '{pattern}': {e.errors(include_url=False)}")

        response = await registration.handler(message)
        return to_jsonable_python(response)


# =============================================================================
# 2. 게이트웨이 추상화
# =============================================================================
class ServiceGateway(ABC):
    """다른 서비스가 소유한 작업을 호출하는 단일 추상화"""

    def __init__(self, default_timeout: float):
        self.default_timeout = default_timeout

    @abstractmethod
    async def call(
        self,
        target: str,
        operation: str,
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """
        `target` 서비스의 `operation`을 호출합니다.

        Raises:
            GatewayTimeoutError: 제한 시간 초과. 원격 작업 결과는 알 수 없습니다.
            RemoteError: 원격 서비스가 오류로 응답했거나 연결할 수 없습니다.
        """


class LocalGateway(ServiceGateway):
    """같은 프로세스의 MessageRegistry로 디스패치하는 게이트웨이"""

    def __init__(self, registry: MessageRegistry, default_timeout: float):
        super().__init__(default_timeout)
        self.registry = registry

    async def call(self, target, operation, payload, timeout=None):
        registration = self.registry.lookup(operation)
        if registration is None or registration.target != target:
            raise RemoteError(
                "unknown_operation",
                f"Service '{target}' does not handle '{operation}'.",
                target=target, operation=operation,
            )

        # 원격 호출과 동일하게 JSON 호환 값만 전달합니다.
        message = to_jsonable_python(payload)
        limit = timeout if timeout is not None else self.default_timeout
        try:
            return await asyncio.wait_for(self.registry.dispatch(operation, message), timeout=limit)
        except asyncio.TimeoutError:
            logger.warning("Gateway call %s -> %s timed out after %.2fs", operation, target, limit)
            raise GatewayTimeoutError(
                f"Call to '{target}' ({operation}) timed out after {limit}s; outcome unknown.",
                target=target, operation=operation,
            )
        except QmsError as e:
            raise RemoteError(e.kind, e.detail, target=target, operation=operation, retryable=e.retryable) from e


class HttpGateway(ServiceGateway):
    """httpx로 원격 서비스의 메시지 패턴 엔드포인트를 호출하는 게이트웨이"""

    def __init__(
        self,
        service_urls: Dict[str, str],
        default_timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(default_timeout)
        self.service_urls = service_urls
        self.transport = transport  # 테스트에서 ASGITransport / MockTransport 주입

    async def call(self, target, operation, payload, timeout=None):
        base_url = self.service_urls.get(target)
        if not base_url:
            raise RemoteError(
                "unknown_target", f"No URL configured for service '{target}'.",
                target=target, operation=operation,
            )

        url = f"{base_url.rstrip('/')}/rpc/{operation}"
        limit = timeout if timeout is not None else self.default_timeout
        try:
            async with httpx.AsyncClient(timeout=limit, transport=self.transport) as client:
                response = await client.post(url, json=to_jsonable_python(payload))
        except httpx.TimeoutException:
            logger.warning("Gateway call %s -> %s timed out after %.2fs", operation, url, limit)
            raise GatewayTimeoutError(
                f"Call to '{target}' ({operation}) timed out after {limit}s; outcome unknown.",
                target=target, operation=operation,
            )
        except httpx.RequestError as e:
            logger.warning("Gateway call %s -> %s failed: %s", operation, url, e)
            raise RemoteError(
                "unavailable", f"Service '{target}' is unreachable: {e}",
                target=target, operation=operation, retryable=True,
            )

        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            raise RemoteError(
                error_data.get("kind", "remote_error"),
                error_data.get("detail", response.text),
                target=target, operation=operation,
                retryable=bool(error_data.get("retryable", response.status_code >= 500)),
            )

        return response.json() if response.content else None


def build_gateway(mode: str, registry: MessageRegistry, service_urls: Dict[str, str], timeout: float) -> ServiceGateway:
    """설정된 GATEWAY_MODE에 맞는 게이트웨이를 생성합니다."""
    if mode == "http":
        return HttpGateway(service_urls, timeout)
    return LocalGateway(registry, timeout)
