# tests/test_gateway.py

"""
서비스 간 게이트웨이(MessageRegistry, LocalGateway, HttpGateway) 테스트입니다.
"""

import asyncio

import httpx
import pytest
from pydantic import BaseModel

from pqms.core import gateway as gw
from pqms.core.exceptions import (
    ConflictError, GatewayTimeoutError, NotFoundError, RemoteError, ValidationError,
)
from pqms.main import app as main_app
from pqms.services.container import ServiceContainer


class EchoPayload(BaseModel):
    value: int


def _registry() -> gw.MessageRegistry:
    registry = gw.MessageRegistry()

    async def echo(msg: EchoPayload):
        return {"value": msg.value}

    async def slow(msg):
        await asyncio.sleep(1)
        return {"late": True}

    async def missing(msg):
        raise NotFoundError("Sample 42 not found.")

    async def busy(msg):
        raise ConflictError("Sample is locked.")

    registry.register(gw.SAMPLES, "demo.echo", echo, EchoPayload)
    registry.register(gw.SAMPLES, "demo.slow", slow)
    registry.register(gw.SAMPLES, "demo.missing", missing)
    registry.register(gw.SAMPLES, "demo.busy", busy)
    return registry


# =============================================================================
# 1. 메시지 레지스트리
# =============================================================================
@pytest.mark.asyncio
async def test_registry_dispatch():
    registry = _registry()
    assert await registry.dispatch("demo.echo", {"value": 3}) == {"value": 3}
    assert registry.patterns["demo.echo"] == gw.SAMPLES


@pytest.mark.asyncio
async def test_registry_rejects_unknown_pattern_and_bad_payload():
    """[실패] 등록되지 않은 패턴, 스키마에 맞지 않는 페이로드"""
    registry = _registry()
    with pytest.raises(ValidationError):
        await registry.dispatch("demo.unknown", {})
    with pytest.raises(ValidationError):
        await registry.dispatch("demo.echo", {"value": "not-a-number"})


def test_registry_rejects_duplicate_pattern():
    registry = _registry()

    async def handler(msg):
        return None

    with pytest.raises(ValueError):
        registry.register(gw.RESULTS, "demo.echo", handler)


# =============================================================================
# 2. LocalGateway
# =============================================================================
@pytest.mark.asyncio
async def test_local_gateway_call():
    gateway = gw.LocalGateway(_registry(), default_timeout=1.0)
    assert await gateway.call(gw.SAMPLES, "demo.echo", {"value": 7}) == {"value": 7}


@pytest.mark.asyncio
async def test_local_gateway_timeout():
    """[실패] 제한 시간 초과는 재시도 가능한 GatewayTimeoutError로 전달된다."""
    gateway = gw.LocalGateway(_registry(), default_timeout=1.0)
    with pytest.raises(GatewayTimeoutError) as exc_info:
        await gateway.call(gw.SAMPLES, "demo.slow", {}, timeout=0.05)
    assert exc_info.value.retryable is True
    assert exc_info.value.to_dict()["kind"] == "gateway_timeout"


@pytest.mark.asyncio
async def test_local_gateway_remote_errors():
    """[실패] 원격 도메인 오류는 원래 종류를 보존한 RemoteError가 된다."""
    gateway = gw.LocalGateway(_registry(), default_timeout=1.0)

    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.SAMPLES, "demo.missing", {})
    assert exc_info.value.remote_kind == "not_found"
    assert exc_info.value.retryable is False
    assert isinstance(exc_info.value.localize(), NotFoundError)

    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.SAMPLES, "demo.busy", {})
    assert isinstance(exc_info.value.localize(), ConflictError)

    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.SAMPLES, "demo.echo", {"value": "x"})
    assert exc_info.value.remote_kind == "validation_error"


@pytest.mark.asyncio
async def test_local_gateway_checks_owner():
    """[실패] 다른 서비스가 소유한 패턴을 잘못된 대상으로 호출"""
    gateway = gw.LocalGateway(_registry(), default_timeout=1.0)
    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.CATALOG, "demo.echo", {"value": 1})
    assert exc_info.value.remote_kind == "unknown_operation"


def test_remote_error_localize_keeps_unmapped_kind():
    error = RemoteError("unavailable", "down", retryable=True)
    assert error.localize() is error
    assert error.to_dict() == {"kind": "remote_error", "detail": "down", "retryable": True, "remote_kind": "unavailable"}


# =============================================================================
# 3. HttpGateway
# =============================================================================
@pytest.mark.asyncio
async def test_http_gateway_against_rpc_endpoint(client, services: ServiceContainer, assay_test):
    """[성공/실패] /rpc/{pattern} 엔드포인트를 통해 원격 서비스 작업을 호출한다."""
    gateway = gw.HttpGateway(
        {gw.CATALOG: "http://test/api/v1"},
        default_timeout=5.0,
        transport=httpx.ASGITransport(app=main_app),
    )

    test_data = await gateway.call(gw.CATALOG, "test.get", {"id": assay_test.id})
    assert test_data["code"] == "ASSAY"
    assert test_data["specifications"][0]["parameter"] == "Assay"

    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.CATALOG, "test.get", {"id": 9999})
    assert exc_info.value.remote_kind == "not_found"
    assert isinstance(exc_info.value.localize(), NotFoundError)


@pytest.mark.asyncio
async def test_http_gateway_transport_failures():
    """[실패] 시간 초과와 연결 실패"""
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("demo.slow"):
            raise httpx.ReadTimeout("timed out", request=request)
        raise httpx.ConnectError("connection refused", request=request)

    gateway = gw.HttpGateway(
        {gw.SAMPLES: "http://samples.local/api/v1"}, default_timeout=1.0, transport=httpx.MockTransport(handler),
    )

    with pytest.raises(GatewayTimeoutError):
        await gateway.call(gw.SAMPLES, "demo.slow", {})

    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.SAMPLES, "demo.echo", {"value": 1})
    assert exc_info.value.remote_kind == "unavailable"
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_http_gateway_error_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"kind": "conflict", "detail": "Sample is locked.", "retryable": False})

    gateway = gw.HttpGateway({gw.SAMPLES: "http://samples.local"}, default_timeout=1.0, transport=httpx.MockTransport(handler))
    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.SAMPLES, "sample.assignTests", {"id": 1, "test_ids": [2]})
    assert exc_info.value.remote_kind == "conflict"
    assert exc_info.value.detail == "Sample is locked."


@pytest.mark.asyncio
async def test_http_gateway_unknown_target():
    gateway = gw.HttpGateway({}, default_timeout=1.0)
    with pytest.raises(RemoteError) as exc_info:
        await gateway.call(gw.INVENTORY, "inventory.disposition.get", {})
    assert exc_info.value.remote_kind == "unknown_target"
