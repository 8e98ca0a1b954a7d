# tests/conftest.py

import os
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

# pqms.main을 임포트하여 FastAPI 앱 인스턴스에 접근합니다.
from pqms.main import app as main_app
from pqms.core import dependencies as deps
from pqms.core.config import Settings
from pqms.core.database import build_session_factory, get_session, SessionFactory

# --- 모든 모델 임포트 ---
#  SQLModel.metadata.create_all()이 모든 테이블을 인식하도록 합니다.
from pqms.domains.models import ALL_MODELS  # noqa: F401
from pqms.domains.qc import models as qc_models
from pqms.services.container import ServiceContainer


# --- 테스트용 데이터베이스 설정 ---
# 기본값은 테스트마다 새로 만드는 SQLite 파일입니다.
# PostgreSQL로 실행하려면 TEST_DATABASE_URL을 지정합니다. (qc/qa/inv 스키마가 미리 있어야 합니다)
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# SQLite에는 스키마가 없으므로 qc/qa/inv 스키마를 제거합니다.
SQLITE_SCHEMA_MAP = {"qc": None, "qa": None, "inv": None}


# --- 데이터베이스 픽스처 ---
@pytest_asyncio.fixture(name="session_factory")
async def session_factory_fixture(tmp_path) -> AsyncGenerator[SessionFactory, None]:
    """
    테스트 함수마다 빈 데이터베이스를 만들고 그에 묶인 세션 팩토리를 제공합니다.
    서비스는 자체적으로 커밋하므로 트랜잭션 롤백 대신 데이터베이스 자체를 분리합니다.
    """
    if TEST_DATABASE_URL:
        test_engine = create_async_engine(TEST_DATABASE_URL, future=True, poolclass=NullPool)
    else:
        test_engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'pqms_test.db'}",
            future=True,
            poolclass=NullPool,
        ).execution_options(schema_translate_map=SQLITE_SCHEMA_MAP)

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)

    yield build_session_factory(test_engine)

    await test_engine.dispose()


@pytest.fixture(name="test_settings")
def test_settings_fixture() -> Settings:
    """로컬 게이트웨이와 기본 업무 설정을 사용하는 테스트 설정"""
    return Settings(
        _env_file=None,
        APP_ENV="testing",
        GATEWAY_MODE="local",
        GATEWAY_TIMEOUT_SECONDS=5.0,
    )


@pytest_asyncio.fixture(name="services")
async def services_fixture(session_factory: SessionFactory, test_settings: Settings) -> ServiceContainer:
    """테스트 데이터베이스에 묶인 서비스 컨테이너"""
    return ServiceContainer(session_factory, test_settings)


# --- 비동기 테스트 클라이언트 픽스처 ---
@pytest_asyncio.fixture(name="client")
async def client_fixture(
    services: ServiceContainer, session_factory: SessionFactory
) -> AsyncGenerator[AsyncClient, None]:
    """
    서비스 컨테이너와 DB 세션 의존성을 테스트용으로 교체한 AsyncClient를 생성합니다.
    """
    async def override_get_session():
        async with session_factory() as session:
            yield session

    original_overrides = main_app.dependency_overrides.copy()
    try:
        main_app.dependency_overrides[deps.get_services] = lambda: services
        main_app.dependency_overrides[get_session] = override_get_session

        async with AsyncClient(transport=ASGITransport(app=main_app), base_url="http://test") as async_client:
            yield async_client
    finally:
        # 클라이언트 픽스처가 끝나면 오버라이드를 반드시 복원해야 합니다.
        main_app.dependency_overrides.clear()
        main_app.dependency_overrides.update(original_overrides)


# --- 도메인별 공통 픽스처 ---
@pytest_asyncio.fixture(name="make_test")
async def make_test_fixture(services: ServiceContainer) -> Callable[..., Awaitable[qc_models.Test]]:
    """카탈로그에 시험을 만드는 팩토리 함수를 반환합니다."""
    async def _make_test(
        code: str,
        name: Optional[str] = None,
        specifications: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ) -> qc_models.Test:
        return await services.catalog.create_test({
            "code": code,
            "name": name or code,
            "specifications": specifications or [],
            **kwargs,
        })
    return _make_test


@pytest_asyncio.fixture(name="assay_test")
async def assay_test_fixture(make_test) -> qc_models.Test:
    """함량 시험: 90 ~ 110 %"""
    return await make_test(
        "ASSAY", "Assay (HPLC)",
        specifications=[{"parameter": "Assay", "min_value": "90", "max_value": "110", "unit": "%"}],
        category="API",
    )


@pytest_asyncio.fixture(name="appearance_test")
async def appearance_test_fixture(make_test) -> qc_models.Test:
    """외관 시험: 수치 규격이 없는 정성 시험"""
    return await make_test("APPEAR", "Appearance", category="API")


@pytest_asyncio.fixture(name="make_sample")
async def make_sample_fixture(services: ServiceContainer) -> Callable[..., Awaitable[qc_models.Sample]]:
    """입고 품목(GoodsReceipt) 시료를 만드는 팩토리 함수를 반환합니다."""
    async def _make_sample(test_ids: List[int], **kwargs) -> qc_models.Sample:
        data = {
            "source_type": "GoodsReceipt",
            "source_id": "GRN-2026-0001",
            "source_reference": "GRN-2026-0001",
            "goods_receipt_item_id": "GRI-1",
            "material_id": "MAT-100",
            "material_name": "Paracetamol",
            "material_code": "PCM",
            "material_category": "API",
            "batch_number": "LOT-A1",
            "quantity": "250.5",
            "unit": "kg",
            "test_ids": test_ids,
            **kwargs,
        }
        return await services.samples.create_sample(data)
    return _make_sample


@pytest_asyncio.fixture(name="completed_sample")
async def completed_sample_fixture(services: ServiceContainer, make_sample, assay_test) -> qc_models.Sample:
    """함량 99.5 %로 모든 결과가 적합한 Completed 시료"""
    sample = await make_sample([assay_test.id])
    await services.samples.receive_sample(sample.id, "receiver")
    await services.results.submit_result({
        "sample_id": sample.id, "test_id": assay_test.id, "result_value": "99.5", "unit": "%", "tested_by": "analyst",
    })
    return await services.samples.get_sample(sample.id)
