# pqms/core/database.py

"""
애플리케이션의 데이터베이스 연결 및 세션 관리를 담당하는 모듈입니다.

- SQLModel의 비동기 엔진과 세션 팩토리를 설정합니다.
- 커밋/롤백을 하나의 단위로 보장하는 트랜잭션 범위 헬퍼를 제공합니다.
- 개발용 스키마/테이블 생성 함수를 포함합니다 (운영 환경은 Alembic 사용).
"""

import logging
from typing import AsyncGenerator, Awaitable, Callable, TypeVar
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import text

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from pqms.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 도메인별 PostgreSQL 스키마
SCHEMAS = ["qc", "qa", "inv"]


# SQLModel 엔진을 생성합니다.
engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL.get_secret_value(),
    echo=settings.DEBUG_MODE,  # 디버그 모드일 때만 SQL 쿼리 출력
    future=True,
    pool_recycle=3600,
    pool_size=10,
    max_overflow=20
)

# 비동기 세션을 생성하는 '세션 공장'을 정의합니다.
AsyncSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

SessionFactory = Callable[[], AsyncSession]


def build_session_factory(bind: AsyncEngine) -> SessionFactory:
    """주어진 엔진에 묶인 세션 팩토리를 만듭니다. (테스트, 워커에서 사용)"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# =============================================================================
# 데이터베이스 초기화 및 테이블 생성 함수
# =============================================================================
async def create_db_and_tables(bind: AsyncEngine = engine) -> None:
    """
    스키마와 테이블을 생성합니다.
    개발 환경 전용이며 기존 테이블을 삭제하지 않습니다.
    """
    # 모든 모델이 SQLModel.metadata에 등록되도록 임포트
    from pqms.domains.models import ALL_MODELS  # noqa: F401

    async with bind.begin() as conn:
        if conn.dialect.name == "postgresql":
            for schema_name in SCHEMAS:
                await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema_name}"))
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database schemas and tables are ready.")


# =============================================================================
# 비동기 데이터베이스 세션 의존성 주입
# =============================================================================
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 의존성 주입을 위한 비동기 데이터베이스 세션 제너레이터입니다.
    요청마다 새로운 세션을 생성하고, 요청 처리 후 세션을 자동으로 닫습니다.
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def session_scope(session_factory: SessionFactory = AsyncSessionLocal) -> AsyncGenerator[AsyncSession, None]:
    """
    하나의 로컬 트랜잭션 범위를 제공하는 컨텍스트 관리자입니다.
    블록이 정상 종료되면 커밋하고, 예외가 발생하면 롤백 후 예외를 그대로 전파합니다.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def with_transaction(
    session_factory: SessionFactory, fn: Callable[[AsyncSession], Awaitable[T]]
) -> T:
    """`fn(session)`을 하나의 트랜잭션으로 실행하고 그 반환값을 돌려줍니다."""
    async with session_scope(session_factory) as session:
        return await fn(session)

