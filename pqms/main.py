# pqms/main.py

"""
PQMS FastAPI 애플리케이션 진입점입니다.

- 도메인 라우터 (qc, qa, inv)와 서비스 간 메시지 엔드포인트(rpc)를 등록합니다.
- QmsError를 {"kind", "detail", "retryable"} 형태의 응답으로 변환합니다.
"""

import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pqms import API_PREFIX
from pqms.core.config import settings
from pqms.core.database import create_db_and_tables, engine, get_session
from pqms.core.exceptions import QmsError

from pqms.domains.qc.routers import router as qc_router
from pqms.domains.qa.routers import router as qa_router
from pqms.domains.inv.routers import router as inv_router
from pqms.services.rpc import router as rpc_router

logger = logging.getLogger(__name__)


# -- 애플리케이션 수명 주기 이벤트 핸들러 --
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("%s %s 시작 (env=%s, gateway=%s)", settings.APP_NAME, settings.APP_VERSION, settings.APP_ENV, settings.GATEWAY_MODE)

    # 개발 환경에서만 테이블을 자동 생성합니다. 운영 환경은 Alembic을 사용합니다.
    if settings.APP_ENV == "development":
        await create_db_and_tables()

    yield  # 애플리케이션 실행

    await engine.dispose()
    logger.info("데이터베이스 연결 풀 종료 완료.")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 개발용: 모든 출처 허용
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -- 예외 핸들러 --
@app.exception_handler(QmsError)
async def qms_error_handler(request: Request, exc: QmsError):
    """도메인 오류를 재시도 가능 여부가 포함된 봉투로 반환합니다."""
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"kind": "internal_error", "detail": str(exc), "retryable": False},
    )


# -- 도메인 라우터 포함 --
app.include_router(qc_router, prefix=f"{API_PREFIX}/qc")
app.include_router(qa_router, prefix=f"{API_PREFIX}/qa")
app.include_router(inv_router, prefix=f"{API_PREFIX}/inv")
app.include_router(rpc_router, prefix=f"{API_PREFIX}/rpc")


@app.get("/", summary="API Root", response_description="Welcome message and documentation link.")
async def read_root():
    return {"message": "Welcome to PQMS API. Visit /docs for interactive API documentation."}


@app.get("/health-check", summary="Health Check", response_description="Status of the application and database connection.")
async def health_check(session: AsyncSession = Depends(get_session)):
    """데이터베이스 연결을 테스트하여 서비스의 정상 작동 여부를 확인합니다."""
    try:
        result = await session.exec(select(1))
        if result.first():
            return {"status": "ok", "database_connection": "successful"}
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database health check failed: No result from test query"
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database connection error during health check: {e}"
        )
