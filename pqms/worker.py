# pqms/worker.py

"""
ARQ 워커 설정 모듈입니다.

판정은 확정되었지만 재고/배치 도메인에 전달되지 못한 릴리스를 주기적으로 재전달합니다.
실행: `arq pqms.worker.WorkerSettings`
"""

import logging

from arq import cron
from arq.connections import RedisSettings

from pqms.core.config import settings
from pqms.core import dependencies as deps

logger = logging.getLogger(__name__)


async def redeliver_pending_dispositions_task(ctx, limit: int = 100):
    """미전달 판정 이벤트를 재전달하고 결과 요약을 반환합니다."""
    services = ctx.get("services") or deps.get_services()
    summary = await services.releases.redeliver_pending(limit=limit)
    return {"status": "success", **summary}


async def startup(ctx):
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    ctx["services"] = deps.get_services()
    logger.info("ARQ 워커 시작 (gateway=%s)", settings.GATEWAY_MODE)


class WorkerSettings:
    redis_settings = RedisSettings(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    functions = [redeliver_pending_dispositions_task]
    cron_jobs = [
        cron(
            redeliver_pending_dispositions_task,
            minute=set(settings.DISPOSITION_REDELIVERY_CRON_MINUTES),
            timeout=300,
            keep_result=600,
        ),
    ]
    on_startup = startup
