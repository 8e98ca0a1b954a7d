# flake8: noqa
# scripts/manage.py

import asyncio
import typer

from pqms.core.config import settings
from pqms.core.database import create_db_and_tables, engine
from pqms.core import dependencies as deps

cli = typer.Typer(help="PQMS 운영 도구")


@cli.command("init-db")
def init_db():
    """
    qc / qa / inv 스키마와 모든 테이블을 생성합니다. (개발 DB 전용, 운영 환경은 Alembic 사용)
    """
    async def run():
        try:
            await create_db_and_tables()
        finally:
            await engine.dispose()

    asyncio.run(run())
    print(f"데이터베이스 초기화 완료 (env={settings.APP_ENV})")


@cli.command()
def redeliver(
    limit: int = typer.Option(100, '--limit', '-l', min=1, help="한 번에 재전달할 최대 릴리스 수"),
):
    """
    판정은 확정되었지만 재고/배치 도메인에 전달되지 않은 릴리스를 재전달합니다.
    """
    async def run():
        try:
            return await deps.get_services().releases.redeliver_pending(limit=limit)
        finally:
            await engine.dispose()

    summary = asyncio.run(run())
    print(f"재전달 시도 {summary['attempted']}건, 성공 {summary['delivered']}건, 실패 {summary['failed']}건")
    if summary["failed"]:
        raise typer.Exit(code=1)


@cli.command()
def patterns():
    """등록된 서비스 간 메시지 패턴과 소유 서비스를 출력합니다."""
    for pattern, target in sorted(deps.get_services().registry.patterns.items()):
        print(f"{target:<10} {pattern}")


if __name__ == "__main__":
    cli()
