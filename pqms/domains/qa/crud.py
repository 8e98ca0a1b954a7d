# pqms/domains/qa/crud.py

"""
'qa' 도메인의 CRUD 로직을 담당하는 모듈입니다.
"""

from typing import List, Optional

from sqlalchemy import update as sa_update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pqms.core.crud_base import CRUDBase

from . import models as qa_models
from . import schemas as qa_schemas


# =============================================================================
# 1. 릴리스 (Release) CRUD
# =============================================================================
class CRUDRelease(CRUDBase[qa_models.Release, qa_schemas.ReleaseSubmit, qa_schemas.ReleaseUpdate]):
    def __init__(self):
        super().__init__(model=qa_models.Release)

    async def get_by_sample_id(self, db: AsyncSession, *, sample_id: int) -> Optional[qa_models.Release]:
        statement = select(self.model).where(self.model.sample_id == sample_id)
        result = await db.execute(statement)
        return result.scalars().one_or_none()

    async def get_last_number(self, db: AsyncSession, *, prefix: str) -> Optional[str]:
        statement = (
            select(self.model.release_number)
            .where(self.model.release_number.like(f"{prefix}%"))
            .order_by(self.model.release_number.desc())
            .limit(1)
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def decide_if_pending(self, db: AsyncSession, *, release_id: int, values: dict) -> int:
        """
        decision이 아직 Pending인 경우에만 판정을 기록합니다. (조건부 쓰기)
        영향받은 행 수를 반환하며 0이면 다른 요청이 먼저 판정한 것입니다.
        """
        statement = (
            sa_update(self.model)
            .where(self.model.id == release_id, self.model.decision == qa_models.Decision.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        return result.rowcount

    async def get_undelivered(self, db: AsyncSession, *, limit: int = 100) -> List[qa_models.Release]:
        """판정이 확정되었지만 재고/배치 도메인에 전달되지 않은 릴리스 목록"""
        statement = (
            select(self.model)
            .where(
                self.model.decision != qa_models.Decision.PENDING.value,
                self.model.disposition_delivered.is_(False),
            )
            .order_by(self.model.decided_at, self.model.id)
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())


release = CRUDRelease()
