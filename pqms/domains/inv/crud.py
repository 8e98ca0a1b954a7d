# pqms/domains/inv/crud.py

"""
'inv' 도메인의 CRUD 로직을 담당하는 모듈입니다.
"""

from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pqms.core.crud_base import CRUDBase

from . import models as inv_models
from . import schemas as inv_schemas


class CRUDLotDisposition(CRUDBase[inv_models.LotDisposition, inv_schemas.DispositionApply, inv_schemas.DispositionApply]):
    def __init__(self):
        super().__init__(model=inv_models.LotDisposition)

    async def get_by_release_id(self, db: AsyncSession, *, release_id: int) -> Optional[inv_models.LotDisposition]:
        statement = select(self.model).where(self.model.release_id == release_id)
        result = await db.execute(statement)
        return result.scalars().one_or_none()

    async def get_latest_for_entity(
        self, db: AsyncSession, *, entity_type: str, entity_id: str
    ) -> Optional[inv_models.LotDisposition]:
        statement = (
            select(self.model)
            .where(self.model.entity_type == entity_type, self.model.entity_id == entity_id)
            .order_by(self.model.id.desc())
            .limit(1)
        )
        result = await db.execute(statement)
        return result.scalars().first()


lot_disposition = CRUDLotDisposition()
