# pqms/domains/inv/services.py

"""
'inv' 도메인의 판정 수신(로트 처분) 비즈니스 로직 모듈입니다.

QA 판정 이벤트는 release_id 기준으로 멱등하게 적용됩니다.
- 같은 release_id, 같은 판정: 기존 처분을 그대로 반환 (재전달, 제한 시간 초과 후 재시도)
- 같은 release_id, 다른 판정: ConflictError
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from pqms.core.database import SessionFactory, session_scope
from pqms.core.exceptions import ConflictError, NotFoundError, ValidationError

from . import crud as inv_crud
from . import models as inv_models
from . import schemas as inv_schemas

logger = logging.getLogger(__name__)


class DispositionReceiver:
    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    async def _find(self, release_id: int) -> Optional[inv_models.LotDisposition]:
        async with session_scope(self.session_factory) as db:
            return await inv_crud.lot_disposition.get_by_release_id(db, release_id=release_id)

    @staticmethod
    def _check_same(existing: inv_models.LotDisposition, event: inv_schemas.DispositionApply) -> inv_models.LotDisposition:
        if existing.decision != event.decision:
            raise ConflictError(
                f"Release {event.release_number} was already applied as '{existing.decision}'; got '{event.decision}'."
            )
        logger.info("Disposition of release %s already applied; ignoring duplicate", event.release_number)
        return existing

    async def apply_disposition(
        self, event: inv_schemas.DispositionApply, expected_entity_type: Optional[str] = None
    ) -> inv_models.LotDisposition:
        """판정을 로트 재고 상태에 반영합니다."""
        if expected_entity_type and event.entity_type != expected_entity_type:
            raise ValidationError(
                f"Entity type '{event.entity_type}' cannot be applied here; expected '{expected_entity_type}'."
            )
        stock_status = inv_models.DECISION_STOCK_STATUS.get(event.decision)
        if stock_status is None:
            raise ValidationError(f"Decision '{event.decision}' has no stock disposition.")

        existing = await self._find(event.release_id)
        if existing:
            return self._check_same(existing, event)

        try:
            async with session_scope(self.session_factory) as db:
                db_obj = inv_models.LotDisposition(
                    **event.model_dump(),
                    stock_status=stock_status.value,
                )
                db.add(db_obj)
                await db.flush()
                await db.refresh(db_obj)
        except IntegrityError:
            # 동시에 도착한 같은 이벤트가 먼저 기록되었습니다.
            existing = await self._find(event.release_id)
            if existing is None:
                raise
            return self._check_same(existing, event)

        logger.info(
            "%s %s set to %s by release %s",
            event.entity_type, event.entity_id, stock_status.value, event.release_number,
        )
        return db_obj

    async def get_disposition(self, entity_type: str, entity_id: str) -> inv_models.LotDisposition:
        async with session_scope(self.session_factory) as db:
            db_obj = await inv_crud.lot_disposition.get_latest_for_entity(
                db, entity_type=entity_type, entity_id=entity_id
            )
        if not db_obj:
            raise NotFoundError(f"No disposition recorded for {entity_type} {entity_id}.")
        return db_obj
