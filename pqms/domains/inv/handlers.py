# pqms/domains/inv/handlers.py

"""
'inv' 도메인이 판정 이벤트를 받기 위해 등록하는 메시지 패턴 모듈입니다.
"""

from typing import TYPE_CHECKING

from pqms.core import gateway as gw
from pqms.core.gateway import MessageRegistry

from . import schemas as inv_schemas

if TYPE_CHECKING:
    from pqms.services.container import ServiceContainer


def register(registry: MessageRegistry, services: "ServiceContainer") -> None:
    async def apply_receipt_item(msg: inv_schemas.DispositionApply):
        obj = await services.inventory.apply_disposition(msg, expected_entity_type="GoodsReceipt")
        return inv_schemas.LotDispositionResponse.model_validate(obj)

    async def apply_batch(msg: inv_schemas.DispositionApply):
        obj = await services.inventory.apply_disposition(msg, expected_entity_type="Batch")
        return inv_schemas.LotDispositionResponse.model_validate(obj)

    async def get_disposition(msg: inv_schemas.DispositionQuery):
        obj = await services.inventory.get_disposition(msg.entity_type, msg.entity_id)
        return inv_schemas.LotDispositionResponse.model_validate(obj)

    registry.register(gw.INVENTORY, "inventory.receiptItem.applyDisposition", apply_receipt_item, inv_schemas.DispositionApply)
    registry.register(gw.INVENTORY, "inventory.batch.applyDisposition", apply_batch, inv_schemas.DispositionApply)
    registry.register(gw.INVENTORY, "inventory.disposition.get", get_disposition, inv_schemas.DispositionQuery)
