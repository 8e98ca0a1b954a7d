# pqms/domains/inv/routers.py

"""
'inv' 도메인 (로트 처분 조회) API 엔드포인트를 정의하는 모듈입니다.
"""
from fastapi import APIRouter, Depends, Query

from pqms.core import dependencies as deps
from pqms.services.container import ServiceContainer

from . import schemas as inv_schemas

router = APIRouter(
    tags=["Inventory (재고 관리 - 로트 처분)"],
    responses={404: {"description": "Not found"}},
)


@router.get("/dispositions", response_model=inv_schemas.LotDispositionResponse, summary="입고 품목/배치의 최근 처분 조회")
async def read_disposition(
    entity_type: str = Query(..., description="GoodsReceipt / Batch"),
    entity_id: str = Query(..., description="입고 품목 ID 또는 배치 ID"),
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.inventory.get_disposition(entity_type, entity_id)
