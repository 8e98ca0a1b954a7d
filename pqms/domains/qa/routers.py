# pqms/domains/qa/routers.py

"""
'qa' 도메인 (QA 릴리스/판정) 관련 API 엔드포인트를 정의하는 모듈입니다.
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, status

from pqms.core import dependencies as deps
from pqms.services.container import ServiceContainer

from . import schemas as qa_schemas

router = APIRouter(
    tags=["Quality Assurance (품질 보증 - 릴리스 판정)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 릴리스 (Release) 라우터
# =============================================================================
@router.post("/releases", response_model=qa_schemas.ReleaseResponse, status_code=status.HTTP_201_CREATED, summary="완료된 시료를 QA에 제출")
async def submit_to_qa(
    release_in: qa_schemas.ReleaseSubmit,
    services: ServiceContainer = Depends(deps.get_services),
):
    """
    시료 상태가 Completed인지 다시 확인한 뒤 결과 스냅샷과 체크리스트를 가진 릴리스를 생성합니다.
    이미 제출된 시료이면 기존 릴리스를 반환합니다.
    """
    return await services.releases.submit_to_qa(release_in.sample_id, release_in.submitted_by, release_in.remarks)


@router.get("/releases/{release_id}", response_model=qa_schemas.ReleaseResponse, summary="특정 릴리스 조회")
async def read_release(release_id: int, services: ServiceContainer = Depends(deps.get_services)):
    return await services.releases.get_release(release_id)


@router.patch("/releases/{release_id}", response_model=qa_schemas.ReleaseResponse, summary="릴리스 비고/기한 수정")
async def update_release(
    release_id: int,
    patch: Dict[str, Any] = Body(...),
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.releases.update_release(release_id, patch)


@router.put("/releases/{release_id}/checklist/{item_id}", response_model=qa_schemas.ReleaseResponse, summary="체크리스트 항목 확인/해제")
async def update_checklist(
    release_id: int,
    item_id: int,
    checklist_in: qa_schemas.ChecklistUpdate,
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.releases.update_checklist(release_id, item_id, checklist_in.checked, checklist_in.checked_by)


# =============================================================================
# 2. 판정 (Decision) 라우터
# =============================================================================
@router.post("/releases/{release_id}/decision", response_model=qa_schemas.DecisionOutcome, summary="최종 판정 (Release / Reject / Hold)")
async def decide(
    release_id: int,
    decision_in: qa_schemas.ReleaseDecide,
    services: ServiceContainer = Depends(deps.get_services),
):
    """
    판정을 확정하고 재고/배치 도메인에 전달합니다.
    전달에 실패해도 판정은 유지되며 응답의 `delivered=false`, `delivery_error`로 알려줍니다.
    """
    return await services.releases.decide(
        release_id, decision_in.decision, decision_in.remarks, decision_in.decided_by,
        decision_reason=decision_in.decision_reason, e_signature=decision_in.e_signature,
    )


@router.post("/releases/{release_id}/redeliver", response_model=qa_schemas.DecisionOutcome, summary="미전달 판정 재전달")
async def redeliver(release_id: int, services: ServiceContainer = Depends(deps.get_services)):
    return await services.releases.redeliver(release_id)
