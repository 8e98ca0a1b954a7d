# pqms/domains/qc/routers.py

"""
'qc' 도메인 (시험 카탈로그, 시료, 시험 결과) 관련 API 엔드포인트를 정의하는 모듈입니다.
라우터는 얇은 계층이며 모든 규칙은 서비스 계층이 집행합니다.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

# 중앙 의존성 관리 모듈 임포트
from pqms.core import dependencies as deps
from pqms.services.container import ServiceContainer

# 도메인 관련 모듈 임포트
from . import schemas as qc_schemas

router = APIRouter(
    tags=["Quality Control (품질 관리 - 시험/시료/결과)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 시험 카탈로그 (Test) 라우터
# =============================================================================
@router.post("/tests", response_model=qc_schemas.TestResponse, status_code=status.HTTP_201_CREATED, summary="새 시험 및 규격 생성")
async def create_test(
    test_in: qc_schemas.TestCreate,
    services: ServiceContainer = Depends(deps.get_services),
):
    """시험과 규격 목록을 하나의 단위로 생성합니다. 코드가 중복되면 409를 반환합니다."""
    return await services.catalog.create_test(test_in)


@router.get("/tests", response_model=List[qc_schemas.TestResponse], summary="시험 목록 조회")
async def read_tests(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    status: Optional[str] = Query(None, description="Active / Inactive"),
    category: Optional[str] = Query(None),
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.catalog.list_tests(skip, limit, status, category)


@router.get("/tests/for-material", response_model=List[qc_schemas.TestResponse], summary="자재에 적용할 활성 시험 조회")
async def read_tests_for_material(
    material_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None, description="자재 분류"),
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.catalog.list_for_material(material_id, category)


@router.get("/tests/{test_id}", response_model=qc_schemas.TestResponse, summary="특정 시험 조회")
async def read_test(test_id: int, services: ServiceContainer = Depends(deps.get_services)):
    return await services.catalog.get_test(test_id)


@router.put("/tests/{test_id}", response_model=qc_schemas.TestResponse, summary="시험 수정 (규격 전체 교체)")
async def update_test(
    test_id: int,
    test_in: qc_schemas.TestUpdate,
    services: ServiceContainer = Depends(deps.get_services),
):
    """`specifications`가 포함되면 기존 규격 전체를 새 목록으로 교체합니다."""
    return await services.catalog.update_test(test_id, test_in)


@router.delete("/tests/{test_id}", status_code=status.HTTP_204_NO_CONTENT, summary="시험 삭제")
async def delete_test(test_id: int, services: ServiceContainer = Depends(deps.get_services)):
    await services.catalog.delete_test(test_id)
    return None


# =============================================================================
# 2. 시료 (Sample) 라우터
# =============================================================================
@router.post("/samples", response_model=qc_schemas.SampleResponse, status_code=status.HTTP_201_CREATED, summary="새 시료 생성")
async def create_sample(
    sample_in: qc_schemas.SampleCreate,
    services: ServiceContainer = Depends(deps.get_services),
):
    """
    원천 이벤트(입고 품목, 배치)로부터 시료를 생성합니다.
    시료 번호(QC-SAM-<연도>-<순번>)는 자동 생성됩니다.
    """
    return await services.samples.create_sample(sample_in)


@router.get("/samples/{sample_id}", response_model=qc_schemas.SampleResponse, summary="특정 시료 조회")
async def read_sample(sample_id: int, services: ServiceContainer = Depends(deps.get_services)):
    return await services.samples.get_sample(sample_id)


@router.patch("/samples/{sample_id}", response_model=qc_schemas.SampleResponse, summary="시료 정보 수정")
async def update_sample(
    sample_id: int,
    patch: Dict[str, Any] = Body(...),
    services: ServiceContainer = Depends(deps.get_services),
):
    """우선순위, 담당자, 기한, 비고만 수정할 수 있습니다. `status`는 거부됩니다."""
    return await services.samples.update_sample(sample_id, patch)


@router.post("/samples/{sample_id}/receive", response_model=qc_schemas.SampleResponse, summary="시료 접수")
async def receive_sample(
    sample_id: int,
    receive_in: Optional[qc_schemas.SampleReceive] = None,
    services: ServiceContainer = Depends(deps.get_services),
):
    received_by = receive_in.received_by if receive_in else None
    return await services.samples.receive_sample(sample_id, received_by)


@router.post("/samples/{sample_id}/tests", response_model=qc_schemas.SampleResponse, summary="시료에 시험 추가 배정")
async def assign_tests(
    sample_id: int,
    assign_in: qc_schemas.SampleAssignTests,
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.samples.assign_tests(sample_id, assign_in.test_ids)


@router.post("/samples/{sample_id}/cancel", response_model=qc_schemas.SampleResponse, summary="시료 취소")
async def cancel_sample(
    sample_id: int,
    cancel_in: qc_schemas.SampleCancel,
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.samples.cancel(sample_id, cancel_in.reason)


@router.get("/samples/{sample_id}/results", response_model=List[qc_schemas.ResultResponse], summary="시료의 전체 결과 조회")
async def read_sample_results(sample_id: int, services: ServiceContainer = Depends(deps.get_services)):
    return await services.results.list_for_sample(sample_id)


# =============================================================================
# 3. 시험 결과 (Result) 라우터
# =============================================================================
@router.post("/results", response_model=qc_schemas.ResultSubmitResponse, summary="시험 결과 제출 (upsert)")
async def submit_result(
    result_in: qc_schemas.ResultSubmit,
    services: ServiceContainer = Depends(deps.get_services),
):
    """
    (sample_id, test_id) 결과를 기록합니다. 같은 쌍을 다시 제출하면 덮어씁니다.
    응답에는 재계산된 시료 상태가 포함됩니다.
    """
    return await services.results.submit_result(result_in)


@router.get("/results/{result_id}", response_model=qc_schemas.ResultResponse, summary="특정 결과 조회")
async def read_result(result_id: int, services: ServiceContainer = Depends(deps.get_services)):
    return await services.results.get_result(result_id)


@router.post("/results/{result_id}/review", response_model=qc_schemas.ResultResponse, summary="결과 검토 확인")
async def review_result(
    result_id: int,
    review_in: qc_schemas.ResultReview,
    services: ServiceContainer = Depends(deps.get_services),
):
    return await services.results.review_result(result_id, review_in.reviewed_by)
