# tests/domains/test_qc_n.py

"""
'qc' 도메인 (시험 카탈로그, 시료, 결과 평가) 서비스에 대한 테스트 모듈입니다.

- 판정 함수 (pqms.domains.qc.evaluation)
- 시험 카탈로그 (TestCatalogService)
- 시료 수명주기 (SampleService): Pending -> Received -> InTesting -> Completed, Pending/Received -> Cancelled
- 결과 평가 (ResultService)
"""

import asyncio
from datetime import datetime, UTC
from decimal import Decimal

import pytest

from pqms.core.exceptions import ConflictError, NotFoundError, ValidationError
from pqms.domains.qc.evaluation import evaluate, parse_numeric, select_specification
from pqms.services.container import ServiceContainer


# =============================================================================
# 1. 판정 함수 (evaluation)
# =============================================================================
ASSAY = [{"parameter": "Assay", "min_value": "90", "max_value": "110", "unit": "%"}]


@pytest.mark.parametrize("value, expected", [
    ("95", True),
    ("90", True),     # 하한 포함
    ("110", True),    # 상한 포함
    ("110.00", True),
    ("89.99", False),
    ("115", False),
])
def test_range_specification(value, expected):
    """[성공] 하한/상한 규격은 경계를 포함하여 판정한다."""
    result = evaluate(ASSAY, value)
    assert result.passed is expected
    assert result.numeric_value == Decimal(value)
    assert result.parameter == "Assay"


def test_out_of_spec_records_deviation():
    """[성공] 부적합 수치 결과에는 일탈 내용이 자동으로 채워진다."""
    result = evaluate(ASSAY, "115")
    assert result.passed is False
    assert result.deviation == "Assay: result 115 is out of specification (90 - 110 %)"


def test_computed_verdict_overrides_caller_flag():
    """[성공] 수치 규격이 있으면 호출자가 보낸 passed 값은 무시된다."""
    assert evaluate(ASSAY, "115", passed=True).passed is False
    assert evaluate(ASSAY, "100", passed=False).passed is True


def test_one_sided_specifications():
    """[성공] 한쪽 경계만 있는 규격"""
    max_only = [{"parameter": "Water", "max_value": "0.5", "unit": "%"}]
    min_only = [{"parameter": "Purity", "min_value": "99.0"}]

    assert evaluate(max_only, "0.5").passed is True
    assert evaluate(max_only, "0.51").passed is False
    assert evaluate(min_only, "99.0").passed is True
    assert evaluate(min_only, "98.9").passed is False


def test_target_with_tolerance():
    """[성공] 목표값 규격은 |값 - 목표| <= 허용 오차로 판정한다."""
    ph = [{"parameter": "pH", "target_value": "7.0", "tolerance": "0.5"}]
    assert evaluate(ph, "7.5").passed is True
    assert evaluate(ph, "6.5").passed is True
    assert evaluate(ph, "7.6").passed is False


def test_target_without_tolerance_uses_default():
    """[성공] 허용 오차가 없으면 설정된 기본 허용 오차(기본 0, 정확히 일치)를 사용한다."""
    spec = [{"parameter": "Count", "target_value": "10"}]
    assert evaluate(spec, "10.000").passed is True
    assert evaluate(spec, "10.1").passed is False
    assert evaluate(spec, "10.1", default_tolerance=Decimal("0.2")).passed is True


def test_parameter_selection():
    """[성공] parameter가 주어지면 같은 이름의 규격으로 판정한다."""
    specs = ASSAY + [{"parameter": "Water", "max_value": "0.5"}]
    assert select_specification(specs, None)["parameter"] == "Assay"
    assert evaluate(specs, "0.3", parameter="Water").passed is True
    assert evaluate(specs, "0.3").passed is False


def test_unknown_parameter_fails():
    """[실패] 존재하지 않는 규격 항목"""
    with pytest.raises(ValidationError):
        evaluate(ASSAY, "100", parameter="Impurity")


@pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", "1,5"])
def test_non_numeric_value_against_numeric_spec(value):
    """[실패] 수치 규격에 대해 숫자가 아닌(또는 유한하지 않은) 결과값은 거부된다."""
    with pytest.raises(ValidationError):
        evaluate(ASSAY, value)


def test_parse_numeric_accepts_whitespace_and_exponent():
    assert parse_numeric(" 99.5 ") == Decimal("99.5")
    assert parse_numeric("1E2") == Decimal("100")


def test_parse_numeric_rejects_values_beyond_column_precision():
    """[실패] NUMERIC(28, 8) 컬럼의 정수부 20자리를 넘는 결과값은 저장 전에 거부된다."""
    assert parse_numeric("9" * 20) == Decimal("9" * 20)
    with pytest.raises(ValidationError):
        parse_numeric("1" + "0" * 20)
    with pytest.raises(ValidationError):
        evaluate([{"parameter": "A", "min_value": "0"}], "1e40")


def test_qualitative_test_requires_explicit_verdict():
    """[실패/성공] 수치 규격이 없는 정성 시험은 passed를 반드시 보내야 한다."""
    with pytest.raises(ValidationError):
        evaluate([], "Conforms")

    result = evaluate([], "White crystalline powder", passed=True)
    assert result.passed is True
    assert result.numeric_value is None
    assert evaluate([], "Yellowish", passed=False).passed is False


# =============================================================================
# 2. 시험 카탈로그 (Test Catalog)
# =============================================================================
@pytest.mark.asyncio
async def test_create_test_with_specifications(services: ServiceContainer, assay_test):
    """[성공] 시험과 규격이 함께 생성된다."""
    db_test = await services.catalog.get_test(assay_test.id)
    assert db_test.code == "ASSAY"
    assert db_test.status == "Active"
    assert len(db_test.specifications) == 1
    spec = db_test.specifications[0]
    assert spec.parameter == "Assay"
    assert spec.min_value == Decimal("90")
    assert spec.max_value == Decimal("110")


@pytest.mark.asyncio
async def test_create_test_duplicate_code(make_test, assay_test):
    """[실패] 같은 코드의 시험은 만들 수 없다."""
    with pytest.raises(ConflictError):
        await make_test("ASSAY", "Another assay")


@pytest.mark.asyncio
async def test_create_test_invalid_bounds(make_test):
    """[실패] 하한이 상한보다 크면 규격을 만들 수 없다."""
    with pytest.raises(ValidationError):
        await make_test("BAD", specifications=[{"parameter": "X", "min_value": "10", "max_value": "1"}])


@pytest.mark.asyncio
async def test_create_test_bounds_beyond_column_precision(make_test):
    """[실패] 규격 값은 NUMERIC(28, 8) 범위(정수부 20자리, 소수부 8자리)를 넘을 수 없다."""
    with pytest.raises(ValidationError):
        await make_test("HUGE", specifications=[{"parameter": "X", "max_value": "1e25"}])
    with pytest.raises(ValidationError):
        await make_test("FINE", specifications=[{"parameter": "X", "target_value": "0.123456789"}])


@pytest.mark.asyncio
async def test_update_test_replaces_specifications(services: ServiceContainer, assay_test):
    """[성공] specifications를 보내면 기존 규격 전체가 교체된다."""
    updated = await services.catalog.update_test(assay_test.id, {
        "name": "Assay (UPLC)",
        "specifications": [
            {"parameter": "Assay", "min_value": "95", "max_value": "105", "unit": "%"},
            {"parameter": "Water", "max_value": "0.5", "unit": "%"},
        ],
    })
    assert updated.name == "Assay (UPLC)"
    assert [s.parameter for s in updated.specifications] == ["Assay", "Water"]
    assert updated.specifications[0].min_value == Decimal("95")


@pytest.mark.asyncio
async def test_update_test_without_specifications_keeps_them(services: ServiceContainer, assay_test):
    """[성공] specifications를 생략하면 기존 규격은 유지된다."""
    updated = await services.catalog.update_test(assay_test.id, {"description": "USP <621>"})
    assert updated.description == "USP <621>"
    assert len(updated.specifications) == 1


@pytest.mark.asyncio
async def test_update_test_code_conflict(services: ServiceContainer, assay_test, appearance_test):
    """[실패] 다른 시험의 코드로 변경할 수 없다."""
    with pytest.raises(ConflictError):
        await services.catalog.update_test(appearance_test.id, {"code": "ASSAY"})


@pytest.mark.asyncio
async def test_update_missing_test(services: ServiceContainer):
    """[실패] 존재하지 않는 시험 수정"""
    with pytest.raises(NotFoundError):
        await services.catalog.update_test(9999, {"name": "Nope"})


@pytest.mark.asyncio
async def test_delete_test(services: ServiceContainer, assay_test):
    """[성공] 시험을 삭제하면 조회할 수 없다."""
    await services.catalog.delete_test(assay_test.id)
    with pytest.raises(NotFoundError):
        await services.catalog.get_test(assay_test.id)


@pytest.mark.asyncio
async def test_list_for_material(services: ServiceContainer, make_test, assay_test, appearance_test):
    """[성공] 자재 분류에 맞는 활성 시험만 반환한다."""
    await make_test("MICRO", "Microbial limits", category="Excipient")
    await make_test("OLD", "Retired test", category="API", status="Inactive")

    api_tests = await services.catalog.list_for_material("MAT-100", "API")
    assert sorted(t.code for t in api_tests) == ["APPEAR", "ASSAY"]

    all_active = await services.catalog.list_for_material("MAT-100")
    assert sorted(t.code for t in all_active) == ["APPEAR", "ASSAY", "MICRO"]


@pytest.mark.asyncio
async def test_list_tests_with_filters(services: ServiceContainer, make_test, assay_test, appearance_test):
    await make_test("OLD", category="API", status="Inactive")

    assert [t.code for t in await services.catalog.list_tests()] == ["ASSAY", "APPEAR", "OLD"]
    assert [t.code for t in await services.catalog.list_tests(status="Inactive")] == ["OLD"]
    assert [t.code for t in await services.catalog.list_tests(skip=1, limit=1)] == ["APPEAR"]


# =============================================================================
# 3. 시료 (Sample Lifecycle)
# =============================================================================
@pytest.mark.asyncio
async def test_create_sample_generates_number(services: ServiceContainer, make_sample, assay_test):
    """[성공] 시료 번호는 QC-SAM-<연도>-<6자리 순번>으로 연속 생성된다."""
    year = datetime.now(UTC).year
    first = await make_sample([assay_test.id])
    second = await make_sample([assay_test.id], goods_receipt_item_id="GRI-2")

    assert first.sample_number == f"QC-SAM-{year}-000001"
    assert second.sample_number == f"QC-SAM-{year}-000002"
    assert first.status == "Pending"
    assert first.source_type == "GoodsReceipt"
    assert [(t.test_id, t.test_code, t.test_name) for t in first.tests] == [(assay_test.id, "ASSAY", "Assay (HPLC)")]


@pytest.mark.asyncio
async def test_create_sample_deduplicates_tests(make_sample, assay_test, appearance_test):
    sample = await make_sample([assay_test.id, appearance_test.id, assay_test.id])
    assert sorted(t.test_id for t in sample.tests) == sorted([assay_test.id, appearance_test.id])


@pytest.mark.asyncio
async def test_create_sample_requires_tests(make_sample):
    """[실패] 배정할 시험이 하나도 없으면 시료를 만들 수 없다."""
    with pytest.raises(ValidationError):
        await make_sample([])


@pytest.mark.asyncio
async def test_create_sample_quantity_beyond_column_precision(make_sample, assay_test):
    """[실패] 수량은 NUMERIC(28, 8) 범위를 넘을 수 없다."""
    with pytest.raises(ValidationError):
        await make_sample([assay_test.id], quantity="1" + "0" * 21)


@pytest.mark.asyncio
async def test_create_sample_unknown_test(make_sample):
    """[실패] 카탈로그에 없는 시험"""
    with pytest.raises(NotFoundError):
        await make_sample([9999])


@pytest.mark.asyncio
async def test_create_sample_inactive_test(make_sample, make_test):
    """[실패] 비활성 시험은 배정할 수 없다."""
    retired = await make_test("OLD", status="Inactive")
    with pytest.raises(ValidationError):
        await make_sample([retired.id])


@pytest.mark.asyncio
async def test_create_sample_auto_assigns_tests(make_sample, make_test, assay_test, appearance_test):
    """[성공] auto_assign_tests이면 자재 분류에 맞는 활성 시험이 배정된다."""
    await make_test("MICRO", category="Excipient")
    sample = await make_sample([], auto_assign_tests=True)
    assert sorted(t.test_code for t in sample.tests) == ["APPEAR", "ASSAY"]


@pytest.mark.asyncio
async def test_test_name_snapshot_survives_catalog_rename(services: ServiceContainer, make_sample, assay_test):
    """[성공] 배정 시점의 시험명이 보존된다."""
    sample = await make_sample([assay_test.id])
    await services.catalog.update_test(assay_test.id, {"name": "Assay (renamed)"})
    reloaded = await services.samples.get_sample(sample.id)
    assert reloaded.tests[0].test_name == "Assay (HPLC)"


@pytest.mark.asyncio
async def test_receive_sample(services: ServiceContainer, make_sample, assay_test):
    """[성공/실패] Pending 시료만 접수할 수 있다."""
    sample = await make_sample([assay_test.id])
    received = await services.samples.receive_sample(sample.id, "receiver")
    assert received.status == "Received"
    assert received.received_by == "receiver"
    assert received.received_at is not None

    with pytest.raises(ConflictError):
        await services.samples.receive_sample(sample.id, "receiver")


@pytest.mark.asyncio
async def test_assign_tests_until_testing_starts(services: ServiceContainer, make_sample, assay_test, appearance_test):
    """[성공/실패] 결과가 기록되기 전까지만 시험을 추가 배정할 수 있다."""
    sample = await make_sample([assay_test.id])
    await services.samples.receive_sample(sample.id)

    updated = await services.samples.assign_tests(sample.id, [appearance_test.id, assay_test.id])
    assert sorted(t.test_code for t in updated.tests) == ["APPEAR", "ASSAY"]

    await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "100"})
    assert (await services.samples.get_sample(sample.id)).status == "InTesting"

    extra = (await services.catalog.create_test({"code": "WATER", "name": "Water"})).id
    with pytest.raises(ConflictError):
        await services.samples.assign_tests(sample.id, [extra])


@pytest.mark.asyncio
async def test_recompute_status_progression(services: ServiceContainer, make_sample, assay_test, appearance_test):
    """[성공] 일부 결과 -> InTesting, 모든 결과 -> Completed"""
    sample = await make_sample([assay_test.id, appearance_test.id])

    unchanged = await services.samples.recompute_status(sample.id)
    assert unchanged.status == "Pending"

    await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "101"})
    assert (await services.samples.get_sample(sample.id)).status == "InTesting"

    await services.results.submit_result({
        "sample_id": sample.id, "test_id": appearance_test.id, "result_value": "Conforms", "passed": True,
    })
    completed = await services.samples.get_sample(sample.id)
    assert completed.status == "Completed"
    assert completed.completed_at is not None


@pytest.mark.asyncio
async def test_cancel_sample(services: ServiceContainer, make_sample, assay_test):
    """[성공] 결과가 없는 시료는 사유와 함께 취소할 수 있다."""
    sample = await make_sample([assay_test.id])
    with pytest.raises(ValidationError):
        await services.samples.cancel(sample.id, "  ")

    cancelled = await services.samples.cancel(sample.id, "Damaged container")
    assert cancelled.status == "Cancelled"
    assert cancelled.cancelled_reason == "Damaged container"

    with pytest.raises(ConflictError):
        await services.samples.receive_sample(sample.id)
    with pytest.raises(ConflictError):
        await services.samples.recompute_status(sample.id)


@pytest.mark.asyncio
async def test_cancel_sample_with_results(services: ServiceContainer, make_sample, assay_test, appearance_test):
    """[실패] 결과가 기록된 시료는 취소할 수 없다."""
    sample = await make_sample([assay_test.id, appearance_test.id])
    await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "100"})
    with pytest.raises(ConflictError):
        await services.samples.cancel(sample.id, "Too late")


@pytest.mark.asyncio
async def test_update_sample_rejects_status(services: ServiceContainer, make_sample, assay_test):
    """[실패] 일반 수정으로 상태를 바꿀 수 없다."""
    sample = await make_sample([assay_test.id])
    with pytest.raises(ValidationError):
        await services.samples.update_sample(sample.id, {"status": "Completed"})
    with pytest.raises(ValidationError):
        await services.samples.update_sample(sample.id, {"unknown_field": 1})
    assert (await services.samples.get_sample(sample.id)).status == "Pending"


@pytest.mark.asyncio
async def test_update_sample_editable_fields(services: ServiceContainer, make_sample, assay_test):
    """[성공] 우선순위, 담당자, 비고는 수정할 수 있다."""
    sample = await make_sample([assay_test.id])
    updated = await services.samples.update_sample(sample.id, {"priority": "Urgent", "assigned_to": "analyst", "remarks": "rush"})
    assert updated.priority == "Urgent"
    assert updated.assigned_to == "analyst"
    assert updated.remarks == "rush"


# =============================================================================
# 4. 결과 (Result Evaluator)
# =============================================================================
@pytest.mark.asyncio
async def test_submit_result_in_spec(services: ServiceContainer, make_sample, assay_test):
    """[성공] 규격 내 결과는 적합으로 기록되고 시료가 Completed가 된다."""
    sample = await make_sample([assay_test.id])
    response = await services.results.submit_result({
        "sample_id": sample.id, "test_id": assay_test.id, "result_value": 95, "unit": "%", "tested_by": "analyst",
    })
    assert response.passed is True
    assert response.result_value == "95"
    assert response.numeric_value == Decimal("95")
    assert response.parameter == "Assay"
    assert response.deviation is None
    assert response.sample_status == "Completed"


@pytest.mark.asyncio
async def test_resubmission_overwrites_single_row(services: ServiceContainer, make_sample, assay_test):
    """[성공] 같은 (시료, 시험) 재제출은 새 행을 만들지 않고 덮어쓰며 검토 기록을 지운다."""
    sample = await make_sample([assay_test.id])
    first = await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "95"})
    reviewed = await services.results.review_result(first.id, "reviewer")
    assert reviewed.reviewed_by == "reviewer"

    second = await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "115"})
    assert second.id == first.id
    assert second.passed is False
    assert "out of specification" in second.deviation
    assert second.reviewed_by is None
    assert second.reviewed_at is None

    results = await services.results.list_for_sample(sample.id)
    assert len(results) == 1
    assert results[0].result_value == "115"


@pytest.mark.asyncio
async def test_caller_deviation_note_is_kept(services: ServiceContainer, make_sample, assay_test):
    sample = await make_sample([assay_test.id])
    response = await services.results.submit_result({
        "sample_id": sample.id, "test_id": assay_test.id, "result_value": "80", "deviation": "OOS investigation DEV-12",
    })
    assert response.passed is False
    assert response.deviation == "OOS investigation DEV-12"


@pytest.mark.asyncio
async def test_submit_result_non_numeric(services: ServiceContainer, make_sample, assay_test):
    """[실패] 수치 규격 시험에 숫자가 아닌 결과"""
    sample = await make_sample([assay_test.id])
    with pytest.raises(ValidationError):
        await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "high"})
    with pytest.raises(ValidationError):
        await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "1e40"})
    assert await services.results.list_for_sample(sample.id) == []


@pytest.mark.asyncio
async def test_submit_qualitative_result(services: ServiceContainer, make_sample, appearance_test):
    """[실패/성공] 정성 시험은 passed를 명시해야 한다."""
    sample = await make_sample([appearance_test.id])
    with pytest.raises(ValidationError):
        await services.results.submit_result({"sample_id": sample.id, "test_id": appearance_test.id, "result_value": "Conforms"})

    response = await services.results.submit_result({
        "sample_id": sample.id, "test_id": appearance_test.id, "result_value": "Discoloured", "passed": False,
    })
    assert response.passed is False
    assert response.numeric_value is None


@pytest.mark.asyncio
async def test_submit_result_for_unassigned_test(services: ServiceContainer, make_sample, assay_test, appearance_test):
    """[실패] 시료에 배정되지 않은 시험의 결과"""
    sample = await make_sample([assay_test.id])
    with pytest.raises(ValidationError):
        await services.results.submit_result({
            "sample_id": sample.id, "test_id": appearance_test.id, "result_value": "Conforms", "passed": True,
        })


@pytest.mark.asyncio
async def test_submit_result_for_cancelled_sample(services: ServiceContainer, make_sample, assay_test):
    """[실패] 취소된 시료는 결과를 받지 않는다."""
    sample = await make_sample([assay_test.id])
    await services.samples.cancel(sample.id, "Wrong lot")
    with pytest.raises(ConflictError):
        await services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": "100"})


@pytest.mark.asyncio
async def test_submit_result_for_missing_sample(services: ServiceContainer, assay_test):
    """[실패] 존재하지 않는 시료"""
    with pytest.raises(NotFoundError):
        await services.results.submit_result({"sample_id": 9999, "test_id": assay_test.id, "result_value": "100"})


@pytest.mark.asyncio
async def test_review_missing_result(services: ServiceContainer):
    with pytest.raises(NotFoundError):
        await services.results.review_result(9999, "reviewer")


@pytest.mark.asyncio
async def test_concurrent_submissions_keep_one_row(services: ServiceContainer, make_sample, assay_test):
    """[성공] 같은 (시료, 시험)에 대한 동시 제출은 한 행으로 수렴하고 나중 쓰기가 남는다."""
    sample = await make_sample([assay_test.id])
    values = ["98.0", "101.0"]
    responses = await asyncio.gather(*[
        services.results.submit_result({"sample_id": sample.id, "test_id": assay_test.id, "result_value": v})
        for v in values
    ])

    results = await services.results.list_for_sample(sample.id)
    assert len(results) == 1
    assert results[0].result_value in values
    assert {r.id for r in responses} == {results[0].id}
    assert (await services.samples.get_sample(sample.id)).status == "Completed"


@pytest.mark.asyncio
async def test_submit_result_after_terminal_release(services: ServiceContainer, completed_sample, assay_test):
    """[실패/성공] 판정 전에는 재시험 결과를 받지만, 판정이 확정된 시료는 결과를 받지 않는다."""
    release = await services.releases.submit_to_qa(completed_sample.id)
    retest = await services.results.submit_result({
        "sample_id": completed_sample.id, "test_id": assay_test.id, "result_value": "100.1",
    })
    assert retest.passed is True

    await services.releases.decide(release.id, "Hold", decided_by="qa.head")
    with pytest.raises(ConflictError):
        await services.results.submit_result({
            "sample_id": completed_sample.id, "test_id": assay_test.id, "result_value": "100.2",
        })
    results = await services.results.list_for_sample(completed_sample.id)
    assert [r.result_value for r in results] == ["100.1"]
