# pqms/domains/qc/services.py

"""
'qc' 도메인의 비즈니스 로직(서비스 계층) 모듈입니다.

- TestCatalogService: 시험 정의와 규격 관리
- SampleService: 시료 생성, 시험 배정, 상태 전이
- ResultService: 결과 기록 및 규격 판정

각 서비스는 생성자로 세션 팩토리와 게이트웨이를 주입받습니다.
다른 서비스의 데이터는 게이트웨이로만 읽으며, 로컬 트랜잭션을 커밋한 뒤에 원격 호출을 수행합니다.
"""

import logging
from datetime import datetime, UTC
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from pqms.core.config import Settings
from pqms.core.database import SessionFactory, session_scope
from pqms.core.exceptions import ConflictError, NotFoundError, RemoteError, ValidationError
from pqms.core import gateway as gw

from . import crud as qc_crud
from . import models as qc_models
from . import schemas as qc_schemas
from .evaluation import evaluate

logger = logging.getLogger(__name__)

# 최대 시료 번호 생성 재시도 횟수 (동시 생성 시 unique 충돌 대비)
NUMBER_RETRIES = 3


def _validate(schema, data: Union[Dict[str, Any], Any]):
    """dict 입력을 스키마로 검증하고 실패 시 ValidationError로 변환합니다."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e))


def _dedupe(ids: List[int]) -> List[int]:
    return list(dict.fromkeys(ids))


# =============================================================================
# 1. 시험 카탈로그 서비스
# =============================================================================
class TestCatalogService:
    def __init__(self, session_factory: SessionFactory, gateway: gw.ServiceGateway):
        self.session_factory = session_factory
        self.gateway = gateway

    async def get_test(self, test_id: int) -> qc_models.Test:
        async with session_scope(self.session_factory) as db:
            db_test = await qc_crud.test.get(db, test_id)
        if not db_test:
            raise NotFoundError(f"Test {test_id} not found.")
        return db_test

    async def create_test(self, test_in: Union[qc_schemas.TestCreate, Dict[str, Any]]) -> qc_models.Test:
        """시험과 규격을 하나의 트랜잭션으로 생성합니다."""
        test_in = _validate(qc_schemas.TestCreate, test_in)
        try:
            async with session_scope(self.session_factory) as db:
                if await qc_crud.test.get_by_code(db, code=test_in.code):
                    raise ConflictError(f"Test with code '{test_in.code}' already exists.")
                db_test = await qc_crud.test.create_with_specifications(db, obj_in=test_in)
                test_id = db_test.id
        except IntegrityError:
            raise ConflictError(f"Test with code '{test_in.code}' already exists.")

        logger.info("Created test %s (%s) with %d specification(s)", test_id, test_in.code, len(test_in.specifications))
        return await self.get_test(test_id)

    async def update_test(self, test_id: int, patch: Union[qc_schemas.TestUpdate, Dict[str, Any]]) -> qc_models.Test:
        """
        시험 필드를 개별 수정합니다.
        specifications가 전달되면 기존 규격을 모두 지우고 새 목록으로 교체합니다.
        """
        test_in = _validate(qc_schemas.TestUpdate, patch)
        update_data = test_in.model_dump(exclude_unset=True, exclude={"specifications"})
        if "status" in update_data and update_data["status"] is not None:
            update_data["status"] = test_in.status.value
        for key in ("code", "name", "status"):
            if key in update_data and update_data[key] is None:
                raise ValidationError(f"'{key}' cannot be null.")

        try:
            async with session_scope(self.session_factory) as db:
                db_test = await qc_crud.test.get(db, test_id, for_update=True)
                if not db_test:
                    raise NotFoundError(f"Test {test_id} not found.")

                new_code = update_data.get("code")
                if new_code and new_code != db_test.code and await qc_crud.test.get_by_code(db, code=new_code):
                    raise ConflictError(f"Test with code '{new_code}' already exists.")

                await qc_crud.test.update(db, db_obj=db_test, obj_in=update_data)
                if test_in.specifications is not None:
                    await qc_crud.test.replace_specifications(db, db_obj=db_test, specifications=test_in.specifications)
        except IntegrityError:
            raise ConflictError(f"Test with code '{update_data.get('code')}' already exists.")

        return await self.get_test(test_id)

    async def delete_test(self, test_id: int) -> qc_models.Test:
        """시험을 삭제합니다. 규격은 함께 삭제됩니다."""
        async with session_scope(self.session_factory) as db:
            db_test = await qc_crud.test.delete(db, id=test_id)
            if not db_test:
                raise NotFoundError(f"Test {test_id} not found.")
        logger.info("Deleted test %s (%s)", test_id, db_test.code)
        return db_test

    async def list_tests(
        self, skip: int = 0, limit: int = 100, status: Optional[str] = None, category: Optional[str] = None
    ) -> List[qc_models.Test]:
        filters = {k: v for k, v in (("status", status), ("category", category)) if v is not None}
        async with session_scope(self.session_factory) as db:
            return await qc_crud.test.get_multi(db, skip=skip, limit=limit, **filters)

    async def list_for_material(self, material_id: Optional[str] = None, category: Optional[str] = None) -> List[qc_models.Test]:
        """
        자재에 적용할 활성 시험 목록을 반환합니다.
        자재-시험 간 명시적 매핑 테이블이 없으므로 자재 분류(category)로 근사합니다.
        분류가 없으면 모든 활성 시험을 반환합니다.
        """
        async with session_scope(self.session_factory) as db:
            return await qc_crud.test.get_active(db, category=category)


# =============================================================================
# 2. 시료 수명 주기 서비스
# =============================================================================
class SampleService:
    # 일반 수정(update)으로 바꿀 수 없는 필드
    PROTECTED_FIELDS = frozenset({
        "id", "status", "sample_number", "source_type", "source_id", "tests", "test_ids",
        "received_at", "received_by", "completed_at", "cancelled_at", "cancelled_reason",
    })

    def __init__(self, session_factory: SessionFactory, gateway: gw.ServiceGateway, settings: Settings):
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings

    async def get_sample(self, sample_id: int) -> qc_models.Sample:
        async with session_scope(self.session_factory) as db:
            db_sample = await qc_crud.sample.get(db, sample_id)
        if not db_sample:
            raise NotFoundError(f"Sample {sample_id} not found.")
        return db_sample

    async def _fetch_tests(self, test_ids: List[int]) -> List[Dict[str, Any]]:
        """카탈로그 서비스에서 시험 정의를 읽어 활성 상태인지 확인합니다."""
        tests = []
        for test_id in test_ids:
            try:
                test_data = await self.gateway.call(gw.CATALOG, "test.get", {"id": test_id})
            except RemoteError as e:
                raise e.localize() from e
            if test_data["status"] != qc_models.TestStatus.ACTIVE.value:
                raise ValidationError(f"Test {test_id} ({test_data['code']}) is not active.")
            tests.append(test_data)
        return tests

    async def _next_sample_number(self, db, year: int) -> str:
        prefix = f"{self.settings.SAMPLE_NUMBER_PREFIX}-{year}-"
        last = await qc_crud.sample.get_last_number(db, prefix=prefix)
        seq = int(last.rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{seq:0{self.settings.NUMBER_SEQUENCE_DIGITS}d}"

    async def create_sample(self, sample_in: Union[qc_schemas.SampleCreate, Dict[str, Any]]) -> qc_models.Sample:
        """
        원천 이벤트로부터 시료를 생성합니다.
        시료와 배정 시험은 하나의 트랜잭션으로 저장되며, 시험명/코드는 배정 시점 값으로 보존됩니다.
        """
        sample_in = _validate(qc_schemas.SampleCreate, sample_in)
        test_ids = _dedupe(sample_in.test_ids)

        if not test_ids and sample_in.auto_assign_tests:
            try:
                applicable = await self.gateway.call(
                    gw.CATALOG, "test.listForMaterial",
                    {"material_id": sample_in.material_id, "category": sample_in.material_category},
                )
            except RemoteError as e:
                raise e.localize() from e
            test_ids = [t["id"] for t in applicable]

        if not test_ids:
            raise ValidationError("At least one test must be assigned to a sample.")

        tests = await self._fetch_tests(test_ids)
        data = sample_in.model_dump(exclude={"test_ids", "auto_assign_tests", "priority", "source_type"})

        for attempt in range(1, NUMBER_RETRIES + 1):
            now = datetime.now(UTC)
            try:
                async with session_scope(self.session_factory) as db:
                    db_sample = qc_models.Sample(
                        **data,
                        source_type=sample_in.source_type.value,
                        priority=sample_in.priority.value,
                        status=qc_models.SampleStatus.PENDING.value,
                        requested_at=now,
                        sample_number=await self._next_sample_number(db, now.year),
                        tests=[
                            qc_models.SampleTest(test_id=t["id"], test_name=t["name"], test_code=t["code"])
                            for t in tests
                        ],
                    )
                    db.add(db_sample)
                    await db.flush()
                    sample_id = db_sample.id
                    sample_number = db_sample.sample_number
                break
            except IntegrityError:
                if attempt == NUMBER_RETRIES:
                    raise ConflictError("Could not allocate a unique sample number; please retry.")
                logger.info("Sample number collision, retrying (attempt %d)", attempt)

        logger.info("Created sample %s (%s) with %d test(s)", sample_id, sample_number, len(tests))
        return await self.get_sample(sample_id)

    async def receive_sample(self, sample_id: int, received_by: Optional[str] = None) -> qc_models.Sample:
        """Pending -> Received"""
        async with session_scope(self.session_factory) as db:
            db_sample = await qc_crud.sample.get(db, sample_id, for_update=True)
            if not db_sample:
                raise NotFoundError(f"Sample {sample_id} not found.")
            if db_sample.status != qc_models.SampleStatus.PENDING.value:
                raise ConflictError(f"Sample {db_sample.sample_number} is '{db_sample.status}', expected 'Pending'.")
            await qc_crud.sample.set_status(
                db, db_obj=db_sample, status=qc_models.SampleStatus.RECEIVED,
                received_at=datetime.now(UTC), received_by=received_by,
            )
        logger.info("Sample %s received", db_sample.sample_number)
        return await self.get_sample(sample_id)

    async def assign_tests(self, sample_id: int, test_ids: List[int]) -> qc_models.Sample:
        """
        Pending / Received 상태의 시료에 시험을 추가 배정합니다.
        시험이 시작된 뒤에는 배정 목록이 잠깁니다.
        """
        test_ids = _dedupe(test_ids)
        if not test_ids:
            raise ValidationError("test_ids must not be empty.")

        # 잠금 없이 상태를 먼저 확인하여 불필요한 원격 호출을 피합니다.
        current = await self.get_sample(sample_id)
        self._ensure_assignable(current)
        tests = await self._fetch_tests(test_ids)

        async with session_scope(self.session_factory) as db:
            db_sample = await qc_crud.sample.get(db, sample_id, for_update=True)
            if not db_sample:
                raise NotFoundError(f"Sample {sample_id} not found.")
            self._ensure_assignable(db_sample)
            assigned = await qc_crud.sample_test.get_test_ids(db, sample_id=sample_id)
            for t in tests:
                if t["id"] in assigned:
                    continue
                db.add(qc_models.SampleTest(sample_id=sample_id, test_id=t["id"], test_name=t["name"], test_code=t["code"]))
            await db.flush()
        return await self.get_sample(sample_id)

    @staticmethod
    def _ensure_assignable(db_sample: qc_models.Sample) -> None:
        if db_sample.status not in (qc_models.SampleStatus.PENDING.value, qc_models.SampleStatus.RECEIVED.value):
            raise ConflictError(
                f"Tests of sample {db_sample.sample_number} are locked (status '{db_sample.status}')."
            )

    async def _result_test_ids(self, sample_id: int) -> set:
        try:
            results = await self.gateway.call(gw.RESULTS, "result.listForSample", {"sample_id": sample_id})
        except RemoteError as e:
            raise e.localize() from e
        return {r["test_id"] for r in results}

    async def recompute_status(self, sample_id: int) -> qc_models.Sample:
        """
        결과 저장소의 전체 결과 집합으로부터 시료 상태를 다시 계산합니다.
        InTesting / Completed 상태는 이 메서드만 기록합니다.

        결과 목록을 읽은 뒤 상태를 쓰고, 그 사이 결과 집합이 바뀌었으면 다시 계산합니다.
        """
        seen = await self._result_test_ids(sample_id)
        for _ in range(NUMBER_RETRIES):
            async with session_scope(self.session_factory) as db:
                db_sample = await qc_crud.sample.get(db, sample_id, for_update=True)
                if not db_sample:
                    raise NotFoundError(f"Sample {sample_id} not found.")
                if db_sample.status == qc_models.SampleStatus.CANCELLED.value:
                    raise ConflictError(f"Sample {db_sample.sample_number} is cancelled.")

                assigned = {t.test_id for t in db_sample.tests}
                covered = assigned & seen
                if assigned and covered == assigned:
                    if db_sample.status != qc_models.SampleStatus.COMPLETED.value:
                        await qc_crud.sample.set_status(
                            db, db_obj=db_sample, status=qc_models.SampleStatus.COMPLETED, completed_at=datetime.now(UTC)
                        )
                        logger.info("Sample %s completed", db_sample.sample_number)
                elif covered:
                    if db_sample.status != qc_models.SampleStatus.IN_TESTING.value:
                        await qc_crud.sample.set_status(
                            db, db_obj=db_sample, status=qc_models.SampleStatus.IN_TESTING, completed_at=None
                        )

            latest = await self._result_test_ids(sample_id)
            if latest == seen:
                break
            seen = latest
        return await self.get_sample(sample_id)

    async def cancel(self, sample_id: int, reason: str) -> qc_models.Sample:
        """결과가 기록되기 전(Pending / Received)에만 취소할 수 있습니다."""
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required.")
        current = await self.get_sample(sample_id)
        self._ensure_cancellable(current)
        if await self._result_test_ids(sample_id):
            raise ConflictError(f"Sample {current.sample_number} already has results and cannot be cancelled.")

        async with session_scope(self.session_factory) as db:
            db_sample = await qc_crud.sample.get(db, sample_id, for_update=True)
            self._ensure_cancellable(db_sample)
            await qc_crud.sample.set_status(
                db, db_obj=db_sample, status=qc_models.SampleStatus.CANCELLED,
                cancelled_reason=reason, cancelled_at=datetime.now(UTC),
            )
        logger.info("Sample %s cancelled: %s", current.sample_number, reason)
        return await self.get_sample(sample_id)

    @staticmethod
    def _ensure_cancellable(db_sample: qc_models.Sample) -> None:
        if db_sample.status not in (qc_models.SampleStatus.PENDING.value, qc_models.SampleStatus.RECEIVED.value):
            raise ConflictError(f"Sample {db_sample.sample_number} is '{db_sample.status}' and cannot be cancelled.")

    async def update_sample(self, sample_id: int, patch: Dict[str, Any]) -> qc_models.Sample:
        """우선순위, 담당자, 기한, 비고만 수정합니다. 상태 필드는 거부됩니다."""
        protected = sorted(self.PROTECTED_FIELDS.intersection(patch))
        if protected:
            raise ValidationError(f"Fields {protected} cannot be changed through update.")
        sample_in = _validate(qc_schemas.SampleUpdate, patch)
        update_data = sample_in.model_dump(exclude_unset=True)
        if "priority" in update_data:
            if sample_in.priority is None:
                raise ValidationError("'priority' cannot be null.")
            update_data["priority"] = sample_in.priority.value

        async with session_scope(self.session_factory) as db:
            db_sample = await qc_crud.sample.get(db, sample_id, for_update=True)
            if not db_sample:
                raise NotFoundError(f"Sample {sample_id} not found.")
            if db_sample.status in (qc_models.SampleStatus.COMPLETED.value, qc_models.SampleStatus.CANCELLED.value):
                raise ConflictError(f"Sample {db_sample.sample_number} is '{db_sample.status}' and can no longer be edited.")
            await qc_crud.sample.update(db, db_obj=db_sample, obj_in=update_data)
        return await self.get_sample(sample_id)


# =============================================================================
# 3. 결과 평가 서비스
# =============================================================================
class ResultService:
    # 결과를 받을 수 있는 시료 상태
    OPEN_STATUSES = (
        qc_models.SampleStatus.PENDING.value,
        qc_models.SampleStatus.RECEIVED.value,
        qc_models.SampleStatus.IN_TESTING.value,
        qc_models.SampleStatus.COMPLETED.value,
    )

    def __init__(self, session_factory: SessionFactory, gateway: gw.ServiceGateway, settings: Settings):
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings

    async def get_result(self, result_id: int) -> qc_models.Result:
        async with session_scope(self.session_factory) as db:
            db_result = await qc_crud.result.get(db, result_id)
        if not db_result:
            raise NotFoundError(f"Result {result_id} not found.")
        return db_result

    async def list_for_sample(self, sample_id: int) -> List[qc_models.Result]:
        async with session_scope(self.session_factory) as db:
            return await qc_crud.result.get_for_sample(db, sample_id=sample_id)

    async def _remote(self, target: str, operation: str, payload: Dict[str, Any]) -> Any:
        try:
            return await self.gateway.call(target, operation, payload)
        except RemoteError as e:
            raise e.localize() from e

    async def submit_result(self, result_in: Union[qc_schemas.ResultSubmit, Dict[str, Any]]) -> qc_schemas.ResultSubmitResponse:
        """
        (sample_id, test_id) 결과를 upsert하고 시료 상태 재계산을 요청합니다.
        같은 쌍의 재제출은 값을 덮어쓰며 이전 검토 기록(reviewed_by/at)을 지웁니다.
        """
        result_in = _validate(qc_schemas.ResultSubmit, result_in)

        sample = await self._remote(gw.SAMPLES, "sample.get", {"id": result_in.sample_id})
        if sample["status"] not in self.OPEN_STATUSES:
            raise ConflictError(f"Sample {sample['sample_number']} is '{sample['status']}' and does not accept results.")
        if result_in.test_id not in {t["test_id"] for t in sample["tests"]}:
            raise ValidationError(f"Test {result_in.test_id} is not assigned to sample {sample['sample_number']}.")
        if sample["status"] == qc_models.SampleStatus.COMPLETED.value:
            # 릴리스 판정이 확정된 시료는 더 이상 결과를 받지 않습니다.
            release = await self._remote(gw.RELEASES, "release.getForSample", {"sample_id": result_in.sample_id})
            if release and release["decision"] != "Pending":
                raise ConflictError(
                    f"Sample {sample['sample_number']} is retired by release {release['release_number']} ({release['decision']})."
                )

        test = await self._remote(gw.CATALOG, "test.get", {"id": result_in.test_id})
        evaluation = evaluate(
            test["specifications"],
            result_in.result_value,
            parameter=result_in.parameter,
            passed=result_in.passed,
            default_tolerance=Decimal(self.settings.RESULT_TARGET_TOLERANCE),
        )

        values = {
            "parameter": evaluation.parameter,
            "result_value": result_in.result_value,
            "numeric_value": evaluation.numeric_value,
            "unit": result_in.unit,
            "passed": evaluation.passed,
            "deviation": result_in.deviation or evaluation.deviation,
            "remarks": result_in.remarks,
            "tested_by": result_in.tested_by,
            "tested_at": result_in.tested_at or datetime.now(UTC),
            "reviewed_by": None,
            "reviewed_at": None,
        }
        result_id = await self._upsert(result_in.sample_id, result_in.test_id, values)
        logger.info(
            "Recorded result for sample %s test %s: %s (%s)",
            sample["sample_number"], test["code"], result_in.result_value, "pass" if evaluation.passed else "fail",
        )

        # 결과는 이미 커밋되었습니다. 재계산 실패는 호출자에게 그대로 전달되며, 재제출로 안전하게 재시도할 수 있습니다.
        recomputed = await self.gateway.call(gw.SAMPLES, "sample.recomputeStatus", {"id": result_in.sample_id})

        db_result = await self.get_result(result_id)
        response = qc_schemas.ResultSubmitResponse.model_validate(db_result)
        response.sample_status = recomputed["status"]
        return response

    async def _upsert(self, sample_id: int, test_id: int, values: Dict[str, Any]) -> int:
        try:
            async with session_scope(self.session_factory) as db:
                existing = await qc_crud.result.get_by_sample_and_test(db, sample_id=sample_id, test_id=test_id)
                if existing:
                    db_result = await qc_crud.result.update(db, db_obj=existing, obj_in=values)
                else:
                    db_result = await qc_crud.result.create(db, obj_in={"sample_id": sample_id, "test_id": test_id, **values})
                return db_result.id
        except IntegrityError:
            # 동시 제출이 먼저 행을 만들었습니다. 마지막 쓰기가 이기도록 덮어씁니다.
            async with session_scope(self.session_factory) as db:
                await qc_crud.result.overwrite(db, sample_id=sample_id, test_id=test_id, values=values)
                existing = await qc_crud.result.get_by_sample_and_test(db, sample_id=sample_id, test_id=test_id)
                return existing.id

    async def review_result(self, result_id: int, reviewed_by: str) -> qc_models.Result:
        async with session_scope(self.session_factory) as db:
            db_result = await qc_crud.result.get(db, result_id, for_update=True)
            if not db_result:
                raise NotFoundError(f"Result {result_id} not found.")
            await qc_crud.result.update(db, db_obj=db_result, obj_in={"reviewed_by": reviewed_by, "reviewed_at": datetime.now(UTC)})
        return await self.get_result(result_id)
