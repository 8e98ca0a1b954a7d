# pqms/domains/qc/handlers.py

"""
'qc' 도메인이 소유한 작업을 메시지 패턴으로 등록하는 모듈입니다.

등록된 패턴은 LocalGateway(프로세스 내)와 `/rpc/{pattern}` 엔드포인트(HTTP) 양쪽에서 사용됩니다.
핸들러는 호출 시점에 컨테이너에서 서비스를 찾으므로 서비스 교체(테스트)에 영향을 받지 않습니다.
"""

from typing import TYPE_CHECKING

from pqms.core import gateway as gw
from pqms.core.gateway import MessageRegistry

from . import schemas as qc_schemas

if TYPE_CHECKING:
    from pqms.services.container import ServiceContainer


def _test(obj) -> qc_schemas.TestResponse:
    return qc_schemas.TestResponse.model_validate(obj)


def _sample(obj) -> qc_schemas.SampleResponse:
    return qc_schemas.SampleResponse.model_validate(obj)


def _result(obj) -> qc_schemas.ResultResponse:
    return qc_schemas.ResultResponse.model_validate(obj)


def register(registry: MessageRegistry, services: "ServiceContainer") -> None:
    # =========================================================================
    # 1. 시험 카탈로그 (catalog)
    # =========================================================================
    async def create_test(msg: qc_schemas.TestCreate):
        return _test(await services.catalog.create_test(msg))

    async def update_test(msg: qc_schemas.TestUpdatePayload):
        return _test(await services.catalog.update_test(msg.id, msg.patch))

    async def get_test(msg: qc_schemas.IdPayload):
        return _test(await services.catalog.get_test(msg.id))

    async def delete_test(msg: qc_schemas.IdPayload):
        return _test(await services.catalog.delete_test(msg.id))

    async def list_for_material(msg: qc_schemas.ListForMaterialPayload):
        tests = await services.catalog.list_for_material(msg.material_id, msg.category)
        return [_test(t) for t in tests]

    registry.register(gw.CATALOG, "test.create", create_test, qc_schemas.TestCreate)
    registry.register(gw.CATALOG, "test.update", update_test, qc_schemas.TestUpdatePayload)
    registry.register(gw.CATALOG, "test.get", get_test, qc_schemas.IdPayload)
    registry.register(gw.CATALOG, "test.delete", delete_test, qc_schemas.IdPayload)
    registry.register(gw.CATALOG, "test.listForMaterial", list_for_material, qc_schemas.ListForMaterialPayload)

    # =========================================================================
    # 2. 시료 (samples)
    # =========================================================================
    async def create_sample(msg: qc_schemas.SampleCreate):
        return _sample(await services.samples.create_sample(msg))

    async def get_sample(msg: qc_schemas.IdPayload):
        return _sample(await services.samples.get_sample(msg.id))

    async def receive_sample(msg: qc_schemas.SampleReceivePayload):
        return _sample(await services.samples.receive_sample(msg.id, msg.received_by))

    async def assign_tests(msg: qc_schemas.SampleAssignTestsPayload):
        return _sample(await services.samples.assign_tests(msg.id, msg.test_ids))

    async def recompute_status(msg: qc_schemas.IdPayload):
        return _sample(await services.samples.recompute_status(msg.id))

    async def cancel_sample(msg: qc_schemas.SampleCancelPayload):
        return _sample(await services.samples.cancel(msg.id, msg.reason))

    async def update_sample(msg: qc_schemas.SampleUpdatePayload):
        return _sample(await services.samples.update_sample(msg.id, msg.patch))

    registry.register(gw.SAMPLES, "sample.create", create_sample, qc_schemas.SampleCreate)
    registry.register(gw.SAMPLES, "sample.get", get_sample, qc_schemas.IdPayload)
    registry.register(gw.SAMPLES, "sample.receive", receive_sample, qc_schemas.SampleReceivePayload)
    registry.register(gw.SAMPLES, "sample.assignTests", assign_tests, qc_schemas.SampleAssignTestsPayload)
    registry.register(gw.SAMPLES, "sample.recomputeStatus", recompute_status, qc_schemas.IdPayload)
    registry.register(gw.SAMPLES, "sample.cancel", cancel_sample, qc_schemas.SampleCancelPayload)
    registry.register(gw.SAMPLES, "sample.update", update_sample, qc_schemas.SampleUpdatePayload)

    # =========================================================================
    # 3. 시험 결과 (results)
    # =========================================================================
    async def submit_result(msg: qc_schemas.ResultSubmit):
        return await services.results.submit_result(msg)

    async def get_result(msg: qc_schemas.IdPayload):
        return _result(await services.results.get_result(msg.id))

    async def list_results(msg: qc_schemas.SampleIdPayload):
        return [_result(r) for r in await services.results.list_for_sample(msg.sample_id)]

    async def review_result(msg: qc_schemas.ResultReviewPayload):
        return _result(await services.results.review_result(msg.id, msg.reviewed_by))

    registry.register(gw.RESULTS, "result.submit", submit_result, qc_schemas.ResultSubmit)
    registry.register(gw.RESULTS, "result.get", get_result, qc_schemas.IdPayload)
    registry.register(gw.RESULTS, "result.listForSample", list_results, qc_schemas.SampleIdPayload)
    registry.register(gw.RESULTS, "result.review", review_result, qc_schemas.ResultReviewPayload)
