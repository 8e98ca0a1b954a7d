# pqms/domains/qa/handlers.py

"""
'qa' 도메인(releases)이 소유한 작업을 메시지 패턴으로 등록하는 모듈입니다.
"""

from typing import TYPE_CHECKING

from pqms.core import gateway as gw
from pqms.core.gateway import MessageRegistry

from . import schemas as qa_schemas

if TYPE_CHECKING:
    from pqms.services.container import ServiceContainer


def _release(obj) -> qa_schemas.ReleaseResponse:
    return qa_schemas.ReleaseResponse.model_validate(obj)


def register(registry: MessageRegistry, services: "ServiceContainer") -> None:
    async def submit_to_qa(msg: qa_schemas.ReleaseSubmit):
        return _release(await services.releases.submit_to_qa(msg.sample_id, msg.submitted_by, msg.remarks))

    async def get_release(msg: qa_schemas.IdPayload):
        return _release(await services.releases.get_release(msg.id))

    async def get_release_for_sample(msg: qa_schemas.SampleIdPayload):
        db_release = await services.releases.get_release_for_sample(msg.sample_id)
        return _release(db_release) if db_release else None

    async def update_checklist(msg: qa_schemas.ChecklistUpdatePayload):
        return _release(await services.releases.update_checklist(msg.release_id, msg.item_id, msg.checked, msg.checked_by))

    async def decide(msg: qa_schemas.ReleaseDecidePayload):
        return await services.releases.decide(
            msg.release_id, msg.decision, msg.remarks, msg.decided_by,
            decision_reason=msg.decision_reason, e_signature=msg.e_signature,
        )

    async def redeliver(msg: qa_schemas.IdPayload):
        return await services.releases.redeliver(msg.id)

    async def update_release(msg: qa_schemas.ReleaseUpdatePayload):
        return _release(await services.releases.update_release(msg.id, msg.patch))

    registry.register(gw.RELEASES, "release.submitToQA", submit_to_qa, qa_schemas.ReleaseSubmit)
    registry.register(gw.RELEASES, "release.get", get_release, qa_schemas.IdPayload)
    registry.register(gw.RELEASES, "release.getForSample", get_release_for_sample, qa_schemas.SampleIdPayload)
    registry.register(gw.RELEASES, "release.updateChecklist", update_checklist, qa_schemas.ChecklistUpdatePayload)
    registry.register(gw.RELEASES, "release.decide", decide, qa_schemas.ReleaseDecidePayload)
    registry.register(gw.RELEASES, "release.redeliver", redeliver, qa_schemas.IdPayload)
    registry.register(gw.RELEASES, "release.update", update_release, qa_schemas.ReleaseUpdatePayload)
