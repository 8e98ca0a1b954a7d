# pqms/domains/qa/services.py

"""
'qa' 도메인의 비즈니스 로직(판정 조정) 모듈입니다.

릴리스 상태 머신:
    Pending --(필수 체크리스트 모두 확인)--> Reviewed --decide--> Decided
    (Reviewed 상태에서 필수 항목을 다시 해제하면 Pending으로 돌아갑니다.)

decision이 Release / Reject / Hold로 확정되면 릴리스는 불변입니다.
잘못된 판정을 바로잡으려면 새 시료/릴리스 주기를 만들어야 합니다.
"""

import logging
from datetime import date, datetime, timedelta, UTC
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from pqms.core.config import Settings
from pqms.core.database import SessionFactory, session_scope, with_transaction
from pqms.core.exceptions import ConflictError, GatewayError, NotFoundError, RemoteError, ValidationError
from pqms.core import gateway as gw

from . import crud as qa_crud
from . import models as qa_models
from . import schemas as qa_schemas

logger = logging.getLogger(__name__)

NUMBER_RETRIES = 3

# 판정 대상 유형 -> 판정을 받는 서비스의 메시지 패턴
DISPOSITION_ROUTES: Dict[str, Tuple[str, str]] = {
    "GoodsReceipt": (gw.INVENTORY, "inventory.receiptItem.applyDisposition"),
    "Batch": (gw.INVENTORY, "inventory.batch.applyDisposition"),
}


class ReleaseService:
    # 일반 수정(update)으로 바꿀 수 없는 필드
    PROTECTED_FIELDS = frozenset({
        "id", "status", "decision", "release_number", "sample_id", "entity_type", "entity_id",
        "results_snapshot", "all_results_passed", "checklist_items", "decided_by", "decided_at",
        "reviewed_by", "reviewed_at", "disposition_delivered", "disposition_delivered_at",
        "delivery_attempts", "last_delivery_error",
    })

    def __init__(self, session_factory: SessionFactory, gateway: gw.ServiceGateway, settings: Settings):
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings

    async def get_release(self, release_id: int) -> qa_models.Release:
        async with session_scope(self.session_factory) as db:
            db_release = await qa_crud.release.get(db, release_id)
        if not db_release:
            raise NotFoundError(f"Release {release_id} not found.")
        return db_release

    async def _remote(self, target: str, operation: str, payload: Dict[str, Any]) -> Any:
        try:
            return await self.gateway.call(target, operation, payload)
        except RemoteError as e:
            raise e.localize() from e

    async def _find_by_sample(self, sample_id: int) -> Optional[qa_models.Release]:
        return await with_transaction(
            self.session_factory, lambda db: qa_crud.release.get_by_sample_id(db, sample_id=sample_id)
        )

    async def get_release_for_sample(self, sample_id: int) -> Optional[qa_models.Release]:
        """시료에 대해 제출된 릴리스를 반환합니다. 아직 제출되지 않았으면 None입니다."""
        return await self._find_by_sample(sample_id)

    # =========================================================================
    # 1. QA 제출
    # =========================================================================
    @staticmethod
    def _build_snapshot(sample: Dict[str, Any], results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        tests = {t["test_id"]: t for t in sample["tests"]}
        missing = sorted(set(tests) - {r["test_id"] for r in results})
        if missing:
            raise ConflictError(f"Sample {sample['sample_number']} has no result for test(s) {missing}.")

        snapshot = []
        for r in results:
            if r["test_id"] not in tests:
                continue
            snapshot.append({
                "result_id": r["id"],
                "test_id": r["test_id"],
                "test_code": tests[r["test_id"]]["test_code"],
                "test_name": tests[r["test_id"]]["test_name"],
                "parameter": r.get("parameter"),
                "result_value": r["result_value"],
                "unit": r.get("unit"),
                "passed": r["passed"],
                "deviation": r.get("deviation"),
                "tested_by": r.get("tested_by"),
                "tested_at": r.get("tested_at"),
            })
        return snapshot

    async def _next_release_number(self, db, year: int) -> str:
        prefix = f"{self.settings.RELEASE_NUMBER_PREFIX}-{year}-"
        last = await qa_crud.release.get_last_number(db, prefix=prefix)
        seq = int(last.rsplit("-", 1)[1]) + 1 if last else 1
        return f"{prefix}{seq:0{self.settings.NUMBER_SEQUENCE_DIGITS}d}"

    async def submit_to_qa(
        self, sample_id: int, submitted_by: Optional[str] = None, remarks: Optional[str] = None
    ) -> qa_models.Release:
        """
        완료된 시료의 결과를 스냅샷으로 묶어 릴리스를 생성합니다.
        같은 시료로 다시 제출하면 기존 릴리스를 그대로 반환합니다.
        """
        existing = await self._find_by_sample(sample_id)
        if existing:
            logger.info("Release %s already exists for sample %s", existing.release_number, sample_id)
            return existing

        # 호출자가 전달한 상태를 믿지 않고 시료 서비스에서 다시 읽습니다.
        sample = await self._remote(gw.SAMPLES, "sample.get", {"id": sample_id})
        if sample["status"] != "Completed":
            raise ConflictError(
                f"Sample {sample['sample_number']} is '{sample['status']}'; only Completed samples can be submitted to QA."
            )
        results = await self._remote(gw.RESULTS, "result.listForSample", {"sample_id": sample_id})
        snapshot = self._build_snapshot(sample, results)

        for attempt in range(1, NUMBER_RETRIES + 1):
            now = datetime.now(UTC)
            try:
                async with session_scope(self.session_factory) as db:
                    db_release = qa_models.Release(
                        release_number=await self._next_release_number(db, now.year),
                        sample_id=sample_id,
                        sample_number=sample["sample_number"],
                        entity_type=sample["source_type"],
                        entity_id=sample.get("goods_receipt_item_id") or sample["source_id"],
                        source_reference=sample.get("source_reference"),
                        material_id=sample.get("material_id"),
                        material_name=sample.get("material_name"),
                        material_code=sample.get("material_code"),
                        batch_number=sample.get("batch_number"),
                        quantity=Decimal(str(sample["quantity"])) if sample.get("quantity") is not None else None,
                        unit=sample.get("unit"),
                        status=qa_models.ReleaseStatus.PENDING.value,
                        decision=qa_models.Decision.PENDING.value,
                        results_snapshot=snapshot,
                        all_results_passed=all(item["passed"] for item in snapshot),
                        submitted_by=submitted_by,
                        submitted_at=now,
                        remarks=remarks,
                        due_date=date.today() + timedelta(days=self.settings.QA_RELEASE_DUE_DAYS),
                        checklist_items=[
                            qa_models.ReleaseChecklistItem(
                                category=item["category"],
                                description=item.get("description"),
                                is_required=item.get("is_required", True),
                            )
                            for item in self.settings.QA_CHECKLIST_TEMPLATE
                        ],
                    )
                    db.add(db_release)
                    await db.flush()
                    release_id = db_release.id
                    release_number = db_release.release_number
                break
            except IntegrityError:
                # 동시 제출이 먼저 릴리스를 만들었다면 그것을 반환합니다.
                existing = await self._find_by_sample(sample_id)
                if existing:
                    return existing
                if attempt == NUMBER_RETRIES:
                    raise ConflictError("Could not allocate a unique release number; please retry.")

        logger.info("Submitted sample %s to QA as release %s", sample["sample_number"], release_number)
        return await self.get_release(release_id)

    # =========================================================================
    # 2. 체크리스트
    # =========================================================================
    async def update_checklist(
        self, release_id: int, item_id: int, checked: bool, checked_by: Optional[str] = None
    ) -> qa_models.Release:
        """체크리스트 항목 하나를 확인/해제하고 검토 상태를 다시 계산합니다."""
        async with session_scope(self.session_factory) as db:
            db_release = await qa_crud.release.get(db, release_id, for_update=True)
            if not db_release:
                raise NotFoundError(f"Release {release_id} not found.")
            if db_release.is_terminal:
                raise ConflictError(f"Release {db_release.release_number} is already decided ({db_release.decision}).")

            item = next((i for i in db_release.checklist_items if i.id == item_id), None)
            if item is None:
                raise NotFoundError(f"Checklist item {item_id} not found on release {db_release.release_number}.")

            now = datetime.now(UTC)
            item.checked = checked
            item.checked_by = checked_by if checked else None
            item.checked_at = now if checked else None

            if all(i.checked for i in db_release.checklist_items if i.is_required):
                if db_release.status != qa_models.ReleaseStatus.REVIEWED.value:
                    db_release.status = qa_models.ReleaseStatus.REVIEWED.value
                    db_release.reviewed_by = checked_by
                    db_release.reviewed_at = now
            else:
                db_release.status = qa_models.ReleaseStatus.PENDING.value
                db_release.reviewed_by = None
                db_release.reviewed_at = None
            db.add(db_release)
            await db.flush()
        return await self.get_release(release_id)

    # =========================================================================
    # 3. 판정
    # =========================================================================
    @staticmethod
    def _check_release_allowed(db_release: qa_models.Release) -> None:
        unchecked = [i.category for i in db_release.checklist_items if i.is_required and not i.checked]
        if unchecked:
            raise ValidationError(f"Required checklist items are not checked: {', '.join(unchecked)}.")
        failed = [s.get("test_code") or str(s.get("test_id")) for s in db_release.results_snapshot if not s.get("passed")]
        if failed:
            raise ValidationError(f"Release is not allowed with failed QC results: {', '.join(failed)}.")

    @staticmethod
    def build_event(db_release: qa_models.Release) -> qa_schemas.DispositionEvent:
        return qa_schemas.DispositionEvent(
            release_id=db_release.id,
            release_number=db_release.release_number,
            entity_type=db_release.entity_type,
            entity_id=db_release.entity_id,
            decision=db_release.decision,
            decided_by=db_release.decided_by,
            decided_at=db_release.decided_at,
            decision_reason=db_release.decision_reason,
            e_signature=db_release.e_signature,
            remarks=db_release.remarks,
            sample_number=db_release.sample_number,
            batch_number=db_release.batch_number,
            material_id=db_release.material_id,
        )

    async def decide(
        self,
        release_id: int,
        decision: Union[qa_models.Decision, str],
        remarks: Optional[str] = None,
        decided_by: Optional[str] = None,
        decision_reason: Optional[str] = None,
        e_signature: Optional[str] = None,
    ) -> qa_schemas.DecisionOutcome:
        """
        최종 판정을 기록하고 판정 이벤트를 소유 도메인으로 전달합니다.

        Release 판정은 필수 체크리스트가 모두 확인되고 스냅샷의 모든 결과가 적합해야 합니다.
        Reject / Hold는 항상 허용됩니다.
        판정 비고는 제출 시 비고를 덮어쓰지 않고 "Decision: ..." 형태로 뒤에 덧붙입니다.
        판정은 `decision = 'Pending'` 조건부 쓰기로 저장되므로 동시 판정 중 하나만 성공합니다.
        전달 실패 시 판정은 유지되고 미전달 상태로 남아 재전달 대상이 됩니다.
        """
        try:
            decision = qa_models.Decision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision '{decision}'.")
        if decision not in qa_models.Decision.terminal():
            raise ValidationError("Decision must be one of Release, Reject or Hold.")
        if not decided_by:
            raise ValidationError("decided_by is required.")

        async with session_scope(self.session_factory) as db:
            db_release = await qa_crud.release.get(db, release_id, for_update=True)
            if not db_release:
                raise NotFoundError(f"Release {release_id} not found.")
            if db_release.is_terminal:
                raise ConflictError(f"Release {db_release.release_number} is already decided ({db_release.decision}).")
            if decision == qa_models.Decision.RELEASE:
                self._check_release_allowed(db_release)

            values = {
                "decision": decision.value,
                "status": qa_models.ReleaseStatus.DECIDED.value,
                "decided_by": decided_by,
                "decided_at": datetime.now(UTC),
                "decision_reason": decision_reason,
                "e_signature": e_signature,
                "disposition_delivered": False,
            }
            if remarks:
                values["remarks"] = f"{db_release.remarks}\n\nDecision: {remarks}" if db_release.remarks else remarks
            if await qa_crud.release.decide_if_pending(db, release_id=release_id, values=values) == 0:
                raise ConflictError(f"Release {db_release.release_number} was decided by another request.")
            release_number = db_release.release_number

        logger.info("Release %s decided: %s by %s", release_number, decision.value, decided_by)
        return await self._deliver(await self.get_release(release_id))

    # =========================================================================
    # 4. 판정 전달 / 재전달
    # =========================================================================
    async def _deliver(self, db_release: qa_models.Release) -> qa_schemas.DecisionOutcome:
        """
        판정 이벤트를 소유 도메인에 전달합니다.
        수신 측은 release_id로 멱등하므로 실패(제한 시간 초과 포함) 후 재전달해도 안전합니다.
        """
        event = self.build_event(db_release)
        route = DISPOSITION_ROUTES.get(db_release.entity_type)

        error: Optional[Dict[str, Any]] = None
        if route is None:
            error = {"kind": "no_route", "detail": f"No disposition route for entity type '{db_release.entity_type}'.", "retryable": False}
        else:
            target, pattern = route
            try:
                await self.gateway.call(target, pattern, event.model_dump(mode="json"))
            except GatewayError as e:
                error = e.to_dict()

        now = datetime.now(UTC)
        async with session_scope(self.session_factory) as db:
            fresh = await qa_crud.release.get(db, db_release.id, for_update=True)
            fresh.delivery_attempts = (fresh.delivery_attempts or 0) + 1
            if error is None:
                fresh.disposition_delivered = True
                fresh.disposition_delivered_at = now
                fresh.last_delivery_error = None
            else:
                fresh.last_delivery_error = f"{error['kind']}: {error['detail']}"
            db.add(fresh)
            await db.flush()

        if error is None:
            logger.info("Disposition of release %s delivered to %s", db_release.release_number, db_release.entity_type)
        else:
            logger.warning(
                "Disposition of release %s is pending delivery: %s", db_release.release_number, error["detail"]
            )

        refreshed = await self.get_release(db_release.id)
        return qa_schemas.DecisionOutcome(
            release=qa_schemas.ReleaseResponse.model_validate(refreshed),
            event=event,
            delivered=error is None,
            delivery_error=error,
        )

    async def redeliver(self, release_id: int) -> qa_schemas.DecisionOutcome:
        """확정되었지만 전달되지 않은 판정을 다시 전달합니다. 이미 전달되었으면 아무것도 하지 않습니다."""
        db_release = await self.get_release(release_id)
        if not db_release.is_terminal:
            raise ConflictError(f"Release {db_release.release_number} has no decision to deliver yet.")
        if db_release.disposition_delivered:
            return qa_schemas.DecisionOutcome(
                release=qa_schemas.ReleaseResponse.model_validate(db_release),
                event=self.build_event(db_release),
                delivered=True,
            )
        return await self._deliver(db_release)

    async def redeliver_pending(self, limit: int = 100) -> Dict[str, int]:
        """미전달 판정을 일괄 재전달합니다. (ARQ 크론 작업에서 호출)"""
        async with session_scope(self.session_factory) as db:
            pending = await qa_crud.release.get_undelivered(db, limit=limit)

        delivered = 0
        for db_release in pending:
            outcome = await self._deliver(db_release)
            delivered += int(outcome.delivered)
        summary = {"attempted": len(pending), "delivered": delivered, "failed": len(pending) - delivered}
        if pending:
            logger.info("Disposition redelivery: %s", summary)
        return summary

    # =========================================================================
    # 5. 일반 수정
    # =========================================================================
    async def update_release(self, release_id: int, patch: Dict[str, Any]) -> qa_models.Release:
        """비고와 기한만 수정합니다. status / decision 등 상태 필드는 거부됩니다."""
        protected = sorted(self.PROTECTED_FIELDS.intersection(patch))
        if protected:
            raise ValidationError(f"Fields {protected} cannot be changed through update.")
        try:
            release_in = qa_schemas.ReleaseUpdate.model_validate(patch)
        except PydanticValidationError as e:
            raise ValidationError(str(e))

        async with session_scope(self.session_factory) as db:
            db_release = await qa_crud.release.get(db, release_id, for_update=True)
            if not db_release:
                raise NotFoundError(f"Release {release_id} not found.")
            if db_release.is_terminal:
                raise ConflictError(f"Release {db_release.release_number} is decided and immutable.")
            await qa_crud.release.update(db, db_obj=db_release, obj_in=release_in)
        return await self.get_release(release_id)
