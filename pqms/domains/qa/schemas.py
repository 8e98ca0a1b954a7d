# pqms/domains/qa/schemas.py

"""
'qa' 도메인 (QA 릴리스/판정)의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, Field as PydanticField

from .models import Decision


# =============================================================================
# 1. 체크리스트 항목 스키마
# =============================================================================
class ChecklistItemResponse(BaseModel):
    id: int
    category: str
    description: Optional[str] = None
    is_required: bool
    checked: bool
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChecklistUpdate(BaseModel):
    checked: bool
    checked_by: Optional[str] = None


# =============================================================================
# 2. 릴리스 스키마
# =============================================================================
class ReleaseSubmit(BaseModel):
    sample_id: int
    submitted_by: Optional[str] = None
    remarks: Optional[str] = None


class ReleaseUpdate(BaseModel):
    """일반 수정은 비고와 기한만 허용합니다. status / decision은 거부됩니다."""
    remarks: Optional[str] = None
    due_date: Optional[date] = None

    model_config = {"extra": "forbid"}


class ReleaseDecide(BaseModel):
    decision: Decision = PydanticField(description="Release / Reject / Hold")
    remarks: Optional[str] = None
    decided_by: str = PydanticField(min_length=1, description="판정자")
    decision_reason: Optional[str] = PydanticField(default=None, description="판정 사유")
    e_signature: Optional[str] = PydanticField(default=None, max_length=255, description="판정자 전자서명")


class ReleaseResponse(BaseModel):
    id: int
    release_number: str
    sample_id: int
    sample_number: str
    entity_type: str
    entity_id: str
    source_reference: Optional[str] = None
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    material_code: Optional[str] = None
    batch_number: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    status: str
    decision: str
    results_snapshot: List[Dict[str, Any]] = []
    all_results_passed: bool
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_reason: Optional[str] = None
    e_signature: Optional[str] = None
    remarks: Optional[str] = None
    due_date: Optional[date] = None
    disposition_delivered: bool
    disposition_delivered_at: Optional[datetime] = None
    delivery_attempts: int
    last_delivery_error: Optional[str] = None
    checklist_items: List[ChecklistItemResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# 3. 판정 이벤트 (재고/배치 도메인으로 전달)
# =============================================================================
class DispositionEvent(BaseModel):
    release_id: int
    release_number: str
    entity_type: str
    entity_id: str
    decision: Decision
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_reason: Optional[str] = None
    e_signature: Optional[str] = None
    remarks: Optional[str] = None
    sample_number: Optional[str] = None
    batch_number: Optional[str] = None
    material_id: Optional[str] = None


class DecisionOutcome(BaseModel):
    """decide()의 응답: 확정된 릴리스, 판정 이벤트, 전달 결과"""
    release: ReleaseResponse
    event: DispositionEvent
    delivered: bool
    delivery_error: Optional[Dict[str, Any]] = None


# =============================================================================
# 4. 서비스 간 메시지 페이로드
# =============================================================================
class IdPayload(BaseModel):
    id: int


class SampleIdPayload(BaseModel):
    sample_id: int


class ChecklistUpdatePayload(ChecklistUpdate):
    release_id: int
    item_id: int


class ReleaseDecidePayload(ReleaseDecide):
    release_id: int


class ReleaseUpdatePayload(BaseModel):
    id: int
    patch: Dict[str, Any]
