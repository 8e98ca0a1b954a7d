# pqms/domains/inv/schemas.py

"""
'inv' 도메인 (로트 처분)의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField


class DispositionApply(BaseModel):
    """QA 판정 이벤트 페이로드"""
    release_id: int
    release_number: str
    entity_type: str
    entity_id: str = PydanticField(min_length=1)
    decision: str = PydanticField(pattern="^(Release|Reject|Hold)$")
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_reason: Optional[str] = None
    e_signature: Optional[str] = None
    remarks: Optional[str] = None
    sample_number: Optional[str] = None
    batch_number: Optional[str] = None
    material_id: Optional[str] = None


class DispositionQuery(BaseModel):
    entity_type: str
    entity_id: str


class LotDispositionResponse(BaseModel):
    id: int
    release_id: int
    release_number: str
    entity_type: str
    entity_id: str
    decision: str
    stock_status: str
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_reason: Optional[str] = None
    e_signature: Optional[str] = None
    remarks: Optional[str] = None
    sample_number: Optional[str] = None
    batch_number: Optional[str] = None
    material_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
