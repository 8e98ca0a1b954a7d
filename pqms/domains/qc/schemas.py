# pqms/domains/qc/schemas.py

"""
'qc' 도메인 (시험 카탈로그, 시료, 시험 결과)의 Pydantic 스키마를 정의하는 모듈입니다.

API 요청/응답과 서비스 간 메시지 페이로드의 유효성 검사 및 직렬화에 함께 사용됩니다.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, Field as PydanticField, field_validator, model_validator

from .models import SamplePriority, SourceType, TestStatus


# =============================================================================
# 1. 시험 규격 (TestSpecification) 스키마
# =============================================================================
class SpecificationBase(BaseModel):
    parameter: str = PydanticField(min_length=1, max_length=100, description="시험 항목명")
    min_value: Optional[Decimal] = PydanticField(default=None, max_digits=28, decimal_places=8, description="하한 규격")
    max_value: Optional[Decimal] = PydanticField(default=None, max_digits=28, decimal_places=8, description="상한 규격")
    target_value: Optional[Decimal] = PydanticField(default=None, max_digits=28, decimal_places=8, description="목표값")
    tolerance: Optional[Decimal] = PydanticField(default=None, ge=0, max_digits=28, decimal_places=8, description="목표값 허용 오차")
    unit: Optional[str] = PydanticField(default=None, max_length=50, description="단위")
    method: Optional[str] = PydanticField(default=None, max_length=255, description="시험 방법")


class SpecificationCreate(SpecificationBase):
    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            raise ValueError("min_value must not be greater than max_value")
        return self


class SpecificationResponse(SpecificationBase):
    id: int
    test_id: int

    class Config:
        from_attributes = True


# =============================================================================
# 2. 시험 (Test) 스키마
# =============================================================================
class TestBase(BaseModel):
    code: str = PydanticField(min_length=1, max_length=50, description="시험 코드")
    name: str = PydanticField(min_length=1, max_length=255, description="시험명")
    category: Optional[str] = PydanticField(default=None, max_length=100, description="시험 분류")
    description: Optional[str] = PydanticField(default=None, description="설명")
    status: TestStatus = PydanticField(default=TestStatus.ACTIVE, description="Active / Inactive")


class TestCreate(TestBase):
    specifications: List[SpecificationCreate] = PydanticField(default_factory=list, description="규격 목록 (없으면 정성 시험)")


class TestUpdate(BaseModel):  # 업데이트는 모두 Optional
    code: Optional[str] = PydanticField(None, min_length=1, max_length=50)
    name: Optional[str] = PydanticField(None, min_length=1, max_length=255)
    category: Optional[str] = PydanticField(None, max_length=100)
    description: Optional[str] = None
    status: Optional[TestStatus] = None
    # 전달되면 기존 규격 전체를 교체합니다.
    specifications: Optional[List[SpecificationCreate]] = None


class TestResponse(TestBase):
    id: int
    specifications: List[SpecificationResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# 3. 시료 (Sample) 스키마
# =============================================================================
class SampleCreate(BaseModel):
    source_type: SourceType = PydanticField(description="원천 유형 (GoodsReceipt / Batch)")
    source_id: str = PydanticField(min_length=1, max_length=100, description="원천 엔티티 ID")
    source_reference: Optional[str] = PydanticField(default=None, max_length=100, description="GRN 번호, 배치 번호 등")
    goods_receipt_item_id: Optional[str] = PydanticField(default=None, max_length=100)
    material_id: Optional[str] = PydanticField(default=None, max_length=100)
    material_name: Optional[str] = PydanticField(default=None, max_length=255)
    material_code: Optional[str] = PydanticField(default=None, max_length=100)
    material_category: Optional[str] = PydanticField(default=None, max_length=100)
    batch_number: Optional[str] = PydanticField(default=None, max_length=100)
    quantity: Optional[Decimal] = PydanticField(default=None, ge=0, max_digits=28, decimal_places=8)
    unit: Optional[str] = PydanticField(default=None, max_length=50)
    priority: SamplePriority = SamplePriority.NORMAL
    assigned_to: Optional[str] = None
    requested_by: Optional[str] = None
    due_date: Optional[date] = None
    remarks: Optional[str] = None
    test_ids: List[int] = PydanticField(default_factory=list, description="배정할 시험 ID 목록")
    auto_assign_tests: bool = PydanticField(default=False, description="test_ids가 비어 있으면 자재 분류로 시험을 찾아 배정")


class SampleUpdate(BaseModel):
    """상태 필드는 포함하지 않습니다. 상태는 전용 전이 작업으로만 바뀝니다."""
    priority: Optional[SamplePriority] = None
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None
    remarks: Optional[str] = None

    model_config = {"extra": "forbid"}


class SampleTestResponse(BaseModel):
    id: int
    test_id: int
    test_name: str
    test_code: str
    assigned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SampleResponse(BaseModel):
    id: int
    sample_number: str
    source_type: str
    source_id: str
    source_reference: Optional[str] = None
    goods_receipt_item_id: Optional[str] = None
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    material_code: Optional[str] = None
    material_category: Optional[str] = None
    batch_number: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    priority: str
    status: str
    assigned_to: Optional[str] = None
    requested_by: Optional[str] = None
    requested_at: Optional[datetime] = None
    due_date: Optional[date] = None
    remarks: Optional[str] = None
    received_by: Optional[str] = None
    received_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    tests: List[SampleTestResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SampleReceive(BaseModel):
    received_by: Optional[str] = None


class SampleAssignTests(BaseModel):
    test_ids: List[int] = PydanticField(min_length=1)


class SampleCancel(BaseModel):
    reason: str = PydanticField(min_length=1, description="취소 사유")


# =============================================================================
# 4. 시험 결과 (Result) 스키마
# =============================================================================
class ResultSubmit(BaseModel):
    sample_id: int
    test_id: int
    result_value: str = PydanticField(min_length=1, max_length=255, description="측정값 (수치 또는 정성 결과)")
    unit: Optional[str] = PydanticField(default=None, max_length=50)
    parameter: Optional[str] = PydanticField(default=None, description="평가할 규격 항목 (생략 시 첫 번째 규격)")
    passed: Optional[bool] = PydanticField(default=None, description="정성 시험의 적합 여부")
    deviation: Optional[str] = None
    remarks: Optional[str] = None
    tested_by: Optional[str] = None
    tested_at: Optional[datetime] = None

    @field_validator("result_value", mode="before")
    @classmethod
    def stringify_number(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return v
        if isinstance(v, (int, float, Decimal)):
            return str(v)
        return v


class ResultReview(BaseModel):
    reviewed_by: str = PydanticField(min_length=1)


class ResultResponse(BaseModel):
    id: int
    sample_id: int
    test_id: int
    parameter: Optional[str] = None
    result_value: str
    numeric_value: Optional[Decimal] = None
    unit: Optional[str] = None
    passed: bool
    deviation: Optional[str] = None
    remarks: Optional[str] = None
    tested_by: Optional[str] = None
    tested_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ResultSubmitResponse(ResultResponse):
    sample_status: Optional[str] = PydanticField(default=None, description="재계산된 시료 상태")


# =============================================================================
# 5. 서비스 간 메시지 페이로드
# =============================================================================
class IdPayload(BaseModel):
    id: int


class TestUpdatePayload(BaseModel):
    id: int
    patch: Dict[str, Any]


class ListForMaterialPayload(BaseModel):
    material_id: Optional[str] = None
    category: Optional[str] = None


class SampleReceivePayload(SampleReceive):
    id: int


class SampleAssignTestsPayload(SampleAssignTests):
    id: int


class SampleCancelPayload(SampleCancel):
    id: int


class SampleUpdatePayload(BaseModel):
    id: int
    patch: Dict[str, Any]


class SampleIdPayload(BaseModel):
    sample_id: int


class ResultReviewPayload(ResultReview):
    id: int
