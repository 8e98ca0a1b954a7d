# pqms/domains/qc/models.py

"""
'qc' 도메인 (PostgreSQL 'qc' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

시험 카탈로그(Test, TestSpecification), 시료(Sample, SampleTest),
시험 결과(Result)를 다룹니다. 결과는 결과 평가 서비스가 소유하므로
시료와는 sample_id 값으로만 연결되며 외래 키를 두지 않습니다.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional, List
from datetime import datetime, date, UTC

from sqlalchemy import ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP

from sqlmodel import Field, Relationship, SQLModel, Column


# =============================================================================
# 상태/구분 값
# =============================================================================
class TestStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class SampleStatus(str, Enum):
    PENDING = "Pending"
    RECEIVED = "Received"
    IN_TESTING = "InTesting"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class SourceType(str, Enum):
    GOODS_RECEIPT = "GoodsReceipt"
    BATCH = "Batch"


class SamplePriority(str, Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"


def _created_at_field() -> Optional[datetime]:
    return Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )


def _updated_at_field() -> Optional[datetime]:
    return Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )


# =============================================================================
# 1. qc.tests 테이블 모델
# =============================================================================
class Test(SQLModel, table=True):
    __tablename__ = "tests"
    __table_args__ = {'schema': 'qc'}

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(max_length=50, unique=True, description="시험 코드")
    name: str = Field(max_length=255, description="시험명")
    category: Optional[str] = Field(default=None, max_length=100, index=True, description="시험 분류 (자재 분류와 매칭)")
    description: Optional[str] = Field(default=None, description="설명")
    status: str = Field(default=TestStatus.ACTIVE.value, max_length=20, description="Active / Inactive")
    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()

    # --- 관계 정의 ---
    specifications: List["TestSpecification"] = Relationship(
        back_populates="test",
        sa_relationship_kwargs={
            'cascade': 'all, delete-orphan',
            'lazy': 'selectin',
            'order_by': 'TestSpecification.id',
        },
    )


# =============================================================================
# 2. qc.test_specifications 테이블 모델
# =============================================================================
class TestSpecification(SQLModel, table=True):
    __tablename__ = "test_specifications"
    __table_args__ = {'schema': 'qc'}

    id: Optional[int] = Field(default=None, primary_key=True)
    test_id: int = Field(
        sa_column=Column(Integer, ForeignKey("qc.tests.id", ondelete="CASCADE"), nullable=False, index=True),
        description="시험 ID (FK)"
    )
    parameter: str = Field(max_length=100, description="시험 항목명")
    min_value: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(28, 8)), description="하한 규격")
    max_value: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(28, 8)), description="상한 규격")
    target_value: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(28, 8)), description="목표값")
    tolerance: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(28, 8)), description="목표값 허용 오차")
    unit: Optional[str] = Field(default=None, max_length=50, description="단위")
    method: Optional[str] = Field(default=None, max_length=255, description="시험 방법")

    test: Optional[Test] = Relationship(back_populates="specifications")


# =============================================================================
# 3. qc.samples 테이블 모델
# =============================================================================
class Sample(SQLModel, table=True):
    __tablename__ = "samples"
    __table_args__ = {'schema': 'qc'}

    id: Optional[int] = Field(default=None, primary_key=True)
    sample_number: str = Field(max_length=50, unique=True, description="시료 번호 (QC-SAM-<연도>-<순번>)")

    # 발생 원천 (입고 품목, 배치 등)
    source_type: str = Field(max_length=30, description="GoodsReceipt / Batch")
    source_id: str = Field(max_length=100, description="원천 엔티티 ID")
    source_reference: Optional[str] = Field(default=None, max_length=100, description="원천 참조 번호 (GRN 번호 등)")
    goods_receipt_item_id: Optional[str] = Field(default=None, max_length=100, description="입고 품목 ID")

    # 자재 정보
    material_id: Optional[str] = Field(default=None, max_length=100)
    material_name: Optional[str] = Field(default=None, max_length=255)
    material_code: Optional[str] = Field(default=None, max_length=100)
    material_category: Optional[str] = Field(default=None, max_length=100, description="시험 자동 배정에 쓰이는 자재 분류")
    batch_number: Optional[str] = Field(default=None, max_length=100)
    quantity: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(28, 8)), description="채취 수량")
    unit: Optional[str] = Field(default=None, max_length=50)

    priority: str = Field(default=SamplePriority.NORMAL.value, max_length=20)
    status: str = Field(default=SampleStatus.PENDING.value, max_length=20, index=True)
    assigned_to: Optional[str] = Field(default=None, max_length=100, description="담당 분석자")
    requested_by: Optional[str] = Field(default=None, max_length=100)
    requested_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(UTC), sa_column=Column(TIMESTAMP(timezone=True)))
    due_date: Optional[date] = Field(default=None)
    remarks: Optional[str] = Field(default=None)

    received_by: Optional[str] = Field(default=None, max_length=100)
    received_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    cancelled_reason: Optional[str] = Field(default=None)
    cancelled_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))

    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()

    tests: List["SampleTest"] = Relationship(
        back_populates="sample",
        sa_relationship_kwargs={
            'cascade': 'all, delete-orphan',
            'lazy': 'selectin',
            'order_by': 'SampleTest.id',
        },
    )


# =============================================================================
# 4. qc.sample_tests 테이블 모델 (시료별 배정 시험)
# =============================================================================
class SampleTest(SQLModel, table=True):
    __tablename__ = "sample_tests"
    __table_args__ = (
        UniqueConstraint("sample_id", "test_id", name="uq_sample_tests_sample_test"),
        {'schema': 'qc'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    sample_id: int = Field(
        sa_column=Column(Integer, ForeignKey("qc.samples.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    test_id: int = Field(description="카탈로그 시험 ID (서비스 경계 밖이므로 FK 없음)")
    # 배정 시점의 이름/코드를 보존합니다.
    test_name: str = Field(max_length=255)
    test_code: str = Field(max_length=50)
    assigned_at: Optional[datetime] = _created_at_field()

    sample: Optional[Sample] = Relationship(back_populates="tests")


# =============================================================================
# 5. qc.results 테이블 모델
# =============================================================================
class Result(SQLModel, table=True):
    __tablename__ = "results"
    __table_args__ = (
        UniqueConstraint("sample_id", "test_id", name="uq_results_sample_test"),
        {'schema': 'qc'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    sample_id: int = Field(index=True)
    test_id: int = Field()
    parameter: Optional[str] = Field(default=None, max_length=100, description="평가에 사용된 규격 항목")
    result_value: str = Field(max_length=255, description="제출된 원본 결과값")
    numeric_value: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(28, 8)), description="수치 결과값")
    unit: Optional[str] = Field(default=None, max_length=50)
    passed: bool = Field(default=False)
    deviation: Optional[str] = Field(default=None, description="일탈 내용")
    remarks: Optional[str] = Field(default=None)
    tested_by: Optional[str] = Field(default=None, max_length=100)
    tested_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    reviewed_by: Optional[str] = Field(default=None, max_length=100)
    reviewed_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()
