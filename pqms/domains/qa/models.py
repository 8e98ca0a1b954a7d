# pqms/domains/qa/models.py

"""
'qa' 도메인 (PostgreSQL 'qa' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

QA 릴리스(판정) 기록과 체크리스트 항목을 다룹니다.
QC 데이터는 ID와 결과 스냅샷으로만 참조하며 다른 스키마에 대한 외래 키를 두지 않습니다.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime, date, UTC

from sqlalchemy import JSON, ForeignKey, Integer, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP

from sqlmodel import Field, Relationship, SQLModel, Column


class ReleaseStatus(str, Enum):
    PENDING = "Pending"
    REVIEWED = "Reviewed"
    DECIDED = "Decided"


class Decision(str, Enum):
    PENDING = "Pending"
    RELEASE = "Release"
    REJECT = "Reject"
    HOLD = "Hold"

    @classmethod
    def terminal(cls) -> List["Decision"]:
        return [cls.RELEASE, cls.REJECT, cls.HOLD]


# =============================================================================
# 1. qa.releases 테이블 모델
# =============================================================================
class Release(SQLModel, table=True):
    __tablename__ = "releases"
    __table_args__ = {'schema': 'qa'}

    id: Optional[int] = Field(default=None, primary_key=True)
    release_number: str = Field(max_length=50, unique=True, description="릴리스 번호 (QA-REL-<연도>-<순번>)")

    # --- QC 시료 및 판정 대상 엔티티 ---
    sample_id: int = Field(unique=True, description="QC 시료 ID (시료당 릴리스 1건)")
    sample_number: str = Field(max_length=50)
    entity_type: str = Field(max_length=30, description="판정 대상 유형 (GoodsReceipt / Batch)")
    entity_id: str = Field(max_length=100, description="판정 대상 ID")
    source_reference: Optional[str] = Field(default=None, max_length=100)
    material_id: Optional[str] = Field(default=None, max_length=100)
    material_name: Optional[str] = Field(default=None, max_length=255)
    material_code: Optional[str] = Field(default=None, max_length=100)
    batch_number: Optional[str] = Field(default=None, max_length=100)
    quantity: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(28, 8)))
    unit: Optional[str] = Field(default=None, max_length=50)

    # --- 상태 및 판정 ---
    status: str = Field(default=ReleaseStatus.PENDING.value, max_length=20, index=True)
    decision: str = Field(default=Decision.PENDING.value, max_length=20, index=True)
    results_snapshot: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False),
        description="제출 시점의 QC 결과 스냅샷 (불변)"
    )
    all_results_passed: bool = Field(default=False)

    submitted_by: Optional[str] = Field(default=None, max_length=100)
    submitted_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    reviewed_by: Optional[str] = Field(default=None, max_length=100)
    reviewed_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    decided_by: Optional[str] = Field(default=None, max_length=100)
    decided_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    decision_reason: Optional[str] = Field(default=None, description="판정 사유")
    e_signature: Optional[str] = Field(default=None, max_length=255, description="판정자 전자서명")
    remarks: Optional[str] = Field(default=None)
    due_date: Optional[date] = Field(default=None)

    # --- 판정 전달 (재고/배치 도메인) ---
    disposition_delivered: bool = Field(default=False, index=True)
    disposition_delivered_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    delivery_attempts: int = Field(default=0)
    last_delivery_error: Optional[str] = Field(default=None)

    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )

    checklist_items: List["ReleaseChecklistItem"] = Relationship(
        back_populates="release",
        sa_relationship_kwargs={
            'cascade': 'all, delete-orphan',
            'lazy': 'selectin',
            'order_by': 'ReleaseChecklistItem.id',
        },
    )

    @property
    def is_terminal(self) -> bool:
        return self.decision != Decision.PENDING.value


# =============================================================================
# 2. qa.release_checklist_items 테이블 모델
# =============================================================================
class ReleaseChecklistItem(SQLModel, table=True):
    __tablename__ = "release_checklist_items"
    __table_args__ = {'schema': 'qa'}

    id: Optional[int] = Field(default=None, primary_key=True)
    release_id: int = Field(
        sa_column=Column(Integer, ForeignKey("qa.releases.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    category: str = Field(max_length=100, description="점검 분류 (Documentation, COA Attached 등)")
    description: Optional[str] = Field(default=None, max_length=255)
    is_required: bool = Field(default=True)
    checked: bool = Field(default=False)
    checked_by: Optional[str] = Field(default=None, max_length=100)
    checked_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))

    release: Optional[Release] = Relationship(back_populates="checklist_items")
