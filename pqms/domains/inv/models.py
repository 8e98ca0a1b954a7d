# pqms/domains/inv/models.py

"""
'inv' 도메인 (PostgreSQL 'inv' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

QA 판정을 받은 로트(입고 품목, 배치)의 재고 처분 이력을 보관합니다.
release_id가 unique이므로 같은 판정 이벤트를 여러 번 받아도 한 건만 기록됩니다.
"""

from enum import Enum
from typing import Optional
from datetime import datetime, UTC

from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP

from sqlmodel import Field, SQLModel, Column


class StockStatus(str, Enum):
    QUARANTINE = "Quarantine"
    AVAILABLE = "Available"
    REJECTED = "Rejected"
    ON_HOLD = "OnHold"


# QA 판정 -> 재고 상태
DECISION_STOCK_STATUS = {
    "Release": StockStatus.AVAILABLE,
    "Reject": StockStatus.REJECTED,
    "Hold": StockStatus.ON_HOLD,
}


# =============================================================================
# 1. inv.lot_dispositions 테이블 모델
# =============================================================================
class LotDispositionBase(SQLModel):
    release_id: int = Field(unique=True, description="QA 릴리스 ID (멱등 키)")
    release_number: str = Field(max_length=50)
    entity_type: str = Field(max_length=30, description="GoodsReceipt / Batch")
    entity_id: str = Field(max_length=100, index=True)
    decision: str = Field(max_length=20, description="Release / Reject / Hold")
    stock_status: str = Field(max_length=20, description="처분 후 재고 상태")
    decided_by: Optional[str] = Field(default=None, max_length=100)
    decided_at: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True)))
    decision_reason: Optional[str] = Field(default=None)
    e_signature: Optional[str] = Field(default=None, max_length=255)
    remarks: Optional[str] = Field(default=None)
    sample_number: Optional[str] = Field(default=None, max_length=50)
    batch_number: Optional[str] = Field(default=None, max_length=100)
    material_id: Optional[str] = Field(default=None, max_length=100)


class LotDisposition(LotDispositionBase, table=True):
    __tablename__ = "lot_dispositions"
    __table_args__ = {'schema': 'inv'}

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="처분 적용 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )
