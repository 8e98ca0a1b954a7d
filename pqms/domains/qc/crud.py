# pqms/domains/qc/crud.py

"""
'qc' 도메인의 CRUD 로직을 담당하는 모듈입니다.
트랜잭션 경계와 상태 전이 규칙은 services.py가 소유하며, 여기서는 조회/저장만 수행합니다.
"""

from typing import List, Optional

from sqlalchemy import update as sa_update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

# 공통 CRUDBase 임포트
from pqms.core.crud_base import CRUDBase

from . import models as qc_models
from . import schemas as qc_schemas


# =============================================================================
# 1. 시험 (Test) CRUD
# =============================================================================
class CRUDTest(CRUDBase[qc_models.Test, qc_schemas.TestCreate, qc_schemas.TestUpdate]):
    def __init__(self):
        super().__init__(model=qc_models.Test)

    async def get_by_code(self, db: AsyncSession, *, code: str) -> Optional[qc_models.Test]:
        """시험 코드로 조회합니다."""
        return await self.get_by_attribute(db, attribute="code", value=code)

    async def get_active(self, db: AsyncSession, *, category: Optional[str] = None) -> List[qc_models.Test]:
        """활성 시험 목록을 조회합니다. category가 주어지면 해당 분류만 반환합니다."""
        statement = select(self.model).where(self.model.status == qc_models.TestStatus.ACTIVE.value)
        if category:
            statement = statement.where(self.model.category == category)
        result = await db.execute(statement.order_by(self.model.id))
        return list(result.scalars().all())

    async def create_with_specifications(self, db: AsyncSession, *, obj_in: qc_schemas.TestCreate) -> qc_models.Test:
        """시험과 규격을 같은 트랜잭션 안에서 함께 생성합니다."""
        db_obj = qc_models.Test(
            **obj_in.model_dump(exclude={"specifications", "status"}),
            status=obj_in.status.value,
            specifications=[qc_models.TestSpecification(**spec.model_dump()) for spec in obj_in.specifications],
        )
        db.add(db_obj)
        await db.flush()
        return db_obj

    async def replace_specifications(
        self, db: AsyncSession, *, db_obj: qc_models.Test, specifications: List[qc_schemas.SpecificationCreate]
    ) -> qc_models.Test:
        """기존 규격을 모두 삭제하고 새 목록으로 교체합니다. (부분 수정 없음)"""
        db_obj.specifications.clear()
        await db.flush()
        db_obj.specifications.extend(
            qc_models.TestSpecification(**spec.model_dump()) for spec in specifications
        )
        await db.flush()
        return db_obj


# =============================================================================
# 2. 시료 (Sample) CRUD
# =============================================================================
class CRUDSample(CRUDBase[qc_models.Sample, qc_schemas.SampleCreate, qc_schemas.SampleUpdate]):
    def __init__(self):
        super().__init__(model=qc_models.Sample)

    async def get_last_number(self, db: AsyncSession, *, prefix: str) -> Optional[str]:
        """주어진 접두사(예: 'QC-SAM-2026-')로 시작하는 가장 큰 시료 번호를 반환합니다."""
        statement = (
            select(self.model.sample_number)
            .where(self.model.sample_number.like(f"{prefix}%"))
            .order_by(self.model.sample_number.desc())
            .limit(1)
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def set_status(self, db: AsyncSession, *, db_obj: qc_models.Sample, status: qc_models.SampleStatus, **fields) -> qc_models.Sample:
        """상태 전이 메서드 전용 상태 변경 헬퍼입니다."""
        db_obj.status = status.value
        for key, value in fields.items():
            setattr(db_obj, key, value)
        db.add(db_obj)
        await db.flush()
        return db_obj


class CRUDSampleTest(CRUDBase[qc_models.SampleTest, qc_schemas.SampleAssignTests, qc_schemas.SampleAssignTests]):
    def __init__(self):
        super().__init__(model=qc_models.SampleTest)

    async def get_test_ids(self, db: AsyncSession, *, sample_id: int) -> List[int]:
        statement = select(self.model.test_id).where(self.model.sample_id == sample_id)
        result = await db.execute(statement)
        return list(result.scalars().all())


# =============================================================================
# 3. 시험 결과 (Result) CRUD
# =============================================================================
class CRUDResult(CRUDBase[qc_models.Result, qc_schemas.ResultSubmit, qc_schemas.ResultReview]):
    def __init__(self):
        super().__init__(model=qc_models.Result)

    async def get_by_sample_and_test(self, db: AsyncSession, *, sample_id: int, test_id: int) -> Optional[qc_models.Result]:
        statement = select(self.model).where(self.model.sample_id == sample_id, self.model.test_id == test_id)
        result = await db.execute(statement)
        return result.scalars().one_or_none()

    async def get_for_sample(self, db: AsyncSession, *, sample_id: int) -> List[qc_models.Result]:
        statement = select(self.model).where(self.model.sample_id == sample_id).order_by(self.model.test_id)
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def overwrite(self, db: AsyncSession, *, sample_id: int, test_id: int, values: dict) -> int:
        """(sample_id, test_id) 행을 조건부 UPDATE로 덮어쓰고 영향받은 행 수를 반환합니다."""
        statement = (
            sa_update(self.model)
            .where(self.model.sample_id == sample_id, self.model.test_id == test_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(statement)
        return result.rowcount


test = CRUDTest()
sample = CRUDSample()
sample_test = CRUDSampleTest()
result = CRUDResult()
