# pqms/domains/models.py

"""
모든 도메인의 ORM 모델을 한곳에서 임포트하여 SQLModel.metadata에 등록합니다.
테이블 생성(create_db_and_tables)과 Alembic 마이그레이션에서 사용합니다.
"""

from pqms.domains.qc import models as qc_models
from pqms.domains.qa import models as qa_models
from pqms.domains.inv import models as inv_models

ALL_MODELS = [
    qc_models.Test,
    qc_models.TestSpecification,
    qc_models.Sample,
    qc_models.SampleTest,
    qc_models.Result,
    qa_models.Release,
    qa_models.ReleaseChecklistItem,
    inv_models.LotDisposition,
]
