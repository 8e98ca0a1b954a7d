# tests/__init__.py

"""
PQMS FastAPI 애플리케이션의 테스트 스위트 패키지입니다.

- `conftest.py`: 테스트별 SQLite 데이터베이스, 서비스 컨테이너, AsyncClient 픽스처
- `test_main.py`: 루트 / 헬스 체크, REST 엔드포인트와 오류 응답 형식
- `test_gateway.py`: 서비스 간 게이트웨이 (로컬 / HTTP)
- `domains/test_qc_n.py`: 판정 함수, 시험 카탈로그, 시료, 결과 평가
- `domains/test_qa_n.py`: QA 판정 조정과 재고 도메인 전달
- `domains/test_inv_n.py`: 판정 수신의 멱등성
"""

__title__ = "PQMS API Tests"
__version__ = "0.1.0"
__all__ = []
