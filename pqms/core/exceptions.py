# pqms/core/exceptions.py

"""
도메인 전반에서 사용하는 오류 분류입니다.

모든 오류는 안정적인 `kind` 문자열, HTTP 상태 코드, 재시도 가능 여부를 가지며
API 경계에서 {"kind", "detail", "retryable"} 형태로 직렬화됩니다.
"""

from typing import Any, Dict, Optional

from fastapi import status


class QmsError(Exception):
    """PQMS 도메인 오류의 기본 클래스"""

    kind: str = "error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "detail": self.detail, "retryable": self.retryable}


class ValidationError(QmsError):
    """잘못되었거나 누락된 입력. 자동 재시도 대상이 아닙니다."""

    kind = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(QmsError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(QmsError):
    """상태 머신 전제 조건 위반. 호출자는 상태를 다시 읽고 판단해야 합니다."""

    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


# =============================================================================
# 서비스 간 호출 오류
# =============================================================================
class GatewayError(QmsError):
    """서비스 간 호출 실패의 기본 클래스"""

    kind = "gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, detail: str, *, target: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(detail)
        self.target = target
        self.operation = operation


class GatewayTimeoutError(GatewayError):
    """
    제한 시간 안에 응답이 없었습니다.
    원격 작업의 성공 여부는 알 수 없으므로 멱등 작업만 재시도해야 합니다.
    """

    kind = "gateway_timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    retryable = True


class RemoteError(GatewayError):
    """원격 서비스가 오류로 응답했습니다. 원격 오류 종류는 `remote_kind`에 보존됩니다."""

    kind = "remote_error"

    def __init__(
        self,
        remote_kind: str,
        detail: str,
        *,
        target: Optional[str] = None,
        operation: Optional[str] = None,
        retryable: bool = False,
    ):
        super().__init__(detail, target=target, operation=operation)
        self.remote_kind = remote_kind
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["remote_kind"] = self.remote_kind
        return data

    def localize(self) -> QmsError:
        """
        원격 도메인 오류를 같은 의미의 로컬 오류로 되돌립니다.
        (예: 원격 not_found -> NotFoundError) 매핑이 없으면 자기 자신을 반환합니다.
        """
        local = _LOCAL_ERRORS.get(self.remote_kind)
        if local is None:
            return self
        return local(self.detail)


_LOCAL_ERRORS = {
    ValidationError.kind: ValidationError,
    NotFoundError.kind: NotFoundError,
    ConflictError.kind: ConflictError,
}
