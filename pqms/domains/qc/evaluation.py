# pqms/domains/qc/evaluation.py

"""
시험 결과 값을 시험 규격과 비교하여 적합/부적합을 판정하는 순수 함수 모듈입니다.

판정 규칙:
- 하한/상한이 모두 있으면 min <= 값 <= max (경계 포함)
- 한쪽 경계만 있으면 해당 경계만 비교
- 목표값만 있으면 |값 - 목표값| <= 허용 오차
- 수치 규격이 없으면(정성 시험) 호출자가 passed를 직접 제출해야 함
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from pqms.core.exceptions import ValidationError

# NUMERIC(28, 8) 컬럼의 정수부 자릿수
MAX_INTEGER_DIGITS = 20


@dataclass
class Evaluation:
    passed: bool
    numeric_value: Optional[Decimal]
    parameter: Optional[str]
    deviation: Optional[str] = None


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def parse_numeric(result_value: str) -> Decimal:
    """결과값 문자열을 유한한 Decimal로 변환합니다."""
    try:
        number = Decimal(str(result_value).strip())
    except InvalidOperation:
        raise ValidationError(f"Result value '{result_value}' is not numeric, but the test has a numeric specification.")
    if not number.is_finite():
        raise ValidationError(f"Result value '{result_value}' is not a finite number.")
    if number.adjusted() >= MAX_INTEGER_DIGITS:
        raise ValidationError(f"Result value '{result_value}' exceeds {MAX_INTEGER_DIGITS} integer digits.")
    return number


def select_specification(specifications: List[Mapping[str, Any]], parameter: Optional[str]) -> Optional[Mapping[str, Any]]:
    """
    평가에 사용할 규격을 고릅니다.
    parameter가 주어지면 이름이 일치하는 규격을, 아니면 첫 번째 규격을 사용합니다.
    """
    if parameter:
        for spec in specifications:
            if spec.get("parameter") == parameter:
                return spec
        raise ValidationError(f"Test has no specification for parameter '{parameter}'.")
    return specifications[0] if specifications else None


def is_numeric_spec(spec: Optional[Mapping[str, Any]]) -> bool:
    if spec is None:
        return False
    return any(spec.get(key) is not None for key in ("min_value", "max_value", "target_value"))


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")


def describe_spec(spec: Mapping[str, Any]) -> str:
    low, high, target = (to_decimal(spec.get(k)) for k in ("min_value", "max_value", "target_value"))
    unit = f" {spec['unit']}" if spec.get("unit") else ""
    if low is not None and high is not None:
        return f"{_fmt(low)} - {_fmt(high)}{unit}"
    if low is not None:
        return f">= {_fmt(low)}{unit}"
    if high is not None:
        return f"<= {_fmt(high)}{unit}"
    return f"{_fmt(target)}{unit}"


def within_spec(value: Decimal, spec: Mapping[str, Any], default_tolerance: Decimal) -> bool:
    low = to_decimal(spec.get("min_value"))
    high = to_decimal(spec.get("max_value"))
    if low is not None or high is not None:
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
        return True

    target = to_decimal(spec.get("target_value"))
    tolerance = to_decimal(spec.get("tolerance"))
    if tolerance is None:
        tolerance = default_tolerance
    return abs(value - target) <= tolerance


def evaluate(
    specifications: List[Dict[str, Any]],
    result_value: str,
    *,
    parameter: Optional[str] = None,
    passed: Optional[bool] = None,
    default_tolerance: Decimal = Decimal("0"),
) -> Evaluation:
    """
    결과값을 규격과 비교해 판정합니다.

    수치 규격이 있으면 계산된 판정이 호출자의 passed 값보다 우선합니다.
    부적합 수치 결과에는 일탈 내용을 자동으로 채웁니다.
    """
    spec = select_specification(specifications, parameter)
    spec_parameter = spec.get("parameter") if spec else parameter

    if not is_numeric_spec(spec):
        if passed is None:
            raise ValidationError("Qualitative test results must state 'passed' explicitly.")
        return Evaluation(passed=passed, numeric_value=None, parameter=spec_parameter)

    value = parse_numeric(result_value)
    ok = within_spec(value, spec, default_tolerance)
    deviation = None
    if not ok:
        deviation = f"{spec_parameter}: result {_fmt(value)} is out of specification ({describe_spec(spec)})"
    return Evaluation(passed=ok, numeric_value=value, parameter=spec_parameter, deviation=deviation)
