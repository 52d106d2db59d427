# yachtpms/domains/ntf/rules.py

"""
알림 규칙 평가에 쓰이는 순수 함수 모음입니다. (DB 접근 없음)

- 후보 이벤트(RuleCandidate) 정의
- 규칙 범위(scope) 일치 여부
- 조건(conditions) 평가: {"all": [{field, op, value}, ...]} 또는 점 경로 -> 기대값 매핑
- {{ path }} 템플릿 렌더링과 템플릿 변수
- 중복 방지 키(dedupe key)
- 주기(cadence)에 따른 다음 발송 가능 시각
"""

import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from yachtpms.core.database_base import as_utc, utcnow
from .catalog import severity_rank


TEMPLATE_PATTERN = re.compile(r"\{\{\s*([a-zA-Z0-9_.-]+)\s*\}\}")


@dataclass
class RuleCandidate:
    """도메인 서비스가 규칙 평가를 위해 넘기는 이벤트 후보입니다."""
    type: str
    module: str
    severity: str = "info"
    yacht_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    assignee_user_id: Optional[int] = None
    occurred_at: Optional[datetime] = None


def normalize_severity(value: Any) -> str:
    if value == "critical":
        return "critical"
    if value == "warn":
        return "warn"
    return "info"


# =============================================================================
# 1. 경로 조회 / 숫자 변환
# =============================================================================
def get_path_value(source: Any, path: str) -> Any:
    """'a.b.c' 형태의 경로로 중첩 딕셔너리 값을 찾습니다. 없으면 None."""
    current = source
    for segment in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


def as_number(value: Any) -> Optional[float]:
    """숫자 또는 숫자 문자열만 float로 변환합니다. (bool 제외)"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


# =============================================================================
# 2. 범위 / 조건
# =============================================================================
def matches_scope(rule: Any, candidate: RuleCandidate) -> bool:
    if rule.scope_type == "fleet":
        return True
    if rule.scope_type == "yacht":
        return candidate.yacht_id is not None and rule.yacht_id == candidate.yacht_id
    if rule.scope_type == "entity":
        matches_yacht = rule.yacht_id == candidate.yacht_id if rule.yacht_id else True
        matches_type = rule.entity_type == candidate.entity_type if rule.entity_type else True
        matches_id = rule.entity_id == candidate.entity_id if rule.entity_id else True
        return matches_yacht and matches_type and matches_id
    return False


def evaluate_clause(clause: Dict[str, Any], payload: Dict[str, Any]) -> bool:
    field_path = clause.get("field") if isinstance(clause.get("field"), str) else ""
    op = clause.get("op") if isinstance(clause.get("op"), str) else "eq"
    expected = clause.get("value")
    if not field_path:
        return True

    actual = get_path_value(payload, field_path)

    if op == "eq":
        return actual == expected
    if op == "neq":
        return actual != expected

    if op in ("gt", "gte", "lt", "lte"):
        actual_number = as_number(actual)
        expected_number = as_number(expected)
        if actual_number is None or expected_number is None:
            return False
        if op == "gt":
            return actual_number > expected_number
        if op == "gte":
            return actual_number >= expected_number
        if op == "lt":
            return actual_number < expected_number
        return actual_number <= expected_number

    if op == "in" and isinstance(expected, list):
        return actual in expected
    if op == "not_in" and isinstance(expected, list):
        return actual not in expected

    if op == "contains" and isinstance(actual, str) and isinstance(expected, str):
        return expected.lower() in actual.lower()

    return False


def matches_conditions(conditions: Any, payload: Dict[str, Any]) -> bool:
    if not isinstance(conditions, dict) or not conditions:
        return True

    clauses = conditions.get("all")
    if isinstance(clauses, list):
        return all(evaluate_clause(clause if isinstance(clause, dict) else {}, payload) for clause in clauses)

    return all(get_path_value(payload, key) == value for key, value in conditions.items())


# =============================================================================
# 3. 템플릿 / 중복 키
# =============================================================================
def build_template_variables(candidate: RuleCandidate) -> Dict[str, Any]:
    occurred_at = as_utc(candidate.occurred_at) or utcnow()
    return {
        **(candidate.payload or {}),
        "yacht_id": candidate.yacht_id if candidate.yacht_id is not None else "",
        "entity_type": candidate.entity_type or "",
        "entity_id": candidate.entity_id or "",
        "severity": candidate.severity,
        "occurred_at": occurred_at.isoformat(),
    }


def stringify_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, separators=(",", ":"))
    return str(value)


def render_template(template: str, variables: Dict[str, Any]) -> str:
    """{{ path }} 자리표시자를 점 경로 값으로 치환합니다. 값이 없으면 빈 문자열."""
    return TEMPLATE_PATTERN.sub(lambda m: stringify_value(get_path_value(variables, m.group(1))), template or "")


def build_dedupe_key(rule_id: int, candidate: RuleCandidate) -> str:
    if candidate.entity_id:
        scope = candidate.entity_id
    elif candidate.yacht_id is not None:
        scope = str(candidate.yacht_id)
    else:
        scope = "fleet"
    bucket = candidate.payload.get("bucket") if candidate.payload else None
    bucket = bucket if isinstance(bucket, str) else "default"
    return f"rule:{rule_id}:event:{candidate.type}:scope:{scope}:bucket:{bucket}"


def meets_min_severity(severity: str, min_severity: str) -> bool:
    return severity_rank(normalize_severity(severity)) >= severity_rank(normalize_severity(min_severity))


# =============================================================================
# 4. 주기 (Cadence)
# =============================================================================
def next_eligible_at(
    cadence_mode: Optional[str], cadence_value: Optional[int], last_triggered_at: Optional[datetime]
) -> Optional[datetime]:
    """
    마지막 발송 시각 기준 다음 발송 가능 시각을 반환합니다.
    한 번도 발송되지 않았으면 None (즉시 가능).
    'once'는 한 번 발송된 뒤에는 datetime.max(UTC)를 반환합니다.
    """
    last = as_utc(last_triggered_at)
    if last is None:
        return None

    mode = cadence_mode or "daily"
    value = cadence_value if cadence_value and cadence_value >= 1 else 1
    if mode == "once":
        return datetime.max.replace(tzinfo=last.tzinfo)
    if mode == "hourly":
        return last + timedelta(hours=1)
    if mode == "every_n_hours":
        return last + timedelta(hours=value)
    if mode == "every_n_days":
        return last + timedelta(days=value)
    return last + timedelta(hours=24)


def cadence_allows(rule: Any, now: Optional[datetime] = None, last_sent_at: Optional[datetime] = None) -> bool:
    """
    주기는 규칙 전체가 아니라 중복 범위(rule/event/scope/bucket)마다 적용됩니다.
    last_sent_at은 그 범위에서 마지막으로 전송된 시각입니다.
    """
    eligible_at = next_eligible_at(rule.cadence_mode, rule.cadence_value, last_sent_at)
    if eligible_at is None:
        return True
    return eligible_at <= (as_utc(now) or utcnow())


def unique_ids(values: List[Optional[int]]) -> List[int]:
    """순서를 유지하며 None과 중복을 제거합니다."""
    seen: List[int] = []
    for value in values:
        if value is not None and value not in seen:
            seen.append(value)
    return seen
