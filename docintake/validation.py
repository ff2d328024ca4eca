"""Declarative validation of extracted fields.

Each field maps to an ordered list of rules. Rules are evaluated
independently and all of them are reported; an exception inside one rule
only fails that rule.
"""

from __future__ import annotations

import logging
import math
import operator as op
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
from pydantic import ValidationError

from .formula import FormulaError, evaluate
from .schema import RuleResult, RuleSpec

logger = logging.getLogger(__name__)

FORMULA_TOLERANCE = 0.01

PREDEFINED_PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "phone": re.compile(r"^\+?[0-9]{7,15}$"),
    "paraguay_ruc": re.compile(r"^[0-9]+-[0-9]$"),
}

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "gt": op.gt,
    "lt": op.lt,
    "gte": op.ge,
    "lte": op.le,
    "neq": op.ne,
    "eq": op.eq,
}

_OFFSET_UNITS = ("days", "months", "years")


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------
def get_value_by_path(data: Any, path: str) -> Any:
    """Resolve a dotted path (``a.b.0.c``) in nested dicts/lists; None if absent."""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def normalize_number(value: Any) -> float | None:
    """Parse *value* as a number, accepting a comma decimal separator.

    The last separator is the decimal one: ``"1.234,56"`` -> 1234.56,
    ``"1,234.56"`` -> 1234.56, ``"12,5"`` -> 12.5, ``"abc"`` -> None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(" ", "")
    if not text:
        return None
    if text.rfind(",") > text.rfind("."):
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def parse_date(value: Any) -> datetime | None:
    """Parse *value* into a naive UTC datetime, or None if it is not a date."""
    if value is None or isinstance(value, bool) or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _today_iso() -> str:
    return _utc_now().date().isoformat()


def _compare(operator_name: str | None, left: Any, right: Any) -> bool:
    return bool(_OPERATORS.get(operator_name or "eq", op.eq)(left, right))


# ---------------------------------------------------------------------------
# Rule checks
# ---------------------------------------------------------------------------
def check_not_null(value: Any) -> bool:
    return value is not None and value != ""


def check_is_date(value: Any) -> bool:
    return parse_date(value) is not None


def check_is_number(value: Any) -> bool:
    return normalize_number(value) is not None


def check_comparison(value: Any, rule: RuleSpec, data: Any) -> bool:
    target = rule.compare_value
    if rule.compare_field:
        target = get_value_by_path(data, rule.compare_field)
    elif target == "today":
        target = _today_iso()

    left = normalize_number(value)
    right = normalize_number(target)
    return _compare(
        rule.operator,
        value if left is None else left,
        target if right is None else right,
    )


def check_date_comparison(value: Any, rule: RuleSpec, data: Any) -> bool:
    if not value:
        return False

    if rule.compare_field:
        field_value = get_value_by_path(data, rule.compare_field)
        if not field_value:
            return False
        target = parse_date(field_value)
    elif rule.compare_value and rule.compare_value != "today":
        target = parse_date(rule.compare_value)
    else:
        target = _utc_now()

    current = parse_date(value)
    if current is None or target is None:
        return False

    if rule.offset_value and rule.offset_unit in _OFFSET_UNITS:
        target = target + relativedelta(**{rule.offset_unit: int(rule.offset_value)})

    return _compare(rule.operator, current, target)


def check_formula(value: Any, rule: RuleSpec, data: Any) -> bool:
    if not rule.formula:
        return True

    def lookup(name: str) -> float:
        return normalize_number(get_value_by_path(data, name)) or 0.0

    expected = normalize_number(value)
    if expected is None:
        return False
    try:
        result = evaluate(rule.formula, lookup)
    except FormulaError as exc:
        logger.debug("Formula %r failed: %s", rule.formula, exc)
        return False
    return abs(expected - result) < FORMULA_TOLERANCE


def check_regex(value: Any, rule: RuleSpec) -> bool:
    text = "" if value is None else str(value)
    pattern = PREDEFINED_PATTERNS.get(rule.predefined_regex or "")
    if pattern is not None:
        return pattern.search(text) is not None
    if rule.regex:
        return re.search(rule.regex, text) is not None
    return True


def evaluate_rule(value: Any, rule: RuleSpec, data: Any) -> bool:
    """Evaluate one rule. Unknown rule types pass; exceptions fail the rule."""
    try:
        rule_type = rule.rule_type
        if rule_type == "not_null":
            return check_not_null(value)
        if rule_type == "is_date":
            return check_is_date(value)
        if rule_type == "is_number":
            return check_is_number(value)
        if rule_type in ("comparison", "compare_number"):
            return check_comparison(value, rule, data)
        if rule_type == "compare_date":
            return check_date_comparison(value, rule, data)
        if rule_type == "formula":
            return check_formula(value, rule, data)
        if rule_type == "regex":
            return check_regex(value, rule)
        return True
    except Exception as exc:
        logger.debug("Rule %s raised %s: %s", rule.rule_type, type(exc).__name__, exc)
        return False


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
def validate_data(
    data: Any,
    rules: Mapping[str, Sequence[RuleSpec | Mapping[str, Any]]] | None,
) -> dict[str, list[RuleResult]]:
    """Apply every configured rule and return per-field results."""
    results: dict[str, list[RuleResult]] = {}
    if not rules:
        return results

    for field, field_rules in rules.items():
        value = get_value_by_path(data, field)
        field_results: list[RuleResult] = []
        for raw_rule in field_rules or []:
            try:
                rule = raw_rule if isinstance(raw_rule, RuleSpec) else RuleSpec.model_validate(raw_rule)
            except ValidationError as exc:
                logger.warning("Invalid rule for field %s: %s", field, exc)
                raw = raw_rule if isinstance(raw_rule, Mapping) else {}
                field_results.append(
                    RuleResult(
                        success=False,
                        message=str(raw.get("message", "")),
                        rule_type=str(raw.get("ruleType", raw.get("rule_type", "unknown"))),
                    )
                )
                continue
            field_results.append(
                RuleResult(
                    success=evaluate_rule(value, rule, data),
                    message=rule.message,
                    rule_type=rule.rule_type,
                )
            )
        results[field] = field_results
    return results


def all_passed(results: Mapping[str, Sequence[RuleResult]]) -> bool:
    """Logical AND across every rule result."""
    return all(result.success for field_results in results.values() for result in field_results)
