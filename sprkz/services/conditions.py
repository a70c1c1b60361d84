"""
Step conditions.

A conditional step runs only when its ``condition_config`` evaluates to true
against ``{"trigger": <trigger data>, "steps": {<step_order>: <outcome>}}``.

Grammar::

    {}                                         -> always true
    {"all": [cond, ...]} / {"any": [cond, ...]} / {"not": cond}
    {"field": "trigger.customer.tier", "operator": "equals", "value": "gold"}

``field`` is a dotted path; ``steps.2.status`` reads the outcome of the step
with ``step_order == 2``.
"""

from typing import Any, Dict

from sprkz.errors import ConditionError
from sprkz.services.payload_template import resolve_path, _MISSING


def _ordered(left, right, compare) -> bool:
    if left is _MISSING or left is None:
        return False
    try:
        return compare(left, right)
    except TypeError:
        return False


def _contains(left, right) -> bool:
    if left is _MISSING or left is None:
        return False
    try:
        return right in left
    except TypeError:
        return False


def _member(left, right) -> bool:
    if not isinstance(right, (list, tuple)):
        raise ConditionError("'in' and 'not_in' need a list value")
    return left in right


OPERATORS = {
    "equals": lambda left, right: left == right,
    "not_equals": lambda left, right: left != right,
    "in": _member,
    "not_in": lambda left, right: not _member(left, right),
    "contains": _contains,
    "exists": lambda left, right: left is not _MISSING and left is not None,
    "not_exists": lambda left, right: left is _MISSING or left is None,
    "gt": lambda left, right: _ordered(left, right, lambda a, b: a > b),
    "gte": lambda left, right: _ordered(left, right, lambda a, b: a >= b),
    "lt": lambda left, right: _ordered(left, right, lambda a, b: a < b),
    "lte": lambda left, right: _ordered(left, right, lambda a, b: a <= b),
}


def evaluate_condition(config: Dict[str, Any], context: Dict[str, Any]) -> bool:
    """Evaluate ``config`` against ``context``; raise ConditionError if malformed."""
    if config is None:
        return True
    if not isinstance(config, dict):
        raise ConditionError(f"Condition must be an object, got {type(config).__name__}")
    if not config:
        return True

    if "all" in config or "any" in config:
        key = "all" if "all" in config else "any"
        clauses = config[key]
        if not isinstance(clauses, list):
            raise ConditionError(f"'{key}' must be a list of conditions")
        # no short-circuit: every clause is validated
        results = [evaluate_condition(clause, context) for clause in clauses]
        return all(results) if key == "all" else any(results)

    if "not" in config:
        return not evaluate_condition(config["not"], context)

    field = config.get("field")
    if not isinstance(field, str) or not field:
        raise ConditionError("Condition needs a 'field' path")

    operator = config.get("operator", "equals")
    if operator not in OPERATORS:
        raise ConditionError(f"Unknown operator '{operator}'")

    left = resolve_path(_stringify_keys(context), field)
    if operator not in ("exists", "not_exists") and left is _MISSING:
        left = None
    return bool(OPERATORS[operator](left, config.get("value")))


def _stringify_keys(context: Dict[str, Any]) -> Dict[str, Any]:
    # step outcomes are keyed by integer step_order; paths are text
    steps = context.get("steps") or {}
    return {**context, "steps": {str(k): v for k, v in steps.items()}}
