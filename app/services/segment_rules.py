# app/services/segment_rules.py
"""
Rule predicate compiler for customer segments.

Turns a segment's rule tree into a SQLAlchemy boolean clause over the
``customers`` table:

    {
        "combinator": "and",
        "rules": [
            {"field": "total_spent", "operator": ">", "value": 1000},
            {"combinator": "or", "rules": [
                {"field": "city", "operator": "contains", "value": "pune"},
                {"field": "last_purchase", "operator": ">=", "value": 30},
            ]},
        ],
    }

Notes:
- Leaves whose operator is unknown add no constraint (a warning is logged).
- Unknown fields are rejected with ValidationError.
- Date fields take a number of days ago and are converted to an absolute
  cutoff using the wall clock at compile time, so compiling the same tree
  twice can give different predicates. Segments are dynamic.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import String, and_, cast, or_, true
from sqlalchemy.sql.elements import ColumnElement

from app.core.exceptions import ValidationError
from app.models.customer import Customer

logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    DATE = "date"
    BOOLEAN = "boolean"


class SegmentField(str, Enum):
    """Customer attributes a rule may target."""
    TOTAL_SPENT = "total_spent"
    ORDER_COUNT = "order_count"
    AVERAGE_ORDER_VALUE = "average_order_value"
    LAST_PURCHASE = "last_purchase"
    FIRST_PURCHASE = "first_purchase"
    CITY = "city"
    STATE = "state"
    COUNTRY = "country"
    STREET = "street"
    ZIP_CODE = "zip_code"
    AGE = "age"
    GENDER = "gender"
    OCCUPATION = "occupation"
    IS_ACTIVE = "is_active"
    NAME = "name"
    EMAIL = "email"
    PHONE = "phone"


FIELD_COLUMNS = {
    SegmentField.TOTAL_SPENT: (Customer.total_spent, FieldKind.NUMBER),
    SegmentField.ORDER_COUNT: (Customer.order_count, FieldKind.NUMBER),
    SegmentField.AVERAGE_ORDER_VALUE: (Customer.average_order_value, FieldKind.NUMBER),
    SegmentField.LAST_PURCHASE: (Customer.last_purchase, FieldKind.DATE),
    SegmentField.FIRST_PURCHASE: (Customer.first_purchase, FieldKind.DATE),
    SegmentField.CITY: (Customer.city, FieldKind.TEXT),
    SegmentField.STATE: (Customer.state, FieldKind.TEXT),
    SegmentField.COUNTRY: (Customer.country, FieldKind.TEXT),
    SegmentField.STREET: (Customer.street, FieldKind.TEXT),
    SegmentField.ZIP_CODE: (Customer.zip_code, FieldKind.TEXT),
    SegmentField.AGE: (Customer.age, FieldKind.NUMBER),
    SegmentField.GENDER: (Customer.gender, FieldKind.TEXT),
    SegmentField.OCCUPATION: (Customer.occupation, FieldKind.TEXT),
    SegmentField.IS_ACTIVE: (Customer.is_active, FieldKind.BOOLEAN),
    SegmentField.NAME: (Customer.name, FieldKind.TEXT),
    SegmentField.EMAIL: (Customer.email, FieldKind.TEXT),
    SegmentField.PHONE: (Customer.phone, FieldKind.TEXT),
}

_unmapped = set(SegmentField) - set(FIELD_COLUMNS)
if _unmapped:
    raise RuntimeError(f"Segment fields without a column mapping: {sorted(_unmapped)}")

# Names used by older clients and the AI segment helper
FIELD_ALIASES = {
    "orders_count": SegmentField.ORDER_COUNT,
    "zip": SegmentField.ZIP_CODE,
}


class RuleOperator:
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "=="
    NE = "!="
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"

    VALUELESS = {EXISTS, NOT_EXISTS}

    @classmethod
    def all_values(cls) -> list[str]:
        return [
            cls.GT, cls.LT, cls.GTE, cls.LTE, cls.EQ, cls.NE,
            cls.CONTAINS, cls.NOT_CONTAINS, cls.EXISTS, cls.NOT_EXISTS,
        ]


COMBINATORS = ("and", "or")


def resolve_field(name: Any) -> SegmentField:
    """Map a rule's field name onto the supported field set."""
    if isinstance(name, str):
        key = name.strip()
        if key in FIELD_ALIASES:
            return FIELD_ALIASES[key]
        try:
            return SegmentField(key)
        except ValueError:
            pass
    allowed = ", ".join(f.value for f in SegmentField)
    raise ValidationError(f"Unknown segment field '{name}'. Allowed fields: {allowed}")


def _as_node(item: Any) -> Dict[str, Any]:
    # Legacy segments stored each leaf as a JSON string
    if isinstance(item, str):
        try:
            item = json.loads(item)
        except ValueError:
            raise ValidationError(f"Rule is not valid JSON: {item!r}")
    if not isinstance(item, dict):
        raise ValidationError("Each rule must be an object")
    return item


def _is_leaf(node: Dict[str, Any]) -> bool:
    return "field" in node


def iter_leaf_rules(tree: Any) -> Iterator[Dict[str, Any]]:
    """Yield every leaf rule of a (possibly nested) rule tree, depth first."""
    node = _as_node(tree)
    if _is_leaf(node):
        yield node
        return
    rules = node.get("rules")
    if rules is None:
        return
    if not isinstance(rules, list):
        raise ValidationError("'rules' must be a list")
    for child in rules:
        yield from iter_leaf_rules(child)


def count_leaf_rules(tree: Any) -> int:
    return sum(1 for _ in iter_leaf_rules(tree))


def _combinator(node: Dict[str, Any]) -> str:
    raw = node.get("combinator") or node.get("condition") or "and"
    combinator = str(raw).strip().lower()
    if combinator not in COMBINATORS:
        raise ValidationError(f"Unknown combinator '{raw}'. Use 'and' or 'or'")
    return combinator


def validate_rule_tree(tree: Any) -> None:
    """
    Structural validation of a rule tree.

    Raises:
        ValidationError: malformed nodes, unknown fields/combinators, or no leaves
    """
    if not isinstance(_as_node(tree), dict) or "rules" not in _as_node(tree):
        raise ValidationError("Rule tree must be an object with a 'rules' list")

    leaves = 0
    for leaf in iter_leaf_rules(tree):
        resolve_field(leaf.get("field"))
        leaves += 1
    if leaves == 0:
        raise ValidationError("At least one rule is required")


def _coerce_number(field: SegmentField, value: Any):
    if isinstance(value, bool):
        raise ValidationError(f"'{field.value}' expects a number, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"'{field.value}' expects a number, got {value!r}")
        return int(number) if number.is_integer() else number
    raise ValidationError(f"'{field.value}' expects a number, got {value!r}")


def _days_ago(field: SegmentField, days, now: datetime) -> datetime:
    try:
        return now - timedelta(days=days)
    except (OverflowError, ValueError):
        raise ValidationError(f"'{field.value}' day count {days!r} is out of range")


def _coerce_date(field: SegmentField, value: Any, now: datetime) -> datetime:
    # Numbers mean "this many days ago"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _days_ago(field, value, now)
    if isinstance(value, str):
        text_value = value.strip()
        try:
            days = int(text_value)
        except ValueError:
            days = None
        if days is not None:
            return _days_ago(field, days, now)
        try:
            parsed = datetime.fromisoformat(text_value)
        except ValueError:
            raise ValidationError(
                f"'{field.value}' expects a number of days or an ISO date, got {value!r}"
            )
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValidationError(f"'{field.value}' expects a number of days or an ISO date")


def coerce_value(field: SegmentField, kind: FieldKind, value: Any, now: datetime):
    if kind is FieldKind.BOOLEAN:
        return value is True or value == "true"
    if kind is FieldKind.NUMBER:
        return _coerce_number(field, value)
    if kind is FieldKind.DATE:
        return _coerce_date(field, value, now)
    if value is None:
        raise ValidationError(f"'{field.value}' rule needs a value")
    return str(value)


def _like_pattern(value: Any) -> str:
    escaped = str(value).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def compile_leaf(rule: Dict[str, Any], now: datetime) -> ColumnElement:
    field = resolve_field(rule.get("field"))
    column, kind = FIELD_COLUMNS[field]
    operator = rule.get("operator")

    if operator == RuleOperator.EXISTS:
        return column.isnot(None)
    if operator == RuleOperator.NOT_EXISTS:
        return column.is_(None)

    if operator in (RuleOperator.CONTAINS, RuleOperator.NOT_CONTAINS):
        text_column = column if kind is FieldKind.TEXT else cast(column, String)
        if rule.get("value") is None:
            raise ValidationError(f"'{field.value}' {operator} rule needs a value")
        match = text_column.ilike(_like_pattern(rule["value"]), escape="\\")
        if operator == RuleOperator.CONTAINS:
            return match
        return or_(~match, column.is_(None))

    if operator not in RuleOperator.all_values():
        logger.warning(f"Ignoring rule on '{field.value}' with unknown operator {operator!r}")
        return true()

    value = coerce_value(field, kind, rule.get("value"), now)

    if operator == RuleOperator.GT:
        return column > value
    if operator == RuleOperator.LT:
        return column < value
    if operator == RuleOperator.GTE:
        return column >= value
    if operator == RuleOperator.LTE:
        return column <= value
    if operator == RuleOperator.EQ:
        return column == value
    # "!=" also matches customers that never had the attribute set
    return or_(column != value, column.is_(None))


def _compile_node(node: Dict[str, Any], now: datetime) -> Optional[ColumnElement]:
    if _is_leaf(node):
        return compile_leaf(node, now)

    clauses = []
    for child in node.get("rules") or []:
        clause = _compile_node(_as_node(child), now)
        if clause is not None:
            clauses.append(clause)
    if not clauses:
        return None
    if _combinator(node) == "or":
        return or_(*clauses)
    return and_(*clauses)


def compile_rule_tree(tree: Any, now: Optional[datetime] = None) -> ColumnElement:
    """
    Compile a rule tree into a SQLAlchemy predicate on Customer.

    Args:
        tree: The segment rule tree
        now: Reference time for "days ago" values (defaults to the wall clock)

    Raises:
        ValidationError: If the tree is malformed, names an unknown field,
            or has no leaf rules
    """
    validate_rule_tree(tree)
    now = now or datetime.now(timezone.utc)
    clause = _compile_node(_as_node(tree), now)
    return clause if clause is not None else true()


def customer_filter(owner_id: str, tree: Any, now: Optional[datetime] = None) -> ColumnElement:
    """Owner scope plus the compiled segment predicate."""
    return and_(Customer.owner_id == owner_id, compile_rule_tree(tree, now=now))
