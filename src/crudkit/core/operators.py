"""
Filter operators.

The user facing grammar is `<path> <operator> <value...>`. This module owns
the operator vocabulary, value coercion and the mapping from an operator to a
SQLAlchemy predicate. Both the filters generator and the timestamp resolver
build predicates through it.
"""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy.sql.elements import ColumnElement

from .errors import InvalidIsOperatorError, InvalidOperatorError


OPERATORS = ("eq", "like", "gt", "gte", "lt", "lte", "ne", "in", "notIn", "is", "not")

OPERATOR_ALIASES = {
    "ge": "gte",
    "le": "lte",
    "ct": "like",
    "isNot": "not",
}

NULL_VALUE = "null"
EMPTY_VALUE = "empty"

_LIST_SEPARATOR = re.compile(r"\s*,\s*")


def normalize_operator(operator: str) -> str:
    """Resolve aliases and reject anything outside the operator set."""
    operator = OPERATOR_ALIASES.get(operator, operator)
    if operator not in OPERATORS:
        raise InvalidOperatorError(params={"operator": operator})
    return operator


def coerce_value(operator: str, value: str, field_type: str = "string") -> Any:
    """
    Convert the raw string value for an operator and attribute type.

    Args:
        operator: Normalized operator
        value: Raw value from the filter string
        field_type: Simple attribute type (see registry.get_column_type)

    Returns:
        Value ready to be bound in the predicate
    """
    if operator in ("is", "not"):
        if value == NULL_VALUE:
            return None
        if value == EMPTY_VALUE:
            return ""
        if operator == "is":
            raise InvalidIsOperatorError()
        return value

    if operator == "like":
        return f"%{value}%"

    if operator in ("in", "notIn"):
        return _LIST_SEPARATOR.split(value.strip())

    if field_type == "bool":
        if value == "true":
            return True
        if value == "false":
            return False

    return value


def apply_operator(column: ColumnElement[Any], operator: str, value: Any) -> ColumnElement[bool]:
    """Build `<column> <operator> <value>` for a normalized operator."""
    if operator == "eq":
        return column == value
    if operator == "ne":
        return column != value
    if operator == "like":
        return column.like(value)
    if operator == "gt":
        return column > value
    if operator == "gte":
        return column >= value
    if operator == "lt":
        return column < value
    if operator == "lte":
        return column <= value
    if operator == "in":
        return column.in_(value)
    if operator == "notIn":
        return column.not_in(value)
    if operator == "is":
        # `is empty` has no SQL counterpart, compare with the empty string
        if value == "":
            return column == value
        return column.is_(value)
    if operator == "not":
        if value is None:
            return column.is_not(None)
        return column != value
    raise InvalidOperatorError(params={"operator": operator})
