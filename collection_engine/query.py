from __future__ import annotations

import math
import operator
from typing import Any, Callable, Iterable

from collection_engine.errors import runtime_error

Record = dict[str, Any]

SORT_ORDERS: tuple[str, ...] = ("asc", "desc")


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, operand: Any) -> bool:
        # None and mixed types never satisfy an ordering comparison
        if value is None or operand is None:
            return False
        try:
            return bool(op(value, operand))
        except TypeError:
            return False
    return check


def _member(value: Any, operand: Any) -> bool:
    if not isinstance(operand, (list, tuple, set, frozenset)):
        raise ValueError(
            runtime_error("Filter", "$in/$nin operand must be a list", "pass a list of candidate values")
        )
    return value in operand


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": lambda value, operand: value == operand,
    "$ne": lambda value, operand: value != operand,
    "$gt": _ordered(operator.gt),
    "$gte": _ordered(operator.ge),
    "$lt": _ordered(operator.lt),
    "$lte": _ordered(operator.le),
    "$in": _member,
    "$nin": lambda value, operand: not _member(value, operand),
}


def _is_operator_dict(condition: Any) -> bool:
    return isinstance(condition, dict) and len(condition) > 0 and all(
        isinstance(k, str) and k.startswith("$") for k in condition
    )


def matches_condition(value: Any, condition: Any) -> bool:
    if not _is_operator_dict(condition):
        return value == condition

    for op_name, operand in condition.items():
        check = OPERATORS.get(op_name)
        if check is None:
            allowed = ", ".join(OPERATORS)
            raise ValueError(
                runtime_error("Filter", f"unknown operator '{op_name}'", f"use one of: {allowed}")
            )
        if not check(value, operand):
            return False
    return True


def matches_filter(record: Record, filter: dict[str, Any] | None) -> bool:
    if not filter:
        return True
    for key, condition in filter.items():
        if condition is None:
            continue
        if not matches_condition(record.get(key), condition):
            return False
    return True


def apply_filters(records: Iterable[Record], filter: dict[str, Any] | None) -> list[Record]:
    return [r for r in records if matches_filter(r, filter)]


def apply_sorting(records: list[Record], sort_by: str, sort_order: str = "asc") -> list[Record]:
    """
    Stable single-field sort. Records missing the field (or holding None)
    always come last; values of mixed types are compared by their string form.
    """
    if sort_order not in SORT_ORDERS:
        raise ValueError(
            runtime_error("Sort", f"unsupported sort_order '{sort_order}'", "use 'asc' or 'desc'")
        )

    present = [r for r in records if r.get(sort_by) is not None]
    missing = [r for r in records if r.get(sort_by) is None]
    reverse = sort_order == "desc"
    try:
        ordered = sorted(present, key=lambda r: r[sort_by], reverse=reverse)
    except TypeError:
        ordered = sorted(present, key=lambda r: str(r[sort_by]), reverse=reverse)
    return ordered + missing


def paginate(records: list[Record], page: int | None, limit: int | None, *, default_limit: int = 20) -> tuple[list[Record], dict[str, int]]:
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit

    total = len(records)
    total_pages = math.ceil(total / limit)
    start = (page - 1) * limit

    return records[start:start + limit], {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
    }
