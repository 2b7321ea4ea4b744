"""Seller dashboard list operations.

Work on any sequence of order-like objects (ORM rows or ``OrderRead``) that
expose ``id``, ``status``, ``customer_name`` and ``phone``.
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional

from seller_orders.models import OrderStatus

ALL = "all"


def _status_value(status) -> str:
    return status.value if isinstance(status, OrderStatus) else str(status)


def filter_by_status(orders: Iterable, status: Optional[str] = ALL) -> List:
    """Return exactly the orders whose status equals ``status``.

    ``None`` or ``"all"`` keeps every order. An unknown status simply matches
    nothing.
    """
    if status is None or status == ALL:
        return list(orders)
    wanted = _status_value(status)
    return [order for order in orders if _status_value(order.status) == wanted]


def search_orders(orders: Iterable, term: str = "") -> List:
    """Case-insensitive customer name match, or substring of order id or phone."""
    term = (term or "").strip()
    if not term:
        return list(orders)
    lowered = term.lower()
    return [
        order for order in orders
        if lowered in (order.customer_name or "").lower()
        or term in str(order.id)
        or term in (order.phone or "")
    ]


def status_counts(orders: Iterable) -> Dict[str, int]:
    counts = Counter(_status_value(order.status) for order in orders)
    return {status.value: counts.get(status.value, 0) for status in OrderStatus}
