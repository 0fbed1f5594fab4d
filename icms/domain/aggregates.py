"""Read-side computations used by dashboards and public listings."""
from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Tuple, Type

from .enums import PaymentStatus

__all__ = [
    "CapacityFill",
    "capacity_fill",
    "revenue_by_payment_status",
    "count_by",
]

# Thresholds checked from the top; the first one reached names the fill level.
FILL_LABELS = (
    (100.0, "Sold Out"),
    (80.0, "Almost Full"),
    (50.0, "Filling Up"),
)


@dataclass(frozen=True)
class CapacityFill:
    taken: int
    capacity: int
    available: int
    percentage: float
    label: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def capacity_fill(taken: int, capacity: int) -> CapacityFill:
    taken = max(int(taken), 0)
    capacity = max(int(capacity), 0)
    available = max(capacity - taken, 0)
    if capacity == 0:
        percentage = 100.0
    else:
        percentage = round(taken / capacity * 100, 1)

    label = "Available"
    for threshold, text in FILL_LABELS:
        if percentage >= threshold:
            label = text
            break
    return CapacityFill(
        taken=taken,
        capacity=capacity,
        available=available,
        percentage=percentage,
        label=label,
    )


def revenue_by_payment_status(
    rows: Iterable[Tuple[str, Any]]
) -> Dict[str, Any]:
    """Sum amounts per payment status from ``(payment_status, amount)`` rows."""

    totals: Dict[str, Decimal] = {status.value: Decimal("0") for status in PaymentStatus}
    for status, amount in rows:
        key = PaymentStatus(status).value
        totals[key] += Decimal(str(amount or 0))
    return {
        "by_payment_status": totals,
        "total_revenue": totals[PaymentStatus.PAID.value],
    }


def count_by(values: Iterable[Any], enum_cls: Type) -> Dict[str, int]:
    counts = Counter(enum_cls(value).value for value in values)
    return {member.value: counts.get(member.value, 0) for member in enum_cls}
