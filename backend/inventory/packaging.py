"""
Packaging — pack-count ↔ litre conversion.

Inventory quantities are stored as packs (cans, buckets, drums). Each
product declares pack_size_litres (1, 4, 10 or 20); unit_price is per pack.
"""

from collections.abc import Iterable
from typing import Any, Protocol


class HasPackSize(Protocol):
    pack_size_litres: float
    unit_price: float


PACK_LABELS: dict[int, str] = {
    1: "1L can",
    4: "4L can",
    10: "10L bucket",
    20: "20L drum",
}


def _pack_size(product: HasPackSize | None) -> float:
    if product is None:
        return 1.0
    return float(product.pack_size_litres or 1)


def _fmt_number(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.1f}"


def pack_label(pack_size: float) -> str:
    size = int(pack_size) if float(pack_size).is_integer() else pack_size
    return PACK_LABELS.get(size, f"{_fmt_number(pack_size)}L")


def to_litres(quantity: int, product: HasPackSize | None) -> float:
    """Packs → litres. Unknown product: quantity is returned unchanged."""
    return quantity * _pack_size(product)


def format_packaging(quantity: int, product: HasPackSize | None = None) -> str:
    """e.g. "860 Litres (~86 10L buckets)"."""
    if product is None:
        return f"{quantity:,} units"
    litres = to_litres(quantity, product)
    return f"{_fmt_number(litres)} Litres (~{quantity:,} {pack_label(_pack_size(product))}s)"


def format_packaging_short(quantity: int, product: HasPackSize | None = None) -> str:
    """e.g. "860L (86×10L)"."""
    if product is None:
        return f"{quantity:,}"
    size = _pack_size(product)
    return f"{_fmt_number(quantity * size)}L ({quantity}×{_fmt_number(size)}L)"


def total_litres(items: Iterable[tuple[int, Any]]) -> float:
    """Sum litres over (quantity, product) pairs."""
    return sum(to_litres(quantity, product) for quantity, product in items)


def total_value(items: Iterable[tuple[int, Any]]) -> float:
    """Stock value at per-pack unit price. Items without a product count as zero."""
    return sum(quantity * float(product.unit_price or 0) for quantity, product in items if product is not None)
