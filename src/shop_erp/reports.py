"""Aggregation helpers for Shop ERP reports.

Every function here is pure: it receives records that were already loaded
through the accessors and returns plain dictionaries and lists. Money is
summed as :class:`~decimal.Decimal`; empty inputs yield zero totals and empty
rankings.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .constants import TOP_RANKING_LIMIT, CashFlowType, SaleStatus
from .data_manager import CashFlowRecord, CustomerRecord, ProductRecord, SaleRecord


ZERO = Decimal("0.00")
CENT = Decimal("0.01")
UNIDENTIFIED_PRODUCT = "Unidentified product"
UNIDENTIFIED_CUSTOMER = "Unidentified customer"


def _in_range(value: Any, start: Any, end: Any) -> bool:
    # Records without the compared value only pass an unbounded range.
    if value is None:
        return start is None and end is None
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


def _average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return ZERO
    return (total / count).quantize(CENT)


def _completed(sales: Iterable[SaleRecord]) -> List[SaleRecord]:
    return [sale for sale in sales if sale.status == SaleStatus.COMPLETED.value]


def sales_period_summary(
    sales: Sequence[SaleRecord],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Dict[str, Any]:
    """Summarize sales whose ``sale_date`` falls within ``[start, end]``.

    Returns:
        dict[str, Any]: ``count``, ``total``, ``average_ticket``,
            ``by_status`` (status -> count), and ``by_day`` (date -> total),
            plus the ``sales`` considered.
    """
    selected = [sale for sale in sales if _in_range(sale.sale_date, start, end)]
    total = sum((sale.total for sale in selected), ZERO)
    by_status: Dict[str, int] = defaultdict(int)
    by_day: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    for sale in selected:
        by_status[sale.status] += 1
        by_day[sale.sale_date] += sale.total
    return {
        "sales": selected,
        "count": len(selected),
        "total": total,
        "average_ticket": _average(total, len(selected)),
        "by_status": dict(by_status),
        "by_day": dict(sorted(by_day.items())),
    }


def top_products(sales: Sequence[SaleRecord], limit: int = TOP_RANKING_LIMIT) -> List[Dict[str, Any]]:
    """Rank products of completed sales by quantity sold.

    Lines are grouped by product id, falling back to the product name.
    Each entry carries ``product_id``, ``product_name``, ``quantity``,
    ``revenue``, and ``times_sold``.
    """
    ranking: Dict[str, Dict[str, Any]] = {}
    for sale in _completed(sales):
        for item in sale.items:
            key = item.product_id or item.product_name or UNIDENTIFIED_PRODUCT
            entry = ranking.get(key)
            if entry is None:
                entry = {
                    "product_id": item.product_id or None,
                    "product_name": item.product_name or UNIDENTIFIED_PRODUCT,
                    "quantity": Decimal("0"),
                    "revenue": ZERO,
                    "times_sold": 0,
                }
                ranking[key] = entry
            entry["quantity"] += item.quantity
            entry["revenue"] += item.quantity * item.unit_price
            entry["times_sold"] += 1
    ordered = sorted(ranking.values(), key=lambda entry: entry["quantity"], reverse=True)
    return ordered[:limit]


def top_customers(sales: Sequence[SaleRecord], limit: int = TOP_RANKING_LIMIT) -> List[Dict[str, Any]]:
    """Rank customers of completed sales by total spent.

    Each entry carries ``customer_id``, ``customer_name``,
    ``purchase_count``, ``total_spent``, and ``last_purchase`` (a date).
    Walk-in sales without a customer are grouped together.
    """
    ranking: Dict[Optional[str], Dict[str, Any]] = {}
    for sale in _completed(sales):
        entry = ranking.get(sale.customer_id)
        if entry is None:
            entry = {
                "customer_id": sale.customer_id,
                "customer_name": sale.customer_name or UNIDENTIFIED_CUSTOMER,
                "purchase_count": 0,
                "total_spent": ZERO,
                "last_purchase": None,
            }
            ranking[sale.customer_id] = entry
        entry["purchase_count"] += 1
        entry["total_spent"] += sale.total
        if entry["last_purchase"] is None or sale.sale_date > entry["last_purchase"]:
            entry["last_purchase"] = sale.sale_date
    ordered = sorted(ranking.values(), key=lambda entry: entry["total_spent"], reverse=True)
    return ordered[:limit]


def cash_flow_totals(entries: Iterable[CashFlowRecord]) -> Dict[str, Decimal]:
    """Return ``inflows``, ``outflows``, and ``balance`` of ``entries``."""
    inflows = ZERO
    outflows = ZERO
    for entry in entries:
        if entry.flow_type == CashFlowType.INFLOW.value:
            inflows += entry.amount
        elif entry.flow_type == CashFlowType.OUTFLOW.value:
            outflows += entry.amount
    return {"inflows": inflows, "outflows": outflows, "balance": inflows - outflows}


def cash_flow_summary(
    entries: Sequence[CashFlowRecord],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Summarize cash-flow entries created within ``[start, end]``.

    Returns:
        dict[str, Any]: The totals of :func:`cash_flow_totals`, ``entry_count``,
            ``by_category`` and ``by_day`` (each mapping to ``inflow`` and
            ``outflow`` sums), and the ``entries`` considered.
    """
    selected = [entry for entry in entries if _in_range(entry.created_at, start, end)]
    by_category: Dict[str, Dict[str, Decimal]] = {}
    by_day: Dict[Optional[date], Dict[str, Decimal]] = {}
    for entry in selected:
        direction = "inflow" if entry.flow_type == CashFlowType.INFLOW.value else "outflow"
        category = by_category.setdefault(entry.category or "other", {"inflow": ZERO, "outflow": ZERO})
        category[direction] += entry.amount
        day_key = entry.created_at.date() if entry.created_at is not None else None
        day = by_day.setdefault(day_key, {"inflow": ZERO, "outflow": ZERO})
        day[direction] += entry.amount
    return {
        "entries": selected,
        **cash_flow_totals(selected),
        "entry_count": len(selected),
        "by_category": by_category,
        "by_day": by_day,
    }


def low_stock_products(products: Iterable[ProductRecord]) -> List[ProductRecord]:
    """Return products whose quantity is at or below their minimum stock."""
    return [product for product in products if product.quantity <= product.minimum_stock]


def stock_valuation(products: Iterable[ProductRecord]) -> Dict[str, Decimal]:
    """Value quantities on hand at sale and purchase prices."""
    sale_value = ZERO
    purchase_value = ZERO
    for product in products:
        sale_value += product.quantity * product.sale_price
        purchase_value += product.quantity * product.purchase_price
    return {
        "sale_value": sale_value,
        "purchase_value": purchase_value,
        "estimated_profit": sale_value - purchase_value,
    }


def stock_summary(products: Sequence[ProductRecord]) -> Dict[str, Any]:
    """Summarize the active products.

    Returns:
        dict[str, Any]: ``product_count``, ``sale_value``, ``purchase_value``,
            ``margin``, ``low_stock`` and ``out_of_stock`` product lists, and
            the ``products`` considered.
    """
    active = [product for product in products if product.is_active]
    valuation = stock_valuation(active)
    return {
        "products": active,
        "product_count": len(active),
        "sale_value": valuation["sale_value"],
        "purchase_value": valuation["purchase_value"],
        "margin": valuation["estimated_profit"],
        "low_stock": low_stock_products(active),
        "out_of_stock": [product for product in active if product.quantity == 0],
    }


def dashboard(
    *,
    sales: Sequence[SaleRecord],
    customers: Sequence[CustomerRecord],
    products: Sequence[ProductRecord],
    cash_flow: Sequence[CashFlowRecord],
    now: datetime,
) -> Dict[str, Dict[str, Any]]:
    """Headline numbers for the current month and day.

    Sales count when completed and dated this month (or today); cash flow
    counts entries created since the first day of the month.
    """
    today = now.date()
    month_start = today.replace(day=1)
    month_sales = [sale for sale in _completed(sales) if sale.sale_date >= month_start]
    day_sales = [sale for sale in month_sales if sale.sale_date == today]
    month_revenue = sum((sale.total for sale in month_sales), ZERO)
    day_revenue = sum((sale.total for sale in day_sales), ZERO)

    month_start_moment = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    month_entries = [
        entry for entry in cash_flow if entry.created_at is not None and entry.created_at >= month_start_moment
    ]
    active = [product for product in products if product.is_active]
    return {
        "sales": {
            "month_count": len(month_sales),
            "month_revenue": month_revenue,
            "day_count": len(day_sales),
            "day_revenue": day_revenue,
            "average_ticket": _average(month_revenue, len(month_sales)),
        },
        "customers": {"total": len(customers)},
        "stock": {
            "product_count": len(active),
            "low_stock_count": len(low_stock_products(active)),
            "value": stock_valuation(active)["sale_value"],
        },
        "cash_flow": cash_flow_totals(month_entries),
    }


__all__ = [
    "sales_period_summary",
    "top_products",
    "top_customers",
    "cash_flow_totals",
    "cash_flow_summary",
    "low_stock_products",
    "stock_valuation",
    "stock_summary",
    "dashboard",
]
