"""Sales accessor: register, edit, delete, and list sales.

Creating a sale takes its items out of stock and deleting it puts them back,
both through :mod:`shop_erp.stock` so the sale document, the product
quantities, and the stock movements are written in one transaction.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from . import log, stock
from .constants import Collection, SaleStatus
from .core_logic import (
    BusinessRuleViolation,
    ListResult,
    MissingReferenceError,
    RuntimeContext,
    cached_listing,
    generate_code,
    invalidate_cache,
    require_nonnegative_money,
    require_date,
    require_positive_quantity,
    resolve_date,
    resolve_timestamp,
    validate_payment_method,
)
from .data_manager import SaleItem, SaleRecord, deserialize_customer, deserialize_sale


CENT = Decimal("0.01")

# Collections whose listings change when a sale is created or deleted.
_AFFECTED_BY_STOCK = (
    Collection.SALES.value,
    Collection.PRODUCTS.value,
    Collection.STOCK_MOVEMENTS.value,
)

_EDITABLE_FIELDS = ("customer_id", "status", "payment_method", "sale_date", "notes")


def calculate_total(items: Iterable[SaleItem]) -> Decimal:
    """Sum ``quantity * unit_price`` over ``items``, rounded to cents."""
    total = sum((item.quantity * item.unit_price for item in items), Decimal("0"))
    return total.quantize(CENT)


def _validate_status(status: str) -> str:
    try:
        return SaleStatus(status).value
    except ValueError as exc:
        log.error("Unsupported sale status provided: %s", status)
        raise BusinessRuleViolation(f"Unsupported sale status: {status}") from exc


def _customer_name(context: RuntimeContext, customer_id: Optional[str]) -> Optional[str]:
    if not customer_id:
        return None
    document = context.store.get(Collection.CUSTOMERS, customer_id)
    if document is None:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise MissingReferenceError(f"Unknown customer id: {customer_id}")
    return deserialize_customer(document.id, document.data).name


def create_sale(
    context: RuntimeContext,
    *,
    customer_id: Optional[str],
    items: Sequence[SaleItem],
    payment_method: Optional[str] = None,
    status: str = SaleStatus.COMPLETED.value,
    sale_date: Optional[date] = None,
    notes: str = "",
    timestamp: Optional[datetime] = None,
) -> stock.StockAdjustment:
    """Register a sale and take its items out of stock.

    Args:
        context (RuntimeContext): Runtime context providing the store.
        customer_id (str | None): Customer buying; ``None`` for walk-ins.
        items (Sequence[SaleItem]): Line items. At least one is required.
        payment_method (str | None): One of :class:`PaymentMethod`.
        status (str): One of :class:`SaleStatus`; completed by default.
        sale_date (date | None): Defaults to today (UTC).
        notes (str): Free text.
        timestamp (datetime | None): Creation moment; defaults to now.

    Returns:
        stock.StockAdjustment: Stored sale plus the exit movements written.

    Raises:
        BusinessRuleViolation: For an empty sale or unsupported enum values.
        MissingReferenceError: If ``customer_id`` is unknown.
        ValueError: When a quantity or price fails validation.
    """
    if not items:
        log.error("Attempted to register a sale without items")
        raise BusinessRuleViolation("A sale needs at least one item")
    for item in items:
        require_positive_quantity(item.quantity)
        require_nonnegative_money(item.unit_price)

    status_value = _validate_status(status)
    payment_value = validate_payment_method(payment_method)
    customer_name = _customer_name(context, customer_id)
    moment = resolve_timestamp(timestamp)

    sale = SaleRecord(
        sale_id=context.store.new_id(),
        code=generate_code(),
        customer_id=customer_id or None,
        customer_name=customer_name,
        sale_date=resolve_date(sale_date),
        items=tuple(items),
        total=calculate_total(items),
        status=status_value,
        payment_method=payment_value,
        notes=(notes or "").strip(),
        created_at=moment,
        updated_at=moment,
    )
    try:
        result = stock.commit_sale(context.store, sale, timestamp=moment)
    finally:
        invalidate_cache(context, *_AFFECTED_BY_STOCK)
    log.info("Registered sale #%s (total=%s, items=%d)", sale.code, sale.total, len(sale.items))
    return result


def update_sale(context: RuntimeContext, sale_id: str, **changes: Any) -> SaleRecord:
    """Edit the non-item fields of a sale.

    Only ``customer_id``, ``status``, ``payment_method``, ``sale_date``, and
    ``notes`` may change. Changing the items would desynchronize stock, so it
    is rejected: delete the sale and register it again instead. Changing the
    status does not move stock.

    Raises:
        BusinessRuleViolation: If ``items`` or an unknown field is supplied.
        MissingReferenceError: If the sale or the new customer is unknown.
    """
    if "items" in changes:
        log.error("Attempted to change the items of sale '%s'", sale_id)
        raise BusinessRuleViolation("Sale items cannot be changed; delete the sale and register it again")
    unknown = sorted(set(changes) - set(_EDITABLE_FIELDS))
    if unknown:
        raise BusinessRuleViolation(f"Fields cannot be edited on a sale: {', '.join(unknown)}")

    current = get_sale(context, sale_id)
    fields: Dict[str, Any] = {}
    if "customer_id" in changes:
        fields["customer_id"] = changes["customer_id"] or None
        fields["customer_name"] = _customer_name(context, changes["customer_id"])
    if "status" in changes:
        fields["status"] = _validate_status(changes["status"])
    if "payment_method" in changes:
        fields["payment_method"] = validate_payment_method(changes["payment_method"])
    if "sale_date" in changes:
        fields["sale_date"] = require_date(changes["sale_date"], "Sale date")
    if "notes" in changes:
        fields["notes"] = (changes["notes"] or "").strip()
    fields["updated_at"] = resolve_timestamp(None)

    context.store.update(Collection.SALES, sale_id, fields)
    invalidate_cache(context, Collection.SALES.value)
    log.info("Updated sale #%s (%s)", current.code, ", ".join(sorted(fields)))
    return replace(current, **fields)


def delete_sale(context: RuntimeContext, sale_id: str, *, timestamp: Optional[datetime] = None) -> stock.StockAdjustment:
    """Delete a sale and return its items to stock.

    Raises:
        MissingReferenceError: If ``sale_id`` does not exist.
    """
    try:
        result = stock.reverse_sale(context.store, sale_id, timestamp=resolve_timestamp(timestamp))
    finally:
        invalidate_cache(context, *_AFFECTED_BY_STOCK)
    log.info("Deleted sale '%s'", sale_id)
    return result


def get_sale(context: RuntimeContext, sale_id: str) -> SaleRecord:
    """Resolve a sale by identifier.

    Raises:
        MissingReferenceError: If ``sale_id`` does not exist.
    """
    document = context.store.get(Collection.SALES, sale_id)
    if document is None:
        log.warning("Sale lookup failed for id '%s'", sale_id)
        raise MissingReferenceError(f"Unknown sale id: {sale_id}")
    return deserialize_sale(document.id, document.data)


def _sale_search_fields(sale: SaleRecord) -> List[Optional[str]]:
    values: List[Optional[str]] = [sale.code, sale.customer_name]
    for item in sale.items:
        values.append(item.product_name)
        values.append(item.product_id)
    return values


def list_sales(
    context: RuntimeContext,
    *,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> ListResult[SaleRecord]:
    """List sales, newest ``sale_date`` first.

    ``search`` matches the sale code, customer name, and item product
    names or ids. ``status`` restricts the listing to one
    :class:`SaleStatus`.
    """
    status_value = _validate_status(status) if status else None

    def _fetch() -> List[SaleRecord]:
        filters = [("status", "==", status_value)] if status_value else []
        documents = context.store.query(Collection.SALES, filters, order_by="sale_date", descending=True)
        return [deserialize_sale(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.SALES.value,
        _fetch,
        search=search,
        search_fields=_sale_search_fields,
        key=(status_value,),
    )


def list_customer_sales(context: RuntimeContext, customer_id: str, *, limit: Optional[int] = None) -> List[SaleRecord]:
    """Return a customer's sales, most recently created first."""
    documents = context.store.query(
        Collection.SALES,
        [("customer_id", "==", customer_id)],
        order_by="created_at",
        descending=True,
        limit=limit,
    )
    return [deserialize_sale(document.id, document.data) for document in documents]


__all__ = [
    "calculate_total",
    "create_sale",
    "update_sale",
    "delete_sale",
    "get_sale",
    "list_sales",
    "list_customer_sales",
]
