"""Purchases accessor: register, edit, delete, and list supplier purchases.

Purchase lines name the product they restock. Whether a line is linked to an
existing product by exact name or by product id is controlled by the
``[Stock] PurchaseProductMatch`` setting.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from . import log, stock
from .constants import Collection
from .core_logic import (
    BusinessRuleViolation,
    ListResult,
    MissingReferenceError,
    RuntimeContext,
    cached_listing,
    generate_code,
    invalidate_cache,
    require_date,
    require_nonnegative_money,
    require_positive_quantity,
    require_text,
    resolve_date,
    resolve_timestamp,
    validate_payment_method,
)
from .data_manager import PurchaseItem, PurchaseRecord, deserialize_purchase


CENT = Decimal("0.01")

_AFFECTED_BY_STOCK = (
    Collection.PURCHASES.value,
    Collection.PRODUCTS.value,
    Collection.STOCK_MOVEMENTS.value,
)

_EDITABLE_FIELDS = ("supplier", "payment_method", "purchase_date", "notes")


def calculate_total(items: Iterable[PurchaseItem]) -> Decimal:
    """Sum ``quantity * purchase_price`` over ``items``, rounded to cents."""
    total = sum((item.quantity * item.purchase_price for item in items), Decimal("0"))
    return total.quantize(CENT)


def _clean_item(item: PurchaseItem) -> PurchaseItem:
    name = require_text(item.product_name, "Product name")
    require_positive_quantity(item.quantity)
    require_nonnegative_money(item.purchase_price)
    if item.sale_price is not None:
        require_nonnegative_money(item.sale_price)
    category = (item.category or "").strip() or None
    return replace(item, product_name=name, category=category, product_id=item.product_id or None)


def create_purchase(
    context: RuntimeContext,
    *,
    supplier: str,
    items: Sequence[PurchaseItem],
    payment_method: Optional[str] = None,
    purchase_date: Optional[date] = None,
    notes: str = "",
    timestamp: Optional[datetime] = None,
) -> stock.StockAdjustment:
    """Register a purchase and add its items to stock.

    Product names are trimmed before matching, so ``" Widget"`` and
    ``"Widget"`` refer to the same product. Matching stays case-sensitive.

    Args:
        context (RuntimeContext): Runtime context providing the store and the
            product match mode.
        supplier (str): Supplier name (free text).
        items (Sequence[PurchaseItem]): Line items. At least one is required.
        payment_method (str | None): One of :class:`PaymentMethod`.
        purchase_date (date | None): Defaults to today (UTC).
        notes (str): Free text.
        timestamp (datetime | None): Creation moment; defaults to now.

    Returns:
        stock.StockAdjustment: Stored purchase (items carry the product id they
            resolved to) plus the entry movements written.

    Raises:
        BusinessRuleViolation: For an empty purchase or unsupported payment
            method.
        ValueError: When a name, quantity, or price fails validation.
    """
    if not items:
        log.error("Attempted to register a purchase without items")
        raise BusinessRuleViolation("A purchase needs at least one item")
    cleaned = tuple(_clean_item(item) for item in items)
    payment_value = validate_payment_method(payment_method)
    moment = resolve_timestamp(timestamp)

    purchase = PurchaseRecord(
        purchase_id=context.store.new_id(),
        code=generate_code(),
        supplier=(supplier or "").strip(),
        purchase_date=resolve_date(purchase_date),
        items=cleaned,
        total=calculate_total(cleaned),
        payment_method=payment_value,
        notes=(notes or "").strip(),
        created_at=moment,
        updated_at=moment,
    )
    try:
        result = stock.commit_purchase(
            context.store,
            purchase,
            match_mode=context.settings.product_match,
            timestamp=moment,
        )
    finally:
        invalidate_cache(context, *_AFFECTED_BY_STOCK)
    log.info(
        "Registered purchase #%s from '%s' (total=%s, items=%d)",
        purchase.code,
        purchase.supplier,
        purchase.total,
        len(purchase.items),
    )
    return result


def update_purchase(context: RuntimeContext, purchase_id: str, **changes: Any) -> PurchaseRecord:
    """Edit the non-item fields of a purchase.

    Only ``supplier``, ``payment_method``, ``purchase_date``, and ``notes``
    may change.

    Raises:
        BusinessRuleViolation: If ``items`` or an unknown field is supplied.
        MissingReferenceError: If the purchase is unknown.
    """
    if "items" in changes:
        log.error("Attempted to change the items of purchase '%s'", purchase_id)
        raise BusinessRuleViolation("Purchase items cannot be changed; delete the purchase and register it again")
    unknown = sorted(set(changes) - set(_EDITABLE_FIELDS))
    if unknown:
        raise BusinessRuleViolation(f"Fields cannot be edited on a purchase: {', '.join(unknown)}")

    current = get_purchase(context, purchase_id)
    fields: Dict[str, Any] = {}
    if "supplier" in changes:
        fields["supplier"] = (changes["supplier"] or "").strip()
    if "payment_method" in changes:
        fields["payment_method"] = validate_payment_method(changes["payment_method"])
    if "purchase_date" in changes:
        fields["purchase_date"] = require_date(changes["purchase_date"], "Purchase date")
    if "notes" in changes:
        fields["notes"] = (changes["notes"] or "").strip()
    fields["updated_at"] = resolve_timestamp(None)

    context.store.update(Collection.PURCHASES, purchase_id, fields)
    invalidate_cache(context, Collection.PURCHASES.value)
    log.info("Updated purchase #%s (%s)", current.code, ", ".join(sorted(fields)))
    return replace(current, **fields)


def delete_purchase(
    context: RuntimeContext,
    purchase_id: str,
    *,
    timestamp: Optional[datetime] = None,
) -> stock.StockAdjustment:
    """Delete a purchase and take its items back out of stock.

    Raises:
        MissingReferenceError: If ``purchase_id`` does not exist.
    """
    try:
        result = stock.reverse_purchase(
            context.store,
            purchase_id,
            match_mode=context.settings.product_match,
            timestamp=resolve_timestamp(timestamp),
        )
    finally:
        invalidate_cache(context, *_AFFECTED_BY_STOCK)
    log.info("Deleted purchase '%s'", purchase_id)
    return result


def get_purchase(context: RuntimeContext, purchase_id: str) -> PurchaseRecord:
    document = context.store.get(Collection.PURCHASES, purchase_id)
    if document is None:
        log.warning("Purchase lookup failed for id '%s'", purchase_id)
        raise MissingReferenceError(f"Unknown purchase id: {purchase_id}")
    return deserialize_purchase(document.id, document.data)


def _purchase_search_fields(purchase: PurchaseRecord) -> List[Optional[str]]:
    return [purchase.code, purchase.supplier, *(item.product_name for item in purchase.items)]


def list_purchases(context: RuntimeContext, *, search: Optional[str] = None) -> ListResult[PurchaseRecord]:
    """List purchases, newest ``purchase_date`` first.

    ``search`` matches the purchase code, the supplier, and item product
    names.
    """

    def _fetch() -> List[PurchaseRecord]:
        documents = context.store.query(Collection.PURCHASES, order_by="purchase_date", descending=True)
        return [deserialize_purchase(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.PURCHASES.value,
        _fetch,
        search=search,
        search_fields=_purchase_search_fields,
    )


__all__ = [
    "calculate_total",
    "create_purchase",
    "update_purchase",
    "delete_purchase",
    "get_purchase",
    "list_purchases",
]
