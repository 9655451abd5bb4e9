"""Inventory accessor: products, categories, and the stock audit trail.

Direct product edits never change ``quantity``; quantities only move through
stock-adjusting operations (sales, purchases, and :func:`adjust_stock`) so
that every change leaves a stock movement behind.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from . import log, reports, stock
from .constants import DEFAULT_CATEGORY, DEFAULT_CATEGORY_COLOR, DEFAULT_UNIT, Collection
from .core_logic import (
    BusinessRuleViolation,
    ListResult,
    MissingReferenceError,
    RuntimeContext,
    cached_listing,
    invalidate_cache,
    require_nonnegative_money,
    require_nonnegative_quantity,
    require_text,
    resolve_timestamp,
)
from .data_manager import (
    CategoryRecord,
    ProductRecord,
    StockMovementRecord,
    deserialize_category,
    deserialize_product,
    deserialize_stock_movement,
    serialize_category,
    serialize_product,
    to_decimal,
)


_PRODUCT_TEXT_FIELDS = ("name", "category", "unit", "code", "description")
_PRODUCT_MONEY_FIELDS = ("purchase_price", "sale_price")
_PRODUCT_EDITABLE = _PRODUCT_TEXT_FIELDS + _PRODUCT_MONEY_FIELDS + ("minimum_stock", "supplier", "is_active")


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def add_product(
    context: RuntimeContext,
    name: str,
    *,
    category: str = DEFAULT_CATEGORY,
    unit: str = DEFAULT_UNIT,
    quantity: Decimal = Decimal("0"),
    minimum_stock: Decimal = Decimal("0"),
    purchase_price: Decimal = Decimal("0.00"),
    sale_price: Decimal = Decimal("0.00"),
    supplier: Optional[str] = None,
    code: str = "",
    description: str = "",
    is_active: bool = True,
    timestamp: Optional[datetime] = None,
) -> ProductRecord:
    """Register a product.

    Args:
        context (RuntimeContext): Runtime context providing the store.
        name (str): Product name; trimmed and required.
        category (str): Category name, ``"Geral"`` when blank.
        unit (str): Unit of measure.
        quantity (Decimal): Opening quantity on hand.
        minimum_stock (Decimal): Low-stock threshold.
        purchase_price (Decimal): Unit cost.
        sale_price (Decimal): Unit price.
        supplier (str | None): Usual supplier.
        code (str): Optional shelf or bar code.
        description (str): Free text.
        is_active (bool): Inactive products stay listed but are flagged.
        timestamp (datetime | None): Creation moment; defaults to now.

    Returns:
        ProductRecord: The stored product.

    Raises:
        ValueError: If the name is blank or a number is negative.
    """
    quantity = to_decimal(quantity)
    minimum_stock = to_decimal(minimum_stock)
    purchase_price = to_decimal(purchase_price)
    sale_price = to_decimal(sale_price)
    require_nonnegative_quantity(quantity)
    require_nonnegative_quantity(minimum_stock)
    require_nonnegative_money(purchase_price)
    require_nonnegative_money(sale_price)

    moment = resolve_timestamp(timestamp)
    record = ProductRecord(
        product_id=context.store.new_id(),
        name=require_text(name, "Product name"),
        category=(category or "").strip() or DEFAULT_CATEGORY,
        unit=(unit or "").strip() or DEFAULT_UNIT,
        quantity=quantity,
        minimum_stock=minimum_stock,
        purchase_price=purchase_price,
        sale_price=sale_price,
        supplier=(supplier or "").strip() or None,
        code=(code or "").strip(),
        description=(description or "").strip(),
        is_active=is_active,
        created_at=moment,
        updated_at=moment,
    )
    context.store.set(Collection.PRODUCTS, record.product_id, serialize_product(record))
    invalidate_cache(context, Collection.PRODUCTS.value)
    log.info("Added product '%s' ('%s', quantity=%s)", record.name, record.product_id, record.quantity)
    return record


def update_product(context: RuntimeContext, product_id: str, **changes: Any) -> ProductRecord:
    """Edit product details other than the quantity on hand.

    Raises:
        BusinessRuleViolation: If ``quantity`` or an unknown field is supplied;
            use :func:`adjust_stock` to change quantities.
        MissingReferenceError: If the product is unknown.
        ValueError: For blank names or negative numbers.
    """
    if "quantity" in changes:
        log.error("Attempted to edit the quantity of product '%s' directly", product_id)
        raise BusinessRuleViolation("Product quantity can only change through stock adjustments")
    unknown = sorted(set(changes) - set(_PRODUCT_EDITABLE))
    if unknown:
        raise BusinessRuleViolation(f"Fields cannot be edited on a product: {', '.join(unknown)}")

    current = get_product(context, product_id)
    fields: Dict[str, Any] = {}
    for name in _PRODUCT_TEXT_FIELDS:
        if name in changes:
            fields[name] = (changes[name] or "").strip()
    if "name" in fields:
        fields["name"] = require_text(fields["name"], "Product name")
    if "category" in fields and not fields["category"]:
        fields["category"] = DEFAULT_CATEGORY
    for name in _PRODUCT_MONEY_FIELDS:
        if name in changes:
            fields[name] = to_decimal(changes[name])
            require_nonnegative_money(fields[name])
    if "minimum_stock" in changes:
        fields["minimum_stock"] = to_decimal(changes["minimum_stock"])
        require_nonnegative_quantity(fields["minimum_stock"])
    if "supplier" in changes:
        fields["supplier"] = (changes["supplier"] or "").strip() or None
    if "is_active" in changes:
        fields["is_active"] = bool(changes["is_active"])
    fields["updated_at"] = resolve_timestamp(None)

    context.store.update(Collection.PRODUCTS, product_id, fields)
    invalidate_cache(context, Collection.PRODUCTS.value)
    log.info("Updated product '%s' (%s)", product_id, ", ".join(sorted(fields)))
    return replace(current, **fields)


def delete_product(context: RuntimeContext, product_id: str) -> None:
    """Delete a product. Past sales and movements keep the product name."""
    get_product(context, product_id)
    context.store.delete(Collection.PRODUCTS, product_id)
    invalidate_cache(context, Collection.PRODUCTS.value)
    log.info("Deleted product '%s'", product_id)


def get_product(context: RuntimeContext, product_id: str) -> ProductRecord:
    """Resolve a product by identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is unknown.
    """
    document = context.store.get(Collection.PRODUCTS, product_id)
    if document is None:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}")
    return deserialize_product(document.id, document.data)


def _fetch_products(context: RuntimeContext) -> List[ProductRecord]:
    documents = context.store.query(Collection.PRODUCTS, order_by="name")
    return [deserialize_product(document.id, document.data) for document in documents]


def list_products(
    context: RuntimeContext,
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    max_quantity: Optional[Decimal] = None,
) -> ListResult[ProductRecord]:
    """List products ordered by name.

    Args:
        context (RuntimeContext): Runtime context.
        search (str | None): Matches name, code, and description.
        category (str | None): Exact category name.
        max_quantity (Decimal | None): Keep products with at most this
            quantity on hand.

    Returns:
        ListResult[ProductRecord]: Matching products.
    """

    def _fetch() -> List[ProductRecord]:
        filters = []
        if category:
            filters.append(("category", "==", category))
        if max_quantity is not None:
            filters.append(("quantity", "<=", to_decimal(max_quantity)))
        documents = context.store.query(Collection.PRODUCTS, filters, order_by="name")
        return [deserialize_product(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.PRODUCTS.value,
        _fetch,
        search=search,
        search_fields=lambda p: (p.name, p.code, p.description),
        key=(category, None if max_quantity is None else str(max_quantity)),
    )


def list_low_stock(context: RuntimeContext) -> List[ProductRecord]:
    """Return products whose quantity is at or below their minimum stock."""
    return reports.low_stock_products(_fetch_products(context))


def stock_valuation(context: RuntimeContext) -> Dict[str, Decimal]:
    """Value the stock on hand at sale and purchase prices.

    Returns:
        dict[str, Decimal]: ``sale_value``, ``purchase_value``, and
            ``estimated_profit``.
    """
    return reports.stock_valuation(_fetch_products(context))


def adjust_stock(
    context: RuntimeContext,
    product_id: str,
    new_quantity: Decimal,
    *,
    reason: str = "",
    timestamp: Optional[datetime] = None,
) -> stock.StockAdjustment:
    """Set a product's quantity after a count and record an adjustment movement.

    Raises:
        MissingReferenceError: If the product is unknown.
        ValueError: If ``new_quantity`` is negative.
    """
    try:
        result = stock.adjust_quantity(
            context.store,
            product_id,
            to_decimal(new_quantity),
            reason=(reason or "").strip(),
            timestamp=resolve_timestamp(timestamp),
        )
    finally:
        invalidate_cache(context, Collection.PRODUCTS.value, Collection.STOCK_MOVEMENTS.value)
    return result


def list_stock_movements(
    context: RuntimeContext,
    *,
    product_id: Optional[str] = None,
    search: Optional[str] = None,
) -> ListResult[StockMovementRecord]:
    """List stock movements newest first, optionally for one product.

    ``search`` matches the product name, the reason, and the reference code.
    """

    def _fetch() -> List[StockMovementRecord]:
        filters = [("product_id", "==", product_id)] if product_id else []
        documents = context.store.query(
            Collection.STOCK_MOVEMENTS,
            filters,
            order_by="created_at",
            descending=True,
        )
        return [deserialize_stock_movement(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.STOCK_MOVEMENTS.value,
        _fetch,
        search=search,
        search_fields=lambda m: (m.product_name, m.reason, m.reference_code),
        key=(product_id,),
    )


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def add_category(
    context: RuntimeContext,
    name: str,
    *,
    description: str = "",
    color: str = DEFAULT_CATEGORY_COLOR,
    timestamp: Optional[datetime] = None,
) -> CategoryRecord:
    """Register a product category.

    Raises:
        ValueError: If ``name`` is blank.
        BusinessRuleViolation: If a category with the same name exists.
    """
    cleaned = require_text(name, "Category name")
    if context.store.query(Collection.CATEGORIES, [("name", "==", cleaned)], limit=1):
        log.warning("Category '%s' already exists", cleaned)
        raise BusinessRuleViolation(f"Category already exists: {cleaned}")
    moment = resolve_timestamp(timestamp)
    record = CategoryRecord(
        category_id=context.store.new_id(),
        name=cleaned,
        description=(description or "").strip(),
        color=(color or "").strip() or DEFAULT_CATEGORY_COLOR,
        created_at=moment,
        updated_at=moment,
    )
    context.store.set(Collection.CATEGORIES, record.category_id, serialize_category(record))
    invalidate_cache(context, Collection.CATEGORIES.value)
    log.info("Added category '%s' ('%s')", record.name, record.category_id)
    return record


def update_category(context: RuntimeContext, category_id: str, **changes: Any) -> CategoryRecord:
    unknown = sorted(set(changes) - {"name", "description", "color", "is_active"})
    if unknown:
        raise BusinessRuleViolation(f"Fields cannot be edited on a category: {', '.join(unknown)}")
    document = context.store.get(Collection.CATEGORIES, category_id)
    if document is None:
        log.warning("Category lookup failed for id '%s'", category_id)
        raise MissingReferenceError(f"Unknown category id: {category_id}")
    current = deserialize_category(document.id, document.data)

    fields: Dict[str, Any] = {}
    if "name" in changes:
        fields["name"] = require_text(changes["name"], "Category name")
    if "description" in changes:
        fields["description"] = (changes["description"] or "").strip()
    if "color" in changes:
        fields["color"] = (changes["color"] or "").strip() or DEFAULT_CATEGORY_COLOR
    if "is_active" in changes:
        fields["is_active"] = bool(changes["is_active"])
    fields["updated_at"] = resolve_timestamp(None)

    context.store.update(Collection.CATEGORIES, category_id, fields)
    invalidate_cache(context, Collection.CATEGORIES.value)
    log.info("Updated category '%s'", category_id)
    return replace(current, **fields)


def delete_category(context: RuntimeContext, category_id: str) -> None:
    if context.store.get(Collection.CATEGORIES, category_id) is None:
        log.warning("Category lookup failed for id '%s'", category_id)
        raise MissingReferenceError(f"Unknown category id: {category_id}")
    context.store.delete(Collection.CATEGORIES, category_id)
    invalidate_cache(context, Collection.CATEGORIES.value)
    log.info("Deleted category '%s'", category_id)


def list_categories(context: RuntimeContext, *, search: Optional[str] = None) -> ListResult[CategoryRecord]:
    def _fetch() -> List[CategoryRecord]:
        documents = context.store.query(Collection.CATEGORIES, order_by="name")
        return [deserialize_category(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.CATEGORIES.value,
        _fetch,
        search=search,
        search_fields=lambda c: (c.name, c.description),
    )


__all__ = [
    "add_product",
    "update_product",
    "delete_product",
    "get_product",
    "list_products",
    "list_low_stock",
    "stock_valuation",
    "adjust_stock",
    "list_stock_movements",
    "add_category",
    "update_category",
    "delete_category",
    "list_categories",
]
