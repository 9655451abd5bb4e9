"""Stock-adjusting transactions shared by sales, purchases, and inventory.

Each function reads the products it needs and stages every write inside a
single :meth:`~shop_erp.document_store.DocumentStore.run_transaction` call,
so the quantity a movement is computed from cannot change before the write
lands. Every quantity change appends one stock movement to the audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

from . import log
from .constants import DEFAULT_CATEGORY, DEFAULT_UNIT, Collection, MovementType, ProductMatchMode
from .core_logic import MissingReferenceError, require_nonnegative_quantity
from .data_manager import (
    ProductRecord,
    PurchaseItem,
    PurchaseRecord,
    SaleRecord,
    StockMovementRecord,
    deserialize_product,
    deserialize_purchase,
    deserialize_sale,
    serialize_product,
    serialize_purchase,
    serialize_sale,
    serialize_stock_movement,
)
from .document_store import DocumentStore, Transaction


ZERO = Decimal("0")


@dataclass(frozen=True)
class StockAdjustment:
    """Result of a stock-adjusting transaction.

    ``record`` is the sale, purchase, or product the transaction was about;
    ``movements`` lists the audit entries written, in line-item order.
    """

    record: Any
    movements: Tuple[StockMovementRecord, ...] = ()
    skipped: Tuple[str, ...] = ()


@dataclass
class _ProductState:
    product: ProductRecord
    quantity: Decimal
    is_new: bool = False
    purchase_price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None


def _movement(
    store: DocumentStore,
    state: _ProductState,
    *,
    movement_type: MovementType,
    quantity: Decimal,
    previous: Decimal,
    reason: str,
    timestamp: datetime,
    sale_id: Optional[str] = None,
    purchase_id: Optional[str] = None,
    reference_code: Optional[str] = None,
) -> StockMovementRecord:
    return StockMovementRecord(
        movement_id=store.new_id(),
        product_id=state.product.product_id,
        product_name=state.product.name,
        movement_type=movement_type.value,
        quantity=quantity,
        previous_quantity=previous,
        new_quantity=state.quantity,
        reason=reason,
        sale_id=sale_id,
        purchase_id=purchase_id,
        reference_code=reference_code,
        created_at=timestamp,
    )


def _stage_product_writes(transaction: Transaction, states: Dict[str, _ProductState], timestamp: datetime) -> None:
    for product_id, state in states.items():
        if state.is_new:
            product = replace(
                state.product,
                quantity=state.quantity,
                created_at=timestamp,
                updated_at=timestamp,
            )
            transaction.create(Collection.PRODUCTS, serialize_product(product), doc_id=product_id)
            continue
        fields: Dict[str, Any] = {"quantity": state.quantity, "updated_at": timestamp}
        if state.purchase_price is not None:
            fields["purchase_price"] = state.purchase_price
        if state.sale_price is not None:
            fields["sale_price"] = state.sale_price
        transaction.update(Collection.PRODUCTS, product_id, fields)


def _stage_movements(transaction: Transaction, movements: List[StockMovementRecord]) -> None:
    for movement in movements:
        transaction.create(
            Collection.STOCK_MOVEMENTS,
            serialize_stock_movement(movement),
            doc_id=movement.movement_id,
        )


def _load_product(transaction: Transaction, product_id: str) -> Optional[_ProductState]:
    document = transaction.get(Collection.PRODUCTS, product_id)
    if document is None:
        return None
    product = deserialize_product(document.id, document.data)
    return _ProductState(product=product, quantity=product.quantity)


def _find_product_by_name(transaction: Transaction, name: str) -> Optional[_ProductState]:
    documents = transaction.query(Collection.PRODUCTS, [("name", "==", name)], limit=1)
    if not documents:
        return None
    product = deserialize_product(documents[0].id, documents[0].data)
    return _ProductState(product=product, quantity=product.quantity)


def _resolve_purchase_item(
    transaction: Transaction,
    item: PurchaseItem,
    match_mode: ProductMatchMode,
) -> Optional[_ProductState]:
    if match_mode is ProductMatchMode.ID:
        if not item.product_id:
            return None
        return _load_product(transaction, item.product_id)
    return _find_product_by_name(transaction, item.product_name)


def commit_sale(store: DocumentStore, sale: SaleRecord, *, timestamp: datetime) -> StockAdjustment:
    """Create ``sale`` and take its line items out of stock atomically.

    For each item with a product id the product quantity becomes
    ``max(0, current - sold)`` and an ``exit`` movement is recorded. Items
    pointing at unknown products are skipped and reported in
    :attr:`StockAdjustment.skipped`. Repeated product ids chain off the
    running quantity. Items stored without a product name take the name of
    the product they resolved to.

    Args:
        store (DocumentStore): Store handle.
        sale (SaleRecord): Sale to create, with its identifier already set.
        timestamp (datetime): Moment recorded on products and movements.

    Returns:
        StockAdjustment: The sale and the movements written.
    """

    def _apply(transaction: Transaction) -> StockAdjustment:
        states: Dict[str, _ProductState] = {}
        missing: List[str] = []
        for item in sale.items:
            if not item.product_id or item.product_id in states or item.product_id in missing:
                continue
            state = _load_product(transaction, item.product_id)
            if state is None:
                missing.append(item.product_id)
            else:
                states[item.product_id] = state

        movements: List[StockMovementRecord] = []
        for item in sale.items:
            if not item.product_id:
                continue
            state = states.get(item.product_id)
            if state is None:
                log.warning(
                    "Sale #%s references unknown product '%s'; line skipped",
                    sale.code,
                    item.product_id,
                )
                continue
            previous = state.quantity
            state.quantity = max(ZERO, previous - item.quantity)
            movements.append(
                _movement(
                    store,
                    state,
                    movement_type=MovementType.EXIT,
                    quantity=item.quantity,
                    previous=previous,
                    reason=f"Sale #{sale.code}",
                    timestamp=timestamp,
                    sale_id=sale.sale_id,
                    reference_code=sale.code,
                )
            )

        stored = replace(
            sale,
            items=tuple(
                replace(item, product_name=states[item.product_id].product.name)
                if item.product_id in states and not item.product_name
                else item
                for item in sale.items
            ),
        )
        transaction.create(Collection.SALES, serialize_sale(stored), doc_id=stored.sale_id)
        _stage_product_writes(transaction, states, timestamp)
        _stage_movements(transaction, movements)
        return StockAdjustment(record=stored, movements=tuple(movements), skipped=tuple(missing))

    result = store.run_transaction(_apply)
    log.info(
        "Committed sale #%s ('%s'): %d movement(s), %d skipped line(s)",
        sale.code,
        sale.sale_id,
        len(result.movements),
        len(result.skipped),
    )
    return result


def reverse_sale(store: DocumentStore, sale_id: str, *, timestamp: datetime) -> StockAdjustment:
    """Delete a sale and return its line items to stock atomically.

    Quantities grow by exactly the sold amount, with no upper clamp, and an
    ``entry`` movement is recorded per line. Lines whose product no longer
    exists are skipped.

    Raises:
        MissingReferenceError: If ``sale_id`` does not exist.
    """

    def _apply(transaction: Transaction) -> StockAdjustment:
        document = transaction.get(Collection.SALES, sale_id)
        if document is None:
            log.warning("Sale lookup failed for id '%s'", sale_id)
            raise MissingReferenceError(f"Unknown sale id: {sale_id}")
        sale = deserialize_sale(document.id, document.data)

        states: Dict[str, _ProductState] = {}
        missing: List[str] = []
        for item in sale.items:
            if not item.product_id or item.product_id in states or item.product_id in missing:
                continue
            state = _load_product(transaction, item.product_id)
            if state is None:
                missing.append(item.product_id)
            else:
                states[item.product_id] = state

        movements: List[StockMovementRecord] = []
        for item in sale.items:
            state = states.get(item.product_id)
            if state is None:
                continue
            previous = state.quantity
            state.quantity = previous + item.quantity
            movements.append(
                _movement(
                    store,
                    state,
                    movement_type=MovementType.ENTRY,
                    quantity=item.quantity,
                    previous=previous,
                    reason=f"Sale #{sale.code} cancelled",
                    timestamp=timestamp,
                    sale_id=sale.sale_id,
                    reference_code=sale.code,
                )
            )

        _stage_product_writes(transaction, states, timestamp)
        _stage_movements(transaction, movements)
        transaction.delete(Collection.SALES, sale_id)
        return StockAdjustment(record=sale, movements=tuple(movements), skipped=tuple(missing))

    result = store.run_transaction(_apply)
    log.info("Reversed sale #%s ('%s'): %d movement(s)", result.record.code, sale_id, len(result.movements))
    return result


def commit_purchase(
    store: DocumentStore,
    purchase: PurchaseRecord,
    *,
    match_mode: ProductMatchMode,
    timestamp: datetime,
) -> StockAdjustment:
    """Create ``purchase`` and add its line items to stock atomically.

    Each line is resolved to a product according to ``match_mode``: by exact,
    case-sensitive name, or by the line's ``product_id``. Resolved products
    gain the purchased quantity and take the line's purchase price (and sale
    price, when given). Unresolved lines create a new product seeded from the
    line. Several lines naming the same new product create it once.

    The stored purchase carries the ``product_id`` each line resolved to.

    Args:
        store (DocumentStore): Store handle.
        purchase (PurchaseRecord): Purchase to create, identifier already set.
        match_mode (ProductMatchMode): How lines are linked to products.
        timestamp (datetime): Moment recorded on products and movements.

    Returns:
        StockAdjustment: The stored purchase and the movements written.
    """

    def _apply(transaction: Transaction) -> StockAdjustment:
        states: Dict[str, _ProductState] = {}
        resolved: Dict[str, str] = {}
        line_products: List[str] = []
        for item in purchase.items:
            lookup_key = f"id:{item.product_id}" if match_mode is ProductMatchMode.ID and item.product_id else f"name:{item.product_name}"
            product_id = resolved.get(lookup_key)
            if product_id is None:
                state = _resolve_purchase_item(transaction, item, match_mode)
                if state is None:
                    new_product = ProductRecord(
                        product_id=store.new_id(),
                        name=item.product_name,
                        category=item.category or DEFAULT_CATEGORY,
                        unit=DEFAULT_UNIT,
                        quantity=ZERO,
                        purchase_price=item.purchase_price,
                        sale_price=item.sale_price if item.sale_price is not None else Decimal("0.00"),
                        supplier=purchase.supplier or None,
                    )
                    state = _ProductState(product=new_product, quantity=ZERO, is_new=True)
                product_id = state.product.product_id
                states.setdefault(product_id, state)
                resolved[lookup_key] = product_id
                # Only products created by this purchase are reachable by name
                # in id mode; existing ones are linked by id alone.
                if state.is_new:
                    resolved.setdefault(f"name:{item.product_name}", product_id)
            line_products.append(product_id)

        movements: List[StockMovementRecord] = []
        first_seen: Set[str] = set()
        for item, product_id in zip(purchase.items, line_products):
            state = states[product_id]
            previous = state.quantity
            state.quantity = previous + item.quantity
            state.purchase_price = item.purchase_price
            if item.sale_price is not None:
                state.sale_price = item.sale_price
            if state.is_new and product_id not in first_seen:
                reason = f"Purchase #{purchase.code} (first registration)"
            else:
                reason = f"Purchase #{purchase.code}"
            first_seen.add(product_id)
            movements.append(
                _movement(
                    store,
                    state,
                    movement_type=MovementType.ENTRY,
                    quantity=item.quantity,
                    previous=previous,
                    reason=reason,
                    timestamp=timestamp,
                    purchase_id=purchase.purchase_id,
                    reference_code=purchase.code,
                )
            )

        stored = replace(
            purchase,
            items=tuple(
                replace(item, product_id=product_id)
                for item, product_id in zip(purchase.items, line_products)
            ),
        )
        transaction.create(Collection.PURCHASES, serialize_purchase(stored), doc_id=stored.purchase_id)
        for state in states.values():
            if state.is_new:
                state.product = replace(
                    state.product,
                    purchase_price=state.purchase_price if state.purchase_price is not None else state.product.purchase_price,
                    sale_price=state.sale_price if state.sale_price is not None else state.product.sale_price,
                )
        _stage_product_writes(transaction, states, timestamp)
        _stage_movements(transaction, movements)
        return StockAdjustment(record=stored, movements=tuple(movements))

    result = store.run_transaction(_apply)
    created = sum(1 for movement in result.movements if movement.reason.endswith("(first registration)"))
    log.info(
        "Committed purchase #%s ('%s'): %d movement(s), %d new product(s)",
        purchase.code,
        purchase.purchase_id,
        len(result.movements),
        created,
    )
    return result


def reverse_purchase(
    store: DocumentStore,
    purchase_id: str,
    *,
    match_mode: ProductMatchMode,
    timestamp: datetime,
) -> StockAdjustment:
    """Delete a purchase and take its line items back out of stock atomically.

    Lines are resolved with the same ``match_mode`` used on creation. Matched
    products drop to ``max(0, current - purchased)`` with an ``exit``
    movement; unmatched lines are ignored and no product is created.

    Raises:
        MissingReferenceError: If ``purchase_id`` does not exist.
    """

    def _apply(transaction: Transaction) -> StockAdjustment:
        document = transaction.get(Collection.PURCHASES, purchase_id)
        if document is None:
            log.warning("Purchase lookup failed for id '%s'", purchase_id)
            raise MissingReferenceError(f"Unknown purchase id: {purchase_id}")
        purchase = deserialize_purchase(document.id, document.data)

        states: Dict[str, _ProductState] = {}
        resolved: Dict[str, Optional[str]] = {}
        line_products: List[Optional[str]] = []
        for item in purchase.items:
            lookup_key = f"id:{item.product_id}" if match_mode is ProductMatchMode.ID else f"name:{item.product_name}"
            if lookup_key not in resolved:
                state = _resolve_purchase_item(transaction, item, match_mode)
                if state is None:
                    resolved[lookup_key] = None
                else:
                    states.setdefault(state.product.product_id, state)
                    resolved[lookup_key] = state.product.product_id
            line_products.append(resolved[lookup_key])

        movements: List[StockMovementRecord] = []
        skipped: List[str] = []
        for item, product_id in zip(purchase.items, line_products):
            if product_id is None:
                skipped.append(item.product_name)
                continue
            state = states[product_id]
            previous = state.quantity
            state.quantity = max(ZERO, previous - item.quantity)
            movements.append(
                _movement(
                    store,
                    state,
                    movement_type=MovementType.EXIT,
                    quantity=item.quantity,
                    previous=previous,
                    reason=f"Purchase #{purchase.code} deleted",
                    timestamp=timestamp,
                    purchase_id=purchase.purchase_id,
                    reference_code=purchase.code,
                )
            )

        _stage_product_writes(transaction, states, timestamp)
        _stage_movements(transaction, movements)
        transaction.delete(Collection.PURCHASES, purchase_id)
        return StockAdjustment(record=purchase, movements=tuple(movements), skipped=tuple(skipped))

    result = store.run_transaction(_apply)
    log.info(
        "Reversed purchase #%s ('%s'): %d movement(s), %d unmatched line(s)",
        result.record.code,
        purchase_id,
        len(result.movements),
        len(result.skipped),
    )
    return result


def adjust_quantity(
    store: DocumentStore,
    product_id: str,
    new_quantity: Decimal,
    *,
    reason: str,
    timestamp: datetime,
) -> StockAdjustment:
    """Set a product's quantity and record an ``adjustment`` movement.

    The movement quantity is the signed difference between the new and the
    previous quantity.

    Raises:
        MissingReferenceError: If ``product_id`` does not exist.
        ValueError: If ``new_quantity`` is negative.
    """
    require_nonnegative_quantity(new_quantity)

    def _apply(transaction: Transaction) -> StockAdjustment:
        state = _load_product(transaction, product_id)
        if state is None:
            log.warning("Product lookup failed for id '%s'", product_id)
            raise MissingReferenceError(f"Unknown product id: {product_id}")
        previous = state.quantity
        state.quantity = new_quantity
        movement = _movement(
            store,
            state,
            movement_type=MovementType.ADJUSTMENT,
            quantity=new_quantity - previous,
            previous=previous,
            reason=reason or "Manual adjustment",
            timestamp=timestamp,
        )
        _stage_product_writes(transaction, {product_id: state}, timestamp)
        _stage_movements(transaction, [movement])
        return StockAdjustment(
            record=replace(state.product, quantity=new_quantity, updated_at=timestamp),
            movements=(movement,),
        )

    result = store.run_transaction(_apply)
    log.info(
        "Adjusted stock of product '%s' to %s (delta=%s)",
        product_id,
        new_quantity,
        result.movements[0].quantity,
    )
    return result


__all__ = [
    "StockAdjustment",
    "commit_sale",
    "reverse_sale",
    "commit_purchase",
    "reverse_purchase",
    "adjust_quantity",
]
