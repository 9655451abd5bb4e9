"""Tests for the stock-adjusting transactions."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from shop_erp import constants, stock
from shop_erp.constants import Collection, MovementType, ProductMatchMode
from shop_erp.core_logic import MissingReferenceError
from shop_erp.data_manager import (
    ProductRecord,
    PurchaseItem,
    PurchaseRecord,
    SaleItem,
    SaleRecord,
    deserialize_product,
    serialize_product,
)
from shop_erp.document_store import MemoryDocumentStore


MOMENT = datetime(2024, 5, 17, 9, 0, tzinfo=UTC)


def _put_product(store, product_id, name, quantity, **extra):
    record = ProductRecord(product_id=product_id, name=name, quantity=Decimal(quantity), **extra)
    store.set(Collection.PRODUCTS, product_id, serialize_product(record))


def _product(store, product_id):
    return deserialize_product(product_id, store.get(Collection.PRODUCTS, product_id).data)


def _movements(store):
    return [document.data for document in store.query(Collection.STOCK_MOVEMENTS)]


def _sale(*items, sale_id="s1", code="11111"):
    return SaleRecord(
        sale_id=sale_id,
        code=code,
        customer_id=None,
        sale_date=date(2024, 5, 17),
        items=tuple(items),
        total=Decimal("0.00"),
    )


def _purchase(*items, purchase_id="b1", code="22222", supplier="Acme"):
    return PurchaseRecord(
        purchase_id=purchase_id,
        code=code,
        supplier=supplier,
        purchase_date=date(2024, 5, 17),
        items=tuple(items),
        total=Decimal("0.00"),
    )


@pytest.fixture
def store():
    return MemoryDocumentStore()


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


def test_commit_sale_decrements_and_records_exit(store):
    _put_product(store, "p1", "Widget", "10")

    result = stock.commit_sale(store, _sale(SaleItem("p1", Decimal("3"), Decimal("2.00"))), timestamp=MOMENT)

    assert _product(store, "p1").quantity == Decimal("7")
    (movement,) = _movements(store)
    assert movement["movement_type"] == MovementType.EXIT.value
    assert movement["quantity"] == Decimal("3")
    assert movement["previous_quantity"] == Decimal("10")
    assert movement["new_quantity"] == Decimal("7")
    assert movement["reason"] == "Sale #11111"
    assert movement["sale_id"] == "s1"
    assert result.record.items[0].product_name == "Widget"
    assert store.get(Collection.SALES, "s1").data["items"][0]["product_name"] == "Widget"


def test_commit_sale_clamps_at_zero(store):
    _put_product(store, "p1", "Widget", "2")

    stock.commit_sale(store, _sale(SaleItem("p1", Decimal("5"), Decimal("1.00"))), timestamp=MOMENT)

    assert _product(store, "p1").quantity == Decimal("0")


def test_commit_sale_chains_repeated_products(store):
    _put_product(store, "p1", "Widget", "10")

    result = stock.commit_sale(
        store,
        _sale(SaleItem("p1", Decimal("2"), Decimal("1")), SaleItem("p1", Decimal("3"), Decimal("1"))),
        timestamp=MOMENT,
    )

    assert _product(store, "p1").quantity == Decimal("5")
    assert [(m.previous_quantity, m.new_quantity) for m in result.movements] == [
        (Decimal("10"), Decimal("8")),
        (Decimal("8"), Decimal("5")),
    ]


def test_commit_sale_skips_unknown_products(store):
    _put_product(store, "p1", "Widget", "10")

    result = stock.commit_sale(
        store,
        _sale(SaleItem("ghost", Decimal("1"), Decimal("1")), SaleItem("p1", Decimal("1"), Decimal("1"))),
        timestamp=MOMENT,
    )

    assert result.skipped == ("ghost",)
    assert len(result.movements) == 1
    assert store.get(Collection.PRODUCTS, "ghost") is None
    assert store.get(Collection.SALES, "s1") is not None


def test_reverse_sale_restores_quantities_without_clamp(store):
    _put_product(store, "p1", "Widget", "2")
    stock.commit_sale(store, _sale(SaleItem("p1", Decimal("5"), Decimal("1"))), timestamp=MOMENT)

    result = stock.reverse_sale(store, "s1", timestamp=MOMENT)

    # Clamped to 0 on the way out, so the reversal overshoots the original 2.
    assert _product(store, "p1").quantity == Decimal("5")
    assert result.movements[0].movement_type == MovementType.ENTRY.value
    assert result.movements[0].reason == "Sale #11111 cancelled"
    assert store.get(Collection.SALES, "s1") is None


def test_reverse_sale_unknown_id(store):
    with pytest.raises(MissingReferenceError):
        stock.reverse_sale(store, "nope", timestamp=MOMENT)


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------


def test_commit_purchase_creates_new_product_with_defaults(store):
    result = stock.commit_purchase(
        store,
        _purchase(PurchaseItem("Widget", Decimal("10"), Decimal("2.50"), sale_price=Decimal("4.00"))),
        match_mode=ProductMatchMode.NAME,
        timestamp=MOMENT,
    )

    product_id = result.record.items[0].product_id
    product = _product(store, product_id)
    assert product.name == "Widget"
    assert product.quantity == Decimal("10")
    assert product.category == constants.DEFAULT_CATEGORY
    assert product.purchase_price == Decimal("2.50")
    assert product.sale_price == Decimal("4.00")
    assert product.supplier == "Acme"
    assert result.movements[0].reason == "Purchase #22222 (first registration)"


def test_commit_purchase_by_name_updates_existing_product(store):
    _put_product(store, "p1", "Widget", "4", purchase_price=Decimal("2.00"), sale_price=Decimal("3.00"))

    result = stock.commit_purchase(
        store,
        _purchase(PurchaseItem("Widget", Decimal("6"), Decimal("2.20"))),
        match_mode=ProductMatchMode.NAME,
        timestamp=MOMENT,
    )

    product = _product(store, "p1")
    assert product.quantity == Decimal("10")
    assert product.purchase_price == Decimal("2.20")
    assert product.sale_price == Decimal("3.00")
    assert result.movements[0].reason == "Purchase #22222"
    assert len(store.query(Collection.PRODUCTS)) == 1


def test_commit_purchase_name_match_is_case_sensitive(store):
    _put_product(store, "p1", "Widget", "4")

    stock.commit_purchase(
        store,
        _purchase(PurchaseItem("widget", Decimal("1"), Decimal("1"))),
        match_mode=ProductMatchMode.NAME,
        timestamp=MOMENT,
    )

    assert len(store.query(Collection.PRODUCTS)) == 2


def test_commit_purchase_repeated_new_name_creates_one_product(store):
    result = stock.commit_purchase(
        store,
        _purchase(
            PurchaseItem("Widget", Decimal("2"), Decimal("1")),
            PurchaseItem("Widget", Decimal("3"), Decimal("1")),
        ),
        match_mode=ProductMatchMode.NAME,
        timestamp=MOMENT,
    )

    (product,) = store.query(Collection.PRODUCTS)
    assert product.data["quantity"] == Decimal("5")
    assert [m.reason for m in result.movements] == [
        "Purchase #22222 (first registration)",
        "Purchase #22222",
    ]


def test_commit_purchase_by_id_ignores_names(store):
    _put_product(store, "p1", "Widget", "4")

    result = stock.commit_purchase(
        store,
        _purchase(PurchaseItem("Widget (renamed on invoice)", Decimal("1"), Decimal("1"), product_id="p1")),
        match_mode=ProductMatchMode.ID,
        timestamp=MOMENT,
    )

    assert _product(store, "p1").quantity == Decimal("5")
    assert result.record.items[0].product_id == "p1"
    assert len(store.query(Collection.PRODUCTS)) == 1


def test_commit_purchase_by_id_creates_product_for_lines_without_id(store):
    _put_product(store, "p1", "Widget", "4")

    stock.commit_purchase(
        store,
        _purchase(PurchaseItem("Widget", Decimal("1"), Decimal("1"))),
        match_mode=ProductMatchMode.ID,
        timestamp=MOMENT,
    )

    assert _product(store, "p1").quantity == Decimal("4")
    assert len(store.query(Collection.PRODUCTS)) == 2


def test_commit_purchase_by_id_never_links_lines_by_shared_name(store):
    _put_product(store, "p1", "Widget", "4")

    result = stock.commit_purchase(
        store,
        _purchase(
            PurchaseItem("Gadget", Decimal("1"), Decimal("1"), product_id="p1"),
            PurchaseItem("Gadget", Decimal("1"), Decimal("1")),
            PurchaseItem("Gadget", Decimal("2"), Decimal("1")),
        ),
        match_mode=ProductMatchMode.ID,
        timestamp=MOMENT,
    )

    line_ids = [item.product_id for item in result.record.items]
    assert line_ids[0] == "p1"
    assert line_ids[1] != "p1"
    assert line_ids[2] == line_ids[1]
    assert _product(store, "p1").quantity == Decimal("5")
    assert _product(store, line_ids[1]).quantity == Decimal("3")
    assert len(store.query(Collection.PRODUCTS)) == 2


def test_reverse_purchase_by_name_clamps_and_skips_unmatched(store):
    stock.commit_purchase(
        store,
        _purchase(
            PurchaseItem("Widget", Decimal("10"), Decimal("1")),
            PurchaseItem("Gadget", Decimal("2"), Decimal("1")),
        ),
        match_mode=ProductMatchMode.NAME,
        timestamp=MOMENT,
    )
    widget = store.query(Collection.PRODUCTS, [("name", "==", "Widget")])[0]
    gadget = store.query(Collection.PRODUCTS, [("name", "==", "Gadget")])[0]
    store.update(Collection.PRODUCTS, widget.id, {"quantity": Decimal("4")})
    store.delete(Collection.PRODUCTS, gadget.id)

    result = stock.reverse_purchase(store, "b1", match_mode=ProductMatchMode.NAME, timestamp=MOMENT)

    assert _product(store, widget.id).quantity == Decimal("0")
    assert result.skipped == ("Gadget",)
    assert result.movements[0].reason == "Purchase #22222 deleted"
    assert store.get(Collection.PURCHASES, "b1") is None
    assert store.query(Collection.PRODUCTS, [("name", "==", "Gadget")]) == []


def test_reverse_purchase_unknown_id(store):
    with pytest.raises(MissingReferenceError):
        stock.reverse_purchase(store, "nope", match_mode=ProductMatchMode.NAME, timestamp=MOMENT)


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------


def test_adjust_quantity_records_signed_delta(store):
    _put_product(store, "p1", "Widget", "10")

    result = stock.adjust_quantity(store, "p1", Decimal("7"), reason="", timestamp=MOMENT)

    movement = result.movements[0]
    assert movement.movement_type == MovementType.ADJUSTMENT.value
    assert movement.quantity == Decimal("-3")
    assert movement.reason == "Manual adjustment"
    assert _product(store, "p1").quantity == Decimal("7")


def test_adjust_quantity_rejects_negative_and_unknown(store):
    _put_product(store, "p1", "Widget", "10")

    with pytest.raises(ValueError):
        stock.adjust_quantity(store, "p1", Decimal("-1"), reason="", timestamp=MOMENT)
    with pytest.raises(MissingReferenceError):
        stock.adjust_quantity(store, "ghost", Decimal("1"), reason="", timestamp=MOMENT)
    assert _movements(store) == []
