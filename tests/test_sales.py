"""Tests for the sales accessor."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from shop_erp import customers, inventory, sales
from shop_erp.constants import Collection, SaleStatus
from shop_erp.core_logic import BusinessRuleViolation, MissingReferenceError
from shop_erp.data_manager import SaleItem

from conftest import FIXED_MOMENT


def test_calculate_total_rounds_to_cents():
    items = [SaleItem("p1", Decimal("3"), Decimal("0.333")), SaleItem("p2", Decimal("1"), Decimal("2"))]

    assert sales.calculate_total(items) == Decimal("3.00")


def test_create_sale_fills_derived_fields(context, make_product):
    product = make_product(quantity="10", sale_price="4.50")
    customer = customers.add_customer(context, "Ana")

    result = sales.create_sale(
        context,
        customer_id=customer.customer_id,
        items=[SaleItem(product.product_id, Decimal("2"), Decimal("4.50"))],
        payment_method="pix",
        sale_date=date(2024, 5, 17),
        timestamp=FIXED_MOMENT,
    )

    sale = result.record
    assert sale.total == Decimal("9.00")
    assert sale.customer_name == "Ana"
    assert sale.status == SaleStatus.COMPLETED.value
    assert len(sale.code) == 5
    assert sale.items[0].product_name == product.name
    assert inventory.get_product(context, product.product_id).quantity == Decimal("8")
    assert sales.get_sale(context, sale.sale_id) == sale


def test_create_sale_rejects_empty_and_invalid_input(context, make_product):
    product = make_product()

    with pytest.raises(BusinessRuleViolation):
        sales.create_sale(context, customer_id=None, items=[])
    with pytest.raises(ValueError):
        sales.create_sale(context, customer_id=None, items=[SaleItem(product.product_id, Decimal("-1"), Decimal("1"))])
    with pytest.raises(BusinessRuleViolation):
        sales.create_sale(
            context,
            customer_id=None,
            items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
            status="shipped",
        )
    with pytest.raises(MissingReferenceError):
        sales.create_sale(
            context,
            customer_id="ghost",
            items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
        )
    assert context.store.query(Collection.SALES) == []
    assert inventory.get_product(context, product.product_id).quantity == Decimal("10")


def test_sale_round_trip_restores_stock(context, make_product):
    product = make_product(quantity="10")

    result = sales.create_sale(
        context,
        customer_id=None,
        items=[SaleItem(product.product_id, Decimal("4"), Decimal("1"))],
    )
    sales.delete_sale(context, result.record.sale_id)

    assert inventory.get_product(context, product.product_id).quantity == Decimal("10")
    movements = inventory.list_stock_movements(context, product_id=product.product_id)
    assert sorted(m.movement_type for m in movements) == ["entry", "exit"]
    with pytest.raises(MissingReferenceError):
        sales.get_sale(context, result.record.sale_id)


def test_create_sale_invalidates_product_listing(context, make_product):
    product = make_product(quantity="10")
    assert inventory.list_products(context)[0].quantity == Decimal("10")

    sales.create_sale(context, customer_id=None, items=[SaleItem(product.product_id, Decimal("3"), Decimal("1"))])

    assert inventory.list_products(context)[0].quantity == Decimal("7")


def test_update_sale_edits_metadata_only(context, make_product):
    product = make_product(quantity="10")
    result = sales.create_sale(
        context,
        customer_id=None,
        items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
    )
    sale_id = result.record.sale_id

    updated = sales.update_sale(context, sale_id, status="cancelled", notes="  returned ")

    assert updated.status == "cancelled"
    assert updated.notes == "returned"
    assert sales.get_sale(context, sale_id).status == "cancelled"
    # Status changes do not move stock.
    assert inventory.get_product(context, product.product_id).quantity == Decimal("9")
    with pytest.raises(BusinessRuleViolation):
        sales.update_sale(context, sale_id, items=[])
    with pytest.raises(BusinessRuleViolation):
        sales.update_sale(context, sale_id, total=Decimal("0"))


def test_list_sales_filters_and_orders(context, make_product):
    product = make_product("Blue pen", quantity="50")
    customer = customers.add_customer(context, "Carla")
    first = sales.create_sale(
        context,
        customer_id=customer.customer_id,
        items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
        sale_date=date(2024, 1, 10),
    ).record
    second = sales.create_sale(
        context,
        customer_id=None,
        items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
        sale_date=date(2024, 2, 10),
        status="in_progress",
    ).record

    assert [s.sale_id for s in sales.list_sales(context)] == [second.sale_id, first.sale_id]
    assert [s.sale_id for s in sales.list_sales(context, search="carla")] == [first.sale_id]
    assert [s.sale_id for s in sales.list_sales(context, search="BLUE")] == [second.sale_id, first.sale_id]
    assert [s.sale_id for s in sales.list_sales(context, status="in_progress")] == [second.sale_id]


def test_list_customer_sales_newest_first(context, make_product):
    product = make_product(quantity="50")
    customer = customers.add_customer(context, "Ana")
    created = [
        sales.create_sale(
            context,
            customer_id=customer.customer_id,
            items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
            timestamp=FIXED_MOMENT.replace(day=day),
        ).record
        for day in (1, 3, 2)
    ]

    history = sales.list_customer_sales(context, customer.customer_id, limit=2)

    assert [s.sale_id for s in history] == [created[1].sale_id, created[2].sale_id]


def test_update_sale_date_is_coerced_and_validated(context, make_product):
    product = make_product(quantity="10")
    first = sales.create_sale(
        context,
        customer_id=None,
        items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
        sale_date=date(2024, 5, 10),
    ).record
    sales.create_sale(
        context,
        customer_id=None,
        items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
        sale_date=date(2024, 5, 12),
    )

    updated = sales.update_sale(context, first.sale_id, sale_date="2024-05-20")

    assert updated.sale_date == date(2024, 5, 20)
    assert [s.sale_date for s in sales.list_sales(context)] == [date(2024, 5, 20), date(2024, 5, 12)]
    with pytest.raises(ValueError):
        sales.update_sale(context, first.sale_id, sale_date="next tuesday")
    with pytest.raises(ValueError):
        sales.update_sale(context, first.sale_id, sale_date=None)
    assert sales.get_sale(context, first.sale_id).sale_date == date(2024, 5, 20)
