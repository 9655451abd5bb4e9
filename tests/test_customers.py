"""Tests for the customers accessor."""

from __future__ import annotations

from decimal import Decimal

import pytest

from shop_erp import customers, sales
from shop_erp.core_logic import BusinessRuleViolation, MissingReferenceError
from shop_erp.data_manager import SaleItem

from conftest import FIXED_MOMENT


def test_add_customer_trims_fields(context):
    customer = customers.add_customer(context, "  Ana  ", email=" ana@example.com ", city="Recife")

    assert customer.name == "Ana"
    assert customer.email == "ana@example.com"
    assert customers.get_customer(context, customer.customer_id) == customer


def test_add_customer_validation(context):
    with pytest.raises(ValueError):
        customers.add_customer(context, " ")
    with pytest.raises(BusinessRuleViolation):
        customers.add_customer(context, "Ana", loyalty_points="10")


def test_update_and_delete_customer(context):
    customer = customers.add_customer(context, "Ana")

    updated = customers.update_customer(context, customer.customer_id, phone="555-0101")
    assert updated.phone == "555-0101"
    assert customers.get_customer(context, customer.customer_id).phone == "555-0101"

    with pytest.raises(ValueError):
        customers.update_customer(context, customer.customer_id, name="")

    customers.delete_customer(context, customer.customer_id)
    with pytest.raises(MissingReferenceError):
        customers.get_customer(context, customer.customer_id)


def test_list_customers_sorted_by_name(context):
    for name in ("Carla", "Ana", "Bruno"):
        customers.add_customer(context, name)

    assert [c.name for c in customers.list_customers(context)] == ["Ana", "Bruno", "Carla"]


def test_customer_history_is_capped(context, make_product):
    product = make_product(quantity="100")
    customer = customers.add_customer(context, "Ana")
    for minute in range(12):
        sales.create_sale(
            context,
            customer_id=customer.customer_id,
            items=[SaleItem(product.product_id, Decimal("1"), Decimal("2"))],
            timestamp=FIXED_MOMENT.replace(minute=minute),
        )

    history = customers.customer_history(context, customer.customer_id)

    assert len(history) == 10
    assert history[0].created_at == FIXED_MOMENT.replace(minute=11)
    with pytest.raises(MissingReferenceError):
        customers.customer_history(context, "ghost")
