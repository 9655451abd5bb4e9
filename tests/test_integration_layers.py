"""Integration tests describing the end-to-end Shop ERP workflows.

These scenarios run the business logic layer against a workbook-backed store
and reload the data file between steps, mirroring how the CLI uses it.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from shop_erp import core_logic, customers, data_manager, finance, inventory, purchases, reports, sales
from shop_erp.constants import Collection
from shop_erp.data_manager import PurchaseItem, SaleItem
from shop_erp.document_store import MemoryDocumentStore, StoreUnavailableError

from conftest import FIXED_MOMENT, FakeClock


def _reload(config_file) -> core_logic.RuntimeContext:
    """Open a fresh context on the same files to prove the data hit disk."""

    return core_logic.load_runtime_context(config_file)


def test_purchase_sale_and_report_cycle(runtime_context, config_file):
    """Stock arrives through a purchase, leaves through a sale, and shows up in reports."""

    context = runtime_context
    purchase = purchases.create_purchase(
        context,
        supplier="Acme",
        items=[PurchaseItem("Notebook", Decimal("20"), Decimal("3.10"), sale_price=Decimal("7.90"))],
        purchase_date=date(2024, 5, 2),
        timestamp=FIXED_MOMENT,
    ).record
    customer = customers.add_customer(context, "Ana")

    context = _reload(config_file)
    (notebook,) = inventory.list_products(context)
    assert notebook.quantity == Decimal("20")
    assert notebook.sale_price == Decimal("7.90")

    sales.create_sale(
        context,
        customer_id=customer.customer_id,
        items=[SaleItem(notebook.product_id, Decimal("3"), Decimal("7.90"))],
        payment_method="credit_card",
        sale_date=date(2024, 5, 17),
        timestamp=FIXED_MOMENT,
    )

    context = _reload(config_file)
    assert inventory.get_product(context, notebook.product_id).quantity == Decimal("17")
    movements = inventory.list_stock_movements(context, product_id=notebook.product_id)
    assert sorted(m.movement_type for m in movements) == ["entry", "exit"]

    all_sales = list(sales.list_sales(context))
    ranking = reports.top_products(all_sales)
    assert ranking[0]["product_name"] == "Notebook"
    assert ranking[0]["revenue"] == Decimal("23.70")
    assert reports.top_customers(all_sales)[0]["customer_name"] == "Ana"

    stored = purchases.get_purchase(context, purchase.purchase_id)
    assert stored.items[0].product_id == notebook.product_id
    assert stored.created_at == FIXED_MOMENT


def test_workbook_preserves_exact_money_and_dates(runtime_context, config_file):
    context = runtime_context
    receivable = finance.add_receivable(
        context,
        "Installment 1/3",
        Decimal("33.33"),
        date(2024, 6, 30),
        timestamp=FIXED_MOMENT,
    )

    reloaded = _reload(config_file)
    (stored,) = finance.list_receivables(reloaded)

    assert stored == receivable
    assert isinstance(stored.amount, Decimal)
    assert stored.created_at.tzinfo is not None


def test_concurrent_sales_do_not_lose_updates(settings):
    store = MemoryDocumentStore()
    context = core_logic.RuntimeContext(settings=settings, store=store)
    product = inventory.add_product(context, "Widget", quantity=Decimal("100"))
    errors = []

    def _sell():
        try:
            for _ in range(5):
                sales.create_sale(
                    context,
                    customer_id=None,
                    items=[SaleItem(product.product_id, Decimal("1"), Decimal("1"))],
                )
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_sell) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert inventory.get_product(context, product.product_id).quantity == Decimal("60")
    assert len(store.query(Collection.STOCK_MOVEMENTS)) == 40


def test_failed_save_persists_nothing(runtime_context, config_file):
    context = runtime_context
    product = inventory.add_product(context, "Widget", quantity=Decimal("5"))

    with patch.object(data_manager, "save_workbook", side_effect=OSError("disk full")):
        result = core_logic.run_command(
            context,
            core_logic.CreateSaleCommand(
                customer_id=None,
                items=(SaleItem(product.product_id, Decimal("2"), Decimal("1")),),
            ),
        )

    assert result.ok is False
    assert isinstance(result.exception, StoreUnavailableError)
    for view in (context, _reload(config_file)):
        assert inventory.get_product(view, product.product_id).quantity == Decimal("5")
        assert len(sales.list_sales(view)) == 0
        assert len(inventory.list_stock_movements(view)) == 0


def test_offline_listing_serves_last_known_records(runtime_context):
    clock = FakeClock()
    context = replace(runtime_context, clock=clock, sleep=lambda _: None)
    inventory.add_product(context, "Widget")
    assert len(inventory.list_products(context)) == 1
    clock.advance(context.settings.cache_ttl_seconds + 1)

    with patch.object(context.store, "query", side_effect=StoreUnavailableError("offline")):
        result = inventory.list_products(context)

    assert result.stale is True
    assert result.error == "offline"
    assert [p.name for p in result] == ["Widget"]
