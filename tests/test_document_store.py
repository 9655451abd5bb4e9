"""Tests for the document store contract and its in-memory backend."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from shop_erp import data_manager
from shop_erp.document_store import (
    DocumentNotFoundError,
    MemoryDocumentStore,
    StoreError,
    StoreUnavailableError,
    TransactionError,
    WorkbookDocumentStore,
)


def test_add_and_get_round_trip(store):
    document = store.add("products", {"name": "Widget", "quantity": Decimal("3")})

    fetched = store.get("products", document.id)

    assert fetched is not None
    assert fetched.data == {"name": "Widget", "quantity": Decimal("3")}
    assert store.get("products", "missing") is None


def test_get_returns_a_copy(store):
    store.set("products", "p1", {"name": "Widget", "tags": ["a"]})

    fetched = store.get("products", "p1")
    fetched.data["tags"].append("b")

    assert store.get("products", "p1").data["tags"] == ["a"]


def test_query_filters_orders_and_limits(store):
    store.set("sales", "s1", {"sale_date": date(2024, 1, 3), "status": "completed"})
    store.set("sales", "s2", {"sale_date": date(2024, 1, 1), "status": "cancelled"})
    store.set("sales", "s3", {"sale_date": date(2024, 1, 2), "status": "completed"})
    store.set("sales", "s4", {"status": "completed"})

    completed = store.query("sales", [("status", "==", "completed")], order_by="sale_date", descending=True)

    assert [document.id for document in completed] == ["s1", "s3", "s4"]
    assert [d.id for d in store.query("sales", order_by="sale_date", limit=2)] == ["s2", "s3"]


def test_query_skips_documents_missing_the_filtered_field(store):
    store.set("customers", "c1", {"name": "Ana", "email": "ana@example.com"})
    store.set("customers", "c2", {"name": "Bia"})

    result = store.query("customers", [("email", "!=", "")])

    assert [document.id for document in result] == ["c1"]


def test_query_rejects_unknown_operator(store):
    store.set("customers", "c1", {"name": "Ana"})

    with pytest.raises(ValueError):
        store.query("customers", [("name", "~", "A")])


def test_update_missing_document_raises(store):
    with pytest.raises(DocumentNotFoundError):
        store.update("products", "nope", {"quantity": Decimal("1")})


def test_batch_commits_all_writes_together(store):
    store.set("products", "p1", {"name": "Widget"})
    batch = store.batch()
    batch.update("products", "p1", {"quantity": Decimal("2")})
    created = batch.create("products", {"name": "Gadget"})
    batch.commit()

    assert store.get("products", "p1").data["quantity"] == Decimal("2")
    assert store.get("products", created).data == {"name": "Gadget"}
    with pytest.raises(TransactionError):
        batch.commit()


def test_failed_batch_leaves_store_untouched(store):
    store.set("products", "p1", {"name": "Widget", "quantity": Decimal("5")})
    batch = store.batch()
    batch.update("products", "p1", {"quantity": Decimal("0")})
    batch.update("products", "ghost", {"quantity": Decimal("0")})

    with pytest.raises(DocumentNotFoundError):
        batch.commit()

    assert store.get("products", "p1").data["quantity"] == Decimal("5")


def test_transaction_commits_on_success(store):
    store.set("products", "p1", {"quantity": Decimal("5")})

    def _decrement(transaction):
        current = transaction.get("products", "p1").data["quantity"]
        transaction.update("products", "p1", {"quantity": current - 1})
        return current - 1

    assert store.run_transaction(_decrement) == Decimal("4")
    assert store.get("products", "p1").data["quantity"] == Decimal("4")


def test_transaction_discards_writes_when_callback_raises(store):
    store.set("products", "p1", {"quantity": Decimal("5")})

    def _explode(transaction):
        transaction.update("products", "p1", {"quantity": Decimal("0")})
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.run_transaction(_explode)

    assert store.get("products", "p1").data["quantity"] == Decimal("5")


def test_transaction_rejects_reads_after_writes(store):
    store.set("products", "p1", {"quantity": Decimal("5")})

    def _read_after_write(transaction):
        transaction.update("products", "p1", {"quantity": Decimal("1")})
        transaction.get("products", "p1")

    with pytest.raises(TransactionError):
        store.run_transaction(_read_after_write)
    assert store.get("products", "p1").data["quantity"] == Decimal("5")


def test_create_refuses_existing_identifier(store):
    store.set("products", "p1", {"name": "Widget"})
    batch = store.batch()
    batch.create("products", {"name": "Other"}, doc_id="p1")

    with pytest.raises(StoreError):
        batch.commit()


def test_initial_contents_and_snapshot():
    store = MemoryDocumentStore({"products": {"p1": {"name": "Widget"}}})

    snapshot = store.snapshot()
    snapshot["products"]["p1"]["name"] = "Changed"

    assert store.get("products", "p1").data["name"] == "Widget"


def test_workbook_store_persists_each_commit(workbook_factory):
    path = workbook_factory()
    store = WorkbookDocumentStore(path)
    store.set("products", "p1", {"name": "Widget", "quantity": Decimal("2.5"), "since": date(2024, 2, 29)})

    reopened = WorkbookDocumentStore(path)

    assert reopened.get("products", "p1").data == {
        "name": "Widget",
        "quantity": Decimal("2.5"),
        "since": date(2024, 2, 29),
    }


def test_workbook_store_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        WorkbookDocumentStore(tmp_path / "missing.xlsx")


def test_workbook_store_save_failure_is_reported_and_rolled_back(workbook_factory):
    store = WorkbookDocumentStore(workbook_factory())
    store.set("products", "p1", {"name": "Widget"})

    with patch.object(data_manager, "save_workbook", side_effect=PermissionError("locked")):
        with pytest.raises(StoreUnavailableError):
            store.set("products", "p1", {"name": "Renamed"})

    assert store.get("products", "p1").data["name"] == "Widget"


def test_query_reports_incomparable_values(store):
    store.set("cash_flow_entries", "e1", {"created_at": date(2024, 5, 17)})
    store.set("cash_flow_entries", "e2", {"created_at": None})

    with pytest.raises(StoreError):
        store.query("cash_flow_entries", [("created_at", ">=", "2024-05-01")])
    assert [d.id for d in store.query("cash_flow_entries", [("created_at", "==", None)])] == ["e2"]

    store.set("cash_flow_entries", "e3", {"created_at": "2024-05-18"})
    with pytest.raises(StoreError):
        store.query("cash_flow_entries", order_by="created_at")
