"""Tests for receivables, payables, and the cash-flow ledger."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from shop_erp import core_logic, customers, finance
from shop_erp.constants import AccountStatus
from shop_erp.core_logic import BusinessRuleViolation, MissingReferenceError
from shop_erp.document_store import StoreUnavailableError


NOW = datetime(2024, 5, 17, 14, 30, tzinfo=UTC)


def test_receivable_partial_then_full_payment(context):
    receivable = finance.add_receivable(context, "Invoice 10", Decimal("100.00"), date(2024, 6, 1))
    assert receivable.status == AccountStatus.PENDING.value

    partial = finance.receive_receivable(context, receivable.receivable_id, Decimal("40.00"), payment_method="pix")
    assert partial.status == AccountStatus.PARTIAL.value
    assert partial.amount_received == Decimal("40.00")

    full = finance.receive_receivable(context, receivable.receivable_id, Decimal("60.00"))
    assert full.status == AccountStatus.RECEIVED.value
    assert full.amount_received == Decimal("100.00")
    assert full.payment_method == "pix"

    entries = finance.list_cash_flow(context, flow_type="inflow")
    assert sorted(e.amount for e in entries) == [Decimal("40.00"), Decimal("60.00")]
    assert all(e.category == finance.RECEIPT_CATEGORY for e in entries)
    assert all(e.description == "Receipt - Invoice 10" for e in entries)
    assert all(e.receivable_id == receivable.receivable_id for e in entries)

    with pytest.raises(BusinessRuleViolation):
        finance.receive_receivable(context, receivable.receivable_id, Decimal("1.00"))


def test_receive_receivable_failures_write_nothing(context, store):
    receivable = finance.add_receivable(context, "Invoice 11", Decimal("10.00"), date(2024, 6, 1))
    before = store.snapshot()

    with pytest.raises(MissingReferenceError):
        finance.receive_receivable(context, "ghost", Decimal("1.00"))
    with pytest.raises(ValueError):
        finance.receive_receivable(context, receivable.receivable_id, Decimal("0"))
    with pytest.raises(BusinessRuleViolation):
        finance.receive_receivable(context, receivable.receivable_id, Decimal("1.00"), payment_method="barter")

    assert store.snapshot() == before


def test_pay_payable_writes_outflow_in_payable_category(context):
    payable = finance.add_payable(
        context,
        "Rent",
        Decimal("1500.00"),
        date(2024, 5, 10),
        supplier="Landlord",
        category="rent",
    )

    result = core_logic.run_command(
        context,
        core_logic.PayBillCommand(payable_id=payable.payable_id, amount=Decimal("1500.00"), payment_method="transfer"),
    )

    assert result.ok
    assert result.value.status == AccountStatus.PAID.value
    (entry,) = finance.list_cash_flow(context)
    assert entry.flow_type == "outflow"
    assert entry.category == "rent"
    assert entry.description == "Payment - Rent"
    assert entry.payable_id == payable.payable_id


def test_add_payable_defaults_to_expense_category(context):
    payable = finance.add_payable(context, "Supplies", Decimal("20"), date(2024, 5, 30), category="")

    assert payable.category == finance.EXPENSE_CATEGORY


def test_add_receivable_validation(context):
    with pytest.raises(ValueError):
        finance.add_receivable(context, " ", Decimal("1"), date(2024, 1, 1))
    with pytest.raises(ValueError):
        finance.add_receivable(context, "Invoice", Decimal("-5"), date(2024, 1, 1))


def test_list_receivables_filters(context):
    ana = customers.add_customer(context, "Ana")
    bia = customers.add_customer(context, "Bia")
    finance.add_receivable(context, "March", Decimal("10"), date(2024, 3, 1), customer_id=ana.customer_id)
    april = finance.add_receivable(context, "April", Decimal("10"), date(2024, 4, 1), customer_id=bia.customer_id)
    finance.receive_receivable(context, april.receivable_id, Decimal("10"))

    assert [r.description for r in finance.list_receivables(context)] == ["March", "April"]
    assert [r.description for r in finance.list_receivables(context, status="received")] == ["April"]
    assert [r.description for r in finance.list_receivables(context, customer_id=ana.customer_id)] == ["March"]
    assert [r.description for r in finance.list_receivables(context, due_from=date(2024, 3, 15))] == ["April"]
    with pytest.raises(BusinessRuleViolation):
        finance.list_receivables(context, status="lost")


def test_cash_flow_entry_validation(context):
    with pytest.raises(BusinessRuleViolation):
        finance.add_cash_flow_entry(context, "sideways", Decimal("1"))
    with pytest.raises(ValueError):
        finance.add_cash_flow_entry(context, "inflow", Decimal("0"))


def test_list_cash_flow_newest_first_with_search(context):
    finance.add_cash_flow_entry(context, "inflow", Decimal("5"), description="Tips", timestamp=NOW - timedelta(days=1))
    finance.add_cash_flow_entry(context, "outflow", Decimal("2"), description="Coffee beans", timestamp=NOW)

    assert [e.description for e in finance.list_cash_flow(context)] == ["Coffee beans", "Tips"]
    assert [e.description for e in finance.list_cash_flow(context, search="BEANS")] == ["Coffee beans"]
    assert [e.description for e in finance.list_cash_flow(context, start=NOW - timedelta(hours=1))] == ["Coffee beans"]


@pytest.mark.parametrize(
    ("period", "expected"),
    [
        ("day", datetime(2024, 5, 17, tzinfo=UTC)),
        ("week", datetime(2024, 5, 10, 14, 30, tzinfo=UTC)),
        ("month", datetime(2024, 5, 1, tzinfo=UTC)),
        ("year", datetime(2024, 1, 1, tzinfo=UTC)),
    ],
)
def test_period_start(period, expected):
    assert finance.period_start(period, NOW) == expected


def test_period_start_rejects_unknown_period():
    with pytest.raises(BusinessRuleViolation):
        finance.period_start("decade", NOW)


def test_financial_summary_counts_only_the_period(context):
    finance.add_cash_flow_entry(context, "inflow", Decimal("100"), timestamp=NOW.replace(day=2))
    finance.add_cash_flow_entry(context, "outflow", Decimal("30"), timestamp=NOW.replace(day=16))
    finance.add_cash_flow_entry(context, "inflow", Decimal("999"), timestamp=NOW.replace(month=4))

    summary = finance.financial_summary(context, "month", now=NOW)

    assert summary == {
        "inflows": Decimal("100"),
        "outflows": Decimal("30"),
        "balance": Decimal("70"),
        "entry_count": 2,
    }


def test_financial_summary_of_empty_ledger(context):
    summary = finance.financial_summary(context, "day", now=NOW)

    assert summary["balance"] == Decimal("0")
    assert summary["entry_count"] == 0


def test_overdue_accounts(context):
    late = finance.add_receivable(context, "Late", Decimal("10"), date(2024, 5, 1))
    finance.add_receivable(context, "Future", Decimal("10"), date(2024, 6, 1))
    settled = finance.add_receivable(context, "Settled", Decimal("10"), date(2024, 4, 1))
    finance.receive_receivable(context, settled.receivable_id, Decimal("10"))
    bill = finance.add_payable(context, "Power", Decimal("80"), date(2024, 5, 16))
    finance.pay_payable(context, bill.payable_id, Decimal("20"))

    overdue = finance.overdue_accounts(context, today=date(2024, 5, 17))

    assert [r.receivable_id for r in overdue["receivables"]] == [late.receivable_id]
    assert [p.payable_id for p in overdue["payables"]] == [bill.payable_id]
    assert overdue["payables"][0].status == AccountStatus.PARTIAL.value


def test_listing_offline_reports_error(context, store, monkeypatch):
    monkeypatch.setattr(store, "query", Mock(side_effect=StoreUnavailableError("offline")))

    result = finance.list_payables(context)

    assert result.error == "offline"
    assert list(result) == []


def test_add_receivable_unknown_customer(context):
    with pytest.raises(MissingReferenceError):
        finance.add_receivable(context, "Invoice", Decimal("5"), date(2024, 1, 1), customer_id="ghost")


def test_financial_summary_reads_naive_now_as_utc(context):
    finance.add_cash_flow_entry(context, "inflow", Decimal("10"), timestamp=datetime(2024, 5, 17, 12, tzinfo=UTC))

    summary = finance.financial_summary(context, "month", now=datetime(2024, 5, 20))

    assert summary["inflows"] == Decimal("10")
    assert summary["entry_count"] == 1
    assert [e.amount for e in finance.list_cash_flow(context, start=datetime(2024, 5, 1))] == [Decimal("10")]


def test_due_dates_are_coerced(context):
    receivable = finance.add_receivable(context, "Invoice", Decimal("5"), "2024-07-01")

    assert receivable.due_date == date(2024, 7, 1)
    assert len(finance.list_receivables(context, due_from="2024-06-01")) == 1
    with pytest.raises(ValueError):
        finance.add_payable(context, "Rent", Decimal("5"), "soon")
