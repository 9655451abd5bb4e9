"""Finance accessor: receivables, payables, and the cash-flow ledger.

Settling a receivable or a payable updates the account and appends the
matching cash-flow entry in one transaction, so the ledger never records
money the accounts do not show (or the other way around).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from . import log, reports
from .constants import AccountStatus, CashFlowType, Collection, SummaryPeriod
from .core_logic import (
    BusinessRuleViolation,
    ListResult,
    MissingReferenceError,
    RuntimeContext,
    cached_listing,
    invalidate_cache,
    require_date,
    require_positive_money,
    require_text,
    resolve_date,
    resolve_timestamp,
    validate_payment_method,
)
from .data_manager import (
    CashFlowRecord,
    PayableRecord,
    ReceivableRecord,
    deserialize_cash_flow,
    deserialize_payable,
    deserialize_receivable,
    serialize_cash_flow,
    serialize_payable,
    serialize_receivable,
    to_decimal,
)
from .document_store import Transaction


RECEIPT_CATEGORY = "receipt"
EXPENSE_CATEGORY = "expense"


def _validate_status(status: Optional[str]) -> Optional[str]:
    if not status:
        return None
    try:
        return AccountStatus(status).value
    except ValueError as exc:
        log.error("Unsupported account status provided: %s", status)
        raise BusinessRuleViolation(f"Unsupported account status: {status}") from exc


def _due_filters(due_from: Optional[date], due_to: Optional[date]) -> List[tuple]:
    filters: List[tuple] = []
    if due_from is not None:
        filters.append(("due_date", ">=", require_date(due_from, "Due from")))
    if due_to is not None:
        filters.append(("due_date", "<=", require_date(due_to, "Due to")))
    return filters


# ---------------------------------------------------------------------------
# Receivables
# ---------------------------------------------------------------------------


def add_receivable(
    context: RuntimeContext,
    description: str,
    amount: Decimal,
    due_date: date,
    *,
    customer_id: Optional[str] = None,
    payment_method: Optional[str] = None,
    notes: str = "",
    timestamp: Optional[datetime] = None,
) -> ReceivableRecord:
    """Register money a customer owes.

    Raises:
        ValueError: If the description is blank or the amount is not positive.
        MissingReferenceError: If ``customer_id`` is unknown.
    """
    amount = to_decimal(amount)
    require_positive_money(amount)
    if customer_id and context.store.get(Collection.CUSTOMERS, customer_id) is None:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise MissingReferenceError(f"Unknown customer id: {customer_id}")
    moment = resolve_timestamp(timestamp)
    record = ReceivableRecord(
        receivable_id=context.store.new_id(),
        description=require_text(description, "Description"),
        amount=amount,
        due_date=require_date(due_date, "Due date"),
        customer_id=customer_id or None,
        payment_method=validate_payment_method(payment_method),
        notes=(notes or "").strip(),
        created_at=moment,
        updated_at=moment,
    )
    context.store.set(Collection.RECEIVABLES, record.receivable_id, serialize_receivable(record))
    invalidate_cache(context, Collection.RECEIVABLES.value)
    log.info("Added receivable '%s' (amount=%s, due=%s)", record.receivable_id, amount, record.due_date)
    return record


def list_receivables(
    context: RuntimeContext,
    *,
    status: Optional[str] = None,
    customer_id: Optional[str] = None,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
    search: Optional[str] = None,
) -> ListResult[ReceivableRecord]:
    """List receivables ordered by due date, earliest first."""
    status_value = _validate_status(status)

    def _fetch() -> List[ReceivableRecord]:
        filters = _due_filters(due_from, due_to)
        if status_value:
            filters.append(("status", "==", status_value))
        if customer_id:
            filters.append(("customer_id", "==", customer_id))
        documents = context.store.query(Collection.RECEIVABLES, filters, order_by="due_date")
        return [deserialize_receivable(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.RECEIVABLES.value,
        _fetch,
        search=search,
        search_fields=lambda r: (r.description, r.notes),
        key=(status_value, customer_id, due_from, due_to),
    )


def receive_receivable(
    context: RuntimeContext,
    receivable_id: str,
    amount: Decimal,
    *,
    payment_method: Optional[str] = None,
    received_date: Optional[date] = None,
    timestamp: Optional[datetime] = None,
) -> ReceivableRecord:
    """Record a payment received against a receivable.

    Payments accumulate in ``amount_received``. The receivable becomes
    ``received`` once the accumulated amount reaches the total, ``partial``
    before that. An ``inflow`` cash-flow entry for ``amount`` is written in
    the same transaction.

    Raises:
        MissingReferenceError: If the receivable is unknown.
        BusinessRuleViolation: If it is already fully received.
        ValueError: If ``amount`` is not positive.
    """
    amount = to_decimal(amount)
    require_positive_money(amount)
    method = validate_payment_method(payment_method)
    moment = resolve_timestamp(timestamp)
    when = resolve_date(received_date)

    def _apply(transaction: Transaction) -> ReceivableRecord:
        document = transaction.get(Collection.RECEIVABLES, receivable_id)
        if document is None:
            log.warning("Receivable lookup failed for id '%s'", receivable_id)
            raise MissingReferenceError(f"Unknown receivable id: {receivable_id}")
        current = deserialize_receivable(document.id, document.data)
        if current.status == AccountStatus.RECEIVED.value:
            raise BusinessRuleViolation(f"Receivable '{receivable_id}' is already received")

        received = current.amount_received + amount
        status = AccountStatus.RECEIVED if received >= current.amount else AccountStatus.PARTIAL
        fields: Dict[str, Any] = {
            "amount_received": received,
            "received_date": when,
            "payment_method": method or current.payment_method,
            "status": status.value,
            "updated_at": moment,
        }
        entry = CashFlowRecord(
            entry_id=context.store.new_id(),
            flow_type=CashFlowType.INFLOW.value,
            amount=amount,
            description=f"Receipt - {current.description or 'Receivable'}",
            category=RECEIPT_CATEGORY,
            receivable_id=receivable_id,
            created_at=moment,
        )
        transaction.update(Collection.RECEIVABLES, receivable_id, fields)
        transaction.create(Collection.CASH_FLOW_ENTRIES, serialize_cash_flow(entry), doc_id=entry.entry_id)
        return replace(current, **fields)

    try:
        updated = context.store.run_transaction(_apply)
    finally:
        invalidate_cache(context, Collection.RECEIVABLES.value, Collection.CASH_FLOW_ENTRIES.value)
    log.info("Received %s on receivable '%s' (status=%s)", amount, receivable_id, updated.status)
    return updated


# ---------------------------------------------------------------------------
# Payables
# ---------------------------------------------------------------------------


def add_payable(
    context: RuntimeContext,
    description: str,
    amount: Decimal,
    due_date: date,
    *,
    supplier: str = "",
    category: str = EXPENSE_CATEGORY,
    payment_method: Optional[str] = None,
    notes: str = "",
    timestamp: Optional[datetime] = None,
) -> PayableRecord:
    """Register a bill the business has to pay.

    Raises:
        ValueError: If the description is blank or the amount is not positive.
    """
    amount = to_decimal(amount)
    require_positive_money(amount)
    moment = resolve_timestamp(timestamp)
    record = PayableRecord(
        payable_id=context.store.new_id(),
        description=require_text(description, "Description"),
        amount=amount,
        due_date=require_date(due_date, "Due date"),
        supplier=(supplier or "").strip(),
        category=(category or "").strip() or EXPENSE_CATEGORY,
        payment_method=validate_payment_method(payment_method),
        notes=(notes or "").strip(),
        created_at=moment,
        updated_at=moment,
    )
    context.store.set(Collection.PAYABLES, record.payable_id, serialize_payable(record))
    invalidate_cache(context, Collection.PAYABLES.value)
    log.info("Added payable '%s' (amount=%s, due=%s)", record.payable_id, amount, record.due_date)
    return record


def list_payables(
    context: RuntimeContext,
    *,
    status: Optional[str] = None,
    supplier: Optional[str] = None,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
    search: Optional[str] = None,
) -> ListResult[PayableRecord]:
    """List payables ordered by due date, earliest first."""
    status_value = _validate_status(status)

    def _fetch() -> List[PayableRecord]:
        filters = _due_filters(due_from, due_to)
        if status_value:
            filters.append(("status", "==", status_value))
        if supplier:
            filters.append(("supplier", "==", supplier))
        documents = context.store.query(Collection.PAYABLES, filters, order_by="due_date")
        return [deserialize_payable(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.PAYABLES.value,
        _fetch,
        search=search,
        search_fields=lambda p: (p.description, p.supplier, p.category),
        key=(status_value, supplier, due_from, due_to),
    )


def pay_payable(
    context: RuntimeContext,
    payable_id: str,
    amount: Decimal,
    *,
    payment_method: Optional[str] = None,
    paid_date: Optional[date] = None,
    timestamp: Optional[datetime] = None,
) -> PayableRecord:
    """Record a payment made against a payable.

    Mirrors :func:`receive_receivable`: payments accumulate in
    ``amount_paid``, the status becomes ``paid`` or ``partial``, and an
    ``outflow`` entry in the payable's category is written atomically.

    Raises:
        MissingReferenceError: If the payable is unknown.
        BusinessRuleViolation: If it is already paid.
        ValueError: If ``amount`` is not positive.
    """
    amount = to_decimal(amount)
    require_positive_money(amount)
    method = validate_payment_method(payment_method)
    moment = resolve_timestamp(timestamp)
    when = resolve_date(paid_date)

    def _apply(transaction: Transaction) -> PayableRecord:
        document = transaction.get(Collection.PAYABLES, payable_id)
        if document is None:
            log.warning("Payable lookup failed for id '%s'", payable_id)
            raise MissingReferenceError(f"Unknown payable id: {payable_id}")
        current = deserialize_payable(document.id, document.data)
        if current.status == AccountStatus.PAID.value:
            raise BusinessRuleViolation(f"Payable '{payable_id}' is already paid")

        paid = current.amount_paid + amount
        status = AccountStatus.PAID if paid >= current.amount else AccountStatus.PARTIAL
        fields: Dict[str, Any] = {
            "amount_paid": paid,
            "paid_date": when,
            "payment_method": method or current.payment_method,
            "status": status.value,
            "updated_at": moment,
        }
        entry = CashFlowRecord(
            entry_id=context.store.new_id(),
            flow_type=CashFlowType.OUTFLOW.value,
            amount=amount,
            description=f"Payment - {current.description or 'Payable'}",
            category=current.category or EXPENSE_CATEGORY,
            payable_id=payable_id,
            created_at=moment,
        )
        transaction.update(Collection.PAYABLES, payable_id, fields)
        transaction.create(Collection.CASH_FLOW_ENTRIES, serialize_cash_flow(entry), doc_id=entry.entry_id)
        return replace(current, **fields)

    try:
        updated = context.store.run_transaction(_apply)
    finally:
        invalidate_cache(context, Collection.PAYABLES.value, Collection.CASH_FLOW_ENTRIES.value)
    log.info("Paid %s on payable '%s' (status=%s)", amount, payable_id, updated.status)
    return updated


# ---------------------------------------------------------------------------
# Cash flow
# ---------------------------------------------------------------------------


def add_cash_flow_entry(
    context: RuntimeContext,
    flow_type: str,
    amount: Decimal,
    *,
    description: str = "",
    category: str = "other",
    timestamp: Optional[datetime] = None,
) -> CashFlowRecord:
    """Append a manual entry to the cash-flow ledger.

    Raises:
        BusinessRuleViolation: If ``flow_type`` is not inflow or outflow.
        ValueError: If ``amount`` is not positive.
    """
    try:
        kind = CashFlowType(flow_type)
    except ValueError as exc:
        log.error("Unsupported cash-flow type provided: %s", flow_type)
        raise BusinessRuleViolation(f"Unsupported cash-flow type: {flow_type}") from exc
    amount = to_decimal(amount)
    require_positive_money(amount)
    record = CashFlowRecord(
        entry_id=context.store.new_id(),
        flow_type=kind.value,
        amount=amount,
        description=(description or "").strip(),
        category=(category or "").strip() or "other",
        created_at=resolve_timestamp(timestamp),
    )
    context.store.set(Collection.CASH_FLOW_ENTRIES, record.entry_id, serialize_cash_flow(record))
    invalidate_cache(context, Collection.CASH_FLOW_ENTRIES.value)
    log.info("Added %s cash-flow entry '%s' (amount=%s)", record.flow_type, record.entry_id, amount)
    return record


def list_cash_flow(
    context: RuntimeContext,
    *,
    flow_type: Optional[str] = None,
    category: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    search: Optional[str] = None,
) -> ListResult[CashFlowRecord]:
    """List cash-flow entries, newest first.

    ``start`` and ``end`` bound ``created_at`` inclusively. Naive bounds are
    read as UTC.
    """
    start = resolve_timestamp(start) if start is not None else None
    end = resolve_timestamp(end) if end is not None else None

    def _fetch() -> List[CashFlowRecord]:
        filters: List[tuple] = []
        if flow_type:
            filters.append(("flow_type", "==", flow_type))
        if category:
            filters.append(("category", "==", category))
        if start is not None:
            filters.append(("created_at", ">=", start))
        if end is not None:
            filters.append(("created_at", "<=", end))
        documents = context.store.query(
            Collection.CASH_FLOW_ENTRIES,
            filters,
            order_by="created_at",
            descending=True,
        )
        return [deserialize_cash_flow(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.CASH_FLOW_ENTRIES.value,
        _fetch,
        search=search,
        search_fields=lambda e: (e.description, e.category),
        key=(flow_type, category, start, end),
    )


def period_start(period: str, now: datetime) -> datetime:
    """Return the first moment of the summary window ending at ``now``.

    ``day``, ``month``, and ``year`` start at midnight of the current
    calendar unit; ``week`` is the seven days before ``now``.
    """
    try:
        window = SummaryPeriod(period)
    except ValueError as exc:
        raise BusinessRuleViolation(f"Unsupported summary period: {period}") from exc
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if window is SummaryPeriod.DAY:
        return midnight
    if window is SummaryPeriod.WEEK:
        return now - timedelta(days=7)
    if window is SummaryPeriod.MONTH:
        return midnight.replace(day=1)
    return midnight.replace(month=1, day=1)


def financial_summary(
    context: RuntimeContext,
    period: str = SummaryPeriod.MONTH.value,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Summarize cash-flow entries created since the start of ``period``.

    Returns:
        dict[str, Any]: ``inflows``, ``outflows``, ``balance`` (Decimal) and
            ``entry_count`` (int).
    """
    moment = resolve_timestamp(now)
    start = period_start(period, moment)
    documents = context.store.query(Collection.CASH_FLOW_ENTRIES, [("created_at", ">=", start)])
    entries = [deserialize_cash_flow(document.id, document.data) for document in documents]
    totals = reports.cash_flow_totals(entries)
    log.debug("Financial summary for %s since %s: %s", period, start.isoformat(), totals)
    return {**totals, "entry_count": len(entries)}


def overdue_accounts(context: RuntimeContext, *, today: Optional[date] = None) -> Dict[str, List[Any]]:
    """Return receivables and payables due before ``today`` and not settled.

    Returns:
        dict[str, list]: ``receivables`` and ``payables``, each ordered by due
            date.
    """
    reference = resolve_date(today)
    receivables = [
        deserialize_receivable(document.id, document.data)
        for document in context.store.query(
            Collection.RECEIVABLES,
            [("due_date", "<", reference), ("status", "!=", AccountStatus.RECEIVED.value)],
            order_by="due_date",
        )
    ]
    payables = [
        deserialize_payable(document.id, document.data)
        for document in context.store.query(
            Collection.PAYABLES,
            [("due_date", "<", reference), ("status", "!=", AccountStatus.PAID.value)],
            order_by="due_date",
        )
    ]
    if receivables or payables:
        log.warning(
            "%d receivable(s) and %d payable(s) are overdue as of %s",
            len(receivables),
            len(payables),
            reference,
        )
    return {"receivables": receivables, "payables": payables}


__all__ = [
    "add_receivable",
    "list_receivables",
    "receive_receivable",
    "add_payable",
    "list_payables",
    "pay_payable",
    "add_cash_flow_entry",
    "list_cash_flow",
    "period_start",
    "financial_summary",
    "overdue_accounts",
]
