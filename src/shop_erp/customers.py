"""Customers accessor."""

from __future__ import annotations

from dataclasses import fields as dataclass_fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import log
from .constants import CUSTOMER_HISTORY_LIMIT, Collection
from .core_logic import (
    BusinessRuleViolation,
    ListResult,
    MissingReferenceError,
    RuntimeContext,
    cached_listing,
    invalidate_cache,
    require_text,
    resolve_timestamp,
)
from .data_manager import CustomerRecord, SaleRecord, deserialize_customer, serialize_customer
from .sales import list_customer_sales


_TEXT_FIELDS = tuple(
    f.name for f in dataclass_fields(CustomerRecord) if f.name not in ("customer_id", "created_at", "updated_at")
)


def _clean(values: Dict[str, Any]) -> Dict[str, str]:
    unknown = sorted(set(values) - set(_TEXT_FIELDS))
    if unknown:
        raise BusinessRuleViolation(f"Unknown customer fields: {', '.join(unknown)}")
    return {name: (value or "").strip() for name, value in values.items()}


def add_customer(context: RuntimeContext, name: str, *, timestamp: Optional[datetime] = None, **details: Any) -> CustomerRecord:
    """Register a customer.

    Text inputs are trimmed; ``name`` is required. Remaining keyword
    arguments map onto :class:`CustomerRecord` fields (``nickname``,
    ``phone``, ``email``...).

    Raises:
        ValueError: If ``name`` is blank.
        BusinessRuleViolation: If an unknown field is supplied.
    """
    cleaned = _clean(details)
    moment = resolve_timestamp(timestamp)
    record = CustomerRecord(
        customer_id=context.store.new_id(),
        name=require_text(name, "Customer name"),
        created_at=moment,
        updated_at=moment,
        **cleaned,
    )
    context.store.set(Collection.CUSTOMERS, record.customer_id, serialize_customer(record))
    invalidate_cache(context, Collection.CUSTOMERS.value)
    log.info("Added customer '%s' ('%s')", record.name, record.customer_id)
    return record


def update_customer(context: RuntimeContext, customer_id: str, **changes: Any) -> CustomerRecord:
    """Apply ``changes`` to a customer and bump ``updated_at``.

    Raises:
        MissingReferenceError: If the customer is unknown.
        ValueError: If ``name`` is changed to a blank value.
    """
    current = get_customer(context, customer_id)
    cleaned = _clean(changes)
    if "name" in cleaned:
        cleaned["name"] = require_text(cleaned["name"], "Customer name")
    updated = replace(current, updated_at=resolve_timestamp(None), **cleaned)
    context.store.update(
        Collection.CUSTOMERS,
        customer_id,
        {**cleaned, "updated_at": updated.updated_at},
    )
    invalidate_cache(context, Collection.CUSTOMERS.value)
    log.info("Updated customer '%s' (%s)", customer_id, ", ".join(sorted(cleaned)) or "no fields")
    return updated


def delete_customer(context: RuntimeContext, customer_id: str) -> None:
    """Delete a customer. Sales keep the stored customer name."""
    get_customer(context, customer_id)
    context.store.delete(Collection.CUSTOMERS, customer_id)
    invalidate_cache(context, Collection.CUSTOMERS.value)
    log.info("Deleted customer '%s'", customer_id)


def get_customer(context: RuntimeContext, customer_id: str) -> CustomerRecord:
    document = context.store.get(Collection.CUSTOMERS, customer_id)
    if document is None:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise MissingReferenceError(f"Unknown customer id: {customer_id}")
    return deserialize_customer(document.id, document.data)


def list_customers(context: RuntimeContext, *, search: Optional[str] = None) -> ListResult[CustomerRecord]:
    """List customers ordered by name.

    ``search`` matches name, nickname, email, phone, and tax id.
    """

    def _fetch() -> List[CustomerRecord]:
        documents = context.store.query(Collection.CUSTOMERS, order_by="name")
        return [deserialize_customer(document.id, document.data) for document in documents]

    return cached_listing(
        context,
        Collection.CUSTOMERS.value,
        _fetch,
        search=search,
        search_fields=lambda c: (c.name, c.nickname, c.email, c.phone, c.tax_id),
    )


def customer_history(context: RuntimeContext, customer_id: str, *, limit: int = CUSTOMER_HISTORY_LIMIT) -> List[SaleRecord]:
    """Return the customer's latest sales, newest first.

    Raises:
        MissingReferenceError: If the customer is unknown.
    """
    get_customer(context, customer_id)
    return list_customer_sales(context, customer_id, limit=limit)


__all__ = [
    "add_customer",
    "update_customer",
    "delete_customer",
    "get_customer",
    "list_customers",
    "customer_history",
]
