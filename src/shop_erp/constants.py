"""Enumerations shared across Shop ERP modules.

Centralises domain constants so that the document store, the data access
layer (DAL), the business logic layer (BLL), and the CLI rely on a single
source of truth for collection names and status identifiers.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating data files.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_CATEGORY = "Geral"
DEFAULT_UNIT = "un"
DEFAULT_CATEGORY_COLOR = "#3B82F6"
DEFAULT_CACHE_TTL_SECONDS = 120
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 0.8
CUSTOMER_HISTORY_LIMIT = 10
TOP_RANKING_LIMIT = 10


class Collection(str, Enum):
    """Enumerate the document store collections managed by the application."""

    CUSTOMERS = "customers"
    PRODUCTS = "products"
    CATEGORIES = "categories"
    SALES = "sales"
    PURCHASES = "purchases"
    STOCK_MOVEMENTS = "stock_movements"
    RECEIVABLES = "receivables"
    PAYABLES = "payables"
    CASH_FLOW_ENTRIES = "cash_flow_entries"


class SaleStatus(str, Enum):
    """Enumerate the lifecycle states of a sale."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms."""

    CASH = "cash"
    PIX = "pix"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    TRANSFER = "transfer"
    ON_CREDIT = "on_credit"


class MovementType(str, Enum):
    """Enumerate the kinds of stock movement recorded in the audit trail."""

    ENTRY = "entry"
    EXIT = "exit"
    ADJUSTMENT = "adjustment"


class AccountStatus(str, Enum):
    """Enumerate the settlement states of receivables and payables."""

    PENDING = "pending"
    PARTIAL = "partial"
    RECEIVED = "received"
    PAID = "paid"


class CashFlowType(str, Enum):
    """Enumerate the direction of a cash-flow entry."""

    INFLOW = "inflow"
    OUTFLOW = "outflow"


class ProductMatchMode(str, Enum):
    """How purchase line items are linked to product records."""

    NAME = "name"
    ID = "id"


class SummaryPeriod(str, Enum):
    """Enumerate the windows supported by the financial summary."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_CATEGORY",
    "DEFAULT_UNIT",
    "DEFAULT_CATEGORY_COLOR",
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_RETRY_ATTEMPTS",
    "DEFAULT_RETRY_DELAY_SECONDS",
    "CUSTOMER_HISTORY_LIMIT",
    "TOP_RANKING_LIMIT",
    "Collection",
    "SaleStatus",
    "PaymentMethod",
    "MovementType",
    "AccountStatus",
    "CashFlowType",
    "ProductMatchMode",
    "SummaryPeriod",
]
