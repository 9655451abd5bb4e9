"""Data access layer for Shop ERP.

This module provides the low-level helpers shared by every document store
backend and by the business logic layer. Business rules belong elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: creating, opening, and persisting the Excel file that
   backs :class:`~shop_erp.document_store.WorkbookDocumentStore`.
3. Document encoding: turning loosely typed documents into JSON cell text and
   back without losing :class:`~decimal.Decimal` or date precision.
4. Record mapping: typed dataclasses for every entity together with the
   ``serialize_*``/``deserialize_*`` pairs that convert them to and from
   store documents.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_CATEGORY,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_UNIT,
    AccountStatus,
    Collection,
    ProductMatchMode,
    SaleStatus,
)


CONFIG_FILE_NAME = "config.ini"
DOCUMENT_ID_HEADER = "DocumentID"
DOCUMENT_BODY_HEADER = "Document"
DOCUMENT_SHEET_HEADERS = (DOCUMENT_ID_HEADER, DOCUMENT_BODY_HEADER)

_DECIMAL_TAG = "$decimal"
_DATE_TAG = "$date"
_DATETIME_TAG = "$datetime"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    product_match: ProductMatchMode = ProductMatchMode.NAME
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductRecord:
    """In-memory view of a document from the ``products`` collection."""

    product_id: str
    name: str
    category: str = DEFAULT_CATEGORY
    unit: str = DEFAULT_UNIT
    quantity: Decimal = Decimal("0")
    minimum_stock: Decimal = Decimal("0")
    purchase_price: Decimal = Decimal("0.00")
    sale_price: Decimal = Decimal("0.00")
    supplier: Optional[str] = None
    code: str = ""
    description: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CategoryRecord:
    """In-memory view of a document from the ``categories`` collection."""

    category_id: str
    name: str
    description: str = ""
    color: str = DEFAULT_CATEGORY_COLOR
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CustomerRecord:
    """In-memory view of a document from the ``customers`` collection."""

    customer_id: str
    name: str
    nickname: str = ""
    phone: str = ""
    tax_id: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SaleItem:
    """One line of a sale, referencing a product by identifier."""

    product_id: str
    quantity: Decimal
    unit_price: Decimal
    product_name: Optional[str] = None


@dataclass(frozen=True)
class SaleRecord:
    """In-memory view of a document from the ``sales`` collection."""

    sale_id: str
    code: str
    customer_id: Optional[str]
    sale_date: date
    items: Tuple[SaleItem, ...]
    total: Decimal
    status: str = SaleStatus.COMPLETED.value
    customer_name: Optional[str] = None
    payment_method: Optional[str] = None
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseItem:
    """One line of a purchase, referencing a product by name (or id)."""

    product_name: str
    quantity: Decimal
    purchase_price: Decimal
    sale_price: Optional[Decimal] = None
    category: Optional[str] = None
    product_id: Optional[str] = None


@dataclass(frozen=True)
class PurchaseRecord:
    """In-memory view of a document from the ``purchases`` collection."""

    purchase_id: str
    code: str
    supplier: str
    purchase_date: date
    items: Tuple[PurchaseItem, ...]
    total: Decimal
    payment_method: Optional[str] = None
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class StockMovementRecord:
    """Append-only audit entry from the ``stock_movements`` collection."""

    movement_id: str
    product_id: str
    movement_type: str
    quantity: Decimal
    reason: str
    product_name: Optional[str] = None
    previous_quantity: Optional[Decimal] = None
    new_quantity: Optional[Decimal] = None
    sale_id: Optional[str] = None
    purchase_id: Optional[str] = None
    reference_code: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReceivableRecord:
    """In-memory view of a document from the ``receivables`` collection."""

    receivable_id: str
    description: str
    amount: Decimal
    due_date: date
    customer_id: Optional[str] = None
    amount_received: Decimal = Decimal("0.00")
    received_date: Optional[date] = None
    payment_method: Optional[str] = None
    status: str = AccountStatus.PENDING.value
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class PayableRecord:
    """In-memory view of a document from the ``payables`` collection."""

    payable_id: str
    description: str
    amount: Decimal
    due_date: date
    supplier: str = ""
    category: str = "other"
    amount_paid: Decimal = Decimal("0.00")
    paid_date: Optional[date] = None
    payment_method: Optional[str] = None
    status: str = AccountStatus.PENDING.value
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CashFlowRecord:
    """In-memory view of a document from the ``cash_flow_entries`` collection."""

    entry_id: str
    flow_type: str
    amount: Decimal
    description: str = ""
    category: str = "other"
    receivable_id: Optional[str] = None
    payable_id: Optional[str] = None
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the application behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the
    current working directory toward the filesystem root looking for a file
    named ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. ``[Stock]``, ``[Cache]`` and
    ``[Network]`` are optional and fall back to the package defaults. Relative
    ``DataFile`` entries are anchored to ``base_path`` (or the current working
    directory) and resolved to an absolute path.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative ``DataFile``
            entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required options is missing.
        ValueError: If an optional option holds an unusable value.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    match_raw = parser.get("Stock", "PurchaseProductMatch", fallback=ProductMatchMode.NAME.value)
    try:
        product_match = ProductMatchMode(match_raw.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported PurchaseProductMatch value: {match_raw}") from exc

    cache_ttl = parser.getfloat("Cache", "ListTTLSeconds", fallback=float(DEFAULT_CACHE_TTL_SECONDS))
    retry_attempts = parser.getint("Network", "RetryAttempts", fallback=DEFAULT_RETRY_ATTEMPTS)
    retry_delay = parser.getfloat("Network", "RetryDelaySeconds", fallback=DEFAULT_RETRY_DELAY_SECONDS)
    if retry_attempts < 1:
        raise ValueError("RetryAttempts must be at least 1")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        product_match=product_match,
        cache_ttl_seconds=cache_ttl,
        retry_attempts=retry_attempts,
        retry_delay_seconds=retry_delay,
    )


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def create_workbook(destination: Path, *, overwrite: bool = False) -> Path:
    """Create an empty data workbook with one sheet per collection.

    Args:
        destination (Path): Where the workbook should be written.
        overwrite (bool): Replace an existing file instead of refusing.

    Returns:
        Path: The resolved destination path.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing data workbook: {destination}"
        )

    workbook = openpyxl.Workbook()
    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    for collection in Collection:
        write_sheet_documents(workbook, collection.value, ())

    save_workbook(workbook, destination)
    log.info("Created data workbook '%s'", destination)
    return destination


def open_workbook(data_file: Path) -> Workbook:
    """Open the data workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def iter_sheet_documents(workbook: Workbook, sheet_name: str) -> Iterable[Tuple[str, Dict[str, Any]]]:
    """Stream ``(document_id, data)`` pairs stored on ``sheet_name``.

    The header row and fully empty rows are skipped. Rows without an
    identifier are ignored with a warning because they cannot be addressed by
    the store.
    """

    sheet = workbook[sheet_name]
    for row_idx, raw in enumerate(sheet.iter_rows(min_row=2, max_col=2, values_only=True), start=2):
        if not any(cell is not None for cell in raw):
            continue
        doc_id, body = raw
        if doc_id is None:
            log.warning("Skipping row %d on sheet '%s': missing document id", row_idx, sheet_name)
            continue
        yield str(doc_id), decode_document(body or "{}")


def write_sheet_documents(
    workbook: Workbook,
    sheet_name: str,
    documents: Iterable[Tuple[str, Mapping[str, Any]]],
) -> None:
    """Replace the contents of ``sheet_name`` with ``documents``.

    The sheet is created on demand. A bold header row is always written so
    that empty collections survive a save/load cycle.
    """

    if sheet_name in workbook.sheetnames:
        sheet = workbook[sheet_name]
        if sheet.max_row:
            sheet.delete_rows(1, sheet.max_row)
    else:
        sheet = workbook.create_sheet(title=sheet_name)

    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(DOCUMENT_SHEET_HEADERS, start=1):
        cell = sheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font

    for doc_id, data in documents:
        sheet.append([doc_id, encode_document(data)])


# ---------------------------------------------------------------------------
# Document codec
# ---------------------------------------------------------------------------


def _encode_value(value: Any) -> Any:
    # datetime is a subclass of date, so test it first.
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, date):
        return {_DATE_TAG: value.isoformat()}
    if isinstance(value, Decimal):
        return {_DECIMAL_TAG: str(value)}
    raise TypeError(f"Object of type {type(value).__name__} is not document serializable")


def _decode_object(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1:
        if _DECIMAL_TAG in obj:
            return Decimal(obj[_DECIMAL_TAG])
        if _DATETIME_TAG in obj:
            return datetime.fromisoformat(obj[_DATETIME_TAG])
        if _DATE_TAG in obj:
            return date.fromisoformat(obj[_DATE_TAG])
    return obj


def encode_document(data: Mapping[str, Any]) -> str:
    """Serialize a document into JSON text, tagging Decimal and date values."""

    return json.dumps(dict(data), default=_encode_value, ensure_ascii=False, sort_keys=True)


def decode_document(text: str) -> Dict[str, Any]:
    """Inverse of :func:`encode_document`.

    Raises:
        ValueError: If ``text`` is not a JSON object.
    """

    decoded = json.loads(text, object_hook=_decode_object)
    if not isinstance(decoded, dict):
        raise ValueError("Stored document is not a JSON object")
    return decoded


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce loosely typed numbers into :class:`~decimal.Decimal`.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``.
    Blank or unparsable values produce ``default``.
    """

    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return default
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default


def to_optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value)


def to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value))
    # Stored moments are always UTC-aware so range filters can compare them.
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _optional_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------


def serialize_product(record: ProductRecord) -> Dict[str, Any]:
    """Convert a product dataclass into a store document (without its id)."""

    return {
        "name": record.name,
        "category": record.category,
        "unit": record.unit,
        "quantity": record.quantity,
        "minimum_stock": record.minimum_stock,
        "purchase_price": record.purchase_price,
        "sale_price": record.sale_price,
        "supplier": record.supplier,
        "code": record.code,
        "description": record.description,
        "is_active": record.is_active,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def deserialize_product(doc_id: str, data: Mapping[str, Any]) -> ProductRecord:
    """Convert a store document into a strongly typed product record.

    Missing fields fall back to the dataclass defaults because documents
    written by older clients may lack them.
    """

    return ProductRecord(
        product_id=str(doc_id),
        name=_text(data.get("name")),
        category=_text(data.get("category")) or DEFAULT_CATEGORY,
        unit=_text(data.get("unit")) or DEFAULT_UNIT,
        quantity=to_decimal(data.get("quantity")),
        minimum_stock=to_decimal(data.get("minimum_stock")),
        purchase_price=to_decimal(data.get("purchase_price"), Decimal("0.00")),
        sale_price=to_decimal(data.get("sale_price"), Decimal("0.00")),
        supplier=_optional_text(data.get("supplier")),
        code=_text(data.get("code")),
        description=_text(data.get("description")),
        is_active=bool(data.get("is_active", True)),
        created_at=to_datetime(data.get("created_at")),
        updated_at=to_datetime(data.get("updated_at")),
    )


def serialize_category(record: CategoryRecord) -> Dict[str, Any]:
    return {
        "name": record.name,
        "description": record.description,
        "color": record.color,
        "is_active": record.is_active,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def deserialize_category(doc_id: str, data: Mapping[str, Any]) -> CategoryRecord:
    return CategoryRecord(
        category_id=str(doc_id),
        name=_text(data.get("name")),
        description=_text(data.get("description")),
        color=_text(data.get("color")) or DEFAULT_CATEGORY_COLOR,
        is_active=bool(data.get("is_active", True)),
        created_at=to_datetime(data.get("created_at")),
        updated_at=to_datetime(data.get("updated_at")),
    )


def serialize_customer(record: CustomerRecord) -> Dict[str, Any]:
    return {
        "name": record.name,
        "nickname": record.nickname,
        "phone": record.phone,
        "tax_id": record.tax_id,
        "email": record.email,
        "address": record.address,
        "city": record.city,
        "state": record.state,
        "postal_code": record.postal_code,
        "notes": record.notes,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def deserialize_customer(doc_id: str, data: Mapping[str, Any]) -> CustomerRecord:
    return CustomerRecord(
        customer_id=str(doc_id),
        name=_text(data.get("name")),
        nickname=_text(data.get("nickname")),
        phone=_text(data.get("phone")),
        tax_id=_text(data.get("tax_id")),
        email=_text(data.get("email")),
        address=_text(data.get("address")),
        city=_text(data.get("city")),
        state=_text(data.get("state")),
        postal_code=_text(data.get("postal_code")),
        notes=_text(data.get("notes")),
        created_at=to_datetime(data.get("created_at")),
        updated_at=to_datetime(data.get("updated_at")),
    )


def serialize_sale_item(item: SaleItem) -> Dict[str, Any]:
    return {
        "product_id": item.product_id,
        "product_name": item.product_name,
        "quantity": item.quantity,
        "unit_price": item.unit_price,
    }


def deserialize_sale_item(data: Mapping[str, Any]) -> SaleItem:
    return SaleItem(
        product_id=_text(data.get("product_id")),
        quantity=to_decimal(data.get("quantity")),
        unit_price=to_decimal(data.get("unit_price"), Decimal("0.00")),
        product_name=_optional_text(data.get("product_name")),
    )


def serialize_sale(record: SaleRecord) -> Dict[str, Any]:
    """Convert a sale dataclass into a store document.

    Line items are embedded as a list of maps, matching how the document
    store keeps nested values.
    """

    return {
        "code": record.code,
        "customer_id": record.customer_id,
        "customer_name": record.customer_name,
        "sale_date": record.sale_date,
        "items": [serialize_sale_item(item) for item in record.items],
        "total": record.total,
        "status": record.status,
        "payment_method": record.payment_method,
        "notes": record.notes,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def deserialize_sale(doc_id: str, data: Mapping[str, Any]) -> SaleRecord:
    items = tuple(deserialize_sale_item(raw) for raw in data.get("items") or ())
    return SaleRecord(
        sale_id=str(doc_id),
        code=_text(data.get("code")),
        customer_id=_optional_text(data.get("customer_id")),
        customer_name=_optional_text(data.get("customer_name")),
        sale_date=to_date(data.get("sale_date")) or date.min,
        items=items,
        total=to_decimal(data.get("total"), Decimal("0.00")),
        status=_text(data.get("status")) or SaleStatus.COMPLETED.value,
        payment_method=_optional_text(data.get("payment_method")),
        notes=_text(data.get("notes")),
        created_at=to_datetime(data.get("created_at")),
        updated_at=to_datetime(data.get("updated_at")),
    )


def serialize_purchase_item(item: PurchaseItem) -> Dict[str, Any]:
    return {
        "product_name": item.product_name,
        "product_id": item.product_id,
        "category": item.category,
        "quantity": item.quantity,
        "purchase_price": item.purchase_price,
        "sale_price": item.sale_price,
    }


def deserialize_purchase_item(data: Mapping[str, Any]) -> PurchaseItem:
    return PurchaseItem(
        product_name=_text(data.get("product_name")),
        quantity=to_decimal(data.get("quantity")),
        purchase_price=to_decimal(data.get("purchase_price"), Decimal("0.00")),
        sale_price=to_optional_decimal(data.get("sale_price")),
        category=_optional_text(data.get("category")),
        product_id=_optional_text(data.get("product_id")),
    )


def serialize_purchase(record: PurchaseRecord) -> Dict[str, Any]:
    return {
        "code": record.code,
        "supplier": record.supplier,
        "purchase_date": record.purchase_date,
        "items": [serialize_purchase_item(item) for item in record.items],
        "total": record.total,
        "payment_method": record.payment_method,
        "notes": record.notes,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def deserialize_purchase(doc_id: str, data: Mapping[str, Any]) -> PurchaseRecord:
    items = tuple(deserialize_purchase_item(raw) for raw in data.get("items") or ())
    return PurchaseRecord(
        purchase_id=str(doc_id),
        code=_text(data.get("code")),
        supplier=_text(data.get("supplier")),
        purchase_date=to_date(data.get("purchase_date")) or date.min,
        items=items,
        total=to_decimal(data.get("total"), Decimal("0.00")),
        payment_method=_optional_text(data.get("payment_method")),
        notes=_text(data.get("notes")),
        created_at=to_datetime(data.get("created_at")),
        updated_at=to_datetime(data.get("updated_at")),
    )


def serialize_stock_movement(record: StockMovementRecord) -> Dict[str, Any]:
    return {
        "product_id": record.product_id,
        "product_name": record.product_name,
        "movement_type": record.movement_type,
        "quantity": record.quantity,
        "previous_quantity": record.previous_quantity,
        "new_quantity": record.new_quantity,
        "reason": record.reason,
        "sale_id": record.sale_id,
        "purchase_id": record.purchase_id,
        "reference_code": record.reference_code,
        "created_at": record.created_at,
    }


def deserialize_stock_movement(doc_id: str, data: Mapping[str, Any]) -> StockMovementRecord:
    return StockMovementRecord(
        movement_id=str(doc_id),
        product_id=_text(data.get("product_id")),
        movement_type=_text(data.get("movement_type")),
        quantity=to_decimal(data.get("quantity")),
        reason=_text(data.get("reason")),
        product_name=_optional_text(data.get("product_name")),
        previous_quantity=to_optional_decimal(data.get("previous_quantity")),
        new_quantity=to_optional_decimal(data.get("new_quantity")),
        sale_id=_optional_text(data.get("sale_id")),
        purchase_id=_optional_text(data.get("purchase_id")),
        reference_code=_optional_text(data.get("reference_code")),
        created_at=to_datetime(data.get("created_at")),
    )


def serialize_receivable(record: ReceivableRecord) -> Dict[str, Any]:
    return {
        "description": record.description,
        "customer_id": record.customer_id,
        "amount": record.amount,
        "amount_received": record.amount_received,
        "due_date": record.due_date,
        "received_date": record.received_date,
        "payment_method": record.payment_method,
        "status": record.status,
        "notes": record.notes,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def deserialize_receivable(doc_id: str, data: Mapping[str, Any]) -> ReceivableRecord:
    return ReceivableRecord(
        receivable_id=str(doc_id),
        description=_text(data.get("description")),
        amount=to_decimal(data.get("amount"), Decimal("0.00")),
        due_date=to_date(data.get("due_date")) or date.min,
        customer_id=_optional_text(data.get("customer_id")),
        amount_received=to_decimal(data.get("amount_received"), Decimal("0.00")),
        received_date=to_date(data.get("received_date")),
        payment_method=_optional_text(data.get("payment_method")),
        status=_text(data.get("status")) or AccountStatus.PENDING.value,
        notes=_text(data.get("notes")),
        created_at=to_datetime(data.get("created_at")),
        updated_at=to_datetime(data.get("updated_at")),
    )


def serialize_payable(record: PayableRecord) -> Dict[str, Any]:
    return {
        "description": record.description,
        "supplier": record.supplier,
        "category": record.category,
        "amount": record.amount,
        "amount_paid": record.amount_paid,
        "due_date": record.due_date,
        "paid_date": record.paid_date,
        "payment_method": record.payment_method,
        "status": record.status,
        "notes": record.notes,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def deserialize_payable(doc_id: str, data: Mapping[str, Any]) -> PayableRecord:
    return PayableRecord(
        payable_id=str(doc_id),
        description=_text(data.get("description")),
        amount=to_decimal(data.get("amount"), Decimal("0.00")),
        due_date=to_date(data.get("due_date")) or date.min,
        supplier=_text(data.get("supplier")),
        category=_text(data.get("category")) or "other",
        amount_paid=to_decimal(data.get("amount_paid"), Decimal("0.00")),
        paid_date=to_date(data.get("paid_date")),
        payment_method=_optional_text(data.get("payment_method")),
        status=_text(data.get("status")) or AccountStatus.PENDING.value,
        notes=_text(data.get("notes")),
        created_at=to_datetime(data.get("created_at")),
        updated_at=to_datetime(data.get("updated_at")),
    )


def serialize_cash_flow(record: CashFlowRecord) -> Dict[str, Any]:
    return {
        "flow_type": record.flow_type,
        "amount": record.amount,
        "description": record.description,
        "category": record.category,
        "receivable_id": record.receivable_id,
        "payable_id": record.payable_id,
        "created_at": record.created_at,
    }


def deserialize_cash_flow(doc_id: str, data: Mapping[str, Any]) -> CashFlowRecord:
    return CashFlowRecord(
        entry_id=str(doc_id),
        flow_type=_text(data.get("flow_type")),
        amount=to_decimal(data.get("amount"), Decimal("0.00")),
        description=_text(data.get("description")),
        category=_text(data.get("category")) or "other",
        receivable_id=_optional_text(data.get("receivable_id")),
        payable_id=_optional_text(data.get("payable_id")),
        created_at=to_datetime(data.get("created_at")),
    )


__all__: List[str] = [
    "CONFIG_FILE_NAME",
    "ConfigSettings",
    "ProductRecord",
    "CategoryRecord",
    "CustomerRecord",
    "SaleItem",
    "SaleRecord",
    "PurchaseItem",
    "PurchaseRecord",
    "StockMovementRecord",
    "ReceivableRecord",
    "PayableRecord",
    "CashFlowRecord",
    "find_config_file",
    "read_config",
    "parse_settings",
    "create_workbook",
    "open_workbook",
    "save_workbook",
    "iter_sheet_documents",
    "write_sheet_documents",
    "encode_document",
    "decode_document",
    "to_decimal",
    "to_optional_decimal",
    "to_date",
    "to_datetime",
]
