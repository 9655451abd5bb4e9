"""Business logic core for Shop ERP.

This module holds the pieces every entity accessor shares: the runtime
context that carries settings and the injected document store, the domain
errors, the time-boxed listing cache, the retry helper used when the store
is unreachable, validation helpers, and the command/result layer that lets
callers decide what to do when an operation fails.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar, Union

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, PaymentMethod, SaleStatus
from .document_store import DocumentStore, StoreError, StoreUnavailableError, WorkbookDocumentStore


T = TypeVar("T")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, customer, sale, or purchase is unknown."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the store handle used by the BLL."""

    settings: data_manager.ConfigSettings
    store: DocumentStore
    _cache: Dict[str, Dict[Any, "_CacheEntry"]] = field(default_factory=dict, repr=False, compare=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)


@dataclass(frozen=True)
class _CacheEntry:
    records: Tuple[Any, ...]
    fetched_at: float


@dataclass(frozen=True)
class ListResult(Generic[T]):
    """Outcome of a listing call.

    ``stale`` is ``True`` when the store could not be reached and previously
    cached records are being served instead; ``error`` then carries the
    failure message.
    """

    records: Tuple[T, ...] = ()
    stale: bool = False
    error: Optional[str] = None

    def __iter__(self) -> Iterator[T]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, index: int) -> T:
        return self.records[index]


def resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Resolve optional timestamps into consistent, timezone-aware values.

    Args:
        candidate (datetime | None): Caller-provided timestamp, usually sourced
            from a command object.

    Returns:
        datetime: ``candidate`` when provided, with naive values read as UTC;
            otherwise the current UTC datetime.
    """

    if candidate is None:
        return datetime.now(UTC)
    if candidate.tzinfo is None:
        return candidate.replace(tzinfo=UTC)
    return candidate


def resolve_date(candidate: Optional[Any]) -> date:
    """Return ``candidate`` as a :class:`date`, defaulting to today (UTC)."""
    if candidate is None or candidate == "":
        return datetime.now(UTC).date()
    return require_date(candidate, "Date")


def require_date(value: Any, field_name: str) -> date:
    """Coerce ``value`` (a date, datetime, or ISO string) into a :class:`date`.

    Raises:
        ValueError: If ``value`` is missing or not a valid ISO date.
    """
    try:
        parsed = data_manager.to_date(value)
    except (TypeError, ValueError) as exc:
        log.error("Invalid date for '%s': %r", field_name, value)
        raise ValueError(f"{field_name} must be an ISO date (YYYY-MM-DD)") from exc
    if parsed is None:
        log.error("Required date '%s' is blank", field_name)
        raise ValueError(f"{field_name} is required")
    return parsed


def load_runtime_context(config_path: Optional[Path] = None, *, store: Optional[DocumentStore] = None) -> RuntimeContext:
    """Load configuration settings and a live document store for the BLL.

    The helper resolves ``config.ini``, parses settings, and, unless a store
    is injected, opens the workbook-backed store named by ``DataFile``.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.
        store (DocumentStore | None): Store handle to use instead of the
            configured workbook. Tests pass a ``MemoryDocumentStore`` here.

    Returns:
        RuntimeContext: Fully populated context ready for accessor calls.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    if store is None:
        store = WorkbookDocumentStore(settings.data_file)
    log.info("Loaded runtime context for '%s'", settings.business_name)
    return RuntimeContext(settings=settings, store=store)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate data compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Data schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Data schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


# ---------------------------------------------------------------------------
# Listing cache
# ---------------------------------------------------------------------------


def get_cache_bucket(context: RuntimeContext, name: str) -> Dict[Any, _CacheEntry]:
    """Return the mutable cache bucket dedicated to the supplied entity name.

    Buckets map a filter key to the records fetched for it and the moment
    they were fetched.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after a write.

    Args:
        context (RuntimeContext): Active runtime context whose cache should be
            pruned.
        *names (str): Bucket identifiers to remove. Missing buckets are
            ignored.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` and retry it while the store reports it is unavailable.

    The wait between attempts grows linearly (``delay``, ``2 * delay``, ...).
    Only :class:`StoreUnavailableError` is retried; the last one is re-raised
    once ``attempts`` is exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except StoreUnavailableError as exc:
            if attempt >= attempts:
                raise
            log.warning("Store unavailable (attempt %d/%d): %s", attempt, attempts, exc)
            sleep(delay * attempt)
    raise StoreUnavailableError("No attempt was made")


def matches_search(term: Optional[str], values: Iterable[Any]) -> bool:
    """Return ``True`` when ``term`` is blank or contained in any of ``values``.

    The comparison is a case-insensitive substring test; ``None`` values are
    skipped.
    """
    if term is None or not term.strip():
        return True
    needle = term.strip().casefold()
    return any(needle in str(value).casefold() for value in values if value is not None)


def cached_listing(
    context: RuntimeContext,
    entity: str,
    fetch: Callable[[], Sequence[T]],
    *,
    search: Optional[str] = None,
    search_fields: Callable[[T], Iterable[Any]] = lambda record: (),
    key: Tuple[Any, ...] = (),
) -> ListResult[T]:
    """Fetch, filter, and memoize a listing for ``entity``.

    Fresh entries (younger than ``ListTTLSeconds``) short-circuit the fetch.
    Otherwise ``fetch`` runs through :func:`run_with_retry`; when the store
    stays unavailable the last cached records for the same key are returned
    with ``stale=True``, or an empty result when nothing was cached.

    Args:
        context (RuntimeContext): Runtime context providing the store, the
            settings, and the cache.
        entity (str): Cache bucket name, usually the collection name.
        fetch (Callable[[], Sequence[T]]): Returns the full ordered collection.
        search (str | None): Optional case-insensitive substring filter.
        search_fields (Callable[[T], Iterable[Any]]): Extracts the searchable
            values of a record.
        key (tuple): Extra filter values that distinguish cache entries.

    Returns:
        ListResult[T]: Matching records plus staleness information.

    Raises:
        StoreError: For store failures other than unavailability.
    """
    normalized = (search or "").strip().casefold()
    cache_key = (normalized, *key)
    bucket = get_cache_bucket(context, entity)
    entry = bucket.get(cache_key)
    now = context.clock()
    if entry is not None and now - entry.fetched_at < context.settings.cache_ttl_seconds:
        log.debug("Serving '%s' listing from cache (key=%r)", entity, cache_key)
        return ListResult(records=entry.records)

    try:
        fetched = run_with_retry(
            fetch,
            attempts=context.settings.retry_attempts,
            delay=context.settings.retry_delay_seconds,
            sleep=context.sleep,
        )
    except StoreUnavailableError as exc:
        log.error("Unable to list '%s': %s", entity, exc)
        if entry is not None:
            return ListResult(records=entry.records, stale=True, error=str(exc))
        return ListResult(records=(), stale=False, error=str(exc))
    except StoreError as exc:
        log.error("Listing '%s' failed: %s", entity, exc)
        raise

    records = tuple(record for record in fetched if matches_search(normalized, search_fields(record)))
    bucket[cache_key] = _CacheEntry(records=records, fetched_at=context.clock())
    log.debug("Cached %d '%s' record(s) (key=%r)", len(records), entity, cache_key)
    return ListResult(records=records)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def generate_code(rng: Optional[random.Random] = None) -> str:
    """Generate a 5-digit display code for sales and purchases.

    Codes are for humans only; collisions are not checked.
    """
    source = rng or random
    return str(source.randint(10000, 99999))


def require_text(value: Optional[str], field_name: str) -> str:
    """Return ``value`` stripped, raising ``ValueError`` when it is blank."""
    cleaned = (value or "").strip()
    if not cleaned:
        log.error("Required field '%s' is blank", field_name)
        raise ValueError(f"{field_name} is required")
    return cleaned


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Args:
        quantity (Decimal): Quantity supplied by a command object.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """
    if quantity <= Decimal("0"):
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_quantity(quantity: Decimal) -> None:
    if quantity < Decimal("0"):
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be zero or positive")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Args:
        amount (Decimal): Currency value supplied by a command object.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def require_positive_money(amount: Decimal) -> None:
    if amount <= Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be greater than zero")


def validate_payment_method(payment_method: Optional[str]) -> Optional[str]:
    """Normalize an optional payment method, rejecting unknown values.

    Raises:
        BusinessRuleViolation: If ``payment_method`` is not a
            :class:`PaymentMethod` value.
    """
    if payment_method is None or payment_method == "":
        return None
    try:
        return PaymentMethod(payment_method).value
    except ValueError as exc:
        log.error("Unsupported payment method provided: %s", payment_method)
        raise BusinessRuleViolation(f"Unsupported payment method: {payment_method}") from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateSaleCommand:
    """User intent for registering a sale and taking its items out of stock."""

    customer_id: Optional[str]
    items: Tuple[data_manager.SaleItem, ...]
    payment_method: Optional[str] = None
    status: str = SaleStatus.COMPLETED.value
    sale_date: Optional[date] = None
    notes: str = ""
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DeleteSaleCommand:
    """User intent for deleting a sale and returning its items to stock."""

    sale_id: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class CreatePurchaseCommand:
    """User intent for registering a purchase and adding its items to stock."""

    supplier: str
    items: Tuple[data_manager.PurchaseItem, ...]
    payment_method: Optional[str] = None
    purchase_date: Optional[date] = None
    notes: str = ""
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DeletePurchaseCommand:
    """User intent for deleting a purchase and taking its items out of stock."""

    purchase_id: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class AdjustStockCommand:
    """User intent for setting a product quantity after a stock count."""

    product_id: str
    new_quantity: Decimal
    reason: str = ""
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ReceivePaymentCommand:
    """User intent for settling (part of) a receivable."""

    receivable_id: str
    amount: Decimal
    payment_method: Optional[str] = None
    received_date: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PayBillCommand:
    """User intent for settling (part of) a payable."""

    payable_id: str
    amount: Decimal
    payment_method: Optional[str] = None
    paid_date: Optional[date] = None
    timestamp: Optional[datetime] = None


Command = Union[
    CreateSaleCommand,
    DeleteSaleCommand,
    CreatePurchaseCommand,
    DeletePurchaseCommand,
    AdjustStockCommand,
    ReceivePaymentCommand,
    PayBillCommand,
]


@dataclass(frozen=True)
class CommandResult:
    """Success or failure of a dispatched command.

    ``value`` holds whatever the underlying operation returned. On failure
    ``error`` carries the message and ``exception`` the original error so the
    caller can decide how to roll back its own state.
    """

    ok: bool
    value: Any = None
    error: Optional[str] = None
    exception: Optional[Exception] = field(default=None, repr=False, compare=False)

    @classmethod
    def success(cls, value: Any = None) -> "CommandResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: Exception) -> "CommandResult":
        return cls(ok=False, error=str(exc), exception=exc)


def _dispatch(context: RuntimeContext, command: Command) -> Any:
    # Accessors import this module, so they are resolved at call time.
    from . import finance, inventory, purchases, sales

    if isinstance(command, CreateSaleCommand):
        return sales.create_sale(
            context,
            customer_id=command.customer_id,
            items=command.items,
            payment_method=command.payment_method,
            status=command.status,
            sale_date=command.sale_date,
            notes=command.notes,
            timestamp=command.timestamp,
        )
    if isinstance(command, DeleteSaleCommand):
        return sales.delete_sale(context, command.sale_id, timestamp=command.timestamp)
    if isinstance(command, CreatePurchaseCommand):
        return purchases.create_purchase(
            context,
            supplier=command.supplier,
            items=command.items,
            payment_method=command.payment_method,
            purchase_date=command.purchase_date,
            notes=command.notes,
            timestamp=command.timestamp,
        )
    if isinstance(command, DeletePurchaseCommand):
        return purchases.delete_purchase(context, command.purchase_id, timestamp=command.timestamp)
    if isinstance(command, AdjustStockCommand):
        return inventory.adjust_stock(
            context,
            command.product_id,
            command.new_quantity,
            reason=command.reason,
            timestamp=command.timestamp,
        )
    if isinstance(command, ReceivePaymentCommand):
        return finance.receive_receivable(
            context,
            command.receivable_id,
            command.amount,
            payment_method=command.payment_method,
            received_date=command.received_date,
            timestamp=command.timestamp,
        )
    if isinstance(command, PayBillCommand):
        return finance.pay_payable(
            context,
            command.payable_id,
            command.amount,
            payment_method=command.payment_method,
            paid_date=command.paid_date,
            timestamp=command.timestamp,
        )
    raise BusinessRuleViolation(f"Unsupported command type: {type(command).__name__}")


def run_command(context: RuntimeContext, command: Command) -> CommandResult:
    """Execute ``command`` and report the outcome as a :class:`CommandResult`.

    Domain, validation, and store errors are logged and returned as failures
    instead of propagating. Nothing is persisted for a failed command because
    every write path commits atomically.

    Args:
        context (RuntimeContext): Runtime context for the accessors.
        command (Command): One of the command dataclasses of this module.

    Returns:
        CommandResult: ``ok=True`` with the operation's return value, or
            ``ok=False`` with the error.
    """
    try:
        value = _dispatch(context, command)
    except (BusinessRuleViolation, ValueError, StoreError) as exc:
        log.error("Command %s failed: %s", type(command).__name__, exc)
        return CommandResult.failure(exc)
    log.debug("Command %s succeeded", type(command).__name__)
    return CommandResult.success(value)


__all__: List[str] = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "RuntimeContext",
    "ListResult",
    "load_runtime_context",
    "ensure_schema_version",
    "get_cache_bucket",
    "invalidate_cache",
    "run_with_retry",
    "matches_search",
    "cached_listing",
    "generate_code",
    "require_text",
    "require_positive_quantity",
    "require_nonnegative_quantity",
    "require_nonnegative_money",
    "require_positive_money",
    "validate_payment_method",
    "resolve_timestamp",
    "resolve_date",
    "require_date",
    "CreateSaleCommand",
    "DeleteSaleCommand",
    "CreatePurchaseCommand",
    "DeletePurchaseCommand",
    "AdjustStockCommand",
    "ReceivePaymentCommand",
    "PayBillCommand",
    "Command",
    "CommandResult",
    "run_command",
]
