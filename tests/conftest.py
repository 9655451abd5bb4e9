"""Shared pytest fixtures and utilities for Shop ERP tests."""

from __future__ import annotations

import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, List

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

for candidate in (SRC_DIR, PROJECT_ROOT):
    candidate_str = str(candidate)
    if candidate_str not in sys.path:
        sys.path.insert(0, candidate_str)

from shop_erp import constants, core_logic, data_manager, inventory  # noqa: E402
from shop_erp.document_store import MemoryDocumentStore  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
FIXED_MOMENT = datetime(2024, 5, 17, 14, 30, tzinfo=UTC)
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BusinessName = {business_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Stock]\n"
    "PurchaseProductMatch = {product_match}\n\n"
    "[Cache]\n"
    "ListTTLSeconds = {ttl}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    business_name: str


class FakeClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Replacement for ``time.sleep`` that records the requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized data workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "shop_data.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        return data_manager.create_workbook(base_dir / filename, overwrite=True)

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        business_name: str = "Test Shop",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        product_match: str = "name",
        ttl: float = 120,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                business_name=business_name,
                schema_version=schema_version,
                product_match=product_match,
                ttl=ttl,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            business_name=business_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load a workbook-backed runtime context through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# In-memory fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for business logic tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "shop_data.xlsx",
        business_name="Test Shop",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def context(
    settings: data_manager.ConfigSettings,
    store: MemoryDocumentStore,
    clock: FakeClock,
    sleeper: RecordingSleep,
) -> core_logic.RuntimeContext:
    """Assemble a runtime context around an in-memory store."""

    return core_logic.RuntimeContext(settings=settings, store=store, clock=clock, sleep=sleeper)


@pytest.fixture
def make_product(context: core_logic.RuntimeContext) -> Callable[..., data_manager.ProductRecord]:
    """Factory registering products with sensible defaults."""

    def _make(
        name: str = "Widget",
        *,
        quantity: str = "10",
        minimum_stock: str = "0",
        purchase_price: str = "5.00",
        sale_price: str = "9.90",
        **extra,
    ) -> data_manager.ProductRecord:
        return inventory.add_product(
            context,
            name,
            quantity=Decimal(quantity),
            minimum_stock=Decimal(minimum_stock),
            purchase_price=Decimal(purchase_price),
            sale_price=Decimal(sale_price),
            timestamp=FIXED_MOMENT,
            **extra,
        )

    return _make
