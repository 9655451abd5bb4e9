"""Command-line entry points for the Shop ERP toolkit.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into accessor calls or command objects, and printing
plain-text listings. Keeping the CLI thin ensures the same parser
configuration can be reused by tests or any alternative front-end.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, customers, finance, inventory, log, purchases, reports, sales
from .constants import CashFlowType, PaymentMethod, SaleStatus, SummaryPeriod
from .data_manager import PurchaseItem, SaleItem
from .document_store import StoreError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shop-cli",
        description="Command-line tools for the Shop ERP data store.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def _make_spec(
    name: str,
    help_text: str,
    add_arguments: Callable[[argparse.ArgumentParser], None],
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        add_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def parse_decimal(raw: str) -> Decimal:
    """``argparse`` type converting text into :class:`Decimal`."""
    try:
        return Decimal(raw.strip().replace(",", "."))
    except (InvalidOperation, AttributeError) as exc:
        raise argparse.ArgumentTypeError(f"Not a number: {raw!r}") from exc


def parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an ISO date (YYYY-MM-DD): {raw!r}") from exc


def parse_sale_item(raw: str) -> SaleItem:
    """Parse ``PRODUCT_ID:QTY:PRICE`` into a :class:`SaleItem`."""
    parts = raw.split(":")
    if len(parts) != 3 or not parts[0].strip():
        raise argparse.ArgumentTypeError(f"Sale items look like PRODUCT_ID:QTY:PRICE, got {raw!r}")
    return SaleItem(
        product_id=parts[0].strip(),
        quantity=parse_decimal(parts[1]),
        unit_price=parse_decimal(parts[2]),
    )


def parse_purchase_item(raw: str) -> PurchaseItem:
    """Parse ``NAME:QTY:PRICE[:SALE_PRICE[:CATEGORY]]`` into a :class:`PurchaseItem`."""
    parts = raw.split(":")
    if not 3 <= len(parts) <= 5 or not parts[0].strip():
        raise argparse.ArgumentTypeError(
            f"Purchase items look like NAME:QTY:PRICE[:SALE_PRICE[:CATEGORY]], got {raw!r}"
        )
    sale_price = parse_decimal(parts[3]) if len(parts) >= 4 and parts[3].strip() else None
    category = parts[4].strip() if len(parts) == 5 and parts[4].strip() else None
    return PurchaseItem(
        product_name=parts[0].strip(),
        quantity=parse_decimal(parts[1]),
        purchase_price=parse_decimal(parts[2]),
        sale_price=sale_price,
        category=category,
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and purchases."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "add-customer": register_add_customer_command(subparsers),
        "sale": register_sale_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "purchase": register_purchase_command(subparsers),
        "delete-purchase": register_delete_purchase_command(subparsers),
        "adjust-stock": register_adjust_stock_command(subparsers),
        "add-receivable": register_add_receivable_command(subparsers),
        "receive": register_receive_command(subparsers),
        "add-payable": register_add_payable_command(subparsers),
        "pay": register_pay_command(subparsers),
        "cash-entry": register_cash_entry_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and reports."""
    specs = {
        "products": register_products_command(subparsers),
        "customers": register_customers_command(subparsers),
        "sales": register_sales_command(subparsers),
        "purchases": register_purchases_command(subparsers),
        "movements": register_movements_command(subparsers),
        "low-stock": register_low_stock_command(subparsers),
        "stock-report": register_stock_report_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "sales-report": register_sales_report_command(subparsers),
        "top-products": register_top_products_command(subparsers),
        "top-customers": register_top_customers_command(subparsers),
        "cash-flow": register_cash_flow_command(subparsers),
        "overdue": register_overdue_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--category", default="")
        parser.add_argument("--unit", default="")
        parser.add_argument("--quantity", type=parse_decimal, default=Decimal("0"))
        parser.add_argument("--minimum-stock", type=parse_decimal, default=Decimal("0"))
        parser.add_argument("--purchase-price", type=parse_decimal, default=Decimal("0.00"))
        parser.add_argument("--sale-price", type=parse_decimal, default=Decimal("0.00"))
        parser.add_argument("--supplier", default=None)
        parser.add_argument("--code", default="")
        parser.add_argument("--description", default="")
        parser.add_argument("--inactive", action="store_true", help="Mark the product as inactive on creation.")

    return _make_spec("add-product", "Register a new product.", add_arguments, run_add_product)


def register_add_customer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-customer``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        for option in ("nickname", "phone", "tax-id", "email", "address", "city", "state", "postal-code", "notes"):
            parser.add_argument(f"--{option}", default="")

    return _make_spec("add-customer", "Register a new customer.", add_arguments, run_add_customer)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", default=None)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=parse_sale_item,
            required=True,
            metavar="PRODUCT_ID:QTY:PRICE",
        )
        parser.add_argument("--payment-method", choices=[member.value for member in PaymentMethod], default=None)
        parser.add_argument("--status", choices=[member.value for member in SaleStatus], default=SaleStatus.COMPLETED.value)
        parser.add_argument("--date", dest="sale_date", type=parse_date, default=None)
        parser.add_argument("--notes", dest="notes", default="")

    return _make_spec("sale", "Register a sale and take its items out of stock.", add_arguments, run_sale)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--sale-id", required=True)

    return _make_spec("delete-sale", "Delete a sale and return its items to stock.", add_arguments, run_delete_sale)


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--supplier", required=True)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=parse_purchase_item,
            required=True,
            metavar="NAME:QTY:PRICE[:SALE_PRICE[:CATEGORY]]",
        )
        parser.add_argument("--payment-method", choices=[member.value for member in PaymentMethod], default=None)
        parser.add_argument("--date", dest="purchase_date", type=parse_date, default=None)
        parser.add_argument("--notes", dest="notes", default="")

    return _make_spec("purchase", "Register a purchase and add its items to stock.", add_arguments, run_purchase)


def register_delete_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-purchase``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--purchase-id", required=True)

    return _make_spec(
        "delete-purchase",
        "Delete a purchase and take its items back out of stock.",
        add_arguments,
        run_delete_purchase,
    )


def register_adjust_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust-stock``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=parse_decimal, required=True, help="New quantity on hand.")
        parser.add_argument("--reason", default="")

    return _make_spec("adjust-stock", "Set a product quantity after a stock count.", add_arguments, run_adjust_stock)


def register_add_receivable_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-receivable``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--description", required=True)
        parser.add_argument("--amount", type=parse_decimal, required=True)
        parser.add_argument("--due-date", type=parse_date, required=True)
        parser.add_argument("--customer-id", default=None)
        parser.add_argument("--notes", default="")

    return _make_spec("add-receivable", "Register money a customer owes.", add_arguments, run_add_receivable)


def register_receive_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receive``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--receivable-id", required=True)
        parser.add_argument("--amount", type=parse_decimal, required=True)
        parser.add_argument("--payment-method", choices=[member.value for member in PaymentMethod], default=None)
        parser.add_argument("--date", dest="received_date", type=parse_date, default=None)

    return _make_spec("receive", "Record a payment received on a receivable.", add_arguments, run_receive)


def register_add_payable_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-payable``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--description", required=True)
        parser.add_argument("--amount", type=parse_decimal, required=True)
        parser.add_argument("--due-date", type=parse_date, required=True)
        parser.add_argument("--supplier", default="")
        parser.add_argument("--category", default=finance.EXPENSE_CATEGORY)
        parser.add_argument("--notes", default="")

    return _make_spec("add-payable", "Register a bill to pay.", add_arguments, run_add_payable)


def register_pay_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pay``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--payable-id", required=True)
        parser.add_argument("--amount", type=parse_decimal, required=True)
        parser.add_argument("--payment-method", choices=[member.value for member in PaymentMethod], default=None)
        parser.add_argument("--date", dest="paid_date", type=parse_date, default=None)

    return _make_spec("pay", "Record a payment made on a payable.", add_arguments, run_pay)


def register_cash_entry_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash-entry``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--type", dest="flow_type", choices=[member.value for member in CashFlowType], required=True)
        parser.add_argument("--amount", type=parse_decimal, required=True)
        parser.add_argument("--description", default="")
        parser.add_argument("--category", default="other")

    return _make_spec("cash-entry", "Append a manual cash-flow entry.", add_arguments, run_cash_entry)


def _add_search(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--search", default=None, help="Case-insensitive substring filter.")


def register_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``products``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        _add_search(parser)
        parser.add_argument("--category", default=None)
        parser.add_argument("--max-quantity", type=parse_decimal, default=None)

    return _make_spec("products", "List products.", add_arguments, run_products)


def register_customers_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``customers``."""
    return _make_spec("customers", "List customers.", _add_search, run_customers)


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        _add_search(parser)
        parser.add_argument("--status", choices=[member.value for member in SaleStatus], default=None)

    return _make_spec("sales", "List sales.", add_arguments, run_sales)


def register_purchases_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchases``."""
    return _make_spec("purchases", "List purchases.", _add_search, run_purchases)


def register_movements_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``movements``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        _add_search(parser)
        parser.add_argument("--product-id", default=None)

    return _make_spec("movements", "List stock movements.", add_arguments, run_movements)


def register_low_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``low-stock``."""
    return _make_spec("low-stock", "List products at or below minimum stock.", lambda parser: None, run_low_stock)


def register_stock_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock-report``."""
    return _make_spec("stock-report", "Display stock valuation and alerts.", lambda parser: None, run_stock_report)


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dashboard``."""
    return _make_spec("dashboard", "Display headline numbers for this month and today.", lambda parser: None, run_dashboard)


def _add_date_range(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", type=parse_date, default=None)
    parser.add_argument("--end", type=parse_date, default=None)


def register_sales_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales-report``."""
    return _make_spec("sales-report", "Summarize sales over a date range.", _add_date_range, run_sales_report)


def _add_limit(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--limit", type=int, default=10)


def register_top_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``top-products``."""
    return _make_spec("top-products", "Rank best-selling products.", _add_limit, run_top_products)


def register_top_customers_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``top-customers``."""
    return _make_spec("top-customers", "Rank customers by total spent.", _add_limit, run_top_customers)


def register_cash_flow_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash-flow``."""

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--period",
            choices=[member.value for member in SummaryPeriod],
            default=SummaryPeriod.MONTH.value,
        )

    return _make_spec("cash-flow", "Summarize the cash-flow ledger.", add_arguments, run_cash_flow)


def register_overdue_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``overdue``."""
    return _make_spec("overdue", "List overdue receivables and payables.", lambda parser: None, run_overdue)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations.

    Without ``--config`` the data layer searches upward from the current
    working directory for ``config.ini``.
    """
    target = Path(config_path) if config_path is not None else None
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _format_value(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def print_table(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    """Print ``rows`` as left-aligned columns under ``headers``."""
    text_rows = [[_format_value(value) for value in row] for row in rows]
    widths = [len(header) for header in headers]
    for row in text_rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))
    print("  ".join(header.ljust(widths[index]) for index, header in enumerate(headers)))
    print("  ".join("-" * width for width in widths))
    for row in text_rows:
        print("  ".join(cell.ljust(widths[index]) for index, cell in enumerate(row)))


def print_mapping(values: Mapping[str, Any]) -> None:
    for key, value in values.items():
        print(f"{key}: {_format_value(value)}")


def _print_listing(result: core_logic.ListResult[Any], headers: Sequence[str], row: Callable[[Any], Sequence[Any]]) -> int:
    if result.error:
        print(f"[WARNING] {result.error}" + (" (showing cached data)" if result.stale else ""))
    print_table(headers, (row(record) for record in result))
    return 0


# ---------------------------------------------------------------------------
# Translators and executors
# ---------------------------------------------------------------------------


def translate_sale(args: argparse.Namespace) -> core_logic.CreateSaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.CreateSaleCommand(
        customer_id=args.customer_id,
        items=tuple(args.items),
        payment_method=args.payment_method,
        status=args.status,
        sale_date=args.sale_date,
        notes=args.notes,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.CreatePurchaseCommand:
    """Translate CLI args into a purchase command object."""
    return core_logic.CreatePurchaseCommand(
        supplier=args.supplier,
        items=tuple(args.items),
        payment_method=args.payment_method,
        purchase_date=args.purchase_date,
        notes=args.notes,
    )


def execute_command(context: core_logic.RuntimeContext, command: core_logic.Command) -> Any:
    """Run ``command`` and re-raise its error so the exit code reflects it."""
    result = core_logic.run_command(context, command)
    if not result.ok:
        if result.exception is None:
            raise RuntimeError(result.error or "Command failed")
        raise result.exception
    return result.value


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = inventory.add_product(
        context,
        args.name,
        category=args.category,
        unit=args.unit,
        quantity=args.quantity,
        minimum_stock=args.minimum_stock,
        purchase_price=args.purchase_price,
        sale_price=args.sale_price,
        supplier=args.supplier,
        code=args.code,
        description=args.description,
        is_active=not getattr(args, "inactive", False),
    )
    print(f"Product '{product.name}' registered with id {product.product_id}")
    return 0


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customer = customers.add_customer(
        context,
        args.name,
        nickname=args.nickname,
        phone=args.phone,
        tax_id=args.tax_id,
        email=args.email,
        address=args.address,
        city=args.city,
        state=args.state,
        postal_code=args.postal_code,
        notes=args.notes,
    )
    print(f"Customer '{customer.name}' registered with id {customer.customer_id}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow through the command layer."""
    adjustment = execute_command(context, translate_sale(args))
    sale = adjustment.record
    print(f"Sale #{sale.code} registered with id {sale.sale_id} (total {sale.total})")
    for product_id in adjustment.skipped:
        print(f"[WARNING] Unknown product {product_id}; stock not changed for that item")
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    adjustment = execute_command(context, core_logic.DeleteSaleCommand(sale_id=args.sale_id))
    print(f"Sale #{adjustment.record.code} deleted; {len(adjustment.movements)} item(s) returned to stock")
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase workflow through the command layer."""
    adjustment = execute_command(context, translate_purchase(args))
    purchase = adjustment.record
    print(f"Purchase #{purchase.code} registered with id {purchase.purchase_id} (total {purchase.total})")
    return 0


def run_delete_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    adjustment = execute_command(context, core_logic.DeletePurchaseCommand(purchase_id=args.purchase_id))
    print(f"Purchase #{adjustment.record.code} deleted")
    for name in adjustment.skipped:
        print(f"[WARNING] No product named '{name}'; nothing taken out of stock")
    return 0


def run_adjust_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.AdjustStockCommand(product_id=args.product_id, new_quantity=args.quantity, reason=args.reason)
    adjustment = execute_command(context, command)
    print(f"Product '{adjustment.record.name}' now has {adjustment.record.quantity} on hand")
    return 0


def run_add_receivable(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = finance.add_receivable(
        context,
        args.description,
        args.amount,
        args.due_date,
        customer_id=args.customer_id,
        notes=args.notes,
    )
    print(f"Receivable registered with id {record.receivable_id}")
    return 0


def run_receive(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.ReceivePaymentCommand(
        receivable_id=args.receivable_id,
        amount=args.amount,
        payment_method=args.payment_method,
        received_date=args.received_date,
    )
    record = execute_command(context, command)
    print(f"Receivable {record.receivable_id} is now {record.status} ({record.amount_received} of {record.amount})")
    return 0


def run_add_payable(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = finance.add_payable(
        context,
        args.description,
        args.amount,
        args.due_date,
        supplier=args.supplier,
        category=args.category,
        notes=args.notes,
    )
    print(f"Payable registered with id {record.payable_id}")
    return 0


def run_pay(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.PayBillCommand(
        payable_id=args.payable_id,
        amount=args.amount,
        payment_method=args.payment_method,
        paid_date=args.paid_date,
    )
    record = execute_command(context, command)
    print(f"Payable {record.payable_id} is now {record.status} ({record.amount_paid} of {record.amount})")
    return 0


def run_cash_entry(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = finance.add_cash_flow_entry(
        context,
        args.flow_type,
        args.amount,
        description=args.description,
        category=args.category,
    )
    print(f"Cash-flow entry registered with id {record.entry_id}")
    return 0


def run_products(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = inventory.list_products(
        context,
        search=args.search,
        category=args.category,
        max_quantity=args.max_quantity,
    )
    return _print_listing(
        result,
        ("ID", "Name", "Category", "Qty", "Min", "Sale price"),
        lambda p: (p.product_id, p.name, p.category, p.quantity, p.minimum_stock, p.sale_price),
    )


def run_customers(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return _print_listing(
        customers.list_customers(context, search=args.search),
        ("ID", "Name", "Nickname", "Phone", "Email"),
        lambda c: (c.customer_id, c.name, c.nickname, c.phone, c.email),
    )


def run_sales(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return _print_listing(
        sales.list_sales(context, search=args.search, status=args.status),
        ("ID", "Code", "Date", "Customer", "Status", "Total"),
        lambda s: (s.sale_id, s.code, s.sale_date, s.customer_name, s.status, s.total),
    )


def run_purchases(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return _print_listing(
        purchases.list_purchases(context, search=args.search),
        ("ID", "Code", "Date", "Supplier", "Total"),
        lambda p: (p.purchase_id, p.code, p.purchase_date, p.supplier, p.total),
    )


def run_movements(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    return _print_listing(
        inventory.list_stock_movements(context, product_id=args.product_id, search=args.search),
        ("When", "Product", "Type", "Qty", "Before", "After", "Reason"),
        lambda m: (
            m.created_at,
            m.product_name,
            m.movement_type,
            m.quantity,
            m.previous_quantity,
            m.new_quantity,
            m.reason,
        ),
    )


def run_low_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print_table(
        ("ID", "Name", "Qty", "Min"),
        ((p.product_id, p.name, p.quantity, p.minimum_stock) for p in inventory.list_low_stock(context)),
    )
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = reports.stock_summary(list(inventory.list_products(context)))
    print_mapping(
        {
            "Products": summary["product_count"],
            "Value at sale price": summary["sale_value"],
            "Value at purchase price": summary["purchase_value"],
            "Margin": summary["margin"],
            "Low stock": len(summary["low_stock"]),
            "Out of stock": len(summary["out_of_stock"]),
        }
    )
    return 0


def run_dashboard(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    board = reports.dashboard(
        sales=list(sales.list_sales(context)),
        customers=list(customers.list_customers(context)),
        products=list(inventory.list_products(context)),
        cash_flow=list(finance.list_cash_flow(context)),
        now=core_logic.resolve_timestamp(None),
    )
    print_mapping(
        {
            "Sales this month": board["sales"]["month_count"],
            "Revenue this month": board["sales"]["month_revenue"],
            "Sales today": board["sales"]["day_count"],
            "Revenue today": board["sales"]["day_revenue"],
            "Average ticket": board["sales"]["average_ticket"],
            "Customers": board["customers"]["total"],
            "Active products": board["stock"]["product_count"],
            "Low stock": board["stock"]["low_stock_count"],
            "Stock value": board["stock"]["value"],
            "Month inflows": board["cash_flow"]["inflows"],
            "Month outflows": board["cash_flow"]["outflows"],
            "Month balance": board["cash_flow"]["balance"],
        }
    )
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = reports.sales_period_summary(list(sales.list_sales(context)), args.start, args.end)
    print_mapping(
        {
            "Sales": summary["count"],
            "Total": summary["total"],
            "Average ticket": summary["average_ticket"],
        }
    )
    print_table(("Status", "Count"), sorted(summary["by_status"].items()))
    print_table(("Day", "Total"), summary["by_day"].items())
    return 0


def run_top_products(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    ranking = reports.top_products(list(sales.list_sales(context)), limit=args.limit)
    print_table(
        ("Product", "Qty", "Revenue", "Sales"),
        ((e["product_name"], e["quantity"], e["revenue"], e["times_sold"]) for e in ranking),
    )
    return 0


def run_top_customers(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    ranking = reports.top_customers(list(sales.list_sales(context)), limit=args.limit)
    print_table(
        ("Customer", "Purchases", "Total spent", "Last purchase"),
        ((e["customer_name"], e["purchase_count"], e["total_spent"], e["last_purchase"]) for e in ranking),
    )
    return 0


def run_cash_flow(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = finance.financial_summary(context, args.period)
    print_mapping(
        {
            "Inflows": summary["inflows"],
            "Outflows": summary["outflows"],
            "Balance": summary["balance"],
            "Entries": summary["entry_count"],
        }
    )
    return 0


def run_overdue(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    overdue = finance.overdue_accounts(context)
    rows: List[Sequence[Any]] = [
        ("receivable", r.receivable_id, r.description, r.due_date, r.amount - r.amount_received)
        for r in overdue["receivables"]
    ]
    rows.extend(
        ("payable", p.payable_id, p.description, p.due_date, p.amount - p.amount_paid)
        for p in overdue["payables"]
    )
    print_table(("Kind", "ID", "Description", "Due", "Open amount"), rows)
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, StoreError):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
