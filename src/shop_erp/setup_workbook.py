"""Utility for initializing the Shop ERP data workbook.

The module doubles as a script (``python -m shop_erp.setup_workbook``) and as
a library used by tests. It can also write a starter ``config.ini`` so a new
installation only needs one command.
"""

from __future__ import annotations

import argparse
import configparser
from pathlib import Path
from typing import Sequence
import sys

from . import data_manager
from .constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    EXPECTED_SCHEMA_VERSION,
    ProductMatchMode,
)


CONFIG_FILE = data_manager.CONFIG_FILE_NAME
DEFAULT_DATA_FILE = "shop_data.xlsx"
DEFAULT_BUSINESS_NAME = "My Shop"


def write_default_config(
    config_path: Path,
    *,
    data_file: str = DEFAULT_DATA_FILE,
    business_name: str = DEFAULT_BUSINESS_NAME,
    overwrite: bool = False,
) -> Path:
    """Write a ``config.ini`` holding every supported option.

    Raises:
        FileExistsError: If ``config_path`` exists and ``overwrite`` is false.
    """

    config_path = config_path.expanduser().resolve()
    if config_path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing configuration: {config_path}")

    parser = configparser.ConfigParser()
    # Keep option names in the CamelCase used throughout the documentation.
    parser.optionxform = str  # type: ignore[assignment]
    parser["System"] = {
        "DataFile": data_file,
        "BusinessName": business_name,
        "SchemaVersion": EXPECTED_SCHEMA_VERSION,
    }
    parser["Stock"] = {"PurchaseProductMatch": ProductMatchMode.NAME.value}
    parser["Cache"] = {"ListTTLSeconds": str(DEFAULT_CACHE_TTL_SECONDS)}
    parser["Network"] = {
        "RetryAttempts": str(DEFAULT_RETRY_ATTEMPTS),
        "RetryDelaySeconds": str(DEFAULT_RETRY_DELAY_SECONDS),
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    return config_path


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``DataFile`` in ``config_path``."""

    config_path = config_path.expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return data_manager.create_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the Shop ERP data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter configuration file first when none exists.",
    )
    parser.add_argument(
        "--business-name",
        default=DEFAULT_BUSINESS_NAME,
        help="Business name stored in a newly written configuration file.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Shop ERP Setup ---")
    if args.init_config and not config_path.exists():
        write_default_config(config_path, business_name=args.business_name)
        print(f"Wrote configuration: {config_path}")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except (KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created data workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
