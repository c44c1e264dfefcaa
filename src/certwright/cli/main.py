"""certwright command-line entry point.

Usage::

    certwright -c /etc/certwright/config.yaml --validate-only
    certwright -c config.yaml renewals list
    certwright -c config.yaml renewals due
    certwright -c config.yaml inspect renewal <id>
    echo -n "s3cret" | certwright -c config.yaml secrets set dns-key
    python -m certwright -c config.yaml renewals list
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from certwright.config import CertwrightConfig

log = logging.getLogger(__name__)


def _get_version() -> str:
    from certwright import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certwright",
        description="certwright: certificate lifecycle orchestration",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # renewals
    renewals_parser = subparsers.add_parser("renewals", help="List stored renewals")
    renewals_sub = renewals_parser.add_subparsers(dest="renewals_command")
    renewals_sub.add_parser("list", help="List every renewal with its due date")
    renewals_sub.add_parser("due", help="List renewals that are due now")

    # inspect
    inspect_parser = subparsers.add_parser("inspect", help="Inspect stored state")
    inspect_sub = inspect_parser.add_subparsers(dest="inspect_command")
    renewal_parser = inspect_sub.add_parser("renewal", help="Inspect a renewal by id")
    renewal_parser.add_argument("resource_id", help="The renewal id to inspect")

    # secrets
    secrets_parser = subparsers.add_parser("secrets", help="Manage the secret vault")
    secrets_sub = secrets_parser.add_subparsers(dest="secrets_command")
    set_parser = secrets_sub.add_parser("set", help="Store a secret read from stdin")
    set_parser.add_argument("key", help="Vault key")
    secrets_sub.add_parser("list", help="List vault keys")
    delete_parser = secrets_sub.add_parser("delete", help="Remove a secret")
    delete_parser.add_argument("key", help="Vault key")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    sys.stderr.write(f"certwright: error: {message}\n")


def print_json(data: Any) -> None:
    """Write *data* to stdout as indented JSON."""
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, runs the subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- resolve config path ---
    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    try:
        from certwright.config import CertwrightConfig, ConfigValidationError

        config = CertwrightConfig(config_file=str(config_path))
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with the configured handlers ---
    from certwright.logging import configure_logging

    configure_logging(config.settings.logging)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command
    try:
        if command == "renewals":
            from certwright.cli.commands.renewals import run_renewals

            run_renewals(config, args)
        elif command == "inspect":
            from certwright.cli.commands.inspect import run_inspect

            run_inspect(config, args)
        elif command == "secrets":
            from certwright.cli.commands.secrets import run_secrets

            run_secrets(config, args)
        else:
            parser.print_help(sys.stderr)
            sys.exit(2)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(str(exc))
        sys.exit(1)


def _print_settings_summary(config: CertwrightConfig) -> None:
    """Print a short summary of the loaded configuration."""
    settings = config.settings
    print_json(
        {
            "config": str(config.source),
            "configuration_path": settings.client.configuration_path,
            "cache_path": settings.client.cache_path,
            "renewal_days": settings.scheduled_task.renewal_days,
            "renewal_minimum_valid_days": settings.scheduled_task.renewal_minimum_valid_days,
            "default_order_plugin": settings.order.default_plugin,
            "multithreading": not settings.validation.disable_multithreading,
            "prevalidate_dns": settings.validation.prevalidate_dns,
        },
    )
