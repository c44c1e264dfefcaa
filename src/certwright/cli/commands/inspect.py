"""Inspect subcommand: dump stored state for debugging.

Usage::

    certwright -c config.yaml inspect renewal <id>
"""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from certwright.cli.main import print_json
from certwright.services.due_date import DueDateService
from certwright.storage.renewal_store import RenewalStore

if TYPE_CHECKING:
    import argparse

    from certwright.config import CertwrightConfig


def run_inspect(config: CertwrightConfig, args: argparse.Namespace) -> None:
    """Dispatch to the appropriate inspect sub-handler."""
    sub = getattr(args, "inspect_command", None)
    if sub == "renewal":
        _inspect_renewal(config, args.resource_id)
    else:
        sys.exit(1)


def _inspect_renewal(config: CertwrightConfig, resource_id: str) -> None:
    """Print the renewal document plus its computed due date."""
    settings = config.settings
    renewal = RenewalStore(settings.client.configuration_path).load(resource_id)
    if renewal is None:
        sys.stderr.write(f"certwright: error: renewal {resource_id} not found\n")
        sys.exit(1)

    due_dates = DueDateService(settings.scheduled_task)
    due_date = due_dates.static_due_date(renewal)
    result = renewal.to_dict()
    result["identifiers"] = [i.value for i in renewal.target.get_identifiers(unicode=True)]
    result["due_date"] = due_date.to_dict() if due_date else None
    result["due"] = due_dates.is_renewal_due(renewal, datetime.now(UTC))
    print_json(result)
