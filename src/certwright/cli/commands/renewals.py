"""Renewals subcommand: list stored renewals and their due dates.

Usage::

    certwright -c config.yaml renewals list
    certwright -c config.yaml renewals due
"""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from certwright.cli.main import print_json
from certwright.services.due_date import DueDateService
from certwright.storage.renewal_store import RenewalStore

if TYPE_CHECKING:
    import argparse

    from certwright.config import CertwrightConfig
    from certwright.models.renewal import Renewal


def run_renewals(config: CertwrightConfig, args: argparse.Namespace) -> None:
    """Dispatch to the appropriate renewals sub-handler."""
    sub = getattr(args, "renewals_command", None)
    settings = config.settings
    store = RenewalStore(settings.client.configuration_path)
    due_dates = DueDateService(settings.scheduled_task)
    now = datetime.now(UTC)

    if sub == "list":
        print_json([summarize(r, due_dates, now) for r in store.iter_renewals()])
    elif sub == "due":
        print_json([summarize(r, due_dates, now) for r in store.iter_renewals() if due_dates.is_renewal_due(r, now)])
    else:
        sys.exit(1)


def summarize(renewal: Renewal, due_dates: DueDateService, now: datetime) -> dict[str, Any]:
    due_date = due_dates.static_due_date(renewal)
    last = renewal.last_result
    return {
        "id": renewal.id,
        "name": renewal.display_name,
        "order_plugin": renewal.order_plugin.value,
        "validation": renewal.validation.plugin,
        "due": due_dates.is_renewal_due(renewal, now),
        "due_date": due_date.to_dict() if due_date else None,
        "last_run": last.date.isoformat() if last else None,
        "last_success": last.success if last else None,
    }
