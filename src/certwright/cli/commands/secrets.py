"""Secrets subcommand: manage the JSON secret vault.

Usage::

    echo -n "s3cret" | certwright -c config.yaml secrets set dns-key
    certwright -c config.yaml secrets list
    certwright -c config.yaml secrets delete dns-key

Values are read from stdin so they never appear in the process list or
shell history.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from certwright.cli.main import print_json
from certwright.services.secrets import SecretService

if TYPE_CHECKING:
    import argparse

    from certwright.config import CertwrightConfig


def run_secrets(config: CertwrightConfig, args: argparse.Namespace) -> None:
    """Dispatch to the appropriate secrets sub-handler."""
    sub = getattr(args, "secrets_command", None)
    service = SecretService(config.settings.secrets)

    if sub == "set":
        value = sys.stdin.read().rstrip("\r\n")
        if not value:
            sys.stderr.write("certwright: error: no secret value on stdin\n")
            sys.exit(1)
        print_json({"key": args.key, "reference": service.put_secret(args.key, value)})
    elif sub == "list":
        print_json(service.list_keys())
    elif sub == "delete":
        if not service.delete_secret(args.key):
            sys.stderr.write(f"certwright: error: secret {args.key} not found\n")
            sys.exit(1)
        print_json({"key": args.key, "deleted": True})
    else:
        sys.exit(1)
