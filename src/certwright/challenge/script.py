"""DNS-01 validation through operator-supplied scripts.

Configuration keys:

- ``create_script``: executable that creates the TXT record
- ``delete_script``: executable that deletes it (defaults to
  ``create_script``)
- ``create_arguments`` / ``delete_arguments``: argument templates
- ``parallelism``: capability bitset the scripts can cope with
  (``0``-``7``, default ``0``)
- ``script_timeout``: seconds before a script is killed (default 600)

Argument templates may use ``{Identifier}``, ``{RecordName}``,
``{Token}``, ``{ZoneName}`` and ``{NodeName}`` as well as secret
references such as ``{vault://json/mykey}``.  Resolved secrets are
censored in log output.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import TYPE_CHECKING, Any

from certwright.challenge.base import ChallengeError
from certwright.challenge.dns import DnsValidation
from certwright.challenge.zones import APEX, relative_record_name
from certwright.core.errors import ConfigurationError
from certwright.core.types import Parallelism
from certwright.logging.sanitize import censor

if TYPE_CHECKING:
    from certwright.challenge.base import BackendServices
    from certwright.challenge.dns import DnsValidationRecord

log = logging.getLogger(__name__)

DEFAULT_CREATE_ARGUMENTS = "create {Identifier} {RecordName} {Token}"
DEFAULT_DELETE_ARGUMENTS = "delete {Identifier} {RecordName} {Token}"
_DEFAULT_TIMEOUT = 600
_ALL_FLAGS = int(Parallelism.ANSWER | Parallelism.PREPARE | Parallelism.REUSE)


class ScriptDnsValidation(DnsValidation):
    key = "script"

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        self._create_script = options.get("create_script")
        if not self._create_script:
            msg = "script validation requires 'create_script'"
            raise ConfigurationError(msg)
        self._delete_script = options.get("delete_script") or self._create_script
        self._create_arguments = options.get("create_arguments", DEFAULT_CREATE_ARGUMENTS)
        self._delete_arguments = options.get("delete_arguments", DEFAULT_DELETE_ARGUMENTS)
        self._timeout = options.get("script_timeout", _DEFAULT_TIMEOUT)
        raw = options.get("parallelism", 0)
        try:
            value = int(raw)
        except (TypeError, ValueError):
            value = -1
        if not 0 <= value <= _ALL_FLAGS:
            msg = f"Invalid script parallelism {raw!r}"
            raise ConfigurationError(msg)
        self.parallelism = Parallelism(value)

    def create_record(self, record: DnsValidationRecord) -> bool:
        self._run(self._create_script, self._create_arguments, record)
        return True

    def delete_record(self, record: DnsValidationRecord) -> None:
        self._run(self._delete_script, self._delete_arguments, record)

    # -- helpers ------------------------------------------------------------

    def _replacements(self, record: DnsValidationRecord) -> dict[str, str]:
        zone = record.authority.zone or self.services.domain_parser.get_registerable_domain(
            record.name,
        )
        try:
            node = relative_record_name(zone, record.name)
        except LookupError:
            node = APEX
        return {
            "Identifier": record.context.identifier.value,
            "RecordName": record.name,
            "Token": record.value,
            "ZoneName": zone,
            "NodeName": node,
        }

    def _render(self, template: str, record: DnsValidationRecord) -> tuple[list[str], str]:
        text = template
        for name, value in self._replacements(record).items():
            text = text.replace(f"{{{name}}}", value)
        resolved, secrets = self.services.secrets.evaluate_inline(text)
        return shlex.split(resolved), censor(resolved, secrets)

    def _run(self, script: str, template: str, record: DnsValidationRecord) -> None:
        args, censored = self._render(template, record)
        log.info("%s Running %s %s", record.context.label, script, censored)
        try:
            proc = subprocess.run(  # noqa: S603
                [script, *args],
                check=True,
                timeout=self._timeout,
                capture_output=True,
                text=True,
            )
        except subprocess.CalledProcessError as exc:
            msg = f"Script {script} exited with code {exc.returncode}"
            raise ChallengeError(msg) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"Script {script} timed out after {self._timeout}s"
            raise ChallengeError(msg, retryable=True) from exc
        except OSError as exc:
            msg = f"Script {script} could not be started: {exc}"
            raise ChallengeError(msg) from exc
        if proc.stdout:
            log.debug("%s Script output: %s", record.context.label, proc.stdout.strip())
