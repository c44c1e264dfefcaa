"""DNS-01 validation by an operator creating records by hand.

The record to create is shown through the injected
:class:`~certwright.services.input.InputService`; the dispatcher's
propagation check then runs interactively (retry / ignore / abort).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from certwright.challenge.base import ChallengeError
from certwright.challenge.dns import DnsValidation
from certwright.core.errors import ConfigurationError
from certwright.core.types import Parallelism

if TYPE_CHECKING:
    from certwright.challenge.base import BackendServices
    from certwright.challenge.dns import DnsValidationRecord

log = logging.getLogger(__name__)


class ManualDnsValidation(DnsValidation):
    key = "manual"
    parallelism = Parallelism.ANSWER
    interactive = True

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        if services.input is None:
            msg = "Manual validation requires an interactive session"
            raise ConfigurationError(msg)
        self._input = services.input

    def create_record(self, record: DnsValidationRecord) -> bool:
        self._input.show("Domain", record.context.identifier.value)
        self._input.show("Record", record.name)
        self._input.show("Type", "TXT")
        self._input.show("Content", f'"{record.value}"')
        self._input.show("Note", "Some DNS managers add quotes automatically")
        if not self._input.wait("Please press <Enter> after you've created and verified the record"):
            msg = f"{record.context.label} Record creation cancelled by user"
            raise ChallengeError(msg)
        return True

    def delete_record(self, record: DnsValidationRecord) -> None:
        self._input.show("Domain", record.context.identifier.value)
        self._input.show("Record", record.name)
        self._input.show("Type", "TXT")
        self._input.show("Content", f'"{record.value}"')
        self._input.wait("Please press <Enter> after you've deleted the record")
        log.info("%s Operator confirmed removal of %s", record.context.label, record.name)
