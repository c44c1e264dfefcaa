"""One order per registrable domain (eTLD+1).

Identifiers are grouped by registrable domain; within a group, target
parts are merged by ``site_id`` so each order keeps the origin
information of the identifiers it covers.  Iteration follows the
target's declaration order, which makes the result deterministic.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from certwright.core.types import OrderPluginType
from certwright.models.identifier import DnsIdentifier
from certwright.models.order import Order
from certwright.models.target import Target, TargetPart, common_name_or_none
from certwright.order.base import MultiOrderPlugin

if TYPE_CHECKING:
    from certwright.models.identifier import Identifier
    from certwright.models.renewal import Renewal
    from certwright.services.domain_parse import DomainParseService

log = logging.getLogger(__name__)


class DomainOrderPlugin(MultiOrderPlugin):
    """Split a target by registrable domain.

    Parameters
    ----------
    domain_parser:
        Public-suffix collaborator providing
        :meth:`~certwright.services.domain_parse.DomainParseService.get_registerable_domain`.

    """

    plugin_type = OrderPluginType.DOMAIN

    def __init__(self, domain_parser: DomainParseService) -> None:
        self._domain_parser = domain_parser

    def _domain_of(self, identifier: Identifier) -> str:
        if isinstance(identifier, DnsIdentifier):
            return self._domain_parser.get_registerable_domain(identifier.base_name.lstrip("."))
        log.warning(
            "Unsupported identifier type %s for domain split, using %s as its own domain",
            identifier.type,
            identifier.value,
        )
        return identifier.value

    def split(self, renewal: Renewal, target: Target) -> list[Order]:
        groups: dict[str, Target] = {}
        for part in target.parts:
            for identifier in part.identifiers:
                domain = self._domain_of(identifier)
                key = domain.lower()
                group = groups.get(key)
                if group is None:
                    groups[key] = Target(
                        friendly_name=f"[{renewal.display_name}] {domain}",
                        common_name=common_name_or_none(identifier),
                        parts=[part.copy([identifier])],
                    )
                    continue
                self._merge(group, part, identifier)

        return [
            Order(
                renewal=renewal,
                target=domain_target,
                cache_key_part=key,
                friendly_name_part=key,
            )
            for key, domain_target in groups.items()
        ]

    @staticmethod
    def _merge(group: Target, source: TargetPart, identifier: Identifier) -> None:
        for existing in group.parts:
            if existing.site_id == source.site_id:
                existing.add(identifier)
                return
        group.parts.append(source.copy([identifier]))
