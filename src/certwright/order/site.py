"""One order per originating site."""

from __future__ import annotations

from typing import TYPE_CHECKING

from certwright.core.state import State
from certwright.core.types import OrderPluginType
from certwright.models.order import Order
from certwright.models.target import Target, TargetPart, common_name_or_none
from certwright.order.base import MultiOrderPlugin

if TYPE_CHECKING:
    from certwright.models.renewal import Renewal

NO_SITE_REASON = "No site information included in source"


class SiteOrderPlugin(MultiOrderPlugin):
    """Group target parts by ``site_id``.

    Parts without site information are collected into one order keyed
    ``"0"``.
    """

    plugin_type = OrderPluginType.SITE

    def capability(self, target: Target) -> State:
        state = super().capability(target)
        if state.disabled:
            return state
        if not any((part.site_id or 0) > 0 for part in target.parts):
            return State.disabled_state(NO_SITE_REASON)
        return state

    def split(self, renewal: Renewal, target: Target) -> list[Order]:
        groups: dict[int, list[TargetPart]] = {}
        for part in target.parts:
            groups.setdefault(part.site_id or 0, []).append(part.copy())

        orders: list[Order] = []
        for site_id, parts in groups.items():
            site_target = Target(
                friendly_name=f"[{renewal.display_name}] site {site_id}",
                common_name=None,
                parts=parts,
            )
            identifiers = site_target.get_identifiers(unicode=False)
            cn = target.common_name if target.common_name in identifiers else None
            site_target.common_name = cn or common_name_or_none(identifiers[0] if identifiers else None)
            orders.append(
                Order(
                    renewal=renewal,
                    target=site_target,
                    cache_key_part=str(site_id),
                    friendly_name_part=f"site {site_id}",
                ),
            )
        return orders
