"""One order per distinct identifier."""

from __future__ import annotations

from typing import TYPE_CHECKING

from certwright.core.types import OrderPluginType
from certwright.models.order import Order
from certwright.models.target import Target, common_name_or_none
from certwright.order.base import MultiOrderPlugin

if TYPE_CHECKING:
    from certwright.models.identifier import Identifier
    from certwright.models.renewal import Renewal


class HostOrderPlugin(MultiOrderPlugin):
    plugin_type = OrderPluginType.HOST

    def split(self, renewal: Renewal, target: Target) -> list[Order]:
        orders: list[Order] = []
        seen: set[Identifier] = set()
        for part in target.parts:
            for identifier in part.identifiers:
                if identifier in seen:
                    continue
                seen.add(identifier)
                host_target = Target(
                    friendly_name=f"[{renewal.display_name}] {identifier.value}",
                    common_name=common_name_or_none(identifier),
                    parts=[part.copy([identifier])],
                )
                orders.append(
                    Order(
                        renewal=renewal,
                        target=host_target,
                        cache_key_part=identifier.value.lower(),
                        friendly_name_part=identifier.value,
                    ),
                )
        return orders
