"""One order covering the whole target."""

from __future__ import annotations

from typing import TYPE_CHECKING

from certwright.core.types import OrderPluginType
from certwright.models.order import Order
from certwright.models.target import Target
from certwright.order.base import OrderPlugin

if TYPE_CHECKING:
    from certwright.models.renewal import Renewal


class SingleOrderPlugin(OrderPlugin):
    plugin_type = OrderPluginType.SINGLE

    def split(self, renewal: Renewal, target: Target) -> list[Order]:
        copy = Target(
            friendly_name=target.friendly_name,
            common_name=target.common_name,
            parts=[part.copy() for part in target.parts],
            user_csr_bytes=target.user_csr_bytes,
            private_key_path=target.private_key_path,
        )
        return [Order(renewal=renewal, target=copy)]
