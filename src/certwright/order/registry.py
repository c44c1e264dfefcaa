"""Order strategy registry.

Maps :class:`~certwright.core.types.OrderPluginType` keys to factories.
Built-in strategies are registered at import time; there is no runtime
discovery.

Usage::

    from certwright.order.registry import OrderPluginRegistry

    registry = OrderPluginRegistry(domain_parser)
    plugin = registry.get(OrderPluginType.DOMAIN)
    orders = registry.split(renewal)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from certwright.core.errors import ConfigurationError
from certwright.core.types import OrderPluginType
from certwright.order.domain import DomainOrderPlugin
from certwright.order.host import HostOrderPlugin
from certwright.order.single import SingleOrderPlugin
from certwright.order.site import SiteOrderPlugin

if TYPE_CHECKING:
    from certwright.models.order import Order
    from certwright.models.renewal import Renewal
    from certwright.order.base import OrderPlugin
    from certwright.services.domain_parse import DomainParseService

log = logging.getLogger(__name__)

_BUILTIN_PLUGINS: dict[OrderPluginType, Callable[[DomainParseService], OrderPlugin]] = {
    OrderPluginType.SINGLE: lambda _parser: SingleOrderPlugin(),
    OrderPluginType.SITE: lambda _parser: SiteOrderPlugin(),
    OrderPluginType.HOST: lambda _parser: HostOrderPlugin(),
    OrderPluginType.DOMAIN: DomainOrderPlugin,
}


class OrderPluginRegistry:
    """Registry of decomposition strategies.

    Parameters
    ----------
    domain_parser:
        Public-suffix collaborator handed to strategies that need it.

    """

    def __init__(self, domain_parser: DomainParseService) -> None:
        self._domain_parser = domain_parser
        self._plugins: dict[OrderPluginType, OrderPlugin] = {}

    def get(self, plugin_type: OrderPluginType | str) -> OrderPlugin:
        """Return the strategy for *plugin_type*.

        Raises
        ------
        ConfigurationError
            If the key is unknown.

        """
        try:
            key = OrderPluginType(plugin_type)
        except ValueError as exc:
            msg = f"Unknown order plugin '{plugin_type}'"
            raise ConfigurationError(msg) from exc
        plugin = self._plugins.get(key)
        if plugin is None:
            plugin = _BUILTIN_PLUGINS[key](self._domain_parser)
            self._plugins[key] = plugin
        return plugin

    def split(self, renewal: Renewal) -> list[Order]:
        """Decompose the renewal's target with its configured strategy.

        Raises
        ------
        ConfigurationError
            If the strategy is disabled for this target.

        """
        plugin = self.get(renewal.order_plugin)
        state = plugin.capability(renewal.target)
        if state.disabled:
            msg = f"Order plugin '{plugin.plugin_type}' cannot be used: {state.reason}"
            raise ConfigurationError(msg)
        orders = plugin.split(renewal, renewal.target)
        log.debug(
            "Split renewal %s into %d order(s) using %s",
            renewal.id,
            len(orders),
            plugin.plugin_type,
        )
        return orders
