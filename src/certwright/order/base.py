"""Abstract base class for order decomposition strategies.

A strategy turns one :class:`~certwright.models.target.Target` into
the list of :class:`~certwright.models.order.Order` objects to request.
Every order must receive its own copies of the target parts it needs;
orders are validated concurrently and must never share mutable state.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, ClassVar

from certwright.core.state import ENABLED, State

if TYPE_CHECKING:
    from certwright.core.types import OrderPluginType
    from certwright.models.order import Order
    from certwright.models.renewal import Renewal
    from certwright.models.target import Target

log = logging.getLogger(__name__)

CSR_SPLIT_REASON = "Renewals sourced from a custom CSR cannot be split up"


class OrderPlugin(abc.ABC):
    """Base class for all decomposition strategies."""

    plugin_type: ClassVar[OrderPluginType]

    def capability(self, target: Target) -> State:  # noqa: ARG002
        """Whether this strategy may be used for *target*."""
        return ENABLED

    @abc.abstractmethod
    def split(self, renewal: Renewal, target: Target) -> list[Order]:
        """Decompose *target* into orders."""


class MultiOrderPlugin(OrderPlugin):
    """Strategy that may produce more than one order per target."""

    def capability(self, target: Target) -> State:
        if target.user_csr_bytes is not None:
            return State.disabled_state(CSR_SPLIT_REASON)
        return ENABLED
