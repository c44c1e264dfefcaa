"""Domain models: identifiers, targets, orders and renewals."""

from certwright.models.identifier import (
    DnsIdentifier,
    EmailIdentifier,
    Identifier,
    IpIdentifier,
    UnknownIdentifier,
    UpnIdentifier,
)
from certwright.models.order import DueDate, Order, OrderResult
from certwright.models.renewal import Renewal, RenewalHistoryEntry, ValidationOptions
from certwright.models.target import MAX_COMMON_NAME, Target, TargetPart

__all__ = [
    "MAX_COMMON_NAME",
    "DnsIdentifier",
    "DueDate",
    "EmailIdentifier",
    "Identifier",
    "IpIdentifier",
    "Order",
    "OrderResult",
    "Renewal",
    "RenewalHistoryEntry",
    "Target",
    "TargetPart",
    "UnknownIdentifier",
    "UpnIdentifier",
    "ValidationOptions",
]
