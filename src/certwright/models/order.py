"""Order entity, per-order outcome and renewal timing."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from certwright.core.types import OrderStatus

if TYPE_CHECKING:
    from certwright.models.protocol import ProtocolOrderDetails
    from certwright.models.renewal import Renewal
    from certwright.models.target import Target


@dataclass(frozen=True)
class DueDate:
    """Window in which a certificate should be renewed.

    ``source`` records which rule produced ``end``: ``"rd"`` (local
    renewal days), ``"mv"`` (minimum validity floor) or ``"ri"``
    (server renewal information).
    """

    start: datetime
    end: datetime
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DueDate:
        return cls(
            start=datetime.fromisoformat(data["start"]),
            end=datetime.fromisoformat(data["end"]),
            source=data.get("source"),
        )


@dataclass
class Order:
    """One certificate request produced by decomposing a target.

    Orders live only for the duration of a renewal run.
    """

    renewal: Renewal
    target: Target
    cache_key_part: str | None = None
    friendly_name_part: str | None = None
    key_path: str | None = None
    details: ProtocolOrderDetails | None = None

    @property
    def valid(self) -> bool | None:
        """``None`` until submitted, then whether the server considers it valid/ready."""
        if self.details is None:
            return None
        return self.details.status in (OrderStatus.VALID, OrderStatus.READY)

    @property
    def friendly_name_base(self) -> str:
        return self.renewal.friendly_name or self.target.display_name

    @property
    def friendly_name_intermediate(self) -> str:
        if self.friendly_name_part:
            return f"{self.friendly_name_base} [{self.friendly_name_part}]"
        return self.friendly_name_base

    @property
    def name(self) -> str:
        """Stable name used to match results across runs."""
        return self.friendly_name_part or "main"


@dataclass
class OrderResult:
    """Outcome of processing one order in a renewal run."""

    name: str
    expire_date: datetime | None = None
    due_date: DueDate | None = None
    success: bool | None = None
    missing: bool | None = None
    revoked: bool | None = None
    thumbprint: str | None = None
    error_messages: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(
        default_factory=threading.Lock,
        init=False,
        repr=False,
        compare=False,
    )

    def add_error_message(self, message: str | None, fatal: bool = True) -> OrderResult:  # noqa: FBT001, FBT002
        """Record *message* once; a fatal message marks the order failed."""
        with self._lock:
            if message and message not in self.error_messages:
                self.error_messages.append(message)
            if fatal:
                self.success = False
        return self

    def mark_success(self) -> None:
        """Set success unless a failure was already recorded."""
        with self._lock:
            if self.success is not False:
                self.success = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "expire_date": self.expire_date.isoformat() if self.expire_date else None,
            "due_date": self.due_date.to_dict() if self.due_date else None,
            "success": self.success,
            "missing": self.missing,
            "revoked": self.revoked,
            "thumbprint": self.thumbprint,
            "error_messages": list(self.error_messages),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrderResult:
        expire = data.get("expire_date")
        due = data.get("due_date")
        return cls(
            name=data["name"],
            expire_date=datetime.fromisoformat(expire) if expire else None,
            due_date=DueDate.from_dict(due) if due else None,
            success=data.get("success"),
            missing=data.get("missing"),
            revoked=data.get("revoked"),
            thumbprint=data.get("thumbprint"),
            error_messages=list(data.get("error_messages", [])),
        )
