"""Persistent renewal record and its execution history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from certwright.core.types import ChallengeType, OrderPluginType
from certwright.models.order import OrderResult
from certwright.models.target import Target


@dataclass(frozen=True)
class ValidationOptions:
    """Which validation backend answers challenges, and how.

    ``config`` holds backend-specific options; credential values in it
    are secret references resolved at run time, never plain secrets.
    """

    plugin: str
    challenge_type: ChallengeType | None = None
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def group_key(self) -> tuple[str, str | None, str]:
        return (self.plugin, self.challenge_type, repr(sorted(self.config.items())))

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin": self.plugin,
            "challenge_type": self.challenge_type.value if self.challenge_type else None,
            "config": dict(self.config),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationOptions:
        ctype = data.get("challenge_type")
        return cls(
            plugin=data["plugin"],
            challenge_type=ChallengeType(ctype) if ctype else None,
            config=dict(data.get("config") or {}),
        )


@dataclass
class RenewalHistoryEntry:
    date: datetime
    success: bool | None
    order_results: list[OrderResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "success": self.success,
            "order_results": [r.to_dict() for r in self.order_results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RenewalHistoryEntry:
        return cls(
            date=datetime.fromisoformat(data["date"]),
            success=data.get("success"),
            order_results=[OrderResult.from_dict(r) for r in data.get("order_results", [])],
        )


@dataclass
class Renewal:
    """A user-declared certificate to keep issued and renewed."""

    target: Target
    validation: ValidationOptions
    id: str = field(default_factory=lambda: uuid4().hex[:16])
    friendly_name: str | None = None
    order_plugin: OrderPluginType = OrderPluginType.SINGLE
    reuse_private_key: bool = False
    history: list[RenewalHistoryEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.target.display_name

    @property
    def last_result(self) -> RenewalHistoryEntry | None:
        return self.history[-1] if self.history else None

    def record(self, order_results: list[OrderResult], when: datetime | None = None) -> RenewalHistoryEntry:
        """Append the outcome of a run to the history."""
        success = all(r.success is not False for r in order_results) if order_results else None
        entry = RenewalHistoryEntry(
            date=when or datetime.now(UTC),
            success=success,
            order_results=list(order_results),
        )
        self.history.append(entry)
        return entry

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "friendly_name": self.friendly_name,
            "target": self.target.to_dict(),
            "validation": self.validation.to_dict(),
            "order_plugin": self.order_plugin.value,
            "reuse_private_key": self.reuse_private_key,
            "created_at": self.created_at.isoformat(),
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Renewal:
        return cls(
            id=data["id"],
            friendly_name=data.get("friendly_name"),
            target=Target.from_dict(data["target"]),
            validation=ValidationOptions.from_dict(data["validation"]),
            order_plugin=OrderPluginType(data.get("order_plugin", OrderPluginType.SINGLE)),
            reuse_private_key=data.get("reuse_private_key", False),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(UTC),
            history=[RenewalHistoryEntry.from_dict(h) for h in data.get("history", [])],
        )
