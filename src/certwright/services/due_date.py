"""Renewal scheduling.

Decides when a certificate must be renewed from its NotAfter, the
``scheduled_task`` policy and an optional server-advertised renewal
window.  Everything here is pure: callers pass ``now`` and persist the
resulting :class:`~certwright.models.order.DueDate` on the order
result for observability.

The window for a certificate is computed as follows:

- ``end`` is NotAfter minus ``renewal_days`` (source ``rd``), pulled
  earlier to NotAfter minus ``renewal_minimum_valid_days`` (``mv``)
  and earlier still to the end of the server window (``ri``);
- ``start`` is ``end`` minus ``renewal_days_range``, pulled earlier to
  the start of the server window;
- each renewal fires at a fixed point inside ``[start, end]`` derived
  from a hash of its key, so a population of certificates spreads its
  renewals across the range.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from certwright.models.order import DueDate

if TYPE_CHECKING:
    from certwright.config.settings import ScheduledTaskSettings
    from certwright.models.protocol import RenewalInfo
    from certwright.models.renewal import Renewal

log = logging.getLogger(__name__)

SOURCE_RENEWAL_DAYS = "rd"
SOURCE_MINIMUM_VALID = "mv"
SOURCE_RENEWAL_INFO = "ri"

_DEFAULT_LIFETIME = timedelta(days=365)


@dataclass(frozen=True)
class RenewalDecision:
    """Outcome of a due check, with the rule that decided it."""

    due: bool
    reason: str
    due_date: DueDate | None = None


class DueDateService:
    """Computes renewal windows and due decisions.

    Parameters
    ----------
    settings:
        ``scheduled_task`` section of the configuration.

    """

    def __init__(self, settings: ScheduledTaskSettings) -> None:
        self.settings = settings

    @property
    def _server_schedule(self) -> bool:
        return not self.settings.renewal_disable_server_schedule

    # -- windows ------------------------------------------------------------

    def compute_due_date(
        self,
        not_after: datetime,
        renewal_info: RenewalInfo | None = None,
    ) -> DueDate:
        """Return the renewal window for a certificate expiring at *not_after*."""
        settings = self.settings
        end = not_after - timedelta(days=settings.renewal_days)
        end_source = SOURCE_RENEWAL_DAYS

        floor = not_after - timedelta(days=settings.renewal_minimum_valid_days)
        if floor < end:
            end, end_source = floor, SOURCE_MINIMUM_VALID

        if self._server_schedule and renewal_info is not None and renewal_info.suggested_window_end < end:
            end, end_source = renewal_info.suggested_window_end, SOURCE_RENEWAL_INFO

        start = end - timedelta(days=settings.renewal_days_range)
        start_source = SOURCE_RENEWAL_DAYS
        if self._server_schedule and renewal_info is not None and renewal_info.suggested_window_start < start:
            start, start_source = renewal_info.suggested_window_start, SOURCE_RENEWAL_INFO

        if start > end:
            start, start_source = end, end_source

        return DueDate(start=start, end=end, source=f"{start_source}-{end_source}")

    @staticmethod
    def trigger_point(due_date: DueDate, key: str) -> datetime:
        """Fixed moment within *due_date* at which the renewal identified by *key* fires."""
        span = due_date.end - due_date.start
        if span <= timedelta(0):
            return due_date.start
        digest = hashlib.sha256(key.encode("utf-8")).digest()
        fraction = int.from_bytes(digest[:8], "big") / 2**64
        return due_date.start + span * fraction

    # -- decisions ----------------------------------------------------------

    def decide(
        self,
        not_after: datetime | None,
        key: str,
        *,
        now: datetime | None = None,
        force: bool = False,
        renewal_info: RenewalInfo | None = None,
    ) -> RenewalDecision:
        """Decide whether the certificate expiring at *not_after* is due.

        Parameters
        ----------
        not_after:
            Expiry of the current certificate, ``None`` when there is none.
        key:
            Stable key of the renewal/order, used to spread renewals.
        now:
            Current time (UTC).  Defaults to :func:`datetime.now`.
        force:
            Renew regardless of any window.
        renewal_info:
            Server-advertised window, ignored when
            ``renewal_disable_server_schedule`` is set.

        """
        now = now or datetime.now(UTC)
        if not_after is None:
            return RenewalDecision(due=True, reason="no certificate")

        due_date = self.compute_due_date(not_after, renewal_info)
        if force:
            return RenewalDecision(due=True, reason="forced", due_date=due_date)

        remaining = not_after - now
        if remaining <= timedelta(days=self.settings.renewal_minimum_valid_days):
            log.info("Certificate expires in %s, below the minimum validity", remaining)
            return RenewalDecision(due=True, reason="minimum validity", due_date=due_date)

        if self._server_schedule and renewal_info is not None:
            if renewal_info.explanation_url:
                log.warning("Schedule modified due to incident: %s", renewal_info.explanation_url)
            if now >= renewal_info.suggested_window_start:
                return RenewalDecision(due=True, reason="server renewal window", due_date=due_date)

        trigger = self.trigger_point(due_date, key)
        if now >= trigger:
            return RenewalDecision(due=True, reason="renewal window", due_date=due_date)

        log.debug("Not due before %s (window %s - %s)", trigger, due_date.start, due_date.end)
        return RenewalDecision(due=False, reason="not yet due", due_date=due_date)

    # -- history ------------------------------------------------------------

    def static_due_date(self, renewal: Renewal) -> DueDate | None:
        """Due date derived from the renewal's stored history.

        For each order name (case-insensitive) the latest non-failed
        result counts.  Orders whose latest result reports the
        certificate missing are no longer part of the renewal and are
        left out.  Returns ``None`` when the renewal is due now: no
        current order remains, or one of them reports its certificate
        revoked.  Otherwise the window with the earliest start is
        returned.
        """
        latest: dict[str, DueDate] = {}
        missing: set[str] = set()
        revoked: set[str] = set()
        for entry in sorted(renewal.history, key=lambda h: h.date):
            for result in entry.order_results:
                if result.success is False:
                    continue
                key = result.name.lower()
                due_date = result.due_date
                if due_date is None:
                    expires = result.expire_date or entry.date + _DEFAULT_LIFETIME
                    due_date = self.compute_due_date(expires)
                latest[key] = due_date
                for flag, names in ((result.missing, missing), (result.revoked, revoked)):
                    if flag:
                        names.add(key)
                    else:
                        names.discard(key)

        current = {key: due_date for key, due_date in latest.items() if key not in missing}
        if not current or revoked & current.keys():
            return None
        return min(current.values(), key=lambda d: d.start)

    def is_renewal_due(self, renewal: Renewal, now: datetime | None = None) -> bool:
        due_date = self.static_due_date(renewal)
        if due_date is None:
            return True
        return self.trigger_point(due_date, renewal.id) <= (now or datetime.now(UTC))
