"""Renewal execution.

:class:`RenewalExecutor` runs one renewal end to end::

    split target into orders
    for each order:
        consult certificate cache + scheduler -> skip when not due
        submit order -> validate identifiers -> build CSR -> finalize
        cache certificate and key
    record history, persist renewal

It never raises to its caller: every failure, including unexpected
exceptions, becomes an error message on an
:class:`~certwright.models.order.OrderResult`.  An interrupted durable
write is the one failure that stops the remaining orders of the run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from certwright.core.errors import CertwrightError, ConfigurationError, PersistenceError
from certwright.core.types import IdentifierType, OrderStatus, ProtocolIdentifierType
from certwright.logging import log_context
from certwright.models.order import OrderResult
from certwright.models.protocol import ProtocolIdentifier
from certwright.services.validation import RunControl

if TYPE_CHECKING:
    import threading

    from certwright.config.settings import CertwrightSettings
    from certwright.models.order import Order
    from certwright.models.protocol import RenewalInfo
    from certwright.models.renewal import Renewal
    from certwright.models.target import Target
    from certwright.order.registry import OrderPluginRegistry
    from certwright.protocol.base import AcmeClient, IssuedCertificate
    from certwright.services.csr import CsrService
    from certwright.services.due_date import DueDateService
    from certwright.services.validation import ValidationDispatcher
    from certwright.storage.cache import CertificateCache
    from certwright.storage.renewal_store import RenewalStore

log = logging.getLogger(__name__)

_FINAL_ORDER_STATES = (OrderStatus.READY, OrderStatus.VALID)


def protocol_identifiers(target: Target) -> list[ProtocolIdentifier]:
    """Wire identifiers for every identifier of *target*.

    Raises
    ------
    ConfigurationError
        If an identifier type cannot be ordered.

    """
    result = []
    for identifier in target.get_identifiers(unicode=False):
        if identifier.type == IdentifierType.DNS_NAME:
            result.append(ProtocolIdentifier(ProtocolIdentifierType.DNS, identifier.value))
        elif identifier.type == IdentifierType.IP_ADDRESS:
            result.append(ProtocolIdentifier(ProtocolIdentifierType.IP, identifier.value))
        else:
            msg = f"Identifier {identifier.value} of type {identifier.type} cannot be ordered"
            raise ConfigurationError(msg)
    return result


class RenewalExecutor:
    """Executes renewals against a protocol collaborator.

    Parameters
    ----------
    client:
        Protocol collaborator.
    settings:
        Full configuration.
    orders:
        Target decomposition strategies.
    validation:
        Dispatcher proving control of identifiers.
    due_dates:
        Renewal scheduler.
    csr:
        Key and CSR generation.
    cache:
        Certificate and key cache.
    store:
        Renewal persistence.

    """

    def __init__(
        self,
        client: AcmeClient,
        settings: CertwrightSettings,
        *,
        orders: OrderPluginRegistry,
        validation: ValidationDispatcher,
        due_dates: DueDateService,
        csr: CsrService,
        cache: CertificateCache,
        store: RenewalStore,
    ) -> None:
        self._client = client
        self._settings = settings
        self._orders = orders
        self._validation = validation
        self._due_dates = due_dates
        self._csr = csr
        self._cache = cache
        self._store = store

    def execute(
        self,
        renewal: Renewal,
        *,
        force: bool = False,
        force_validation: bool = False,
        cancel: threading.Event | None = None,
    ) -> list[OrderResult]:
        """Run *renewal* and return one result per order.

        Orders that are not due produce a result with ``success`` left
        ``None``; when no order ran, the history is not updated.
        """
        control = RunControl.with_time_limit(self._settings.scheduled_task.execution_time_limit, cancel)
        with log_context(renewal_id=renewal.id):
            log.info("Executing renewal %s", renewal.display_name)
            results = self._run_orders(renewal, control, force=force, force_validation=force_validation)

            if all(r.success is None for r in results):
                log.info("Renewal %s is not due", renewal.display_name)
                return results

            entry = renewal.record(results)
            try:
                self._store.save(renewal)
            except PersistenceError as exc:
                log.critical("Unable to save renewal %s: %s", renewal.id, exc)
                for result in results:
                    result.add_error_message(f"Unable to save renewal: {exc}")
                entry.success = False
            if entry.success:
                log.info("Renewal %s succeeded", renewal.display_name)
            else:
                log.error("Renewal %s failed", renewal.display_name)
        return results

    # -- orders -------------------------------------------------------------

    def _run_orders(
        self,
        renewal: Renewal,
        control: RunControl,
        *,
        force: bool,
        force_validation: bool,
    ) -> list[OrderResult]:
        try:
            orders = self._orders.split(renewal)
        except CertwrightError as exc:
            log.error("Unable to split renewal %s into orders: %s", renewal.id, exc)
            return [OrderResult(name="main").add_error_message(str(exc))]

        results: list[OrderResult] = []
        for index, order in enumerate(orders):
            result = OrderResult(name=order.name)
            results.append(result)
            try:
                self._process(order, result, control, force=force, force_validation=force_validation)
            except PersistenceError as exc:
                log.critical("Stopping run of %s: %s", renewal.id, exc)
                result.add_error_message(str(exc))
                for skipped in orders[index + 1 :]:
                    results.append(
                        OrderResult(name=skipped.name).add_error_message("Not processed due to earlier failure"),
                    )
                break
            except CertwrightError as exc:
                log.error("%s: %s", order.friendly_name_intermediate, exc)
                result.add_error_message(str(exc))
            except Exception as exc:
                log.exception("Unexpected error processing %s", order.friendly_name_intermediate)
                result.add_error_message(f"Unexpected error: {exc}")
        return results

    def _process(
        self,
        order: Order,
        result: OrderResult,
        control: RunControl,
        *,
        force: bool,
        force_validation: bool,
    ) -> None:
        name = order.friendly_name_intermediate
        cached = self._cache.get(order)
        renewal_info = None
        if cached is not None:
            result.expire_date = cached.not_after
            result.thumbprint = cached.thumbprint
            renewal_info = self._renewal_info(cached)
            if not self._installed(order.renewal, cached):
                log.debug("%s: cached certificate %s has no successful history", name, cached.thumbprint)
                cached = None

        decision = self._due_dates.decide(
            cached.not_after if cached else None,
            f"{order.renewal.id}:{order.name}",
            force=force,
            renewal_info=renewal_info,
        )
        result.due_date = decision.due_date
        if not decision.due:
            log.info("%s: not due, keeping certificate %s", name, result.thumbprint)
            return
        log.info("%s: renewing (%s)", name, decision.reason)

        if control.cancelled():
            result.add_error_message("Renewal cancelled")
            return

        call = self._validation.call_bounded
        order.details = call("order submission", control, self._client.submit_order, protocol_identifiers(order.target))
        log.debug("%s: order %s is %s", name, order.details.url, order.details.status)
        if order.details.status == OrderStatus.INVALID:
            result.add_error_message(f"Order {order.details.url} is invalid")
            return

        if order.details.status not in _FINAL_ORDER_STATES or force_validation:
            if not self._validation.validate_order(
                order,
                result,
                control=control,
                force_validation=force_validation,
            ):
                log.error("%s: validation failed", name)
                return
            order.details = call("order refresh", control, self._client.refresh_order, order.details)

        if order.details.status not in _FINAL_ORDER_STATES:
            result.add_error_message(f"Order status is {order.details.status} after validation")
            return

        csr_der, key_pem = self._csr_for(order)
        issued = call("order finalization", control, self._client.finalize_order, order.details, csr_der)
        if key_pem is not None:
            order.key_path = str(self._cache.store_private_key(order, key_pem))
        self._cache.store(order, issued)

        result.expire_date = issued.not_after
        result.thumbprint = issued.thumbprint
        result.due_date = self._due_dates.compute_due_date(issued.not_after)
        result.mark_success()
        log.info("%s: issued certificate %s valid until %s", name, issued.thumbprint, issued.not_after)

    # -- helpers ------------------------------------------------------------

    def _renewal_info(self, cached: IssuedCertificate) -> RenewalInfo | None:
        if self._settings.scheduled_task.renewal_disable_server_schedule:
            return None
        try:
            return self._client.get_renewal_info(cached.pem_chain)
        except CertwrightError as exc:
            log.warning("Unable to retrieve renewal information: %s", exc)
            return None

    @staticmethod
    def _installed(renewal: Renewal, cached: IssuedCertificate) -> bool:
        return any(
            result.success is True and result.thumbprint == cached.thumbprint
            for entry in renewal.history
            for result in entry.order_results
        )

    def _csr_for(self, order: Order) -> tuple[bytes, str | None]:
        """Return the CSR to submit and the key PEM to cache (``None`` for user CSRs)."""
        target = order.target
        if target.user_csr_bytes:
            return self._csr.user_csr(target), None

        key = None
        if order.renewal.reuse_private_key or self._settings.csr.reuse_private_keys:
            existing = self._cache.load_private_key(order)
            if existing is not None:
                log.debug("%s: reusing cached private key", order.friendly_name_intermediate)
                key = self._csr.load_key(existing)
        if key is None:
            key = self._csr.generate_key()
        return self._csr.build_csr(target, key), self._csr.key_to_pem(key)
