"""Validation dispatcher: proves control of every identifier of an order.

For each order the dispatcher fetches the authorizations, picks the
backend configured on the renewal and drives it through::

    select challenge -> prepare -> commit -> pre-validate -> answer -> cleanup

Parallelism is capability gated.  A backend without
:attr:`Parallelism.PREPARE` is prepared one identifier at a time, one
without :attr:`Parallelism.ANSWER` never has two challenges
outstanding.  When ``validation.disable_multithreading`` is set (the
default) or the backend declares no parallelism at all, identifiers are
processed one by one, each with its own backend instance unless the
backend declares :attr:`Parallelism.REUSE`.

Every external call is bounded by ``validation.call_timeout`` and by the
run's :class:`RunControl` deadline.  Cleanup runs for every prepared
identifier, even on failure, timeout or cancellation; its errors are
logged as warnings and never change the order's outcome.

The dispatcher never raises: every failure ends up as an error message
on the :class:`~certwright.models.order.OrderResult`.
"""

from __future__ import annotations

import contextvars
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from certwright.challenge.base import ValidationContext
from certwright.core.errors import CertwrightError
from certwright.core.types import AuthorizationStatus, ChallengeStatus, Parallelism, PrevalidationChoice
from certwright.logging import log_context
from certwright.models.identifier import Identifier
from certwright.models.protocol import decode_challenge
from certwright.services.prevalidation import InteractiveDecision, UnattendedDecision

if TYPE_CHECKING:
    from certwright.challenge.base import ValidationBackend
    from certwright.challenge.registry import ValidationRegistry
    from certwright.config.settings import ValidationSettings
    from certwright.models.order import Order, OrderResult
    from certwright.models.protocol import AuthorizationDetails
    from certwright.models.target import Target, TargetPart
    from certwright.protocol.base import AcmeClient
    from certwright.services.dns_lookup import DnsLookupService
    from certwright.services.prevalidation import PrevalidationDecision

log = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Run control
# ---------------------------------------------------------------------------


@dataclass
class RunControl:
    """Cancellation flag and overall deadline shared by one renewal run.

    Attributes
    ----------
    cancel:
        Set to abort the run.  Steps already started are allowed to
        finish; cleanup still runs.
    deadline:
        :func:`time.monotonic` value after which the run is treated as
        cancelled, ``None`` for no limit.

    """

    cancel: threading.Event = field(default_factory=threading.Event)
    deadline: float | None = None

    @classmethod
    def with_time_limit(
        cls,
        seconds: float | None,
        cancel: threading.Event | None = None,
    ) -> RunControl:
        deadline = time.monotonic() + seconds if seconds else None
        return cls(cancel=cancel or threading.Event(), deadline=deadline)

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def cancelled(self) -> bool:
        return self.cancel.is_set() or self.expired()

    def timeout(self, call_timeout: float) -> float:
        """Seconds a single external call may take right now."""
        if self.deadline is None:
            return call_timeout
        return max(0.0, min(call_timeout, self.deadline - time.monotonic()))

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return ``True`` if the run was cancelled meanwhile."""
        if self.deadline is not None:
            seconds = min(seconds, max(0.0, self.deadline - time.monotonic()))
        return self.cancel.wait(seconds) or self.expired()


class _CallTimeout(CertwrightError):
    def __init__(self, what: str, seconds: float) -> None:
        super().__init__(f"Timed out after {seconds:.1f}s waiting for {what}", retryable=True)


class _BoundedCall(Generic[T]):
    """One external call running on its own daemon thread.

    A call still running when its caller gives up is abandoned.  Daemon
    threads never keep the interpreter alive at exit.
    """

    def __init__(self, fn: Callable[..., T], args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        self._done = threading.Event()
        self._value: T | None = None
        self._error: BaseException | None = None
        ctx = contextvars.copy_context()
        self._thread = threading.Thread(
            target=ctx.run,
            args=(self._run, fn, args, kwargs),
            name=f"certwright-validation-{getattr(fn, '__name__', 'call')}",
            daemon=True,
        )
        self._thread.start()

    def _run(self, fn: Callable[..., T], args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        try:
            self._value = fn(*args, **kwargs)
        except BaseException as exc:  # noqa: BLE001
            self._error = exc
        finally:
            self._done.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float) -> bool:
        """Return ``True`` if the call finished within *timeout* seconds."""
        return self._done.wait(timeout)

    def result(self) -> T:
        """Return the value of a finished call, re-raising its exception."""
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class ValidationDispatcher:
    """Drives validation backends for the orders of a renewal run.

    Parameters
    ----------
    client:
        Protocol collaborator used to fetch authorizations and answer
        challenges.
    registry:
        Creates backend instances from the renewal's validation options.
    settings:
        ``validation`` section of the configuration.
    dns_lookup:
        Used for DNS pre-validation; ``None`` disables the check.
    unattended:
        Decision used when a published record is not yet visible.
        Defaults to :class:`UnattendedDecision` built from *settings*.
    interactive:
        Decision used for interactive backends.  Defaults to an
        :class:`InteractiveDecision` over the registry's input service
        when there is one.

    """

    def __init__(
        self,
        client: AcmeClient,
        registry: ValidationRegistry,
        settings: ValidationSettings,
        *,
        dns_lookup: DnsLookupService | None = None,
        unattended: PrevalidationDecision | None = None,
        interactive: PrevalidationDecision | None = None,
    ) -> None:
        self._client = client
        self._registry = registry
        self._settings = settings
        self._lookup = dns_lookup
        self._unattended = unattended or UnattendedDecision(
            settings.prevalidate_dns_retry_count,
            settings.prevalidate_dns_retry_interval,
        )
        input_service = registry.services.input
        if interactive is None and input_service is not None:
            interactive = InteractiveDecision(input_service)
        self._interactive = interactive
        self._calls: set[_BoundedCall[Any]] = set()
        self._calls_lock = threading.Lock()

    def close(self) -> None:
        """Forget outstanding calls.  Hung calls are abandoned, not joined."""
        with self._calls_lock:
            hung = [call for call in self._calls if not call.done]
            self._calls.clear()
        if hung:
            log.warning("Abandoning %d validation call(s) that did not finish", len(hung))

    # -- public API ---------------------------------------------------------

    def validate_order(
        self,
        order: Order,
        result: OrderResult,
        *,
        control: RunControl | None = None,
        force_validation: bool = False,
    ) -> bool:
        """Validate every identifier of a submitted *order*.

        Returns ``True`` when no identifier failed.  Failures are
        recorded on *result*; they are fatal unless the order is already
        valid at the server.
        """
        control = control or RunControl()
        if order.details is None:
            result.add_error_message("Order has not been submitted")
            return False

        errors_fatal = order.valid is not True
        contexts: list[ValidationContext] = []
        try:
            authorizations = [
                self.call_bounded("authorization", control, self._client.get_authorization, url)
                for url in order.details.authorizations
            ]
        except Exception as exc:  # noqa: BLE001
            log.error("Unable to retrieve authorizations for %s: %s", order.friendly_name_intermediate, exc)
            result.add_error_message(f"Unable to retrieve authorizations: {exc}", errors_fatal)
            return False

        for authorization in authorizations:
            context = self._build_context(order, result, authorization, errors_fatal)
            if context is None:
                continue
            if context.valid and not force_validation:
                log.info("%s Cached authorization result: valid", context.label)
                continue
            if context.authorization.status not in (AuthorizationStatus.PENDING, AuthorizationStatus.VALID):
                context.fail(
                    f"{context.label} Authorization is {context.authorization.status}",
                )
                continue
            contexts.append(context)

        if contexts:
            try:
                self._dispatch(order, contexts, control)
            except Exception as exc:
                # Configuration problems surface before any backend call.
                log.error("Validation of %s failed: %s", order.friendly_name_intermediate, exc)
                for context in contexts:
                    if not context.failed and context.authorization.status != AuthorizationStatus.VALID:
                        context.fail(str(exc))
            self._deactivate_pending(contexts, control)

        return not any(c.failed for c in contexts) and result.success is not False

    # -- setup --------------------------------------------------------------

    def _build_context(
        self,
        order: Order,
        result: OrderResult,
        authorization: AuthorizationDetails,
        errors_fatal: bool,  # noqa: FBT001
    ) -> ValidationContext | None:
        try:
            identifier = Identifier.parse_protocol(authorization.identifier, authorization.wildcard)
        except CertwrightError as exc:
            result.add_error_message(f"Unexpected identifier in authorization: {exc}", errors_fatal)
            return None
        return ValidationContext(
            order=order,
            result=result,
            authorization=authorization,
            identifier=identifier,
            target_part=_find_part(order.target, identifier),
            errors_fatal=errors_fatal,
        )

    def _dispatch(self, order: Order, contexts: list[ValidationContext], control: RunControl) -> None:
        options = order.renewal.validation
        backend = self._registry.create(options)
        try:
            state = backend.capability(order.target)
            if state.disabled:
                for context in contexts:
                    context.fail(f"Validation plugin {backend.key} is not available: {state.reason}")
                return

            serial = self._settings.disable_multithreading or backend.parallelism == Parallelism.NONE
            if serial:
                self._run_serial(backend, contexts, control)
            else:
                size = max(1, self._settings.parallel_batch_size)
                for start in range(0, len(contexts), size):
                    self._run_batch(backend, contexts[start : start + size], backend.parallelism, control)
        finally:
            self._release(backend)

    def _run_serial(
        self,
        first: ValidationBackend,
        contexts: list[ValidationContext],
        control: RunControl,
    ) -> None:
        reuse = bool(first.parallelism & Parallelism.REUSE)
        for index, context in enumerate(contexts):
            backend = first if index == 0 or reuse else None
            try:
                if backend is None:
                    backend = self._registry.create(context.order.renewal.validation)
                self._run_batch(backend, [context], Parallelism.NONE, control)
            except Exception as exc:  # noqa: BLE001
                context.fail(f"{context.label} {exc}")
            finally:
                if backend is not None and backend is not first:
                    self._release(backend)

    def _release(self, backend: ValidationBackend) -> None:
        if backend.parallelism & Parallelism.REUSE:
            # Shared instances are closed by the registry at the end of the run.
            return
        try:
            backend.close()
        except Exception as exc:  # noqa: BLE001
            log.warning("Error closing validation plugin %s: %s", backend.key, exc)

    # -- one batch ----------------------------------------------------------

    def _run_batch(
        self,
        backend: ValidationBackend,
        batch: list[ValidationContext],
        level: Parallelism,
        control: RunControl,
    ) -> None:
        try:
            for context in batch:
                self._select(backend, context, control)

            live = [c for c in batch if not c.failed and c.challenge is not None]
            if not live:
                return
            self._prepare_all(backend, live, level, control)

            live = [c for c in live if not c.failed]
            if not live:
                return
            if not self._commit(backend, live, control):
                return

            if self._settings.prevalidate_dns:
                self._prevalidate_all(backend, live, control)
                live = [c for c in live if not c.failed]

            self._answer_all(live, level, control)
        finally:
            for context in batch:
                if context.prepared:
                    self._cleanup(backend, context, control)

    def _select(self, backend: ValidationBackend, context: ValidationContext, control: RunControl) -> None:
        if not backend.answers_challenges:
            if not context.valid:
                context.fail(f"{context.label} Domain is not pre-authorized as expected")
            return
        if control.cancelled():
            context.fail(f"{context.label} Validation cancelled")
            return

        offer = backend.select_challenge(context.authorization.challenges)
        if offer is None:
            offers = ", ".join(str(o.type) for o in context.authorization.challenges) or "none"
            context.fail(
                f"{context.label} Expected challenge type not available (offered: {offers})",
            )
            return
        try:
            key_authorization = self.call_bounded(
                "key authorization",
                control,
                self._client.key_authorization,
                offer.token,
            )
            details = decode_challenge(context.authorization.identifier.value, offer, key_authorization)
        except Exception as exc:  # noqa: BLE001
            context.fail(f"{context.label} Error preparing for challenge answer: {exc}")
            return
        context.challenge = offer
        context.details = details

    # -- prepare ------------------------------------------------------------

    def _prepare_all(
        self,
        backend: ValidationBackend,
        contexts: list[ValidationContext],
        level: Parallelism,
        control: RunControl,
    ) -> None:
        # ``prepared`` is set before submitting so a partially published
        # challenge is cleaned up even when the worker never reports back.
        if level & Parallelism.PREPARE and len(contexts) > 1:
            pending: list[tuple[ValidationContext, _BoundedCall[None]]] = []
            for context in contexts:
                context.prepared = True
                pending.append((context, self._submit(self._prepare, backend, context)))
            for context, call in pending:
                self._await(call, context, "challenge preparation", control)
            return
        for context in contexts:
            if control.cancelled():
                context.fail(f"{context.label} Validation cancelled")
                continue
            context.prepared = True
            call = self._submit(self._prepare, backend, context)
            self._await(call, context, "challenge preparation", control)

    def _prepare(self, backend: ValidationBackend, context: ValidationContext) -> None:
        with log_context(identifier=context.identifier.value):
            log.info("%s Preparing %s challenge with %s", context.label, backend.challenge_type, backend.key)
            try:
                backend.prepare_challenge(context)
            except Exception as exc:
                log.error("%s Error preparing for challenge answer: %s", context.label, exc)
                context.fail(f"{context.label} Error preparing for challenge answer: {exc}")

    # -- commit -------------------------------------------------------------

    def _commit(self, backend: ValidationBackend, contexts: list[ValidationContext], control: RunControl) -> bool:
        if not backend.answers_challenges:
            return True
        try:
            self.call_bounded("commit", control, backend.commit)
        except Exception as exc:  # noqa: BLE001
            log.error("Validation plugin %s commit stage failed: %s", backend.key, exc)
            for context in contexts:
                context.fail(f"{context.label} Validation plugin commit stage failed: {exc}")
            return False
        return True

    # -- pre-validation -----------------------------------------------------

    def _prevalidate_all(
        self,
        backend: ValidationBackend,
        contexts: list[ValidationContext],
        control: RunControl,
    ) -> None:
        if self._lookup is None:
            return
        checked = False
        for context in contexts:
            with log_context(identifier=context.identifier.value):
                checked = self._prevalidate(backend, context, control) or checked

        delay = self._settings.dns_propagation_delay
        if checked and delay > 0:
            log.info("Waiting %ss for DNS propagation", delay)
            if control.wait(delay):
                for context in contexts:
                    if not context.failed:
                        context.fail(f"{context.label} Validation cancelled")

    def _prevalidate(self, backend: ValidationBackend, context: ValidationContext, control: RunControl) -> bool:
        """Return whether any record was checked."""
        records = backend.prevalidation_records(context)
        if not records:
            return False
        decision = self._unattended
        if backend.interactive and self._interactive is not None:
            decision = self._interactive

        for authority, value in records:
            attempt = 0
            while True:
                if control.cancelled():
                    context.fail(f"{context.label} Validation cancelled")
                    return True
                attempt += 1
                try:
                    found = self.call_bounded(
                        "pre-validation lookup",
                        control,
                        self._lookup.has_txt_record,
                        authority,
                        value,
                        include_local=self._settings.prevalidate_dns_local,
                    )
                except Exception as exc:  # noqa: BLE001
                    log.warning("%s Pre-validation lookup of %s failed: %s", context.label, authority.domain, exc)
                    found = False
                if found:
                    break
                choice = decision.decide(authority.domain, attempt, control.cancel)
                if choice == PrevalidationChoice.RETRY:
                    continue
                if choice == PrevalidationChoice.PROCEED:
                    break
                if control.cancelled():
                    context.fail(f"{context.label} Validation cancelled")
                else:
                    context.fail(f"{context.label} Validation aborted by user")
                return True
        return True

    # -- answer -------------------------------------------------------------

    def _answer_all(self, contexts: list[ValidationContext], level: Parallelism, control: RunControl) -> None:
        if level & Parallelism.ANSWER and len(contexts) > 1:
            pending = [(c, self._submit(self._answer, c)) for c in contexts]
            for context, call in pending:
                self._await(call, context, "validation result", control)
            return
        for context in contexts:
            if control.cancelled():
                context.fail(f"{context.label} Validation cancelled")
                continue
            call = self._submit(self._answer, context)
            self._await(call, context, "validation result", control)

    def _answer(self, context: ValidationContext) -> None:
        with log_context(identifier=context.identifier.value):
            if context.challenge is None:
                return
            log.info("%s Submitting challenge answer", context.label)
            try:
                final = self._client.answer_challenge(context.challenge)
            except Exception as exc:
                log.error("%s Validation failed: %s", context.label, exc)
                context.fail(f"{context.label} Validation failed: {exc}")
                return
            context.challenge = final
            if final.status == ChallengeStatus.VALID:
                context.authorization.status = AuthorizationStatus.VALID
                log.info("%s Authorization result: valid", context.label)
                return
            context.authorization.status = AuthorizationStatus.INVALID
            detail = (final.error or {}).get("detail")
            log.error("%s Authorization result: %s %s", context.label, final.status, detail or "")
            message = f"{context.label} Validation failed"
            context.fail(f"{message}: {detail}" if detail else message)

    # -- cleanup ------------------------------------------------------------

    def _cleanup(self, backend: ValidationBackend, context: ValidationContext, control: RunControl) -> None:
        with log_context(identifier=context.identifier.value):
            try:
                # Cleanup is bounded by call_timeout only, never skipped for cancellation.
                self.call_bounded("cleanup", RunControl(), backend.cleanup, context)
            except Exception as exc:  # noqa: BLE001
                log.warning("%s Error cleaning up after validation: %s", context.label, exc)
            else:
                log.debug("%s Cleanup complete", context.label)
        if control.cancelled():
            log.info("%s Cleaned up after cancelled run", context.label)

    def _deactivate_pending(self, contexts: list[ValidationContext], control: RunControl) -> None:
        for context in contexts:
            if context.authorization.status != AuthorizationStatus.PENDING:
                continue
            try:
                self.call_bounded(
                    "authorization deactivation",
                    RunControl(),
                    self._client.deactivate_authorization,
                    context.authorization.url,
                )
            except Exception as exc:  # noqa: BLE001
                log.warning("%s Unable to deactivate pending authorization: %s", context.label, exc)
                continue
            context.authorization.status = AuthorizationStatus.DEACTIVATED
            log.debug("%s Deactivated pending authorization", context.label)
        if control.cancelled():
            log.warning("Validation run was cancelled")

    # -- execution helpers --------------------------------------------------

    def _submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> _BoundedCall[T]:
        call = _BoundedCall(fn, args, kwargs)
        with self._calls_lock:
            self._calls = {c for c in self._calls if not c.done}
            self._calls.add(call)
        return call

    def call_bounded(self, what: str, control: RunControl, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run *fn* on a daemon thread and wait at most the per-call timeout."""
        seconds = control.timeout(self._settings.call_timeout)
        call = self._submit(fn, *args, **kwargs)
        if not call.wait(seconds):
            raise _CallTimeout(what, seconds)
        return call.result()

    def _await(
        self,
        call: _BoundedCall[None],
        context: ValidationContext,
        what: str,
        control: RunControl,
    ) -> None:
        seconds = control.timeout(self._settings.call_timeout)
        if not call.wait(seconds):
            log.error("%s Timed out after %.1fs waiting for %s", context.label, seconds, what)
            context.fail(f"{context.label} Timed out waiting for {what}")
            return
        try:
            call.result()
        except Exception as exc:  # noqa: BLE001
            context.fail(f"{context.label} {exc}")


def _find_part(target: Target, identifier: Identifier) -> TargetPart | None:
    for part in target.parts:
        if identifier in part.identifiers or identifier in part.get_identifiers(unicode=True):
            return part
    return None
