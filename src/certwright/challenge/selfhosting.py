"""HTTP-01 validation served by a temporary built-in web server.

Configuration keys:

- ``port``: TCP port to listen on (default 80)
- ``bind``: address to bind (default all interfaces)

A small Flask app answers ``GET /.well-known/acme-challenge/<token>``
from an in-memory table.  The werkzeug server runs in a daemon thread
started on commit and stopped when the last challenge is cleaned up.
Whether the port can be bound is probed once per process.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import TYPE_CHECKING, Any

from flask import Flask, abort
from werkzeug.serving import BaseWSGIServer, make_server

from certwright.challenge.base import ChallengeError, HttpValidationBackend
from certwright.core.state import ENABLED, CachedProbe, State
from certwright.core.types import Parallelism
from certwright.models.protocol import Http01ChallengeDetails

if TYPE_CHECKING:
    from certwright.challenge.base import BackendServices, ValidationContext
    from certwright.models.target import Target

log = logging.getLogger(__name__)

_DEFAULT_PORT = 80
_DEFAULT_BIND = "0.0.0.0"  # noqa: S104

_probes: dict[tuple[str, int], CachedProbe] = {}
_probes_lock = threading.Lock()


def _probe_port(bind: str, port: int) -> State:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((bind, port))
        except OSError as exc:
            return State.disabled_state(f"Unable to listen on {bind}:{port}: {exc.strerror}")
    return ENABLED


def port_probe(bind: str, port: int) -> CachedProbe:
    """Return the process-wide cached probe for *bind*:*port*."""
    with _probes_lock:
        probe = _probes.get((bind, port))
        if probe is None:
            probe = CachedProbe(lambda: _probe_port(bind, port))
            _probes[(bind, port)] = probe
        return probe


def create_challenge_app(files: dict[str, str], lock: threading.Lock) -> Flask:
    """Build the Flask app answering challenge requests from *files*."""
    app = Flask(__name__)

    @app.get("/.well-known/acme-challenge/<token>")
    def challenge(token: str) -> tuple[str, int, dict[str, str]]:
        with lock:
            value = files.get(token)
        if value is None:
            log.warning("Unknown challenge token requested: %s", token)
            abort(404)
        log.info("Served challenge response for token %s", token)
        return value, 200, {"Content-Type": "text/plain"}

    return app


class SelfHostingValidation(HttpValidationBackend):
    key = "selfhosting"
    parallelism = Parallelism.ANSWER | Parallelism.PREPARE

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        self._port = int(options.get("port", _DEFAULT_PORT))
        self._bind = options.get("bind", _DEFAULT_BIND)
        self._files: dict[str, str] = {}
        self._lock = threading.Lock()
        self._server: BaseWSGIServer | None = None
        self._thread: threading.Thread | None = None
        self.app = create_challenge_app(self._files, self._lock)

    def capability(self, target: Target) -> State:
        state = super().capability(target)
        if state.disabled:
            return state
        return port_probe(self._bind, self._port)()

    def prepare_challenge(self, context: ValidationContext) -> None:
        details = context.details
        if not isinstance(details, Http01ChallengeDetails):
            msg = f"{context.label} has no HTTP-01 challenge details"
            raise ChallengeError(msg)
        token = details.resource_path.rsplit("/", 1)[-1]
        with self._lock:
            self._files[token] = details.resource_value
        context.data["token"] = token

    def commit(self) -> None:
        with self._lock:
            if self._server is not None:
                return
            try:
                self._server = make_server(self._bind, self._port, self.app, threaded=True)
            except OSError as exc:
                msg = f"Unable to listen on {self._bind}:{self._port}: {exc}"
                raise ChallengeError(msg) from exc
            self._thread = threading.Thread(
                target=self._server.serve_forever,
                name="certwright-selfhosting",
                daemon=True,
            )
            self._thread.start()
        log.info("Listening for HTTP-01 challenges on %s:%d", self._bind, self._port)

    def cleanup(self, context: ValidationContext) -> None:
        token = context.data.get("token")
        with self._lock:
            if token is not None:
                self._files.pop(token, None)
            idle = not self._files
        if idle:
            self.close()

    def close(self) -> None:
        with self._lock:
            server, thread = self._server, self._thread
            self._server = self._thread = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        log.info("Stopped HTTP-01 listener on %s:%d", self._bind, self._port)
