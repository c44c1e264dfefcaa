"""HTTP-01 validation by writing files into a webroot.

Configuration keys:

- ``path``: webroot directory served for the validated hosts
  (required)

The challenge resource is written to
``<path>/.well-known/acme-challenge/<token>`` with
:func:`~certwright.storage.safe_write.safe_write` and removed again on
cleanup.  With ``validation.cleanup_folders`` empty folders created for
the challenge are removed as well.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from certwright.challenge.base import ChallengeError, HttpValidationBackend
from certwright.core.errors import ConfigurationError
from certwright.models.protocol import Http01ChallengeDetails
from certwright.storage.safe_write import safe_write

if TYPE_CHECKING:
    from certwright.challenge.base import BackendServices, ValidationContext

log = logging.getLogger(__name__)


class FileSystemValidation(HttpValidationBackend):
    key = "filesystem"

    def __init__(self, options: dict[str, Any], services: BackendServices) -> None:
        super().__init__(options, services)
        path = options.get("path")
        if not path:
            msg = "filesystem validation requires 'path'"
            raise ConfigurationError(msg)
        self._root = Path(path)

    def _resource_file(self, details: Http01ChallengeDetails) -> Path:
        relative = PurePosixPath(details.resource_path)
        if relative.is_absolute() or ".." in relative.parts:
            msg = f"Refusing unsafe challenge path {details.resource_path!r}"
            raise ChallengeError(msg)
        return self._root.joinpath(*relative.parts)

    def prepare_challenge(self, context: ValidationContext) -> None:
        details = context.details
        if not isinstance(details, Http01ChallengeDetails):
            msg = f"{context.label} has no HTTP-01 challenge details"
            raise ChallengeError(msg)
        if not self._root.is_dir():
            msg = f"Webroot {self._root} does not exist"
            raise ChallengeError(msg)

        target = self._resource_file(details)
        created = [p for p in reversed(target.parents) if not p.exists() and self._root in p.parents]
        target.parent.mkdir(parents=True, exist_ok=True)
        safe_write(target, details.resource_value, mode=0o644)
        context.data["file"] = target
        context.data["created_dirs"] = created
        log.info(
            "%s Answer should now be browsable at %s",
            context.label,
            details.resource_url,
        )

    def cleanup(self, context: ValidationContext) -> None:
        target: Path | None = context.data.get("file")
        if target is None:
            return
        try:
            target.unlink()
        except FileNotFoundError:
            log.debug("%s %s already removed", context.label, target)
        if not self.settings.cleanup_folders:
            return
        for directory in reversed(context.data.get("created_dirs", [])):
            try:
                directory.rmdir()
            except OSError:
                # Not empty, still in use by a concurrent challenge.
                break
