"""Renewal repository.

One JSON document per renewal, ``<configuration_path>/<id>.renewal.json``,
always written through :func:`~certwright.storage.safe_write.safe_write`.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from certwright.core.errors import PersistenceError
from certwright.models.renewal import Renewal
from certwright.storage.safe_write import safe_delete, safe_write

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

FILE_SUFFIX = ".renewal.json"
_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class RenewalStore:
    """Persists :class:`~certwright.models.renewal.Renewal` records.

    Parameters
    ----------
    directory:
        Folder holding the renewal documents.  Created on first save.

    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, renewal_id: str) -> Path:
        if not _ID_RE.match(renewal_id):
            msg = f"Invalid renewal id {renewal_id!r}"
            raise PersistenceError(msg)
        return self.directory / f"{renewal_id}{FILE_SUFFIX}"

    @staticmethod
    def _document_to_entity(document: dict[str, Any]) -> Renewal:
        return Renewal.from_dict(document)

    @staticmethod
    def _entity_to_document(entity: Renewal) -> dict[str, Any]:
        return entity.to_dict()

    def save(self, renewal: Renewal) -> Path:
        """Write *renewal*, replacing any previous version."""
        path = self._path(renewal.id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Unable to create renewal directory {self.directory}: {exc}"
            raise PersistenceError(msg) from exc
        content = json.dumps(self._entity_to_document(renewal), indent=2, ensure_ascii=False)
        safe_write(path, content + "\n")
        log.debug("Saved renewal %s to %s", renewal.id, path)
        return path

    def load(self, renewal_id: str) -> Renewal | None:
        """Return the renewal with *renewal_id*, ``None`` if there is none."""
        path = self._path(renewal_id)
        if not path.is_file():
            return None
        return self._read(path)

    def _read(self, path: Path) -> Renewal:
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            return self._document_to_entity(document)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            msg = f"Unable to read renewal from {path}: {exc}"
            raise PersistenceError(msg) from exc

    def iter_renewals(self) -> Iterator[Renewal]:
        """Yield every readable renewal; unreadable documents are logged and skipped."""
        if not self.directory.is_dir():
            return
        for path in sorted(self.directory.glob(f"*{FILE_SUFFIX}")):
            try:
                yield self._read(path)
            except PersistenceError as exc:
                log.error("%s", exc)

    def list(self) -> list[Renewal]:
        return list(self.iter_renewals())

    def delete(self, renewal_id: str) -> bool:
        """Remove the renewal document.  Returns ``False`` if it did not exist."""
        deleted = safe_delete(self._path(renewal_id))
        if deleted:
            log.info("Deleted renewal %s", renewal_id)
        return deleted
