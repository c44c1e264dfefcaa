"""Registrable-domain lookup based on the Public Suffix List.

The list is read from a local copy of ``public_suffix_list.dat``.  When
a download URL is configured and the local copy is missing or older
than ``max_age``, a fresh copy is fetched and stored via
:func:`~certwright.storage.safe_write.safe_write`.  Without any list the
implicit ``*`` rule applies, so the registrable domain of
``www.example.com`` is ``example.com``.
"""

from __future__ import annotations

import logging
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import TYPE_CHECKING

from certwright.storage.safe_write import safe_write

if TYPE_CHECKING:
    from certwright.config.settings import PublicSuffixSettings

log = logging.getLogger(__name__)


class PublicSuffixList:
    """Parsed suffix rules: normal, wildcard (``*.``) and exception (``!``)."""

    def __init__(self, text: str = "") -> None:
        self._rules: set[str] = set()
        self._wildcards: set[str] = set()
        self._exceptions: set[str] = set()
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith("//"):
                continue
            rule = line.split()[0].lower()
            if rule.startswith("!"):
                self._exceptions.add(rule[1:])
            elif rule.startswith("*."):
                self._wildcards.add(rule[2:])
            else:
                self._rules.add(rule)

    def __len__(self) -> int:
        return len(self._rules) + len(self._wildcards) + len(self._exceptions)

    def public_suffix(self, host: str) -> str:
        """Return the public suffix (eTLD) of *host*."""
        labels = host.lower().strip(".").split(".")
        # Implicit "*" rule: the last label is always a suffix.
        suffix_len = 1
        for i in range(len(labels)):
            candidate = ".".join(labels[i:])
            if candidate in self._exceptions:
                suffix_len = len(labels) - i - 1
                break
            if candidate in self._rules:
                suffix_len = max(suffix_len, len(labels) - i)
            parent = ".".join(labels[i + 1 :])
            if i + 1 < len(labels) and parent in self._wildcards:
                suffix_len = max(suffix_len, len(labels) - i)
        return ".".join(labels[len(labels) - suffix_len :])

    def registrable_domain(self, host: str) -> str:
        """Return the eTLD+1 of *host*, or *host* itself if it is a suffix."""
        labels = host.strip(".").split(".")
        suffix = self.public_suffix(host)
        suffix_labels = suffix.count(".") + 1
        if len(labels) <= suffix_labels:
            return host.strip(".")
        return ".".join(labels[-(suffix_labels + 1) :])


class DomainParseService:
    """Public-suffix collaborator used by the domain order strategy.

    Parameters
    ----------
    settings:
        The ``public_suffix`` settings section, or ``None`` to use only
        the implicit rule.

    """

    def __init__(self, settings: PublicSuffixSettings | None = None) -> None:
        self._settings = settings
        self._list: PublicSuffixList | None = None

    @classmethod
    def from_text(cls, text: str) -> DomainParseService:
        service = cls()
        service._list = PublicSuffixList(text)
        return service

    def get_registerable_domain(self, host: str) -> str:
        """Return the registrable domain of *host* (wildcard label ignored)."""
        name = host.removeprefix("*.").lstrip(".")
        return self._suffix_list().registrable_domain(name)

    def get_domain(self, host: str) -> str:
        """Return the public suffix of *host*."""
        return self._suffix_list().public_suffix(host.removeprefix("*."))

    # -- loading ------------------------------------------------------------

    def _suffix_list(self) -> PublicSuffixList:
        if self._list is None:
            self._list = PublicSuffixList(self._load_text())
            log.debug("Loaded %d public suffix rules", len(self._list))
        return self._list

    def _load_text(self) -> str:
        settings = self._settings
        if settings is None or not settings.list_path:
            return ""
        path = Path(settings.list_path)
        if settings.download_url and self._is_stale(path, settings.max_age_seconds):
            self._download(settings.download_url, path, settings.timeout_seconds)
        if not path.is_file():
            log.warning("Public suffix list %s not found, using implicit rule only", path)
            return ""
        return path.read_text(encoding="utf-8")

    @staticmethod
    def _is_stale(path: Path, max_age: int) -> bool:
        if not path.is_file():
            return True
        return time.time() - path.stat().st_mtime > max_age

    @staticmethod
    def _download(url: str, path: Path, timeout: int) -> None:
        log.info("Fetching public suffix list from %s", url)
        try:
            with urllib.request.urlopen(url, timeout=timeout) as resp:  # noqa: S310
                text = resp.read().decode("utf-8")
        except (urllib.error.URLError, OSError) as exc:
            log.warning("Unable to retrieve public suffix list from %s: %s", url, exc)
            return
        safe_write(path, text, mode=0o644)
