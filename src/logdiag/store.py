from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Mapping

from logdiag.diagnostics import Diagnostic, DiagnosticKey, diagnostic_json, diagnostic_key
from logdiag.json_types import JSONObject

logger = logging.getLogger(__name__)


class DiagnosticStore:
    """Native and log-derived diagnostics per document URI.

    Native lists are replaced one URI at a time as the backend publishes; the
    log-derived table is replaced as a whole after every log parse. Every
    operation holds the lock for a single read or a single mutation only.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._native: dict[str, list[Diagnostic]] = {}
        self._log_derived: dict[str, list[Diagnostic]] = {}
        self._current_uri = ""
        self._workspace_root: Path | None = None

    async def set_native(self, uri: str, diagnostics: Iterable[Diagnostic]) -> None:
        items = list(diagnostics)
        async with self._lock:
            self._native[uri] = items

    async def set_all_log_derived(
        self, table: Mapping[str, Iterable[Diagnostic]]
    ) -> list[str]:
        """Replace the log-derived table and return every URI it touched.

        The result is the sorted union of URIs present before and after the
        replacement, so documents that lost all their log diagnostics still
        get republished.
        """
        replacement = {uri: list(items) for uri, items in table.items()}
        async with self._lock:
            affected = set(self._log_derived) | set(replacement)
            self._log_derived = replacement
        return sorted(affected)

    async def merged_for(self, uri: str) -> list[JSONObject]:
        async with self._lock:
            native = list(self._native.get(uri, ()))
            log_derived = list(self._log_derived.get(uri, ()))
        return merge_diagnostics(native, log_derived)

    async def log_derived_count(self, uri: str) -> int:
        async with self._lock:
            return len(self._log_derived.get(uri, ()))

    async def get_current_uri(self) -> str:
        async with self._lock:
            return self._current_uri

    async def set_current_uri(self, uri: str) -> None:
        async with self._lock:
            self._current_uri = uri

    async def get_workspace_root(self) -> Path | None:
        async with self._lock:
            return self._workspace_root

    async def set_workspace_root(self, root: Path) -> bool:
        async with self._lock:
            if self._workspace_root is not None:
                logger.debug(
                    "workspace root already %s; ignoring %s", self._workspace_root, root
                )
                return False
            self._workspace_root = root
        return True


def merge_diagnostics(*groups: Iterable[Diagnostic]) -> list[JSONObject]:
    seen: set[DiagnosticKey] = set()
    merged: list[JSONObject] = []
    for group in groups:
        for diagnostic in group:
            key = diagnostic_key(diagnostic)
            if key in seen:
                continue
            seen.add(key)
            merged.append(diagnostic_json(diagnostic))
    return merged
