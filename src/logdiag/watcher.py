from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterable, Awaitable, Callable, Iterable

from watchfiles import Change, awatch

from logdiag.diagnostics import DiagnosticRecord
from logdiag.log_parser import parse_logs
from logdiag.store import DiagnosticStore
from logdiag.uri_resolver import DEFAULT_SEARCH_MAX_DIRS, UriResolver

logger = logging.getLogger(__name__)

ChangeSet = Iterable[tuple[Change, str]]
Publisher = Callable[[str], Awaitable[None]]


def read_log(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("cannot read %s: %s", path, exc)
        return ""


def _normalized(path: Path | str) -> Path:
    return Path(path).absolute()


def watch_log_changes(
    paths: Iterable[Path], *, stop_event: asyncio.Event | None = None
) -> AsyncIterable[ChangeSet]:
    """Filesystem events for ``paths``, restricted to data modifications.

    The parent directories are watched so a log that is deleted and recreated
    keeps being observed.
    """
    targets = {str(_normalized(path)) for path in paths}
    directories = sorted({str(Path(target).parent) for target in targets})

    def _only_log_writes(change: Change, path: str) -> bool:
        return change == Change.modified and str(_normalized(path)) in targets

    return awatch(
        *directories,
        watch_filter=_only_log_writes,
        recursive=False,
        debounce=50,
        step=50,
        stop_event=stop_event,
    )


class LogRefreshDebouncer:
    """Turns bursts of log writes into one parse, merge and publish cycle.

    The first write sets ``pending`` and arms a timer of ``delay`` seconds;
    writes that arrive while the timer runs are absorbed. When it fires the
    logs are re-read and every affected URI is republished.
    """

    def __init__(
        self,
        store: DiagnosticStore,
        publish: Publisher,
        build_log: Path,
        run_log: Path,
        *,
        delay: float = 0.3,
        search_max_dirs: int = DEFAULT_SEARCH_MAX_DIRS,
    ) -> None:
        self.store = store
        self.publish = publish
        self.build_log = build_log
        self.run_log = run_log
        self.delay = delay
        self.search_max_dirs = search_max_dirs
        self.pending = False
        self.cycles = 0
        self._timer: asyncio.Task[None] | None = None
        self._refresh_lock = asyncio.Lock()
        self._watched = {_normalized(build_log), _normalized(run_log)}

    def is_watched(self, path: Path | str) -> bool:
        return _normalized(path) in self._watched

    def notify_modified(self) -> None:
        if self.pending:
            return
        self.pending = True
        self._timer = asyncio.get_running_loop().create_task(self._fire_after_delay())

    async def _fire_after_delay(self) -> None:
        await asyncio.sleep(self.delay)
        self.pending = False
        try:
            await self.refresh()
        except OSError as exc:
            logger.error("publishing refreshed diagnostics failed: %s", exc)
        except Exception:
            logger.exception("log refresh cycle failed")

    def _parse(self, resolver: UriResolver) -> dict[str, list[DiagnosticRecord]]:
        # Called in a worker thread.
        text = read_log(self.build_log) + read_log(self.run_log)
        logger.info("reading logs, total size: %d characters", len(text))
        return parse_logs(text, resolver)

    async def refresh(self) -> list[str]:
        async with self._refresh_lock:
            resolver = UriResolver(
                await self.store.get_current_uri(),
                await self.store.get_workspace_root(),
                max_dirs=self.search_max_dirs,
            )
            table = await asyncio.to_thread(self._parse, resolver)
            logger.info("parsed logs for %d files", len(table))
            for uri, records in sorted(table.items()):
                logger.debug("  %s: %d diagnostics", uri, len(records))
            affected = await self.store.set_all_log_derived(table)
            for uri in affected:
                await self.publish(uri)
            self.cycles += 1
            return affected

    async def run(self, events: AsyncIterable[ChangeSet]) -> None:
        async for changes in events:
            if any(
                change == Change.modified and self.is_watched(path)
                for change, path in changes
            ):
                self.notify_modified()

    async def drain(self) -> None:
        """Wait for an armed timer and its refresh to finish."""
        while self._timer is not None and not self._timer.done():
            await self._timer
