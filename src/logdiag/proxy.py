from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import AsyncIterable, Callable, Sequence

from logdiag.framing import MessageChannel
from logdiag.relay import ProxyRelay, terminate_process
from logdiag.schema import ProxyConfig
from logdiag.store import DiagnosticStore
from logdiag.watcher import ChangeSet, LogRefreshDebouncer, watch_log_changes

logger = logging.getLogger(__name__)

_STDIO_LIMIT = 1 << 20
_WATCHER_STOP_TIMEOUT_SECONDS = 2.0


def prepare_log_files(config: ProxyConfig) -> list[Path]:
    prepared: list[Path] = []
    for path in (config.build_log, config.run_log):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if config.truncate_logs:
                path.write_bytes(b"")
            else:
                path.touch(exist_ok=True)
        except OSError as exc:
            logger.error("failed to create %s: %s", path, exc)
            continue
        logger.info("prepared %s", path)
        prepared.append(path)
    return prepared


async def open_stdio() -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=_STDIO_LIMIT)
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin.buffer
    )
    transport, protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout.buffer
    )
    writer = asyncio.StreamWriter(transport, protocol, None, loop)
    return reader, writer


async def spawn_backend(command: Sequence[str]) -> asyncio.subprocess.Process:
    process = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        limit=_STDIO_LIMIT,
    )
    logger.info("backend started: %s (pid %s)", " ".join(command), process.pid)
    return process


async def _stop_watcher(task: asyncio.Task[None], stop_event: asyncio.Event) -> None:
    stop_event.set()
    try:
        await asyncio.wait_for(task, _WATCHER_STOP_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.debug("log watcher did not stop in time")
    except asyncio.CancelledError:
        pass


async def run_proxy(
    config: ProxyConfig,
    *,
    streams: tuple[asyncio.StreamReader, asyncio.StreamWriter] | None = None,
    events: AsyncIterable[ChangeSet] | None = None,
    exit_fn: Callable[[int], None] = terminate_process,
) -> DiagnosticStore:
    """Run both relay directions and the log watcher until the streams close."""
    store = DiagnosticStore()
    client_reader, client_writer = streams if streams is not None else await open_stdio()
    client = MessageChannel(client_writer, name="client")

    process: asyncio.subprocess.Process | None = None
    backend: MessageChannel | None = None
    if config.backend:
        process = await spawn_backend(config.backend)
        assert process.stdin is not None
        assert process.stdout is not None
        backend = MessageChannel(process.stdin, name="backend")

    relay = ProxyRelay(
        store,
        client,
        backend,
        verbosity=config.verbosity,
        exit_fn=exit_fn,
    )
    debouncer = LogRefreshDebouncer(
        store,
        relay.publish_merged,
        config.build_log,
        config.run_log,
        delay=config.debounce_seconds,
        search_max_dirs=config.search_max_dirs,
    )
    relay.on_initialized = debouncer.notify_modified

    stop_event = asyncio.Event()
    if events is None:
        events = watch_log_changes(
            (config.build_log, config.run_log), stop_event=stop_event
        )
    watcher = asyncio.create_task(debouncer.run(events))

    loops = [asyncio.create_task(relay.client_to_backend(client_reader))]
    if process is not None:
        assert process.stdout is not None
        loops.append(asyncio.create_task(relay.backend_to_client(process.stdout)))

    await loops[0]
    if process is not None:
        assert process.stdin is not None
        process.stdin.close()
        await asyncio.gather(*loops[1:])
        await process.wait()
        logger.info("backend exited with %s", process.returncode)
    await _stop_watcher(watcher, stop_event)
    await debouncer.drain()
    return store
