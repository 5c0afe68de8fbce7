"""Mine diagnostics from build and run logs.

Four grammars run over the same text, one after another, and each appends to
the same per-URI table. Nothing here de-duplicates; the store does that when
it merges.

Grammars:

* one-line compiler and UBSan output (``path:line:col: error: message``),
* sanitizer reports (``==pid==ERROR: AddressSanitizer: ...`` plus frame ``#1``),
* single-frame runtime traces (an exception line, then ``at sym(path:line)``),
* Python style tracebacks, scanned bottom-up.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Iterator, Sequence

from lsprotocol.types import DiagnosticSeverity

from logdiag.diagnostics import DiagnosticRecord

logger = logging.getLogger(__name__)

ONE_LINE_SOURCE = "ubsan/asan"
RUNTIME_SOURCE = "runtime"
SANITIZER_SOURCE_PREFIX = "sanitizer/"

# Frame 0 of a sanitizer stack is the allocator interceptor; frame 1 is the
# user code that called it.
SANITIZER_USER_FRAME = 1

_ONE_LINE_RE = re.compile(
    r"^(?P<path>.+?):(?P<line>\d+):(?P<col>\d+):\s*"
    r"(?P<kind>error|warning|runtime error|note):\s*(?P<message>.*)$"
)
_SANITIZER_HEADER_RE = re.compile(
    r"^==\d+==ERROR:\s+(?P<kind>[A-Za-z]+)Sanitizer:\s*(?P<message>.*)$"
)
_SANITIZER_ABORT_RE = re.compile(r"^==\d+==ABORTING")
_SANITIZER_FRAME_RE = re.compile(
    r"^\s*#(?P<index>\d+)\s+\S+\s+in\s+\S.*?\s"
    r"(?P<path>\S+?):(?P<line>\d+):(?P<col>\d+)"
)
_TRACE_OPEN_RE = re.compile(
    r"^\s*Exception in thread\b|^\s*Traceback\b|\b\w+Error:"
)
_TRACE_AT_RE = re.compile(
    r"^\s*at\s+(?P<symbol>[^\s(]+)\((?P<path>[^()]+?):(?P<line>\d+)\)"
)
_TRACEBACK_HEAD_RE = re.compile(r"^\s*Traceback \(most recent call last\):")
_EXCEPTION_RE = re.compile(r"^\s*(?:[A-Za-z_][\w.]*\.)?\w*(?:Error|Exception):")
_TRACEBACK_FILE_RE = re.compile(
    r'^\s*File "(?P<path>[^"]+)", line (?P<line>\d+)(?:, in (?P<func>.+?))?\s*$'
)

Location = tuple[str, DiagnosticRecord]
Resolver = Callable[[str], str]


def _zero_based(raw: str | None) -> int:
    try:
        value = int(raw or "")
    except ValueError:
        return 0
    return max(value - 1, 0)


def _one_line_severity(kind: str) -> DiagnosticSeverity:
    if kind == "note":
        return DiagnosticSeverity.Information
    if kind == "warning":
        return DiagnosticSeverity.Warning
    return DiagnosticSeverity.Error


def scan_one_line(lines: Iterable[str]) -> Iterator[Location]:
    for line in lines:
        match = _ONE_LINE_RE.match(line)
        if match is None:
            continue
        yield match.group("path"), DiagnosticRecord(
            line=_zero_based(match.group("line")),
            character=_zero_based(match.group("col")),
            severity=_one_line_severity(match.group("kind")),
            source=ONE_LINE_SOURCE,
            message=match.group("message").rstrip(),
        )


@dataclass(frozen=True)
class PendingReport:
    kind: str
    message: str


def scan_sanitizer(lines: Iterable[str]) -> Iterator[Location]:
    state: PendingReport | None = None
    for line in lines:
        header = _SANITIZER_HEADER_RE.match(line)
        if header is not None:
            state = PendingReport(header.group("kind"), header.group("message").rstrip())
            continue
        if state is None:
            continue
        if _SANITIZER_ABORT_RE.match(line):
            state = None
            continue
        frame = _SANITIZER_FRAME_RE.match(line)
        if frame is None or int(frame.group("index")) != SANITIZER_USER_FRAME:
            continue
        yield frame.group("path"), DiagnosticRecord(
            line=_zero_based(frame.group("line")),
            character=_zero_based(frame.group("col")),
            severity=DiagnosticSeverity.Error,
            source=SANITIZER_SOURCE_PREFIX + state.kind,
            message=state.message,
        )


@dataclass(frozen=True)
class PendingMessage:
    message: str


def scan_single_frame(lines: Iterable[str]) -> Iterator[Location]:
    state: PendingMessage | None = None
    for line in lines:
        if _TRACE_OPEN_RE.search(line):
            state = PendingMessage(line.strip())
            continue
        if state is None:
            continue
        frame = _TRACE_AT_RE.match(line)
        if frame is None:
            continue
        yield frame.group("path"), DiagnosticRecord(
            line=_zero_based(frame.group("line")),
            character=0,
            severity=DiagnosticSeverity.Error,
            source=RUNTIME_SOURCE,
            message=state.message,
        )
        state = None


@dataclass(frozen=True)
class PendingException:
    message: str
    severity: DiagnosticSeverity = DiagnosticSeverity.Error


def scan_traceback(lines: Sequence[str]) -> Iterator[Location]:
    """Walk the log bottom-up so the innermost frame of each traceback comes first.

    The innermost frame is reported as an error; the frames that called into it
    are reported as warnings carrying the same message.
    """
    state: PendingException | None = None
    for line in reversed(lines):
        if _EXCEPTION_RE.match(line):
            state = PendingException(line.strip())
            continue
        if _TRACEBACK_HEAD_RE.match(line):
            state = None
            continue
        location = _TRACEBACK_FILE_RE.match(line)
        if location is None or state is None:
            continue
        func = location.group("func")
        message = state.message if not func else f"{state.message} in {func}"
        yield location.group("path"), DiagnosticRecord(
            line=_zero_based(location.group("line")),
            character=0,
            severity=state.severity,
            source=RUNTIME_SOURCE,
            message=message,
        )
        state = replace(state, severity=DiagnosticSeverity.Warning)


GRAMMARS: tuple[Callable[[Sequence[str]], Iterator[Location]], ...] = (
    scan_one_line,
    scan_sanitizer,
    scan_single_frame,
    scan_traceback,
)


def parse_logs(text: str, resolve: Resolver) -> dict[str, list[DiagnosticRecord]]:
    lines = text.splitlines()
    table: dict[str, list[DiagnosticRecord]] = {}
    for grammar in GRAMMARS:
        for raw_path, record in grammar(lines):
            uri = resolve(raw_path)
            if not uri:
                logger.debug("no document for %s; dropping %r", raw_path, record.message)
                continue
            table.setdefault(uri, []).append(record)
    return table
