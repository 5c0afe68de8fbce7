from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, TypeAlias, Union

from lsprotocol.types import DiagnosticSeverity

from logdiag.json_types import JSONObject

DiagnosticKey: TypeAlias = tuple[int, int, int, int, int, str, str]


@dataclass(frozen=True)
class DiagnosticRecord:
    """A single-point diagnostic mined from log text."""

    line: int
    character: int
    severity: DiagnosticSeverity
    source: str
    message: str

    @property
    def end_character(self) -> int:
        return self.character + 1

    def key(self) -> DiagnosticKey:
        return (
            self.line,
            self.character,
            self.line,
            self.end_character,
            int(self.severity),
            self.source,
            self.message,
        )

    def to_json(self) -> JSONObject:
        return {
            "range": {
                "start": {"line": self.line, "character": self.character},
                "end": {"line": self.line, "character": self.end_character},
            },
            "severity": int(self.severity),
            "source": self.source,
            "message": self.message,
        }


Diagnostic: TypeAlias = Union[DiagnosticRecord, JSONObject]


def _int_field(value: object) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    return 0


def _position(payload: object, name: str) -> tuple[int, int]:
    if not isinstance(payload, Mapping):
        return 0, 0
    position = payload.get(name)
    if not isinstance(position, Mapping):
        return 0, 0
    return _int_field(position.get("line")), _int_field(position.get("character"))


def diagnostic_key(diagnostic: Diagnostic) -> DiagnosticKey:
    if isinstance(diagnostic, DiagnosticRecord):
        return diagnostic.key()
    range_payload = diagnostic.get("range")
    start_line, start_char = _position(range_payload, "start")
    end_line, end_char = _position(range_payload, "end")
    source = diagnostic.get("source")
    message = diagnostic.get("message")
    return (
        start_line,
        start_char,
        end_line,
        end_char,
        _int_field(diagnostic.get("severity")),
        source if isinstance(source, str) else "",
        message if isinstance(message, str) else "",
    )


def diagnostic_json(diagnostic: Diagnostic) -> JSONObject:
    if isinstance(diagnostic, DiagnosticRecord):
        return diagnostic.to_json()
    return diagnostic
