from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_LOG_NAME = "/tmp/logdiag"
BUILD_LOG_SUFFIX = "_build.log"
RUN_LOG_SUFFIX = "_run.log"


class ProxyConfig(BaseModel):
    name: str = DEFAULT_LOG_NAME
    verbosity: int = Field(default=0, ge=0)
    debounce_ms: int = Field(default=300, gt=0)
    backend: List[str] = []
    search_max_dirs: int = Field(default=20_000, gt=0)
    truncate_logs: bool = True

    @property
    def build_log(self) -> Path:
        return Path(self.name + BUILD_LOG_SUFFIX)

    @property
    def run_log(self) -> Path:
        return Path(self.name + RUN_LOG_SUFFIX)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


class TextDocumentIdentifierDTO(BaseModel):
    uri: str


class DocumentNotificationDTO(BaseModel):
    textDocument: TextDocumentIdentifierDTO


class InitializeParamsDTO(BaseModel):
    rootUri: Optional[str] = None
    rootPath: Optional[str] = None


class PublishDiagnosticsParamsDTO(BaseModel):
    uri: str
    version: Optional[int] = None
    diagnostics: List[Dict[str, Any]] = []
