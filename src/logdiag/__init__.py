"""logdiag package root."""

from logdiag.diagnostics import DiagnosticRecord
from logdiag.store import DiagnosticStore

__all__ = ["__version__", "DiagnosticRecord", "DiagnosticStore"]

__version__ = "0.1.0"
