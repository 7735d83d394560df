"""
Diagnostic channel for the Mapping Editor Core.

Errors found while building a graph never cross the build boundary as exceptions.
They are converted into Diagnostic records, logged, and forwarded to an optional
alert callback (the editor's non-blocking alert panel).
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .exceptions import (
    MappingError, DefinitionNotFound, ArityMismatch, UnresolvedExpressionShape,
    IncompatibleConnection, VertexNotFound
)


class Severity(Enum):
    """Diagnostic severity levels, mirroring the alert panel."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# Severity used when an error is reported without an explicit level
DEFAULT_SEVERITY = {
    DefinitionNotFound: Severity.ERROR,
    ArityMismatch: Severity.WARNING,
    UnresolvedExpressionShape: Severity.ERROR,
    IncompatibleConnection: Severity.WARNING,
    VertexNotFound: Severity.ERROR,
}

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Diagnostic:
    """A single user-facing diagnostic."""
    severity: Severity
    code: str
    message: str
    statement_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time, compare=False)

    @classmethod
    def from_error(cls, error: MappingError, severity: Optional[Severity] = None,
                   statement_id: Optional[str] = None) -> 'Diagnostic':
        if severity is None:
            severity = DEFAULT_SEVERITY.get(type(error), Severity.ERROR)
        return cls(
            severity=severity,
            code=type(error).__name__,
            message=error.message,
            statement_id=statement_id,
            details=dict(error.details),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'severity': self.severity.value,
            'code': self.code,
            'message': self.message,
            'statementId': self.statement_id,
            'details': self.details,
        }


class DiagnosticSink:
    """Collects diagnostics, logs them and forwards them to the alert callback."""

    def __init__(self, on_alert: Optional[Callable[[Diagnostic], None]] = None,
                 logger: Optional[logging.Logger] = None):
        self.on_alert = on_alert
        self.logger = logger or logging.getLogger(__name__)
        self._diagnostics: List[Diagnostic] = []

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def emit(self, diagnostic: Diagnostic) -> Diagnostic:
        """Record a diagnostic."""
        self._diagnostics.append(diagnostic)
        self.logger.log(_LOG_LEVELS[diagnostic.severity], f"[{diagnostic.code}] {diagnostic.message}")
        if self.on_alert:
            try:
                self.on_alert(diagnostic)
            except Exception as e:
                self.logger.error(f"Alert callback failed: {e}")
        return diagnostic

    def report(self, error: MappingError, severity: Optional[Severity] = None,
               statement_id: Optional[str] = None) -> Diagnostic:
        """Convert an error into a diagnostic and record it."""
        return self.emit(Diagnostic.from_error(error, severity, statement_id))

    def error(self, message: str, code: str = "MappingError", **details) -> Diagnostic:
        return self.emit(Diagnostic(Severity.ERROR, code, message, details=details))

    def warning(self, message: str, code: str = "MappingWarning", **details) -> Diagnostic:
        return self.emit(Diagnostic(Severity.WARNING, code, message, details=details))

    def count(self, code: Optional[str] = None, severity: Optional[Severity] = None) -> int:
        """Count recorded diagnostics, optionally filtered by code and severity."""
        return sum(
            1 for d in self._diagnostics
            if (code is None or d.code == code) and (severity is None or d.severity == severity)
        )

    def clear(self):
        self._diagnostics.clear()
