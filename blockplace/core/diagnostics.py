"""
Diagnostics sinks for placement issues.

The placement core never holds process-wide error state. Every component that
can report a problem receives a DiagnosticsSink and calls report() on it. The
caller decides what to do with the issues: log them (LoggingSink), collect them
for an inspector view or a tool response (CollectingSink), or both.

Usage:
    sink = CollectingSink()
    cache = TemplateCache(session, diagnostics=sink)
    ...
    for subject, issues in sink.by_subject():
        print(subject, [issue.message for issue in issues])
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import IssueKind

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Severity of a reported issue."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass
class Issue:
    """A single reported issue.

    Attributes:
        message: Human-readable description
        subject: Host handle of the instance the issue is about (may be None)
        severity: Issue severity
        kind: Error category, if known
        group: Grouping label, e.g. "Error in block 'DOOR'"
        label: Text form of subject taken when the issue was reported; the
            subject itself may be deleted by then (cache templates are)
    """
    message: str
    subject: Any = None
    severity: Severity = Severity.ERROR
    kind: Optional[IssueKind] = None
    group: Optional[str] = None
    label: Optional[str] = None

    def __post_init__(self):
        if self.label is None and self.subject is not None:
            self.label = str(self.subject)

    def to_dict(self) -> Dict[str, Any]:
        """Convert issue to a JSON-friendly dictionary."""
        return {
            "message": self.message,
            "subject": self.label,
            "severity": self.severity.value,
            "kind": self.kind.value if self.kind else None,
            "group": self.group,
        }


class DiagnosticsSink:
    """Base class for issue consumers.

    Subclass and override report() to route issues somewhere useful.
    """

    def report(
        self,
        message: str,
        subject: Any = None,
        severity: Severity = Severity.ERROR,
        kind: Optional[IssueKind] = None,
        group: Optional[str] = None,
    ) -> None:
        """Called whenever the core reports an issue."""
        pass


class LoggingSink(DiagnosticsSink):
    """Sink that forwards every issue to a logger."""

    def __init__(self, target: Optional[logging.Logger] = None):
        self._logger = target or logger

    def report(self, message, subject=None, severity=Severity.ERROR, kind=None, group=None):
        prefix = f"[{group}] " if group else ""
        self._logger.log(_LOG_LEVELS[severity], f"{prefix}{message}")


class CollectingSink(DiagnosticsSink):
    """Sink that keeps issues in memory, optionally logging them as well.

    Example:
        sink = CollectingSink()
        sink.report("Property 'WIDTH' is not defined", subject=insert)
        assert sink.has_errors
    """

    def __init__(self, log: bool = False):
        self.issues: List[Issue] = []
        self._log = log

    def report(self, message, subject=None, severity=Severity.ERROR, kind=None, group=None):
        self.issues.append(Issue(message, subject, severity, kind, group))
        if self._log:
            logger.log(_LOG_LEVELS[severity], message)

    @property
    def errors(self) -> List[Issue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Issue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return any(i.severity == Severity.ERROR for i in self.issues)

    def of_kind(self, kind: IssueKind) -> List[Issue]:
        return [i for i in self.issues if i.kind == kind]

    def for_subject(self, subject: Any) -> List[Issue]:
        return [i for i in self.issues if i.subject is subject]

    def by_subject(self) -> List[Tuple[Any, List[Issue]]]:
        """Group issues per subject, in first-report order.

        Subjects are compared by identity so unhashable host handles work too.
        """
        groups: List[Tuple[Any, List[Issue]]] = []
        for issue in self.issues:
            for subject, issues in groups:
                if subject is issue.subject:
                    issues.append(issue)
                    break
            else:
                groups.append((issue.subject, [issue]))
        return groups

    def clear(self) -> None:
        self.issues.clear()

    def __len__(self) -> int:
        return len(self.issues)
