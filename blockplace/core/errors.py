"""
Error taxonomy for block placement.

Property-level errors (missing property, type mismatch, write failure) are
recovered where they happen: reported to a DiagnosticsSink and replaced by a
zero/default value. Only TemplateConstructionError propagates out of
TemplateCache.place(), because without an instance the request cannot be
satisfied.
"""

from enum import Enum
from typing import Any, Optional


class IssueKind(str, Enum):
    """Category of a reported placement issue."""
    MISSING_PROPERTY = "missing_property"
    TYPE_MISMATCH = "type_mismatch"
    WRITE_FAILURE = "write_failure"
    TEMPLATE_CONSTRUCTION = "template_construction"
    CLEANUP = "cleanup"


class PlacementError(Exception):
    """Base exception for block placement errors."""

    kind: IssueKind = IssueKind.TEMPLATE_CONSTRUCTION


class MissingPropertyError(PlacementError):
    """Raised when a property name pattern matched nothing."""

    kind = IssueKind.MISSING_PROPERTY

    def __init__(self, pattern: str, block_name: str = ""):
        self.pattern = pattern
        self.block_name = block_name
        where = f" in block '{block_name}'" if block_name else ""
        super().__init__(f"Property '{pattern}' is not defined{where}")


class TypeMismatchError(PlacementError):
    """Raised when a value cannot be coerced to the requested type."""

    kind = IssueKind.TYPE_MISMATCH

    def __init__(self, value: Any, target_type: type, name: Optional[str] = None):
        self.value = value
        self.target_type = target_type
        self.name = name
        label = f"'{name}'" if name else "value"
        super().__init__(
            f"Invalid value type for {label} = {value!r}: "
            f"cannot convert to {getattr(target_type, '__name__', target_type)}"
        )


class PropertyWriteError(PlacementError):
    """Raised when writing a value into an attribute or parameter fails."""

    kind = IssueKind.WRITE_FAILURE

    def __init__(
        self,
        name: str,
        attempted: Any,
        current: Any = None,
        block_name: str = "",
        reason: Optional[str] = None,
    ):
        self.name = name
        self.attempted = attempted
        self.current = current
        self.block_name = block_name
        self.reason = reason
        message = (
            f"Failed to write property '{name}' = {attempted!r} "
            f"(current {current!r}) in block '{block_name}'"
        )
        if reason:
            message += f": {reason}"
        super().__init__(message)


class TemplateConstructionError(PlacementError):
    """Raised when a template or placement instance cannot be produced."""

    kind = IssueKind.TEMPLATE_CONSTRUCTION


class CleanupError(PlacementError):
    """Raised (and only logged) when a template cannot be deleted."""

    kind = IssueKind.CLEANUP
