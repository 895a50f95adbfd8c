"""
DrawingSession - boundary to the host drawing document.

The placement core never opens, commits or closes the host document. It only
needs the primitives below, each assumed atomic: it either succeeds or raises.
Adapters in blockplace.adapters implement them for an in-memory document and
for DXF documents via ezdxf.
"""

from abc import ABC, abstractmethod
from typing import Any, Hashable, List, Optional

from ezdxf.math import Matrix44, Vec3

from .diagnostics import DiagnosticsSink
from .fields import ParameterField, TextField
from .properties import PropertySet


class DrawingSession(ABC):
    """Abstract host document operations used by TemplateCache.

    Instance and container handles are opaque to the core: whatever the
    adapter returns is passed back unchanged.
    """

    @property
    @abstractmethod
    def staging_container(self) -> Any:
        """Container that receives template instances."""

    @property
    @abstractmethod
    def default_container(self) -> Any:
        """Container for placements whose request names no target."""

    @abstractmethod
    def definition_name(self, definition_id: Hashable) -> str:
        """Display name of a block definition."""

    @abstractmethod
    def instantiate(self, definition_id: Hashable, container: Any, point: Vec3) -> Any:
        """Insert a new instance of a definition at point in container."""

    @abstractmethod
    def duplicate(self, instance: Any, container: Any) -> Any:
        """Copy an instance (fields included) into container."""

    @abstractmethod
    def transform(self, instance: Any, matrix: Matrix44) -> None:
        """Apply a transform to an instance and its fields."""

    @abstractmethod
    def reference_point(self, instance: Any) -> Vec3:
        """Insertion point of an instance."""

    @abstractmethod
    def attribute_fields(self, instance: Any) -> List[TextField]:
        """Text fields of an instance, in discovery order."""

    @abstractmethod
    def parameter_fields(self, instance: Any) -> List[ParameterField]:
        """Dynamic parameters of an instance, in discovery order."""

    @abstractmethod
    def delete(self, instance: Any) -> None:
        """Remove an instance from its container."""

    def scan(self, instance: Any, definition_id: Hashable,
             diagnostics: Optional[DiagnosticsSink] = None) -> PropertySet:
        """Scan an instance into a PropertySet bound to it."""
        return PropertySet.scan(
            self.attribute_fields(instance),
            self.parameter_fields(instance),
            subject=instance,
            block_name=self.definition_name(definition_id),
            diagnostics=diagnostics,
        )
