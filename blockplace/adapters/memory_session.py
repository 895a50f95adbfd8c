"""
In-memory host document.

A small drawing model (block definitions, containers, block instances with
attribute and parameter fields) that implements DrawingSession without any
CAD file behind it. Used for dry runs of a placement batch and as the
reference host in tests; the operation counters make the configure-once
behaviour of TemplateCache observable.

Usage:
    drawing = InMemoryDrawing()
    drawing.define_block(
        "DOOR",
        attributes=[AttributeDefinition("TAG", "")],
        parameters=[ParameterDefinition("Width", ParamTypeCode.REAL, 800.0)],
    )
    cache = TemplateCache(drawing)
    door = cache.place(PlacementRequest(definition_id="DOOR", position=(10, 5)))
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional

from ezdxf.math import Matrix44, Vec3

from ..core.fields import ParameterField, ParamTypeCode, TextField
from ..core.session import DrawingSession
from ..core.transform import uniform_scale_factor
from .errors import DefinitionNotFoundError, InstanceErasedError


MODEL_SPACE = "MODEL"
STAGING_SPACE = "STAGING"


# ============================================================================
# Definitions
# ============================================================================

@dataclass
class AttributeDefinition:
    """Attribute slot of a block definition."""
    tag: str
    text: str = ""
    rich_text: bool = False
    default_alignment: bool = True


@dataclass
class ParameterDefinition:
    """Dynamic parameter of a block definition."""
    name: str
    type_code: ParamTypeCode = ParamTypeCode.REAL
    value: Any = 0.0


@dataclass
class BlockDefinition:
    """Named block definition."""
    name: str
    attributes: List[AttributeDefinition] = field(default_factory=list)
    parameters: List[ParameterDefinition] = field(default_factory=list)


# ============================================================================
# Instance fields
# ============================================================================

class MemoryAttribute(TextField):
    """Attribute of an in-memory block instance."""

    def __init__(self, tag: str, text: str = "", rich_text: bool = False,
                 default_alignment: bool = True):
        self._tag = tag
        self._text = text
        self._rich_text = rich_text
        self._default_alignment = default_alignment
        self.rich_contents: Optional[str] = text if rich_text else None
        self.alignment_adjustments = 0

    @property
    def tag(self) -> str:
        return self._tag

    @property
    def text(self) -> str:
        return self._text

    @property
    def is_rich_text(self) -> bool:
        return self._rich_text

    def set_text(self, text: str) -> None:
        self._text = text

    def set_rich_contents(self, text: str) -> None:
        self.rich_contents = text
        self._text = text

    @property
    def has_default_alignment(self) -> bool:
        return self._default_alignment

    def adjust_alignment(self) -> None:
        self.alignment_adjustments += 1

    def copy(self) -> "MemoryAttribute":
        clone = MemoryAttribute(self._tag, self._text, self._rich_text, self._default_alignment)
        clone.rich_contents = self.rich_contents
        return clone


class MemoryParameter(ParameterField):
    """Dynamic parameter of an in-memory block instance."""

    def __init__(self, name: str, type_code: ParamTypeCode, value: Any):
        self._name = name
        self._type_code = type_code
        self._value = value
        self.assignments = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def type_code(self) -> ParamTypeCode:
        return self._type_code

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, new_value: Any) -> None:
        self._value = new_value
        self.assignments += 1

    def copy(self) -> "MemoryParameter":
        return MemoryParameter(self._name, self._type_code, self._value)


# ============================================================================
# Instances
# ============================================================================

@dataclass(eq=False)
class BlockInstance:
    """Placed occurrence of a block definition."""
    handle: int
    definition: BlockDefinition
    container: str
    position: Vec3 = field(default_factory=Vec3)
    scale: float = 1.0
    attributes: List[MemoryAttribute] = field(default_factory=list)
    parameters: List[MemoryParameter] = field(default_factory=list)
    erased: bool = False

    def __repr__(self) -> str:
        return f"BlockInstance(#{self.handle} {self.definition.name!r} at {tuple(self.position)})"


# ============================================================================
# Drawing
# ============================================================================

class InMemoryDrawing(DrawingSession):
    """DrawingSession over plain Python objects.

    Attributes:
        definitions: Block definitions by name
        containers: Instances per container name
        counters: Number of instantiate/duplicate/transform/delete calls
    """

    def __init__(self):
        self.definitions: Dict[str, BlockDefinition] = {}
        self.containers: Dict[str, List[BlockInstance]] = {MODEL_SPACE: [], STAGING_SPACE: []}
        self.counters: Dict[str, int] = {
            "instantiate": 0,
            "duplicate": 0,
            "transform": 0,
            "delete": 0,
        }
        self._handles = itertools.count(1)

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    def define_block(
        self,
        name: str,
        attributes: Optional[List[AttributeDefinition]] = None,
        parameters: Optional[List[ParameterDefinition]] = None,
    ) -> BlockDefinition:
        """Add (or replace) a block definition."""
        definition = BlockDefinition(name, list(attributes or []), list(parameters or []))
        self.definitions[name] = definition
        return definition

    def add_container(self, name: str) -> str:
        self.containers.setdefault(name, [])
        return name

    def instances(self, container: str = MODEL_SPACE) -> List[BlockInstance]:
        return list(self.containers.get(container, []))

    # ------------------------------------------------------------------
    # DrawingSession
    # ------------------------------------------------------------------

    @property
    def staging_container(self) -> str:
        return STAGING_SPACE

    @property
    def default_container(self) -> str:
        return MODEL_SPACE

    def definition_name(self, definition_id: Hashable) -> str:
        return str(definition_id)

    def instantiate(self, definition_id: Hashable, container: Any, point: Vec3) -> BlockInstance:
        definition = self.definitions.get(definition_id)
        if definition is None:
            raise DefinitionNotFoundError(definition_id)

        instance = BlockInstance(
            handle=next(self._handles),
            definition=definition,
            container=self._container(container),
            position=Vec3(point),
            attributes=[
                MemoryAttribute(a.tag, a.text, a.rich_text, a.default_alignment)
                for a in definition.attributes
            ],
            parameters=[
                MemoryParameter(p.name, p.type_code, p.value) for p in definition.parameters
            ],
        )
        self.containers[instance.container].append(instance)
        self.counters["instantiate"] += 1
        return instance

    def duplicate(self, instance: BlockInstance, container: Any) -> BlockInstance:
        self._check_alive(instance)
        clone = BlockInstance(
            handle=next(self._handles),
            definition=instance.definition,
            container=self._container(container),
            position=Vec3(instance.position),
            scale=instance.scale,
            attributes=[a.copy() for a in instance.attributes],
            parameters=[p.copy() for p in instance.parameters],
        )
        self.containers[clone.container].append(clone)
        self.counters["duplicate"] += 1
        return clone

    def transform(self, instance: BlockInstance, matrix: Matrix44) -> None:
        self._check_alive(instance)
        instance.position = matrix.transform(instance.position)
        instance.scale *= uniform_scale_factor(matrix)
        self.counters["transform"] += 1

    def reference_point(self, instance: BlockInstance) -> Vec3:
        return instance.position

    def attribute_fields(self, instance: BlockInstance) -> List[TextField]:
        return list(instance.attributes)

    def parameter_fields(self, instance: BlockInstance) -> List[ParameterField]:
        return list(instance.parameters)

    def delete(self, instance: BlockInstance) -> None:
        self._check_alive(instance)
        self.containers[instance.container].remove(instance)
        instance.erased = True
        self.counters["delete"] += 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _container(self, container: Any) -> str:
        if container not in self.containers:
            raise KeyError(f"Container not found: {container!r}")
        return container

    @staticmethod
    def _check_alive(instance: BlockInstance) -> None:
        if instance.erased:
            raise InstanceErasedError(f"Instance #{instance.handle} was deleted")
