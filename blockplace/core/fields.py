"""
Host field interfaces.

A block instance exposes two incompatible kinds of named fields:

- TextField: an attribute-like text slot (fixed structure, variable text),
  optionally holding rich (multi-line) text and a non-default alignment.
- ParameterField: a named dynamic parameter whose runtime type code decides
  how new values are coerced.

Host adapters (see blockplace.adapters) implement these over their own
document model; PropertySet reads and writes through them only.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class ParamTypeCode(Enum):
    """Runtime type code of a parametric field."""
    NULL = 0
    REAL = 1
    INTEGER = 2
    STRING = 3
    OTHER = 4


class TextField(ABC):
    """Attribute-like text field of a block instance."""

    @property
    @abstractmethod
    def tag(self) -> str:
        """Field name."""

    @property
    @abstractmethod
    def text(self) -> str:
        """Current text content."""

    @property
    @abstractmethod
    def is_rich_text(self) -> bool:
        """True if the field stores its text in a rich-text contents block."""

    @abstractmethod
    def set_text(self, text: str) -> None:
        """Assign plain text."""

    @abstractmethod
    def set_rich_contents(self, text: str) -> None:
        """Update the rich-text contents block through its own accessor."""

    @property
    @abstractmethod
    def has_default_alignment(self) -> bool:
        """True if the field uses the default (left/baseline) alignment."""

    @abstractmethod
    def adjust_alignment(self) -> None:
        """Recompute placement after a text change for non-default alignment."""


class ParameterField(ABC):
    """Dynamic parameter of a block instance."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Parameter name."""

    @property
    @abstractmethod
    def type_code(self) -> ParamTypeCode:
        """Runtime type code governing coercion."""

    @property
    @abstractmethod
    def value(self) -> Any:
        """Current value."""

    @value.setter
    @abstractmethod
    def value(self, new_value: Any) -> None:
        """Assign a new value (triggers host recompute)."""
