"""
Unified property model over attribute text fields and dynamic parameters.

A block instance is scanned once into a PropertySet: attribute fields first,
then dynamic parameters, in discovery order. Both kinds are then read and
written through one name-pattern interface:

    props = PropertySet.scan(session.attribute_fields(insert),
                             session.parameter_fields(insert),
                             subject=insert, block_name="DOOR",
                             diagnostics=sink)

    width = props.get_value("Width", float)
    props.set_value("TAG", "D-01")
    height = props.get_value_or_default("Height", 2100.0, write_default=True)

Property-level problems (missing property, type mismatch, write failure) are
reported to the diagnostics sink and never abort the caller.
"""

import logging
import math
import re
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

from .diagnostics import DiagnosticsSink, LoggingSink, Severity
from .errors import (
    IssueKind,
    MissingPropertyError,
    PlacementError,
    PropertyWriteError,
    TypeMismatchError,
)
from .fields import ParameterField, ParamTypeCode, TextField

logger = logging.getLogger(__name__)


class PropertyKind(Enum):
    """Physical backing of a property."""
    FIXED_TEXT = "fixed_text"
    PARAMETRIC = "parametric"


# ============================================================================
# Coercion
# ============================================================================

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


def coerce_value(value: Any, target_type: Optional[type], name: Optional[str] = None) -> Any:
    """
    Convert value to target_type.

    Args:
        value: Value to convert
        target_type: Requested type (None returns value unchanged)
        name: Property name, used in the error message

    Returns:
        Converted value

    Raises:
        TypeMismatchError: If the value cannot be converted
    """
    if target_type is None:
        return value

    if target_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in _TRUE_STRINGS:
                return True
            if text in _FALSE_STRINGS:
                return False
            raise TypeMismatchError(value, target_type, name)
        if isinstance(value, (int, float)):
            return bool(value)
        raise TypeMismatchError(value, target_type, name)

    # bool is an int subclass but never an acceptable number as-is
    if isinstance(value, target_type) and not isinstance(value, bool):
        return value

    try:
        if target_type is int:
            if isinstance(value, float):
                if not math.isfinite(value):
                    raise ValueError(f"non-finite value {value}")
                return int(round(value))
            if isinstance(value, str):
                text = value.strip()
                try:
                    return int(text)
                except ValueError:
                    return int(round(float(text)))
            return int(value)

        if target_type is float:
            return float(value)

        if target_type is str:
            return "" if value is None else str(value)

        return target_type(value)

    except (TypeError, ValueError, OverflowError) as e:
        raise TypeMismatchError(value, target_type, name) from e


def zero_value(target_type: Optional[type]) -> Any:
    """Zero value of a type: target_type(), or None if it has no such constructor."""
    if target_type is None:
        return None
    try:
        return target_type()
    except TypeError:
        return None


def same_value(a: Any, b: Any) -> bool:
    """Type-strict equality: True, 1 and 1.0 are three different values."""
    return type(a) is type(b) and a == b


# ============================================================================
# PropertyModel
# ============================================================================

class PropertyModel:
    """
    One named property of a block instance.

    Equality covers the case-insensitive name and the value (type included). The
    source_handle identifies where the property lives in the host document,
    not what it is, so two instances with identical fields compare equal.
    """

    __slots__ = ("_name", "_kind", "value", "source_handle")

    def __init__(self, name: str, kind: PropertyKind, value: Any = None, source_handle: Any = None):
        self._name = name
        self._kind = kind
        self.value = value
        self.source_handle = source_handle

    @classmethod
    def from_text_field(cls, field: TextField) -> "PropertyModel":
        return cls(field.tag, PropertyKind.FIXED_TEXT, field.text, field)

    @classmethod
    def from_parameter_field(cls, field: ParameterField) -> "PropertyModel":
        return cls(field.name, PropertyKind.PARAMETRIC, field.value, field)

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> PropertyKind:
        return self._kind

    def __eq__(self, other) -> bool:
        if not isinstance(other, PropertyModel):
            return NotImplemented
        return self._name.casefold() == other._name.casefold() and same_value(self.value, other.value)

    def __hash__(self) -> int:
        return hash(self._name.casefold())

    def __repr__(self) -> str:
        return f"PropertyModel({self._name!r}, {self._kind.name}, {self.value!r})"


# ============================================================================
# PropertySet
# ============================================================================

def _name_matcher(pattern: str, exact_match: bool) -> Callable[[str], bool]:
    """Build a case-insensitive name predicate for a lookup pattern."""
    try:
        regex = re.compile(pattern, re.IGNORECASE)
    except re.error:
        regex = re.compile(re.escape(pattern), re.IGNORECASE)

    if exact_match:
        folded = pattern.casefold()
        return lambda name: name.casefold() == folded or regex.fullmatch(name) is not None

    return lambda name: regex.search(name) is not None


class PropertySet:
    """
    Ordered properties of one block instance.

    Lookups scan in order and the first match wins, so duplicate names are
    tolerated. Equality is a multiset comparison and ignores order.

    Attributes:
        subject: Host handle of the owning instance (used in reported issues)
        block_name: Name of the owning block definition
        diagnostics: Sink receiving missing-property / mismatch / write issues
    """

    def __init__(
        self,
        properties: Optional[Iterable[PropertyModel]] = None,
        subject: Any = None,
        block_name: str = "",
        diagnostics: Optional[DiagnosticsSink] = None,
    ):
        self._properties: List[PropertyModel] = list(properties or [])
        self.subject = subject
        self.block_name = block_name
        self.diagnostics = diagnostics if diagnostics is not None else LoggingSink()

    @classmethod
    def scan(
        cls,
        text_fields: Iterable[TextField],
        parameter_fields: Iterable[ParameterField],
        subject: Any = None,
        block_name: str = "",
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> "PropertySet":
        """Build a set from host fields: text fields first, then parameters."""
        properties = [PropertyModel.from_text_field(f) for f in text_fields]
        properties.extend(PropertyModel.from_parameter_field(f) for f in parameter_fields)
        return cls(properties, subject=subject, block_name=block_name, diagnostics=diagnostics)

    # ------------------------------------------------------------------
    # Collection protocol
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[PropertyModel]:
        return iter(self._properties)

    def __len__(self) -> int:
        return len(self._properties)

    def __getitem__(self, index: int) -> PropertyModel:
        return self._properties[index]

    def names(self) -> List[str]:
        return [p.name for p in self._properties]

    def __eq__(self, other) -> bool:
        if not isinstance(other, PropertySet):
            return NotImplemented
        if len(self._properties) != len(other._properties):
            return False

        # Values may be unhashable, so match pairwise instead of counting
        remaining = list(other._properties)
        for prop in self._properties:
            for i, candidate in enumerate(remaining):
                if prop == candidate:
                    del remaining[i]
                    break
            else:
                return False
        return True

    __hash__ = None

    def __repr__(self) -> str:
        return f"PropertySet({self.block_name!r}, {self._properties!r})"

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @property
    def group(self) -> str:
        return f"Error in block '{self.block_name}'"

    def report(self, message: str, severity: Severity = Severity.ERROR,
               kind: Optional[IssueKind] = None) -> None:
        """Report an issue about the owning instance."""
        self.diagnostics.report(message, subject=self.subject, severity=severity,
                                kind=kind, group=self.group)

    def report_error(self, error: PlacementError, severity: Severity = Severity.ERROR) -> None:
        self.report(str(error), severity=severity, kind=error.kind)

    # ------------------------------------------------------------------
    # Lookup and typed reads
    # ------------------------------------------------------------------

    def get_property(self, pattern: str, required: bool = True,
                     exact_match: bool = True) -> Optional[PropertyModel]:
        """
        Find the first property whose name matches pattern.

        Args:
            pattern: Case-insensitive regex (or literal) property name
            required: Report a missing-property issue when nothing matches
            exact_match: Require the whole name to match

        Returns:
            Matching property, or None
        """
        matches = _name_matcher(pattern, exact_match)
        for prop in self._properties:
            if matches(prop.name):
                return prop

        if required:
            self.report_error(MissingPropertyError(pattern, self.block_name))
        return None

    def find_value(self, pattern: str, value_type: Optional[type] = None,
                   required: bool = True, exact_match: bool = True) -> Tuple[Any, bool]:
        """
        Typed read that also tells whether the property exists.

        Returns:
            (value, found): value is the zero value of value_type when the
            property is missing, empty or not convertible
        """
        prop = self.get_property(pattern, required, exact_match)
        if prop is None:
            return zero_value(value_type), False

        if prop.value is None:
            return zero_value(value_type), True

        try:
            return coerce_value(prop.value, value_type, prop.name), True
        except TypeMismatchError as e:
            if required:
                self.report_error(e)
            else:
                logger.warning(f"{e} (block '{self.block_name}')")
            return zero_value(value_type), True

    def get_value(self, pattern: str, value_type: Optional[type] = None,
                  required: bool = True, exact_match: bool = True) -> Any:
        """Typed read; missing or mismatched values yield the type's zero value."""
        value, _ = self.find_value(pattern, value_type, required, exact_match)
        return value

    def get_value_or_default(
        self,
        pattern: str,
        default: Any,
        value_type: Optional[type] = None,
        required: bool = False,
        exact_match: bool = True,
        write_default: bool = False,
    ) -> Any:
        """
        Typed read falling back to default when the result is the zero value.

        Args:
            pattern: Property name pattern
            default: Value returned when the property is absent or holds the
                zero value of value_type
            value_type: Requested type (inferred from default when omitted)
            required: Report a missing property
            exact_match: Require the whole name to match
            write_default: Write default back into an existing property that
                held the zero value. A failed write is logged only.

        Returns:
            Property value or default
        """
        if value_type is None and default is not None:
            value_type = type(default)

        value, found = self.find_value(pattern, value_type, required, exact_match)
        if value != zero_value(value_type):
            return value

        if write_default and found:
            prop = self.get_property(pattern, required=False, exact_match=exact_match)
            try:
                self.write(prop, default)
            except PropertyWriteError as e:
                logger.error(f"Failed to write default value: {e}")

        return default

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_value(self, pattern: str, value: Any, exact_match: bool = True,
                  required: bool = True) -> bool:
        """
        Write value into the matching property.

        Failures are reported once to the diagnostics sink and swallowed.

        Returns:
            True if the property was found and written
        """
        prop = self.get_property(pattern, required, exact_match)
        if prop is None:
            return False

        try:
            self.write(prop, value)
        except PropertyWriteError as e:
            self.report_error(e, Severity.ERROR if required else Severity.WARNING)
            return False
        return True

    def set_value_strict(self, pattern: str, value: Any, exact_match: bool = True) -> None:
        """
        Write value into the matching property, raising instead of reporting.

        Raises:
            MissingPropertyError: If no property matches
            PropertyWriteError: If the host write fails
        """
        prop = self.get_property(pattern, required=False, exact_match=exact_match)
        if prop is None:
            raise MissingPropertyError(pattern, self.block_name)
        self.write(prop, value)

    def write(self, prop: PropertyModel, value: Any) -> None:
        """
        Dispatch a write on the property kind.

        Raises:
            PropertyWriteError: Wrapping whatever the host raised
        """
        current = prop.value
        try:
            if prop.kind is PropertyKind.FIXED_TEXT:
                self._write_text(prop, value)
            else:
                self._write_parameter(prop, value)
        except Exception as e:
            raise PropertyWriteError(prop.name, value, current, self.block_name, reason=str(e)) from e

    @staticmethod
    def _write_text(prop: PropertyModel, value: Any) -> None:
        field: TextField = prop.source_handle
        text = "" if value is None else str(value)

        if field.is_rich_text:
            field.set_rich_contents(text)
        else:
            field.set_text(text)

        if not field.has_default_alignment:
            field.adjust_alignment()

        prop.value = text

    @staticmethod
    def _write_parameter(prop: PropertyModel, value: Any) -> None:
        if value is None:
            return

        field: ParameterField = prop.source_handle
        type_code = field.type_code
        if type_code is ParamTypeCode.NULL:
            return

        current = field.value
        if type_code is ParamTypeCode.REAL:
            new_value = coerce_value(value, float, prop.name)
        elif current is None:
            new_value = value
        else:
            new_value = coerce_value(value, type(current), prop.name)

        # Unchanged values are not reassigned to avoid a host recompute
        if new_value != current:
            field.value = new_value

        prop.value = new_value
