"""
Core Layer - Block placement engine

Modules:
- properties: unified attribute / dynamic parameter access (PropertySet)
- template_cache: configure-once, duplicate-many placement (TemplateCache)
- transform: placement matrix math
- session: host document boundary (DrawingSession)
- diagnostics: injected issue sinks
- errors: error taxonomy
"""

from .diagnostics import (
    CollectingSink,
    DiagnosticsSink,
    Issue,
    LoggingSink,
    Severity,
)
from .errors import (
    CleanupError,
    IssueKind,
    MissingPropertyError,
    PlacementError,
    PropertyWriteError,
    TemplateConstructionError,
    TypeMismatchError,
)
from .fields import ParameterField, ParamTypeCode, TextField
from .properties import (
    PropertyKind,
    PropertyModel,
    PropertySet,
    coerce_value,
    same_value,
    zero_value,
)
from .session import DrawingSession
from .template_cache import CacheStats, TemplateCache, TemplateKey
from .transform import placement_matrix, scale_about, uniform_scale_factor

__all__ = [
    # Diagnostics
    'CollectingSink',
    'DiagnosticsSink',
    'Issue',
    'LoggingSink',
    'Severity',
    # Errors
    'CleanupError',
    'IssueKind',
    'MissingPropertyError',
    'PlacementError',
    'PropertyWriteError',
    'TemplateConstructionError',
    'TypeMismatchError',
    # Fields and properties
    'ParameterField',
    'ParamTypeCode',
    'TextField',
    'PropertyKind',
    'PropertyModel',
    'PropertySet',
    'coerce_value',
    'same_value',
    'zero_value',
    # Placement
    'DrawingSession',
    'CacheStats',
    'TemplateCache',
    'TemplateKey',
    'placement_matrix',
    'scale_about',
    'uniform_scale_factor',
]
