"""
Drawing session adapters.

- InMemoryDrawing: plain-Python host document (dry runs, tests)
- EzdxfSession: DXF host document backed by ezdxf
"""

from .errors import DefinitionNotFoundError, InstanceErasedError
from .memory_session import (
    AttributeDefinition,
    BlockDefinition,
    BlockInstance,
    InMemoryDrawing,
    ParameterDefinition,
)
from .ezdxf_session import EzdxfSession, define_parameters, read_parameters

__all__ = [
    'DefinitionNotFoundError',
    'InstanceErasedError',
    'AttributeDefinition',
    'BlockDefinition',
    'BlockInstance',
    'InMemoryDrawing',
    'ParameterDefinition',
    'EzdxfSession',
    'define_parameters',
    'read_parameters',
]
