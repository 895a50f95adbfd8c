"""Host-level errors raised by drawing session adapters."""

from typing import Hashable


class DefinitionNotFoundError(KeyError):
    """Raised when a block definition does not exist in the drawing."""

    def __init__(self, definition_id: Hashable):
        self.definition_id = definition_id
        super().__init__(f"Block definition not found: {definition_id!r}")


class InstanceErasedError(RuntimeError):
    """Raised when an operation targets an instance that was deleted."""
    pass
