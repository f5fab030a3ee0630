"""Errors raised by the resolution store and review workflow."""


class MappingError(Exception):
    """Base class for name mapping errors."""


class MappingNotFoundError(MappingError):
    """No mapping row with the requested key."""


class InvalidTransitionError(MappingError):
    """The requested status change is not allowed from the current state."""


class WriteConflictError(MappingError):
    """The row changed underneath the write; nothing was applied."""


class NothingToUndoError(WriteConflictError):
    """The mapping has no unconsumed history row."""
