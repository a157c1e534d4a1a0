"""Exceptions raised by the position engine."""


class PositionEngineError(Exception):
    """Base exception for position engine errors."""

    pass


class ExitValidationError(PositionEngineError):
    """Exit request rejected before any state was touched."""

    pass


class ConsistencyFault(PositionEngineError):
    """Stored position state violates an engine invariant."""

    pass


class UnknownExitTypeError(ConsistencyFault):
    """Exit could not be classified into a lifecycle stage."""

    pass


class PositionNotFoundError(PositionEngineError):
    """No position stored under the requested id."""

    pass


class ConcurrentModificationError(PositionEngineError):
    """Position was committed by another writer since it was loaded."""

    pass
