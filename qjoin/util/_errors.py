"""Contains the general errors that QJoin raises when its own assumptions break down."""
from __future__ import annotations


class LogicError(RuntimeError):
    """Indicates a bug in QJoin rather than faulty input.

    Faulty input (e.g. an empty pattern or an action that is not legal in the current state) is reported as a
    `ValueError`. A `LogicError` is raised when the optimizer ends up in a situation that its algorithms should have
    prevented, for example a trajectory that no longer matches the state it was built alongside.
    """
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class StateError(RuntimeError):
    """Indicates that an object is not in the right state to perform an operation, e.g. extracting a policy from a session
    that has been closed."""
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class InvariantViolationError(LogicError):
    """Indicates that a structural contract was violated, e.g. a value vector whose width differs from the pattern size."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
