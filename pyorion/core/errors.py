"""
Error taxonomy for PyOrion.

Configuration and scope-sequencing problems are raised and must not be
ignored. Rendering problems that only affect one statement are reported as a
RenderError value on the generation result instead.
"""
from dataclasses import dataclass
from typing import Optional

__all__ = [
    "OrionError",
    "ConfigurationError",
    "ScopeSequenceError",
    "RenderError",
]


class OrionError(Exception):
    """Base class for all PyOrion errors."""


class ConfigurationError(OrionError, ValueError):
    """A grammar, grammar definition or weight vector is malformed."""


class ScopeSequenceError(OrionError, RuntimeError):
    """A scope operation was invoked from a state that does not allow it.

    This signals a defect in the way a grammar wires its behaviours, not a
    problem with the catalog data.
    """

    def __init__(self, operation: str, state: str, detail: str = ""):
        self.operation = operation
        self.state = state
        message = f"{operation} called in scope state {state}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


@dataclass(frozen=True)
class RenderError:
    """Why a statement could not be rendered."""
    reason: str
    symbol: Optional[str] = None
