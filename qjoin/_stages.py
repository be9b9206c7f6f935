"""Contains the interfaces that join order optimization strategies implement."""
from __future__ import annotations

import abc
import dataclasses
from typing import Optional

from ._core import BasicPattern
from ._engine import ExecutionContext
from .util.jsonize import jsondict


@dataclasses.dataclass(frozen=True)
class PreCheckResult:
    """Wrapper for a validation result.

    Attributes
    ----------
    passed : bool
        Whether the pattern can be optimized without restrictions
    failure_reason : str
        Describes the problem if the check did not pass. Empty otherwise.
    """
    passed: bool = True
    failure_reason: str = ""

    @staticmethod
    def with_all_passed() -> PreCheckResult:
        return PreCheckResult()

    @staticmethod
    def with_failure(failure: str) -> PreCheckResult:
        return PreCheckResult(False, failure)


class OptimizationPreCheck(abc.ABC):
    """The pre-check interface tests whether a pattern has properties that an optimization strategy cannot handle well.

    Parameters
    ----------
    name : str
        The name of the check. It should describe what features the check tests.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    def check_supported_pattern(self, pattern: BasicPattern) -> PreCheckResult:
        """Validates that a specific pattern can be optimized. Passes all input by default."""
        return PreCheckResult.with_all_passed()

    @abc.abstractmethod
    def describe(self) -> jsondict:
        """Provides a JSON-serializable representation of the specific check."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"OptimizationPreCheck [{self.name}]"


class EmptyPreCheck(OptimizationPreCheck):
    """Dummy check that does not actually validate anything."""

    def __init__(self) -> None:
        super().__init__("empty")

    def describe(self) -> jsondict:
        return {"name": "no_check"}


class CrossProductPreCheck(OptimizationPreCheck):
    """Check to assert that the fragments of a pattern can be joined without cartesian products.

    Patterns with cross products can still be optimized, but every join order has to compute at least one cartesian product
    at some point, which usually dominates the execution time.
    """

    def __init__(self) -> None:
        super().__init__("no-cross-products")

    def check_supported_pattern(self, pattern: BasicPattern) -> PreCheckResult:
        if pattern.has_cross_products():
            return PreCheckResult.with_failure("Pattern contains fragments that do not share variables with the others")
        return PreCheckResult.with_all_passed()

    def describe(self) -> jsondict:
        return {"name": "no_cross_products"}


class JoinOrderOptimization(abc.ABC):
    """The join order optimization determines the order in which the fragments of a pattern are joined."""

    @abc.abstractmethod
    def optimize_join_order(self, pattern: BasicPattern, context: ExecutionContext) -> Optional[list[int]]:
        """Performs the actual join ordering process.

        Parameters
        ----------
        pattern : BasicPattern
            The pattern to optimize
        context : ExecutionContext
            The context in which the pattern will be executed. Strategies that measure real executions use it to run
            candidate join orders.

        Returns
        -------
        Optional[list[int]]
            The fragment indexes in join order. If the strategy could not determine a complete join order, *None* is returned.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def describe(self) -> jsondict:
        """Provides a JSON-serializable representation of the specific strategy, as well as important parameters."""
        raise NotImplementedError

    def pre_check(self) -> OptimizationPreCheck:
        """Provides requirements that input patterns have to satisfy for the optimizer to work properly."""
        return EmptyPreCheck()

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return type(self).__name__


class TextualJoinOrder(JoinOrderOptimization):
    """Dummy strategy that joins the fragments in the order in which they appear in the pattern.

    This is mostly useful as a baseline to compare learned join orders against.
    """

    def optimize_join_order(self, pattern: BasicPattern, context: ExecutionContext) -> Optional[list[int]]:
        return list(range(len(pattern)))

    def describe(self) -> jsondict:
        return {"name": "textual"}
