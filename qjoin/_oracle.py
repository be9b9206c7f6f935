"""Provides the cost oracle that measures join orders by executing them on a real query engine."""
from __future__ import annotations

import dataclasses
import math
import time
from collections.abc import Sequence
from typing import Optional, Protocol, runtime_checkable

from ._core import BasicPattern, Cost
from ._engine import DeadlineOption, ExecutionContext, QueryEngine
from .util.jsonize import jsondict


@dataclasses.dataclass(frozen=True)
class Measurement:
    """Captures the outcome of executing a (partial) join order.

    Attributes
    ----------
    cost : Cost
        The elapsed wall-clock time in seconds. This is never negative. For cancelled executions, this is the time that had
        passed when the execution was cancelled.
    n_rows : int
        The number of result rows that have been produced. For cancelled executions, this only counts the rows produced until
        the cancellation.
    timed_out : bool
        Whether the execution was cancelled because it exceeded the timeout.
    """
    cost: Cost
    n_rows: int = 0
    timed_out: bool = False

    @property
    def reward(self) -> float:
        """The reward of the measured join order: faster plans receive larger rewards."""
        return -self.cost

    def __json__(self) -> jsondict:
        return {"cost": self.cost, "n_rows": self.n_rows, "timed_out": self.timed_out}


class OracleFailureError(RuntimeError):
    """Error to indicate that the query engine failed to execute a join order.

    Parameters
    ----------
    join_order : Sequence[int]
        The (partial) join order whose execution failed
    message : str, optional
        A message containing more details about the specific error. Defaults to an empty string.
    """

    def __init__(self, join_order: Sequence[int], message: str = "") -> None:
        super().__init__(f"Execution of join order {list(join_order)} failed" if not message
                         else f"Execution of join order {list(join_order)} failed: {message}")
        self.join_order = list(join_order)


@runtime_checkable
class CostOracle(Protocol):
    """The cost oracle determines the actual cost of a join order.

    Oracles are blocking: `measure` only returns once the join order has been evaluated completely (or it has been
    cancelled by the oracle itself).
    """

    def measure(self, join_order: Sequence[int]) -> Measurement:
        """Executes the given (partial) join order and reports its cost.

        Parameters
        ----------
        join_order : Sequence[int]
            Indexes of the fragments to join, in the order in which they should be joined. This does not need to contain all
            fragments of the pattern.

        Returns
        -------
        Measurement
            The cost of the join order

        Raises
        ------
        OracleFailureError
            If the join order could not be executed
        """
        ...


class EngineCostOracle:
    """Cost oracle that executes join orders on a `QueryEngine` and measures the elapsed time.

    For each measurement, a new plan is built for the requested fragments. The plan is seeded with the engine's root
    binding and all of its results are drained. The clock starts once the plan has been built and stops once the last binding
    has been produced.

    Parameters
    ----------
    engine : QueryEngine
        The engine that executes the plans
    pattern : BasicPattern
        The pattern whose fragments are referenced by the join orders
    context : ExecutionContext
        The context for the plan execution
    timeout : Optional[float], optional
        The maximum time in seconds that a single execution may take. Cancellation is cooperative: the oracle checks the
        deadline after each binding, and passes it to the engine as the `DeadlineOption` of the context. Engines that
        compute their results eagerly should check that option between their processing steps. Any execution that takes
        longer than the timeout is reported as timed out, even if the engine ignored the deadline. If omitted, executions
        are never cancelled.
    """

    def __init__(self, engine: QueryEngine, pattern: BasicPattern, context: ExecutionContext, *,
                 timeout: Optional[float] = None) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError(f"Timeout must be positive, not {timeout}")
        self._engine = engine
        self._pattern = pattern
        self._context = context
        self._timeout_ns = None if timeout is None else math.ceil(timeout * 10**9)

    @property
    def pattern(self) -> BasicPattern:
        return self._pattern

    def measure(self, join_order: Sequence[int]) -> Measurement:
        if not join_order:
            return Measurement(0.0)
        try:
            plan = self._engine.build_plan(self._pattern.select(join_order))

            n_rows, timed_out = 0, False
            start_time = time.perf_counter_ns()
            context = (self._context if self._timeout_ns is None
                       else self._context.with_options(**{DeadlineOption: start_time + self._timeout_ns}))
            root = self._engine.root(context)
            for __ in self._engine.execute(plan, root, context):
                n_rows += 1
                if self._timeout_ns is not None and time.perf_counter_ns() - start_time > self._timeout_ns:
                    timed_out = True
                    break
            end_time = time.perf_counter_ns()
            if self._timeout_ns is not None and end_time - start_time > self._timeout_ns:
                # the engine stopped on its own once the deadline passed, or it exceeded the deadline without any results
                timed_out = True
        except OracleFailureError:
            raise
        except Exception as e:
            raise OracleFailureError(join_order, str(e)) from e

        exec_time = max(end_time - start_time, 0) / 10**9  # convert to seconds
        return Measurement(exec_time, n_rows=n_rows, timed_out=timed_out)

    def __repr__(self) -> str:
        timeout = None if self._timeout_ns is None else self._timeout_ns / 10**9
        return f"EngineCostOracle(engine={self._engine!r}, n_fragments={len(self._pattern)}, timeout={timeout})"
