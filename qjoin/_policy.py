"""Derives the final join order from a trained Q-table."""
from __future__ import annotations

import dataclasses
import math
from typing import Literal, Optional

from ._core import Cost
from ._oracle import CostOracle
from ._qtable import QTable
from ._settings import PolicyFallback, QLearningSettings
from ._space import JoinState, is_join_order, is_terminal, legal_actions
from .util._errors import InvariantViolationError
from .util.jsonize import jsondict
from .util.logging import Logger, standard_logger

PolicyStatus = Literal["ok", "timeout", "no-confident-action"]
"""Describes the outcome of a policy extraction:

- *ok*: a complete join order was derived and executed
- *timeout*: a complete join order was derived, but its execution was cancelled by the oracle
- *no-confident-action*: the extraction stopped because no legal action had a learned value. The join order is incomplete
  and was not executed.
"""


@dataclasses.dataclass
class PolicyResult:
    """Captures the join order that was derived from a Q-table and its measured cost.

    Attributes
    ----------
    join_order : list[int]
        The fragment indexes in join order. This is a complete permutation of all fragments, unless the status is
        *no-confident-action*.
    cost : Cost
        The execution time of the join order in seconds. *NaN* if the join order was not executed.
    status : PolicyStatus
        The outcome of the extraction
    fallback_steps : list[int]
        The positions within the join order at which the fallback was used because there was no confident action
    n_rows : int
        The number of result rows produced by the join order
    """
    join_order: list[int]
    cost: Cost = math.nan
    status: PolicyStatus = "ok"
    fallback_steps: list[int] = dataclasses.field(default_factory=list)
    n_rows: int = 0

    @property
    def complete(self) -> bool:
        """Whether the result contains a join order for the entire pattern."""
        return self.status != "no-confident-action"

    def used_fallback(self) -> bool:
        return bool(self.fallback_steps)

    def __json__(self) -> jsondict:
        # NaN is not valid JSON, unexecuted join orders have no cost
        cost = None if math.isnan(self.cost) else self.cost
        return {"join_order": self.join_order, "cost": cost, "status": self.status,
                "fallback_steps": self.fallback_steps, "n_rows": self.n_rows}


class PolicyExtractor:
    """Walks a Q-table greedily to obtain a join order.

    Starting at the root state, the extractor repeatedly selects the legal action with the best learned value. Since all
    rewards are negated execution times, every action that was explored during training has a strictly negative value. Actions
    with a value of zero have never been explored and are therefore not considered as a confident choice.

    Parameters
    ----------
    table : QTable
        The trained table. Notice that states are still initialized lazily during extraction.
    oracle : CostOracle
        The oracle that executes the final join order
    settings : Optional[QLearningSettings], optional
        Provides the fallback behavior and the logging setup. Defaults to the default settings.
    logger : Optional[Logger], optional
        Where to log the extracted policy. If omitted, the standard logger is used if the settings ask for verbose output.
    """

    def __init__(self, table: QTable, oracle: CostOracle, *, settings: Optional[QLearningSettings] = None,
                 logger: Optional[Logger] = None) -> None:
        self._table = table
        self._oracle = oracle
        self._settings = settings if settings is not None else QLearningSettings()
        self._log = logger if logger is not None else standard_logger(self._settings.verbose)

    @property
    def oracle(self) -> CostOracle:
        return self._oracle

    @oracle.setter
    def oracle(self, oracle: CostOracle) -> None:
        self._oracle = oracle

    def select_action(self, state: JoinState) -> Optional[int]:
        """Determines the most promising fragment to join next.

        This is the legal action with the largest strictly negative value. If multiple actions share that value, the one
        with the lowest index is selected.

        Parameters
        ----------
        state : JoinState
            The current state

        Returns
        -------
        Optional[int]
            The selected action, or *None* if no legal action has a negative value.
        """
        values = self._table.values_for(state)
        best_value, best_action = -math.inf, None
        for action in sorted(legal_actions(state)):
            value = values[action]
            if value < 0 and value > best_value:
                best_value, best_action = value, action
        return best_action

    def extract(self, *, fallback: Optional[PolicyFallback] = None) -> PolicyResult:
        """Derives the join order and executes it once.

        Parameters
        ----------
        fallback : Optional[PolicyFallback], optional
            How to handle states without a confident action. Defaults to the setting from the `QLearningSettings`.

        Returns
        -------
        PolicyResult
            The join order and its measured cost

        Raises
        ------
        OracleFailureError
            If the final join order cannot be executed
        """
        fallback = fallback if fallback is not None else self._settings.fallback
        n_fragments = self._table.n_fragments
        state = JoinState.root(n_fragments)
        join_order: list[int] = []
        fallback_steps: list[int] = []
        self._log(str(self._table))

        while not is_terminal(join_order, n_fragments):
            action = self.select_action(state)
            if action is None and fallback == "stop":
                self._log(f"No confident action in state {state}, stopping at join order {join_order}")
                return PolicyResult(join_order, status="no-confident-action")
            elif action is None:
                action = min(legal_actions(state))
                fallback_steps.append(len(join_order))

            state = state.advance(action)
            join_order.append(action)

        if not is_join_order(join_order, n_fragments):
            raise InvariantViolationError(f"Policy produced an invalid join order: {join_order}")

        measurement = self._oracle.measure(list(join_order))
        self._log(f"Policy: {join_order}")
        self._log(f"Final time cost: {measurement.cost}")
        return PolicyResult(join_order, cost=measurement.cost, status="timeout" if measurement.timed_out else "ok",
                            fallback_steps=fallback_steps, n_rows=measurement.n_rows)
