"""Implements the training of the Q-table by means of exploration episodes on the real query engine."""
from __future__ import annotations

import random
import warnings
from collections.abc import Sequence
from typing import Literal, Optional, Protocol

import numpy as np
import pandas as pd

from ._oracle import CostOracle, Measurement, OracleFailureError
from ._qtable import QTable
from ._settings import QLearningSettings
from ._space import JoinState, legal_actions, is_terminal
from .util._errors import InvariantViolationError
from .util.logging import Logger, standard_logger

EpisodeCol = "episode"
StepCol = "step"
StateCol = "state"
ActionCol = "action"
TrajectoryCol = "join_order"
CostCol = "cost"
RewardCol = "reward"
BoundCol = "bound"
ValueCol = "value"
RowsCol = "n_rows"
TimeoutCol = "timed_out"
StatusCol = "status"
FailureReasonCol = "failure_reason"

HistoryColumns = [EpisodeCol, StepCol, StateCol, ActionCol, TrajectoryCol, CostCol, RewardCol, BoundCol, ValueCol,
                  RowsCol, TimeoutCol, StatusCol, FailureReasonCol]

StepStatus = Literal["ok", "timeout", "oracle-error"]
"""Describes the outcome of a single training step:

- *ok*: the join order was executed successfully and the Q-table was updated
- *timeout*: the execution was cancelled by the oracle. The Q-table was still updated with the (partial) cost.
- *oracle-error*: the join order could not be executed. The episode was abandoned and the Q-table was not updated.
"""

PredefProgress = Literal["tqdm"]


class ExplorationSource(Protocol):
    """Source of the exploration decisions. `random.Random` instances satisfy this protocol."""

    def choice(self, seq: Sequence[int]) -> int:
        ...


class TrainingWarning(UserWarning):
    """Warning to indicate that a training episode had to be abandoned."""
    pass


class QLearningTrainer:
    """Learns the action values of a Q-table by executing random join orders.

    Each episode starts at the root state and repeatedly selects one of the remaining fragments uniformly at random. After
    each selection, the partial join order built so far is executed by the cost oracle. The negated execution time serves as
    the reward of the selected action and the new action value is computed as

    ``alpha * (reward + gamma * bound)``

    where *bound* is the best value among the legal actions of the lookahead state (see `QLearningSettings.lookahead`). Notice
    that the new value replaces the previous estimate rather than being blended with it.

    Parameters
    ----------
    table : QTable
        The table to train. It is updated in place.
    oracle : CostOracle
        The oracle that executes the partial join orders
    settings : Optional[QLearningSettings], optional
        The training parameters. Defaults to the default settings.
    rng : Optional[ExplorationSource], optional
        The source of the random choices. If omitted, a new `random.Random` instance is created with the seed from the
        settings.
    logger : Optional[Logger], optional
        Where to log the training progress. If omitted, the standard logger is used if the settings ask for verbose output.
    progress : Optional[PredefProgress], optional
        Displays a progress bar for the episodes. Requires the *tqdm* package.
    """

    def __init__(self, table: QTable, oracle: CostOracle, *, settings: Optional[QLearningSettings] = None,
                 rng: Optional[ExplorationSource] = None, logger: Optional[Logger] = None,
                 progress: Optional[PredefProgress] = None) -> None:
        self._table = table
        self._oracle = oracle
        self._settings = settings if settings is not None else QLearningSettings()
        self._rng = rng if rng is not None else random.Random(self._settings.seed)
        self._log = logger if logger is not None else standard_logger(self._settings.verbose)
        self._progress = progress
        self._history: list[dict] = []

    @property
    def table(self) -> QTable:
        return self._table

    @property
    def settings(self) -> QLearningSettings:
        return self._settings

    @property
    def oracle(self) -> CostOracle:
        return self._oracle

    @oracle.setter
    def oracle(self, oracle: CostOracle) -> None:
        self._oracle = oracle

    def history(self) -> pd.DataFrame:
        """Provides all training steps performed so far, one row per step."""
        return pd.DataFrame(self._history, columns=HistoryColumns)

    def train(self, *, persist: bool = True) -> pd.DataFrame:
        """Runs all training episodes and stores the resulting table afterwards.

        Parameters
        ----------
        persist : bool, optional
            Whether the table should be written to the configured table path once all episodes are completed. Defaults to
            *True*.

        Returns
        -------
        pd.DataFrame
            The training steps of this run, one row per step

        Raises
        ------
        OracleFailureError
            If a join order cannot be executed and the settings do not allow to skip the episode
        """
        first_step = len(self._history)
        episodes = range(1, self._settings.episodes + 1)
        if self._progress == "tqdm":
            from tqdm import tqdm
            episodes = tqdm(episodes, desc="training", unit="episode", leave=False)

        for episode in episodes:
            self._log(f"Episode {episode}/{self._settings.episodes}")
            self.run_episode(episode)

        if persist:
            stored = self._table.save(self._settings.table_path)
            self._log(f"Stored Q-table with {len(self._table)} states at {self._settings.table_path}" if stored
                      else f"Q-table could not be stored at {self._settings.table_path}")
        return pd.DataFrame(self._history[first_step:], columns=HistoryColumns)

    def run_episode(self, episode: int = 0) -> list[int]:
        """Builds a single join order by random exploration and updates the Q-table along the way.

        Parameters
        ----------
        episode : int, optional
            The number of the episode. This is only used for logging and the training history.

        Returns
        -------
        list[int]
            The join order that was constructed. If the episode was abandoned due to an oracle failure, this is the partial
            join order up to and including the failed action.
        """
        n_fragments = self._table.n_fragments
        state = JoinState.root(n_fragments)
        trajectory: list[int] = []

        while not is_terminal(trajectory, n_fragments):
            legal = legal_actions(state)
            current_values = self._table.values_for(state)
            action = self._rng.choice(sorted(legal))
            if action not in legal:
                raise InvariantViolationError(f"Exploration selected action {action}, but only {sorted(legal)} are legal")
            trajectory.append(action)
            next_state = state.advance(action)

            bound = self._lookahead_bound(state, legal, next_state)
            try:
                measurement = self._oracle.measure(list(trajectory))
            except OracleFailureError as e:
                self._handle_oracle_failure(episode, state, action, trajectory, e)
                return trajectory

            value = self._settings.alpha * (measurement.reward + self._settings.gamma * bound)
            current_values[action] = value
            self._record_step(episode, state, action, trajectory, measurement, bound, value)
            self._log(f"State: {trajectory}")
            state = next_state

        return trajectory

    def _lookahead_bound(self, state: JoinState, legal: frozenset[int], next_state: JoinState) -> float:
        if self._settings.lookahead == "successor":
            return self._table.best_value(next_state, legal_actions(next_state))
        return self._table.best_value(state, legal)

    def _handle_oracle_failure(self, episode: int, state: JoinState, action: int, trajectory: list[int],
                               error: OracleFailureError) -> None:
        if self._settings.on_oracle_error == "raise":
            raise error

        msg = f"Abandoning episode {episode}: {error}"
        self._log(msg)
        warnings.warn(msg, category=TrainingWarning)
        self._history.append({EpisodeCol: episode, StepCol: len(trajectory), StateCol: tuple(state), ActionCol: action,
                              TrajectoryCol: list(trajectory), CostCol: np.nan, RewardCol: np.nan, BoundCol: np.nan,
                              ValueCol: np.nan, RowsCol: 0, TimeoutCol: False, StatusCol: "oracle-error",
                              FailureReasonCol: str(error)})

    def _record_step(self, episode: int, state: JoinState, action: int, trajectory: list[int], measurement: Measurement,
                     bound: float, value: float) -> None:
        status: StepStatus = "timeout" if measurement.timed_out else "ok"
        self._history.append({EpisodeCol: episode, StepCol: len(trajectory), StateCol: tuple(state), ActionCol: action,
                              TrajectoryCol: list(trajectory), CostCol: measurement.cost, RewardCol: measurement.reward,
                              BoundCol: bound, ValueCol: value, RowsCol: measurement.n_rows,
                              TimeoutCol: measurement.timed_out, StatusCol: status, FailureReasonCol: ""})
