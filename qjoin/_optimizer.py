"""Provides the Q-learning join order optimizer and its optimization sessions."""
from __future__ import annotations

import warnings
from collections.abc import Callable
from typing import Optional

import pandas as pd

from ._core import BasicPattern
from ._engine import ExecutionContext, InMemoryEngine, QueryEngine
from ._oracle import CostOracle, EngineCostOracle
from ._policy import PolicyExtractor, PolicyResult
from ._qtable import QTable
from ._settings import PolicyFallback, QLearningSettings
from ._stages import CrossProductPreCheck, JoinOrderOptimization, OptimizationPreCheck
from ._training import ExplorationSource, PredefProgress, QLearningTrainer
from .util._errors import StateError
from .util.jsonize import jsondict
from .util.logging import Logger, standard_logger

OracleFactory = Callable[[BasicPattern, ExecutionContext], CostOracle]
"""Creates the cost oracle for a specific pattern and execution context."""


class CrossProductWarning(UserWarning):
    """Warning to indicate that a pattern can only be evaluated by computing cartesian products."""
    pass


class OptimizationSession:
    """A session bundles the Q-table of a single pattern with the components that train it and derive a join order from it.

    The Q-table is loaded from the configured table path when the session is created. If it cannot be loaded, the session
    starts with an empty table. The table is stored again after each training run.

    Parameters
    ----------
    pattern : BasicPattern
        The pattern to optimize. Its fragment order must not change during the session.
    oracle : CostOracle
        The oracle that executes the join orders of the pattern
    settings : QLearningSettings
        The session parameters
    rng : Optional[ExplorationSource], optional
        The source of the exploration decisions. Defaults to a random generator seeded from the settings.
    logger : Optional[Logger], optional
        Where to log the progress. Defaults to the standard logger if the settings ask for verbose output.
    progress : Optional[PredefProgress], optional
        Displays a progress bar during training.
    """

    def __init__(self, pattern: BasicPattern, oracle: CostOracle, settings: QLearningSettings, *,
                 rng: Optional[ExplorationSource] = None, logger: Optional[Logger] = None,
                 progress: Optional[PredefProgress] = None) -> None:
        if not len(pattern):
            raise ValueError("Cannot optimize an empty pattern")
        self._pattern = pattern
        self._oracle = oracle
        self._settings = settings
        self._log = logger if logger is not None else standard_logger(settings.verbose)
        self._table = QTable.load(settings.table_path, len(pattern))
        self._log(f"Loaded Q-table with {len(self._table)} states from {settings.table_path}" if len(self._table)
                  else f"Starting with an empty Q-table for {len(pattern)} fragments")

        self._trainer = QLearningTrainer(self._table, oracle, settings=settings, rng=rng, logger=self._log,
                                         progress=progress)
        self._extractor = PolicyExtractor(self._table, oracle, settings=settings, logger=self._log)
        self._closed = False

    @property
    def pattern(self) -> BasicPattern:
        return self._pattern

    @property
    def table(self) -> QTable:
        return self._table

    @property
    def oracle(self) -> CostOracle:
        return self._oracle

    def use_oracle(self, oracle: CostOracle) -> None:
        """Measures all subsequent join orders with a different oracle, e.g. for a new execution context.

        The Q-table and the training history of the session are retained.
        """
        self._oracle = oracle
        self._trainer.oracle = oracle
        self._extractor.oracle = oracle

    def train(self) -> pd.DataFrame:
        """Runs all training episodes and persists the table afterwards. See `QLearningTrainer.train`."""
        self._ensure_open()
        return self._trainer.train(persist=True)

    def history(self) -> pd.DataFrame:
        """Provides all training steps of this session."""
        return self._trainer.history()

    def extract_policy(self, *, fallback: Optional[PolicyFallback] = None) -> PolicyResult:
        """Derives the join order from the current table and executes it. See `PolicyExtractor.extract`."""
        self._ensure_open()
        return self._extractor.extract(fallback=fallback)

    def close(self) -> None:
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise StateError("Optimization session has already been closed")

    def __enter__(self) -> OptimizationSession:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"OptimizationSession(n_fragments={len(self._pattern)}, table={self._table!r})"


class QLearningJoinOrderOptimizer(JoinOrderOptimization):
    """Join order optimization that learns good join orders by executing random join orders on the real query engine.

    For each pattern, the optimizer opens an `OptimizationSession` on first use and keeps it for subsequent calls. Hence,
    training a pattern and extracting its policy afterwards operates on the same in-memory Q-table, even if the table could
    not be persisted in between.

    Parameters
    ----------
    settings : Optional[QLearningSettings], optional
        The optimizer parameters. Defaults to the default settings.
    engine : Optional[QueryEngine], optional
        The engine that executes the join orders. Defaults to the `InMemoryEngine`.
    oracle_factory : Optional[OracleFactory], optional
        Creates the cost oracle for each pattern. Defaults to an `EngineCostOracle` on the `engine`, which uses the timeout
        from the settings.
    rng : Optional[ExplorationSource], optional
        The source of the exploration decisions, shared among all sessions. Defaults to a random generator seeded from the
        settings.
    logger : Optional[Logger], optional
        Where to log the progress. Defaults to the standard logger if the settings ask for verbose output.
    progress : Optional[PredefProgress], optional
        Displays a progress bar during training.
    """

    def __init__(self, settings: Optional[QLearningSettings] = None, *, engine: Optional[QueryEngine] = None,
                 oracle_factory: Optional[OracleFactory] = None, rng: Optional[ExplorationSource] = None,
                 logger: Optional[Logger] = None, progress: Optional[PredefProgress] = None) -> None:
        super().__init__()
        self._settings = settings if settings is not None else QLearningSettings()
        self._engine = engine if engine is not None else InMemoryEngine()
        self._oracle_factory = oracle_factory if oracle_factory is not None else self._engine_oracle
        self._rng = rng
        self._log = logger if logger is not None else standard_logger(self._settings.verbose)
        self._progress = progress
        self._sessions: dict[BasicPattern, OptimizationSession] = {}
        self._contexts: dict[BasicPattern, ExecutionContext] = {}

    @property
    def settings(self) -> QLearningSettings:
        return self._settings

    def session(self, pattern: BasicPattern, context: ExecutionContext) -> OptimizationSession:
        """Provides the optimization session of a pattern, opening a new one if necessary.

        If the session already exists but was used with a different context, its oracle is replaced by one for the new
        context. The learned Q-table is kept.
        """
        current_session = self._sessions.get(pattern)
        if current_session is not None:
            if self._contexts[pattern] is not context:
                current_session.use_oracle(self._oracle_factory(pattern, context))
                self._contexts[pattern] = context
            return current_session

        check_result = self.pre_check().check_supported_pattern(pattern)
        if not check_result.passed:
            warnings.warn(f"{check_result.failure_reason}: {pattern}", category=CrossProductWarning)

        current_session = OptimizationSession(pattern, self._oracle_factory(pattern, context), self._settings,
                                              rng=self._rng, logger=self._log, progress=self._progress)
        self._sessions[pattern] = current_session
        self._contexts[pattern] = context
        return current_session

    def train(self, pattern: BasicPattern, context: ExecutionContext) -> pd.DataFrame:
        """Trains the Q-table of a pattern and persists it.

        Returns
        -------
        pd.DataFrame
            The training steps, one row per step
        """
        return self.session(pattern, context).train()

    def extract_policy(self, pattern: BasicPattern, context: ExecutionContext, *,
                       fallback: Optional[PolicyFallback] = None) -> PolicyResult:
        """Derives the join order of a pattern from its Q-table and measures it once.

        Returns
        -------
        PolicyResult
            The join order and its measured cost
        """
        return self.session(pattern, context).extract_policy(fallback=fallback)

    def optimize_join_order(self, pattern: BasicPattern, context: ExecutionContext) -> Optional[list[int]]:
        self.train(pattern, context)
        policy = self.extract_policy(pattern, context)
        return policy.join_order if policy.complete else None

    def describe(self) -> jsondict:
        return {"name": "q-learning", "engine": repr(self._engine), "settings": self._settings}

    def pre_check(self) -> OptimizationPreCheck:
        return CrossProductPreCheck()

    def _engine_oracle(self, pattern: BasicPattern, context: ExecutionContext) -> CostOracle:
        return EngineCostOracle(self._engine, pattern, context, timeout=self._settings.timeout)


def train(pattern: BasicPattern, context: ExecutionContext, *, settings: Optional[QLearningSettings] = None,
          engine: Optional[QueryEngine] = None) -> pd.DataFrame:
    """Shortcut to train the Q-table of a single pattern. See `QLearningJoinOrderOptimizer.train`."""
    return QLearningJoinOrderOptimizer(settings, engine=engine).train(pattern, context)


def extract_policy(pattern: BasicPattern, context: ExecutionContext, *, settings: Optional[QLearningSettings] = None,
                   engine: Optional[QueryEngine] = None) -> PolicyResult:
    """Shortcut to derive the join order of a single pattern from its persisted Q-table. See
    `QLearningJoinOrderOptimizer.extract_policy`."""
    return QLearningJoinOrderOptimizer(settings, engine=engine).extract_policy(pattern, context)
