"""QJoin - learned join ordering for triple-pattern queries.

QJoin determines the order in which the triple patterns (*fragments*) of a basic graph pattern should be joined. Instead
of relying on a cost model, the optimizer learns from the real query engine: during training, it executes random join
orders and uses their measured execution time as a (negative) reward for Q-learning. The learned action values are stored
in a Q-table that is persisted between sessions, so that later queries with the same pattern shape can benefit
immediately.

On a high level, the optimization works as follows:

1. a pattern is split into its fragments. Each fragment is identified by its position in the pattern.
2. the state of a partial join plan is a vector of binary flags that indicates which fragments have already been joined.
   An action joins one of the remaining fragments. See `JoinState`.
3. during each training episode, the `QLearningTrainer` builds a complete join order by selecting fragments at random. After
   each step, the partial join order is executed by the `CostOracle` and the action value in the `QTable` is updated.
4. after training, the `PolicyExtractor` walks the table greedily, always picking the legal action with the best
   (negative) value, and executes the resulting join order once more to report its cost.

The `QLearningJoinOrderOptimizer` ties all of these parts together. It works on any engine that implements the
`QueryEngine` protocol. The `InMemoryEngine` provides a simple engine on top of a pandas-based `TripleStore`.

A typical session looks like this:

>>> import qjoin
>>> store = qjoin.TripleStore.read_tsv("triples.tsv")
>>> pattern = qjoin.parse_pattern("?p :worksFor ?c . ?c :locatedIn :Berlin . ?p :name ?n")
>>> optimizer = qjoin.QLearningJoinOrderOptimizer(qjoin.QLearningSettings(episodes=20))
>>> optimizer.train(pattern, qjoin.ExecutionContext(store))
>>> optimizer.extract_policy(pattern, qjoin.ExecutionContext(store))

The `util` package contains algorithms and types that are not specific to join ordering, most importantly the logging
utilities and the JSON helpers that are used for persistence.
"""

from . import util
from ._core import BasicPattern, Cost, Term, TriplePattern, Variable
from ._engine import Binding, BgpPlan, DeadlineOption, ExecutionContext, InMemoryEngine, QueryEngine, TripleStore
from ._optimizer import (
    CrossProductWarning,
    OptimizationSession,
    QLearningJoinOrderOptimizer,
    extract_policy,
    train,
)
from ._oracle import CostOracle, EngineCostOracle, Measurement, OracleFailureError
from ._parser import PatternParsingError, parse_pattern
from ._policy import PolicyExtractor, PolicyResult
from ._qtable import QTable, QTableWarning
from ._settings import QLearningSettings
from ._space import JoinState, is_join_order, is_terminal, legal_actions
from ._stages import CrossProductPreCheck, JoinOrderOptimization, TextualJoinOrder
from ._training import QLearningTrainer, TrainingWarning

__version__ = "0.1.0"

__all__ = [
    "util",
    "BasicPattern",
    "Cost",
    "Term",
    "TriplePattern",
    "Variable",
    "Binding",
    "BgpPlan",
    "DeadlineOption",
    "ExecutionContext",
    "InMemoryEngine",
    "QueryEngine",
    "TripleStore",
    "CrossProductWarning",
    "OptimizationSession",
    "QLearningJoinOrderOptimizer",
    "extract_policy",
    "train",
    "CostOracle",
    "EngineCostOracle",
    "Measurement",
    "OracleFailureError",
    "PatternParsingError",
    "parse_pattern",
    "PolicyExtractor",
    "PolicyResult",
    "QTable",
    "QTableWarning",
    "QLearningSettings",
    "JoinState",
    "is_join_order",
    "is_terminal",
    "legal_actions",
    "CrossProductPreCheck",
    "JoinOrderOptimization",
    "TextualJoinOrder",
    "QLearningTrainer",
    "TrainingWarning",
]
