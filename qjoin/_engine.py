"""Contains the interface to the query engine that executes join orders, as well as a simple in-memory engine.

The optimizer does not care how a join order is executed. It only needs to be able to build a plan for an ordered list of
fragments, to seed that plan with a root binding and to drain the resulting bindings. These requirements are captured by
the `QueryEngine` protocol. The engine is responsible for the correctness of the results, the optimizer only measures how
long it takes to produce them.

The `InMemoryEngine` is a small reference implementation on top of a `TripleStore`, which is backed by a pandas data frame.
It evaluates plans as left-deep pipelines in exactly the order that is given, which makes the effect of different join
orders measurable.
"""
from __future__ import annotations

import csv
import dataclasses
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import pandas as pd

from ._core import TriplePattern, Variable, is_variable
from .util.jsonize import jsondict

Binding = dict[Variable, str]
"""A (partial) solution of a pattern, mapping variables to the constants that they are bound to."""

TripleColumns = ["s", "p", "o"]

DeadlineOption = "deadline_ns"
"""Context option with the `time.perf_counter_ns` value after which engines should stop producing bindings."""


class TripleStore:
    """A set of triples that is kept in a data frame with one column per triple position.

    Parameters
    ----------
    triples : pd.DataFrame
        The triples. The data frame has to provide the columns *s*, *p* and *o*. All values are treated as strings.
    """

    @staticmethod
    def from_triples(triples: Iterable[tuple[str, str, str]]) -> TripleStore:
        """Creates a new store for the given ``(subject, predicate, object)`` tuples."""
        return TripleStore(pd.DataFrame(list(triples), columns=TripleColumns))

    @staticmethod
    def read_tsv(path: str | Path) -> TripleStore:
        """Reads a tab-separated file with one triple per line. Lines starting with ``#`` are ignored.

        Values are read verbatim, i.e. quotes of literals are retained and ``#`` characters within IRIs are not treated as
        comments.
        """
        df = pd.read_csv(path, sep="\t", header=None, names=TripleColumns, dtype=str, quoting=csv.QUOTE_NONE,
                         keep_default_na=False, skip_blank_lines=True)
        df = df[~df["s"].str.startswith("#")]
        return TripleStore(df)

    def __init__(self, triples: pd.DataFrame) -> None:
        missing = set(TripleColumns) - set(triples.columns)
        if missing:
            raise ValueError(f"Triple data frame is missing the columns {sorted(missing)}")
        self._triples = triples[TripleColumns].astype(str).drop_duplicates().reset_index(drop=True)

    @property
    def triples(self) -> pd.DataFrame:
        return self._triples

    def match(self, fragment: TriplePattern) -> pd.DataFrame:
        """Determines all solutions of a single triple pattern.

        Parameters
        ----------
        fragment : TriplePattern
            The pattern to evaluate

        Returns
        -------
        pd.DataFrame
            The solutions. The data frame contains one column for each variable of the pattern (named after the variable)
            and one row per matching triple.
        """
        matches = self._triples
        var_columns: dict[str, str] = {}
        for column, term in zip(TripleColumns, fragment.terms()):
            if not is_variable(term):
                matches = matches[matches[column] == term]
            elif term.name in var_columns:
                # the same variable in multiple positions, e.g. ?x :knows ?x
                matches = matches[matches[column] == matches[var_columns[term.name]]]
            else:
                var_columns[term.name] = column

        solutions = matches[list(var_columns.values())].copy()
        solutions.columns = list(var_columns.keys())
        return solutions.reset_index(drop=True)

    def __len__(self) -> int:
        return len(self._triples)

    def __repr__(self) -> str:
        return f"TripleStore(n_triples={len(self._triples)})"


@dataclasses.dataclass
class ExecutionContext:
    """Everything an engine needs to execute a plan, apart from the plan itself.

    Attributes
    ----------
    store : TripleStore
        The data that plans are evaluated on
    options : dict[str, Any]
        Engine-specific settings for the execution. The cost oracle sets `DeadlineOption` if executions have a timeout.
    """
    store: TripleStore
    options: dict[str, Any] = dataclasses.field(default_factory=dict)

    def with_options(self, **options: Any) -> ExecutionContext:
        """Provides a copy of this context with additional options. The store is shared."""
        return ExecutionContext(self.store, {**self.options, **options})


@dataclasses.dataclass(frozen=True)
class BgpPlan:
    """A left-deep plan that joins its fragments in exactly the given order."""
    fragments: tuple[TriplePattern, ...]

    def __json__(self) -> jsondict:
        return {"operator": "bgp", "fragments": list(self.fragments)}

    def __len__(self) -> int:
        return len(self.fragments)


@runtime_checkable
class QueryEngine(Protocol):
    """The operations that the optimizer requires from a query engine."""

    def build_plan(self, fragments: Sequence[TriplePattern]) -> Any:
        """Constructs a plan that joins the given fragments in the given order."""
        ...

    def root(self, context: ExecutionContext) -> Iterator[Binding]:
        """Provides the input of a plan pipeline: a single empty binding."""
        ...

    def execute(self, plan: Any, input: Iterator[Binding], context: ExecutionContext) -> Iterator[Binding]:
        """Evaluates a plan on top of the given input bindings. The bindings are produced lazily."""
        ...


def _bindings_frame(bindings: Iterable[Binding]) -> pd.DataFrame:
    rows = [{var.name: value for var, value in binding.items()} for binding in bindings]
    return pd.DataFrame(rows) if rows else pd.DataFrame()


def _join_solutions(current: pd.DataFrame, solutions: pd.DataFrame) -> pd.DataFrame:
    if not len(current) or not len(solutions):
        columns = list(dict.fromkeys(list(current.columns) + list(solutions.columns)))
        return pd.DataFrame(columns=columns)
    if not len(current.columns):
        return solutions
    if not len(solutions.columns):
        return current

    shared = [column for column in current.columns if column in solutions.columns]
    if shared:
        return current.merge(solutions, on=shared, how="inner")
    return current.merge(solutions, how="cross")


class InMemoryEngine:
    """Evaluates basic graph patterns on a `TripleStore`.

    Plans are evaluated one fragment after another: the solutions of each fragment are joined with the intermediate result
    of all previous fragments. Fragments that do not share any variable with the intermediate result are combined by means of
    a cartesian product, which is why bad join orders become expensive quickly.

    If the context contains a `DeadlineOption`, the deadline is checked before each fragment is joined. Once it has passed,
    the evaluation is abandoned and no bindings are produced. A single join is never interrupted.

    Parameters
    ----------
    row_callback : Optional[Callable[[int], None]], optional
        A function that is invoked for each intermediate result that is computed, receiving the number of rows. This is mostly
        useful for diagnostics.
    """

    def __init__(self, *, row_callback: Optional[Callable[[int], None]] = None) -> None:
        self._row_callback = row_callback

    def build_plan(self, fragments: Sequence[TriplePattern]) -> BgpPlan:
        return BgpPlan(tuple(fragments))

    def root(self, context: ExecutionContext) -> Iterator[Binding]:
        yield {}

    def execute(self, plan: BgpPlan, input: Iterator[Binding], context: ExecutionContext) -> Iterator[Binding]:
        deadline = context.options.get(DeadlineOption)
        intermediate = _bindings_frame(input)
        for fragment in plan.fragments:
            if deadline is not None and time.perf_counter_ns() > deadline:
                return
            intermediate = _join_solutions(intermediate, context.store.match(fragment))
            if self._row_callback is not None:
                self._row_callback(len(intermediate))

        variables = [Variable(column) for column in intermediate.columns]
        for row in intermediate.itertuples(index=False, name=None):
            yield dict(zip(variables, row))

    def __repr__(self) -> str:
        return "InMemoryEngine()"
