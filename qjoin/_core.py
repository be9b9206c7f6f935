"""Fundamental types of QJoin: terms, triple patterns and basic graph patterns."""
from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Sequence
from typing import Union

import networkx as nx

from .util.jsonize import jsondict

Cost = float
"""Type alias for a measured execution cost (elapsed wall-clock time in seconds)."""


@dataclasses.dataclass(frozen=True)
class Variable:
    """A query variable such as ``?person``. The name is stored without the leading question mark."""
    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Variable name must not be empty")

    def __str__(self) -> str:
        return f"?{self.name}"


Term = Union[Variable, str]
"""A position of a triple pattern is either a variable or a constant. Constants are stored in their textual form."""


def is_variable(term: Term) -> bool:
    return isinstance(term, Variable)


@dataclasses.dataclass(frozen=True)
class TriplePattern:
    """A single join fragment: a triple of subject, predicate and object terms.

    Any of the three positions can be a `Variable`. Constants must match the stored triples exactly.
    """
    subject: Term
    predicate: Term
    object: Term

    def terms(self) -> tuple[Term, Term, Term]:
        return self.subject, self.predicate, self.object

    def variables(self) -> frozenset[Variable]:
        return frozenset(term for term in self.terms() if is_variable(term))

    def __json__(self) -> list[str]:
        return [str(term) for term in self.terms()]

    def __str__(self) -> str:
        return " ".join(str(term) for term in self.terms())


class BasicPattern(Sequence[TriplePattern]):
    """An ordered, immutable collection of triple patterns that have to be joined.

    The position of each fragment within the pattern is its identity during join ordering: states, actions and join
    orders all refer to fragments by index. Therefore, the order of the fragments must not change during an optimization
    session.

    Parameters
    ----------
    fragments : Iterable[TriplePattern]
        The triple patterns in their original order
    """

    def __init__(self, fragments: Iterable[TriplePattern]) -> None:
        self._fragments = tuple(fragments)
        self._hash_val = hash(self._fragments)

    @property
    def fragments(self) -> tuple[TriplePattern, ...]:
        return self._fragments

    def variables(self) -> frozenset[Variable]:
        """Provides all variables that occur in any of the fragments."""
        return frozenset(var for fragment in self._fragments for var in fragment.variables())

    def select(self, join_order: Sequence[int]) -> BasicPattern:
        """Provides a new pattern that contains the given fragments in exactly the given order.

        Parameters
        ----------
        join_order : Sequence[int]
            Indexes of the fragments to include. This is usually a (prefix of a) join order.

        Returns
        -------
        BasicPattern
            The reordered sub-pattern

        Raises
        ------
        IndexError
            If an index does not refer to a fragment of this pattern
        """
        return BasicPattern(self._fragments[idx] for idx in join_order)

    def join_graph(self) -> nx.Graph:
        """Provides the join graph of this pattern.

        Each fragment is represented by its index. Two fragments are connected iff they share at least one variable. The
        shared variables are stored in the *variables* attribute of the edge.

        Returns
        -------
        nx.Graph
            The join graph
        """
        graph = nx.Graph()
        graph.add_nodes_from(range(len(self._fragments)))
        for first_idx, first in enumerate(self._fragments):
            for second_idx in range(first_idx + 1, len(self._fragments)):
                shared = first.variables() & self._fragments[second_idx].variables()
                if shared:
                    graph.add_edge(first_idx, second_idx, variables=shared)
        return graph

    def has_cross_products(self) -> bool:
        """Checks, whether joining all fragments requires at least one cartesian product."""
        if len(self._fragments) < 2:
            return False
        return not nx.is_connected(self.join_graph())

    def __json__(self) -> jsondict:
        return {"fragments": list(self._fragments)}

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return BasicPattern(self._fragments[idx])
        return self._fragments[idx]

    def __len__(self) -> int:
        return len(self._fragments)

    def __iter__(self) -> Iterator[TriplePattern]:
        return iter(self._fragments)

    def __hash__(self) -> int:
        return self._hash_val

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self._fragments == other._fragments

    def __repr__(self) -> str:
        return f"BasicPattern({list(self._fragments)!r})"

    def __str__(self) -> str:
        return " .\n".join(str(fragment) for fragment in self._fragments)
