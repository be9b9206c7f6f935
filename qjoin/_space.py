"""The state and action space of the join ordering problem.

A partial join plan is described by two separate entities:

- the `JoinState` is a vector of binary flags that indicates which fragments have already been joined. It ignores the
  order in which this happened and therefore acts as the key of the Q-table. All states of a pattern with *N* fragments form
  the vertices of an *N*-dimensional hypercube.
- the *trajectory* is the ordered list of fragment indexes that were selected so far, i.e. the actual (partial) join order.

Actions are fragment indexes whose flag is not yet set. Applying an action sets the flag and appends the index to the
trajectory.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence


class JoinState(tuple):
    """Immutable flag vector of a partial join plan.

    Since states are plain tuples of ``0`` and ``1`` values, they are hashable and compare by value. Advancing a state
    always produces a new instance, so a state that is used as a key in the Q-table can never be changed afterwards.
    """

    def __new__(cls, flags: Iterable[int]) -> JoinState:
        flags = tuple(int(flag) for flag in flags)
        if any(flag not in (0, 1) for flag in flags):
            raise ValueError(f"Join state flags must be 0 or 1, not {flags}")
        return super().__new__(cls, flags)

    @staticmethod
    def root(n_fragments: int) -> JoinState:
        """Provides the empty state where no fragment has been joined, yet."""
        if n_fragments < 1:
            raise ValueError(f"Patterns require at least one fragment, not {n_fragments}")
        return JoinState([0] * n_fragments)

    @staticmethod
    def of_trajectory(trajectory: Sequence[int], n_fragments: int) -> JoinState:
        """Computes the state that is reached by applying all actions of a trajectory to the root state."""
        state = JoinState.root(n_fragments)
        for action in trajectory:
            state = state.advance(action)
        return state

    def joined(self) -> frozenset[int]:
        """Provides the indexes of all fragments that are already part of the join plan."""
        return frozenset(idx for idx, flag in enumerate(self) if flag)

    def advance(self, action: int) -> JoinState:
        """Provides the state that is reached after joining the fragment `action`.

        Raises
        ------
        ValueError
            If the action does not refer to a fragment of the pattern or the fragment has already been joined
        """
        if not 0 <= action < len(self):
            raise ValueError(f"Action {action} is out of range for a pattern of {len(self)} fragments")
        if self[action]:
            raise ValueError(f"Fragment {action} has already been joined in state {self}")
        flags = list(self)
        flags[action] = 1
        return JoinState(flags)

    def is_root(self) -> bool:
        return not any(self)

    def is_final(self) -> bool:
        return all(self)

    def __repr__(self) -> str:
        return f"JoinState({list(self)})"

    def __str__(self) -> str:
        return str(list(self))


def legal_actions(state: JoinState) -> frozenset[int]:
    """Provides all fragments that can be joined next, i.e. all indexes whose flag is not set.

    The result is only empty for the final state.
    """
    return frozenset(idx for idx, flag in enumerate(state) if not flag)


def is_terminal(trajectory: Sequence[int], n_fragments: int) -> bool:
    """Checks, whether a trajectory already contains all fragments of the pattern."""
    return len(trajectory) == n_fragments


def is_join_order(trajectory: Sequence[int], n_fragments: int) -> bool:
    """Checks, whether a trajectory is a complete join order, i.e. a permutation of all fragment indexes."""
    return len(trajectory) == n_fragments and sorted(trajectory) == list(range(n_fragments))
