"""Tests for the state and action space of the join ordering problem."""
import itertools
import unittest

from qjoin import JoinState, is_join_order, is_terminal, legal_actions


class JoinStateTests(unittest.TestCase):
    def test_root_state(self) -> None:
        root = JoinState.root(4)
        self.assertEqual(root, (0, 0, 0, 0))
        self.assertTrue(root.is_root())
        self.assertFalse(root.is_final())
        self.assertEqual(legal_actions(root), frozenset({0, 1, 2, 3}))

    def test_root_requires_fragments(self) -> None:
        with self.assertRaises(ValueError):
            JoinState.root(0)

    def test_advance_creates_new_state(self) -> None:
        root = JoinState.root(3)
        next_state = root.advance(1)
        self.assertEqual(root, (0, 0, 0))
        self.assertEqual(next_state, (0, 1, 0))
        self.assertIsInstance(next_state, JoinState)

    def test_advance_rejects_illegal_actions(self) -> None:
        state = JoinState.root(3).advance(2)
        with self.assertRaises(ValueError):
            state.advance(2)
        with self.assertRaises(ValueError):
            state.advance(3)
        with self.assertRaises(ValueError):
            state.advance(-1)

    def test_invalid_flags(self) -> None:
        with self.assertRaises(ValueError):
            JoinState([0, 2, 1])

    def test_states_are_value_equal_keys(self) -> None:
        first = JoinState.root(3).advance(0).advance(2)
        second = JoinState.root(3).advance(2).advance(0)
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertEqual(len({first, second}), 1)

    def test_of_trajectory(self) -> None:
        state = JoinState.of_trajectory([2, 0], 4)
        self.assertEqual(state, (1, 0, 1, 0))
        self.assertEqual(state.joined(), frozenset({0, 2}))


class ActionSpaceTests(unittest.TestCase):
    def test_legal_actions_partition_fragments(self) -> None:
        n_fragments = 4
        for flags in itertools.product((0, 1), repeat=n_fragments):
            state = JoinState(flags)
            legal = legal_actions(state)
            joined = state.joined()
            self.assertEqual(legal | joined, frozenset(range(n_fragments)))
            self.assertFalse(legal & joined)

    def test_final_state_has_no_actions(self) -> None:
        self.assertEqual(legal_actions(JoinState([1, 1, 1])), frozenset())

    def test_terminal_exactly_for_complete_trajectories(self) -> None:
        n_fragments = 3
        for permutation in itertools.permutations(range(n_fragments)):
            for prefix_length in range(n_fragments + 1):
                prefix = list(permutation[:prefix_length])
                self.assertEqual(is_terminal(prefix, n_fragments), prefix_length == n_fragments)
                self.assertEqual(JoinState.of_trajectory(prefix, n_fragments).is_final(), prefix_length == n_fragments)

    def test_is_join_order(self) -> None:
        self.assertTrue(is_join_order([2, 0, 1], 3))
        self.assertFalse(is_join_order([2, 0], 3))
        self.assertFalse(is_join_order([2, 2, 1], 3))


if __name__ == "__main__":
    unittest.main()
