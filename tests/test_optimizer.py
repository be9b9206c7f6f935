"""End-to-end tests for the Q-learning join order optimizer, its sessions and the command line interface."""
from __future__ import annotations

import contextlib
import io
import json
import pathlib
import tempfile
import unittest

import qjoin
from qjoin import (
    CrossProductWarning,
    ExecutionContext,
    OptimizationSession,
    QLearningJoinOrderOptimizer,
    QLearningSettings,
    QTable,
    TextualJoinOrder,
    TripleStore,
    is_join_order,
    parse_pattern,
)
from qjoin.__main__ import main
from qjoin.util import StateError, to_json

from tests.stubs import ScriptedChoices, StubCostOracle, positional_costs
from tests.test_engine import BerlinEmployees, CompanyTriples


def _reject_constant(constant: str) -> None:
    raise ValueError(f"Invalid JSON constant: {constant}")


class _OptimizerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = tempfile.TemporaryDirectory()
        self.tmp = pathlib.Path(self._tmp_dir.name)
        self.table_path = str(self.tmp / "tables" / "qtable.json")
        self.context = ExecutionContext(TripleStore.from_triples(CompanyTriples))
        self.pattern = parse_pattern(BerlinEmployees)

    def tearDown(self) -> None:
        self._tmp_dir.cleanup()

    def settings(self, **kwargs) -> QLearningSettings:
        return QLearningSettings(table_path=self.table_path, **kwargs)


class InMemoryOptimizationTests(_OptimizerTestCase):
    def test_train_and_extract(self) -> None:
        optimizer = QLearningJoinOrderOptimizer(self.settings(episodes=6, seed=7, fallback="lowest-index"))
        history = optimizer.train(self.pattern, self.context)

        self.assertEqual(len(history), 6 * len(self.pattern))
        self.assertTrue((history["cost"] >= 0).all())
        self.assertTrue(pathlib.Path(self.table_path).is_file())

        policy = optimizer.extract_policy(self.pattern, self.context)
        self.assertTrue(policy.complete)
        self.assertTrue(is_join_order(policy.join_order, len(self.pattern)))
        self.assertEqual(policy.n_rows, 2)
        self.assertGreaterEqual(policy.cost, 0.0)

    def test_extraction_uses_given_context(self) -> None:
        optimizer = QLearningJoinOrderOptimizer(self.settings(episodes=3, seed=11, fallback="lowest-index"))
        optimizer.train(self.pattern, self.context)
        session = optimizer.session(self.pattern, self.context)
        self.assertEqual(optimizer.extract_policy(self.pattern, self.context).n_rows, 2)
        n_states = len(session.table)

        new_employees = [(f"emp{idx}", "worksFor", "acme") for idx in range(10)]
        new_employees += [(f"emp{idx}", "name", f'"Employee {idx}"') for idx in range(10)]
        larger_context = ExecutionContext(TripleStore.from_triples(CompanyTriples + new_employees))
        policy = optimizer.extract_policy(self.pattern, larger_context)

        self.assertEqual(policy.n_rows, 12)
        self.assertIs(optimizer.session(self.pattern, larger_context), session)
        self.assertEqual(len(session.table), n_states)
        self.assertEqual(optimizer.extract_policy(self.pattern, self.context).n_rows, 2)

    def test_optimize_join_order(self) -> None:
        optimizer = QLearningJoinOrderOptimizer(self.settings(episodes=3, seed=1, fallback="lowest-index"))
        join_order = optimizer.optimize_join_order(self.pattern, self.context)
        self.assertTrue(is_join_order(join_order, len(self.pattern)))

    def test_module_shortcuts(self) -> None:
        settings = self.settings(episodes=2, seed=3, fallback="lowest-index")
        history = qjoin.train(self.pattern, self.context, settings=settings)
        self.assertEqual(len(history), 2 * len(self.pattern))

        policy = qjoin.extract_policy(self.pattern, self.context, settings=settings)
        self.assertTrue(policy.complete)

    def test_describe(self) -> None:
        optimizer = QLearningJoinOrderOptimizer(self.settings())
        description = json.loads(to_json(optimizer.describe()))
        self.assertEqual(description["name"], "q-learning")
        self.assertEqual(description["settings"]["episodes"], 20)
        self.assertEqual(description["settings"]["table_path"], self.table_path)


class SessionTests(_OptimizerTestCase):
    def _stub_optimizer(self, actions: list[int], *, oracle: StubCostOracle | None = None,
                        **settings) -> QLearningJoinOrderOptimizer:
        oracle = oracle if oracle is not None else StubCostOracle(positional_costs([4, 1, 2]))
        return QLearningJoinOrderOptimizer(self.settings(**settings), oracle_factory=lambda pattern, context: oracle,
                                           rng=ScriptedChoices(actions))

    def test_sessions_are_reused(self) -> None:
        optimizer = self._stub_optimizer([1, 2, 0], episodes=1)
        session = optimizer.session(self.pattern, self.context)
        self.assertIs(optimizer.session(parse_pattern(BerlinEmployees), self.context), session)

        optimizer.train(self.pattern, self.context)
        policy = optimizer.extract_policy(self.pattern, self.context)
        self.assertEqual(policy.join_order, [1, 2, 0])
        self.assertEqual(len(session.history()), 3)

    def test_table_survives_sessions(self) -> None:
        first_optimizer = self._stub_optimizer([1, 0, 2], episodes=1)
        first_optimizer.train(self.pattern, self.context)

        second_optimizer = self._stub_optimizer([], episodes=0)
        session = second_optimizer.session(self.pattern, self.context)
        self.assertEqual(len(session.table), 3)
        self.assertEqual(second_optimizer.extract_policy(self.pattern, self.context).join_order, [1, 0, 2])

    def test_training_continues_from_stored_table(self) -> None:
        self._stub_optimizer([1, 0, 2], episodes=1).train(self.pattern, self.context)
        self._stub_optimizer([2, 1, 0], episodes=1).train(self.pattern, self.context)

        table = QTable.load(self.table_path, 3)
        root_values = table.values_for(qjoin.JoinState.root(3))
        self.assertLess(root_values[1], 0)
        self.assertLess(root_values[2], 0)
        self.assertEqual(root_values[0], 0)

    def test_width_mismatch_starts_empty(self) -> None:
        QTable(2).save(self.table_path)
        optimizer = self._stub_optimizer([], episodes=0)
        with self.assertWarns(qjoin.QTableWarning):
            session = optimizer.session(self.pattern, self.context)
        self.assertEqual(session.table.n_fragments, 3)
        self.assertEqual(len(session.table), 0)

    def test_untrained_pattern(self) -> None:
        optimizer = self._stub_optimizer([], episodes=0)
        self.assertIsNone(optimizer.optimize_join_order(self.pattern, self.context))

    def test_cross_product_warning(self) -> None:
        pattern = parse_pattern("?p worksFor ?c . ?x locatedIn ?y")
        optimizer = self._stub_optimizer([], episodes=0)
        with self.assertWarns(CrossProductWarning):
            optimizer.session(pattern, self.context)

    def test_closed_session(self) -> None:
        oracle = StubCostOracle(positional_costs([1, 1, 1]))
        rng = ScriptedChoices([0, 1, 2])
        with OptimizationSession(self.pattern, oracle, self.settings(episodes=1), rng=rng) as session:
            session.train()
        with self.assertRaises(StateError):
            session.extract_policy()

    def test_empty_pattern(self) -> None:
        with self.assertRaises(ValueError):
            OptimizationSession(qjoin.BasicPattern([]), StubCostOracle({}), self.settings())


class BaselineTests(_OptimizerTestCase):
    def test_textual_join_order(self) -> None:
        strategy = TextualJoinOrder()
        self.assertEqual(strategy.optimize_join_order(self.pattern, self.context), [0, 1, 2])
        self.assertTrue(strategy.pre_check().check_supported_pattern(self.pattern).passed)


class SettingsTests(unittest.TestCase):
    def test_invalid_settings(self) -> None:
        with self.assertRaises(ValueError):
            QLearningSettings(alpha=0)
        with self.assertRaises(ValueError):
            QLearningSettings(gamma=1.5)
        with self.assertRaises(ValueError):
            QLearningSettings(lookahead="future")
        with self.assertRaises(ValueError):
            QLearningSettings(timeout=-1)

    def test_load_settings(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = pathlib.Path(tmp_dir) / "settings.json"
            path.write_text(json.dumps({"episodes": 5, "gamma": 0.5}), encoding="utf-8")
            settings = QLearningSettings.load(path)
            self.assertEqual(settings.episodes, 5)
            self.assertEqual(settings.gamma, 0.5)
            self.assertEqual(settings.alpha, 0.1)

            path.write_text(json.dumps({"epsilon": 0.2}), encoding="utf-8")
            with self.assertRaises(ValueError):
                QLearningSettings.load(path)


class CommandLineTests(_OptimizerTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.triples_path = self.tmp / "triples.tsv"
        self.triples_path.write_text("\n".join("\t".join(triple) for triple in CompanyTriples) + "\n", encoding="utf-8")
        self.pattern_path = self.tmp / "pattern.rq"
        self.pattern_path.write_text("SELECT * WHERE {\n ?p worksFor ?c .\n ?c locatedIn berlin .\n ?p name ?n\n}\n",
                                     encoding="utf-8")

    def _run(self, *args: str) -> tuple[int, str]:
        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            exit_code = main([*args, str(self.triples_path), str(self.pattern_path), "--table", self.table_path])
        return exit_code, output.getvalue()

    def test_train_command(self) -> None:
        exit_code, output = self._run("train", "--episodes", "4", "--seed", "5", "--fallback", "lowest-index",
                                      "--json", "--compare")
        self.assertEqual(exit_code, 0)
        result = json.loads(output)
        self.assertTrue(is_join_order(result["policy"]["join_order"], 3))
        self.assertEqual(result["baseline"]["join_order"], [0, 1, 2])
        self.assertEqual(result["baseline"]["measurement"]["n_rows"], 2)
        self.assertEqual(len(result["pattern"]["fragments"]), 3)

    def test_policy_command_without_table(self) -> None:
        exit_code, output = self._run("policy")
        self.assertEqual(exit_code, 1)
        self.assertIn("no-confident-action", output)

        exit_code, output = self._run("policy", "--json")
        self.assertEqual(exit_code, 1)
        result = json.loads(output, parse_constant=_reject_constant)
        self.assertIsNone(result["policy"]["cost"])
        self.assertEqual(result["policy"]["status"], "no-confident-action")

    def test_history_export(self) -> None:
        history_path = self.tmp / "history.csv"
        exit_code, _ = self._run("train", "--episodes", "2", "--fallback", "lowest-index", "--history", str(history_path))
        self.assertEqual(exit_code, 0)
        self.assertEqual(len(history_path.read_text(encoding="utf-8").splitlines()), 1 + 2 * 3)


if __name__ == "__main__":
    unittest.main()
