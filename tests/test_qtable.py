"""Tests for the Q-table and its persistence."""
import json
import pathlib
import tempfile
import unittest
import warnings

import numpy as np

from qjoin import JoinState, QTable, QTableWarning
from qjoin._qtable import TableFormat, TableFormatVersion


class QTableAccessTests(unittest.TestCase):
    def test_lazy_initialization(self) -> None:
        table = QTable(3)
        self.assertEqual(len(table), 0)

        values = table.values_for(JoinState.root(3))
        np.testing.assert_array_equal(values, np.zeros(3))
        self.assertEqual(len(table), 1)
        self.assertIn(JoinState.root(3), table)

    def test_values_are_stored_by_reference(self) -> None:
        table = QTable(3)
        state = JoinState.root(3).advance(1)
        table.values_for(state)[2] = -0.5
        self.assertIs(table.values_for(state), table.values_for(state))
        self.assertEqual(table.values_for(state)[2], -0.5)

    def test_update_overwrites_single_action(self) -> None:
        table = QTable(2)
        root = JoinState.root(2)
        table.update(root, 1, -0.3)
        table.update(root, 1, -0.7)
        np.testing.assert_array_equal(table.values_for(root), [0.0, -0.7])

    def test_width_mismatch(self) -> None:
        table = QTable(3)
        with self.assertRaises(ValueError):
            table.values_for(JoinState.root(2))
        with self.assertRaises(ValueError):
            table.update(JoinState.root(3), 3, -1.0)

    def test_best_value_considers_legal_actions_only(self) -> None:
        table = QTable(3)
        state = JoinState([1, 0, 0])
        values = table.values_for(state)
        values[:] = [5.0, -2.0, -1.0]
        self.assertEqual(table.best_value(state, [1, 2]), -1.0)
        self.assertEqual(table.best_value(state, [1]), -2.0)

    def test_best_value_without_actions(self) -> None:
        table = QTable(2)
        self.assertEqual(table.best_value(JoinState([1, 1]), []), 0.0)

    def test_as_df(self) -> None:
        table = QTable(2)
        table.update(JoinState.root(2), 0, -1.0)
        table.update(JoinState([1, 0]), 1, -2.0)
        df = table.as_df()
        self.assertEqual(df.shape, (2, 2))
        self.assertEqual(df.loc[str(JoinState([1, 0])), 1], -2.0)

    def test_str_lists_all_states(self) -> None:
        table = QTable(2)
        table.update(JoinState.root(2), 0, -1.0)
        lines = str(table).splitlines()
        self.assertEqual(lines[0], "Q matrix")
        self.assertEqual(len(lines), 2)


class QTablePersistenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = tempfile.TemporaryDirectory()
        self.tmp = pathlib.Path(self._tmp_dir.name)

    def tearDown(self) -> None:
        self._tmp_dir.cleanup()

    def _sample_table(self) -> QTable:
        table = QTable(3)
        table.update(JoinState.root(3), 1, -0.2)
        table.update(JoinState([0, 1, 0]), 0, -0.3)
        table.update(JoinState([1, 1, 0]), 2, -0.5)
        return table

    def test_store_and_reload(self) -> None:
        table = self._sample_table()
        path = self.tmp / "nested" / "qtable.json"
        self.assertTrue(table.save(path))
        self.assertTrue(path.is_file())
        self.assertFalse(path.with_name(path.name + ".tmp").exists())

        reloaded = QTable.load(path, 3)
        self.assertEqual(set(reloaded.states()), set(table.states()))
        for state in table:
            np.testing.assert_array_equal(reloaded.values_for(state), table.values_for(state))

    def test_file_layout(self) -> None:
        path = self.tmp / "qtable.json"
        self._sample_table().save(path)
        raw_table = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(raw_table["format"], TableFormat)
        self.assertEqual(raw_table["version"], TableFormatVersion)
        self.assertEqual(raw_table["n_fragments"], 3)
        self.assertEqual(len(raw_table["entries"]), 3)
        self.assertIn({"state": [0, 0, 0], "values": [0.0, -0.2, 0.0]}, raw_table["entries"])

    def test_missing_file_yields_empty_table(self) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            table = QTable.load(self.tmp / "does-not-exist.json", 3)
        self.assertEqual(len(table), 0)

    def test_corrupt_file_yields_empty_table(self) -> None:
        path = self.tmp / "qtable.json"
        path.write_text("{ this is not json", encoding="utf-8")
        with self.assertWarns(QTableWarning):
            table = QTable.load(path, 3)
        self.assertEqual(len(table), 0)

    def test_directory_yields_empty_table(self) -> None:
        path = self.tmp / "qtable.json"
        path.mkdir()
        with self.assertWarns(QTableWarning):
            table = QTable.load(path, 3)
        self.assertEqual(len(table), 0)

    def test_width_mismatch_yields_empty_table(self) -> None:
        path = self.tmp / "qtable.json"
        self._sample_table().save(path)
        with self.assertWarns(QTableWarning):
            table = QTable.load(path, 4)
        self.assertEqual(table.n_fragments, 4)
        self.assertEqual(len(table), 0)

    def test_unsupported_version_yields_empty_table(self) -> None:
        path = self.tmp / "qtable.json"
        path.write_text(json.dumps({"format": TableFormat, "version": TableFormatVersion + 1, "n_fragments": 2,
                                    "entries": []}), encoding="utf-8")
        with self.assertWarns(QTableWarning):
            table = QTable.load(path, 2)
        self.assertEqual(len(table), 0)

    def test_duplicate_states_are_rejected(self) -> None:
        raw_table = {"format": TableFormat, "version": TableFormatVersion, "n_fragments": 2,
                     "entries": [{"state": [0, 0], "values": [0.0, -1.0]}, {"state": [0, 0], "values": [-1.0, 0.0]}]}
        with self.assertRaises(ValueError):
            QTable.from_json(raw_table, n_fragments=2)

    def test_failed_store_keeps_table_usable(self) -> None:
        blocker = self.tmp / "blocker"
        blocker.write_text("", encoding="utf-8")
        table = self._sample_table()
        with self.assertWarns(QTableWarning):
            stored = table.save(blocker / "qtable.json")
        self.assertFalse(stored)
        self.assertEqual(len(table), 3)


if __name__ == "__main__":
    unittest.main()
