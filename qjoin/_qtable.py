"""Provides the Q-table that stores the learned action values for each join state."""
from __future__ import annotations

import contextlib
import json
import os
import warnings
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ._space import JoinState
from .util.jsonize import jsondict, to_json_dump

TableFormat = "qjoin.qtable"
"""Identifier of the file format that is stored in each persisted Q-table."""

TableFormatVersion = 1
"""Version of the persisted Q-table layout. Files with a different version are not loaded."""


class QTableWarning(UserWarning):
    """Warning to indicate that a Q-table could not be loaded or stored. The in-memory table remains usable."""
    pass


class QTable:
    """Maps join states to vectors of action values.

    Each vector contains one slot per fragment of the pattern. Only slots of fragments that are not yet joined in the
    corresponding state are meaningful, all other slots are kept at their initial value and ignored by the learning
    algorithms.

    The table is populated lazily: the first access to a state via `values_for` creates a zero-initialized vector and stores
    it. Afterwards, the very same vector object is returned for the state, which allows callers to update the values in
    place.

    Parameters
    ----------
    n_fragments : int
        The number of fragments of the patterns that this table is used for, i.e. the width of all states and vectors.
    """

    def __init__(self, n_fragments: int) -> None:
        if n_fragments < 1:
            raise ValueError(f"Q-tables require at least one fragment, not {n_fragments}")
        self._n = n_fragments
        self._values: dict[JoinState, np.ndarray] = {}

    @property
    def n_fragments(self) -> int:
        return self._n

    def states(self) -> Iterable[JoinState]:
        """Provides all states that have been visited so far."""
        return self._values.keys()

    def values_for(self, state: JoinState) -> np.ndarray:
        """Provides the action values of a state, creating a vector of zeros if the state has not been visited before.

        Parameters
        ----------
        state : JoinState
            The state to look up

        Returns
        -------
        np.ndarray
            The (mutable) value vector that is stored for the state

        Raises
        ------
        ValueError
            If the width of the state does not match the width of the table
        """
        state = self._key(state)
        values = self._values.get(state)
        if values is None:
            values = np.zeros(self._n, dtype=np.float64)
            self._values[state] = values
        return values

    def update(self, state: JoinState, action: int, value: float) -> None:
        """Overwrites the value of a single action in the given state."""
        if not 0 <= action < self._n:
            raise ValueError(f"Action {action} is out of range for a table of width {self._n}")
        self.values_for(state)[action] = value

    def best_value(self, state: JoinState, legal_actions: Iterable[int]) -> float:
        """Determines the maximum value among the legal actions of a state.

        If there are no legal actions (i.e. for the final state), the neutral value *0.0* is used instead of *-inf*. This
        ensures that the final state does not distort the values of the preceding actions.
        """
        actions = sorted(legal_actions)
        if not actions:
            return 0.0
        values = self.values_for(state)
        return float(values[actions].max())

    def as_df(self) -> pd.DataFrame:
        """Provides the entire table as a data frame. Each row corresponds to one state, each column to one action."""
        states = list(self._values.keys())
        df = pd.DataFrame([self._values[state] for state in states], columns=list(range(self._n)),
                          index=pd.Index([str(state) for state in states], name="state"))
        return df

    def save(self, path: str | Path) -> bool:
        """Persists the table as a JSON file.

        The file is written to a temporary location first and moved into place afterwards, so that an interrupted write does
        not destroy an older snapshot.

        Parameters
        ----------
        path : str | Path
            Where to store the table

        Returns
        -------
        bool
            Whether the table was stored successfully. Failures are reported as a `QTableWarning` but do not raise.
        """
        path = Path(path)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            if path.parent and not path.parent.exists():
                path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as table_file:
                to_json_dump(self, table_file)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            warnings.warn(f"Could not store Q-table at '{path}': {e}", category=QTableWarning)
            return False
        return True

    @staticmethod
    def load(path: str | Path, n_fragments: int) -> QTable:
        """Reads a table that has previously been stored using `save`.

        Loading never fails: if the file does not exist, an empty table is returned. If the file exists but cannot be read,
        decoded or describes a table of a different width or format version, a `QTableWarning` is emitted and an empty table
        is returned as well.

        Parameters
        ----------
        path : str | Path
            The file to read
        n_fragments : int
            The expected width of the table

        Returns
        -------
        QTable
            The loaded table
        """
        path = Path(path)
        if not path.exists():
            return QTable(n_fragments)
        if not path.is_file():
            warnings.warn(f"Q-table path '{path}' is not a file, starting with an empty table", category=QTableWarning)
            return QTable(n_fragments)
        try:
            with open(path, "r", encoding="utf-8") as table_file:
                raw_table = json.load(table_file)
            return QTable.from_json(raw_table, n_fragments=n_fragments)
        except (OSError, ValueError, KeyError, TypeError) as e:
            warnings.warn(f"Could not load Q-table from '{path}', starting with an empty table: {e}", category=QTableWarning)
            return QTable(n_fragments)

    @staticmethod
    def from_json(raw_table: Any, *, n_fragments: int) -> QTable:
        """Re-creates a table from its JSON representation.

        Raises
        ------
        ValueError
            If the JSON data does not describe a valid table of the requested width
        """
        if not isinstance(raw_table, dict) or raw_table.get("format") != TableFormat:
            raise ValueError("Not a Q-table snapshot")
        if raw_table.get("version") != TableFormatVersion:
            raise ValueError(f"Unsupported Q-table version {raw_table.get('version')}, expected {TableFormatVersion}")
        if raw_table["n_fragments"] != n_fragments:
            raise ValueError(f"Q-table was trained for {raw_table['n_fragments']} fragments, not {n_fragments}")

        table = QTable(n_fragments)
        for entry in raw_table["entries"]:
            state = table._key(JoinState(entry["state"]))
            values = np.array(entry["values"], dtype=np.float64)
            if values.shape != (n_fragments,):
                raise ValueError(f"Value vector for state {state} has shape {values.shape}")
            if state in table._values:
                raise ValueError(f"Duplicate entry for state {state}")
            table._values[state] = values
        return table

    def _key(self, state: JoinState) -> JoinState:
        if not isinstance(state, JoinState):
            state = JoinState(state)
        if len(state) != self._n:
            raise ValueError(f"State {state} does not match the table width {self._n}")
        return state

    def __json__(self) -> jsondict:
        return {"format": TableFormat, "version": TableFormatVersion, "n_fragments": self._n,
                "entries": [{"state": list(state), "values": values} for state, values in self._values.items()]}

    def __contains__(self, state: object) -> bool:
        return state in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[JoinState]:
        return iter(self._values)

    def __repr__(self) -> str:
        return f"QTable(n_fragments={self._n}, states={len(self._values)})"

    def __str__(self) -> str:
        lines = ["Q matrix"]
        for state, values in self._values.items():
            lines.append(f"From state {state}: {values.tolist()}")
        return "\n".join(lines)
