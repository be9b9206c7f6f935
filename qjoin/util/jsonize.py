"""Contains utilities to store QJoin objects as JSON.

Classes opt into serialization by providing a `__json__` method that returns a JSON-compatible representation of the
instance, usually a `dict` or a `list`. The `JsonizeEncoder` calls this method whenever it encounters such an object.
Since JSON does not retain any type information, reading the data back is up to each class (see e.g. `QTable.from_json`).
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import IO, Any

import numpy as np

jsondict = dict
"""Type alias for a JSON-izeable dictionary."""


class JsonizeEncoder(json.JSONEncoder):
    """JSON encoder that understands `__json__` methods, as well as the numpy types that make up Q-table vectors.

    Numpy arrays are written as lists of plain Python floats, which keeps the stored doubles bit-exact. Sets are written as
    sorted lists and paths as strings.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        if isinstance(obj, Path):
            return str(obj)
        if hasattr(obj, "__json__"):
            return obj.__json__()
        return super().default(obj)


def to_json(obj: Any, *args, **kwargs) -> str | None:
    """Serializes an object with the `JsonizeEncoder`. *None* stays *None* rather than becoming ``"null"``.

    All other arguments are forwarded to `json.dumps`.
    """
    if obj is None:
        return None
    kwargs["cls"] = JsonizeEncoder
    return json.dumps(obj, *args, **kwargs)


def to_json_dump(obj: Any, file: IO, *args, **kwargs) -> None:
    """Writes an object to a file using the `JsonizeEncoder`. All other arguments are forwarded to `json.dump`."""
    kwargs["cls"] = JsonizeEncoder
    json.dump(obj, file, *args, **kwargs)
