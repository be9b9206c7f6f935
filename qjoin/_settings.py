"""Contains the configuration of the Q-learning join order optimizer."""
from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Literal, Optional

from .util.jsonize import jsondict

LookaheadMode = Literal["current", "successor"]
"""Determines which state provides the future-value bound of the value update:

- *current*: the best value among the legal actions of the state in which the action was chosen (before applying it)
- *successor*: the best value among the legal actions of the state that is reached by applying the action
"""

OracleErrorHandling = Literal["raise", "skip"]
"""Determines what happens if the cost oracle fails to execute a join order during training:

- *raise*: the error is propagated and the training run is aborted
- *skip*: the failure is logged together with the offending join order and training continues with the next episode
"""

PolicyFallback = Literal["stop", "lowest-index"]
"""Determines what the policy extraction does if no legal action has a (negative) learned value:

- *stop*: the extraction is stopped and an incomplete join order is reported
- *lowest-index*: the remaining fragment with the lowest index is joined next
"""

DefaultTablePath = "./qtable.json"


@dataclasses.dataclass
class QLearningSettings:
    """Bundles all parameters of a training session and the subsequent policy extraction.

    Attributes
    ----------
    alpha : float
        The learning rate. Defaults to *0.1*.
    gamma : float
        The discount factor. A value close to *0* focuses on the immediate cost, a value close to *1* also values the cost
        of subsequent joins. Defaults to *0.9*.
    episodes : int
        The number of training episodes. Each episode builds one complete join order. Defaults to *20*.
    table_path : str
        Where the Q-table is loaded from at the start of a session and stored to after training.
    lookahead : LookaheadMode
        Which state provides the future-value bound of the value update. Defaults to *current*.
    timeout : Optional[float]
        Maximum execution time of a single join order in seconds. No timeout by default.
    seed : Optional[int]
        Seed for the random exploration. By default, exploration is not reproducible.
    on_oracle_error : OracleErrorHandling
        How to handle execution failures during training. Defaults to *raise*.
    fallback : PolicyFallback
        How to handle states without a confident action during policy extraction. Defaults to *stop*.
    verbose : bool
        Whether to log the progress of training and extraction. Defaults to *False*.
    """
    alpha: float = 0.1
    gamma: float = 0.9
    episodes: int = 20
    table_path: str = DefaultTablePath
    lookahead: LookaheadMode = "current"
    timeout: Optional[float] = None
    seed: Optional[int] = None
    on_oracle_error: OracleErrorHandling = "raise"
    fallback: PolicyFallback = "stop"
    verbose: bool = False

    def __post_init__(self) -> None:
        if not 0 < self.alpha <= 1:
            raise ValueError(f"Learning rate must be in (0, 1], not {self.alpha}")
        if not 0 <= self.gamma <= 1:
            raise ValueError(f"Discount factor must be in [0, 1], not {self.gamma}")
        if self.episodes < 0:
            raise ValueError(f"Number of episodes must not be negative, not {self.episodes}")
        if self.lookahead not in ("current", "successor"):
            raise ValueError(f"Unknown lookahead mode: {self.lookahead}")
        if self.on_oracle_error not in ("raise", "skip"):
            raise ValueError(f"Unknown oracle error handling: {self.on_oracle_error}")
        if self.fallback not in ("stop", "lowest-index"):
            raise ValueError(f"Unknown policy fallback: {self.fallback}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, not {self.timeout}")

    @staticmethod
    def load(path: str | Path) -> QLearningSettings:
        """Reads the settings from a JSON file. Settings that are not contained in the file keep their default values.

        Raises
        ------
        ValueError
            If the file contains unknown settings or invalid values
        """
        with open(path, "r", encoding="utf-8") as settings_file:
            raw_settings = json.load(settings_file)
        if not isinstance(raw_settings, dict):
            raise ValueError(f"Settings file '{path}' does not contain a JSON object")

        known_settings = {field.name for field in dataclasses.fields(QLearningSettings)}
        unknown_settings = set(raw_settings) - known_settings
        if unknown_settings:
            raise ValueError(f"Unknown settings in '{path}': {sorted(unknown_settings)}")
        return QLearningSettings(**raw_settings)

    def with_updates(self, **kwargs) -> QLearningSettings:
        """Provides a copy of these settings with some values replaced."""
        return dataclasses.replace(self, **kwargs)

    def __json__(self) -> jsondict:
        return dataclasses.asdict(self)
