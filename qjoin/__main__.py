"""Command line interface to train Q-tables and to derive join orders for patterns on a triple file."""
from __future__ import annotations

import argparse
import pathlib
import sys
import textwrap
from typing import Optional

from ._engine import ExecutionContext, TripleStore
from ._optimizer import QLearningJoinOrderOptimizer
from ._parser import parse_pattern
from ._settings import QLearningSettings
from ._stages import TextualJoinOrder
from .util.jsonize import to_json


def _load_settings(args: argparse.Namespace) -> QLearningSettings:
    settings = QLearningSettings.load(args.settings) if args.settings else QLearningSettings()
    updates = {}
    if args.table:
        updates["table_path"] = args.table
    if args.episodes is not None:
        updates["episodes"] = args.episodes
    if args.seed is not None:
        updates["seed"] = args.seed
    if args.timeout is not None:
        updates["timeout"] = args.timeout
    if args.fallback:
        updates["fallback"] = args.fallback
    if args.verbose:
        updates["verbose"] = True
    return settings.with_updates(**updates) if updates else settings


def _make_parser() -> argparse.ArgumentParser:
    description = textwrap.dedent("""\
        Learns join orders for triple patterns by executing them on a triple file.

        The triples are read from a tab-separated file with subject, predicate and object columns. The pattern file
        contains one triple pattern per line (or patterns separated by ' . '), variables start with '?'.""")
    parser = argparse.ArgumentParser(prog="qjoin", description=description,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("command", choices=["train", "policy"], help="'train' runs the training episodes, stores the "
                        "Q-table and reports the resulting join order. 'policy' only derives the join order from a "
                        "previously stored Q-table.")
    parser.add_argument("triples", help="Path to the tab-separated triple file")
    parser.add_argument("pattern", help="Path to the file containing the pattern")
    parser.add_argument("--settings", "-s", help="Path to a JSON file with the optimizer settings")
    parser.add_argument("--table", "-t", help="Where to load the Q-table from and store it to. Overwrites the settings.")
    parser.add_argument("--episodes", "-n", type=int, default=None, help="The number of training episodes. "
                        "Overwrites the settings.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the random exploration")
    parser.add_argument("--timeout", type=float, default=None, help="Maximum execution time of a single join order in "
                        "seconds")
    parser.add_argument("--fallback", choices=["stop", "lowest-index"], default=None,
                        help="What to do if the Q-table does not provide a confident action for some state")
    parser.add_argument("--history", help="Write the training steps to this CSV file")
    parser.add_argument("--compare", action="store_true", help="Also measure the join order in which the fragments "
                        "appear in the pattern")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar during training (requires tqdm)")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print progress information")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _make_parser()
    args = parser.parse_args(argv)

    settings = _load_settings(args)
    store = TripleStore.read_tsv(args.triples)
    pattern = parse_pattern(pathlib.Path(args.pattern).read_text(encoding="utf-8"))
    context = ExecutionContext(store)

    optimizer = QLearningJoinOrderOptimizer(settings, progress="tqdm" if args.progress else None)
    match args.command:
        case "train":
            history = optimizer.train(pattern, context)
            if args.history:
                history.to_csv(args.history, index=False)
        case "policy":
            pass
        case _:
            parser.error(f"Unknown command: {args.command}")

    policy = optimizer.extract_policy(pattern, context)
    result = {"pattern": pattern, "policy": policy}

    if args.compare:
        baseline_order = TextualJoinOrder().optimize_join_order(pattern, context)
        oracle = optimizer.session(pattern, context).oracle
        result["baseline"] = {"join_order": baseline_order, "measurement": oracle.measure(baseline_order)}

    if args.json:
        print(to_json(result, indent=2))
    else:
        print("Join order:", [str(pattern[idx]) for idx in policy.join_order])
        print("Status:", policy.status)
        print("Cost:", policy.cost)
        if args.compare:
            print("Textual order cost:", result["baseline"]["measurement"].cost)

    return 0 if policy.complete else 1


if __name__ == "__main__":
    sys.exit(main())
