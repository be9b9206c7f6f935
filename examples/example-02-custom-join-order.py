#!/usr/bin/env python3
#
# This script shows how to implement a custom join ordering strategy and how to compare it against the learned join order.
# The strategy greedily joins the fragment with the fewest matches first and prefers fragments that are connected to the
# fragments joined so far.
#
# Requirements: none, the script uses a small generated data set.
#

from typing import Optional

import qjoin


class SmallestFragmentFirst(qjoin.JoinOrderOptimization):
    # The entire join ordering algorithm is implemented in this class. It satisfies the interface of the join order stage.

    def optimize_join_order(self, pattern: qjoin.BasicPattern,
                            context: qjoin.ExecutionContext) -> Optional[list[int]]:
        # The join graph tells us which fragments share variables. We use it to avoid cartesian products whenever possible.
        join_graph = pattern.join_graph()
        sizes = {idx: len(context.store.match(fragment)) for idx, fragment in enumerate(pattern)}

        join_order: list[int] = []
        while len(join_order) < len(pattern):
            candidates = [idx for idx in sizes if idx not in join_order]
            connected = [idx for idx in candidates if any(join_graph.has_edge(idx, joined) for joined in join_order)]
            next_fragment = min(connected or candidates, key=lambda idx: (sizes[idx], idx))
            join_order.append(next_fragment)

        return join_order

    def describe(self) -> dict:
        return {"name": "smallest-fragment-first"}


people = [f"person{idx}" for idx in range(100)]
triples = [(person, "knows", people[(idx * 7) % len(people)]) for idx, person in enumerate(people)]
triples += [(person, "livesIn", "berlin" if idx % 10 == 0 else "paris") for idx, person in enumerate(people)]
context = qjoin.ExecutionContext(qjoin.TripleStore.from_triples(triples))
pattern = qjoin.parse_pattern("?a knows ?b . ?b knows ?c . ?c livesIn berlin")

# Both strategies are measured with the same oracle to make their execution times comparable
oracle = qjoin.EngineCostOracle(qjoin.InMemoryEngine(), pattern, context)
greedy_order = SmallestFragmentFirst().optimize_join_order(pattern, context)
print("Greedy join order:", greedy_order, oracle.measure(greedy_order))

optimizer = qjoin.QLearningJoinOrderOptimizer(qjoin.QLearningSettings(episodes=20, seed=1,
                                                                       table_path="./qtable-example-02.json",
                                                                       fallback="lowest-index"))
learned_order = optimizer.optimize_join_order(pattern, context)
print("Learned join order:", learned_order, oracle.measure(learned_order))
