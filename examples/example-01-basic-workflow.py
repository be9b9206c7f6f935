#!/usr/bin/env python3
#
# This script shows the basic steps that are involved in learning a join order with QJoin: loading the data, training the
# Q-table for a pattern and deriving the final join order from it.
#
# Requirements: a tab-separated triple file. The path can be passed as the first argument, otherwise a small sample data set
# is generated on the fly.
#

# Step 0: imports
# The main QJoin package provides access to all parts that are required for typical training sessions.
import sys

import qjoin

# Step 1: Data setup
if len(sys.argv) > 1:
    store = qjoin.TripleStore.read_tsv(sys.argv[1])
else:
    people = [f"person{idx}" for idx in range(200)]
    companies = [f"company{idx}" for idx in range(20)]
    triples = [(person, "worksFor", companies[idx % len(companies)]) for idx, person in enumerate(people)]
    triples += [(company, "locatedIn", "berlin" if idx % 5 == 0 else "paris") for idx, company in enumerate(companies)]
    triples += [(person, "name", f'"{person.title()}"') for person in people]
    store = qjoin.TripleStore.from_triples(triples)
context = qjoin.ExecutionContext(store)

# Step 2: Pattern setup
# The position of each fragment is its identity: all join orders refer to the fragments by index.
pattern = qjoin.parse_pattern("""
    ?p name ?n .
    ?p worksFor ?c .
    ?c locatedIn berlin
""")

# Step 3: Optimizer setup
# The Q-table is persisted at the table path and re-used by later sessions for the same pattern shape.
settings = qjoin.QLearningSettings(episodes=30, seed=42, table_path="./qtable-example.json", verbose=True)
optimizer = qjoin.QLearningJoinOrderOptimizer(settings)

# Step 4: Training
# Each episode executes random (partial) join orders on the engine and updates the Q-table with the measured times.
history = optimizer.train(pattern, context)
print(history.groupby("step")["cost"].describe())

# Step 5: Policy extraction
# The learned join order is executed once more to report its cost.
policy = optimizer.extract_policy(pattern, context, fallback="lowest-index")
print("Learned join order:", [str(pattern[idx]) for idx in policy.join_order])
print("Execution time:", policy.cost)
