"""GraphLens - graph storage and impact analysis across backends.

Stores directed typed graphs in Neo4j, Memgraph, SQL databases or memory,
and answers neighborhood and downstream impact queries with identical
results on each.
"""

__version__ = "0.1.0"
