#!/usr/bin/env python3
"""Seed sample graphs into a GraphLens backend.

Usage:
    python scripts/seed_graphs.py --backend neo4j
    python scripts/seed_graphs.py --backend sql --database demo --dense 20000

Loads the example workflow and the European cities network, and optionally
a dense generated graph. Backends are configured via environment variables
as for the API.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


async def seed(backend: str, database: str | None, dense: int, replace: bool) -> None:
    """Create the sample graphs in one backend."""
    from graphlens.common.config import get_settings
    from graphlens.common.exceptions import GraphAlreadyExistsError, GraphLensError
    from graphlens.common.logging import setup_logging
    from graphlens.graph.samples import all_samples, dense_graph
    from graphlens.stores.registry import STORE_FACTORIES

    settings = get_settings()
    setup_logging(settings.logging)

    if backend not in STORE_FACTORIES:
        print(f"Error: unknown backend '{backend}'. Choose from: {', '.join(STORE_FACTORIES)}")
        sys.exit(1)

    store = STORE_FACTORIES[backend](settings)
    samples = all_samples()
    if dense:
        samples.append(dense_graph(dense))

    try:
        await store.initialize()
        if database:
            await store.create_database(database)

        for sample in samples:
            if replace:
                await store.delete_graph(sample.graph_id, database)
            try:
                graph = await store.create_graph(
                    graph_id=sample.graph_id,
                    title=sample.title,
                    description=sample.description,
                    graph_type=sample.graph_type,
                    nodes=sample.nodes,
                    edges=sample.edges,
                    database=database,
                )
            except GraphAlreadyExistsError:
                print(f"  {sample.graph_id}: already present, skipped (use --replace)")
                continue

            print(f"  {graph.id}: {graph.node_count} nodes, {graph.edge_count} edges")
    except GraphLensError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    finally:
        await store.close()

    print(f"Seeded {backend} ({database or store.default_database}) successfully!")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Seed sample graphs into a GraphLens backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python scripts/seed_graphs.py --backend memgraph
    python scripts/seed_graphs.py --backend sql --replace --dense 5000
        """,
    )
    parser.add_argument(
        "--backend",
        default="neo4j",
        help="Backend identifier (neo4j, memgraph, sql)",
    )
    parser.add_argument(
        "--database",
        default=None,
        help="Target database, created if missing (default database when omitted)",
    )
    parser.add_argument(
        "--dense",
        type=int,
        default=0,
        metavar="NODES",
        help="Also seed a dense generated graph with this many nodes",
    )
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Delete existing sample graphs before creating them",
    )

    args = parser.parse_args()

    if args.dense < 0:
        parser.error("--dense must be positive")

    asyncio.run(seed(args.backend.strip().lower(), args.database, args.dense, args.replace))


if __name__ == "__main__":
    main()
