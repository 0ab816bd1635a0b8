"""Built-in sample graphs used for seeding and demos."""

from dataclasses import dataclass, field

from graphlens.schemas.graph import GraphEdge, GraphNode


@dataclass
class SampleGraph:
    """A ready-to-create graph definition."""

    graph_id: str
    title: str
    description: str
    graph_type: str
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)


def _edge(source: str, target: str, edge_type: str, label: str | None = None, **properties) -> GraphEdge:
    return GraphEdge(source=source, target=target, edge_type=edge_type, label=label, properties=properties)


def example_workflow() -> SampleGraph:
    """Eleven-step workflow with a decision, a merge and a retry loop."""
    nodes = [
        GraphNode(id="A", label="Start", node_type="start"),
        GraphNode(id="B", label="Process 1", node_type="process"),
        GraphNode(id="C", label="Decision", node_type="decision"),
        GraphNode(id="D", label="Process 2A", node_type="process"),
        GraphNode(id="E", label="Process 2B", node_type="process"),
        GraphNode(id="F", label="Merge", node_type="process"),
        GraphNode(id="G", label="Validate", node_type="process"),
        GraphNode(id="H", label="Success", node_type="end"),
        GraphNode(id="I", label="Error", node_type="error"),
        GraphNode(id="J", label="Retry", node_type="process"),
        GraphNode(id="K", label="Log", node_type="process"),
    ]
    edges = [
        _edge("A", "B", "next", "Start"),
        _edge("B", "C", "next", "Process"),
        _edge("C", "D", "condition", "Yes"),
        _edge("C", "E", "condition", "No"),
        _edge("D", "F", "next"),
        _edge("E", "F", "next"),
        _edge("F", "G", "next", "Merged"),
        _edge("G", "H", "condition", "Valid"),
        _edge("G", "I", "condition", "Invalid"),
        _edge("I", "J", "retry", "Retry"),
        _edge("J", "B", "next"),
        _edge("B", "K", "log", "Log"),
        _edge("F", "K", "log", "Log"),
        _edge("G", "K", "log", "Log"),
    ]
    return SampleGraph(
        graph_id="example",
        title="Example Workflow",
        description="A demonstration workflow",
        graph_type="flowchart",
        nodes=nodes,
        edges=edges,
    )


CITIES = [
    ("paris", "Paris", "capital", "France", 2161000),
    ("berlin", "Berlin", "capital", "Germany", 3645000),
    ("madrid", "Madrid", "capital", "Spain", 3223000),
    ("rome", "Rome", "capital", "Italy", 2873000),
    ("brussels", "Brussels", "capital", "Belgium", 1218000),
    ("amsterdam", "Amsterdam", "capital", "Netherlands", 921000),
    ("vienna", "Vienna", "capital", "Austria", 1897000),
    ("zurich", "Zurich", "hub", "Switzerland", 434000),
    ("frankfurt", "Frankfurt", "hub", "Germany", 753000),
    ("lyon", "Lyon", "city", "France", 516000),
    ("milan", "Milan", "hub", "Italy", 1371000),
    ("barcelona", "Barcelona", "city", "Spain", 1620000),
]

# (source, target, label, edge_type, km, duration_min)
CONNECTIONS = [
    ("paris", "brussels", "1h20", "train", 315, 80),
    ("paris", "amsterdam", "3h20", "train", 500, 200),
    ("paris", "lyon", "2h", "train", 450, 120),
    ("paris", "madrid", "9h30", "train", 1272, 570),
    ("paris", "frankfurt", "3h50", "train", 570, 230),
    ("brussels", "amsterdam", "1h50", "train", 210, 110),
    ("brussels", "frankfurt", "3h", "train", 380, 180),
    ("frankfurt", "berlin", "4h", "train", 550, 240),
    ("frankfurt", "vienna", "6h30", "train", 680, 390),
    ("frankfurt", "zurich", "3h", "train", 340, 180),
    ("zurich", "milan", "3h20", "train", 290, 200),
    ("zurich", "vienna", "8h", "train", 780, 480),
    ("milan", "rome", "3h", "train", 575, 180),
    ("milan", "barcelona", "10h", "train", 900, 600),
    ("madrid", "barcelona", "2h30", "train", 620, 150),
    ("lyon", "milan", "5h", "train", 380, 300),
    ("lyon", "zurich", "4h", "train", 400, 240),
    ("berlin", "vienna", "9h30", "train", 680, 570),
    ("paris", "rome", "2h15", "flight", 1105, 135),
    ("paris", "berlin", "1h55", "flight", 1050, 115),
    ("madrid", "rome", "2h30", "flight", 1365, 150),
    ("amsterdam", "berlin", "1h30", "flight", 575, 90),
]


def europe_cities() -> SampleGraph:
    """Twelve European cities linked by train and flight connections."""
    nodes = [
        GraphNode(
            id=city_id,
            label=label,
            node_type=node_type,
            properties={"country": country, "population": population},
        )
        for city_id, label, node_type, country, population in CITIES
    ]
    edges = [
        _edge(source, target, edge_type, label, km=km, duration_min=duration)
        for source, target, label, edge_type, km, duration in CONNECTIONS
    ]
    return SampleGraph(
        graph_id="europe-cities-demo",
        title="European rail and air network",
        description="European cities connected by train and plane",
        graph_type="network",
        nodes=nodes,
        edges=edges,
    )


DENSE_NODE_TYPES = ("start", "process", "decision", "end", "process")

# (offset, modulus, label, edge_type): node i links to i + offset when i % modulus == 0
DENSE_LINKS = (
    (5, 1, "near", "relation"),
    (10, 2, "mid", "relation"),
    (20, 1, "cluster", "condition"),
    (50, 5, "long", "skip"),
    (100, 10, "distant", "skip"),
    (200, 20, "cross", "skip"),
)


def dense_graph(node_count: int = 20_000, prefix: str = "XL") -> SampleGraph:
    """Deterministic dense graph for load testing.

    Every node links to its successor, every third node back to its
    predecessor, and nodes fan out to fixed offsets (near, mid, cluster,
    long-range) plus a hub every hundred nodes. Roughly five edges per node.
    """
    nodes = [
        GraphNode(id=f"{prefix}{i}", label=f"Node {i}", node_type=DENSE_NODE_TYPES[i % len(DENSE_NODE_TYPES)])
        for i in range(node_count)
    ]

    edges: list[GraphEdge] = []
    for i in range(node_count):
        source = f"{prefix}{i}"

        if i + 1 < node_count:
            edges.append(_edge(source, f"{prefix}{i + 1}", "next"))

        if i > 0 and i % 3 == 0:
            edges.append(_edge(source, f"{prefix}{i - 1}", "back"))

        for offset, modulus, label, edge_type in DENSE_LINKS:
            if i + offset < node_count and i % modulus == 0:
                edges.append(_edge(source, f"{prefix}{i + offset}", edge_type, label))

        if i % 7 == 0:
            offset = 15 + (i % 15)
            if i + offset < node_count:
                edges.append(_edge(source, f"{prefix}{i + offset}", "relation", "random"))

        if i % 100 == 0:
            for j in range(1, 4):
                if i + j * 30 < node_count:
                    edges.append(_edge(source, f"{prefix}{i + j * 30}", "relation", "hub"))

    return SampleGraph(
        graph_id=f"dense_{node_count}",
        title=f"Dense graph ({node_count:,} nodes)",
        description="Deterministic dense graph for traversal load tests",
        graph_type="network",
        nodes=nodes,
        edges=edges,
    )


def all_samples() -> list[SampleGraph]:
    """Samples small enough to seed on every startup."""
    return [example_workflow(), europe_cities()]
