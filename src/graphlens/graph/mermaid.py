"""Mermaid flowchart parser.

Turns ``graph``/``flowchart`` text into nodes and edges. Only the
structural subset is understood: node shapes, the four arrow styles,
edge labels, chains and ``&`` fan-out. Styling directives are ignored.
"""

import re
from dataclasses import dataclass

from graphlens.common.exceptions import InvalidArgumentError
from graphlens.common.logging import get_logger
from graphlens.schemas.graph import GraphEdge, GraphNode

logger = get_logger(__name__)

HEADER_KEYWORDS = ("graph", "flowchart")
IGNORED_KEYWORDS = ("classDef", "class", "style", "linkStyle", "click", "subgraph", "end", "direction")

NODE_ID = re.compile(r"[A-Za-z0-9_]+")

# Order matters: composite shapes before the simple ones they start with
SHAPES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\(\[(.*?)\]\)"), "start"),
    (re.compile(r"\[\((.*?)\)\]"), "database"),
    (re.compile(r"\(\((.*?)\)\)"), "end"),
    (re.compile(r"\{(.*?)\}"), "decision"),
    (re.compile(r"\[(.*?)\]"), "process"),
    (re.compile(r"\((.*?)\)"), "start"),
]

ARROWS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"-\.+->"), "optional"),
    (re.compile(r"={2,}>"), "strong"),
    (re.compile(r"-{2,}>"), "next"),
    (re.compile(r"-{3,}"), "relation"),
]

# "A -- label --> B" and its dotted/thick variants
INLINE_LABEL_ARROWS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"-\.\s+(.+?)\s+\.->"), "optional"),
    (re.compile(r"==\s+(.+?)\s+==>"), "strong"),
    (re.compile(r"--\s+(.+?)\s+-->"), "next"),
    (re.compile(r"--\s+(.+?)\s+---"), "relation"),
]

PIPE_LABEL = re.compile(r"\s*\|([^|]*)\|")

# Keyword hints for nodes that are only referenced, never given a shape
TYPE_HINTS = (
    (("start", "begin"), "start"),
    (("end", "finish"), "end"),
    (("error", "fail"), "error"),
    (("decision", "choice"), "decision"),
)


@dataclass
class _NodeRef:
    id: str
    label: str | None
    node_type: str | None


def infer_node_type(node_id: str) -> str:
    """Guess a node type from its identifier."""
    lowered = node_id.lower()
    for keywords, node_type in TYPE_HINTS:
        if any(keyword in lowered for keyword in keywords):
            return node_type
    return "process"


def _clean_label(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        text = text[1:-1]
    return text.strip()


class _LineScanner:
    """Cursor over one statement."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def at_end(self) -> bool:
        self.skip_ws()
        return self.pos >= len(self.text)

    def node(self) -> _NodeRef | None:
        self.skip_ws()
        match = NODE_ID.match(self.text, self.pos)
        if match is None:
            return None
        self.pos = match.end()

        for pattern, node_type in SHAPES:
            shape = pattern.match(self.text, self.pos)
            if shape is not None:
                self.pos = shape.end()
                return _NodeRef(match.group(0), _clean_label(shape.group(1)), node_type)

        return _NodeRef(match.group(0), None, None)

    def node_group(self) -> list[_NodeRef]:
        refs: list[_NodeRef] = []
        ref = self.node()
        while ref is not None:
            refs.append(ref)
            self.skip_ws()
            if not self.text.startswith("&", self.pos):
                break
            self.pos += 1
            ref = self.node()
        return refs

    def arrow(self) -> tuple[str, str | None] | None:
        """Consume an arrow, returning (edge_type, label)."""
        self.skip_ws()

        for pattern, edge_type in INLINE_LABEL_ARROWS:
            match = pattern.match(self.text, self.pos)
            if match is not None:
                self.pos = match.end()
                return edge_type, _clean_label(match.group(1)) or None

        for pattern, edge_type in ARROWS:
            match = pattern.match(self.text, self.pos)
            if match is None:
                continue
            self.pos = match.end()
            label = None
            pipe = PIPE_LABEL.match(self.text, self.pos)
            if pipe is not None:
                self.pos = pipe.end()
                label = _clean_label(pipe.group(1)) or None
            return edge_type, label

        return None


def _statements(text: str) -> list[str]:
    statements = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("%%"):
            continue
        statements.extend(part.strip() for part in line.split(";") if part.strip())
    return statements


def _is_directive(statement: str) -> bool:
    keyword = statement.split(maxsplit=1)[0]
    return keyword in HEADER_KEYWORDS or keyword in IGNORED_KEYWORDS


def parse_mermaid(text: str) -> tuple[list[GraphNode], list[GraphEdge]]:
    """Parse Mermaid flowchart text.

    Nodes keep the order of their first appearance. A node first seen as a
    bare reference gets a label equal to its id and a type inferred from the
    id; a later shaped declaration overrides both.

    Args:
        text: Mermaid source.

    Returns:
        Tuple of (nodes, edges).

    Raises:
        InvalidArgumentError: If no node could be found.
    """
    nodes: dict[str, GraphNode] = {}
    edges: list[GraphEdge] = []

    def register(ref: _NodeRef) -> None:
        existing = nodes.get(ref.id)
        if ref.node_type is not None:
            nodes[ref.id] = GraphNode(id=ref.id, label=ref.label or ref.id, node_type=ref.node_type)
        elif existing is None:
            nodes[ref.id] = GraphNode(id=ref.id, label=ref.id, node_type=infer_node_type(ref.id))

    for statement in _statements(text):
        if _is_directive(statement):
            continue

        scanner = _LineScanner(statement)
        sources = scanner.node_group()
        if not sources:
            logger.debug("Skipping unparsable Mermaid statement", statement=statement)
            continue
        for ref in sources:
            register(ref)

        while not scanner.at_end():
            arrow = scanner.arrow()
            if arrow is None:
                break
            targets = scanner.node_group()
            if not targets:
                break

            edge_type, label = arrow
            for ref in targets:
                register(ref)
            for source in sources:
                for target in targets:
                    edges.append(GraphEdge(
                        source=source.id,
                        target=target.id,
                        label=label,
                        edge_type=edge_type,
                    ))
            sources = targets

    if not nodes:
        raise InvalidArgumentError("No nodes found in Mermaid code")

    return list(nodes.values()), edges
