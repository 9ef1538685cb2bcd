"""Knowledge graph built from the indexed wikilinks.

Two kinds of edge connect notes:

- direct: a wikilink whose target resolves to an existing note
- concept: two notes linking to the same target that has no note yet

Nothing is cached; every call rebuilds adjacency from the store.
"""

from __future__ import annotations

from collections.abc import Iterable

from .config import DEFAULT_LOCAL_GRAPH_DEPTH
from .indexer.store import IndexStore, strip_md
from .models import ConceptEdge, ConceptInfo, DirectEdge, GraphData, GraphNode


class NoteSet:
    """Known note paths with extension-tolerant lookup of link targets."""

    def __init__(self, paths: Iterable[str]):
        self.paths = set(paths)
        self._by_stem = {strip_md(p): p for p in self.paths}

    def resolve(self, target: str) -> str | None:
        """Note path a raw link target refers to, or None for a concept."""
        if target in self.paths:
            return target
        if f"{target}.md" in self.paths:
            return f"{target}.md"
        return self._by_stem.get(target)


def node_label(path: str) -> str:
    return strip_md(path).rsplit("/", 1)[-1]


def _make_node(path: str, connections: int) -> GraphNode:
    return GraphNode(id=path, label=node_label(path), path=path, connections=connections)


def build_concept_map(links: Iterable[tuple[str, str]], notes: NoteSet) -> dict[str, list[str]]:
    """Map each unresolved target to the sorted, distinct notes linking to it."""
    concept_sources: dict[str, set[str]] = {}
    for source, target in links:
        if notes.resolve(target) is None:
            concept_sources.setdefault(target, set()).add(source)
    return {name: sorted(sources) for name, sources in sorted(concept_sources.items())}


def _concept_pairs(name: str, sources: list[str]) -> list[ConceptEdge]:
    return [
        ConceptEdge(source=sources[i], target=sources[j], concept=name)
        for i in range(len(sources))
        for j in range(i + 1, len(sources))
    ]


def _concept_bonus(path: str, concept_map: dict[str, list[str]]) -> int:
    return sum(len(sources) - 1 for sources in concept_map.values() if len(sources) > 1 and path in sources)


def build_graph_data(store: IndexStore) -> GraphData:
    """Whole-vault graph: every note, direct edges, concept edges and concepts."""
    note_paths = store.get_all_note_paths()
    notes = NoteSet(note_paths)
    raw_links = store.get_all_links()

    edges: list[DirectEdge | ConceptEdge] = []
    seen_direct: set[tuple[str, str]] = set()
    connections: dict[str, int] = dict.fromkeys(note_paths, 0)

    for source, target in raw_links:
        resolved = notes.resolve(target)
        if resolved is None or (source, resolved) in seen_direct:
            continue
        seen_direct.add((source, resolved))
        edges.append(DirectEdge(source=source, target=resolved))
        connections[source] = connections.get(source, 0) + 1
        connections[resolved] = connections.get(resolved, 0) + 1

    concept_map = build_concept_map(raw_links, notes)
    for name, sources in concept_map.items():
        if len(sources) < 2:
            continue
        for path in sources:
            connections[path] = connections.get(path, 0) + len(sources) - 1
        edges.extend(_concept_pairs(name, sources))

    return GraphData(
        nodes=[_make_node(path, connections.get(path, 0)) for path in sorted(note_paths)],
        edges=edges,
        concepts=[ConceptInfo(name=name, count=len(sources), notes=sources) for name, sources in concept_map.items()],
    )


def build_local_graph(store: IndexStore, center: str, depth: int | None = None) -> GraphData:
    """Subgraph within ``depth`` hops of ``center`` over direct and concept adjacency.

    Traversal is breadth-first, so every note is expanded at its shortest
    distance from the center and a larger depth never loses nodes.
    """
    if depth is None:
        depth = DEFAULT_LOCAL_GRAPH_DEPTH

    notes = NoteSet(store.get_all_note_paths())
    concept_map = build_concept_map(store.get_all_links(), notes)

    visited: set[str] = set()
    nodes: list[GraphNode] = []
    edges: list[DirectEdge | ConceptEdge] = []
    queue: list[tuple[str, int]] = [(center, 0)]

    while queue:
        path, current_depth = queue.pop(0)
        if path in visited or current_depth > depth:
            continue
        visited.add(path)
        expand = current_depth < depth

        backlinks = store.get_backlinks(path)
        outgoing = store.get_outgoing_links(path)
        nodes.append(_make_node(path, len(backlinks) + len(outgoing) + _concept_bonus(path, concept_map)))

        for link in backlinks:
            edges.append(DirectEdge(source=link.path, target=path))
            if expand:
                queue.append((link.path, current_depth + 1))

        for link in outgoing:
            resolved = notes.resolve(link.path)
            if resolved is None:
                continue
            edges.append(DirectEdge(source=path, target=resolved))
            if expand:
                queue.append((resolved, current_depth + 1))

        if expand:
            for sources in concept_map.values():
                if len(sources) > 1 and path in sources:
                    queue.extend((other, current_depth + 1) for other in sources if other not in visited)

    for name, sources in concept_map.items():
        inside = [s for s in sources if s in visited]
        if len(inside) > 1:
            edges.extend(_concept_pairs(name, inside))

    unique_edges: list[DirectEdge | ConceptEdge] = []
    seen: set[tuple[str, str, str]] = set()
    for edge in edges:
        key = (edge.source, edge.target, edge.edge_type)
        if key not in seen:
            seen.add(key)
            unique_edges.append(edge)

    return GraphData(
        nodes=nodes,
        edges=unique_edges,
        concepts=[
            ConceptInfo(name=name, count=len(sources), notes=sources)
            for name, sources in concept_map.items()
            if any(s in visited for s in sources)
        ],
    )
