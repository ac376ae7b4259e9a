# constructor/services/context_service.py
"""
Turns the node graph into the context a chat node sends with its query.

Reading is single-hop: only nodes wired directly into the target count. A chat
node two hops away from a source sees nothing from it unless it is wired in too.
"""
import logging
from constructor.models.graph import ContextSource, NodeGraph, SourceRecord

logger = logging.getLogger(__name__)


def get_upstream_sources(graph: NodeGraph, target_node_id: str) -> list[SourceRecord]:
    """
    Returns the nodes wired into `target_node_id`, in edge-list order.
    Edges pointing at a node that no longer exists are skipped.
    """
    nodes_by_id = {node.id: node for node in graph.nodes}
    seen: set[str] = set()
    sources: list[SourceRecord] = []

    for edge in graph.edges:
        if edge.target != target_node_id or edge.source in seen:
            continue
        node = nodes_by_id.get(edge.source)
        if node is None:
            logger.debug("Skipping dangling edge %s -> %s", edge.source, edge.target)
            continue
        seen.add(edge.source)
        sources.append(node)

    return sources


def is_ready(record: SourceRecord) -> bool:
    return record.is_ready()


def filter_ready(records: list[SourceRecord]) -> list[SourceRecord]:
    return [record for record in records if is_ready(record)]


def assemble_context(ready_sources: list[SourceRecord]) -> list[ContextSource]:
    return [record.to_context_source() for record in ready_sources]


def build_context(graph: NodeGraph, target_node_id: str) -> list[ContextSource]:
    """Graph reader, readiness filter and assembler in one pass."""
    return assemble_context(filter_ready(get_upstream_sources(graph, target_node_id)))
