"""
Topic graph: authored prerequisite DAG plus encompassing lookup table.

Components:
- TopicGraph: validated, read-only graph queries
- load_topic_graph / load_topic_graph_from_db: content loaders
"""

from mastery_engine.graph.loader import (
    import_topic_graph,
    load_topic_graph,
    load_topic_graph_from_db,
    parse_topic_content,
)
from mastery_engine.graph.topic_graph import EdgeType, GraphEdge, TopicGraph, topic_sort_key

__all__ = [
    "TopicGraph",
    "EdgeType",
    "GraphEdge",
    "topic_sort_key",
    "load_topic_graph",
    "load_topic_graph_from_db",
    "import_topic_graph",
    "parse_topic_content",
]
