"""
Topic content loaders.

Content is authored as YAML:

    topics:
      - id: fractions
        name: Fractions
        domain: arithmetic
        difficulty: 2
        xp_value: 20
        prerequisites: [division]
        encompasses: [division]

and can be imported into the SQL content tables so a deployed service reads
the graph from the database instead of the file.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from mastery_engine.core.errors import ContentError
from mastery_engine.core.models import Topic
from mastery_engine.db.models import TopicEncompassingRow, TopicPrerequisiteRow, TopicRow
from mastery_engine.graph.topic_graph import TopicGraph


def _as_id_list(value: Any, topic_id: str, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    raise ContentError(f"Topic {topic_id}: '{field_name}' must be a list of topic ids")


def parse_topic_content(data: dict[str, Any]) -> TopicGraph:
    """
    Build a TopicGraph from parsed YAML/JSON content.

    Raises:
        ContentError: malformed entries or graph invariant violations
    """
    if not isinstance(data, dict) or not isinstance(data.get("topics"), list):
        raise ContentError("Content must be a mapping with a 'topics' list")

    topics: list[Topic] = []
    prerequisites: list[tuple[str, str]] = []
    encompassings: list[tuple[str, str]] = []

    for index, entry in enumerate(data["topics"]):
        if not isinstance(entry, dict) or "id" not in entry:
            raise ContentError(f"Topic entry #{index} is missing an 'id'")
        topic_id = str(entry["id"])
        try:
            topics.append(
                Topic(
                    id=topic_id,
                    name=str(entry.get("name", topic_id)),
                    domain=str(entry.get("domain", "general")),
                    difficulty=int(entry.get("difficulty", 1)),
                    xp_value=int(entry.get("xp_value", 10)),
                    description=entry.get("description"),
                )
            )
        except (TypeError, ValueError) as e:
            raise ContentError(f"Topic {topic_id}: {e}") from e

        for prereq_id in _as_id_list(entry.get("prerequisites"), topic_id, "prerequisites"):
            prerequisites.append((topic_id, prereq_id))
        for encompassed_id in _as_id_list(entry.get("encompasses"), topic_id, "encompasses"):
            encompassings.append((topic_id, encompassed_id))

    return TopicGraph(topics, prerequisites, encompassings)


def load_topic_graph(path: str | Path) -> TopicGraph:
    """Load and validate a topic graph from a YAML content file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Content file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ContentError(f"Invalid YAML in {path}: {e}") from e

    graph = parse_topic_content(data)
    logger.info(f"Loaded {len(graph)} topics from {path}")
    return graph


def load_topic_graph_from_db(session: Session) -> TopicGraph:
    """Build a TopicGraph from the SQL content tables."""
    topic_rows = session.scalars(select(TopicRow)).all()
    prereq_rows = session.scalars(
        select(TopicPrerequisiteRow).order_by(
            TopicPrerequisiteRow.topic_id, TopicPrerequisiteRow.position, TopicPrerequisiteRow.id
        )
    ).all()
    encompassing_rows = session.scalars(
        select(TopicEncompassingRow).order_by(TopicEncompassingRow.id)
    ).all()

    topics = [
        Topic(
            id=row.id,
            name=row.name,
            domain=row.domain,
            difficulty=row.difficulty,
            xp_value=row.xp_value,
            description=row.description,
        )
        for row in topic_rows
    ]
    graph = TopicGraph(
        topics,
        prerequisites=[(row.topic_id, row.prerequisite_id) for row in prereq_rows],
        encompassings=[(row.topic_id, row.encompassed_id) for row in encompassing_rows],
    )
    logger.info(f"Loaded {len(graph)} topics from database")
    return graph


def import_topic_graph(session: Session, graph: TopicGraph, replace: bool = True) -> dict[str, int]:
    """
    Write a validated graph into the SQL content tables.

    Args:
        session: Open session (caller commits)
        graph: Graph to persist
        replace: Remove existing edges first so the tables mirror the file

    Returns:
        Counts of topics, prerequisite edges and encompassing edges written
    """
    if replace:
        session.execute(delete(TopicEncompassingRow))
        session.execute(delete(TopicPrerequisiteRow))

    for topic in graph.topics():
        session.merge(
            TopicRow(
                id=topic.id,
                name=topic.name,
                description=topic.description,
                domain=topic.domain,
                difficulty=topic.difficulty,
                xp_value=topic.xp_value,
            )
        )
    session.flush()

    prereq_count = 0
    encompassing_count = 0
    for topic in graph.topics():
        for position, prereq in enumerate(graph.prerequisites(topic.id)):
            session.add(
                TopicPrerequisiteRow(topic_id=topic.id, prerequisite_id=prereq.id, position=position)
            )
            prereq_count += 1
        for encompassed in graph.encompassed(topic.id):
            session.add(TopicEncompassingRow(topic_id=topic.id, encompassed_id=encompassed.id))
            encompassing_count += 1

    session.flush()
    logger.info(
        f"Imported {len(graph)} topics, {prereq_count} prerequisites, "
        f"{encompassing_count} encompassings"
    )
    return {
        "topics": len(graph),
        "prerequisites": prereq_count,
        "encompassings": encompassing_count,
    }
