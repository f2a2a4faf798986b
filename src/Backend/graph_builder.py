"""
Knowledge-graph assembly for a user's selected main topics.

Pipeline per build() call:
  1. resolve topic ids → Topic via the store        (fan-out, bounded)
  2. one medium-difficulty node per resolved topic  (input order)
  3. related topics per main topic                  (fan-out, bounded)
  4. merge left-to-right: new related ids become nodes, every related
     topic becomes a main → related edge

Fan-out goes through a thread pool capped at ``max_workers`` so the
text-generation service is never hit by more than that many requests at
once.  Results are collected with ``Executor.map`` (input-ordered) and only
merged afterwards, so node/edge order is identical to a sequential run.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor

from graph import Difficulty, GraphEdge, GraphNode, KnowledgeGraph, RelatedTopic
from related_topics import RelatedTopicsFetcher
from topics import Topic, TopicStore

log = logging.getLogger(__name__)

RELATED_PER_TOPIC = 5
MAX_WORKERS = 4


class GraphBuilder:
    """Build a KnowledgeGraph; never raises, returns partial graphs on failure."""

    __slots__ = ("store", "fetcher", "related_count", "max_workers")

    def __init__(
        self,
        store: TopicStore,
        fetcher: RelatedTopicsFetcher | None = None,
        related_count: int = RELATED_PER_TOPIC,
        max_workers: int = MAX_WORKERS,
    ) -> None:
        self.store = store
        self.fetcher = fetcher if fetcher is not None else RelatedTopicsFetcher()
        self.related_count = related_count
        self.max_workers = max(1, max_workers)

    def build(self, user_id: str, main_topic_ids: list[str]) -> KnowledgeGraph:
        graph = KnowledgeGraph()
        if not main_topic_ids:
            return graph

        t0 = time.time()
        try:
            workers = min(self.max_workers, len(main_topic_ids))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                resolved = list(pool.map(lambda tid: self._resolve(user_id, tid), main_topic_ids))
                mains = [t for t in resolved if t is not None]

                # main topics are fixed at medium until difficulty is derived from quiz history
                for topic in mains:
                    graph.add_node(GraphNode(topic.id, topic.name, Difficulty.MEDIUM))

                related = list(pool.map(self._related_for, mains))

            for topic, found in zip(mains, related):
                if found is None:
                    continue
                for rt in found:
                    graph.add_node(GraphNode(rt.id, rt.name, rt.relation_type.difficulty))
                    graph.add_link(GraphEdge(topic.id, rt.id, rt.weight, rt.relation_type))
        except Exception as exc:
            log.error("graph build for user %r aborted: %s", user_id, exc)

        log.info("graph build  user=%r  main=%d  nodes=%d  links=%d  elapsed=%.2fs",
                 user_id, len(main_topic_ids), graph.num_nodes, graph.num_links, time.time() - t0)
        return graph

    def _resolve(self, user_id: str, topic_id: str) -> Topic | None:
        try:
            topic = self.store.get_topic_details(user_id, topic_id)
        except Exception as exc:
            log.error("loading topic %r for user %r failed: %s", topic_id, user_id, exc)
            return None
        if topic is None:
            log.warning("topic %r not found for user %r; skipping", topic_id, user_id)
        return topic

    def _related_for(self, topic: Topic) -> list[RelatedTopic] | None:
        try:
            return self.fetcher.fetch(topic.name, self.related_count)
        except Exception as exc:
            log.error("related topics for %r (%s) failed: %s", topic.name, topic.id, exc)
            return None


def build_knowledge_graph(
    store: TopicStore,
    user_id: str,
    main_topic_ids: list[str],
    fetcher: RelatedTopicsFetcher | None = None,
) -> KnowledgeGraph:
    return GraphBuilder(store, fetcher).build(user_id, main_topic_ids)
