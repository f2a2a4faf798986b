import logging
from enum import Enum

import numpy as np

from graph import MAX_WEIGHT, KnowledgeGraph

"""
Learning-path planning over a KnowledgeGraph  (vectorised)
-----------------------------------------------------------
Two orderings, chosen per feature:

  • shortest_next_path    — Dijkstra from a start topic over inverted edge
                            weights (cost = 11 - weight, so the most relevant
                            edge is the shortest).  Returns the single path to
                            the nearest other topic: a "study this next" hint.
  • ranked_learning_path  — every topic touching a main topic, ranked by
                            summed edge weight.  Main topics first.  Backs the
                            learning-path timeline.

Both are deterministic for a fixed graph; ties are broken by node
insertion order.  Neither raises for a start topic that is not in the
graph; they return [] ("no path available").
"""

log = logging.getLogger(__name__)

MAIN_TOPIC_BONUS = 100.0


def edge_cost(weight: float) -> float:
    """Relevance 10 → cost 1, relevance 1 → cost 10."""
    return (MAX_WEIGHT + 1.0) - weight


# ---------------------------------------------------------------------------
# Variant A: Dijkstra
# ---------------------------------------------------------------------------
def shortest_paths(
    graph: KnowledgeGraph,
    start_id: str,
) -> tuple[list[str], np.ndarray, np.ndarray]:
    """
    Single-source shortest paths.

    Returns
    -------
    ids   : list[str]          node ids, dense index order (= insertion order)
    dist  : (K,) float64       distance from start (inf when unreachable)
    prev  : (K,) int64         predecessor dense index (-1 for none)
    """
    ids = graph.node_ids()
    K = len(ids)
    id_to_idx: dict[str, int] = {nid: i for i, nid in enumerate(ids)}

    dist = np.full(K, np.inf, dtype=np.float64)
    prev = np.full(K, -1, dtype=np.int64)
    visited = np.zeros(K, dtype=bool)
    if start_id not in id_to_idx:
        return ids, dist, prev

    # adjacency: dense index → [(neighbour, cost), ...]
    adjacency: list[list[tuple[int, float]]] = [[] for _ in range(K)]
    for e in graph.links:
        adjacency[id_to_idx[e.source]].append((id_to_idx[e.target], edge_cost(e.weight)))

    dist[id_to_idx[start_id]] = 0.0
    for _ in range(K):
        frontier = np.where(visited, np.inf, dist)
        u = int(np.argmin(frontier))          # first minimum → insertion-order tie-break
        if not np.isfinite(frontier[u]):
            break
        visited[u] = True
        for v, cost in adjacency[u]:
            alt = dist[u] + cost
            if alt < dist[v]:
                dist[v] = alt
                prev[v] = u

    return ids, dist, prev


def shortest_next_path(graph: KnowledgeGraph, start_id: str) -> list[str]:
    """
    Path from *start_id* to the nearest reachable other topic.

    [] when the start is not in the graph or nothing is reachable from it.
    """
    if not graph.has_node(start_id):
        log.warning("start topic %r not in graph; no path", start_id)
        return []

    ids, dist, prev = shortest_paths(graph, start_id)
    start_idx = ids.index(start_id)
    candidates = dist.copy()
    candidates[start_idx] = np.inf
    target = int(np.argmin(candidates)) if candidates.size else -1
    if target < 0 or not np.isfinite(candidates[target]):
        log.info("nothing reachable from %r", start_id)
        return []

    walk = [target]
    while prev[walk[-1]] != -1:
        walk.append(int(prev[walk[-1]]))
    return [ids[i] for i in reversed(walk)]


# ---------------------------------------------------------------------------
# Variant B: relevance ranking
# ---------------------------------------------------------------------------
def relevance_scores(graph: KnowledgeGraph, main_topic_ids: list[str]) -> dict[str, float]:
    """
    Score every main topic and every node directly linked to one:
    100 for a main topic + sum of incoming weights + sum of outgoing weights.
    """
    ids = graph.node_ids()
    K = len(ids)
    id_to_idx: dict[str, int] = {nid: i for i, nid in enumerate(ids)}
    mains = {m for m in main_topic_ids if m in id_to_idx}

    members = set(mains)
    for e in graph.links:
        if e.source in mains or e.target in mains:
            members.add(e.source)
            members.add(e.target)

    src = np.fromiter((id_to_idx[e.source] for e in graph.links), dtype=np.int64, count=graph.num_links)
    dst = np.fromiter((id_to_idx[e.target] for e in graph.links), dtype=np.int64, count=graph.num_links)
    w = np.fromiter((e.weight for e in graph.links), dtype=np.float64, count=graph.num_links)

    score = np.bincount(dst, weights=w, minlength=K) + np.bincount(src, weights=w, minlength=K)
    for m in mains:
        score[id_to_idx[m]] += MAIN_TOPIC_BONUS

    return {nid: float(score[i]) for i, nid in enumerate(ids) if nid in members}


def ranked_learning_path(graph: KnowledgeGraph, main_topic_ids: list[str]) -> list[str]:
    """Main topics in their given order, then related topics by descending score."""
    scores = relevance_scores(graph, main_topic_ids)
    mains = [m for m in dict.fromkeys(main_topic_ids) if m in scores]
    main_set = set(mains)

    rest = [nid for nid in graph.node_ids() if nid in scores and nid not in main_set]
    if not rest:
        return mains
    rest_scores = np.array([scores[nid] for nid in rest], dtype=np.float64)
    order = np.argsort(-rest_scores, kind="stable")
    return mains + [rest[i] for i in order]


# ---------------------------------------------------------------------------
# Planner facade
# ---------------------------------------------------------------------------
class PathStrategy(Enum):
    SHORTEST = "shortest"
    RANKED = "ranked"


class PathPlanner:
    """
    Pick one ordering per feature:
      PathStrategy.RANKED   — learning-path timeline (default)
      PathStrategy.SHORTEST — next-topic recommendation
    """

    __slots__ = ("strategy",)

    def __init__(self, strategy: PathStrategy = PathStrategy.RANKED) -> None:
        self.strategy = strategy

    def plan(
        self,
        graph: KnowledgeGraph,
        main_topic_ids: list[str],
        start_id: str | None = None,
    ) -> list[str]:
        """Ordered topic ids; [] on any problem.  SHORTEST starts at *start_id* or the first main topic."""
        try:
            if self.strategy is PathStrategy.SHORTEST:
                start = start_id if start_id is not None else (main_topic_ids[0] if main_topic_ids else "")
                return shortest_next_path(graph, start)
            return ranked_learning_path(graph, main_topic_ids)
        except Exception as exc:
            log.error("path planning (%s) failed: %s", self.strategy.value, exc)
            return []
