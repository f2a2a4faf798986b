import re
from enum import Enum
from dataclasses import dataclass
from typing import Any

"""
Benkychan Knowledge Graph  (built fresh for every learning-path request)
-----------------------------------------------------------------------
Plain-data graph handed to the UI layer:

  • nodes  — one GraphNode per unique topic id (main or related)
  • links  — one GraphEdge per (main topic → related topic) discovery

  • Node insertion is set-like (id index dict → O(1) duplicate checks)
  • Edges are never de-duplicated; the same pair may appear twice
  • Insertion order is preserved for deterministic rendering
"""


# ---------------------------------------------------------------------------
# Difficulty / relation labels
# ---------------------------------------------------------------------------
class Difficulty(Enum):
	EASY = "easy"
	MEDIUM = "medium"
	HARD = "hard"


# score at or above which a related topic counts as fundamental
FUNDAMENTAL_THRESHOLD = 7

MIN_WEIGHT = 1.0
MAX_WEIGHT = 10.0


class RelationType(Enum):
	FUNDAMENTAL = "fundamental"
	INDIRECT = "indirect"

	@classmethod
	def from_score(cls, score: float) -> "RelationType":
		return cls.FUNDAMENTAL if score >= FUNDAMENTAL_THRESHOLD else cls.INDIRECT

	@property
	def difficulty(self) -> Difficulty:
		"""Fundamental material is easy, indirect material is hard."""
		return Difficulty.EASY if self is RelationType.FUNDAMENTAL else Difficulty.HARD


def clamp_weight(value: float) -> float:
	return min(MAX_WEIGHT, max(MIN_WEIGHT, float(value)))


_WS = re.compile(r"\s+")


def topic_slug(name: str, index: int) -> str:
	"""Deterministic id for a related topic: 'Historia Antigua', 0 → 'historia-antigua-0'."""
	return f"{_WS.sub('-', name.strip().lower())}-{index}"


# ---------------------------------------------------------------------------
# Node / edge / related-topic records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GraphNode:
	id: str
	name: str
	difficulty: Difficulty = Difficulty.MEDIUM

	def to_dict(self) -> dict[str, str]:
		return {"id": self.id, "name": self.name, "difficulty": self.difficulty.value}


@dataclass(frozen=True, slots=True)
class GraphEdge:
	source: str
	target: str
	weight: float
	type: RelationType

	def to_dict(self) -> dict[str, Any]:
		return {
			"source": self.source,
			"target": self.target,
			"weight": self.weight,
			"type":   self.type.value,
		}


@dataclass(frozen=True, slots=True)
class RelatedTopic:
	"""A topic discovered as conceptually adjacent to a main topic."""
	id: str
	name: str
	relation_type: RelationType
	weight: float

	def to_dict(self) -> dict[str, Any]:
		return {
			"id":           self.id,
			"name":         self.name,
			"relationType": self.relation_type.value,
			"weight":       self.weight,
		}


# ---------------------------------------------------------------------------
# KnowledgeGraph
# ---------------------------------------------------------------------------
class KnowledgeGraph:
	"""
	Directed graph of topics.

	Edges go from main topic → related topic and carry the relevance
	score of the related topic as weight.  Every edge endpoint must be a
	registered node; register the node first, then link it.
	"""

	__slots__ = ("nodes", "links", "_index")

	def __init__(self) -> None:
		self.nodes: list[GraphNode] = []
		self.links: list[GraphEdge] = []
		self._index: dict[str, GraphNode] = {}     # id → node

	# ---- helpers -----------------------------------------------------------
	@property
	def num_nodes(self) -> int:
		return len(self.nodes)

	@property
	def num_links(self) -> int:
		return len(self.links)

	def has_node(self, node_id: str) -> bool:
		return node_id in self._index

	def get_node(self, node_id: str) -> GraphNode | None:
		return self._index.get(node_id)

	def node_ids(self) -> list[str]:
		return [n.id for n in self.nodes]

	# ---- node / edge insertion ---------------------------------------------
	def add_node(self, node: GraphNode) -> bool:
		"""Register a node.  Returns False (no-op) when the id is already known."""
		if node.id in self._index:
			return False
		self._index[node.id] = node
		self.nodes.append(node)
		return True

	def add_link(self, edge: GraphEdge) -> None:
		"""Append an edge.  Both endpoints must already be nodes."""
		if edge.source not in self._index or edge.target not in self._index:
			raise ValueError(
				f"edge {edge.source!r} → {edge.target!r} references an unknown node"
			)
		self.links.append(edge)

	def outgoing(self, node_id: str) -> list[GraphEdge]:
		return [e for e in self.links if e.source == node_id]

	def incoming(self, node_id: str) -> list[GraphEdge]:
		return [e for e in self.links if e.target == node_id]

	# ---- export -------------------------------------------------------------
	def to_dict(self) -> dict[str, list[dict[str, Any]]]:
		return {
			"nodes": [n.to_dict() for n in self.nodes],
			"links": [e.to_dict() for e in self.links],
		}

	def __repr__(self) -> str:
		return f"KnowledgeGraph(nodes={self.num_nodes}, links={self.num_links})"
