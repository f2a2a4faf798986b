import json
import logging
import math
from dataclasses import dataclass
from typing import Any

from graph import RelatedTopic, RelationType, clamp_weight, topic_slug
from llm import ChatClient, RetryPolicy, strip_code_fences
from scoring import RelationScorer

log = logging.getLogger(__name__)

# one retry on a transient failure, then fall back
_RETRY = RetryPolicy(max_attempts=2, delay=1.0)

_PROMPT = (
	'Lista {count} temas relacionados con "{topic}". '
	'Devuelve SOLO un objeto JSON válido con la estructura: '
	'{{"relatedTopics": ["tema1", "tema2"]}}'
)


# ---------------------------------------------------------------------------
# Response payload (tagged union)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BareArray:
	"""Names only; scores still have to be computed."""
	names: list[str]


@dataclass(frozen=True, slots=True)
class ScoredArray:
	"""(name, relevanceScore) pairs supplied by the service."""
	items: list[tuple[str, float]]


@dataclass(frozen=True, slots=True)
class Invalid:
	reason: str


Payload = BareArray | ScoredArray | Invalid


def parse_payload(data: Any) -> Payload:
	"""
	Classify a decoded response body.

	Accepted shapes:
	  ["a", "b"]
	  {"relatedTopics": ["a", "b"]}
	  {"relatedTopics": [{"name": "a", "relevanceScore": 8}, …]}
	"""
	if isinstance(data, list):
		items = data
	elif isinstance(data, dict) and isinstance(data.get("relatedTopics"), list):
		items = data["relatedTopics"]
	else:
		return Invalid("expected an array or an object with a 'relatedTopics' array")

	if not items:
		return Invalid("topic list is empty")

	if all(isinstance(i, str) for i in items):
		names = [i.strip() for i in items]
		if not all(names):
			return Invalid("blank topic name")
		return BareArray(names)

	if all(isinstance(i, dict) for i in items):
		scored: list[tuple[str, float]] = []
		for i, item in enumerate(items):
			name = item.get("name")
			score = item.get("relevanceScore")
			if not isinstance(name, str) or not name.strip():
				return Invalid(f"item {i} has no usable 'name'")
			if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
				return Invalid(f"item {i} has no numeric 'relevanceScore'")
			scored.append((name.strip(), float(score)))
		return ScoredArray(scored)

	return Invalid("topic entries must be all strings or all {name, relevanceScore} objects")


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------
def fallback_topics(topic_name: str) -> list[RelatedTopic]:
	"""The two placeholder topics returned whenever the service cannot be used."""
	basics = f"Conceptos básicos de {topic_name}"
	uses = f"Aplicaciones de {topic_name}"
	return [
		RelatedTopic(topic_slug(basics, 0), basics, RelationType.FUNDAMENTAL, 8.0),
		RelatedTopic(topic_slug(uses, 1), uses, RelationType.INDIRECT, 6.0),
	]


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------
class RelatedTopicsFetcher:
	"""
	Ask the text-generation service for topics related to a main topic.

	fetch() never raises: any network, HTTP, JSON or shape problem is
	logged and answered with fallback_topics().
	"""

	__slots__ = ("client", "scorer")

	def __init__(self, client: ChatClient | None = None, scorer: RelationScorer | None = None) -> None:
		self.client = client if client is not None else ChatClient(retry=_RETRY)
		self.scorer = scorer if scorer is not None else RelationScorer()

	def fetch(self, topic_name: str, count: int = 5) -> list[RelatedTopic]:
		content: str | None = None
		try:
			content = self.client.complete(
				_PROMPT.format(count=count, topic=topic_name),
				temperature=0.7,
				max_tokens=1000,
			)
			payload = parse_payload(json.loads(strip_code_fences(content)))
			if isinstance(payload, Invalid):
				log.error("related topics for %r: malformed response (%s)  raw=%r",
						  topic_name, payload.reason, content)
				return fallback_topics(topic_name)
			topics = self._to_related(payload, topic_name)
		except Exception as exc:
			log.error("related topics for %r failed: %s  raw=%r", topic_name, exc, content)
			return fallback_topics(topic_name)

		log.info("related topics for %r: %s", topic_name,
				 ", ".join(f"{t.name} ({t.weight})" for t in topics))
		return topics

	def _to_related(self, payload: BareArray | ScoredArray, topic_name: str) -> list[RelatedTopic]:
		if isinstance(payload, ScoredArray):
			result = []
			for i, (name, raw) in enumerate(payload.items):
				weight = clamp_weight(raw)
				result.append(RelatedTopic(topic_slug(name, i), name, RelationType.from_score(weight), weight))
			return result

		scores = self.scorer.score_unique(payload.names, topic_name)
		result = [
			RelatedTopic(topic_slug(name, i), name, RelationType.from_score(score), score)
			for i, (name, score) in enumerate(zip(payload.names, scores))
		]
		result.sort(key=lambda t: t.weight, reverse=True)
		return result


def fetch_related_topics(topic_name: str, count: int = 5) -> list[RelatedTopic]:
	"""One-shot helper with a default client."""
	return RelatedTopicsFetcher().fetch(topic_name, count)
