import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol


# ---------------------------------------------------------------------------
# Topic entities (owned by the persistence layer; the graph core only
# reads `id` and `name`)
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class QuizResult:
	"""Outcome of one completed quiz."""
	quiz_id: str
	date: datetime
	correct_answers: int
	total_questions: int
	score: float
	topics: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Topic:
	"""A study topic registered by a user."""
	id: str
	name: str
	description: str = ""
	question_count: int = 0
	correct_answers: list[bool] = field(default_factory=list)
	total_answers: list[bool] = field(default_factory=list)
	last_played: datetime | None = None
	last_score: float | None = None
	quiz_history: list[QuizResult] = field(default_factory=list)
	created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
	category: str | None = None

	def progress(self) -> int:
		"""Percent of answers that were correct (0 when never played)."""
		if not self.total_answers:
			return 0
		return round(len(self.correct_answers) / len(self.total_answers) * 100)

	def to_dict(self) -> dict:
		return {
			"id":            self.id,
			"name":          self.name,
			"description":   self.description,
			"questionCount": self.question_count,
			"lastPlayed":    self.last_played.isoformat() if self.last_played else None,
			"lastScore":     self.last_score,
			"progress":      self.progress(),
			"category":      self.category,
		}


# ---------------------------------------------------------------------------
# Persistence collaborator
# ---------------------------------------------------------------------------
class TopicStore(Protocol):
	def get_topic_details(self, user_id: str, topic_id: str) -> Topic | None:
		"""Return the topic, or None when it does not exist.  Never raises for a miss."""
		...


class InMemoryTopicStore:
	"""Thread-safe topic store keyed by (user_id, topic_id)."""

	__slots__ = ("_topics", "_lock")

	def __init__(self) -> None:
		self._topics: dict[str, dict[str, Topic]] = {}
		self._lock = threading.Lock()

	def add_topic(self, user_id: str, name: str, description: str = "", topic_id: str | None = None) -> Topic:
		name = name.strip()
		if not name:
			raise ValueError("topic name must be a non-empty string")
		topic = Topic(id=topic_id or uuid.uuid4().hex[:20], name=name, description=description)
		with self._lock:
			self._topics.setdefault(user_id, {})[topic.id] = topic
		return topic

	def get_user_topics(self, user_id: str) -> list[Topic]:
		with self._lock:
			return list(self._topics.get(user_id, {}).values())

	def get_topic_details(self, user_id: str, topic_id: str) -> Topic | None:
		with self._lock:
			return self._topics.get(user_id, {}).get(topic_id)

	def record_answers(self, user_id: str, topic_id: str, answers: list[bool]) -> Topic | None:
		"""Append a quiz's answers to the topic history.  None for an unknown topic."""
		with self._lock:
			topic = self._topics.get(user_id, {}).get(topic_id)
			if topic is None:
				return None
			topic.total_answers.extend(answers)
			topic.correct_answers.extend(a for a in answers if a)
			topic.last_played = datetime.now(timezone.utc)
			topic.last_score = (sum(answers) / len(answers)) if answers else 0.0
			return topic
