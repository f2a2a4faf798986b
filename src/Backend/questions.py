"""
Trivia question generation
==========================
Asks the text-generation service for multiple-choice questions about a
topic, validates the returned structure and caches results per
(topic, count, difficulty) for a fixed window.
"""
from __future__ import annotations

import json
import logging
import re
import threading
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from llm import ChatClient, strip_code_fences

log = logging.getLogger(__name__)

MIN_COUNT = 1
MAX_COUNT = 20
DIFFICULTIES = ("easy", "medium", "hard", "mixed")

CACHE_TTL = 30 * 60       # seconds
CACHE_MAX_ENTRIES = 200

_QUESTIONS_START = re.compile(r'\{\s*"questions"\s*:')

_PROMPT = """Genera exactamente {count} preguntas tipo trivia sobre "{topic}". {difficulty_line}Cada pregunta debe tener:
- Texto claro y conciso
- 4 opciones (1 correcta y 3 incorrectas)
- Explicación breve de la respuesta correcta
- Dificultad (easy, medium o hard)
- Formato JSON válido como:
{{
  "questions": [
    {{
      "text": "pregunta",
      "options": ["op1", "op2", "op3", "op4"],
      "correctAnswer": "op1",
      "explanation": "explicación breve",
      "difficulty": "nivel de dificultad"
    }}
  ]
}}
Asegúrate que:
1. Todas las preguntas sean sobre {topic}
2. El JSON sea válido y esté bien formado
3. No incluyas texto adicional fuera del JSON"""


class QuestionRequestError(ValueError):
    """Bad topic / count / difficulty in a generation request."""


class InvalidQuestionsError(ValueError):
    """The service answered, but not with usable questions."""


@dataclass(slots=True)
class Question:
    text: str
    options: list[str]
    correct_answer: str
    explanation: str = ""
    difficulty: str = "mixed"
    topic_id: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id":            self.id,
            "text":          self.text,
            "options":       list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation":   self.explanation,
            "difficulty":    self.difficulty,
            "topicId":       self.topic_id,
        }


# ---------------------------------------------------------------------------
# Validation / parsing
# ---------------------------------------------------------------------------
def validate_request(topic: Any, count: Any, difficulty: Any) -> None:
    if not isinstance(topic, str) or not topic.strip():
        raise QuestionRequestError("Topic is required and must be a non-empty string")
    if isinstance(count, bool) or not isinstance(count, int) or not MIN_COUNT <= count <= MAX_COUNT:
        raise QuestionRequestError(f"Count must be a number between {MIN_COUNT} and {MAX_COUNT}")
    if difficulty not in DIFFICULTIES:
        raise QuestionRequestError(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")


def parse_questions(content: str, difficulty: str = "mixed") -> list[Question]:
    """Decode ``{"questions": [...]}`` (possibly wrapped in prose or fences)."""
    text = strip_code_fences(content)
    match = _QUESTIONS_START.search(text)
    if match:
        text = text[match.start():]
    try:
        data, _ = json.JSONDecoder().raw_decode(text)
    except json.JSONDecodeError as exc:
        raise InvalidQuestionsError(f"Invalid JSON in response: {exc}") from exc

    items = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise InvalidQuestionsError("Invalid response structure - missing questions array")

    questions: list[Question] = []
    for i, q in enumerate(items):
        if not isinstance(q, dict) or not all(k in q for k in ("text", "options", "correctAnswer")):
            raise InvalidQuestionsError(f"Invalid question structure at index {i}")
        options = q["options"]
        if not isinstance(options, list) or q["correctAnswer"] not in options:
            raise InvalidQuestionsError(f"Invalid question at index {i}: correct answer not in options")
        questions.append(Question(
            text=str(q["text"]),
            options=[str(o) for o in options],
            correct_answer=str(q["correctAnswer"]),
            explanation=q.get("explanation") or "",
            difficulty=q.get("difficulty") or difficulty,
        ))

    if difficulty != "mixed":
        questions = [q for q in questions if q.difficulty == difficulty]
    if not questions:
        raise InvalidQuestionsError("Invalid result - no valid questions generated after filtering")
    return questions


# ---------------------------------------------------------------------------
# Expiring cache
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class CacheEntry:
    value: list[Question]
    inserted_at: float

    def is_expired(self, now: float, ttl: float) -> bool:
        return now - self.inserted_at >= ttl


class QuestionCache:
    """Bounded (key → questions) map; expiry is checked on every read."""

    __slots__ = ("ttl", "max_entries", "_clock", "_entries", "_lock")

    def __init__(
        self,
        ttl: float = CACHE_TTL,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key(topic: str, count: int, difficulty: str) -> str:
        return f"{topic.strip().lower()}|{count}|{difficulty}"

    def get(self, key: str) -> list[Question] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock(), self.ttl):
                del self._entries[key]
                return None
            return list(entry.value)

    def put(self, key: str, value: list[Question]) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(list(value), self._clock())
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------
class QuestionGenerator:
    __slots__ = ("client", "cache")

    def __init__(self, client: ChatClient | None = None, cache: QuestionCache | None = None) -> None:
        self.client = client if client is not None else ChatClient()
        self.cache = cache if cache is not None else QuestionCache()

    def generate(
        self,
        topic: str,
        count: int,
        difficulty: str = "mixed",
        topic_id: str | None = None,
    ) -> list[Question]:
        """
        Raises QuestionRequestError for bad arguments, InvalidQuestionsError
        for an unusable answer, LLMError when the service cannot be reached.
        """
        validate_request(topic, count, difficulty)
        key = QuestionCache.key(topic, count, difficulty)
        cached = self.cache.get(key)
        if cached is not None:
            log.info("questions  topic=%r  count=%d  difficulty=%s  (cached)", topic, count, difficulty)
            return [replace(q, topic_id=topic_id) for q in cached]

        difficulty_line = (
            f"Las preguntas deben ser de dificultad {difficulty}. " if difficulty != "mixed" else ""
        )
        content = self.client.complete(
            _PROMPT.format(count=count, topic=topic, difficulty_line=difficulty_line),
            temperature=0.8 if difficulty == "hard" else 0.7,
            max_tokens=3000,
        )
        questions = parse_questions(content, difficulty)[:count]
        for q in questions:
            q.topic_id = topic_id
        self.cache.put(key, questions)
        log.info("questions  topic=%r  count=%d  difficulty=%s  generated=%d",
                 topic, count, difficulty, len(questions))
        return questions
