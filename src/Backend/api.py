"""
Benkychan — Flask REST API  (knowledge graph + learning paths + trivia)
========================================================================
Exposes topic storage, related-topic discovery, knowledge-graph building,
path planning and question generation as JSON endpoints for the web UI.

Endpoints
---------
GET  /api/health                — Health check
GET  /api/topics/<user_id>      — List a user's topics
POST /api/topics                — Register a topic
POST /api/related-topics        — Related topics for one topic (never fails)
POST /api/knowledge-graph       — Build the graph for selected main topics
POST /api/learning-path         — Graph + ranked learning-path timeline
POST /api/next-topic            — Shortest path to the nearest next topic
POST /api/generate-questions    — Trivia questions for a topic
"""
from __future__ import annotations

import logging
import time
import traceback
from typing import Any

from flask import Flask, jsonify, request
from flask_cors import CORS

# ── Backend imports ─────────────────────────────────────────────────
from graph import KnowledgeGraph
from graph_builder import GraphBuilder
from llm import ChatClient, LLMError
from path_planner import PathPlanner, PathStrategy, relevance_scores
from questions import InvalidQuestionsError, QuestionGenerator, QuestionRequestError
from related_topics import RelatedTopicsFetcher
from topics import InMemoryTopicStore, TopicStore

# ── App setup ───────────────────────────────────────────────────────
app = Flask(__name__)
CORS(app)  # allow requests from the Next.js dev server

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(message)s")
log = logging.getLogger(__name__)

# Collaborators (swap with configure() for tests or another backend)
_store: TopicStore = InMemoryTopicStore()
_fetcher = RelatedTopicsFetcher()
_questions = QuestionGenerator()
_timeline_planner = PathPlanner(PathStrategy.RANKED)
_next_planner = PathPlanner(PathStrategy.SHORTEST)


def configure(
    store: TopicStore | None = None,
    client: ChatClient | None = None,
    fetcher: RelatedTopicsFetcher | None = None,
    questions: QuestionGenerator | None = None,
) -> None:
    """Replace the module-level collaborators."""
    global _store, _fetcher, _questions
    if store is not None:
        _store = store
    if fetcher is not None:
        _fetcher = fetcher
    elif client is not None:
        _fetcher = RelatedTopicsFetcher(client)
    if questions is not None:
        _questions = questions
    elif client is not None:
        _questions = QuestionGenerator(client)


# ═══════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════
def _selection(body: dict[str, Any]) -> tuple[str, list[str]] | None:
    """(userId, topicIds) from a request body, or None when either is missing."""
    user_id = (body.get("userId") or "").strip()
    topic_ids = body.get("topicIds")
    if isinstance(topic_ids, str):
        topic_ids = [t for t in topic_ids.split(",") if t]
    if not user_id or not isinstance(topic_ids, list):
        return None
    return user_id, [str(t) for t in topic_ids]


def _build(user_id: str, topic_ids: list[str]) -> tuple[KnowledgeGraph, float]:
    t0 = time.time()
    graph = GraphBuilder(_store, _fetcher).build(user_id, topic_ids)
    return graph, time.time() - t0


def _timeline_steps(graph: KnowledgeGraph, user_id: str, order: list[str], main_ids: list[str]) -> list[dict[str, Any]]:
    """Per-step context for the learning-path timeline."""
    scores = relevance_scores(graph, main_ids)
    main_set = set(main_ids)
    steps = []
    for idx, nid in enumerate(order):
        node = graph.get_node(nid)
        step: dict[str, Any] = {
            "step":       idx + 1,
            "topicId":    nid,
            "name":       node.name,
            "difficulty": node.difficulty.value,
            "isMain":     nid in main_set,
            "score":      round(scores.get(nid, 0.0), 2),
            "relatedTo":  [graph.get_node(e.source).name for e in graph.incoming(nid)],
        }
        if nid in main_set:
            topic = _store.get_topic_details(user_id, nid)
            step["progress"] = topic.progress() if topic is not None else 0
        steps.append(step)
    return steps


# ═══════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════
@app.route("/api/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@app.route("/api/topics/<user_id>", methods=["GET"])
def list_topics(user_id: str):
    if not hasattr(_store, "get_user_topics"):
        return jsonify({"error": "topic listing not supported by this store"}), 501
    return jsonify({"topics": [t.to_dict() for t in _store.get_user_topics(user_id)]})


@app.route("/api/topics", methods=["POST"])
def add_topic():
    """
    Request JSON:  { "userId": "u1", "name": "Historia", "description": "..." }
    Response JSON: { "topic": {...} }
    """
    body = request.get_json(silent=True) or {}
    user_id = (body.get("userId") or "").strip()
    name = (body.get("name") or "").strip()
    if not user_id or not name:
        return jsonify({"error": "missing 'userId' and/or 'name'"}), 400
    if not hasattr(_store, "add_topic"):
        return jsonify({"error": "topic creation not supported by this store"}), 501

    topic = _store.add_topic(user_id, name, body.get("description") or "")
    log.info("topic added  user=%r  id=%s  name=%r", user_id, topic.id, topic.name)
    return jsonify({"topic": topic.to_dict()}), 201


@app.route("/api/related-topics", methods=["POST"])
def related_topics():
    """
    Request JSON:  { "topic": "Historia", "count": 5 }
    Response JSON: { "relatedTopics": [ {id, name, relationType, weight}, ... ] }
    """
    body = request.get_json(silent=True) or {}
    topic = (body.get("topic") or "").strip()
    if not topic:
        return jsonify({"error": "Topic is required"}), 400
    count = body.get("count", 5)
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        return jsonify({"error": "count must be a positive integer"}), 400

    t0 = time.time()
    found = _fetcher.fetch(topic, count)
    log.info("related-topics  topic=%r  count=%d  found=%d  elapsed=%.2fs",
             topic, count, len(found), time.time() - t0)
    return jsonify({"relatedTopics": [t.to_dict() for t in found]})


@app.route("/api/knowledge-graph", methods=["POST"])
def knowledge_graph():
    """
    Request JSON:  { "userId": "u1", "topicIds": ["t1", "t2"] }
    Response JSON: { "nodes": [...], "links": [...], "elapsed": 1.23 }
    """
    selection = _selection(request.get_json(silent=True) or {})
    if selection is None:
        return jsonify({"error": "missing 'userId' and/or 'topicIds'"}), 400
    user_id, topic_ids = selection

    graph, elapsed = _build(user_id, topic_ids)
    return jsonify({**graph.to_dict(), "elapsed": round(elapsed, 2)})


@app.route("/api/learning-path", methods=["POST"])
def learning_path():
    """
    Graph plus the ranked learning-path timeline.

    Request JSON:  { "userId": "u1", "topicIds": ["t1", "t2"] }
    Response JSON: { "nodes": [...], "links": [...], "path": [...], "steps": [...] }
    """
    selection = _selection(request.get_json(silent=True) or {})
    if selection is None:
        return jsonify({"error": "missing 'userId' and/or 'topicIds'"}), 400
    user_id, topic_ids = selection

    try:
        graph, t_graph = _build(user_id, topic_ids)
        t1 = time.time()
        order = _timeline_planner.plan(graph, topic_ids)
        steps = _timeline_steps(graph, user_id, order, topic_ids)
        t_path = time.time() - t1
        log.info("learning-path  user=%r  topics=%d  nodes=%d  steps=%d  (graph=%.2fs  path=%.1fms)",
                 user_id, len(topic_ids), graph.num_nodes, len(order), t_graph, t_path * 1000)
        return jsonify({
            **graph.to_dict(),
            "path":  order,
            "steps": steps,
            "timing": {
                "graph_s": round(t_graph, 3),
                "path_ms": round(t_path * 1000, 2),
            },
        })
    except Exception as exc:
        log.error("learning-path failed: %s\n%s", exc, traceback.format_exc())
        return jsonify({"error": str(exc)}), 500


@app.route("/api/next-topic", methods=["POST"])
def next_topic():
    """
    Request JSON:  { "userId": "u1", "topicIds": ["t1"], "startId": "t1" }
    Response JSON: { "path": [ {"id": "t1", "name": "..."}, ... ] }   (empty: no recommendation)
    """
    body = request.get_json(silent=True) or {}
    selection = _selection(body)
    if selection is None:
        return jsonify({"error": "missing 'userId' and/or 'topicIds'"}), 400
    user_id, topic_ids = selection
    start_id = body.get("startId") or (topic_ids[0] if topic_ids else None)

    graph, _ = _build(user_id, topic_ids)
    path = _next_planner.plan(graph, topic_ids, start_id)
    return jsonify({
        "path": [{"id": nid, "name": graph.get_node(nid).name} for nid in path],
    })


@app.route("/api/generate-questions", methods=["POST"])
def generate_questions():
    """
    Request JSON:  { "topic": "Historia", "count": 5, "difficulty": "mixed", "topicId": "t1" }
    Response JSON: [ {id, text, options, correctAnswer, explanation, difficulty, topicId}, ... ]
    """
    body = request.get_json(silent=True) or {}
    topic = body.get("topic")
    count = body.get("count")
    difficulty = body.get("difficulty", "mixed")
    log.info("generate-questions  topic=%r  count=%r  difficulty=%r", topic, count, difficulty)

    try:
        generated = _questions.generate(topic, count, difficulty, topic_id=body.get("topicId"))
    except QuestionRequestError as exc:
        return jsonify({"error": str(exc), "details": {"received": body}}), 400
    except InvalidQuestionsError as exc:
        log.error("generate-questions: %s", exc)
        return jsonify({"error": "Error generating questions", "details": str(exc)}), 422
    except LLMError as exc:
        log.error("generate-questions: upstream failure: %s", exc)
        return jsonify({"error": "Error generating questions"}), 500
    except Exception as exc:
        log.error("generate-questions failed: %s\n%s", exc, traceback.format_exc())
        return jsonify({"error": "Error generating questions"}), 500

    return jsonify([q.to_dict() for q in generated])


# ═══════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
