"""
Text-generation client (DeepSeek chat-completions over HTTP)
===========================================================
Thin wrapper around one POST endpoint.  Every call carries an explicit
timeout; failures are retried per an explicit RetryPolicy whose sleep
function can be swapped out so tests never wait on a real timer.

Configuration (environment):
  DEEPSEEK_API_KEY   bearer token (required for real calls)
  DEEPSEEK_API_URL   chat-completions endpoint
  DEEPSEEK_MODEL     model name
  LLM_TIMEOUT        seconds per request
"""
from __future__ import annotations

import logging
import os
import re
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import requests

log = logging.getLogger(__name__)

DEEPSEEK_API_URL = os.environ.get("DEEPSEEK_API_URL", "https://api.deepseek.com/v1/chat/completions")
DEEPSEEK_MODEL = os.environ.get("DEEPSEEK_MODEL", "deepseek-chat")
LLM_TIMEOUT = float(os.environ.get("LLM_TIMEOUT", "30"))

_FENCE = re.compile(r"^\s*```(?:json)?\s*\n?|\n?\s*```\s*$", re.IGNORECASE)


class LLMError(RuntimeError):
    """Network, HTTP or payload failure talking to the text-generation service."""


def strip_code_fences(text: str) -> str:
    """Remove a ```json … ``` (or bare ``` … ```) wrapper around a payload."""
    return _FENCE.sub("", text).strip()


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class RetryPolicy:
    """
    Bounded retry: at most ``max_attempts`` calls, waiting ``delay`` seconds
    before the first retry and multiplying by ``backoff`` after each one.
    """
    max_attempts: int = 4
    delay: float = 2.0
    backoff: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delays(self) -> Iterator[float]:
        """Wait before each retry (``max_attempts - 1`` values)."""
        wait = self.delay
        for _ in range(max(self.max_attempts - 1, 0)):
            yield wait
            wait *= self.backoff

    def run(self, fn: Callable[[], Any], label: str = "call") -> Any:
        """Call *fn* until it succeeds or attempts run out; re-raise the last error."""
        waits = self.delays()
        attempt = 1
        while True:
            try:
                return fn()
            except (LLMError, requests.exceptions.RequestException) as exc:
                wait = next(waits, None)
                if wait is None:
                    raise
                log.warning("%s failed (attempt %d/%d): %s; retrying in %.1fs",
                            label, attempt, self.max_attempts, exc, wait)
                self.sleep(wait)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1)


# ---------------------------------------------------------------------------
# Chat client
# ---------------------------------------------------------------------------
class ChatClient:
    """
    POST a single user prompt, return the first choice's message content.

    Parameters
    ----------
    api_key : bearer token (defaults to $DEEPSEEK_API_KEY)
    url     : chat-completions endpoint
    model   : model name sent in the request body
    timeout : per-request timeout in seconds (a timeout is a failure)
    retry   : RetryPolicy applied around each completion
    session : requests.Session to reuse (one is created if omitted)
    """

    __slots__ = ("api_key", "url", "model", "timeout", "retry", "session")

    def __init__(
        self,
        api_key: str | None = None,
        url: str = DEEPSEEK_API_URL,
        model: str = DEEPSEEK_MODEL,
        timeout: float = LLM_TIMEOUT,
        retry: RetryPolicy | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("DEEPSEEK_API_KEY", "")
        self.url = url
        self.model = model
        self.timeout = timeout
        self.retry = retry if retry is not None else RetryPolicy()
        self.session = session if session is not None else requests.Session()

    def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = True,
    ) -> str:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        return self.retry.run(lambda: self._post(body), label="chat completion")

    def _post(self, body: dict[str, Any]) -> str:
        log.info("POST %s  model=%s  auth=%s", self.url, self.model,
                 "***REDACTED***" if self.api_key else "MISSING")
        t0 = time.time()
        try:
            resp = self.session.post(
                self.url,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise LLMError(f"request to {self.url} failed: {exc}") from exc
        log.info("response  status=%d  elapsed=%.0fms", resp.status_code, (time.time() - t0) * 1000)
        if not resp.ok:
            raise LLMError(f"API responded with status {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise LLMError(f"response body is not JSON: {exc}") from exc
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise LLMError("no content found in API response")
        return content
