"""
Language model provider clients.

Each client turns prompt turns into one reply string and reports every
failure as ProviderError. Nothing here retries: a failed reply is surfaced to
the caller, who decides whether to resend.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Sequence

import httpx

import core.config as config
from core.errors import ProviderError
from core.services.context_assembler import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    PromptTurn,
)

logger = config.logger


class ProviderCircuitBreaker:
    """
    Stops calling a model provider after repeated failures.

    closed: calls go through. After ``failure_threshold`` consecutive failures
    the circuit opens and calls are refused until the cooldown ends. Then one
    trial call is let through (half_open); its outcome closes the circuit or
    re-opens it for another cooldown.
    """

    def __init__(
        self,
        failure_threshold: int,
        cooldown_seconds: int,
        provider: str = "model",
        clock: Callable[[], float] = time.time,
    ):
        self.provider = provider
        self._failure_threshold = max(1, failure_threshold)
        self._cooldown_seconds = max(1, cooldown_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._times_opened = 0
        self._last_error: Optional[str] = None
        self._last_failure_ts: Optional[float] = None
        self._last_success_ts: Optional[float] = None

    def _state(self, now: float) -> str:
        if self._opened_at is None:
            return "closed"
        if now < self._opened_at + self._cooldown_seconds:
            return "open"
        return "half_open"

    def allow_call(self) -> bool:
        with self._lock:
            state = self._state(self._clock())
            if state == "closed":
                return True
            if state == "half_open" and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._opened_at is not None:
                logger.info("model_provider_circuit_closed", extra={"provider": self.provider})
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False
            self._last_success_ts = self._clock()

    def record_failure(self, error: str) -> None:
        with self._lock:
            now = self._clock()
            self._consecutive_failures += 1
            self._last_error = error
            self._last_failure_ts = now
            reopen = self._trial_in_flight or (
                self._opened_at is None and self._consecutive_failures >= self._failure_threshold
            )
            self._trial_in_flight = False
            if reopen:
                self._opened_at = now
                self._times_opened += 1
                logger.warning(
                    "model_provider_circuit_opened",
                    extra={
                        "provider": self.provider,
                        "consecutive_failures": self._consecutive_failures,
                        "cooldown_seconds": self._cooldown_seconds,
                    },
                )

    def status(self) -> dict:
        with self._lock:
            now = self._clock()
            state = self._state(now)
            reopens_at = self._opened_at + self._cooldown_seconds if self._opened_at is not None else None
            return {
                "provider": self.provider,
                "state": state,
                "open": state == "open",
                "consecutive_failures": self._consecutive_failures,
                "failure_threshold": self._failure_threshold,
                "times_opened": self._times_opened,
                "retry_after_seconds": max(0, int(reopens_at - now)) if state == "open" else None,
                "last_error": self._last_error,
                "last_failure_epoch": int(self._last_failure_ts) if self._last_failure_ts else None,
                "last_success_epoch": int(self._last_success_ts) if self._last_success_ts else None,
            }


class ModelClient:
    """Base client: circuit breaker bookkeeping around a provider call."""

    provider = "base"

    def __init__(self, model: str, circuit_breaker: Optional[ProviderCircuitBreaker] = None):
        self.model = model
        self.circuit_breaker = circuit_breaker or ProviderCircuitBreaker(
            failure_threshold=config.LLM_FAILURE_THRESHOLD,
            cooldown_seconds=config.LLM_COOLDOWN_SECONDS,
            provider=self.provider,
        )

    def generate_reply(self, turns: Sequence[PromptTurn]) -> str:
        if not self.circuit_breaker.allow_call():
            logger.warning("model_provider_circuit_open", extra={"provider": self.provider})
            raise ProviderError(f"{self.provider} provider unavailable (circuit open)")
        try:
            reply = self._generate(turns)
        except ProviderError as exc:
            self.circuit_breaker.record_failure(str(exc))
            raise
        except Exception as exc:
            # Unparseable provider output surfaces here; it counts as a provider failure
            self.circuit_breaker.record_failure(f"{type(exc).__name__}: {exc}")
            raise ProviderError(f"{self.provider} reply could not be read") from exc
        self.circuit_breaker.record_success()
        return reply

    def _generate(self, turns: Sequence[PromptTurn]) -> str:
        raise NotImplementedError

    def status(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.model,
            "circuit_breaker": self.circuit_breaker.status(),
        }

    def close(self) -> None:
        return None


class _HTTPModelClient(ModelClient):
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float = 60.0,
        http_client: Optional[httpx.Client] = None,
        circuit_breaker: Optional[ProviderCircuitBreaker] = None,
    ):
        super().__init__(model, circuit_breaker=circuit_breaker)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
        )

    def _headers(self) -> dict:
        return {"Content-Type": "application/json"}

    def _post(self, url: str, payload: dict) -> dict:
        try:
            response = self._http.post(url, json=payload, headers=self._headers())
        except httpx.RequestError as exc:
            raise ProviderError(f"{self.provider} request error: {type(exc).__name__}") from exc
        if response.status_code >= 400:
            raise ProviderError(f"{self.provider} returned status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.provider} returned invalid JSON") from exc

    def close(self) -> None:
        self._http.close()
        logger.info("HTTP client closed", extra={"provider": self.provider})


class OpenAIChatClient(_HTTPModelClient):
    """OpenAI-compatible /chat/completions endpoint."""

    provider = "openai"

    def _headers(self) -> dict:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _generate(self, turns: Sequence[PromptTurn]) -> str:
        data = self._post(
            f"{self.base_url}/chat/completions",
            {"model": self.model, "messages": [turn.as_dict() for turn in turns]},
        )
        try:
            content = data["choices"][0]["message"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderError("openai returned a malformed completion") from exc
        return content or ""


class GeminiClient(_HTTPModelClient):
    """Google Generative Language generateContent endpoint."""

    provider = "gemini"

    _ROLES = {ROLE_USER: "user", ROLE_ASSISTANT: "model"}

    def _headers(self) -> dict:
        headers = super()._headers()
        headers["x-goog-api-key"] = self.api_key
        return headers

    def _payload(self, turns: Sequence[PromptTurn]) -> dict:
        system_parts = [{"text": turn.content} for turn in turns if turn.role == ROLE_SYSTEM]
        contents = [
            {"role": self._ROLES[turn.role], "parts": [{"text": turn.content}]}
            for turn in turns
            if turn.role != ROLE_SYSTEM
        ]
        payload: dict = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        return payload

    def _generate(self, turns: Sequence[PromptTurn]) -> str:
        data = self._post(
            f"{self.base_url}/models/{self.model}:generateContent",
            self._payload(turns),
        )
        try:
            candidate = data["candidates"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("gemini returned no candidates") from exc
        if not isinstance(candidate, dict):
            raise ProviderError("gemini returned a malformed candidate")
        parts = (candidate.get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class EchoModelClient(ModelClient):
    """Offline provider for local development: repeats the latest user turn."""

    provider = "echo"

    def _generate(self, turns: Sequence[PromptTurn]) -> str:
        for turn in reversed(turns):
            if turn.role == ROLE_USER:
                return f"You said: {turn.content}"
        return ""


def build_model_client() -> ModelClient:
    """Build the process-wide client from configuration."""
    breaker = ProviderCircuitBreaker(
        failure_threshold=config.LLM_FAILURE_THRESHOLD,
        cooldown_seconds=config.LLM_COOLDOWN_SECONDS,
        provider=config.LLM_PROVIDER,
    )
    if config.LLM_PROVIDER == "echo":
        client: ModelClient = EchoModelClient(config.LLM_MODEL, circuit_breaker=breaker)
    elif config.LLM_PROVIDER == "gemini":
        client = GeminiClient(
            api_key=config.LLM_API_KEY,
            model=config.LLM_MODEL,
            base_url=config.LLM_BASE_URL,
            timeout_seconds=config.LLM_TIMEOUT_SECONDS,
            circuit_breaker=breaker,
        )
    elif config.LLM_PROVIDER == "openai":
        client = OpenAIChatClient(
            api_key=config.LLM_API_KEY,
            model=config.LLM_MODEL,
            base_url=config.LLM_BASE_URL,
            timeout_seconds=config.LLM_TIMEOUT_SECONDS,
            circuit_breaker=breaker,
        )
    else:
        raise RuntimeError(f"Unknown LLM_PROVIDER: {config.LLM_PROVIDER}")
    logger.info("Model client initialized", extra={"provider": client.provider, "model": client.model})
    return client
