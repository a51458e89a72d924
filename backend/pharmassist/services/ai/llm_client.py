"""
Async client for the hosted completion and transcription API.

Design constraints:
- No vendor SDKs; plain httpx against an OpenAI-compatible API (Groq by default)
- The model is a control plane: it routes, extracts and phrases, while stock
  numbers and safety decisions come from deterministic code
- Returns raw text; structure is recovered by the response normalizer

Environment configuration (see ``Settings``):
- LLM_API_BASE, LLM_API_KEY, LLM_MODEL, LLM_TIMEOUT_SECONDS, SPEECH_MODEL
"""
from typing import Any, Dict, List, Optional

import httpx

from pharmassist.core.circuit_breaker import CircuitBreaker
from pharmassist.core.config import get_settings
from pharmassist.core.errors import NetworkUnavailable, ValidationError
from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import record_llm_tokens, record_upstream_error
from pharmassist.services.upstream import UpstreamClient

logger = get_logger(__name__)

Message = Dict[str, str]


class LLMClient(UpstreamClient):
    """Chat completions + Whisper transcription over one OpenAI-compatible host."""

    upstream = "llm"

    def __init__(
        self,
        api_base: str,
        api_key: Optional[str],
        model: str,
        speech_model: str = "whisper-large-v3",
        timeout_seconds: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(
            api_base,
            timeout_seconds=timeout_seconds,
            transport=transport,
            circuit_breaker=circuit_breaker,
        )
        self.api_key = api_key
        self.model = model
        self.speech_model = speech_model

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _require_key(self, operation: str) -> None:
        if not self.api_key:
            # No key configured: treat as unavailable and let the caller fall back.
            record_upstream_error(self.upstream, operation, "missing_api_key")
            raise NetworkUnavailable(self.upstream, "API key not configured")

    async def complete(
        self,
        operation: str,
        messages: List[Message],
        json_mode: bool = False,
        max_tokens: int = 1024,
        temperature: float = 0.1,
        model: Optional[str] = None,
    ) -> str:
        """
        Run one chat completion and return the assistant text.

        Args:
            operation: Logical caller name for metrics ("route", "synthesize", ...)
            messages: Ordered role-tagged messages
            json_mode: Ask the API for a JSON object (``response_format``)

        Raises:
            NetworkUnavailable / UpstreamError: transport or API failure
            ValidationError: the response had no message content
        """
        self._require_key(operation)

        payload: Dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = await self.request(operation, "POST", "/chat/completions", json=payload)
        data = response.json()

        usage = data.get("usage") or {}
        record_llm_tokens(
            operation=operation,
            model=payload["model"],
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValidationError("completion response has no message content", data) from exc
        if not content or not str(content).strip():
            raise ValidationError("completion response is empty", data)
        return str(content)

    async def transcribe(self, audio: bytes, filename: str = "voice.webm", language: Optional[str] = None) -> str:
        """
        Transcribe audio with the speech model.

        Raises:
            NetworkUnavailable / UpstreamError: transport or API failure
            ValidationError: empty transcript
        """
        self._require_key("transcribe")

        data: Dict[str, str] = {"model": self.speech_model, "response_format": "json"}
        if language:
            data["language"] = language
        response = await self.request(
            "transcribe",
            "POST",
            "/audio/transcriptions",
            data=data,
            files={"file": (filename, audio)},
        )
        text = (response.json() or {}).get("text", "")
        if not text or not text.strip():
            raise ValidationError("transcription is empty", text)
        return text.strip()


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Global completion client."""
    global _llm_client
    if _llm_client is None:
        settings = get_settings()
        _llm_client = LLMClient(
            api_base=settings.llm_api_base,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            speech_model=settings.speech_model,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    return _llm_client
