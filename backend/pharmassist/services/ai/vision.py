"""
Vision adapter: one multimodal call (prompt + inline image) to Gemini.

``analyze`` returns the model text; ``extract_document`` adds the
document-type prompt and validates the result into ``DocumentAnalysis``.
Empty or error answers raise, which the orchestrator treats as tier failure.
"""
import base64
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from pharmassist.core.circuit_breaker import CircuitBreaker
from pharmassist.core.config import get_settings
from pharmassist.core.errors import NetworkUnavailable, UpstreamError, ValidationError
from pharmassist.core.logging import get_logger
from pharmassist.models.documents import DocumentAnalysis, DocumentType
from pharmassist.services.ai.normalizer import normalize, unwrap
from pharmassist.services.ai.prompts import DOCUMENT_PROMPTS
from pharmassist.services.upstream import UpstreamClient

logger = get_logger(__name__)


class VisionAdapter(UpstreamClient):
    upstream = "vision"

    def __init__(
        self,
        api_base: str,
        api_key: Optional[str],
        model: str,
        timeout_seconds: float = 30.0,
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

    async def analyze(self, prompt: str, image: bytes, mime_type: str = "image/jpeg") -> str:
        """
        Send the prompt and image; return the model's text.

        Raises:
            NetworkUnavailable: no key, transport failure or open circuit
            UpstreamError: non-2xx or an error body
            ValidationError: no text in the answer
        """
        if not self.api_key:
            raise NetworkUnavailable(self.upstream, "API key not configured")
        if not image:
            raise ValidationError("image payload is empty")

        payload = {
            "contents": [{
                "parts": [
                    {"text": prompt},
                    {"inline_data": {
                        "mime_type": mime_type,
                        "data": base64.b64encode(image).decode("ascii"),
                    }},
                ],
            }],
            "generationConfig": {"temperature": 0.1},
        }
        response = await self.request(
            "analyze",
            "POST",
            f"/models/{self.model}:generateContent",
            params={"key": self.api_key},
            json=payload,
        )
        data: Dict[str, Any] = response.json()
        if data.get("error"):
            raise UpstreamError(response.status_code, data, upstream=self.upstream)

        text = _candidate_text(data)
        if not text:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise ValidationError(f"vision response has no text (blocked={block_reason})", data)
        return text

    async def extract_document(
        self,
        image: bytes,
        document_type: DocumentType,
        mime_type: str = "image/jpeg",
    ) -> DocumentAnalysis:
        """Run the document-type prompt and validate the extraction."""
        text = await self.analyze(DOCUMENT_PROMPTS[document_type], image, mime_type)
        payload = unwrap(normalize(text, fallback=None), expect=dict)
        try:
            analysis = DocumentAnalysis.model_validate({**payload, "document_type": document_type})
        except PydanticValidationError as exc:
            raise ValidationError(f"document extraction does not match schema: {exc}", payload) from exc

        logger.info(
            "vision_document_extracted",
            document_type=document_type.value,
            items=len(analysis.items),
            results=len(analysis.results),
        )
        return analysis


def _candidate_text(data: Dict[str, Any]) -> str:
    for candidate in data.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if text.strip():
            return text.strip()
    return ""


_vision_adapter: Optional[VisionAdapter] = None


def get_vision_adapter() -> VisionAdapter:
    global _vision_adapter
    if _vision_adapter is None:
        settings = get_settings()
        _vision_adapter = VisionAdapter(
            api_base=settings.vision_api_base,
            api_key=settings.vision_api_key,
            model=settings.vision_model,
            timeout_seconds=settings.vision_timeout_seconds,
        )
    return _vision_adapter
