"""
Speech adapter: audio -> transcript -> (intent, items).

Transcription and intent classification are separate calls so that a
transcript obtained before a failed classification can still be handed to
the offline parser.
"""
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from pharmassist.core.errors import ValidationError
from pharmassist.core.logging import get_logger
from pharmassist.models.documents import VoiceBillResult, VoiceIntent, VoiceItem
from pharmassist.services.ai.llm_client import LLMClient, get_llm_client
from pharmassist.services.ai.normalizer import normalize, unwrap
from pharmassist.services.ai.prompts import VOICE_INTENT_PROMPT

logger = get_logger(__name__)


class SpeechAdapter:
    def __init__(self, llm_client: Optional[LLMClient] = None):
        self._llm_client = llm_client or get_llm_client()

    async def transcribe(self, audio: bytes, filename: str = "voice.webm") -> str:
        """
        Raises:
            ValidationError: empty audio or empty transcript
            NetworkUnavailable / UpstreamError: speech API failure
        """
        if not audio:
            raise ValidationError("audio payload is empty")
        transcript = await self._llm_client.transcribe(audio, filename=filename)
        logger.info("speech_transcribed", chars=len(transcript))
        return transcript

    async def classify_intent(self, transcript: str) -> VoiceBillResult:
        """
        Decide add-stock vs search-stock and pull out (name, quantity) pairs.

        Raises:
            ValidationError: model output missing or off-schema, or no items
        """
        if not transcript.strip():
            raise ValidationError("transcript is empty")

        text = await self._llm_client.complete(
            "voice_intent",
            [
                {"role": "system", "content": VOICE_INTENT_PROMPT},
                {"role": "user", "content": transcript},
            ],
            json_mode=True,
            max_tokens=512,
        )
        payload = unwrap(normalize(text, fallback=None), expect=dict)

        intent_value = str(payload.get("intent", "")).strip().lower()
        intent = VoiceIntent.ADD_STOCK if intent_value == VoiceIntent.ADD_STOCK.value else VoiceIntent.SEARCH_STOCK
        try:
            items = [
                VoiceItem.model_validate(item)
                for item in payload.get("items") or []
                if isinstance(item, dict) and str(item.get("name", "")).strip()
            ]
        except PydanticValidationError as exc:
            raise ValidationError(f"voice items do not match schema: {exc}", payload) from exc
        if not items:
            raise ValidationError("no items recognised in transcript", payload)

        return VoiceBillResult(transcription=transcript, intent=intent, items=items)

    async def process(self, audio: bytes, filename: str = "voice.webm") -> VoiceBillResult:
        transcript = await self.transcribe(audio, filename)
        return await self.classify_intent(transcript)
