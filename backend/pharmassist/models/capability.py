"""
Request / response envelopes for capability calls.

A ``CapabilityRequest`` is frozen once built. A ``CapabilityResponse`` always
has a non-empty reply and names the tier that produced it.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_HISTORY_LIMIT = 10


class CapabilityKind(str, Enum):
    CHAT = "chat"
    DOCUMENT_ANALYSIS = "document_analysis"
    VOICE_BILL = "voice_bill"
    INTERACTION_CHECK = "interaction_check"
    MARKET_LOOKUP = "market_lookup"
    COMPLIANCE_CHECK = "compliance_check"
    FORECAST = "forecast"


class Tier(str, Enum):
    """Fallback stages, in attempt order. Used as the provenance tag."""
    TIER1_PRIMARY = "tier1_primary"
    TIER2_TOOL_LLM = "tier2_tool_llm"
    TIER3_MODAL = "tier3_modal"
    TIER4_OFFLINE = "tier4_offline"
    FAILED = "failed"


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str


class CallerContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    shop_id: Optional[str] = None


class CapabilityRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CapabilityKind
    query: str = ""
    image: Optional[bytes] = None
    image_mime_type: str = "image/jpeg"
    audio: Optional[bytes] = None
    audio_filename: str = "voice.webm"
    history: List[ChatTurn] = Field(default_factory=list)
    context: CallerContext = Field(default_factory=CallerContext)

    @field_validator("history")
    @classmethod
    def bound_history(cls, value: List[ChatTurn]) -> List[ChatTurn]:
        return list(value[-DEFAULT_HISTORY_LIMIT:])

    def with_history_limit(self, limit: int) -> "CapabilityRequest":
        return self.model_copy(update={"history": list(self.history[-limit:]) if limit > 0 else []})


class NavigateToBilling(BaseModel):
    kind: Literal["navigate_to_billing"] = "navigate_to_billing"
    items: List[Dict[str, Any]] = Field(default_factory=list)


class OpenMessaging(BaseModel):
    kind: Literal["open_messaging"] = "open_messaging"
    message: str
    phone: Optional[str] = None


class AddToReorderList(BaseModel):
    kind: Literal["add_to_reorder_list"] = "add_to_reorder_list"
    item_name: str
    quantity: int = 1


ActionDirective = Annotated[
    Union[NavigateToBilling, OpenMessaging, AddToReorderList],
    Field(discriminator="kind"),
]


class CapabilityResponse(BaseModel):
    reply: str
    provenance: Tier
    payload: Optional[Dict[str, Any]] = None
    action: Optional[ActionDirective] = None
    warnings: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)

    @field_validator("reply")
    @classmethod
    def reply_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("reply must not be empty")
        return value

    @property
    def is_fallback(self) -> bool:
        return self.provenance == Tier.FAILED
