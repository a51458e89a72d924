"""Pydantic value objects shared by the capability layer."""

from .capability import (
    ActionDirective,
    AddToReorderList,
    CallerContext,
    CapabilityKind,
    CapabilityRequest,
    CapabilityResponse,
    ChatTurn,
    NavigateToBilling,
    OpenMessaging,
    Tier,
)
from .documents import (
    DocumentAnalysis,
    DocumentType,
    ExtractedItem,
    ForecastEntry,
    LabResult,
    SalesRecord,
    VoiceBillResult,
    VoiceIntent,
    VoiceItem,
)
from .drugs import (
    ComplianceVerdict,
    DrugEntity,
    InteractionFinding,
    InventoryItem,
    MarginPolicy,
    Severity,
    SubstituteCandidate,
)

__all__ = [
    "ActionDirective",
    "AddToReorderList",
    "CallerContext",
    "CapabilityKind",
    "CapabilityRequest",
    "CapabilityResponse",
    "ChatTurn",
    "ComplianceVerdict",
    "DocumentAnalysis",
    "DocumentType",
    "DrugEntity",
    "ExtractedItem",
    "ForecastEntry",
    "InteractionFinding",
    "InventoryItem",
    "LabResult",
    "MarginPolicy",
    "NavigateToBilling",
    "OpenMessaging",
    "SalesRecord",
    "Severity",
    "SubstituteCandidate",
    "Tier",
    "VoiceBillResult",
    "VoiceIntent",
    "VoiceItem",
]
