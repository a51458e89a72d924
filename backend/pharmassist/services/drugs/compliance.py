"""
Regulatory compliance checks (CDSCO banned FDCs, Schedule H1).

The static table is authoritative: a drug it lists as banned is reported
banned whatever any other source says. When nothing can verify a drug the
verdict is "unknown", never "safe".
"""
from typing import Optional

from pharmassist.core.errors import ValidationError
from pharmassist.core.logging import get_logger
from pharmassist.models.drugs import ComplianceVerdict, DrugEntity
from pharmassist.services.ai.llm_client import LLMClient, get_llm_client
from pharmassist.services.ai.normalizer import normalize, unwrap
from pharmassist.services.ai.prompts import COMPLIANCE_PROMPT
from pharmassist.services.drugs.aliases import BANNED_COMBINATIONS, SCHEDULE_H1

logger = get_logger(__name__)


def _names(entity: DrugEntity):
    return (entity.surface_name.lower(), entity.generic_name.lower())


def static_ban(entity: DrugEntity) -> Optional[str]:
    """Ban reason when the surface or canonical name matches the banned list."""
    for pattern, reason in BANNED_COMBINATIONS:
        if any(name == pattern or pattern in name for name in _names(entity)):
            return reason
    return None


def static_verdict(entity: DrugEntity) -> Optional[ComplianceVerdict]:
    """
    Verdict from the static tables only, or None when they say nothing.

    A match here is a verified verdict.
    """
    reason = static_ban(entity)
    if reason:
        return ComplianceVerdict(
            drug_name=entity.surface_name,
            is_banned=True,
            is_restricted=True,
            reason=reason,
            warning_level="HIGH",
            verified=True,
        )

    h1 = sorted(set(entity.generic_name.split(" + ")) & SCHEDULE_H1)
    if h1:
        return ComplianceVerdict(
            drug_name=entity.surface_name,
            is_restricted=True,
            is_h1=True,
            reason=f"Schedule H1 drug ({', '.join(h1)}): record the sale in the H1 register.",
            warning_level="MEDIUM",
            verified=True,
        )
    return None


def enforce_static_ban(entity: DrugEntity, verdict: ComplianceVerdict) -> ComplianceVerdict:
    """A statically banned drug stays banned whatever the verdict says."""
    reason = static_ban(entity)
    if reason and not verdict.is_banned:
        logger.warning("compliance_static_ban_override", drug=entity.surface_name)
        return verdict.model_copy(
            update={
                "is_banned": True,
                "is_restricted": True,
                "reason": reason,
                "warning_level": "HIGH",
                "verified": True,
            }
        )
    return verdict


def parse_verdict(payload: dict, drug_name: str) -> ComplianceVerdict:
    """
    Verdict from a tier payload; accepts ``is_banned`` or ``banned`` spellings.

    Raises:
        ValidationError: the payload does not state a ban status
    """
    if "is_banned" not in payload and "banned" not in payload:
        raise ValidationError("compliance payload has no ban status", payload)
    return ComplianceVerdict(
        drug_name=drug_name,
        is_banned=bool(payload.get("is_banned", payload.get("banned", False))),
        is_restricted=bool(payload.get("is_restricted", payload.get("restricted", False))),
        is_h1=bool(payload.get("is_h1", payload.get("h1", False))),
        reason=str(payload.get("reason") or payload.get("message") or "No regulatory issue reported."),
        warning_level=str(payload.get("warning_level") or "LOW").upper(),
        verified=True,
    )


class ComplianceChecker:
    def __init__(self, llm_client: Optional[LLMClient] = None):
        self._llm_client = llm_client

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    async def check(self, entity: DrugEntity) -> ComplianceVerdict:
        """
        Static tables first, then the model.

        Raises:
            NetworkUnavailable / UpstreamError / ValidationError when the
            static tables are silent and the model cannot answer
        """
        verdict = static_verdict(entity)
        if verdict is not None:
            return verdict

        text = await self.llm_client.complete(
            "compliance",
            [
                {
                    "role": "user",
                    "content": COMPLIANCE_PROMPT.format(
                        drug=f"{entity.surface_name} ({entity.generic_name})"
                    ),
                }
            ],
            json_mode=True,
            max_tokens=300,
        )
        payload = unwrap(normalize(text, fallback=None), expect=dict)
        return parse_verdict(payload, entity.surface_name)


_checker: Optional[ComplianceChecker] = None


def get_compliance_checker() -> ComplianceChecker:
    global _checker
    if _checker is None:
        _checker = ComplianceChecker()
    return _checker
