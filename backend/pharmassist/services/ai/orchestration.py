"""
Fallback orchestrator for every AI capability.

Each capability is a fixed, ordered list of tier functions:

    TIER1_PRIMARY   workflow backend webhook
    TIER2_TOOL_LLM  tool router / completion model / drug engine
    TIER3_MODAL     vision or speech model
    TIER4_OFFLINE   local heuristics and static tables

A tier function returns a ``CapabilityResponse`` (usable), returns None
(unusable) or raises (failure). The first usable response wins. Tiers run
one after another, never concurrently, because later tiers may write to the
pharmacy store. When every tier fails the capability's canned response is
returned, so callers only ever see ``RateLimited``.
"""
import base64
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import (
    record_capability_result,
    record_tier_attempt,
    record_tier_failure,
)
from pharmassist.core.rate_limit import EndpointRateLimiter, get_rate_limiter
from pharmassist.core.tracing import traced
from pharmassist.models.capability import (
    ActionDirective,
    CallerContext,
    CapabilityKind,
    CapabilityRequest,
    CapabilityResponse,
    NavigateToBilling,
    Tier,
)
from pharmassist.models.documents import (
    DocumentAnalysis,
    DocumentType,
    ForecastEntry,
    SalesRecord,
    VoiceBillResult,
    VoiceIntent,
)
from pharmassist.models.drugs import ComplianceVerdict, DrugEntity, InteractionFinding
from pharmassist.services.ai.llm_client import LLMClient, get_llm_client
from pharmassist.services.ai.normalizer import normalize, unwrap
from pharmassist.services.ai.offline_parser import looks_like_order, parse_items
from pharmassist.services.ai.prompts import CLINICAL_DISCLAIMER, FORECAST_PROMPT, PHARMACIST_SYSTEM_PROMPT
from pharmassist.services.ai.speech import SpeechAdapter
from pharmassist.services.ai.tools import ToolExecutor, ToolRouter
from pharmassist.services.ai.vision import VisionAdapter, get_vision_adapter
from pharmassist.services.ai.workflow_client import WorkflowClient, get_workflow_client
from pharmassist.services.drugs.compliance import (
    ComplianceChecker,
    enforce_static_ban,
    get_compliance_checker,
    parse_verdict,
    static_verdict,
)
from pharmassist.services.drugs.interactions import (
    InteractionEngine,
    consolidate,
    get_interaction_engine,
    parse_findings,
)
from pharmassist.services.drugs.market import MarketAnalyzer, get_market_analyzer, market_reply
from pharmassist.services.drugs.normalization import DrugNormalizer, get_drug_normalizer
from pharmassist.services.forecast import moving_average_forecast

logger = get_logger(__name__)

TierFn = Callable[[], Awaitable[Optional[CapabilityResponse]]]
TierPlan = List[Tuple[Tier, Optional[TierFn]]]

_action_adapter: TypeAdapter = TypeAdapter(ActionDirective)

DOCUMENT_WEBHOOKS = {
    DocumentType.PRESCRIPTION: "prescription",
    DocumentType.LAB_REPORT: "lab_report",
    DocumentType.INVENTORY_LIST: "inventory_list",
}

INTERACTIONS_UNVERIFIED = (
    "Interaction check could not be completed. No interactions are confirmed; "
    "verify manually before dispensing."
)


def _text_field(body: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _caller_payload(context: CallerContext) -> Dict[str, Any]:
    return {"user_id": context.user_id, "shop_id": context.shop_id}


def _findings_payload(findings: Sequence[InteractionFinding], entities: Sequence[DrugEntity], verified: bool):
    return {
        "interactions": [finding.model_dump(mode="json") for finding in findings],
        "checked": [entity.model_dump(mode="json") for entity in entities],
        "verified": verified,
    }


def _interaction_reply(findings: Sequence[InteractionFinding], entities: Sequence[DrugEntity]) -> str:
    if not findings:
        names = ", ".join(entity.surface_name for entity in entities)
        return f"No significant interactions found between {names}."
    return "\n".join(f"⚠️ {finding.summary()}" for finding in findings)


def _compliance_reply(verdict: ComplianceVerdict) -> str:
    if verdict.is_banned:
        return f"BANNED: {verdict.drug_name}. {verdict.reason}"
    if verdict.is_h1:
        return f"Schedule H1: {verdict.drug_name}. {verdict.reason}"
    return f"{verdict.drug_name}: {verdict.reason}"


def _document_reply(analysis: DocumentAnalysis) -> str:
    if analysis.document_type == DocumentType.LAB_REPORT:
        flagged = [r for r in analysis.results if r.status.lower() != "normal"]
        summary = analysis.summary or f"{len(analysis.results)} parameters read."
        return f"{summary} ({len(flagged)} outside the normal range)"
    names = ", ".join(f"{item.name} x{item.quantity}" for item in analysis.items)
    return f"Found {len(analysis.items)} items: {names}"


def _voice_response(result: VoiceBillResult) -> CapabilityResponse:
    verb = "Add to stock" if result.intent == VoiceIntent.ADD_STOCK else "Look up"
    names = ", ".join(f"{item.name} x{item.quantity}" for item in result.items)
    return CapabilityResponse(
        reply=f"{verb}: {names}",
        provenance=Tier.TIER1_PRIMARY,
        payload=result.model_dump(mode="json"),
        action=NavigateToBilling(items=[item.model_dump() for item in result.items]),
    )


def _forecast_entries(body: Dict[str, Any]) -> List[ForecastEntry]:
    entries = []
    for entry in body.get("forecast") or []:
        if not isinstance(entry, dict) or not entry.get("medicine_name"):
            continue
        try:
            entries.append(ForecastEntry.model_validate(entry))
        except PydanticValidationError as e:
            logger.debug("forecast_entry_skipped", error=str(e))
    return entries


def _forecast_response(entries: List[ForecastEntry]) -> Optional[CapabilityResponse]:
    if not entries:
        return None
    restock = [e for e in entries if e.predicted_quantity > 0]
    if restock:
        reply = "Restock: " + ", ".join(f"{e.medicine_name} x{e.predicted_quantity}" for e in restock)
    else:
        reply = "Stock levels are healthy; nothing to reorder."
    return CapabilityResponse(
        reply=reply,
        provenance=Tier.TIER1_PRIMARY,
        payload={"forecast": [e.model_dump() for e in entries]},
    )


class CapabilityOrchestrator:
    """Entry points for every capability; each call walks its tier plan."""

    def __init__(
        self,
        workflow: Optional[WorkflowClient] = None,
        llm_client: Optional[LLMClient] = None,
        vision: Optional[VisionAdapter] = None,
        speech: Optional[SpeechAdapter] = None,
        router: Optional[ToolRouter] = None,
        executor: Optional[ToolExecutor] = None,
        normalizer: Optional[DrugNormalizer] = None,
        interactions: Optional[InteractionEngine] = None,
        compliance: Optional[ComplianceChecker] = None,
        market: Optional[MarketAnalyzer] = None,
        rate_limiter: Optional[EndpointRateLimiter] = None,
    ):
        self.workflow = workflow or get_workflow_client()
        self.llm_client = llm_client or get_llm_client()
        self.vision = vision or get_vision_adapter()
        self.speech = speech or SpeechAdapter(self.llm_client)
        self.router = router or ToolRouter(self.llm_client)
        self.executor = executor or ToolExecutor(self.llm_client)
        self.normalizer = normalizer or get_drug_normalizer()
        self.interactions = interactions or get_interaction_engine()
        self.compliance = compliance or get_compliance_checker()
        self.market = market or get_market_analyzer()
        self.rate_limiter = rate_limiter or get_rate_limiter()

    async def _run_tiers(
        self,
        kind: CapabilityKind,
        plan: TierPlan,
        canned: Callable[[], CapabilityResponse],
    ) -> CapabilityResponse:
        """First usable tier wins; ``canned`` answers when none is usable."""
        start = time.time()
        for tier, attempt in plan:
            if attempt is None:
                continue

            record_tier_attempt(kind.value, tier.value)
            with traced(f"tier.{tier.value}", capability=kind.value) as span:
                try:
                    response = await attempt()
                except Exception as e:
                    span.record_exception(e)
                    record_tier_failure(kind.value, tier.value, type(e).__name__)
                    logger.warning(
                        "tier_failed",
                        capability=kind.value,
                        tier=tier.value,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue

                if response is None:
                    span.set_attribute("usable", False)
                    record_tier_failure(kind.value, tier.value, "unusable")
                    logger.info("tier_unusable", capability=kind.value, tier=tier.value)
                    continue
                span.set_attribute("usable", True)

            response = response.model_copy(update={"provenance": tier})
            duration = time.time() - start
            record_capability_result(kind.value, tier.value, duration)
            logger.info(
                "capability_completed",
                capability=kind.value,
                provenance=tier.value,
                duration_ms=round(duration * 1000, 2),
            )
            return response

        response = canned().model_copy(update={"provenance": Tier.FAILED})
        duration = time.time() - start
        record_capability_result(kind.value, Tier.FAILED.value, duration)
        logger.warning(
            "capability_all_tiers_failed",
            capability=kind.value,
            duration_ms=round(duration * 1000, 2),
        )
        return response

    # ------------------------------------------------------------------ chat

    async def chat(self, request: CapabilityRequest) -> CapabilityResponse:
        self.rate_limiter.check("chat")
        query = request.query.strip()

        async def primary():
            body = await self.workflow.invoke(
                "chat",
                {
                    "message": query,
                    "history": [turn.model_dump() for turn in request.history],
                    **_caller_payload(request.context),
                },
            )
            reply = _text_field(body, "reply", "output", "response", "text", "message")
            if not reply:
                return None
            action = None
            if body.get("action"):
                try:
                    action = _action_adapter.validate_python(body["action"])
                except PydanticValidationError:
                    logger.info("chat_action_ignored", action=str(body["action"])[:100])
            return CapabilityResponse(reply=reply, provenance=Tier.TIER1_PRIMARY, action=action)

        async def tools():
            invocation = await self.router.route(query, request.history)
            return await self.executor.execute(invocation, query, request.history, request.context)

        async def vision():
            prompt = f"{PHARMACIST_SYSTEM_PROMPT}\n\nQuestion: {query or 'Describe this medicine or document.'}"
            reply = await self.vision.analyze(prompt, request.image, request.image_mime_type)
            return CapabilityResponse(reply=reply, provenance=Tier.TIER3_MODAL)

        async def offline():
            items = parse_items(query)
            if not items:
                return None
            names = ", ".join(f"{item.name} x{item.quantity}" for item in items)
            return CapabilityResponse(
                reply=f"Assistant is offline. Opening billing with {names}.",
                provenance=Tier.TIER4_OFFLINE,
                action=NavigateToBilling(items=[item.model_dump() for item in items]),
                warnings=["offline_parser"],
            )

        plan: TierPlan = [
            (Tier.TIER1_PRIMARY, primary if query else None),
            (Tier.TIER2_TOOL_LLM, tools if query else None),
            (Tier.TIER3_MODAL, vision if request.image else None),
            (Tier.TIER4_OFFLINE, offline if query and looks_like_order(query) else None),
        ]
        return await self._run_tiers(
            CapabilityKind.CHAT,
            plan,
            lambda: CapabilityResponse(reply=CLINICAL_DISCLAIMER, provenance=Tier.FAILED),
        )

    # ------------------------------------------------------------- documents

    async def analyze_document(
        self,
        image: bytes,
        document_type: DocumentType,
        mime_type: str = "image/jpeg",
        context: Optional[CallerContext] = None,
    ) -> CapabilityResponse:
        webhook = DOCUMENT_WEBHOOKS[document_type]
        self.rate_limiter.check(webhook)
        context = context or CallerContext()

        def respond(analysis: DocumentAnalysis, tier: Tier) -> Optional[CapabilityResponse]:
            if not analysis.is_usable():
                return None
            return CapabilityResponse(
                reply=_document_reply(analysis),
                provenance=tier,
                payload=analysis.model_dump(mode="json"),
            )

        async def primary():
            body = await self.workflow.invoke(
                webhook,
                {
                    "image": base64.b64encode(image).decode("ascii"),
                    "mime_type": mime_type,
                    **_caller_payload(context),
                },
            )
            analysis = DocumentAnalysis.model_validate({**body, "document_type": document_type})
            return respond(analysis, Tier.TIER1_PRIMARY)

        async def vision():
            analysis = await self.vision.extract_document(image, document_type, mime_type)
            return respond(analysis, Tier.TIER3_MODAL)

        plan: TierPlan = [
            (Tier.TIER1_PRIMARY, primary if image else None),
            (Tier.TIER3_MODAL, vision if image else None),
        ]
        return await self._run_tiers(
            CapabilityKind.DOCUMENT_ANALYSIS,
            plan,
            lambda: CapabilityResponse(
                reply="Could not read the document. Please enter the items manually.",
                provenance=Tier.FAILED,
                payload=DocumentAnalysis(document_type=document_type).model_dump(mode="json"),
                warnings=["document_unreadable"],
            ),
        )

    # ------------------------------------------------------------ voice bill

    async def process_voice_bill(self, request: CapabilityRequest) -> CapabilityResponse:
        """
        Audio (and/or an already-known transcript in ``request.query``) to
        a list of items. A transcript obtained by the speech tier is reused by
        the offline tier if intent classification fails.
        """
        self.rate_limiter.check("voice_bill")
        state: Dict[str, str] = {"transcript": request.query.strip()}

        async def primary():
            body = await self.workflow.invoke(
                "voice_bill",
                {
                    "audio": base64.b64encode(request.audio).decode("ascii"),
                    "filename": request.audio_filename,
                    **_caller_payload(request.context),
                },
            )
            result = VoiceBillResult.model_validate(
                {**body, "transcription": _text_field(body, "transcription", "text") or state["transcript"]}
            )
            return _voice_response(result) if result.items else None

        async def classify():
            return _voice_response(await self.speech.classify_intent(state["transcript"]))

        async def speech():
            transcript = await self.speech.transcribe(request.audio, request.audio_filename)
            state["transcript"] = transcript
            return _voice_response(await self.speech.classify_intent(transcript))

        async def offline():
            transcript = state["transcript"]
            items = parse_items(transcript) if transcript else []
            if not items:
                return None
            response = _voice_response(VoiceBillResult(transcription=transcript, items=items))
            return response.model_copy(update={"warnings": ["offline_parser"]})

        plan: TierPlan = [
            (Tier.TIER1_PRIMARY, primary if request.audio else None),
            (Tier.TIER2_TOOL_LLM, classify if state["transcript"] else None),
            (Tier.TIER3_MODAL, speech if request.audio else None),
            (Tier.TIER4_OFFLINE, offline),
        ]
        return await self._run_tiers(
            CapabilityKind.VOICE_BILL,
            plan,
            lambda: CapabilityResponse(
                reply="Could not understand the order. Please try again or type it.",
                provenance=Tier.FAILED,
                payload=VoiceBillResult(transcription=state["transcript"]).model_dump(mode="json"),
                warnings=["voice_unrecognised"],
            ),
        )

    # ---------------------------------------------------------- interactions

    async def check_interactions(
        self,
        drug_names: Sequence[str],
        context: Optional[CallerContext] = None,
    ) -> CapabilityResponse:
        self.rate_limiter.check("interactions")
        context = context or CallerContext()
        entities = await self.normalizer.resolve_all(drug_names)

        if len(entities) < 2:
            return CapabilityResponse(
                reply="Add at least two medicines to check for interactions.",
                provenance=Tier.TIER4_OFFLINE,
                payload=_findings_payload([], entities, verified=True),
            )

        def respond(findings: List[InteractionFinding], verified: bool = True) -> CapabilityResponse:
            merged = consolidate(entities, findings)
            return CapabilityResponse(
                reply=_interaction_reply(merged, entities),
                provenance=Tier.TIER1_PRIMARY,
                payload=_findings_payload(merged, entities, verified),
            )

        async def primary():
            body = await self.workflow.invoke(
                "interactions",
                {
                    "drugs": [entity.surface_name for entity in entities],
                    "generics": [entity.generic_name for entity in entities],
                    **_caller_payload(context),
                },
            )
            if not isinstance(body.get("interactions"), list):
                return None
            return respond(parse_findings(body, entities))

        async def engine():
            return respond(await self.interactions.check(entities))

        async def offline():
            findings = consolidate(entities)
            if not findings:
                return None
            response = respond(findings, verified=False)
            return response.model_copy(update={"warnings": ["offline_interaction_table"]})

        plan: TierPlan = [
            (Tier.TIER1_PRIMARY, primary),
            (Tier.TIER2_TOOL_LLM, engine),
            (Tier.TIER4_OFFLINE, offline),
        ]
        return await self._run_tiers(
            CapabilityKind.INTERACTION_CHECK,
            plan,
            lambda: CapabilityResponse(
                reply=INTERACTIONS_UNVERIFIED,
                provenance=Tier.FAILED,
                payload=_findings_payload([], entities, verified=False),
                warnings=["interactions_unverified"],
            ),
        )

    # ---------------------------------------------------------------- market

    async def get_market_data(
        self,
        drug_name: str,
        context: Optional[CallerContext] = None,
    ) -> CapabilityResponse:
        self.rate_limiter.check("market")
        context = context or CallerContext()

        async def primary():
            body = await self.workflow.invoke("market", {"drug_name": drug_name, **_caller_payload(context)})
            substitutes = [s for s in body.get("substitutes") or [] if isinstance(s, dict) and s.get("name")]
            if not substitutes:
                return None
            names = ", ".join(str(s["name"]) for s in substitutes[:5])
            reply = _text_field(body, "summary", "reply") or f"Substitutes for {drug_name}: {names}"
            return CapabilityResponse(
                reply=reply,
                provenance=Tier.TIER1_PRIMARY,
                payload={**body, "drug_name": drug_name, "substitutes": substitutes},
            )

        async def engine():
            report = await self.market.lookup(drug_name, context.shop_id)
            return CapabilityResponse(reply=market_reply(report), provenance=Tier.TIER2_TOOL_LLM, payload=report)

        async def offline():
            report = self.market.lookup_offline(drug_name, context.shop_id)
            return CapabilityResponse(
                reply=market_reply(report),
                provenance=Tier.TIER4_OFFLINE,
                payload=report,
                warnings=["local_inventory_only"],
            )

        plan: TierPlan = [
            (Tier.TIER1_PRIMARY, primary),
            (Tier.TIER2_TOOL_LLM, engine),
            (Tier.TIER4_OFFLINE, offline),
        ]
        return await self._run_tiers(
            CapabilityKind.MARKET_LOOKUP,
            plan,
            lambda: CapabilityResponse(
                reply=f"Market data for {drug_name} is unavailable right now.",
                provenance=Tier.FAILED,
                payload={"drug_name": drug_name, "substitutes": []},
            ),
        )

    # ------------------------------------------------------------ compliance

    async def check_compliance(
        self,
        drug_name: str,
        context: Optional[CallerContext] = None,
    ) -> CapabilityResponse:
        self.rate_limiter.check("compliance")
        context = context or CallerContext()
        entity = await self.normalizer.resolve(drug_name)

        def respond(verdict: ComplianceVerdict) -> CapabilityResponse:
            verdict = enforce_static_ban(entity, verdict)
            return CapabilityResponse(
                reply=_compliance_reply(verdict),
                provenance=Tier.TIER1_PRIMARY,
                payload=verdict.model_dump(),
                warnings=[] if verdict.verified else ["verify_manually"],
            )

        async def primary():
            body = await self.workflow.invoke(
                "compliance",
                {"drug": drug_name, "generic": entity.generic_name, **_caller_payload(context)},
            )
            return respond(parse_verdict(body, drug_name))

        async def engine():
            return respond(await self.compliance.check(entity))

        async def offline():
            verdict = static_verdict(entity)
            return respond(verdict) if verdict is not None else None

        plan: TierPlan = [
            (Tier.TIER1_PRIMARY, primary),
            (Tier.TIER2_TOOL_LLM, engine),
            (Tier.TIER4_OFFLINE, offline),
        ]
        return await self._run_tiers(
            CapabilityKind.COMPLIANCE_CHECK,
            plan,
            lambda: respond(ComplianceVerdict.unknown(drug_name)),
        )

    # -------------------------------------------------------------- forecast

    async def get_inventory_forecast(
        self,
        sales_history: Sequence[SalesRecord],
        context: Optional[CallerContext] = None,
    ) -> CapabilityResponse:
        self.rate_limiter.check("forecast")
        context = context or CallerContext()
        history = [record.model_dump() for record in sales_history]

        async def primary():
            body = await self.workflow.invoke("forecast", {"sales_history": history, **_caller_payload(context)})
            return _forecast_response(_forecast_entries(body))

        async def model():
            text = await self.llm_client.complete(
                "forecast",
                [{"role": "user", "content": FORECAST_PROMPT.format(data=json.dumps(history))}],
                json_mode=True,
                max_tokens=1000,
            )
            return _forecast_response(_forecast_entries(unwrap(normalize(text, fallback=None), expect=dict)))

        async def offline():
            return _forecast_response(moving_average_forecast(sales_history))

        plan: TierPlan = [
            (Tier.TIER1_PRIMARY, primary if history else None),
            (Tier.TIER2_TOOL_LLM, model if history else None),
            (Tier.TIER4_OFFLINE, offline),
        ]
        return await self._run_tiers(
            CapabilityKind.FORECAST,
            plan,
            lambda: CapabilityResponse(
                reply="No sales history available to forecast from.",
                provenance=Tier.FAILED,
                payload={"forecast": []},
            ),
        )


_orchestrator: Optional[CapabilityOrchestrator] = None


def get_orchestrator() -> CapabilityOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = CapabilityOrchestrator()
    return _orchestrator
