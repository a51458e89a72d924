"""
Tool router and executor for chat requests.

Router: one JSON-mode completion picks exactly one tool and its arguments;
anything inconclusive becomes ``direct_reply``.

Executor: exhaustive dispatch over the invocation type.
- read tools (check_stock, sales_report) and side-effect tools
  (add_stock_draft, save_patient_note) ground a second "synthesis" completion
  in the tool result
- directive tools (redirect_to_billing, share_message, add_to_reorder_list)
  return their UI directive immediately
- side effects run once; a failed write is not retried
"""
import json
from typing import Any, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from pharmassist.core.database import PharmacyStore, get_pharmacy_store
from pharmassist.core.errors import PharmassistError, ToolExecutionFailure
from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import record_tool_invocation
from pharmassist.models.capability import (
    AddToReorderList,
    CallerContext,
    CapabilityResponse,
    ChatTurn,
    NavigateToBilling,
    OpenMessaging,
    Tier,
)
from pharmassist.models.tools import (
    SIDE_EFFECT_TOOLS,
    AddStockDraft,
    AddToReorder,
    CheckStock,
    DirectReply,
    MarketLookup,
    RedirectToBilling,
    SalesReport,
    SavePatientNote,
    ShareMessage,
    ToolInvocation,
    tool_invocation_adapter,
)
from pharmassist.services.ai.llm_client import LLMClient, get_llm_client
from pharmassist.services.ai.normalizer import normalize_value
from pharmassist.services.ai.prompts import (
    PHARMACIST_SYSTEM_PROMPT,
    ROUTER_SYSTEM_PROMPT,
    SYNTHESIS_SYSTEM_PROMPT,
    history_messages,
)
from pharmassist.services.drugs.market import MarketAnalyzer, get_market_analyzer, market_reply

logger = get_logger(__name__)

ROUTER_HISTORY_TURNS = 4


class ToolRouter:
    def __init__(self, llm_client: Optional[LLMClient] = None):
        self._llm_client = llm_client

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    async def route(self, query: str, history: Sequence[ChatTurn] = ()) -> ToolInvocation:
        """
        Pick one tool for the query.

        Raises:
            NetworkUnavailable / UpstreamError: the completion call failed
        """
        messages = [
            {"role": "system", "content": ROUTER_SYSTEM_PROMPT},
            *history_messages(history, ROUTER_HISTORY_TURNS),
            {"role": "user", "content": query},
        ]
        text = await self.llm_client.complete("route", messages, json_mode=True, max_tokens=300)
        invocation = parse_invocation(normalize_value(text, fallback=None))
        logger.info("tool_routed", tool=invocation.tool)
        return invocation


def parse_invocation(value: Any) -> ToolInvocation:
    """Typed invocation from router output; inconclusive output is ``direct_reply``."""
    if not isinstance(value, dict) or not value.get("tool"):
        return DirectReply()

    arguments = value.get("arguments")
    if not isinstance(arguments, dict):
        arguments = {k: v for k, v in value.items() if k != "tool"}
    try:
        return tool_invocation_adapter.validate_python(
            {**arguments, "tool": str(value["tool"]).strip().lower()}
        )
    except PydanticValidationError as e:
        logger.info("tool_routing_inconclusive", tool=value.get("tool"), error=str(e))
        return DirectReply()


def _describe(result: Any) -> str:
    return json.dumps(result, default=str, ensure_ascii=False)


class ToolExecutor:
    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        store: Optional[PharmacyStore] = None,
        market: Optional[MarketAnalyzer] = None,
    ):
        self._llm_client = llm_client
        self._store = store
        self._market = market

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    @property
    def store(self) -> PharmacyStore:
        if self._store is None:
            self._store = get_pharmacy_store()
        return self._store

    @property
    def market(self) -> MarketAnalyzer:
        if self._market is None:
            self._market = get_market_analyzer()
        return self._market

    def _store_call(self, tool: str, operation, *args) -> Any:
        """Run one storage operation exactly once."""
        try:
            return operation(*args)
        except Exception as e:
            record_tool_invocation(tool, "error")
            logger.error(
                "tool_storage_failed",
                tool=tool,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ToolExecutionFailure(tool, str(e)) from e

    async def _synthesize(self, query: str, history: Sequence[ChatTurn], tool: str, result_text: str) -> str:
        messages = [
            {"role": "system", "content": SYNTHESIS_SYSTEM_PROMPT},
            *history_messages(history, ROUTER_HISTORY_TURNS),
            {"role": "user", "content": f"Question: {query}\n\nResult of {tool}: {result_text}"},
        ]
        return await self.llm_client.complete("synthesize", messages, max_tokens=400)

    async def _grounded_reply(
        self,
        invocation: ToolInvocation,
        query: str,
        history: Sequence[ChatTurn],
        result: Any,
        fallback_reply: str = "",
    ) -> CapabilityResponse:
        result_text = _describe(result)
        try:
            reply = await self._synthesize(query, history, invocation.tool, result_text)
        except PharmassistError as e:
            if invocation.tool not in SIDE_EFFECT_TOOLS:
                raise
            # The write already happened; answer from its result instead of failing the tier.
            logger.warning("tool_synthesis_failed", tool=invocation.tool, error=str(e))
            reply = fallback_reply
        return CapabilityResponse(
            reply=reply,
            provenance=Tier.TIER2_TOOL_LLM,
            payload={"tool": invocation.tool, "result": result},
        )

    async def execute(
        self,
        invocation: ToolInvocation,
        query: str,
        history: Sequence[ChatTurn] = (),
        context: Optional[CallerContext] = None,
    ) -> CapabilityResponse:
        """
        Run one invocation and build the reply.

        Raises:
            ToolExecutionFailure: a storage operation failed
            NetworkUnavailable / UpstreamError / ValidationError: a model call failed
        """
        shop_id = context.shop_id if context else None
        logger.info("tool_executing", tool=invocation.tool)

        match invocation:
            case CheckStock(item_name=item_name):
                rows = self._store_call(invocation.tool, self.store.find_stock, shop_id, item_name)
                result = {"item": item_name, "matches": rows}
                response = await self._grounded_reply(invocation, query, history, result)

            case AddStockDraft(item_name=item_name, quantity=quantity):
                row = self._store_call(invocation.tool, self.store.add_stock_draft, shop_id, item_name, quantity)
                response = await self._grounded_reply(
                    invocation,
                    query,
                    history,
                    row,
                    f"Added a draft stock entry: {item_name} x{quantity}.",
                )

            case SalesReport(period=period):
                summary = self._store_call(invocation.tool, self.store.sales_summary, shop_id, period)
                response = await self._grounded_reply(invocation, query, history, summary)

            case MarketLookup(drug_name=drug_name):
                report = await self.market.lookup(drug_name, shop_id)
                response = CapabilityResponse(
                    reply=market_reply(report),
                    provenance=Tier.TIER2_TOOL_LLM,
                    payload=report,
                )

            case RedirectToBilling(items=items):
                names = ", ".join(f"{item.name} x{item.quantity}" for item in items) or "a new bill"
                response = CapabilityResponse(
                    reply=f"Opening billing with {names}.",
                    provenance=Tier.TIER2_TOOL_LLM,
                    action=NavigateToBilling(items=[item.model_dump() for item in items]),
                )

            case AddToReorder(item_name=item_name, quantity=quantity):
                self._store_call(invocation.tool, self.store.add_to_reorder_list, shop_id, item_name, quantity)
                response = CapabilityResponse(
                    reply=f"Added {item_name} x{quantity} to the reorder list.",
                    provenance=Tier.TIER2_TOOL_LLM,
                    action=AddToReorderList(item_name=item_name, quantity=quantity),
                )

            case ShareMessage(message=message, phone=phone):
                response = CapabilityResponse(
                    reply="Opening messaging with your draft.",
                    provenance=Tier.TIER2_TOOL_LLM,
                    action=OpenMessaging(message=message, phone=phone),
                )

            case SavePatientNote(patient_name=patient_name, note=note):
                row = self._store_call(invocation.tool, self.store.save_patient_note, shop_id, patient_name, note)
                response = await self._grounded_reply(
                    invocation,
                    query,
                    history,
                    row,
                    f"Saved a note for {patient_name}.",
                )

            case DirectReply(reply=reply):
                if not reply or not reply.strip():
                    reply = await self.llm_client.complete(
                        "direct_reply",
                        [
                            {"role": "system", "content": PHARMACIST_SYSTEM_PROMPT},
                            *history_messages(history, ROUTER_HISTORY_TURNS),
                            {"role": "user", "content": query},
                        ],
                        max_tokens=600,
                    )
                response = CapabilityResponse(reply=reply, provenance=Tier.TIER2_TOOL_LLM)

            case _:
                raise ToolExecutionFailure(str(getattr(invocation, "tool", "unknown")), "unsupported tool")

        record_tool_invocation(invocation.tool, "success")
        return response

