"""
The closed set of chat tools and their typed invocations.

Invocations are only built by ``ToolRouter`` from model output; the executor
matches exhaustively on the concrete class.
"""
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from pharmassist.models.documents import VoiceItem


class ToolName(str, Enum):
    CHECK_STOCK = "check_stock"
    ADD_STOCK_DRAFT = "add_stock_draft"
    SALES_REPORT = "sales_report"
    MARKET_LOOKUP = "market_lookup"
    REDIRECT_TO_BILLING = "redirect_to_billing"
    ADD_TO_REORDER_LIST = "add_to_reorder_list"
    SHARE_MESSAGE = "share_message"
    SAVE_PATIENT_NOTE = "save_patient_note"
    DIRECT_REPLY = "direct_reply"


class CheckStock(BaseModel):
    tool: Literal["check_stock"] = "check_stock"
    item_name: str


class AddStockDraft(BaseModel):
    tool: Literal["add_stock_draft"] = "add_stock_draft"
    item_name: str
    quantity: int = Field(1, ge=1)


class SalesReport(BaseModel):
    tool: Literal["sales_report"] = "sales_report"
    period: Literal["today", "week", "month"] = "today"


class MarketLookup(BaseModel):
    tool: Literal["market_lookup"] = "market_lookup"
    drug_name: str


class RedirectToBilling(BaseModel):
    tool: Literal["redirect_to_billing"] = "redirect_to_billing"
    items: List[VoiceItem] = Field(default_factory=list)


class AddToReorder(BaseModel):
    tool: Literal["add_to_reorder_list"] = "add_to_reorder_list"
    item_name: str
    quantity: int = Field(1, ge=1)


class ShareMessage(BaseModel):
    tool: Literal["share_message"] = "share_message"
    message: str
    phone: Optional[str] = None


class SavePatientNote(BaseModel):
    tool: Literal["save_patient_note"] = "save_patient_note"
    patient_name: str
    note: str


class DirectReply(BaseModel):
    tool: Literal["direct_reply"] = "direct_reply"
    reply: Optional[str] = None


ToolInvocation = Annotated[
    Union[
        CheckStock,
        AddStockDraft,
        SalesReport,
        MarketLookup,
        RedirectToBilling,
        AddToReorder,
        ShareMessage,
        SavePatientNote,
        DirectReply,
    ],
    Field(discriminator="tool"),
]

tool_invocation_adapter: TypeAdapter = TypeAdapter(ToolInvocation)

# Tools that write to the pharmacy store. Executed once, never retried.
SIDE_EFFECT_TOOLS = frozenset({
    ToolName.ADD_STOCK_DRAFT.value,
    ToolName.ADD_TO_REORDER_LIST.value,
    ToolName.SAVE_PATIENT_NOTE.value,
})
