"""
Prompt templates for every model call.

Each structured prompt spells out the exact JSON the caller validates, so a
schema change here must be mirrored in the matching pydantic model.
"""
from typing import Iterable, List

from pharmassist.models.capability import ChatTurn
from pharmassist.models.documents import DocumentType

PHARMACIST_SYSTEM_PROMPT = (
    "You are a clinical pharmacist assistant for an Indian retail pharmacy. "
    "Answer briefly and practically. Never diagnose; for anything beyond "
    "dispensing advice, tell the user to consult a doctor. Hinglish is fine "
    "when the user writes in Hinglish."
)

CLINICAL_DISCLAIMER = (
    "I could not reach the clinical knowledge services right now. "
    "Please verify with a registered pharmacist or doctor before dispensing."
)

DOCUMENT_PROMPTS = {
    DocumentType.PRESCRIPTION: (
        "Read this handwritten or printed prescription. Extract every medicine.\n"
        "Return JSON only, exactly:\n"
        '{"patient_name": "string|null", "doctor_name": "string|null", '
        '"items": [{"name": "string", "dosage": "string|null", "frequency": "string|null", '
        '"duration": "string|null", "quantity": 1}]}\n'
        "Use the brand name as written. If a quantity is not stated use 1. "
        "Do not add medicines that are not on the page."
    ),
    DocumentType.LAB_REPORT: (
        "Read this pathology lab report.\n"
        "Return JSON only, exactly:\n"
        '{"patient_name": "string|null", "results": [{"parameter": "string", "value": 0.0, '
        '"unit": "string", "normal_range": "string", "status": "Normal|Low|High", '
        '"risk_level": "None|Moderate|Critical"}], "summary": "string", '
        '"disease_possibility": ["string"], "recommendations": ["string"]}\n'
        "Flag only values outside the printed normal range."
    ),
    DocumentType.INVENTORY_LIST: (
        "Read this distributor invoice or handwritten stock list.\n"
        "Return JSON only, exactly:\n"
        '{"items": [{"name": "string", "quantity": 1, "batch": "string|null", '
        '"expiry": "MM/YY|null", "mrp": 0.0, "purchase_price": 0.0}]}\n'
        "One entry per line item. Quantities are in units (strips count as printed)."
    ),
}

TOOL_CONTRACT = """Tools (choose exactly one):
- check_stock {"item_name": str}: how much of a medicine is in stock, its price
- add_stock_draft {"item_name": str, "quantity": int}: add received stock as a draft entry
- sales_report {"period": "today"|"week"|"month"}: sales totals
- market_lookup {"drug_name": str}: substitutes, prices, better-margin options
- redirect_to_billing {"items": [{"name": str, "quantity": int}]}: user wants to make a bill
- add_to_reorder_list {"item_name": str, "quantity": int}: add to the shortbook / reorder list
- share_message {"message": str, "phone": str|null}: send a message to a customer or distributor
- save_patient_note {"patient_name": str, "note": str}: remember something about a patient
- direct_reply {"reply": str}: anything else (general or clinical questions)"""

ROUTER_SYSTEM_PROMPT = (
    "You route pharmacy-assistant requests to tools.\n"
    f"{TOOL_CONTRACT}\n"
    "Respond with a single JSON object only: "
    '{"tool": "<tool name>", "arguments": {...}}. No explanation.'
)

SYNTHESIS_SYSTEM_PROMPT = (
    f"{PHARMACIST_SYSTEM_PROMPT} You are given the result of a shop-data "
    "lookup. Answer the user's question using only that result. Do not "
    "invent stock figures or prices."
)

VOICE_INTENT_PROMPT = (
    "Classify a pharmacist's spoken command (may be Hindi/Hinglish).\n"
    "Return JSON only: "
    '{"intent": "add_stock|search_stock", "items": [{"name": "string", "quantity": 1}]}\n'
    "'add_stock' means the user is entering received or sold quantities; "
    "'search_stock' means they are asking about availability. "
    "A patta/strip is 15 units and a box is 10 units. If no quantity is said, use 1."
)

INTERACTION_PROMPT = (
    "Act as a clinical pharmacist. Check drug-drug interactions for: {drugs}.\n"
    "Return JSON only: "
    '{{"interactions": [{{"drug1": "A", "drug2": "B", "severity": "Major|Moderate|Minor", '
    '"description": "string", "recommendation": "string"}}]}}\n'
    'If there are none, return {{"interactions": []}}.'
)

COMPLIANCE_PROMPT = (
    "You are an Indian drug-regulation checker (CDSCO banned FDC list, Schedule H1).\n"
    "Drug: {drug}\n"
    "Return JSON only: "
    '{{"is_banned": bool, "is_restricted": bool, "is_h1": bool, "reason": "string", '
    '"warning_level": "LOW|MEDIUM|HIGH"}}\n'
    "If unsure, set every flag to false and explain that in reason."
)

MARKET_PROMPT = (
    "List common Indian market substitutes for {drug} with the same composition.\n"
    "Return JSON only: "
    '{{"generic_name": "string", "substitutes": [{{"name": "string", "manufacturer": "string", '
    '"price": 0.0}}]}}'
)

FORECAST_PROMPT = (
    "You are an inventory planner for a pharmacy. Given 30-day sales totals and "
    "current stock, suggest restock quantities with a 2-day lead time and 14 days "
    "of safety stock.\nData: {data}\n"
    "Return JSON only: "
    '{{"forecast": [{{"medicine_name": "string", "current_stock": 0, "avg_daily_sales": 0.0, '
    '"predicted_quantity": 0, "confidence_score": 0.0, "reason": "string"}}]}}'
)


def history_messages(history: Iterable[ChatTurn], limit: int) -> List[dict]:
    """Last ``limit`` turns as chat messages."""
    turns = list(history)[-limit:] if limit > 0 else []
    return [{"role": turn.role, "content": turn.text} for turn in turns]
