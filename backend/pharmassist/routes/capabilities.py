"""
AI capability endpoints.

POST /ai/chat            {query, history?, image_base64?}
POST /ai/documents       multipart: file, document_type
POST /ai/voice-bill      multipart: file?, transcript?
POST /ai/interactions    {drugs: [str]}
POST /ai/market          {drug_name}
POST /ai/compliance      {drug_name}
POST /ai/forecast        {sales_history: [{medicine_name, quantity, current_stock}]}

Caller identity comes from the X-User-ID / X-Shop-ID headers (bound by the
trace middleware). ``RateLimited`` is turned into 429 by the app handler.
"""
import base64
import binascii
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from pharmassist.core.logging import get_logger, get_shop_id, get_user_id
from pharmassist.models.capability import (
    CallerContext,
    CapabilityKind,
    CapabilityRequest,
    CapabilityResponse,
    ChatTurn,
)
from pharmassist.models.documents import DocumentType, SalesRecord
from pharmassist.services.ai.orchestration import get_orchestrator

logger = get_logger(__name__)

router = APIRouter()

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class ChatRequest(BaseModel):
    query: str = ""
    history: List[ChatTurn] = Field(default_factory=list)
    image_base64: Optional[str] = None
    image_mime_type: str = "image/jpeg"


class InteractionRequest(BaseModel):
    drugs: List[str] = Field(..., min_length=1)


class DrugRequest(BaseModel):
    drug_name: str = Field(..., min_length=1)


class ForecastRequest(BaseModel):
    sales_history: List[SalesRecord] = Field(default_factory=list)


def _caller() -> CallerContext:
    return CallerContext(user_id=get_user_id(), shop_id=get_shop_id())


async def _read_upload(file: UploadFile) -> bytes:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded file is too large")
    return data


@router.post("/chat", response_model=CapabilityResponse)
async def chat(body: ChatRequest):
    image = None
    if body.image_base64:
        try:
            image = base64.b64decode(body.image_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="image_base64 is not valid base64")

    if not body.query.strip() and not image:
        raise HTTPException(status_code=400, detail="query or image is required")

    request = CapabilityRequest(
        kind=CapabilityKind.CHAT,
        query=body.query,
        image=image,
        image_mime_type=body.image_mime_type,
        history=body.history,
        context=_caller(),
    )
    return await get_orchestrator().chat(request)


@router.post("/documents", response_model=CapabilityResponse)
async def analyze_document(
    file: UploadFile = File(...),
    document_type: DocumentType = Form(...),
):
    image = await _read_upload(file)
    return await get_orchestrator().analyze_document(
        image,
        document_type,
        mime_type=file.content_type or "image/jpeg",
        context=_caller(),
    )


@router.post("/voice-bill", response_model=CapabilityResponse)
async def voice_bill(
    file: Optional[UploadFile] = File(None),
    transcript: str = Form(""),
):
    audio = await _read_upload(file) if file is not None else None
    if audio is None and not transcript.strip():
        raise HTTPException(status_code=400, detail="audio file or transcript is required")

    request = CapabilityRequest(
        kind=CapabilityKind.VOICE_BILL,
        query=transcript,
        audio=audio,
        audio_filename=(file.filename if file is not None else None) or "voice.webm",
        context=_caller(),
    )
    return await get_orchestrator().process_voice_bill(request)


@router.post("/interactions", response_model=CapabilityResponse)
async def check_interactions(body: InteractionRequest):
    return await get_orchestrator().check_interactions(body.drugs, context=_caller())


@router.post("/market", response_model=CapabilityResponse)
async def market(body: DrugRequest):
    return await get_orchestrator().get_market_data(body.drug_name.strip(), context=_caller())


@router.post("/compliance", response_model=CapabilityResponse)
async def compliance(body: DrugRequest):
    return await get_orchestrator().check_compliance(body.drug_name.strip(), context=_caller())


@router.post("/forecast", response_model=CapabilityResponse)
async def forecast(body: ForecastRequest):
    return await get_orchestrator().get_inventory_forecast(body.sales_history, context=_caller())
