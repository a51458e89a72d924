"""
Structured outputs of document extraction, voice billing and forecasting.
"""
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class DocumentType(str, Enum):
    PRESCRIPTION = "prescription"
    LAB_REPORT = "lab_report"
    INVENTORY_LIST = "inventory_list"


class ExtractedItem(BaseModel):
    """One medicine line from a prescription or an invoice/inventory list."""

    name: str
    quantity: int = 1
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    batch: Optional[str] = None
    expiry: Optional[str] = None
    mrp: Optional[float] = None
    purchase_price: Optional[float] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def default_quantity(cls, value):
        try:
            quantity = int(float(value))
        except (TypeError, ValueError):
            return 1
        return quantity if quantity > 0 else 1


class LabResult(BaseModel):
    parameter: str
    value: Optional[float] = None
    unit: str = ""
    normal_range: str = ""
    status: str = "Normal"  # Normal | Low | High
    risk_level: str = "None"  # None | Moderate | Critical


class DocumentAnalysis(BaseModel):
    document_type: DocumentType
    items: List[ExtractedItem] = Field(default_factory=list)
    results: List[LabResult] = Field(default_factory=list)
    patient_name: Optional[str] = None
    doctor_name: Optional[str] = None
    summary: Optional[str] = None
    disease_possibility: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("disease_possibility", "diseasePossibility"),
    )
    recommendations: List[str] = Field(default_factory=list)

    def is_usable(self) -> bool:
        if self.document_type == DocumentType.LAB_REPORT:
            return bool(self.results) or bool(self.summary)
        return bool(self.items)


class VoiceIntent(str, Enum):
    ADD_STOCK = "add_stock"
    SEARCH_STOCK = "search_stock"


class VoiceItem(BaseModel):
    name: str
    quantity: int = 1

    @field_validator("quantity", mode="before")
    @classmethod
    def default_quantity(cls, value):
        try:
            quantity = int(float(value))
        except (TypeError, ValueError):
            return 1
        return quantity if quantity > 0 else 1


class VoiceBillResult(BaseModel):
    transcription: str
    intent: VoiceIntent = VoiceIntent.SEARCH_STOCK
    items: List[VoiceItem] = Field(default_factory=list)


class SalesRecord(BaseModel):
    medicine_name: str
    quantity: int
    current_stock: int = 0


class ForecastEntry(BaseModel):
    medicine_name: str
    current_stock: int = 0
    avg_daily_sales: float = 0.0
    predicted_quantity: int = 0
    confidence_score: float = 0.5
    reason: str = ""
