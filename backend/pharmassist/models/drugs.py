"""
Drug-safety value objects.

These are request-scoped: built while answering one capability call and
discarded with the response.
"""
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Severity(str, Enum):
    MINOR = "Minor"
    MODERATE = "Moderate"
    MAJOR = "Major"
    SEVERE = "Severe"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: object) -> "Severity":
        """
        Lenient parse for model/webhook output ("severe", "HIGH", "mild" ...).

        Unknown labels map to Moderate: a finding was reported, so it is kept
        and shown rather than silently discarded as Minor.
        """
        text = str(value or "").strip().lower()
        return _SEVERITY_ALIASES.get(text, cls.MODERATE)


_SEVERITY_RANK = {
    Severity.MINOR: 0,
    Severity.MODERATE: 1,
    Severity.MAJOR: 2,
    Severity.SEVERE: 3,
}

_SEVERITY_ALIASES = {
    "minor": Severity.MINOR,
    "mild": Severity.MINOR,
    "low": Severity.MINOR,
    "moderate": Severity.MODERATE,
    "medium": Severity.MODERATE,
    "major": Severity.MAJOR,
    "high": Severity.MAJOR,
    "serious": Severity.MAJOR,
    "severe": Severity.SEVERE,
    "critical": Severity.SEVERE,
    "contraindicated": Severity.SEVERE,
}


class DrugEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    surface_name: str
    generic_name: str
    brand_aliases: Tuple[str, ...] = ()
    source: str = "surface"  # alias_table | rxnorm | surface | cache


class InteractionFinding(BaseModel):
    """
    One interaction between an unordered pair of canonical drugs.

    ``drugs`` is always stored alphabetically so that (A, B) and (B, A) have
    the same ``pair_key``.
    """
    model_config = ConfigDict(frozen=True)

    drugs: Tuple[str, str]
    severity: Severity
    description: str
    recommendation: str = "Consult the prescribing doctor before dispensing together."
    duplicate_therapy: bool = False

    @field_validator("drugs", mode="before")
    @classmethod
    def order_pair(cls, value):
        first, second = (str(v).strip() for v in value)
        return tuple(sorted((first, second), key=str.lower))

    @property
    def pair_key(self) -> str:
        return "|".join(name.lower() for name in self.drugs)

    def summary(self) -> str:
        return f"{self.severity.value}: {self.drugs[0]} + {self.drugs[1]}: {self.description}"


class ComplianceVerdict(BaseModel):
    """
    Regulatory status of one drug.

    The default instance is the conservative "unknown" verdict: not asserted
    banned, not asserted safe, flagged for manual verification.
    """

    drug_name: str = ""
    is_banned: bool = False
    is_restricted: bool = False
    is_h1: bool = False
    reason: str = "Unknown: regulatory status could not be verified. Verify manually."
    warning_level: str = "UNKNOWN"
    verified: bool = False

    @model_validator(mode="after")
    def banned_needs_reason(self) -> "ComplianceVerdict":
        if self.is_banned and not self.reason.strip():
            self.reason = "Listed as a banned fixed-dose combination."
        return self

    @classmethod
    def unknown(cls, drug_name: str) -> "ComplianceVerdict":
        return cls(drug_name=drug_name)


class InventoryItem(BaseModel):
    """A stocked product as seen by margin ranking."""

    name: str
    generic_name: Optional[str] = None
    composition: Optional[str] = None
    cost_price: float = 0.0
    sale_price: float = 0.0
    quantity: int = 0

    @property
    def profit(self) -> float:
        return self.sale_price - self.cost_price

    @property
    def margin_percent(self) -> float:
        if self.sale_price <= 0:
            return 0.0
        return (self.profit / self.sale_price) * 100.0


class SubstituteCandidate(BaseModel):
    name: str
    generic_name: str
    price: float
    margin_percent: float
    profit: float
    savings: float = Field(description="Reference sale price minus candidate sale price")


class MarginPolicy(BaseModel):
    """Thresholds a substitute must beat to be suggested (either one suffices)."""

    min_profit_gain: float = 5.0
    min_margin_gain_points: float = 5.0
