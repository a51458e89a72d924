"""Drug-safety services: name normalization, interactions, compliance and substitutes."""

from .compliance import get_compliance_checker
from .interactions import consolidate, find_duplicate_therapy, get_interaction_engine
from .normalization import get_drug_normalizer
from .substitutes import find_better_margin_substitutes

__all__ = [
    "consolidate",
    "find_better_margin_substitutes",
    "find_duplicate_therapy",
    "get_compliance_checker",
    "get_drug_normalizer",
    "get_interaction_engine",
]
