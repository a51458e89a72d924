"""
Drug name normalization: surface name -> canonical generic composition.

Resolution order (first hit wins):
1. the name already is a known generic (idempotent on canonical names)
2. the static brand alias table
3. cached RxNav result
4. RxNav approximate match -> ingredient concepts
5. the cleaned surface name itself

``resolve`` never raises; an unreachable reference service degrades to the
surface name so that the interaction check can still run on what it has.
"""
import re
from typing import Iterable, List, Optional

from pharmassist.core.cache import CacheClient, get_cache_client, hash_key
from pharmassist.core.errors import PharmassistError
from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import record_cache_hit, record_cache_miss, record_normalizer_outcome
from pharmassist.models.drugs import DrugEntity
from pharmassist.services.drugs.aliases import BRAND_ALIASES, GENERIC_SYNONYMS, KNOWN_GENERICS
from pharmassist.services.drugs.reference import DrugReferenceClient, get_reference_client

logger = get_logger(__name__)

CACHE_TTL_SECONDS = 7 * 24 * 3600

_STRENGTH_RE = re.compile(r"\b\d+(\.\d+)?\s*(mg|mcg|g|ml|iu|%)?\b")
_FORM_WORDS = frozenset({
    "tablet", "tablets", "tab", "tabs", "capsule", "capsules", "cap", "caps",
    "syrup", "suspension", "injection", "inj", "cream", "gel", "drops",
    "ointment", "ip", "bp", "usp", "sr", "er", "xr", "mr", "ds", "forte",
})
_SEPARATOR_RE = re.compile(r"\s*(\+|/|,|\band\b)\s*")


def clean_name(name: str) -> str:
    """Lowercase, drop strengths and dosage-form words, collapse whitespace."""
    text = name.lower().replace("-", " ")
    text = _STRENGTH_RE.sub(" ", text)
    words = [word for word in text.split() if word not in _FORM_WORDS]
    return " ".join(words)


def canonical_composition(ingredients: Iterable[str]) -> str:
    """Sorted, synonym-folded ingredients joined with " + "."""
    folded = {
        GENERIC_SYNONYMS.get(ingredient.strip().lower(), ingredient.strip().lower())
        for ingredient in ingredients
        if ingredient and ingredient.strip()
    }
    return " + ".join(sorted(folded))


def _as_known_generic(cleaned: str) -> Optional[str]:
    parts = [part for part in _SEPARATOR_RE.split(cleaned) if part and not _SEPARATOR_RE.fullmatch(part)]
    folded = [GENERIC_SYNONYMS.get(part.strip(), part.strip()) for part in parts]
    if folded and all(part in KNOWN_GENERICS for part in folded):
        return canonical_composition(folded)
    return None


def _aliases_for(generic: str) -> tuple:
    return tuple(sorted(brand for brand, composition in BRAND_ALIASES.items() if composition == generic))


def resolve_offline(name: str) -> Optional[DrugEntity]:
    """Known generic or alias-table hit, without any I/O."""
    cleaned = clean_name(name)
    if not cleaned:
        return None

    generic = _as_known_generic(cleaned)
    if generic:
        return DrugEntity(
            surface_name=name,
            generic_name=generic,
            brand_aliases=_aliases_for(generic),
            source="generic",
        )

    # Longest alias first, so "pan d" beats "pan".
    for alias in sorted(BRAND_ALIASES, key=len, reverse=True):
        if cleaned == alias or cleaned.startswith(alias + " "):
            generic = BRAND_ALIASES[alias]
            return DrugEntity(
                surface_name=name,
                generic_name=generic,
                brand_aliases=_aliases_for(generic),
                source="alias_table",
            )
    return None


def offline_generic(name: str) -> str:
    """
    Canonical composition for a name without any I/O.

    Falls back to the synonym-folded cleaned name when no table knows it.
    """
    entity = resolve_offline(name)
    if entity is not None:
        return entity.generic_name
    cleaned = clean_name(name)
    parts = [part for part in _SEPARATOR_RE.split(cleaned) if part and not _SEPARATOR_RE.fullmatch(part)]
    return canonical_composition(parts) or cleaned


class DrugNormalizer:
    def __init__(
        self,
        reference_client: Optional[DrugReferenceClient] = None,
        cache: Optional[CacheClient] = None,
    ):
        self._reference_client = reference_client
        self._cache = cache

    @property
    def reference_client(self) -> DrugReferenceClient:
        if self._reference_client is None:
            self._reference_client = get_reference_client()
        return self._reference_client

    @property
    def cache(self) -> CacheClient:
        if self._cache is None:
            self._cache = get_cache_client()
        return self._cache

    def resolve_offline(self, name: str) -> Optional[DrugEntity]:
        return resolve_offline(name)

    async def resolve(self, name: str) -> DrugEntity:
        entity = self.resolve_offline(name)
        if entity is not None:
            record_normalizer_outcome(entity.source)
            return entity

        cleaned = clean_name(name) or name.strip().lower()
        cache_key = f"drug:generic:{hash_key(cleaned)}"

        cached = await self.cache.get(cache_key)
        if cached:
            record_cache_hit("drug_generic")
            record_normalizer_outcome("cache")
            return DrugEntity(surface_name=name, generic_name=str(cached), source="cache")
        record_cache_miss("drug_generic")

        try:
            ingredients = await self.reference_client.approximate_ingredients(cleaned)
        except PharmassistError as e:
            logger.info(
                "drug_name_unresolved",
                name=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            record_normalizer_outcome("surface")
            return DrugEntity(surface_name=name, generic_name=cleaned, source="surface")
        except Exception as e:
            logger.warning(
                "drug_name_lookup_failed",
                name=name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            record_normalizer_outcome("surface")
            return DrugEntity(surface_name=name, generic_name=cleaned, source="surface")

        generic = canonical_composition(ingredients)
        await self.cache.set(cache_key, generic, CACHE_TTL_SECONDS)
        record_normalizer_outcome("rxnorm")
        logger.debug("drug_name_resolved", name=name, generic=generic)
        return DrugEntity(surface_name=name, generic_name=generic, source="rxnorm")

    async def resolve_all(self, names: Iterable[str]) -> List[DrugEntity]:
        """Resolve each non-blank name once, keeping input order."""
        entities = []
        seen = set()
        for name in names:
            key = name.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            entities.append(await self.resolve(name.strip()))
        return entities


_normalizer: Optional[DrugNormalizer] = None


def get_drug_normalizer() -> DrugNormalizer:
    global _normalizer
    if _normalizer is None:
        _normalizer = DrugNormalizer()
    return _normalizer
