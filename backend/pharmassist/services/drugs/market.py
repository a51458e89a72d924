"""
Market lookup: better-margin substitutes for a drug.

The shop's own inventory is always ranked locally with the margin policy;
the completion model only adds market substitutes the shop does not stock.
"""
from typing import Any, Dict, List, Optional

from pharmassist.core.config import get_settings
from pharmassist.core.database import PharmacyStore, get_pharmacy_store
from pharmassist.core.logging import get_logger
from pharmassist.models.drugs import DrugEntity, InventoryItem, MarginPolicy
from pharmassist.services.ai.llm_client import LLMClient, get_llm_client
from pharmassist.services.ai.normalizer import normalize, unwrap
from pharmassist.services.ai.prompts import MARKET_PROMPT
from pharmassist.services.drugs.normalization import DrugNormalizer, get_drug_normalizer
from pharmassist.services.drugs.substitutes import find_better_margin_substitutes, inventory_items

logger = get_logger(__name__)


def default_policy() -> MarginPolicy:
    settings = get_settings()
    return MarginPolicy(
        min_profit_gain=settings.min_profit_gain,
        min_margin_gain_points=settings.min_margin_gain_points,
    )


def _pick_reference(entity: DrugEntity, pool: List[InventoryItem]) -> InventoryItem:
    """The stocked item the user asked about, or a zero-margin stand-in."""
    wanted = entity.surface_name.strip().lower()
    for item in pool:
        if item.name.strip().lower() == wanted:
            break
    else:
        item = next((i for i in pool if wanted and wanted in i.name.lower()), None)

    if item is None:
        return InventoryItem(name=entity.surface_name, composition=entity.generic_name)
    if not item.composition and not item.generic_name:
        item = item.model_copy(update={"composition": entity.generic_name})
    return item


def _with_composition(pool: List[InventoryItem], normalizer: DrugNormalizer) -> List[InventoryItem]:
    """Fill missing compositions from the offline alias table."""
    filled = []
    for item in pool:
        if not item.composition and not item.generic_name:
            entity = normalizer.resolve_offline(item.name)
            if entity is not None:
                item = item.model_copy(update={"composition": entity.generic_name})
        filled.append(item)
    return filled


def market_reply(report: Dict[str, Any]) -> str:
    name = report["drug_name"]
    generic = report["generic_name"]
    substitutes = report["substitutes"]
    if substitutes:
        lines = [f"Better-margin options for {name} ({generic}) in your stock:"]
        for candidate in substitutes[:5]:
            lines.append(
                f"- {candidate['name']}: ₹{candidate['price']:.2f}, profit ₹{candidate['profit']:.2f}, "
                f"margin {candidate['margin_percent']:.1f}%"
            )
    else:
        lines = [f"No better-margin substitute for {name} ({generic}) in your stock."]

    market = report.get("market_substitutes") or []
    if market:
        lines.append("Other brands with the same composition: " + ", ".join(m["name"] for m in market[:5]))
    return "\n".join(lines)


class MarketAnalyzer:
    def __init__(
        self,
        store: Optional[PharmacyStore] = None,
        normalizer: Optional[DrugNormalizer] = None,
        llm_client: Optional[LLMClient] = None,
        policy: Optional[MarginPolicy] = None,
    ):
        self._store = store
        self._normalizer = normalizer
        self._llm_client = llm_client
        self._policy = policy

    @property
    def store(self) -> PharmacyStore:
        if self._store is None:
            self._store = get_pharmacy_store()
        return self._store

    @property
    def normalizer(self) -> DrugNormalizer:
        if self._normalizer is None:
            self._normalizer = get_drug_normalizer()
        return self._normalizer

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    @property
    def policy(self) -> MarginPolicy:
        if self._policy is None:
            self._policy = default_policy()
        return self._policy

    def rank_local(self, entity: DrugEntity, shop_id: Optional[str]) -> Dict[str, Any]:
        """Margin-ranked substitutes from the shop inventory (storage read only)."""
        pool = _with_composition(inventory_items(self.store.list_inventory(shop_id)), self.normalizer)
        reference = _pick_reference(entity, pool)
        substitutes = find_better_margin_substitutes(reference, pool, self.policy)
        return {
            "drug_name": entity.surface_name,
            "generic_name": entity.generic_name,
            "reference": reference.model_dump(),
            "substitutes": [candidate.model_dump() for candidate in substitutes],
            "market_substitutes": [],
        }

    async def market_substitutes(self, entity: DrugEntity) -> List[Dict[str, Any]]:
        """
        Brands on the market with the same composition, from the model.

        Raises:
            NetworkUnavailable / UpstreamError / ValidationError
        """
        text = await self.llm_client.complete(
            "market",
            [{"role": "user", "content": MARKET_PROMPT.format(drug=f"{entity.surface_name} ({entity.generic_name})")}],
            json_mode=True,
            max_tokens=600,
        )
        payload = unwrap(normalize(text, fallback=None), expect=dict)
        substitutes = []
        for entry in payload.get("substitutes") or []:
            if isinstance(entry, dict) and entry.get("name"):
                substitutes.append({
                    "name": str(entry["name"]),
                    "manufacturer": entry.get("manufacturer"),
                    "price": entry.get("price"),
                })
        return substitutes

    async def lookup(self, drug_name: str, shop_id: Optional[str]) -> Dict[str, Any]:
        """Resolved name, local ranking and model market substitutes."""
        entity = await self.normalizer.resolve(drug_name)
        report = self.rank_local(entity, shop_id)
        report["market_substitutes"] = await self.market_substitutes(entity)
        logger.info(
            "market_lookup_completed",
            drug=drug_name,
            generic=entity.generic_name,
            local=len(report["substitutes"]),
            market=len(report["market_substitutes"]),
        )
        return report

    def lookup_offline(self, drug_name: str, shop_id: Optional[str]) -> Dict[str, Any]:
        entity = self.normalizer.resolve_offline(drug_name) or DrugEntity(
            surface_name=drug_name,
            generic_name=drug_name.strip().lower(),
        )
        return self.rank_local(entity, shop_id)


_analyzer: Optional[MarketAnalyzer] = None


def get_market_analyzer() -> MarketAnalyzer:
    global _analyzer
    if _analyzer is None:
        _analyzer = MarketAnalyzer()
    return _analyzer
