"""
Better-margin substitute ranking over the shop's own inventory.

A candidate qualifies when it has the same composition as the reference and
beats it on absolute profit or on margin percentage by the policy thresholds.
"""
from typing import Any, Dict, Iterable, List, Optional

from pharmassist.models.drugs import InventoryItem, MarginPolicy, SubstituteCandidate
from pharmassist.services.drugs.normalization import canonical_composition, clean_name


def _composition_key(item: InventoryItem) -> Optional[str]:
    value = item.composition or item.generic_name
    if not value:
        return None
    parts = [clean_name(part) for part in value.replace(",", "+").split("+")]
    return canonical_composition(parts) or None


def find_better_margin_substitutes(
    reference: InventoryItem,
    pool: Iterable[InventoryItem],
    policy: Optional[MarginPolicy] = None,
) -> List[SubstituteCandidate]:
    """
    Same-composition items that earn more than ``reference``, best profit first.

    The reference itself (same name) is never returned. Items with unknown
    composition never qualify.
    """
    policy = policy or MarginPolicy()
    reference_key = _composition_key(reference)
    if reference_key is None:
        return []

    candidates = []
    for item in pool:
        if item.name.strip().lower() == reference.name.strip().lower():
            continue
        if _composition_key(item) != reference_key:
            continue
        profit_gain = item.profit - reference.profit
        margin_gain = item.margin_percent - reference.margin_percent
        if profit_gain < policy.min_profit_gain and margin_gain < policy.min_margin_gain_points:
            continue
        candidates.append(
            SubstituteCandidate(
                name=item.name,
                generic_name=item.generic_name or item.composition or reference_key,
                price=item.sale_price,
                margin_percent=round(item.margin_percent, 2),
                profit=round(item.profit, 2),
                savings=round(reference.sale_price - item.sale_price, 2),
            )
        )
    return sorted(candidates, key=lambda c: (-c.profit, c.name.lower()))


def inventory_items(rows: Iterable[Dict[str, Any]]) -> List[InventoryItem]:
    """InventoryItems from raw inventory rows; rows without a name are skipped."""
    items = []
    for row in rows:
        name = row.get("medicine_name") or row.get("name")
        if not name:
            continue
        items.append(
            InventoryItem(
                name=str(name),
                generic_name=row.get("generic_name"),
                composition=row.get("composition"),
                cost_price=float(row.get("cost_price") or 0),
                sale_price=float(row.get("unit_price") or row.get("sale_price") or 0),
                quantity=int(row.get("quantity") or 0),
            )
        )
    return items
