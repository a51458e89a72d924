"""
Moving-average restock forecast (no network).

avg_daily_sales = units sold in the window / window days
reorder_point   = avg_daily_sales * (lead time + safety stock days)
predicted       = reorder_point - current stock, rounded up, when stock is
                  below the reorder point
"""
import math
from typing import Dict, Iterable, List

from pharmassist.models.documents import ForecastEntry, SalesRecord

WINDOW_DAYS = 30
LEAD_TIME_DAYS = 2
SAFETY_STOCK_DAYS = 14

CONFIDENCE = 0.9
DEAD_STOCK_CONFIDENCE = 0.5


def aggregate_sales(history: Iterable[SalesRecord]) -> Dict[str, SalesRecord]:
    """One record per medicine: quantities summed, latest stock figure kept."""
    totals: Dict[str, SalesRecord] = {}
    for record in history:
        key = record.medicine_name.strip().lower()
        if not key:
            continue
        current = totals.get(key)
        if current is None:
            totals[key] = record.model_copy()
        else:
            totals[key] = current.model_copy(
                update={
                    "quantity": current.quantity + record.quantity,
                    "current_stock": record.current_stock,
                }
            )
    return totals


def moving_average_forecast(history: Iterable[SalesRecord]) -> List[ForecastEntry]:
    """Restock suggestions, items that need stock first."""
    entries = []
    for record in aggregate_sales(history).values():
        avg_daily = max(record.quantity, 0) / WINDOW_DAYS
        reorder_point = avg_daily * (LEAD_TIME_DAYS + SAFETY_STOCK_DAYS)

        if avg_daily == 0:
            entries.append(
                ForecastEntry(
                    medicine_name=record.medicine_name,
                    current_stock=record.current_stock,
                    avg_daily_sales=0.0,
                    predicted_quantity=0,
                    confidence_score=DEAD_STOCK_CONFIDENCE,
                    reason=f"Dead Stock: no sales in the last {WINDOW_DAYS} days.",
                )
            )
            continue

        if record.current_stock < reorder_point:
            predicted = math.ceil(reorder_point - record.current_stock)
            reason = (
                f"Low Stock: {record.current_stock} left, reorder point "
                f"{reorder_point:.1f} ({LEAD_TIME_DAYS}d lead + {SAFETY_STOCK_DAYS}d safety)."
            )
        else:
            predicted = 0
            reason = f"Healthy: stock covers {record.current_stock / avg_daily:.0f} days of sales."

        entries.append(
            ForecastEntry(
                medicine_name=record.medicine_name,
                current_stock=record.current_stock,
                avg_daily_sales=round(avg_daily, 2),
                predicted_quantity=predicted,
                confidence_score=CONFIDENCE,
                reason=reason,
            )
        )
    return sorted(entries, key=lambda e: (-e.predicted_quantity, e.medicine_name.lower()))
