"""
Supabase access for the pharmacy data the chat tools read and write.

Reads: current stock, prices, sales history. Writes: one insert/upsert per
tool call (draft stock entry, reorder-list entry, patient note). Nothing in
this module retries a write.

Tables: inventory, orders, inventory_drafts, shortbook, patient_notes.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from pharmassist.core.config import get_settings
from pharmassist.core.errors import NetworkUnavailable
from pharmassist.core.logging import get_logger

logger = get_logger(__name__)

PERIOD_DAYS = {"today": 1, "week": 7, "month": 30}


def get_supabase_client() -> Optional[Client]:
    """Create and return a Supabase client, or None when not configured."""
    settings = get_settings()
    supabase_url = settings.supabase_url
    supabase_key = settings.supabase_key

    if not supabase_url or not supabase_key:
        logger.warning(
            "supabase_credentials_missing",
            message="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env",
        )
        return None

    if not supabase_url.startswith("http"):
        logger.error(
            "supabase_url_invalid",
            url=supabase_url,
            message="Should start with http:// or https://",
        )
        return None

    try:
        client = create_client(supabase_url, supabase_key)
        logger.info("supabase_client_created", url_prefix=supabase_url[:30])
        return client
    except Exception as e:
        logger.error(
            "supabase_client_creation_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return None


class PharmacyStore:
    """Shop-scoped queries used as tool context and tool side effects."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        if self._client is None:
            raise NetworkUnavailable("supabase", "storage not configured")
        return self._client

    def find_stock(self, shop_id: Optional[str], item_name: str) -> List[Dict[str, Any]]:
        query = (
            self.client.table("inventory")
            .select("id, medicine_name, generic_name, composition, quantity, unit_price, cost_price, expiry_date")
            .ilike("medicine_name", f"%{item_name}%")
        )
        if shop_id:
            query = query.eq("shop_id", shop_id)
        return query.limit(10).execute().data or []

    def list_inventory(self, shop_id: Optional[str]) -> List[Dict[str, Any]]:
        query = self.client.table("inventory").select(
            "id, medicine_name, generic_name, composition, quantity, unit_price, cost_price"
        )
        if shop_id:
            query = query.eq("shop_id", shop_id)
        return query.execute().data or []

    def recent_orders(self, shop_id: Optional[str], days: int) -> List[Dict[str, Any]]:
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        query = (
            self.client.table("orders")
            .select("order_items, total_amount, created_at")
            .gte("created_at", since)
        )
        if shop_id:
            query = query.eq("shop_id", shop_id)
        return query.execute().data or []

    def sales_summary(self, shop_id: Optional[str], period: str) -> Dict[str, Any]:
        orders = self.recent_orders(shop_id, PERIOD_DAYS.get(period, 1))
        total = sum(float(order.get("total_amount") or 0) for order in orders)
        return {"period": period, "orders": len(orders), "revenue": round(total, 2)}

    def add_stock_draft(self, shop_id: Optional[str], item_name: str, quantity: int) -> Dict[str, Any]:
        row = {
            "shop_id": shop_id,
            "medicine_name": item_name,
            "quantity": quantity,
            "status": "pending",
            "source": "ai_assistant",
        }
        data = self.client.table("inventory_drafts").insert(row).execute().data or [row]
        return data[0]

    def add_to_reorder_list(self, shop_id: Optional[str], item_name: str, quantity: int) -> Dict[str, Any]:
        row = {"shop_id": shop_id, "medicine_name": item_name, "quantity": quantity, "status": "open"}
        data = (
            self.client.table("shortbook")
            .upsert(row, on_conflict="shop_id,medicine_name")
            .execute()
            .data
            or [row]
        )
        return data[0]

    def save_patient_note(self, shop_id: Optional[str], patient_name: str, note: str) -> Dict[str, Any]:
        row = {"shop_id": shop_id, "patient_name": patient_name, "note": note}
        data = self.client.table("patient_notes").insert(row).execute().data or [row]
        return data[0]


_store: Optional[PharmacyStore] = None


def get_pharmacy_store() -> PharmacyStore:
    global _store
    if _store is None:
        _store = PharmacyStore()
    return _store
