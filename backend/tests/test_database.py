"""
Unit tests for the Supabase-backed pharmacy store.

The Supabase client is a MagicMock; tests check which table and filters
each tool operation uses and that writes happen exactly once.
"""
from unittest.mock import MagicMock, patch

import pytest

from pharmassist.core.database import PharmacyStore
from pharmassist.core.errors import NetworkUnavailable


def test_find_stock_filters_by_name_and_shop():
    client = MagicMock()
    query = client.table.return_value.select.return_value.ilike.return_value
    query.eq.return_value.limit.return_value.execute.return_value.data = [
        {"medicine_name": "Dolo 650", "quantity": 40},
    ]

    rows = PharmacyStore(client).find_stock("shop-1", "dolo")

    assert rows == [{"medicine_name": "Dolo 650", "quantity": 40}]
    client.table.assert_called_with("inventory")
    client.table.return_value.select.return_value.ilike.assert_called_with("medicine_name", "%dolo%")
    query.eq.assert_called_with("shop_id", "shop-1")


def test_sales_summary_totals_recent_orders():
    client = MagicMock()
    query = client.table.return_value.select.return_value.gte.return_value
    query.eq.return_value.execute.return_value.data = [
        {"total_amount": 120.5},
        {"total_amount": "80"},
        {"total_amount": None},
    ]

    summary = PharmacyStore(client).sales_summary("shop-1", "week")

    assert summary == {"period": "week", "orders": 3, "revenue": 200.5}
    client.table.assert_called_with("orders")


def test_stock_draft_is_a_single_insert():
    client = MagicMock()
    client.table.return_value.insert.return_value.execute.return_value.data = [{"id": 7}]

    row = PharmacyStore(client).add_stock_draft("shop-1", "Dolo 650", 30)

    assert row == {"id": 7}
    client.table.return_value.insert.assert_called_once()
    inserted = client.table.return_value.insert.call_args[0][0]
    assert inserted["status"] == "pending"
    assert inserted["quantity"] == 30


def test_reorder_entry_is_upserted_per_item():
    client = MagicMock()
    client.table.return_value.upsert.return_value.execute.return_value.data = []

    row = PharmacyStore(client).add_to_reorder_list("shop-1", "Azee", 5)

    assert row["medicine_name"] == "Azee"
    client.table.assert_called_with("shortbook")
    assert client.table.return_value.upsert.call_args.kwargs["on_conflict"] == "shop_id,medicine_name"


def test_unconfigured_store_is_unavailable():
    with patch("pharmassist.core.database.get_supabase_client", return_value=None):
        with pytest.raises(NetworkUnavailable):
            PharmacyStore().list_inventory("shop-1")
