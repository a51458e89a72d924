"""
Unit tests for the moving-average restock forecast.
"""
from pharmassist.models.documents import SalesRecord
from pharmassist.services.forecast import (
    CONFIDENCE,
    DEAD_STOCK_CONFIDENCE,
    aggregate_sales,
    moving_average_forecast,
)


def test_low_stock_predicts_reorder_quantity():
    """60 sold in 30 days is 2/day; 16 days of cover is 32; 10 in stock needs 22."""
    [entry] = moving_average_forecast([SalesRecord(medicine_name="Dolo 650", quantity=60, current_stock=10)])
    assert entry.avg_daily_sales == 2.0
    assert entry.predicted_quantity == 22
    assert entry.confidence_score == CONFIDENCE
    assert entry.reason.startswith("Low Stock")


def test_healthy_stock_predicts_nothing():
    """Stock above the reorder point needs no restock."""
    [entry] = moving_average_forecast([SalesRecord(medicine_name="Azee", quantity=30, current_stock=100)])
    assert entry.predicted_quantity == 0
    assert entry.reason.startswith("Healthy")


def test_dead_stock_is_flagged():
    """No sales in the window is dead stock at low confidence."""
    [entry] = moving_average_forecast([SalesRecord(medicine_name="Corex", quantity=0, current_stock=40)])
    assert entry.predicted_quantity == 0
    assert entry.confidence_score == DEAD_STOCK_CONFIDENCE
    assert entry.reason.startswith("Dead Stock")


def test_sales_for_the_same_medicine_are_summed():
    """Repeated rows aggregate; the latest stock figure wins."""
    totals = aggregate_sales([
        SalesRecord(medicine_name="Dolo", quantity=10, current_stock=50),
        SalesRecord(medicine_name="dolo", quantity=20, current_stock=30),
    ])
    assert list(totals) == ["dolo"]
    assert totals["dolo"].quantity == 30
    assert totals["dolo"].current_stock == 30


def test_items_needing_stock_come_first():
    """Entries are ordered by predicted quantity, largest first."""
    entries = moving_average_forecast([
        SalesRecord(medicine_name="Healthy", quantity=30, current_stock=500),
        SalesRecord(medicine_name="Urgent", quantity=300, current_stock=0),
        SalesRecord(medicine_name="Low", quantity=60, current_stock=10),
    ])
    assert [e.medicine_name for e in entries] == ["Urgent", "Low", "Healthy"]


def test_empty_history_gives_no_entries():
    """No history, no forecast."""
    assert moving_average_forecast([]) == []
