"""
Unit tests for the offline order parser.
"""
import pytest

from pharmassist.services.ai.offline_parser import looks_like_order, parse_items


def _pairs(text):
    return [(item.name, item.quantity) for item in parse_items(text)]


def test_hinglish_units_multiply_quantity():
    """A patta is a strip of 15; a box is 10."""
    assert _pairs("2 patta dolo aur ek box crocin") == [("Dolo", 30), ("Crocin", 10)]


def test_strength_stays_in_the_name():
    """A number of 50 or more after a name is a strength, not a quantity."""
    assert _pairs("Dolo 650 2 strips") == [("Dolo 650", 30)]


def test_trailing_quantity_applies_to_previous_item():
    """"dolo ke 2 patte" puts the quantity on dolo."""
    assert _pairs("dolo ke 2 patte") == [("Dolo", 30)]


def test_missing_quantity_defaults_to_one():
    """An item with no quantity is ordered once."""
    assert _pairs("azee") == [("Azee", 1)]


def test_number_words_in_english():
    """English number words set the quantity."""
    assert _pairs("pan d three tablets") == [("Pan D", 3)]


def test_nothing_to_parse():
    """Filler only yields no items."""
    assert parse_items("please give me") == []
    assert parse_items("") == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2 patta dolo", True),
        ("bill banao crocin", True),
        ("one strip azee", True),
        ("what is the dose of paracetamol for a child", False),
        ("hello", False),
    ],
)
def test_looks_like_order(text, expected):
    """Only text with a quantity, unit or order verb is treated as an order."""
    assert looks_like_order(text) is expected
