"""
Offline heuristic parser: last-resort item extraction with no network.

"2 patta dolo aur ek box crocin" -> [("Dolo", 30), ("Crocin", 10)]

Rules, applied per contiguous run of non-filler tokens:
- number words and digit tokens set the quantity accumulator (starts at 1)
- unit words multiply it (a patta/strip is 15 units, a box is 10)
- a filler word ends the current run
- everything else is name text, joined and title-cased
- a digit of 50 or more that follows name text is a strength ("Dolo 650"),
  not a quantity
- a run with a quantity but no name applies that quantity to the previous
  item ("dolo ke 2 patte")
"""
import re
from typing import Dict, List, Optional

from pharmassist.models.documents import VoiceItem

_TOKEN_RE = re.compile(r"[a-z0-9]+")

NUMBER_WORDS: Dict[str, int] = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11,
    "twelve": 12, "fifteen": 15, "twenty": 20,
    "ek": 1, "do": 2, "teen": 3, "char": 4, "chaar": 4, "paanch": 5,
    "panch": 5, "chhe": 6, "che": 6, "saat": 7, "aath": 8, "nau": 9,
    "das": 10, "bees": 20,
}

UNIT_MULTIPLIERS: Dict[str, int] = {
    "patta": 15, "patte": 15, "patti": 15, "pattas": 15,
    "strip": 15, "strips": 15,
    "box": 10, "boxes": 10, "dabba": 10, "dabbe": 10, "dibba": 10,
    "dozen": 12, "darjan": 12,
    "pack": 10, "packs": 10, "packet": 10,
    "tablet": 1, "tablets": 1, "tab": 1, "tabs": 1, "goli": 1,
    "bottle": 1, "bottles": 1, "piece": 1, "pieces": 1, "pcs": 1,
    "unit": 1, "units": 1, "capsule": 1, "capsules": 1, "cap": 1,
}

FILLER_WORDS = frozenset({
    "a", "an", "the", "and", "aur", "or", "of", "for", "with", "to", "in",
    "me", "mein", "please", "plz", "pls", "add", "give", "de", "dena",
    "dijiye", "ke", "ka", "ki", "se", "hai", "chahiye", "bhai",
    "sir", "stock", "bill", "karo", "kar", "kardo", "banao", "need", "want",
    "i", "we", "is", "there", "any", "have", "x",
})

STRENGTH_THRESHOLD = 50


class _Run:
    def __init__(self) -> None:
        self.name_tokens: List[str] = []
        self.quantity = 1
        self.quantity_set = False

    def set_quantity(self, value: int) -> None:
        self.quantity = value
        self.quantity_set = True

    def multiply(self, factor: int) -> None:
        self.quantity *= factor
        self.quantity_set = True


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


def _number(token: str) -> Optional[int]:
    if token.isdigit():
        return int(token)
    return NUMBER_WORDS.get(token)


def parse_items(text: str) -> List[VoiceItem]:
    """Extract (name, quantity) items from free text without any network call."""
    items: List[VoiceItem] = []
    # Tracks whether the last emitted item got an explicit quantity.
    last_item_quantity_set = True
    run = _Run()

    def close_run() -> None:
        nonlocal run, last_item_quantity_set
        if run.name_tokens:
            name = " ".join(run.name_tokens).title()
            items.append(VoiceItem(name=name, quantity=max(1, run.quantity)))
            last_item_quantity_set = run.quantity_set
        elif run.quantity_set and items and not last_item_quantity_set:
            previous = items[-1]
            items[-1] = VoiceItem(name=previous.name, quantity=max(1, run.quantity))
            last_item_quantity_set = True
        run = _Run()

    for token in tokenize(text):
        if token in FILLER_WORDS:
            close_run()
            continue

        if token in UNIT_MULTIPLIERS:
            run.multiply(UNIT_MULTIPLIERS[token])
            continue

        value = _number(token)
        if value is not None:
            if token.isdigit() and run.name_tokens and value >= STRENGTH_THRESHOLD:
                run.name_tokens.append(token)
            else:
                if run.name_tokens and run.quantity_set:
                    close_run()
                run.set_quantity(value)
            continue

        run.name_tokens.append(token)

    close_run()
    return items


ORDER_WORDS = frozenset({"bill", "billing", "add", "de", "dena", "give", "order", "chahiye"})


def looks_like_order(text: str) -> bool:
    """True when the text carries a quantity, a unit or an order verb."""
    return any(
        token in ORDER_WORDS or token in UNIT_MULTIPLIERS or _number(token) is not None
        for token in tokenize(text)
    )
