"""
In-memory stand-ins for the external collaborators.

None of these perform network I/O. Each records its calls so tests can
assert on what was sent and how many times.
"""
import json
from typing import Any, Dict, List, Optional

from pharmassist.core.cache import CacheClient
from pharmassist.core.errors import NetworkUnavailable
from pharmassist.core.rate_limit import EndpointRateLimiter
from pharmassist.models.drugs import MarginPolicy
from pharmassist.services.ai.orchestration import CapabilityOrchestrator
from pharmassist.services.ai.speech import SpeechAdapter
from pharmassist.services.ai.tools import ToolExecutor, ToolRouter
from pharmassist.services.drugs.compliance import ComplianceChecker
from pharmassist.services.drugs.interactions import InteractionEngine
from pharmassist.services.drugs.market import MarketAnalyzer
from pharmassist.services.drugs.normalization import DrugNormalizer


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DummyLLMClient:
    """
    Scripted completion client.

    ``replies`` maps an operation name ("route", "synthesize", "interactions"
    ...) to a string, a JSON-serialisable value, or an exception to raise.
    Operations without a scripted reply fail as if the API were unreachable.
    """

    def __init__(self, replies: Optional[Dict[str, Any]] = None, transcript: Any = None):
        self.replies = dict(replies or {})
        self.transcript = transcript
        self.calls: List[tuple] = []

    async def complete(self, operation, messages, json_mode=False, max_tokens=1024, temperature=0.1, model=None):
        self.calls.append((operation, messages))
        reply = self.replies.get(operation)
        if reply is None:
            raise NetworkUnavailable("llm", "offline")
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)

    async def transcribe(self, audio, filename="voice.webm", language=None):
        self.calls.append(("transcribe", filename))
        if self.transcript is None:
            raise NetworkUnavailable("llm", "offline")
        if isinstance(self.transcript, Exception):
            raise self.transcript
        return self.transcript

    def operations(self) -> List[str]:
        return [operation for operation, _ in self.calls]


class DummyWorkflow:
    """Workflow backend stub: ``bodies`` maps webhook name to a body or exception."""

    def __init__(self, bodies: Optional[Dict[str, Any]] = None):
        self.bodies = dict(bodies or {})
        self.calls: List[tuple] = []

    async def invoke(self, webhook, payload):
        self.calls.append((webhook, payload))
        body = self.bodies.get(webhook)
        if body is None:
            raise NetworkUnavailable("workflow", "offline")
        if isinstance(body, Exception):
            raise body
        return body


class DummyVision:
    def __init__(self, text: Optional[str] = None, analysis=None):
        self.text = text
        self.analysis = analysis
        self.calls = 0

    async def analyze(self, prompt, image, mime_type="image/jpeg"):
        self.calls += 1
        if self.text is None:
            raise NetworkUnavailable("vision", "offline")
        return self.text

    async def extract_document(self, image, document_type, mime_type="image/jpeg"):
        self.calls += 1
        if self.analysis is None:
            raise NetworkUnavailable("vision", "offline")
        return self.analysis


class OfflineReference:
    """Drug reference client that only knows what it is given."""

    def __init__(
        self,
        ingredients: Optional[Dict[str, List[str]]] = None,
        labels: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.ingredients = ingredients or {}
        self.labels = labels or {}
        self.calls: List[str] = []

    async def approximate_ingredients(self, term):
        self.calls.append(term)
        if term in self.ingredients:
            return self.ingredients[term]
        raise NetworkUnavailable("drug_reference", "offline")

    async def fetch_label(self, name):
        self.calls.append(name)
        if name in self.labels:
            return self.labels[name]
        raise NetworkUnavailable("drug_reference", "offline")


class FakeStore:
    """Pharmacy store kept in memory; ``fail=True`` makes every call raise."""

    def __init__(self, inventory: Optional[List[Dict[str, Any]]] = None, fail: bool = False):
        self.inventory = list(inventory or [])
        self.fail = fail
        self.writes: List[tuple] = []

    def _check(self):
        if self.fail:
            raise NetworkUnavailable("supabase", "offline")

    def find_stock(self, shop_id, item_name):
        self._check()
        return [row for row in self.inventory if item_name.lower() in row["medicine_name"].lower()]

    def list_inventory(self, shop_id):
        self._check()
        return list(self.inventory)

    def sales_summary(self, shop_id, period):
        self._check()
        return {"period": period, "orders": 3, "revenue": 450.0}

    def add_stock_draft(self, shop_id, item_name, quantity):
        self._check()
        row = {"medicine_name": item_name, "quantity": quantity, "status": "pending"}
        self.writes.append(("inventory_drafts", row))
        return row

    def add_to_reorder_list(self, shop_id, item_name, quantity):
        self._check()
        row = {"medicine_name": item_name, "quantity": quantity, "status": "open"}
        self.writes.append(("shortbook", row))
        return row

    def save_patient_note(self, shop_id, patient_name, note):
        self._check()
        row = {"patient_name": patient_name, "note": note}
        self.writes.append(("patient_notes", row))
        return row


def offline_normalizer(ingredients: Optional[Dict[str, List[str]]] = None) -> DrugNormalizer:
    return DrugNormalizer(reference_client=OfflineReference(ingredients), cache=CacheClient(circuit_breaker=None))


def build_orchestrator(
    llm: Optional[DummyLLMClient] = None,
    workflow: Optional[DummyWorkflow] = None,
    vision: Optional[DummyVision] = None,
    store: Optional[FakeStore] = None,
    clock: Optional[FakeClock] = None,
    normalizer: Optional[DrugNormalizer] = None,
) -> CapabilityOrchestrator:
    """Orchestrator wired to stubs only; every collaborator is offline by default."""
    llm = llm or DummyLLMClient()
    store = store or FakeStore(fail=True)
    normalizer = normalizer or offline_normalizer()
    market = MarketAnalyzer(store=store, normalizer=normalizer, llm_client=llm, policy=MarginPolicy())
    return CapabilityOrchestrator(
        workflow=workflow or DummyWorkflow(),
        llm_client=llm,
        vision=vision or DummyVision(),
        speech=SpeechAdapter(llm),
        router=ToolRouter(llm),
        executor=ToolExecutor(llm, store=store, market=market),
        normalizer=normalizer,
        interactions=InteractionEngine(llm, reference_client=OfflineReference()),
        compliance=ComplianceChecker(llm),
        market=market,
        rate_limiter=EndpointRateLimiter(window_seconds=2.0, clock=clock or FakeClock()),
    )
