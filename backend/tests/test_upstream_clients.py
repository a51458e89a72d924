"""
Wire-level tests for the HTTP clients, using httpx.MockTransport.

Each client gets its own circuit breaker so failures here never trip the
shared per-upstream breakers.
"""
import json

import httpx
import pytest

from pharmassist.core.circuit_breaker import CircuitBreaker
from pharmassist.core.errors import NetworkUnavailable, UnresolvedDrugName, UpstreamError, ValidationError
from pharmassist.models.documents import DocumentType
from pharmassist.services.ai.llm_client import LLMClient
from pharmassist.services.ai.vision import VisionAdapter
from pharmassist.services.ai.workflow_client import WorkflowClient
from pharmassist.services.drugs.reference import DrugReferenceClient


def _transport(handler):
    return httpx.MockTransport(handler)


def _workflow(handler):
    return WorkflowClient(
        "https://flows.example.com/webhook",
        transport=_transport(handler),
        circuit_breaker=CircuitBreaker("test-workflow"),
    )


def _llm(handler, api_key="test-key"):
    return LLMClient(
        "https://llm.example.com/openai/v1",
        api_key,
        "test-model",
        transport=_transport(handler),
        circuit_breaker=CircuitBreaker("test-llm"),
    )


def _vision(handler):
    return VisionAdapter(
        "https://vision.example.com/v1beta",
        "vision-key",
        "vision-model",
        transport=_transport(handler),
        circuit_breaker=CircuitBreaker("test-vision"),
    )


# -------------------------------------------------------------------- workflow

@pytest.mark.asyncio
async def test_workflow_posts_to_webhook_path():
    """invoke posts the payload to the capability's webhook and returns the body."""
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"reply": "ok"})

    body = await _workflow(handler).invoke("interactions", {"drugs": ["Dolo"]})
    assert body == {"reply": "ok"}
    assert seen["url"] == "https://flows.example.com/webhook/interactions"
    assert seen["body"] == {"drugs": ["Dolo"]}


@pytest.mark.asyncio
async def test_workflow_fenced_body_is_normalized():
    """A text body with code fences is still a JSON object."""
    handler = lambda request: httpx.Response(200, text='```json\n{"output": "hi"}\n```')
    assert await _workflow(handler).invoke("chat", {}) == {"output": "hi"}


@pytest.mark.asyncio
async def test_workflow_error_envelope_raises():
    """A 200 with an error field is an upstream error."""
    handler = lambda request: httpx.Response(200, json={"error": "Workflow could not be started"})
    with pytest.raises(UpstreamError):
        await _workflow(handler).invoke("chat", {})


@pytest.mark.asyncio
async def test_workflow_http_error_raises():
    """Non-2xx statuses raise with the status attached."""
    handler = lambda request: httpx.Response(404, text="not registered")
    with pytest.raises(UpstreamError) as exc_info:
        await _workflow(handler).invoke("chat", {})
    assert exc_info.value.status == 404


@pytest.mark.asyncio
async def test_workflow_connect_error_is_network_unavailable():
    """Transport failures map to NetworkUnavailable."""
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkUnavailable):
        await _workflow(handler).invoke("chat", {})


@pytest.mark.asyncio
async def test_workflow_non_object_body_is_validation_error():
    """A JSON array is not a workflow answer."""
    handler = lambda request: httpx.Response(200, json=[1, 2, 3])
    with pytest.raises(ValidationError):
        await _workflow(handler).invoke("chat", {})


@pytest.mark.asyncio
async def test_open_circuit_fails_fast():
    """Once the breaker is open no request is sent."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="down")

    client = WorkflowClient(
        "https://flows.example.com/webhook",
        transport=_transport(handler),
        circuit_breaker=CircuitBreaker("test-open", min_requests_for_threshold=2),
    )
    for _ in range(2):
        with pytest.raises(UpstreamError):
            await client.invoke("chat", {})
    with pytest.raises(NetworkUnavailable):
        await client.invoke("chat", {})
    assert len(calls) == 2


# ------------------------------------------------------------------------- llm

@pytest.mark.asyncio
async def test_llm_complete_returns_content_in_json_mode():
    """complete sends auth and response_format and returns the message text."""
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "choices": [{"message": {"content": '{"tool": "direct_reply"}'}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 5},
        })

    text = await _llm(handler).complete("route", [{"role": "user", "content": "hi"}], json_mode=True)
    assert text == '{"tool": "direct_reply"}'
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert seen["body"]["model"] == "test-model"


@pytest.mark.asyncio
async def test_llm_without_key_is_unavailable():
    """No API key configured: the tier fails without a request."""
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(NetworkUnavailable):
        await _llm(handler, api_key=None).complete("route", [])


@pytest.mark.asyncio
async def test_llm_empty_choice_is_validation_error():
    """A completion without content is invalid."""
    handler = lambda request: httpx.Response(200, json={"choices": []})
    with pytest.raises(ValidationError):
        await _llm(handler).complete("route", [])


@pytest.mark.asyncio
async def test_llm_transcribe_posts_audio():
    """transcribe uploads the file and returns the stripped text."""
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["content"] = request.content
        return httpx.Response(200, json={"text": "  do patta dolo  "})

    text = await _llm(handler).transcribe(b"RIFFaudio", filename="order.wav")
    assert text == "do patta dolo"
    assert seen["path"].endswith("/audio/transcriptions")
    assert b"order.wav" in seen["content"]


# ---------------------------------------------------------------------- vision

@pytest.mark.asyncio
async def test_vision_sends_inline_image():
    """analyze sends prompt plus base64 image and returns candidate text."""
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Dolo 650"}]}}]})

    text = await _vision(handler).analyze("What is this?", b"\x89PNG", "image/png")
    assert text == "Dolo 650"
    assert ":generateContent" in seen["url"]
    assert "key=vision-key" in seen["url"]
    parts = seen["body"]["contents"][0]["parts"]
    assert parts[0]["text"] == "What is this?"
    assert parts[1]["inline_data"] == {"mime_type": "image/png", "data": "iVBORw=="}


@pytest.mark.asyncio
async def test_vision_blocked_answer_is_validation_error():
    """No candidate text is a failed tier."""
    handler = lambda request: httpx.Response(200, json={"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}})
    with pytest.raises(ValidationError):
        await _vision(handler).analyze("What is this?", b"img")


@pytest.mark.asyncio
async def test_vision_extracts_prescription():
    """extract_document validates the model JSON into a DocumentAnalysis."""
    answer = '```json\n{"items": [{"name": "Azee 500", "quantity": 3, "dosage": "1-0-0"}], "doctor_name": "Dr. Rao"}\n```'
    handler = lambda request: httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": answer}]}}]})

    analysis = await _vision(handler).extract_document(b"img", DocumentType.PRESCRIPTION)
    assert analysis.document_type == DocumentType.PRESCRIPTION
    assert analysis.items[0].name == "Azee 500"
    assert analysis.doctor_name == "Dr. Rao"


# ------------------------------------------------------------------- reference

def _reference(handler):
    return DrugReferenceClient(
        "https://rxnav.example.com/REST",
        "https://fda.example.com/drug/label.json",
        transport=_transport(handler),
        circuit_breaker=CircuitBreaker("test-reference"),
    )


@pytest.mark.asyncio
async def test_rxnav_resolves_ingredients():
    """Approximate match, then ingredient concepts of the matched rxcui."""
    def handler(request):
        if request.url.path.endswith("/approximateTerm.json"):
            assert request.url.params["term"] == "combiflam"
            return httpx.Response(200, json={"approximateGroup": {"candidate": [{"rxcui": "123"}]}})
        assert request.url.path.endswith("/rxcui/123/related.json")
        return httpx.Response(200, json={"relatedGroup": {"conceptGroup": [
            {"tty": "IN", "conceptProperties": [{"name": "Ibuprofen"}, {"name": "Acetaminophen"}]},
        ]}})

    assert await _reference(handler).approximate_ingredients("combiflam") == ["acetaminophen", "ibuprofen"]


@pytest.mark.asyncio
async def test_rxnav_without_candidate_is_unresolved():
    """No approximate candidate raises UnresolvedDrugName."""
    handler = lambda request: httpx.Response(200, json={"approximateGroup": {}})
    with pytest.raises(UnresolvedDrugName):
        await _reference(handler).approximate_ingredients("qwerty")


@pytest.mark.asyncio
async def test_openfda_label_summary():
    """fetch_label returns a trimmed label summary."""
    handler = lambda request: httpx.Response(200, json={"results": [{
        "openfda": {"brand_name": ["Tylenol"], "generic_name": ["ACETAMINOPHEN"]},
        "warnings": ["Liver warning", "Allergy alert", "Do not exceed", "Extra"],
        "drug_interactions": ["Warfarin: bleeding"],
        "indications_and_usage": ["Pain relief"],
    }]})

    label = await _reference(handler).fetch_label("paracetamol")
    assert label["brand_name"] == "Tylenol"
    assert len(label["warnings"]) == 3
    assert label["indications"] == "Pain relief"
    assert label["source"] == "FDA OpenData"


@pytest.mark.asyncio
async def test_openfda_no_match_is_none():
    """OpenFDA answers 404 when no label matches."""
    handler = lambda request: httpx.Response(404, json={"error": {"code": "NOT_FOUND"}})
    assert await _reference(handler).fetch_label("unknownium") is None


@pytest.mark.asyncio
async def test_rxnav_html_body_is_validation_error():
    """A 200 portal or proxy page is not JSON: ValidationError, nothing else."""
    handler = lambda request: httpx.Response(200, text="<html>proxy login</html>")
    with pytest.raises(ValidationError):
        await _reference(handler).approximate_ingredients("zyx")


@pytest.mark.parametrize(
    "body",
    [
        [],
        {"approximateGroup": []},
        {"approximateGroup": {"candidate": "123"}},
        {"approximateGroup": {"candidate": [None, {"rxcui": "1"}]}},
    ],
)
@pytest.mark.asyncio
async def test_rxnav_odd_candidate_shapes(body):
    """Unexpected candidate shapes are typed errors, never AttributeError or TypeError."""
    handler = lambda request: httpx.Response(200, json=body)
    with pytest.raises((UnresolvedDrugName, ValidationError)):
        await _reference(handler).approximate_ingredients("zyx")


@pytest.mark.asyncio
async def test_rxnav_odd_concept_groups_are_unresolved():
    """Malformed concept groups carry no ingredient names."""
    def handler(request):
        if request.url.path.endswith("/approximateTerm.json"):
            return httpx.Response(200, json={"approximateGroup": {"candidate": [{"rxcui": "9"}]}})
        return httpx.Response(200, json={"relatedGroup": {"conceptGroup": ["junk", {"conceptProperties": "x"}]}})

    with pytest.raises(UnresolvedDrugName):
        await _reference(handler).approximate_ingredients("zyx")


@pytest.mark.asyncio
async def test_openfda_html_body_is_validation_error():
    """fetch_label turns a non-JSON 200 into ValidationError."""
    handler = lambda request: httpx.Response(200, text="<html>maintenance</html>")
    with pytest.raises(ValidationError):
        await _reference(handler).fetch_label("paracetamol")


@pytest.mark.asyncio
async def test_openfda_loose_label_fields():
    """String fields where lists are expected are still summarised."""
    handler = lambda request: httpx.Response(200, json={"results": [{
        "openfda": "none",
        "warnings": "Single warning",
    }]})

    label = await _reference(handler).fetch_label("paracetamol")
    assert label["brand_name"] == "paracetamol"
    assert label["generic_name"] is None
    assert label["warnings"] == ["Single warning"]
    assert label["drug_interactions"] == []
