"""
Public drug-reference services.

- RxNav (RxNorm): approximate name match, then the ingredient (IN) concepts
  of the matched concept
- OpenFDA drug labels: warnings / indications text by brand or generic name
"""
from typing import Any, Dict, List, Optional

import httpx

from pharmassist.core.config import get_settings
from pharmassist.core.errors import UnresolvedDrugName, UpstreamError, ValidationError
from pharmassist.core.logging import get_logger
from pharmassist.services.upstream import UpstreamClient

logger = get_logger(__name__)


def _json_object(response: httpx.Response, operation: str) -> Dict[str, Any]:
    """
    Decoded JSON object body.

    Raises:
        ValidationError: the body is not JSON (proxy or portal pages) or not an object
    """
    try:
        body = response.json()
    except ValueError as exc:
        raise ValidationError(f"{operation} returned a non-JSON body", response.text[:200]) from exc
    if not isinstance(body, dict):
        raise ValidationError(f"{operation} returned {type(body).__name__}, expected an object", body)
    return body


def _field(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None


def _dicts(value: Any) -> List[Dict[str, Any]]:
    """The dict entries of a list; anything else is empty."""
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _strings(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value if entry]


class DrugReferenceClient(UpstreamClient):
    upstream = "drug_reference"

    def __init__(
        self,
        rxnav_base: str,
        openfda_url: str,
        timeout_seconds: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ):
        super().__init__(rxnav_base, timeout_seconds=timeout_seconds, transport=transport, **kwargs)
        self.openfda_url = openfda_url

    async def approximate_ingredients(self, term: str) -> List[str]:
        """
        Ingredient names for the closest RxNorm concept to ``term``.

        Raises:
            UnresolvedDrugName: no candidate or no ingredient concept
            ValidationError: a body that is not a JSON object
            NetworkUnavailable / UpstreamError: RxNav failure
        """
        response = await self.request(
            "rxnav_approximate",
            "GET",
            "/approximateTerm.json",
            params={"term": term, "maxEntries": 1},
        )
        body = _json_object(response, "rxnav_approximate")
        candidates = _dicts(_field(body.get("approximateGroup"), "candidate"))
        rxcui = candidates[0].get("rxcui") if candidates else None
        if not rxcui or not isinstance(rxcui, (str, int)):
            raise UnresolvedDrugName(term)

        response = await self.request(
            "rxnav_related",
            "GET",
            f"/rxcui/{rxcui}/related.json",
            params={"tty": "IN"},
        )
        body = _json_object(response, "rxnav_related")
        groups = _dicts(_field(body.get("relatedGroup"), "conceptGroup"))
        names = sorted({
            str(concept["name"]).strip().lower()
            for group in groups
            for concept in _dicts(group.get("conceptProperties"))
            if concept.get("name")
        })
        if not names:
            raise UnresolvedDrugName(term)
        logger.debug("rxnav_resolved", term=term, rxcui=rxcui, ingredients=names)
        return names

    async def fetch_label(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Label summary from OpenFDA, or None when there is no label.

        Raises:
            ValidationError: a body that is not a JSON object
            NetworkUnavailable / UpstreamError: OpenFDA failure other than 404
        """
        search = f'openfda.brand_name:"{name}" OR openfda.generic_name:"{name}"'
        try:
            response = await self.request(
                "openfda_label",
                "GET",
                self.openfda_url,
                params={"search": search, "limit": 1},
            )
        except UpstreamError as exc:
            # OpenFDA answers 404 for "no matches".
            if exc.status == 404:
                return None
            raise

        results = _dicts(_json_object(response, "openfda_label").get("results"))
        if not results:
            return None
        result = results[0]
        openfda = result.get("openfda")
        brand_names = _strings(_field(openfda, "brand_name"))
        generic_names = _strings(_field(openfda, "generic_name"))
        indications = _strings(result.get("indications_and_usage"))
        return {
            "brand_name": brand_names[0] if brand_names else name,
            "generic_name": generic_names[0] if generic_names else None,
            "warnings": (_strings(result.get("warnings")) or _strings(result.get("boxed_warning")))[:3],
            "drug_interactions": _strings(result.get("drug_interactions"))[:2],
            "indications": indications[0] if indications else "",
            "source": "FDA OpenData",
        }


_reference_client: Optional[DrugReferenceClient] = None


def get_reference_client() -> DrugReferenceClient:
    global _reference_client
    if _reference_client is None:
        settings = get_settings()
        _reference_client = DrugReferenceClient(
            settings.rxnav_api_base,
            settings.openfda_api_base,
            timeout_seconds=settings.reference_timeout_seconds,
        )
    return _reference_client
