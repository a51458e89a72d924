"""
Drug interaction engine.

Every tier's raw findings pass through ``consolidate`` so the shown list has
the same guarantees whichever tier produced it:
- duplicate therapy (same canonical generic twice) is always reported
- the static known-interaction table is a floor: a listed pair is never
  missing or reported below its listed severity
- tier findings are renamed onto the checked drugs whatever name the tier
  used (brand, generic, synonym); findings about other drugs are dropped
- one finding per unordered pair, at the highest severity seen
- only Moderate, Major and Severe findings are kept
"""
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pharmassist.core.errors import PharmassistError, ValidationError
from pharmassist.core.logging import get_logger
from pharmassist.models.drugs import DrugEntity, InteractionFinding, Severity
from pharmassist.services.ai.llm_client import LLMClient, get_llm_client
from pharmassist.services.ai.normalizer import normalize, unwrap
from pharmassist.services.ai.prompts import INTERACTION_PROMPT
from pharmassist.services.drugs.aliases import KNOWN_INTERACTIONS
from pharmassist.services.drugs.normalization import offline_generic
from pharmassist.services.drugs.reference import DrugReferenceClient, get_reference_client

logger = get_logger(__name__)

MIN_REPORTED_SEVERITY = Severity.MODERATE
LABEL_NOTE_CHARS = 400


def _ingredients(entity: DrugEntity) -> List[str]:
    return [part.strip() for part in entity.generic_name.split(" + ") if part.strip()]


def find_duplicate_therapy(entities: Sequence[DrugEntity]) -> List[InteractionFinding]:
    """
    Two entries with the same canonical generic, or one composition contained
    in the other (Dolo + Combiflam both carry paracetamol).
    """
    findings = []
    for first, second in combinations(entities, 2):
        a, b = first.generic_name.lower(), second.generic_name.lower()
        shared = sorted(set(_ingredients(first)) & set(_ingredients(second)))
        if a != b and a not in b and b not in a and not shared:
            continue
        ingredient = a if a == b else (", ".join(shared) or min(a, b, key=len))
        findings.append(
            InteractionFinding(
                drugs=(first.surface_name, second.surface_name),
                severity=Severity.MAJOR,
                description=f"Duplicate therapy: both contain {ingredient}. Risk of overdose.",
                recommendation="Dispense only one of these products.",
                duplicate_therapy=True,
            )
        )
    return findings


def known_interactions(entities: Sequence[DrugEntity]) -> List[InteractionFinding]:
    """Findings from the static table, matched on ingredients."""
    findings = []
    for first, second in combinations(entities, 2):
        first_ingredients = set(_ingredients(first))
        second_ingredients = set(_ingredients(second))
        for drug_a, drug_b, severity, description, recommendation in KNOWN_INTERACTIONS:
            if (drug_a in first_ingredients and drug_b in second_ingredients) or (
                drug_b in first_ingredients and drug_a in second_ingredients
            ):
                findings.append(
                    InteractionFinding(
                        drugs=(first.surface_name, second.surface_name),
                        severity=severity,
                        description=description,
                        recommendation=recommendation,
                    )
                )
    return findings


def match_entity(name: str, entities: Sequence[DrugEntity]) -> Optional[DrugEntity]:
    """
    The checked drug a tier means by ``name``, or None when it is not one of them.

    Tiers name drugs by brand, generic or international synonym; all of them
    are compared on the synonym-folded composition.
    """
    key = name.strip().lower()
    if not key:
        return None
    for entity in entities:
        if key == entity.surface_name.lower():
            return entity

    generic = offline_generic(name)
    for entity in entities:
        if generic == offline_generic(entity.generic_name) or key in entity.brand_aliases:
            return entity
    for entity in entities:
        if generic in {offline_generic(part) for part in _ingredients(entity)}:
            return entity
    return None


def anchor_finding(finding: InteractionFinding, entities: Sequence[DrugEntity]) -> Optional[InteractionFinding]:
    """
    The finding renamed onto the surface names of the checked drugs.

    None when either drug is not among ``entities`` or both names are the
    same drug; duplicate therapy is only ever reported by the local check.
    """
    first, second = (match_entity(name, entities) for name in finding.drugs)
    if first is None or second is None or first is second:
        logger.debug("interaction_finding_dropped", drugs=list(finding.drugs))
        return None
    return InteractionFinding.model_validate(
        {**finding.model_dump(), "drugs": (first.surface_name, second.surface_name)}
    )


def parse_findings(raw: Any, entities: Sequence[DrugEntity]) -> List[InteractionFinding]:
    """
    Findings from a tier payload ({"interactions": [...]}) or a bare list.

    Entries without two drug names, or naming a drug that was not checked,
    are dropped; unknown severities parse as Moderate.
    """
    if isinstance(raw, dict):
        raw = raw.get("interactions", raw.get("findings", []))
    if not isinstance(raw, list):
        raise ValidationError("interaction payload is not a list", raw)

    findings = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        drugs = entry.get("drugs")
        if isinstance(drugs, (list, tuple)) and len(drugs) == 2:
            first, second = drugs
        else:
            first, second = entry.get("drug1"), entry.get("drug2")
        if not first or not second:
            continue
        finding = anchor_finding(
            InteractionFinding(
                drugs=(str(first), str(second)),
                severity=Severity.parse(entry.get("severity")),
                description=str(entry.get("description") or "Interaction reported."),
                recommendation=str(
                    entry.get("recommendation")
                    or "Consult the prescribing doctor before dispensing together."
                ),
            ),
            entities,
        )
        if finding is not None:
            findings.append(finding)
    return findings


def consolidate(
    entities: Sequence[DrugEntity],
    raw_findings: Iterable[InteractionFinding] = (),
) -> List[InteractionFinding]:
    """Merge duplicates, known interactions and tier findings; keep the worst per pair."""
    anchored = [anchor_finding(finding, entities) for finding in raw_findings]
    merged: Dict[str, InteractionFinding] = {}
    for finding in [*find_duplicate_therapy(entities), *known_interactions(entities), *anchored]:
        if finding is None:
            continue
        current = merged.get(finding.pair_key)
        if current is None or finding.severity.rank > current.severity.rank:
            merged[finding.pair_key] = finding

    kept = [f for f in merged.values() if f.severity.rank >= MIN_REPORTED_SEVERITY.rank]
    return sorted(kept, key=lambda f: (-f.severity.rank, f.pair_key))


class InteractionEngine:
    """Model-backed interaction lookup on canonical names, grounded in label text."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        reference_client: Optional[DrugReferenceClient] = None,
    ):
        self._llm_client = llm_client
        self._reference_client = reference_client

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    @property
    def reference_client(self) -> DrugReferenceClient:
        if self._reference_client is None:
            self._reference_client = get_reference_client()
        return self._reference_client

    async def label_notes(self, entities: Sequence[DrugEntity]) -> Dict[str, str]:
        """
        OpenFDA interaction text per drug, keyed by surface name.

        Label lookups are best-effort: a drug without a label, or an
        unreachable OpenFDA, just contributes no note.
        """
        notes = {}
        for entity in entities:
            try:
                label = await self.reference_client.fetch_label(entity.generic_name)
            except PharmassistError as e:
                logger.info("drug_label_unavailable", drug=entity.surface_name, error=str(e))
                continue
            if not label:
                continue
            text = " ".join(label.get("drug_interactions") or label.get("warnings") or [])
            if text.strip():
                notes[entity.surface_name] = text.strip()[:LABEL_NOTE_CHARS]
        return notes

    async def check(self, entities: Sequence[DrugEntity]) -> List[InteractionFinding]:
        """
        Raw findings for the given drugs.

        When duplicate therapy is already present the model is not consulted:
        the duplicate is the finding that matters and it is deterministic.

        Raises:
            NetworkUnavailable / UpstreamError / ValidationError
        """
        if len(entities) < 2:
            return []
        if find_duplicate_therapy(entities):
            return []

        drug_list = ", ".join(f"{e.surface_name} ({e.generic_name})" for e in entities)
        prompt = INTERACTION_PROMPT.format(drugs=drug_list)
        notes = await self.label_notes(entities)
        if notes:
            prompt += "\n\nFDA label notes:\n" + "\n".join(f"- {name}: {text}" for name, text in notes.items())

        text = await self.llm_client.complete(
            "interactions",
            [{"role": "user", "content": prompt}],
            json_mode=True,
            max_tokens=800,
        )
        payload = unwrap(normalize(text, fallback=None), expect=dict)
        findings = parse_findings(payload, entities)
        logger.info(
            "interaction_engine_checked",
            drugs=len(entities),
            findings=len(findings),
            label_notes=len(notes),
        )
        return findings


_engine: Optional[InteractionEngine] = None


def get_interaction_engine() -> InteractionEngine:
    global _engine
    if _engine is None:
        _engine = InteractionEngine()
    return _engine
