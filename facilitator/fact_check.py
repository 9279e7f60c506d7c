from __future__ import annotations
import logging
from typing import Any, Dict, List

from langchain_core.prompts import ChatPromptTemplate

from .errors import GatewayError, PipelineError
from .evidence import EvidenceSource
from .gateway import ModelGateway
from .schemas import Claim, EvidenceItem, Verdict

logger = logging.getLogger(__name__)

MAX_EVIDENCE = 5
VERDICT_STATUSES = ("verified", "unverified", "disputed", "uncertain")
CLAIM_TYPES = ("statistical", "health", "legal", "financial", "scientific", "factual", "other")

FACT_CHECK_PROMPT = ChatPromptTemplate.from_messages([
    (
        "system",
        "You are a careful, neutral fact-checker. Analyze claims objectively and cite the numbered sources you rely on.",
    ),
    (
        "human",
        (
            "You are a fact-checker. Analyze this claim and the evidence found.\n\n"
            "Claim: \"{claim_text}\"\n\n"
            "{context_block}"
            "Search Results:\n{search_results}\n\n"
            "Analyze the claim based on the evidence and determine:\n\n"
            "1. Status: Choose one of the following:\n"
            "   - \"verified\": The claim is supported by reliable evidence\n"
            "   - \"unverified\": No sufficient evidence found\n"
            "   - \"disputed\": Evidence contradicts the claim\n"
            "   - \"uncertain\": Mixed or unclear evidence\n\n"
            "2. Confidence: A number between 0.0 and 1.0 indicating how confident you are in the assessment\n\n"
            "3. Explanation: A clear 2-3 sentence explanation of your findings\n\n"
            "4. Evidence assessment: for each numbered search result, whether it supports the claim\n\n"
            "Return your analysis as JSON:\n"
            "{{\n"
            "  \"status\": \"verified|unverified|disputed|uncertain\",\n"
            "  \"confidence\": 0.85,\n"
            "  \"explanation\": \"Your explanation here\",\n"
            "  \"evidence_assessment\": [{{\"source\": 1, \"supports\": true}}]\n"
            "}}"
        ),
    ),
])

CLAIM_EXTRACTION_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "You identify verifiable factual claims in discussion messages. Output ONLY valid JSON."),
    (
        "human",
        (
            "Analyze the following text and identify any factual claims that should be verified.\n\n"
            "Text: \"{text}\"\n\n"
            "Look for:\n"
            "- Statistical claims (numbers, percentages, dates)\n"
            "- Health or medical claims\n"
            "- Legal or financial claims\n"
            "- Historical facts\n"
            "- Scientific statements\n\n"
            "Copy each claim's text exactly as it appears in the input.\n"
            "Return a JSON object with a \"claims\" array:\n"
            "{{\"claims\": [\n"
            "  {{\n"
            "    \"claimText\": \"The specific claim\",\n"
            "    \"claimType\": \"statistical|health|legal|financial|scientific|factual\",\n"
            "    \"confidence\": 0.85,\n"
            "    \"shouldVerify\": true\n"
            "  }}\n"
            "]}}\n\n"
            "If no verifiable claims are found, return {{\"claims\": []}}"
        ),
    ),
])


def format_search_results(items: List[EvidenceItem]) -> str:
    if not items:
        return "No search results found."
    return "\n\n".join(
        f"[{idx}] {item.source_label}\n   URL: {item.url}\n   Snippet: {item.snippet}"
        for idx, item in enumerate(items, start=1)
    )


def _clamp(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, number))


def _apply_assessment(items: List[EvidenceItem], assessment: Any) -> List[EvidenceItem]:
    """Set per-source `supports` from the model's assessment; unassessed items keep the default."""
    if not isinstance(assessment, list):
        return items
    polarity: Dict[int, bool] = {}
    for entry in assessment:
        if not isinstance(entry, dict):
            continue
        source, supports = entry.get("source"), entry.get("supports")
        if isinstance(source, int) and isinstance(supports, bool):
            polarity[source] = supports
    return [
        item.model_copy(update={"supports": polarity[idx]}) if idx in polarity else item
        for idx, item in enumerate(items, start=1)
    ]


class FactCheckPipeline:
    """Search -> evidence list -> model verdict."""

    def __init__(self, gateway: ModelGateway, evidence_source: EvidenceSource, temperature: float = 0.3):
        self.gateway = gateway
        self.evidence_source = evidence_source
        self.temperature = temperature

    def check(self, claim_text: str, context: str = "") -> Verdict:
        if not claim_text or not claim_text.strip():
            raise PipelineError("Claim text is required for fact-checking")
        claim_text = claim_text.strip()

        logger.info("🔍 Fact-checking claim: %r", claim_text[:120])
        evidence = self.evidence_source.search(claim_text, limit=MAX_EVIDENCE)
        logger.info("   Found %d evidence items", len(evidence))

        system, human = FACT_CHECK_PROMPT.format_messages(
            claim_text=claim_text,
            context_block=f"Context: {context}\n\n" if context and context != claim_text else "",
            search_results=format_search_results(evidence),
        )
        try:
            result = self.gateway.complete(
                human.content, format="json", temperature=self.temperature, system=system.content
            )
        except GatewayError as e:
            raise PipelineError(f"Fact-check model call failed: {e}") from e

        data = result.data
        if not isinstance(data, dict):
            raise PipelineError("Fact-check model output was not a JSON object")
        status = str(data.get("status", "")).strip().lower()
        if status not in VERDICT_STATUSES:
            raise PipelineError(f"Fact-check model returned unknown status {data.get('status')!r}")

        explanation = str(data.get("explanation") or "")
        if status in ("verified", "disputed") and not evidence:
            # nothing to verify against
            status = "unverified"
            explanation = (explanation + " " if explanation else "") + "No sources were found to check it against."

        items = _apply_assessment(evidence, data.get("evidence_assessment"))
        verdict = Verdict(
            status=status,
            confidence=_clamp(data.get("confidence")),
            explanation=explanation,
            evidence=items[:MAX_EVIDENCE],
            model_id=result.model_id,
            elapsed_ms=result.elapsed_ms,
            search_results_found=len(evidence),
        )
        logger.info("   Verdict: %s (confidence %.2f)", verdict.status, verdict.confidence)
        return verdict

    def extract_claims(self, text: str) -> List[Claim]:
        """Model-assisted claim extraction. Best effort: returns [] on any model failure."""
        if not text or not text.strip():
            return []
        system, human = CLAIM_EXTRACTION_PROMPT.format_messages(text=text)
        try:
            result = self.gateway.complete(human.content, format="json", temperature=0.5, system=system.content)
        except GatewayError as e:
            logger.warning("Claim extraction failed: %s", e)
            return []

        data = result.data
        raw_claims = data.get("claims") if isinstance(data, dict) else data
        if not isinstance(raw_claims, list):
            return []

        claims: List[Claim] = []
        lowered = text.lower()
        for raw in raw_claims:
            if not isinstance(raw, dict):
                continue
            claim_text = str(raw.get("claimText") or "").strip()
            start = lowered.find(claim_text.lower()) if claim_text else -1
            if start < 0:
                # not a verbatim span of the message
                continue
            claim_type = raw.get("claimType")
            claims.append(Claim(
                text=text[start:start + len(claim_text)],
                claim_type=claim_type if claim_type in CLAIM_TYPES else "other",
                confidence=_clamp(raw.get("confidence")),
                should_verify=bool(raw.get("shouldVerify", True)),
                start=start,
                end=start + len(claim_text),
            ))
        return claims

