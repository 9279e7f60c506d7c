"""Pattern-based detection of factual claims in message text.

Detection is table driven: each `ClaimRule` is a compiled pattern with the
claim type and fixed confidence it assigns. `detect_claims` applies every
rule in table order; `has_high_impact_claim` applies the stricter
`HIGH_IMPACT_RULES` and stops at the first hit.

Patterns never start with an open-ended character class. Sentence-level
rules match a keyword inside a sentence (optionally followed by a second,
`requires` pattern) and report the whole sentence, so every rule runs in
linear time on long unpunctuated messages.
"""
from __future__ import annotations
import re
from typing import Iterable, Iterator, List, NamedTuple, Optional, Pattern, Tuple

from .schemas import Claim


class ClaimRule(NamedTuple):
    name: str
    pattern: Pattern[str]
    claim_type: str
    confidence: float
    min_length: int = 20  # shorter matches are single-word noise
    sentence: bool = False  # report the enclosing sentence instead of the match
    requires: Optional[Pattern[str]] = None  # must also occur after the match, same sentence


class HighImpactRule(NamedTuple):
    name: str
    pattern: Pattern[str]
    sentence: bool = False


class HighImpactMatch(NamedTuple):
    text: str
    start: int
    end: int
    rule: str


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


_SENTENCE = re.compile(r"[^.!?]+")

_DISEASE_TERMS = (
    r"(?:cancer|diabetes|covid(?:-19)?|disease|illness|infections?|autism|dementia|"
    r"alzheimer'?s|heart attacks?|strokes?|obesity|depression|flu|symptoms?)"
)
_HEALTH_VERBS = r"(?:cures?|treats?|prevents?|causes?|heals?|reverses?)"
_LEGAL_TERMS = r"(?:illegal|unlawful|against the law|law requires?|legally required|banned by law)"
_FINANCIAL_TERMS = (
    r"(?:guaranteed (?:returns?|profits?|income)|risk[- ]free (?:returns?|investments?)|"
    r"(?:\$\d[\d,]*|\b\d+(?:\.\d+)?%) (?:returns?|profits?)|returns? of \d+(?:\.\d+)?%)"
)

CLAIM_RULES: Tuple[ClaimRule, ...] = (
    # statistical
    ClaimRule("percent_of", _rx(r"\b\d+(?:\.\d+)?%\s+of\s+[^.!?]+"), "statistical", 0.8),
    ClaimRule("ratio", _rx(r"\b\d+\s+(?:out of|in)\s+\d+\s+[^.!?]+"), "statistical", 0.8),
    ClaimRule(
        "research_says",
        _rx(r"\b(?:according to|research shows?|studies? (?:show|prove|suggest)s?)[^.!?]+"),
        "statistical",
        0.8,
    ),
    # health: a treatment verb and a disease term in the same sentence
    ClaimRule(
        "treatment_effect",
        _rx(rf"\b{_HEALTH_VERBS}\b"),
        "health",
        0.85,
        sentence=True,
        requires=_rx(rf"\b{_DISEASE_TERMS}\b"),
    ),
    ClaimRule(
        "remedy_effect",
        _rx(r"\b(?:medicine|drug|therapy|treatment|vaccine|supplement)s?\b"),
        "health",
        0.85,
        sentence=True,
        requires=_rx(rf"\b{_HEALTH_VERBS}\b"),
    ),
    # legal / financial
    ClaimRule("legality", _rx(rf"\b{_LEGAL_TERMS}\b"), "legal", 0.8, sentence=True),
    ClaimRule("returns", _rx(_FINANCIAL_TERMS), "financial", 0.8, sentence=True),
    # definitive absolutes
    ClaimRule(
        "absolute",
        _rx(r"\b(?:always|never|every|all|none|no)\s+(?:causes?|results? in|leads? to|means?)\b[^.!?]+"),
        "factual",
        0.7,
    ),
)

# Higher precision subset, used only for the active-mode trigger.
HIGH_IMPACT_RULES: Tuple[HighImpactRule, ...] = (
    HighImpactRule("research_claim", _rx(r"\b(?:studies?|research)\s+(?:shows?|proves?|demonstrates?)\b[^.!?]*")),
    HighImpactRule(
        "cure_claim",
        _rx(r"\b(?:cures?|treats?|prevents?|heals?)\s+(?:cancer|diabetes|covid(?:-19)?|disease|illness)\b"),
        sentence=True,
    ),
    HighImpactRule(
        "population_share",
        _rx(r"\b\d+(?:\.\d+)?%\s+of\s+(?:people|americans|users|patients|adults|children)\b[^.!?]*"),
    ),
    HighImpactRule("guarantee", _rx(r"\b(?:guaranteed|scientifically proven|proven to)\b"), sentence=True),
    HighImpactRule(
        "illegality",
        _rx(r"\b(?:illegal|unlawful|against the law|banned by law|felony|misdemeanor)\b"),
        sentence=True,
    ),
)

TYPE_WEIGHTS = {
    "health": 1.5,
    "legal": 1.4,
    "financial": 1.3,
    "statistical": 1.2,
    "scientific": 1.2,
    "factual": 1.0,
    "other": 0.8,
}


def _trimmed(text: str, start: int, end: int) -> Tuple[str, int, int]:
    raw = text[start:end]
    claim_text = raw.strip()
    start += len(raw) - len(raw.lstrip())
    return claim_text, start, start + len(claim_text)


def _sentence_spans(
    text: str, pattern: Pattern[str], requires: Optional[Pattern[str]] = None
) -> Iterator[Tuple[int, int]]:
    for sentence in _SENTENCE.finditer(text):
        match = pattern.search(text, sentence.start(), sentence.end())
        if match is None:
            continue
        if requires is not None and requires.search(text, match.end(), sentence.end()) is None:
            continue
        yield sentence.start(), sentence.end()


def _rule_spans(text: str, rule: ClaimRule) -> Iterator[Tuple[int, int]]:
    if rule.sentence:
        return _sentence_spans(text, rule.pattern, rule.requires)
    return (m.span() for m in rule.pattern.finditer(text))


def detect_claims(text: str, rules: Iterable[ClaimRule] = CLAIM_RULES) -> List[Claim]:
    """Return candidate claims in rule order, first occurrence wins on duplicates."""
    if not text:
        return []
    claims: List[Claim] = []
    seen = set()
    for rule in rules:
        for span_start, span_end in _rule_spans(text, rule):
            claim_text, start, end = _trimmed(text, span_start, span_end)
            if len(claim_text) <= rule.min_length:
                continue
            key = claim_text.lower()
            if key in seen:
                continue
            seen.add(key)
            claims.append(Claim(
                text=claim_text,
                claim_type=rule.claim_type,
                confidence=rule.confidence,
                should_verify=True,
                start=start,
                end=end,
            ))
    return claims


def has_high_impact_claim(text: str) -> Optional[HighImpactMatch]:
    if not text:
        return None
    for rule in HIGH_IMPACT_RULES:
        if rule.sentence:
            span = next(_sentence_spans(text, rule.pattern), None)
        else:
            match = rule.pattern.search(text)
            span = match.span() if match else None
        if span:
            claim_text, start, end = _trimmed(text, *span)
            if claim_text:
                return HighImpactMatch(claim_text, start, end, rule.name)
    return None


def get_verifiable_claims(text: str, min_confidence: float = 0.7) -> List[Claim]:
    return [c for c in detect_claims(text) if c.should_verify and c.confidence >= min_confidence]


def score_claim_importance(claim: Claim) -> float:
    score = claim.confidence * TYPE_WEIGHTS.get(claim.claim_type, 1.0)
    # longer claims tend to be more specific
    if len(claim.text) > 100:
        score *= 1.1
    return min(score, 1.0)


def rank_claims(claims: Iterable[Claim]) -> List[Claim]:
    return sorted(claims, key=score_claim_importance, reverse=True)
