"""Web evidence retrieval with credibility scoring.

Backends return normalized `SearchResult`s. `EvidenceSource.search` walks the
configured backends in order (SerpAPI first when a key is configured, then
DuckDuckGo) and returns the first successful result list. If every backend
fails the caller gets an empty list, which means "no evidence found".
"""
from __future__ import annotations
import logging
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlparse

import requests

from .config import Settings, load_settings
from .errors import EvidenceError
from .schemas import EvidenceItem, SearchResult

logger = logging.getLogger(__name__)

# Named authorities (health agencies, science publishers, wire services, fact-checkers)
HIGH_CREDIBILITY_DOMAINS = (
    "who.int",
    "cdc.gov",
    "nih.gov",
    "fda.gov",
    "nature.com",
    "science.org",
    "sciencemag.org",
    "reuters.com",
    "apnews.com",
    "bbc.com",
    "bbc.co.uk",
    "snopes.com",
    "factcheck.org",
    "politifact.com",
)

MEDIUM_CREDIBILITY_DOMAINS = (
    "wikipedia.org",
    "britannica.com",
    "nytimes.com",
    "washingtonpost.com",
    "wsj.com",
    "theguardian.com",
    "economist.com",
)

FACT_CHECK_SITES = (
    "snopes.com",
    "factcheck.org",
    "politifact.com",
    "reuters.com/fact-check",
    "apnews.com/ap-fact-check",
)


def _domain_matches(domain: str, known: str) -> bool:
    return domain == known or domain.endswith("." + known)


def get_source_credibility(url: str) -> float:
    """Static credibility score in [0, 1] for the domain of `url`."""
    try:
        domain = (urlparse(url).hostname or "").lower()
    except ValueError:
        return 0.5
    if not domain:
        return 0.5
    if domain.startswith("www."):
        domain = domain[4:]
    if any(_domain_matches(domain, d) for d in HIGH_CREDIBILITY_DOMAINS):
        return 0.9
    if domain.endswith(".gov") or domain.endswith(".edu"):
        return 0.85
    if any(_domain_matches(domain, d) for d in MEDIUM_CREDIBILITY_DOMAINS):
        return 0.7
    return 0.5


def to_evidence_item(result: SearchResult, supports: bool = True) -> EvidenceItem:
    return EvidenceItem(
        source_label=result.title or result.source or "Unknown source",
        url=result.url,
        snippet=result.snippet,
        credibility=get_source_credibility(result.url),
        supports=supports,
    )


def enhance_with_credibility(results: Iterable[SearchResult]) -> List[EvidenceItem]:
    """Score every result and sort by descending credibility (stable)."""
    items = [to_evidence_item(r) for r in results]
    return sorted(items, key=lambda item: item.credibility, reverse=True)


class SerpApiBackend:
    name = "serpapi"
    endpoint = "https://serpapi.com/search"

    def __init__(self, api_key: Optional[str], timeout: float = 10.0):
        self.api_key = api_key
        self.timeout = timeout

    def search(self, query: str, limit: int) -> List[SearchResult]:
        if not self.api_key:
            raise EvidenceError(self.name, "SERPAPI_KEY not configured")
        try:
            r = requests.get(
                self.endpoint,
                params={"q": query, "api_key": self.api_key, "num": limit, "engine": "google"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise EvidenceError(self.name, str(e)) from e
        if isinstance(data, dict) and data.get("error"):
            # quota exhaustion and bad keys come back as a 200 with an error field
            raise EvidenceError(self.name, str(data["error"]))
        results = []
        for hit in (data.get("organic_results") or [])[:limit]:
            results.append(SearchResult(
                title=hit.get("title") or "",
                url=hit.get("link") or "",
                snippet=hit.get("snippet") or "",
                source="Google (SerpAPI)",
            ))
        return results


class DuckDuckGoBackend:
    """DuckDuckGo Instant Answer API (free, no key)."""
    name = "duckduckgo"
    endpoint = "https://api.duckduckgo.com/"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def search(self, query: str, limit: int) -> List[SearchResult]:
        try:
            r = requests.get(
                self.endpoint,
                params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
                timeout=self.timeout,
            )
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise EvidenceError(self.name, str(e)) from e
        results: List[SearchResult] = []
        if data.get("Abstract"):
            results.append(SearchResult(
                title=data.get("Heading") or "DuckDuckGo Result",
                url=data.get("AbstractURL") or "",
                snippet=data["Abstract"],
                source="DuckDuckGo",
            ))
        for topic in data.get("RelatedTopics") or []:
            # category groups nest their own "Topics" list; only flat entries carry a URL
            if topic.get("FirstURL") and topic.get("Text"):
                text = topic["Text"]
                results.append(SearchResult(
                    title=text.split(" - ")[0] or text,
                    url=topic["FirstURL"],
                    snippet=text,
                    source="DuckDuckGo",
                ))
        return results[:limit]


class EvidenceSource:
    def __init__(self, backends: Optional[Sequence[object]] = None, settings: Optional[Settings] = None):
        if backends is None:
            settings = settings or load_settings()
            backends = []
            if settings.serpapi_key:
                backends.append(SerpApiBackend(settings.serpapi_key, timeout=settings.search_timeout))
            backends.append(DuckDuckGoBackend(timeout=settings.search_timeout))
        self.backends = list(backends)

    def search_raw(self, query: str, limit: int = 10) -> List[SearchResult]:
        for backend in self.backends:
            name = getattr(backend, "name", type(backend).__name__)
            try:
                results = backend.search(query, limit)
            except EvidenceError as e:
                logger.warning("Search backend failed, trying next: %s", e)
                continue
            except Exception:
                logger.exception("Unexpected error from search backend %s", name)
                continue
            logger.debug("%s returned %d results for %r", name, len(results), query[:80])
            return results
        logger.warning("All search backends failed for %r; returning no evidence", query[:80])
        return []

    def search(self, query: str, limit: int = 5, rank_by_credibility: bool = True) -> List[EvidenceItem]:
        """Return up to `limit` evidence items for `query`, never raising."""
        if limit <= 0 or not query.strip():
            return []
        results = self.search_raw(query, max(limit, 10))
        if rank_by_credibility:
            items = enhance_with_credibility(results)
        else:
            items = [to_evidence_item(r) for r in results]
        return items[:limit]

    def search_fact_check_sources(self, claim: str) -> List[EvidenceItem]:
        query = f"{claim} site:" + " OR site:".join(FACT_CHECK_SITES)
        return self.search(query, limit=5)
