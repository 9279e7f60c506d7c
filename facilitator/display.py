"""Markdown rendering of facilitator messages."""
from __future__ import annotations
import json
from typing import List

from .schemas import Decision, Summary, Verdict

STATUS_EMOJI = {
    "verified": "✅",
    "unverified": "❓",
    "disputed": "❌",
    "uncertain": "⚠️",
}


def _section(title: str, lines: List[str]) -> str:
    return f"**{title}:**\n" + "\n".join(lines) if lines else ""


def format_summary(summary: Summary) -> str:
    sections = [
        "📊 **Thread Summary**",
        f"**What this is about:** {summary.topic_statement}",
        _section("Key Points", [f"{i}. {p}" for i, p in enumerate(summary.key_points, start=1)]),
        _section("Areas of Agreement", [f"✓ {p}" for p in summary.agreements]),
        _section("Areas of Disagreement", [f"⚠ {p}" for p in summary.disagreements]),
        _section("Open Questions", [f"❓ {q}" for q in summary.open_questions]),
        _section("Suggested Next Steps", [f"{i}. {s}" for i, s in enumerate(summary.next_steps, start=1)]),
    ]
    return "\n\n".join(s for s in sections if s)


def format_fact_check(claim_text: str, verdict: Verdict, max_sources: int = 3) -> str:
    sections = [
        "🔍 **Fact Check**",
        f"**Claim:** \"{claim_text}\"",
        f"**Status:** {STATUS_EMOJI[verdict.status]} {verdict.status.upper()}\n"
        f"**Confidence:** {verdict.confidence * 100:.0f}%",
        f"**Explanation:** {verdict.explanation}",
        _section("Sources", [
            f"{i}. {ev.source_label}\n   {ev.url}" for i, ev in enumerate(verdict.evidence[:max_sources], start=1)
        ]),
    ]
    return "\n\n".join(s for s in sections if s)


def format_observation(decision: Decision) -> str:
    text = f"💡 **Facilitator Note**\n\n{decision.reason}"
    if decision.details:
        text += "\n\n" + json.dumps(decision.details, indent=2, ensure_ascii=False)
    return text
