"""Intervention policy: decides whether, why and how the facilitator acts.

Rules are evaluated in order and the first match wins:

1. explicit user request        -> requested action, high priority
2. verify reaction (🧾)          -> fact_check, normal priority
3. minimal intervention level   -> no action
4. auto-summary threshold       -> summary, normal priority
5. high-impact claim (active)   -> fact_check, high priority
6. contradiction (not minimal)  -> observation, normal priority
7. otherwise                    -> no action

`decide` never raises; any failure becomes a no-act decision.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from .claim_detector import HighImpactMatch, detect_claims, has_high_impact_claim, rank_claims
from .collaborators import Storage
from .config import VERIFY_EMOJI
from .errors import PolicyError
from .schemas import Decision, EventContext, ExplicitRequestEvent, NewMessageEvent, ReactionEvent, ThreadConfig

logger = logging.getLogger(__name__)

PRIORITY_BY_TRIGGER = {
    "explicit_request": "high",
    "claim_detected": "high",
    "threshold": "normal",
    "contradiction": "normal",
    "reaction": "normal",
    "observation": "low",
}


def evaluate_priority(trigger: str) -> str:
    return PRIORITY_BY_TRIGGER.get(trigger, "normal")


class ContradictionResult(BaseModel):
    supported: bool = False
    found: bool = False
    reason: str = "no contradiction found"
    details: Optional[Dict[str, Any]] = None


class InterventionPolicy:
    def __init__(
        self,
        storage: Storage,
        verify_emoji: str = VERIFY_EMOJI,
        high_impact_check: Callable[[str], Optional[HighImpactMatch]] = has_high_impact_claim,
    ):
        self.storage = storage
        self.verify_emoji = verify_emoji
        self.high_impact_check = high_impact_check

    def messages_since_last_summary(self, config: ThreadConfig) -> int:
        if config.last_summary_at is None:
            return config.message_count
        try:
            return self.storage.count_messages(config.thread_id, kind="user", after=config.last_summary_at)
        except Exception as e:
            raise PolicyError(f"Could not count messages for thread {config.thread_id}: {e}") from e

    def detect_contradiction(self, config: ThreadConfig, event: EventContext) -> ContradictionResult:
        # Extension point: no contradiction detector exists yet.
        return ContradictionResult()

    def decide(self, config: ThreadConfig, event: EventContext) -> Decision:
        try:
            return self._evaluate(config, event)
        except Exception:
            logger.exception("Error in intervention policy for thread %s", config.thread_id)
            return Decision.no_act("error evaluating policy")

    def _act(self, action_kind: str, trigger: str, reason: str, **extra) -> Decision:
        return Decision(
            should_act=True,
            reason=reason,
            action_kind=action_kind,
            priority=evaluate_priority(trigger),
            trigger=trigger,
            **extra,
        )

    def _evaluate(self, config: ThreadConfig, event: EventContext) -> Decision:
        if isinstance(event, ExplicitRequestEvent):
            return self._act(event.action, "explicit_request", "explicit user request", claim_text=event.claim_text)

        if isinstance(event, ReactionEvent) and event.emoji == self.verify_emoji:
            return self._act(
                "fact_check",
                "reaction",
                "user requested source verification",
                claim_text=self._reaction_claim(event),
                details={"message_id": event.message_id} if event.message_id else None,
            )

        if config.intervention_level == "minimal":
            return Decision.no_act("minimal intervention mode")

        if config.auto_summary_enabled:
            since = self.messages_since_last_summary(config)
            if since >= config.summary_frequency:
                return self._act("summary", "threshold", f"message threshold reached ({since} messages)")

        if (
            config.intervention_level == "active"
            and config.auto_fact_check_enabled
            and isinstance(event, NewMessageEvent)
        ):
            match = self.high_impact_check(event.text)
            if match:
                return self._act(
                    "fact_check",
                    "claim_detected",
                    "high-impact claim detected",
                    claim_text=match.text,
                    details={"rule": match.rule, "start": match.start, "end": match.end},
                )

        if isinstance(event, NewMessageEvent):
            contradiction = self.detect_contradiction(config, event)
            if contradiction.found:
                return self._act(
                    "observation",
                    "contradiction",
                    "potential contradiction detected",
                    details=contradiction.details,
                )

        return Decision.no_act("no intervention triggers met")

    @staticmethod
    def _reaction_claim(event: ReactionEvent) -> Optional[str]:
        if not event.target_text:
            return None
        ranked = rank_claims(detect_claims(event.target_text))
        return ranked[0].text if ranked else event.target_text
