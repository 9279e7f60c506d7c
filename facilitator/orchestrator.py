"""Coordinates facilitator interventions.

`Orchestrator` receives inbound events, asks the intervention policy what to
do, runs the matching pipeline, persists the facilitator message through the
storage collaborator and notifies the transport collaborator. Failures of an
intervention are logged and reported on the `OutcomeReport`; they never
propagate to the caller that is posting the user's message.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .collaborators import (
    FACT_CHECK_COMPLETE,
    NEW_SUMMARY,
    OBSERVATION_POSTED,
    THREAD_STATE_UPDATED,
    Storage,
    Transport,
)
from .config import Settings, load_settings
from .display import format_fact_check, format_observation, format_summary
from .errors import InvalidRequestError, PipelineError
from .evidence import EvidenceSource
from .fact_check import FactCheckPipeline
from .gateway import ModelGateway
from .graph import InterventionState, build_intervention_graph
from .policy import InterventionPolicy
from .schemas import (
    ClaimRecord,
    ConversationState,
    Decision,
    EventContext,
    ExplicitRequestEvent,
    FacilitatorMessage,
    InterventionMetadata,
    KeyPoint,
    NewMessageEvent,
    OutcomeReport,
    ReactionEvent,
    Summary,
)
from .summarizer import SummarizationPipeline
from .utils import configure_logging

logger = logging.getLogger(__name__)

REQUEST_KINDS = {
    "summarize": "summary",
    "summary": "summary",
    "fact-check": "fact_check",
    "fact_check": "fact_check",
    "resolve": "resolve",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge_conversation_state(current: ConversationState, summary: Summary, now: datetime) -> ConversationState:
    """Fold a fresh summary into the living state, bumping the revision."""
    return current.model_copy(update={
        "active_topic": summary.topic_statement,
        "key_points": [KeyPoint(point=p, added_at=now) for p in summary.key_points],
        "areas_of_agreement": list(summary.agreements),
        "areas_of_disagreement": list(summary.disagreements),
        "open_questions": list(summary.open_questions),
        "next_steps": list(summary.next_steps),
        "revision": current.revision + 1,
    })


def _event_text(event: EventContext) -> str:
    if isinstance(event, NewMessageEvent):
        return event.text
    if isinstance(event, ReactionEvent):
        return event.target_text or ""
    return ""


class Orchestrator:
    def __init__(
        self,
        storage: Storage,
        transport: Transport,
        fact_checker: FactCheckPipeline,
        summarizer: SummarizationPipeline,
        policy: Optional[InterventionPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage
        self.transport = transport
        self.fact_checker = fact_checker
        self.summarizer = summarizer
        self.policy = policy or InterventionPolicy(storage)
        self.clock = clock
        self.graph = build_intervention_graph(
            self.policy.decide,
            {
                "summary": self._guarded(self._post_summary),
                "fact_check": self._guarded(self._post_fact_check),
                "observation": self._guarded(self._post_observation),
                "resolve": self._resolve,
            },
        )

    def handle_event(self, thread_id: str, event: EventContext) -> OutcomeReport:
        try:
            config = self.storage.get_thread(thread_id)
        except Exception as e:
            logger.exception("Could not load thread %s", thread_id)
            return OutcomeReport(intervened=False, reason="thread lookup failed", error=str(e))
        if config is None:
            return OutcomeReport(intervened=False, reason="thread not found")

        state: InterventionState = {
            "thread_id": thread_id,
            "config": config,
            "event": event,
            "context_text": _event_text(event) or config.title,
        }
        try:
            result = self.graph.invoke(state)
        except Exception as e:
            logger.exception("Error in facilitator orchestration for thread %s", thread_id)
            return OutcomeReport(intervened=False, reason="orchestration failed", error=str(e))

        outcome = result.get("outcome")
        if outcome is None:
            decision: Decision = result["decision"]
            outcome = OutcomeReport(intervened=False, reason=decision.reason)
        return outcome

    def handle_explicit_request(
        self, thread_id: str, request_kind: str, context: Optional[Dict[str, Any]] = None
    ) -> OutcomeReport:
        action = REQUEST_KINDS.get(request_kind)
        if action is None:
            raise InvalidRequestError(f"Unknown request type: {request_kind}")
        context = context or {}
        claim_text = (context.get("claim_text") or "").strip() or None
        if action == "fact_check" and not claim_text:
            raise InvalidRequestError("Claim text required for fact-checking")
        event = ExplicitRequestEvent(action=action, claim_text=claim_text, message_id=context.get("message_id"))
        return self.handle_event(thread_id, event)

    # action nodes

    def _guarded(self, action: Callable[[InterventionState], OutcomeReport]):
        def run(state: InterventionState) -> OutcomeReport:
            decision = state["decision"]
            try:
                return action(state)
            except Exception as e:
                logger.error(
                    "Intervention %s failed for thread %s: %s",
                    decision.action_kind, state["thread_id"], e, exc_info=True,
                )
                return OutcomeReport(
                    intervened=False, reason=decision.reason, action_kind=decision.action_kind, error=str(e)
                )
        return run

    @staticmethod
    def _metadata(decision: Decision, elapsed_ms: int, model_id: Optional[str]) -> InterventionMetadata:
        return InterventionMetadata(
            reason=decision.reason,
            trigger_kind=decision.trigger,
            elapsed_ms=elapsed_ms,
            model_id=model_id or "unknown",
        )

    def _post_summary(self, state: InterventionState) -> OutcomeReport:
        thread_id, decision = state["thread_id"], state["decision"]
        result = self.summarizer.summarize(thread_id)

        # message last: a failed state write must leave no message behind
        now = self.clock()
        new_state = self._apply_summary(thread_id, result.summary, now)
        message = self.storage.create_message(FacilitatorMessage(
            thread_id=thread_id,
            content=format_summary(result.summary),
            kind="llm_summary",
            intervention_metadata=self._metadata(decision, result.elapsed_ms, result.model_id),
        ))

        self.transport.notify(thread_id, NEW_SUMMARY, {
            "summary": result.summary.model_dump(mode="json"),
            "message": message.model_dump(mode="json"),
        })
        if new_state is not None:
            self.transport.notify(thread_id, THREAD_STATE_UPDATED, {
                "conversation_state": new_state.model_dump(mode="json"),
                "last_summary_at": now.isoformat(),
            })
        return OutcomeReport(
            intervened=True, reason=decision.reason, action_kind="summary", message=message, summary=result.summary
        )

    def _apply_summary(self, thread_id: str, summary: Summary, now: datetime) -> Optional[ConversationState]:
        for _ in range(2):
            thread = self.storage.get_thread(thread_id)
            if thread is None:
                raise PipelineError(f"Thread {thread_id} disappeared before its summary was stored")
            current = thread.conversation_state
            merged = merge_conversation_state(current, summary, now)
            if self.storage.update_conversation_state(thread_id, merged, now, expected_revision=current.revision):
                return merged
            logger.info("Conversation state of thread %s changed concurrently; merging again", thread_id)
        logger.warning("Gave up updating conversation state of thread %s after a concurrent write", thread_id)
        return None

    def _post_fact_check(self, state: InterventionState) -> OutcomeReport:
        thread_id, decision = state["thread_id"], state["decision"]
        context = state.get("context_text") or ""
        claim_text = decision.claim_text or _event_text(state["event"])
        if not claim_text:
            raise PipelineError("No claim text available to fact-check")

        verdict = self.fact_checker.check(claim_text, context=context)
        record = self.storage.append_claim(ClaimRecord(
            thread_id=thread_id,
            message_id=getattr(state.get("event"), "message_id", None),
            claim_text=claim_text,
            status=verdict.status,
            confidence=verdict.confidence,
            explanation=verdict.explanation,
            evidence=verdict.evidence,
            checked_at=self.clock(),
            model_id=verdict.model_id,
        ))
        message = self.storage.create_message(FacilitatorMessage(
            thread_id=thread_id,
            content=format_fact_check(claim_text, verdict),
            kind="llm_fact_check",
            intervention_metadata=self._metadata(decision, verdict.elapsed_ms, verdict.model_id),
        ))
        self.transport.notify(thread_id, FACT_CHECK_COMPLETE, {
            "claim": record.model_dump(mode="json"),
            "message": message.model_dump(mode="json"),
        })
        return OutcomeReport(
            intervened=True, reason=decision.reason, action_kind="fact_check", message=message, verdict=verdict
        )

    def _post_observation(self, state: InterventionState) -> OutcomeReport:
        thread_id, decision = state["thread_id"], state["decision"]
        message = self.storage.create_message(FacilitatorMessage(
            thread_id=thread_id,
            content=format_observation(decision),
            kind="llm_intervention",
            intervention_metadata=self._metadata(decision, 0, "rule-based"),
        ))
        self.transport.notify(thread_id, OBSERVATION_POSTED, {"message": message.model_dump(mode="json")})
        return OutcomeReport(intervened=True, reason=decision.reason, action_kind="observation", message=message)

    def _resolve(self, state: InterventionState) -> OutcomeReport:
        return OutcomeReport(
            intervened=False,
            reason="resolution generation not implemented",
            action_kind="resolve",
            unsupported=True,
        )


def build_orchestrator(storage: Storage, transport: Transport, settings: Optional[Settings] = None) -> Orchestrator:
    """Wire the production gateway, evidence source and pipelines."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    gateway = ModelGateway(settings=settings)
    return Orchestrator(
        storage=storage,
        transport=transport,
        fact_checker=FactCheckPipeline(gateway, EvidenceSource(settings=settings)),
        summarizer=SummarizationPipeline(gateway, storage),
        policy=InterventionPolicy(storage, verify_emoji=settings.verify_emoji),
    )
