from __future__ import annotations
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import DEFAULT_INTERVENTION_LEVEL, DEFAULT_SUMMARY_FREQUENCY

# Shared data models

InterventionLevel = Literal["minimal", "balanced", "active"]
ActionKind = Literal["summary", "fact_check", "observation", "resolve", "none"]
RequestedAction = Literal["summary", "fact_check", "observation", "resolve"]
Priority = Literal["high", "normal", "low"]
TriggerKind = Literal["explicit_request", "threshold", "claim_detected", "contradiction", "reaction", "none"]
ClaimType = Literal["statistical", "health", "legal", "financial", "scientific", "factual", "other"]
VerdictStatus = Literal["verified", "unverified", "disputed", "uncertain"]
MessageKind = Literal["user", "llm_summary", "llm_fact_check", "llm_intervention", "system"]


class KeyPoint(BaseModel):
    point: str
    added_at: Optional[datetime] = None
    supporting_message_ids: List[str] = Field(default_factory=list)


class ConversationState(BaseModel):
    active_topic: str = ""
    key_points: List[KeyPoint] = Field(default_factory=list)
    areas_of_agreement: List[str] = Field(default_factory=list)
    areas_of_disagreement: List[str] = Field(default_factory=list)
    open_questions: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    revision: int = Field(default=0, ge=0)


class ThreadConfig(BaseModel):
    thread_id: str
    title: str = ""
    mode: str = "general"
    intervention_level: InterventionLevel = DEFAULT_INTERVENTION_LEVEL
    auto_summary_enabled: bool = True
    summary_frequency: int = Field(default=DEFAULT_SUMMARY_FREQUENCY, ge=1)  # messages
    auto_fact_check_enabled: bool = True
    last_summary_at: Optional[datetime] = None
    message_count: int = Field(default=0, ge=0)
    conversation_state: ConversationState = Field(default_factory=ConversationState)


# Inbound event context (tagged by `kind`)

class NewMessageEvent(BaseModel):
    kind: Literal["new_message"] = "new_message"
    text: str
    author: Optional[str] = None
    message_id: Optional[str] = None


class ExplicitRequestEvent(BaseModel):
    kind: Literal["explicit_request"] = "explicit_request"
    action: RequestedAction = "summary"
    claim_text: Optional[str] = None
    message_id: Optional[str] = None


class ReactionEvent(BaseModel):
    kind: Literal["reaction"] = "reaction"
    emoji: str
    message_id: Optional[str] = None
    target_text: Optional[str] = None  # content of the message reacted to


EventContext = Annotated[
    Union[NewMessageEvent, ExplicitRequestEvent, ReactionEvent],
    Field(discriminator="kind"),
]


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    should_act: bool
    reason: str
    action_kind: ActionKind = "none"
    priority: Priority = "normal"
    trigger: TriggerKind = "none"
    claim_text: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _acting_needs_reason_and_action(self) -> "Decision":
        if self.should_act and (not self.reason.strip() or self.action_kind == "none"):
            raise ValueError("an acting decision needs a reason and an action kind")
        return self

    @classmethod
    def no_act(cls, reason: str) -> "Decision":
        return cls(should_act=False, reason=reason)


class Claim(BaseModel):
    text: str = Field(min_length=1)
    claim_type: ClaimType
    confidence: float = Field(ge=0.0, le=1.0)
    should_verify: bool = True
    start: int = Field(ge=0)
    end: int

    @model_validator(mode="after")
    def _span_is_ordered(self) -> "Claim":
        if self.end <= self.start:
            raise ValueError("claim span end must be greater than start")
        return self


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    source: str = ""  # backend label


class EvidenceItem(BaseModel):
    source_label: str
    url: str = ""
    snippet: str = ""
    credibility: float = Field(ge=0.0, le=1.0)
    supports: bool = True


class Verdict(BaseModel):
    status: VerdictStatus
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str = ""
    evidence: List[EvidenceItem] = Field(default_factory=list, max_length=5)
    model_id: Optional[str] = None
    elapsed_ms: int = 0
    search_results_found: int = 0


class Summary(BaseModel):
    """Living summary as returned by the model (camelCase keys accepted)."""
    model_config = ConfigDict(populate_by_name=True)

    topic_statement: str = Field(alias="whatThisThreadIsAbout", min_length=1)
    key_points: List[str] = Field(default_factory=list, alias="keyPointsSoFar")
    agreements: List[str] = Field(default_factory=list, alias="areasOfAgreement")
    disagreements: List[str] = Field(default_factory=list, alias="areasOfDisagreement")
    open_questions: List[str] = Field(default_factory=list, alias="openQuestions")
    next_steps: List[str] = Field(default_factory=list, alias="nextSteps")
    sources_cited: List[Any] = Field(default_factory=list, alias="sourcesCited")

    @field_validator(
        "key_points", "agreements", "disagreements", "open_questions", "next_steps", "sources_cited",
        mode="before",
    )
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class SummaryResult(BaseModel):
    summary: Summary
    model_id: Optional[str] = None
    elapsed_ms: int = 0
    messages_analyzed: int = 0


class Completion(BaseModel):
    text: Optional[str] = None  # free-text responses
    data: Any = None            # parsed responses when format="json"
    model_id: str
    elapsed_ms: int = 0
    done: bool = True


class HealthStatus(BaseModel):
    available: bool
    models: List[str] = Field(default_factory=list)
    error: Optional[str] = None


# Records exchanged with the storage collaborator

class ThreadMessage(BaseModel):
    message_id: str
    content: str
    author_name: Optional[str] = None
    created_at: Optional[datetime] = None


class InterventionMetadata(BaseModel):
    reason: str
    trigger_kind: str
    elapsed_ms: int = 0
    model_id: str


class FacilitatorMessage(BaseModel):
    thread_id: str
    content: str
    kind: MessageKind
    intervention_metadata: Optional[InterventionMetadata] = None
    message_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ClaimRecord(BaseModel):
    thread_id: str
    claim_text: str
    status: VerdictStatus
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str = ""
    evidence: List[EvidenceItem] = Field(default_factory=list)
    message_id: Optional[str] = None
    checked_at: datetime
    checked_by: Literal["llm", "user", "moderator"] = "llm"
    model_id: Optional[str] = None
    claim_id: Optional[str] = None


class OutcomeReport(BaseModel):
    intervened: bool
    reason: str = ""
    action_kind: ActionKind = "none"
    message: Optional[FacilitatorMessage] = None
    summary: Optional[Summary] = None
    verdict: Optional[Verdict] = None
    error: Optional[str] = None
    unsupported: bool = False
