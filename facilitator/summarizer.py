from __future__ import annotations
import logging
from typing import List, Optional

from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from .collaborators import Storage
from .errors import GatewayError, PipelineError
from .gateway import ModelGateway
from .schemas import Summary, SummaryResult, ThreadConfig, ThreadMessage

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = ChatPromptTemplate.from_messages([
    ("system", "You are a neutral facilitator helping to summarize threaded discussions."),
    (
        "human",
        (
            "You are a neutral facilitator for a threaded discussion. Generate a living summary.\n\n"
            "Thread Title: \"{title}\"\n"
            "Thread Mode: {mode}\n"
            "Message Count: {message_count}\n\n"
            "Recent Messages:\n{messages}\n\n"
            "Previous Summary:\n{previous_summary}\n\n"
            "Generate a JSON response with the following structure:\n"
            "{{\n"
            "  \"whatThisThreadIsAbout\": \"Brief 1-2 sentence overview of the thread's topic and purpose\",\n"
            "  \"keyPointsSoFar\": [\"Point 1\", \"Point 2\", \"Point 3\"],\n"
            "  \"areasOfAgreement\": [\"Agreement 1\", \"Agreement 2\"],\n"
            "  \"areasOfDisagreement\": [\"Disagreement 1\", \"Disagreement 2\"],\n"
            "  \"openQuestions\": [\"Question 1\", \"Question 2\"],\n"
            "  \"nextSteps\": [\"Step 1\", \"Step 2\"],\n"
            "  \"sourcesCited\": []\n"
            "}}\n\n"
            "Keep the summary objective, balanced, and focused on what was actually discussed."
        ),
    ),
])


def format_transcript(messages: List[ThreadMessage]) -> str:
    return "\n\n".join(
        f"[{idx}] {msg.author_name or 'Anonymous'}: {msg.content}"
        for idx, msg in enumerate(messages, start=1)
    )


def should_generate_summary(config: ThreadConfig, messages_since_last_summary: Optional[int] = None) -> bool:
    """Whether a summary is due. Pure: pass the count when it is known."""
    if not config.auto_summary_enabled:
        return False
    count = config.message_count if messages_since_last_summary is None else messages_since_last_summary
    return count >= config.summary_frequency


class SummarizationPipeline:
    def __init__(self, gateway: ModelGateway, storage: Storage, temperature: float = 0.7):
        self.gateway = gateway
        self.storage = storage
        self.temperature = temperature

    def summarize(self, thread_id: str, message_limit: int = 20) -> SummaryResult:
        thread = self.storage.get_thread(thread_id)
        if thread is None:
            raise PipelineError(f"Thread {thread_id} not found")

        # storage hands back newest first
        messages = list(self.storage.list_recent_messages(thread_id, message_limit))
        messages.reverse()
        logger.info("📝 Summarizing thread %s from %d messages", thread_id, len(messages))

        system, human = SUMMARY_PROMPT.format_messages(
            title=thread.title,
            mode=thread.mode,
            message_count=len(messages),
            messages=format_transcript(messages) or "(no messages)",
            previous_summary=thread.conversation_state.active_topic or "None yet",
        )
        try:
            result = self.gateway.complete(
                human.content, format="json", temperature=self.temperature, system=system.content
            )
        except GatewayError as e:
            raise PipelineError(f"Summary model call failed: {e}") from e

        if not isinstance(result.data, dict):
            raise PipelineError("Summary model output was not a JSON object")
        try:
            summary = Summary.model_validate(result.data)
        except ValidationError as e:
            raise PipelineError(f"Summary model output did not match the summary structure: {e}") from e

        return SummaryResult(
            summary=summary,
            model_id=result.model_id,
            elapsed_ms=result.elapsed_ms,
            messages_analyzed=len(messages),
        )
