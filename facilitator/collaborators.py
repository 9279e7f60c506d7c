"""Interfaces of the storage and transport collaborators.

The facilitation engine never talks to a database or socket layer directly;
it is handed objects satisfying these protocols.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from .schemas import ClaimRecord, ConversationState, FacilitatorMessage, ThreadConfig, ThreadMessage

# Transport event names
NEW_SUMMARY = "new_summary"
FACT_CHECK_COMPLETE = "fact_check_complete"
OBSERVATION_POSTED = "observation_posted"
THREAD_STATE_UPDATED = "thread_state_updated"


class Storage(Protocol):
    def get_thread(self, thread_id: str) -> Optional[ThreadConfig]:
        ...

    def count_messages(self, thread_id: str, kind: str = "user", after: Optional[datetime] = None) -> int:
        """Count non-deleted messages of `kind`, created strictly after `after` when given."""
        ...

    def list_recent_messages(self, thread_id: str, limit: int) -> List[ThreadMessage]:
        """Non-deleted user messages, newest first."""
        ...

    def create_message(self, message: FacilitatorMessage) -> FacilitatorMessage:
        ...

    def update_conversation_state(
        self,
        thread_id: str,
        state: ConversationState,
        last_summary_at: datetime,
        expected_revision: int,
    ) -> bool:
        """Compare-and-set on `ConversationState.revision`. False when the stored revision moved on."""
        ...

    def append_claim(self, record: ClaimRecord) -> ClaimRecord:
        ...


class Transport(Protocol):
    def notify(self, thread_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        ...
