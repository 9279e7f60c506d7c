from __future__ import annotations
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from facilitator.schemas import (  # noqa: E402
    ClaimRecord,
    Completion,
    ConversationState,
    EvidenceItem,
    FacilitatorMessage,
    ThreadConfig,
    ThreadMessage,
)


class FakeClock:
    """Strictly increasing UTC clock, one second per call."""
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FakeGateway:
    """Returns queued responses; an Exception in the queue is raised instead."""
    def __init__(self, responses: List[Any], model_id: str = "fake-model"):
        self._responses = list(responses)
        self.model_id = model_id
        self.calls: List[Dict[str, Any]] = []

    def complete(self, prompt, *, model=None, format="json", temperature=0.7, system=None):
        self.calls.append({"prompt": prompt, "format": format, "temperature": temperature, "system": system})
        resp = self._responses.pop(0) if self._responses else {}
        if isinstance(resp, Exception):
            raise resp
        if format == "json":
            return Completion(data=resp, model_id=self.model_id, elapsed_ms=12)
        return Completion(text=str(resp), model_id=self.model_id, elapsed_ms=12)


class FakeEvidenceSource:
    def __init__(self, items: Optional[List[EvidenceItem]] = None):
        self.items = items or []
        self.queries: List[str] = []

    def search(self, query: str, limit: int = 5, rank_by_credibility: bool = True) -> List[EvidenceItem]:
        self.queries.append(query)
        return self.items[:limit]


class InMemoryStorage:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.threads: Dict[str, ThreadConfig] = {}
        self.user_messages: List[Dict[str, Any]] = []
        self.facilitator_messages: List[FacilitatorMessage] = []
        self.claims: List[ClaimRecord] = []
        self.fail_on: set = set()
        self.conflicts_remaining = 0

    def _check(self, name: str) -> None:
        if name in self.fail_on:
            raise RuntimeError(f"storage failure in {name}")

    def add_thread(self, thread_id: str = "t1", **fields) -> ThreadConfig:
        self.threads[thread_id] = ThreadConfig(thread_id=thread_id, **fields)
        return self.threads[thread_id]

    def add_user_message(self, thread_id: str, content: str, author: str = "alice", deleted: bool = False) -> str:
        message_id = f"u{len(self.user_messages) + 1}"
        self.user_messages.append({
            "thread_id": thread_id,
            "message_id": message_id,
            "content": content,
            "author_name": author,
            "created_at": self.clock(),
            "deleted": deleted,
        })
        thread = self.threads[thread_id]
        self.threads[thread_id] = thread.model_copy(update={"message_count": thread.message_count + 1})
        return message_id

    def get_thread(self, thread_id: str) -> Optional[ThreadConfig]:
        self._check("get_thread")
        thread = self.threads.get(thread_id)
        return thread.model_copy(deep=True) if thread else None

    def count_messages(self, thread_id: str, kind: str = "user", after: Optional[datetime] = None) -> int:
        self._check("count_messages")
        if kind != "user":
            return sum(1 for m in self.facilitator_messages if m.thread_id == thread_id and m.kind == kind)
        return sum(
            1 for m in self.user_messages
            if m["thread_id"] == thread_id and not m["deleted"] and (after is None or m["created_at"] > after)
        )

    def list_recent_messages(self, thread_id: str, limit: int) -> List[ThreadMessage]:
        self._check("list_recent_messages")
        rows = [m for m in self.user_messages if m["thread_id"] == thread_id and not m["deleted"]]
        rows.sort(key=lambda m: m["created_at"], reverse=True)
        return [
            ThreadMessage(
                message_id=m["message_id"], content=m["content"], author_name=m["author_name"], created_at=m["created_at"]
            )
            for m in rows[:limit]
        ]

    def create_message(self, message: FacilitatorMessage) -> FacilitatorMessage:
        self._check("create_message")
        saved = message.model_copy(update={
            "message_id": f"f{len(self.facilitator_messages) + 1}",
            "created_at": self.clock(),
        })
        self.facilitator_messages.append(saved)
        return saved

    def update_conversation_state(
        self, thread_id: str, state: ConversationState, last_summary_at: datetime, expected_revision: int
    ) -> bool:
        self._check("update_conversation_state")
        thread = self.threads[thread_id]
        if self.conflicts_remaining:
            # simulate another writer landing first
            self.conflicts_remaining -= 1
            bumped = thread.conversation_state.model_copy(update={"revision": thread.conversation_state.revision + 1})
            self.threads[thread_id] = thread.model_copy(update={"conversation_state": bumped})
            return False
        if thread.conversation_state.revision != expected_revision:
            return False
        self.threads[thread_id] = thread.model_copy(update={
            "conversation_state": state,
            "last_summary_at": last_summary_at,
        })
        return True

    def append_claim(self, record: ClaimRecord) -> ClaimRecord:
        self._check("append_claim")
        saved = record.model_copy(update={"claim_id": f"c{len(self.claims) + 1}"})
        self.claims.append(saved)
        return saved


class RecordingTransport:
    def __init__(self):
        self.events: List[tuple] = []

    def notify(self, thread_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        self.events.append((thread_id, event_name, payload))

    @property
    def names(self) -> List[str]:
        return [name for _, name, _ in self.events]


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def storage(clock: FakeClock) -> InMemoryStorage:
    return InMemoryStorage(clock)


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()
