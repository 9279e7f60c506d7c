from __future__ import annotations
from datetime import datetime, timezone

import pytest

from facilitator.config import VERIFY_EMOJI
from facilitator.policy import ContradictionResult, InterventionPolicy, evaluate_priority
from facilitator.schemas import ExplicitRequestEvent, NewMessageEvent, ReactionEvent, ThreadConfig

BREAKFAST = "studies show 90% of people who skip breakfast gain weight"


def _config(**fields) -> ThreadConfig:
    return ThreadConfig(thread_id="t1", **fields)


def test_summary_threshold_without_prior_summary(storage) -> None:
    decision = InterventionPolicy(storage).decide(
        _config(summary_frequency=15, message_count=15), NewMessageEvent(text="ok")
    )
    assert decision.should_act
    assert decision.action_kind == "summary"
    assert decision.priority == "normal"
    assert decision.trigger == "threshold"
    assert decision.reason == "message threshold reached (15 messages)"


def test_below_threshold(storage) -> None:
    decision = InterventionPolicy(storage).decide(
        _config(summary_frequency=15, message_count=14), NewMessageEvent(text="ok")
    )
    assert not decision.should_act
    assert decision.reason == "no intervention triggers met"


def test_threshold_counts_since_last_summary(storage, clock) -> None:
    storage.add_thread("t1", summary_frequency=3)
    storage.add_user_message("t1", "old one")
    cutoff = clock()
    for text in ("a", "b", "c"):
        storage.add_user_message("t1", text)
    policy = InterventionPolicy(storage)

    config = storage.get_thread("t1").model_copy(update={"last_summary_at": cutoff})
    assert policy.messages_since_last_summary(config) == 3
    assert policy.decide(config, NewMessageEvent(text="c")).action_kind == "summary"

    later = config.model_copy(update={"last_summary_at": clock()})
    assert policy.messages_since_last_summary(later) == 0
    assert not policy.decide(later, NewMessageEvent(text="d")).should_act


def test_auto_summary_disabled(storage) -> None:
    decision = InterventionPolicy(storage).decide(
        _config(auto_summary_enabled=False, message_count=100), NewMessageEvent(text="ok")
    )
    assert not decision.should_act


def test_high_impact_claim_in_active_mode(storage) -> None:
    decision = InterventionPolicy(storage).decide(_config(intervention_level="active"), NewMessageEvent(text=BREAKFAST))
    assert decision.should_act
    assert decision.action_kind == "fact_check"
    assert decision.priority == "high"
    assert decision.trigger == "claim_detected"
    assert decision.claim_text == BREAKFAST
    assert decision.details["rule"] == "research_claim"


@pytest.mark.parametrize("level", ["balanced", "minimal"])
def test_high_impact_claim_ignored_outside_active(storage, level) -> None:
    decision = InterventionPolicy(storage).decide(_config(intervention_level=level), NewMessageEvent(text=BREAKFAST))
    assert not decision.should_act


def test_high_impact_claim_respects_auto_fact_check(storage) -> None:
    config = _config(intervention_level="active", auto_fact_check_enabled=False)
    assert not InterventionPolicy(storage).decide(config, NewMessageEvent(text=BREAKFAST)).should_act


def test_threshold_wins_over_claim(storage) -> None:
    config = _config(intervention_level="active", summary_frequency=2, message_count=2)
    assert InterventionPolicy(storage).decide(config, NewMessageEvent(text=BREAKFAST)).action_kind == "summary"


@pytest.mark.parametrize(
    "fields",
    [
        {},
        {"intervention_level": "minimal"},
        {"intervention_level": "active", "auto_fact_check_enabled": False, "auto_summary_enabled": False},
        {"message_count": 500, "summary_frequency": 1},
    ],
)
def test_verify_reaction_on_any_config(storage, fields) -> None:
    event = ReactionEvent(emoji="🧾", message_id="m9", target_text="My uncle says 3 out of 4 doctors smoke this brand.")
    decision = InterventionPolicy(storage).decide(_config(**fields), event)
    assert decision.should_act
    assert decision.action_kind == "fact_check"
    assert decision.priority == "normal"
    assert decision.trigger == "reaction"
    assert decision.claim_text == "3 out of 4 doctors smoke this brand"
    assert decision.details == {"message_id": "m9"}


def test_reaction_without_detectable_claim_checks_whole_message(storage) -> None:
    event = ReactionEvent(emoji=VERIFY_EMOJI, target_text="the bridge opened in 1932")
    assert InterventionPolicy(storage).decide(_config(), event).claim_text == "the bridge opened in 1932"


def test_other_reactions_are_ignored(storage) -> None:
    event = ReactionEvent(emoji="👍", target_text=BREAKFAST)
    assert not InterventionPolicy(storage).decide(_config(intervention_level="active"), event).should_act


def test_custom_verify_emoji(storage) -> None:
    policy = InterventionPolicy(storage, verify_emoji="🔎")
    assert policy.decide(_config(), ReactionEvent(emoji="🔎")).should_act
    assert not policy.decide(_config(), ReactionEvent(emoji=VERIFY_EMOJI)).should_act


@pytest.mark.parametrize("action", ["summary", "fact_check", "resolve"])
def test_explicit_request_always_acts(storage, action) -> None:
    event = ExplicitRequestEvent(action=action, claim_text="x" if action == "fact_check" else None)
    decision = InterventionPolicy(storage).decide(_config(intervention_level="minimal"), event)
    assert decision.should_act
    assert decision.action_kind == action
    assert decision.priority == "high"
    assert decision.reason == "explicit user request"


def test_minimal_mode_suppresses_automatic_triggers(storage) -> None:
    decision = InterventionPolicy(storage).decide(
        _config(intervention_level="minimal", message_count=100), NewMessageEvent(text=BREAKFAST)
    )
    assert not decision.should_act
    assert decision.reason == "minimal intervention mode"


def test_contradiction_is_an_unsupported_extension_point(storage) -> None:
    result = InterventionPolicy(storage).detect_contradiction(_config(), NewMessageEvent(text="no, the opposite"))
    assert result == ContradictionResult()
    assert result.supported is False
    assert result.found is False


def test_found_contradiction_becomes_observation(storage) -> None:
    class ContradictionPolicy(InterventionPolicy):
        def detect_contradiction(self, config, event):
            return ContradictionResult(supported=True, found=True, details={"messages": ["m1", "m2"]})

    decision = ContradictionPolicy(storage).decide(_config(), NewMessageEvent(text="you said the opposite"))
    assert decision.action_kind == "observation"
    assert decision.trigger == "contradiction"
    assert decision.priority == "normal"


def test_storage_failure_degrades_to_no_act(storage) -> None:
    storage.fail_on.add("count_messages")
    config = _config(last_summary_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    decision = InterventionPolicy(storage).decide(config, NewMessageEvent(text="hello"))
    assert not decision.should_act
    assert decision.reason == "error evaluating policy"


def test_detector_failure_degrades_to_no_act(storage) -> None:
    def broken(text):
        raise RuntimeError("regex engine exploded")

    policy = InterventionPolicy(storage, high_impact_check=broken)
    decision = policy.decide(_config(intervention_level="active"), NewMessageEvent(text=BREAKFAST))
    assert not decision.should_act
    assert decision.reason == "error evaluating policy"


def test_decisions_are_well_formed(storage) -> None:
    events = [
        NewMessageEvent(text="hi"),
        NewMessageEvent(text=BREAKFAST),
        ReactionEvent(emoji=VERIFY_EMOJI),
        ExplicitRequestEvent(),
    ]
    policy = InterventionPolicy(storage)
    for level in ("minimal", "balanced", "active"):
        for event in events:
            decision = policy.decide(_config(intervention_level=level), event)
            if decision.should_act:
                assert decision.reason and decision.action_kind != "none"
            else:
                assert decision.action_kind == "none"
            assert decision == policy.decide(_config(intervention_level=level), event)


@pytest.mark.parametrize(
    "trigger,priority",
    [("explicit_request", "high"), ("claim_detected", "high"), ("threshold", "normal"), ("observation", "low"), ("other", "normal")],
)
def test_evaluate_priority(trigger, priority) -> None:
    assert evaluate_priority(trigger) == priority
