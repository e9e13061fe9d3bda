from __future__ import annotations

import pytest

from relayworks_ai.agent_core.eval import (
    AssertionCheck,
    AssertionRegistry,
    CheckOutcome,
    default_assertion_registry,
    run_l1,
)
from relayworks_ai.agent_core.eval.assertions import (
    check_contains_cta,
    check_contains_recipient_name,
    check_correct_language,
    check_max_length,
    check_min_length,
    check_no_competitor_mentions,
    check_no_hallucination,
    check_no_placeholders,
    check_no_profanity,
    check_references_real_exchange,
)
from relayworks_ai.agent_core.schemas.domain import AssertionSeverity, L1Assertion
from relayworks_ai.core.errors import EvalError


def test_default_registry_covers_every_builtin_check() -> None:
    registry = default_assertion_registry()
    assert set(registry.names()) == {c.value for c in AssertionCheck}


@pytest.mark.parametrize(
    "content",
    ["Dear {{name}}, thank you.", "Hi [INSERT NAME]", "Hello <<first>>", "Call XXXX today"],
)
def test_placeholders_are_detected(content: str) -> None:
    outcome = check_no_placeholders(content, {})
    assert outcome.passed is False
    assert outcome.message.startswith("Found placeholder(s): ")


def test_placeholder_message_lists_the_match() -> None:
    outcome = check_no_placeholders("Dear {{name}}, thank you.", {})
    assert "{{name}" in outcome.message


def test_recipient_name_is_case_insensitive() -> None:
    assert check_contains_recipient_name("hello ALICE", {"name": "alice"}).passed
    missing = check_contains_recipient_name("hello Bob", {"name": "Alice"})
    assert not missing.passed
    assert missing.message == "Content does not mention recipient name: Alice"
    assert check_contains_recipient_name("anything", {}).message == "No name provided to check"


def test_hallucination_check_is_skipped_with_known_facts() -> None:
    content = "We saw a 45% increase in pipeline."
    assert not check_no_hallucination(content, {}).passed
    assert check_no_hallucination(content, {"known_facts": ["45% increase"]}).passed
    assert check_no_hallucination("A plain note.", {}).passed


def test_language_needs_more_than_five_markers() -> None:
    english = "The plan is to ship the fix and the docs for the team and the users."
    assert check_correct_language(english, {"language": "en"}).passed
    assert not check_correct_language("Short note.", {"language": "en"}).passed
    assert check_correct_language("whatever", {"language": "xx"}).message == "Unknown language"


def test_length_bounds() -> None:
    assert not check_min_length("short", {}).passed
    assert check_min_length("x" * 50, {}).passed
    assert check_min_length("abc", {"min": 3}).passed
    assert check_max_length("x" * 5000, {}).passed
    outcome = check_max_length("x" * 11, {"max": 10})
    assert not outcome.passed
    assert outcome.message == "Content is 11 chars, maximum is 10"


def test_profanity_cta_and_competitors() -> None:
    assert not check_no_profanity("What the hell happened", {}).passed
    assert check_no_profanity("Hello there", {}).passed

    assert check_contains_cta("Would you like a demo", {}).passed
    assert check_contains_cta("Does Tuesday work?", {}).passed
    assert not check_contains_cta("Here is the report.", {}).passed

    outcome = check_no_competitor_mentions("We beat Acme easily", {"competitors": ["acme"]})
    assert not outcome.passed
    assert outcome.message == "Content mentions competitor: acme"


def test_reference_to_prior_exchange_only_checked_with_history() -> None:
    assert check_references_real_exchange("New topic.", {}).passed
    assert not check_references_real_exchange("New topic.", {"history": ["hi"]}).passed
    assert check_references_real_exchange("Following up on our call.", {"history": ["hi"]}).passed


def test_run_l1_only_block_failures_fail_the_tier() -> None:
    assertions = [
        L1Assertion(check="no_placeholders", severity=AssertionSeverity.block),
        L1Assertion(check="min_length", severity=AssertionSeverity.warn, params={"min": 500}),
    ]
    ok = run_l1("A clean and complete message.", assertions)
    assert ok.passed is True
    assert [a.passed for a in ok.assertions] == [True, False]

    blocked = run_l1("Dear {{name}}, thank you.", assertions)
    assert blocked.passed is False
    assert [f.check for f in blocked.failures] == ["no_placeholders", "min_length"]


def test_unknown_assertion_passes_with_message() -> None:
    result = run_l1("text", [L1Assertion(check="mystery_check")])
    assert result.passed is True
    assert result.assertions[0].message == "Unknown assertion: mystery_check"


def test_custom_checks_can_be_registered() -> None:
    registry = AssertionRegistry()
    registry.register("mentions_pricing", lambda content, params: CheckOutcome("$" in content, "no price"))

    result = run_l1("No numbers here", [L1Assertion(check="mentions_pricing")], registry)
    assert result.passed is False
    assert result.assertions[0].message == "no price"


def test_a_raising_check_is_an_eval_error() -> None:
    def broken(content, params):
        raise KeyError("threshold")

    registry = AssertionRegistry()
    registry.register("strict_tone", broken)

    with pytest.raises(EvalError) as exc_info:
        run_l1("Hello", [L1Assertion(check="strict_tone", params={"level": 2})], registry)
    assert exc_info.value.code == "eval_check_failed"
    assert exc_info.value.context == {"check": "strict_tone", "params": {"level": 2}}
    assert isinstance(exc_info.value.__cause__, KeyError)
