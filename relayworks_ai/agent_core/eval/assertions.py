"""L1 deterministic assertions.

Each check is a plain function ``(content, params) -> CheckOutcome``. The set
of built-in checks is closed and enumerated by ``AssertionCheck``; the
``AssertionRegistry`` returned by ``default_assertion_registry`` maps every
member to its implementation and is the single place where additional
workspace-specific checks may be registered at startup.

``run_l1`` executes *every* configured assertion, even after a failure, so the
result always carries full diagnostics. Only ``block``-severity failures flip
``passed`` to ``False``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence

from relayworks_ai.core.errors import EvalError

from ..schemas.domain import AssertionResult, AssertionSeverity, L1Assertion, L1Result

logger = logging.getLogger(__name__)


class AssertionCheck(str, Enum):
    contains_recipient_name = "contains_recipient_name"
    no_placeholders = "no_placeholders"
    no_hallucination = "no_hallucination"
    correct_language = "correct_language"
    min_length = "min_length"
    max_length = "max_length"
    no_profanity = "no_profanity"
    contains_cta = "contains_cta"
    no_competitor_mentions = "no_competitor_mentions"
    references_real_exchange = "references_real_exchange"


@dataclass(frozen=True)
class CheckOutcome:
    passed: bool
    message: Optional[str] = None


CheckFn = Callable[[str, Mapping[str, Any]], CheckOutcome]

PLACEHOLDER_PATTERNS = (
    re.compile(r"\[.*?\]"),
    re.compile(r"\{.*?\}"),
    re.compile(r"<<.*?>>"),
    re.compile(r"\[INSERT.*?\]", re.IGNORECASE),
    re.compile(r"\[YOUR.*?\]", re.IGNORECASE),
    re.compile(r"XXX+"),
)

UNVERIFIED_STAT_PATTERNS = (
    re.compile(r"\d{1,3}% (increase|decrease|growth|reduction)", re.IGNORECASE),
    re.compile(r"\$\d+[,\d]* (saved|earned|revenue)", re.IGNORECASE),
    re.compile(r"\d+ (customers|users|clients) (using|love|trust)", re.IGNORECASE),
)

LANGUAGE_MARKERS = {
    "en": re.compile(r"\b(the|and|is|are|to|for)\b", re.IGNORECASE),
    "fr": re.compile(r"\b(le|la|les|et|est|sont|pour)\b", re.IGNORECASE),
    "de": re.compile(r"\b(der|die|das|und|ist|sind|für)\b", re.IGNORECASE),
    "es": re.compile(r"\b(el|la|los|las|y|es|son|para)\b", re.IGNORECASE),
}

PROFANITY = re.compile(r"\b(damn|hell|crap)\b", re.IGNORECASE)

CTA_PATTERNS = (
    re.compile(r"\b(click|call|contact|reply|schedule|book|sign up|register|learn more|get started)\b", re.IGNORECASE),
    re.compile(r"\?$", re.MULTILINE),
    re.compile(r"let me know", re.IGNORECASE),
    re.compile(r"would you like", re.IGNORECASE),
)

PRIOR_EXCHANGE_PATTERNS = (
    re.compile(r"as (you|we) (mentioned|discussed)", re.IGNORECASE),
    re.compile(r"following up on", re.IGNORECASE),
    re.compile(r"regarding (your|our)", re.IGNORECASE),
    re.compile(r"as per (your|our)", re.IGNORECASE),
)


def check_contains_recipient_name(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    name = params.get("name")
    if not name:
        return CheckOutcome(True, "No name provided to check")
    if str(name).lower() in content.lower():
        return CheckOutcome(True)
    return CheckOutcome(False, f"Content does not mention recipient name: {name}")


def check_no_placeholders(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    for pattern in PLACEHOLDER_PATTERNS:
        matches = [m.group(0) for m in pattern.finditer(content)]
        if matches:
            return CheckOutcome(False, f"Found placeholder(s): {', '.join(matches)}")
    return CheckOutcome(True)


def check_no_hallucination(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    known_facts = params.get("known_facts") or params.get("knownFacts") or []
    if known_facts:
        return CheckOutcome(True)
    if any(p.search(content) for p in UNVERIFIED_STAT_PATTERNS):
        return CheckOutcome(False, "Content may contain unverified statistics")
    return CheckOutcome(True)


def check_correct_language(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    language = params.get("language", "en")
    marker = LANGUAGE_MARKERS.get(language)
    if marker is None:
        return CheckOutcome(True, "Unknown language")
    if len(marker.findall(content)) > 5:
        return CheckOutcome(True)
    return CheckOutcome(False, f"Content may not be in {language}")


def check_min_length(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    minimum = int(params.get("min", 50))
    if len(content) >= minimum:
        return CheckOutcome(True)
    return CheckOutcome(False, f"Content is {len(content)} chars, minimum is {minimum}")


def check_max_length(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    maximum = int(params.get("max", 5000))
    if len(content) <= maximum:
        return CheckOutcome(True)
    return CheckOutcome(False, f"Content is {len(content)} chars, maximum is {maximum}")


def check_no_profanity(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    if PROFANITY.search(content):
        return CheckOutcome(False, "Content may contain inappropriate language")
    return CheckOutcome(True)


def check_contains_cta(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    if any(p.search(content) for p in CTA_PATTERNS):
        return CheckOutcome(True)
    return CheckOutcome(False, "Content does not contain a clear call-to-action")


def check_no_competitor_mentions(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    lowered = content.lower()
    for competitor in params.get("competitors") or []:
        if str(competitor).lower() in lowered:
            return CheckOutcome(False, f"Content mentions competitor: {competitor}")
    return CheckOutcome(True)


def check_references_real_exchange(content: str, params: Mapping[str, Any]) -> CheckOutcome:
    # Without history there is nothing to verify against.
    if not params.get("history"):
        return CheckOutcome(True)
    if any(p.search(content) for p in PRIOR_EXCHANGE_PATTERNS):
        return CheckOutcome(True)
    return CheckOutcome(False, "Content does not reference previous conversation")


class AssertionRegistry:
    """Registry of L1 check implementations keyed by check name."""

    def __init__(self) -> None:
        self._checks: Dict[str, CheckFn] = {}

    def register(self, name: str, fn: CheckFn) -> None:
        key = name.value if isinstance(name, AssertionCheck) else name
        self._checks[key] = fn

    def get(self, name: str) -> CheckFn:
        return self._checks[name]

    def has(self, name: str) -> bool:
        return name in self._checks

    def names(self) -> Iterable[str]:
        return tuple(self._checks)


def default_assertion_registry() -> AssertionRegistry:
    registry = AssertionRegistry()
    registry.register(AssertionCheck.contains_recipient_name, check_contains_recipient_name)
    registry.register(AssertionCheck.no_placeholders, check_no_placeholders)
    registry.register(AssertionCheck.no_hallucination, check_no_hallucination)
    registry.register(AssertionCheck.correct_language, check_correct_language)
    registry.register(AssertionCheck.min_length, check_min_length)
    registry.register(AssertionCheck.max_length, check_max_length)
    registry.register(AssertionCheck.no_profanity, check_no_profanity)
    registry.register(AssertionCheck.contains_cta, check_contains_cta)
    registry.register(AssertionCheck.no_competitor_mentions, check_no_competitor_mentions)
    registry.register(AssertionCheck.references_real_exchange, check_references_real_exchange)
    return registry


def run_assertion(content: str, assertion: L1Assertion, registry: AssertionRegistry) -> AssertionResult:
    if not registry.has(assertion.check):
        logger.warning(f"Unknown L1 assertion '{assertion.check}' treated as passed")
        return AssertionResult(
            check=assertion.check,
            severity=assertion.severity,
            passed=True,
            message=f"Unknown assertion: {assertion.check}",
        )
    try:
        outcome = registry.get(assertion.check)(content, assertion.params)
    except Exception as exc:
        raise EvalError(
            f"L1 check '{assertion.check}' raised: {exc}",
            code="eval_check_failed",
            context={"check": assertion.check, "params": dict(assertion.params)},
        ) from exc
    return AssertionResult(
        check=assertion.check,
        severity=assertion.severity,
        passed=outcome.passed,
        message=outcome.message,
    )


def run_l1(content: str, assertions: Sequence[L1Assertion], registry: Optional[AssertionRegistry] = None) -> L1Result:
    """Run every assertion and compute the block-severity verdict."""
    reg = registry or default_assertion_registry()
    results = [run_assertion(content, a, reg) for a in assertions]
    passed = all(r.passed for r in results if r.severity == AssertionSeverity.block)
    for r in results:
        if not r.passed:
            logger.debug(f"L1 {r.severity.value} failure: {r.check}: {r.message}")
    return L1Result(passed=passed, assertions=results)
