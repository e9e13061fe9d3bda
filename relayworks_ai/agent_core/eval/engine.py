"""Three-tier evaluation gate.

``EvalEngine.evaluate`` runs L1 on every call, L2 only when L1 passed, and L3
only when one of its trigger conditions holds. The final decision is a strict
priority chain:

1. L3 blocked -> ``blocked``
2. L1 failed -> ``blocked``
3. L2 >= ``auto_send_threshold`` and approval not required -> ``auto_send``
4. otherwise -> ``needs_review``
"""

from __future__ import annotations

import logging
from typing import List, Optional

from relayworks_ai.core.monitoring import log_eval_decision

from ..schemas.domain import EvalDecision, EvalResult, EvalRules, L1Result, L3Result
from .assertions import AssertionRegistry, default_assertion_registry, run_l1
from .judge import Judge, run_l3
from .scoring import CriteriaRegistry, default_criteria_registry, run_l2

logger = logging.getLogger(__name__)


def l3_trigger_reasons(l1: L1Result, l2_score: float, rules: EvalRules) -> List[str]:
    """Return why L3 must run; an empty list means it is not triggered."""
    reasons: List[str] = []
    if not l1.passed:
        failed = ", ".join(a.check for a in l1.failures)
        reasons.append(f"L1 assertions failed: {failed}")
    elif l2_score < rules.min_confidence:
        reasons.append(f"L2 score {l2_score:.2f} is below minimum confidence {rules.min_confidence:.2f}")
    if rules.require_approval:
        reasons.append("Rules require approval for every output")
    return reasons


def should_trigger_l3(l1: L1Result, l2_score: float, rules: EvalRules) -> bool:
    return bool(l3_trigger_reasons(l1, l2_score, rules))


def determine_final_decision(
    l1_passed: bool, l2_score: float, l3: Optional[L3Result], rules: EvalRules
) -> EvalDecision:
    if l3 is not None and l3.blocked:
        return EvalDecision.blocked
    if not l1_passed:
        return EvalDecision.blocked
    if l2_score >= rules.auto_send_threshold and not rules.require_approval:
        return EvalDecision.auto_send
    return EvalDecision.needs_review


class EvalEngine:
    """Evaluate candidate agent outputs against an ``EvalRules`` set.

    The engine holds no per-run state; one instance can serve every agent.
    Without a ``judge`` (or with ``enable_l3`` off in the rules) a triggered
    L3 is recorded as triggered but not blocked.
    """

    def __init__(
        self,
        judge: Optional[Judge] = None,
        *,
        assertions: Optional[AssertionRegistry] = None,
        criteria: Optional[CriteriaRegistry] = None,
    ) -> None:
        self._judge = judge
        self._assertions = assertions or default_assertion_registry()
        self._criteria = criteria or default_criteria_registry()

    async def evaluate(self, content: str, rules: EvalRules) -> EvalResult:
        """Run the gate on ``content``.

        Raises:
            EvalError: A registered L1 check or L2 scorer raised.
        """
        l1 = run_l1(content, rules.assertions, self._assertions)
        if l1.passed:
            l2 = run_l2(content, rules.criteria, self._criteria)
            l2_score, l2_breakdown = l2.score, l2.breakdown
        else:
            l2_score, l2_breakdown = 0.0, {}

        reasons = l3_trigger_reasons(l1, l2_score, rules)
        l3: Optional[L3Result] = None
        if reasons and rules.enable_l3 and self._judge is not None:
            l3 = await run_l3(self._judge, content, [*rules.l3_trigger_conditions, *reasons])
        elif reasons:
            logger.debug("L3 triggered but no judge is active; treating as not blocked")

        decision = determine_final_decision(l1.passed, l2_score, l3, rules)
        result = EvalResult(
            l1_passed=l1.passed,
            l1_assertions=l1.assertions,
            l2_score=l2_score,
            l2_breakdown=l2_breakdown,
            l3_triggered=bool(reasons),
            l3_blocked=bool(l3 and l3.blocked),
            l3_confidence=l3.confidence if l3 else None,
            l3_reason=l3.reason if l3 else None,
            final_decision=decision,
        )
        logger.info(
            f"Eval decision={decision.value} l1_passed={l1.passed} l2_score={l2_score:.2f} l3_triggered={bool(reasons)}"
        )
        log_eval_decision(decision.value, l1.passed, l2_score, bool(reasons))
        return result
