"""L1/L2/L3 evaluation gate for agent outputs."""

from .assertions import AssertionCheck, AssertionRegistry, CheckOutcome, default_assertion_registry, run_l1
from .engine import EvalEngine, determine_final_decision, l3_trigger_reasons, should_trigger_l3
from .judge import Judge, L3Verdict, PydanticAIJudge, build_l3_prompt, run_l3
from .scoring import CriteriaRegistry, default_criteria_registry, run_l2

__all__ = [
    "AssertionCheck",
    "AssertionRegistry",
    "CheckOutcome",
    "CriteriaRegistry",
    "EvalEngine",
    "Judge",
    "L3Verdict",
    "PydanticAIJudge",
    "build_l3_prompt",
    "default_assertion_registry",
    "default_criteria_registry",
    "determine_final_decision",
    "l3_trigger_reasons",
    "run_l1",
    "run_l2",
    "run_l3",
    "should_trigger_l3",
]
