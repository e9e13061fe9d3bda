"""Built-in node executors.

Every executor has the signature ``(data, node_id, user_id, context) ->
Continue | Suspend`` and returns a new context instead of mutating the one
it received. Missing required configuration raises ``ConfigurationError``
(never retried); failures of external calls raise
``WorkflowExecutionError`` with ``is_retryable`` set for transient causes.

``build_default_registry`` is the single place where node types are bound
to executors.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence
from uuid import uuid4

import httpx

from relayworks_ai.agent_core.repos.interfaces import AgentRepository
from relayworks_ai.agent_core.runtime.engine import AgentEngine
from relayworks_ai.agent_core.schemas.domain import AutonomyTier, EvalDecision, EvalResult, ExecutionContext
from relayworks_ai.core.errors import ConfigurationError, WorkflowExecutionError

from .models import (
    SELECTED_BRANCH,
    TRIGGERED_AT,
    Continue,
    NodeOutcome,
    NodeType,
    Suspend,
    WorkflowContext,
    extend,
)
from .registry import NodeExecutorRegistry
from .template import render

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
BODY_METHODS = ("POST", "PUT", "PATCH")
DEFAULT_BRANCH = "main"
AWAITING_EVENT = "awaiting_event"
RESUME_TOKEN = "resume_token"
AGENT_GATE = "agent_gate"
APPROVAL = "approval"
APPROVAL_EVENT = "approval"


def _require(data: Mapping[str, Any], field: str, node_id: str) -> Any:
    value = data.get(field)
    if value in (None, ""):
        raise ConfigurationError.missing(field, node_id=node_id)
    return value


def ensure_action_permitted(context: WorkflowContext, action: str, node_id: str, node_type: str) -> None:
    """Refuse a side effect that the upstream agent is not allowed to trigger.

    The most recent agent node leaves its gate in the context: a ``readonly``
    agent never acts, a non-empty ``actions`` list is an allow-list, and
    output that still needs review only acts once an ``approval`` event with
    ``approved: true`` has been merged into the context. Workflows without an
    agent node are not gated.
    """
    gate = context.get(AGENT_GATE)
    if not gate:
        return
    agent_id = gate.get("agent_id")
    if gate.get("autonomy_tier") == AutonomyTier.readonly.value:
        raise WorkflowExecutionError.node_failed(
            node_id, node_type, f"agent {agent_id} is in read-only mode; side-effect actions are disabled"
        )
    allowed = gate.get("actions") or []
    if allowed and action not in allowed:
        raise WorkflowExecutionError.node_failed(node_id, node_type, f"action '{action}' is not allowed for agent {agent_id}")
    if gate.get("approved"):
        return
    approval = context.get(APPROVAL) or {}
    if approval.get("approved") is not True:
        raise WorkflowExecutionError.node_failed(
            node_id, node_type, f"output of agent {agent_id} (run {gate.get('run_id')}) was not approved"
        )


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


async def manual_trigger_executor(
    data: Mapping[str, Any], node_id: str, user_id: str, context: WorkflowContext
) -> NodeOutcome:
    """Entry node: pass the context through, stamping when the run was triggered."""
    if TRIGGERED_AT in context:
        return Continue(extend(context))
    return Continue(extend(context, **{TRIGGERED_AT: datetime.now(timezone.utc).isoformat()}))


# ---------------------------------------------------------------------------
# HTTP request
# ---------------------------------------------------------------------------


class HttpRequestExecutor:
    """Call an HTTP endpoint and store the response under ``variable_name``.

    Node data: ``endpoint`` and optional ``body`` (both ``{{var}}``
    templates), ``method``, ``variable_name`` and optional ``action`` (the
    name checked against the upstream agent's allowed actions, defaults to
    ``http_request``). The stored value is
    ``{"http_response": {"status", "status_text", "data"}}`` where ``data``
    is parsed JSON when the response declares a JSON content type.

    Every method except ``GET`` is a side effect and goes through
    ``ensure_action_permitted`` first.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, *, timeout: float = 30.0) -> None:
        self._client = client
        self._timeout = timeout

    async def __call__(
        self, data: Mapping[str, Any], node_id: str, user_id: str, context: WorkflowContext
    ) -> NodeOutcome:
        endpoint = render(str(_require(data, "endpoint", node_id)), context)
        method = str(_require(data, "method", node_id)).upper()
        variable_name = str(_require(data, "variable_name", node_id))
        if method not in HTTP_METHODS:
            raise ConfigurationError.invalid("method", f"unsupported HTTP method {method}", node_id=node_id)
        if method != "GET":
            action = str(data.get("action") or NodeType.http_request.value)
            ensure_action_permitted(context, action, node_id, NodeType.http_request.value)

        body: Any = None
        if method in BODY_METHODS:
            rendered = render(str(data.get("body") or "{}"), context)
            try:
                body = json.loads(rendered)
            except json.JSONDecodeError as exc:
                raise ConfigurationError.invalid("body", f"not valid JSON after interpolation: {exc}", node_id=node_id) from exc

        logger.debug(f"HTTP node {node_id}: {method} {endpoint}")
        try:
            response = await self._send(method, endpoint, body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise WorkflowExecutionError.node_failed(
                node_id,
                NodeType.http_request.value,
                f"HTTP {status} from {endpoint}",
                is_retryable=status == 429 or status >= 500,
            ) from exc
        except httpx.TransportError as exc:
            raise WorkflowExecutionError.node_failed(
                node_id, NodeType.http_request.value, f"request to {endpoint} failed: {exc}", is_retryable=True
            ) from exc

        content_type = response.headers.get("content-type", "")
        payload = response.json() if "application/json" in content_type else response.text
        return Continue(
            extend(
                context,
                **{
                    variable_name: {
                        "http_response": {
                            "status": response.status_code,
                            "status_text": response.reason_phrase,
                            "data": payload,
                        }
                    }
                },
            )
        )

    async def _send(self, method: str, url: str, body: Any) -> httpx.Response:
        kwargs: dict[str, Any] = {}
        if body is not None:
            kwargs["json"] = body
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)


# ---------------------------------------------------------------------------
# Condition
# ---------------------------------------------------------------------------


def _email_domain(email: str) -> str:
    return email.split("@", 1)[1].lower() if "@" in email else ""


def has_external_attendees(context: WorkflowContext, inverse: bool) -> bool:
    """Whether ``calendar_event`` has attendees outside the organizer's domain.

    No attendees counts as internal; an organizer without a domain counts as
    external. ``inverse`` flips the answer.
    """
    event = context.get("calendar_event") or {}
    attendees: Sequence[Mapping[str, Any]] = event.get("attendees") or []
    if not attendees:
        return inverse
    organizer_domain = _email_domain(str((event.get("organizer") or {}).get("email") or ""))
    if not organizer_domain:
        return not inverse
    external = any(
        a.get("email") and _email_domain(str(a["email"])) != organizer_domain for a in attendees
    )
    return not external if inverse else external


def evaluate_condition(condition: Mapping[str, Any], context: WorkflowContext) -> bool:
    evaluator = condition.get("evaluator")
    if evaluator == "domain_check":
        return has_external_attendees(context, inverse=False)
    if evaluator == "domain_check_inverse":
        return has_external_attendees(context, inverse=True)
    logger.warning(f"Unknown condition evaluator '{evaluator}' never matches")
    return False


async def condition_executor(
    data: Mapping[str, Any], node_id: str, user_id: str, context: WorkflowContext
) -> NodeOutcome:
    """Select a branch into ``selected_branch``.

    The first matching condition wins; without a match the last condition is
    the fallback, and without conditions the branch is ``main``.
    """
    conditions = list(data.get("conditions") or [])
    if not conditions:
        return Continue(extend(context, **{SELECTED_BRANCH: DEFAULT_BRANCH}))
    for index, condition in enumerate(conditions):
        if not isinstance(condition, Mapping) or not condition.get("id"):
            raise ConfigurationError.invalid(f"conditions[{index}].id", "every condition needs an id", node_id=node_id)
    for condition in conditions:
        if evaluate_condition(condition, context):
            return Continue(extend(context, **{SELECTED_BRANCH: condition["id"]}))
    return Continue(extend(context, **{SELECTED_BRANCH: conditions[-1]["id"]}))


# ---------------------------------------------------------------------------
# Wait for external event
# ---------------------------------------------------------------------------


async def wait_for_event_executor(
    data: Mapping[str, Any], node_id: str, user_id: str, context: WorkflowContext
) -> NodeOutcome:
    """Suspend the run until ``event`` arrives (e.g. a transcript webhook)."""
    event = str(_require(data, "event", node_id))
    token = uuid4().hex
    logger.info(f"Node {node_id} suspending run until '{event}' (token {token})")
    return Suspend(resume_token=token, context=extend(context, **{AWAITING_EVENT: event, RESUME_TOKEN: token}))


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


def _block_reason(result: EvalResult) -> str:
    if result.l3_blocked:
        return result.l3_reason or "L3 judge blocked the output"
    failed = [a.check for a in result.l1_assertions if not a.passed and a.severity.value == "block"]
    return f"L1 assertions failed: {', '.join(failed)}" if failed else "evaluation blocked the output"


class AgentNodeExecutor:
    """Run an agent and store a summary of its result under ``variable_name``.

    Node data: ``agent_id``, ``variable_name``, optional ``user_message``
    template and optional ``workspace_id``. The workflow context is passed to
    the agent as additional context.

    The eval decision gates what follows:

    * ``blocked`` fails the node, so nothing downstream runs;
    * ``needs_review``, or an agent in the ``review`` tier, suspends the run
      until an ``approval`` event arrives;
    * otherwise the run continues.

    The agent's tier, allowed actions and approval state are left under
    ``agent_gate`` for side-effect nodes to check.
    """

    def __init__(self, engine: AgentEngine, agents: AgentRepository) -> None:
        self._engine = engine
        self._agents = agents

    async def __call__(
        self, data: Mapping[str, Any], node_id: str, user_id: str, context: WorkflowContext
    ) -> NodeOutcome:
        agent_id = str(_require(data, "agent_id", node_id))
        variable_name = str(_require(data, "variable_name", node_id))
        config = await self._agents.get(agent_id)
        if config is None:
            raise ConfigurationError.invalid("agent_id", f"agent {agent_id} not found", node_id=node_id)

        message = data.get("user_message")
        execution_context = ExecutionContext(
            agent_id=agent_id,
            workspace_id=str(data.get("workspace_id") or config.workspace_id or user_id),
            user_id=user_id,
            triggered_by=str(context.get("triggered_by") or "manual"),
            user_message=render(str(message), context) if message else None,
            additional_context=dict(context),
        )
        result = await self._engine.execute(config, execution_context)
        decision = result.eval_result.final_decision
        if decision is EvalDecision.blocked:
            raise WorkflowExecutionError.node_failed(
                node_id,
                NodeType.agent.value,
                f"output of agent {agent_id} blocked by evaluation: {_block_reason(result.eval_result)}",
            )

        needs_approval = decision is EvalDecision.needs_review or config.autonomy_tier is AutonomyTier.review
        gate = {
            "agent_id": agent_id,
            "run_id": result.run_id,
            "autonomy_tier": config.autonomy_tier.value,
            "actions": list(config.actions),
            "decision": decision.value,
            "approved": not needs_approval,
        }
        summary = {
            "run_id": result.run_id,
            "status": result.status.value,
            "decision": decision.value,
            "content": result.output.content,
        }
        updated = extend(context, **{variable_name: summary, AGENT_GATE: gate, APPROVAL: None})
        if needs_approval and config.autonomy_tier is not AutonomyTier.readonly:
            token = uuid4().hex
            logger.info(f"Node {node_id} awaiting approval of run {result.run_id} ({decision.value}, token {token})")
            return Suspend(
                resume_token=token,
                context=extend(updated, **{AWAITING_EVENT: APPROVAL_EVENT, RESUME_TOKEN: token}),
            )
        return Continue(updated)


def build_default_registry(
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    engine: Optional[AgentEngine] = None,
    agents: Optional[AgentRepository] = None,
) -> NodeExecutorRegistry:
    """Register every built-in executor.

    The ``agent`` node type is only registered when both ``engine`` and
    ``agents`` are supplied.
    """
    registry = NodeExecutorRegistry()
    registry.register(NodeType.manual_trigger, manual_trigger_executor)
    registry.register(NodeType.initial, manual_trigger_executor)
    registry.register(NodeType.http_request, HttpRequestExecutor(http_client))
    registry.register(NodeType.condition, condition_executor)
    registry.register(NodeType.wait_for_event, wait_for_event_executor)
    if engine is not None and agents is not None:
        registry.register(NodeType.agent, AgentNodeExecutor(engine, agents))
    return registry
