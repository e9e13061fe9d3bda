"""Workflow execution.

``WorkflowExecutor`` sorts the workflow graph, resolves an executor for every
node up front, then threads the context linearly through the nodes. A node
returning ``Suspend`` stops the run; ``resume`` later continues with the node
after the suspended one, with the event payload merged into the context.

Usage
-----

    executor = WorkflowExecutor(build_default_registry())
    result = await executor.run(workflow, user_id="u1", initial_data={"lead": {...}})
    if result.status is RunStatus.suspended:
        ...  # persist result.resume_token and result.context
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Tuple

from relayworks_ai.core.errors import ConfigurationError, RelayworksError, WorkflowExecutionError

from .executors import AWAITING_EVENT, RESUME_TOKEN
from .graph import topological_sort, validate_graph
from .models import (
    EXECUTION_ID,
    Continue,
    NodeExecutor,
    RunStatus,
    Suspend,
    Workflow,
    WorkflowContext,
    WorkflowNode,
    WorkflowRunResult,
    extend,
    freeze,
)
from .registry import NodeExecutorRegistry

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """Runs workflows against a node executor registry.

    When ``timeout_seconds`` is set, a single ``run`` or ``resume`` call that
    takes longer is cancelled and raises a retryable
    ``WorkflowExecutionError`` with code ``workflow_timeout``.
    """

    def __init__(self, registry: NodeExecutorRegistry, *, timeout_seconds: Optional[float] = None) -> None:
        self._registry = registry
        self._timeout_seconds = timeout_seconds

    def plan(self, workflow: Workflow) -> List[Tuple[WorkflowNode, NodeExecutor]]:
        """Sort the graph and bind every node to its executor.

        Raises:
            ConfigurationError: The graph is malformed (see ``validate_graph``).
            WorkflowCycleError: The graph has a cycle.
            UnknownNodeTypeError: A node type has no registered executor.
        """
        validate_graph(workflow.nodes, workflow.connections)
        ordered = topological_sort(workflow.nodes, workflow.connections)
        return [(node, self._registry.get(node.type)) for node in ordered]

    async def run(
        self,
        workflow: Workflow,
        *,
        user_id: str,
        initial_data: Optional[Mapping[str, Any]] = None,
        execution_id: Optional[str] = None,
    ) -> WorkflowRunResult:
        steps = self.plan(workflow)
        context = freeze(initial_data or {})
        if execution_id is not None:
            context = extend(context, **{EXECUTION_ID: execution_id})
        logger.info(f"Running workflow {workflow.id} ({len(steps)} nodes) for user {user_id}")
        return await self._execute_within_timeout(workflow, steps, user_id, context)

    async def resume(
        self,
        workflow: Workflow,
        *,
        user_id: str,
        suspended_at: str,
        context: Mapping[str, Any],
        event_data: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowRunResult:
        """Continue a suspended run after the node ``suspended_at``."""
        steps = self.plan(workflow)
        index = next((i for i, (node, _) in enumerate(steps) if node.id == suspended_at), None)
        if index is None:
            raise ConfigurationError.invalid(
                "suspended_node_id", f"node {suspended_at} is not part of workflow {workflow.id}"
            )
        resumed = {k: v for k, v in context.items() if k not in (AWAITING_EVENT, RESUME_TOKEN)}
        resumed.update(event_data or {})
        logger.info(f"Resuming workflow {workflow.id} after node {suspended_at}")
        return await self._execute_within_timeout(workflow, steps[index + 1 :], user_id, freeze(resumed))

    async def _execute_within_timeout(
        self,
        workflow: Workflow,
        steps: List[Tuple[WorkflowNode, NodeExecutor]],
        user_id: str,
        context: WorkflowContext,
    ) -> WorkflowRunResult:
        if self._timeout_seconds is None:
            return await self._execute(steps, user_id, context)
        try:
            return await asyncio.wait_for(self._execute(steps, user_id, context), timeout=self._timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning(f"Workflow {workflow.id} timed out after {self._timeout_seconds}s")
            raise WorkflowExecutionError.timeout(workflow.id, self._timeout_seconds) from exc

    async def _execute(
        self,
        steps: List[Tuple[WorkflowNode, NodeExecutor]],
        user_id: str,
        context: WorkflowContext,
    ) -> WorkflowRunResult:
        for node, executor in steps:
            logger.debug(f"Executing node {node.id} ({node.type})")
            try:
                outcome = await executor(node.data, node.id, user_id, context)
            except RelayworksError:
                raise
            except Exception as exc:
                raise WorkflowExecutionError.node_failed(node.id, node.type, str(exc) or type(exc).__name__) from exc

            if isinstance(outcome, Suspend):
                return WorkflowRunResult(
                    status=RunStatus.suspended,
                    context=outcome.context,
                    suspended_node_id=node.id,
                    resume_token=outcome.resume_token,
                )
            if not isinstance(outcome, Continue):
                raise WorkflowExecutionError.node_failed(
                    node.id, node.type, f"executor returned {type(outcome).__name__}, expected Continue or Suspend"
                )
            context = outcome.context
        return WorkflowRunResult(status=RunStatus.completed, context=context)
