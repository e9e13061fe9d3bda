"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for monitoring and
tracing of the execution core, including:
- Agent run start/completion
- LLM calls with token and cost metrics
- Eval gate decisions
- Job queue lifecycle events
- Error tracking

All helpers are best-effort: a monitoring failure is logged at DEBUG level and
never interrupts the caller.
"""

import logging
import os
from typing import Any, Optional

import logfire

logger = logging.getLogger(__name__)

# Logfire configuration from environment
LOGFIRE_ENABLED = os.getenv("LOGFIRE_ENABLED", "false").lower() in ("true", "1", "yes")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_PROJECT_NAME = os.getenv("LOGFIRE_PROJECT_NAME", "relayworks-ai")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "relayworks-ai-worker")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.0.0")

# Feature flags
LOGFIRE_TRACE_PYDANTIC_AI = os.getenv("LOGFIRE_TRACE_PYDANTIC_AI", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_SQLALCHEMY = os.getenv("LOGFIRE_TRACE_SQLALCHEMY", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_HTTPX = os.getenv("LOGFIRE_TRACE_HTTPX", "true").lower() in ("true", "1", "yes")


def initialize_logfire() -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    This function sets up Logfire with automatic instrumentation for:
    - Pydantic AI model calls
    - SQLAlchemy database operations
    - HTTPX HTTP requests

    Returns:
        True when Logfire was configured, False when it is disabled or misconfigured.
    """
    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not LOGFIRE_TOKEN:
        logger.warning(
            "Logfire is enabled but LOGFIRE_TOKEN is not set. "
            "Monitoring will not work. Set LOGFIRE_TOKEN to enable Logfire."
        )
        return False

    try:
        logfire.configure(
            token=LOGFIRE_TOKEN,
            service_name=LOGFIRE_SERVICE_NAME,
            service_version=LOGFIRE_SERVICE_VERSION,
            environment=LOGFIRE_ENVIRONMENT,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return False

    instrumentations = (
        (LOGFIRE_TRACE_PYDANTIC_AI, "Pydantic AI", logfire.instrument_pydantic_ai),
        (LOGFIRE_TRACE_SQLALCHEMY, "SQLAlchemy", logfire.instrument_sqlalchemy),
        (LOGFIRE_TRACE_HTTPX, "HTTPX", logfire.instrument_httpx),
    )
    for enabled, label, instrument in instrumentations:
        if not enabled:
            continue
        try:
            instrument()
            logger.info(f"Logfire: {label} instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument {label}: {e}")

    logger.info(
        f"Logfire monitoring initialized: "
        f"project={LOGFIRE_PROJECT_NAME}, "
        f"environment={LOGFIRE_ENVIRONMENT}, "
        f"service={LOGFIRE_SERVICE_NAME}"
    )
    return True


def log_agent_run(run_id: str, agent_id: str, workspace_id: str, triggered_by: str) -> None:
    """
    Log the start of an agent run with context.

    Args:
        run_id: The unique identifier for the run
        agent_id: The agent being executed
        workspace_id: The owning workspace
        triggered_by: The trigger source (manual, cron, webhook, ...)
    """
    try:
        logfire.info(
            "Agent run started",
            run_id=run_id,
            agent_id=agent_id,
            workspace_id=workspace_id,
            triggered_by=triggered_by,
        )
    except Exception:
        logger.debug(f"Could not log agent run to Logfire: run_id={run_id}")


def log_agent_completion(run_id: str, status: str, duration_ms: float) -> None:
    """
    Log the completion of an agent run.

    Args:
        run_id: The unique identifier for the run
        status: The final status (completed, pending_review, blocked, failed)
        duration_ms: The duration of the run in milliseconds
    """
    try:
        logfire.info("Agent run completed", run_id=run_id, status=status, duration_ms=duration_ms)
    except Exception:
        logger.debug(f"Could not log agent completion to Logfire: run_id={run_id}")


def log_llm_call(model: str, tokens_used: int, cost_usd: Optional[float] = None, step_number: int = 1) -> None:
    """
    Log an LLM model call with usage metrics.

    Args:
        model: The model name
        tokens_used: Total tokens used in the call
        cost_usd: The cost in USD (optional)
        step_number: Position of the call within a tool-calling loop
    """
    try:
        logfire.info(
            "LLM call completed",
            model=model,
            tokens_used=tokens_used,
            cost_usd=cost_usd,
            step_number=step_number,
        )
    except Exception:
        logger.debug(f"Could not log LLM call to Logfire: model={model}")


def log_eval_decision(decision: str, l1_passed: bool, l2_score: float, l3_triggered: bool) -> None:
    """Log the final decision of the evaluation gate."""
    try:
        logfire.info(
            "Eval decision",
            decision=decision,
            l1_passed=l1_passed,
            l2_score=l2_score,
            l3_triggered=l3_triggered,
        )
    except Exception:
        logger.debug(f"Could not log eval decision to Logfire: decision={decision}")


def log_job_event(queue: str, job_id: str, event: str, **attributes: Any) -> None:
    """Log a job lifecycle transition (completed, failed, retried, stalled)."""
    try:
        logfire.info("Job {event}", event=event, queue=queue, job_id=job_id, **attributes)
    except Exception:
        logger.debug(f"Could not log job event to Logfire: {queue}/{job_id} {event}")


def log_error(error_type: str, error_message: str, context: Optional[dict] = None) -> None:
    """
    Log an error with context for debugging.

    Args:
        error_type: Type of error
        error_message: Error message
        context: Additional context dictionary
    """
    try:
        logfire.error(
            "{error_type}: {error_message}",
            error_type=error_type,
            error_message=error_message,
            **(context or {}),
        )
    except Exception:
        logger.debug(f"Could not log error to Logfire: {error_type}")
