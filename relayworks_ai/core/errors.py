"""Error taxonomy for the execution and evaluation core.

Every error raised deliberately by the core derives from ``RelayworksError``
and carries three pieces of metadata besides its message:

- ``code``: a stable, machine-readable identifier (e.g. ``"llm_rate_limited"``).
- ``context``: structured details for logs and traces.
- ``is_retryable``: whether a job-level retry can reasonably succeed.

Error families
--------------

- Configuration errors (unknown node type, missing node field) are fatal and
  never retried.
- Cycle errors are fatal at sort time and surfaced to the workflow author.
- Transient external errors (rate limit, 5xx, network) are retryable.
- Agent execution errors wrap any fatal failure of a single agent run.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

CONTEXT_LENGTH_MARKERS = ("context length", "context_length", "prompt is too long", "too many tokens")


class RelayworksError(Exception):
    """Base error for all Relayworks-AI exceptions."""

    default_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context: Dict[str, Any] = dict(context or {})
        self.is_retryable = is_retryable

    def to_client_error(self) -> Dict[str, Any]:
        """Return the subset of the error that is safe to show to end users."""
        return {"code": self.code, "message": self.message, "retryable": self.is_retryable}

    def to_log_object(self) -> Dict[str, Any]:
        """Return a structured representation for logging and trace steps."""
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "retryable": self.is_retryable,
            "context": dict(self.context),
        }


class ConfigurationError(RelayworksError):
    """Raised when static configuration is missing or invalid."""

    default_code = "config_invalid"

    @classmethod
    def missing(cls, field: str, **context: Any) -> "ConfigurationError":
        return cls(f"Missing required configuration: {field}", code="config_missing", context={"field": field, **context})

    @classmethod
    def invalid(cls, field: str, reason: str, **context: Any) -> "ConfigurationError":
        return cls(
            f"Invalid configuration for {field}: {reason}",
            code="config_invalid",
            context={"field": field, "reason": reason, **context},
        )


class UnknownNodeTypeError(ConfigurationError):
    """Raised when a workflow node references a type with no registered executor."""

    def __init__(self, node_type: str) -> None:
        super().__init__(
            f"No executor found for node type: {node_type}",
            code="node_type_unknown",
            context={"node_type": node_type},
        )
        self.node_type = node_type


class ValidationError(RelayworksError):
    """Raised when a payload fails domain validation."""

    default_code = "validation_failed"


class WorkflowExecutionError(RelayworksError):
    """Raised when a workflow run cannot proceed."""

    default_code = "workflow_failed"

    @classmethod
    def node_failed(cls, node_id: str, node_type: str, reason: str, *, is_retryable: bool = False) -> "WorkflowExecutionError":
        return cls(
            f"Node '{node_id}' ({node_type}) failed: {reason}",
            code="workflow_node_failed",
            context={"node_id": node_id, "node_type": node_type},
            is_retryable=is_retryable,
        )

    @classmethod
    def timeout(cls, workflow_id: str, seconds: float) -> "WorkflowExecutionError":
        return cls(
            f"Workflow '{workflow_id}' timed out after {seconds}s",
            code="workflow_timeout",
            context={"workflow_id": workflow_id, "timeout_seconds": seconds},
            is_retryable=True,
        )


class WorkflowCycleError(WorkflowExecutionError):
    """Raised when a workflow connection graph is not acyclic."""

    def __init__(self, node_ids: Optional[list[str]] = None) -> None:
        super().__init__(
            "Workflow contains a cycle",
            code="workflow_cycle",
            context={"node_ids": list(node_ids or [])},
        )


class LLMError(RelayworksError):
    """Raised when the model provider rejects or fails a request."""

    default_code = "llm_error"

    def __init__(
        self,
        message: str,
        *,
        provider: str = "unknown",
        model: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(
            message,
            code=code,
            context={"provider": provider, "model": model, "status_code": status_code},
            is_retryable=is_retryable,
        )
        self.provider = provider
        self.model = model
        self.status_code = status_code

    @classmethod
    def rate_limited(cls, provider: str, model: Optional[str] = None) -> "LLMError":
        return cls(
            f"Rate limited by {provider}",
            provider=provider,
            model=model,
            status_code=429,
            code="llm_rate_limited",
            is_retryable=True,
        )

    @classmethod
    def invalid_api_key(cls, provider: str, status_code: int = 401) -> "LLMError":
        return cls(
            f"Invalid API key for {provider}",
            provider=provider,
            status_code=status_code,
            code="llm_invalid_api_key",
            is_retryable=False,
        )

    @classmethod
    def context_length_exceeded(
        cls, provider: str, model: Optional[str] = None, *, status_code: Optional[int] = None
    ) -> "LLMError":
        return cls(
            f"Context length exceeded for {model or provider}",
            provider=provider,
            model=model,
            status_code=status_code,
            code="llm_context_length_exceeded",
            is_retryable=False,
        )

    @classmethod
    def from_status(
        cls, status_code: int, message: str, *, provider: str = "unknown", model: Optional[str] = None
    ) -> "LLMError":
        """Classify an HTTP status code into a typed error.

        429 and 5xx are retryable; 401/403 are credential errors; a 400 or
        413 whose message reports an oversized prompt is a context length
        error; every other status is treated as a permanent request error.
        """
        if status_code == 429:
            return cls.rate_limited(provider, model)
        if status_code in (401, 403):
            return cls.invalid_api_key(provider, status_code)
        if status_code in (400, 413) and any(marker in message.lower() for marker in CONTEXT_LENGTH_MARKERS):
            return cls.context_length_exceeded(provider, model, status_code=status_code)
        return cls(
            f"API error: {message}",
            provider=provider,
            model=model,
            status_code=status_code,
            code="llm_server_error" if status_code >= 500 else "llm_request_error",
            is_retryable=status_code >= 500,
        )

    @classmethod
    def from_exception(cls, exc: BaseException, *, provider: str = "unknown", model: Optional[str] = None) -> "LLMError":
        """Wrap an arbitrary provider exception, inspecting ``status_code`` when present."""
        if isinstance(exc, LLMError):
            return exc
        status_code = getattr(exc, "status_code", None)
        if isinstance(status_code, int):
            return cls.from_status(status_code, str(exc), provider=provider, model=model)
        if isinstance(exc, (ConnectionError, TimeoutError, httpx.TransportError)):
            return cls(
                f"Network error: {exc}",
                provider=provider,
                model=model,
                code="llm_network_error",
                is_retryable=True,
            )
        return cls(str(exc) or type(exc).__name__, provider=provider, model=model)


class ToolExecutionError(RelayworksError):
    """Raised when a tool handler or data source fails."""

    default_code = "tool_failed"

    def __init__(self, tool_name: str, message: str, *, is_retryable: bool = False) -> None:
        super().__init__(
            f"Tool '{tool_name}' failed: {message}",
            context={"tool_name": tool_name},
            is_retryable=is_retryable,
        )
        self.tool_name = tool_name


class EvalError(RelayworksError):
    """Raised when the evaluation gate itself cannot produce a result."""

    default_code = "eval_failed"


class AgentExecutionError(RelayworksError):
    """Raised when an agent run fails; carries the agent and run identifiers."""

    default_code = "agent_execution_failed"

    def __init__(self, agent_id: str, run_id: str, message: str, *, is_retryable: bool = False) -> None:
        super().__init__(
            f"Agent '{agent_id}' run '{run_id}' failed: {message}",
            context={"agent_id": agent_id, "run_id": run_id},
            is_retryable=is_retryable,
        )
        self.agent_id = agent_id
        self.run_id = run_id
        self.reason = message


class UnrecoverableJobError(RelayworksError):
    """Raised by a job processor to fail a job without further attempts."""

    default_code = "job_unrecoverable"
