"""
Unit tests for the Logfire monitoring module.

This test suite covers:
- Logfire initialization with various configurations
- Instrumentation feature flags
- Custom logging helpers (agent runs, LLM calls, eval decisions, job events, errors)
- Graceful degradation when Logfire raises
"""

from unittest.mock import patch

import pytest

from relayworks_ai.core import monitoring

MODULE = "relayworks_ai.core.monitoring"


class TestInitializeLogfire:
    """Test initialize_logfire function."""

    def test_disabled(self):
        with patch(f"{MODULE}.LOGFIRE_ENABLED", False), patch(f"{MODULE}.logfire") as mock_logfire:
            assert monitoring.initialize_logfire() is False
            mock_logfire.configure.assert_not_called()

    def test_enabled_without_token(self):
        with (
            patch(f"{MODULE}.LOGFIRE_ENABLED", True),
            patch(f"{MODULE}.LOGFIRE_TOKEN", ""),
            patch(f"{MODULE}.logfire") as mock_logfire,
        ):
            assert monitoring.initialize_logfire() is False
            mock_logfire.configure.assert_not_called()

    def test_configure_and_instrument(self):
        with (
            patch(f"{MODULE}.LOGFIRE_ENABLED", True),
            patch(f"{MODULE}.LOGFIRE_TOKEN", "token-123"),
            patch(f"{MODULE}.LOGFIRE_SERVICE_NAME", "worker"),
            patch(f"{MODULE}.logfire") as mock_logfire,
        ):
            assert monitoring.initialize_logfire() is True

            kwargs = mock_logfire.configure.call_args.kwargs
            assert kwargs["token"] == "token-123"
            assert kwargs["service_name"] == "worker"
            mock_logfire.instrument_pydantic_ai.assert_called_once()
            mock_logfire.instrument_sqlalchemy.assert_called_once()
            mock_logfire.instrument_httpx.assert_called_once()

    def test_disabled_feature_flags_skip_instrumentation(self):
        with (
            patch(f"{MODULE}.LOGFIRE_ENABLED", True),
            patch(f"{MODULE}.LOGFIRE_TOKEN", "token-123"),
            patch(f"{MODULE}.LOGFIRE_TRACE_SQLALCHEMY", False),
            patch(f"{MODULE}.LOGFIRE_TRACE_HTTPX", False),
            patch(f"{MODULE}.logfire") as mock_logfire,
        ):
            assert monitoring.initialize_logfire() is True
            mock_logfire.instrument_pydantic_ai.assert_called_once()
            mock_logfire.instrument_sqlalchemy.assert_not_called()
            mock_logfire.instrument_httpx.assert_not_called()

    def test_instrumentation_failure_is_not_fatal(self):
        with (
            patch(f"{MODULE}.LOGFIRE_ENABLED", True),
            patch(f"{MODULE}.LOGFIRE_TOKEN", "token-123"),
            patch(f"{MODULE}.logfire") as mock_logfire,
        ):
            mock_logfire.instrument_pydantic_ai.side_effect = RuntimeError("not installed")
            assert monitoring.initialize_logfire() is True
            mock_logfire.instrument_httpx.assert_called_once()

    def test_configure_failure_returns_false(self):
        with (
            patch(f"{MODULE}.LOGFIRE_ENABLED", True),
            patch(f"{MODULE}.LOGFIRE_TOKEN", "token-123"),
            patch(f"{MODULE}.logfire") as mock_logfire,
        ):
            mock_logfire.configure.side_effect = ValueError("bad token")
            assert monitoring.initialize_logfire() is False


class TestLogHelpers:
    """Test the best-effort logging helpers."""

    def test_log_agent_run(self):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            monitoring.log_agent_run("run-1", "agent-1", "ws-1", "cron")
            mock_logfire.info.assert_called_once_with(
                "Agent run started",
                run_id="run-1",
                agent_id="agent-1",
                workspace_id="ws-1",
                triggered_by="cron",
            )

    def test_log_agent_completion(self):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            monitoring.log_agent_completion("run-1", "pending_review", 12.5)
            mock_logfire.info.assert_called_once_with(
                "Agent run completed", run_id="run-1", status="pending_review", duration_ms=12.5
            )

    def test_log_llm_call(self):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            monitoring.log_llm_call("anthropic:claude-3-haiku-20240307", 150, cost_usd=0.0004, step_number=2)
            kwargs = mock_logfire.info.call_args.kwargs
            assert kwargs["tokens_used"] == 150
            assert kwargs["step_number"] == 2

    def test_log_eval_decision(self):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            monitoring.log_eval_decision("blocked", False, 0.0, True)
            assert mock_logfire.info.call_args.kwargs["decision"] == "blocked"

    def test_log_job_event_passes_attributes(self):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            monitoring.log_job_event("workflow-execution", "job-1", "failed", attempts=3)
            kwargs = mock_logfire.info.call_args.kwargs
            assert kwargs["event"] == "failed"
            assert kwargs["attempts"] == 3

    def test_log_error_with_context(self):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            monitoring.log_error("LLMError", "rate limited", {"agent_id": "agent-1"})
            assert mock_logfire.error.call_args.kwargs["agent_id"] == "agent-1"

    @pytest.mark.parametrize(
        "call",
        [
            lambda: monitoring.log_agent_run("run-1", "agent-1", "ws-1", "manual"),
            lambda: monitoring.log_agent_completion("run-1", "failed", 1.0),
            lambda: monitoring.log_llm_call("model", 1),
            lambda: monitoring.log_eval_decision("auto_send", True, 1.0, False),
            lambda: monitoring.log_job_event("q", "job-1", "completed"),
        ],
    )
    def test_helpers_never_raise(self, call):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            mock_logfire.info.side_effect = RuntimeError("exporter down")
            call()

    def test_log_error_never_raises(self):
        with patch(f"{MODULE}.logfire") as mock_logfire:
            mock_logfire.error.side_effect = RuntimeError("exporter down")
            monitoring.log_error("X", "y")
