"""Run tracing and trace analytics."""

from .tracer import AgentMetricsSummary, AgentTracer, record_feedback, summarize_agent_metrics

__all__ = ["AgentMetricsSummary", "AgentTracer", "record_feedback", "summarize_agent_metrics"]
