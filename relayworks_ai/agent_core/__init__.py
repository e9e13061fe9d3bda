"""Agent execution and evaluation core.

This package contains the pieces that run one agent end to end:

- ``schemas``: domain models (agent configuration, eval results, traces,
  persisted workflows).
- ``llm``: tiered model access with the tool-calling loop and cost accounting.
- ``eval``: the L1/L2/L3 gate deciding between ``auto_send``,
  ``needs_review`` and ``blocked``.
- ``observability``: the per-run ``AgentTracer``.
- ``repos``: repository Protocols with in-memory and SQL implementations.
- ``runtime``: the LangGraph-based ``AgentEngine``.

Sub-packages are imported explicitly; this module re-exports nothing so that
importing a schema never pulls in the model or database stacks.
"""
