"""Relayworks-AI.

This package contains the execution and evaluation core used by Relayworks-AI
to run LLM-backed agents and multi-step workflows, and to gate their
side-effecting output before it leaves the system.

High-level architecture
-----------------------

The codebase is organized around one question: *is this agent output safe to
act on?*

- **Generation**: an agent run fetches data, assembles a prompt and calls a
  tiered LLM (``fast``/``smart``/``deep``) with cost and latency accounting.
- **Evaluation**: the candidate output passes a three-tier gate (L1
  deterministic assertions, L2 heuristic scoring, L3 LLM-as-judge) that
  decides between ``auto_send``, ``needs_review`` and ``blocked``.

Core subpackages
----------------

- ``relayworks_ai.agent_core``:

  - The LLM client (tool-calling loop, streaming, usage events).
  - The eval engine (L1/L2/L3 gate).
  - The agent tracer and the LangGraph-based agent engine.
  - Repository interfaces with in-memory and SQL implementations.

- ``relayworks_ai.workflow``:

  - Topological ordering of node graphs and the node executor registry.
  - The linear context-threading executor with suspend/resume.

- ``relayworks_ai.job_queue``:

  - A durable, retrying job queue and a worker with stalled-job detection and
    graceful shutdown, plus typed workflow and agent job processors.

- ``relayworks_ai.core``:

  - Settings, logging, Logfire monitoring, the error taxonomy and database
    helpers.

Typical workflow
----------------

1. A trigger enqueues a job (``enqueue_workflow`` or ``enqueue_agent_run``).
2. A ``Worker`` claims the job and hands it to a processor.
3. The processor runs the ``WorkflowExecutor`` or the ``AgentEngine``.
4. The ``EvalEngine`` gates the generated output.
5. The ``AgentTracer`` trace is persisted and lifecycle hooks fire.
"""
