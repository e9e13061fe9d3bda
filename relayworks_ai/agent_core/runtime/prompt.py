"""Prompt assembly for single-shot agent runs."""

from __future__ import annotations

import json
from typing import Any, Mapping

from ..schemas.domain import AgentConfig, ExecutionContext

DEFAULT_USER_MESSAGE = "Process the data and respond."


def build_prompt(config: AgentConfig, context: ExecutionContext, fetched: Mapping[str, Any]) -> str:
    """Join the system prompt, fetched data, additional context and user request."""
    parts = [config.system_prompt]

    if fetched:
        parts.append("\n## Available Data\n")
        for source, data in fetched.items():
            parts.append(f"### {source}\n```json\n{json.dumps(data, indent=2, default=str)}\n```\n")

    if context.additional_context:
        parts.append("\n## Additional Context\n")
        parts.append(json.dumps(context.additional_context, indent=2, default=str))

    if context.user_message:
        parts.append("\n## User Request\n")
        parts.append(context.user_message)

    return "\n".join(parts)


def user_message_for(context: ExecutionContext) -> str:
    return context.user_message or DEFAULT_USER_MESSAGE
