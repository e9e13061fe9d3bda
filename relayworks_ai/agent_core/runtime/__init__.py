"""Agent run orchestration: data fetching, prompting, generation, evaluation and hooks."""

from .engine import STATUS_BY_DECISION, AgentEngine
from .fetch import DataFetcher, Err, Ok, fetch_all
from .hooks import HookRegistry, cost_tracking_hook, error_logging_hook, logging_hook
from .models import EngineDeps
from .prompt import DEFAULT_USER_MESSAGE, build_prompt

__all__ = [
    "AgentEngine",
    "DEFAULT_USER_MESSAGE",
    "DataFetcher",
    "EngineDeps",
    "Err",
    "HookRegistry",
    "Ok",
    "STATUS_BY_DECISION",
    "build_prompt",
    "cost_tracking_hook",
    "error_logging_hook",
    "fetch_all",
    "logging_hook",
]
