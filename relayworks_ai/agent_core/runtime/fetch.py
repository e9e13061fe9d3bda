"""Best-effort data fetching for agent runs.

Each configured source is fetched independently and its outcome captured as
``Ok(data)`` or ``Err(reason)``. A failing source never aborts the run: its
slot in the prompt data becomes ``{"error": "fetch_failed", "reason": ...}``
and the tracer records a failed tool call.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from ..observability.tracer import AgentTracer
from ..schemas.domain import ExecutionContext, FetchSource

logger = logging.getLogger(__name__)

FETCH_FAILED = "fetch_failed"


class DataFetcher(Protocol):
    """Read data for one fetch source (mailbox query, CRM lookup, ...)."""

    async def fetch(self, source: FetchSource, context: ExecutionContext) -> Any:
        ...


@dataclass(frozen=True)
class Ok:
    data: Any


@dataclass(frozen=True)
class Err:
    reason: str


FetchOutcome = Union[Ok, Err]


def placeholder(reason: str) -> Dict[str, str]:
    return {"error": FETCH_FAILED, "reason": reason}


async def fetch_source(
    fetcher: Optional[DataFetcher], source: FetchSource, context: ExecutionContext
) -> FetchOutcome:
    if fetcher is None:
        return Err("no data fetcher configured")
    try:
        return Ok(await fetcher.fetch(source, context))
    except Exception as exc:
        logger.warning(f"Fetch from '{source.source}' failed: {exc}")
        return Err(str(exc) or type(exc).__name__)


async def fetch_all(
    fetcher: Optional[DataFetcher],
    sources: Sequence[FetchSource],
    context: ExecutionContext,
    tracer: Optional[AgentTracer] = None,
) -> Tuple[Dict[str, Any], List[Tuple[str, FetchOutcome]]]:
    """Fetch every source in order.

    Returns the prompt data keyed by source name (failures replaced by
    placeholders) and the raw per-source outcomes.
    """
    data: Dict[str, Any] = {}
    outcomes: List[Tuple[str, FetchOutcome]] = []
    for source in sources:
        started = time.perf_counter()
        outcome = await fetch_source(fetcher, source, context)
        duration_ms = (time.perf_counter() - started) * 1000.0
        outcomes.append((source.source, outcome))
        if isinstance(outcome, Ok):
            data[source.source] = outcome.data
        else:
            data[source.source] = placeholder(outcome.reason)
        if tracer is not None:
            tracer.record_tool_call(
                source.source,
                input=source.model_dump(exclude_none=True),
                output=outcome.data if isinstance(outcome, Ok) else None,
                success=isinstance(outcome, Ok),
                error=outcome.reason if isinstance(outcome, Err) else None,
                duration_ms=duration_ms,
            )
    return data, outcomes
