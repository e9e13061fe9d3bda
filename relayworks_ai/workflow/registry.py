"""Node type -> executor registry."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Union

from relayworks_ai.core.errors import UnknownNodeTypeError

from .models import NodeExecutor, NodeType

logger = logging.getLogger(__name__)


def _as_node_type(node_type: Union[NodeType, str]) -> NodeType:
    if isinstance(node_type, NodeType):
        return node_type
    try:
        return NodeType(node_type)
    except ValueError:
        raise UnknownNodeTypeError(str(node_type)) from None


class NodeExecutorRegistry:
    """Typed mapping from ``NodeType`` to its executor.

    Built once at startup (see ``build_default_registry``) and read-only
    afterwards by convention.
    """

    def __init__(self) -> None:
        self._executors: Dict[NodeType, NodeExecutor] = {}

    def register(self, node_type: NodeType, executor: NodeExecutor) -> None:
        node_type = _as_node_type(node_type)
        if node_type in self._executors:
            logger.info(f"Replacing executor for node type {node_type.value}")
        self._executors[node_type] = executor

    def get(self, node_type: Union[NodeType, str]) -> NodeExecutor:
        """Return the executor for ``node_type``.

        Raises:
            UnknownNodeTypeError: No executor is registered for the type.
        """
        key = _as_node_type(node_type)
        executor = self._executors.get(key)
        if executor is None:
            raise UnknownNodeTypeError(key.value)
        return executor

    def has(self, node_type: Union[NodeType, str]) -> bool:
        try:
            return _as_node_type(node_type) in self._executors
        except UnknownNodeTypeError:
            return False

    def types(self) -> Iterable[NodeType]:
        return tuple(self._executors)
