from __future__ import annotations

import pytest

from relayworks_ai.core.errors import UnknownNodeTypeError
from relayworks_ai.workflow import NodeExecutorRegistry, NodeType, build_default_registry, manual_trigger_executor
from relayworks_ai.workflow.template import render


def test_default_registry_binds_builtin_types() -> None:
    registry = build_default_registry()
    for node_type in ("manual_trigger", "initial", "http_request", "condition", "wait_for_event"):
        assert registry.has(node_type)
    assert not registry.has(NodeType.agent)
    assert registry.get("initial") is manual_trigger_executor


def test_unknown_types_raise() -> None:
    registry = NodeExecutorRegistry()
    assert not registry.has("send_fax")
    with pytest.raises(UnknownNodeTypeError) as exc_info:
        registry.get("send_fax")
    assert exc_info.value.node_type == "send_fax"
    with pytest.raises(UnknownNodeTypeError):
        registry.get(NodeType.condition)
    with pytest.raises(UnknownNodeTypeError):
        registry.register("send_fax", manual_trigger_executor)  # type: ignore[arg-type]


def test_render_paths_and_json() -> None:
    context = {"lead": {"email": "ana@example.com", "tags": ["vip"]}, "count": 3, "rows": [{"id": 7}]}

    assert render("mailto:{{lead.email}}", context) == "mailto:ana@example.com"
    assert render("{{ count }} new", context) == "3 new"
    assert render("{{rows.0.id}}", context) == "7"
    assert render("{{lead.tags}}", context) == '["vip"]'
    assert render('{"n": {{json count}}}', context) == '{"n": 3}'


def test_render_missing_values() -> None:
    assert render("Hi {{missing.name}}!", {}) == "Hi !"
    assert render("{{json missing}}", {}) == "null"
    assert render("no placeholders", {"a": 1}) == "no placeholders"
