import time

import pytest
import requests

from conftest import StubResponse, StubSession
from loadtest.client import NodeClient
from loadtest.fanout import NO_NODES, Aggregator, Broadcaster, is_empty_sentinel, render_text
from loadtest.registry import NodeRegistry
from loadtest.state import Action, LoadSpec, LoadType

NODES = ["http://10.0.0.1:8080", "http://10.0.0.2:8080", "http://10.0.0.3:8080"]


def status_handler(pod, delay=0.0):
    def handle(path, params):
        time.sleep(delay)
        if path == "/api/status":
            return StubResponse(json_body={
                "cpu_usage_percent": 42.5,
                "used_memory_mb": 512,
                "total_memory_mb": 2048,
                "available_processors": 4,
                "pod_name": pod,
                "running": True,
            })
        return StubResponse(text=f"ok {path} {pod}\n")
    return handle


@pytest.fixture
def registry():
    reg = NodeRegistry()
    for node in NODES:
        reg.add(node)
    return reg


def test_broadcast_to_empty_registry_makes_no_calls():
    session = StubSession({})
    results = Broadcaster(NodeRegistry(), NodeClient(session=session)).broadcast(Action.START)

    assert is_empty_sentinel(results)
    assert results[0].outcome == NO_NODES
    assert render_text(results) == NO_NODES
    assert session.calls == []


def test_broadcast_start_sends_load_parameters(registry):
    session = StubSession({node: status_handler(f"pod-{i}") for i, node in enumerate(NODES)})
    spec = LoadSpec(LoadType.MEMORY, cores=3, memory_mb=256)

    results = Broadcaster(registry, NodeClient(timeout_s=2.5, session=session)).broadcast(Action.START, spec)

    assert [r.node for r in results] == NODES
    assert all(r.ok for r in results)
    assert results[1].outcome == "ok /api/load/start pod-1"
    for url, params, timeout in session.calls:
        assert url.endswith("/api/load/start")
        assert params == {"type": "memory", "cores": 3, "memoryMB": 256}
        assert timeout == 2.5


def test_broadcast_stop_sends_no_parameters(registry):
    session = StubSession({node: status_handler("pod") for node in NODES})
    Broadcaster(registry, NodeClient(session=session)).broadcast(Action.STOP)

    assert sorted(url for url, _, _ in session.calls) == sorted(f"{n}/api/load/stop" for n in NODES)
    assert all(params is None for _, params, _ in session.calls)


def test_broadcast_isolates_failures_and_keeps_registry_order(registry):
    handlers = {
        NODES[0]: status_handler("slow", delay=0.2),
        NODES[2]: lambda path, params: StubResponse(status_code=500, text="boom"),
    }
    session = StubSession(handlers)

    results = Broadcaster(registry, NodeClient(session=session)).broadcast(Action.START)

    assert [r.node for r in results] == NODES
    assert results[0].ok and results[0].outcome == "ok /api/load/start slow"
    assert not results[1].ok and results[1].outcome.startswith("Failed - ")
    assert "Connection refused" in results[1].outcome
    assert results[2].outcome == "Failed - HTTP 500: boom"

    text = render_text(results)
    assert text.splitlines()[0] == f"{NODES[0]}: ok /api/load/start slow"
    assert len(text.splitlines()) == 3


def test_broadcast_uses_snapshot_taken_at_call_start(registry):
    def clearing_handler(path, params):
        registry.clear()
        return StubResponse(text="started")

    session = StubSession({node: clearing_handler for node in NODES})
    results = Broadcaster(registry, NodeClient(session=session), max_workers=1).broadcast(Action.START)

    assert [r.node for r in results] == NODES
    assert registry.list() == []


def test_timeouts_are_reported_per_node(registry):
    def timing_out(path, params):
        raise requests.Timeout("read timed out")

    session = StubSession({NODES[0]: timing_out, NODES[1]: status_handler("b"), NODES[2]: status_handler("c")})
    results = Broadcaster(registry, NodeClient(session=session)).broadcast(Action.STOP)

    assert results[0].outcome == "Failed - Timed out (read timed out)"
    assert results[1].ok and results[2].ok


def test_aggregate_marks_unreachable_node_without_reordering(registry):
    session = StubSession({
        NODES[0]: status_handler("pod-a", delay=0.1),
        NODES[2]: status_handler("pod-c"),
    })

    statuses = Aggregator(registry, NodeClient(session=session)).aggregate_status()

    assert [s.node for s in statuses] == NODES
    assert statuses[0].snapshot.pod_name == "pod-a"
    assert statuses[1].unreachable
    assert statuses[2].snapshot.pod_name == "pod-c"

    rendered = [s.to_dict() for s in statuses]
    assert rendered[0]["node_url"] == NODES[0]
    assert rendered[0]["cpu_usage_percent"] == 42.5
    assert rendered[1] == {
        "node_url": NODES[1],
        "error": "Unreachable",
        "reason": rendered[1]["reason"],
        "pod_name": "Unknown",
        "unreachable": True,
    }
    assert "Connection refused" in rendered[1]["reason"]


def test_aggregate_does_not_cache_previous_snapshots(registry):
    handlers = {node: status_handler("pod") for node in NODES}
    session = StubSession(handlers)
    aggregator = Aggregator(registry, NodeClient(session=session))

    assert not any(s.unreachable for s in aggregator.aggregate_status())

    del handlers[NODES[1]]
    second = aggregator.aggregate_status()
    assert second[1].unreachable
    assert second[1].snapshot is None


def test_aggregate_empty_registry():
    assert Aggregator(NodeRegistry(), NodeClient(session=StubSession({}))).aggregate_status() == []


def test_node_client_owns_a_requests_session_by_default():
    client = NodeClient(timeout_s=3.0)

    assert isinstance(client.session, requests.Session)
    assert client.timeout_s == 3.0
    assert not hasattr(client, "close")
