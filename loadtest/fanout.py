"""
Broadcast and aggregation across every registered node.

Each node is contacted exactly once per call, concurrently, and a failure
on one node only ever shows up in that node's entry. Results follow the
registry order captured when the call started.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, TypeVar

import requests

from loadtest.client import NodeClient
from loadtest.registry import NodeRegistry
from loadtest.state import Action, LoadSpec, NodeOutcome, NodeStatus, StatusSnapshot

logger = logging.getLogger(__name__)

NO_NODES = "No nodes registered!"

T = TypeVar("T")


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        body = (exc.response.text or "").strip()[:200]
        return f"HTTP {exc.response.status_code}" + (f": {body}" if body else "")
    if isinstance(exc, requests.Timeout):
        return f"Timed out ({exc})"
    return str(exc) or exc.__class__.__name__


def fan_out(nodes: List[str], call: Callable[[str], T], max_workers: int) -> List[T]:
    """Run ``call`` for every node in parallel; results keep the order of ``nodes``."""
    if not nodes:
        return []
    with ThreadPoolExecutor(max_workers=min(len(nodes), max_workers), thread_name_prefix="fanout") as executor:
        return list(executor.map(call, nodes))


class Broadcaster:
    def __init__(self, registry: NodeRegistry, client: NodeClient, max_workers: int = 16) -> None:
        self.registry = registry
        self.client = client
        self.max_workers = max_workers

    def broadcast(self, action: Action, spec: Optional[LoadSpec] = None) -> List[NodeOutcome]:
        nodes = self.registry.list()
        if not nodes:
            return [NodeOutcome(node="", outcome=NO_NODES, ok=False)]

        spec = spec or LoadSpec()
        logger.info(f"Broadcasting {action.value} to {len(nodes)} nodes")

        def send(node: str) -> NodeOutcome:
            try:
                return NodeOutcome(node=node, outcome=self.client.control(node, action, spec))
            except Exception as e:
                reason = describe_error(e)
                logger.warning(f"{action.value} failed on {node}: {reason}")
                return NodeOutcome(node=node, outcome=f"Failed - {reason}", ok=False)

        return fan_out(nodes, send, self.max_workers)


class Aggregator:
    def __init__(self, registry: NodeRegistry, client: NodeClient, max_workers: int = 16) -> None:
        self.registry = registry
        self.client = client
        self.max_workers = max_workers

    def aggregate_status(self) -> List[NodeStatus]:
        def poll(node: str) -> NodeStatus:
            try:
                snapshot = StatusSnapshot.from_dict(self.client.status(node))
            except Exception as e:
                reason = describe_error(e)
                logger.warning(f"Status poll failed on {node}: {reason}")
                return NodeStatus(node=node, error=reason)
            return NodeStatus(node=node, snapshot=snapshot)

        return fan_out(self.registry.list(), poll, self.max_workers)


def is_empty_sentinel(results: List[NodeOutcome]) -> bool:
    return len(results) == 1 and not results[0].node and results[0].outcome == NO_NODES


def render_text(results: List[NodeOutcome]) -> str:
    if is_empty_sentinel(results):
        return NO_NODES
    return "".join(f"{r.node}: {r.outcome}\n" for r in results)
