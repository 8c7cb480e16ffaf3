"""HTTP client used by the host to talk to node processes."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from loadtest.state import Action, LoadSpec

logger = logging.getLogger(__name__)


class NodeClient:
    """Thin wrapper over a requests session with a per-call timeout."""

    def __init__(self, timeout_s: float = 5.0, session: Optional[Any] = None) -> None:
        self.timeout_s = timeout_s
        self.session = session if session is not None else requests.Session()

    def control(self, node: str, action: Action, spec: Optional[LoadSpec] = None) -> str:
        """
        Send a start/stop command to one node.

        Args:
            node: Node base URL
            action: START or STOP
            spec: Load parameters (START only)

        Returns:
            The node's confirmation text

        Raises:
            requests.RequestException: On timeout, connection error or non-2xx status
        """
        params = (spec or LoadSpec()).to_params() if action is Action.START else None
        response = self.session.get(
            f"{node.rstrip('/')}/api/load/{action.value}",
            params=params,
            timeout=self.timeout_s,
        )
        response.raise_for_status()
        return response.text.strip()

    def status(self, node: str) -> Dict[str, Any]:
        response = self.session.get(f"{node.rstrip('/')}/api/status", timeout=self.timeout_s)
        response.raise_for_status()
        return response.json()
