import multiprocessing
import os
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

os.environ.setdefault("LOADTEST_ROLE", "node")
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
import requests


class StubResponse:
    def __init__(self, status_code: int = 200, text: str = "", json_body: Any = None) -> None:
        self.status_code = status_code
        self.text = text
        self._json = json_body

    def json(self) -> Any:
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class StubSession:
    """Records calls and answers from a per-node handler table."""

    def __init__(self, handlers: Dict[str, Callable[[str, Optional[dict]], StubResponse]]) -> None:
        self.handlers = handlers
        self.calls: List[tuple] = []

    def get(self, url: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> StubResponse:
        parts = urlsplit(url)
        node = f"{parts.scheme}://{parts.netloc}"
        self.calls.append((url, params, timeout))
        handler = self.handlers.get(node)
        if handler is None:
            raise requests.ConnectionError(f"Connection refused: {node}")
        return handler(parts.path, params)


class FlaskRoutingSession(StubSession):
    """Routes node calls to in-process Flask test clients."""

    def __init__(self, apps: Dict[str, Any]) -> None:
        super().__init__({})
        self.clients = {node: app.test_client() for node, app in apps.items()}
        for node in self.clients:
            self.handlers[node] = self._make_handler(node)

    def _make_handler(self, node: str) -> Callable[[str, Optional[dict]], StubResponse]:
        def handle(path: str, params: Optional[dict]) -> StubResponse:
            resp = self.clients[node].get(path, query_string=params or {})
            return StubResponse(
                status_code=resp.status_code,
                text=resp.get_data(as_text=True),
                json_body=resp.get_json(silent=True),
            )
        return handle


class FlakyContext:
    """multiprocessing context whose Nth Process() call raises OSError."""

    def __init__(self, fail_on: int) -> None:
        self._ctx = multiprocessing.get_context()
        self.fail_on = fail_on
        self.created: List[Any] = []

    def Event(self) -> Any:
        return self._ctx.Event()

    def Process(self, *args: Any, **kwargs: Any) -> Any:
        if len(self.created) + 1 == self.fail_on:
            raise OSError("Resource temporarily unavailable")
        proc = self._ctx.Process(*args, **kwargs)
        self.created.append(proc)
        return proc


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fake_dns():
    table: Dict[str, List[str]] = {}

    def resolve(host: str) -> List[str]:
        import socket
        if host not in table:
            raise socket.gaierror(f"Name or service not known: {host}")
        return list(table[host])

    resolve.table = table
    return resolve
