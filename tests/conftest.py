"""
pytest configuration and fixtures.
"""

import http.client
import json
import socket
import threading
from typing import Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from semanticd import Config, serve, Server
from semanticd.engine import (
    SemanticEngine,
    Context,
    Buffer,
    Definition,
    Completion,
    Diagnostic,
    EngineError,
)


# =============================================================================
# RAW REQUESTS
# =============================================================================

@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /ping?verbose=1 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample find_definition request with a JSON body."""
    body = json.dumps({
        "file_path": "pkg/mod.py",
        "buffers": [{"file_path": "pkg/mod.py", "contents": "x = 1\n"}],
        "line": 1,
        "column": 0,
    }).encode()
    return (
        b"POST /find_definition HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        + b"\r\n"
    ) + body


# =============================================================================
# STUB ENGINES
# =============================================================================

class RecordingEngine(SemanticEngine):
    """
    Engine that answers from the query itself and records every call.

    find_definition echoes the cursor back as the definition, so
    concurrent callers can check they got their own answer. Set
    ``definition``/``completions`` to override, or ``error`` to raise
    EngineError from every operation.
    """

    name = "recording"

    def __init__(self):
        self.calls: List[tuple] = []
        self._lock = threading.Lock()
        self.initialized_with = None
        self.definition: Optional[Definition] = None
        self.completions: Optional[List[Completion]] = None
        self.diagnostics: List[Diagnostic] = []
        self.not_found = False
        self.error: Optional[str] = None

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)
        if self.error is not None:
            raise EngineError(self.error)

    def initialize(self, config):
        self.initialized_with = config

    def find_definition(self, ctx: Context) -> Optional[Definition]:
        self._record("find_definition", ctx)
        if self.not_found:
            return None
        if self.definition is not None:
            return self.definition
        return Definition(
            file_path=ctx.file_path,
            text=f"def at_{ctx.position.line}_{ctx.position.column}():",
            line=ctx.position.line,
            column=ctx.position.column,
        )

    def list_completions(self, ctx: Context) -> Optional[List[Completion]]:
        self._record("list_completions", ctx)
        if self.not_found:
            return None
        return self.completions

    def parse_file(self, file_path: str, buffers: List[Buffer]) -> List[Diagnostic]:
        self._record("parse_file", file_path, buffers)
        return self.diagnostics


class FailingEngine(SemanticEngine):
    """Engine whose every operation blows up."""

    name = "failing"

    def find_definition(self, ctx):
        raise RuntimeError("engine is broken")

    def list_completions(self, ctx):
        raise RuntimeError("engine is broken")

    def parse_file(self, file_path, buffers):
        raise RuntimeError("engine is broken")


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def failing_engine() -> FailingEngine:
    return FailingEngine()


# =============================================================================
# SERVERS
# =============================================================================

@pytest.fixture
def config() -> Config:
    """Default test server configuration."""
    return Config(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=16,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestClient:
    """Minimal JSON client for a running server."""

    def __init__(self, server: Server):
        self.host = "127.0.0.1"
        self.port = int(server.addr().rsplit(":", 1)[1])

    def request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ) -> http.client.HTTPResponse:
        conn = http.client.HTTPConnection(self.host, self.port, timeout=10)
        try:
            conn.request(method, path, body=body, headers=headers or {})
            response = conn.getresponse()
            response.data = response.read()
            return response
        finally:
            conn.close()

    def get(self, path: str) -> http.client.HTTPResponse:
        return self.request("GET", path)

    def post(self, path: str, payload) -> http.client.HTTPResponse:
        return self.request(
            "POST",
            path,
            body=json.dumps(payload).encode(),
            headers={"Content-Type": "application/json"},
        )

    def post_raw(self, path: str, body: bytes) -> http.client.HTTPResponse:
        return self.request(
            "POST",
            path,
            body=body,
            headers={"Content-Type": "application/json"},
        )


@pytest.fixture
def running_server(config: Config, engine: RecordingEngine) -> Generator[Server, None, None]:
    """A server on a free port backed by the recording engine."""
    server = serve(config, engine)
    yield server
    server.close()


@pytest.fixture
def client(running_server: Server) -> TestClient:
    return TestClient(running_server)
