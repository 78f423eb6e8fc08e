# tests/conftest.py
"""
Pytest fixtures for hubmirror tests.

This module provides:
    - An in-memory FakeEngine recording every engine call
    - Response stream doubles (fixed chunks, blocking until aborted)
    - Helpers to build multiplexed log frames
    - A local stalling HTTP server for tests over real sockets
    - Docker availability detection
"""

import json
import socketserver
import struct
import threading
from typing import Any
from unittest.mock import MagicMock

import docker
import pytest

from hubmirror.base import ContainerCreation, ContainerEngine, ContainerId, ResponseStream
from hubmirror.client import EngineClient
from hubmirror.credentials import encode_auth_token
from hubmirror.docker_engine import DockerEngine

# ==============================================================================
# Docker Availability
# ==============================================================================


def is_docker_available() -> bool:
    """Check if a Docker daemon is reachable for testing."""
    try:
        client = docker.from_env()
        client.ping()
        return True
    except Exception:
        return False


requires_docker = pytest.mark.skipif(not is_docker_available(), reason="Docker not available")


# ==============================================================================
# Stream Helpers
# ==============================================================================


def frame(stream: int, payload: bytes) -> bytes:
    """Build one multiplexed log frame."""
    return struct.pack(">BxxxL", stream, len(payload)) + payload


def progress(*messages: dict[str, Any]) -> list[bytes]:
    """Encode progress messages the way the engine streams them."""
    return [(json.dumps(m) + "\r\n").encode() for m in messages]


def wait_body(status_code: int = 0, error: str | None = None) -> bytes:
    """Encode a wait response body."""
    return json.dumps({"StatusCode": status_code, "Error": {"Message": error} if error else None}).encode()


class ChunkStream(ResponseStream):
    """Response stream yielding fixed chunks, then raising ``error`` if one is given."""

    def __init__(self, chunks: list[bytes], error: BaseException | None = None):
        self._chunks = list(chunks)
        self._error = error
        self.closed = False
        self.aborted = False
        self.consumed = False

    def __iter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error
        self.consumed = True

    def abort(self) -> None:
        self.aborted = True

    def close(self) -> None:
        self.closed = True


class BlockingStream(ResponseStream):
    """
    Response stream that yields one chunk and then blocks like a live socket.

    ``started`` is set once the first chunk has been handed out, which is
    the point where a transfer is in flight. As with a real HTTP response,
    ``close`` from another thread does not wake the reader; only ``abort``
    does.
    """

    def __init__(self, first_chunk: bytes):
        self._first_chunk = first_chunk
        self.started = threading.Event()
        self._aborted = threading.Event()
        self.closed = False

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def __iter__(self):
        yield self._first_chunk
        self.started.set()
        self._aborted.wait(timeout=10)
        raise ConnectionError("connection shut down")

    def abort(self) -> None:
        self._aborted.set()

    def close(self) -> None:
        self.closed = True


# ==============================================================================
# Stalling Daemon
# ==============================================================================


class _StallingHandler(socketserver.BaseRequestHandler):
    """Answers a request with one chunk of a chunked body, then stalls."""

    def handle(self):
        self.request.settimeout(10)
        self.request.recv(65536)
        body = self.server.first_chunk
        self.request.sendall(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/json\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n" + b"%x\r\n%s\r\n" % (len(body), body)
        )
        self.server.responded.set()
        try:
            while self.request.recv(4096):
                pass
        except TimeoutError:
            return
        except ConnectionResetError:
            pass
        self.server.client_closed.set()


class StallingDaemon(socketserver.ThreadingTCPServer):
    """
    Local HTTP server standing in for a daemon mid-transfer.

    ``client_closed`` is set when the client shuts its end of the
    connection down; a client that keeps the connection open leaves it
    unset.
    """

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, first_chunk: bytes):
        super().__init__(("127.0.0.1", 0), _StallingHandler)
        self.first_chunk = first_chunk
        self.responded = threading.Event()
        self.client_closed = threading.Event()

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"


# ==============================================================================
# Fake Engine
# ==============================================================================


class FakeEngine(ContainerEngine):
    """
    In-memory engine recording calls in order.

    Failures are injected per method through ``fail``: a mapping from
    method name to the exception that method raises.
    """

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.fail: dict[str, BaseException] = {}
        self.pull_stream: ResponseStream = ChunkStream(
            progress(
                {"status": "Pulling from teamA/app", "id": "latest"},
                {"status": "Digest: sha256:abc"},
                {"status": "Status: Downloaded newer image for src.io/teamA/app:latest"},
            )
        )
        self.push_stream: ResponseStream = ChunkStream(
            progress(
                {"status": "The push refers to repository [fwd.io/teamA_app]"},
                {"status": "latest: digest: sha256:abc size: 528"},
                {"aux": {"Tag": "latest", "Digest": "sha256:abc", "Size": 528}},
            )
        )
        self.logs_stream: ResponseStream = ChunkStream([frame(1, b"hello\n")])
        self.wait_stream: ResponseStream = ChunkStream([wait_body(0)])
        self.closed = False

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def version(self) -> dict[str, Any]:
        self._record("version")
        return {"Version": "24.0.0", "ApiVersion": "1.43"}

    def pull(self, reference: str, registry_auth: str) -> ResponseStream:
        self._record("pull", reference, registry_auth)
        return self.pull_stream

    def tag(self, source: str, target: str) -> None:
        self._record("tag", source, target)

    def push(self, reference: str, registry_auth: str) -> ResponseStream:
        self._record("push", reference, registry_auth)
        return self.push_stream

    def remove_image(self, reference: str, force: bool = True, prune_children: bool = True):
        self._record("remove_image", reference, force, prune_children)
        return [{"Untagged": reference}]

    def create_container(self, image: str, cmd: list[str]) -> ContainerCreation:
        self._record("create_container", image, cmd)
        return ContainerCreation(id=ContainerId("c0ffee1234567890"))

    def start_container(self, container_id: ContainerId) -> None:
        self._record("start_container", container_id)

    def wait_container(self, container_id: ContainerId, condition: str = "not-running"):
        self._record("wait_container", container_id, condition)
        return self.wait_stream

    def container_logs(self, container_id: ContainerId, stdout: bool = True, stderr: bool = True):
        self._record("container_logs", container_id, stdout, stderr)
        return self.logs_stream

    def close(self) -> None:
        self.closed = True


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def engine_client(fake_engine: FakeEngine) -> EngineClient:
    """Engine client handle over the fake engine."""
    return EngineClient(
        engine=fake_engine,
        forward_hub_domain="fwd.io",
        auth_token_forward=encode_auth_token("pusher", "fwd-secret"),
        source_hub_domain="src.io",
        auth_token_source=encode_auth_token("reader", "src-secret"),
    )


@pytest.fixture
def mock_api_client():
    """Mock docker.APIClient with the attributes DockerEngine reads."""
    api = MagicMock()
    api.base_url = "http://docker-host:2375"
    api.api_version = "1.41"
    api.timeout = 300
    api.headers = {}
    api.version.return_value = {"Version": "24.0.0", "ApiVersion": "1.41"}
    return api


@pytest.fixture
def stalling_daemon():
    server = StallingDaemon(progress({"status": "Pulling from teamA/app", "id": "latest"})[0])
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def stalling_engine(stalling_daemon):
    """DockerEngine over a real docker.APIClient pointed at the stalling daemon."""
    api = docker.APIClient(base_url=stalling_daemon.url, version="1.41", timeout=30)
    api.trust_env = False
    engine = DockerEngine(api)
    yield engine
    engine.close()
