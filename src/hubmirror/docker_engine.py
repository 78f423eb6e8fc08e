# src/hubmirror/docker_engine.py
"""
Docker Engine implementation of the container engine port.

Uses the low-level ``docker.APIClient`` from the docker-py SDK. The client
is a ``requests.Session``, so the transport settings (pool size, inactivity
timeout, compression) are applied to the session directly.

Pull and push are issued as streaming requests on the same session so that
the already-encoded registry token can be sent as the ``X-Registry-Auth``
header and so that an in-flight transfer can be aborted from another
thread by shutting down the response socket.

Usage:
    >>> engine = DockerEngine.connect("docker-host:2375", "1.41")
    >>> with engine.pull("src.io/teamA/app", token) as stream:
    ...     for chunk in stream:
    ...         pass
    >>> engine.close()

Requirements:
    - docker package (pip install docker)
    - Docker daemon reachable over TCP or a unix socket
"""

import logging
import socket
from typing import Any
from urllib.parse import quote

import docker
import requests
from docker.errors import DockerException, create_api_error_from_http_exception
from docker.utils import parse_repository_tag

from .base import ContainerCreation, ContainerEngine, ContainerId, ResponseStream
from .exceptions import EngineConnectionError

logger = logging.getLogger(__name__)

# Transport defaults
MAX_IDLE_CONNECTIONS = 10
IDLE_CONNECTION_TIMEOUT = 300

# Read size for streaming responses (32KB)
STREAM_CHUNK_SIZE = 32 * 1024


def daemon_base_url(daemon_host: str) -> str:
    """Build the daemon base URL; hosts that carry a scheme are kept as-is."""
    if "://" in daemon_host:
        return daemon_host
    return f"http://{daemon_host}"


def _response_socket(response: requests.Response) -> socket.socket | None:
    """
    Find the socket under a streaming response.

    Follows the same path as docker's ``CancellableStream.close``; returns
    None once the response has been released.
    """
    sock_fp = getattr(getattr(response.raw, "_fp", None), "fp", None)
    if sock_fp is None:
        return None
    sock_raw = getattr(sock_fp, "raw", None)
    if sock_raw is None:
        return getattr(sock_fp, "_sock", None)
    return getattr(sock_raw, "sock", None) or getattr(sock_raw, "_sock", None)


class HTTPResponseStream(ResponseStream):
    """Streaming ``requests`` response yielding raw byte chunks."""

    def __init__(self, response: requests.Response, chunk_size: int = STREAM_CHUNK_SIZE):
        self._response = response
        self._chunk_size = chunk_size

    def __iter__(self):
        return self._response.iter_content(chunk_size=self._chunk_size)

    def abort(self) -> None:
        """
        Shut the connection down under a reader blocked in another thread.

        ``Response.close`` alone does not wake a thread blocked in ``recv``
        and leaves the daemon transferring; shutting the socket down ends
        the read at once and tells the daemon the client is gone.
        """
        sock = _response_socket(self._response)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Socket already disconnected while aborting response: {e}")

    def close(self) -> None:
        self._response.close()


class DockerEngine(ContainerEngine):
    """
    Container engine backed by a Docker daemon.

    Attributes:
        _api: docker-py low-level API client
        _base_url: Daemon URL the client was created with
    """

    def __init__(self, api: docker.APIClient, base_url: str | None = None):
        self._api = api
        self._base_url = base_url or api.base_url

    @classmethod
    def connect(
        cls,
        daemon_host: str,
        api_version: str,
        max_idle_connections: int = MAX_IDLE_CONNECTIONS,
        idle_timeout: int = IDLE_CONNECTION_TIMEOUT,
        disable_compression: bool = True,
    ) -> "DockerEngine":
        """
        Create a client for the daemon and verify it answers.

        Args:
            daemon_host: Daemon address, e.g. "docker-host:2375"
            api_version: Engine API version, e.g. "1.41", or "auto"
            max_idle_connections: Connections kept in the session pool
            idle_timeout: Seconds a connection may stay silent. The SDK
                applies this as the read timeout of every request; idle
                pooled connections are not evicted on a timer
            disable_compression: Ask the daemon for identity encoding

        Raises:
            EngineConnectionError: If the client cannot be created or the
                daemon does not answer the version request
        """
        base_url = daemon_base_url(daemon_host)
        try:
            api = docker.APIClient(
                base_url=base_url,
                version=api_version,
                timeout=idle_timeout,
                max_pool_size=max_idle_connections,
            )
            if disable_compression:
                # Streaming responses must be readable incrementally
                api.headers["Accept-Encoding"] = "identity"

            engine = cls(api, base_url)
            version = engine.version()
            logger.info(
                f"Connected to Docker daemon at {base_url}: "
                f"engine {version.get('Version', 'unknown')}, API {api.api_version}"
            )
            return engine

        except (DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Failed to connect to Docker daemon at {base_url}: {e}")
            raise EngineConnectionError(
                f"Failed to connect to Docker daemon: {e}",
                host=base_url,
                api_version=api_version,
            ) from e

    def _url(self, path: str, *args: str) -> str:
        quoted = [quote(arg, safe="/:") for arg in args]
        return f"{self._api.base_url}/v{self._api.api_version}{path.format(*quoted)}"

    @staticmethod
    def _open_stream(response: requests.Response) -> HTTPResponseStream:
        """Wrap a streaming response, raising the SDK's APIError on HTTP errors."""
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            try:
                create_api_error_from_http_exception(e)
            finally:
                response.close()
        return HTTPResponseStream(response)

    def _stream_post(self, url: str, params: dict[str, Any], registry_auth: str) -> HTTPResponseStream:
        response = self._api.post(
            url,
            params=params,
            headers={"X-Registry-Auth": registry_auth},
            stream=True,
            timeout=self._api.timeout,
        )
        return self._open_stream(response)

    def version(self) -> dict[str, Any]:
        return self._api.version()

    def pull(self, reference: str, registry_auth: str) -> ResponseStream:
        repository, tag = parse_repository_tag(reference)
        logger.debug(f"Pulling {repository}:{tag or 'latest'}")
        return self._stream_post(
            self._url("/images/create"),
            {"fromImage": repository, "tag": tag or "latest"},
            registry_auth,
        )

    def tag(self, source: str, target: str) -> None:
        repository, tag = parse_repository_tag(target)
        self._api.tag(source, repository, tag=tag)

    def push(self, reference: str, registry_auth: str) -> ResponseStream:
        repository, tag = parse_repository_tag(reference)
        logger.debug(f"Pushing {repository}:{tag or 'latest'}")
        return self._stream_post(
            self._url("/images/{0}/push", repository),
            {"tag": tag or "latest"},
            registry_auth,
        )

    def remove_image(
        self, reference: str, force: bool = True, prune_children: bool = True
    ) -> list[dict[str, str]]:
        report = self._api.remove_image(reference, force=force, noprune=not prune_children)
        return report or []

    def create_container(self, image: str, cmd: list[str]) -> ContainerCreation:
        result = self._api.create_container(image, command=cmd)
        warnings = result.get("Warnings") or []
        for warning in warnings:
            logger.warning(f"Engine warning creating container from {image}: {warning}")
        return ContainerCreation(id=ContainerId(result["Id"]), warnings=list(warnings))

    def start_container(self, container_id: ContainerId) -> None:
        self._api.start(container_id)

    def wait_container(
        self, container_id: ContainerId, condition: str = "not-running"
    ) -> ResponseStream:
        # No read timeout: the body only arrives when the container stops
        response = self._api.post(
            self._url("/containers/{0}/wait", container_id),
            params={"condition": condition},
            stream=True,
            timeout=None,
        )
        return self._open_stream(response)

    def container_logs(
        self, container_id: ContainerId, stdout: bool = True, stderr: bool = True
    ) -> ResponseStream:
        response = self._api.get(
            self._url("/containers/{0}/logs", container_id),
            params={
                "stdout": int(stdout),
                "stderr": int(stderr),
                "follow": 0,
                "timestamps": 0,
                "tail": "all",
            },
            stream=True,
            timeout=self._api.timeout,
        )
        return self._open_stream(response)

    def close(self) -> None:
        self._api.close()
        logger.debug(f"Closed Docker client for {self._base_url}")
