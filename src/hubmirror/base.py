# src/hubmirror/base.py
"""
Abstract engine port and core data models.

This module defines the contract the mirror pipeline and the execution
sequence rely on. The engine owns every image and container; hubmirror only
holds opaque identifiers and references and never keeps engine state of its
own.

Classes:
    MirrorStage: Stages of the image mirror pipeline
    ExecStage: Stages of the container execution sequence
    ContainerCreation: Result of creating a container
    Exited / WaitFailed: The two outcomes of waiting on a container
    ExitOutcome: Result of running a container to completion
    TransferSummary: What was observed while draining a pull/push stream
    ResponseStream: A closeable stream of raw response bytes
    ContainerEngine: Abstract base class for engine implementations
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NewType, Union

ContainerId = NewType("ContainerId", str)


class MirrorStage(Enum):
    """Stages of the image mirror pipeline, in execution order."""

    PULL = "pull"
    TAG = "tag"
    PUSH = "push"
    REMOVE_FORWARD = "remove_forward"
    REMOVE_SOURCE = "remove_source"


class ExecStage(Enum):
    """Stages of the container execution sequence, in execution order."""

    CREATE = "create"
    START = "start"
    WAIT = "wait"
    LOGS = "logs"


@dataclass(frozen=True)
class ContainerCreation:
    """
    Result of creating a container.

    The id is only meaningful to the engine that issued it and is valid
    until the container is removed.
    """

    id: ContainerId
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Exited:
    """The container reached a non-running state."""

    status_code: int


@dataclass(frozen=True)
class WaitFailed:
    """Waiting on the container failed before it exited."""

    cause: BaseException


WaitOutcome = Union[Exited, WaitFailed]


@dataclass(frozen=True)
class ExitOutcome:
    """
    Result of running a container to completion.

    Attributes:
        container_id: The container that ran (still present in the engine)
        status_code: Exit status reported by the engine
        stdout_bytes: Bytes written to the stdout sink
        stderr_bytes: Bytes written to the stderr sink
    """

    container_id: ContainerId
    status_code: int
    stdout_bytes: int = 0
    stderr_bytes: int = 0

    @property
    def success(self) -> bool:
        return self.status_code == 0


@dataclass
class TransferSummary:
    """Progress observed while draining a pull or push response stream."""

    messages: int = 0
    last_status: str | None = None
    digest: str | None = None


class ResponseStream(ABC):
    """
    A streaming engine response.

    Iterating yields raw byte chunks until the engine ends the response.
    ``close`` releases the response and is safe to call more than once.
    ``abort`` may be called from another thread while a reader is blocked
    in the stream; it makes that reader fail promptly.
    """

    @abstractmethod
    def __iter__(self) -> Iterator[bytes]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def abort(self) -> None:
        self.close()

    def __enter__(self) -> "ResponseStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ContainerEngine(ABC):
    """
    Abstract base class for container engine implementations.

    All methods are blocking. Callers that run on an event loop dispatch
    them to an executor. Implementations raise their own exceptions; the
    pipeline and the execution sequence wrap them with the failing stage.
    """

    @abstractmethod
    def version(self) -> dict[str, Any]:
        """Return the engine's version information; used to verify connectivity."""
        pass

    @abstractmethod
    def pull(self, reference: str, registry_auth: str) -> ResponseStream:
        """
        Start pulling a single tag of an image.

        Args:
            reference: Image reference, optionally with a tag
            registry_auth: Encoded credential token for the image's registry

        Returns:
            Progress stream; the pull completes only once it is fully read
        """
        pass

    @abstractmethod
    def tag(self, source: str, target: str) -> None:
        """Tag the local image ``source`` as ``target``."""
        pass

    @abstractmethod
    def push(self, reference: str, registry_auth: str) -> ResponseStream:
        """Start pushing an image; the push completes only once the stream is fully read."""
        pass

    @abstractmethod
    def remove_image(
        self, reference: str, force: bool = True, prune_children: bool = True
    ) -> list[dict[str, str]]:
        """Remove a local image and return the engine's untag/delete report."""
        pass

    @abstractmethod
    def create_container(self, image: str, cmd: list[str]) -> ContainerCreation:
        pass

    @abstractmethod
    def start_container(self, container_id: ContainerId) -> None:
        pass

    @abstractmethod
    def wait_container(
        self, container_id: ContainerId, condition: str = "not-running"
    ) -> ResponseStream:
        """
        Send a wait request for ``condition``.

        The engine answers at once and writes the JSON body
        ``{"StatusCode": ..., "Error": ...}`` only when the condition is met,
        so reading the stream blocks until then. Aborting the stream stops
        the wait.
        """
        pass

    @abstractmethod
    def container_logs(
        self, container_id: ContainerId, stdout: bool = True, stderr: bool = True
    ) -> ResponseStream:
        """Return the container's multiplexed log stream without following it."""
        pass

    def close(self) -> None:
        """Release connections held by the engine client."""
        pass
