# src/hubmirror/exceptions.py
"""
Exceptions raised by hubmirror.

Every failure is surfaced to the immediate caller with enough context to
tell which stage of which operation failed. Nothing in the library retries
or terminates the process; those decisions belong to the caller.

Exception Hierarchy:
    HubMirrorError (base)
    ├── ConfigError - Invalid or incomplete configuration
    ├── EngineConnectionError - Could not reach the container engine
    ├── EngineStreamError - Engine reported an error inside a response stream
    │   └── StreamFormatError - Multiplexed log stream is malformed
    ├── MirrorError - A mirror pipeline stage failed
    │   └── MirrorCancelledError - Cause attached to a cancelled mirror
    └── ExecError - A container execution stage failed
"""

from typing import Any

from .base import ExecStage, MirrorStage


class HubMirrorError(Exception):
    """
    Base exception for all hubmirror errors.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(HubMirrorError):
    """Raised when configuration is missing or invalid."""

    pass


class EngineConnectionError(HubMirrorError):
    """
    Raised when the engine client handle cannot be established.

    This occurs when:
    - The daemon host is malformed or unreachable
    - The requested API version is not supported by the daemon
    - The network fails during the verification round-trip

    Attributes:
        host: The daemon base URL that was used
        api_version: The requested engine API version
    """

    def __init__(
        self,
        message: str,
        host: str | None = None,
        api_version: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.host = host
        self.api_version = api_version

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update({"host": self.host, "api_version": self.api_version})
        return result


class EngineStreamError(HubMirrorError):
    """
    Raised when the engine reports a failure inside a response stream.

    Pull and push answer with HTTP 200 before the transfer starts, so a
    registry refusal or a broken layer shows up as an ``error`` message in
    the progress stream rather than as an HTTP status.
    """

    pass


class StreamFormatError(EngineStreamError):
    """Raised when a multiplexed log stream cannot be decoded."""

    pass


class MirrorError(HubMirrorError):
    """
    Raised when a stage of the image mirror pipeline fails.

    Mirroring is not transactional. A failure at ``push`` leaves the source
    image pulled and the forward tag in the local engine; a failure at a
    remove stage leaves one or both local images in place even though the
    image was pushed.

    Attributes:
        stage: The stage that failed
        cause: The underlying exception
        source_reference: Image reference on the source hub
        forward_reference: Image reference on the forward hub
        completed_stages: Stages that finished before the failure
    """

    def __init__(
        self,
        stage: MirrorStage,
        cause: BaseException | None = None,
        source_reference: str | None = None,
        forward_reference: str | None = None,
        completed_stages: tuple[MirrorStage, ...] = (),
        message: str | None = None,
    ):
        super().__init__(
            message or f"Mirror failed at stage '{stage.value}': {cause}",
            details={"source": source_reference, "forward": forward_reference},
        )
        self.stage = stage
        self.cause = cause
        self.source_reference = source_reference
        self.forward_reference = forward_reference
        self.completed_stages = completed_stages

    @property
    def pushed(self) -> bool:
        """True when the forward image reached the forward hub before the failure."""
        return MirrorStage.PUSH in self.completed_stages

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            {
                "stage": self.stage.value,
                "cause": repr(self.cause) if self.cause else None,
                "completed_stages": [s.value for s in self.completed_stages],
                "pushed": self.pushed,
            }
        )
        return result


class MirrorCancelledError(MirrorError):
    """
    Records the stage a mirror was at when its task was cancelled.

    It is never raised on its own. The task's ``asyncio.CancelledError``
    keeps propagating unchanged, so ``asyncio.timeout`` and task groups
    still recognise the cancellation, and carries this error as its
    ``__cause__``. Use :func:`find_mirror_cancellation` to recover it.
    """

    def __init__(self, stage: MirrorStage, **kwargs):
        kwargs.setdefault("message", f"Mirror cancelled during stage '{stage.value}'")
        super().__init__(stage, **kwargs)


def find_mirror_cancellation(error: BaseException) -> MirrorCancelledError | None:
    """
    Find the MirrorCancelledError in an exception's chain.

    Works on the ``CancelledError`` of a cancelled mirror and on the
    ``TimeoutError`` that ``asyncio.timeout`` or ``asyncio.wait_for``
    raise from it.

    Example:
        try:
            async with asyncio.timeout(600):
                await client.mirror("teamA", "app")
        except TimeoutError as e:
            cancelled = find_mirror_cancellation(e)
            if cancelled is not None:
                print(cancelled.stage, cancelled.completed_stages)
    """
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        if isinstance(current, MirrorCancelledError):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


class ExecError(HubMirrorError):
    """
    Raised when a stage of the container execution sequence fails.

    Attributes:
        stage: The stage that failed
        cause: The underlying exception
        container_id: The container, when it had been created
    """

    def __init__(
        self,
        stage: ExecStage,
        cause: BaseException | None = None,
        container_id: str | None = None,
        image: str | None = None,
    ):
        super().__init__(
            f"Container execution failed at stage '{stage.value}': {cause}",
            details={"image": image, "container": container_id[:12] if container_id else None},
        )
        self.stage = stage
        self.cause = cause
        self.container_id = container_id
        self.image = image

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            {
                "stage": self.stage.value,
                "cause": repr(self.cause) if self.cause else None,
                "container_id": self.container_id,
            }
        )
        return result
