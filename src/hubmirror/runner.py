# src/hubmirror/runner.py
"""
Container execution sequence.

Runs a command in a fresh container and streams its output:

    create -> start -> wait for a non-running state -> drain logs

Each failing stage raises ``ExecError`` naming the stage; the caller decides
whether that ends the process. The container is left in the engine after it
exits.

Logs are drained after the wait resolves to an exit, whatever the exit code.
The code is returned in the ``ExitOutcome`` and a non-zero code is logged,
but it is not turned into an error.

Cancelling the task during the wait or the log drain aborts the open
request, so no executor thread stays blocked on the engine. The container
itself keeps running.
"""

import asyncio
import functools
import json
import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, BinaryIO

from .base import ContainerId, ExecStage, Exited, ExitOutcome, ResponseStream, WaitFailed, WaitOutcome
from .demux import copy_streams
from .exceptions import EngineStreamError, ExecError
from .logging_config import log_display

if TYPE_CHECKING:
    from .client import EngineClient

logger = logging.getLogger(__name__)


def read_wait_outcome(stream: ResponseStream) -> WaitOutcome:
    """
    Read a wait response to its end and resolve it to exactly one outcome.

    Never raises: a transport failure, an unreadable body or an ``Error``
    reported by the engine all become ``WaitFailed``.
    """
    try:
        result = json.loads(b"".join(stream))
    except (OSError, ValueError) as e:
        return WaitFailed(cause=e)

    if not isinstance(result, dict):
        return WaitFailed(cause=EngineStreamError(f"Unexpected wait response: {result!r}"))

    error = result.get("Error") or {}
    message = error.get("Message") if isinstance(error, dict) else str(error)
    if message:
        return WaitFailed(cause=EngineStreamError(f"Wait failed: {message}"))
    return Exited(status_code=result.get("StatusCode", -1))


class ContainerRunner:
    """
    Runs containers to completion and copies their output to two sinks.

    Attributes:
        _client: Engine client handle
        _stdout: Binary sink for the container's stdout
        _stderr: Binary sink for the container's stderr
    """

    def __init__(
        self,
        client: "EngineClient",
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ):
        self._client = client
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._stderr = stderr if stderr is not None else sys.stderr.buffer

    async def run(self, image: str, cmd: list[str]) -> ExitOutcome:
        """
        Create, start and wait for a container, then copy its logs.

        Args:
            image: Image reference to run
            cmd: Command and arguments

        Returns:
            ExitOutcome with the exit status and bytes written per sink

        Raises:
            ExecError: If create, start, wait or log draining fails
        """
        engine = self._client.engine

        creation = await self._call(ExecStage.CREATE, image, None, engine.create_container, image, cmd)
        container_id = creation.id
        logger.info(f"Created container {container_id[:12]} from {image}: {cmd}")

        await self._call(ExecStage.START, image, container_id, engine.start_container, container_id)
        logger.debug(f"Started container {container_id[:12]}")

        outcome = await self._wait(image, container_id)
        if isinstance(outcome, WaitFailed):
            logger.error(f"Waiting on container {container_id[:12]} failed: {outcome.cause}")
            raise ExecError(
                ExecStage.WAIT, cause=outcome.cause, container_id=container_id, image=image
            ) from outcome.cause

        status_code = outcome.status_code
        log_display(
            logger,
            logging.INFO if status_code == 0 else logging.WARNING,
            "Container %s exited with status %d",
            container_id[:12],
            status_code,
        )

        written_out, written_err = await self._drain_logs(image, container_id)

        return ExitOutcome(
            container_id=container_id,
            status_code=status_code,
            stdout_bytes=written_out,
            stderr_bytes=written_err,
        )

    async def _wait(self, image: str, container_id: ContainerId) -> WaitOutcome:
        stream = await self._call(
            ExecStage.WAIT, image, container_id, self._client.engine.wait_container, container_id
        )
        try:
            return await self._call(
                ExecStage.WAIT,
                image,
                container_id,
                read_wait_outcome,
                stream,
                on_cancel=stream.abort,
            )
        finally:
            stream.close()

    async def _drain_logs(self, image: str, container_id: ContainerId) -> tuple[int, int]:
        engine = self._client.engine
        stream = await self._call(
            ExecStage.LOGS,
            image,
            container_id,
            functools.partial(engine.container_logs, container_id, stdout=True, stderr=True),
        )
        try:
            return await self._call(
                ExecStage.LOGS,
                image,
                container_id,
                copy_streams,
                stream,
                self._stdout,
                self._stderr,
                on_cancel=stream.abort,
            )
        finally:
            stream.close()

    async def _call(
        self,
        stage: ExecStage,
        image: str,
        container_id: ContainerId | None,
        func: Callable[..., Any],
        *args,
        on_cancel: Callable[[], None] | None = None,
    ) -> Any:
        """
        Run one blocking engine call on the default executor, tagging failures with ``stage``.

        Cancellation is re-raised unchanged after ``on_cancel`` has stopped
        the work still running in the executor thread.
        """
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except asyncio.CancelledError:
            if on_cancel is not None:
                on_cancel()
            logger.warning(f"Container execution cancelled during {stage.value} ({image})")
            raise
        except Exception as e:
            logger.error(f"Container execution failed at {stage.value} ({image}): {e}")
            raise ExecError(stage, cause=e, container_id=container_id, image=image) from e
