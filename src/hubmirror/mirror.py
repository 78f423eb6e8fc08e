# src/hubmirror/mirror.py
"""
Image mirror pipeline.

Copies one image from the source hub to the forward hub through the local
engine:

    pull source -> tag as forward -> push forward -> remove forward -> remove source

Stages run strictly in order and a failing stage stops the pipeline. There
is no rollback: a push failure leaves the pulled image and its forward tag
in the engine, and a remove failure leaves the local copies even though the
image already reached the forward hub. Callers that need exactly-once
mirroring must clean up on their side.

The engine signals the end of a pull or push only by ending the response
stream, so both streams are always read to the end before the next stage.

Cancelling the task running a mirror aborts the transfer in flight. The
task's ``CancelledError`` propagates unchanged with a
``MirrorCancelledError`` naming the interrupted stage as its cause.
"""

import asyncio
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from docker.utils.json_stream import json_stream

from .base import MirrorStage, ResponseStream, TransferSummary
from .exceptions import EngineStreamError, MirrorCancelledError, MirrorError
from .logging_config import log_display

if TYPE_CHECKING:
    from .client import EngineClient

logger = logging.getLogger(__name__)


def drain_progress(stream: ResponseStream, reference: str) -> TransferSummary:
    """
    Read a pull/push progress stream to its end.

    Args:
        stream: Engine response stream of JSON progress messages
        reference: Image being transferred, for log messages

    Returns:
        Summary of what the engine reported

    Raises:
        EngineStreamError: If the engine reported an error in the stream
    """
    summary = TransferSummary()
    for message in json_stream(iter(stream)):
        summary.messages += 1
        if not isinstance(message, dict):
            continue

        if message.get("error") or message.get("errorDetail"):
            detail = message.get("errorDetail") or {}
            raise EngineStreamError(
                message.get("error") or detail.get("message") or "unknown error",
                details={"reference": reference, "code": detail.get("code")},
            )

        status = message.get("status")
        if status:
            summary.last_status = status
            if "progressDetail" not in message or not message.get("id"):
                logger.debug(f"{reference}: {status}")
            if status.startswith("Digest: "):
                summary.digest = status[len("Digest: ") :]

        aux = message.get("aux")
        if isinstance(aux, dict) and aux.get("Digest"):
            summary.digest = aux["Digest"]

    return summary


@dataclass
class _MirrorRun:
    """References and progress of one mirror invocation."""

    source: str
    forward: str
    completed: list[MirrorStage] = field(default_factory=list)


class ImageMirror:
    """
    Mirrors images from the source hub to the forward hub.

    The mirror only reads the client handle; several mirrors may share one
    handle and run concurrently.
    """

    def __init__(self, client: "EngineClient"):
        self._client = client

    async def mirror(self, project: str, image_name: str) -> str:
        """
        Mirror ``<source>/<project>/<image>`` to ``<forward>/<project>_<image>``.

        Args:
            project: Project (namespace) on the source hub
            image_name: Image name, optionally with a tag

        Returns:
            The forward hub reference of the mirrored image

        Raises:
            MirrorError: If any stage fails; ``stage`` names which one
            asyncio.CancelledError: If the task is cancelled mid-stage; its
                cause is a MirrorCancelledError naming the stage
        """
        client = self._client
        engine = client.engine
        run = _MirrorRun(
            source=str(client.source_reference(project, image_name)),
            forward=str(client.forward_reference(project, image_name)),
        )

        logger.info(f"Mirroring {run.source} -> {run.forward}")

        await self._transfer(
            run, MirrorStage.PULL, engine.pull, run.source, client.auth_token_source
        )
        await self._call(run, MirrorStage.TAG, engine.tag, run.source, run.forward)
        await self._transfer(
            run, MirrorStage.PUSH, engine.push, run.forward, client.auth_token_forward
        )
        await self._call(
            run,
            MirrorStage.REMOVE_FORWARD,
            functools.partial(engine.remove_image, run.forward, force=True, prune_children=True),
        )
        await self._call(
            run,
            MirrorStage.REMOVE_SOURCE,
            functools.partial(engine.remove_image, run.source, force=True, prune_children=True),
        )

        log_display(logger, logging.INFO, "Mirrored %s -> %s", run.source, run.forward)
        return run.forward

    async def _transfer(
        self,
        run: _MirrorRun,
        stage: MirrorStage,
        open_stream: Callable[[str, str], ResponseStream],
        reference: str,
        registry_auth: str,
    ) -> TransferSummary:
        """Open a pull/push stream, drain it to the end and close it."""
        stream = await self._call(run, stage, open_stream, reference, registry_auth, complete=False)
        try:
            summary = await self._call(
                run, stage, drain_progress, stream, reference, on_cancel=stream.abort
            )
        finally:
            stream.close()

        logger.info(
            f"{reference}: {summary.last_status or 'done'} "
            f"({summary.messages} progress messages"
            f"{', digest ' + summary.digest if summary.digest else ''})"
        )
        return summary

    async def _call(
        self,
        run: _MirrorRun,
        stage: MirrorStage,
        func: Callable[..., Any],
        *args,
        on_cancel: Callable[[], None] | None = None,
        complete: bool = True,
    ) -> Any:
        """
        Run one blocking engine call for ``stage`` on the default executor.

        Args:
            run: The invocation the call belongs to
            stage: Stage reported if the call fails
            func: Blocking callable
            *args: Positional arguments for ``func``
            on_cancel: Called when the awaiting task is cancelled, to stop
                the work still running in the executor thread
            complete: Mark the stage completed when the call succeeds

        Raises:
            asyncio.CancelledError: The task's own cancellation, re-raised
                with a MirrorCancelledError as its cause
            MirrorError: If ``func`` raises
        """
        loop = asyncio.get_event_loop()
        try:
            result = await loop.run_in_executor(None, func, *args)
        except asyncio.CancelledError as e:
            if on_cancel is not None:
                on_cancel()
            logger.warning(f"Mirror {run.source} -> {run.forward} cancelled during {stage.value}")
            raise e from MirrorCancelledError(
                stage,
                source_reference=run.source,
                forward_reference=run.forward,
                completed_stages=tuple(run.completed),
            )
        except Exception as e:
            logger.error(f"Mirror {run.source} -> {run.forward} failed at {stage.value}: {e}")
            raise MirrorError(
                stage,
                cause=e,
                source_reference=run.source,
                forward_reference=run.forward,
                completed_stages=tuple(run.completed),
            ) from e

        if complete:
            run.completed.append(stage)
        return result
