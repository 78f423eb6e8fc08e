# src/hubmirror/client.py
"""
Engine client handle.

An ``EngineClient`` bundles a connection to the container engine with the
domains and credential tokens of the two registries. It holds no image or
container state and is never mutated after construction, so one handle can
serve any number of concurrent mirror and run invocations.

Usage:
    >>> client = EngineClient.connect(
    ...     "docker-host:2375", "1.41",
    ...     "fwd.io", "pusher", "secret",
    ...     "src.io", "reader", "secret",
    ... )
    >>> forward = await client.mirror("teamA", "app")
    >>> outcome = await client.run("alpine:3", ["echo", "hello"])
    >>> client.close()
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO

from .base import ContainerEngine, ExitOutcome
from .credentials import RegistryCredentials
from .docker_engine import IDLE_CONNECTION_TIMEOUT, MAX_IDLE_CONNECTIONS, DockerEngine
from .mirror import ImageMirror
from .references import ImageReference, forward_reference, source_reference
from .runner import ContainerRunner

if TYPE_CHECKING:
    from .config import HubMirrorConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineClient:
    """
    A configured engine connection plus registry domains and tokens.

    Attributes:
        engine: Engine the pipeline and execution sequence talk to
        forward_hub_domain: Registry images are pushed to
        auth_token_forward: Credential token for the forward hub
        source_hub_domain: Registry images are pulled from
        auth_token_source: Credential token for the source hub
    """

    engine: ContainerEngine
    forward_hub_domain: str
    auth_token_forward: str = field(repr=False)
    source_hub_domain: str
    auth_token_source: str = field(repr=False)

    @classmethod
    def connect(
        cls,
        daemon_host: str,
        api_version: str,
        forward_domain: str,
        forward_user: str,
        forward_pass: str,
        source_domain: str,
        source_user: str,
        source_pass: str,
        max_idle_connections: int = MAX_IDLE_CONNECTIONS,
        idle_timeout: int = IDLE_CONNECTION_TIMEOUT,
        disable_compression: bool = True,
    ) -> "EngineClient":
        """
        Connect to the engine and encode both registry logins.

        Raises:
            EngineConnectionError: If the engine cannot be reached. The
                failure is not retried.
        """
        engine = DockerEngine.connect(
            daemon_host,
            api_version,
            max_idle_connections=max_idle_connections,
            idle_timeout=idle_timeout,
            disable_compression=disable_compression,
        )
        forward = RegistryCredentials(forward_domain, forward_user, forward_pass)
        source = RegistryCredentials(source_domain, source_user, source_pass)
        logger.debug(f"Engine client ready: source {source}, forward {forward}")
        return cls(
            engine=engine,
            forward_hub_domain=forward.domain,
            auth_token_forward=forward.token,
            source_hub_domain=source.domain,
            auth_token_source=source.token,
        )

    @classmethod
    def from_config(cls, config: "HubMirrorConfig") -> "EngineClient":
        """
        Build a handle from loaded configuration.

        Raises:
            ConfigError: If the configuration is incomplete
            EngineConnectionError: If the engine cannot be reached
        """
        config.validate()
        return cls.connect(
            config.daemon.host,
            config.daemon.api_version,
            config.forward_hub.domain,
            config.forward_hub.username,
            config.forward_hub.password,
            config.source_hub.domain,
            config.source_hub.username,
            config.source_hub.password,
            max_idle_connections=config.daemon.max_idle_connections,
            idle_timeout=config.daemon.idle_connection_timeout,
            disable_compression=config.daemon.disable_compression,
        )

    def source_reference(self, project: str, image_name: str) -> ImageReference:
        return source_reference(self.source_hub_domain, project, image_name)

    def forward_reference(self, project: str, image_name: str) -> ImageReference:
        return forward_reference(self.forward_hub_domain, project, image_name)

    async def mirror(self, project: str, image_name: str) -> str:
        """Mirror one image to the forward hub; see :class:`ImageMirror`."""
        return await ImageMirror(self).mirror(project, image_name)

    async def run(
        self,
        image: str,
        cmd: list[str],
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> ExitOutcome:
        """Run a container to completion; see :class:`ContainerRunner`."""
        return await ContainerRunner(self, stdout=stdout, stderr=stderr).run(image, cmd)

    def close(self) -> None:
        self.engine.close()

    def __enter__(self) -> "EngineClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
