# src/hubmirror/__init__.py
"""
hubmirror: mirror container images between registries and run containers.

hubmirror is a control-plane client over a container engine. It pulls an
image from a source registry, retags it for a forward registry, pushes it
and removes both local copies; and it runs a command in a container to
completion, streaming the container's stdout and stderr.

Main Components:
    - EngineClient: Engine connection plus registry domains and credential tokens
    - ImageMirror: The pull/tag/push/remove pipeline
    - ContainerRunner: The create/start/wait/logs sequence
    - DockerEngine: Engine implementation over the Docker Engine API

Usage:
    >>> from hubmirror import EngineClient
    >>>
    >>> client = EngineClient.connect(
    ...     "docker-host:2375", "1.41",
    ...     "fwd.io", "pusher", "secret",
    ...     "src.io", "reader", "secret",
    ... )
    >>> await client.mirror("teamA", "app")
    'fwd.io/teamA_app'
    >>> outcome = await client.run("alpine:3", ["echo", "hello"])
"""

# =============================================================================
# BASE CLASSES AND DATA MODELS
# =============================================================================

from .base import (
    ContainerCreation,
    ContainerEngine,
    ContainerId,
    ExecStage,
    Exited,
    ExitOutcome,
    MirrorStage,
    ResponseStream,
    TransferSummary,
    WaitFailed,
    WaitOutcome,
)

# =============================================================================
# EXCEPTIONS
# =============================================================================

from .exceptions import (
    ConfigError,
    EngineConnectionError,
    EngineStreamError,
    ExecError,
    HubMirrorError,
    MirrorCancelledError,
    MirrorError,
    StreamFormatError,
    find_mirror_cancellation,
)

# =============================================================================
# CORE
# =============================================================================

from .client import EngineClient
from .credentials import RegistryCredentials, decode_auth_token, encode_auth_token
from .docker_engine import DockerEngine
from .mirror import ImageMirror
from .references import ImageReference, forward_reference, source_reference
from .runner import ContainerRunner

# =============================================================================
# CONFIGURATION
# =============================================================================

from .config import HubMirrorConfig, load_config
from .logging_config import configure_logging, log_display

__version__ = "0.1.0"

__all__ = [
    # Base classes
    "ContainerCreation",
    "ContainerEngine",
    "ContainerId",
    "ExecStage",
    "Exited",
    "ExitOutcome",
    "MirrorStage",
    "ResponseStream",
    "TransferSummary",
    "WaitFailed",
    "WaitOutcome",
    # Exceptions
    "ConfigError",
    "EngineConnectionError",
    "EngineStreamError",
    "ExecError",
    "HubMirrorError",
    "MirrorCancelledError",
    "MirrorError",
    "StreamFormatError",
    "find_mirror_cancellation",
    # Core
    "EngineClient",
    "RegistryCredentials",
    "decode_auth_token",
    "encode_auth_token",
    "DockerEngine",
    "ImageMirror",
    "ImageReference",
    "forward_reference",
    "source_reference",
    "ContainerRunner",
    # Configuration
    "HubMirrorConfig",
    "load_config",
    "configure_logging",
    "log_display",
]
