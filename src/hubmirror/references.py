# src/hubmirror/references.py
"""
Image reference composition.

A source-hub image lives at ``<domain>/<project>/<image>``. On the forward
hub the project and image name are collapsed into one repository name,
``<domain>/<project>_<image>``. References are plain string joins; the
engine is the one that decides whether a reference is acceptable.
"""

from dataclasses import dataclass

SOURCE_SEPARATOR = "/"
FORWARD_SEPARATOR = "_"


@dataclass(frozen=True)
class ImageReference:
    """An image reference built from registry domain, project and image name."""

    registry: str
    project: str
    image: str
    separator: str = SOURCE_SEPARATOR

    def __str__(self) -> str:
        return f"{self.registry}/{self.project}{self.separator}{self.image}"


def source_reference(domain: str, project: str, image: str) -> ImageReference:
    return ImageReference(domain, project, image, SOURCE_SEPARATOR)


def forward_reference(domain: str, project: str, image: str) -> ImageReference:
    return ImageReference(domain, project, image, FORWARD_SEPARATOR)
