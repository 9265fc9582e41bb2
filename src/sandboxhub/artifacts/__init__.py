"""Routing artifact generation."""

from sandboxhub.artifacts.generator import ArtifactGenerator

__all__ = ["ArtifactGenerator"]
