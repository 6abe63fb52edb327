"""Resolve, fetch and stage PaperMC server builds for container images."""

__version__ = "0.1.0"
