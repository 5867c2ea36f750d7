"""Command line entry points for curation."""

from .main import app  # noqa: F401

__all__ = ["app"]
