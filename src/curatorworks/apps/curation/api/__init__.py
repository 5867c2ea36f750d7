"""HTTP surface for the curation pipeline."""

from .server import create_app  # noqa: F401

__all__ = ["create_app"]
