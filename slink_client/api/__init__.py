"""HTTP boundary to the Slink backend."""

from .client import APIClient

__all__ = ["APIClient"]
