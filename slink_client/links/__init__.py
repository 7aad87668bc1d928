"""The current user's paginated link collection."""

from .collection import LinkWindow, OverflowPolicy, URLCollectionManager

__all__ = ["LinkWindow", "OverflowPolicy", "URLCollectionManager"]
