"""
slink_client package initializer.
"""

from . import analytics
from . import api
from . import auth
from . import links
from . import session

__all__ = ["analytics", "api", "auth", "links", "session"]
