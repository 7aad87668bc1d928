"""
URLCollectionManager module for Slink Client.

Responsibilities:
    - Hold the current user's paginated LinkWindow
    - Validate create/update requests before any network call
    - Apply create/remove as provisional local edits on top of the last
      authoritative list() result
    - Keep pagination requests inside [0, total)

Design notes:
    - The window is id-keyed (OrderedDict), so no id can appear twice.
    - list() replaces items and total wholesale; it never merges.
    - create() trusts the server's own response (no re-fetch) and prepends it.
      What happens when that pushes the page above `limit` is an explicit
      OverflowPolicy: keep (mark stale), truncate, or refetch.
    - Mutations are serialized with an asyncio.Lock so concurrent create/remove
      calls apply to the current window in the order they were initiated.
    - The window is dropped whenever the session stops being authenticated
      or the authenticated identity changes.
"""

import asyncio
import logging
import re
from collections import OrderedDict
from enum import Enum
from typing import Dict, List, Optional, Union

from ..api.client import APIClient
from ..config import settings
from ..errors import NotFound, ValidationError
from ..models import CreateLinkRequest, LinkPage, Session, ShortLink, UpdateLinkRequest
from ..session.manager import AuthSessionManager

log = logging.getLogger("slink_client.links")

URLPattern = re.compile(r"^https?://.+")
AliasPattern = re.compile(r"^[A-Za-z0-9_-]{3,50}$")
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 500


class OverflowPolicy(str, Enum):
    KEEP = "keep"
    TRUNCATE = "truncate"
    REFETCH = "refetch"


class LinkWindow:
    """
    One page of the user's links.

    Invariants:
        - no duplicate ids in `items`
        - `total` is the server's count, adjusted by provisional edits
        - `len(items) <= limit` is a target only; it can be exceeded after
          an optimistic create under OverflowPolicy.KEEP (then `stale` is True)
    """

    def __init__(self, limit: int, offset: int = 0):
        self._items: "OrderedDict[int, ShortLink]" = OrderedDict()
        self.limit = limit
        self.offset = offset
        self.total = 0
        self.stale = False

    @property
    def items(self) -> List[ShortLink]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, link_id: int) -> bool:
        return link_id in self._items

    def replace(self, page: LinkPage, limit: int, offset: int) -> None:
        self._items = OrderedDict((link.id, link) for link in page.urls)
        self.total = page.total
        self.limit = limit
        self.offset = offset
        self.stale = False

    def prepend(self, link: ShortLink) -> bool:
        """Insert at the front; returns False when the id was already present."""
        is_new = link.id not in self._items
        self._items[link.id] = link
        self._items.move_to_end(link.id, last=False)
        return is_new

    def update(self, link: ShortLink) -> None:
        if link.id in self._items:
            self._items[link.id] = link

    def discard(self, link_id: int) -> None:
        self._items.pop(link_id, None)

    def truncate(self) -> None:
        while len(self._items) > self.limit:
            self._items.popitem(last=True)

    def clear(self) -> None:
        self._items.clear()
        self.offset = 0
        self.total = 0
        self.stale = False


class URLCollectionManager:
    """
    Owns the LinkWindow for the current authenticated session.

    Args:
        api (APIClient): Backend client.
        sessions (AuthSessionManager): Injected session store.
        limit (Optional[int]): Page size; defaults to settings.PAGE_LIMIT.
        overflow_policy (Optional[Union[OverflowPolicy, str]]): What create() does
            when the page grows past `limit`; defaults to settings.OVERFLOW_POLICY.
    """

    def __init__(
        self,
        api: APIClient,
        sessions: AuthSessionManager,
        limit: Optional[int] = None,
        overflow_policy: Optional[Union[OverflowPolicy, str]] = None,
    ):
        self.api = api
        self.sessions = sessions
        self.window = LinkWindow(limit=max(1, min(100, limit or settings.PAGE_LIMIT)))
        self.overflow_policy = OverflowPolicy(overflow_policy or settings.OVERFLOW_POLICY)
        self._lock = asyncio.Lock()
        self._owner_id: Optional[int] = None
        self.sessions.subscribe(self._on_session_change)

    # ---------------------------------------------------------------------
    # Read-only views
    # ---------------------------------------------------------------------
    @property
    def items(self) -> List[ShortLink]:
        return self.window.items

    @property
    def total(self) -> int:
        return self.window.total

    @property
    def limit(self) -> int:
        return self.window.limit

    @property
    def offset(self) -> int:
        return self.window.offset

    def redirect_url(self, short_code: str) -> str:
        return self.api.redirect_url(short_code)

    # ---------------------------------------------------------------------
    # Session scoping
    # ---------------------------------------------------------------------
    def _on_session_change(self, session: Session) -> None:
        if session.identity is None and self._owner_id is not None:
            log.debug("Session lost; dropping link window")
            self.reset()

    def _require_owner(self) -> None:
        identity = self.sessions.require_identity()
        if self._owner_id is not None and self._owner_id != identity.id:
            self.reset()
        self._owner_id = identity.id

    def reset(self) -> None:
        self.window.clear()
        self._owner_id = None

    # ---------------------------------------------------------------------
    # Validation
    # ---------------------------------------------------------------------
    def _validate_fields(
        self,
        original_url: Optional[str],
        custom_alias: Optional[str],
        title: Optional[str],
        description: Optional[str],
        require_url: bool,
    ) -> None:
        """
        Validate request fields and raise one ValidationError carrying every
        failing field.

        Rules:
            - original_url: required on create, must match ^https?://.+
            - custom_alias: optional, 3-50 chars of [A-Za-z0-9_-]
            - title: at most 200 chars
            - description: at most 500 chars
        """
        errors: Dict[str, str] = {}
        if original_url is None or original_url == "":
            if require_url:
                errors["original_url"] = "URL is required"
        elif not URLPattern.match(original_url):
            errors["original_url"] = "Please enter a valid URL starting with http:// or https://"
        if custom_alias and not AliasPattern.match(custom_alias):
            errors["custom_alias"] = "Alias must be 3-50 characters of letters, numbers, hyphens or underscores"
        if title is not None and len(title) > TITLE_MAX_LENGTH:
            errors["title"] = f"Title must be at most {TITLE_MAX_LENGTH} characters"
        if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
            errors["description"] = f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters"
        if errors:
            raise ValidationError(errors)

    def validate_create(self, request: CreateLinkRequest) -> None:
        self._validate_fields(
            request.original_url, request.custom_alias, request.title, request.description, require_url=True
        )

    def validate_update(self, request: UpdateLinkRequest) -> None:
        self._validate_fields(
            request.original_url, request.custom_alias, request.title, request.description, require_url=False
        )

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    async def list(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[ShortLink]:
        """
        Fetch one page and replace the window with it (no merge).

        Negative offsets are clamped to 0; limit is clamped to [1, 100].
        """
        async with self._lock:
            return await self._list_locked(limit, offset)

    async def _list_locked(self, limit: Optional[int], offset: Optional[int]) -> List[ShortLink]:
        self._require_owner()
        limit = max(1, min(100, limit if limit is not None else self.window.limit))
        offset = max(0, offset if offset is not None else self.window.offset)
        page = await self.api.list_urls(limit, offset)
        self.window.replace(page, limit, offset)
        log.debug("Listed %d of %d links (offset=%d)", len(self.window), self.window.total, self.window.offset)
        return self.window.items

    async def create(self, request: CreateLinkRequest) -> ShortLink:
        """
        Validate, create on the server, then prepend the returned link.

        Without an authenticated session the link is created anonymously and
        the window is left alone.

        Raises:
            ValidationError: Before any network call, on invalid fields.
            SessionExpired: On 401.
        """
        self.validate_create(request)
        async with self._lock:
            if not self.sessions.session.is_authenticated:
                link = await self.api.create_url(request)
                log.info("Created anonymous short link %s", link.short_code)
                return link
            self._require_owner()
            link = await self.api.create_url(request)
            if self.window.prepend(link):
                self.window.total += 1
            if len(self.window) > self.window.limit:
                await self._apply_overflow_policy()
            log.info("Created short link %s", link.short_code)
            return link

    async def _apply_overflow_policy(self) -> None:
        if self.overflow_policy == OverflowPolicy.TRUNCATE:
            self.window.truncate()
        elif self.overflow_policy == OverflowPolicy.REFETCH:
            await self._list_locked(self.window.limit, self.window.offset)
        else:
            self.window.stale = True

    async def update(self, link_id: int, request: UpdateLinkRequest) -> ShortLink:
        """
        Raises:
            ValidationError: On invalid fields that are present in the request.
        """
        self.validate_update(request)
        async with self._lock:
            self._require_owner()
            link = await self.api.update_url(link_id, request)
            self.window.update(link)
            return link

    async def remove(self, link_id: int) -> None:
        """
        Delete a link. Asking the user for confirmation is the caller's job.

        On failure the window is left untouched and the error propagates.
        """
        async with self._lock:
            self._require_owner()
            await self.api.delete_url(link_id)
            self.window.discard(link_id)
            self.window.total = max(0, self.window.total - 1)
            log.info("Deleted link %s", link_id)

    async def info(self, short_code: str) -> Optional[ShortLink]:
        """Look up a link by short code; None when it does not exist."""
        try:
            return await self.api.get_url_info(short_code)
        except NotFound:
            return None

    # ---------------------------------------------------------------------
    # Pagination
    # ---------------------------------------------------------------------
    def clamp_offset(self, offset: int) -> int:
        """Clamp to [0, total); 0 when the collection is empty."""
        return max(0, min(offset, self.window.total - 1))

    async def go_to(self, offset: int) -> bool:
        """List the page at `offset` (clamped). False when nothing changes."""
        target = self.clamp_offset(offset)
        if target == self.window.offset and not self.window.stale:
            return False
        await self.list(self.window.limit, target)
        return True

    async def next_page(self) -> bool:
        target = self.window.offset + self.window.limit
        if target >= self.window.total:
            return False
        await self.list(self.window.limit, target)
        return True

    async def previous_page(self) -> bool:
        if self.window.offset <= 0:
            return False
        await self.list(self.window.limit, max(0, self.window.offset - self.window.limit))
        return True
