"""
Pydantic models shared across Slink Client.

Field names follow the backend JSON (snake_case). Models that represent
server snapshots (UserIdentity, ClickEvent) are frozen: they are replaced
wholesale, never patched field by field.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CredentialMode(str, Enum):
    COOKIE = "cookie"
    BEARER = "bearer"


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class ApiEnvelope(BaseModel):
    """Uniform `{success, data?, message?}` response body."""
    success: bool = False
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[str] = None


class UserIdentity(BaseModel):
    """Immutable identity snapshot returned by /auth/profile."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    email: str
    name: str
    picture: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Session(BaseModel):
    """
    Snapshot of the authentication session.

    Invariant:
        status == AUTHENTICATED implies identity is not None.
    """
    model_config = ConfigDict(frozen=True)

    identity: Optional[UserIdentity] = None
    credential_mode: CredentialMode = CredentialMode.COOKIE
    status: SessionStatus = SessionStatus.UNINITIALIZED
    token: Optional[str] = Field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED and self.identity is not None


class ShortLink(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    original_url: str
    short_code: str
    custom_alias: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None
    user_id: Optional[int] = None


class CreateLinkRequest(BaseModel):
    """Payload for POST /urls. Validated client-side by URLCollectionManager."""
    original_url: str
    custom_alias: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    expires_at: Optional[str] = None


class UpdateLinkRequest(BaseModel):
    """Partial payload for PUT /urls/{id}; omitted fields are left untouched."""
    original_url: Optional[str] = None
    custom_alias: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    expires_at: Optional[str] = None


class LinkPage(BaseModel):
    """Body of GET /urls."""
    urls: List[ShortLink] = Field(default_factory=list)
    total: int = 0
    limit: int = 10
    offset: int = 0


class ClickEvent(BaseModel):
    """A single recorded click. Never mutated by the client."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    url_id: int
    ip_address: str = ""
    user_agent: str = ""
    referrer: str = ""
    country: Optional[str] = None
    city: Optional[str] = None
    device: Optional[str] = None
    os: Optional[str] = None
    browser: Optional[str] = None
    clicked_at: datetime


class LinkStats(BaseModel):
    """Server-side counters for one link."""
    model_config = ConfigDict(extra="ignore")

    url_id: int
    total_clicks: int = 0
    unique_clicks: int = 0
    last_clicked: Optional[datetime] = None


class LinkAnalytics(BaseModel):
    """Body of GET /urls/{id}/analytics."""
    analytics: List[ClickEvent] = Field(default_factory=list)
    stats: Optional[LinkStats] = None


class CategoryCount(BaseModel):
    name: str
    count: int


class DailyClicks(BaseModel):
    day: date
    clicks: int


class AnalyticsReport(BaseModel):
    """
    Display-ready aggregates for one link.

    Always recomputed from ClickEvent input; never a source of truth.
    """
    link_id: Optional[int] = None
    total_clicks: int = 0
    unique_clicks: int = 0
    last_clicked_at: Optional[datetime] = None
    click_rate: float = 0.0
    devices: Dict[str, int] = Field(default_factory=dict)
    os: Dict[str, int] = Field(default_factory=dict)
    browsers: Dict[str, int] = Field(default_factory=dict)
    top_devices: List[CategoryCount] = Field(default_factory=list)
    top_os: List[CategoryCount] = Field(default_factory=list)
    top_browsers: List[CategoryCount] = Field(default_factory=list)
    daily_clicks: List[DailyClicks] = Field(default_factory=list)
    recent_clicks: List[ClickEvent] = Field(default_factory=list)
