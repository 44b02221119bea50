"""
Domain data models: statuses, content items, metrics and results.

Defines the core data structures shared by the scheduling core, the
platform clients and the notifiers:
- ``ContentStatus``: Lifecycle status of a content item.
- ``Platform`` / ``ContentType``: Where and what is being published.
- ``FailureReason``: Why a publication ended in ``FAILED``.
- ``ContentItem``: One piece of content targeted at one platform.
- ``PostMetric``: Zeroed performance snapshot created on publish.
- ``PublishResult``: Outcome reported by the platform-publish capability.
- ``ErrorCode`` / ``OperationResult``: Typed results returned to callers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from command_center.utils import parse_timestamp, utc_now


# =============================================================================
# ENUMS
# =============================================================================


class ContentStatus(Enum):
    """Lifecycle status of a content item.

    Transitions (see :mod:`command_center.scheduling.state_machine`):
        DRAFT -> REVIEW -> APPROVED -> SCHEDULED -> PUBLISHING -> PUBLISHED
                                                              -> FAILED
                                       SCHEDULED -> CANCELLED
    """

    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def has_fired(self) -> bool:
        """True for statuses only a publication claim can lead to.

        ``FAILED`` is not among them: a review rejection also ends there.
        Whether a failed item was claimed is recorded in ``claimed_at``.
        """
        return self in {ContentStatus.PUBLISHING, ContentStatus.PUBLISHED}


class Platform(Enum):
    """Target social platform."""

    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"


class ContentType(Enum):
    """Format of the content item."""

    VIDEO = "video"
    IMAGE = "image"
    TEXT = "text"
    STORY = "story"
    REEL = "reel"


class FailureReason(Enum):
    """Why a publication failed.  Preserved verbatim for operators."""

    RATE_LIMIT = "rate-limit"
    INVALID_CREDENTIAL = "invalid-credential"
    CONTENT_POLICY = "content-policy"
    NETWORK_TIMEOUT = "network-timeout"
    PLATFORM_UNAVAILABLE = "platform-unavailable"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "FailureReason":
        """Map a reason string to a member, defaulting to ``UNKNOWN``."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ErrorCode(Enum):
    """Typed error returned by the exposed scheduling operations."""

    INVALID_STATE = "InvalidState"
    INVALID_TIME = "InvalidTime"
    NOT_FOUND = "NotFound"
    ALREADY_FIRING = "AlreadyFiring"
    PUBLISH_FAILED = "PublishFailed"


# =============================================================================
# CONTENT ITEM
# =============================================================================


@dataclass
class ContentItem:
    """One piece of content destined for one platform.

    Attributes:
        id: Unique identifier (UUID).
        owner_id: User that owns the item.
        owner_email: Where outcome notifications are sent.
        title: Short title shown in the dashboard.
        body: Post text / caption.
        platform: Target platform.
        content_type: Format of the content.
        status: Current lifecycle status.
        character_id: Optional linked character profile.
        campaign_id: Optional linked campaign.
        media_url: Optional public URL of the image / video asset.
        scheduled_at: Set iff status is ``SCHEDULED``.
        published_at: Set iff status is ``PUBLISHED``.
        platform_post_id: Identifier assigned by the platform on success.
        failure_reason: Reason recorded when status is ``FAILED``.
        failure_detail: Free-text failure detail.
        claimed_at: When the publication claim was taken.
        created_at: When the record was created.
    """

    # Required fields
    id: str
    owner_id: str
    owner_email: str
    title: str
    body: str
    platform: Platform
    content_type: ContentType

    # Status tracking
    status: ContentStatus = ContentStatus.DRAFT
    character_id: Optional[str] = None
    campaign_id: Optional[str] = None
    media_url: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    platform_post_id: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    failure_detail: Optional[str] = None
    claimed_at: Optional[datetime] = None

    # Metadata
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ContentItem":
        """Convert a ``posts`` row dict to a ``ContentItem``."""
        reason = row.get("failure_reason")
        return cls(
            id=row["id"],
            owner_id=row.get("owner_id", ""),
            owner_email=row.get("owner_email", ""),
            title=row.get("title", ""),
            body=row.get("content", ""),
            platform=Platform(row["platform"]),
            content_type=ContentType(row.get("content_type", "text")),
            status=ContentStatus(row.get("status", "draft")),
            character_id=row.get("character_id"),
            campaign_id=row.get("campaign_id"),
            media_url=row.get("media_url"),
            scheduled_at=parse_timestamp(row.get("scheduled_at")),
            published_at=parse_timestamp(row.get("published_at")),
            platform_post_id=row.get("platform_post_id"),
            failure_reason=FailureReason.parse(reason) if reason else None,
            failure_detail=row.get("failure_detail"),
            claimed_at=parse_timestamp(row.get("claimed_at")),
            created_at=parse_timestamp(row.get("created_at")) or utc_now(),
        )

    def to_row(self) -> Dict[str, Any]:
        """Serialize to a ``posts`` row dict for Supabase insertion."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "owner_email": self.owner_email,
            "title": self.title,
            "content": self.body,
            "platform": self.platform.value,
            "content_type": self.content_type.value,
            "status": self.status.value,
            "character_id": self.character_id,
            "campaign_id": self.campaign_id,
            "media_url": self.media_url,
            "scheduled_at": _iso(self.scheduled_at),
            "published_at": _iso(self.published_at),
            "platform_post_id": self.platform_post_id,
            "failure_reason": (
                self.failure_reason.value if self.failure_reason else None
            ),
            "failure_detail": self.failure_detail,
            "claimed_at": _iso(self.claimed_at),
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# POST METRIC
# =============================================================================


METRIC_COUNTERS = (
    "views",
    "likes",
    "shares",
    "comments",
    "clicks",
    "conversions",
    "reach",
    "impressions",
)


@dataclass
class PostMetric:
    """Append-only performance snapshot for a published item.

    Created zeroed at publish time; an external ingestion process fills
    in the counters later.
    """

    id: str
    post_id: str
    views: int = 0
    likes: int = 0
    shares: int = 0
    comments: int = 0
    clicks: int = 0
    conversions: int = 0
    reach: int = 0
    impressions: int = 0
    recorded_at: datetime = field(default_factory=utc_now)

    @classmethod
    def zeroed(cls, metric_id: str, post_id: str) -> "PostMetric":
        """Build the initial all-zero snapshot for *post_id*."""
        return cls(id=metric_id, post_id=post_id)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PostMetric":
        counters = {name: int(row.get(name) or 0) for name in METRIC_COUNTERS}
        return cls(
            id=row["id"],
            post_id=row["post_id"],
            recorded_at=parse_timestamp(row.get("recorded_at")) or utc_now(),
            **counters,
        )

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {"id": self.id, "post_id": self.post_id}
        for name in METRIC_COUNTERS:
            row[name] = getattr(self, name)
        row["recorded_at"] = self.recorded_at.isoformat()
        return row

    @property
    def is_zeroed(self) -> bool:
        return all(getattr(self, name) == 0 for name in METRIC_COUNTERS)


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class PublishResult:
    """Outcome of one platform-publish call."""

    success: bool
    platform_post_id: Optional[str] = None
    reason: Optional[FailureReason] = None
    detail: str = ""

    @classmethod
    def ok(cls, platform_post_id: str) -> "PublishResult":
        return cls(success=True, platform_post_id=platform_post_id)

    @classmethod
    def failed(cls, reason: FailureReason, detail: str = "") -> "PublishResult":
        return cls(success=False, reason=reason, detail=detail)


@dataclass
class OperationResult:
    """Typed result returned by :class:`ContentSchedulingService`.

    ``ok`` is ``True`` on success; otherwise ``error`` names the failure
    and, for ``PUBLISH_FAILED``, ``reason`` / ``detail`` explain it.
    """

    ok: bool
    error: Optional[ErrorCode] = None
    reason: Optional[FailureReason] = None
    detail: str = ""
    platform_post_id: Optional[str] = None
    item: Optional[ContentItem] = None

    @classmethod
    def success(
        cls,
        item: Optional[ContentItem] = None,
        platform_post_id: Optional[str] = None,
    ) -> "OperationResult":
        return cls(ok=True, item=item, platform_post_id=platform_post_id)

    @classmethod
    def failure(
        cls,
        error: ErrorCode,
        detail: str = "",
        reason: Optional[FailureReason] = None,
    ) -> "OperationResult":
        return cls(ok=False, error=error, detail=detail, reason=reason)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ContentStatus",
    "Platform",
    "ContentType",
    "FailureReason",
    "ErrorCode",
    "ContentItem",
    "PostMetric",
    "METRIC_COUNTERS",
    "PublishResult",
    "OperationResult",
]
