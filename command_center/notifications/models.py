"""
Owner notification payloads.

An :class:`OutcomeNotification` is built from the content item right
after its final status write commits, and rendered into a subject and a
plain-text body by :func:`render_outcome_message`.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Tuple

from command_center.models import ContentItem, ContentStatus, FailureReason


@dataclass
class OutcomeNotification:
    """What the owner is told about one publication attempt."""

    item_id: str
    title: str
    platform: str
    status: ContentStatus
    character_id: Optional[str] = None
    published_at: Optional[datetime] = None
    platform_post_id: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    failure_detail: Optional[str] = None
    dashboard_url: str = ""
    app_name: str = "Marketing Command Center"

    @property
    def succeeded(self) -> bool:
        return self.status == ContentStatus.PUBLISHED

    @classmethod
    def from_item(
        cls,
        item: ContentItem,
        dashboard_url: str = "",
        app_name: str = "Marketing Command Center",
    ) -> "OutcomeNotification":
        return cls(
            item_id=item.id,
            title=item.title,
            platform=item.platform.value,
            status=item.status,
            character_id=item.character_id,
            published_at=item.published_at,
            platform_post_id=item.platform_post_id,
            failure_reason=item.failure_reason,
            failure_detail=item.failure_detail,
            dashboard_url=dashboard_url,
            app_name=app_name,
        )


class OwnerNotifier(Protocol):
    """Anything that can deliver an outcome to an item's owner."""

    async def notify(self, owner_email: str, outcome: OutcomeNotification) -> None:
        ...


def render_outcome_message(outcome: OutcomeNotification) -> Tuple[str, str]:
    """Render *outcome* as ``(subject, text)``."""
    if outcome.succeeded:
        subject = f"Post Published Successfully - {outcome.app_name}"
        lines = [
            "Your post has been published.",
            "",
            f"Title: {outcome.title}",
            f"Platform: {outcome.platform}",
        ]
        if outcome.character_id:
            lines.append(f"Character: {outcome.character_id}")
        if outcome.published_at:
            lines.append(
                f"Published at: {outcome.published_at.strftime('%Y-%m-%d %H:%M UTC')}"
            )
        if outcome.platform_post_id:
            lines.append(f"Platform post id: {outcome.platform_post_id}")
    else:
        reason = outcome.failure_reason or FailureReason.UNKNOWN
        subject = f"Post Publication Failed - {outcome.app_name}"
        lines = [
            "Your post could not be published.",
            "",
            f"Title: {outcome.title}",
            f"Platform: {outcome.platform}",
            f"Reason: {reason.value}",
        ]
        if outcome.failure_detail:
            lines.append(f"Detail: {outcome.failure_detail}")

    if outcome.dashboard_url:
        lines.extend(["", f"Dashboard: {outcome.dashboard_url}"])
    return subject, "\n".join(lines)


__all__ = ["OutcomeNotification", "OwnerNotifier", "render_outcome_message"]
