"""
Platform-publish capability used by the publication executor.

``PlatformPublisher.publish(item)`` never raises for platform failures:
requirement violations, missing clients and ``PlatformError`` all come
back as a failed :class:`PublishResult` carrying the failure reason.
"""

import logging
from typing import Dict, Optional

from command_center.config import PlatformSettings
from command_center.exceptions import PlatformError
from command_center.models import ContentItem, FailureReason, Platform, PublishResult
from command_center.platforms.base import PlatformClient, check_requirements
from command_center.platforms.facebook import FacebookClient
from command_center.platforms.instagram import InstagramClient
from command_center.platforms.tiktok import TikTokClient

logger = logging.getLogger(__name__)


def default_clients(
    settings: Optional[PlatformSettings] = None,
) -> Dict[Platform, PlatformClient]:
    """Build the Facebook, Instagram and TikTok clients from env tokens."""
    settings = settings or PlatformSettings()
    return {
        Platform.FACEBOOK: FacebookClient(
            api_version=settings.facebook_api_version,
            timeout=settings.request_timeout_seconds,
        ),
        Platform.INSTAGRAM: InstagramClient(
            api_version=settings.facebook_api_version,
            timeout=settings.request_timeout_seconds,
        ),
        Platform.TIKTOK: TikTokClient(timeout=settings.request_timeout_seconds),
    }


class PlatformPublisher:
    """Routes a content item to the client for its platform.

    Args:
        clients: Platform -> client map.  Defaults to
            :func:`default_clients`.  Platforms without a client (YouTube)
            fail with ``platform-unavailable``.
    """

    def __init__(
        self,
        clients: Optional[Dict[Platform, PlatformClient]] = None,
    ) -> None:
        self.clients = clients if clients is not None else default_clients()

    async def publish(self, item: ContentItem) -> PublishResult:
        issues = check_requirements(item)
        if issues:
            logger.warning(
                "[PLATFORM] Item %s violates %s requirements: %s",
                item.id,
                item.platform.value,
                issues,
            )
            return PublishResult.failed(
                FailureReason.CONTENT_POLICY, "; ".join(issues)
            )

        client = self.clients.get(item.platform)
        if client is None:
            return PublishResult.failed(
                FailureReason.PLATFORM_UNAVAILABLE,
                f"No publishing client for {item.platform.value}",
            )

        try:
            platform_post_id = await client.publish(item)
        except PlatformError as exc:
            logger.warning(
                "[PLATFORM] %s publish failed for item %s (%s): %s",
                item.platform.value,
                item.id,
                exc.reason,
                exc,
            )
            return PublishResult.failed(FailureReason.parse(exc.reason), str(exc))

        return PublishResult.ok(platform_post_id)


__all__ = ["PlatformPublisher", "default_clients"]
