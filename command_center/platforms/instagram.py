"""
Instagram Graph API client (business accounts).

Publishing is two calls: create a media container for the asset, then
publish the container.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

from command_center.exceptions import ContentPolicyError, PlatformCredentialError
from command_center.models import ContentItem, ContentType, Platform
from command_center.platforms.facebook import GraphAPIClient

logger = logging.getLogger(__name__)

# ContentType -> Graph media_type (images need none)
MEDIA_TYPES: Dict[ContentType, str] = {
    ContentType.VIDEO: "REELS",
    ContentType.REEL: "REELS",
    ContentType.STORY: "STORIES",
}


class InstagramClient(GraphAPIClient):
    """Async Instagram publishing client.

    Args:
        account_id: Instagram business account id.  Falls back to
            ``INSTAGRAM_ACCOUNT_ID``.
        access_token: Falls back to ``INSTAGRAM_ACCESS_TOKEN``.
    """

    platform = Platform.INSTAGRAM

    def __init__(
        self,
        account_id: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: str = "v18.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(api_version=api_version, timeout=timeout, transport=transport)
        self.account_id: str = account_id or os.environ.get("INSTAGRAM_ACCOUNT_ID", "")
        self.access_token: str = access_token or os.environ.get(
            "INSTAGRAM_ACCESS_TOKEN", ""
        )

    async def publish(self, item: ContentItem) -> str:
        if not self.account_id or not self.access_token:
            raise PlatformCredentialError(
                "INSTAGRAM_ACCOUNT_ID and INSTAGRAM_ACCESS_TOKEN must be set"
            )
        if not item.media_url:
            raise ContentPolicyError("Instagram posts require a media URL")

        container: Dict[str, Any] = {"caption": item.body}
        media_type = MEDIA_TYPES.get(item.content_type)
        if media_type:
            container["media_type"] = media_type
            container["video_url"] = item.media_url
        else:
            container["image_url"] = item.media_url
        if item.content_type == ContentType.STORY:
            # Stories carry no caption
            container.pop("caption")

        created = await self._request(
            "POST",
            self._url(f"{self.account_id}/media"),
            params={"access_token": self.access_token},
            data=container,
        )
        creation_id = str(created["id"])

        published = await self._request(
            "POST",
            self._url(f"{self.account_id}/media_publish"),
            params={"access_token": self.access_token},
            data={"creation_id": creation_id},
        )
        post_id = str(published["id"])
        logger.info(
            "[PLATFORM] Instagram media published: item=%s, container=%s, post_id=%s",
            item.id,
            creation_id,
            post_id,
        )
        return post_id


__all__ = ["InstagramClient"]
