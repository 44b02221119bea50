"""
Facebook Graph API client (page posts).

Publishes to a Facebook page with a page access token.  Text posts go to
``/{page_id}/feed``, images to ``/{page_id}/photos`` and videos to
``/{page_id}/videos``.

The Graph API reports most failures as HTTP 400 with an ``error.code``;
those codes are mapped to failure reasons before falling back to the
generic status mapping.
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

import httpx

from command_center.exceptions import (
    PlatformCredentialError,
    PlatformRateLimitError,
    PlatformUnavailableError,
)
from command_center.models import ContentItem, ContentType, Platform
from command_center.platforms.base import PlatformClient

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"

# Graph API error codes (error.code in the response body)
GRAPH_RATE_LIMIT_CODES = frozenset({4, 17, 32, 613})
GRAPH_AUTH_CODES = frozenset({102, 190, 200, 10})
GRAPH_TRANSIENT_CODES = frozenset({1, 2})


class GraphAPIClient(PlatformClient):
    """Shared Graph API error handling for Facebook and Instagram."""

    def __init__(
        self,
        api_version: str = "v18.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.api_version = api_version

    def _url(self, path: str) -> str:
        return f"{GRAPH_BASE_URL}/{self.api_version}/{path.lstrip('/')}"

    def _raise_for_status(self, response: httpx.Response) -> None:
        error = self._error_body(response)
        code = error.get("code")
        if code is not None:
            message = (
                f"{self.platform.value} Graph API error {code}: "
                f"{error.get('message', response.text[:300])}"
            )
            if code in GRAPH_RATE_LIMIT_CODES:
                raise PlatformRateLimitError(message)
            if code in GRAPH_AUTH_CODES:
                raise PlatformCredentialError(message)
            if code in GRAPH_TRANSIENT_CODES:
                raise PlatformUnavailableError(message)
        super()._raise_for_status(response)


class FacebookClient(GraphAPIClient):
    """Async Facebook page publishing client.

    Args:
        page_id: Target page.  Falls back to ``FACEBOOK_PAGE_ID``.
        access_token: Page access token.  Falls back to
            ``FACEBOOK_ACCESS_TOKEN``.

    Usage::

        client = FacebookClient()
        post_id = await client.publish(item)
    """

    platform = Platform.FACEBOOK

    def __init__(
        self,
        page_id: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: str = "v18.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(api_version=api_version, timeout=timeout, transport=transport)
        self.page_id: str = page_id or os.environ.get("FACEBOOK_PAGE_ID", "")
        self.access_token: str = access_token or os.environ.get(
            "FACEBOOK_ACCESS_TOKEN", ""
        )

    async def publish(self, item: ContentItem) -> str:
        if not self.page_id or not self.access_token:
            raise PlatformCredentialError(
                "FACEBOOK_PAGE_ID and FACEBOOK_ACCESS_TOKEN must be set"
            )

        edge, payload = self._build_payload(item)
        data = await self._request(
            "POST",
            self._url(f"{self.page_id}/{edge}"),
            params={"access_token": self.access_token},
            data=payload,
        )

        # /photos returns post_id alongside the photo id
        post_id = str(data.get("post_id") or data["id"])
        logger.info(
            "[PLATFORM] Facebook post created: item=%s, post_id=%s, edge=%s",
            item.id,
            post_id,
            edge,
        )
        return post_id

    def _build_payload(self, item: ContentItem) -> Tuple[str, Dict[str, Any]]:
        if item.content_type == ContentType.IMAGE and item.media_url:
            return "photos", {"url": item.media_url, "caption": item.body}
        if item.content_type == ContentType.VIDEO and item.media_url:
            return "videos", {
                "file_url": item.media_url,
                "title": item.title,
                "description": item.body,
            }
        payload: Dict[str, Any] = {"message": item.body}
        if item.media_url:
            payload["link"] = item.media_url
        return "feed", payload


__all__ = ["GraphAPIClient", "FacebookClient"]
