"""
TikTok Content Posting API client.

Videos are pulled by TikTok from a public URL.  The API answers with HTTP
200 and an ``error.code`` of ``"ok"`` on success; any other code is a
failure even when the HTTP status is 2xx.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

from command_center.exceptions import (
    ContentPolicyError,
    PlatformCredentialError,
    PlatformError,
    PlatformRateLimitError,
    PlatformUnavailableError,
)
from command_center.models import ContentItem, Platform
from command_center.platforms.base import PlatformClient

logger = logging.getLogger(__name__)

TIKTOK_BASE_URL = "https://open.tiktokapis.com/v2"

ERROR_CODES = {
    "rate_limit_exceeded": PlatformRateLimitError,
    "access_token_invalid": PlatformCredentialError,
    "scope_not_authorized": PlatformCredentialError,
    "spam_risk_too_many_posts": ContentPolicyError,
    "spam_risk_user_banned_from_posting": ContentPolicyError,
    "unaudited_client_can_only_post_to_private_accounts": ContentPolicyError,
    "internal_error": PlatformUnavailableError,
}


class TikTokClient(PlatformClient):
    """Async TikTok video publishing client.

    Args:
        access_token: User access token.  Falls back to
            ``TIKTOK_ACCESS_TOKEN``.
        privacy_level: Visibility of the published video.
    """

    platform = Platform.TIKTOK

    def __init__(
        self,
        access_token: Optional[str] = None,
        privacy_level: str = "PUBLIC_TO_EVERYONE",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.access_token: str = access_token or os.environ.get("TIKTOK_ACCESS_TOKEN", "")
        self.privacy_level = privacy_level

    async def publish(self, item: ContentItem) -> str:
        if not self.access_token:
            raise PlatformCredentialError("TIKTOK_ACCESS_TOKEN must be set")
        if not item.media_url:
            raise ContentPolicyError("TikTok posts require a video URL")

        data = await self._request(
            "POST",
            f"{TIKTOK_BASE_URL}/post/publish/video/init/",
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json; charset=UTF-8",
            },
            json={
                "post_info": {
                    "title": item.body,
                    "privacy_level": self.privacy_level,
                    "disable_duet": False,
                    "disable_comment": False,
                    "disable_stitch": False,
                },
                "source_info": {
                    "source": "PULL_FROM_URL",
                    "video_url": item.media_url,
                },
            },
        )
        self._check_error(data)

        publish_id = str(data["data"]["publish_id"])
        logger.info(
            "[PLATFORM] TikTok upload initialised: item=%s, publish_id=%s",
            item.id,
            publish_id,
        )
        return publish_id

    def _check_error(self, body: Dict[str, Any]) -> None:
        error = body.get("error") or {}
        code = error.get("code", "ok")
        if code == "ok":
            return
        message = f"tiktok API error {code}: {error.get('message', '')}"
        raise ERROR_CODES.get(code, PlatformError)(message)

    def _raise_for_status(self, response: httpx.Response) -> None:
        error = self._error_body(response)
        if error.get("code") in ERROR_CODES:
            self._check_error({"error": error})
        super()._raise_for_status(response)


__all__ = ["TikTokClient"]
