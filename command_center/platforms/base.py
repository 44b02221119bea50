"""
Shared pieces of the social platform clients.

- ``PLATFORM_REQUIREMENTS`` / :func:`check_requirements`: per-platform
  limits (caption length, hashtag count, supported formats) checked
  before anything is sent.
- :class:`PlatformClient`: base for the httpx clients.  Subclasses
  implement :meth:`PlatformClient.publish` and get HTTP error mapping to
  the ``Platform*Error`` hierarchy for free.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

import httpx

from command_center.exceptions import (
    ContentPolicyError,
    PlatformCredentialError,
    PlatformError,
    PlatformRateLimitError,
    PlatformTimeoutError,
    PlatformUnavailableError,
)
from command_center.models import ContentItem, ContentType, Platform

logger = logging.getLogger(__name__)

HASHTAG_PATTERN = re.compile(r"(?<!\w)#\w+")


# =============================================================================
# PLATFORM REQUIREMENTS
# =============================================================================


@dataclass(frozen=True)
class PlatformRequirements:
    """Publishing limits of one platform."""

    max_length: int
    max_hashtags: int
    supported_types: FrozenSet[ContentType]


PLATFORM_REQUIREMENTS: Dict[Platform, PlatformRequirements] = {
    Platform.TIKTOK: PlatformRequirements(
        max_length=150,
        max_hashtags=5,
        supported_types=frozenset({ContentType.VIDEO}),
    ),
    Platform.INSTAGRAM: PlatformRequirements(
        max_length=2200,
        max_hashtags=30,
        supported_types=frozenset({
            ContentType.IMAGE, ContentType.VIDEO, ContentType.STORY, ContentType.REEL,
        }),
    ),
    Platform.FACEBOOK: PlatformRequirements(
        max_length=63206,
        max_hashtags=10,
        supported_types=frozenset({
            ContentType.TEXT, ContentType.IMAGE, ContentType.VIDEO,
        }),
    ),
    Platform.YOUTUBE: PlatformRequirements(
        max_length=5000,
        max_hashtags=15,
        supported_types=frozenset({ContentType.VIDEO}),
    ),
}


def count_hashtags(text: str) -> int:
    return len(HASHTAG_PATTERN.findall(text or ""))


def check_requirements(item: ContentItem) -> List[str]:
    """Return the list of requirement violations for *item* (empty if none)."""
    requirements = PLATFORM_REQUIREMENTS[item.platform]
    issues: List[str] = []

    if len(item.body) > requirements.max_length:
        issues.append(
            f"body is {len(item.body)} characters, "
            f"{item.platform.value} allows {requirements.max_length}"
        )

    hashtags = count_hashtags(item.body)
    if hashtags > requirements.max_hashtags:
        issues.append(
            f"{hashtags} hashtags, {item.platform.value} allows "
            f"{requirements.max_hashtags}"
        )

    if item.content_type not in requirements.supported_types:
        supported = sorted(t.value for t in requirements.supported_types)
        issues.append(
            f"{item.content_type.value} is not supported on "
            f"{item.platform.value} (supported: {', '.join(supported)})"
        )

    return issues


# =============================================================================
# CLIENT BASE
# =============================================================================


class PlatformClient:
    """Base class for async platform API clients.

    Args:
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (``httpx.MockTransport`` in
            tests).
    """

    platform: Platform

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    async def publish(self, item: ContentItem) -> str:
        """Publish *item* and return the platform's post id.

        Raises:
            PlatformError: Subclass matching the failure reason.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """Send one request and return the decoded JSON body.

        Transport failures become :class:`PlatformTimeoutError`; non-2xx
        responses go through :meth:`_raise_for_status`.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise PlatformTimeoutError(
                f"{self.platform.value} request timed out: {exc}"
            ) from exc
        except httpx.TransportError as exc:
            raise PlatformTimeoutError(
                f"{self.platform.value} network error: {exc}"
            ) from exc

        if response.status_code >= 400:
            self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as exc:
            raise PlatformError(
                f"{self.platform.value} returned non-JSON body: {response.text[:200]}"
            ) from exc

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map an error response to the ``Platform*Error`` hierarchy."""
        status = response.status_code
        message = f"{self.platform.value} API error {status}: {response.text[:500]}"

        if status == 429:
            raise PlatformRateLimitError(message)
        if status in (401, 403):
            raise PlatformCredentialError(message)
        if status in (400, 422):
            raise ContentPolicyError(message)
        if status >= 500:
            raise PlatformUnavailableError(message)
        raise PlatformError(message)

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        error = body.get("error") if isinstance(body, dict) else None
        return error if isinstance(error, dict) else {}


__all__ = [
    "PlatformRequirements",
    "PLATFORM_REQUIREMENTS",
    "count_hashtags",
    "check_requirements",
    "PlatformClient",
]
