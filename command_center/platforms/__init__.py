"""Social platform clients and the platform-publish capability."""
from command_center.platforms.base import (
    PLATFORM_REQUIREMENTS,
    PlatformClient,
    PlatformRequirements,
    check_requirements,
    count_hashtags,
)
from command_center.platforms.facebook import FacebookClient, GraphAPIClient
from command_center.platforms.instagram import InstagramClient
from command_center.platforms.tiktok import TikTokClient
from command_center.platforms.publisher import PlatformPublisher, default_clients

__all__ = [
    "PLATFORM_REQUIREMENTS",
    "PlatformClient",
    "PlatformRequirements",
    "check_requirements",
    "count_hashtags",
    "FacebookClient",
    "GraphAPIClient",
    "InstagramClient",
    "TikTokClient",
    "PlatformPublisher",
    "default_clients",
]
