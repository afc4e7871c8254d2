"""包源访问与发布"""

from coherence.services.feed.client import (
    FolderFeedClient,
    NuGetFeedClient,
    expand_packages,
    make_feed_client,
)
from coherence.services.feed.publisher import FeedPublisher, PublishOptions

__all__ = [
    "FeedPublisher",
    "FolderFeedClient",
    "NuGetFeedClient",
    "PublishOptions",
    "expand_packages",
    "make_feed_client",
]
