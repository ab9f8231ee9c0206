"""Local and remote package feeds."""

from .context import FeedContext, Prompter
from .local import LocalFeed
from .remote import (
    Credentials,
    DisconnectedRemoteConnection,
    LatestPackageVersionResult,
    NuGetFeedClient,
    RemoteConnection,
    RemoteConnectionState,
    connect_remote_feed,
)
from .sources import OFFLINE, OfflineFeed, PackageSource, RemoteFeed, load_package_sources, select_sources
from .store import PackageSourceStore, SolutionPackageSources

__all__ = [
    "OFFLINE",
    "Credentials",
    "DisconnectedRemoteConnection",
    "FeedContext",
    "LatestPackageVersionResult",
    "LocalFeed",
    "NuGetFeedClient",
    "OfflineFeed",
    "PackageSource",
    "PackageSourceStore",
    "Prompter",
    "RemoteConnection",
    "RemoteConnectionState",
    "RemoteFeed",
    "SolutionPackageSources",
    "connect_remote_feed",
    "load_package_sources",
    "select_sources",
]
