"""Feed context: the local feed, the remote feed and the prompt collaborator of an opened solution."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from ..errors import NuGetPushError
from ..solution.models import ClassLibrary, RemotePackageVersionRequestState
from ..utils.version import is_newer
from .local import LocalFeed
from .remote import Credentials, DisconnectedRemoteConnection, RemoteConnection
from .sources import PackageSource

logger = logging.getLogger(__name__)


class Prompter(Protocol):
    """Asks the user for secrets and confirmations."""

    async def request_credentials(self, source: PackageSource) -> Credentials | None: ...

    async def request_api_key(self, source: PackageSource) -> str | None: ...

    async def confirm_device_login(self, url: str, code: str) -> bool: ...


@dataclass
class FeedContext:
    """Feeds used by one opened solution.

    ``remote`` is None in offline mode.
    """

    local_feed: LocalFeed
    remote: RemoteConnection | DisconnectedRemoteConnection | None
    prompter: Prompter

    @property
    def is_offline(self) -> bool:
        return self.remote is None

    @property
    def remote_source(self) -> PackageSource | None:
        return self.remote.source if self.remote is not None else None

    def move_local_package(self, project: ClassLibrary, overwrite: bool) -> None:
        self.local_feed.move_local_package(project, overwrite=overwrite)

    async def upload(self, project: ClassLibrary) -> bool:
        if self.remote is None:
            raise NuGetPushError("No remote feed selected")
        return await self.remote.upload(project)

    def refresh_local_version(self, project: ClassLibrary) -> None:
        """Re-read the latest version in the local feed and its dependency ids."""
        if project.package_version is None:
            return
        version = self.local_feed.get_latest_local_version(project)
        project.known_latest_local_version = version
        project.local_package_dependencies = set()
        if version is None:
            return
        try:
            project.local_package_dependencies = self.local_feed.get_package_dependencies(
                project, version
            )
        except (ValueError, OSError) as e:
            logger.warning(f"Could not read dependencies of {project.package_file_name(version)}: {e}")

    async def refresh_remote_version(self, project: ClassLibrary, use_cache: bool = True) -> None:
        """Re-query the remote feed for the latest version.

        A project that was just pushed stays INDEXING until the feed lists
        the pushed version.
        """
        if project.package_version is None:
            return
        if self.remote is None:
            project.remote_state = RemotePackageVersionRequestState.OFFLINE
            return

        result = await self.remote.get_latest_remote_version(project, use_cache=use_cache)
        if result.state != RemotePackageVersionRequestState.LOADED:
            project.remote_state = result.state
            return

        if project.remote_state == RemotePackageVersionRequestState.INDEXING and is_newer(
            project.known_latest_remote_version, result.version
        ):
            logger.debug(f"{project.package_id} {project.known_latest_remote_version} still indexing")
            return

        project.known_latest_remote_version = result.version
        project.remote_state = RemotePackageVersionRequestState.LOADED

    async def refresh_versions(
        self, projects: Iterable[ClassLibrary], use_cache: bool = True
    ) -> None:
        """Refresh local and remote version knowledge of several projects."""
        projects = [p for p in projects if p.package_version is not None]
        for project in projects:
            self.refresh_local_version(project)
        if self.remote is None:
            for project in projects:
                project.remote_state = RemotePackageVersionRequestState.OFFLINE
            return

        for project in projects:
            if project.remote_state != RemotePackageVersionRequestState.INDEXING:
                project.remote_state = RemotePackageVersionRequestState.LOADING
        await asyncio.gather(*(self.refresh_remote_version(p, use_cache) for p in projects))

    def set_api_key(self, api_key: str | None) -> None:
        if self.remote is not None:
            self.remote.set_api_key(api_key)

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
