"""Remote NuGet v3 feed access.

Version lookups use the v3 flat container (PackageBaseAddress) resource
over httpx; uploads go through ``dotnet nuget push`` so that credential
providers and device login keep working.

Connection states:
CONNECTED ── pushes and version queries available
UNAUTHORIZED ── credentials declined; offline for the rest of the session
ERROR ── feed unreachable or malformed; offline for the rest of the session
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from ..build.dotnet import DotNet, is_authentication_failure, record_output
from ..errors import AuthenticationError, DeviceLoginCancelled, NuGetPushError
from ..solution.models import ClassLibrary, RemotePackageVersionRequestState
from ..utils.version import NuGetVersion, max_version
from .sources import PackageSource

if TYPE_CHECKING:
    from .context import Prompter

logger = logging.getLogger(__name__)

PACKAGE_BASE_ADDRESS_TYPE = "PackageBaseAddress/3.0.0"
DEFAULT_TIMEOUT = 30.0


class RemoteConnectionState(str, Enum):
    """Outcome of connecting to the remote feed."""

    CONNECTED = "connected"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"


@dataclass(frozen=True)
class Credentials:
    """Feed credentials (user name and password or personal access token)."""

    username: str
    password: str


@dataclass(frozen=True)
class LatestPackageVersionResult:
    """Latest remote version of a package and how it was obtained."""

    version: NuGetVersion | None
    state: RemotePackageVersionRequestState

    @classmethod
    def loaded(cls, version: NuGetVersion | None) -> LatestPackageVersionResult:
        return cls(version, RemotePackageVersionRequestState.LOADED)

    @classmethod
    def unauthorized(cls) -> LatestPackageVersionResult:
        return cls(None, RemotePackageVersionRequestState.UNAUTHORIZED)

    @classmethod
    def error(cls) -> LatestPackageVersionResult:
        return cls(None, RemotePackageVersionRequestState.ERROR)

    @classmethod
    def offline(cls) -> LatestPackageVersionResult:
        return cls(None, RemotePackageVersionRequestState.OFFLINE)


class NuGetFeedClient:
    """Minimal NuGet v3 client: service index and package version listing."""

    def __init__(
        self,
        index_url: str,
        credentials: Credentials | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.index_url = index_url
        self._credentials = credentials
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._base_address: str | None = None
        self._versions_cache: dict[str, list[NuGetVersion]] = {}

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            auth = None
            if self._credentials is not None:
                auth = httpx.BasicAuth(self._credentials.username, self._credentials.password)
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                auth=auth,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def connect(self) -> None:
        """Read the service index and locate the flat container.

        Raises:
            httpx.HTTPStatusError: On a non-success status (401 included)
            httpx.RequestError: If the feed cannot be reached
            ValueError: If the index does not describe a v3 feed
        """
        response = await self._get_client().get(self.index_url)
        response.raise_for_status()
        index: dict[str, Any] = response.json()
        for resource in index.get("resources", []):
            resource_type = resource.get("@type")
            types = resource_type if isinstance(resource_type, list) else [resource_type]
            if PACKAGE_BASE_ADDRESS_TYPE in types and resource.get("@id"):
                self._base_address = resource["@id"].rstrip("/") + "/"
                logger.debug(f"Package base address: {self._base_address}")
                return
        raise ValueError(f"{self.index_url} does not expose {PACKAGE_BASE_ADDRESS_TYPE}")

    async def get_all_versions(self, package_id: str, use_cache: bool = True) -> list[NuGetVersion]:
        """All published versions of a package (empty if the id is unknown).

        Raises:
            httpx.HTTPStatusError: On a non-success status other than 404
            httpx.RequestError: If the feed cannot be reached
        """
        key = package_id.lower()
        if use_cache and key in self._versions_cache:
            return self._versions_cache[key]
        if self._base_address is None:
            await self.connect()

        response = await self._get_client().get(f"{self._base_address}{key}/index.json")
        if response.status_code == 404:
            versions: list[NuGetVersion] = []
        else:
            response.raise_for_status()
            versions = [
                v
                for v in (NuGetVersion.from_string(s) for s in response.json().get("versions", []))
                if v is not None
            ]
        self._versions_cache[key] = versions
        return versions


class RemoteConnection:
    """Connected remote feed: version queries and uploads."""

    def __init__(
        self,
        source: PackageSource,
        client: NuGetFeedClient,
        dotnet: DotNet,
        prompter: Prompter,
    ):
        self._source = source
        self._client = client
        self._dotnet = dotnet
        self._prompter = prompter
        self._api_key: str | None = None
        self._is_api_key_valid = False

    @property
    def state(self) -> RemoteConnectionState:
        return RemoteConnectionState.CONNECTED

    @property
    def source(self) -> PackageSource:
        return self._source

    async def close(self) -> None:
        await self._client.close()

    async def get_latest_remote_version(
        self, project: ClassLibrary, use_cache: bool = True
    ) -> LatestPackageVersionResult:
        """Latest version of the project's package on the feed."""
        try:
            versions = await self._client.get_all_versions(project.package_id, use_cache)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                logger.warning(f"Unauthorized reading versions of {project.package_id}")
                return LatestPackageVersionResult.unauthorized()
            project.add_diagnostic(f"Failed to read remote versions: {e}")
            return LatestPackageVersionResult.error()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to read versions of {project.package_id}: {e}")
            project.add_diagnostic(f"Failed to read remote versions: {e}")
            return LatestPackageVersionResult.error()
        return LatestPackageVersionResult.loaded(max_version(list(versions)))

    def set_api_key(self, api_key: str | None) -> None:
        """Use the given API key for the next push."""
        self._api_key = api_key or None
        self._is_api_key_valid = False

    def set_api_key_valid(self, is_valid: bool) -> None:
        self._is_api_key_valid = is_valid
        if not is_valid:
            self._api_key = None

    async def try_get_api_key(self) -> str | None:
        """API key to push with; asks the prompter until a key was accepted once."""
        if not self._is_api_key_valid and self._api_key is None:
            self._api_key = await self._prompter.request_api_key(self._source)
        return self._api_key

    async def _handle_device_login(self, url: str, code: str) -> None:
        if not await self._prompter.confirm_device_login(url, code):
            raise DeviceLoginCancelled("Device login was declined")

    async def upload(self, project: ClassLibrary) -> bool:
        """Push the project's package.

        Returns:
            True if pushed, False if the push failed for a non-auth reason

        Raises:
            FileNotFoundError: If the package (or symbols package) is missing
            AuthenticationError: If the feed rejected the API key
            DeviceLoginCancelled: If the device login was declined
        """
        package_name = project.package_file_name()
        package_path = os.path.join(project.package_output_path, package_name)
        if not os.path.isfile(package_path):
            raise FileNotFoundError(f"Could not find '{package_name}'.")
        if project.include_symbols:
            symbols_name = project.package_file_name(symbols=True)
            if not os.path.isfile(os.path.join(project.package_output_path, symbols_name)):
                raise FileNotFoundError(f"Could not find '{symbols_name}'.")

        api_key = await self.try_get_api_key()
        if not api_key:
            project.add_diagnostic("No API key available for the remote feed.")
            return False

        result = await self._dotnet.push(
            package_path,
            api_key,
            self._source.source,
            on_device_login=self._handle_device_login,
        )
        if result.success:
            self.set_api_key_valid(True)
            return True

        if is_authentication_failure(result):
            self.set_api_key_valid(False)
            record_output(project, result, "dotnet nuget push")
            raise AuthenticationError(f"{self._source.name} rejected the API key")

        record_output(project, result, "dotnet nuget push")
        return False


class DisconnectedRemoteConnection:
    """Remote feed that could not be connected; every query reports its state."""

    def __init__(self, source: PackageSource, unauthorized: bool):
        self._source = source
        self._state = (
            RemoteConnectionState.UNAUTHORIZED if unauthorized else RemoteConnectionState.ERROR
        )

    @property
    def state(self) -> RemoteConnectionState:
        return self._state

    @property
    def source(self) -> PackageSource:
        return self._source

    async def close(self) -> None:
        pass

    async def get_latest_remote_version(
        self, project: ClassLibrary, use_cache: bool = True
    ) -> LatestPackageVersionResult:
        if self._state == RemoteConnectionState.UNAUTHORIZED:
            return LatestPackageVersionResult.unauthorized()
        return LatestPackageVersionResult.error()

    def set_api_key(self, api_key: str | None) -> None:
        pass

    async def upload(self, project: ClassLibrary) -> bool:
        raise NuGetPushError(f"Remote feed {self._source.name} is not connected ({self._state.value})")


async def connect_remote_feed(
    source: PackageSource,
    dotnet: DotNet,
    prompter: Prompter,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RemoteConnection | DisconnectedRemoteConnection:
    """Connect to a remote feed, asking for credentials while it answers 401.

    Declining the credential prompt, or any other failure, yields a
    disconnected feed for the rest of the session.
    """
    client = NuGetFeedClient(source.source, timeout=timeout, transport=transport)
    while True:
        try:
            await client.connect()
            logger.info(f"Connected to remote feed {source.name}")
            return RemoteConnection(source, client, dotnet, prompter)
        except httpx.HTTPStatusError as e:
            if e.response.status_code != 401:
                logger.warning(f"Remote feed {source.name} unavailable: {e}")
                await client.close()
                return DisconnectedRemoteConnection(source, unauthorized=False)
            credentials = await prompter.request_credentials(source)
            if credentials is None:
                logger.warning(f"Remote feed {source.name}: credentials declined")
                await client.close()
                return DisconnectedRemoteConnection(source, unauthorized=True)
            await client.close()
            client = NuGetFeedClient(
                source.source, credentials=credentials, timeout=timeout, transport=transport
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Remote feed {source.name} unavailable: {e}")
            await client.close()
            return DisconnectedRemoteConnection(source, unauthorized=False)
