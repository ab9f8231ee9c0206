"""Non-interactive prompt collaborator backed by settings and MCP tool calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..feeds.remote import Credentials
from ..feeds.sources import PackageSource

logger = logging.getLogger(__name__)


@dataclass
class DeviceLoginRequest:
    """Pending device login reported by the credential provider."""

    url: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "code": self.code}


class EnvironmentPrompter:
    """Answers feed prompts from configured secrets.

    Credentials are offered once; after they have been declined (or there
    are none) every later request is declined too, so a feed that keeps
    answering 401 ends up disconnected. The API key can be replaced at
    runtime through ``set_api_key``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        username: str | None = None,
        password: str | None = None,
        accept_device_login: bool = True,
    ):
        self._api_key = api_key
        self._credentials = (
            Credentials(username, password) if username and password is not None else None
        )
        self._is_cancelled = False
        self._accept_device_login = accept_device_login
        self.last_device_login: DeviceLoginRequest | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._is_cancelled

    def set_api_key(self, api_key: str | None) -> None:
        self._api_key = api_key or None

    async def request_credentials(self, source: PackageSource) -> Credentials | None:
        if self._is_cancelled or self._credentials is None:
            self._is_cancelled = True
            logger.info(f"No credentials for {source.name}")
            return None
        credentials = self._credentials
        # One attempt only
        self._credentials = None
        logger.info(f"Using configured credentials for {source.name}")
        return credentials

    async def request_api_key(self, source: PackageSource) -> str | None:
        if self._api_key is None:
            logger.warning(f"No API key configured for {source.name}")
        return self._api_key

    async def confirm_device_login(self, url: str, code: str) -> bool:
        self.last_device_login = DeviceLoginRequest(url, code)
        logger.warning(f"Device login required: open {url} and enter code {code}")
        return self._accept_device_login
