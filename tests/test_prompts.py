"""Tests for the configured-secrets prompter."""

import pytest

from nugetpush_mcp.feeds.remote import Credentials
from nugetpush_mcp.feeds.sources import PackageSource
from nugetpush_mcp.session.prompts import EnvironmentPrompter

SOURCE = PackageSource("company", "https://feed.test/v3/index.json")


class TestEnvironmentPrompter:
    """Tests for EnvironmentPrompter."""

    @pytest.mark.asyncio
    async def test_credentials_offered_once(self):
        """Test configured credentials are returned once, then declined."""
        prompter = EnvironmentPrompter(username="user", password="secret")

        assert await prompter.request_credentials(SOURCE) == Credentials("user", "secret")
        assert not prompter.is_cancelled
        assert await prompter.request_credentials(SOURCE) is None
        assert prompter.is_cancelled

    @pytest.mark.asyncio
    async def test_no_credentials(self):
        """Test missing credentials cancel the prompt."""
        prompter = EnvironmentPrompter(username="user")

        assert await prompter.request_credentials(SOURCE) is None
        assert prompter.is_cancelled

    @pytest.mark.asyncio
    async def test_api_key(self):
        """Test the API key can be replaced and cleared."""
        prompter = EnvironmentPrompter(api_key="first")
        assert await prompter.request_api_key(SOURCE) == "first"

        prompter.set_api_key("second")
        assert await prompter.request_api_key(SOURCE) == "second"

        prompter.set_api_key("")
        assert await prompter.request_api_key(SOURCE) is None

    @pytest.mark.asyncio
    async def test_device_login(self):
        """Test device login requests are recorded and answered."""
        prompter = EnvironmentPrompter()
        assert await prompter.confirm_device_login("https://login.test/device", "ABC123")
        assert prompter.last_device_login.to_dict() == {
            "url": "https://login.test/device",
            "code": "ABC123",
        }

        declining = EnvironmentPrompter(accept_device_login=False)
        assert not await declining.confirm_device_login("https://login.test/device", "X")
