"""Tests for nuspec parsing."""

import zipfile

import pytest

from nugetpush_mcp.feeds.nuspec import parse_nuspec, read_package_metadata
from nugetpush_mcp.utils.version import NuGetVersion


class TestParseNuspec:
    """Tests for parse_nuspec."""

    def test_parse(self, sample_nuspec):
        """Test id, version and dependency ids."""
        metadata = parse_nuspec(sample_nuspec)

        assert metadata.id == "My.Lib"
        assert metadata.version == NuGetVersion.parse("1.2.0")
        assert metadata.dependencies == {"My.Core"}

    def test_without_namespace(self):
        """Test nuspecs without an XML namespace."""
        content = b"""<package><metadata><id>A</id><version>1.0.0-beta</version>
<dependencies><dependency id="B" version="1.0" /><dependency id="C" version="[2.0]" /></dependencies>
</metadata></package>"""

        metadata = parse_nuspec(content)

        assert metadata.version.is_prerelease
        assert metadata.dependencies == {"B", "C"}

    def test_invalid(self):
        """Test malformed nuspecs."""
        with pytest.raises(ValueError, match="Invalid nuspec"):
            parse_nuspec(b"<package>")
        with pytest.raises(ValueError, match="no metadata"):
            parse_nuspec(b"<package />")
        with pytest.raises(ValueError, match="no package id"):
            parse_nuspec(b"<package><metadata><version>1.0</version></metadata></package>")
        with pytest.raises(ValueError):
            parse_nuspec(b"<package><metadata><id>A</id><version>x</version></metadata></package>")


class TestReadPackageMetadata:
    """Tests for read_package_metadata."""

    def test_read_from_archive(self, tmp_path, sample_nuspec):
        """Test the nuspec at the archive root is read."""
        package = tmp_path / "My.Lib.1.2.0.nupkg"
        with zipfile.ZipFile(package, "w") as archive:
            archive.writestr("lib/net8.0/My.Lib.dll", b"")
            archive.writestr("My.Lib.nuspec", sample_nuspec)

        assert read_package_metadata(str(package)).id == "My.Lib"

    def test_missing_nuspec(self, tmp_path):
        """Test archives without a root nuspec."""
        package = tmp_path / "A.1.0.0.nupkg"
        with zipfile.ZipFile(package, "w") as archive:
            archive.writestr("content/A.nuspec", b"<package />")

        with pytest.raises(ValueError, match="No nuspec"):
            read_package_metadata(str(package))

    def test_not_an_archive(self, tmp_path):
        """Test files that are not zip archives."""
        package = tmp_path / "A.1.0.0.nupkg"
        package.write_bytes(b"not a zip")

        with pytest.raises(ValueError, match="Not a package archive"):
            read_package_metadata(str(package))
