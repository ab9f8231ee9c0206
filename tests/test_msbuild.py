"""Tests for the lightweight MSBuild project reader."""

import pytest

from nugetpush_mcp.errors import ProjectParseError
from nugetpush_mcp.solution.msbuild import find_file_above, load_project


def write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def sdk_project(body):
    return f'<Project Sdk="Microsoft.NET.Sdk">{body}</Project>'


class TestProperties:
    """Tests for property evaluation."""

    def test_properties_and_expansion(self, tmp_path):
        """Test properties are expanded in document order."""
        path = write(
            tmp_path / "Lib" / "Lib.csproj",
            sdk_project(
                "<PropertyGroup><VersionPrefix>1.2.0</VersionPrefix>"
                "<Version>$(VersionPrefix)-beta</Version>"
                "<PackageId>Company.$(MSBuildProjectName)</PackageId></PropertyGroup>"
            ),
        )

        project = load_project(str(path))

        assert project.is_sdk_style
        assert project.name == "Lib"
        assert project.get_property_value("Version") == "1.2.0-beta"
        assert project.get_property("version").unevaluated == "$(VersionPrefix)-beta"
        assert project.get_property_value("PackageId") == "Company.Lib"
        assert project.get_property_value("Missing", "default") == "default"

    def test_global_properties_win(self, tmp_path):
        """Test global properties cannot be overridden by the project."""
        path = write(
            tmp_path / "Lib.csproj",
            sdk_project("<PropertyGroup><Configuration>Debug</Configuration></PropertyGroup>"),
        )

        project = load_project(str(path))

        assert project.get_property_value("Configuration") == "Release"
        assert project.get_property_value("IsPublishBuild") == "true"

    def test_conditions(self, tmp_path):
        """Test simple conditions on groups and properties."""
        path = write(
            tmp_path / "Lib.csproj",
            sdk_project(
                "<PropertyGroup Condition=\"'$(Configuration)' == 'Release'\"><A>release</A></PropertyGroup>"
                "<PropertyGroup Condition=\"'$(Configuration)' == 'Debug'\"><B>debug</B></PropertyGroup>"
                "<PropertyGroup><C Condition=\"'$(IsPublishBuild)' != 'true' or '$(A)' == 'release'\">yes</C>"
                "<D Condition=\"'$(A)' == 'release' and '$(B)' == 'debug'\">no</D>"
                "<E Condition=\"Exists('Lib.csproj')\">exists</E>"
                "<F Condition=\"!Exists('missing.props')\">absent</F>"
                "<G Condition=\"Exists('missing.props')\">missing</G>"
                "<H Condition=\"('$(A)' == 'debug')\">paren</H></PropertyGroup>"
            ),
        )

        project = load_project(str(path))

        assert project.get_property_value("A") == "release"
        assert project.get_property("B") is None
        assert project.get_property_value("C") == "yes"
        assert project.get_property("D") is None
        assert project.get_property_value("E") == "exists"
        assert project.get_property_value("F") == "absent"
        assert project.get_property("G") is None
        assert project.get_property("H") is None


class TestImports:
    """Tests for implicit and explicit imports."""

    def test_directory_build_props(self, tmp_path):
        """Test Directory.Build.props is imported and its properties flagged."""
        write(
            tmp_path / "Directory.Build.props",
            "<Project><PropertyGroup><Authors>Team</Authors><Version>1.0.0</Version></PropertyGroup></Project>",
        )
        path = write(
            tmp_path / "src" / "Lib" / "Lib.csproj",
            sdk_project("<PropertyGroup><Version>2.0.0</Version></PropertyGroup>"),
        )

        project = load_project(str(path))

        assert project.get_property("Authors").is_imported
        assert project.get_property_value("Version") == "2.0.0"
        assert not project.get_property("Version").is_imported
        assert str(tmp_path / "Directory.Build.props") in project.imports

    def test_explicit_import(self, tmp_path):
        """Test <Import> of a relative props file."""
        write(tmp_path / "build" / "common.props", "<Project><PropertyGroup><Shared>1</Shared></PropertyGroup></Project>")
        path = write(
            tmp_path / "Lib.csproj",
            sdk_project('<Import Project="build/common.props" /><Import Project="missing.props" />'),
        )

        assert load_project(str(path)).get_property_value("Shared") == "1"

    def test_get_path_of_file_above(self, tmp_path):
        """Test chained Directory.Build.props via GetPathOfFileAbove."""
        write(tmp_path / "Directory.Build.props", "<Project><PropertyGroup><Root>yes</Root></PropertyGroup></Project>")
        write(
            tmp_path / "src" / "Directory.Build.props",
            "<Project><Import Project=\"$([MSBuild]::GetPathOfFileAbove('Directory.Build.props', "
            "'$(MSBuildThisFileDirectory)../'))\" /><PropertyGroup><Inner>yes</Inner></PropertyGroup></Project>",
        )
        path = write(tmp_path / "src" / "Lib" / "Lib.csproj", sdk_project(""))

        project = load_project(str(path))

        assert project.get_property_value("Root") == "yes"
        assert project.get_property_value("Inner") == "yes"

    def test_find_file_above(self, tmp_path):
        """Test the nearest file wins."""
        write(tmp_path / "a.props", "")
        write(tmp_path / "x" / "a.props", "")
        (tmp_path / "x" / "y").mkdir()

        assert find_file_above(str(tmp_path / "x" / "y"), "a.props") == str(tmp_path / "x" / "a.props")
        assert find_file_above(str(tmp_path / "x" / "y"), "none-such.props") is None


class TestItems:
    """Tests for item evaluation."""

    def test_package_references(self, tmp_path):
        """Test Include, Update and Remove with attribute and element metadata."""
        write(
            tmp_path / "Directory.Packages.props",
            "<Project><ItemGroup><PackageVersion Include=\"My.Core\" Version=\"1.4.0\" /></ItemGroup></Project>",
        )
        path = write(
            tmp_path / "Lib.csproj",
            sdk_project(
                "<ItemGroup>"
                '<PackageReference Include="My.Core" />'
                '<PackageReference Include="Other"><Version>[2.0]</Version></PackageReference>'
                '<PackageReference Include="Gone;Also.Gone" Version="1.0" />'
                '<PackageReference Update="My.Core" PrivateAssets="all" />'
                '<PackageReference Remove="Gone" />'
                "</ItemGroup>"
            ),
        )

        project = load_project(str(path))

        references = {i.include: i for i in project.get_items("PackageReference")}
        assert set(references) == {"My.Core", "Other", "Also.Gone"}
        assert references["My.Core"].get_metadata("PrivateAssets") == "all"
        assert references["Other"].get_metadata("Version") == "[2.0]"
        assert project.get_items("PackageVersion")[0].get_metadata("version") == "1.4.0"
        assert not project.has_item_type("ProjectReference")


class TestInvalidProjects:
    """Tests for unreadable projects."""

    def test_missing_file(self, tmp_path):
        """Test a missing project file."""
        with pytest.raises(ProjectParseError, match="not found"):
            load_project(str(tmp_path / "Missing.csproj"))

    def test_invalid_xml(self, tmp_path):
        """Test malformed XML."""
        path = write(tmp_path / "Bad.csproj", "<Project><PropertyGroup>")
        with pytest.raises(ProjectParseError, match="Invalid project file") as exc_info:
            load_project(str(path))
        assert exc_info.value.project_path == str(path)

    def test_wrong_root(self, tmp_path):
        """Test files that are not MSBuild projects."""
        path = write(tmp_path / "Bad.csproj", "<Solution />")
        with pytest.raises(ProjectParseError, match="not <Project>"):
            load_project(str(path))

    def test_legacy_project(self, tmp_path):
        """Test non-SDK projects in the 2003 namespace."""
        path = write(
            tmp_path / "Legacy.csproj",
            '<Project ToolsVersion="15.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">'
            "<PropertyGroup><AssemblyName>Legacy</AssemblyName></PropertyGroup></Project>",
        )

        project = load_project(str(path))

        assert not project.is_sdk_style
        assert project.get_property_value("AssemblyName") == "Legacy"
