"""Solution loading: project discovery, classification and dependency resolution."""

from __future__ import annotations

import json
import logging
import os
import re
import xml.etree.ElementTree as ET

from ..errors import ProjectParseError, SolutionError
from ..utils.version import NuGetVersion, VersionRange
from .models import ClassLibrary, Solution, TestProject
from .msbuild import MSBuildProject, load_project

logger = logging.getLogger(__name__)

SOLUTION_FOLDER_TYPE = "2150E333-8FDC-42A3-9474-1A3956D46DE8"

SLN_PROJECT_PATTERN = re.compile(
    r'^Project\("\{(?P<type>[^}]+)\}"\)\s*=\s*"(?P<name>[^"]+)"\s*,\s*"(?P<path>[^"]+)"'
)

TEST_FRAMEWORK_PACKAGES: frozenset[str] = frozenset({"MSTest.TestFramework", "NUnit", "xunit"})

TEST_SDK_PACKAGE = "Microsoft.NET.Test.Sdk"

SOLUTION_EXTENSIONS = (".sln", ".slnx", ".slnf")


def _normalize(path: str) -> str:
    return os.path.normcase(os.path.normpath(path))


def parse_solution_file(path: str) -> list[tuple[str, str]]:
    """Projects of a .sln or .slnx file as (name, absolute path), solution folders excluded.

    Raises:
        SolutionError: If the solution cannot be read
    """
    directory = os.path.dirname(os.path.abspath(path))
    projects: list[tuple[str, str]] = []

    if path.lower().endswith(".slnx"):
        try:
            root = ET.parse(path).getroot()
        except (ET.ParseError, OSError) as e:
            raise SolutionError(f"Invalid solution file {path}: {e}") from e
        for element in root.iter("Project"):
            project_path = element.get("Path")
            if project_path:
                full_path = os.path.normpath(os.path.join(directory, project_path.replace("\\", os.sep)))
                projects.append((os.path.splitext(os.path.basename(full_path))[0], full_path))
        return projects

    try:
        with open(path, encoding="utf-8-sig") as f:
            lines = f.readlines()
    except OSError as e:
        raise SolutionError(f"Cannot read solution file {path}: {e}") from e

    for line in lines:
        match = SLN_PROJECT_PATTERN.match(line.strip())
        if not match or match.group("type").upper() == SOLUTION_FOLDER_TYPE:
            continue
        relative = match.group("path").replace("\\", os.sep)
        projects.append(
            (match.group("name"), os.path.normpath(os.path.join(directory, relative)))
        )
    return projects


def read_solution_filter(path: str) -> tuple[str, list[str]]:
    """Solution path and absolute project paths of a .slnf solution filter.

    Raises:
        SolutionError: If the filter is not valid JSON or lacks a solution path
    """
    try:
        with open(path, encoding="utf-8-sig") as f:
            content = json.load(f)
        solution = content["solution"]
        solution_path = solution["path"]
    except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
        raise SolutionError(f"Invalid solution filter {path}: {e}") from e

    filter_directory = os.path.dirname(os.path.abspath(path))
    solution_path = os.path.normpath(
        os.path.join(filter_directory, solution_path.replace("\\", os.sep))
    )
    solution_directory = os.path.dirname(solution_path)
    projects = [
        os.path.normpath(os.path.join(solution_directory, p.replace("\\", os.sep)))
        for p in solution.get("projects", [])
    ]
    return solution_path, projects


def create_solution(path: str, repository_root: str | None = None) -> Solution:
    """Describe a solution or solution filter without loading its projects.

    Raises:
        SolutionError: If the file does not exist or has an unknown extension
    """
    path = os.path.abspath(path)
    if not os.path.isfile(path):
        raise SolutionError(f"Solution not found: {path}")
    if not path.lower().endswith(SOLUTION_EXTENSIONS):
        raise SolutionError(f"Not a solution file: {path}")

    filter_path = None
    solution_path = path
    if path.lower().endswith(".slnf"):
        filter_path = path
        solution_path, _ = read_solution_filter(path)
        if not os.path.isfile(solution_path):
            raise SolutionError(f"Solution referenced by filter not found: {solution_path}")

    name = os.path.splitext(os.path.basename(path))[0]
    return Solution(
        name=name,
        path=solution_path,
        repository_root=repository_root or os.path.dirname(solution_path),
        filter_path=filter_path,
    )


def is_class_library(project: MSBuildProject) -> bool:
    """Library output that produces a package."""
    output_type = project.get_property_value("OutputType", "Library")
    if output_type.lower() != "library":
        return False
    is_test = project.get_property_value("IsTestProject").lower() == "true" or any(
        i.include.lower() == TEST_SDK_PACKAGE.lower() for i in project.get_items("PackageReference")
    )
    default_packable = "true" if project.is_sdk_style and not is_test else "false"
    return project.get_property_value("IsPackable", default_packable).lower() == "true"


def is_test_project(project: MSBuildProject) -> bool:
    """References one of the supported test frameworks."""
    return any(i.include in TEST_FRAMEWORK_PACKAGES for i in project.get_items("PackageReference"))


def get_explicit_version(project: MSBuildProject) -> NuGetVersion | None:
    """Version the project declares for its package, if it declares one.

    Falls through PackageVersion, Version and a VersionPrefix set in the
    project file itself, mirroring how the SDK defaults chain together.
    """
    package_version = project.get_property("PackageVersion")
    if package_version is not None and package_version.unevaluated != "$(Version)":
        return NuGetVersion.from_string(package_version.value)

    version = project.get_property("Version")
    if version is not None and version.unevaluated != "$(VersionPrefix)":
        return NuGetVersion.from_string(version.value)

    version_prefix = project.get_property("VersionPrefix")
    if version_prefix is not None and not version_prefix.is_imported:
        suffix = project.get_property_value("VersionSuffix")
        text = f"{version_prefix.value}-{suffix}" if suffix else version_prefix.value
        return NuGetVersion.from_string(text)

    return None


def get_central_package_versions(project: MSBuildProject) -> dict[str, VersionRange] | None:
    """Centrally managed package versions, or None if central management is off.

    Raises:
        ValueError: If a PackageVersion item lacks a valid version
    """
    if project.get_property_value("ManagePackageVersionsCentrally").lower() != "true":
        return None

    result: dict[str, VersionRange] = {}
    for item in project.get_items("PackageVersion"):
        version = item.get_metadata("Version")
        if version is None:
            raise ValueError(
                f"Package version is missing. (Project = {project.name}, Package = {item.include})"
            )
        version_range = VersionRange.from_string(version)
        if version_range is None:
            raise ValueError(
                f"Package version '{version}' is invalid. "
                f"(Project = {project.name}, Package = {item.include})"
            )
        result[item.include.lower()] = version_range
    return result


def get_reference_version_range(
    package_id: str,
    version: str | None,
    central_versions: dict[str, VersionRange] | None,
) -> VersionRange:
    """Version range a PackageReference resolves to.

    Raises:
        ValueError: If the reference is inconsistent with central package management
            or its version is missing or invalid
    """
    if central_versions is not None:
        if version is not None:
            raise ValueError(
                "Package version should not be defined on a PackageReference when central "
                f"package management is enabled. (Package = {package_id})"
            )
        result = central_versions.get(package_id.lower())
        if result is None:
            raise ValueError(
                f"Package is missing from central package management. (Package = {package_id})"
            )
        return result

    if version is None:
        raise ValueError(f"Package version is missing. (Package = {package_id})")
    result = VersionRange.from_string(version)
    if result is None:
        raise ValueError(f"Package version '{version}' is invalid. (Package = {package_id})")
    return result


def create_class_library(
    name: str, project: MSBuildProject, repository_root: str
) -> ClassLibrary:
    """Build the ClassLibrary model of an evaluated project."""
    package_id = project.get_property_value("PackageId") or project.get_property_value(
        "AssemblyName", name
    )
    output_path = project.get_property_value("PackageOutputPath") or os.path.join(
        "bin", project.get_property_value("Configuration", "Release")
    )
    output_path = output_path.replace("\\", os.sep)
    if not os.path.isabs(output_path):
        output_path = os.path.join(project.directory, output_path)

    include_symbols = (
        project.get_property_value("IncludeSymbols").lower() == "true"
        and project.get_property_value("SymbolPackageFormat").lower() == "snupkg"
    )

    # Projects with project references cannot be packed on their own
    package_version = None
    if not project.has_item_type("ProjectReference"):
        package_version = get_explicit_version(project)

    return ClassLibrary(
        name=name,
        project_path=project.path,
        package_id=package_id,
        repository_root=repository_root,
        description=project.get_property_value("Description"),
        package_output_path=os.path.normpath(output_path),
        package_version=package_version,
        include_symbols=include_symbols,
    )


class SolutionLoader:
    """Loads the projects of a solution and links them into a dependency graph."""

    def __init__(self, global_properties: dict[str, str] | None = None):
        self._global_properties = global_properties
        self._evaluated: dict[str, MSBuildProject] = {}

    def load_projects(self, solution: Solution, check_dependencies: bool = True) -> None:
        """Parse every project of the solution (or filter) exactly once.

        Raises:
            SolutionError: If the projects were already loaded or no local
                package source is selected
        """
        if solution.is_parsed:
            raise SolutionError("Projects have already been loaded.")
        if solution.local_source is None:
            raise SolutionError("Local package source is required to load projects.")

        entries = parse_solution_file(solution.path)
        if solution.filter_path is not None:
            _, filter_projects = read_solution_filter(solution.filter_path)
            allowed = {_normalize(p) for p in filter_projects}
            entries = [(n, p) for n, p in entries if _normalize(p) in allowed]

        for name, path in entries:
            try:
                project = load_project(path, self._global_properties)
            except ProjectParseError as e:
                logger.warning(f"Skipping invalid project {name}: {e}")
                solution.invalid_projects.append(path)
                continue

            if is_class_library(project):
                self._evaluated[_normalize(path)] = project
                solution.projects.append(
                    create_class_library(name, project, solution.repository_root)
                )
            elif is_test_project(project):
                self._evaluated[_normalize(path)] = project
                solution.test_projects.append(TestProject(name=name, project_path=project.path))

        if check_dependencies:
            for library in solution.projects:
                self.find_dependencies(library, solution)
            for library in solution.projects:
                self.find_dependees(library, solution)
            for test_project in solution.test_projects:
                self.check_test_project(test_project, solution)

        solution.is_parsed = True
        logger.info(
            f"Loaded {solution.name}: {len(solution.projects)} class libraries, "
            f"{len(solution.test_projects)} test projects, "
            f"{len(solution.invalid_projects)} invalid"
        )

    def _project_of(self, project_path: str) -> MSBuildProject:
        return self._evaluated[_normalize(project_path)]

    def find_dependencies(self, library: ClassLibrary, solution: Solution) -> None:
        """Link package references to other class libraries of the solution.

        An unusable reference version leaves ``dependencies`` unset.
        """
        project = self._project_of(library.project_path)
        try:
            central_versions = get_central_package_versions(project)
        except ValueError as e:
            library.add_configuration_diagnostic(str(e))
            library.dependencies = None
            return

        dependencies: set[ClassLibrary] = set()
        by_package_id = {p.package_id.lower(): p for p in solution.projects}
        for reference in project.get_items("PackageReference"):
            dependency = by_package_id.get(reference.include.lower())
            if dependency is None or dependency is library:
                continue
            version = reference.get_metadata("Version")
            if version is None and central_versions is not None:
                central = central_versions.get(reference.include.lower())
                version = central.original if central is not None else None
            if NuGetVersion.from_string(version) is None:
                library.add_configuration_diagnostic(
                    f"Package version '{version or ''}' of {reference.include} is invalid."
                )
                library.dependencies = None
                return
            dependencies.add(dependency)
        library.dependencies = dependencies

    @staticmethod
    def find_dependees(library: ClassLibrary, solution: Solution) -> None:
        library.dependees = {
            p
            for p in solution.projects
            if p.dependencies is not None and library in p.dependencies
        }

    def check_test_project(self, test_project: TestProject, solution: Solution) -> None:
        """Attach a test project to the libraries it tests, or flag it misconfigured."""
        project = self._project_of(test_project.project_path)
        central_error: str | None = None
        central_versions = None
        try:
            central_versions = get_central_package_versions(project)
        except ValueError as e:
            central_error = str(e)

        by_package_id = {p.package_id.lower(): p for p in solution.projects}
        for reference in project.get_items("PackageReference"):
            library = by_package_id.get(reference.include.lower())
            if library is None:
                continue

            if central_error is not None:
                self._flag_misconfigured(library, test_project, central_error)
                continue

            try:
                version_range = get_reference_version_range(
                    reference.include, reference.get_metadata("Version"), central_versions
                )
            except ValueError as e:
                self._flag_misconfigured(library, test_project, str(e))
                continue

            test_project.package_references[library.package_id] = version_range
            if library.package_version is not None and not version_range.satisfies(
                library.package_version
            ):
                self._flag_misconfigured(
                    library,
                    test_project,
                    f'Test project "{test_project.name}" depends on version "{version_range}".',
                )
            else:
                library.test_projects.add(test_project)

    @staticmethod
    def _flag_misconfigured(library: ClassLibrary, test_project: TestProject, message: str) -> None:
        test_project.reference_errors[library.package_id] = message
        library.add_configuration_diagnostic(message)
        library.misconfigured_test_projects.add(test_project)
