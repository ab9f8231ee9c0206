"""Lightweight MSBuild project reader.

Reads properties and items from a project file and the files MSBuild
imports implicitly around it, without running the MSBuild engine:

    Directory.Build.props ──▶ Directory.Packages.props ──▶ <project> (+ explicit <Import>s)

Supported evaluation: ``$(Property)`` expansion, simple conditions
(``'a' == 'b'``, ``!=``, ``and``/``or``, ``Exists(...)``), item
``Include``/``Update``/``Remove`` and metadata as attributes or elements.
"""

from __future__ import annotations

import logging
import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

from ..errors import ProjectParseError

logger = logging.getLogger(__name__)

PROPERTY_REFERENCE = re.compile(r"\$\((?P<name>[A-Za-z_][\w.-]*)\)")

SIMPLE_CONDITION = re.compile(r"^\s*'(?P<left>[^']*)'\s*(?P<op>==|!=)\s*'(?P<right>[^']*)'\s*$")

EXISTS_CONDITION = re.compile(r"^\s*(?P<negate>!)?\s*Exists\(\s*'(?P<path>[^']*)'\s*\)\s*$", re.IGNORECASE)

GET_PATH_OF_FILE_ABOVE = re.compile(r"GetPathOfFileAbove\(\s*'?(?P<file>[^',)]+)'?", re.IGNORECASE)

DIRECTORY_BUILD_PROPS = "Directory.Build.props"
DIRECTORY_PACKAGES_PROPS = "Directory.Packages.props"

DEFAULT_GLOBAL_PROPERTIES: dict[str, str] = {
    "Configuration": "Release",
    "IsPublishBuild": "true",
}

_ITEM_ATTRIBUTES = frozenset({"include", "update", "remove", "exclude", "condition"})


def _local_name(tag: str) -> str:
    """Tag without its XML namespace (legacy projects use the 2003 namespace)."""
    return tag.rsplit("}", 1)[-1]


def find_file_above(start_directory: str, file_name: str) -> str | None:
    """Nearest ``file_name`` in ``start_directory`` or one of its ancestors."""
    current = os.path.abspath(start_directory)
    while True:
        candidate = os.path.join(current, file_name)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


@dataclass
class ProjectProperty:
    """Evaluated property and where its final value came from."""

    name: str
    value: str
    unevaluated: str
    is_imported: bool


@dataclass
class ProjectItem:
    """Evaluated item, e.g. a PackageReference."""

    item_type: str
    include: str
    metadata: dict[str, str] = field(default_factory=dict)

    def get_metadata(self, name: str) -> str | None:
        return self.metadata.get(name.lower())


class MSBuildProject:
    """Properties and items of one evaluated project."""

    def __init__(self, path: str, global_properties: dict[str, str] | None = None):
        self.path = os.path.abspath(path)
        self.is_sdk_style = False
        self.imports: list[str] = []
        self._properties: dict[str, ProjectProperty] = {}
        self._items: list[ProjectItem] = []
        self._global: set[str] = set()

        for name, value in {**DEFAULT_GLOBAL_PROPERTIES, **(global_properties or {})}.items():
            self._set(name, value, value, is_imported=True)
            self._global.add(name.lower())

        name = os.path.splitext(os.path.basename(self.path))[0]
        for reserved, value in (
            ("MSBuildProjectName", name),
            ("MSBuildProjectFile", os.path.basename(self.path)),
            ("MSBuildProjectFullPath", self.path),
            ("MSBuildProjectDirectory", os.path.dirname(self.path)),
        ):
            self._set(reserved, value, value, is_imported=True)

    @property
    def name(self) -> str:
        return self.get_property_value("MSBuildProjectName")

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    def _set(self, name: str, value: str, unevaluated: str, is_imported: bool) -> None:
        self._properties[name.lower()] = ProjectProperty(name, value, unevaluated, is_imported)

    def get_property(self, name: str) -> ProjectProperty | None:
        return self._properties.get(name.lower())

    def get_property_value(self, name: str, default: str = "") -> str:
        prop = self._properties.get(name.lower())
        return prop.value if prop is not None else default

    def get_items(self, item_type: str) -> list[ProjectItem]:
        lowered = item_type.lower()
        return [i for i in self._items if i.item_type.lower() == lowered]

    def has_item_type(self, item_type: str) -> bool:
        return bool(self.get_items(item_type))

    def expand(self, text: str) -> str:
        """Replace ``$(Name)`` references with current property values."""
        return PROPERTY_REFERENCE.sub(lambda m: self.get_property_value(m.group("name")), text)

    def evaluate_condition(self, condition: str | None) -> bool:
        """Evaluate a simple MSBuild condition; unsupported syntax counts as true."""
        if condition is None or not condition.strip():
            return True
        for alternative in re.split(r"\s+or\s+", condition, flags=re.IGNORECASE):
            parts = re.split(r"\s+and\s+", alternative, flags=re.IGNORECASE)
            if all(self._evaluate_simple_condition(p) for p in parts):
                return True
        return False

    def _evaluate_simple_condition(self, condition: str) -> bool:
        stripped = condition.strip()
        while stripped.startswith("(") and stripped.endswith(")"):
            stripped = stripped[1:-1].strip()
        match = SIMPLE_CONDITION.match(stripped)
        if match:
            left = self.expand(match.group("left")).strip().lower()
            right = self.expand(match.group("right")).strip().lower()
            return (left == right) if match.group("op") == "==" else (left != right)
        match = EXISTS_CONDITION.match(stripped)
        if match:
            path = self.expand(match.group("path"))
            if not os.path.isabs(path):
                path = os.path.join(self.directory, path)
            exists = os.path.exists(path)
            return not exists if match.group("negate") else exists
        logger.debug(f"Unsupported condition treated as true: {condition}")
        return True

    def load_file(self, file_path: str, is_imported: bool) -> None:
        """Evaluate one project or props file into this project.

        Raises:
            ProjectParseError: If the file is missing or not valid XML
        """
        try:
            root = ET.parse(file_path).getroot()
        except (ET.ParseError, OSError) as e:
            raise ProjectParseError(file_path, f"Invalid project file: {e}") from e
        if _local_name(root.tag) != "Project":
            raise ProjectParseError(file_path, "Root element is not <Project>")

        if not is_imported and (root.get("Sdk") or root.find("Sdk") is not None):
            self.is_sdk_style = True

        this_directory = os.path.dirname(os.path.abspath(file_path))
        previous_this_dir = self.get_property("MSBuildThisFileDirectory")
        self._set(
            "MSBuildThisFileDirectory",
            this_directory + os.sep,
            this_directory + os.sep,
            is_imported=True,
        )
        self.imports.append(os.path.abspath(file_path))

        for element in root:
            tag = _local_name(element.tag)
            if not self.evaluate_condition(element.get("Condition")):
                continue
            if tag == "PropertyGroup":
                self._read_property_group(element, is_imported)
            elif tag == "ItemGroup":
                self._read_item_group(element)
            elif tag == "Import":
                self._read_import(element, this_directory)
            elif tag == "Sdk":
                self.is_sdk_style = True

        if previous_this_dir is not None:
            self._properties["msbuildthisfiledirectory"] = previous_this_dir

    def _read_property_group(self, group: ET.Element, is_imported: bool) -> None:
        for element in group:
            name = _local_name(element.tag)
            if name.lower() in self._global:
                continue
            if not self.evaluate_condition(element.get("Condition")):
                continue
            unevaluated = (element.text or "").strip()
            self._set(name, self.expand(unevaluated), unevaluated, is_imported)

    def _read_item_group(self, group: ET.Element) -> None:
        for element in group:
            item_type = _local_name(element.tag)
            if not self.evaluate_condition(element.get("Condition")):
                continue

            metadata: dict[str, str] = {}
            for attribute, value in element.attrib.items():
                if attribute.lower() not in _ITEM_ATTRIBUTES:
                    metadata[attribute.lower()] = self.expand(value)
            for child in element:
                if self.evaluate_condition(child.get("Condition")):
                    metadata[_local_name(child.tag).lower()] = self.expand((child.text or "").strip())

            include = element.get("Include")
            update = element.get("Update")
            remove = element.get("Remove")
            if include:
                for value in self.expand(include).split(";"):
                    if value.strip():
                        self._items.append(ProjectItem(item_type, value.strip(), dict(metadata)))
            elif update:
                targets = {v.strip().lower() for v in self.expand(update).split(";")}
                for item in self._items:
                    if item.item_type == item_type and item.include.lower() in targets:
                        item.metadata.update(metadata)
            elif remove:
                targets = {v.strip().lower() for v in self.expand(remove).split(";")}
                self._items = [
                    i
                    for i in self._items
                    if not (i.item_type == item_type and i.include.lower() in targets)
                ]

    def _read_import(self, element: ET.Element, this_directory: str) -> None:
        project = element.get("Project") or ""
        above = GET_PATH_OF_FILE_ABOVE.search(project)
        if above:
            # $([MSBuild]::GetPathOfFileAbove('X', '$(MSBuildThisFileDirectory)../'))
            path = find_file_above(os.path.dirname(this_directory), above.group("file").strip())
        elif "$([" in project:
            logger.debug(f"Skipping import with property function: {project}")
            return
        else:
            expanded = self.expand(project)
            path = expanded if os.path.isabs(expanded) else os.path.join(this_directory, expanded)
        if path is None or not os.path.isfile(path):
            logger.debug(f"Import not found: {project}")
            return
        path = os.path.abspath(path)
        if path in self.imports:
            return
        self.load_file(path, is_imported=True)


def load_project(path: str, global_properties: dict[str, str] | None = None) -> MSBuildProject:
    """Evaluate a project file together with its implicit imports.

    Raises:
        ProjectParseError: If the project or one of its props files is invalid
    """
    if not os.path.isfile(path):
        raise ProjectParseError(path, "Project file not found")

    project = MSBuildProject(path, global_properties)
    directory = os.path.dirname(project.path)

    build_props = find_file_above(directory, DIRECTORY_BUILD_PROPS)
    if build_props is not None:
        project.load_file(build_props, is_imported=True)

    packages_props = find_file_above(directory, DIRECTORY_PACKAGES_PROPS)
    if packages_props is not None:
        project.load_file(packages_props, is_imported=True)

    project.load_file(project.path, is_imported=False)
    logger.debug(f"Evaluated {project.name} ({len(project.imports)} files)")
    return project
