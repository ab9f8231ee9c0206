"""Persisted package source selection per solution (``packagesources.json``)."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class SolutionPackageSources(BaseModel):
    """Sources chosen for one solution.

    ``remote_package_source`` is None when never chosen and an empty
    string when the user chose to work offline.
    """

    model_config = ConfigDict(populate_by_name=True)

    solution_path: str = Field(alias="SolutionPath")
    local_package_source: str | None = Field(default=None, alias="LocalPackageSource")
    remote_package_source: str | None = Field(default=None, alias="RemotePackageSource")


_ENTRIES = TypeAdapter(list[SolutionPackageSources])


def _same_path(a: str, b: str) -> bool:
    return os.path.normcase(os.path.normpath(a)) == os.path.normcase(os.path.normpath(b))


class PackageSourceStore:
    """JSON sidecar remembering which local/remote sources a solution uses."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[SolutionPackageSources]:
        """All stored entries; a missing or unreadable file yields none."""
        if not self._path.is_file():
            return []
        try:
            return _ENTRIES.validate_json(self._path.read_bytes())
        except (ValidationError, OSError) as e:
            logger.warning(f"Ignoring invalid package source store {self._path}: {e}")
            return []

    def get(self, solution_path: str) -> SolutionPackageSources | None:
        for entry in self.load():
            if _same_path(entry.solution_path, solution_path):
                return entry
        return None

    def save(self, selection: SolutionPackageSources) -> None:
        """Insert or replace the entry of ``selection.solution_path``."""
        entries = [e for e in self.load() if not _same_path(e.solution_path, selection.solution_path)]
        entries.append(selection)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(_ENTRIES.dump_json(entries, by_alias=True, indent=2))
        logger.debug(f"Saved package sources of {selection.solution_path}")
