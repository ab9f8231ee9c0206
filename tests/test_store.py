"""Tests for the persisted package source selection."""

import json

from nugetpush_mcp.feeds.store import PackageSourceStore, SolutionPackageSources


class TestPackageSourceStore:
    """Tests for PackageSourceStore."""

    def test_missing_file(self, tmp_path):
        """Test a missing store has no entries."""
        store = PackageSourceStore(tmp_path / "packagesources.json")
        assert store.load() == []
        assert store.get("/repo/App.sln") is None

    def test_save_and_get(self, tmp_path):
        """Test an entry is stored with the PascalCase keys."""
        path = tmp_path / "config" / "packagesources.json"
        store = PackageSourceStore(path)

        store.save(
            SolutionPackageSources(
                solution_path="/repo/App.sln",
                local_package_source="/feeds/local",
                remote_package_source="",
            )
        )

        data = json.loads(path.read_text())
        assert data == [
            {
                "SolutionPath": "/repo/App.sln",
                "LocalPackageSource": "/feeds/local",
                "RemotePackageSource": "",
            }
        ]
        entry = store.get("/repo/./App.sln")
        assert entry.local_package_source == "/feeds/local"
        assert entry.remote_package_source == ""

    def test_save_replaces_entry(self, tmp_path):
        """Test saving the same solution twice keeps one entry."""
        store = PackageSourceStore(tmp_path / "packagesources.json")
        store.save(SolutionPackageSources(solution_path="/repo/A.sln", local_package_source="/a"))
        store.save(SolutionPackageSources(solution_path="/repo/B.sln", local_package_source="/b"))
        store.save(SolutionPackageSources(solution_path="/repo/A.sln", local_package_source="/c"))

        entries = store.load()

        assert len(entries) == 2
        assert store.get("/repo/A.sln").local_package_source == "/c"

    def test_reads_pascal_case_file(self, tmp_path):
        """Test files written by other tools are read."""
        path = tmp_path / "packagesources.json"
        path.write_text(
            json.dumps([{"SolutionPath": "C:/src/App.sln", "LocalPackageSource": "C:/feed"}])
        )

        entry = PackageSourceStore(path).get("C:/src/App.sln")

        assert entry.local_package_source == "C:/feed"
        assert entry.remote_package_source is None

    def test_invalid_file_ignored(self, tmp_path):
        """Test a corrupt store is treated as empty."""
        path = tmp_path / "packagesources.json"
        path.write_text("{not json")
        assert PackageSourceStore(path).load() == []
