"""构建产物收集器测试"""

import zipfile
from pathlib import Path

import pytest

from coherence.core.collector import (
    PackageCollector,
    RepositoryInfo,
    find_latest_build,
    write_packages_sources,
)
from coherence.core.exceptions import ConfigError, DuplicatePackageError
from coherence.core.retry import RetryPolicy, fixed_delay

NO_RETRY = RetryPolicy(max_attempts=1, delay=fixed_delay(0))


def _nupkg(path: Path, identifier: str, version: str = "1.0.0") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    nuspec = (
        f"<package><metadata><id>{identifier}</id><version>{version}</version>"
        "</metadata></package>"
    )
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(f"{identifier}.nuspec", nuspec)
    return path


def _drop(tmp_path: Path) -> Path:
    """drop/<repo>/dev/<build>/build/*.nupkg"""
    drop = tmp_path / "drop"
    _nupkg(drop / "CoreCLR" / "dev" / "7" / "build" / "System.Runtime.4.0.0.nupkg", "System.Runtime", "4.0.0")
    _nupkg(drop / "CoreCLR" / "dev" / "12" / "build" / "System.Runtime.4.0.1.nupkg", "System.Runtime", "4.0.1")
    build = drop / "Mvc" / "dev" / "3" / "build"
    _nupkg(build / "Mvc.Core.1.0.0.nupkg", "Mvc.Core")
    _nupkg(build / "sub" / "Mvc.Razor.1.0.0.nupkg", "Mvc.Razor")
    _nupkg(build / "Mvc.Core.1.0.0.symbols.nupkg", "Mvc.Core")
    _nupkg(build / "MusicStore.1.0.0.nupkg", "MusicStore")
    return drop


class TestFindLatestBuild:
    def test_highest_number(self, tmp_path: Path) -> None:
        for name in ("3", "12", "9"):
            (tmp_path / name).mkdir()
        assert find_latest_build(tmp_path) == "12"

    def test_non_numeric_lowest(self, tmp_path: Path) -> None:
        (tmp_path / "latest").mkdir()
        (tmp_path / "1").mkdir()
        assert find_latest_build(tmp_path) == "1"

    def test_only_non_numeric(self, tmp_path: Path) -> None:
        (tmp_path / "latest").mkdir()
        assert find_latest_build(tmp_path) == "latest"

    def test_files_ignored(self, tmp_path: Path) -> None:
        (tmp_path / "99").write_text("", encoding="utf-8")
        assert find_latest_build(tmp_path) is None

    def test_missing_dir(self, tmp_path: Path) -> None:
        assert find_latest_build(tmp_path / "missing") is None


class TestRepositoryInfo:
    def test_from_dict(self) -> None:
        repo = RepositoryInfo.from_dict({
            "name": "CoreCLR",
            "partner": True,
            "build_number": 12,
            "packages_to_skip": ["Foo.Bar"],
            "file_dependencies": [{"path": "netcoresdk", "kind": "folder", "optional": True}],
        })
        assert repo.partner
        assert repo.build_number == "12"
        assert repo.packages_to_skip == frozenset({"foo.bar"})
        assert repo.file_dependencies[0].kind == "folder"

    def test_missing_name(self) -> None:
        with pytest.raises(ConfigError, match="缺少 name"):
            RepositoryInfo.from_dict({"partner": True})


class TestPackageCollector:
    def test_collect(self, tmp_path: Path) -> None:
        drop, out = _drop(tmp_path), tmp_path / "out"
        repos = [
            RepositoryInfo("CoreCLR", partner=True),
            RepositoryInfo("Mvc", packages_to_skip=frozenset({"musicstore"})),
        ]
        collector = PackageCollector(str(drop), "dev", str(out), max_workers=2, retry_policy=NO_RETRY)
        universe = collector.collect(repos)

        assert sorted(universe) == ["mvc.core", "mvc.razor", "system.runtime"]
        runtime = universe["System.Runtime"]
        assert str(runtime.version) == "4.0.1"
        assert runtime.is_partner_package
        assert runtime.source_repo == "CoreCLR"
        assert repos[0].build_number == "12"

        core = universe["Mvc.Core"]
        assert not core.is_partner_package
        assert core.package_path == str(out / "build" / "Mvc.Core.1.0.0.nupkg")
        assert core.symbols_path.endswith("Mvc.Core.1.0.0.symbols.nupkg")
        assert (out / "build" / "Mvc.Razor.1.0.0.nupkg").exists()
        assert (out / "symbols" / "Mvc.Core.1.0.0.symbols.nupkg").exists()
        assert not (out / "build" / "MusicStore.1.0.0.nupkg").exists()

    def test_pinned_build_number(self, tmp_path: Path) -> None:
        drop = _drop(tmp_path)
        collector = PackageCollector(str(drop), "dev", retry_policy=NO_RETRY)
        universe = collector.collect([RepositoryInfo("CoreCLR", build_number="7")])
        assert str(universe["System.Runtime"].version) == "4.0.0"

    def test_lineup_packages(self, tmp_path: Path) -> None:
        drop = _drop(tmp_path)
        collector = PackageCollector(
            str(drop), "dev", retry_policy=NO_RETRY, lineup_packages=["mvc.razor"],
        )
        universe = collector.collect([RepositoryInfo("Mvc")])
        assert universe["Mvc.Razor"].is_lineup_package
        assert not universe["Mvc.Core"].is_lineup_package

    def test_without_output_keeps_source_path(self, tmp_path: Path) -> None:
        drop = _drop(tmp_path)
        collector = PackageCollector(str(drop), "dev", max_workers=1, retry_policy=NO_RETRY)
        universe = collector.collect([RepositoryInfo("Mvc")])
        assert universe["Mvc.Core"].package_path.startswith(str(drop))

    def test_missing_repo(self, tmp_path: Path) -> None:
        collector = PackageCollector(str(tmp_path), "dev", retry_policy=NO_RETRY)
        with pytest.raises(FileNotFoundError, match="最新构建"):
            collector.collect([RepositoryInfo("Nope")])

    def test_missing_build_dir_retried(self, tmp_path: Path) -> None:
        (tmp_path / "Repo" / "dev" / "1").mkdir(parents=True)
        policy = RetryPolicy(max_attempts=2, delay=fixed_delay(0), retry_on=(OSError,))
        collector = PackageCollector(str(tmp_path), "dev", retry_policy=policy)
        with pytest.raises(FileNotFoundError, match="构建目录"):
            collector.collect([RepositoryInfo("Repo")])

    def test_duplicate_across_repos(self, tmp_path: Path) -> None:
        drop = tmp_path / "drop"
        _nupkg(drop / "A" / "dev" / "1" / "build" / "Shared.1.0.0.nupkg", "Shared")
        _nupkg(drop / "B" / "dev" / "1" / "build" / "Shared.2.0.0.nupkg", "Shared", "2.0.0")
        collector = PackageCollector(str(drop), "dev", retry_policy=NO_RETRY)
        with pytest.raises(DuplicatePackageError):
            collector.collect([RepositoryInfo("A"), RepositoryInfo("B")])

    def test_file_dependencies_copied(self, tmp_path: Path) -> None:
        drop, out = _drop(tmp_path), tmp_path / "out"
        (drop / "Mvc" / "dev" / "3" / "commits").write_text("sha", encoding="utf-8")
        repo = RepositoryInfo.from_dict({
            "name": "Mvc",
            "file_dependencies": [{"path": "commits", "destination": "commits-mvc"}],
        })
        PackageCollector(str(drop), "dev", str(out), retry_policy=NO_RETRY).collect([repo])
        assert (out / "commits-mvc").read_text(encoding="utf-8") == "sha"


class TestWritePackagesSources:
    def test_write(self, tmp_path: Path) -> None:
        repos = [RepositoryInfo("CoreCLR", build_number="12"), RepositoryInfo("Mvc", build_number="3")]
        path = write_packages_sources(tmp_path, repos)
        assert path.read_text(encoding="utf-8") == "CoreCLR: 12\nMvc: 3"
