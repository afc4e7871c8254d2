"""一致性构建流水线测试"""

import json
import zipfile
from pathlib import Path

import pytest

from coherence.core.config import Config
from coherence.core.exceptions import PublishError
from coherence.services import coherence_build as build_mod
from coherence.services.coherence_build import CoherenceBuild


def _nupkg(path: Path, identifier: str, version: str, deps: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    nuspec = (
        f"<package><metadata><id>{identifier}</id><version>{version}</version>"
        f"<dependencies>{deps}</dependencies></metadata></package>"
    )
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(f"{identifier}.nuspec", nuspec)
    return path


def _group(fw: str, dep_id: str, version: str) -> str:
    return f'<group targetFramework="{fw}"><dependency id="{dep_id}" version="{version}"/></group>'


def _config(tmp_path: Path, consistent: bool = True, **kwargs) -> Config:
    drop = tmp_path / "drop"
    _nupkg(drop / "Partner" / "dev" / "5" / "build" / "A.1.0.0.nupkg", "A", "1.0.0")
    wanted = "1.0.0" if consistent else "0.9.0"
    _nupkg(drop / "Product" / "dev" / "2" / "build" / "B.2.0.0.nupkg", "B", "2.0.0",
           _group("netstandard1.3", "A", wanted))
    defaults = dict(
        drop_folder=str(drop),
        output_path=str(tmp_path / "out"),
        retry_delay=0,
        repositories=[{"name": "Partner", "partner": True}, {"name": "Product"}],
    )
    defaults.update(kwargs)
    return Config(**defaults)


class TestCoherenceBuild:
    def test_missing_drop(self, tmp_path: Path) -> None:
        cfg = Config(drop_folder=str(tmp_path / "nope"), output_path=str(tmp_path / "out"))
        assert CoherenceBuild(cfg).execute() == 1

    def test_verification_failure(self, tmp_path: Path) -> None:
        feed = tmp_path / "feed"
        cfg = _config(tmp_path, consistent=False, feed_url=str(feed))
        assert CoherenceBuild(cfg).execute() == 1
        assert not feed.exists()
        assert not (tmp_path / "out" / "packages-sources").exists()

    def test_disabled_check_publishes(self, tmp_path: Path) -> None:
        feed = tmp_path / "feed"
        cfg = _config(tmp_path, consistent=False, feed_url=str(feed), disable_coherence_check=True)
        assert CoherenceBuild(cfg).execute() == 0
        assert (feed / "b" / "2.0.0").is_dir()

    def test_full_pipeline_to_folder_feed(self, tmp_path: Path) -> None:
        feed, share = tmp_path / "feed", tmp_path / "share"
        (share / "Stale" / "0.1.0").mkdir(parents=True)
        (share / "B" / "1.0.0").mkdir(parents=True)
        (share / "B" / "2.0.0").mkdir(parents=True)
        cfg = _config(
            tmp_path,
            feed_url=str(feed),
            ci_volatile_share=str(share),
            expand_packages=True,
        )
        assert CoherenceBuild(cfg).execute() == 0

        out = tmp_path / "out"
        assert (feed / "a" / "1.0.0").is_dir()
        assert (feed / "b" / "2.0.0").is_dir()
        assert (out / "packages-sources").read_text(encoding="utf-8") == "Partner: 5\nProduct: 2"
        report = json.loads((out / "publish-report.json").read_text(encoding="utf-8"))
        assert report["published"] == 2
        assert [r["package"] for r in report["results"]] == ["A 1.0.0", "B 2.0.0"]
        assert (out / "packages-expanded" / "b" / "2.0.0" / "b.nuspec").exists()
        assert not (share / "Stale").exists()
        assert not (share / "B" / "1.0.0").exists()
        assert (share / "B" / "2.0.0").is_dir()

    def test_no_feed_skips_publish(self, tmp_path: Path) -> None:
        cfg = _config(tmp_path)
        assert CoherenceBuild(cfg).execute() == 0
        assert not (tmp_path / "out" / "publish-report.json").exists()

    def test_publish_failure_propagates(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        class FailingFeed:
            def exists(self, package_id: str, version: str) -> bool:
                return False

            def push(self, package_path: str, api_key: str, timeout: float) -> None:
                raise OSError("feed down")

        monkeypatch.setattr(build_mod, "make_feed_client", lambda source: FailingFeed())
        cfg = _config(tmp_path, feed_url="https://feed.example.com/v3/index.json", max_push_attempts=2)
        with pytest.raises(PublishError):
            CoherenceBuild(cfg).execute()
        report = json.loads((tmp_path / "out" / "publish-report.json").read_text(encoding="utf-8"))
        assert report["failed"] == 1
