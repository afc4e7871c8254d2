"""构建产物收集器

从 drop 共享目录收集各仓库最新一次构建的包:

    <drop>/<repo>/<branch>/<build_number>/<build_dir>/*.nupkg

- 未指定 build_number 时取数字最大的构建目录
- 拷贝附加文件依赖、包和符号包到输出目录
- 各仓库内并行读取包归档，每个 worker 返回局部列表，最后在调用线程合并为只读全集
"""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from coherence.core.exceptions import ConfigError, PackageReadError
from coherence.core.file_deps import FileSystemDependency
from coherence.core.models import PackageRecord
from coherence.core.nupkg import SYMBOLS_SUFFIX, is_symbols_package, read_package
from coherence.core.retry import RetryPolicy, retry_call
from coherence.core.universe import PackageUniverse

logger = logging.getLogger(__name__)


@dataclass
class RepositoryInfo:
    """参与本次发布的仓库"""

    name: str
    build_number: str = ""
    build_dir: str = "build"
    destination_dir: str = "build"
    partner: bool = False
    lineup: bool = False
    coherence: bool = False
    packages_to_skip: frozenset[str] = frozenset()
    file_dependencies: list[FileSystemDependency] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositoryInfo:
        if not data.get("name"):
            raise ConfigError("仓库配置缺少 name")
        return cls(
            name=data["name"],
            build_number=str(data.get("build_number", "") or ""),
            build_dir=data.get("build_dir", "build"),
            destination_dir=data.get("destination_dir", "build"),
            partner=bool(data.get("partner", False)),
            lineup=bool(data.get("lineup", False)),
            coherence=bool(data.get("coherence", False)),
            packages_to_skip=frozenset(
                p.casefold() for p in data.get("packages_to_skip", []) or []
            ),
            file_dependencies=[
                FileSystemDependency.from_dict(d)
                for d in data.get("file_dependencies", []) or []
            ],
        )


def find_latest_build(repo_dir: str | Path) -> str | None:
    """返回数字最大的构建目录名，目录不存在或为空返回 None

    非数字目录名排在最后，只有在没有数字目录时才会被选中。
    """
    base = Path(repo_dir)
    if not base.is_dir():
        return None

    def _build_number(d: Path) -> int:
        try:
            return int(d.name)
        except ValueError:
            return -(2**31)

    dirs = [d for d in base.iterdir() if d.is_dir()]
    if not dirs:
        return None
    return max(dirs, key=_build_number).name


def write_packages_sources(output_path: str | Path, repos: list[RepositoryInfo]) -> Path:
    """记录本次使用的各仓库构建号"""
    path = Path(output_path) / "packages-sources"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "\n".join(f"{r.name}: {r.build_number}" for r in repos),
        encoding="utf-8",
    )
    return path


class PackageCollector:
    """收集各仓库构建出的包，生成包全集"""

    def __init__(
        self,
        drop_folder: str,
        build_branch: str,
        output_path: str = "",
        *,
        max_workers: int = 8,
        retry_policy: RetryPolicy | None = None,
        lineup_packages: list[str] | None = None,
    ) -> None:
        self.drop_folder = Path(drop_folder)
        self.build_branch = build_branch
        self.output_path = Path(output_path) if output_path else None
        self.max_workers = max(1, max_workers)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=10, retry_on=(OSError, PackageReadError),
        )
        self.lineup_packages = frozenset(p.casefold() for p in lineup_packages or [])

    def repo_build_root(self, repo: RepositoryInfo) -> Path:
        """解析仓库构建根目录，必要时回填最新构建号"""
        branch_dir = self.drop_folder / repo.name / self.build_branch
        if not repo.build_number:
            latest = find_latest_build(branch_dir)
            if latest is None:
                raise FileNotFoundError(f"找不到仓库 {repo.name} 的最新构建: {branch_dir}")
            repo.build_number = latest
        root = branch_dir / repo.build_number
        if not root.is_dir():
            raise FileNotFoundError(f"构建目录不存在: {root}")
        return root

    def collect(self, repos: list[RepositoryInfo]) -> PackageUniverse:
        """收集全部仓库，返回只读全集（重复包标识直接报错）"""
        batches: list[list[PackageRecord]] = []
        for repo in repos:
            root = self.repo_build_root(repo)
            logger.info("使用构建: %s -> %s", repo.name, root)
            outcome = retry_call(
                lambda: self._process_repo(repo, root),
                policy=self.retry_policy,
                label=f"收集仓库 {repo.name}",
            )
            batches.append(outcome.unwrap())

        universe = PackageUniverse.merge(batches)
        logger.info("已收集 %d 个包 (%d 个仓库)", len(universe), len(repos))
        return universe

    def _process_repo(self, repo: RepositoryInfo, root: Path) -> list[PackageRecord]:
        if self.output_path is not None:
            for dep in repo.file_dependencies:
                dep.copy(root, self.output_path)

        build_dir = root / repo.build_dir
        if not build_dir.is_dir():
            raise FileNotFoundError(f"找不到仓库 {repo.name} 的构建目录: {build_dir}")

        files = sorted(build_dir.rglob("*.nupkg"))
        symbols = [f for f in files if is_symbols_package(f)]
        packages = [f for f in files if not is_symbols_package(f)]

        if self.output_path is not None:
            symbols_dir = self.output_path / "symbols"
            symbols_dir.mkdir(parents=True, exist_ok=True)
            for s in symbols:
                shutil.copy2(s, symbols_dir / s.name)

        if self.max_workers == 1 or len(packages) <= 1:
            results = [self._read_one(repo, p) for p in packages]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(lambda p: self._read_one(repo, p), packages))

        records = [r for r in results if r is not None]
        logger.info("仓库 %s: %d 个包, %d 个符号包", repo.name, len(records), len(symbols))
        return records

    def _read_one(self, repo: RepositoryInfo, path: Path) -> PackageRecord | None:
        logger.info("读取包: %s", path)
        record = read_package(path)
        if record.key in repo.packages_to_skip:
            logger.info("跳过包: %s", path)
            return None

        record.is_partner_package = repo.partner
        record.is_coherence_package = repo.coherence
        record.is_lineup_package = repo.lineup or record.key in self.lineup_packages
        record.source_repo = repo.name

        symbols = path.with_name(path.name[: -len(".nupkg")] + SYMBOLS_SUFFIX)
        if symbols.exists():
            record.symbols_path = str(symbols)

        if self.output_path is not None:
            target_dir = self.output_path / repo.destination_dir
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / path.name
            shutil.copy2(path, target)
            record.package_path = str(target)
        return record
