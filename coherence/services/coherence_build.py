"""一致性构建流水线

  1. 收集各仓库最新构建的包，生成只读全集
  2. 依赖一致性校验（失败则返回 1，不发布）
  3. 记录所用构建号 (packages-sources)
  4. 按依赖顺序推送到包源（配置了 feed_url 时）
  5. 展开包目录 (expand_packages)
  6. 清理 CI volatile 共享目录（配置了 ci_volatile_share 时）

推送失败以 PublishError 向上抛出，部分报告写入 publish-report.json。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from coherence.core.collector import PackageCollector, RepositoryInfo, write_packages_sources
from coherence.core.config import Config
from coherence.core.exceptions import PublishError
from coherence.core.models import PublishReport
from coherence.core.ordering import PublishOrderCalculator
from coherence.core.universe import PackageUniverse
from coherence.core.verifier import DependencyGraphVerifier
from coherence.services.feed.client import expand_packages, make_feed_client
from coherence.services.feed.publisher import FeedPublisher, PublishOptions
from coherence.services.volatile_feed import cleanup_volatile_feed

logger = logging.getLogger(__name__)

SUCCESS_EXIT_CODE = 0
FAILURE_EXIT_CODE = 1


class CoherenceBuild:
    """流水线入口，execute() 返回进程退出码"""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.output_path = Path(config.output_path)
        self.repos: list[RepositoryInfo] = config.repository_infos()

    @property
    def build_output(self) -> Path:
        return self.output_path / "build"

    def collect(self) -> PackageUniverse:
        collector = PackageCollector(
            self.config.drop_folder,
            self.config.build_branch,
            str(self.output_path),
            max_workers=self.config.collect_workers,
            lineup_packages=self.config.lineup_packages,
        )
        return collector.collect(self.repos)

    def verify(self, universe: PackageUniverse) -> bool:
        verifier = DependencyGraphVerifier(
            universe,
            self.config.verify_policy(),
            max_workers=self.config.verify_workers,
        )
        return verifier.verify_all()

    def publish(self, universe: PackageUniverse) -> PublishReport:
        client = make_feed_client(self.config.feed_url)
        options = PublishOptions(
            max_parallel=self.config.max_parallel_pushes,
            retry_policy=self.config.push_retry_policy(),
            push_timeout=self.config.push_timeout,
        )
        publisher = FeedPublisher(client, self.config.api_key, options, PublishOrderCalculator())
        logger.info("发布到包源: %s", self.config.feed_url)
        try:
            report = publisher.publish(universe.records)
        except PublishError as e:
            if isinstance(e.report, PublishReport):
                self._write_report(e.report)
            raise
        self._write_report(report)
        return report

    def _write_report(self, report: PublishReport) -> Path:
        path = self.output_path / "publish-report.json"
        path.write_text(
            json.dumps(report.to_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        return path

    def execute(self) -> int:
        drop = Path(self.config.drop_folder)
        if not drop.is_dir():
            logger.error("drop 共享目录不存在: %s", drop)
            return FAILURE_EXIT_CODE

        logger.info("构建输出目录: %s", self.build_output)
        self.output_path.mkdir(parents=True, exist_ok=True)

        universe = self.collect()
        if not self.verify(universe):
            return FAILURE_EXIT_CODE

        write_packages_sources(self.output_path, self.repos)

        if self.config.feed_url:
            self.publish(universe)
        else:
            logger.info("未配置包源，跳过发布")

        if self.config.expand_packages:
            expand_packages(universe.records, self.output_path / "packages-expanded")

        if self.config.ci_volatile_share:
            cleanup_volatile_feed(self.build_output, self.config.ci_volatile_share)

        return SUCCESS_EXIT_CODE
