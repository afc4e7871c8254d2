"""依赖一致性校验器

遍历每个包声明的依赖，与全集中实际构建出的版本逐一比对:
  - 依赖不在全集中 → 外部依赖，忽略
  - 依赖在全集中 → 记录产品依赖边（供发布排序使用）
  - 版本要求的下限必须与实际版本完全相等，否则记为不匹配（即使实际版本更高）

校验失败只体现在 verify_all() 的返回值和 ERROR 日志上；
单个包元数据损坏则抛 DataIntegrityError 中止整个校验。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from coherence.core.exceptions import DataIntegrityError
from coherence.core.models import (
    DependencyGroup,
    DependencyIssue,
    PackageRecord,
    VerifyBehavior,
    VerifyPolicy,
)
from coherence.core.universe import PackageUniverse

logger = logging.getLogger(__name__)


class DependencyGraphVerifier:
    """基于包全集的依赖一致性校验

    max_workers > 1 时并行访问各个包：每次访问只写当前包自己的记录，
    只读冻结后的全集，无共享可变状态。
    """

    def __init__(
        self,
        packages: PackageUniverse | Iterable[PackageRecord],
        policy: VerifyPolicy | None = None,
        max_workers: int = 1,
    ) -> None:
        if not isinstance(packages, PackageUniverse):
            packages = PackageUniverse(packages)
        self.universe = packages
        self.policy = policy or VerifyPolicy()
        self.max_workers = max(1, max_workers)

    def verify_all(self) -> bool:
        """校验全部包，全部通过返回 True"""
        if self.policy.behavior == VerifyBehavior.NONE:
            logger.info("一致性校验已禁用")
            return True

        records = self.universe.records
        self._visit_all(records)

        success = True
        for record in records:
            if record.success:
                continue
            success = False
            self._report(record)

        if success:
            logger.info("一致性校验通过: %d 个包", len(records))
        else:
            failed = sum(1 for r in records if not r.success)
            logger.error("一致性校验失败: %d/%d 个包存在问题", failed, len(records))
        return success

    def _visit_all(self, records: list[PackageRecord]) -> None:
        if self.max_workers == 1 or len(records) <= 1:
            for record in records:
                self.visit(record)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.visit, r) for r in records]
            for future in futures:
                # 任一包出错即向上抛出，with 块退出时等待其余任务结束
                future.result()

    def visit(self, record: PackageRecord) -> None:
        """校验单个包，结果写回该包记录"""
        if not self.policy.selects(record):
            logger.info("跳过校验 (不在校验范围): %s", record)
            return
        if self.policy.skips(record):
            logger.info("跳过校验 (例外清单): %s", record)
            return

        logger.info("校验包: %s", record)
        record.reset_results()
        try:
            for group in record.dependency_groups:
                self._visit_group(record, group)
        except Exception as exc:
            logger.error("无法校验包 %s: %s", record, exc)
            raise DataIntegrityError(
                f"无法校验包 {record}: {exc}", package=record.identifier,
            ) from exc

    def _visit_group(self, record: PackageRecord, group: DependencyGroup) -> None:
        framework = group.target_framework
        # 不区分框架的分组直接接受；PCL 框架不参与一致性约束
        if framework is None or framework.is_pcl:
            return

        for dependency in group.packages:
            resolved = self.universe.find(dependency.id)
            if resolved is None:
                continue

            if not resolved.is_partner_package:
                record.add_product_dependency(resolved)

            if framework.matches(self.policy.exempt_frameworks):
                continue

            issue = DependencyIssue(
                dependency=dependency,
                target_framework=framework,
                resolved=resolved,
            )
            if (
                resolved.is_partner_package
                and self.policy.partner_frameworks
                and not framework.matches(self.policy.partner_frameworks)
            ):
                record.invalid_references.append(issue)
                continue

            if dependency.min_version != resolved.version:
                record.dependency_mismatches.append(issue)

    @staticmethod
    def _report(record: PackageRecord) -> None:
        if record.invalid_references:
            logger.error("%s 存在无效的包引用:", record)
            for ref in record.invalid_references:
                logger.error(
                    "  引用 %s (%s) 指向 partner 包 %s，该框架不允许此类引用",
                    ref.dependency.id, ref.target_framework, ref.resolved,
                )
        for mismatch in record.dependency_mismatches:
            logger.error(
                "%s 依赖 %s v%s (%s)，而最新构建为 v%s",
                record,
                mismatch.dependency.id,
                mismatch.dependency.version_range or "*",
                mismatch.target_framework,
                mismatch.resolved.version,
            )
