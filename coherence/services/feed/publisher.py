"""按依赖顺序发布到包源

- 按 degree 分组，组间严格升序，上一组全部结束后才开始下一组
- 组内最多 max_parallel 个 worker 从队列中取包并行推送
- 推送前先查询是否已发布（coherence 包除外），查询失败按"未发布"处理
- 单个包重试耗尽后置位取消信号，其余 worker 不再取新包，最终抛 PublishError
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from coherence.core.exceptions import PublishError
from coherence.core.models import PackageRecord, PublishReport, PushResult, PushState
from coherence.core.ordering import PublishOrderCalculator
from coherence.core.protocols import FeedClient
from coherence.core.retry import RetryPolicy, retry_call

logger = logging.getLogger(__name__)


def _is_coherence_package(record: PackageRecord) -> bool:
    return record.is_coherence_package


@dataclass
class PublishOptions:
    """发布参数"""

    max_parallel: int = 4
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    push_timeout: float = 180
    # 返回 True 的包不查询是否已发布，直接推送
    always_push: Callable[[PackageRecord], bool] = _is_coherence_package


class FeedPublisher:
    """依赖有序的包源发布器"""

    def __init__(
        self,
        client: FeedClient,
        api_key: str = "",
        options: PublishOptions | None = None,
        calculator: PublishOrderCalculator | None = None,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.options = options or PublishOptions()
        self.calculator = calculator or PublishOrderCalculator()

    def publish(self, records: Iterable[PackageRecord]) -> PublishReport:
        """发布全部包，返回推送报告

        Raises:
            PublishError: 某个包重试耗尽（report 为截至失败时的部分结果）
            DependencyCycleError: 产品依赖存在环
        """
        report = PublishReport()
        records = list(records)
        if not records:
            logger.info("没有需要发布的包")
            return report

        groups = self.calculator.group_by_degree(records)
        results: dict[str, PushResult] = {}
        for degree, group in groups:
            for record in group:
                result = PushResult(package=str(record), degree=degree)
                results[record.key] = result
                report.results.append(result)

        cancel = threading.Event()
        for degree, group in groups:
            logger.info("发布 degree=%d: %d 个包", degree, len(group))
            self._publish_group(group, results, cancel)
            if cancel.is_set():
                break

        failed = next((r for r in report.results if r.state == PushState.FAILED), None)
        if failed is not None:
            raise PublishError(
                f"推送 {failed.package} 失败，已尝试 {failed.attempts} 次: {failed.message}",
                package=failed.package,
                attempts=failed.attempts,
                report=report,
            )

        logger.info(
            "发布完成: 推送 %d 个，跳过 %d 个（已存在）",
            report.published, report.skipped,
        )
        return report

    def _publish_group(
        self,
        group: list[PackageRecord],
        results: dict[str, PushResult],
        cancel: threading.Event,
    ) -> None:
        pending: queue.Queue[PackageRecord] = queue.Queue()
        for record in group:
            pending.put(record)

        workers = min(self.options.max_parallel, len(group))
        if workers <= 1:
            self._drain(pending, results, cancel)
            return

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._drain, pending, results, cancel)
                for _ in range(workers)
            ]
            for future in futures:
                future.result()

    def _drain(
        self,
        pending: queue.Queue[PackageRecord],
        results: dict[str, PushResult],
        cancel: threading.Event,
    ) -> None:
        """worker 主循环: 取包 → 推送，直到队列为空或收到取消信号"""
        while not cancel.is_set():
            try:
                record = pending.get_nowait()
            except queue.Empty:
                return
            result = results[record.key]
            if cancel.is_set():
                result.state = PushState.CANCELLED
                result.message = "已取消"
                return
            try:
                self._publish_one(record, result, cancel)
            except Exception:
                result.state = PushState.FAILED
                cancel.set()
                raise

    def _exists(self, record: PackageRecord) -> bool:
        try:
            return self.client.exists(record.identifier, str(record.version))
        except Exception as exc:  # noqa: BLE001 - 查询失败按未发布处理
            logger.warning("查询 %s 是否已发布失败，按未发布处理: %s", record, exc)
            return False

    def _publish_one(
        self, record: PackageRecord, result: PushResult, cancel: threading.Event,
    ) -> None:
        start = time.monotonic()
        result.state = PushState.CHECKING
        if not self.options.always_push(record) and self._exists(record):
            result.state = PushState.SKIPPED
            result.message = "已存在于包源"
            result.duration = time.monotonic() - start
            logger.info("跳过已发布的包: %s", record)
            return

        policy = self.options.retry_policy

        def _attempt() -> None:
            result.state = PushState.PUSHING
            self.client.push(record.package_path, self.api_key, self.options.push_timeout)

        def _on_retry(attempt: int, exc: BaseException) -> None:
            result.state = PushState.RETRYING
            logger.warning(
                "推送 %s 第 %d/%d 次失败，稍后重试: %s",
                record, attempt, policy.max_attempts, exc,
            )

        logger.info("推送: %s", record)
        outcome = retry_call(
            _attempt,
            policy=policy,
            cancel_event=cancel,
            on_retry=_on_retry,
            label=f"推送 {record}",
        )
        result.attempts = outcome.attempts
        result.duration = time.monotonic() - start

        if outcome.cancelled:
            result.state = PushState.CANCELLED
            result.message = "已取消"
            logger.info("取消推送: %s", record)
        elif outcome.success:
            result.state = PushState.PUBLISHED
            logger.info("已发布: %s (%d 次尝试, %.1f秒)", record, outcome.attempts, result.duration)
        else:
            result.state = PushState.FAILED
            result.message = str(outcome.error)
            logger.error(
                "推送 %s 失败，已尝试 %d 次: %s", record, outcome.attempts, outcome.error,
            )
            cancel.set()
