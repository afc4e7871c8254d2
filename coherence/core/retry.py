"""有限次重试

retry_call 执行 attempt = 1..max_attempts，返回 RetryOutcome（成功值或最终异常），
由调用方决定是否 unwrap() 抛出。延迟策略通过 RetryPolicy.delay 注入，
传入 cancel_event 时每次尝试前检查取消信号，等待期间也可被取消打断。
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 延迟策略: 输入已失败的尝试次数（从 1 开始），返回等待秒数
DelayStrategy = Callable[[int], float]


def fixed_delay(seconds: float) -> DelayStrategy:
    """固定间隔"""
    return lambda attempt: seconds


def jittered_delay(base: float, spread: float = 0.5) -> DelayStrategy:
    """在 base 基础上随机抖动 ±spread 比例，避免并发推送同时打到源"""
    def _delay(attempt: int) -> float:
        return max(0.0, base * random.uniform(1 - spread, 1 + spread))  # nosec B311
    return _delay


def exponential_delay(base: float, cap: float = 60.0) -> DelayStrategy:
    """指数退避，上限 cap 秒"""
    return lambda attempt: min(cap, base * (2 ** (attempt - 1)))


@dataclass(frozen=True)
class RetryPolicy:
    """重试策略"""

    max_attempts: int = 5
    delay: DelayStrategy = field(default=fixed_delay(3.0))
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts 必须 >= 1")


@dataclass
class RetryOutcome(Generic[T]):
    """重试结果: 成功时 value 有效，失败时 error 为最后一次异常"""

    value: T | None = None
    error: BaseException | None = None
    attempts: int = 0
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and not self.cancelled

    def unwrap(self) -> T:
        """成功返回值，失败抛出最后一次异常"""
        if self.error is not None:
            raise self.error
        if self.cancelled:
            raise RuntimeError("操作已取消")
        return self.value  # type: ignore[return-value]


def retry_call(
    func: Callable[[], T],
    *,
    policy: RetryPolicy | None = None,
    cancel_event: threading.Event | None = None,
    on_retry: Callable[[int, BaseException], None] | None = None,
    label: str = "",
) -> RetryOutcome[T]:
    """执行 func，失败时按策略重试

    Args:
        func: 无参可调用对象
        policy: 重试策略（默认 5 次、间隔 3 秒）
        cancel_event: 取消信号，置位后不再开始新的尝试
        on_retry: 某次尝试失败且仍会重试时回调 (attempt, exc)
        label: 日志标签
    """
    policy = policy or RetryPolicy()
    outcome: RetryOutcome[T] = RetryOutcome()

    for attempt in range(1, policy.max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            outcome.cancelled = True
            return outcome

        outcome.attempts = attempt
        try:
            outcome.value = func()
            outcome.error = None
            return outcome
        except policy.retry_on as exc:
            outcome.error = exc
            if attempt == policy.max_attempts:
                break
            if on_retry is not None:
                on_retry(attempt, exc)
            else:
                logger.info("%s 第 %d 次尝试失败，重试中: %s", label or "操作", attempt, exc)

        wait = policy.delay(attempt)
        if wait > 0:
            if cancel_event is not None:
                # 等待期间被取消立即返回
                if cancel_event.wait(wait):
                    outcome.cancelled = True
                    return outcome
            else:
                time.sleep(wait)

    return outcome
