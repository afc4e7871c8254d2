"""统一异常体系

所有业务异常继承 CoherenceError，按 code 区分类别。
一致性不匹配不走异常（只影响校验结果布尔值），这里只定义需要中断流水线的错误。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


class CoherenceError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(CoherenceError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(CoherenceError, ValueError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class InvalidVersionError(ValidationError):
    """版本号或版本范围无法解析"""

    code = "INVALID_VERSION"


class PackageReadError(CoherenceError):
    """包归档无法读取或 nuspec 内容不完整"""

    code = "PACKAGE_READ_ERROR"

    def __init__(self, message: str, path: Path | str = "") -> None:
        super().__init__(message)
        self.path = str(path)


class DuplicatePackageError(CoherenceError):
    """同一包标识出现多份（收集阶段的致命错误）"""

    code = "DUPLICATE_PACKAGE"

    def __init__(self, existing: Any, duplicate: Any) -> None:
        super().__init__(
            f"发现同一包的多个副本:\n  {existing}\n  {duplicate}",
        )
        self.existing = existing
        self.duplicate = duplicate


class DataIntegrityError(CoherenceError):
    """校验单个包时出错（元数据损坏），中止整个校验过程"""

    code = "DATA_INTEGRITY"

    def __init__(self, message: str, package: str = "") -> None:
        super().__init__(message)
        self.package = package


class DependencyCycleError(CoherenceError):
    """产品依赖图中存在环，无法计算发布顺序"""

    code = "DEPENDENCY_CYCLE"

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"产品依赖存在环: {' -> '.join(cycle)}")
        self.cycle = cycle


class FeedError(CoherenceError):
    """包源协议或 HTTP 调用失败"""

    code = "FEED_ERROR"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class PublishError(CoherenceError):
    """推送重试耗尽，整个发布操作失败"""

    code = "PUBLISH_ERROR"

    def __init__(
        self,
        message: str,
        package: str = "",
        attempts: int = 0,
        report: Any = None,
    ) -> None:
        super().__init__(message)
        self.package = package
        self.attempts = attempts
        self.report = report
