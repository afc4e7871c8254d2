"""核心数据模型

所有核心数据类集中定义，校验器、排序器、发布器统一从此处导入。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from coherence.core.exceptions import ConfigError
from coherence.core.version import NuGetVersion, TargetFramework, min_version_of

# =========================================================================
# 包与依赖
# =========================================================================


@dataclass(frozen=True)
class PackageDependency:
    """nuspec 中声明的单个依赖"""

    id: str
    version_range: str = ""

    @property
    def key(self) -> str:
        return self.id.casefold()

    @property
    def min_version(self) -> NuGetVersion | None:
        """版本范围下限，范围格式错误时抛 InvalidVersionError"""
        return min_version_of(self.version_range)

    def __str__(self) -> str:
        return f"{self.id} {self.version_range}".rstrip()


@dataclass(frozen=True)
class DependencyGroup:
    """按目标框架分组的依赖声明，target_framework 为 None 表示不区分框架"""

    target_framework: TargetFramework | None
    packages: tuple[PackageDependency, ...] = ()


@dataclass
class DependencyIssue:
    """一条一致性问题: 依赖声明 + 所在框架 + 实际解析到的包"""

    dependency: PackageDependency
    target_framework: TargetFramework | None
    resolved: PackageRecord


@dataclass(eq=False)
class PackageRecord:
    """一个被收集的包

    身份与依赖声明在构造后不再变化；product_dependencies / dependency_mismatches /
    invalid_references 只由校验器在一次校验中写入。
    """

    identifier: str
    version: NuGetVersion
    dependency_groups: tuple[DependencyGroup, ...] = ()
    is_partner_package: bool = False
    is_lineup_package: bool = False
    is_coherence_package: bool = False
    package_path: str = ""
    symbols_path: str = ""
    source_repo: str = ""

    product_dependencies: list[PackageRecord] = field(default_factory=list, repr=False)
    dependency_mismatches: list[DependencyIssue] = field(default_factory=list, repr=False)
    invalid_references: list[DependencyIssue] = field(default_factory=list, repr=False)

    @property
    def key(self) -> str:
        """大小写无关的查找键"""
        return self.identifier.casefold()

    @property
    def success(self) -> bool:
        return not self.dependency_mismatches and not self.invalid_references

    def reset_results(self) -> None:
        self.product_dependencies.clear()
        self.dependency_mismatches.clear()
        self.invalid_references.clear()

    def add_product_dependency(self, other: PackageRecord) -> None:
        """按标识去重地记录一条产品依赖边"""
        if other is self:
            return
        if all(d.key != other.key for d in self.product_dependencies):
            self.product_dependencies.append(other)

    def __str__(self) -> str:
        return f"{self.identifier} {self.version}"


# =========================================================================
# 校验策略
# =========================================================================


class VerifyBehavior(enum.Flag):
    """校验范围开关（可按位组合）"""

    NONE = 0
    PRODUCT_PACKAGES = 1
    PARTNER_PACKAGES = 2
    ALL = PRODUCT_PACKAGES | PARTNER_PACKAGES

    @classmethod
    def from_name(cls, text: str) -> VerifyBehavior:
        """从配置字符串解析，支持 none / product / partner / all 及逗号组合"""
        aliases = {
            "none": cls.NONE,
            "product": cls.PRODUCT_PACKAGES,
            "product_packages": cls.PRODUCT_PACKAGES,
            "partner": cls.PARTNER_PACKAGES,
            "partner_packages": cls.PARTNER_PACKAGES,
            "all": cls.ALL,
        }
        result = cls.NONE
        for part in (text or "all").split(","):
            name = part.strip().lower()
            if not name:
                continue
            if name not in aliases:
                raise ConfigError(
                    f"未知的校验范围 '{part}'，可选: {', '.join(sorted(aliases))}",
                )
            result |= aliases[name]
        return result


def _lowered(items: list[str] | tuple[str, ...] | frozenset[str] | None) -> frozenset[str]:
    return frozenset(i.casefold() for i in (items or ()))


@dataclass(frozen=True)
class VerifyPolicy:
    """一致性校验策略

    skip_packages: 整包跳过校验的包标识（历史遗留的已知例外）
    exempt_frameworks: 该框架下的引用不做版本比较（如 netcore50 引用 RTM 版本）
    partner_frameworks: 允许引用 partner 包的框架白名单，为空则不做该项检查
    """

    behavior: VerifyBehavior = VerifyBehavior.ALL
    skip_packages: frozenset[str] = frozenset()
    exempt_frameworks: frozenset[str] = frozenset({".netcore"})
    partner_frameworks: frozenset[str] = frozenset()

    @classmethod
    def build(
        cls,
        behavior: VerifyBehavior | str = VerifyBehavior.ALL,
        *,
        skip_packages: list[str] | None = None,
        exempt_frameworks: list[str] | None = None,
        partner_frameworks: list[str] | None = None,
    ) -> VerifyPolicy:
        if isinstance(behavior, str):
            behavior = VerifyBehavior.from_name(behavior)
        return cls(
            behavior=behavior,
            skip_packages=_lowered(skip_packages),
            exempt_frameworks=(
                _lowered(exempt_frameworks) if exempt_frameworks is not None
                else frozenset({".netcore"})
            ),
            partner_frameworks=_lowered(partner_frameworks),
        )

    def selects(self, record: PackageRecord) -> bool:
        """该包所属类别是否在校验范围内"""
        if record.is_partner_package:
            return bool(self.behavior & VerifyBehavior.PARTNER_PACKAGES)
        return bool(self.behavior & VerifyBehavior.PRODUCT_PACKAGES)

    def skips(self, record: PackageRecord) -> bool:
        return record.key in self.skip_packages


# =========================================================================
# 发布状态
# =========================================================================


class PushState(str, enum.Enum):
    """单个包推送的状态机"""

    PENDING = "pending"
    CHECKING = "checking"
    SKIPPED = "skipped"
    PUSHING = "pushing"
    RETRYING = "retrying"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal_success(self) -> bool:
        return self in (PushState.SKIPPED, PushState.PUBLISHED)


@dataclass
class PushResult:
    """单个包的推送结果"""

    package: str
    degree: int
    state: PushState = PushState.PENDING
    attempts: int = 0
    duration: float = 0.0
    message: str = ""


@dataclass
class PublishReport:
    """一次发布操作的汇总"""

    results: list[PushResult] = field(default_factory=list)

    def _count(self, state: PushState) -> int:
        return sum(1 for r in self.results if r.state == state)

    @property
    def published(self) -> int:
        return self._count(PushState.PUBLISHED)

    @property
    def skipped(self) -> int:
        return self._count(PushState.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(PushState.FAILED)

    @property
    def success(self) -> bool:
        return all(r.state.terminal_success for r in self.results)

    def to_dict(self) -> dict:
        return {
            "total": len(self.results),
            "published": self.published,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [
                {
                    "package": r.package,
                    "degree": r.degree,
                    "state": r.state.value,
                    "attempts": r.attempts,
                    "duration": round(r.duration, 3),
                    "message": r.message,
                }
                for r in self.results
            ],
        }
