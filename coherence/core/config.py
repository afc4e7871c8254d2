"""集中配置管理

支持从 YAML 文件加载 + 编程式覆盖 + 少量环境变量覆盖
（COHERENCE_API_KEY、DISABLE_COHERENCE_CHECK）。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any

from coherence.core.collector import RepositoryInfo
from coherence.core.exceptions import ConfigError
from coherence.core.models import VerifyPolicy
from coherence.core.retry import RetryPolicy, jittered_delay
from coherence.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """全局配置"""

    # 目录
    drop_folder: str = ""
    build_branch: str = "dev"
    output_path: str = "artifacts"
    ci_volatile_share: str = ""
    expand_packages: bool = False

    # 包源
    feed_url: str = ""
    api_key: str = ""

    # 校验
    verify_behavior: str = "all"
    disable_coherence_check: bool = False
    skip_verification: list[str] = field(default_factory=list)
    exempt_frameworks: list[str] = field(default_factory=lambda: [".NETCore"])
    partner_frameworks: list[str] = field(default_factory=list)
    lineup_packages: list[str] = field(default_factory=list)

    # 并发与重试
    collect_workers: int = 8
    verify_workers: int = 1
    max_parallel_pushes: int = 4
    max_push_attempts: int = 5
    push_timeout: int = 180
    retry_delay: float = 3.0

    # 仓库清单
    repositories: list[dict[str, Any]] = field(default_factory=list)

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "configs/default.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        cfg.apply_env()
        cfg.validate()
        return cfg

    def apply_env(self) -> None:
        """环境变量覆盖"""
        api_key = os.getenv("COHERENCE_API_KEY")
        if api_key:
            self.api_key = api_key
        if os.getenv("DISABLE_COHERENCE_CHECK", "").lower() == "true":
            self.disable_coherence_check = True

    def validate(self) -> None:
        for name in ("max_parallel_pushes", "max_push_attempts", "push_timeout"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} 必须 >= 1，当前为 {getattr(self, name)}")
        if self.retry_delay < 0:
            raise ConfigError(f"retry_delay 不能为负数: {self.retry_delay}")

    def repository_infos(self) -> list[RepositoryInfo]:
        return [RepositoryInfo.from_dict(r) for r in self.repositories]

    def verify_policy(self) -> VerifyPolicy:
        return VerifyPolicy.build(
            "none" if self.disable_coherence_check else self.verify_behavior,
            skip_packages=self.skip_verification,
            exempt_frameworks=self.exempt_frameworks,
            partner_frameworks=self.partner_frameworks,
        )

    def push_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_push_attempts,
            delay=jittered_delay(self.retry_delay),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        if data.get("api_key"):
            data["api_key"] = "***"
        return data


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/default.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
