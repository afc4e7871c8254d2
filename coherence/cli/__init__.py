"""coherence 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os
from typing import Any, Callable

import click

from coherence import __version__
from coherence.core.config import Config, init_config
from coherence.utils.logger import detect_format, setup_logging

# 命令行参数名 → Config 字段名
_OVERRIDES = {
    "drop_folder": "drop_folder",
    "build_branch": "build_branch",
    "output_path": "output_path",
    "feed": "feed_url",
    "api_key": "api_key",
    "ci_volatile_share": "ci_volatile_share",
    "verify": "verify_behavior",
}


def pipeline_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """run / verify / order 共用的选项"""
    options = [
        click.option("--config", "-c", "config_path", default="configs/default.yml",
                     help="配置文件路径"),
        click.option("--drop-folder", default=None, help="drop 共享目录"),
        click.option("--build-branch", default=None, help="构建分支 (dev / release)"),
        click.option("--output-path", default=None, help="输出目录"),
        click.option("--feed", default=None, help="推送目标包源（URL 或目录）"),
        click.option("--api-key", default=None, help="包源 API Key"),
        click.option("--ci-volatile-share", default=None, help="CI volatile 共享目录"),
        click.option("--verify", default=None, help="校验范围: none / product / partner / all"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def load_config(config_path: str, **overrides: Any) -> Config:
    """加载配置文件并应用命令行覆盖（None 表示未指定）"""
    cfg = init_config(config_path)
    for arg, value in overrides.items():
        if value is not None and arg in _OVERRIDES:
            setattr(cfg, _OVERRIDES[arg], value)
    cfg.validate()
    return cfg


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """coherence - 包一致性校验与依赖有序发布"""
    setup_logging(
        level=os.getenv("COHERENCE_LOG_LEVEL", "INFO"),
        fmt=detect_format(),
    )


# 注册各领域子命令
from coherence.cli.cmd_run import register as _reg_run  # noqa: E402
from coherence.cli.cmd_verify import register as _reg_verify  # noqa: E402

_reg_run(main)
_reg_verify(main)
