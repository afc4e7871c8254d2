"""CLI: 完整流水线"""

from __future__ import annotations

from typing import Any

import click

from coherence.cli import load_config, pipeline_options


def register(group: click.Group) -> None:
    group.add_command(run)


@click.command()
@pipeline_options
@click.pass_context
def run(ctx: click.Context, config_path: str, **overrides: Any) -> None:
    """收集 → 校验 → 发布 → 清理"""
    from coherence.services.coherence_build import CoherenceBuild

    cfg = load_config(config_path, **overrides)
    ctx.exit(CoherenceBuild(cfg).execute())
