"""CLI: 只校验 / 查看发布顺序"""

from __future__ import annotations

from typing import Any

import click

from coherence.cli import load_config, pipeline_options


def register(group: click.Group) -> None:
    group.add_command(verify)
    group.add_command(order)


@click.command()
@pipeline_options
@click.pass_context
def verify(ctx: click.Context, config_path: str, **overrides: Any) -> None:
    """收集并校验依赖一致性，不发布"""
    from coherence.services.coherence_build import CoherenceBuild

    build = CoherenceBuild(load_config(config_path, **overrides))
    ok = build.verify(build.collect())
    click.echo("一致性校验通过" if ok else "一致性校验失败")
    ctx.exit(0 if ok else 1)


@click.command()
@pipeline_options
@click.pass_context
def order(ctx: click.Context, config_path: str, **overrides: Any) -> None:
    """输出按 degree 分组的发布顺序"""
    from coherence.core.ordering import LINEUP_DEGREE, PublishOrderCalculator
    from coherence.services.coherence_build import CoherenceBuild

    build = CoherenceBuild(load_config(config_path, **overrides))
    universe = build.collect()
    ok = build.verify(universe)
    for degree, records in PublishOrderCalculator().group_by_degree(universe.records):
        label = "lineup" if degree == LINEUP_DEGREE else str(degree)
        click.echo(f"[{label}]")
        for record in sorted(records, key=lambda r: r.key):
            click.echo(f"  {record}")
    ctx.exit(0 if ok else 1)
