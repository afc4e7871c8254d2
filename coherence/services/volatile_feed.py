"""CI volatile 共享目录清理

共享目录布局为 <share>/<project>/<version>/。清理后每个项目只保留
本次一致性构建中存在的版本；本次构建不包含的项目整个删除。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def coherent_versions(package_names: list[str], project: str) -> set[str]:
    """从包文件名（不含扩展名）中取出属于 project 的版本号"""
    prefix = f"{project}.".casefold()
    return {
        name[len(prefix):]
        for name in package_names
        if name.casefold().startswith(prefix)
    }


def cleanup_volatile_feed(output_packages_dir: str | Path, volatile_share: str | Path) -> list[Path]:
    """清理 volatile 共享目录，返回已删除的目录列表"""
    share = Path(volatile_share)
    if not share.is_dir():
        logger.warning("volatile 共享目录不存在，跳过清理: %s", share)
        return []

    package_names = [p.stem for p in Path(output_packages_dir).glob("*.nupkg")]

    to_delete: list[Path] = []
    for project_dir in sorted(d for d in share.iterdir() if d.is_dir()):
        versions = coherent_versions(package_names, project_dir.name)
        if versions:
            to_delete.extend(
                d for d in sorted(project_dir.iterdir())
                if d.is_dir() and d.name not in versions
            )
        else:
            logger.info(
                "项目 %s 不在本次一致性构建中，将从 %s 删除",
                project_dir.name, share,
            )
            to_delete.append(project_dir)

    deleted: list[Path] = []
    for path in to_delete:
        logger.info("删除目录: %s", path)
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("删除目录失败: %s (%s)", path, e)
            continue
        deleted.append(path)
    return deleted
