"""仓库构建目录中的附加文件/目录依赖

除包以外，部分仓库还需要把构建目录中的文件或目录拷贝到输出目录
（如 commits 记录、SDK 目录）。optional 的依赖缺失时只告警。
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from coherence.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class FileSystemDependency:
    """文件或目录依赖

    kind: "file" | "folder"
    destination: 输出目录下的相对路径，为空时沿用源名称
    """

    path: str
    kind: str = "file"
    destination: str = ""
    optional: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileSystemDependency:
        kind = data.get("kind", "file")
        if kind not in ("file", "folder"):
            raise ConfigError(f"不支持的依赖类型: {kind}")
        if not data.get("path"):
            raise ConfigError("文件依赖缺少 path")
        return cls(
            path=data["path"],
            kind=kind,
            destination=data.get("destination", ""),
            optional=bool(data.get("optional", False)),
        )

    def copy(self, source_dir: str | Path, output_dir: str | Path) -> Path | None:
        """从 source_dir 拷贝到 output_dir，返回目标路径；可选依赖缺失时返回 None"""
        src = Path(source_dir) / self.path
        dest = Path(output_dir) / (self.destination or self.path)

        exists = src.is_file() if self.kind == "file" else src.is_dir()
        if not exists:
            msg = f"无法拷贝依赖 {src}: 不存在"
            if not self.optional:
                raise FileNotFoundError(msg)
            logger.warning(msg)
            return None

        logger.info("拷贝 %s -> %s", src, dest)
        if self.kind == "file":
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        else:
            shutil.copytree(src, dest, dirs_exist_ok=True)
        return dest
