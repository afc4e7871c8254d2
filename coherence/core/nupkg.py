"""nupkg 包归档读取

nupkg 即 zip 文件，根目录下有一个 <id>.nuspec 清单:

    <package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
      <metadata>
        <id>Foo</id>
        <version>1.0.0</version>
        <dependencies>
          <group targetFramework="netstandard1.3">
            <dependency id="Bar" version="[1.0.0, )" />
          </group>
        </dependencies>
      </metadata>
    </package>

dependencies 下也可以直接是 <dependency>（旧格式，不区分框架）。
这里只解析身份与依赖分组，不做版本范围校验，范围格式错误留给校验阶段报告。
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET  # nosec B405
import zipfile
from pathlib import Path

from coherence.core.exceptions import InvalidVersionError, PackageReadError
from coherence.core.models import DependencyGroup, PackageDependency, PackageRecord
from coherence.core.version import NuGetVersion, TargetFramework

logger = logging.getLogger(__name__)

SYMBOLS_SUFFIX = ".symbols.nupkg"


def is_symbols_package(path: str | Path) -> bool:
    return str(path).lower().endswith(SYMBOLS_SUFFIX)


def _local(tag: str) -> str:
    """去掉命名空间前缀"""
    return tag.rsplit("}", 1)[-1]


def _child(elem: ET.Element, name: str) -> ET.Element | None:
    for c in elem:
        if _local(c.tag) == name:
            return c
    return None


def _children(elem: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in elem if _local(c.tag) == name]


def _parse_dependency(elem: ET.Element) -> PackageDependency:
    dep_id = (elem.get("id") or "").strip()
    if not dep_id:
        raise PackageReadError("dependency 缺少 id 属性")
    return PackageDependency(id=dep_id, version_range=(elem.get("version") or "").strip())


def parse_dependency_groups(dependencies: ET.Element | None) -> tuple[DependencyGroup, ...]:
    """解析 <dependencies> 节点为依赖分组"""
    if dependencies is None:
        return ()

    groups: list[DependencyGroup] = []
    flat = _children(dependencies, "dependency")
    if flat:
        groups.append(DependencyGroup(
            target_framework=None,
            packages=tuple(_parse_dependency(d) for d in flat),
        ))
    for group in _children(dependencies, "group"):
        groups.append(DependencyGroup(
            target_framework=TargetFramework.parse(group.get("targetFramework", "")),
            packages=tuple(_parse_dependency(d) for d in _children(group, "dependency")),
        ))
    return tuple(groups)


def parse_nuspec(content: bytes | str, source: str = "") -> PackageRecord:
    """解析 nuspec 文本为 PackageRecord（分类标记由调用方补充）"""
    try:
        root = ET.fromstring(content)  # nosec B314
    except ET.ParseError as e:
        raise PackageReadError(f"nuspec 解析失败: {e}", path=source) from e

    metadata = _child(root, "metadata")
    if metadata is None:
        raise PackageReadError("nuspec 缺少 metadata 节点", path=source)

    id_elem = _child(metadata, "id")
    version_elem = _child(metadata, "version")
    identifier = (id_elem.text or "").strip() if id_elem is not None else ""
    version_text = (version_elem.text or "").strip() if version_elem is not None else ""
    if not identifier or not version_text:
        raise PackageReadError("nuspec 缺少 id 或 version", path=source)

    try:
        version = NuGetVersion.parse(version_text)
    except InvalidVersionError as e:
        raise PackageReadError(f"{identifier}: {e}", path=source) from e

    return PackageRecord(
        identifier=identifier,
        version=version,
        dependency_groups=parse_dependency_groups(_child(metadata, "dependencies")),
    )


def read_nuspec(path: str | Path) -> bytes:
    """读取 nupkg 根目录下的 nuspec 原文"""
    p = Path(path)
    try:
        with zipfile.ZipFile(p) as archive:
            nuspecs = [
                n for n in archive.namelist()
                if n.lower().endswith(".nuspec") and "/" not in n
            ]
            if not nuspecs:
                raise PackageReadError(f"包内未找到 nuspec: {p}", path=p)
            return archive.read(nuspecs[0])
    except zipfile.BadZipFile as e:
        raise PackageReadError(f"不是有效的 zip 包: {p} ({e})", path=p) from e


def read_package(path: str | Path) -> PackageRecord:
    """打开 nupkg 并解析 nuspec"""
    p = Path(path)
    record = parse_nuspec(read_nuspec(p), source=str(p))
    record.package_path = str(p)
    logger.debug("已读取包: %s <- %s", record, p)
    return record
