"""NuGet 版本号、版本范围与目标框架解析

职责:
- NuGetVersion: 规范化版本号（1.0 == 1.0.0 == 1.0.0.0，预发布标签忽略大小写，
  忽略 +metadata），支持排序
- min_version_of: 从依赖声明的版本范围中取下限
- TargetFramework: 解析 nuspec 中的 targetFramework（短名或完整名）
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field

from coherence.core.exceptions import InvalidVersionError

_VERSION_RE = re.compile(
    r"^(?P<release>\d+(?:\.\d+){0,3})"
    r"(?:-(?P<label>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?"
    r"(?:\+(?P<meta>[0-9A-Za-z\-.]+))?$"
)


def _compare_labels(left: str, right: str) -> int:
    """按 SemVer 2.0 规则比较预发布标签，空标签（正式版）最大"""
    if left == right:
        return 0
    if not left:
        return 1
    if not right:
        return -1
    lparts = left.split(".")
    rparts = right.split(".")
    for lp, rp in zip(lparts, rparts):
        if lp == rp:
            continue
        l_num, r_num = lp.isdigit(), rp.isdigit()
        if l_num and r_num:
            return -1 if int(lp) < int(rp) else 1
        if l_num:
            return -1
        if r_num:
            return 1
        return -1 if lp < rp else 1
    if len(lparts) == len(rparts):
        return 0
    return -1 if len(lparts) < len(rparts) else 1


@functools.total_ordering
@dataclass(frozen=True)
class NuGetVersion:
    """规范化的 NuGet 版本号

    release 固定补齐为 4 段，label 以小写保存用于比较，
    original 保留原始字符串用于日志输出。
    """

    release: tuple[int, int, int, int]
    label: str = ""
    original: str = field(default="", compare=False)

    @classmethod
    def parse(cls, text: str) -> NuGetVersion:
        raw = (text or "").strip()
        m = _VERSION_RE.match(raw)
        if not m:
            raise InvalidVersionError(f"无法解析的版本号: '{text}'")
        parts = [int(p) for p in m.group("release").split(".")]
        parts += [0] * (4 - len(parts))
        return cls(
            release=(parts[0], parts[1], parts[2], parts[3]),
            label=(m.group("label") or "").lower(),
            original=raw,
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.label)

    def normalized(self) -> str:
        """规范化字符串: 第 4 段为 0 时省略"""
        major, minor, patch, rev = self.release
        text = f"{major}.{minor}.{patch}"
        if rev:
            text += f".{rev}"
        if self.label:
            text += f"-{self.label}"
        return text

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, NuGetVersion):
            return NotImplemented
        if self.release != other.release:
            return self.release < other.release
        return _compare_labels(self.label, other.label) < 0

    def __str__(self) -> str:
        return self.original or self.normalized()


def min_version_of(version_range: str) -> NuGetVersion | None:
    """取版本范围下限

    支持:
      - "1.0.0"          → 1.0.0（NuGet 语义: >= 1.0.0）
      - "[1.0.0, 2.0.0)" → 1.0.0
      - "[1.0.0]"        → 1.0.0
      - "(, 2.0.0]"      → None（无下限）
      - ""               → None
    """
    text = (version_range or "").strip()
    if not text:
        return None
    if text[0] not in "[(":
        return NuGetVersion.parse(text)

    if len(text) < 2 or text[-1] not in "])":
        raise InvalidVersionError(f"版本范围格式错误: '{version_range}'")
    body = text[1:-1]
    lower = body.split(",", 1)[0].strip()
    if not lower:
        return None
    return NuGetVersion.parse(lower)


# =========================================================================
# 目标框架
# =========================================================================

PORTABLE_IDENTIFIER = ".NETPortable"

# 短名前缀 -> 完整框架标识（长前缀在前，保证最长匹配）
_SHORT_IDENTIFIERS: list[tuple[str, str]] = [
    ("netstandardapp", ".NETStandardApp"),
    ("netstandard", ".NETStandard"),
    ("netcoreapp", ".NETCoreApp"),
    ("netplatform", ".NETPlatform"),
    ("netcore", ".NETCore"),
    ("netmf", ".NETMicroFramework"),
    ("net", ".NETFramework"),
    ("dnxcore", "DNXCore"),
    ("dnx", "DNX"),
    ("dotnet", ".NETPlatform"),
    ("portable", PORTABLE_IDENTIFIER),
    ("uap", "UAP"),
    ("wpa", "WindowsPhoneApp"),
    ("wp", "WindowsPhone"),
    ("win", "Windows"),
    ("sl", "Silverlight"),
    ("monoandroid", "MonoAndroid"),
    ("xamarinios", "Xamarin.iOS"),
]

_SHORT_RE = re.compile(r"^(?P<name>[a-z.]+?)(?P<version>\d[\d.]*)?$", re.IGNORECASE)


@dataclass(frozen=True)
class TargetFramework:
    """目标框架（identifier + version + profile）"""

    identifier: str
    version: str = ""
    profile: str = ""

    @classmethod
    def parse(cls, text: str) -> TargetFramework | None:
        """解析 targetFramework 属性值，空值返回 None"""
        raw = (text or "").strip()
        if not raw:
            return None

        # 完整形式: .NETPortable,Version=v4.5,Profile=Profile259
        if "," in raw:
            head, *pairs = [p.strip() for p in raw.split(",")]
            version = profile = ""
            for pair in pairs:
                key, _, value = pair.partition("=")
                if key.strip().lower() == "version":
                    version = value.strip().lstrip("vV")
                elif key.strip().lower() == "profile":
                    profile = value.strip()
            return cls(identifier=head, version=version, profile=profile)

        lowered = raw.lower()
        if lowered.startswith("portable"):
            return cls(identifier=PORTABLE_IDENTIFIER, profile=raw.partition("-")[2])

        m = _SHORT_RE.match(raw)
        if not m:
            return cls(identifier=raw)
        name = m.group("name").lower()
        version = m.group("version") or ""
        for short, full in _SHORT_IDENTIFIERS:
            if name == short:
                # net5.0 及以上属于 .NETCoreApp
                if short == "net" and "." in version and int(version.split(".")[0]) >= 5:
                    return cls(identifier=".NETCoreApp", version=version)
                return cls(identifier=full, version=version)
        # 已是完整标识（如 .NETFramework4.5）或未知框架
        return cls(identifier=m.group("name"), version=version)

    @property
    def is_pcl(self) -> bool:
        return self.identifier.lower() == PORTABLE_IDENTIFIER.lower()

    def matches(self, identifiers: frozenset[str]) -> bool:
        """框架标识是否在给定集合中（集合需为小写）"""
        return self.identifier.lower() in identifiers

    def __str__(self) -> str:
        text = self.identifier
        if self.version:
            text += f",Version=v{self.version}"
        if self.profile:
            text += f",Profile={self.profile}"
        return text
