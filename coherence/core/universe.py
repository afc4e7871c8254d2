"""包全集（universe）

收集阶段各 worker 各自产出记录列表，在调用线程上一次性合并为只读映射，
之后校验、排序、发布都只读这张表，无需加锁。
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from coherence.core.exceptions import DuplicatePackageError
from coherence.core.models import PackageRecord


class PackageUniverse(Mapping[str, PackageRecord]):
    """按包标识（大小写无关）索引的只读包集合"""

    def __init__(self, records: Iterable[PackageRecord] = ()) -> None:
        lookup: dict[str, PackageRecord] = {}
        for record in records:
            existing = lookup.get(record.key)
            if existing is not None:
                raise DuplicatePackageError(existing, record)
            lookup[record.key] = record
        self._lookup = MappingProxyType(lookup)

    @classmethod
    def merge(cls, batches: Iterable[Iterable[PackageRecord]]) -> PackageUniverse:
        """合并多个 worker 的局部结果"""
        return cls(r for batch in batches for r in batch)

    def __getitem__(self, identifier: str) -> PackageRecord:
        return self._lookup[identifier.casefold()]

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and identifier.casefold() in self._lookup

    def __iter__(self) -> Iterator[str]:
        return iter(self._lookup)

    def __len__(self) -> int:
        return len(self._lookup)

    def find(self, identifier: str) -> PackageRecord | None:
        return self._lookup.get(identifier.casefold())

    @property
    def records(self) -> list[PackageRecord]:
        return list(self._lookup.values())

    @property
    def partner_packages(self) -> list[PackageRecord]:
        return [r for r in self._lookup.values() if r.is_partner_package]

    @property
    def product_packages(self) -> list[PackageRecord]:
        return [r for r in self._lookup.values() if not r.is_partner_package]
