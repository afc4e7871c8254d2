"""发布顺序计算（degree）

degree 越小越先发布:
  - partner 包: 1
  - lineup 包: LINEUP_DEGREE（最后发布）
  - 其他包: 无产品依赖为 2，否则为 1 + max(各产品依赖的 degree)

用显式栈做迭代 DFS（白/灰/黑三色标记），遇到环直接报错而不是无限递归。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from coherence.core.exceptions import DependencyCycleError
from coherence.core.models import PackageRecord

logger = logging.getLogger(__name__)

PARTNER_DEGREE = 1
LEAF_DEGREE = 2
LINEUP_DEGREE = 2**31 - 1

_WHITE, _GRAY, _BLACK = 0, 1, 2


class PublishOrderCalculator:
    """按产品依赖计算发布顺序，结果按包标识缓存"""

    def __init__(self) -> None:
        self._degrees: dict[str, int] = {}

    def degree_of(self, record: PackageRecord) -> int:
        """计算单个包的 degree"""
        boundary = self._boundary_degree(record)
        if boundary is not None:
            return boundary
        cached = self._degrees.get(record.key)
        if cached is not None:
            return cached
        self._walk(record)
        return self._degrees[record.key]

    def compute(self, records: Iterable[PackageRecord]) -> dict[str, int]:
        """计算全部包的 degree，返回 {包标识(小写): degree}"""
        return {r.key: self.degree_of(r) for r in records}

    def group_by_degree(
        self, records: Iterable[PackageRecord],
    ) -> list[tuple[int, list[PackageRecord]]]:
        """按 degree 升序分组，组内保持输入顺序"""
        groups: dict[int, list[PackageRecord]] = {}
        for record in records:
            groups.setdefault(self.degree_of(record), []).append(record)
        return sorted(groups.items())

    @staticmethod
    def _boundary_degree(record: PackageRecord) -> int | None:
        if record.is_partner_package:
            return PARTNER_DEGREE
        if record.is_lineup_package:
            return LINEUP_DEGREE
        return None

    def _walk(self, root: PackageRecord) -> None:
        """迭代后序遍历 root 的产品依赖子图，填充 _degrees"""
        color: dict[str, int] = {}
        path: list[PackageRecord] = []
        stack: list[tuple[PackageRecord, int]] = [(root, 0)]

        while stack:
            node, index = stack.pop()
            if index == 0:
                color[node.key] = _GRAY
                path.append(node)

            deps = node.product_dependencies
            if index < len(deps):
                stack.append((node, index + 1))
                child = deps[index]
                if self._boundary_degree(child) is not None or child.key in self._degrees:
                    continue
                state = color.get(child.key, _WHITE)
                if state == _GRAY:
                    start = next(i for i, p in enumerate(path) if p.key == child.key)
                    cycle = [p.identifier for p in path[start:]] + [child.identifier]
                    raise DependencyCycleError(cycle)
                if state == _WHITE:
                    stack.append((child, 0))
                continue

            # 所有子节点已完成
            self._degrees[node.key] = self._from_children(node)
            color[node.key] = _BLACK
            path.pop()

    def _from_children(self, record: PackageRecord) -> int:
        if not record.product_dependencies:
            return LEAF_DEGREE
        return 1 + max(self.degree_of(d) for d in record.product_dependencies)
