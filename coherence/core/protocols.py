"""领域协议定义

发布器只依赖 FeedClient 协议，不依赖具体的 HTTP / 目录实现，
测试时注入假的包源即可，无需 patch urllib。

使用 typing.Protocol 而非 ABC，使得现有类无需修改继承关系即可满足协议。
"""

from __future__ import annotations

from typing import Protocol


class FeedClient(Protocol):
    """远程包源协议

    两个逻辑操作:
      - exists: 查询某个确切版本是否已发布
      - push: 推送本地包文件，失败抛异常
    """

    def exists(self, package_id: str, version: str) -> bool:
        """包源中是否已存在该版本"""
        ...

    def push(self, package_path: str, api_key: str, timeout: float) -> None:
        """推送包文件，timeout 为单次尝试的超时秒数"""
        ...
