"""包源客户端

两种实现:
- NuGetFeedClient: NuGet v3 HTTP 源
    * 服务索引: GET <source>  → resources[@type]
    * 存在性查询: PackageBaseAddress/3.0.0  GET {base}/{id}/index.json（404 视为不存在）
    * 推送: PackagePublish/2.0.0  PUT multipart/form-data，X-NuGet-ApiKey 鉴权
- FolderFeedClient: 本地/共享目录源，布局 {root}/{id}/{version}/{id}.{version}.nupkg
"""

from __future__ import annotations

import json
import logging
import shutil
import threading
import urllib.error
import urllib.request
import uuid
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from coherence.core.exceptions import FeedError
from coherence.core.models import PackageRecord
from coherence.core.nupkg import parse_nuspec, read_nuspec
from coherence.core.version import NuGetVersion
from coherence.utils.net import is_http_url, validate_url_scheme

logger = logging.getLogger(__name__)

PUBLISH_RESOURCE = "PackagePublish/2.0.0"
BASE_ADDRESS_RESOURCE = "PackageBaseAddress/3.0.0"
USER_AGENT = "coherence-publisher"

# 推送成功的状态码；409 表示该版本已存在
_PUSH_OK = frozenset((200, 201, 202))
_PUSH_CONFLICT = 409


def _encode_multipart(field_name: str, filename: str, data: bytes) -> tuple[bytes, str]:
    """构造单文件 multipart/form-data 请求体，返回 (body, content_type)"""
    boundary = uuid.uuid4().hex
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field_name}"; filename="{filename}"\r\n'
        "Content-Type: application/octet-stream\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + data + tail, f"multipart/form-data; boundary={boundary}"


class NuGetFeedClient:
    """NuGet v3 HTTP 包源"""

    def __init__(self, source_url: str, *, query_timeout: float = 30) -> None:
        validate_url_scheme(source_url, context="feed source")
        self.source_url = source_url
        self.query_timeout = query_timeout
        self._lock = threading.Lock()
        self._resources: dict[str, str] | None = None

    # ---- 服务索引 ----

    def _get_json(self, url: str, timeout: float) -> Any:
        req = urllib.request.Request(
            url, headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            return json.loads(resp.read().decode("utf-8"))

    def resources(self) -> dict[str, str]:
        """解析服务索引（只请求一次，多线程共享结果）"""
        with self._lock:
            if self._resources is not None:
                return self._resources
            try:
                index = self._get_json(self.source_url, self.query_timeout)
            except urllib.error.HTTPError as e:
                raise FeedError(f"读取服务索引失败 {self.source_url}: HTTP {e.code}", e.code) from e
            except (urllib.error.URLError, OSError, json.JSONDecodeError) as e:
                raise FeedError(f"读取服务索引失败 {self.source_url}: {e}") from e

            found: dict[str, str] = {}
            for res in index.get("resources", []) or []:
                rtype, rid = res.get("@type"), res.get("@id")
                if isinstance(rtype, str) and isinstance(rid, str):
                    found.setdefault(rtype, rid)
            self._resources = found
            return found

    def _resource(self, rtype: str) -> str:
        url = self.resources().get(rtype)
        if not url:
            raise FeedError(f"包源 {self.source_url} 未提供资源 {rtype}")
        return url

    # ---- FeedClient 协议 ----

    def exists(self, package_id: str, version: str) -> bool:
        base = self._resource(BASE_ADDRESS_RESOURCE).rstrip("/")
        url = f"{base}/{package_id.lower()}/index.json"
        try:
            data = self._get_json(url, self.query_timeout)
        except urllib.error.HTTPError as e:
            if e.code == 404:
                return False
            raise FeedError(f"查询包版本失败 {package_id}: HTTP {e.code}", e.code) from e
        except (urllib.error.URLError, OSError, json.JSONDecodeError) as e:
            raise FeedError(f"查询包版本失败 {package_id}: {e}") from e

        target = NuGetVersion.parse(version)
        for v in data.get("versions", []) or []:
            try:
                if NuGetVersion.parse(v) == target:
                    return True
            except ValueError:
                logger.debug("忽略无法解析的版本: %s@%s", package_id, v)
        return False

    def push(self, package_path: str, api_key: str, timeout: float) -> None:
        url = self._resource(PUBLISH_RESOURCE)
        path = Path(package_path)
        body, content_type = _encode_multipart("package", path.name, path.read_bytes())
        req = urllib.request.Request(
            url, data=body, method="PUT",
            headers={
                "Content-Type": content_type,
                "User-Agent": USER_AGENT,
                "X-NuGet-ApiKey": api_key,
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
                status = resp.status
        except urllib.error.HTTPError as e:
            if e.code == _PUSH_CONFLICT:
                logger.warning("包已存在于源中 (409): %s", path.name)
                return
            raise FeedError(f"推送失败 {path.name}: HTTP {e.code} {e.reason}", e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise FeedError(f"推送失败 {path.name}: {e}") from e

        if status not in _PUSH_OK:
            raise FeedError(f"推送失败 {path.name}: 非预期状态码 {status}", status)


class FolderFeedClient:
    """目录形式的包源（文件共享）

    写入时同时解出 nuspec，与 NuGet 全局包目录布局一致，
    既可作为推送目标，也用于把发布结果展开到输出目录。
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _version_dir(self, package_id: str, version: str) -> Path:
        normalized = NuGetVersion.parse(version).normalized()
        return self.root / package_id.lower() / normalized

    def exists(self, package_id: str, version: str) -> bool:
        vdir = self._version_dir(package_id, version)
        return vdir.is_dir() and any(vdir.glob("*.nupkg"))

    def install(self, package_path: str | Path) -> Path:
        """把包写入 {root}/{id}/{version}/，返回版本目录"""
        nuspec = read_nuspec(package_path)
        record = parse_nuspec(nuspec, source=str(package_path))
        package_id = record.identifier.lower()
        vdir = self._version_dir(package_id, str(record.version))
        vdir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(package_path, vdir / f"{package_id}.{record.version.normalized()}.nupkg")
        (vdir / f"{package_id}.nuspec").write_bytes(nuspec)
        return vdir

    def push(self, package_path: str, api_key: str, timeout: float) -> None:
        vdir = self.install(package_path)
        logger.info("已写入目录源: %s", vdir)


def expand_packages(
    records: Iterable[PackageRecord], expand_dir: str | Path, max_workers: int = 4,
) -> list[Path]:
    """把包展开为 {id}/{version}/ 目录布局"""
    target = FolderFeedClient(expand_dir)
    paths = [r.package_path for r in records]
    logger.info("展开 %d 个包到 %s", len(paths), expand_dir)
    if max_workers <= 1 or len(paths) <= 1:
        return [target.install(p) for p in paths]
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(target.install, paths))


def make_feed_client(source: str) -> NuGetFeedClient | FolderFeedClient:
    """按地址类型选择客户端: http(s) 为 NuGet v3 源，其余视为目录"""
    if is_http_url(source):
        return NuGetFeedClient(source)
    return FolderFeedClient(source)
