"""
协议版本获取模块。

协议服务端会拒绝过旧的客户端版本，因此每次构造协议客户端之前需要
拿到当前可用的协议版本号。版本号来源：
1. 配置中固定的 sessions.protocol_version（离线部署或需要锁定版本时使用）
2. 否则从协议库发布的版本文件在线获取（JSON：{"version": [2, 3000, 1015901307]}）

在线获取的结果会在进程内缓存一段时间，避免每次重连都发起 HTTP 请求。
获取失败时直接抛出异常，由会话控制器包装为 ConstructionError。
"""

import time

import httpx
from loguru import logger


async def fetch_latest_version(url: str, timeout: float = 10.0) -> list[int]:
    """
    从版本文件地址获取最新协议版本号。

    参数:
        url: 版本文件地址
        timeout: HTTP 请求超时（秒）

    返回:
        版本号列表，如 [2, 3000, 1015901307]

    异常:
        httpx.HTTPError: 网络或 HTTP 状态错误
        ValueError: 版本文件格式不正确
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url)
        response.raise_for_status()
        data = response.json()

    version = data.get("version") if isinstance(data, dict) else None
    if not isinstance(version, list) or not version or not all(isinstance(p, int) for p in version):
        raise ValueError(f"Unexpected protocol version payload: {data!r}")
    return version


class VersionProvider:
    """
    协议版本提供者（可直接 await 调用）。

    属性:
        pinned: 固定版本号，非 None 时不发起网络请求
        url: 版本文件地址
        cache_ttl_s: 在线获取结果的缓存时长（秒）
    """

    def __init__(
        self,
        url: str,
        pinned: list[int] | None = None,
        cache_ttl_s: float = 6 * 60 * 60,
    ):
        self.url = url
        self.pinned = pinned
        self.cache_ttl_s = cache_ttl_s
        self._cached: list[int] | None = None
        self._fetched_at = 0.0

    async def __call__(self) -> list[int]:
        if self.pinned:
            return list(self.pinned)

        if self._cached and time.monotonic() - self._fetched_at < self.cache_ttl_s:
            return list(self._cached)

        version = await fetch_latest_version(self.url)
        logger.debug(f"Fetched protocol version {'.'.join(map(str, version))}")
        self._cached = version
        self._fetched_at = time.monotonic()
        return list(version)
