"""
调用方门面模块 - 以 HTTP 接口的形状暴露会话管理能力。

HTTP 接入层（不在本包内）只需把请求转发到 SessionAPI，
再把返回的 (状态码, 响应体) 原样写回即可：

- POST /api/generate {sessionId?} → generate()
- POST /api/deploy   {sessionId?} → deploy()
- GET  /api/status?sessionId=     → status()

本模块同时提供 build_api()：根据配置组装注册表、凭据存储、
协议客户端工厂、生命周期控制器和配对协调器（即整个进程的组合根）。
"""

from typing import Any

from loguru import logger

from wasession.config.schema import Config
from wasession.handlers.commands import CommandHandler
from wasession.protocol.base import ClientFactory
from wasession.protocol.bridge import bridge_client_factory
from wasession.protocol.version import VersionProvider
from wasession.session.credentials import CredentialStore
from wasession.session.lifecycle import SessionLifecycle
from wasession.session.pairing import PairingCoordinator
from wasession.session.registry import SessionRegistry

Response = tuple[int, dict[str, Any]]


class SessionAPI:
    """
    会话管理门面。

    属性:
        lifecycle: 会话生命周期控制器
        pairing: 配对协调器
        default_session_id: 请求未携带会话 ID 时使用的默认值
    """

    def __init__(self, lifecycle: SessionLifecycle, pairing: PairingCoordinator, default_session_id: str = "default"):
        self.lifecycle = lifecycle
        self.pairing = pairing
        self.default_session_id = default_session_id

    def _resolve(self, session_id: str | None) -> str:
        # 空白 ID 与未携带 ID 等价
        if session_id is None or not session_id.strip():
            return self.default_session_id
        return session_id

    async def generate(self, session_id: str | None = None) -> Response:
        """获取配对码；已配对时返回 already_paired。"""
        sid = self._resolve(session_id)
        try:
            result = await self.pairing.get_pairing_code(sid)
        except Exception as e:
            logger.error(f"[{sid}] generate error: {e}")
            return 500, {"error": "Failed to generate pairing code", "detail": str(e)}

        if result.already_paired:
            return 200, {"message": "already_paired"}
        return 200, {"pairing_code": result.code}

    async def deploy(self, session_id: str | None = None) -> Response:
        """确保会话已启动（配对完成后调用，让连接常驻）。"""
        sid = self._resolve(session_id)
        try:
            await self.lifecycle.ensure_started(sid)
        except Exception as e:
            logger.error(f"[{sid}] deploy error: {e}")
            return 500, {"error": "Failed to deploy bot", "detail": str(e)}
        return 200, {"success": True, "message": "Bot start/ensure invoked"}

    async def status(self, session_id: str | None = None) -> Response:
        """查询会话状态；未知会话返回 stopped。"""
        sid = self._resolve(session_id)
        return 200, {"success": True, "status": self.lifecycle.status_of(sid).public}


def build_api(config: Config, client_factory: ClientFactory | None = None) -> SessionAPI:
    """
    根据配置组装完整的会话管理对象图。

    参数:
        config: 根配置
        client_factory: 协议客户端工厂，默认使用桥接客户端

    返回:
        SessionAPI 门面实例
    """
    store = CredentialStore(config.sessions_path)
    lifecycle = SessionLifecycle(
        registry=SessionRegistry(),
        store=store,
        client_factory=client_factory or bridge_client_factory(config.bridge),
        version_source=VersionProvider(config.sessions.version_url, pinned=config.sessions.protocol_version),
        message_handler=CommandHandler(config.owner_number),
        reconnect_delay_s=config.sessions.reconnect_delay_s,
    )
    pairing = PairingCoordinator(
        lifecycle=lifecycle,
        store=store,
        owner_number=config.owner_number,
        default_timeout_s=config.sessions.pairing_timeout_s,
        concurrency=config.sessions.concurrent_pairing,
    )
    return SessionAPI(lifecycle, pairing, default_session_id=config.sessions.default_id)
