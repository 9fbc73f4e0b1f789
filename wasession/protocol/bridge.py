"""
桥接协议客户端 - 基于 Node.js 桥接服务的协议连接实现。

本模块实现了 ProtocolClient 的默认版本：
- 每个会话建立一条独立的 WebSocket 连接到桥接服务
- 桥接服务使用 @whiskeysockets/baileys 处理加密、认证和线路协议
- Python 端只负责 JSON 帧的收发和事件转换

架构特点：
- 桥接模式：Python <-> WebSocket <-> Node.js Bridge <-> 即时通讯服务器
- 凭据由 Python 端持久化：start 帧携带已保存的凭据，桥接通过 creds 帧回传变化
- 不做内部重连：连接断开时只上报 close 事件，重连策略由会话控制器统一负责

消息协议（Python -> Bridge）：
- start：启动会话（session、token、version、creds、keys）
- send：发送消息（to、text）
- request_pairing_code：请求配对码（id、phone）
- close：关闭会话

消息协议（Bridge -> Python）：
- connection：连接状态更新（connection、qr、reason、detail）
- creds：凭据变化（creds、keys）
- message：收到的用户消息
- pairing_code：配对码请求的应答（id、code 或 error）
- error：错误信息

依赖：
- websockets：Python WebSocket 客户端库
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Any

from loguru import logger

from wasession.config.schema import BridgeConfig
from wasession.protocol.base import ClientFactory, ProtocolClient
from wasession.protocol.events import (
    ConnectionUpdate,
    CredentialBlob,
    CredentialsUpdate,
    DisconnectReason,
    IncomingMessage,
)
from wasession.session.errors import ConnectionClosed
from wasession.utils.helpers import truncate_string


class BridgeClient(ProtocolClient):
    """
    桥接协议客户端 - 通过 WebSocket 与 Node.js 桥接服务通信。

    生命周期：
    1. connect()：建立 WebSocket，发送 start 帧，启动后台读取任务
    2. 后台任务持续读取桥接帧，转换为统一事件并依次通知观察者
    3. 桥接上报 close 或 WebSocket 断开时，发出一次 close 事件后结束读取
    4. close()：主动关闭，不再发出 close 事件
    """

    name = "bridge"

    def __init__(
        self,
        session_id: str,
        credentials: CredentialBlob,
        version: list[int],
        config: BridgeConfig,
    ):
        super().__init__(session_id, credentials, version)
        self.config = config
        self._ws = None  # WebSocket 连接对象
        self._reader: asyncio.Task | None = None  # 后台读取任务
        self._pending: dict[str, asyncio.Future[str]] = {}  # 未完成的配对码请求
        self._closing = False  # 是否为主动关闭
        self._close_reported = False  # close 事件是否已上报

    async def connect(self) -> None:
        import websockets

        logger.info(f"[{self.session_id}] Connecting to bridge at {self.config.url}...")
        self._ws = await websockets.connect(self.config.url)
        await self._send_frame({
            "type": "start",
            "session": self.session_id,
            "token": self.config.token or None,
            "version": self.version,
            "creds": self.credentials.creds,
            "keys": self.credentials.keys,
        })
        self._reader = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        self._closing = True

        if self._ws is not None:
            try:
                await self._send_frame({"type": "close"})
            except Exception as e:
                logger.debug(f"[{self.session_id}] close frame not delivered: {e}")
            await self._ws.close()
            self._ws = None

        if self._reader and not self._reader.done() and self._reader is not asyncio.current_task():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        self._reader = None

    async def send(self, to: str, text: str) -> None:
        await self._send_frame({"type": "send", "to": to, "text": text})

    @property
    def supports_pairing_code(self) -> bool:
        return True

    async def request_pairing_code(self, phone_number: str) -> str:
        """
        通过桥接请求配对码。

        每个请求携带一个随机 ID，桥接在 pairing_code 帧中原样带回，
        据此找到对应的 Future。超时由 bridge.request_timeout_s 控制。
        """
        request_id = uuid.uuid4().hex[:12]
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send_frame({"type": "request_pairing_code", "id": request_id, "phone": phone_number})
            return await asyncio.wait_for(future, timeout=self.config.request_timeout_s)
        finally:
            self._pending.pop(request_id, None)

    async def _send_frame(self, payload: dict[str, Any]) -> None:
        if self._ws is None or self._close_reported:
            raise ConnectionClosed(f"bridge connection for session {self.session_id} is closed")
        await self._ws.send(json.dumps(payload))

    async def _read_loop(self) -> None:
        """后台读取循环：逐帧处理，连接结束时补发 close 事件。"""
        detail = "bridge connection lost"
        try:
            async for raw in self._ws:
                try:
                    await self._handle_bridge_message(raw)
                except Exception as e:
                    logger.error(f"[{self.session_id}] Error handling bridge message: {e}")
                if self._close_reported:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            detail = str(e) or detail
            logger.warning(f"[{self.session_id}] Bridge connection error: {e}")
        finally:
            self._fail_pending(detail)

        if self._closing:
            return

        if not self._close_reported:
            self._close_reported = True
            await self._emit("state", ConnectionUpdate(
                connection="close",
                reason=DisconnectReason.CONNECTION_LOST,
                detail=detail,
            ))

        if self._ws is not None:
            await self._ws.close()

    def _fail_pending(self, detail: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionClosed(detail))
        self._pending.clear()

    async def _handle_bridge_message(self, raw: str | bytes) -> None:
        """
        处理从桥接服务收到的一帧消息。

        参数:
            raw: 原始 JSON 字符串
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[{self.session_id}] Invalid JSON from bridge: {truncate_string(str(raw))}")
            return

        msg_type = data.get("type")

        if msg_type == "connection":
            update = ConnectionUpdate(
                connection=data.get("connection"),
                qr=data.get("qr"),
                reason=data.get("reason"),
                detail=data.get("detail") or "",
            )
            if update.is_closed:
                # 之后的发送都应失败；读取循环在本帧处理完后退出
                self._close_reported = True
            await self._emit("state", update)

        elif msg_type == "creds":
            await self._emit("credentials", CredentialsUpdate(
                creds=data.get("creds") or {},
                keys=data.get("keys") or {},
            ))

        elif msg_type == "message":
            ts = data.get("timestamp")
            await self._emit("message", IncomingMessage(
                id=data.get("id") or "",
                remote_jid=data.get("from") or "",
                text=data.get("text") or "",
                from_me=bool(data.get("fromMe", False)),
                push_name=data.get("pushName") or "",
                timestamp=datetime.fromtimestamp(ts) if ts else datetime.now(),
                is_group=bool(data.get("isGroup", False)),
            ))

        elif msg_type == "pairing_code":
            future = self._pending.get(data.get("id") or "")
            if future is None or future.done():
                logger.debug(f"[{self.session_id}] Unmatched pairing code reply")
                return
            if data.get("error"):
                future.set_exception(RuntimeError(f"bridge rejected pairing code request: {data['error']}"))
            else:
                future.set_result(data.get("code") or "")

        elif msg_type == "error":
            logger.error(f"[{self.session_id}] Bridge error: {data.get('error')}")

        else:
            logger.debug(f"[{self.session_id}] Ignoring bridge frame of type {msg_type!r}")


def bridge_client_factory(config: BridgeConfig) -> ClientFactory:
    """
    创建绑定了桥接配置的客户端工厂，供会话控制器注入使用。

    参数:
        config: 桥接服务配置

    返回:
        工厂函数 (session_id, credentials, version) -> BridgeClient
    """
    def factory(session_id: str, credentials: CredentialBlob, version: list[int]) -> ProtocolClient:
        return BridgeClient(session_id, credentials, version, config)

    return factory
