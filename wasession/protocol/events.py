"""
协议事件类型定义模块 - 定义协议客户端向外发出的统一事件结构。

本模块定义了三种事件和一个断线原因枚举：
- ConnectionUpdate：连接状态变化（open / close / connecting，可能携带配对二维码串）
- IncomingMessage：收到的一条消息
- CredentialsUpdate：凭据发生变化（需要立即持久化）
- DisconnectReason：协议层的断线状态码

无论底层协议库的事件长什么样，适配器都必须转换成这里的结构再交给控制器，
控制器因此与具体协议库解耦。

【Java 开发者类比】
- @dataclass 等价于 Java 的 record 类
- IntEnum 等价于带数值的 Java enum
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any


class DisconnectReason(IntEnum):
    """协议层断线原因码（与协议库的 statusCode 一致）。"""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


@dataclass
class ConnectionUpdate:
    """
    连接状态变化事件。

    属性:
        connection: "open" | "close" | "connecting"；仅携带二维码时可能为 None
        qr: 配对二维码串（首次登录时出现，即"配对码"）
        reason: 断线原因码，仅 connection="close" 时有意义
        detail: 断线的可读描述
    """

    connection: str | None = None
    qr: str | None = None
    reason: int | None = None
    detail: str = ""

    @property
    def is_open(self) -> bool:
        return self.connection == "open"

    @property
    def is_closed(self) -> bool:
        return self.connection == "close"

    @property
    def is_logged_out(self) -> bool:
        """是否为权威注销（服务端明确告知账号已登出，不应再重连）。"""
        return self.is_closed and self.reason == DisconnectReason.LOGGED_OUT


@dataclass
class IncomingMessage:
    """
    入站消息事件。

    属性:
        id: 协议层消息 ID
        remote_jid: 会话对端地址（私聊为用户地址，群聊为群地址），回复时发往这里
        text: 消息文本（非文本消息为空字符串）
        from_me: 是否是本账号自己发出的消息
        push_name: 发送者昵称
        timestamp: 接收时间
        is_group: 是否来自群聊
    """

    id: str
    remote_jid: str
    text: str = ""
    from_me: bool = False
    push_name: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    is_group: bool = False

    @property
    def sender(self) -> str:
        """发送者号码（去掉 @ 后缀的地址部分）。"""
        return self.remote_jid.split("@")[0] if "@" in self.remote_jid else self.remote_jid


@dataclass
class CredentialsUpdate:
    """
    凭据变化事件（部分更新）。

    属性:
        creds: 需要合并进 creds.json 的字段
        keys: 信令密钥增量 {类别: {密钥 ID: 值}}，值为 None 表示删除该密钥
    """

    creds: dict[str, Any] = field(default_factory=dict)
    keys: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass
class CredentialBlob:
    """
    一个会话的完整凭据（协议客户端构造参数之一）。

    属性:
        creds: 账号身份凭据（注册信息、身份密钥等），对应 creds.json
        keys: 信令密钥 {类别: {密钥 ID: 值}}，每个密钥对应一个文件
    """

    creds: dict[str, Any] = field(default_factory=dict)
    keys: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.creds and not self.keys

    def apply(self, update: CredentialsUpdate) -> None:
        """将一次部分更新合并进当前凭据（值为 None 的密钥被删除）。"""
        self.creds.update(update.creds)
        for category, entries in update.keys.items():
            bucket = self.keys.setdefault(category, {})
            for key_id, value in entries.items():
                if value is None:
                    bucket.pop(key_id, None)
                else:
                    bucket[key_id] = value
            if not bucket:
                self.keys.pop(category, None)
