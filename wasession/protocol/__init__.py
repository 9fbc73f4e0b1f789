"""
协议客户端模块 - 封装外部即时通讯协议客户端。

本模块采用插件式架构：ProtocolClient 抽象基类定义会话控制器依赖的能力接口，
具体协议实现（默认为 WebSocket 桥接客户端 BridgeClient）实现该接口。
控制器通过注入的客户端工厂创建实例，因此测试时可以替换为测试替身。

事件流向：
  协议服务端 → 桥接服务 → BridgeClient → 统一事件 → 会话控制器 / 配对协调器
"""

from wasession.protocol.base import ClientFactory, ProtocolClient
from wasession.protocol.events import (
    ConnectionUpdate,
    CredentialBlob,
    CredentialsUpdate,
    DisconnectReason,
    IncomingMessage,
)

__all__ = [
    "ClientFactory",
    "ProtocolClient",
    "ConnectionUpdate",
    "CredentialBlob",
    "CredentialsUpdate",
    "DisconnectReason",
    "IncomingMessage",
]
