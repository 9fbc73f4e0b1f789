"""
会话管理模块 - 多会话连接的生命周期、配对与凭据持久化。

【架构定位】
组件自底向上：
- CredentialStore：每个会话独立的凭据目录
- SessionRegistry：会话 ID → 记录（客户端句柄 + 状态）
- SessionLifecycle：启动 / 重连 / 停止 / 重置
- PairingCoordinator：带超时的一次性配对握手

调用方（HTTP 接入层、CLI）只与 SessionLifecycle 和 PairingCoordinator 打交道。

【Java 开发者类比】
- SessionRegistry 类似一个 ConcurrentHashMap<String, SessionRecord>
- SessionLifecycle 类似连接池管理器，PairingCoordinator 类似 CompletableFuture.orTimeout
"""

from wasession.session.credentials import CredentialStore
from wasession.session.errors import (
    ConnectionClosed,
    ConstructionError,
    InvalidSessionId,
    PairingAlreadyInProgress,
    PairingTimeout,
    WASessionError,
)
from wasession.session.lifecycle import SessionLifecycle
from wasession.session.pairing import PairingCoordinator, PairingResult
from wasession.session.registry import SessionRecord, SessionRegistry, SessionStatus

__all__ = [
    "CredentialStore",
    "SessionLifecycle",
    "PairingCoordinator",
    "PairingResult",
    "SessionRecord",
    "SessionRegistry",
    "SessionStatus",
    "WASessionError",
    "ConstructionError",
    "PairingTimeout",
    "PairingAlreadyInProgress",
    "ConnectionClosed",
    "InvalidSessionId",
]
