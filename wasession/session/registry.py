"""
会话注册表模块 - "某个会话是否在运行、处于什么状态"的唯一事实来源。

本模块包含三个类型：
- SessionStatus：会话状态枚举，并提供对外状态名映射
- SessionRecord：单个会话的记录（客户端句柄 + 状态）
- SessionRegistry：会话 ID → 记录 的内存映射

注册表是纯内存结构，没有 I/O，也不做同步：所有修改都由会话控制器
按会话串行化后进行（asyncio 单事件循环下，字典操作本身是原子的）。

【状态流转】
unstarted ──start──▶ starting ──open──▶ connected
                        ▲                   │ close（非注销）
                        │                   ▼
                        └──reconnect── disconnected_retryable
connected / starting ──close（注销）──▶ logged_out（终态，不再重连）
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from wasession.protocol.base import ProtocolClient, Unsubscribe


class SessionStatus(str, Enum):
    """会话状态。"""

    UNSTARTED = "unstarted"
    STARTING = "starting"
    CONNECTED = "connected"
    DISCONNECTED_RETRYABLE = "disconnected_retryable"
    LOGGED_OUT = "logged_out"

    @property
    def public(self) -> str:
        """
        对外状态名（状态查询接口返回值）。

        对外只暴露 connected / stopped / starting / logged_out 四种：
        未启动和等待重连都表现为 stopped。
        """
        return _PUBLIC_STATUS[self]


_PUBLIC_STATUS = {
    SessionStatus.UNSTARTED: "stopped",
    SessionStatus.STARTING: "starting",
    SessionStatus.CONNECTED: "connected",
    SessionStatus.DISCONNECTED_RETRYABLE: "stopped",
    SessionStatus.LOGGED_OUT: "logged_out",
}


@dataclass
class SessionRecord:
    """
    单个会话的记录。

    属性:
        session_id: 会话 ID
        client: 当前存活的协议客户端；未启动、断线或注销时为 None
        status: 会话状态
        started_at: 最近一次启动时间
        updated_at: 最近一次状态变化时间
        reconnect_attempts: 自上次连接成功以来的重连次数
        unsubscribers: 控制器挂在当前客户端上的观察者的取消函数
    """

    session_id: str
    client: ProtocolClient | None = None
    status: SessionStatus = SessionStatus.UNSTARTED
    started_at: datetime | None = None
    updated_at: datetime = field(default_factory=datetime.now)
    reconnect_attempts: int = 0
    unsubscribers: list[Unsubscribe] = field(default_factory=list)

    @property
    def is_live(self) -> bool:
        return self.client is not None

    def set_status(self, status: SessionStatus) -> None:
        self.status = status
        self.updated_at = datetime.now()

    def detach(self) -> ProtocolClient | None:
        """取消全部观察者并交出客户端句柄（记录本身不再持有它）。"""
        for unsubscribe in self.unsubscribers:
            unsubscribe()
        self.unsubscribers.clear()
        client, self.client = self.client, None
        return client


class SessionRegistry:
    """会话注册表 - 每个会话 ID 恰好对应一条记录。"""

    def __init__(self):
        self._records: dict[str, SessionRecord] = {}

    def get(self, session_id: str) -> SessionRecord | None:
        return self._records.get(session_id)

    def upsert(self, session_id: str, record: SessionRecord) -> SessionRecord:
        self._records[session_id] = record
        return record

    def status_of(self, session_id: str) -> SessionStatus:
        """查询会话状态；未知会话返回 UNSTARTED，从不报错。"""
        record = self._records.get(session_id)
        return record.status if record else SessionStatus.UNSTARTED

    def remove(self, session_id: str) -> SessionRecord | None:
        return self._records.pop(session_id, None)

    def records(self) -> list[SessionRecord]:
        return list(self._records.values())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._records

    def __len__(self) -> int:
        return len(self._records)
