"""
协议客户端基类模块 - 定义所有协议客户端的统一能力接口。

本模块提供了 ProtocolClient 抽象基类。会话控制器只依赖这里定义的能力：
- on_state_change / on_message / on_credentials_update：注册事件观察者
- connect / close：建立与关闭连接
- send：发送文本消息
- request_pairing_code：直接请求配对码（可选能力）

具体实现：
- BridgeClient（protocol/bridge.py）：通过 WebSocket 连接 Node.js 协议桥接服务
- 测试替身（tests/conftest.py）：由测试代码手动触发事件

【事件投递约定】
1. 同一客户端的事件严格按产生顺序投递，每个观察者被依次 await
2. 事件只能从客户端自己的后台任务投递，不能在 connect() 内部同步投递
   （控制器在 connect() 期间持有该会话的锁，观察者也需要这把锁）
3. 单个观察者抛出的异常只记录日志，不影响其他观察者和后续事件

【Java 开发者类比】
- ProtocolClient 相当于 Java 的 abstract class + interface
- 观察者注册返回"取消订阅函数"，类似 RxJava 的 Disposable
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from loguru import logger

from wasession.protocol.events import (
    ConnectionUpdate,
    CredentialBlob,
    CredentialsUpdate,
    IncomingMessage,
)

StateObserver = Callable[[ConnectionUpdate], Awaitable[None]]
MessageObserver = Callable[[IncomingMessage], Awaitable[None]]
CredentialsObserver = Callable[[CredentialsUpdate], Awaitable[None]]
Unsubscribe = Callable[[], None]


class ProtocolClient(ABC):
    """
    协议客户端抽象基类 - 单个会话的一条协议连接。

    属性:
        session_id: 所属会话 ID
        credentials: 构造时传入的持久化凭据
        version: 协议版本号（如 [2, 3000, 1015901307]）
    """

    name: str = "base"

    def __init__(self, session_id: str, credentials: CredentialBlob, version: list[int]):
        self.session_id = session_id
        self.credentials = credentials
        self.version = version
        self._observers: dict[str, list[Callable[[Any], Awaitable[None]]]] = {
            "state": [],
            "message": [],
            "credentials": [],
        }

    # ------------------------------------------------------------------
    # 观察者注册
    # ------------------------------------------------------------------

    def on_state_change(self, callback: StateObserver) -> Unsubscribe:
        """注册连接状态变化观察者，返回取消订阅函数。"""
        return self._subscribe("state", callback)

    def on_message(self, callback: MessageObserver) -> Unsubscribe:
        """注册入站消息观察者，返回取消订阅函数。"""
        return self._subscribe("message", callback)

    def on_credentials_update(self, callback: CredentialsObserver) -> Unsubscribe:
        """注册凭据变化观察者，返回取消订阅函数。"""
        return self._subscribe("credentials", callback)

    @property
    def observer_count(self) -> int:
        """当前注册的观察者总数（用于检测观察者泄漏）。"""
        return sum(len(callbacks) for callbacks in self._observers.values())

    def _subscribe(self, kind: str, callback: Callable[[Any], Awaitable[None]]) -> Unsubscribe:
        callbacks = self._observers[kind]
        callbacks.append(callback)

        def unsubscribe() -> None:
            # 重复调用是安全的
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    async def _emit(self, kind: str, event: Any) -> None:
        """
        按注册顺序依次通知某类事件的所有观察者。

        遍历的是观察者列表的快照：观察者在回调中取消订阅自己（如一次性的
        配对等待）不会影响本轮其余观察者。
        """
        for callback in list(self._observers[kind]):
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"[{self.session_id}] {kind} observer failed: {e}")

    # ------------------------------------------------------------------
    # 连接能力（子类实现）
    # ------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None:
        """建立连接。返回后事件开始由后台任务投递。"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """关闭连接并释放资源。"""
        pass

    @abstractmethod
    async def send(self, to: str, text: str) -> None:
        """
        发送文本消息。

        参数:
            to: 接收方地址（通常为 IncomingMessage.remote_jid）
            text: 消息文本
        """
        pass

    @property
    def supports_pairing_code(self) -> bool:
        """是否支持直接请求配对码。不支持时配对流程退回到等待二维码事件。"""
        return False

    async def request_pairing_code(self, phone_number: str) -> str:
        """
        为指定号码直接请求配对码。

        参数:
            phone_number: 要配对的手机号（纯数字，含国家码）

        返回:
            配对码字符串
        """
        raise NotImplementedError(f"{self.name} client cannot request pairing codes")


ClientFactory = Callable[[str, CredentialBlob, list[int]], ProtocolClient]
