"""
会话生命周期控制器 - 负责会话的启动、重连、停止与重置。

本模块是 wasession 的核心：调用方只需给出会话 ID，控制器负责
"同一会话只有一个存活连接"、"断线自动重连"、"注销后不再重连"。

【启动流程 ensure_started】
1. 已有存活客户端 → 直接返回（幂等）
2. 加载凭据 → 获取协议版本 → 通过工厂构造客户端
3. 登记记录（状态 starting），挂上三个观察者：
   - 状态观察者：open → connected；close（注销）→ logged_out；close（其他）→ 定时重连
   - 凭据观察者：合并并同步落盘
   - 消息观察者：交给可插拔的消息处理器（fire-and-forget，异常只记日志）
4. 建立连接并返回客户端

【并发模型】
- 每个会话一把 asyncio.Lock：启动、状态事件、凭据事件、停止都在锁内进行，
  因此同一会话的事件不会并发处理，并发启动也只会得到一个客户端
- 重连是一个显式的、可取消的定时任务（而不是在回调里递归调用启动函数），
  失败后按同样的间隔再次调度，没有退避增长也没有次数上限

【Java 开发者类比】
- SessionLifecycle 类似一个按 key 加锁的 ConnectionPool + ScheduledExecutorService
"""

import asyncio
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable

from loguru import logger

from wasession.protocol.base import ClientFactory, ProtocolClient
from wasession.protocol.events import (
    ConnectionUpdate,
    CredentialBlob,
    CredentialsUpdate,
    IncomingMessage,
)
from wasession.session.credentials import CredentialStore
from wasession.session.errors import ConstructionError
from wasession.session.registry import SessionRecord, SessionRegistry, SessionStatus

MessageHandler = Callable[[ProtocolClient, IncomingMessage], Awaitable[None]]
VersionSource = Callable[[], Awaitable[list[int]]]

DEFAULT_RECONNECT_DELAY_S = 2.0


class SessionLifecycle:
    """
    会话生命周期控制器。

    属性:
        registry: 会话注册表（由控制器独占修改）
        store: 凭据存储
        reconnect_delay_s: 非注销断线后的固定重连间隔（秒）
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: CredentialStore,
        client_factory: ClientFactory,
        version_source: VersionSource,
        message_handler: MessageHandler | None = None,
        reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY_S,
    ):
        self.registry = registry
        self.store = store
        self.reconnect_delay_s = reconnect_delay_s
        self._client_factory = client_factory
        self._version_source = version_source
        self._message_handler = message_handler
        self._locks: dict[str, asyncio.Lock] = {}
        self._blobs: dict[str, CredentialBlob] = {}  # 每个会话当前内存中的凭据
        self._reconnect_tasks: dict[str, asyncio.Task] = {}
        self._handler_tasks: set[asyncio.Task] = set()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # 启动
    # ------------------------------------------------------------------

    async def ensure_started(self, session_id: str) -> ProtocolClient:
        """
        确保会话已启动，返回其存活的协议客户端。

        参数:
            session_id: 会话 ID

        返回:
            协议客户端（已存活时原样返回）

        异常:
            ConstructionError: 凭据加载、协议版本获取、客户端构造或连接失败
        """
        async with self._lock_for(session_id):
            return await self._start_locked(session_id)

    async def _start_locked(self, session_id: str) -> ProtocolClient:
        record = self.registry.get(session_id)
        if record is not None and record.client is not None:
            return record.client

        if record is None:
            record = self.registry.upsert(session_id, SessionRecord(session_id=session_id))
        elif record.status == SessionStatus.LOGGED_OUT and self.store.has_credentials(session_id):
            logger.warning(f"[{session_id}] starting a logged-out session with stale credentials; reset it to pair again")

        try:
            blob = self.store.load(session_id)
            version = await self._version_source()
            client = self._client_factory(session_id, blob, version)
        except Exception as e:
            logger.error(f"[{session_id}] failed to construct client: {e}")
            raise ConstructionError(f"Failed to start session {session_id}: {e}") from e

        self._blobs[session_id] = blob
        record.client = client
        record.started_at = datetime.now()
        record.set_status(SessionStatus.STARTING)
        record.unsubscribers = [
            client.on_state_change(partial(self._on_state_change, session_id, client)),
            client.on_credentials_update(partial(self._on_credentials_update, session_id, client)),
            client.on_message(partial(self._on_message, session_id, client)),
        ]

        try:
            await client.connect()
        except Exception as e:
            record.detach()
            record.set_status(
                SessionStatus.DISCONNECTED_RETRYABLE if record.reconnect_attempts else SessionStatus.UNSTARTED
            )
            await self._close_quietly(session_id, client)
            logger.error(f"[{session_id}] failed to connect: {e}")
            raise ConstructionError(f"Failed to connect session {session_id}: {e}") from e

        logger.info(f"[{session_id}] starting (protocol v{'.'.join(map(str, client.version))})")
        return client

    # ------------------------------------------------------------------
    # 观察者
    # ------------------------------------------------------------------

    async def _on_state_change(self, session_id: str, client: ProtocolClient, update: ConnectionUpdate) -> None:
        async with self._lock_for(session_id):
            record = self.registry.get(session_id)
            if record is None or record.client is not client:
                logger.debug(f"[{session_id}] ignoring state change from a stale client")
                return

            if update.is_open:
                record.set_status(SessionStatus.CONNECTED)
                record.reconnect_attempts = 0
                logger.info(f"✅ [{session_id}] connected")

            elif update.is_closed:
                logger.info(f"[{session_id}] connection close reason: {update.reason}")
                record.detach()
                if update.is_logged_out:
                    record.set_status(SessionStatus.LOGGED_OUT)
                    logger.warning(f"[{session_id}] logged out, clear the session credentials to pair again")
                else:
                    record.set_status(SessionStatus.DISCONNECTED_RETRYABLE)
                    self._schedule_reconnect(session_id)

    async def _on_credentials_update(
        self, session_id: str, client: ProtocolClient, update: CredentialsUpdate
    ) -> None:
        async with self._lock_for(session_id):
            record = self.registry.get(session_id)
            if record is None or record.client is not client:
                logger.debug(f"[{session_id}] ignoring credentials from a stale client")
                return
            blob = self._blobs.setdefault(session_id, CredentialBlob())
            self.store.apply_update(session_id, blob, update)
            logger.debug(f"[{session_id}] credentials saved")

    async def _on_message(self, session_id: str, client: ProtocolClient, message: IncomingMessage) -> None:
        if self._message_handler is None:
            return
        # 不等待处理结果：慢处理器不能阻塞同一连接上的后续事件
        task = asyncio.create_task(self._dispatch_message(session_id, client, message))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def _dispatch_message(self, session_id: str, client: ProtocolClient, message: IncomingMessage) -> None:
        try:
            await self._message_handler(client, message)
        except Exception as e:
            logger.error(f"[{session_id}] message handler error: {e}")

    # ------------------------------------------------------------------
    # 重连
    # ------------------------------------------------------------------

    def _schedule_reconnect(self, session_id: str) -> None:
        existing = self._reconnect_tasks.get(session_id)
        if existing is not None and not existing.done():
            return
        logger.info(f"[{session_id}] reconnecting in {self.reconnect_delay_s}s")
        self._reconnect_tasks[session_id] = asyncio.create_task(self._reconnect_after_delay(session_id))

    def _cancel_reconnect(self, session_id: str) -> None:
        task = self._reconnect_tasks.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()

    def has_pending_reconnect(self, session_id: str) -> bool:
        task = self._reconnect_tasks.get(session_id)
        return task is not None and not task.done()

    async def _reconnect_after_delay(self, session_id: str) -> None:
        await asyncio.sleep(self.reconnect_delay_s)
        self._reconnect_tasks.pop(session_id, None)

        async with self._lock_for(session_id):
            record = self.registry.get(session_id)
            # 等待期间可能被停止、重置或已由调用方重新启动
            if record is None or record.client is not None or record.status != SessionStatus.DISCONNECTED_RETRYABLE:
                return

            record.reconnect_attempts += 1
            try:
                await self._start_locked(session_id)
            except ConstructionError as e:
                logger.error(f"[{session_id}] reconnect attempt {record.reconnect_attempts} failed: {e.detail}")
                record.set_status(SessionStatus.DISCONNECTED_RETRYABLE)
                self._schedule_reconnect(session_id)

    # ------------------------------------------------------------------
    # 停止 / 重置 / 查询
    # ------------------------------------------------------------------

    async def stop(self, session_id: str) -> bool:
        """
        停止会话：取消待执行的重连，卸下观察者，关闭客户端，状态回到 unstarted。

        返回:
            True 表示会话存在并已停止，False 表示会话未知
        """
        async with self._lock_for(session_id):
            self._cancel_reconnect(session_id)
            record = self.registry.get(session_id)
            if record is None:
                return False
            client = record.detach()
            record.set_status(SessionStatus.UNSTARTED)
            record.reconnect_attempts = 0

        if client is not None:
            await self._close_quietly(session_id, client)
        logger.info(f"[{session_id}] stopped")
        return True

    async def reset(self, session_id: str) -> bool:
        """
        重置会话：停止连接、清除凭据并删除记录，之后可以重新配对。

        返回:
            True 表示删除了已有凭据
        """
        await self.stop(session_id)
        async with self._lock_for(session_id):
            self.registry.remove(session_id)
            self._blobs.pop(session_id, None)
            return self.store.clear(session_id)

    async def stop_all(self) -> None:
        """停止所有会话，并取消尚未完成的消息处理任务。"""
        for record in self.registry.records():
            await self.stop(record.session_id)

        tasks = list(self._handler_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def status_of(self, session_id: str) -> SessionStatus:
        return self.registry.status_of(session_id)

    def sessions(self) -> list[SessionRecord]:
        return self.registry.records()

    async def _close_quietly(self, session_id: str, client: ProtocolClient) -> None:
        try:
            await client.close()
        except Exception as e:
            logger.warning(f"[{session_id}] error while closing client: {e}")
