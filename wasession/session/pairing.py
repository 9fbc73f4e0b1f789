"""
配对协调器 - 把"配对数据异步到达"转换成调用方可以等待的同步结果。

【配对流程 get_pairing_code】
1. 会话已有凭据 → 直接返回"已配对"，不建立任何连接
2. ensure_started 获取存活客户端
3. 客户端支持直接请求配对码 → 请求；成功即返回，失败则退回第 4 步
4. 挂一个一次性的状态观察者，等待带有配对二维码串的状态事件，
   与超时计时器赛跑；先到者胜出，另一方被取消，观察者一定会被卸下

整个流程共用一个截止时间，第 3、4 步都只能使用剩余时间。

【同一会话的并发请求】
- join（默认）：后来的调用方加入正在进行的请求，共享同一个结果或错误
- reject：后来的调用方立即收到 PairingAlreadyInProgress
"""

import asyncio
from dataclasses import dataclass
from typing import Literal

from loguru import logger

from wasession.protocol.base import ProtocolClient
from wasession.protocol.events import ConnectionUpdate
from wasession.session.credentials import CredentialStore
from wasession.session.errors import PairingAlreadyInProgress, PairingTimeout
from wasession.session.lifecycle import SessionLifecycle

DEFAULT_PAIRING_TIMEOUT_S = 60.0


@dataclass
class PairingResult:
    """配对结果：already_paired 为 True 时 code 为 None。"""

    already_paired: bool = False
    code: str | None = None


class PairingCoordinator:
    """
    配对协调器。

    属性:
        lifecycle: 会话生命周期控制器
        store: 凭据存储（用于"已配对"判断）
        owner_number: 直接请求配对码时的默认手机号
        default_timeout_s: 默认等待超时（秒）
        concurrency: 同一会话并发请求的策略（join / reject）
    """

    def __init__(
        self,
        lifecycle: SessionLifecycle,
        store: CredentialStore,
        owner_number: str,
        default_timeout_s: float = DEFAULT_PAIRING_TIMEOUT_S,
        concurrency: Literal["join", "reject"] = "join",
    ):
        self.lifecycle = lifecycle
        self.store = store
        self.owner_number = owner_number
        self.default_timeout_s = default_timeout_s
        self.concurrency = concurrency
        self._inflight: dict[str, asyncio.Task[PairingResult]] = {}

    def is_pending(self, session_id: str) -> bool:
        task = self._inflight.get(session_id)
        return task is not None and not task.done()

    async def get_pairing_code(
        self,
        session_id: str,
        timeout: float | None = None,
        phone_number: str | None = None,
    ) -> PairingResult:
        """
        获取会话的配对码。

        参数:
            session_id: 会话 ID
            timeout: 等待超时（秒），为 None 时使用默认值
            phone_number: 直接请求配对码时使用的手机号，为 None 时使用主人号码

        返回:
            PairingResult（已配对 或 配对码）

        异常:
            PairingTimeout: 超时仍未拿到配对码
            PairingAlreadyInProgress: reject 策略下已有请求在进行
            ConstructionError: 会话启动失败
        """
        if self.store.has_credentials(session_id):
            return PairingResult(already_paired=True)

        task = self._inflight.get(session_id)
        if task is not None and not task.done():
            if self.concurrency == "reject":
                raise PairingAlreadyInProgress(f"A pairing request for session {session_id} is already in progress")
            logger.debug(f"[{session_id}] joining in-flight pairing request")
        else:
            task = asyncio.create_task(self._pair(
                session_id,
                self.default_timeout_s if timeout is None else timeout,
                phone_number or self.owner_number,
            ))
            self._inflight[session_id] = task
            task.add_done_callback(self._forget(session_id))

        # shield：某个调用方被取消时，不影响其他正在等待同一请求的调用方
        return await asyncio.shield(task)

    async def _pair(self, session_id: str, timeout: float, phone_number: str) -> PairingResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        client = await self.lifecycle.ensure_started(session_id)

        if client.supports_pairing_code:
            try:
                code = await asyncio.wait_for(
                    client.request_pairing_code(phone_number),
                    timeout=max(deadline - loop.time(), 0),
                )
                logger.info(f"[{session_id}] pairing code issued")
                return PairingResult(code=code)
            except Exception as e:
                logger.warning(f"[{session_id}] requestPairingCode failed, falling back to qr event: {e}")

        code = await self._wait_for_qr(session_id, client, max(deadline - loop.time(), 0))
        return PairingResult(code=code)

    async def _wait_for_qr(self, session_id: str, client: ProtocolClient, timeout: float) -> str:
        """等待第一个携带二维码串的状态事件，超时抛出 PairingTimeout。"""
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()

        async def on_update(update: ConnectionUpdate) -> None:
            if update.qr and not future.done():
                future.set_result(update.qr)

        unsubscribe = client.on_state_change(on_update)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise PairingTimeout(f"Timed out waiting for pairing QR for session {session_id}") from None
        finally:
            unsubscribe()
            if not future.done():
                future.cancel()

    def _forget(self, session_id: str):
        """生成 done 回调：请求结束后从在途表中移除（仅当仍是同一个任务时）。"""
        def discard(task: asyncio.Task) -> None:
            if self._inflight.get(session_id) is task:
                del self._inflight[session_id]
            # 所有调用方都已取消时也要取走异常，避免 "exception was never retrieved" 警告
            if not task.cancelled():
                task.exception()

        return discard
