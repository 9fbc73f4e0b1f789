"""
默认消息命令处理器。

会话控制器把每条入站消息交给一个可插拔的处理器（签名：
async handler(client, message) -> None）。本模块提供默认实现，
只响应两个简单命令：
- ping  → 回复 "Pong 🏓"
- owner → 回复主人联系方式 wa.me/<owner_number>

命令不区分大小写，首尾空白会被忽略；自己发出的消息和非文本消息直接跳过。
"""

from typing import Callable

from loguru import logger

from wasession.protocol.base import ProtocolClient
from wasession.protocol.events import IncomingMessage

Reply = Callable[[str], str]


class CommandHandler:
    """
    简单命令处理器。

    属性:
        owner_number: 主人号码（owner 命令的回复内容）
        commands: 命令名 → 回复生成函数
    """

    def __init__(self, owner_number: str):
        self.owner_number = owner_number
        self.commands: dict[str, Reply] = {
            "ping": lambda _: "Pong 🏓",
            "owner": lambda _: f"My owner is wa.me/{self.owner_number}",
        }

    def register(self, name: str, reply: Reply) -> None:
        """注册（或覆盖）一个命令。reply 接收原始消息文本，返回回复文本。"""
        self.commands[name.lower()] = reply

    def reply_for(self, text: str) -> str | None:
        """返回命令对应的回复；不是已知命令时返回 None。"""
        command = text.strip().lower()
        reply = self.commands.get(command)
        return reply(text) if reply else None

    async def __call__(self, client: ProtocolClient, message: IncomingMessage) -> None:
        if message.from_me or not message.text:
            return

        reply = self.reply_for(message.text)
        if reply is None:
            return

        logger.debug(f"[{client.session_id}] command {message.text.strip().lower()!r} from {message.sender}")
        await client.send(message.remote_jid, reply)
