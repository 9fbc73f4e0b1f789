"""消息处理器模块 - 会话控制器调用的可插拔入站消息处理器。"""

from wasession.handlers.commands import CommandHandler

__all__ = ["CommandHandler"]
