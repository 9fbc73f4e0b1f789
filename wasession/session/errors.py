"""
会话错误类型定义。

对外抛出（调用方会收到）：
- ConstructionError：凭据加载、协议版本获取或连接建立失败
- PairingTimeout：在限定时间内没有拿到配对码
- PairingAlreadyInProgress：同一会话已有配对请求在进行（仅 reject 策略）
- InvalidSessionId：会话 ID 为空或只有空白字符

内部使用（不会从会话控制器抛给调用方）：
- ConnectionClosed：在已关闭的连接上发送数据；断线由控制器自动重连

注销（logged out）不是异常，只能通过状态查询得知。
"""


class WASessionError(Exception):
    """所有 wasession 错误的基类，detail 为可读的错误描述。"""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ConstructionError(WASessionError):
    """会话启动失败（凭据加载 / 协议版本获取 / 建立连接）。"""


class PairingTimeout(WASessionError):
    """配对码等待超时。"""


class PairingAlreadyInProgress(WASessionError):
    """同一会话已有配对请求在进行。"""


class ConnectionClosed(WASessionError):
    """连接已关闭。"""


class InvalidSessionId(WASessionError):
    """会话 ID 为空或只有空白字符。"""
