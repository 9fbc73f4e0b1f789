"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 wasession 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── owner_number  - 机器人主人号码（默认配对号码，owner 命令的回复内容）
├── gateway       - 对外服务的监听地址和端口
├── bridge        - 协议桥接服务（Node.js）的连接参数
└── sessions      - 会话管理参数（凭据目录、重连间隔、配对超时等）

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayConfig(BaseModel):
    """对外服务配置（HTTP 接入层读取，核心模块不直接使用）。"""
    host: str = "0.0.0.0"  # 监听地址（0.0.0.0 表示监听所有网卡）
    port: int = 3000  # 监听端口，可被环境变量 PORT 覆盖


class BridgeConfig(BaseModel):
    """
    协议桥接服务配置。

    wasession 不直接实现即时通讯协议，而是通过 WebSocket 连接到
    运行协议库的 Node.js 桥接进程，每个会话一条独立的 WebSocket 连接。
    """
    url: str = "ws://localhost:3001"  # 桥接服务的 WebSocket 地址
    token: str = ""  # 桥接认证令牌（可选但推荐设置）
    request_timeout_s: float = 30.0  # 单次请求（如配对码请求）的最长等待时间（秒）


class SessionsConfig(BaseModel):
    """
    会话管理配置。

    concurrent_pairing 决定同一会话同时收到两个配对请求时的处理方式：
    - join：后来的调用方加入正在进行的等待，共享同一个结果
    - reject：后来的调用方立即失败（PairingAlreadyInProgress）
    """
    root: str = "~/.wasession/sessions"  # 凭据根目录，每个会话一个子目录
    default_id: str = "default"  # 调用方未指定会话 ID 时使用的默认值
    reconnect_delay_s: float = 2.0  # 非注销断线后的固定重连间隔（秒）
    pairing_timeout_s: float = 60.0  # 配对码等待超时（秒）
    concurrent_pairing: Literal["join", "reject"] = "join"
    protocol_version: list[int] | None = None  # 固定协议版本；为 None 时启动前在线获取
    version_url: str = (
        "https://raw.githubusercontent.com/WhiskeySockets/Baileys/master/src/Defaults/baileys-version.json"
    )


class Config(BaseSettings):
    """
    wasession 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: WASESSION_
    - 嵌套分隔符: __ (双下划线)
    - 示例: WASESSION_SESSIONS__RECONNECT_DELAY_S=5 可覆盖 sessions.reconnect_delay_s

    另外兼容两个不带前缀的简单变量（见 loader.apply_env_overrides）：
    PORT → gateway.port，OWNER_NUMBER → owner_number
    """
    owner_number: str = "254112399557"  # 主人号码
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)

    @property
    def sessions_path(self) -> Path:
        """获取展开后的凭据根目录绝对路径（将 ~ 展开为用户主目录）。"""
        return Path(self.sessions.root).expanduser()

    model_config = SettingsConfigDict(
        env_prefix="WASESSION_",
        env_nested_delimiter="__",
    )
