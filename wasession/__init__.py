"""
wasession - 多会话即时通讯连接管理器

模块概述：
    本文件是 wasession 包的入口文件（__init__.py），定义了包的元信息。
    wasession 负责同时维护多个长连接会话（每个会话对应一个已配对的账号），
    并为调用方提供"首次配对码获取 + 断线自动重连 + 状态查询"的统一接口。

    整个包的核心功能包括：
    - 会话生命周期管理（启动、重连、停止、注销后重置）
    - 一次性配对握手（带超时的配对码等待）
    - 每个会话独立的凭据持久化
    - 可插拔的协议客户端（默认通过 WebSocket 桥接 Node.js 协议服务）
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "📱"
