"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 wasession 配置文件的加载、保存和格式转换：
- 配置文件默认路径: ~/.wasession/config.json
- 配置文件使用 camelCase（驼峰命名），Python 内部使用 snake_case（下划线命名）
- 加载时自动将 camelCase → snake_case，保存时自动将 snake_case → camelCase
- 加载完成后应用 PORT / OWNER_NUMBER 两个简单环境变量覆盖
"""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from wasession.config.schema import Config
from wasession.utils.helpers import get_data_path


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.wasession/config.json"""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    从 JSON 文件加载配置，若文件不存在则返回默认配置。

    加载流程：
    1. 确定配置文件路径（传入的路径 或 默认路径）
    2. 读取 JSON 文件内容，将 camelCase 键名转换为 snake_case
    3. 使用 Pydantic 的 model_validate 进行类型验证和反序列化
    4. 应用 PORT / OWNER_NUMBER 环境变量覆盖

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。

    返回:
        Config 配置对象实例
    """
    path = config_path or get_config_path()
    config: Config | None = None

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            config = Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            # 配置文件损坏时降级使用默认配置，而非直接报错退出
            logger.warning(f"Failed to load config from {path}: {e}. Using default configuration.")

    return apply_env_overrides(config or Config())


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    将配置对象保存为 JSON 文件（camelCase 键名，带缩进格式化）。

    参数:
        config: 要保存的配置对象
        config_path: 可选的保存路径。为 None 时使用默认路径。
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def apply_env_overrides(config: Config, environ: dict[str, str] | None = None) -> Config:
    """
    应用不带前缀的简单环境变量覆盖。

    - PORT：覆盖 gateway.port（非数字时忽略并告警）
    - OWNER_NUMBER：覆盖 owner_number

    参数:
        config: 已加载的配置对象（原地修改）
        environ: 环境变量字典，默认为 os.environ

    返回:
        修改后的配置对象
    """
    env = os.environ if environ is None else environ

    port = env.get("PORT")
    if port:
        try:
            config.gateway.port = int(port)
        except ValueError:
            logger.warning(f"Ignoring non-numeric PORT value: {port!r}")

    owner = env.get("OWNER_NUMBER")
    if owner:
        config.owner_number = owner

    return config


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"reconnectDelayS": 2} → {"reconnect_delay_s": 2}
    """
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地将字典中所有 snake_case 键名转换为 camelCase。"""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """
    将 camelCase 字符串转换为 snake_case。
    例: "ownerNumber" → "owner_number", "requestTimeoutS" → "request_timeout_s"
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """
    将 snake_case 字符串转换为 camelCase。
    例: "owner_number" → "ownerNumber"
    """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
