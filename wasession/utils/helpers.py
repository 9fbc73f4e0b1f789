"""
工具函数集合 - wasession 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_data_path
- 字符串工具：truncate_string, encode_filename, decode_filename
"""

from pathlib import Path
from urllib.parse import quote, unquote


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 wasession 数据目录（~/.wasession）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".wasession")


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """截断字符串到指定最大长度，超出时添加后缀。"""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def encode_filename(name: str) -> str:
    """
    把任意字符串编码为单个安全的文件名（可逆、一一对应）。

    除字母、数字和 "-_.~" 外的字符都按 URL 百分号编码，
    开头的点号编码为 %2E，避免 "." / ".." 或隐藏文件名。
    不同的输入一定得到不同的文件名，decode_filename 可以还原。

    参数:
        name: 原始字符串

    返回:
        编码后的文件名
    """
    encoded = quote(name, safe="")
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return encoded


def decode_filename(filename: str) -> str:
    """encode_filename 的逆操作。"""
    return unquote(filename)
