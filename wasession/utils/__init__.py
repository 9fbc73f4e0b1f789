"""工具函数模块。"""

from wasession.utils.helpers import (
    decode_filename,
    encode_filename,
    ensure_dir,
    get_data_path,
    truncate_string,
)

__all__ = ["ensure_dir", "get_data_path", "encode_filename", "decode_filename", "truncate_string"]
