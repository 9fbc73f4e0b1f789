"""
凭据存储模块 - 每个会话独立的持久化凭据。

【存储布局】
<sessions_root>/
└── <encoded session_id>/
    ├── creds.json                      # 账号身份凭据；存在即表示"已配对"
    └── keys/
        └── <encoded category>/
            └── <encoded key_id>.json  # {"id": <原始密钥 ID>, "value": <密钥内容>}

会话 ID、密钥类别和密钥 ID 都可能包含文件名不允许的字符，
因此目录名和文件名经过 encode_filename 编码（可逆、一一对应），
不同的会话 ID 永远不会落到同一个目录。密钥的原始 ID 同时保存在文件内容里。
空白会话 ID 会被拒绝（InvalidSessionId），否则它会指向根目录本身。

【一致性】
- 所有写入都是"临时文件 + os.replace"原子替换，进程崩溃不会留下半个文件
- 写入是同步的：凭据变化事件处理完毕时数据已经落盘
- 同一会话的读写由会话控制器串行化，本模块自身不加锁

【Java 开发者类比】
- CredentialStore 类似于按租户隔离的文件型 Repository
"""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from loguru import logger

from wasession.protocol.events import CredentialBlob, CredentialsUpdate
from wasession.session.errors import InvalidSessionId
from wasession.utils.helpers import decode_filename, encode_filename, ensure_dir

CREDS_FILE = "creds.json"
KEYS_DIR = "keys"


class CredentialStore:
    """
    会话凭据存储。

    属性:
        root: 凭据根目录，每个会话在其下拥有一个独立子目录
    """

    def __init__(self, root: Path):
        self.root = ensure_dir(Path(root).expanduser())

    def _folder(self, session_id: str) -> Path:
        if not session_id or not session_id.strip():
            raise InvalidSessionId(f"Invalid session id: {session_id!r}")
        return self.root / encode_filename(session_id)

    def session_path(self, session_id: str) -> Path:
        """获取会话目录（不存在时自动创建）。"""
        return ensure_dir(self._folder(session_id))

    def _creds_file(self, session_id: str) -> Path:
        return self._folder(session_id) / CREDS_FILE

    def has_credentials(self, session_id: str) -> bool:
        """creds.json 是否存在（唯一的"已配对"判据），不会创建目录。"""
        return self._creds_file(session_id).exists()

    def load(self, session_id: str) -> CredentialBlob:
        """
        加载会话凭据。

        目录或文件不存在时返回空凭据（首次配对）。
        JSON 损坏时直接抛出，由会话控制器包装为 ConstructionError。

        参数:
            session_id: 会话 ID

        返回:
            CredentialBlob 凭据对象
        """
        folder = self.session_path(session_id)
        blob = CredentialBlob()

        creds_file = folder / CREDS_FILE
        if creds_file.exists():
            blob.creds = json.loads(creds_file.read_text(encoding="utf-8"))

        keys_dir = folder / KEYS_DIR
        if keys_dir.is_dir():
            for category_dir in sorted(p for p in keys_dir.iterdir() if p.is_dir()):
                bucket: dict[str, Any] = {}
                for key_file in sorted(category_dir.glob("*.json")):
                    entry = json.loads(key_file.read_text(encoding="utf-8"))
                    bucket[entry.get("id", key_file.stem)] = entry.get("value")
                if bucket:
                    blob.keys[decode_filename(category_dir.name)] = bucket

        return blob

    def save(self, session_id: str, blob: CredentialBlob) -> None:
        """
        全量保存会话凭据（creds.json + 全部密钥文件）。

        磁盘上存在但 blob 中已不存在的密钥文件会被删除。
        """
        folder = self.session_path(session_id)
        _write_json(folder / CREDS_FILE, blob.creds)

        keys_dir = folder / KEYS_DIR
        wanted: set[Path] = set()
        for category, entries in blob.keys.items():
            category_dir = ensure_dir(keys_dir / encode_filename(category))
            for key_id, value in entries.items():
                path = category_dir / f"{encode_filename(key_id)}.json"
                _write_json(path, {"id": key_id, "value": value})
                wanted.add(path)

        if keys_dir.is_dir():
            for stale in keys_dir.glob("*/*.json"):
                if stale not in wanted:
                    stale.unlink()

    def apply_update(self, session_id: str, blob: CredentialBlob, update: CredentialsUpdate) -> CredentialBlob:
        """
        合并一次部分更新并立即落盘。

        只写入发生变化的部分：creds 有变化时重写 creds.json，
        密钥逐个写入或删除（值为 None 表示删除）。

        参数:
            session_id: 会话 ID
            blob: 当前内存中的凭据（原地修改）
            update: 凭据变化事件

        返回:
            合并后的凭据（即传入的 blob）
        """
        blob.apply(update)
        folder = self.session_path(session_id)

        if update.creds:
            _write_json(folder / CREDS_FILE, blob.creds)

        for category, entries in update.keys.items():
            category_dir = folder / KEYS_DIR / encode_filename(category)
            for key_id, value in entries.items():
                path = category_dir / f"{encode_filename(key_id)}.json"
                if value is None:
                    path.unlink(missing_ok=True)
                else:
                    ensure_dir(category_dir)
                    _write_json(path, {"id": key_id, "value": value})

        return blob

    def clear(self, session_id: str) -> bool:
        """
        删除会话的全部凭据（注销后重新配对前必须调用）。

        返回:
            True 表示删除了已有目录，False 表示目录本不存在

        异常:
            InvalidSessionId: 会话 ID 为空白
        """
        folder = self._folder(session_id)
        if not folder.exists():
            return False
        if folder.resolve() == self.root.resolve():
            raise InvalidSessionId(f"Refusing to clear the credential root for session {session_id!r}")
        shutil.rmtree(folder)
        logger.info(f"[{session_id}] credentials cleared")
        return True

    def list_sessions(self) -> list[dict[str, Any]]:
        """
        列出磁盘上的所有会话。

        返回:
            会话信息字典列表，每个字典包含 session_id、paired、path，按目录名排序
        """
        sessions = []
        for path in sorted(p for p in self.root.iterdir() if p.is_dir()):
            sessions.append({
                "session_id": decode_filename(path.name),
                "paired": (path / CREDS_FILE).exists(),
                "path": str(path),
            })
        return sessions


def _write_json(path: Path, data: Any) -> None:
    """原子写入 JSON 文件：先写同目录临时文件，再 os.replace 替换。"""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
