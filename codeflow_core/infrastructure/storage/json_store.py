import json
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from uuid import uuid4

from codeflow_core.config.settings import settings
from codeflow_core.domain.conversation import CheckpointStore, ThreadCheckpoint
from codeflow_core.domain.exceptions import BusinessError, StoreError


class JsonCheckpointStore(CheckpointStore):
    """每个线程一个目录，checkpoint.json 通过临时文件 + os.replace 原子替换。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._thread_root = self._root / "threads"
        self._thread_root.mkdir(parents=True, exist_ok=True)

    def load(self, thread_id: str) -> Optional[ThreadCheckpoint]:
        path = self._thread_dir(thread_id) / "checkpoint.json"
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return ThreadCheckpoint.from_dict(data)
        except (OSError, ValueError, KeyError) as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e), thread_id=thread_id)

    def save(self, checkpoint: ThreadCheckpoint) -> None:
        tdir = self._thread_dir(checkpoint.thread_id)
        tdir.mkdir(parents=True, exist_ok=True)
        obj: Dict[str, Any] = checkpoint.to_dict()
        obj["updated_at"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self._write_json(tdir / "checkpoint.json", obj)

    def list_threads(self) -> List[str]:
        items: List[str] = []
        for tdir in sorted(self._thread_root.iterdir()):
            if tdir.is_dir() and (tdir / "checkpoint.json").exists():
                items.append(tdir.name)
        return items

    def delete(self, thread_id: str) -> None:
        tdir = self._thread_dir(thread_id)
        if not tdir.exists():
            raise BusinessError(code="THREAD_NOT_FOUND", message=thread_id)
        try:
            shutil.rmtree(tdir)
        except OSError as e:
            raise StoreError(code="STORE_DELETE_ERROR", message=str(e))

    def _thread_dir(self, thread_id: str) -> Path:
        name = str(thread_id or "").strip()
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise BusinessError(code="INVALID_THREAD_ID", message=repr(thread_id))
        return self._thread_root / name

    def _write_json(self, path: Path, obj: Dict[str, Any]) -> None:
        tmp_path = path.parent / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))
