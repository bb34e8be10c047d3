"""
Local filesystem blob storage.

Defaults (per ARCH):
- STORAGE_ROOT: ./data/storage

Refs are returned as storage://<relative path>. Writes are upserts: the latest
write to a path wins.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

STORAGE_SCHEME = "storage://"


def _repo_root() -> Path:
    # apps/api/app/core/storage.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def get_storage_root(raw: Optional[str] = None) -> Path:
    raw = raw or os.getenv("STORAGE_ROOT", "./data/storage")
    p = Path(raw)
    return (_repo_root() / p).resolve() if not p.is_absolute() else p


def ensure_storage_root(raw: Optional[str] = None) -> Path:
    root = get_storage_root(raw)
    root.mkdir(parents=True, exist_ok=True)
    return root


class BlobStorage:
    def __init__(self, root: Optional[str] = None) -> None:
        self.root = get_storage_root(root)

    def _target(self, rel_path: str) -> Path:
        rel = rel_path.lstrip("/")
        target = (self.root / rel).resolve()
        root = self.root.resolve()
        if target != root and not str(target).startswith(str(root) + os.sep):
            raise ValueError(f"path escapes storage root: {rel_path!r}")
        return target

    def upload(self, rel_path: str, data: bytes) -> str:
        target = self._target(rel_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".part")
        tmp.write_bytes(data)
        os.replace(tmp, target)
        return STORAGE_SCHEME + rel_path.lstrip("/")

    def read(self, ref: str) -> bytes:
        if not ref.startswith(STORAGE_SCHEME):
            raise ValueError(f"not a storage ref: {ref!r}")
        return self._target(ref[len(STORAGE_SCHEME) :]).read_bytes()


def storage_health(raw: Optional[str] = None) -> Dict[str, Any]:
    try:
        root = ensure_storage_root(raw)
        probe = root / ".probe_write"
        probe.write_text("ok", encoding="utf-8")
        try:
            probe.unlink()
        except Exception:
            pass
        return {"status": "ok", "kind": "local_fs", "root": str(root.as_posix())}
    except Exception as e:
        return {"status": "error", "kind": "local_fs", "root": str(get_storage_root(raw).as_posix()), "error": str(e)}
