"""
DB utilities (sqlite default).

Defaults (per ARCH):
- DATABASE_URL: sqlite:///./data/app.db

Tables are declared as SQLModel models in each module's models.py and created by
the Alembic migrations; init_db() is the local/test shortcut for the same DDL.
"""
from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./data/app.db")


def _repo_root() -> Path:
    # apps/api/app/core/db.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def resolve_sqlite_path(database_url: str) -> Optional[Path]:
    if not database_url.startswith("sqlite:///"):
        return None
    p = database_url[len("sqlite:///") :]

    # absolute unix
    if p.startswith("/"):
        return Path(p)

    # absolute windows drive, both C:/ and C:\ forms
    if len(p) >= 3 and p[1] == ":" and (p[2] == "/" or p[2] == "\\"):
        return Path(p)

    # relative -> repo root
    return (_repo_root() / p).resolve()


def connect(database_url: Optional[str] = None) -> sqlite3.Connection:
    url = database_url or get_database_url()
    sp = resolve_sqlite_path(url)
    if sp is None:
        raise ValueError(f"Only sqlite supported for now, got DATABASE_URL={url!r}")
    sp.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(sp), check_same_thread=False, timeout=30)
    conn.row_factory = sqlite3.Row
    return conn


_engines: Dict[str, Engine] = {}


def get_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or get_database_url()
    if url in _engines:
        return _engines[url]

    connect_args = {}
    resolved = url
    if url.startswith("sqlite:///"):
        connect_args = {"check_same_thread": False}
        sp = resolve_sqlite_path(url)
        if sp is not None:
            sp.parent.mkdir(parents=True, exist_ok=True)
            resolved = "sqlite:///" + sp.as_posix()

    engine = create_engine(resolved, connect_args=connect_args)
    _engines[url] = engine
    return engine


def init_db(database_url: Optional[str] = None) -> None:
    # imported for their side effect of registering tables on SQLModel.metadata
    from app.modules.characters import models as _characters  # noqa: F401
    from app.modules.pages import models as _pages  # noqa: F401
    from app.modules.projects import models as _projects  # noqa: F401

    SQLModel.metadata.create_all(get_engine(database_url))


def db_health(database_url: Optional[str] = None) -> Dict[str, Any]:
    url = database_url or get_database_url()
    kind = "sqlite" if url.startswith("sqlite") else "unknown"
    sp = resolve_sqlite_path(url)
    path = str(sp.as_posix()) if sp is not None else url

    try:
        eng = get_engine(url)
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "kind": kind, "path": path}
    except Exception as e:
        return {"status": "error", "kind": kind, "path": path, "error": str(e)}
