"""
Artifact Store: durable Project / Character / Page records.

One sqlite3 connection per call; no transactions span records, callers read
then write close together and tolerate the narrow race that leaves.
JSON list columns (*_json) are decoded into plain lists on the way out and
encoded on the way in, so the rest of the app never sees the TEXT form.
"""
from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.core.db import connect
from app.core.errors import NotFound, ValidationFailed
from app.core.ids import new_review_token, new_ulid, now_iso

SEND_COUNTERS = ("character_send_count", "illustration_send_count")

_JSON_COLUMNS = {
    "feedback_history": "feedback_history_json",
    "conversation_thread": "conversation_thread_json",
    "character_ids": "character_ids_json",
}
_BOOL_COLUMNS = ("is_main", "is_resolved")

_PROJECT_COLUMNS = {
    "title",
    "author_name",
    "author_email",
    "author_phone",
    "review_token",
    "style_reference_page_id",
}
_CHARACTER_COLUMNS = {
    "name",
    "role",
    "description",
    "image_url",
    "sketch_url",
    "customer_image_url",
    "customer_sketch_url",
    "feedback_notes",
    "feedback_history_json",
    "is_resolved",
}
_PAGE_COLUMNS = {
    "story_text",
    "scene_description",
    "character_ids_json",
    "illustration_url",
    "sketch_url",
    "customer_illustration_url",
    "customer_sketch_url",
    "feedback_notes",
    "feedback_history_json",
    "is_resolved",
    "admin_reply",
    "admin_reply_at",
    "admin_reply_type",
    "conversation_thread_json",
}


def _safe_json_list(v: Any) -> List[Any]:
    if not v:
        return []
    if isinstance(v, list):
        return v
    try:
        out = json.loads(v)
    except Exception:
        return []
    return out if isinstance(out, list) else []


def _decode_row(row: sqlite3.Row) -> Dict[str, Any]:
    d = dict(row)
    for key, col in _JSON_COLUMNS.items():
        if col in d:
            d[key] = _safe_json_list(d.pop(col))
    for col in _BOOL_COLUMNS:
        if col in d:
            d[col] = bool(d[col])
    return d


def _encode_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in patch.items():
        if k in _JSON_COLUMNS:
            out[_JSON_COLUMNS[k]] = json.dumps(v or [], ensure_ascii=False)
        elif k in _BOOL_COLUMNS:
            out[k] = 1 if v else 0
        else:
            out[k] = v
    return out


class ArtifactStore:
    def __init__(self, database_url: Optional[str] = None) -> None:
        self.database_url = database_url

    def _connect(self) -> sqlite3.Connection:
        return connect(self.database_url)

    def _update(self, table: str, allowed: set, record_id: str, patch: Dict[str, Any]) -> int:
        data = _encode_patch(patch)
        unknown = sorted(k for k in data if k not in allowed)
        if unknown:
            raise ValueError(f"{table}: columns not writable: {unknown}")
        if not data:
            return 0
        data["updated_at"] = now_iso()
        keys = sorted(data.keys())
        sql = f"UPDATE {table} SET {', '.join(f'{k}=?' for k in keys)} WHERE id=?;"
        conn = self._connect()
        try:
            cur = conn.execute(sql, [data[k] for k in keys] + [record_id])
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def _fetch_one(self, sql: str, args: Iterable[Any]) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute(sql, tuple(args)).fetchone()
            return _decode_row(row) if row else None
        finally:
            conn.close()

    def _fetch_all(self, sql: str, args: Iterable[Any]) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            return [_decode_row(r) for r in conn.execute(sql, tuple(args)).fetchall()]
        finally:
            conn.close()

    # -------------------------
    # Projects
    # -------------------------
    def create_project(
        self,
        title: str,
        *,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
        author_phone: Optional[str] = None,
        status: str = "draft",
    ) -> Dict[str, Any]:
        now = now_iso()
        pid = new_ulid()
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO projects (id, title, author_name, author_email, author_phone, review_token, status, "
                "character_send_count, illustration_send_count, created_at, updated_at) "
                "VALUES (?,?,?,?,?,?,?,0,0,?,?);",
                (pid, title, author_name, author_email, author_phone, new_review_token(), status, now, now),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_project(pid)

    def find_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM projects WHERE id=?;", (project_id,))

    def get_project(self, project_id: str) -> Dict[str, Any]:
        p = self.find_project(project_id)
        if p is None:
            raise NotFound("project not found", details={"project_id": project_id})
        return p

    def get_project_by_token(self, token: str) -> Dict[str, Any]:
        p = self._fetch_one("SELECT * FROM projects WHERE review_token=?;", (token,))
        if p is None:
            raise NotFound("project not found")
        return p

    def list_projects(self, limit: int, offset: int, status: Optional[str] = None) -> Tuple[List[Dict[str, Any]], int]:
        where = ""
        args: List[Any] = []
        if status:
            where = "WHERE status=?"
            args.append(status)
        conn = self._connect()
        try:
            total = conn.execute(f"SELECT COUNT(1) AS n FROM projects {where};", args).fetchone()["n"]
            rows = conn.execute(
                f"SELECT * FROM projects {where} ORDER BY updated_at DESC, created_at DESC LIMIT ? OFFSET ?;",
                args + [limit, offset],
            ).fetchall()
            return ([_decode_row(r) for r in rows], int(total))
        finally:
            conn.close()

    def update_project(self, project_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        self._update("projects", _PROJECT_COLUMNS, project_id, patch)
        return self.get_project(project_id)

    def set_status(self, project_id: str, status: str, *, expected: Optional[Iterable[str]] = None) -> bool:
        """
        Write a new status. With `expected`, only when the stored status is one of
        those values (compare-and-set); returns whether the row changed.
        """
        sql = "UPDATE projects SET status=?, updated_at=? WHERE id=?"
        args: List[Any] = [status, now_iso(), project_id]
        if expected is not None:
            exp = list(expected)
            if not exp:
                return False
            sql += f" AND status IN ({','.join(['?'] * len(exp))})"
            args.extend(exp)
        conn = self._connect()
        try:
            cur = conn.execute(sql + ";", args)
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def increment_send_count(self, project_id: str, counter: str) -> int:
        if counter not in SEND_COUNTERS:
            raise ValueError(f"unknown counter: {counter!r}")
        conn = self._connect()
        try:
            conn.execute(
                f"UPDATE projects SET {counter} = {counter} + 1, updated_at=? WHERE id=?;",
                (now_iso(), project_id),
            )
            conn.commit()
            row = conn.execute(f"SELECT {counter} AS n FROM projects WHERE id=?;", (project_id,)).fetchone()
            return int(row["n"]) if row else 0
        finally:
            conn.close()

    # -------------------------
    # Characters
    # -------------------------
    def create_character(
        self,
        project_id: str,
        *,
        name: Optional[str] = None,
        role: Optional[str] = None,
        description: Optional[str] = None,
        is_main: bool = False,
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        self.get_project(project_id)
        now = now_iso()
        cid = new_ulid()
        conn = self._connect()
        try:
            if is_main:
                row = conn.execute(
                    "SELECT id FROM characters WHERE project_id=? AND is_main=1;", (project_id,)
                ).fetchone()
                if row:
                    raise ValidationFailed("project already has a main character", details={"character_id": row["id"]})
            conn.execute(
                "INSERT INTO characters (id, project_id, name, role, description, is_main, image_url, "
                "feedback_history_json, is_resolved, created_at, updated_at) "
                "VALUES (?,?,?,?,?,?,?,'[]',0,?,?);",
                (cid, project_id, name, role, description, 1 if is_main else 0, image_url, now, now),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_character(cid)

    def get_character(self, character_id: str) -> Dict[str, Any]:
        c = self._fetch_one("SELECT * FROM characters WHERE id=?;", (character_id,))
        if c is None:
            raise NotFound("character not found", details={"character_id": character_id})
        return c

    def list_characters(self, project_id: str) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM characters WHERE project_id=? ORDER BY is_main DESC, created_at ASC, id ASC;",
            (project_id,),
        )

    def update_character(self, character_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        if self._update("characters", _CHARACTER_COLUMNS, character_id, patch) == 0 and patch:
            raise NotFound("character not found", details={"character_id": character_id})
        return self.get_character(character_id)

    def delete_character(self, character_id: str) -> None:
        c = self.get_character(character_id)
        if c["is_main"]:
            raise ValidationFailed("main character cannot be deleted")
        conn = self._connect()
        try:
            conn.execute("DELETE FROM characters WHERE id=?;", (character_id,))
            conn.commit()
        finally:
            conn.close()

    # -------------------------
    # Pages
    # -------------------------
    def create_pages(self, project_id: str, pages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        self.get_project(project_id)
        now = now_iso()
        conn = self._connect()
        try:
            conn.execute("BEGIN;")
            for p in pages:
                conn.execute(
                    "INSERT INTO pages (id, project_id, page_number, story_text, scene_description, character_ids_json, "
                    "feedback_history_json, conversation_thread_json, is_resolved, created_at, updated_at) "
                    "VALUES (?,?,?,?,?,?,'[]','[]',0,?,?);",
                    (
                        new_ulid(),
                        project_id,
                        int(p["page_number"]),
                        p.get("story_text") or "",
                        p.get("scene_description"),
                        json.dumps(p.get("character_ids") or [], ensure_ascii=False),
                        now,
                        now,
                    ),
                )
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise ValidationFailed("duplicate page_number for project", details={"error": str(e)})
        finally:
            conn.close()
        return self.list_pages(project_id)

    def get_page(self, page_id: str) -> Dict[str, Any]:
        p = self._fetch_one("SELECT * FROM pages WHERE id=?;", (page_id,))
        if p is None:
            raise NotFound("page not found", details={"page_id": page_id})
        return p

    def list_pages(self, project_id: str) -> List[Dict[str, Any]]:
        return self._fetch_all("SELECT * FROM pages WHERE project_id=? ORDER BY page_number ASC;", (project_id,))

    def update_page(self, page_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        if self._update("pages", _PAGE_COLUMNS, page_id, patch) == 0 and patch:
            raise NotFound("page not found", details={"page_id": page_id})
        return self.get_page(page_id)

    def record_page_illustration(self, page_id: str, ref: str, patch: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Store a freshly generated illustration; original_illustration_url is only set the first time."""
        conn = self._connect()
        try:
            cur = conn.execute(
                "UPDATE pages SET illustration_url=?, "
                "original_illustration_url=COALESCE(original_illustration_url, ?), updated_at=? WHERE id=?;",
                (ref, ref, now_iso(), page_id),
            )
            conn.commit()
            if cur.rowcount == 0:
                raise NotFound("page not found", details={"page_id": page_id})
        finally:
            conn.close()
        if patch:
            return self.update_page(page_id, patch)
        return self.get_page(page_id)
