from __future__ import annotations

import json
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any

from app.schemas.analysis import AnalysisOutcome, AnalysisResult, DocumentRecord, FallbackReason


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class AnalysisRepository:
    """sqlite-backed documents and analysis history."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
                timeout=5,
                isolation_level=None,
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    file_url TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    mime_type TEXT NOT NULL,
                    public_id TEXT,
                    version TEXT,
                    uploaded_at TEXT NOT NULL,
                    last_score INTEGER,
                    last_analyzed_at TEXT
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS analyses (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    owner_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    ats_score INTEGER NOT NULL,
                    result_json TEXT NOT NULL,
                    used_fallback INTEGER NOT NULL,
                    fallback_reason TEXT
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_analyses_document
                ON analyses (document_id, created_at);
                """
            )
            self._conn = conn
            return conn

    def create_document(
        self,
        *,
        owner_id: str,
        file_name: str,
        file_url: str,
        file_size: int,
        mime_type: str,
        public_id: str | None = None,
        version: str | None = None,
    ) -> DocumentRecord:
        conn = self._get_connection()
        record = DocumentRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            file_name=file_name,
            file_url=file_url,
            file_size=file_size,
            mime_type=mime_type,
            public_id=public_id,
            version=version,
            uploaded_at=_utc_now(),
        )
        with self._lock:
            conn.execute(
                """
                INSERT INTO documents (
                    id, owner_id, file_name, file_url, file_size, mime_type, public_id, version, uploaded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.owner_id,
                    record.file_name,
                    record.file_url,
                    record.file_size,
                    record.mime_type,
                    record.public_id,
                    record.version,
                    record.uploaded_at.isoformat(),
                ),
            )
        return record

    def find_document(self, document_id: str) -> DocumentRecord | None:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                """
                SELECT id, owner_id, file_name, file_url, file_size, mime_type, public_id, version,
                       uploaded_at, last_score, last_analyzed_at
                FROM documents
                WHERE id = ?
                """,
                (document_id,),
            ).fetchone()
        if not row:
            return None
        return DocumentRecord(
            id=row[0],
            owner_id=row[1],
            file_name=row[2],
            file_url=row[3],
            file_size=row[4],
            mime_type=row[5],
            public_id=row[6],
            version=row[7],
            uploaded_at=datetime.fromisoformat(row[8]),
            last_score=row[9],
            last_analyzed_at=_parse_dt(row[10]),
        )

    def list_documents(self, owner_id: str) -> list[DocumentRecord]:
        conn = self._get_connection()
        with self._lock:
            ids = [row[0] for row in conn.execute(
                "SELECT id FROM documents WHERE owner_id = ? ORDER BY uploaded_at DESC",
                (owner_id,),
            ).fetchall()]
        return [doc for doc in (self.find_document(doc_id) for doc_id in ids) if doc is not None]

    def create_analysis_record(
        self,
        *,
        document_id: str,
        owner_id: str,
        result: AnalysisResult,
        used_fallback: bool,
        fallback_reason: FallbackReason | None,
    ) -> AnalysisOutcome:
        if used_fallback != (fallback_reason is not None):
            raise ValueError("fallback_reason must be set if and only if used_fallback is true")

        conn = self._get_connection()
        outcome = AnalysisOutcome(
            id=uuid.uuid4().hex,
            document_id=document_id,
            owner_id=owner_id,
            created_at=_utc_now(),
            used_fallback=used_fallback,
            fallback_reason=fallback_reason,
            ats_score=result.ats_score,
            feedback=result.feedback,
            keywords=result.keywords,
        )
        payload_json = json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False)
        with self._lock:
            conn.execute(
                """
                INSERT INTO analyses (
                    id, document_id, owner_id, created_at, ats_score, result_json, used_fallback, fallback_reason
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    outcome.id,
                    outcome.document_id,
                    outcome.owner_id,
                    outcome.created_at.isoformat(),
                    outcome.ats_score,
                    payload_json,
                    1 if used_fallback else 0,
                    fallback_reason,
                ),
            )
        return outcome

    def update_document_analysis_meta(self, document_id: str, score: int, analyzed_at: datetime) -> None:
        conn = self._get_connection()
        with self._lock:
            conn.execute(
                "UPDATE documents SET last_score = ?, last_analyzed_at = ? WHERE id = ?",
                (score, analyzed_at.isoformat(), document_id),
            )

    def list_analyses(self, document_id: str) -> list[AnalysisOutcome]:
        conn = self._get_connection()
        with self._lock:
            rows = conn.execute(
                """
                SELECT id, document_id, owner_id, created_at, result_json, used_fallback, fallback_reason
                FROM analyses
                WHERE document_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (document_id,),
            ).fetchall()
        return [self._row_to_outcome(row) for row in rows]

    @staticmethod
    def _row_to_outcome(row: tuple[Any, ...]) -> AnalysisOutcome:
        result = AnalysisResult.model_validate(json.loads(row[4]))
        return AnalysisOutcome(
            id=row[0],
            document_id=row[1],
            owner_id=row[2],
            created_at=datetime.fromisoformat(row[3]),
            used_fallback=bool(row[5]),
            fallback_reason=row[6],
            ats_score=result.ats_score,
            feedback=result.feedback,
            keywords=result.keywords,
        )

    def clear(self) -> None:
        conn = self._get_connection()
        with self._lock:
            conn.execute("DELETE FROM analyses")
            conn.execute("DELETE FROM documents")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
