"""
DuckDB storage backend for index persistence.
"""

from __future__ import annotations

from pathlib import Path

import duckdb

from .base import ChunkRecord, KnowledgeIndex, StorageError


class DuckDBStorage:
    """DuckDB-backed persistence for the chunk index."""

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = duckdb.connect(self.db_path, read_only=read_only)
        except duckdb.Error as exc:
            raise StorageError(f"Cannot open DuckDB index {self.db_path}: {exc}") from exc
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kb_meta (
                key VARCHAR PRIMARY KEY,
                value VARCHAR NOT NULL
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kb_chunks (
                seq INTEGER PRIMARY KEY,
                id VARCHAR NOT NULL UNIQUE,
                doc_id VARCHAR NOT NULL,
                title VARCHAR,
                text VARCHAR NOT NULL,
                vec DOUBLE[] NOT NULL
            );
            """
        )

    def load(self) -> KnowledgeIndex | None:
        try:
            meta_rows = self._conn.execute("SELECT key, value FROM kb_meta").fetchall()
        except duckdb.CatalogException:
            # read-only connection on a database that was never initialized
            return None
        except duckdb.Error as exc:
            raise StorageError(f"Cannot read DuckDB index {self.db_path}: {exc}") from exc

        meta = {str(row[0]): str(row[1]) for row in meta_rows}
        if "dims" not in meta:
            return None

        try:
            rows = self._conn.execute(
                """
                SELECT id, doc_id, title, text, vec
                FROM kb_chunks
                ORDER BY seq ASC
                """
            ).fetchall()
        except duckdb.Error as exc:
            raise StorageError(f"Cannot read DuckDB index {self.db_path}: {exc}") from exc

        chunks = tuple(
            ChunkRecord(
                id=str(row[0]),
                doc_id=str(row[1]),
                title=str(row[2]) if row[2] is not None else None,
                text=str(row[3]),
                embedding=[float(v) for v in row[4]],
            )
            for row in rows
        )
        return KnowledgeIndex(
            version=int(meta.get("version", "1")),
            dims=int(meta["dims"]),
            chunks=chunks,
        )

    def save(self, index: KnowledgeIndex) -> None:
        if self.read_only:
            raise StorageError(f"DuckDB index {self.db_path} is opened read-only")
        try:
            self._conn.execute("BEGIN TRANSACTION")
            self._conn.execute("DELETE FROM kb_chunks")
            if index.chunks:
                self._conn.executemany(
                    """
                    INSERT INTO kb_chunks (seq, id, doc_id, title, text, vec)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (seq, chunk.id, chunk.doc_id, chunk.title, chunk.text, chunk.embedding)
                        for seq, chunk in enumerate(index.chunks)
                    ],
                )
            self._conn.executemany(
                """
                INSERT INTO kb_meta (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                [("version", str(index.version)), ("dims", str(index.dims))],
            )
            self._conn.execute("COMMIT")
        except duckdb.Error as exc:
            self._rollback()
            raise StorageError(f"Cannot write DuckDB index {self.db_path}: {exc}") from exc

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except duckdb.TransactionException:
            # no transaction was open
            pass
