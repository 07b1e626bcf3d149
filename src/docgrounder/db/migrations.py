"""Forward-only migration runner for the docgrounder schema.

Vec tables (vec_chunks_*) are NOT migration-managed; use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    source_path     TEXT PRIMARY KEY,
    title           TEXT,
    slug            TEXT,
    page_type       TEXT,
    metadata        TEXT NOT NULL DEFAULT '{}',
    content_hash    TEXT NOT NULL,
    target_size     INTEGER NOT NULL,
    overlap         INTEGER NOT NULL,
    embedding_model TEXT NOT NULL,
    ingested_at     DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS chunks (
    seq             INTEGER PRIMARY KEY,  -- stable rowid alias; vec tables key on it
    id              TEXT NOT NULL UNIQUE,
    source_path     TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL,
    text            TEXT NOT NULL,
    character_count INTEGER NOT NULL,
    word_count      INTEGER NOT NULL,
    start_line      INTEGER NOT NULL,
    end_line        INTEGER NOT NULL,
    heading         TEXT,
    heading_level   INTEGER,
    title           TEXT,
    slug            TEXT,
    page_type       TEXT,
    metadata        TEXT NOT NULL DEFAULT '{}',
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS chunks_source_idx ON chunks(source_path, chunk_index);
CREATE INDEX IF NOT EXISTS chunks_slug_idx ON chunks(slug);
CREATE INDEX IF NOT EXISTS chunks_page_type_idx ON chunks(page_type);

CREATE VIEW IF NOT EXISTS embedding_stats AS
SELECT
    COUNT(*)                    AS total_chunks,
    COUNT(DISTINCT source_path) AS total_documents,
    AVG(character_count)        AS avg_characters,
    AVG(word_count)             AS avg_words,
    MIN(created_at)             AS first_indexed,
    MAX(updated_at)             AS last_updated
FROM chunks;
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here; use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
