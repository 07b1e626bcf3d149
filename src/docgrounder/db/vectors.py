"""Per-model sqlite-vec virtual table management.

Each embedding model gets its own ``vec0`` table so vectors from different
models (or dimensions) are never compared. Distances are cosine; the
``source_path``, ``page_type`` and ``slug`` metadata columns let KNN queries
filter candidates inside the index scan.
"""

from __future__ import annotations

import re
import sqlite3

# vec0 metadata columns usable as equality filters in a KNN query.
FILTER_COLUMNS: tuple[str, ...] = ("source_path", "page_type", "slug")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "voyage/voyage-code-3"          -> "voyage_voyage_code_3"
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1024 for voyage-code-3).

    Returns:
        The table name (vec_chunks_{model_slug}).

    Raises:
        ValueError: On an unsanitized slug, non-positive dimensions, or an
            existing table declared with different dimensions.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}'; use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    existing = vec_table_dimensions(conn, table)

    if existing is None:
        metadata_cols = ", ".join(f"{col} text" for col in FILTER_COLUMNS)
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0("
            f"embedding float[{dimensions}] distance_metric=cosine, {metadata_cols})"
        )
        conn.commit()
    elif existing != dimensions:
        raise ValueError(
            f"Vector table '{table}' stores {existing}-dimensional embeddings, "
            f"but {dimensions} were requested. Re-create the database or "
            "configure the matching dimensions."
        )

    return table


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Return True if the vec table *table* has been created."""
    return vec_table_dimensions(conn, table) is not None


def vec_table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the declared dimensions of *table*, or None if it does not exist."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    if row is None:
        return None
    match = re.search(r"float\[(\d+)\]", row[0] or "")
    return int(match.group(1)) if match else 0


def list_vec_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the names of all vec_chunks_* tables."""
    return [
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_chunks_%' "
            "AND sql LIKE 'CREATE VIRTUAL TABLE%'"
        ).fetchall()
    ]
