"""docgrounder database layer."""

from docgrounder.db.connection import ConnectionPool, Database
from docgrounder.db.migrations import MIGRATIONS, run_migrations
from docgrounder.db.repository import Repository
from docgrounder.db.schema import initialize
from docgrounder.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "ConnectionPool",
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
