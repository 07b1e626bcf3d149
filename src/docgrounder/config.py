"""docgrounder configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (DOCGROUNDER_EMBEDDING_MODEL, DOCGROUNDER_GENERATION_MODEL,
     DOCGROUNDER_DB)
  3. Per-project docgrounder.yaml
  4. Global ~/.docgrounder/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".docgrounder"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "docgrounder.yaml"
DEFAULT_DB_NAME: str = ".docgrounder.db"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chunking", "index", "retrieval", "generation", "site"]
)
_EMBEDDING_PROVIDERS: frozenset[str] = frozenset(["litellm", "fake"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding service configuration (docgrounder.yaml: embedding:)."""

    provider: str = "litellm"       # litellm | fake
    model: str = "voyage/voyage-code-3"
    dimensions: int = 1024
    batch_size: int = 50
    delay_seconds: float = 0.1
    num_retries: int = 0
    timeout: float = 30.0


@dataclass
class ChunkingCfg:
    """Structural chunker configuration (docgrounder.yaml: chunking:)."""

    target_size: int = 1000
    overlap: int = 200
    file_batch_size: int = 10


@dataclass
class IndexCfg:
    """Vector index configuration (docgrounder.yaml: index:)."""

    db: str = DEFAULT_DB_NAME
    write_batch_size: int = 100


@dataclass
class RetrievalCfg:
    """Query-time configuration (docgrounder.yaml: retrieval:)."""

    top_k: int = 5
    min_similarity: float = 0.0
    timeout: float = 10.0
    pool_size: int = 4


@dataclass
class GenerationCfg:
    """LLM generation configuration (docgrounder.yaml: generation:)."""

    model: str = "anthropic/claude-3-haiku-20240307"
    temperature: float = 0.3
    max_tokens: int = 1024
    num_retries: int = 3


@dataclass
class SiteCfg:
    """Citation locator configuration (docgrounder.yaml: site:)."""

    base_url: str = "https://developer.mozilla.org/en-US/docs"


@dataclass
class DocGrounderConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    index: IndexCfg = field(default_factory=IndexCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    site: SiteCfg = field(default_factory=SiteCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: DocGrounderConfig) -> None:
    c = cfg.chunking
    if c.target_size < 1:
        raise ConfigError(f"chunking.target_size must be >= 1, got {c.target_size}")
    if c.overlap < 1 or c.overlap >= c.target_size:
        raise ConfigError(
            f"chunking.overlap must be between 1 and target_size - 1 "
            f"({c.target_size - 1}), got {c.overlap}"
        )
    if c.file_batch_size < 1:
        raise ConfigError(f"chunking.file_batch_size must be >= 1, got {c.file_batch_size}")
    if cfg.embedding.provider not in _EMBEDDING_PROVIDERS:
        raise ConfigError(
            f"embedding.provider must be one of {sorted(_EMBEDDING_PROVIDERS)}, "
            f"got '{cfg.embedding.provider}'"
        )
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if not 1 <= cfg.retrieval.top_k <= 4096:
        raise ConfigError(f"retrieval.top_k must be between 1 and 4096, got {cfg.retrieval.top_k}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> DocGrounderConfig:
    """Build a *DocGrounderConfig* from a merged raw YAML dict."""
    cfg = DocGrounderConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        d = cfg.embedding
        cfg.embedding = EmbeddingCfg(
            provider=str(e.get("provider", d.provider)),
            model=str(e.get("model", d.model)),
            dimensions=int(e.get("dimensions", d.dimensions)),
            batch_size=int(e.get("batch_size", d.batch_size)),
            delay_seconds=float(e.get("delay_seconds", d.delay_seconds)),
            num_retries=int(e.get("num_retries", d.num_retries)),
            timeout=float(e.get("timeout", d.timeout)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        d = cfg.chunking
        cfg.chunking = ChunkingCfg(
            target_size=int(c.get("target_size", d.target_size)),
            overlap=int(c.get("overlap", d.overlap)),
            file_batch_size=int(c.get("file_batch_size", d.file_batch_size)),
        )

    if "index" in data:
        i = data["index"] or {}
        cfg.index = IndexCfg(
            db=str(i.get("db", cfg.index.db)),
            write_batch_size=int(i.get("write_batch_size", cfg.index.write_batch_size)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", d.top_k)),
            min_similarity=float(r.get("min_similarity", d.min_similarity)),
            timeout=float(r.get("timeout", d.timeout)),
            pool_size=int(r.get("pool_size", d.pool_size)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        d = cfg.generation
        cfg.generation = GenerationCfg(
            model=str(g.get("model", d.model)),
            temperature=float(g.get("temperature", d.temperature)),
            max_tokens=int(g.get("max_tokens", d.max_tokens)),
            num_retries=int(g.get("num_retries", d.num_retries)),
        )

    if "site" in data:
        s = data["site"] or {}
        cfg.site = SiteCfg(base_url=str(s.get("base_url", cfg.site.base_url)))

    return cfg


def _apply_env_overrides(cfg: DocGrounderConfig) -> DocGrounderConfig:
    """Apply DOCGROUNDER_* environment variable overrides (layer 2)."""
    if model := os.environ.get("DOCGROUNDER_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("DOCGROUNDER_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("DOCGROUNDER_DB"):
        cfg.index.db = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DocGrounderConfig:
    """Load and return a merged *DocGrounderConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *docgrounder.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value is out of range (e.g. overlap >= target_size).
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
