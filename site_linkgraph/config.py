"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``SITE_LINKGRAPH_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

Every graph phase receives the ``GraphConfig`` section and every pipeline
stage / CLI command receives the full ``AppConfig`` — never raw dicts or
module-level constants scattered through the codebase.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

VALID_SOURCE_FORMATS = frozenset({"auto", "json", "parquet", "sqlite"})

# ── Sub-config models ─────────────────────────────────────────────────────────


class CatalogConfig(BaseModel):
    """Where the catalog snapshot and the gone-slug sitemap come from."""

    model_config = ConfigDict(frozen=True)

    source_path: str = "data/catalog/whops.json"
    source_format: str = "auto"
    sqlite_table: str = "Whop"
    gone_sitemap: str = "public/sitemaps/gone.xml"
    gone_path_prefixes: list[str] = ["whop", "whops"]
    http_timeout_seconds: float = 30.0

    @field_validator("source_format")
    @classmethod
    def validate_source_format(cls, v: str) -> str:
        if v.lower() not in VALID_SOURCE_FORMATS:
            raise ValueError(
                f"source_format must be one of {sorted(VALID_SOURCE_FORMATS)}, got '{v}'."
            )
        return v.lower()

    @field_validator("sqlite_table")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        if not v.replace("_", "").isalnum():
            raise ValueError(f"sqlite_table must be a plain identifier, got '{v}'.")
        return v


class OutputConfig(BaseModel):
    """Artifact destinations."""

    model_config = ConfigDict(frozen=True)

    output_dir: str = "public/data/graph"
    write_manifest: bool = True
    run_log: str = "data/logs/graph_runs.jsonl"


class GraphConfig(BaseModel):
    """Every tunable of the link-graph build.

    Page sizes, caps and floors define the hard invariants checked by the
    invariant gate; the weights only shape the greedy ranking.
    """

    model_config = ConfigDict(frozen=True)

    recs_per_page: int = 4
    alts_per_page: int = 4
    hub_cap: int = 250                 # max distinct inbound sources per node
    min_inbound: int = 2               # floor enforced by the gate
    rescue_floor: int = 3              # rescue aims one above the gate floor
    max_rescue_rounds: int = 4
    recommendation_threshold: float = 20.0
    alternatives_threshold: float = 0.1
    candidate_pool_size: int = 50
    popularity_prior_depth: int = 20
    alt_pool_width: int = 16

    max_same_category: int = 2
    max_same_price_band: int = 2
    max_same_brand: int = 1

    popularity_weight: float = 0.35
    same_category_penalty: float = 0.15
    same_price_band_penalty: float = 0.10
    same_brand_penalty: float = 0.25
    freshness_window_days: int = 45

    duplicate_signature_warn: int = 12
    explore_requires_affinity: bool = False

    @field_validator(
        "recs_per_page", "alts_per_page", "hub_cap", "candidate_pool_size",
        "alt_pool_width", "max_same_category", "max_same_price_band", "max_same_brand",
    )
    @classmethod
    def positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v

    @field_validator(
        "min_inbound", "rescue_floor", "max_rescue_rounds", "popularity_prior_depth",
        "freshness_window_days", "duplicate_signature_warn",
    )
    @classmethod
    def non_negative_int(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Value must be >= 0, got {v}.")
        return v

    @field_validator("recommendation_threshold", "alternatives_threshold")
    @classmethod
    def non_negative_threshold(cls, v: float) -> float:
        if v < 0.0:
            raise ValueError(f"Thresholds must be >= 0.0, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_floors(self) -> "GraphConfig":
        if self.min_inbound > self.rescue_floor:
            raise ValueError(
                f"min_inbound ({self.min_inbound}) must be <= rescue_floor ({self.rescue_floor})."
            )
        if self.min_inbound > self.hub_cap:
            raise ValueError(
                f"min_inbound ({self.min_inbound}) must be <= hub_cap ({self.hub_cap})."
            )
        return self


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/site_linkgraph.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    catalog: CatalogConfig = CatalogConfig()
    output: OutputConfig = OutputConfig()
    graph: GraphConfig = GraphConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    # Also merge local.toml if present (gitignored local overrides)
    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists() and local_config_path != config_path:
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply SITE_LINKGRAPH_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply SITE_LINKGRAPH_* env vars to the raw config dict.

    Supported overrides:
      SITE_LINKGRAPH_CATALOG_PATH → raw["catalog"]["source_path"]
      SITE_LINKGRAPH_OUTPUT_DIR   → raw["output"]["output_dir"]
      SITE_LINKGRAPH_LOG_LEVEL    → raw["logging"]["level"]
      SITE_LINKGRAPH_DEBUG        → raw["debug"]
    """
    if catalog_path := os.environ.get("SITE_LINKGRAPH_CATALOG_PATH"):
        raw.setdefault("catalog", {})["source_path"] = catalog_path

    if output_dir := os.environ.get("SITE_LINKGRAPH_OUTPUT_DIR"):
        raw.setdefault("output", {})["output_dir"] = output_dir

    if log_level := os.environ.get("SITE_LINKGRAPH_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("SITE_LINKGRAPH_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    return AppConfig(
        catalog=CatalogConfig(**raw.get("catalog", {})),
        output=OutputConfig(**raw.get("output", {})),
        graph=GraphConfig(**raw.get("graph", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", False),
    )
