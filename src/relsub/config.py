"""
Configuration file loading.

A relsub configuration file is YAML:

    schemas: [public, billing]
    catalog:
      file: schema.yaml          # or one of:
      oracle_conn: user/pwd@host:1521/ORCL
      pg_dsn: postgresql://localhost/app
    planner:
      strict: false
      ambiguity: first
      default_schema: public
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from relsub.errors import ConfigError
from relsub.models import PlannerConfig

logger = logging.getLogger(__name__)


@dataclass
class RelsubConfig:
    """Settings shared by the command line entry points."""
    schemas: List[str] = field(default_factory=lambda: ["public"])
    catalog_file: Optional[Path] = None
    oracle_conn: Optional[str] = None
    pg_dsn: Optional[str] = None
    planner: PlannerConfig = field(default_factory=PlannerConfig)

    def __post_init__(self):
        if isinstance(self.catalog_file, str):
            self.catalog_file = Path(self.catalog_file)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> RelsubConfig:
        """
        Create from a parsed configuration mapping.

        Args:
            data: Parsed YAML mapping
            base_dir: Directory relative catalog file paths are resolved against
        """
        catalog = data.get("catalog") or {}
        planner = data.get("planner") or {}
        if not isinstance(catalog, dict) or not isinstance(planner, dict):
            raise ConfigError("'catalog' and 'planner' must be mappings")

        schemas = data.get("schemas", ["public"])
        if isinstance(schemas, str):
            schemas = [schemas]

        catalog_file = catalog.get("file")
        if catalog_file and base_dir is not None and not Path(catalog_file).is_absolute():
            catalog_file = base_dir / catalog_file

        try:
            planner_config = PlannerConfig(
                strict=bool(planner.get("strict", False)),
                ambiguity=planner.get("ambiguity", "first"),
                default_schema=planner.get("default_schema", "public"),
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e

        return cls(
            schemas=list(schemas),
            catalog_file=catalog_file,
            oracle_conn=catalog.get("oracle_conn"),
            pg_dsn=catalog.get("pg_dsn"),
            planner=planner_config,
        )


def load_config(path: Path) -> RelsubConfig:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigError: if the file is missing or not a valid configuration
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {path} must be a mapping")

    config = RelsubConfig.from_dict(data, base_dir=path.parent)
    logger.info(f"Loaded configuration from {path}")
    return config
