"""Exporter configuration: defaults, JSON file, environment, flags."""
from __future__ import annotations
import json
import os
import socket
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

import jsonschema

from .types import ExporterError

CONSENSUS_URL_ENV = "ETH_EXPORTER_CONSENSUS_URL"


@dataclass
class ExporterConfig:
    namespace: str = "eth"
    node_name: str = field(default_factory=socket.gethostname)
    consensus_url: Optional[str] = None
    disk_directories: List[str] = field(default_factory=list)
    disk_interval: float = 60.0
    host: str = "0.0.0.0"
    port: int = 9090
    debug: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def bundled_schema_path() -> str:
    import importlib.resources as ir
    with ir.as_file(ir.files(__package__) / "data" / "exporter_config.schema.json") as p:
        return str(p)


def load_config_file(path: str, schema_path: Optional[str] = None) -> Dict[str, Any]:
    """Read and validate a JSON config file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ExporterError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ExporterError(f"Config file {path} is not valid JSON: {e}") from e

    with open(schema_path or bundled_schema_path(), "r", encoding="utf-8") as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "(root)"
        raise ExporterError(f"Invalid config file {path} at {where}: {e.message}") from e
    return data


def build_config(
    config_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> ExporterConfig:
    """Merge defaults, config file, environment and overrides, in that order.

    ``None`` values in ``overrides`` are ignored so unset CLI flags do not
    mask the config file.
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    if config_file:
        values.update(load_config_file(config_file))
    if environ.get(CONSENSUS_URL_ENV):
        values["consensus_url"] = environ[CONSENSUS_URL_ENV]
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    known = {f.name for f in fields(ExporterConfig)}
    unknown = set(values) - known
    if unknown:
        raise ExporterError(f"Unknown config keys: {', '.join(sorted(unknown))}")
    return ExporterConfig(**values)
