"""Server configuration: defaults, optionally overridden by a YAML or TOML file.

Both file formats use a top-level `server` table:

    server:
      port: 18443
      db_path: db/messages.db
"""

from __future__ import annotations

import dataclasses
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ServerConfig:
    host: str = "localhost"
    port: int = 0
    db_path: Path = Path("db") / "messages.db"
    max_bind_attempts: int = 5
    retry_delay: float = 0.1
    max_retry_delay: float = 5.0
    request_timeout: float = 10.0
    log_level: str = "INFO"

    def replace(self, **changes: Any) -> ServerConfig:
        """Copy with every non-None value in `changes` applied."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})


def _read_doc(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yml", ".yaml"):
        doc = yaml.safe_load(text)
    else:
        doc = tomllib.loads(text)
    return doc if isinstance(doc, dict) else {}


def load_config(path: Path | str | None = None) -> ServerConfig:
    """Load config from `path`; a missing file yields the defaults."""
    config = ServerConfig()
    if path is None:
        return config
    path = Path(path)
    if not path.exists():
        return config

    section = _read_doc(path).get("server")
    if not isinstance(section, dict):
        return config

    known = {f.name for f in dataclasses.fields(ServerConfig)}
    values = {k: v for k, v in section.items() if k in known}
    if "db_path" in values:
        values["db_path"] = Path(values["db_path"])
    return config.replace(**values)
