"""
Settings for the SDK, web app and CLI.

Sources, later wins: built-in defaults, ~/.tasktrack/config.json, then
TASKTRACK_* environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from tasktrack.cache import DEFAULT_GC_TIME_S, DEFAULT_READ_RETRY, DEFAULT_STALE_TIME_S
from tasktrack.gate import GateConfig
from tasktrack.transport.http import DEFAULT_BASE_URL

CONFIG_DIR = Path.home() / ".tasktrack"
CONFIG_FILE = CONFIG_DIR / "config.json"

ENV_VARS = {
    "base_url": "TASKTRACK_URL",
    "anon_key": "TASKTRACK_ANON_KEY",
    "stale_time": "TASKTRACK_STALE_TIME",
    "gc_time": "TASKTRACK_GC_TIME",
}


def load_config(path: Path = CONFIG_FILE) -> dict[str, Any]:
    try:
        return json.loads(path.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def save_config(cfg: dict[str, Any], path: Path = CONFIG_FILE) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg, indent=2))


class Settings(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    anon_key: str = ""
    stale_time: float = DEFAULT_STALE_TIME_S
    gc_time: float = DEFAULT_GC_TIME_S
    read_retry: int = DEFAULT_READ_RETRY
    gate: GateConfig = Field(default_factory=GateConfig)

    @classmethod
    def load(cls, path: Path = CONFIG_FILE, environ: Optional[dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {k: v for k, v in load_config(path).items() if k in cls.model_fields}
        for field, var in ENV_VARS.items():
            if env.get(var):
                values[field] = env[var]
        return cls.model_validate(values)


class ConfigChannel:
    """Credential channel backed by the CLI config file."""

    def __init__(self, path: Path = CONFIG_FILE):
        self._path = path

    def read(self) -> Optional[str]:
        return load_config(self._path).get("credential")

    def write(self, value: Optional[str]) -> None:
        cfg = load_config(self._path)
        if value is None:
            cfg.pop("credential", None)
        else:
            cfg["credential"] = value
        save_config(cfg, self._path)


class MemoryChannel:
    """Credential channel that lives only as long as the object."""

    def __init__(self, value: Optional[str] = None):
        self.value = value

    def read(self) -> Optional[str]:
        return self.value

    def write(self, value: Optional[str]) -> None:
        self.value = value
