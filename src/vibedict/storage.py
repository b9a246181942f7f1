from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol

from .logging_utils import debug_log

__all__ = [
    "STATE_KEY",
    "SETUP_KEY",
    "DATA_DIR_ENV",
    "StateStore",
    "JsonFileStore",
    "MemoryStore",
    "default_data_dir",
]

STATE_KEY = "vibedict_state"
SETUP_KEY = "vibedict_setup"
DATA_DIR_ENV = "VIBEDICT_DATA_DIR"


class StateStore(Protocol):
    def load(self, key: str) -> object | None: ...

    def save(self, key: str, value: object) -> None: ...


def default_data_dir() -> Path:
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".local" / "share" / "vibedict"


class JsonFileStore:
    """Stores each key as ``<root>/<key>.json``."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else default_data_dir()

    def path_for(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def load(self, key: str) -> object | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            debug_log(f"ignoring unreadable {path}: {exc}")
            return None

    def save(self, key: str, value: object) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.path_for(key).write_text(
            json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8"
        )


class MemoryStore:
    def __init__(self) -> None:
        self.values: dict[str, object] = {}

    def load(self, key: str) -> object | None:
        value = self.values.get(key)
        if value is None:
            return None
        return json.loads(json.dumps(value))

    def save(self, key: str, value: object) -> None:
        self.values[key] = json.loads(json.dumps(value, ensure_ascii=False))
