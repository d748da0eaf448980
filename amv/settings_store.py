"""Persistence of the user's rules and model between runs."""

import json
import os
from pathlib import Path
from typing import Any

from rich.console import Console


console = Console()

RULES_KEY = "amv-rules"
MODEL_KEY = "amv-model"

SETTINGS_FILENAME = "settings.json"


def default_settings_path() -> Path:
    """Location of the settings file, overridable with AMV_CONFIG_DIR."""
    override = os.environ.get("AMV_CONFIG_DIR")
    if override:
        return Path(override) / SETTINGS_FILENAME
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "amv" / SETTINGS_FILENAME


class SettingsStore:
    """Small key-value store kept in a JSON file.

    Only rules and the model identifier are stored; file batches never are.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_settings_path()

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            console.print(f"[yellow]Ignoring unreadable settings file {self.path}: {e}[/yellow]")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        temp_path.replace(self.path)
