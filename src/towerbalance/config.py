from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from .models import GameConfig, ModelError, SettingsMode


class ConfigError(RuntimeError):
    """Raised when a configuration snapshot file is invalid."""


def _read_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    if suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc

    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise ConfigError(
                "YAML config requested, but PyYAML is not installed. "
                "Install `pyyaml` or use JSON."
            ) from exc
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    raise ConfigError(f"Unsupported config format '{suffix}'. Use .json or .yaml/.yml.")


def config_from_payload(payload: Any, difficulty: str = SettingsMode.NORMAL.value) -> GameConfig:
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be an object (JSON/YAML mapping).")
    for key in ("towers", "enemies", "waves"):
        if key in payload and not isinstance(payload[key], list):
            raise ConfigError(f"Field '{key}' must be a list.")
    try:
        return GameConfig.from_dict(payload, difficulty=difficulty)
    except ModelError as exc:
        raise ConfigError(str(exc)) from exc


def load_config(path: Path | str, difficulty: str = SettingsMode.NORMAL.value) -> GameConfig:
    """Load a snapshot with ``towers``, ``enemies``, ``settings`` and ``waves``.

    ``settings`` may be a single object or a list keyed by ``mode``; the entry
    for ``difficulty`` is selected.
    """
    path = Path(path)
    return config_from_payload(_read_raw(path), difficulty=difficulty)
